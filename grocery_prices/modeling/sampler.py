"""
Hamiltonian Monte Carlo sampler.

The sampler works in a whitened parameter space: it first finds the
posterior mode with L-BFGS, then rescales the parameters by the Cholesky
factor of the Laplace covariance so that the posterior is close to a unit
Gaussian. Step size is tuned per chain with dual averaging during warmup.
Gradients come from torch autograd.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Tuple

import numpy as np
import torch

logger = logging.getLogger(__name__)

LogProbFn = Callable[[torch.Tensor], torch.Tensor]

# An energy error above this marks the transition as divergent
DIVERGENCE_THRESHOLD = 1000.0


@dataclass
class SamplerResult:
    """Posterior draws and per-chain diagnostics."""
    draws: np.ndarray            # [chains, draws, dim]
    acceptance_rate: np.ndarray  # [chains]
    step_size: np.ndarray        # [chains]
    divergences: np.ndarray      # [chains]
    mode: np.ndarray             # [dim]

    @property
    def n_chains(self) -> int:
        return self.draws.shape[0]

    @property
    def n_draws(self) -> int:
        return self.draws.shape[1]


def split_rhat(draws: np.ndarray) -> np.ndarray:
    """
    Split potential scale reduction factor per parameter.

    Parameters
    ----------
    draws : np.ndarray
        [chains, draws, dim]

    Returns
    -------
    np.ndarray
        [dim]; NaN where the within-chain variance is zero
    """
    n_chains, n_draws, dim = draws.shape
    half = n_draws // 2
    if half < 2:
        return np.full(dim, np.nan)

    # Each chain contributes its first and second half as separate sequences
    sequences = np.concatenate([draws[:, :half], draws[:, half:2 * half]], axis=0)
    n = sequences.shape[1]

    within = sequences.var(axis=1, ddof=1).mean(axis=0)
    between = n * sequences.mean(axis=1).var(axis=0, ddof=1)
    var_hat = (n - 1) / n * within + between / n

    with np.errstate(divide='ignore', invalid='ignore'):
        rhat = np.sqrt(var_hat / within)
    return np.where(within > 0, rhat, np.nan)


class HamiltonianSampler:
    """
    HMC with a dense Laplace metric and dual-averaging step size adaptation.

    Each transition runs a random number of leapfrog steps between 1 and
    max_leapfrog to avoid periodic trajectories.
    """

    def __init__(
        self,
        n_chains: int = 4,
        n_warmup: int = 1000,
        n_draws: int = 1000,
        max_leapfrog: int = 10,
        target_accept: float = 0.8,
        initial_step_size: float = 0.5,
        init_scale: float = 1.0,
        seed: int = 1234
    ):
        """
        Parameters
        ----------
        n_chains : int
            Number of independent chains
        n_warmup : int
            Adaptation iterations per chain (discarded)
        n_draws : int
            Retained iterations per chain
        max_leapfrog : int
            Upper bound on leapfrog steps per transition
        target_accept : float
            Target mean acceptance probability for step size adaptation
        init_scale : float
            Standard deviation of chain starting points in whitened space
        seed : int
            Seed; chain c uses seed + c
        """
        if n_chains < 1 or n_draws < 1 or n_warmup < 0:
            raise ValueError("n_chains and n_draws must be positive, n_warmup non-negative")
        if not 0 < target_accept < 1:
            raise ValueError(f"target_accept must be in (0, 1), got {target_accept}")

        self.n_chains = n_chains
        self.n_warmup = n_warmup
        self.n_draws = n_draws
        self.max_leapfrog = max_leapfrog
        self.target_accept = target_accept
        self.initial_step_size = initial_step_size
        self.init_scale = init_scale
        self.seed = seed

    def sample(self, log_prob: LogProbFn, initial: torch.Tensor) -> SamplerResult:
        """
        Draw posterior samples.

        Parameters
        ----------
        log_prob : callable
            Unnormalized log density of a float64 parameter vector
        initial : torch.Tensor
            Starting point for the mode search

        Returns
        -------
        SamplerResult
        """
        mode = self.find_mode(log_prob, initial)
        scale = self._laplace_scale(log_prob, mode)

        def to_theta(z: torch.Tensor) -> torch.Tensor:
            return mode + scale @ z

        def potential(z: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
            z = z.detach().requires_grad_(True)
            u = -log_prob(to_theta(z))
            grad, = torch.autograd.grad(u, z)
            return u.detach(), grad

        all_draws, accept_rates, step_sizes, divergences = [], [], [], []
        for chain in range(self.n_chains):
            z_draws, accept_rate, step_size, n_div = self._run_chain(potential, mode.shape[0], chain)
            with torch.no_grad():
                all_draws.append((mode + z_draws @ scale.T).numpy())
            accept_rates.append(accept_rate)
            step_sizes.append(step_size)
            divergences.append(n_div)
            logger.info(
                f"  - Chain {chain + 1}/{self.n_chains}: accept={accept_rate:.2f}, "
                f"step_size={step_size:.3f}, divergences={n_div}"
            )

        return SamplerResult(
            draws=np.stack(all_draws),
            acceptance_rate=np.array(accept_rates),
            step_size=np.array(step_sizes),
            divergences=np.array(divergences, dtype=int),
            mode=mode.numpy()
        )

    @staticmethod
    def find_mode(log_prob: LogProbFn, initial: torch.Tensor, max_iter: int = 500) -> torch.Tensor:
        """Maximize the log density with L-BFGS."""
        theta = initial.detach().clone().to(torch.float64).requires_grad_(True)
        optimizer = torch.optim.LBFGS(
            [theta],
            lr=1.0,
            max_iter=max_iter,
            tolerance_grad=1e-9,
            tolerance_change=1e-12,
            line_search_fn='strong_wolfe'
        )

        def closure():
            optimizer.zero_grad()
            loss = -log_prob(theta)
            loss.backward()
            return loss

        optimizer.step(closure)
        mode = theta.detach()
        if not torch.isfinite(mode).all():
            logger.warning("Mode search diverged; starting from the initial point")
            mode = initial.detach().clone().to(torch.float64)
        return mode

    @staticmethod
    def _laplace_scale(log_prob: LogProbFn, mode: torch.Tensor) -> torch.Tensor:
        """Cholesky factor of the inverse Hessian of -log_prob at the mode."""
        dim = mode.shape[0]
        hessian = torch.autograd.functional.hessian(lambda t: -log_prob(t), mode)
        hessian = 0.5 * (hessian + hessian.T)

        eye = torch.eye(dim, dtype=torch.float64)
        jitter = 0.0
        for _ in range(8):
            chol, info = torch.linalg.cholesky_ex(hessian + jitter * eye)
            if info.item() == 0:
                # theta = mode + L^-T z has covariance H^-1
                return torch.linalg.solve_triangular(chol.T, eye, upper=True)
            jitter = 1e-6 if jitter == 0.0 else jitter * 10

        logger.warning("Hessian at the mode is not positive definite; using identity metric")
        return eye

    def _run_chain(self, potential, dim: int, chain: int):
        generator = torch.Generator().manual_seed(self.seed + chain)
        z = self.init_scale * torch.randn(dim, generator=generator, dtype=torch.float64)
        u, grad = potential(z)

        # Dual averaging state (Hoffman & Gelman, 2014)
        step_size = self.initial_step_size
        mu = np.log(10 * step_size)
        h_bar, log_step_bar = 0.0, 0.0
        gamma, t0, kappa = 0.05, 10.0, 0.75

        draws = torch.empty(self.n_draws, dim, dtype=torch.float64)
        n_accept, n_div = 0, 0

        for it in range(self.n_warmup + self.n_draws):
            n_steps = int(torch.randint(1, self.max_leapfrog + 1, (1,), generator=generator))
            z, u, grad, accept_prob, divergent = self._transition(
                potential, z, u, grad, step_size, n_steps, generator
            )

            if it < self.n_warmup:
                m = it + 1
                h_bar = (1 - 1 / (m + t0)) * h_bar + (self.target_accept - accept_prob) / (m + t0)
                log_step = mu - np.sqrt(m) / gamma * h_bar
                eta = m ** -kappa
                log_step_bar = eta * log_step + (1 - eta) * log_step_bar
                step_size = float(np.exp(log_step))
                if it == self.n_warmup - 1:
                    step_size = float(np.exp(log_step_bar))
            else:
                draws[it - self.n_warmup] = z
                n_accept += accept_prob
                n_div += int(divergent)

        return draws, n_accept / self.n_draws, step_size, n_div

    @staticmethod
    def _transition(potential, z, u, grad, step_size, n_steps, generator):
        """One HMC transition with a Metropolis correction."""
        momentum = torch.randn(z.shape[0], generator=generator, dtype=torch.float64)
        energy = u + 0.5 * momentum.dot(momentum)

        z_new, p_new = z.clone(), momentum.clone()
        p_new = p_new - 0.5 * step_size * grad
        u_new, grad_new = u, grad
        for step in range(n_steps):
            z_new = z_new + step_size * p_new
            u_new, grad_new = potential(z_new)
            if not torch.isfinite(u_new):
                break
            if step < n_steps - 1:
                p_new = p_new - step_size * grad_new
        p_new = p_new - 0.5 * step_size * grad_new

        energy_new = u_new + 0.5 * p_new.dot(p_new)
        delta = float(energy - energy_new)
        if not np.isfinite(delta):
            return z, u, grad, 0.0, True

        divergent = -delta > DIVERGENCE_THRESHOLD
        accept_prob = float(min(1.0, np.exp(min(delta, 0.0))))
        if float(torch.rand(1, generator=generator, dtype=torch.float64)) < accept_prob:
            return z_new, u_new, grad_new, accept_prob, divergent
        return z, u, grad, accept_prob, divergent
