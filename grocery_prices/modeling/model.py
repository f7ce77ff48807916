"""
Bayesian linear regression of current price.

    current_price ~ Normal(mu, sigma)
    mu = alpha + beta * old_price + vendor effects + month effects

with independent Normal(0, 2.5) priors on every regression coefficient and
an Exponential(1) prior on sigma. Vendor and month are one-hot encoded with
the first sorted level absorbed into the intercept.
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import torch
from torch.distributions import Exponential, Normal

from ..errors import IOFailure, UnseenLevelError, ValidationFailure
from .sampler import HamiltonianSampler, SamplerResult, split_rhat

logger = logging.getLogger(__name__)

INTERCEPT = '(Intercept)'
SIGMA = 'sigma'


@dataclass
class BayesianModelConfig:
    """Configuration for the price regression and its sampler."""
    # Formula
    response: str = 'current_price'
    numeric: Tuple[str, ...] = ('old_price',)
    categorical: Tuple[str, ...] = ('vendor', 'month')

    # Priors
    prior_scale: float = 2.5
    prior_intercept_scale: float = 2.5
    sigma_rate: float = 1.0

    # Sampler
    n_chains: int = 4
    n_warmup: int = 1000
    n_draws: int = 1000
    max_leapfrog: int = 10
    target_accept: float = 0.8
    seed: int = 1234

    # Reporting
    credible_prob: float = 0.9


class DesignEncoder:
    """Builds the regression design matrix with treatment-coded categoricals."""

    def __init__(
        self,
        numeric: Sequence[str] = ('old_price',),
        categorical: Sequence[str] = ('vendor', 'month'),
        levels: Optional[Dict[str, list]] = None
    ):
        self.numeric = list(numeric)
        self.categorical = list(categorical)
        self.levels = levels

    def fit(self, df: pd.DataFrame) -> 'DesignEncoder':
        """Record the sorted levels of each categorical column."""
        self._require_columns(df)
        self.levels = {
            col: sorted(pd.unique(df[col]).tolist())
            for col in self.categorical
        }
        return self

    @property
    def feature_names(self) -> List[str]:
        """Coefficient names in design-matrix column order."""
        self._check_fitted()
        names = [INTERCEPT] + list(self.numeric)
        for col in self.categorical:
            names.extend(f"{col}{level}" for level in self.levels[col][1:])
        return names

    def transform(self, df: pd.DataFrame) -> np.ndarray:
        """
        Encode a table as a float64 design matrix.

        Raises
        ------
        UnseenLevelError
            If a categorical column holds a level not seen by fit()
        """
        self._check_fitted()
        self._require_columns(df)

        blocks = [np.ones((len(df), 1))]
        blocks.append(df[self.numeric].to_numpy(dtype=float).reshape(len(df), len(self.numeric)))

        for col in self.categorical:
            levels = self.levels[col]
            known = df[col].isin(levels)
            if not known.all():
                unseen = sorted(pd.unique(df.loc[~known, col]).tolist(), key=str)
                raise UnseenLevelError(col, unseen, levels)

            values = df[col].to_numpy()
            blocks.append(np.column_stack(
                [values == level for level in levels[1:]]
            ).astype(float) if len(levels) > 1 else np.empty((len(df), 0)))

        return np.hstack(blocks)

    def to_dict(self) -> Dict:
        self._check_fitted()
        return {
            'numeric': list(self.numeric),
            'categorical': list(self.categorical),
            'levels': {col: list(levels) for col, levels in self.levels.items()},
        }

    @classmethod
    def from_dict(cls, state: Dict) -> 'DesignEncoder':
        return cls(state['numeric'], state['categorical'], state['levels'])

    def _require_columns(self, df: pd.DataFrame) -> None:
        required = self.numeric + self.categorical
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValidationFailure(
                check='model_columns',
                message=f"Missing predictor columns: {missing}",
                observed=list(df.columns),
                expected=required
            )

    def _check_fitted(self) -> None:
        if self.levels is None:
            raise RuntimeError("DesignEncoder must be fit before use")


def log_posterior(
    theta: torch.Tensor,
    X: torch.Tensor,
    y: torch.Tensor,
    prior_scale: float = 2.5,
    prior_intercept_scale: float = 2.5,
    sigma_rate: float = 1.0
) -> torch.Tensor:
    """
    Unnormalized log posterior.

    theta holds the regression coefficients followed by log(sigma); the
    log-Jacobian of the exp transform is included.
    """
    coef, log_sigma = theta[:-1], theta[-1]
    sigma = torch.exp(log_sigma)
    zero = torch.zeros((), dtype=theta.dtype)

    log_lik = Normal(X @ coef, sigma, validate_args=False).log_prob(y).sum()

    scales = torch.full_like(coef, prior_scale)
    scales[0] = prior_intercept_scale
    log_prior = Normal(zero, scales, validate_args=False).log_prob(coef).sum()
    log_prior_sigma = Exponential(
        torch.tensor(sigma_rate, dtype=theta.dtype), validate_args=False
    ).log_prob(sigma)

    return log_lik + log_prior + log_prior_sigma + log_sigma


class BayesianPriceModel:
    """Fits the price regression by Hamiltonian Monte Carlo."""

    def __init__(self, config: Optional[BayesianModelConfig] = None):
        self.config = config or BayesianModelConfig()

    def fit(self, df: pd.DataFrame) -> 'FittedPriceModel':
        """
        Draw posterior samples for the regression coefficients and sigma.

        Parameters
        ----------
        df : pd.DataFrame
            Table with the response, numeric and categorical columns

        Returns
        -------
        FittedPriceModel
        """
        config = self.config
        self._validate(df)

        encoder = DesignEncoder(config.numeric, config.categorical).fit(df)
        X_np = encoder.transform(df)
        y_np = df[config.response].to_numpy(dtype=float)
        names = encoder.feature_names

        logger.info("Fitting Bayesian price model")
        logger.info("=" * 50)
        logger.info(f"  - Observations: {len(df):,}")
        logger.info(f"  - Coefficients: {len(names)} ({', '.join(names)})")
        logger.info(
            f"  - Chains: {config.n_chains}, warmup: {config.n_warmup}, draws: {config.n_draws}"
        )

        X = torch.tensor(X_np, dtype=torch.float64)
        y = torch.tensor(y_np, dtype=torch.float64)

        def log_prob(theta: torch.Tensor) -> torch.Tensor:
            return log_posterior(
                theta, X, y,
                prior_scale=config.prior_scale,
                prior_intercept_scale=config.prior_intercept_scale,
                sigma_rate=config.sigma_rate
            )

        sampler = HamiltonianSampler(
            n_chains=config.n_chains,
            n_warmup=config.n_warmup,
            n_draws=config.n_draws,
            max_leapfrog=config.max_leapfrog,
            target_accept=config.target_accept,
            seed=config.seed
        )
        result = sampler.sample(log_prob, self._initial_point(X_np, y_np))

        fitted = FittedPriceModel.from_sampler(names, result, encoder, config)
        max_rhat = np.nanmax(fitted.rhat) if np.isfinite(fitted.rhat).any() else float('nan')
        logger.info(f"  - Mean acceptance: {result.acceptance_rate.mean():.2f}")
        logger.info(f"  - Divergences: {int(result.divergences.sum())}")
        logger.info(f"  - Max R-hat: {max_rhat:.3f}")
        return fitted

    def _validate(self, df: pd.DataFrame) -> None:
        config = self.config
        required = [config.response] + list(config.numeric) + list(config.categorical)
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValidationFailure(
                check='model_columns',
                message=f"Missing model columns: {missing}",
                observed=list(df.columns),
                expected=required
            )
        if len(df) == 0:
            raise ValidationFailure('model_rows', 'Cannot fit on an empty table', 0, '>= 1')

        nulls = {c: int(n) for c, n in df[required].isna().sum().items() if n > 0}
        if nulls:
            raise ValidationFailure('model_not_null', 'Null values in model columns', nulls, 0)

        for col in [config.response] + list(config.numeric):
            if not pd.api.types.is_numeric_dtype(df[col]):
                raise ValidationFailure(
                    'model_numeric', f"Column '{col}' must be numeric", str(df[col].dtype), 'numeric'
                )

    @staticmethod
    def _initial_point(X: np.ndarray, y: np.ndarray) -> torch.Tensor:
        """Least-squares coefficients and residual scale as the mode search start."""
        coef = np.linalg.lstsq(X, y, rcond=None)[0]
        resid_sd = float(np.std(y - X @ coef))
        return torch.from_numpy(np.append(coef, np.log(max(resid_sd, 1e-3))))


class FittedPriceModel:
    """Posterior draws of the price regression with summaries and predictions."""

    def __init__(
        self,
        coef_names: List[str],
        draws: np.ndarray,
        encoder: DesignEncoder,
        config: BayesianModelConfig,
        diagnostics: Optional[Dict] = None
    ):
        """
        Parameters
        ----------
        coef_names : list of str
            Regression coefficient names (sigma excluded)
        draws : np.ndarray
            [chains, draws, n_coef + 1] on the natural scale, sigma last
        """
        self.coef_names = list(coef_names)
        self.draws = np.asarray(draws, dtype=float)
        self.encoder = encoder
        self.config = config
        self.diagnostics = diagnostics or {}
        self.rhat = split_rhat(self.draws)

    @classmethod
    def from_sampler(
        cls,
        coef_names: List[str],
        result: SamplerResult,
        encoder: DesignEncoder,
        config: BayesianModelConfig
    ) -> 'FittedPriceModel':
        draws = result.draws.copy()
        draws[..., -1] = np.exp(draws[..., -1])
        diagnostics = {
            'acceptance_rate': result.acceptance_rate.tolist(),
            'step_size': result.step_size.tolist(),
            'divergences': result.divergences.tolist(),
        }
        return cls(coef_names, draws, encoder, config, diagnostics)

    @property
    def parameter_names(self) -> List[str]:
        return self.coef_names + [SIGMA]

    @property
    def n_samples(self) -> int:
        return self.draws.shape[0] * self.draws.shape[1]

    def posterior_samples(self) -> pd.DataFrame:
        """All chains' draws stacked, one column per parameter."""
        flat = self.draws.reshape(-1, self.draws.shape[-1])
        return pd.DataFrame(flat, columns=self.parameter_names)

    @staticmethod
    def _interval_labels(prob: float) -> Tuple[float, float, str, str]:
        if not 0 < prob < 1:
            raise ValueError(f"prob must be in (0, 1), got {prob}")
        lower = (1 - prob) / 2
        upper = 1 - lower
        return lower, upper, f"{lower * 100:g}%", f"{upper * 100:g}%"

    def posterior_interval(self, prob: Optional[float] = None) -> pd.DataFrame:
        """Central credible interval per parameter."""
        prob = self.config.credible_prob if prob is None else prob
        lower, upper, lower_label, upper_label = self._interval_labels(prob)
        samples = self.posterior_samples()
        return pd.DataFrame({
            'coefficient': self.parameter_names,
            lower_label: samples.quantile(lower).to_numpy(),
            upper_label: samples.quantile(upper).to_numpy(),
        })

    def coefficient_table(self, prob: Optional[float] = None) -> pd.DataFrame:
        """Posterior mean, SD, credible interval and split R-hat per parameter."""
        samples = self.posterior_samples()
        table = pd.DataFrame({
            'coefficient': self.parameter_names,
            'mean': samples.mean().to_numpy(),
            'sd': samples.std(ddof=1).to_numpy(),
        })
        interval = self.posterior_interval(prob)
        table = table.merge(interval, on='coefficient', how='left')
        table['rhat'] = self.rhat
        return table

    def posterior_linpred(self, new_df: pd.DataFrame) -> np.ndarray:
        """Posterior draws of the mean price, [samples, rows]."""
        X = self.encoder.transform(new_df)
        samples = self.draws.reshape(-1, self.draws.shape[-1])
        return samples[:, :-1] @ X.T

    def posterior_predict(self, new_df: pd.DataFrame, seed: Optional[int] = None) -> np.ndarray:
        """
        Posterior-predictive price draws, [samples, rows].

        Raises
        ------
        UnseenLevelError
            If a vendor or month in new_df was not present at fit time
        """
        mu = self.posterior_linpred(new_df)
        sigma = self.draws.reshape(-1, self.draws.shape[-1])[:, -1]
        rng = np.random.default_rng(self.config.seed if seed is None else seed)
        return mu + sigma[:, None] * rng.standard_normal(mu.shape)

    def save(self, path) -> Path:
        """Serialize draws, levels, config and diagnostics."""
        path = Path(path)
        state = {
            'coef_names': self.coef_names,
            'draws': torch.from_numpy(self.draws),
            'encoder': self.encoder.to_dict(),
            'config': asdict(self.config),
            'diagnostics': self.diagnostics,
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            torch.save(state, path)
        except OSError as exc:
            raise IOFailure(path, str(exc)) from exc

        logger.info(f"Saved model to {path}")
        return path

    @classmethod
    def load(cls, path) -> 'FittedPriceModel':
        """
        Load a saved model.

        Raises
        ------
        IOFailure
            If the file is missing or does not hold a saved model
        """
        path = Path(path)
        if not path.exists():
            raise IOFailure(path, 'file not found')

        # Non-archive input raises arbitrary errors inside the unpickler
        # (IndexError among them)
        try:
            state = torch.load(path, map_location='cpu', weights_only=True)
        except Exception as exc:
            raise IOFailure(path, f"cannot deserialize model: {exc}") from exc

        try:
            config = state['config']
            config['numeric'] = tuple(config['numeric'])
            config['categorical'] = tuple(config['categorical'])
            model = cls(
                coef_names=state['coef_names'],
                draws=state['draws'].numpy(),
                encoder=DesignEncoder.from_dict(state['encoder']),
                config=BayesianModelConfig(**config),
                diagnostics=state.get('diagnostics', {})
            )
        except (KeyError, TypeError, ValueError, AttributeError, IndexError) as exc:
            raise IOFailure(path, f"cannot deserialize model: {exc}") from exc

        logger.info(f"Loaded model from {path}")
        return model
