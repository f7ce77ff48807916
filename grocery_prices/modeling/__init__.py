"""
Modeling Module
===============
Bayesian regression of current price on old price, vendor and month.

- model:    Design encoding, log posterior, fitted-model artifact
- sampler:  Hamiltonian Monte Carlo with a Laplace metric
- evaluate: Predictions, residuals and fit metrics
- train:    Fit-and-save entry point
"""

from .model import (
    BayesianModelConfig,
    BayesianPriceModel,
    DesignEncoder,
    FittedPriceModel,
    log_posterior,
)
from .sampler import HamiltonianSampler, SamplerResult, split_rhat
from .evaluate import (
    DEFAULT_PREDICTION_GRID,
    FitMetrics,
    compute_residuals,
    evaluate_fit,
    predict_new_data,
    predicted_price_by_vendor_month,
)

__all__ = [
    'BayesianModelConfig',
    'BayesianPriceModel',
    'DesignEncoder',
    'FittedPriceModel',
    'log_posterior',
    'HamiltonianSampler',
    'SamplerResult',
    'split_rhat',
    'DEFAULT_PREDICTION_GRID',
    'FitMetrics',
    'compute_residuals',
    'evaluate_fit',
    'predict_new_data',
    'predicted_price_by_vendor_month',
]
