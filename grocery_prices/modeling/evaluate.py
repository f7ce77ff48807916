"""
Posterior summaries and predictive checks for the fitted price model.

- Posterior-predictive draws for new (old_price, vendor, month) rows
- Predicted average price by vendor and month
- Residuals against the posterior-predictive mean
- In-sample fit metrics: RMSE, MAE, predictive interval coverage
"""

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .model import FittedPriceModel

logger = logging.getLogger(__name__)

DEFAULT_PREDICTION_GRID = pd.DataFrame({
    'old_price': [5.0, 10.0, 20.0],
    'vendor': ['Walmart', 'Loblaws', 'Metro'],
    'month': [6, 7, 8],
})


@dataclass
class FitMetrics:
    """In-sample posterior-predictive fit metrics."""
    rmse: float = 0.0
    mae: float = 0.0
    interval_prob: float = 0.9
    interval_coverage: float = 0.0
    mean_acceptance: float = 0.0
    divergences: int = 0
    max_rhat: float = float('nan')
    n_obs: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


def predict_new_data(
    fitted: FittedPriceModel,
    new_df: Optional[pd.DataFrame] = None,
    seed: Optional[int] = None
) -> pd.DataFrame:
    """
    Posterior-predictive draws as a table.

    One row per posterior draw, one column per new-data row, columns named
    "1".."n" in new-data order.
    """
    new_df = DEFAULT_PREDICTION_GRID if new_df is None else new_df
    draws = fitted.posterior_predict(new_df, seed=seed)
    columns = [str(i + 1) for i in range(draws.shape[1])]
    return pd.DataFrame(draws, columns=columns)


def predictive_mean(fitted: FittedPriceModel, df: pd.DataFrame, seed: Optional[int] = None) -> np.ndarray:
    """Mean of the posterior-predictive draws for each row."""
    return fitted.posterior_predict(df, seed=seed).mean(axis=0)


def predicted_price_by_vendor_month(
    fitted: FittedPriceModel,
    df: pd.DataFrame,
    seed: Optional[int] = None
) -> pd.DataFrame:
    """Average posterior-predictive price per (vendor, month)."""
    predicted = df[['vendor', 'month']].assign(predicted_price=predictive_mean(fitted, df, seed))
    return (
        predicted.groupby(['vendor', 'month'])
        .agg(avg_predicted_price=('predicted_price', 'mean'))
        .reset_index()
    )


def compute_residuals(
    fitted: FittedPriceModel,
    df: pd.DataFrame,
    seed: Optional[int] = None
) -> pd.DataFrame:
    """Copy of df with predicted_price and residuals = observed - predicted."""
    predicted = predictive_mean(fitted, df, seed)
    return df.assign(
        predicted_price=predicted,
        residuals=df[fitted.config.response].to_numpy(dtype=float) - predicted
    )


def evaluate_fit(
    fitted: FittedPriceModel,
    df: pd.DataFrame,
    prob: Optional[float] = None,
    seed: Optional[int] = None
) -> FitMetrics:
    """In-sample error and predictive interval coverage."""
    prob = fitted.config.credible_prob if prob is None else prob
    draws = fitted.posterior_predict(df, seed=seed)
    observed = df[fitted.config.response].to_numpy(dtype=float)

    errors = observed - draws.mean(axis=0)
    lower = np.quantile(draws, (1 - prob) / 2, axis=0)
    upper = np.quantile(draws, 1 - (1 - prob) / 2, axis=0)
    covered = (observed >= lower) & (observed <= upper)

    diagnostics = fitted.diagnostics
    rhat = fitted.rhat
    metrics = FitMetrics(
        rmse=float(np.sqrt(np.mean(errors ** 2))),
        mae=float(np.mean(np.abs(errors))),
        interval_prob=prob,
        interval_coverage=float(covered.mean()),
        mean_acceptance=float(np.mean(diagnostics.get('acceptance_rate', [np.nan]))),
        divergences=int(np.sum(diagnostics.get('divergences', [0]))),
        max_rhat=float(np.nanmax(rhat)) if np.isfinite(rhat).any() else float('nan'),
        n_obs=len(df)
    )

    logger.info(f"  - RMSE: {metrics.rmse:.3f}, MAE: {metrics.mae:.3f}")
    logger.info(f"  - {prob:.0%} predictive interval coverage: {metrics.interval_coverage:.1%}")
    return metrics
