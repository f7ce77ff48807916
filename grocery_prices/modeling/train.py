"""
Model Training Script
=====================
Fits the Bayesian price model on the saved analysis data, saves the model
and writes posterior-predictive draws for the default prediction grid.

Usage:
    python -m grocery_prices.modeling.train
    python -m grocery_prices.modeling.train --chains 2 --draws 500

Output files:
    - models/bayesian_model.pt
    - other/modeling/predictions.csv
    - other/modeling/predicted_price_by_vendor_month.csv
    - other/modeling/residuals.csv
"""

import argparse
import json
import logging
import sys
from typing import Optional

import pandas as pd

from ..config import LOG_FORMAT, PipelineConfig
from ..data_pipeline.stage2_validate import TableValidator, analysis_data_checks
from ..errors import PipelineError
from ..io import read_parquet_table, write_csv_table
from .evaluate import (
    compute_residuals,
    evaluate_fit,
    predict_new_data,
    predicted_price_by_vendor_month,
)
from .model import BayesianModelConfig, BayesianPriceModel, FittedPriceModel

logger = logging.getLogger(__name__)


def prepare_training_data(analysis_df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    """Validate the analysis table; the model never sees a table that fails a check."""
    TableValidator(
        analysis_data_checks(config.expected_analysis_rows, config.vendors),
        table_name='analysis_data'
    ).assert_valid(analysis_df)
    return analysis_df


def run_training(
    config: Optional[PipelineConfig] = None,
    model_config: Optional[BayesianModelConfig] = None,
    prediction_grid: Optional[pd.DataFrame] = None
) -> FittedPriceModel:
    """
    Fit, summarize and save the price model.

    Parameters
    ----------
    config : PipelineConfig, optional
        Paths; defaults to the project layout
    model_config : BayesianModelConfig, optional
        Priors and sampler settings
    prediction_grid : pd.DataFrame, optional
        New (old_price, vendor, month) rows for predictions.csv
    """
    config = config or PipelineConfig()
    model_config = model_config or BayesianModelConfig()

    analysis_df = read_parquet_table(config.analysis_data_path)
    train_df = prepare_training_data(analysis_df, config)

    fitted = BayesianPriceModel(model_config).fit(train_df)

    table = fitted.coefficient_table()
    logger.info("\nPosterior summary:\n" + table.to_string(index=False, float_format='{:.3f}'.format))

    metrics = evaluate_fit(fitted, train_df)
    logger.info(f"Fit metrics: {json.dumps(metrics.to_dict(), default=str)}")

    fitted.save(config.model_path)

    predictions = predict_new_data(fitted, prediction_grid)
    write_csv_table(predictions, config.predictions_path)

    by_vendor_month = predicted_price_by_vendor_month(fitted, train_df, seed=model_config.seed)
    write_csv_table(by_vendor_month, config.vendor_month_predictions_path)
    residuals = compute_residuals(fitted, train_df, seed=model_config.seed)
    write_csv_table(residuals, config.residuals_path)

    return fitted


def main(argv=None):
    parser = argparse.ArgumentParser(description='Fit the Bayesian grocery price model')
    parser.add_argument('--project-root', type=str, default=None, help='Project root directory')
    parser.add_argument('--chains', type=int, default=4, help='Number of chains (default: 4)')
    parser.add_argument('--warmup', type=int, default=1000, help='Warmup iterations per chain')
    parser.add_argument('--draws', type=int, default=1000, help='Retained draws per chain')
    parser.add_argument('--seed', type=int, default=1234, help='Sampler seed (default: 1234)')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    config = PipelineConfig()
    if args.project_root:
        config.project_root = args.project_root
    model_config = BayesianModelConfig(
        n_chains=args.chains,
        n_warmup=args.warmup,
        n_draws=args.draws,
        seed=args.seed
    )

    try:
        run_training(config, model_config)
    except PipelineError as exc:
        logger.error(f"Model training failed: {exc}")
        sys.exit(1)


if __name__ == '__main__':
    main()
