"""
Data Pipeline Runner
====================
Runs the data stages sequentially: simulate and validate the synthetic
table, then clean, validate and save the real price records.

Usage:
    python -m grocery_prices.data_pipeline.run_pipeline
    python -m grocery_prices.data_pipeline.run_pipeline --skip-simulation

Output files:
    - data/00-simulated_data/simulated_data.csv
    - data/02-analysis_data/analysis_data.parquet
"""

import argparse
import logging
import sys
import time
from typing import Dict, Optional

import pandas as pd

from ..config import LOG_FORMAT, PipelineConfig
from ..errors import PipelineError
from .stage0_simulate import PriceDataSimulator
from .stage1_clean import PriceCleaningPipeline, load_raw_tables
from .stage2_validate import TableValidator, analysis_data_checks, simulated_data_checks

logger = logging.getLogger(__name__)


def run_simulation(config: PipelineConfig) -> pd.DataFrame:
    """Simulate, validate and save the synthetic price table."""
    simulator = PriceDataSimulator(
        n_rows=config.n_simulated_rows,
        vendors=config.vendors,
        seed=config.simulation_seed
    )
    simulated_df = simulator.run()

    TableValidator(
        simulated_data_checks(config.n_simulated_rows, config.vendors),
        table_name='simulated_data'
    ).assert_valid(simulated_df)

    simulator.save(simulated_df, config.simulated_data_path)
    return simulated_df


def run_cleaning(config: PipelineConfig) -> pd.DataFrame:
    """Clean, validate and save the real price records."""
    raw_df, product_df = load_raw_tables(config.raw_prices_path, config.raw_products_path)

    cleaner = PriceCleaningPipeline(
        vendors=config.vendors,
        product_keyword=config.product_keyword
    )
    result = cleaner.run(raw_df, product_df)

    TableValidator(
        analysis_data_checks(config.expected_analysis_rows, config.vendors),
        table_name='analysis_data'
    ).assert_valid(result.data)

    cleaner.save(result.data, config.analysis_data_path)
    return result.data


def run_full_pipeline(
    config: Optional[PipelineConfig] = None,
    skip_simulation: bool = False,
    skip_cleaning: bool = False
) -> Dict[str, pd.DataFrame]:
    """
    Run the data stages in order.

    Parameters
    ----------
    config : PipelineConfig, optional
        Paths and constants; defaults to the project layout
    skip_simulation : bool
        Do not regenerate the simulated table
    skip_cleaning : bool
        Do not clean the raw price records

    Returns
    -------
    Dict of stage name -> output table
    """
    config = config or PipelineConfig()
    outputs = {}

    logger.info("=" * 70)
    logger.info("Grocery Price Data Pipeline")
    logger.info("=" * 70)
    total_start = time.time()

    if not skip_simulation:
        start = time.time()
        outputs['simulated'] = run_simulation(config)
        logger.info(f"Simulation completed in {time.time() - start:.1f}s")

    if not skip_cleaning:
        start = time.time()
        outputs['analysis'] = run_cleaning(config)
        logger.info(f"Cleaning completed in {time.time() - start:.1f}s")

    logger.info("=" * 70)
    logger.info(f"PIPELINE COMPLETE in {time.time() - total_start:.1f}s")
    for name, df in outputs.items():
        logger.info(f"  - {name}: {len(df):,} records")

    return outputs


def main(argv=None):
    parser = argparse.ArgumentParser(description='Run the grocery price data pipeline')
    parser.add_argument('--project-root', type=str, default=None, help='Project root directory')
    parser.add_argument('--skip-simulation', action='store_true', help='Skip the simulation stage')
    parser.add_argument('--skip-cleaning', action='store_true', help='Skip the cleaning stage')
    parser.add_argument('--seed', type=int, default=None, help='Simulation seed (default: 304)')
    parser.add_argument(
        '--expected-rows',
        type=int,
        default=None,
        help='Exact row count the cleaned table must have'
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    config = PipelineConfig(expected_analysis_rows=args.expected_rows)
    if args.project_root:
        config.project_root = args.project_root
    if args.seed is not None:
        config.simulation_seed = args.seed

    try:
        run_full_pipeline(config, args.skip_simulation, args.skip_cleaning)
    except PipelineError as exc:
        logger.error(f"Pipeline failed: {exc}")
        sys.exit(1)


if __name__ == '__main__':
    main()
