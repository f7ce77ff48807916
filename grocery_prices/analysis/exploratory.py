"""
Exploratory Data Analysis
=========================
Summarizes the cleaned price table: month coverage, missing values, price
distribution, outliers, and vendor-level pricing.

Output (in other/exploratory/):
    - vendor_pricing_summary.csv
    - pricing_outliers.csv
    - outlier_summary.csv
    - pricing_summary.csv
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict

import pandas as pd
from scipy.stats import zscore

from ..config import LOG_FORMAT, PipelineConfig
from ..data_pipeline.stage2_validate import TableValidator, analysis_data_checks
from ..errors import PipelineError
from ..io import read_parquet_table, write_csv_table

logger = logging.getLogger(__name__)

OUTPUT_FILES = {
    'vendor_summary': 'vendor_pricing_summary.csv',
    'outliers': 'pricing_outliers.csv',
    'outlier_summary': 'outlier_summary.csv',
    'pricing_summary': 'pricing_summary.csv',
}


class ExploratoryAnalysis:
    """
    Summary tables over the cleaned analysis data.

    The input table is never modified; derived columns such as
    discount_amount are computed on a copy.
    """

    def __init__(self, outlier_sd: float = 3.0):
        """
        Parameters
        ----------
        outlier_sd : float
            Rows whose current_price is more than this many sample standard
            deviations from the mean are outliers
        """
        self.outlier_sd = outlier_sd

    def run(self, df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        """
        Compute every summary table.

        Parameters
        ----------
        df : pd.DataFrame
            Cleaned table with columns: vendor, current_price, old_price,
            product_name, month

        Returns
        -------
        Dict of table name -> DataFrame
        """
        logger.info("Exploratory Data Analysis")
        logger.info("=" * 50)

        outliers = self.find_outliers(df)
        results = {
            'month_distribution': self.month_distribution(df),
            'missing_values': self.missing_values(df),
            'pricing_summary': self.pricing_summary(df),
            'unique_counts': self.unique_counts(df),
            'outliers': outliers,
            'vendor_summary': self.vendor_summary(df),
            'outlier_summary': self.outlier_summary(outliers),
            'discount_summary': self.discount_summary(df),
        }

        summary = results['pricing_summary'].iloc[0]
        logger.info(f"  - Records: {len(df):,}")
        logger.info(f"  - Months observed: {results['month_distribution']['month'].tolist()}")
        logger.info(f"  - Mean current price: {summary['avg_current_price']:.2f}")
        logger.info(f"  - Outliers (>{self.outlier_sd:g} SD): {len(outliers):,}")

        return results

    @staticmethod
    def month_distribution(df: pd.DataFrame) -> pd.DataFrame:
        """Row count per month, ascending."""
        return (
            df.groupby('month').size()
            .reset_index(name='count')
            .sort_values('month')
            .reset_index(drop=True)
        )

    @staticmethod
    def missing_values(df: pd.DataFrame) -> pd.DataFrame:
        counts = df.isna().sum()
        return pd.DataFrame({'column': counts.index, 'missing': counts.to_numpy()})

    @staticmethod
    def pricing_summary(df: pd.DataFrame) -> pd.DataFrame:
        """Mean, median and sample SD of current and old price."""
        return pd.DataFrame([{
            'avg_current_price': df['current_price'].mean(),
            'median_current_price': df['current_price'].median(),
            'sd_current_price': df['current_price'].std(),
            'avg_old_price': df['old_price'].mean(),
            'median_old_price': df['old_price'].median(),
            'sd_old_price': df['old_price'].std(),
        }])

    @staticmethod
    def unique_counts(df: pd.DataFrame) -> pd.DataFrame:
        return pd.DataFrame([{
            'unique_vendors': df['vendor'].nunique(),
            'unique_products': df['product_name'].nunique(),
        }])

    def find_outliers(self, df: pd.DataFrame) -> pd.DataFrame:
        """Rows with current_price strictly outside mean +/- k * SD."""
        if len(df) < 2:
            return df.iloc[0:0].copy()

        scores = zscore(df['current_price'].to_numpy(dtype=float), ddof=1)
        mask = pd.Series(abs(scores) > self.outlier_sd, index=df.index)
        return df[mask].reset_index(drop=True)

    @staticmethod
    def vendor_summary(df: pd.DataFrame) -> pd.DataFrame:
        """Average price and record count per vendor, most expensive first."""
        return (
            df.groupby('vendor')
            .agg(avg_price=('current_price', 'mean'), count=('current_price', 'size'))
            .reset_index()
            .sort_values('avg_price', ascending=False)
            .reset_index(drop=True)
        )

    @staticmethod
    def outlier_summary(outliers: pd.DataFrame) -> pd.DataFrame:
        """Outlier count and average price per vendor."""
        return (
            outliers.groupby('vendor')
            .agg(count=('current_price', 'size'), avg_price=('current_price', 'mean'))
            .reset_index()
        )

    @staticmethod
    def discount_summary(df: pd.DataFrame) -> pd.DataFrame:
        """Average markdown per vendor, absolute and relative to old price."""
        discounts = df.assign(
            discount_amount=df['old_price'] - df['current_price'],
            discount_pct=(df['old_price'] - df['current_price']) / df['old_price'].where(df['old_price'] > 0)
        )
        return (
            discounts.groupby('vendor')
            .agg(
                avg_discount_amount=('discount_amount', 'mean'),
                avg_discount_pct=('discount_pct', 'mean'),
                discounted_count=('discount_amount', lambda x: int((x > 0).sum()))
            )
            .reset_index()
        )

    def save(self, results: Dict[str, pd.DataFrame], output_dir) -> Dict[str, Path]:
        """Write the summary CSV files."""
        output_dir = Path(output_dir)
        return {
            name: write_csv_table(results[name], output_dir / filename)
            for name, filename in OUTPUT_FILES.items()
        }


def main(argv=None):
    """Run exploratory analysis on the saved analysis data."""
    parser = argparse.ArgumentParser(description='Exploratory analysis of cleaned price data')
    parser.add_argument('--project-root', type=str, default=None, help='Project root directory')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    config = PipelineConfig()
    if args.project_root:
        config.project_root = args.project_root

    try:
        analysis_df = read_parquet_table(config.analysis_data_path)
        TableValidator(
            analysis_data_checks(config.expected_analysis_rows, config.vendors),
            table_name='analysis_data'
        ).assert_valid(analysis_df)

        eda = ExploratoryAnalysis(outlier_sd=config.outlier_sd)
        results = eda.run(analysis_df)
        eda.save(results, config.exploratory_dir)
    except PipelineError as exc:
        logger.error(f"Exploratory analysis failed: {exc}")
        sys.exit(1)

    logger.info("\nVendor summary:\n" + results['vendor_summary'].to_string())
    return results


if __name__ == '__main__':
    main()
