"""
Stage 1: Price Cleaning Pipeline
================================
Joins raw price records to the product catalogue, restricts to the vendor
allow-list, parses price text into numbers and keeps complete "drink" rows.

Every step reports the rows it dropped and why; nothing is raised for bad
rows, they are filtered out.

Output: analysis_data.parquet
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from ..config import VALID_VENDORS
from ..errors import ValidationFailure
from ..io import read_csv_table, write_parquet_table

logger = logging.getLogger(__name__)

RAW_COLUMNS = ['nowtime', 'vendor', 'product_id', 'current_price', 'old_price']
PRODUCT_COLUMNS = ['id', 'product_name']
CLEANED_COLUMNS = ['vendor', 'current_price', 'old_price', 'product_name', 'month']

# First decimal number in a string, grouping commas allowed
_NUMBER_RE = re.compile(r'-?(?:\d[\d,]*(?:\.\d+)?|\.\d+)')
_NON_NUMERIC_RE = re.compile(r'[^0-9.]')


def parse_number(value) -> float:
    """
    Extract the first number from a price field.

    Leading and trailing text is ignored and grouping commas are removed,
    so "$4.50", "4.50/ea" and "1,299.00" parse to 4.5, 4.5 and 1299.0.
    Returns NaN when no number is present.
    """
    if isinstance(value, bool):
        return np.nan
    if isinstance(value, (int, float, np.integer, np.floating)):
        return float(value)
    if pd.isna(value):
        return np.nan

    match = _NUMBER_RE.search(str(value))
    if match is None:
        return np.nan

    digits = match.group(0).replace(',', '')
    if digits in ('', '-'):
        return np.nan
    return float(digits)


def strip_non_numeric(value):
    """Remove every character that is not a digit or a decimal point."""
    if pd.isna(value):
        return value
    return _NON_NUMERIC_RE.sub('', str(value))


@dataclass(frozen=True)
class StepReport:
    """Row accounting for one cleaning step."""
    step: str
    rows_in: int
    rows_out: int
    reason: str = ''

    @property
    def dropped(self) -> int:
        return self.rows_in - self.rows_out


@dataclass(frozen=True)
class CleaningResult:
    """Cleaned table plus the per-step drop report."""
    data: pd.DataFrame
    steps: Tuple[StepReport, ...] = field(default_factory=tuple)

    @property
    def dropped_total(self) -> int:
        return sum(step.dropped for step in self.steps)

    def report(self) -> pd.DataFrame:
        """Drop report as a table."""
        return pd.DataFrame(
            [
                {
                    'step': s.step,
                    'rows_in': s.rows_in,
                    'rows_out': s.rows_out,
                    'dropped': s.dropped,
                    'reason': s.reason
                }
                for s in self.steps
            ],
            columns=['step', 'rows_in', 'rows_out', 'dropped', 'reason']
        )


class PriceCleaningPipeline:
    """
    Multi-step cleaning of raw price records.

    Steps:
    1. Inner join to product catalogue on product id
    2. Vendor allow-list filter
    3. Month derivation from the scrape timestamp
    4. current_price parsing
    5. old_price parsing (non-numeric characters stripped first)
    6. Positive current_price filter
    7. Product name keyword filter
    8. Timestamp column removal
    9. Incomplete row removal
    """

    def __init__(
        self,
        vendors: Sequence[str] = VALID_VENDORS,
        product_keyword: str = 'drink'
    ):
        self.vendors = list(vendors)
        self.product_keyword = product_keyword

    def run(self, raw_df: pd.DataFrame, product_df: pd.DataFrame) -> CleaningResult:
        """
        Execute the full cleaning pipeline.

        Parameters
        ----------
        raw_df : pd.DataFrame
            Raw price records with columns: nowtime, vendor, product_id,
            current_price, old_price (others ignored)
        product_df : pd.DataFrame
            Product catalogue with columns: id, product_name (others ignored)

        Returns
        -------
        CleaningResult
            Cleaned table with columns: vendor, current_price, old_price,
            product_name, month; and the per-step drop report
        """
        logger.info("Stage 1: Price Cleaning Pipeline")
        logger.info("=" * 50)

        self._require_columns(raw_df, RAW_COLUMNS, 'raw_columns')
        self._require_columns(product_df, PRODUCT_COLUMNS, 'product_columns')

        steps: List[StepReport] = []

        df = self._join_products(raw_df, product_df, steps)
        df = self._filter_vendors(df, steps)
        df = self._derive_month(df, steps)
        df = self._parse_current_price(df, steps)
        df = self._parse_old_price(df, steps)
        df = self._filter_positive_price(df, steps)
        df = self._filter_product_keyword(df, steps)
        df = self._drop_timestamp(df, steps)
        df = self._drop_incomplete(df, steps)

        result = CleaningResult(data=df, steps=tuple(steps))

        logger.info("=" * 50)
        logger.info("Price Cleaning Complete!")
        logger.info(f"  - Input records: {len(raw_df):,}")
        logger.info(f"  - Output records: {len(df):,}")
        logger.info(f"  - Dropped: {result.dropped_total:,}")

        return result

    @staticmethod
    def _require_columns(df: pd.DataFrame, columns: Sequence[str], check: str) -> None:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise ValidationFailure(
                check=check,
                message=f"Missing required columns: {missing}",
                observed=list(df.columns),
                expected=list(columns)
            )

    @staticmethod
    def _record(steps: List[StepReport], step: str, rows_in: int, df: pd.DataFrame, reason: str) -> None:
        report = StepReport(step=step, rows_in=rows_in, rows_out=len(df), reason=reason)
        steps.append(report)
        if report.dropped:
            logger.info(f"  - {step}: dropped {report.dropped:,} of {rows_in:,} ({reason})")
        else:
            logger.info(f"  - {step}: {report.rows_out:,} rows{f' ({reason})' if reason else ''}")

    def _join_products(self, raw_df: pd.DataFrame, product_df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 1: inner join on product id; unmatched raw records are dropped."""
        products = product_df[PRODUCT_COLUMNS]
        df = raw_df[RAW_COLUMNS].merge(
            products,
            how='inner',
            left_on='product_id',
            right_on='id'
        )
        df = df[['nowtime', 'vendor', 'current_price', 'old_price', 'product_name']]
        self._record(steps, 'join_products', len(raw_df), df, 'no matching product id')
        return df

    def _filter_vendors(self, df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 2: keep only allow-listed vendors."""
        rows_in = len(df)
        df = df[df['vendor'].isin(self.vendors)]
        self._record(steps, 'filter_vendors', rows_in, df, 'vendor not in allow-list')
        return df

    def _derive_month(self, df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 3: calendar month of the scrape timestamp."""
        df = df.copy()
        timestamps = pd.to_datetime(df['nowtime'], errors='coerce', utc=True, format='mixed')
        df['month'] = timestamps.dt.month
        n_bad = int(timestamps.isna().sum())
        self._record(steps, 'derive_month', len(df), df, f"{n_bad:,} unparseable timestamps" if n_bad else '')
        return df

    def _parse_current_price(self, df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 4: parse current price text into a float."""
        df = df.copy()
        df['current_price'] = df['current_price'].map(parse_number).astype(float)
        n_bad = int(df['current_price'].isna().sum())
        self._record(steps, 'parse_current_price', len(df), df, f"{n_bad:,} unparseable values" if n_bad else '')
        return df

    def _parse_old_price(self, df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 5: strip everything but digits and '.', then parse old price."""
        df = df.copy()
        df['old_price'] = df['old_price'].map(strip_non_numeric).map(parse_number).astype(float)
        n_bad = int(df['old_price'].isna().sum())
        self._record(steps, 'parse_old_price', len(df), df, f"{n_bad:,} unparseable values" if n_bad else '')
        return df

    def _filter_positive_price(self, df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 6: keep rows with a parsed, positive current price."""
        rows_in = len(df)
        df = df[df['current_price'].notna() & (df['current_price'] > 0)]
        self._record(steps, 'filter_positive_price', rows_in, df, 'missing or non-positive current_price')
        return df

    def _filter_product_keyword(self, df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 7: keep rows whose product name contains the keyword."""
        rows_in = len(df)
        names = df['product_name'].fillna('').astype(str).str.lower()
        df = df[names.str.contains(self.product_keyword.lower(), regex=False)]
        self._record(steps, 'filter_product_keyword', rows_in, df, f"product_name lacks '{self.product_keyword}'")
        return df

    def _drop_timestamp(self, df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 8: the timestamp is no longer needed once month is derived."""
        df = df.drop(columns=['nowtime'])
        self._record(steps, 'drop_timestamp', len(df), df, '')
        return df

    def _drop_incomplete(self, df: pd.DataFrame, steps: List[StepReport]) -> pd.DataFrame:
        """Step 9: drop rows with any null and fix the output schema."""
        rows_in = len(df)
        df = df.dropna()
        df = df[CLEANED_COLUMNS].reset_index(drop=True)
        df = df.astype({
            'vendor': object,
            'current_price': 'float64',
            'old_price': 'float64',
            'product_name': object,
            'month': 'int64'
        })
        self._record(steps, 'drop_incomplete', rows_in, df, 'null in a retained column')
        return df

    def save(self, df: pd.DataFrame, output_path) -> Path:
        """Save cleaned data to parquet."""
        return write_parquet_table(df, output_path)


def load_raw_tables(raw_path, product_path) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Load the raw price records and product catalogue."""
    raw_df = read_csv_table(raw_path)
    product_df = read_csv_table(product_path)
    return raw_df, product_df
