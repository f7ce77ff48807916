"""
Stage 0: Price Data Simulation
==============================
Generates a synthetic table of grocery price records so that the cleaning
and validation stages can be exercised before real data is available.

Output: simulated_data.csv
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from ..config import SIMULATED_PRODUCTS, VALID_VENDORS
from ..io import write_csv_table

logger = logging.getLogger(__name__)

SIMULATED_COLUMNS = ['product', 'vendor', 'current_price', 'old_price', 'month']


class PriceDataSimulator:
    """
    Simulates independent price records with bounded markdowns.

    Steps:
    1. Draw product name and vendor uniformly at random
    2. Draw current price from U(0.4, 90) and old price from U(0.6, 100)
    3. Draw month uniformly from 1-12
    4. Repair rows whose markdown is 10 or more: old = current + U(0, 9.99)
    """

    def __init__(
        self,
        n_rows: int = 9999,
        vendors: Sequence[str] = VALID_VENDORS,
        product_names: Sequence[str] = SIMULATED_PRODUCTS,
        seed: Optional[int] = 304,
        current_price_range: tuple = (0.4, 90.0),
        old_price_range: tuple = (0.6, 100.0),
        max_markdown: float = 10.0,
        repair_range: tuple = (0.0, 9.99),
        independent_repair: bool = True
    ):
        """
        Parameters
        ----------
        n_rows : int
            Number of records to generate
        vendors : sequence of str
            Vendor vocabulary
        product_names : sequence of str
            Product name vocabulary
        seed : int, optional
            Seed for the random generator
        max_markdown : float
            Rows with |current - old| >= max_markdown are repaired
        independent_repair : bool
            Draw a separate repair offset for every repaired row. When False a
            single offset is shared by all repaired rows.
        """
        if n_rows < 0:
            raise ValueError(f"n_rows must be non-negative, got {n_rows}")
        if repair_range[1] >= max_markdown:
            raise ValueError("repair_range upper bound must be below max_markdown")

        self.n_rows = n_rows
        self.vendors = list(vendors)
        self.product_names = list(product_names)
        self.seed = seed
        self.current_price_range = current_price_range
        self.old_price_range = old_price_range
        self.max_markdown = max_markdown
        self.repair_range = repair_range
        self.independent_repair = independent_repair

    def run(self) -> pd.DataFrame:
        """
        Generate the simulated table.

        Returns
        -------
        pd.DataFrame
            Columns: product, vendor, current_price, old_price, month
        """
        logger.info("Stage 0: Price Data Simulation")
        logger.info("=" * 50)

        rng = np.random.default_rng(self.seed)
        n = self.n_rows

        df = pd.DataFrame({
            'product': rng.choice(self.product_names, n),
            'vendor': rng.choice(self.vendors, n),
            'current_price': rng.uniform(*self.current_price_range, n).round(3),
            'old_price': rng.uniform(*self.old_price_range, n).round(3),
            'month': rng.integers(1, 13, n)
        }, columns=SIMULATED_COLUMNS)

        df = self._repair_markdowns(df, rng)

        logger.info(f"  - Simulated {len(df):,} records")
        logger.info(f"  - Vendors: {df['vendor'].nunique()}, products: {df['product'].nunique()}")

        return df

    def _repair_markdowns(self, df: pd.DataFrame, rng: np.random.Generator) -> pd.DataFrame:
        """Reset old price for rows whose markdown exceeds the bound."""
        df = df.copy()

        needs_repair = (df['current_price'] - df['old_price']).abs() >= self.max_markdown
        n_repair = int(needs_repair.sum())

        if self.independent_repair:
            offsets = rng.uniform(*self.repair_range, n_repair)
        else:
            offsets = np.full(n_repair, rng.uniform(*self.repair_range))

        df.loc[needs_repair, 'old_price'] = df.loc[needs_repair, 'current_price'].to_numpy() + offsets

        logger.info(f"  - Repaired {n_repair:,} records with markdown >= {self.max_markdown}")
        return df

    def save(self, df: pd.DataFrame, output_path) -> Path:
        """Save simulated data to CSV."""
        return write_csv_table(df, output_path)
