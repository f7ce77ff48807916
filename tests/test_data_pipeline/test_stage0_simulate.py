"""
Tests for Stage 0: Price Data Simulation
========================================
"""

import pytest
import pandas as pd
import numpy as np
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from grocery_prices.config import VALID_VENDORS
from grocery_prices.data_pipeline.stage0_simulate import PriceDataSimulator, SIMULATED_COLUMNS
from grocery_prices.data_pipeline.stage2_validate import TableValidator, simulated_data_checks


@pytest.fixture(scope="module")
def simulated_df():
    return PriceDataSimulator(n_rows=9999).run()


class TestPriceDataSimulator:
    """Test suite for PriceDataSimulator."""

    def test_init(self):
        """Test simulator defaults."""
        simulator = PriceDataSimulator()
        assert simulator.n_rows == 9999
        assert simulator.seed == 304
        assert simulator.vendors == list(VALID_VENDORS)
        assert simulator.independent_repair

    def test_shape(self, simulated_df):
        """9999 rows and the five simulated columns."""
        assert simulated_df.shape == (9999, 5)
        assert list(simulated_df.columns) == SIMULATED_COLUMNS

    def test_markdown_bounded(self, simulated_df):
        """Every row has |current_price - old_price| < 10."""
        markdown = (simulated_df['current_price'] - simulated_df['old_price']).abs()
        assert (markdown < 10).all()

    def test_value_domains(self, simulated_df):
        assert simulated_df['vendor'].isin(VALID_VENDORS).all()
        assert simulated_df['product'].isin(['drink', 'tea']).all()
        assert simulated_df['month'].between(1, 12).all()
        assert simulated_df['current_price'].between(0.4, 90).all()

    def test_passes_simulated_checks(self, simulated_df):
        results = TableValidator(simulated_data_checks()).assert_valid(simulated_df)
        assert all(r.passed for r in results)

    def test_reproducible_with_seed(self):
        first = PriceDataSimulator(n_rows=200, seed=11).run()
        second = PriceDataSimulator(n_rows=200, seed=11).run()
        pd.testing.assert_frame_equal(first, second)

    @staticmethod
    def _wide_markdowns():
        return pd.DataFrame({
            'product': ['drink'] * 5,
            'vendor': ['Metro'] * 5,
            'current_price': [1.0, 2.0, 50.0, 60.0, 3.0],
            'old_price': [80.0, 90.0, 5.0, 1.0, 4.0],
            'month': [1, 2, 3, 4, 5],
        })

    def test_independent_repair_offsets(self):
        """Repaired rows get distinct offsets by default."""
        df = self._wide_markdowns()
        repaired = PriceDataSimulator()._repair_markdowns(df, np.random.default_rng(0))

        offsets = repaired['old_price'] - repaired['current_price']
        assert (offsets.iloc[:4].between(0, 9.99)).all()
        assert offsets.iloc[:4].nunique() == 4
        assert repaired.loc[4, 'old_price'] == 4.0
        # Input is not modified
        assert df.loc[0, 'old_price'] == 80.0

    def test_shared_repair_offset(self):
        """With a shared draw every repaired row has the same markdown."""
        df = self._wide_markdowns()
        simulator = PriceDataSimulator(independent_repair=False)
        repaired = simulator._repair_markdowns(df, np.random.default_rng(0))

        offsets = repaired['old_price'] - repaired['current_price']
        assert np.allclose(offsets.iloc[:4], offsets.iloc[0])
        assert repaired.loc[4, 'old_price'] == 4.0

    def test_zero_rows(self):
        df = PriceDataSimulator(n_rows=0).run()
        assert len(df) == 0
        assert list(df.columns) == SIMULATED_COLUMNS

    def test_invalid_repair_range(self):
        with pytest.raises(ValueError):
            PriceDataSimulator(repair_range=(0, 10), max_markdown=10)

    def test_save(self, temp_dir):
        simulator = PriceDataSimulator(n_rows=50)
        df = simulator.run()
        path = simulator.save(df, temp_dir / 'sim' / 'simulated_data.csv')

        loaded = pd.read_csv(path)
        assert loaded.shape == (50, 5)
        assert pd.api.types.is_numeric_dtype(loaded['current_price'])
