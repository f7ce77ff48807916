"""
Pytest Configuration and Fixtures
==================================
Shared fixtures for grocery price tests.
"""

import pytest
import pandas as pd
import numpy as np
from pathlib import Path
import tempfile
import shutil
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from grocery_prices.config import VALID_VENDORS
from grocery_prices.modeling.model import BayesianModelConfig, BayesianPriceModel

# Coefficients used to generate the synthetic analysis table
TRUE_COEFFICIENTS = {
    '(Intercept)': 0.5,
    'old_price': 0.8,
    'vendorMetro': 1.0,
    'vendorWalmart': -0.5,
    'month7': 0.3,
    'month8': -0.2,
}
TRUE_SIGMA = 0.5


@pytest.fixture(scope="session")
def project_root():
    """Get project root directory."""
    return Path(__file__).parent.parent


def generate_raw_tables(n_rows: int, seed: int = 42):
    """Generate synthetic raw price records and a product catalogue."""
    rng = np.random.default_rng(seed)

    product_names = [
        'Sparkling Drink Lemon', 'Green Tea', 'ENERGY DRINK', 'Orange Juice',
        'Yogurt drink Strawberry', 'Coffee Beans', 'Sports Drink Blue', 'Milk 2%'
    ]
    products = pd.DataFrame({
        'id': np.arange(1, len(product_names) + 1),
        'product_name': product_names,
        'brand': [f'Brand{i}' for i in range(len(product_names))],
    })

    vendors = list(VALID_VENDORS) + ['Amazon', 'Voila', 'SaveOnFoods']
    price_formats = ['${:.2f}', '{:.2f}', '{:.2f}/ea', '$ {:.2f} ']

    current_prices = []
    old_prices = []
    for _ in range(n_rows):
        price = rng.uniform(0.5, 30)
        fmt = price_formats[rng.integers(len(price_formats))]
        current_prices.append(fmt.format(price))
        if rng.uniform() < 0.2:
            old_prices.append(None)
        else:
            old_prices.append('${:.2f} '.format(price + rng.uniform(0, 5)))

    # A few unparseable and non-positive prices
    for i in range(0, n_rows, 17):
        current_prices[i] = 'N/A'
    for i in range(5, n_rows, 23):
        current_prices[i] = '$0.00'

    raw = pd.DataFrame({
        'nowtime': [
            f'2024-{rng.integers(1, 13):02d}-{rng.integers(1, 28):02d} {rng.integers(0, 24):02d}:00:00'
            for _ in range(n_rows)
        ],
        'vendor': rng.choice(vendors, n_rows),
        # ids beyond the catalogue have no product match
        'product_id': rng.integers(1, len(product_names) + 3, n_rows),
        'current_price': current_prices,
        'old_price': old_prices,
        'units': rng.choice(['1L', '500ml', '6x355ml'], n_rows),
        'price_per_unit': rng.choice(['$0.50/100ml', '', None], n_rows),
        'other': rng.choice(['SALE', None], n_rows),
    })

    return raw, products


@pytest.fixture(scope="session")
def raw_tables():
    """Synthetic raw price records and product catalogue."""
    return generate_raw_tables(500)


@pytest.fixture(scope="session")
def three_row_tables():
    """Raw table with one unmatched, one out-of-list and one valid row."""
    raw = pd.DataFrame({
        'nowtime': ['2024-06-11 08:00:00', '2024-07-02 09:30:00', '2024-08-15 12:00:00'],
        'vendor': ['Loblaws', 'Amazon', 'Metro'],
        'product_id': [999, 2, 1],
        'current_price': ['$3.00', '$2.00', '$4.50'],
        'old_price': ['$4.00', '$3.00', '$6.00 '],
        'units': ['1L', '1L', '1L'],
        'price_per_unit': ['', '', ''],
    })
    products = pd.DataFrame({
        'id': [1, 2],
        'product_name': ['Fruit Drink Mango', 'Sports Drink'],
        'brand': ['BrandA', 'BrandB'],
    })
    return raw, products


def generate_analysis_data(n_rows: int, seed: int = 7) -> pd.DataFrame:
    """Generate a cleaned-schema table from known regression coefficients."""
    rng = np.random.default_rng(seed)
    vendors = rng.choice(['Loblaws', 'Metro', 'Walmart'], n_rows)
    months = rng.choice([6, 7, 8], n_rows)
    old_price = rng.uniform(3, 20, n_rows).round(2)

    mu = (
        TRUE_COEFFICIENTS['(Intercept)']
        + TRUE_COEFFICIENTS['old_price'] * old_price
        + TRUE_COEFFICIENTS['vendorMetro'] * (vendors == 'Metro')
        + TRUE_COEFFICIENTS['vendorWalmart'] * (vendors == 'Walmart')
        + TRUE_COEFFICIENTS['month7'] * (months == 7)
        + TRUE_COEFFICIENTS['month8'] * (months == 8)
    )
    current_price = np.maximum(mu + rng.normal(0, TRUE_SIGMA, n_rows), 0.01)

    return pd.DataFrame({
        'vendor': vendors.astype(object),
        'current_price': current_price,
        'old_price': old_price,
        'product_name': rng.choice(['Sports Drink', 'Energy Drink', 'Fruit drink'], n_rows).astype(object),
        'month': months.astype('int64'),
    })


@pytest.fixture(scope="session")
def analysis_data():
    """Synthetic cleaned table with known coefficients."""
    return generate_analysis_data(240)


@pytest.fixture(scope="session")
def fast_model_config():
    """Sampler settings small enough for unit tests."""
    return BayesianModelConfig(n_chains=2, n_warmup=200, n_draws=200, seed=1234)


@pytest.fixture(scope="session")
def fitted_model(analysis_data, fast_model_config):
    """Model fitted once on the synthetic analysis table."""
    return BayesianPriceModel(fast_model_config).fit(analysis_data)


@pytest.fixture(scope="function")
def temp_dir():
    """Create a temporary directory for test outputs."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp)
