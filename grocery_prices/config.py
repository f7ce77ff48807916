"""
Project configuration: vendor allow-list and file layout.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

VALID_VENDORS: Tuple[str, ...] = (
    'TandT', 'Loblaws', 'NoFrills', 'Metro', 'Galleria', 'Walmart'
)
SIMULATED_PRODUCTS: Tuple[str, ...] = ('drink', 'tea')

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


@dataclass
class PipelineConfig:
    """Paths and data-shaping constants shared by every stage."""
    # Paths
    project_root: str = str(Path(__file__).resolve().parent.parent)

    # Vocabulary
    vendors: Tuple[str, ...] = field(default_factory=lambda: VALID_VENDORS)
    product_keyword: str = 'drink'

    # Simulation
    n_simulated_rows: int = 9999
    simulation_seed: int = 304

    # Validation
    expected_analysis_rows: Optional[int] = None

    # Exploratory analysis
    outlier_sd: float = 3.0

    @property
    def root(self) -> Path:
        return Path(self.project_root)

    @property
    def simulated_data_path(self) -> Path:
        return self.root / 'data' / '00-simulated_data' / 'simulated_data.csv'

    @property
    def raw_prices_path(self) -> Path:
        return self.root / 'data' / '01-raw_data' / 'hammer-4-raw.csv'

    @property
    def raw_products_path(self) -> Path:
        return self.root / 'data' / '01-raw_data' / 'hammer-4-product.csv'

    @property
    def analysis_data_path(self) -> Path:
        return self.root / 'data' / '02-analysis_data' / 'analysis_data.parquet'

    @property
    def exploratory_dir(self) -> Path:
        return self.root / 'other' / 'exploratory'

    @property
    def model_path(self) -> Path:
        return self.root / 'models' / 'bayesian_model.pt'

    @property
    def predictions_path(self) -> Path:
        return self.root / 'other' / 'modeling' / 'predictions.csv'

    @property
    def vendor_month_predictions_path(self) -> Path:
        return self.root / 'other' / 'modeling' / 'predicted_price_by_vendor_month.csv'

    @property
    def residuals_path(self) -> Path:
        return self.root / 'other' / 'modeling' / 'residuals.csv'
