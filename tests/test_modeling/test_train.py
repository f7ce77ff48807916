"""
Tests for the Model Training Script
===================================
"""

import pytest
import pandas as pd
import numpy as np
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from grocery_prices.config import PipelineConfig
from grocery_prices.errors import IOFailure, ValidationFailure
from grocery_prices.modeling.model import BayesianModelConfig, FittedPriceModel
from grocery_prices.modeling.train import main, prepare_training_data, run_training


@pytest.fixture
def tiny_model_config():
    return BayesianModelConfig(n_chains=1, n_warmup=50, n_draws=60, seed=5)


def write_analysis_data(config: PipelineConfig, df: pd.DataFrame):
    config.analysis_data_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(config.analysis_data_path, index=False)


class TestTraining:
    """Fit-and-save runs against a temporary project layout."""

    def test_run_training(self, temp_dir, analysis_data, tiny_model_config):
        config = PipelineConfig(project_root=str(temp_dir))
        write_analysis_data(config, analysis_data)

        fitted = run_training(config, tiny_model_config)

        assert config.model_path.exists()
        loaded = FittedPriceModel.load(config.model_path)
        np.testing.assert_array_equal(loaded.draws, fitted.draws)

        predictions = pd.read_csv(config.predictions_path)
        assert predictions.shape == (60, 3)
        assert list(predictions.columns) == ['1', '2', '3']

    def test_run_training_downstream_tables(self, temp_dir, analysis_data, tiny_model_config):
        """Vendor-by-month predictions and residuals are written beside predictions.csv."""
        config = PipelineConfig(project_root=str(temp_dir))
        write_analysis_data(config, analysis_data)

        run_training(config, tiny_model_config)

        by_vendor_month = pd.read_csv(config.vendor_month_predictions_path)
        assert list(by_vendor_month.columns) == ['vendor', 'month', 'avg_predicted_price']
        assert len(by_vendor_month) == 9

        residuals = pd.read_csv(config.residuals_path)
        assert len(residuals) == len(analysis_data)
        assert {'predicted_price', 'residuals'} <= set(residuals.columns)
        np.testing.assert_allclose(
            residuals['residuals'],
            residuals['current_price'] - residuals['predicted_price'],
            atol=1e-8
        )

    def test_custom_prediction_grid(self, temp_dir, analysis_data, tiny_model_config):
        config = PipelineConfig(project_root=str(temp_dir))
        write_analysis_data(config, analysis_data)
        grid = pd.DataFrame({'old_price': [4.0, 8.0], 'vendor': ['Loblaws', 'Loblaws'], 'month': [6, 6]})

        run_training(config, tiny_model_config, prediction_grid=grid)

        assert pd.read_csv(config.predictions_path).shape == (60, 2)

    def test_invalid_table_is_not_fitted(self, temp_dir, analysis_data, tiny_model_config):
        """A table that fails a check never reaches the sampler."""
        config = PipelineConfig(project_root=str(temp_dir))
        df = analysis_data.copy()
        df.loc[3, 'current_price'] = np.nan
        write_analysis_data(config, df)

        with pytest.raises(ValidationFailure) as exc_info:
            run_training(config, tiny_model_config)

        assert exc_info.value.check == 'not_null'
        assert not config.model_path.exists()
        assert not config.predictions_path.exists()
        assert not config.residuals_path.exists()

    def test_prepare_training_data(self, analysis_data):
        config = PipelineConfig(expected_analysis_rows=len(analysis_data))
        assert prepare_training_data(analysis_data, config) is analysis_data

        with pytest.raises(ValidationFailure):
            prepare_training_data(analysis_data, PipelineConfig(expected_analysis_rows=30875))

    def test_missing_analysis_data(self, temp_dir, tiny_model_config):
        config = PipelineConfig(project_root=str(temp_dir))
        with pytest.raises(IOFailure):
            run_training(config, tiny_model_config)

    def test_main(self, temp_dir, analysis_data):
        config = PipelineConfig(project_root=str(temp_dir))
        write_analysis_data(config, analysis_data)

        main(['--project-root', str(temp_dir), '--chains', '1', '--warmup', '30', '--draws', '40'])

        assert FittedPriceModel.load(config.model_path).n_samples == 40

    def test_main_exits_on_failure(self, temp_dir):
        with pytest.raises(SystemExit) as exc_info:
            main(['--project-root', str(temp_dir)])
        assert exc_info.value.code == 1
