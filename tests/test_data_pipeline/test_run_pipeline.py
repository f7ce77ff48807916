"""
Tests for the Data Pipeline Runner
==================================
"""

import pytest
import pandas as pd
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from grocery_prices.config import PipelineConfig
from grocery_prices.data_pipeline.run_pipeline import (
    main,
    run_cleaning,
    run_full_pipeline,
    run_simulation,
)
from grocery_prices.errors import IOFailure, ValidationFailure


def write_raw_tables(config: PipelineConfig, raw: pd.DataFrame, products: pd.DataFrame):
    config.raw_prices_path.parent.mkdir(parents=True, exist_ok=True)
    raw.to_csv(config.raw_prices_path, index=False)
    products.to_csv(config.raw_products_path, index=False)


class TestRunPipeline:
    """End-to-end runs against a temporary project layout."""

    def test_run_simulation(self, temp_dir):
        config = PipelineConfig(project_root=str(temp_dir), n_simulated_rows=300)
        df = run_simulation(config)

        assert len(df) == 300
        assert config.simulated_data_path.exists()
        assert len(pd.read_csv(config.simulated_data_path)) == 300

    def test_run_cleaning(self, temp_dir, raw_tables):
        config = PipelineConfig(project_root=str(temp_dir))
        write_raw_tables(config, *raw_tables)

        df = run_cleaning(config)

        assert config.analysis_data_path.exists()
        saved = pd.read_parquet(config.analysis_data_path)
        assert len(saved) == len(df)

    def test_row_count_mismatch_blocks_save(self, temp_dir, three_row_tables):
        config = PipelineConfig(project_root=str(temp_dir), expected_analysis_rows=30875)
        write_raw_tables(config, *three_row_tables)

        with pytest.raises(ValidationFailure) as exc_info:
            run_cleaning(config)

        assert exc_info.value.check == 'row_count'
        assert exc_info.value.observed == 1
        assert not config.analysis_data_path.exists()

    def test_missing_raw_file(self, temp_dir):
        config = PipelineConfig(project_root=str(temp_dir))
        with pytest.raises(IOFailure) as exc_info:
            run_cleaning(config)
        assert exc_info.value.reason == 'file not found'

    def test_full_pipeline(self, temp_dir, three_row_tables):
        config = PipelineConfig(
            project_root=str(temp_dir),
            n_simulated_rows=100,
            expected_analysis_rows=1
        )
        write_raw_tables(config, *three_row_tables)

        outputs = run_full_pipeline(config)

        assert set(outputs) == {'simulated', 'analysis'}
        assert len(outputs['simulated']) == 100
        assert outputs['analysis']['vendor'].tolist() == ['Metro']

    def test_skip_stages(self, temp_dir):
        config = PipelineConfig(project_root=str(temp_dir))
        outputs = run_full_pipeline(config, skip_simulation=True, skip_cleaning=True)
        assert outputs == {}
        assert not config.simulated_data_path.exists()

    def test_main_exits_on_failure(self, temp_dir):
        with pytest.raises(SystemExit) as exc_info:
            main(['--project-root', str(temp_dir), '--skip-simulation'])
        assert exc_info.value.code == 1

    def test_main_writes_outputs(self, temp_dir, three_row_tables):
        config = PipelineConfig(project_root=str(temp_dir))
        write_raw_tables(config, *three_row_tables)

        main(['--project-root', str(temp_dir), '--seed', '5'])

        assert config.simulated_data_path.exists()
        assert config.analysis_data_path.exists()
