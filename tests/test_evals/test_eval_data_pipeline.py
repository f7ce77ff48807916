"""
Tests for the Pipeline Evaluation Script
========================================
"""

import pytest
import pandas as pd
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from evals.eval_data_pipeline import (
    evaluate_analysis,
    evaluate_model,
    evaluate_simulated,
    run_evaluation,
)
from grocery_prices.config import PipelineConfig
from grocery_prices.data_pipeline.stage0_simulate import PriceDataSimulator


class TestEvaluations:
    """Per-stage metrics."""

    def test_simulated(self):
        metrics = evaluate_simulated(PriceDataSimulator(n_rows=500).run())
        assert metrics['total_records'] == 500
        assert metrics['failed_checks'] == []
        assert metrics['markdown_violations'] == 0
        assert metrics['quality_score'] == 100

    def test_simulated_violations(self):
        df = PriceDataSimulator(n_rows=100).run()
        df.loc[0, 'old_price'] = df.loc[0, 'current_price'] + 50
        df.loc[1, 'vendor'] = 'CostCo'

        metrics = evaluate_simulated(df)
        assert metrics['markdown_violations'] == 1
        assert metrics['failed_checks'] == ['membership:vendor']
        assert metrics['quality_score'] == 55

    def test_analysis(self, analysis_data):
        metrics = evaluate_analysis(analysis_data)
        assert metrics['total_records'] == len(analysis_data)
        assert metrics['unique_vendors'] == 3
        assert metrics['months'] == [6, 7, 8]
        assert metrics['failed_checks'] == []
        assert metrics['quality_score'] == 100

    def test_empty_analysis(self, analysis_data):
        metrics = evaluate_analysis(analysis_data.iloc[0:0])
        assert metrics['quality_score'] == 0

    def test_model(self, fitted_model):
        metrics = evaluate_model(fitted_model)
        assert metrics['n_parameters'] == 7
        assert metrics['n_samples'] == fitted_model.n_samples
        assert set(metrics['coefficients']) == set(fitted_model.parameter_names)
        assert metrics['max_rhat'] < 1.1


class TestRunEvaluation:
    """Evaluation over a project directory."""

    def test_missing_outputs(self, temp_dir):
        results = run_evaluation(temp_dir)
        assert results['simulated']['quality_score'] == 0
        assert results['analysis']['error'] == 'file not found'
        assert results['model']['error'] == 'file not found'
        assert results['overall']['all_files_present'] is False

    def test_all_outputs(self, temp_dir, analysis_data, fitted_model):
        config = PipelineConfig(project_root=str(temp_dir))
        simulator = PriceDataSimulator(n_rows=200)
        simulator.save(simulator.run(), config.simulated_data_path)
        config.analysis_data_path.parent.mkdir(parents=True)
        analysis_data.to_parquet(config.analysis_data_path, index=False)
        fitted_model.save(config.model_path)

        results = run_evaluation(temp_dir)

        assert results['simulated']['total_records'] == 200
        assert results['analysis']['total_records'] == len(analysis_data)
        assert results['model']['n_parameters'] == 7
        assert results['overall']['stages_evaluated'] == 3
        assert results['overall']['all_files_present'] is True
        assert results['overall']['quality_score'] > 0

    def test_unreadable_model(self, temp_dir):
        config = PipelineConfig(project_root=str(temp_dir))
        config.model_path.parent.mkdir(parents=True)
        config.model_path.write_bytes(b'garbage')

        results = run_evaluation(temp_dir)
        assert results['model']['quality_score'] == 0
        assert 'cannot deserialize' in results['model']['error']
