"""
Evaluation Scripts
==================
Quality evaluation and metrics for the saved pipeline outputs.
"""

from .eval_data_pipeline import run_evaluation as run_data_pipeline_eval

__all__ = [
    'run_data_pipeline_eval',
]
