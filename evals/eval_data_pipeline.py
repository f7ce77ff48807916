"""
Evaluation Script for the Data Pipeline and Model
=================================================
Evaluates quality and correctness of the saved stage outputs.

Metrics:
- Simulated data shape and markdown bound
- Analysis data coverage, validity and vendor balance
- Model artifact convergence and coefficient summary
"""

import json
from pathlib import Path
from typing import Any, Dict

import numpy as np
import pandas as pd

from grocery_prices.config import PipelineConfig
from grocery_prices.data_pipeline.stage2_validate import (
    TableValidator,
    analysis_data_checks,
    simulated_data_checks,
)
from grocery_prices.errors import IOFailure
from grocery_prices.modeling.model import FittedPriceModel


def evaluate_simulated(simulated_df: pd.DataFrame) -> Dict[str, Any]:
    """
    Evaluate the simulated table.

    Returns metrics on shape, check results and markdown bound.
    """
    metrics = {}

    metrics['total_records'] = len(simulated_df)
    metrics['columns'] = list(simulated_df.columns)

    results = TableValidator(simulated_data_checks(len(simulated_df))).validate(simulated_df)
    metrics['failed_checks'] = [r.name for r in results if not r.passed]

    markdown = (simulated_df['current_price'] - simulated_df['old_price']).abs()
    metrics['max_markdown'] = float(markdown.max()) if len(markdown) else 0.0
    metrics['markdown_violations'] = int((markdown >= 10).sum())

    # Quality score (0-100)
    quality_score = 100
    quality_score -= 15 * len(metrics['failed_checks'])
    if metrics['markdown_violations'] > 0:
        quality_score -= 30

    metrics['quality_score'] = max(quality_score, 0)

    return metrics


def evaluate_analysis(analysis_df: pd.DataFrame) -> Dict[str, Any]:
    """
    Evaluate the cleaned analysis table.

    Returns metrics on coverage, validity and distribution.
    """
    metrics = {}

    # Coverage
    metrics['total_records'] = len(analysis_df)
    metrics['unique_vendors'] = int(analysis_df['vendor'].nunique())
    metrics['unique_products'] = int(analysis_df['product_name'].nunique())
    metrics['months'] = sorted(int(m) for m in analysis_df['month'].unique())

    # Validity
    results = TableValidator(analysis_data_checks()).validate(analysis_df)
    metrics['failed_checks'] = [r.name for r in results if not r.passed]
    metrics['non_positive_prices'] = int((analysis_df['current_price'] <= 0).sum())

    # Price distribution
    if len(analysis_df) > 0:
        metrics['price_mean'] = float(analysis_df['current_price'].mean())
        metrics['price_median'] = float(analysis_df['current_price'].median())
        metrics['price_std'] = float(analysis_df['current_price'].std())
        metrics['price_min'] = float(analysis_df['current_price'].min())
        metrics['price_max'] = float(analysis_df['current_price'].max())

        # Share of the largest vendor
        vendor_share = analysis_df['vendor'].value_counts(normalize=True)
        metrics['largest_vendor_share'] = float(vendor_share.iloc[0])

    # Quality score
    quality_score = 100
    if metrics['total_records'] == 0:
        quality_score = 0
    else:
        quality_score -= 20 * len(metrics['failed_checks'])
        if metrics['unique_vendors'] < 2:
            quality_score -= 20

    metrics['quality_score'] = max(quality_score, 0)

    return metrics


def evaluate_model(fitted: FittedPriceModel) -> Dict[str, Any]:
    """
    Evaluate the saved model artifact.

    Returns metrics on convergence and the posterior summary.
    """
    metrics = {}

    metrics['n_parameters'] = len(fitted.parameter_names)
    metrics['n_samples'] = fitted.n_samples

    rhat = fitted.rhat
    metrics['max_rhat'] = float(np.nanmax(rhat)) if np.isfinite(rhat).any() else None
    metrics['mean_acceptance'] = float(np.mean(fitted.diagnostics.get('acceptance_rate', [np.nan])))
    metrics['divergences'] = int(np.sum(fitted.diagnostics.get('divergences', [0])))

    table = fitted.coefficient_table()
    metrics['coefficients'] = {
        row['coefficient']: round(float(row['mean']), 4) for _, row in table.iterrows()
    }

    # Quality score
    quality_score = 100
    if metrics['max_rhat'] is None or metrics['max_rhat'] > 1.05:
        quality_score -= 40
    if metrics['divergences'] > 0:
        quality_score -= 20

    metrics['quality_score'] = quality_score

    return metrics


def run_evaluation(project_root: Path) -> Dict[str, Dict[str, Any]]:
    """
    Run complete pipeline evaluation.

    Parameters
    ----------
    project_root : Path
        Project root directory

    Returns
    -------
    Dict containing evaluation results for each stage
    """
    results = {}
    config = PipelineConfig(project_root=str(project_root))

    print("=" * 60)
    print("Data Pipeline Evaluation")
    print("=" * 60)

    # Stage 0: Simulation
    print("\n--- Stage 0: Simulated Data ---")
    simulated_path = config.simulated_data_path
    if simulated_path.exists():
        simulated_df = pd.read_csv(simulated_path)
        results['simulated'] = evaluate_simulated(simulated_df)
        print(f"  Records: {results['simulated']['total_records']:,}")
        print(f"  Max markdown: {results['simulated']['max_markdown']:.3f}")
        print(f"  Quality Score: {results['simulated']['quality_score']}/100")
    else:
        print(f"  [MISSING] {simulated_path.name}")
        results['simulated'] = {'quality_score': 0, 'error': 'file not found'}

    # Stage 1: Cleaned data
    print("\n--- Stage 1: Analysis Data ---")
    analysis_path = config.analysis_data_path
    if analysis_path.exists():
        analysis_df = pd.read_parquet(analysis_path)
        results['analysis'] = evaluate_analysis(analysis_df)
        print(f"  Records: {results['analysis']['total_records']:,}")
        print(f"  Vendors: {results['analysis']['unique_vendors']}")
        print(f"  Quality Score: {results['analysis']['quality_score']}/100")
    else:
        print(f"  [MISSING] {analysis_path.name}")
        results['analysis'] = {'quality_score': 0, 'error': 'file not found'}

    # Model
    print("\n--- Model ---")
    model_path = config.model_path
    try:
        fitted = FittedPriceModel.load(model_path)
    except IOFailure as exc:
        print(f"  [MISSING] {model_path.name}: {exc.reason}")
        results['model'] = {'quality_score': 0, 'error': exc.reason}
    else:
        results['model'] = evaluate_model(fitted)
        print(f"  Parameters: {results['model']['n_parameters']}")
        print(f"  Max R-hat: {results['model']['max_rhat']}")
        print(f"  Quality Score: {results['model']['quality_score']}/100")

    # Overall score
    scores = [r['quality_score'] for r in results.values() if 'quality_score' in r]
    overall_score = float(np.mean(scores)) if scores else 0.0

    print("\n" + "=" * 60)
    print(f"Overall Quality Score: {overall_score:.1f}/100")
    print("=" * 60)

    results['overall'] = {
        'quality_score': overall_score,
        'stages_evaluated': len(scores),
        'all_files_present': all('error' not in r for r in results.values())
    }

    return results


def main():
    """Run evaluation and save results."""
    project_root = Path(__file__).parent.parent
    results = run_evaluation(project_root)

    # Save results
    output_path = project_root / 'evals' / 'data_pipeline_results.json'
    with open(output_path, 'w') as f:
        json.dump(results, f, indent=2, default=str)

    print(f"\nResults saved to: {output_path}")

    return results


if __name__ == '__main__':
    main()
