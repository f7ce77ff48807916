"""
Data Pipeline Module
====================
Stages:
0. Price Data Simulation - Synthetic records for pipeline development
1. Price Cleaning - Join, filter and parse raw price records
2. Table Validation - Declarative checks over simulated and cleaned tables
"""

from .stage0_simulate import PriceDataSimulator
from .stage1_clean import CleaningResult, PriceCleaningPipeline, StepReport, parse_number
from .stage2_validate import (
    CheckResult,
    ColumnCountCheck,
    ColumnTypeCheck,
    MembershipCheck,
    NotEmptyStringCheck,
    NotNullCheck,
    RangeCheck,
    RowCountCheck,
    TableValidator,
    analysis_data_checks,
    simulated_data_checks,
)

__all__ = [
    'PriceDataSimulator',
    'PriceCleaningPipeline',
    'CleaningResult',
    'StepReport',
    'parse_number',
    'CheckResult',
    'RowCountCheck',
    'ColumnCountCheck',
    'ColumnTypeCheck',
    'RangeCheck',
    'NotNullCheck',
    'NotEmptyStringCheck',
    'MembershipCheck',
    'TableValidator',
    'simulated_data_checks',
    'analysis_data_checks',
]
