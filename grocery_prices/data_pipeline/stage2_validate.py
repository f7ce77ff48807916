"""
Stage 2: Table Validation
=========================
Declarative checks over the simulated and cleaned tables.

Each check is a pure predicate over a DataFrame and returns a CheckResult
with observed and expected values. TableValidator runs a suite of checks and
halts with ValidationFailure on the first failing one.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

import pandas as pd

from ..config import SIMULATED_PRODUCTS, VALID_VENDORS
from ..errors import ValidationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check."""
    name: str
    passed: bool
    observed: Any = None
    expected: Any = None
    message: str = ''


class TableCheck(ABC):
    """Base class for table-level checks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in reports and failures."""

    @abstractmethod
    def check(self, df: pd.DataFrame) -> CheckResult:
        """Evaluate the check against a table."""

    def _result(self, passed: bool, observed: Any, expected: Any, message: str) -> CheckResult:
        return CheckResult(
            name=self.name,
            passed=bool(passed),
            observed=observed,
            expected=expected,
            message=message
        )

    @staticmethod
    def _missing_columns(df: pd.DataFrame, columns: Iterable[str]) -> List[str]:
        return [c for c in columns if c not in df.columns]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name})"


class RowCountCheck(TableCheck):
    """Table has exactly the expected number of rows."""

    def __init__(self, expected: int):
        self.expected = expected

    @property
    def name(self) -> str:
        return 'row_count'

    def check(self, df: pd.DataFrame) -> CheckResult:
        observed = len(df)
        return self._result(
            observed == self.expected, observed, self.expected,
            f"Table has {observed:,} rows"
        )


class ColumnCountCheck(TableCheck):
    """Table has exactly the expected number of columns."""

    def __init__(self, expected: int):
        self.expected = expected

    @property
    def name(self) -> str:
        return 'column_count'

    def check(self, df: pd.DataFrame) -> CheckResult:
        observed = df.shape[1]
        return self._result(
            observed == self.expected, observed, self.expected,
            f"Table has {observed} columns"
        )


class ColumnTypeCheck(TableCheck):
    """Columns hold the declared scalar type: 'string' or 'numeric'."""

    KINDS = ('string', 'numeric')

    def __init__(self, columns: Sequence[str], kind: str):
        if kind not in self.KINDS:
            raise ValueError(f"kind must be one of {self.KINDS}, got {kind!r}")
        self.columns = list(columns)
        self.kind = kind

    @property
    def name(self) -> str:
        return f"{self.kind}_type:{','.join(self.columns)}"

    def _matches(self, series: pd.Series) -> bool:
        if self.kind == 'numeric':
            return pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)
        if pd.api.types.is_object_dtype(series) or isinstance(series.dtype, pd.StringDtype):
            return bool(series.dropna().map(lambda v: isinstance(v, str)).all())
        return False

    def check(self, df: pd.DataFrame) -> CheckResult:
        missing = self._missing_columns(df, self.columns)
        if missing:
            return self._result(False, missing, self.columns, f"Missing columns: {missing}")

        wrong = {c: str(df[c].dtype) for c in self.columns if not self._matches(df[c])}
        return self._result(
            not wrong, wrong or self.kind, self.kind,
            f"Columns with wrong type: {sorted(wrong)}" if wrong else f"All columns are {self.kind}"
        )


class RangeCheck(TableCheck):
    """All values of a column are integers within a closed range."""

    def __init__(self, column: str, low: int = 1, high: int = 12):
        self.column = column
        self.low = low
        self.high = high

    @property
    def name(self) -> str:
        return f"range:{self.column}"

    def check(self, df: pd.DataFrame) -> CheckResult:
        expected = [self.low, self.high]
        if self.column not in df.columns:
            return self._result(False, None, expected, f"Missing column: {self.column}")

        values = pd.to_numeric(df[self.column], errors='coerce')
        in_range = values.between(self.low, self.high) & (values % 1 == 0)
        bad = df.loc[~in_range, self.column]
        observed = sorted(pd.unique(bad).tolist(), key=str)[:10]
        return self._result(
            bad.empty, observed or expected, expected,
            f"{len(bad):,} values outside [{self.low}, {self.high}]"
        )


class NotNullCheck(TableCheck):
    """Columns (all when None) contain no null values."""

    def __init__(self, columns: Optional[Sequence[str]] = None):
        self.columns = list(columns) if columns is not None else None

    @property
    def name(self) -> str:
        return 'not_null' if self.columns is None else f"not_null:{','.join(self.columns)}"

    def check(self, df: pd.DataFrame) -> CheckResult:
        columns = self.columns if self.columns is not None else list(df.columns)
        missing = self._missing_columns(df, columns)
        if missing:
            return self._result(False, missing, columns, f"Missing columns: {missing}")

        null_counts = df[columns].isna().sum()
        nulls = {c: int(n) for c, n in null_counts.items() if n > 0}
        return self._result(
            not nulls, nulls or 0, 0,
            f"Null values in: {sorted(nulls)}" if nulls else "No null values"
        )


class NotEmptyStringCheck(TableCheck):
    """Columns contain no empty strings."""

    def __init__(self, columns: Sequence[str]):
        self.columns = list(columns)

    @property
    def name(self) -> str:
        return f"not_empty:{','.join(self.columns)}"

    def check(self, df: pd.DataFrame) -> CheckResult:
        missing = self._missing_columns(df, self.columns)
        if missing:
            return self._result(False, missing, self.columns, f"Missing columns: {missing}")

        empties = {c: int((df[c] == '').sum()) for c in self.columns}
        empties = {c: n for c, n in empties.items() if n > 0}
        return self._result(
            not empties, empties or 0, 0,
            f"Empty strings in: {sorted(empties)}" if empties else "No empty strings"
        )


class MembershipCheck(TableCheck):
    """All values of a column belong to an allow-list."""

    def __init__(self, column: str, allowed: Sequence[Any]):
        self.column = column
        self.allowed = list(allowed)

    @property
    def name(self) -> str:
        return f"membership:{self.column}"

    def check(self, df: pd.DataFrame) -> CheckResult:
        if self.column not in df.columns:
            return self._result(False, None, self.allowed, f"Missing column: {self.column}")

        invalid = df.loc[~df[self.column].isin(self.allowed), self.column]
        observed = sorted(pd.unique(invalid).tolist(), key=str)
        return self._result(
            invalid.empty, observed or self.allowed, self.allowed,
            f"{len(invalid):,} values outside the allow-list"
        )


class TableValidator:
    """Runs a suite of checks over a table."""

    def __init__(self, checks: Sequence[TableCheck], table_name: str = 'table'):
        self.checks = list(checks)
        self.table_name = table_name

    def validate(self, df: pd.DataFrame) -> List[CheckResult]:
        """Run every check and return all results."""
        results = [check.check(df) for check in self.checks]
        for result in results:
            status = 'PASS' if result.passed else 'FAIL'
            logger.info(f"  [{status}] {self.table_name} {result.name}: {result.message}")
        return results

    def assert_valid(self, df: pd.DataFrame) -> List[CheckResult]:
        """
        Run every check and raise on the first failure.

        Raises
        ------
        ValidationFailure
            Naming the failed check with observed vs expected values
        """
        logger.info(f"Validating {self.table_name} ({len(df):,} rows, {len(self.checks)} checks)")
        results = self.validate(df)
        for result in results:
            if not result.passed:
                raise ValidationFailure(
                    check=result.name,
                    message=f"{self.table_name}: {result.message}",
                    observed=result.observed,
                    expected=result.expected
                )
        logger.info(f"  - All {len(results)} checks passed")
        return results


def simulated_data_checks(
    n_rows: int = 9999,
    vendors: Sequence[str] = VALID_VENDORS,
    products: Sequence[str] = SIMULATED_PRODUCTS
) -> List[TableCheck]:
    """Checks for the simulated table."""
    return [
        RowCountCheck(n_rows),
        ColumnCountCheck(5),
        MembershipCheck('product', products),
        MembershipCheck('vendor', vendors),
        ColumnTypeCheck(['current_price', 'old_price'], 'numeric'),
        RangeCheck('month', 1, 12),
        NotNullCheck(),
        NotEmptyStringCheck(['product', 'vendor']),
    ]


def analysis_data_checks(
    expected_rows: Optional[int] = None,
    vendors: Sequence[str] = VALID_VENDORS
) -> List[TableCheck]:
    """Checks for the cleaned analysis table. Row count is checked only when given."""
    checks: List[TableCheck] = []
    if expected_rows is not None:
        checks.append(RowCountCheck(expected_rows))
    checks.extend([
        ColumnCountCheck(5),
        ColumnTypeCheck(['vendor'], 'string'),
        ColumnTypeCheck(['product_name'], 'string'),
        ColumnTypeCheck(['current_price', 'old_price'], 'numeric'),
        RangeCheck('month', 1, 12),
        NotNullCheck(),
        MembershipCheck('vendor', vendors),
        NotEmptyStringCheck(['vendor', 'product_name']),
    ])
    return checks
