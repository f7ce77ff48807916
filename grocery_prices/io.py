"""
Flat-file reading and writing.

Every stage reads its input and writes its output through these helpers so
that a missing or unreadable file surfaces as IOFailure with the path.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from .errors import IOFailure

logger = logging.getLogger(__name__)


def read_csv_table(path, usecols: Optional[Sequence[str]] = None, **kwargs) -> pd.DataFrame:
    """Read a delimited text file, raising IOFailure if it is missing or malformed."""
    path = Path(path)
    if not path.exists():
        raise IOFailure(path, 'file not found')

    try:
        df = pd.read_csv(path, usecols=usecols, **kwargs)
    except (OSError, ValueError, pd.errors.ParserError) as exc:
        raise IOFailure(path, str(exc)) from exc

    logger.info(f"Loaded {len(df):,} rows from {path}")
    return df


def read_parquet_table(path) -> pd.DataFrame:
    """Read a parquet file, raising IOFailure if it is missing or malformed."""
    path = Path(path)
    if not path.exists():
        raise IOFailure(path, 'file not found')

    try:
        df = pd.read_parquet(path)
    except (OSError, ValueError) as exc:
        raise IOFailure(path, str(exc)) from exc

    logger.info(f"Loaded {len(df):,} rows from {path}")
    return df


def write_csv_table(df: pd.DataFrame, path) -> Path:
    """Write a table to CSV, creating parent directories."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, index=False)
    except OSError as exc:
        raise IOFailure(path, str(exc)) from exc

    logger.info(f"Saved {len(df):,} rows to {path}")
    return path


def write_parquet_table(df: pd.DataFrame, path) -> Path:
    """Write a table to parquet, creating parent directories."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_parquet(path, index=False)
    except OSError as exc:
        raise IOFailure(path, str(exc)) from exc

    logger.info(f"Saved {len(df):,} rows to {path} ({path.stat().st_size / 1e6:.2f} MB)")
    return path
