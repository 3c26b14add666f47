from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd

from healthviz.errors import DatasetLoadError
from healthviz.normalize import RAW_COLUMNS
from healthviz.store import DatasetStore

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
DATA_FILE = "healthcare_dataset.csv"


def default_data_path() -> Path:
    return DATA_DIR / DATA_FILE


def file_signature(path: Union[str, Path]) -> Tuple[str, float]:
    p = Path(path).resolve()
    try:
        return str(p), p.stat().st_mtime
    except OSError as exc:
        raise DatasetLoadError(f"Dataset not found or unreachable: {p} ({exc})") from exc


def read_records(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read the CSV as strings; typing happens in the row normalizer."""
    try:
        # A bad byte spoils one cell, not the file.
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=False, encoding_errors="replace")
    except FileNotFoundError as exc:
        raise DatasetLoadError(f"Dataset not found: {path}") from exc
    except pd.errors.EmptyDataError as exc:
        raise DatasetLoadError(f"Dataset is empty: {path}") from exc
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as exc:
        raise DatasetLoadError(f"Dataset could not be parsed: {path} ({exc})") from exc

    df.columns = [str(c).strip() for c in df.columns]
    known = [c for c in df.columns if c in RAW_COLUMNS]
    if not known:
        raise DatasetLoadError(
            f"Dataset header has none of the expected columns: {path} "
            f"(got {', '.join(df.columns[:10]) or 'no columns'})"
        )
    return df[known].to_dict(orient="records")


@lru_cache(maxsize=4)
def _load_dataset_cached(signature: Tuple[str, float]) -> DatasetStore:
    path, _ = signature
    records = read_records(path)
    store = DatasetStore.build(records)
    logger.info("Loaded %d rows from %s", len(store), path)
    return store


def load_dataset(path: Optional[Union[str, Path]] = None) -> DatasetStore:
    return _load_dataset_cached(file_signature(path or default_data_path()))
