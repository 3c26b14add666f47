from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from healthviz.data import default_data_path
from healthviz.filters import FILTER_CACHE_SIZE
from healthviz.metrics import AGGREGATE_CACHE_SIZE
from healthviz.scheduling import SECONDARY_DELAY

ENV_DATA_PATH = "HEALTHVIZ_DATA_PATH"
ENV_LOG_LEVEL = "HEALTHVIZ_LOG_LEVEL"


@dataclass(frozen=True)
class HealthVizConfig:
    data_path: Path = field(default_factory=default_data_path)
    filter_cache_size: int = FILTER_CACHE_SIZE
    aggregate_cache_size: int = AGGREGATE_CACHE_SIZE
    secondary_delay: float = SECONDARY_DELAY
    log_level: str = "INFO"


def _as_int(value: object, default: int) -> int:
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return default


def _as_float(value: object, default: float) -> float:
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return default


def load_config(raw: Optional[Mapping[str, object]] = None, env: Optional[Mapping[str, str]] = None) -> HealthVizConfig:
    raw = dict(raw or {})
    env = os.environ if env is None else env

    data_path = raw.get("data_path") or env.get(ENV_DATA_PATH) or default_data_path()
    log_level = str(raw.get("log_level") or env.get(ENV_LOG_LEVEL) or "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        log_level = "INFO"

    return HealthVizConfig(
        data_path=Path(data_path),
        filter_cache_size=_as_int(raw.get("filter_cache_size", FILTER_CACHE_SIZE), FILTER_CACHE_SIZE),
        aggregate_cache_size=_as_int(raw.get("aggregate_cache_size", AGGREGATE_CACHE_SIZE), AGGREGATE_CACHE_SIZE),
        secondary_delay=_as_float(raw.get("secondary_delay", SECONDARY_DELAY), SECONDARY_DELAY),
        log_level=log_level,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("healthviz").setLevel(level)
