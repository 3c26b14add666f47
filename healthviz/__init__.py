"""Core (UI-agnostic) dashboard logic.

This package contains:
- data loading (CSV -> pandas -> normalized rows)
- the immutable dataset store and its option indices
- filter specifications and the memoized filter engine
- KPI / per-group aggregation
- the event bus, scheduling policies and the update coordinator
"""

from healthviz.coordinator import DashboardUpdate, RenderDispatcher, UpdateCoordinator
from healthviz.errors import DatasetLoadError, DatasetNotLoadedError, HealthVizError, UnknownFieldError
from healthviz.filters import DEFAULT_FILTERS, FilterEngine, FilterSpecification
from healthviz.metrics import AggregationEngine
from healthviz.models import AggregateSnapshot, GroupStats, KpiScalars, Row
from healthviz.normalize import normalize_record
from healthviz.store import DatasetStore

__all__ = [
    "AggregateSnapshot",
    "AggregationEngine",
    "DEFAULT_FILTERS",
    "DashboardUpdate",
    "DatasetLoadError",
    "DatasetNotLoadedError",
    "DatasetStore",
    "FilterEngine",
    "FilterSpecification",
    "GroupStats",
    "HealthVizError",
    "KpiScalars",
    "RenderDispatcher",
    "Row",
    "UnknownFieldError",
    "UpdateCoordinator",
    "normalize_record",
]
