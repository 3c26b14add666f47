from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from healthviz.config import HealthVizConfig
from healthviz.data import load_dataset
from healthviz.errors import DatasetNotLoadedError
from healthviz.events import DatasetLoaded, EventBus, FilteredSubsetChanged, SelectionCleared
from healthviz.filters import (
    DEFAULT_FILTERS,
    FilterEngine,
    FilterSpecification,
    coerce_value,
    describe_selection,
    with_predicate,
    with_predicates,
)
from healthviz.formatting import format_los, format_money, format_number
from healthviz.metrics import AggregationEngine
from healthviz.models import AggregateSnapshot, GroupStats, KpiScalars, Row
from healthviz.scheduling import SECONDARY_DELAY, CoalesceUntilNextTick, CoalesceWithTrailingDelay, Scheduler
from healthviz.store import DatasetStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardUpdate:
    filters: FilterSpecification
    rows: Tuple[Row, ...]
    scalars: KpiScalars
    groups: Tuple[GroupStats, ...]
    selection_label: str

    @property
    def snapshot(self) -> AggregateSnapshot:
        return AggregateSnapshot(scalars=self.scalars, groups=self.groups)

    def kpi_display(self) -> Dict[str, str]:
        s = self.scalars
        return {
            "total_patients": format_number(s.count),
            "total_revenue": format_money(s.total_billing),
            "avg_billing": format_money(s.avg_billing or 0.0),
            "avg_los": format_los(s.avg_length_of_stay),
            "hospitals": format_number(s.hospital_count),
        }


class UpdateCoordinator:
    """One dashboard session: dataset, filter state, caches and event bus.

    Filter mutations are cheap and synchronous; nothing is recomputed until
    :meth:`apply_filters`, which filters, aggregates and publishes one
    complete :class:`DashboardUpdate`.
    """

    def __init__(self, config: Optional[HealthVizConfig] = None, bus: Optional[EventBus] = None):
        self.config = config or HealthVizConfig()
        self.bus = bus or EventBus()
        self.filter_engine = FilterEngine(self.config.filter_cache_size)
        self.aggregation_engine = AggregationEngine(self.config.aggregate_cache_size)
        self.store: Optional[DatasetStore] = None
        self._filters: FilterSpecification = DEFAULT_FILTERS
        self._update: Optional[DashboardUpdate] = None

    # ---------------- Loading ----------------
    def load(self, data: Union[DatasetStore, Iterable[Optional[Mapping[str, Any]]]]) -> DashboardUpdate:
        store = data if isinstance(data, DatasetStore) else DatasetStore.build(data)
        self.store = store
        self.clear_caches()
        update = self.apply_filters()
        self.bus.emit(DatasetLoaded(rows=store.all()))
        return update

    def load_file(self, path: Optional[Union[str, Path]] = None) -> DashboardUpdate:
        return self.load(load_dataset(path or self.config.data_path))

    def _bound_store(self) -> DatasetStore:
        if self.store is None:
            raise DatasetNotLoadedError("No dataset loaded; call load() or load_file() first.")
        self.aggregation_engine.bind(self.store)
        return self.store

    # ---------------- Filter state ----------------
    @property
    def filters(self) -> FilterSpecification:
        return self._filters

    def set_filter(self, field: str, value: Any) -> FilterSpecification:
        self._filters = with_predicate(self._filters, field, value)
        return self._filters

    def set_filters(self, partial: Mapping[str, Any]) -> FilterSpecification:
        self._filters = with_predicates(self._filters, partial)
        return self._filters

    def toggle_hospital(self, hospital: Optional[str]) -> FilterSpecification:
        # Compare in stored form so "  Alpha " clears a selected "Alpha".
        wanted = coerce_value("selected_hospital", hospital)
        current = self._filters.selected_hospital
        return self.set_filter("selected_hospital", None if wanted == current else wanted)

    def reset_filters(self) -> DashboardUpdate:
        self._filters = DEFAULT_FILTERS
        self.bus.emit(SelectionCleared())
        return self.apply_filters()

    # ---------------- Recompute + publish ----------------
    def apply_filters(self) -> DashboardUpdate:
        store = self._bound_store()
        spec = self._filters
        key = spec.cache_key()
        rows = self.filter_engine.filter(store, spec)
        update = DashboardUpdate(
            filters=spec,
            rows=rows,
            scalars=self.aggregation_engine.aggregate_kpis(rows, key),
            groups=self.aggregation_engine.aggregate_by_hospital(rows, key),
            selection_label=describe_selection(spec),
        )
        self._update = update
        self.bus.emit(FilteredSubsetChanged(update=update))
        return update

    def clear_caches(self) -> None:
        self.filter_engine.clear()
        self.aggregation_engine.clear()

    # ---------------- Reads ----------------
    @property
    def current_update(self) -> Optional[DashboardUpdate]:
        return self._update

    @property
    def current_rows(self) -> Tuple[Row, ...]:
        return self._update.rows if self._update else ()

    @property
    def current_snapshot(self) -> Optional[AggregateSnapshot]:
        return self._update.snapshot if self._update else None

    def hospital_overview(self) -> Tuple[GroupStats, ...]:
        """Per-hospital stats under the current filters, ignoring the hospital selection."""
        store = self._bound_store()
        spec = replace(self._filters, selected_hospital=None)
        key = spec.cache_key()
        return self.aggregation_engine.aggregate_by_hospital(self.filter_engine.filter(store, spec), key)

    def breakdown(self, field: str) -> Tuple[GroupStats, ...]:
        store = self._bound_store()
        spec = self._filters
        rows = self.filter_engine.filter(store, spec)
        return self.aggregation_engine.aggregate_by_category(rows, field, spec.cache_key())


Consumer = Callable[[DashboardUpdate], Any]


class RenderDispatcher:
    """Fans published updates out to rendering consumers.

    Primary (visible) consumers run on the next tick; secondary ones after a
    trailing delay scheduled from that tick, so they never delay the primary
    pass. Bursts of updates collapse into the latest one.
    """

    def __init__(self, bus: EventBus, scheduler: Scheduler, secondary_delay: float = SECONDARY_DELAY):
        self._primary = CoalesceUntilNextTick(scheduler)
        self._secondary = CoalesceWithTrailingDelay(scheduler, secondary_delay)
        self._consumers: Dict[Consumer, bool] = {}
        self._unsubscribe = bus.subscribe(FilteredSubsetChanged, self._on_filtered)

    def add_consumer(self, consumer: Consumer, primary: bool = True) -> Callable[[], None]:
        self._consumers[consumer] = bool(primary)
        return lambda: self.remove_consumer(consumer)

    def remove_consumer(self, consumer: Consumer) -> None:
        self._consumers.pop(consumer, None)

    def set_primary(self, consumer: Consumer, primary: bool) -> None:
        if consumer in self._consumers:
            self._consumers[consumer] = bool(primary)

    def _consumers_for(self, primary: bool) -> List[Consumer]:
        return [c for c, p in self._consumers.items() if p is primary]

    def _deliver(self, consumers: List[Consumer], update: DashboardUpdate) -> None:
        for consumer in consumers:
            try:
                consumer(update)
            except Exception:
                logger.exception("Render consumer %r failed", consumer)

    def _on_filtered(self, event: FilteredSubsetChanged) -> None:
        update = event.update
        self._primary.schedule(lambda: self._primary_pass(update))

    def _primary_pass(self, update: DashboardUpdate) -> None:
        self._deliver(self._consumers_for(True), update)
        self._secondary.schedule(lambda: self._deliver(self._consumers_for(False), update))

    def close(self) -> None:
        self._unsubscribe()
        self._consumers.clear()
