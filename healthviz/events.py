from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Tuple, Type, TypeVar, Union

from healthviz.models import Row

if TYPE_CHECKING:
    from healthviz.coordinator import DashboardUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetLoaded:
    rows: Tuple[Row, ...]


@dataclass(frozen=True)
class FilteredSubsetChanged:
    update: "DashboardUpdate"

    @property
    def rows(self) -> Tuple[Row, ...]:
        return self.update.rows


@dataclass(frozen=True)
class SelectionCleared:
    pass


DashboardEvent = Union[DatasetLoaded, FilteredSubsetChanged, SelectionCleared]
EVENT_TYPES: Tuple[type, ...] = (DatasetLoaded, FilteredSubsetChanged, SelectionCleared)

E = TypeVar("E")
Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event class.

    Handlers run in subscription order. A handler that raises is logged and
    skipped; the remaining handlers still run.
    """

    def __init__(self):
        # dict as an ordered set: a handler subscribed twice runs once.
        self._handlers: Dict[type, Dict[Handler, None]] = {t: {} for t in EVENT_TYPES}

    def _bucket(self, event_type: type) -> Dict[Handler, None]:
        if event_type not in self._handlers:
            raise TypeError(f"Unsupported event type: {event_type!r}")
        return self._handlers[event_type]

    def subscribe(self, event_type: Type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        self._bucket(event_type)[handler] = None
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        self._bucket(event_type).pop(handler, None)

    def emit(self, event: DashboardEvent) -> None:
        # Snapshot so handlers may (un)subscribe while being notified.
        for handler in list(self._bucket(type(event))):
            try:
                handler(event)
            except Exception:
                logger.exception("%s handler %r failed", type(event).__name__, handler)

    def subscriber_count(self, event_type: type) -> int:
        return len(self._bucket(event_type))
