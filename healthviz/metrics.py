"""KPI and grouped statistics over a filtered row subset.

Each computation is one left-to-right pass with running sums; the grouped
variants keep one accumulator per group key and nothing else.

The engine memoizes by the filter cache key the caller passes in. Calls
without a key fall back to a shape fingerprint ``(len, first row, last row)``,
which can collide for equally sized subsets sharing both endpoints; callers
that have a filter key should always pass it.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional, Sequence, Tuple

from healthviz.errors import UnknownFieldError
from healthviz.models import (
    CATEGORICAL_FIELDS,
    DEFAULT_TEST_RESULT,
    TEST_RESULTS,
    UNKNOWN_GROUP,
    AggregateSnapshot,
    GroupStats,
    KpiScalars,
    Row,
)

logger = logging.getLogger(__name__)

AGGREGATE_CACHE_SIZE = 20


def fingerprint(rows: Sequence[Row]) -> Tuple[Any, ...]:
    if not rows:
        return (0, None, None)
    return (len(rows), id(rows[0]), id(rows[-1]))


def compute_kpis(rows: Sequence[Row]) -> KpiScalars:
    count = 0
    total_billing = 0.0
    los_sum = 0.0
    los_count = 0
    hospitals = set()
    for r in rows:
        count += 1
        # Missing billing counts as 0 but the row still counts toward the mean.
        total_billing += r.billing_amount or 0.0
        if r.length_of_stay_days is not None:
            los_sum += r.length_of_stay_days
            los_count += 1
        if r.hospital:
            hospitals.add(r.hospital)
    return KpiScalars(
        count=count,
        total_billing=total_billing,
        avg_billing=total_billing / count if count else None,
        avg_length_of_stay=los_sum / los_count if los_count else None,
        hospital_count=len(hospitals),
    )


class _GroupAccumulator:
    __slots__ = ("count", "billing_sum", "billing_count", "test_counts", "dominant", "dominant_count")

    def __init__(self):
        self.count = 0
        self.billing_sum = 0.0
        self.billing_count = 0
        self.test_counts: Dict[str, int] = {}
        self.dominant = DEFAULT_TEST_RESULT
        self.dominant_count = 0

    def add(self, row: Row) -> None:
        self.count += 1
        if row.billing_amount is not None:
            self.billing_sum += row.billing_amount
            self.billing_count += 1
        tr = row.test_result or DEFAULT_TEST_RESULT
        n = self.test_counts.get(tr, 0) + 1
        self.test_counts[tr] = n
        # Strictly greater: the first label to reach a count keeps it on ties.
        if n > self.dominant_count:
            self.dominant = tr
            self.dominant_count = n

    def stats(self, key: str) -> GroupStats:
        avg = self.billing_sum / self.billing_count if self.billing_count else 0.0
        return GroupStats(key=key, count=self.count, avg_billing=avg, dominant_test_result=self.dominant)


def compute_group_stats(rows: Sequence[Row], field: str = "hospital") -> Tuple[GroupStats, ...]:
    if field not in CATEGORICAL_FIELDS:
        raise UnknownFieldError(field, CATEGORICAL_FIELDS)
    groups: Dict[str, _GroupAccumulator] = {}
    for r in rows:
        key = getattr(r, field) or UNKNOWN_GROUP
        acc = groups.get(key)
        if acc is None:
            acc = groups[key] = _GroupAccumulator()
        acc.add(r)
    out = [acc.stats(key) for key, acc in groups.items()]
    out.sort(key=lambda g: g.count, reverse=True)
    return tuple(out)


def count_test_results(rows: Sequence[Row]) -> Dict[str, int]:
    counts = {k: 0 for k in TEST_RESULTS}
    for r in rows:
        counts[r.test_result] = counts.get(r.test_result, 0) + 1
    return counts


class _BoundedMemo:
    def __init__(self, capacity: int, name: str):
        self.capacity = max(1, int(capacity))
        self.name = name
        self._data: "OrderedDict[Hashable, Any]" = OrderedDict()

    def get(self, key: Hashable) -> Any:
        return self._data.get(key)

    def put(self, key: Hashable, value: Any) -> None:
        if len(self._data) >= self.capacity:
            evicted, _ = self._data.popitem(last=False)
            logger.debug("%s cache full (%d); evicted %s", self.name, self.capacity, evicted)
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class AggregationEngine:
    """Bounded memos over KPI and grouped stats.

    Filter keys only identify a subset within one dataset, so cached entries
    belong to the store last passed to :meth:`bind`; binding a different
    store drops them.
    """

    def __init__(self, capacity: int = AGGREGATE_CACHE_SIZE):
        self._kpis = _BoundedMemo(capacity, "KPI")
        self._groups = _BoundedMemo(capacity, "Group stats")
        self._store = None

    def bind(self, store) -> None:
        if self._store is not store:
            self.clear()
            self._store = store

    @staticmethod
    def _key(rows: Sequence[Row], key: Optional[str]) -> Hashable:
        return ("spec", key) if key is not None else ("shape",) + fingerprint(rows)

    def aggregate_kpis(self, rows: Sequence[Row], key: Optional[str] = None) -> KpiScalars:
        memo_key = self._key(rows, key)
        cached = self._kpis.get(memo_key)
        if cached is None:
            cached = compute_kpis(rows)
            self._kpis.put(memo_key, cached)
        return cached

    def aggregate_by_category(
        self, rows: Sequence[Row], field: str, key: Optional[str] = None
    ) -> Tuple[GroupStats, ...]:
        memo_key = (field, self._key(rows, key))
        cached = self._groups.get(memo_key)
        if cached is None:
            cached = compute_group_stats(rows, field)
            self._groups.put(memo_key, cached)
        return cached

    def aggregate_by_hospital(self, rows: Sequence[Row], key: Optional[str] = None) -> Tuple[GroupStats, ...]:
        return self.aggregate_by_category(rows, "hospital", key)

    def snapshot(self, rows: Sequence[Row], key: Optional[str] = None) -> AggregateSnapshot:
        return AggregateSnapshot(
            scalars=self.aggregate_kpis(rows, key),
            groups=self.aggregate_by_hospital(rows, key),
        )

    def clear(self) -> None:
        self._kpis.clear()
        self._groups.clear()

    def stats(self) -> Dict[str, int]:
        return {"kpi_entries": len(self._kpis), "group_entries": len(self._groups), "capacity": self._kpis.capacity}
