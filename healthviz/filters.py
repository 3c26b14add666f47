from __future__ import annotations

import json
import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass, fields, replace
from datetime import date
from operator import attrgetter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from healthviz.errors import UnknownFieldError
from healthviz.formatting import format_date
from healthviz.models import Row
from healthviz.normalize import parse_date, safe_number

logger = logging.getLogger(__name__)

ALL = "all"
FILTER_CACHE_SIZE = 50

# Filter field -> Row attribute, in evaluation order.
CATEGORICAL_PREDICATES: Tuple[Tuple[str, str], ...] = (
    ("age_group", "age_group"),
    ("gender", "gender"),
    ("admission_type", "admission_type"),
    ("condition", "medical_condition"),
    ("test_result", "test_result"),
    ("blood_type", "blood_type"),
    ("insurance", "insurance"),
)


@dataclass(frozen=True)
class FilterSpecification:
    age_group: str = ALL
    gender: str = ALL
    admission_type: str = ALL
    condition: str = ALL
    test_result: str = ALL
    blood_type: str = ALL
    insurance: str = ALL
    selected_hospital: Optional[str] = None
    length_of_stay_max: Optional[float] = None
    billing_range: Optional[Tuple[float, float]] = None
    admission_date_from: Optional[date] = None
    admission_date_to: Optional[date] = None

    def cache_key(self) -> str:
        """Canonical serialization; dates become ordinals so equal days share a key."""
        raw = asdict(self)
        for name in ("admission_date_from", "admission_date_to"):
            if raw[name] is not None:
                raw[name] = raw[name].toordinal()
        if raw["billing_range"] is not None:
            raw["billing_range"] = [float(x) for x in raw["billing_range"]]
        if raw["length_of_stay_max"] is not None:
            raw["length_of_stay_max"] = float(raw["length_of_stay_max"])
        return json.dumps(raw, sort_keys=True, separators=(",", ":"))

    def is_default(self) -> bool:
        return self == DEFAULT_FILTERS

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["billing_range"] = list(self.billing_range) if self.billing_range is not None else None
        out["admission_date_from"] = format_date(self.admission_date_from) or None
        out["admission_date_to"] = format_date(self.admission_date_to) or None
        return out


DEFAULT_FILTERS = FilterSpecification()
FILTER_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(FilterSpecification))


def _coerce_category(value: Any) -> str:
    if value is None:
        return ALL
    s = str(value).strip()
    return s or ALL


def _coerce_hospital(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = " ".join(str(value).split())
    if not s or s == ALL:
        return None
    return s


def _coerce_range(value: Any) -> Optional[Tuple[float, float]]:
    if value is None or isinstance(value, (str, bytes)):
        return None
    try:
        low, high = value
    except (TypeError, ValueError):
        return None
    low, high = safe_number(low), safe_number(high)
    if low is None or high is None:
        return None
    return (low, high) if low <= high else (high, low)


def coerce_value(field: str, value: Any) -> Any:
    if field not in FILTER_FIELDS:
        raise UnknownFieldError(field, FILTER_FIELDS)
    if field == "selected_hospital":
        return _coerce_hospital(value)
    if field == "length_of_stay_max":
        return safe_number(value)
    if field == "billing_range":
        return _coerce_range(value)
    if field in ("admission_date_from", "admission_date_to"):
        return parse_date(value)
    return _coerce_category(value)


def with_predicate(spec: FilterSpecification, field: str, value: Any) -> FilterSpecification:
    """Return ``spec`` with one predicate replaced; ``spec`` itself is never touched."""
    return replace(spec, **{field: coerce_value(field, value)})


def with_predicates(spec: FilterSpecification, partial: Mapping[str, Any]) -> FilterSpecification:
    unknown = [k for k in partial if k not in FILTER_FIELDS]
    if unknown:
        raise UnknownFieldError(unknown[0], FILTER_FIELDS)
    return replace(spec, **{k: coerce_value(k, v) for k, v in partial.items()})


def normalize_filters(raw: Optional[Mapping[str, Any]]) -> FilterSpecification:
    return with_predicates(DEFAULT_FILTERS, raw or {})


def describe_selection(spec: FilterSpecification) -> str:
    bits: List[str] = []
    if spec.selected_hospital:
        bits.append(spec.selected_hospital)
    if spec.test_result != ALL:
        bits.append(spec.test_result)
    if spec.blood_type != ALL:
        bits.append(f"Blood {spec.blood_type}")
    if spec.insurance != ALL:
        bits.append(spec.insurance)
    if spec.length_of_stay_max is not None:
        bits.append(f"LOS ≤ {spec.length_of_stay_max:g}")
    if spec.condition != ALL:
        bits.append(spec.condition)
    if spec.gender != ALL:
        bits.append(spec.gender)
    if spec.age_group != ALL:
        bits.append(spec.age_group)
    if spec.admission_type != ALL:
        bits.append(spec.admission_type)
    if spec.billing_range is not None:
        low, high = spec.billing_range
        bits.append(f"Billing {round(low)}–{round(high)}")
    if spec.admission_date_from is not None:
        bits.append(f"From {format_date(spec.admission_date_from)}")
    if spec.admission_date_to is not None:
        bits.append(f"To {format_date(spec.admission_date_to)}")
    return " · ".join(bits) if bits else "All"


def _equals(attr: str, expected: Any) -> Callable[[Row], bool]:
    get = attrgetter(attr)
    return lambda r: get(r) == expected


def compile_predicates(spec: FilterSpecification) -> List[Callable[[Row], bool]]:
    """Active predicates, cheapest first: equality, then numeric, then dates."""
    preds: List[Callable[[Row], bool]] = []
    if spec.selected_hospital is not None:
        preds.append(_equals("hospital", spec.selected_hospital))
    for field, attr in CATEGORICAL_PREDICATES:
        value = getattr(spec, field)
        if value != ALL:
            preds.append(_equals(attr, value))

    if spec.length_of_stay_max is not None:
        los_max = spec.length_of_stay_max
        preds.append(lambda r: r.length_of_stay_days is not None and r.length_of_stay_days <= los_max)
    if spec.billing_range is not None:
        low, high = spec.billing_range
        preds.append(lambda r: r.billing_amount is not None and low <= r.billing_amount <= high)

    if spec.admission_date_from is not None:
        start = spec.admission_date_from
        preds.append(lambda r: r.admission_date is not None and r.admission_date >= start)
    if spec.admission_date_to is not None:
        end = spec.admission_date_to
        preds.append(lambda r: r.admission_date is not None and r.admission_date <= end)
    return preds


def filter_rows(rows: Iterable[Row], spec: FilterSpecification) -> Tuple[Row, ...]:
    preds = compile_predicates(spec)
    if not preds:
        return tuple(rows)
    return tuple(r for r in rows if all(p(r) for p in preds))


class FilterEngine:
    """Memoized filter evaluation over one dataset store.

    Results are cached by :meth:`FilterSpecification.cache_key` and returned
    as the same tuple on every hit. The memo is bounded; once full, the
    oldest-inserted entry is evicted (hits do not refresh an entry).
    """

    def __init__(self, capacity: int = FILTER_CACHE_SIZE):
        self.capacity = max(1, int(capacity))
        self._memo: "OrderedDict[str, Tuple[Row, ...]]" = OrderedDict()
        self._store = None
        self.hits = 0
        self.misses = 0

    def filter(self, store, spec: FilterSpecification) -> Tuple[Row, ...]:
        if self._store is not store:
            # A different dataset invalidates every cached subset.
            self.clear()
            self._store = store

        key = spec.cache_key()
        cached = self._memo.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        self.misses += 1
        out = filter_rows(store.all(), spec)
        if len(self._memo) >= self.capacity:
            evicted, _ = self._memo.popitem(last=False)
            logger.debug("Filter cache full (%d); evicted %s", self.capacity, evicted)
        self._memo[key] = out
        return out

    def is_cached(self, spec: FilterSpecification) -> bool:
        return spec.cache_key() in self._memo

    def clear(self) -> None:
        if self._memo:
            logger.debug("Clearing %d cached filter results", len(self._memo))
        self._memo.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._memo), "capacity": self.capacity, "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._memo)
