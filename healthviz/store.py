from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from healthviz.errors import UnknownFieldError
from healthviz.models import CATEGORICAL_FIELDS, Row
from healthviz.normalize import normalize_record

# Options surfaced to filter dropdowns.
OPTION_FIELDS: Tuple[str, ...] = (
    "age_group",
    "gender",
    "admission_type",
    "medical_condition",
    "test_result",
    "blood_type",
    "insurance",
    "hospital",
)


class DatasetStore:
    """Immutable, insertion-ordered collection of normalized rows.

    Built once per load. The distinct-value lists and the admission date
    bounds are computed at construction and never change afterwards.
    """

    __slots__ = ("_rows", "_distinct", "_date_bounds")

    def __init__(self, rows: Iterable[Row]):
        self._rows: Tuple[Row, ...] = tuple(rows)
        self._distinct: Dict[str, Tuple[Any, ...]] = {
            f: tuple(sorted({getattr(r, f) for r in self._rows if getattr(r, f)}, key=str))
            for f in CATEGORICAL_FIELDS
        }
        dates = [r.admission_date for r in self._rows if r.admission_date is not None]
        self._date_bounds: Optional[Tuple[date, date]] = (min(dates), max(dates)) if dates else None

    @classmethod
    def build(cls, records: Iterable[Optional[Mapping[str, Any]]]) -> "DatasetStore":
        return cls(normalize_record(rec, row_id=i) for i, rec in enumerate(records))

    def all(self) -> Tuple[Row, ...]:
        return self._rows

    def distinct_values(self, field: str) -> List[Any]:
        if field not in self._distinct:
            raise UnknownFieldError(field, self._distinct.keys())
        return list(self._distinct[field])

    def date_bounds(self) -> Optional[Tuple[date, date]]:
        return self._date_bounds

    def categorical_options(self) -> Dict[str, List[Any]]:
        return {f: self.distinct_values(f) for f in OPTION_FIELDS}

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self):
        return iter(self._rows)

    def __repr__(self) -> str:
        return f"DatasetStore(rows={len(self._rows)})"
