from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Tuple

TEST_RESULTS: Tuple[str, ...] = ("Normal", "Abnormal", "Inconclusive")
DEFAULT_TEST_RESULT = "Inconclusive"

AGE_GROUPS: Tuple[str, ...] = ("0–18", "19–40", "41–65", "65+")

REGIONS: Tuple[str, ...] = ("West", "Midwest", "South", "Northeast")

UNKNOWN_GROUP = "Unknown"

# Row fields that hold a closed or open set of labels (filter dropdown options).
CATEGORICAL_FIELDS: Tuple[str, ...] = (
    "age_group",
    "gender",
    "blood_type",
    "medical_condition",
    "medication",
    "test_result",
    "doctor",
    "hospital",
    "insurance",
    "admission_type",
    "region",
)


@dataclass(frozen=True)
class Row:
    row_id: int = 0
    name: Optional[str] = None
    age: Optional[int] = None
    age_group: Optional[str] = None
    gender: Optional[str] = None
    blood_type: Optional[str] = None

    medical_condition: Optional[str] = None
    medication: Optional[str] = None
    test_result: str = DEFAULT_TEST_RESULT

    doctor: Optional[str] = None
    hospital: Optional[str] = None
    insurance: Optional[str] = None
    admission_type: Optional[str] = None

    billing_amount: Optional[float] = None
    room_number: Optional[int] = None

    admission_date: Optional[date] = None
    discharge_date: Optional[date] = None
    length_of_stay_days: Optional[float] = None

    region: Optional[str] = None


@dataclass(frozen=True)
class KpiScalars:
    count: int = 0
    total_billing: float = 0.0
    avg_billing: Optional[float] = None
    avg_length_of_stay: Optional[float] = None
    hospital_count: int = 0


@dataclass(frozen=True)
class GroupStats:
    key: str
    count: int
    avg_billing: float
    dominant_test_result: str


@dataclass(frozen=True)
class AggregateSnapshot:
    scalars: KpiScalars = field(default_factory=KpiScalars)
    groups: Tuple[GroupStats, ...] = ()
