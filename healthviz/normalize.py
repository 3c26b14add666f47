"""Raw record -> :class:`~healthviz.models.Row` normalization.

Every helper here is total: malformed input resolves to ``None`` (or the
documented default) instead of raising, so a whole file can be normalized
without per-row error handling.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Tuple

import pandas as pd

from healthviz.models import DEFAULT_TEST_RESULT, TEST_RESULTS, UNKNOWN_GROUP, Row

DATE_FORMAT = "%Y-%m-%d"
NA_TOKENS = {"", "null", "N/A", "NA"}

MIN_AGE = 0
MAX_AGE = 110

RAW_COLUMNS = {
    "Name": "name",
    "Age": "age",
    "Gender": "gender",
    "Blood Type": "blood_type",
    "Medical Condition": "medical_condition",
    "Date of Admission": "admission_date",
    "Admission Date": "admission_date",
    "Doctor": "doctor",
    "Hospital": "hospital",
    "Insurance Provider": "insurance",
    "Insurance": "insurance",
    "Billing Amount": "billing_amount",
    "Room Number": "room_number",
    "Admission Type": "admission_type",
    "Discharge Date": "discharge_date",
    "Medication": "medication",
    "Test Results": "test_result",
    "Test Result": "test_result",
}

# Rough contiguous US bounds used for stable hospital placement.
LON_MIN, LON_MAX = -124.7, -66.9
LAT_MIN, LAT_MAX = 25.0, 49.2

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if not pd.api.types.is_scalar(value):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def clean_string(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    s = str(value).strip()
    if s in NA_TOKENS:
        return None
    return s


def clean_hospital_name(value: Any) -> Optional[str]:
    s = clean_string(value)
    if not s:
        return None
    # Some entries end with commas or have random spacing.
    s = re.sub(r",+$", "", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s or None


def safe_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            out = float(value)
        except OverflowError:
            return None
    else:
        s = clean_string(value)
        if s is None:
            return None
        try:
            out = float(pd.to_numeric(s, errors="coerce"))
        except (TypeError, ValueError, OverflowError):
            return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = clean_string(value)
    if s is None:
        return None
    try:
        ts = pd.to_datetime(s, format=DATE_FORMAT, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return ts.date()


def clean_age(value: Any) -> Optional[int]:
    age = safe_number(value)
    if age is None or age < MIN_AGE or age > MAX_AGE:
        return None
    return int(round(age))


def age_group_from_age(age: Optional[float]) -> Optional[str]:
    if age is None:
        return None
    if age <= 18:
        return "0–18"
    if age <= 40:
        return "19–40"
    if age <= 65:
        return "41–65"
    return "65+"


def days_between(start: Optional[date], end: Optional[date]) -> Optional[float]:
    if start is None or end is None:
        return None
    days = float((end - start).days)
    # Swapped or messy dates are a data error; don't pretend they're valid.
    if days < 0:
        return None
    return days


def normalize_test_result(value: Any) -> str:
    s = clean_string(value)
    if s in TEST_RESULTS:
        return s
    return DEFAULT_TEST_RESULT


def hash_string_to_unit(text: str) -> float:
    """32-bit FNV-1a over UTF-16 code units, scaled to [0, 1)."""
    h = _FNV_OFFSET
    # Lone surrogates hash as their own code unit.
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h / 4294967296


def hospital_to_lon_lat(hospital: Optional[str]) -> Tuple[float, float]:
    name = hospital or UNKNOWN_GROUP
    t = hash_string_to_unit(name)
    t2 = hash_string_to_unit(name + "::b")
    # Keep points away from the edges a bit.
    lon = LON_MIN + (LON_MAX - LON_MIN) * (0.06 + 0.88 * t)
    lat = LAT_MIN + (LAT_MAX - LAT_MIN) * (0.08 + 0.84 * t2)
    return lon, lat


def region_from_hospital(hospital: Optional[str]) -> str:
    lon, lat = hospital_to_lon_lat(hospital)
    if lon <= -110:
        return "West"
    if lon >= -90 and lat >= 37:
        return "Northeast"
    if lon >= -90:
        return "South"
    return "Midwest"


def _by_field(raw: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for column, value in raw.items():
        target = RAW_COLUMNS.get(str(column).strip())
        if target is None:
            continue
        if target not in out or _is_missing(out[target]):
            out[target] = value
    return out


def normalize_record(raw: Optional[Mapping[str, Any]], row_id: int = 0) -> Row:
    values = _by_field(raw) if isinstance(raw, Mapping) else {}

    age = clean_age(values.get("age"))
    admission = parse_date(values.get("admission_date"))
    discharge = parse_date(values.get("discharge_date"))
    billing = safe_number(values.get("billing_amount"))
    room = safe_number(values.get("room_number"))
    hospital = clean_hospital_name(values.get("hospital"))

    return Row(
        row_id=row_id,
        name=clean_string(values.get("name")),
        age=age,
        age_group=age_group_from_age(age),
        gender=clean_string(values.get("gender")),
        blood_type=clean_string(values.get("blood_type")),
        medical_condition=clean_string(values.get("medical_condition")),
        medication=clean_string(values.get("medication")),
        test_result=normalize_test_result(values.get("test_result")),
        doctor=clean_string(values.get("doctor")),
        hospital=hospital,
        insurance=clean_string(values.get("insurance")),
        admission_type=clean_string(values.get("admission_type")),
        billing_amount=billing if billing is not None and billing >= 0 else None,
        room_number=int(round(room)) if room is not None and room >= 0 else None,
        admission_date=admission,
        discharge_date=discharge,
        length_of_stay_days=days_between(admission, discharge),
        region=region_from_hospital(hospital),
    )
