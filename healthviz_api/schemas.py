from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class FilterSpecificationModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    age_group: str = "all"
    gender: str = "all"
    admission_type: str = "all"
    condition: str = "all"
    test_result: str = "all"
    blood_type: str = "all"
    insurance: str = "all"
    selected_hospital: Optional[str] = None
    length_of_stay_max: Optional[float] = None
    billing_range: Optional[Tuple[float, float]] = None
    admission_date_from: Optional[date] = None
    admission_date_to: Optional[date] = None


class PredicateUpdate(BaseModel):
    value: Any = None


class MetaOptionsResponse(BaseModel):
    options: Dict[str, List[str]]


class MetaDateBoundsResponse(BaseModel):
    min: Optional[date] = None
    max: Optional[date] = None
