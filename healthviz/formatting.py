from __future__ import annotations

from datetime import date
from typing import Optional

from healthviz.normalize import DATE_FORMAT


def _is_blank(value: Optional[float]) -> bool:
    return value is None or value != value


def format_money(value: Optional[float]) -> str:
    if _is_blank(value):
        return "—"
    abs_value = abs(value)
    sign = "-" if value < 0 else ""
    if abs_value >= 1e9:
        return f"{sign}${abs_value / 1e9:.1f}B"
    if abs_value >= 1e6:
        return f"{sign}${abs_value / 1e6:.1f}M"
    if abs_value >= 1e3:
        return f"{sign}${abs_value / 1e3:.1f}K"
    return f"{sign}${abs_value:.0f}"


def format_number(value: Optional[float]) -> str:
    if _is_blank(value):
        return "—"
    out = f"{value:,.2f}".rstrip("0").rstrip(".")
    return out


def format_days(days: Optional[float]) -> str:
    if _is_blank(days):
        return "—"
    return f"{round(days)} d"


def format_los(days: Optional[float]) -> str:
    """KPI tile text for the average stay."""
    if _is_blank(days) or not days:
        return "—"
    return f"{days:.1f} days"


def format_date(value: Optional[date]) -> str:
    if value is None:
        return ""
    return value.strftime(DATE_FORMAT)
