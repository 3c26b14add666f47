from __future__ import annotations


class HealthVizError(Exception):
    """Base class for dashboard errors."""


class DatasetLoadError(HealthVizError):
    """The input dataset is missing or unreadable as a whole."""


class DatasetNotLoadedError(HealthVizError):
    pass


class UnknownFieldError(HealthVizError, ValueError):
    def __init__(self, field: str, allowed=None):
        self.field = field
        self.allowed = sorted(allowed) if allowed else []
        msg = f"Unknown field: {field!r}"
        if self.allowed:
            msg += f" (expected one of: {', '.join(self.allowed)})"
        super().__init__(msg)
