from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class ConfigError(ValueError):
    """Invalid contract declaration. Raised at build time, never per request."""


class FieldErrorKind(str, Enum):
    OUT_OF_RANGE = "out_of_range"
    UNKNOWN_FIELD = "unknown_field"
    UNKNOWN_OPERATOR = "unknown_operator"
    TYPE_MISMATCH = "type_mismatch"
    QUERY_LENGTH = "query_length"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    EXCLUSIVE_MODE_VIOLATION = "exclusive_mode_violation"


@dataclass(frozen=True)
class FieldError:
    key: str
    kind: FieldErrorKind
    message: str

    def as_dict(self) -> dict[str, Any]:
        return {"field": self.key, "type": self.kind.value, "message": self.message}


class QueryValidationError(ValueError):
    def __init__(self, errors: Iterable[FieldError]):
        self.errors = list(errors)
        summary = "; ".join(f"{err.key}: {err.message}" for err in self.errors)
        super().__init__(summary or "Query validation failed")
