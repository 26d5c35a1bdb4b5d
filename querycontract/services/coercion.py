from __future__ import annotations

import json
import math
from datetime import date, datetime, timezone
from typing import Any, Sequence

from querycontract.core.config import settings
from querycontract.services.operators import ValueKind

_TRUE_TOKENS = {"1", "true", "yes", "y", "on"}
_FALSE_TOKENS = {"0", "false", "no", "n", "off"}
_NULL_TOKENS = {"null", "none"}


class CoercionError(ValueError):
    pass


def _describe(value: Any) -> str:
    text = repr(value)
    return text if len(text) <= 40 else text[:37] + "..."


def is_null_literal(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and value.strip().lower() in _NULL_TOKENS


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value if value is not None else "").strip().lower()
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS:
        return False
    raise CoercionError(f"expected a boolean, got {_describe(value)}")


def coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        raise CoercionError(f"expected an integer, got {_describe(value)}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise CoercionError(f"expected an integer, got {_describe(value)}")
    text = str(value if value is not None else "").strip()
    if not text:
        raise CoercionError("expected an integer, got an empty value")
    try:
        return int(text)
    except ValueError:
        raise CoercionError(f"expected an integer, got {_describe(value)}")


def coerce_number(value: Any) -> int | float:
    if isinstance(value, bool):
        raise CoercionError(f"expected a number, got {_describe(value)}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CoercionError(f"expected a finite number, got {_describe(value)}")
        return value
    if not isinstance(value, str):
        raise CoercionError(f"expected a number, got {_describe(value)}")
    text = value.strip()
    if not text:
        raise CoercionError("expected a number, got an empty value")
    normalized = text.replace(",", ".")
    try:
        return int(normalized)
    except ValueError:
        pass
    try:
        parsed = float(normalized)
    except ValueError:
        raise CoercionError(f"expected a number, got {_describe(value)}")
    if not math.isfinite(parsed):
        raise CoercionError(f"expected a finite number, got {_describe(value)}")
    return parsed


def coerce_date(value: Any) -> date | datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise CoercionError(f"expected an ISO date, got {_describe(value)}")
    text = value.strip()
    try:
        if "T" in text or " " in text:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        else:
            return date.fromisoformat(text)
    except ValueError:
        raise CoercionError(f"expected an ISO date, got {_describe(value)}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise CoercionError(f"expected a string, got {_describe(value)}")


def coerce_list(value: Any, *, separator: str | None = None) -> list[Any]:
    """Accept a list/tuple, a JSON array string or a separated string."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if not isinstance(value, str):
        raise CoercionError(f"expected a list, got {_describe(value)}")
    text = value.strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            raise CoercionError(f"expected a JSON array, got {_describe(value)}")
        if not isinstance(parsed, list):
            raise CoercionError(f"expected a JSON array, got {_describe(value)}")
        return parsed
    if not text:
        return []
    sep = separator or settings.QUERY_LIST_SEPARATOR
    return [part.strip() for part in text.split(sep)]


def coerce_pair(value: Any) -> tuple[list[Any], bool]:
    """Return the two bounds and whether the legacy {from, to} form was used."""
    legacy = False
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            value = json.loads(value)
        except ValueError:
            raise CoercionError(f"expected a range, got {_describe(value)}")
    if isinstance(value, dict):
        if set(value) != {"from", "to"}:
            raise CoercionError("expected exactly the keys 'from' and 'to'")
        items = [value["from"], value["to"]]
        legacy = True
    else:
        items = coerce_list(value)
    if len(items) != 2:
        raise CoercionError(f"expected exactly 2 values, got {len(items)}")
    return items, legacy


def coerce_kind(
    kind: ValueKind,
    value: Any,
    *,
    values: Sequence[str] | None = None,
    items: ValueKind | None = None,
) -> Any:
    if kind == ValueKind.STRING:
        return coerce_string(value)
    if kind == ValueKind.NUMBER:
        return coerce_number(value)
    if kind == ValueKind.BOOLEAN:
        return coerce_bool(value)
    if kind == ValueKind.DATE:
        return coerce_date(value)
    if kind == ValueKind.ENUM:
        text = coerce_string(value).strip()
        if values and text not in values:
            allowed = ", ".join(values)
            raise CoercionError(f"expected one of [{allowed}], got {_describe(value)}")
        return text
    if kind == ValueKind.ARRAY:
        # Array fields compare against a single element.
        return coerce_kind(items or ValueKind.STRING, value, values=values)
    raise CoercionError(f"unsupported value kind {kind!r}")
