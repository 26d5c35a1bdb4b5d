from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class WireFieldSpec:
    """One key a caller may send, and the module that owns it."""

    name: str
    module: str
    type_label: str
    description: str = ""
    default: Any = None
    required: bool = False
    choices: tuple[str, ...] | None = None
    minimum: int | None = None
    maximum: int | None = None


@dataclass(frozen=True)
class ContractFragment:
    module: str
    fields: tuple[WireFieldSpec, ...]
    # Keys the module understands but has switched off by configuration.
    reserved: frozenset[str] = field(default_factory=frozenset)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)
