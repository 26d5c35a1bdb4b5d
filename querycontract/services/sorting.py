from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from querycontract.core.errors import ConfigError
from querycontract.services.wire import ContractFragment, WireFieldSpec

SORT_DIRECTIONS = ("asc", "desc")
NULLS_HANDLING = ("first", "last")


@dataclass(frozen=True)
class SortingConfig:
    fields: tuple[str, ...]
    default_field: str | None
    default_direction: str
    allow_multiple: bool
    allow_nulls_handling: bool


def build_sorting_config(
    fields: Iterable[str],
    *,
    default_field: str | None = None,
    default_direction: str = "asc",
    allow_multiple: bool = False,
    allow_nulls_handling: bool = False,
) -> SortingConfig:
    if isinstance(fields, str):
        fields = (fields,)
    ordered: list[str] = []
    for name in fields:
        text = str(name or "").strip()
        if not text:
            raise ConfigError("sortable field names must be non-empty strings")
        if text in ordered:
            raise ConfigError(f'sortable field "{text}" is declared twice')
        ordered.append(text)
    if not ordered:
        raise ConfigError("At least one sortable field must be provided")
    if default_field is not None and default_field not in ordered:
        raise ConfigError(f'default sort field "{default_field}" is not one of the sortable fields')
    if default_direction not in SORT_DIRECTIONS:
        raise ConfigError(f"default sort direction must be asc or desc, got {default_direction!r}")
    return SortingConfig(
        fields=tuple(ordered),
        default_field=default_field,
        default_direction=default_direction,
        allow_multiple=bool(allow_multiple),
        allow_nulls_handling=bool(allow_nulls_handling),
    )


def sorting_fragment(config: SortingConfig) -> ContractFragment:
    reserved: set[str] = set()
    if config.allow_multiple:
        fields = [
            WireFieldSpec(
                name="sortBy",
                module="sorting",
                type_label="array",
                description="Ordered list of {field, direction} sort criteria",
                default=(
                    [{"field": config.default_field, "direction": config.default_direction}]
                    if config.default_field
                    else None
                ),
                choices=config.fields,
            )
        ]
        reserved.add("sortDirection")
    else:
        fields = [
            WireFieldSpec(
                name="sortBy",
                module="sorting",
                type_label="string",
                description="Field to sort by",
                default=config.default_field,
                choices=config.fields,
            ),
            WireFieldSpec(
                name="sortDirection",
                module="sorting",
                type_label="string",
                description="Sort direction",
                default=config.default_direction,
                choices=SORT_DIRECTIONS,
            ),
        ]
    if config.allow_nulls_handling:
        fields.append(
            WireFieldSpec(
                name="nullsHandling",
                module="sorting",
                type_label="string",
                description="How to handle null values in sorting",
                choices=NULLS_HANDLING,
            )
        )
    else:
        reserved.add("nullsHandling")
    return ContractFragment(module="sorting", fields=tuple(fields), reserved=frozenset(reserved))
