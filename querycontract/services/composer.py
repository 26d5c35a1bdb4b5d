from __future__ import annotations

import logging
import math
import weakref
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, create_model

from querycontract.core.config import settings
from querycontract.core.errors import ConfigError
from querycontract.schemas.query import Dir, FilterEntry, QueryRequest, SortClause
from querycontract.services.filtering import FilteringConfig, filtering_fragment
from querycontract.services.operators import FilterOperator
from querycontract.services.pagination import PaginationConfig, pagination_fragment
from querycontract.services.search import SearchConfig, search_fragment
from querycontract.services.sorting import SortingConfig, sorting_fragment
from querycontract.services.wire import ContractFragment, WireFieldSpec

_LOG = logging.getLogger("querycontract.compose")


@dataclass(frozen=True)
class ExtraField:
    name: str
    annotation: Any
    default: Any = None
    required: bool = False
    adapter: TypeAdapter = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class MetaFieldSpec:
    name: str
    type_label: str
    required: bool
    description: str


@dataclass(frozen=True, eq=False)
class QueryContract:
    """Composed, immutable description of what one list endpoint accepts."""

    pagination: PaginationConfig | None
    sorting: SortingConfig | None
    filtering: FilteringConfig | None
    search: SearchConfig | None
    extra_fields: Mapping[str, ExtraField]
    wire_fields: Mapping[str, WireFieldSpec]
    reserved: Mapping[str, str]
    meta_fields: Mapping[str, MetaFieldSpec]
    strict: bool

    @property
    def modules(self) -> tuple[str, ...]:
        present = (
            ("pagination", self.pagination),
            ("sorting", self.sorting),
            ("filtering", self.filtering),
            ("search", self.search),
        )
        return tuple(name for name, cfg in present if cfg is not None)

    def owner_of(self, wire_name: str) -> str | None:
        spec = self.wire_fields.get(wire_name)
        return spec.module if spec is not None else None


def _extra_field(name: str, declaration) -> ExtraField:
    text = str(name or "").strip()
    if not text:
        raise ConfigError("extra field names must be non-empty strings")
    if isinstance(declaration, tuple):
        if len(declaration) != 2:
            raise ConfigError(f'extra field "{text}" must be declared as annotation or (annotation, default)')
        annotation, default = declaration
        required = default is Ellipsis
        if required:
            default = None
    else:
        annotation, default, required = declaration, None, False
    try:
        adapter = TypeAdapter(annotation)
    except Exception as exc:
        raise ConfigError(f'extra field "{text}" has an unsupported type: {exc}') from exc
    return ExtraField(name=text, annotation=annotation, default=default, required=required, adapter=adapter)


def _extra_fragment(extras: Mapping[str, ExtraField]) -> ContractFragment:
    specs = tuple(
        WireFieldSpec(
            name=extra.name,
            module="extra",
            type_label=getattr(extra.annotation, "__name__", str(extra.annotation)),
            default=extra.default,
            required=extra.required,
        )
        for extra in extras.values()
    )
    return ContractFragment(module="extra", fields=specs)


_META_FIELD_TABLE: dict[str, tuple[str, str]] = {
    "total": ("integer", "Total number of items"),
    "limit": ("integer", "Items per page"),
    "hasMore": ("boolean", "Whether there are more items"),
    "offset": ("integer", "Current offset"),
    "page": ("integer", "Current page number"),
    "totalPages": ("integer", "Total number of pages"),
    "nextCursor": ("string|null", "Cursor for next page"),
    "prevCursor": ("string|null", "Cursor for previous page"),
    "sortBy": ("string|array", "Field used for sorting"),
    "sortDirection": ("string", "Sort direction applied"),
    "appliedFilters": ("object", "Filters applied to the query"),
    "filterCount": ("integer", "Number of filters applied"),
    "searchQuery": ("string", "Search query applied"),
    "searchFields": ("array<string>", "Fields searched"),
}


def _meta_specs(pagination, sorting, filtering, search) -> dict[str, MetaFieldSpec]:
    required: list[str] = []
    optional: list[str] = []
    if pagination is None:
        optional.append("total")
    else:
        required.extend(["total", "limit", "hasMore"])
        if pagination.offset_enabled:
            required.append("offset")
        if pagination.page_enabled:
            required.extend(["page", "totalPages"])
        if pagination.cursor_enabled:
            required.extend(["nextCursor", "prevCursor"])
    if sorting is not None:
        optional.extend(["sortBy", "sortDirection"])
    if filtering is not None:
        optional.extend(["appliedFilters", "filterCount"])
    if search is not None:
        optional.extend(["searchQuery", "searchFields"])
    specs: dict[str, MetaFieldSpec] = {}
    for name in required + optional:
        label, description = _META_FIELD_TABLE[name]
        specs[name] = MetaFieldSpec(name=name, type_label=label, required=name in required, description=description)
    return specs


def compose(
    *,
    pagination: PaginationConfig | None = None,
    sorting: SortingConfig | None = None,
    filtering: FilteringConfig | None = None,
    search: SearchConfig | None = None,
    extra_fields: Mapping[str, Any] | None = None,
    strict: bool | None = None,
) -> QueryContract:
    fragments: list[ContractFragment] = []
    if pagination is not None:
        fragments.append(pagination_fragment(pagination))
    if sorting is not None:
        fragments.append(sorting_fragment(sorting))
    if filtering is not None:
        fragments.append(filtering_fragment(filtering))
    if search is not None:
        fragments.append(search_fragment(search))

    extras = {}
    for name, declaration in (extra_fields or {}).items():
        extra = _extra_field(name, declaration)
        extras[extra.name] = extra
    if extras:
        fragments.append(_extra_fragment(extras))

    wire_fields: dict[str, WireFieldSpec] = {}
    for fragment in fragments:
        for spec in fragment.fields:
            owner = wire_fields.get(spec.name)
            if owner is not None:
                raise ConfigError(
                    f'field name collision: "{spec.name}" is introduced by both {owner.module} and {fragment.module}'
                )
            wire_fields[spec.name] = spec

    reserved: dict[str, str] = {}
    for fragment in fragments:
        for name in fragment.reserved:
            if name not in wire_fields:
                reserved[name] = fragment.module

    contract = QueryContract(
        pagination=pagination,
        sorting=sorting,
        filtering=filtering,
        search=search,
        extra_fields=MappingProxyType(extras),
        wire_fields=MappingProxyType(wire_fields),
        reserved=MappingProxyType(reserved),
        meta_fields=MappingProxyType(_meta_specs(pagination, sorting, filtering, search)),
        strict=settings.QUERY_STRICT_UNKNOWN_FIELDS if strict is None else bool(strict),
    )
    _LOG.info(
        "query contract composed modules=%s wire_fields=%d strict=%s",
        ",".join(contract.modules) or "-",
        len(wire_fields),
        contract.strict,
    )
    return contract


def _meta_annotation(name: str, required: bool, description: str):
    if name in {"total", "limit", "offset", "totalPages", "filterCount"}:
        if required:
            return int, Field(ge=0, description=description)
        return Optional[int], Field(default=None, ge=0, description=description)
    if name == "page":
        return int, Field(ge=1, description=description)
    if name == "hasMore":
        return bool, Field(description=description)
    if name in {"nextCursor", "prevCursor"}:
        return Optional[str], Field(description=description)
    optional_types = {
        "sortBy": Optional[Union[str, List[SortClause]]],
        "sortDirection": Optional[Dir],
        "appliedFilters": Optional[dict[str, Any]],
        "searchQuery": Optional[str],
        "searchFields": Optional[List[str]],
    }
    return optional_types[name], Field(default=None, description=description)


_META_MODELS: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


def build_meta_schema(contract: QueryContract) -> type[BaseModel]:
    cached = _META_MODELS.get(contract)
    if cached is not None:
        return cached
    fields = {
        name: _meta_annotation(name, spec.required, spec.description)
        for name, spec in contract.meta_fields.items()
    }
    model = create_model("QueryMeta", **fields)
    _META_MODELS[contract] = model
    return model


def build_output_schema(contract: QueryContract, item_model: type[BaseModel]) -> type[BaseModel]:
    meta_model = build_meta_schema(contract)
    return create_model(
        f"{item_model.__name__}Page",
        data=(List[item_model], ...),
        meta=(meta_model, ...),
    )


def _applied_filters(contract: QueryContract, entries: list[FilterEntry]) -> dict[str, Any]:
    applied: dict[str, Any] = {}
    for entry in entries:
        cfg = contract.filtering.fields.get(entry.field) if contract.filtering else None
        wire_name = cfg.wire_name if cfg is not None else entry.field
        if entry.operator != FilterOperator.EQ:
            wire_name = f"{wire_name}_{entry.operator.value}"
        applied[wire_name] = entry.value
    return applied


def build_page_meta(
    contract: QueryContract,
    request: QueryRequest,
    *,
    total: int,
    next_cursor: str | None = None,
    prev_cursor: str | None = None,
    applied_filters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Fill the response meta block for a validated request and a result count."""
    data: dict[str, Any] = {"total": total}
    pagination = contract.pagination
    if pagination is not None:
        limit = request.limit if request.limit is not None else pagination.default_limit
        if request.offset is not None:
            start = request.offset
        elif request.page is not None:
            start = (request.page - 1) * limit
        else:
            start = 0
        cursor_mode = request.cursor is not None or (
            pagination.cursor_enabled and request.offset is None and request.page is None
        )
        data["limit"] = limit
        if cursor_mode:
            data["hasMore"] = next_cursor is not None
        else:
            data["hasMore"] = start + limit < total if limit else start < total
        if pagination.offset_enabled:
            data["offset"] = start
        if pagination.page_enabled:
            data["page"] = request.page if request.page is not None else (start // limit + 1 if limit else 1)
            data["totalPages"] = math.ceil(total / limit) if limit else 0
        if pagination.cursor_enabled:
            data["nextCursor"] = next_cursor
            data["prevCursor"] = prev_cursor
    if contract.sorting is not None:
        data["sortBy"] = request.sort_by
        data["sortDirection"] = request.sort_direction
    if contract.filtering is not None:
        data["appliedFilters"] = (
            applied_filters if applied_filters is not None else _applied_filters(contract, request.filters or [])
        )
        data["filterCount"] = request.filter_count()
    if contract.search is not None:
        data["searchQuery"] = request.query
        data["searchFields"] = request.search_fields
    meta_model = build_meta_schema(contract)
    return meta_model.model_validate(data).model_dump()
