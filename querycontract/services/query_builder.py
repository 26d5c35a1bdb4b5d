from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from querycontract.services.composer import QueryContract, compose
from querycontract.services.filtering import FieldFilter, FilteringConfig, build_filtering_config
from querycontract.services.pagination import MODE_CURSOR, MODE_OFFSET, MODE_PAGE, PaginationConfig, build_pagination_config
from querycontract.services.search import SearchConfig, build_search_config
from querycontract.services.sorting import SortingConfig, build_sorting_config
from querycontract.services.validator import ValidationResult, validate

_LOG = logging.getLogger("querycontract.builder")


@dataclass(frozen=True, eq=False)
class QueryBuilder:
    """Immutable fluent entry point; every with_* call returns a new builder.

    >>> contract = (
    ...     QueryBuilder()
    ...     .with_pagination(build_pagination_config(default_limit=20))
    ...     .with_sorting(build_sorting_config(["name", "createdAt"], default_field="createdAt"))
    ...     .build()
    ... )
    """

    pagination: PaginationConfig | None = None
    sorting: SortingConfig | None = None
    filtering: FilteringConfig | None = None
    search: SearchConfig | None = None
    extra_fields: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    strict: bool | None = None
    _cache: dict = field(default_factory=dict, repr=False, compare=False)

    def _copy(self, **changes) -> "QueryBuilder":
        return replace(self, _cache={}, **changes)

    def with_pagination(self, config: PaginationConfig | None) -> "QueryBuilder":
        return self._copy(pagination=config)

    def with_sorting(self, config: SortingConfig | None) -> "QueryBuilder":
        return self._copy(sorting=config)

    def with_filtering(self, config: FilteringConfig | None) -> "QueryBuilder":
        return self._copy(filtering=config)

    def with_search(self, config: SearchConfig | None) -> "QueryBuilder":
        return self._copy(search=config)

    def with_extra_fields(self, fields: Mapping[str, Any]) -> "QueryBuilder":
        merged = dict(self.extra_fields)
        merged.update(fields or {})
        return self._copy(extra_fields=MappingProxyType(merged))

    def with_strict(self, strict: bool = True) -> "QueryBuilder":
        return self._copy(strict=bool(strict))

    def build(self) -> QueryContract:
        contract = self._cache.get("contract")
        if contract is None:
            contract = compose(
                pagination=self.pagination,
                sorting=self.sorting,
                filtering=self.filtering,
                search=self.search,
                extra_fields=dict(self.extra_fields) or None,
                strict=self.strict,
            )
            self._cache["contract"] = contract
        return contract

    def validate(self, raw: Mapping[str, Any] | None) -> ValidationResult:
        return validate(self.build(), raw)


def basic_list_query(
    sortable_fields: Iterable[str],
    default_sort_field: str | None = None,
    *,
    default_limit: int = 20,
    max_limit: int = 100,
) -> QueryBuilder:
    return QueryBuilder(
        pagination=build_pagination_config(
            default_limit=default_limit,
            max_limit=max_limit,
            modes=(MODE_OFFSET, MODE_PAGE),
        ),
        sorting=build_sorting_config(sortable_fields, default_field=default_sort_field),
    )


def searchable_list_query(
    sortable_fields: Iterable[str],
    searchable_fields: Iterable[str],
    default_sort_field: str | None = None,
    *,
    default_limit: int = 20,
    max_limit: int = 100,
) -> QueryBuilder:
    return basic_list_query(
        sortable_fields,
        default_sort_field,
        default_limit=default_limit,
        max_limit=max_limit,
    ).with_search(
        build_search_config(
            searchable_fields,
            min_query_length=1,
            max_query_length=500,
            allow_field_selection=True,
        )
    )


def advanced_query(
    sortable_fields: Iterable[str],
    searchable_fields: Iterable[str] | None,
    filterable_fields: Mapping[str, FieldFilter | str],
    default_sort_field: str | None = None,
    *,
    default_limit: int = 20,
    max_limit: int = 100,
) -> QueryBuilder:
    builder = QueryBuilder(
        pagination=build_pagination_config(
            default_limit=default_limit,
            max_limit=max_limit,
            modes=(MODE_OFFSET, MODE_PAGE, MODE_CURSOR),
        ),
        sorting=build_sorting_config(sortable_fields, default_field=default_sort_field, allow_multiple=True),
        filtering=build_filtering_config(filterable_fields, allow_logical_operators=True),
    )
    if searchable_fields:
        builder = builder.with_search(
            build_search_config(
                searchable_fields,
                min_query_length=1,
                allow_field_selection=True,
                allow_fuzzy=True,
            )
        )
    _LOG.debug("advanced query preset prepared sortable=%s", ",".join(builder.sorting.fields))
    return builder
