from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import ValidationError

from querycontract.core.errors import FieldError, FieldErrorKind, QueryValidationError
from querycontract.schemas.query import FilterEntry, FilterGroup, FilterNode, QueryRequest, SortClause
from querycontract.services.coercion import (
    CoercionError,
    coerce_bool,
    coerce_int,
    coerce_kind,
    coerce_list,
    coerce_pair,
    coerce_string,
    is_null_literal,
)
from querycontract.services.composer import QueryContract
from querycontract.services.filtering import LOGICAL_KEYS, FieldFilterConfig, FilteringConfig, FilterRoute
from querycontract.services.operators import FilterOperator, ValueShape, known_operator_tokens
from querycontract.services.pagination import CURSOR_DIRECTIONS, PaginationConfig
from querycontract.services.search import SEARCH_KEYS, SearchConfig
from querycontract.services.sorting import NULLS_HANDLING, SORT_DIRECTIONS, SortingConfig

_LOG = logging.getLogger("querycontract.validate")

Kind = FieldErrorKind


@dataclass
class ValidationResult:
    value: QueryRequest | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> QueryRequest:
        if self.errors:
            raise QueryValidationError(self.errors)
        return self.value


class _Run:
    """Mutable state for a single validate() call."""

    def __init__(self, raw: Mapping[str, Any]):
        self.raw = raw
        self.out: dict[str, Any] = {}
        self.errors: list[FieldError] = []
        self.claimed: set[str] = set()

    def fail(self, key: str, kind: FieldErrorKind, message: str) -> None:
        self.errors.append(FieldError(key=key, kind=kind, message=message))

    def take(self, key: str) -> tuple[bool, Any]:
        """Claim a key and report whether the caller supplied a value for it."""
        self.claimed.add(key)
        if key not in self.raw:
            return False, None
        value = self.raw[key]
        return value is not None, value


# Pagination


def _check_pagination(cfg: PaginationConfig, run: _Run) -> None:
    present, value = run.take("limit")
    if present:
        try:
            limit = coerce_int(value)
        except CoercionError as exc:
            run.fail("limit", Kind.TYPE_MISMATCH, f"limit: {exc}")
        else:
            if not cfg.min_limit <= limit <= cfg.max_limit:
                run.fail(
                    "limit",
                    Kind.OUT_OF_RANGE,
                    f"limit must be between {cfg.min_limit} and {cfg.max_limit}, got {limit}",
                )
            run.out["limit"] = limit
    else:
        run.out["limit"] = cfg.default_limit

    supplied: list[str] = []
    for mode in cfg.ordered_modes:
        mode_present, _ = run.take(mode)
        if mode_present:
            supplied.append(mode)
    if len(supplied) > 1:
        run.fail(
            supplied[-1],
            Kind.EXCLUSIVE_MODE_VIOLATION,
            f"{' and '.join(supplied)} cannot be combined in one request; use exactly one pagination mode",
        )

    if "offset" in supplied:
        try:
            offset = coerce_int(run.raw["offset"])
        except CoercionError as exc:
            run.fail("offset", Kind.TYPE_MISMATCH, f"offset: {exc}")
        else:
            if offset < 0:
                run.fail("offset", Kind.OUT_OF_RANGE, f"offset must be >= 0, got {offset}")
            run.out["offset"] = offset
    if "page" in supplied:
        try:
            page = coerce_int(run.raw["page"])
        except CoercionError as exc:
            run.fail("page", Kind.TYPE_MISMATCH, f"page: {exc}")
        else:
            if page < 1:
                run.fail("page", Kind.OUT_OF_RANGE, f"page must be >= 1, got {page}")
            run.out["page"] = page
    if "cursor" in supplied:
        try:
            run.out["cursor"] = coerce_string(run.raw["cursor"])
        except CoercionError as exc:
            run.fail("cursor", Kind.TYPE_MISMATCH, f"cursor: {exc}")

    if cfg.cursor_enabled:
        direction_present, direction = run.take("cursorDirection")
        if direction_present:
            text = str(direction).strip().lower()
            if text in CURSOR_DIRECTIONS:
                run.out["cursor_direction"] = text
            else:
                run.fail("cursorDirection", Kind.TYPE_MISMATCH, "cursorDirection must be forward or backward")
        elif "cursor" in supplied:
            run.out["cursor_direction"] = "forward"

    if not supplied:
        if cfg.offset_enabled:
            run.out["offset"] = 0
        elif cfg.page_enabled:
            run.out["page"] = 1


# Sorting


def _parse_direction(value: Any, default: str) -> str | None:
    if value is None:
        return default
    text = str(value).strip().lower()
    return text if text in SORT_DIRECTIONS else None


def _sort_items(value: Any) -> list[Any]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, str) and value.strip().startswith("{"):
        return [json.loads(value)]
    return coerce_list(value)


def _parse_sort_clause(cfg: SortingConfig, item: Any) -> tuple[SortClause | None, FieldErrorKind, str]:
    if isinstance(item, str) and item.strip().startswith("{"):
        try:
            item = json.loads(item)
        except ValueError:
            return None, Kind.TYPE_MISMATCH, "sort criterion is not valid JSON"
    if isinstance(item, dict):
        name = str(item.get("field") or "").strip()
        direction = _parse_direction(item.get("direction"), cfg.default_direction)
        unexpected = sorted(set(item) - {"field", "direction"})
        if unexpected:
            return None, Kind.TYPE_MISMATCH, f"unexpected sort keys: {', '.join(unexpected)}"
    elif isinstance(item, str):
        text = item.strip()
        if text.startswith("-"):
            name, direction = text[1:].strip(), "desc"
        elif ":" in text:
            head, _, tail = text.partition(":")
            name, direction = head.strip(), _parse_direction(tail, cfg.default_direction)
        else:
            name, direction = text, cfg.default_direction
    else:
        return None, Kind.TYPE_MISMATCH, "sort criterion must be an object or a string"
    if not name:
        return None, Kind.TYPE_MISMATCH, "sort criterion requires a field"
    if name not in cfg.fields:
        return None, Kind.UNKNOWN_FIELD, f'cannot sort by "{name}"; allowed: {", ".join(cfg.fields)}'
    if direction is None:
        return None, Kind.TYPE_MISMATCH, "sort direction must be asc or desc"
    return SortClause(field=name, direction=direction), Kind.TYPE_MISMATCH, ""


def _check_sorting(cfg: SortingConfig, run: _Run) -> None:
    present, value = run.take("sortBy")
    if cfg.allow_multiple:
        if present:
            try:
                items = _sort_items(value)
            except (CoercionError, ValueError) as exc:
                run.fail("sortBy", Kind.TYPE_MISMATCH, f"sortBy: {exc}")
                items = None
            if items is not None and not items:
                run.fail("sortBy", Kind.TYPE_MISMATCH, "sortBy requires at least one sort criterion")
            clauses: list[SortClause] = []
            seen: set[str] = set()
            for index, item in enumerate(items or []):
                clause, kind, message = _parse_sort_clause(cfg, item)
                if clause is None:
                    run.fail(f"sortBy[{index}]", kind, message)
                    continue
                if clause.field in seen:
                    run.fail(f"sortBy[{index}]", Kind.TYPE_MISMATCH, f'"{clause.field}" is sorted more than once')
                    continue
                seen.add(clause.field)
                clauses.append(clause)
            run.out["sort_by"] = clauses
        elif cfg.default_field:
            run.out["sort_by"] = [SortClause(field=cfg.default_field, direction=cfg.default_direction)]
    else:
        if present:
            if isinstance(value, (list, tuple, dict)):
                run.fail("sortBy", Kind.TYPE_MISMATCH, "only a single sort field is accepted")
            else:
                name = str(value).strip()
                if name in cfg.fields:
                    run.out["sort_by"] = name
                else:
                    run.fail("sortBy", Kind.UNKNOWN_FIELD, f'cannot sort by "{name}"; allowed: {", ".join(cfg.fields)}')
        elif cfg.default_field:
            run.out["sort_by"] = cfg.default_field
        direction_present, direction = run.take("sortDirection")
        parsed = _parse_direction(direction if direction_present else None, cfg.default_direction)
        if parsed is None:
            run.fail("sortDirection", Kind.TYPE_MISMATCH, "sortDirection must be asc or desc")
        else:
            run.out["sort_direction"] = parsed

    if cfg.allow_nulls_handling:
        nulls_present, nulls = run.take("nullsHandling")
        if nulls_present:
            text = str(nulls).strip().lower()
            if text in NULLS_HANDLING:
                run.out["nulls_handling"] = text
            else:
                run.fail("nullsHandling", Kind.TYPE_MISMATCH, "nullsHandling must be first or last")


# Filtering


def _diagnose_filter_key(cfg: FilteringConfig, key: str) -> tuple[FieldErrorKind, str] | None:
    bare = cfg.field_for_wire(key)
    if bare is not None:
        allowed = ", ".join(sorted(op.value for op in bare.operators))
        return Kind.UNKNOWN_OPERATOR, f'"{bare.name}" does not support eq; allowed operators: {allowed}'
    for token in known_operator_tokens():
        suffix = f"_{token}"
        if not key.endswith(suffix) or len(key) == len(suffix):
            continue
        target = cfg.field_for_wire(key[: -len(suffix)])
        if target is not None:
            if token == FilterOperator.EQ.value and FilterOperator.EQ in target.operators:
                return Kind.UNKNOWN_OPERATOR, f'use the bare name "{target.wire_name}" for eq'
            allowed = ", ".join(sorted(op.value for op in target.operators))
            return Kind.UNKNOWN_OPERATOR, f'operator "{token}" is not allowed for "{target.name}"; allowed: {allowed}'
        return Kind.UNKNOWN_FIELD, f'"{key[: -len(suffix)]}" is not a filterable field'
    return None


def _coerce_element(cfg: FieldFilterConfig, value: Any) -> Any:
    return coerce_kind(cfg.kind, value, values=cfg.values, items=cfg.items)


def _filter_value(cfg: FieldFilterConfig, route: FilterRoute, value: Any) -> Any:
    if route.alias:
        _LOG.warning("deprecated filter operator alias used alias=%s field=%s", route.alias, cfg.name)
    shape = cfg.shapes[route.operator].shape
    if shape == ValueShape.BOOLEAN:
        return coerce_bool(value)
    if shape == ValueShape.LIST:
        items = coerce_list(value)
        if not items:
            raise CoercionError("expected at least one value")
        parsed = []
        for index, item in enumerate(items):
            try:
                parsed.append(_coerce_element(cfg, item))
            except CoercionError as exc:
                raise CoercionError(f"item {index}: {exc}")
        return parsed
    if shape == ValueShape.PAIR:
        items, legacy = coerce_pair(value)
        if legacy:
            _LOG.warning("deprecated {from, to} range form used field=%s", cfg.name)
        return [_coerce_element(cfg, item) for item in items]
    if cfg.nullable and route.operator in (FilterOperator.EQ, FilterOperator.NE) and is_null_literal(value):
        return None
    parsed = _coerce_element(cfg, value)
    if route.operator == FilterOperator.REGEX:
        try:
            re.compile(parsed)
        except re.error as exc:
            raise CoercionError(f"invalid regular expression: {exc}")
    return parsed


class _FilterState:
    def __init__(self, cfg: FilteringConfig, run: _Run):
        self.cfg = cfg
        self.run = run
        self.count = 0

    def entry(self, key: str, route: FilterRoute, value: Any) -> FilterEntry | None:
        field_cfg = self.cfg.fields[route.field]
        try:
            parsed = _filter_value(field_cfg, route, value)
        except CoercionError as exc:
            self.run.fail(key, Kind.TYPE_MISMATCH, f"{key}: {exc}")
            return None
        self.count += 1
        return FilterEntry(field=route.field, operator=route.operator, value=parsed)

    def group(self, key: str, logic_key: str, value: Any, depth: int) -> FilterGroup | None:
        if depth > self.cfg.max_depth:
            self.run.fail(key, Kind.OUT_OF_RANGE, f"filters may be nested at most {self.cfg.max_depth} levels deep")
            return None
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                self.run.fail(key, Kind.TYPE_MISMATCH, f"{key} must be a JSON array of filter objects")
                return None
        if isinstance(value, dict):
            value = [value]
        if not isinstance(value, (list, tuple)) or not value:
            self.run.fail(key, Kind.TYPE_MISMATCH, f"{key} must be a non-empty list of filter objects")
            return None
        branches: list[FilterNode] = []
        for index, item in enumerate(value):
            item_key = f"{key}[{index}]"
            if not isinstance(item, dict):
                self.run.fail(item_key, Kind.TYPE_MISMATCH, f"{item_key} must be a filter object")
                continue
            branches.append(self.node(item, item_key, depth))
        return FilterGroup(logic=logic_key[1:], branches=branches)

    def node(self, obj: Mapping[str, Any], path: str, depth: int) -> FilterNode:
        filters: list[FilterEntry] = []
        groups: list[FilterGroup] = []
        for key, value in obj.items():
            full_key = f"{path}.{key}"
            route = self.cfg.routes.get(key)
            if route is not None:
                entry = self.entry(full_key, route, value)
                if entry is not None:
                    filters.append(entry)
            elif key in LOGICAL_KEYS and self.cfg.allow_logical_operators:
                group = self.group(full_key, key, value, depth + 1)
                if group is not None:
                    groups.append(group)
            else:
                kind, message = _diagnose_filter_key(self.cfg, key) or (
                    Kind.UNKNOWN_FIELD,
                    f'"{key}" is not a filter field',
                )
                self.run.fail(full_key, kind, message)
        return FilterNode(filters=filters, groups=groups)


def _check_filtering(cfg: FilteringConfig, run: _Run) -> None:
    state = _FilterState(cfg, run)
    filters: list[FilterEntry] = []
    groups: list[FilterGroup] = []
    for key, value in run.raw.items():
        route = cfg.routes.get(key)
        if route is not None:
            run.claimed.add(key)
            entry = state.entry(key, route, value)
            if entry is not None:
                filters.append(entry)
        elif key in LOGICAL_KEYS and cfg.allow_logical_operators:
            run.claimed.add(key)
            group = state.group(key, key, value, 1)
            if group is not None:
                groups.append(group)
    if cfg.max_conditions is not None and state.count > cfg.max_conditions:
        run.fail(
            "filters",
            Kind.OUT_OF_RANGE,
            f"at most {cfg.max_conditions} filter conditions are allowed, got {state.count}",
        )
    if filters:
        run.out["filters"] = filters
    if groups:
        run.out["filter_groups"] = groups


# Search


def _check_search(cfg: SearchConfig, contract: QueryContract, run: _Run) -> None:
    owned = [key for key in SEARCH_KEYS if contract.owner_of(key) == "search"]
    supplied = [key for key in owned if run.raw.get(key) is not None]
    for key in owned:
        run.claimed.add(key)
    if not supplied:
        return

    query = None
    if "query" in supplied:
        try:
            query = coerce_string(run.raw["query"]).strip()
        except CoercionError as exc:
            run.fail("query", Kind.TYPE_MISMATCH, f"query: {exc}")
        else:
            if not cfg.min_query_length <= len(query) <= cfg.max_query_length:
                run.fail(
                    "query",
                    Kind.QUERY_LENGTH,
                    f"query must be {cfg.min_query_length}-{cfg.max_query_length} characters, got {len(query)}",
                )
            run.out["query"] = query
    else:
        run.fail("query", Kind.MISSING_REQUIRED_FIELD, "query is required when search parameters are supplied")

    mode = run.raw.get("mode")
    if mode is None:
        run.out["mode"] = "contains"
    elif str(mode).strip() in cfg.modes:
        run.out["mode"] = str(mode).strip()
    else:
        run.fail("mode", Kind.TYPE_MISMATCH, f"mode must be one of {', '.join(cfg.modes)}")

    run.out["case_sensitive"] = cfg.case_sensitive
    if "caseSensitive" in supplied:
        try:
            run.out["case_sensitive"] = coerce_bool(run.raw["caseSensitive"])
        except CoercionError as exc:
            run.fail("caseSensitive", Kind.TYPE_MISMATCH, f"caseSensitive: {exc}")

    if cfg.searchable_fields:
        run.out["search_fields"] = list(cfg.searchable_fields)
    if "searchFields" in supplied:
        try:
            names = [str(name).strip() for name in coerce_list(run.raw["searchFields"])]
        except CoercionError as exc:
            run.fail("searchFields", Kind.TYPE_MISMATCH, f"searchFields: {exc}")
        else:
            unknown = [name for name in names if name not in cfg.searchable_fields]
            if unknown:
                run.fail(
                    "searchFields",
                    Kind.UNKNOWN_FIELD,
                    f"not searchable: {', '.join(unknown)}; allowed: {', '.join(cfg.searchable_fields)}",
                )
            elif not names:
                run.fail("searchFields", Kind.TYPE_MISMATCH, "searchFields requires at least one field")
            else:
                run.out["search_fields"] = list(dict.fromkeys(names))

    if cfg.allow_regex:
        use_regex = False
        if "useRegex" in supplied:
            try:
                use_regex = coerce_bool(run.raw["useRegex"])
            except CoercionError as exc:
                run.fail("useRegex", Kind.TYPE_MISMATCH, f"useRegex: {exc}")
        run.out["use_regex"] = use_regex
        if use_regex and query:
            try:
                re.compile(query)
            except re.error as exc:
                run.fail("query", Kind.TYPE_MISMATCH, f"query is not a valid regular expression: {exc}")


# Extra fields


def _check_extra_fields(contract: QueryContract, run: _Run) -> None:
    values: dict[str, Any] = {}
    for name, extra in contract.extra_fields.items():
        present, value = run.take(name)
        if present:
            try:
                values[name] = extra.adapter.validate_python(value)
            except ValidationError as exc:
                details = exc.errors()
                message = details[0].get("msg", "invalid value") if details else "invalid value"
                run.fail(name, Kind.TYPE_MISMATCH, f"{name}: {message}")
        elif extra.required:
            run.fail(name, Kind.MISSING_REQUIRED_FIELD, f"{name} is required")
        elif extra.default is not None:
            values[name] = extra.default
    run.out["extra"] = values


def _check_unclaimed(contract: QueryContract, run: _Run) -> None:
    for key in run.raw:
        if key in run.claimed:
            continue
        module = contract.reserved.get(key)
        if module is not None:
            run.fail(key, Kind.UNKNOWN_FIELD, f'"{key}" is not enabled for this endpoint')
            continue
        diagnosis = _diagnose_filter_key(contract.filtering, key) if contract.filtering else None
        if diagnosis is not None and diagnosis[0] == Kind.UNKNOWN_OPERATOR:
            run.fail(key, *diagnosis)
        elif contract.strict:
            kind, message = diagnosis or (Kind.UNKNOWN_FIELD, f'unknown query parameter "{key}"')
            run.fail(key, kind, message)
        else:
            _LOG.debug("ignoring unknown query parameter key=%s", key)


def validate(contract: QueryContract, raw: Mapping[str, Any] | None) -> ValidationResult:
    run = _Run({str(key): value for key, value in (raw or {}).items()})
    if contract.pagination is not None:
        _check_pagination(contract.pagination, run)
    if contract.sorting is not None:
        _check_sorting(contract.sorting, run)
    if contract.filtering is not None:
        _check_filtering(contract.filtering, run)
    if contract.search is not None:
        _check_search(contract.search, contract, run)
    if contract.extra_fields:
        _check_extra_fields(contract, run)
    _check_unclaimed(contract, run)

    if run.errors:
        _LOG.debug(
            "query rejected errors=%d keys=%s",
            len(run.errors),
            ",".join(sorted({err.key for err in run.errors})),
        )
        return ValidationResult(value=None, errors=run.errors)
    return ValidationResult(value=QueryRequest(**run.out))


def validate_or_raise(contract: QueryContract, raw: Mapping[str, Any] | None) -> QueryRequest:
    return validate(contract, raw).unwrap()
