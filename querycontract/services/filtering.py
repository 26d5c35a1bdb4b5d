from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from querycontract.core.config import settings
from querycontract.core.errors import ConfigError
from querycontract.services.operators import (
    OPERATOR_ALIASES,
    FilterOperator,
    ShapeDescriptor,
    ValueKind,
    ValueShape,
    default_operators,
    is_legal,
    value_shape,
)
from querycontract.services.wire import ContractFragment, WireFieldSpec

LOGICAL_KEYS = ("_and", "_or")


@dataclass(frozen=True)
class FieldFilter:
    """Declaration of one filterable field, as written at the route."""

    kind: ValueKind | str
    operators: Iterable[FilterOperator | str] | None = None
    nullable: bool = False
    values: Iterable[str] | None = None
    items: ValueKind | str | None = None
    description: str | None = None


@dataclass(frozen=True)
class FieldFilterConfig:
    name: str
    wire_name: str
    kind: ValueKind
    operators: frozenset[FilterOperator]
    nullable: bool
    values: tuple[str, ...] | None
    items: ValueKind | None
    shapes: Mapping[FilterOperator, ShapeDescriptor]
    description: str


@dataclass(frozen=True)
class FilterRoute:
    field: str
    operator: FilterOperator
    alias: str | None = None


@dataclass(frozen=True)
class FilteringConfig:
    fields: Mapping[str, FieldFilterConfig]
    allow_logical_operators: bool
    max_depth: int
    max_conditions: int | None
    prefix: str
    routes: Mapping[str, FilterRoute]

    def field_for_wire(self, wire_name: str) -> FieldFilterConfig | None:
        for cfg in self.fields.values():
            if cfg.wire_name == wire_name:
                return cfg
        return None


def _resolve_kind(value, *, field_name: str) -> ValueKind:
    try:
        return ValueKind(value)
    except ValueError:
        raise ConfigError(f'filter field "{field_name}" has unknown value kind {value!r}')


def _resolve_operators(field_name: str, kind: ValueKind, operators) -> frozenset[FilterOperator]:
    if operators is None:
        return default_operators(kind)
    if isinstance(operators, str):
        operators = (operators,)
    resolved: set[FilterOperator] = set()
    for raw in operators:
        try:
            op = FilterOperator(raw)
        except ValueError:
            alias = OPERATOR_ALIASES.get(str(raw))
            if alias is None:
                raise ConfigError(f'filter field "{field_name}" declares unknown operator {raw!r}')
            op = alias
        if not is_legal(op, kind):
            raise ConfigError(f'operator "{op.value}" is not legal for {kind.value} field "{field_name}"')
        resolved.add(op)
    if not resolved:
        raise ConfigError(f'filter field "{field_name}" must allow at least one operator')
    return frozenset(resolved)


def _build_field(name: str, declaration, prefix: str) -> FieldFilterConfig:
    if not isinstance(declaration, FieldFilter):
        declaration = FieldFilter(kind=declaration)
    kind = _resolve_kind(declaration.kind, field_name=name)
    operators = _resolve_operators(name, kind, declaration.operators)

    values = None
    if declaration.values is not None:
        if kind not in (ValueKind.ENUM, ValueKind.ARRAY):
            raise ConfigError(f'filter field "{name}" declares values but is not an enum')
        values = tuple(str(v) for v in declaration.values)
    if kind == ValueKind.ENUM and not values:
        raise ConfigError(f'enum filter field "{name}" requires a non-empty list of values')

    items = None
    if kind == ValueKind.ARRAY:
        items = _resolve_kind(declaration.items or ValueKind.STRING, field_name=name)
        if items == ValueKind.ARRAY:
            raise ConfigError(f'array filter field "{name}" cannot hold nested arrays')
        if items == ValueKind.ENUM and not values:
            raise ConfigError(f'array filter field "{name}" of enum items requires values')
    elif declaration.items is not None:
        raise ConfigError(f'filter field "{name}" declares items but is not an array')

    return FieldFilterConfig(
        name=name,
        wire_name=f"{prefix}_{name}" if prefix else name,
        kind=kind,
        operators=operators,
        nullable=bool(declaration.nullable),
        values=values,
        items=items,
        shapes=MappingProxyType({op: value_shape(op, kind) for op in operators}),
        description=declaration.description or f"Filter by {name}",
    )


def _add_route(routes: dict[str, FilterRoute], wire_name: str, route: FilterRoute) -> None:
    owner = routes.get(wire_name)
    if owner is not None:
        raise ConfigError(
            f'field name collision: "{wire_name}" is introduced by both '
            f'{owner.field} ({owner.alias or owner.operator.value}) and {route.field} ({route.alias or route.operator.value})'
        )
    routes[wire_name] = route


def _build_routes(fields: Mapping[str, FieldFilterConfig]) -> dict[str, FilterRoute]:
    routes: dict[str, FilterRoute] = {}
    for cfg in fields.values():
        for op in sorted(cfg.operators, key=lambda item: item.value):
            wire_name = cfg.wire_name if op == FilterOperator.EQ else f"{cfg.wire_name}_{op.value}"
            _add_route(routes, wire_name, FilterRoute(field=cfg.name, operator=op))
        for alias, op in OPERATOR_ALIASES.items():
            if op in cfg.operators:
                _add_route(routes, f"{cfg.wire_name}_{alias}", FilterRoute(field=cfg.name, operator=op, alias=alias))
    return routes


def build_filtering_config(
    fields: Mapping[str, FieldFilter | ValueKind | str],
    *,
    allow_logical_operators: bool = True,
    max_depth: int | None = None,
    max_conditions: int | None = None,
    prefix: str = "",
) -> FilteringConfig:
    if not fields:
        raise ConfigError("filtering requires at least one field")
    prefix = str(prefix or "").strip()
    max_depth = settings.QUERY_FILTER_MAX_DEPTH if max_depth is None else max_depth
    max_conditions = settings.QUERY_FILTER_MAX_CONDITIONS if max_conditions is None else max_conditions
    if max_depth < 1:
        raise ConfigError(f"filter max_depth must be >= 1, got {max_depth}")
    if max_conditions is not None and max_conditions < 1:
        raise ConfigError(f"filter max_conditions must be >= 1, got {max_conditions}")

    resolved: dict[str, FieldFilterConfig] = {}
    for name, declaration in fields.items():
        text = str(name or "").strip()
        if not text or text.startswith("_"):
            raise ConfigError(f"invalid filter field name {name!r}")
        resolved[text] = _build_field(text, declaration, prefix)

    routes = _build_routes(resolved)
    if allow_logical_operators:
        clashes = sorted(set(routes) & set(LOGICAL_KEYS))
        if clashes:
            raise ConfigError(f"filter wire names clash with logical keys: {', '.join(clashes)}")
    return FilteringConfig(
        fields=MappingProxyType(resolved),
        allow_logical_operators=bool(allow_logical_operators),
        max_depth=max_depth,
        max_conditions=max_conditions,
        prefix=prefix,
        routes=MappingProxyType(routes),
    )


_SHAPE_LABELS = {
    ValueShape.SCALAR: "{kind}",
    ValueShape.LIST: "array<{kind}>",
    ValueShape.PAIR: "[{kind}, {kind}]",
    ValueShape.BOOLEAN: "boolean",
}


def filtering_fragment(config: FilteringConfig) -> ContractFragment:
    fields: list[WireFieldSpec] = []
    for wire_name, route in config.routes.items():
        cfg = config.fields[route.field]
        shape = cfg.shapes[route.operator]
        label = _SHAPE_LABELS[shape.shape].format(kind=(cfg.items or cfg.kind).value)
        if route.alias:
            description = f"Filter {cfg.name} ({route.alias}, alias of {route.operator.value})"
        elif route.operator == FilterOperator.EQ:
            description = cfg.description
        else:
            description = f"Filter {cfg.name} ({route.operator.value})"
        fields.append(
            WireFieldSpec(
                name=wire_name,
                module="filtering",
                type_label=label,
                description=description,
                choices=cfg.values if cfg.kind == ValueKind.ENUM else None,
            )
        )
    reserved: frozenset[str] = frozenset()
    if config.allow_logical_operators:
        for key in LOGICAL_KEYS:
            fields.append(
                WireFieldSpec(
                    name=key,
                    module="filtering",
                    type_label="array<object>",
                    description=f"Combine nested filters with {key[1:].upper()}",
                )
            )
    else:
        reserved = frozenset(LOGICAL_KEYS)
    return ContractFragment(module="filtering", fields=tuple(fields), reserved=reserved)
