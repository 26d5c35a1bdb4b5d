from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ValueKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    ARRAY = "array"


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    CONTAINS = "contains"
    IN = "in"
    NOT_IN = "notIn"
    BETWEEN = "between"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"
    REGEX = "regex"


class ValueShape(str, Enum):
    SCALAR = "scalar"
    LIST = "list"
    PAIR = "pair"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class ShapeDescriptor:
    shape: ValueShape
    kind: ValueKind


Op = FilterOperator

_LIST_OPERATORS = frozenset({Op.IN, Op.NOT_IN})
_PAIR_OPERATORS = frozenset({Op.BETWEEN})
_BOOLEAN_OPERATORS = frozenset({Op.IS_NULL, Op.IS_NOT_NULL})

_NULL_CHECKS = frozenset({Op.IS_NULL, Op.IS_NOT_NULL})
_ORDERED = frozenset({Op.EQ, Op.NE, Op.GT, Op.GTE, Op.LT, Op.LTE, Op.IN, Op.NOT_IN, Op.BETWEEN})

_DEFAULT_OPERATORS: dict[ValueKind, frozenset[FilterOperator]] = {
    ValueKind.STRING: frozenset(
        {Op.EQ, Op.NE, Op.LIKE, Op.ILIKE, Op.IN, Op.NOT_IN, Op.CONTAINS, Op.STARTS_WITH, Op.ENDS_WITH}
    ),
    ValueKind.NUMBER: _ORDERED,
    ValueKind.DATE: _ORDERED,
    ValueKind.BOOLEAN: frozenset({Op.EQ, Op.NE}),
    ValueKind.ENUM: frozenset({Op.EQ, Op.NE, Op.IN, Op.NOT_IN}),
    ValueKind.ARRAY: frozenset({Op.CONTAINS, Op.IN}),
}

_LEGAL_OPERATORS: dict[ValueKind, frozenset[FilterOperator]] = {
    ValueKind.STRING: _DEFAULT_OPERATORS[ValueKind.STRING] | {Op.REGEX} | _NULL_CHECKS,
    ValueKind.NUMBER: _ORDERED | _NULL_CHECKS,
    ValueKind.DATE: _ORDERED | _NULL_CHECKS,
    ValueKind.BOOLEAN: frozenset({Op.EQ, Op.NE}) | _NULL_CHECKS,
    ValueKind.ENUM: _DEFAULT_OPERATORS[ValueKind.ENUM] | _NULL_CHECKS,
    ValueKind.ARRAY: frozenset({Op.CONTAINS, Op.IN, Op.NOT_IN}) | _NULL_CHECKS,
}

# Older wire spellings still accepted on input.
OPERATOR_ALIASES: dict[str, FilterOperator] = {
    "nin": Op.NOT_IN,
    "exists": Op.IS_NOT_NULL,
}


def default_operators(kind: ValueKind) -> frozenset[FilterOperator]:
    return _DEFAULT_OPERATORS[ValueKind(kind)]


def legal_operators(kind: ValueKind) -> frozenset[FilterOperator]:
    return _LEGAL_OPERATORS[ValueKind(kind)]


def is_legal(operator: FilterOperator, kind: ValueKind) -> bool:
    return FilterOperator(operator) in _LEGAL_OPERATORS[ValueKind(kind)]


def value_shape(operator: FilterOperator, kind: ValueKind) -> ShapeDescriptor:
    op = FilterOperator(operator)
    if op in _LIST_OPERATORS:
        shape = ValueShape.LIST
    elif op in _PAIR_OPERATORS:
        shape = ValueShape.PAIR
    elif op in _BOOLEAN_OPERATORS:
        shape = ValueShape.BOOLEAN
    else:
        shape = ValueShape.SCALAR
    return ShapeDescriptor(shape=shape, kind=ValueKind(kind))


def parse_operator(token: str) -> FilterOperator | None:
    """Resolve a wire suffix (canonical name or alias) to an operator."""
    text = str(token or "").strip()
    if not text:
        return None
    if text in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[text]
    try:
        return FilterOperator(text)
    except ValueError:
        return None


def known_operator_tokens() -> tuple[str, ...]:
    # Longest first so "notIn" wins over "in" when matching suffixes.
    tokens = [op.value for op in FilterOperator] + list(OPERATOR_ALIASES)
    return tuple(sorted(tokens, key=len, reverse=True))
