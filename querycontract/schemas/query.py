from __future__ import annotations

from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from querycontract.services.operators import FilterOperator

Dir = Literal["asc", "desc"]
NullsHandling = Literal["first", "last"]
CursorDirection = Literal["forward", "backward"]
Logic = Literal["and", "or"]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class SortClause(_WireModel):
    field: str
    direction: Dir


class FilterEntry(_WireModel):
    field: str
    operator: FilterOperator
    value: Any


class FilterNode(_WireModel):
    filters: List[FilterEntry] = []
    groups: List["FilterGroup"] = []


class FilterGroup(_WireModel):
    logic: Logic
    branches: List[FilterNode]


class QueryRequest(_WireModel):
    limit: Optional[int] = None
    offset: Optional[int] = None
    page: Optional[int] = None
    cursor: Optional[str] = None
    cursor_direction: Optional[CursorDirection] = None

    sort_by: Union[str, List[SortClause], None] = None
    sort_direction: Optional[Dir] = None
    nulls_handling: Optional[NullsHandling] = None

    filters: Optional[List[FilterEntry]] = None
    filter_groups: Optional[List[FilterGroup]] = None

    query: Optional[str] = None
    search_fields: Optional[List[str]] = None
    mode: Optional[str] = None
    use_regex: Optional[bool] = None
    case_sensitive: Optional[bool] = None

    extra: Optional[dict[str, Any]] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)

    def filter_count(self) -> int:
        def _count(node_filters, node_groups) -> int:
            total = len(node_filters or [])
            for group in node_groups or []:
                for branch in group.branches:
                    total += _count(branch.filters, branch.groups)
            return total

        return _count(self.filters, self.filter_groups)


FilterNode.model_rebuild()
