from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from querycontract.core.config import settings
from querycontract.core.errors import ConfigError
from querycontract.services.wire import ContractFragment, WireFieldSpec

SEARCH_MODES = ("contains", "startsWith", "endsWith", "exact")
FUZZY_MODE = "fuzzy"
SEARCH_KEYS = ("query", "searchFields", "mode", "caseSensitive", "useRegex")


@dataclass(frozen=True)
class SearchConfig:
    searchable_fields: tuple[str, ...]
    min_query_length: int
    max_query_length: int
    allow_field_selection: bool
    case_sensitive: bool
    allow_regex: bool
    allow_fuzzy: bool

    @property
    def modes(self) -> tuple[str, ...]:
        return SEARCH_MODES + ((FUZZY_MODE,) if self.allow_fuzzy else ())


def build_search_config(
    searchable_fields: Iterable[str] = (),
    *,
    min_query_length: int = 1,
    max_query_length: int | None = None,
    allow_field_selection: bool = False,
    case_sensitive: bool = False,
    allow_regex: bool = False,
    allow_fuzzy: bool = False,
) -> SearchConfig:
    if isinstance(searchable_fields, str):
        searchable_fields = (searchable_fields,)
    fields: list[str] = []
    for name in searchable_fields:
        text = str(name or "").strip()
        if not text:
            raise ConfigError("searchable field names must be non-empty strings")
        if text not in fields:
            fields.append(text)
    if max_query_length is None:
        max_query_length = settings.QUERY_SEARCH_MAX_LENGTH
    if min_query_length < 0:
        raise ConfigError(f"min_query_length must be >= 0, got {min_query_length}")
    if max_query_length < min_query_length:
        raise ConfigError(
            f"max_query_length ({max_query_length}) must be >= min_query_length ({min_query_length})"
        )
    if allow_field_selection and not fields:
        raise ConfigError("allow_field_selection requires at least one searchable field")
    return SearchConfig(
        searchable_fields=tuple(fields),
        min_query_length=min_query_length,
        max_query_length=max_query_length,
        allow_field_selection=bool(allow_field_selection),
        case_sensitive=bool(case_sensitive),
        allow_regex=bool(allow_regex),
        allow_fuzzy=bool(allow_fuzzy),
    )


def search_fragment(config: SearchConfig) -> ContractFragment:
    fields = [
        WireFieldSpec(
            name="query",
            module="search",
            type_label="string",
            description=f"Search text ({config.min_query_length}-{config.max_query_length} characters)",
            required=True,
            minimum=config.min_query_length,
            maximum=config.max_query_length,
        ),
        WireFieldSpec(
            name="mode",
            module="search",
            type_label="string",
            description="How the query is matched",
            default="contains",
            choices=config.modes,
        ),
        WireFieldSpec(
            name="caseSensitive",
            module="search",
            type_label="boolean",
            description="Match case exactly",
            default=config.case_sensitive,
        ),
    ]
    reserved: set[str] = set()
    if config.allow_field_selection:
        fields.append(
            WireFieldSpec(
                name="searchFields",
                module="search",
                type_label="array<string>",
                description="Restrict the search to these fields",
                choices=config.searchable_fields,
            )
        )
    else:
        reserved.add("searchFields")
    if config.allow_regex:
        fields.append(
            WireFieldSpec(
                name="useRegex",
                module="search",
                type_label="boolean",
                description="Treat the query as a regular expression",
                default=False,
            )
        )
    else:
        reserved.add("useRegex")
    return ContractFragment(module="search", fields=tuple(fields), reserved=frozenset(reserved))
