from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from querycontract.core.config import settings
from querycontract.core.errors import ConfigError
from querycontract.services.wire import ContractFragment, WireFieldSpec

MODE_OFFSET = "offset"
MODE_PAGE = "page"
MODE_CURSOR = "cursor"
PAGINATION_MODES = (MODE_OFFSET, MODE_PAGE, MODE_CURSOR)
CURSOR_DIRECTIONS = ("forward", "backward")


@dataclass(frozen=True)
class PaginationConfig:
    default_limit: int
    max_limit: int
    min_limit: int
    modes: frozenset[str]

    @property
    def offset_enabled(self) -> bool:
        return MODE_OFFSET in self.modes

    @property
    def page_enabled(self) -> bool:
        return MODE_PAGE in self.modes

    @property
    def cursor_enabled(self) -> bool:
        return MODE_CURSOR in self.modes

    @property
    def ordered_modes(self) -> tuple[str, ...]:
        return tuple(mode for mode in PAGINATION_MODES if mode in self.modes)


def _as_bound(name: str, value, fallback: int) -> int:
    if value is None:
        return fallback
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"pagination {name} must be an integer, got {value!r}")
    return value


def build_pagination_config(
    *,
    default_limit: int | None = None,
    max_limit: int | None = None,
    min_limit: int | None = None,
    modes: Iterable[str] | str | None = None,
) -> PaginationConfig:
    default_limit = _as_bound("default_limit", default_limit, settings.QUERY_DEFAULT_LIMIT)
    max_limit = _as_bound("max_limit", max_limit, settings.QUERY_MAX_LIMIT)
    min_limit = _as_bound("min_limit", min_limit, settings.QUERY_MIN_LIMIT)
    if min_limit < 0:
        raise ConfigError(f"pagination min_limit must be >= 0, got {min_limit}")
    if not min_limit <= default_limit <= max_limit:
        raise ConfigError(
            "pagination bounds must satisfy min_limit <= default_limit <= max_limit, "
            f"got {min_limit} <= {default_limit} <= {max_limit}"
        )

    if modes is None:
        modes = (MODE_OFFSET,)
    elif isinstance(modes, str):
        modes = (modes,)
    resolved = frozenset(str(mode).strip() for mode in modes)
    if not resolved:
        raise ConfigError("pagination requires at least one mode")
    unknown = sorted(resolved - set(PAGINATION_MODES))
    if unknown:
        raise ConfigError(f"unknown pagination mode(s): {', '.join(unknown)}")

    return PaginationConfig(
        default_limit=default_limit,
        max_limit=max_limit,
        min_limit=min_limit,
        modes=resolved,
    )


def pagination_fragment(config: PaginationConfig) -> ContractFragment:
    fields = [
        WireFieldSpec(
            name="limit",
            module="pagination",
            type_label="integer",
            description=f"Number of items per page ({config.min_limit}-{config.max_limit})",
            default=config.default_limit,
            minimum=config.min_limit,
            maximum=config.max_limit,
        )
    ]
    if config.offset_enabled:
        fields.append(
            WireFieldSpec(
                name="offset",
                module="pagination",
                type_label="integer",
                description="Number of items to skip",
                default=0,
                minimum=0,
            )
        )
    if config.page_enabled:
        fields.append(
            WireFieldSpec(
                name="page",
                module="pagination",
                type_label="integer",
                description="Page number (1-indexed)",
                default=1,
                minimum=1,
            )
        )
    if config.cursor_enabled:
        fields.append(
            WireFieldSpec(
                name="cursor",
                module="pagination",
                type_label="string",
                description="Opaque cursor for cursor-based pagination",
            )
        )
        fields.append(
            WireFieldSpec(
                name="cursorDirection",
                module="pagination",
                type_label="string",
                description="Direction for cursor pagination",
                default="forward",
                choices=CURSOR_DIRECTIONS,
            )
        )
    return ContractFragment(module="pagination", fields=tuple(fields))
