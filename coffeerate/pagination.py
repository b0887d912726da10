"""
Pagination parameter resolution for list endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

# Keeps OFFSET + LIMIT inside a signed 64-bit SQL integer.
MAX_OFFSET = 2**62


@dataclass(frozen=True)
class PaginationDefaults:
    default_page: int = 1
    default_page_size: int = 20
    max_page_size: int = 100


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return min((self.page - 1) * self.page_size, MAX_OFFSET)


ROASTERIES_PAGINATION = PaginationDefaults(default_page_size=20, max_page_size=100)
ROASTERY_COFFEES_PAGINATION = PaginationDefaults(default_page_size=30, max_page_size=100)
COFFEES_PAGINATION = PaginationDefaults(default_page_size=100, max_page_size=100)


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def resolve_pagination(
    page: Any = None,
    page_size: Any = None,
    defaults: PaginationDefaults = PaginationDefaults(),
) -> Pagination:
    """
    Resolve raw ``page``/``pageSize`` query values.

    Missing or non-integer values fall back to the defaults, a page below 1
    becomes the default page and the page size is kept within
    ``[1, max_page_size]``.
    """
    resolved_page = _parse_int(page)
    if resolved_page is None or resolved_page < 1:
        resolved_page = defaults.default_page

    resolved_size = _parse_int(page_size)
    if resolved_size is None or resolved_size < 1:
        resolved_size = defaults.default_page_size
    resolved_size = min(resolved_size, defaults.max_page_size)

    return Pagination(page=resolved_page, page_size=resolved_size)
