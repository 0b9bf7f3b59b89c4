"""
Limit/offset coercion shared by the article listing and the feed.

Both values normally arrive as raw query-string text.  Malformed input
is never an error: it falls back to the defaults so a bad ``?limit=``
still returns the first page.
"""
from typing import NamedTuple

from conduit.config import settings


class Page(NamedTuple):
    limit: int
    offset: int


def _to_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def parse_pagination(limit=None, offset=None) -> Page:
    """
    Return a :class:`Page` for the given raw *limit* / *offset*.

    - unparsable or negative offset -> 0
    - unparsable, zero or negative limit -> ``settings.DEFAULT_PAGE_SIZE``
    - limit is capped at ``settings.MAX_PAGE_SIZE``
    """
    offset_int = _to_int(offset)
    if offset_int is None or offset_int < 0:
        offset_int = 0

    limit_int = _to_int(limit)
    if limit_int is None or limit_int <= 0:
        limit_int = settings.DEFAULT_PAGE_SIZE

    return Page(limit=min(limit_int, settings.MAX_PAGE_SIZE), offset=offset_int)
