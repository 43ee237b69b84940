"""
Continuation-token pagination.

Drains a paged listing protocol (Dropbox cursors, S3 continuation tokens,
Drive page tokens) into one ordered list, bounded against continuation
chains that never end.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import CloudFSError, ErrorCode

logger = logging.getLogger(__name__)

# Ceiling on pages fetched for one listing
MAX_PAGES = 100


@dataclass
class Page:
    entries: list[Any] = field(default_factory=list)
    has_more: bool = False
    cursor: str | None = None


async def list_all(
    first_page: Callable[[], Awaitable[Page]],
    next_page: Callable[[str], Awaitable[Page]],
    max_pages: int = MAX_PAGES,
) -> list[Any]:
    """
    Collect every entry of a paged listing, in page order.

    Args:
        first_page: Coroutine function issuing the initial list call.
        next_page: Coroutine function taking a cursor and returning the next page.
        max_pages: Maximum number of remote calls before giving up.

    Returns:
        Entries of all pages concatenated, without re-sorting.

    Raises:
        CloudFSError: IO_ERROR when more than ``max_pages`` pages would be needed.
    """
    page = await first_page()
    entries = list(page.entries)
    pages = 1

    while page.has_more:
        if pages >= max_pages:
            logger.warning("Listing still has more pages after %d calls, giving up", pages)
            raise CloudFSError(ErrorCode.IO_ERROR, "Infinite loop prevented")
        if not page.cursor:
            raise CloudFSError(ErrorCode.BAD_MESSAGE, "Listing reported more pages without a cursor")

        page = await next_page(page.cursor)
        entries.extend(page.entries)
        pages += 1

    logger.debug("Listed %d entries in %d page(s)", len(entries), pages)
    return entries
