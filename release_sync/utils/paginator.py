#!/usr/bin/env python3
"""Cursor pagination over GitHub list endpoints.

``Paginator`` is a lazy, restartable sequence: iterating it fetches page 1,
yields its items, then follows the ``next_page`` cursor until the remote
reports 0. Callers that only need the first match stop iterating and no
further page is requested.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, List, Optional

from release_sync.utils.publish_models import Page


logger = logging.getLogger(__name__)

PageFetcher = Callable[[int, int], Page]


class Paginator:
    def __init__(self, fetch_page: PageFetcher, *, per_page: int = 100, first_page: int = 1, label: str = "listing"):
        """Create a paginator.

        Args:
            fetch_page: ``(page, per_page) -> Page``; raising aborts iteration.
            per_page: Page size sent with every request.
            first_page: Cursor of the first request.
            label: Name used in debug logs.
        """
        self.fetch_page = fetch_page
        self.per_page = per_page
        self.first_page = first_page
        self.label = label

    def pages(self) -> Iterator[Page]:
        cursor = self.first_page
        fetched = 0
        while True:
            page = self.fetch_page(cursor, self.per_page)
            fetched += 1
            logger.debug(f"{self.label}: page={cursor} items={len(page.items)} next={page.next_page}")
            yield page
            if not page.next_page:
                logger.debug(f"{self.label}: exhausted after {fetched} pages")
                return
            cursor = page.next_page

    def __iter__(self) -> Iterator[Any]:
        for page in self.pages():
            yield from page.items

    def items(self) -> List[Any]:
        """Exhaust every page and return all items in remote order."""
        return list(self)

    def first(self, predicate: Callable[[Any], bool]) -> Optional[Any]:
        """Return the first item matching ``predicate``, fetching no further pages."""
        for item in self:
            if predicate(item):
                return item
        return None
