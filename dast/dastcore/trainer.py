"""
Trainer
-------
Responses pushed here may carry brand new input surfaces (e.g. a discovered
file linking to parameters). The trainer turns them into pages and keeps the
ones that bring elements not seen before, for the crawler to pick up.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Set

from dast.dastcore.interfaces import HTTPResponse
from dast.dastcore.page import Page

logger = logging.getLogger("dast.trainer")


class Trainer:
    def __init__(self):
        self._lock = threading.Lock()
        self._pages: List[Page] = []
        self._seen: Set[str] = set()

    def push(self, response: Optional[HTTPResponse]) -> None:
        if response is None or not response.url:
            return

        page = Page.from_response(response)
        with self._lock:
            fresh = [e for e in page.elements if e.id not in self._seen]
            if not fresh:
                return
            self._seen.update(e.id for e in fresh)
            self._pages.append(page)

        logger.debug("Trainer picked up %d new element(s) from %s", len(fresh), response.url)

    def flush(self) -> List[Page]:
        with self._lock:
            pages, self._pages = self._pages, []
        return pages

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)

    def clear(self) -> None:
        with self._lock:
            self._pages.clear()
            self._seen.clear()
