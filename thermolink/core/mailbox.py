"""Single serialized event channel shared by the scan controller and sessions."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from threading import Lock
from typing import Generic, TypeVar

LOGGER = logging.getLogger(__name__)

E = TypeVar("E")


class SerialMailbox(Generic[E]):
    """FIFO that runs one handler invocation at a time.

    Whichever thread posts into an idle mailbox drains it. Posts made while a
    drain is in progress, including re-entrant posts from inside the handler,
    are queued and handled after the current event, never nested.
    """

    def __init__(self, handler: Callable[[E], None]) -> None:
        self._handler = handler
        self._lock = Lock()
        self._pending: deque[E] = deque()
        self._draining = False

    def post(self, event: E) -> None:
        with self._lock:
            self._pending.append(event)
            if self._draining:
                return
            self._draining = True

        while True:
            with self._lock:
                if not self._pending:
                    self._draining = False
                    return
                current = self._pending.popleft()
            try:
                self._handler(current)
            except Exception:
                with self._lock:
                    self._pending.clear()
                    self._draining = False
                raise
