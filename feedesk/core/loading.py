"""
Loading tracker: reference-counted tickets for outstanding async operations.

Each operation acquires a ticket and releases it when done. The overlay is
visible exactly while at least one ticket is held; the ticket shown is the
highest priority one, oldest first among equals.
"""

import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

VisibilityListener = Callable[[bool], None]


@dataclass(frozen=True)
class LoadingTicket:
    id: int
    label: str
    priority: int = 0
    message: Optional[str] = field(default=None, compare=False)


class LoadingTracker:
    def __init__(self) -> None:
        self._tickets: Dict[int, LoadingTicket] = {}
        self._ids = itertools.count(1)
        self._listeners: List[VisibilityListener] = []

    @property
    def count(self) -> int:
        return len(self._tickets)

    @property
    def is_loading(self) -> bool:
        return bool(self._tickets)

    @property
    def current(self) -> Optional[LoadingTicket]:
        if not self._tickets:
            return None
        return min(self._tickets.values(), key=lambda t: (-t.priority, t.id))

    def acquire(self, label: str, priority: int = 0, message: Optional[str] = None) -> LoadingTicket:
        was_loading = self.is_loading
        ticket = LoadingTicket(id=next(self._ids), label=label, priority=priority, message=message)
        self._tickets[ticket.id] = ticket
        logger.debug("Loading ticket %s acquired (%s), outstanding=%s", ticket.id, label, self.count)
        if not was_loading:
            self._notify(True)
        return ticket

    def release(self, ticket: LoadingTicket) -> None:
        """Release a ticket. Releasing twice is a no-op."""
        if self._tickets.pop(ticket.id, None) is None:
            return
        logger.debug("Loading ticket %s released (%s), outstanding=%s", ticket.id, ticket.label, self.count)
        if not self._tickets:
            self._notify(False)

    @asynccontextmanager
    async def track(
        self, label: str, priority: int = 0, message: Optional[str] = None
    ) -> AsyncIterator[LoadingTicket]:
        ticket = self.acquire(label, priority=priority, message=message)
        try:
            yield ticket
        finally:
            self.release(ticket)

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, visible: bool) -> None:
        for listener in list(self._listeners):
            listener(visible)
