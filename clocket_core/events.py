"""Explicit publish/subscribe channel for "transactions changed" notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, NamedTuple

from .models import isoformat_utc

logger = logging.getLogger(__name__)

TRANSACTIONS_CHANGED = "clocket:transactions-changed"


class ChangeEvent(NamedTuple):
    name: str
    revision: int
    ts: str


Handler = Callable[[ChangeEvent], None]


class ChangeChannel:
    """Broadcasts one named event to subscribers and counts publications.

    Read-models can either subscribe, or remember ``revision`` and compare it
    later to know whether they need to refetch.
    """

    def __init__(self, name: str = TRANSACTIONS_CHANGED) -> None:
        self._name = name
        self._subscribers: List[Handler] = []
        self._revision = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def revision(self) -> int:
        return self._revision

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; the returned callable unsubscribes it."""
        self._subscribers.append(handler)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def publish(self) -> ChangeEvent:
        self._revision += 1
        event = ChangeEvent(
            name=self._name,
            revision=self._revision,
            ts=isoformat_utc(datetime.now(timezone.utc)),
        )
        logger.debug("Publishing %s (revision %s)", self._name, self._revision)
        for handler in list(self._subscribers):
            handler(event)
        return event
