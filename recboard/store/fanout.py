# SPDX-License-Identifier: Apache-2.0
"""Live query subscriptions. Every emission is a full snapshot, never a delta."""
from __future__ import annotations

import itertools
import logging
import threading
from typing import TYPE_CHECKING, Callable, Iterable

from recboard.store.query import QueryDescriptor

if TYPE_CHECKING:
    from recboard.store.adapter import RecordStore

_logger = logging.getLogger("recboard.store")

Snapshot = list[tuple[str, dict]]
_ids = itertools.count(1)


class Subscription:
    """Handle for one live query. ``unsubscribe()`` stops callbacks immediately."""

    def __init__(
        self,
        hub: "SubscriptionHub",
        query: QueryDescriptor,
        on_next: Callable[[Snapshot], None],
        on_error: Callable[[Exception], None] | None = None,
    ):
        self.id = next(_ids)
        self.query = query
        self._hub = hub
        self._on_next = on_next
        self._on_error = on_error
        self._lock = threading.RLock()
        self._active = True
        self._signature: tuple | None = None

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            self._active = False
        self._hub.remove(self)

    def refresh(self, store: "RecordStore") -> None:
        """Re-run the query and emit if the (id, revision) listing changed."""
        with self._lock:
            if not self._active:
                return
            try:
                rows = store.query(self.query)
            except Exception as exc:
                self._fail(exc)
                return
            signature = tuple((data.get("path"), data.get("revision")) for _, data in rows)
            if signature == self._signature:
                return
            self._signature = signature
            try:
                self._on_next(rows)
            except Exception:
                _logger.error("Subscription %s callback failed", self.id, exc_info=True)

    def _fail(self, exc: Exception) -> None:
        _logger.error("Subscription %s on %s terminated: %s", self.id, self.query.collection, exc)
        self._active = False
        self._hub.remove(self)
        if self._on_error is not None:
            try:
                self._on_error(exc)
            except Exception:
                _logger.error("Subscription %s error callback failed", self.id, exc_info=True)


class SubscriptionHub:
    """Registry of live queries, refreshed after each committed transaction."""

    def __init__(self, store: "RecordStore"):
        self._store = store
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}

    def add(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions[subscription.id] = subscription

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def notify(self, collections: Iterable[str]) -> None:
        touched = set(collections)
        if not touched:
            return
        with self._lock:
            affected = [
                s for s in self._subscriptions.values()
                if any(s.query.targets(c) for c in touched)
            ]
        for subscription in affected:
            subscription.refresh(self._store)
