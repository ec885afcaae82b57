"""
Change feed — per-owner subscriptions to directory collections.

Subscribers get the full current result set of a collection after every
successful write, synchronously and in write order. A burst of writes (one
reconciliation batch) produces one notification per write; the last one a
subscriber sees is always the final state.

Collections:
  - members:   list[Member]
  - guests:    list[Guest]
  - last_scan: ScanSnapshot | None
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

MEMBERS = "members"
GUESTS = "guests"
LAST_SCAN = "last_scan"
COLLECTIONS = (MEMBERS, GUESTS, LAST_SCAN)

Callback = Callable[[Any], None]


class ChangeFeed:
    """Fan-out of collection snapshots to subscribers, keyed by (owner, collection)."""

    def __init__(self):
        self._subscribers: dict[tuple[str, str], list[Callback]] = {}
        self._lock = threading.Lock()

    def subscribe(self, owner_id: str, collection: str, callback: Callback) -> Callable[[], None]:
        """Register a callback. Returns an unsubscribe function."""
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection!r}")
        key = (owner_id, collection)
        with self._lock:
            self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(key, None)

        return unsubscribe

    def has_subscribers(self, owner_id: str, collection: str) -> bool:
        with self._lock:
            return bool(self._subscribers.get((owner_id, collection)))

    def subscriber_count(self, owner_id: str | None = None) -> int:
        with self._lock:
            return sum(
                len(callbacks)
                for (owner, _), callbacks in self._subscribers.items()
                if owner_id is None or owner == owner_id
            )

    def publish(self, owner_id: str, collection: str, payload: Any) -> None:
        """Deliver payload to every subscriber of (owner, collection)."""
        with self._lock:
            callbacks = list(self._subscribers.get((owner_id, collection), []))

        for callback in callbacks:
            try:
                callback(payload)
            except Exception:  # noqa: BLE001 - subscriber errors stay with the subscriber
                logger.exception(f"Subscriber for {collection} of owner {owner_id} failed")
