"""
Live query distributor.

Fans committed store changes out to subscribers watching either all wagers
or one user's notifications. A subscriber receives:

1. an initial full snapshot, taken atomically with registration, then
2. a full snapshot after every commit that touches its watched set, in
   commit order, until it unsubscribes.

Callbacks run on the committing thread while the store publishes, so they
must be quick (hand the snapshot to a queue and return).
"""
import logging
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Dict, List, Optional

from app.database import get_store
from app.models.schemas import DocumentModel, Notification
from app.services.store import NOTIFICATIONS, WAGERS, CommitEvent, DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class LiveSnapshot:
    """One fully committed state of a watched set."""
    topic: str
    sequence: int
    items: List[DocumentModel] = field(default_factory=list)

    def as_message(self) -> dict:
        return {
            "type": "snapshot",
            "topic": self.topic,
            "sequence": self.sequence,
            "items": [item.model_dump(mode="json", by_alias=True) for item in self.items],
        }


SnapshotCallback = Callable[[LiveSnapshot], None]


class Subscription:
    """Handle returned by the distributor; `unsubscribe()` is idempotent."""

    def __init__(
        self,
        distributor: "LiveQueryDistributor",
        topic: str,
        callback: SnapshotCallback,
        user_id: Optional[str] = None,
    ):
        self.topic = topic
        self.user_id = user_id
        self._distributor = distributor
        self._callback = callback
        self._active = True
        self.last_sequence = -1

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        self._distributor._remove(self)

    def _deliver(self, snapshot: LiveSnapshot) -> None:
        self.last_sequence = snapshot.sequence
        self._callback(snapshot)


class LiveQueryDistributor:

    def __init__(self, store: DocumentStore):
        self._store = store
        self._lock = threading.RLock()
        self._subscriptions: List[Subscription] = []
        self._sequence = getattr(store, "sequence", 0)
        store.watch(self._on_commit)

    def subscribe_wagers(self, callback: SnapshotCallback) -> Subscription:
        return self._add(Subscription(self, WAGERS, callback))

    def subscribe_notifications(self, user_id: str, callback: SnapshotCallback) -> Subscription:
        return self._add(Subscription(self, NOTIFICATIONS, callback, user_id=user_id))

    def subscriber_counts(self) -> Dict[str, int]:
        with self._lock:
            counts = {WAGERS: 0, NOTIFICATIONS: 0}
            for subscription in self._subscriptions:
                counts[subscription.topic] += 1
            return counts

    def close(self) -> None:
        """Detach from the store and drop every subscription."""
        self._store.unwatch(self._on_commit)
        with self._lock:
            for subscription in self._subscriptions:
                subscription._active = False
            self._subscriptions.clear()

    def _snapshot(self, subscription: Subscription, sequence: int) -> LiveSnapshot:
        if subscription.topic == WAGERS:
            items = self._store.list_wagers()
        else:
            items = self._store.list_notifications(subscription.user_id)
        return LiveSnapshot(topic=subscription.topic, sequence=sequence, items=items)

    def _add(self, subscription: Subscription) -> Subscription:
        # No commit can publish between the initial snapshot and registration
        with self._store.consistent_read(), self._lock:
            snapshot = self._snapshot(subscription, self._sequence)
            self._subscriptions.append(subscription)
            self._dispatch(subscription, snapshot)

        logger.debug(f"Subscribed to {subscription.topic} (user={subscription.user_id})")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if not subscription._active:
                return
            subscription._active = False
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        logger.debug(f"Unsubscribed from {subscription.topic} (user={subscription.user_id})")

    def _watches(self, subscription: Subscription, event: CommitEvent) -> bool:
        if subscription.topic == WAGERS:
            return event.touches(WAGERS)

        changed: List[Notification] = event.changed.get(NOTIFICATIONS, [])
        return any(n.user_id == subscription.user_id for n in changed)

    def _on_commit(self, event: CommitEvent) -> None:
        with self._lock:
            self._sequence = max(self._sequence, event.sequence)
            subscriptions = list(self._subscriptions)

            for subscription in subscriptions:
                if not subscription.active or not self._watches(subscription, event):
                    continue
                # A later snapshot already covered this commit
                if event.sequence <= subscription.last_sequence:
                    continue
                self._dispatch(subscription, self._snapshot(subscription, event.sequence))

    def _dispatch(self, subscription: Subscription, snapshot: LiveSnapshot) -> None:
        if not subscription.active:
            return
        try:
            subscription._deliver(snapshot)
        except Exception:
            logger.exception(f"Live subscriber on {subscription.topic} failed, dropping it")
            self._remove(subscription)


@lru_cache()
def get_distributor() -> LiveQueryDistributor:
    return LiveQueryDistributor(get_store())
