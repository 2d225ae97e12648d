import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Callable, List

from app.database import get_store
from app.models.schemas import Notification
from app.services.errors import Forbidden, NotFound
from app.services.store import DocumentStore, Transaction
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class NotificationEmitter(ABC):
    """Post-commit notification boundary. Fire-and-forget, best effort."""

    @abstractmethod
    def emit(self, user_id: str, wager_id: str, message: str) -> None:
        """Request that `user_id` be told `message` about `wager_id`."""
        pass


class StoreNotificationEmitter(NotificationEmitter):
    """
    Writes each notification as its own document.

    Runs in a separate transaction after the ledger commit, so a failure
    here is logged and dropped; it never reaches the ledger caller.
    """

    def __init__(self, store: DocumentStore, clock: Callable = utcnow):
        self._store = store
        self._clock = clock

    def emit(self, user_id: str, wager_id: str, message: str) -> None:
        def _write(txn: Transaction) -> Notification:
            notification = Notification(
                id=txn.new_id(),
                user_id=user_id,
                wager_id=wager_id,
                message=message,
                is_read=False,
                created_at=self._clock(),
            )
            txn.put_notification(notification)
            return notification

        try:
            notification = self._store.run_transaction(_write)
            logger.debug(f"Notification {notification.id} queued for {user_id}")
        except Exception:
            logger.exception(f"Failed to create notification for {user_id} on wager {wager_id}")


class NotificationService:
    """Recipient-side reads and read-state updates."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        notifications = self._store.list_notifications(user_id)
        if unread_only:
            notifications = [n for n in notifications if not n.is_read]
        return notifications

    def mark_notification_read(self, notification_id: str, user_id: str) -> Notification:
        def _mark(txn: Transaction) -> Notification:
            notification = txn.get_notification(notification_id)
            if not notification:
                raise NotFound(f"Notification {notification_id} not found")
            if notification.user_id != user_id:
                raise Forbidden("Cannot mark another user's notification")
            if not notification.is_read:
                notification.is_read = True
                txn.put_notification(notification)
            return notification

        return self._store.run_transaction(_mark)

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of `user_id` read; returns how many."""
        unread_ids = [n.id for n in self._store.list_notifications(user_id) if not n.is_read]
        if not unread_ids:
            return 0

        def _mark_all(txn: Transaction) -> int:
            marked = 0
            for notification_id in unread_ids:
                notification = txn.get_notification(notification_id)
                if notification and not notification.is_read:
                    notification.is_read = True
                    txn.put_notification(notification)
                    marked += 1
            return marked

        return self._store.run_transaction(_mark_all)


@lru_cache()
def get_notification_service() -> NotificationService:
    return NotificationService(get_store())
