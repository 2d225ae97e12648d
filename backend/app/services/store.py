"""
Wager / balance document store.

The store supplies the transactional primitive the ledger relies on:

- `Transaction` records the version of every document it reads and stages
  every write; nothing is visible to other callers until commit.
- `DocumentStore.run_transaction(fn)` runs `fn(txn)`, then commits the
  staged writes all-or-nothing. If any document read (or written) by the
  attempt changed in the meantime the commit is rejected with
  `WriteConflict` and `fn` is re-run against fresh state, up to
  `max_attempts` times, after which `TransientConflict` is raised.
- Every successful commit gets a monotonically increasing sequence number
  and is published to watchers as a `CommitEvent`, in commit order.

No lock is held while `fn` runs; the in-memory backend only locks for the
version check and apply step of a commit.
"""
import logging
import threading
from abc import ABC, abstractmethod
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

from app.models.schemas import DocumentModel, Notification, UserBalance, Wager
from app.services.errors import LedgerError, TransientConflict, WriteConflict
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

WAGERS = "wagers"
BALANCES = "balances"
NOTIFICATIONS = "notifications"

COLLECTIONS = {
    WAGERS: Wager,
    BALANCES: UserBalance,
    NOTIFICATIONS: Notification,
}

DocumentRef = Tuple[str, str]  # (collection, key)
T = TypeVar("T")


@dataclass(frozen=True)
class CommitEvent:
    """A committed change set. `changed` holds post-commit copies."""
    sequence: int
    committed_at: datetime
    changed: Dict[str, List[DocumentModel]] = field(default_factory=dict)

    def touches(self, collection: str) -> bool:
        return bool(self.changed.get(collection))


CommitListener = Callable[[CommitEvent], None]


class Transaction:
    """Read set and staged writes for a single attempt."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._reads: Dict[DocumentRef, int] = {}
        self._snapshot: Dict[DocumentRef, Optional[DocumentModel]] = {}
        self._writes: Dict[DocumentRef, DocumentModel] = {}

    @property
    def reads(self) -> Dict[DocumentRef, int]:
        return self._reads

    @property
    def writes(self) -> Dict[DocumentRef, DocumentModel]:
        return self._writes

    def new_id(self) -> str:
        return str(uuid.uuid4())

    def _get(self, collection: str, key: str) -> Optional[DocumentModel]:
        ref = (collection, key)
        if ref in self._writes:
            return self._writes[ref].model_copy(deep=True)

        # Repeated reads of the same document see the first observation
        if ref not in self._snapshot:
            document, version = self._store._read(collection, key)
            self._reads[ref] = version
            self._snapshot[ref] = document

        document = self._snapshot[ref]
        return document.model_copy(deep=True) if document is not None else None

    def _put(self, collection: str, key: str, document: DocumentModel) -> None:
        self._writes[(collection, key)] = document.model_copy(deep=True)

    def get_wager(self, wager_id: str) -> Optional[Wager]:
        return self._get(WAGERS, wager_id)

    def put_wager(self, wager: Wager) -> None:
        self._put(WAGERS, wager.id, wager)

    def get_balance(self, user_id: str) -> Optional[UserBalance]:
        return self._get(BALANCES, user_id)

    def put_balance(self, balance: UserBalance) -> None:
        if balance.points < 0:
            raise ValueError(f"Balance for {balance.user_id} cannot go negative")
        self._put(BALANCES, balance.user_id, balance)

    def get_notification(self, notification_id: str) -> Optional[Notification]:
        return self._get(NOTIFICATIONS, notification_id)

    def put_notification(self, notification: Notification) -> None:
        self._put(NOTIFICATIONS, notification.id, notification)


class DocumentStore(ABC):
    """
    Base class for store backends.

    Subclasses implement `_read`, `_commit`, `_is_stale` and the read-side
    listing methods. A write to a document the transaction never read is a
    create: it conflicts if the document already exists.
    """

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self._listeners: List[CommitListener] = []
        self._listeners_lock = threading.RLock()

    # ---- transactions ----

    def run_transaction(
        self,
        fn: Callable[[Transaction], T],
        max_attempts: Optional[int] = None,
    ) -> T:
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, attempts + 1):
            txn = Transaction(self)
            try:
                result = fn(txn)
            except LedgerError:
                # A rejection based on a torn read is retried, not reported
                if self._is_stale(txn):
                    logger.debug(f"Stale read set on attempt {attempt}/{attempts}, retrying")
                    continue
                raise

            if not txn.writes:
                return result

            try:
                self._commit(txn)
            except WriteConflict as e:
                logger.debug(f"Write conflict on attempt {attempt}/{attempts}: {e}")
                continue

            return result

        logger.warning(f"Transaction gave up after {attempts} conflicting attempts")
        raise TransientConflict(
            f"Too much contention, gave up after {attempts} attempts. Please retry."
        )

    @abstractmethod
    def _read(self, collection: str, key: str) -> Tuple[Optional[DocumentModel], int]:
        pass

    @abstractmethod
    def _commit(self, txn: Transaction) -> CommitEvent:
        pass

    @abstractmethod
    def _is_stale(self, txn: Transaction) -> bool:
        pass

    # ---- read side ----

    def get_wager(self, wager_id: str) -> Optional[Wager]:
        return self._read(WAGERS, wager_id)[0]

    def get_balance(self, user_id: str) -> Optional[UserBalance]:
        return self._read(BALANCES, user_id)[0]

    def get_notification(self, notification_id: str) -> Optional[Notification]:
        return self._read(NOTIFICATIONS, notification_id)[0]

    @abstractmethod
    def list_wagers(self) -> List[Wager]:
        pass

    @abstractmethod
    def list_balances(self) -> List[UserBalance]:
        pass

    @abstractmethod
    def list_notifications(self, user_id: str) -> List[Notification]:
        pass

    @contextmanager
    def consistent_read(self) -> Iterator[None]:
        """
        Hold off commit publication while the block runs.

        Lets a watcher take a snapshot and register atomically with respect
        to commit events.
        """
        with self._listeners_lock:
            yield

    # ---- change feed ----

    def watch(self, listener: CommitListener) -> None:
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unwatch(self, listener: CommitListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _publish(self, event: CommitEvent) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
            for listener in listeners:
                try:
                    listener(event)
                except Exception:
                    # The commit already happened; a broken watcher can't undo it
                    logger.exception(f"Commit listener failed for sequence {event.sequence}")


class InMemoryStore(DocumentStore):
    """Thread-safe in-process backend with per-document versions."""

    def __init__(self, max_attempts: int = 5):
        super().__init__(max_attempts=max_attempts)
        self._lock = threading.RLock()
        self._documents: Dict[str, Dict[str, Tuple[DocumentModel, int]]] = {
            name: {} for name in COLLECTIONS
        }
        self._sequence = 0

    @property
    def sequence(self) -> int:
        return self._sequence

    def _version(self, ref: DocumentRef) -> int:
        entry = self._documents[ref[0]].get(ref[1])
        return entry[1] if entry else 0

    def _read(self, collection: str, key: str) -> Tuple[Optional[DocumentModel], int]:
        with self._lock:
            entry = self._documents[collection].get(key)
            if entry is None:
                return None, 0
            document, version = entry
            return document.model_copy(deep=True), version

    def _is_stale(self, txn: Transaction) -> bool:
        with self._lock:
            return any(self._version(ref) != version for ref, version in txn.reads.items())

    def _commit(self, txn: Transaction) -> CommitEvent:
        with self._lock:
            for ref, expected in txn.reads.items():
                if self._version(ref) != expected:
                    raise WriteConflict(f"{ref[0]}/{ref[1]} changed (expected v{expected})")

            for ref in txn.writes:
                if ref not in txn.reads and self._version(ref) != 0:
                    raise WriteConflict(f"{ref[0]}/{ref[1]} already exists")

            changed: Dict[str, List[DocumentModel]] = {}
            for (collection, key), document in txn.writes.items():
                version = self._version((collection, key)) + 1
                self._documents[collection][key] = (document.model_copy(deep=True), version)
                changed.setdefault(collection, []).append(document.model_copy(deep=True))

            self._sequence += 1
            event = CommitEvent(sequence=self._sequence, committed_at=utcnow(), changed=changed)

            # Published under the commit lock so watchers see commit order
            self._publish(event)
            return event

    @contextmanager
    def consistent_read(self) -> Iterator[None]:
        with self._lock, self._listeners_lock:
            yield

    def _values(self, collection: str) -> List[DocumentModel]:
        with self._lock:
            return [doc.model_copy(deep=True) for doc, _ in self._documents[collection].values()]

    def list_wagers(self) -> List[Wager]:
        wagers = self._values(WAGERS)
        wagers.sort(key=lambda w: w.created_at, reverse=True)
        return wagers

    def list_balances(self) -> List[UserBalance]:
        return self._values(BALANCES)

    def list_notifications(self, user_id: str) -> List[Notification]:
        notifications = [n for n in self._values(NOTIFICATIONS) if n.user_id == user_id]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications
