"""
Supabase-backed document store.

Point reads go through PostgREST. Each table carries the canonical
camelCase document columns plus an integer `version` column.

Commits call the `commit_documents_atomic` SECURITY DEFINER RPC, which in
one Postgres transaction checks every expected version (0 = must not exist),
upserts the documents with `version + 1` and returns the new commit
sequence. A mismatch raises `Version conflict`, mapped to `WriteConflict`.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from app.models.schemas import DocumentModel, Notification, UserBalance, Wager
from app.services.errors import WriteConflict
from app.services.store import (
    BALANCES,
    COLLECTIONS,
    NOTIFICATIONS,
    WAGERS,
    CommitEvent,
    DocumentStore,
    Transaction,
)
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

KEY_COLUMNS = {
    WAGERS: "id",
    BALANCES: "userId",
    NOTIFICATIONS: "id",
}


class SupabaseStore(DocumentStore):

    def __init__(self, client: Client, max_attempts: int = 5):
        super().__init__(max_attempts=max_attempts)
        self._client = client

    def _parse(self, collection: str, row: Dict[str, Any]) -> Tuple[DocumentModel, int]:
        row = dict(row)
        version = row.pop("version", None) or 0
        return COLLECTIONS[collection].model_validate(row), version

    def _read(self, collection: str, key: str) -> Tuple[Optional[DocumentModel], int]:
        result = self._client.table(collection)\
            .select("*")\
            .eq(KEY_COLUMNS[collection], key)\
            .execute()

        if not result.data:
            return None, 0

        return self._parse(collection, result.data[0])

    def _is_stale(self, txn: Transaction) -> bool:
        for (collection, key), version in txn.reads.items():
            if self._read(collection, key)[1] != version:
                return True
        return False

    def _commit(self, txn: Transaction) -> CommitEvent:
        payload = {
            "p_writes": [
                {
                    "collection": collection,
                    "key_column": KEY_COLUMNS[collection],
                    "key": key,
                    "expected_version": txn.reads.get((collection, key), 0),
                    "document": document.model_dump(mode="json", by_alias=True),
                }
                for (collection, key), document in txn.writes.items()
            ],
            # Documents read but not written still have to be unchanged
            "p_reads": [
                {
                    "collection": collection,
                    "key_column": KEY_COLUMNS[collection],
                    "key": key,
                    "expected_version": version,
                }
                for (collection, key), version in txn.reads.items()
                if (collection, key) not in txn.writes
            ],
        }

        try:
            result = self._client.rpc("commit_documents_atomic", payload).execute()
        except Exception as e:
            error_msg = str(e)
            if "Version conflict" in error_msg:
                raise WriteConflict(error_msg)
            raise

        if not result.data:
            raise RuntimeError("commit_documents_atomic returned no data")

        changed: Dict[str, List[DocumentModel]] = {}
        for (collection, _), document in txn.writes.items():
            changed.setdefault(collection, []).append(document.model_copy(deep=True))

        event = CommitEvent(
            sequence=result.data["sequence"],
            committed_at=utcnow(),
            changed=changed,
        )
        # Only commits made through this process reach local watchers
        self._publish(event)
        return event

    def list_wagers(self) -> List[Wager]:
        result = self._client.table(WAGERS)\
            .select("*")\
            .order("createdAt", desc=True)\
            .execute()
        return [self._parse(WAGERS, row)[0] for row in result.data or []]

    def list_balances(self) -> List[UserBalance]:
        result = self._client.table(BALANCES).select("*").execute()
        return [self._parse(BALANCES, row)[0] for row in result.data or []]

    def list_notifications(self, user_id: str) -> List[Notification]:
        result = self._client.table(NOTIFICATIONS)\
            .select("*")\
            .eq("userId", user_id)\
            .order("createdAt", desc=True)\
            .execute()
        return [self._parse(NOTIFICATIONS, row)[0] for row in result.data or []]
