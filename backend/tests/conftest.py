"""
Pytest configuration and shared fixtures for the wager ledger tests.

This module provides:
- A fresh in-memory store + ledger per test, with a controllable clock
- User/Wager factory fixtures
- FastAPI TestClient setup with dependency overrides
"""

import pytest
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Optional

from fastapi.testclient import TestClient

from app.main import app
from app.models.schemas import CurrentUser, UserBalance
from app.rate_limit import limiter
from app.services.auth import get_current_user, get_websocket_user
from app.services.ledger import LedgerService, get_ledger
from app.services.live import LiveQueryDistributor, get_distributor
from app.services.notifications import (
    NotificationService,
    StoreNotificationEmitter,
    get_notification_service,
)
from app.services.store import InMemoryStore


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


# =============================================================================
# CLOCK
# =============================================================================

class FakeClock:
    """Callable clock the ledger reads `now` from; tests move it by hand."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def store():
    """Fresh in-memory store."""
    return InMemoryStore(max_attempts=5)


@pytest.fixture
def ledger(store, clock):
    """Ledger wired to the store-backed notification emitter."""
    return LedgerService(
        store,
        notifier=StoreNotificationEmitter(store, clock=clock),
        clock=clock,
        starting_points=1000,
    )


def set_points(store: InMemoryStore, user_id: str, points: int) -> None:
    """Force a user's balance (test setup only)."""
    def _set(txn):
        balance = txn.get_balance(user_id)
        balance.points = points
        txn.put_balance(balance)

    store.run_transaction(_set)


@pytest.fixture
def make_user(ledger, store):
    """Factory for funded users."""
    def _make_user(user_id: str, points: int = 1000, display_name: str = None) -> UserBalance:
        ledger.open_account(user_id, display_name or user_id.title())
        if points != 1000:
            set_points(store, user_id, points)
        return store.get_balance(user_id)
    return _make_user


DEFAULT_OPTIONS = [
    {"text": "Yes", "odds": 150},
    {"text": "No", "odds": -200},
]


@pytest.fixture
def make_wager(ledger, clock):
    """Factory for open wagers; defaults to Yes +150 / No -200, closing in a day."""
    def _make_wager(
        title: str = "Will it snow on Friday?",
        options: List[Dict] = None,
        author: str = "Author",
        author_id: str = "author",
        cutoff_date: datetime = None,
    ) -> str:
        return ledger.create_wager(
            title=title,
            options=options or DEFAULT_OPTIONS,
            author=author,
            author_id=author_id,
            cutoff_date=cutoff_date or clock.now + timedelta(days=1),
        )
    return _make_wager


def total_points(store: InMemoryStore) -> int:
    """Points held in balances plus points staked on open wagers."""
    balances = sum(b.points for b in store.list_balances())
    staked = sum(w.total_staked for w in store.list_wagers() if w.status == "open")
    return balances + staked


# =============================================================================
# FASTAPI TEST CLIENT
# =============================================================================

@pytest.fixture(autouse=True)
def _disable_rate_limits():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def distributor(store):
    distributor = LiveQueryDistributor(store)
    yield distributor
    distributor.close()


@pytest.fixture
def client(ledger, store, distributor):
    """Test client whose app uses this test's store and ledger."""
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_notification_service] = lambda: NotificationService(store)
    app.dependency_overrides[get_distributor] = lambda: distributor

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Switch the authenticated caller: `login("alice")` returns the client."""
    def _login(user_id: str, display_name: str = None) -> TestClient:
        user = CurrentUser(id=user_id, display_name=display_name or user_id.title())
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_websocket_user] = lambda: user
        return client
    return _login


@pytest.fixture
def future_datetime():
    """Return a datetime 1 day in the future."""
    return datetime.now(timezone.utc) + timedelta(days=1)


@pytest.fixture
def past_datetime():
    """Return a datetime 1 hour in the past."""
    return datetime.now(timezone.utc) - timedelta(hours=1)
