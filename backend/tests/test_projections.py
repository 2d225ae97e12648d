"""
Tests for the read-side projections.

Tests cover:
1. Activity feed
2. Leaderboard ranking
3. Notification read state
"""

import pytest
from datetime import datetime, timedelta, timezone

from app.models.schemas import Bet, UserBalance, Wager, WagerOption
from app.services.activity import generate_activity_feed
from app.services.errors import Forbidden, NotFound
from app.services.leaderboard import build_leaderboard
from app.services.notifications import NotificationService


T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _wager(wager_id="w1", status="open", bets=None, **kwargs):
    return Wager(
        id=wager_id,
        title=kwargs.pop("title", "Rain?"),
        author="Author",
        author_id="author",
        options=[WagerOption(text="Yes", odds=150), WagerOption(text="No", odds=-200)],
        cutoff_date=T0 + timedelta(days=1),
        status=status,
        bets=bets or [],
        created_at=kwargs.pop("created_at", T0),
        **kwargs,
    )


def _bet(user_id, option="Yes", amount=100, created_at=None):
    return Bet(
        user_id=user_id,
        username=user_id.title(),
        option=option,
        amount=amount,
        created_at=created_at or T0 + timedelta(minutes=5),
    )


# =============================================================================
# TEST: ACTIVITY FEED
# =============================================================================

class TestActivityFeed:

    @pytest.mark.unit
    def test_open_wager_with_bet(self):
        feed = generate_activity_feed([_wager(bets=[_bet("alice")])])

        assert [item.type for item in feed] == ["bet_placed", "wager_created"]
        assert feed[0].id == "w1-alice"
        assert feed[0].text == 'Alice bet on "Yes" for the wager "Rain?"'
        assert feed[1].id == "w1"
        assert feed[1].text == 'Author created the wager: "Rain?"'

    @pytest.mark.unit
    def test_settled_wager(self):
        wager = _wager(
            status="settled",
            winning_option="No",
            settled_at=T0 + timedelta(hours=2),
            bets=[_bet("alice")],
        )

        feed = generate_activity_feed([wager])

        assert feed[0].type == "wager_settled"
        assert feed[0].id == "w1-settled"
        assert feed[0].text == 'Author settled the wager "Rain?". The winner was "No".'
        assert feed[0].timestamp == T0 + timedelta(hours=2)

    @pytest.mark.unit
    def test_settled_without_timestamp_falls_back_to_creation(self):
        wager = _wager(status="settled", winning_option="Yes")

        feed = generate_activity_feed([wager])

        settled = next(item for item in feed if item.type == "wager_settled")
        assert settled.timestamp == T0

    @pytest.mark.unit
    def test_cancelled_wager(self):
        wager = _wager(status="cancelled", cancelled_at=T0 + timedelta(hours=3))

        feed = generate_activity_feed([wager])

        assert feed[0].type == "wager_cancelled"
        assert feed[0].text == 'The wager "Rain?" was cancelled.'

    @pytest.mark.unit
    def test_newest_first_across_wagers(self):
        older = _wager("w1", created_at=T0)
        newer = _wager("w2", created_at=T0 + timedelta(hours=1), title="Snow?")

        feed = generate_activity_feed([older, newer])

        assert [item.id for item in feed] == ["w2", "w1"]

    @pytest.mark.unit
    def test_from_ledger_operations(self, ledger, store, make_user, make_wager):
        make_user("alice")
        wager_id = make_wager(title="Rain?")
        ledger.place_bet(wager_id, "alice", "Alice", "Yes", 100)
        ledger.cancel_wager(wager_id)

        types = {item.type for item in generate_activity_feed(store.list_wagers())}

        assert types == {"wager_created", "bet_placed", "wager_cancelled"}


# =============================================================================
# TEST: LEADERBOARD
# =============================================================================

class TestLeaderboard:

    @pytest.mark.unit
    def test_ranked_by_points(self):
        balances = [
            UserBalance(user_id="a", display_name="A", points=500),
            UserBalance(user_id="b", display_name="B", points=1500),
            UserBalance(user_id="c", display_name="C", points=1000),
        ]

        rows = build_leaderboard(balances, [])

        assert [r.user_id for r in rows] == ["b", "c", "a"]

    @pytest.mark.unit
    def test_ties_broken_by_potential_winnings(self):
        balances = [
            UserBalance(user_id="a", display_name="A", points=900),
            UserBalance(user_id="b", display_name="B", points=900),
        ]
        wagers = [_wager(bets=[_bet("a", "No", 100), _bet("b", "Yes", 100)])]

        rows = build_leaderboard(balances, wagers)

        assert [r.user_id for r in rows] == ["b", "a"]
        assert rows[0].potential_winnings == 150
        assert rows[0].potential_total == 1050
        assert rows[1].potential_winnings == 50

    @pytest.mark.unit
    def test_settled_wagers_add_no_potential(self):
        balances = [UserBalance(user_id="a", display_name="A", points=900)]
        wagers = [_wager(status="settled", winning_option="Yes", bets=[_bet("a")])]

        rows = build_leaderboard(balances, wagers)

        assert rows[0].potential_winnings == 0

    @pytest.mark.unit
    def test_missing_display_name_uses_user_id(self):
        rows = build_leaderboard([UserBalance(user_id="u-1", points=10)], [])

        assert rows[0].display_name == "u-1"


# =============================================================================
# TEST: NOTIFICATION SERVICE
# =============================================================================

class TestNotificationService:

    @pytest.fixture
    def notified(self, ledger, store, make_user, make_wager):
        """Author with two notifications (two bets on their wager)."""
        make_user("alice")
        make_user("bob")
        wager_id = make_wager(author_id="author")
        ledger.place_bet(wager_id, "alice", "Alice", "Yes", 100)
        ledger.place_bet(wager_id, "bob", "Bob", "No", 100)
        return NotificationService(store)

    @pytest.mark.unit
    def test_list_for_recipient(self, notified):
        notifications = notified.list_notifications("author")

        assert len(notifications) == 2
        assert all(n.user_id == "author" for n in notifications)
        assert notified.list_notifications("alice") == []

    @pytest.mark.unit
    def test_mark_read(self, notified):
        target = notified.list_notifications("author")[0]

        updated = notified.mark_notification_read(target.id, "author")

        assert updated.is_read is True
        unread = notified.list_notifications("author", unread_only=True)
        assert len(unread) == 1
        assert unread[0].id != target.id

    @pytest.mark.unit
    def test_mark_read_twice_is_harmless(self, notified, store):
        target = notified.list_notifications("author")[0]
        notified.mark_notification_read(target.id, "author")
        sequence = store.sequence

        notified.mark_notification_read(target.id, "author")

        # Already read: nothing to commit
        assert store.sequence == sequence

    @pytest.mark.unit
    def test_mark_someone_elses_notification(self, notified):
        target = notified.list_notifications("author")[0]

        with pytest.raises(Forbidden):
            notified.mark_notification_read(target.id, "alice")

        assert notified.list_notifications("author")[0].is_read is False

    @pytest.mark.unit
    def test_mark_missing_notification(self, notified):
        with pytest.raises(NotFound):
            notified.mark_notification_read("missing", "author")

    @pytest.mark.unit
    def test_mark_all_read(self, notified):
        assert notified.mark_all_read("author") == 2
        assert notified.list_notifications("author", unread_only=True) == []
        assert notified.mark_all_read("author") == 0
