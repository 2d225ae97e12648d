"""
Transaction engine for wagers and point balances.

Each public operation is one logical transaction: read every document it
touches through the transaction handle, validate against what was read,
stage the writes, and let the store commit them all-or-nothing (retrying on
conflict). Notifications are requested only after a successful commit.
"""
import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, List, Optional, Sequence, Tuple

from app.config import get_settings
from app.database import get_store
from app.models.schemas import (
    Bet,
    CancellationResponse,
    SettlementResponse,
    UserBalance,
    Wager,
    WagerOption,
)
from app.services.errors import (
    AlreadySettled,
    BettingClosed,
    DuplicateBet,
    InsufficientFunds,
    InvalidAmount,
    InvalidOption,
    InvalidState,
    InvalidWager,
    NotFound,
)
from app.services.notifications import NotificationEmitter, StoreNotificationEmitter
from app.services.payout import calculate_total_return
from app.services.store import DocumentStore, Transaction
from app.utils.time_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _is_whole_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _normalize_options(options: Sequence[Any]) -> List[WagerOption]:
    """Accept WagerOption-like objects or dicts; validate text and odds."""
    if options is None or len(options) < 2:
        raise InvalidWager("A wager needs at least two options")

    normalized = []
    seen = set()
    for option in options:
        if isinstance(option, dict):
            text, odds = option.get("text"), option.get("odds")
        else:
            text, odds = getattr(option, "text", None), getattr(option, "odds", None)

        text = text.strip() if isinstance(text, str) else ""
        if not text:
            raise InvalidWager("Option text cannot be empty")
        if text in seen:
            raise InvalidWager(f'Option "{text}" appears more than once')
        if not _is_whole_number(odds) or odds == 0:
            raise InvalidWager(f'Odds for "{text}" must be a nonzero whole number')

        seen.add(text)
        normalized.append(WagerOption(text=text, odds=odds))

    return normalized


class LedgerService:
    """
    CreateWager / PlaceBet / SettleWager / CancelWager over a DocumentStore.

    Holds no locks of its own; concurrent callers are serialized per
    document by the store's optimistic conflict detection.
    """

    def __init__(
        self,
        store: DocumentStore,
        notifier: Optional[NotificationEmitter] = None,
        clock: Clock = utcnow,
        starting_points: int = 1000,
    ):
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._starting_points = starting_points

    @property
    def store(self) -> DocumentStore:
        return self._store

    # ---- accounts ----

    def open_account(self, user_id: str, display_name: str) -> UserBalance:
        """Create the user's balance with the starting grant; existing balances are returned as-is."""
        def _open(txn: Transaction) -> Tuple[UserBalance, bool]:
            existing = txn.get_balance(user_id)
            if existing:
                return existing, False

            balance = UserBalance(
                user_id=user_id,
                display_name=display_name,
                points=self._starting_points,
                created_at=self._clock(),
            )
            txn.put_balance(balance)
            return balance, True

        balance, created = self._store.run_transaction(_open)
        if created:
            logger.info(f"Opened account for {user_id} with {balance.points} points")
        return balance

    def get_balance(self, user_id: str) -> UserBalance:
        balance = self._store.get_balance(user_id)
        if not balance:
            raise NotFound(f"No account for user {user_id}")
        return balance

    # ---- wagers ----

    def get_wager(self, wager_id: str) -> Wager:
        wager = self._store.get_wager(wager_id)
        if not wager:
            raise NotFound(f"Wager {wager_id} not found")
        return wager

    def list_wagers(self, status: Optional[str] = None) -> List[Wager]:
        wagers = self._store.list_wagers()
        if status is not None:
            wagers = [w for w in wagers if w.status == status]
        return wagers

    def create_wager(
        self,
        title: str,
        options: Sequence[Any],
        author: str,
        author_id: str,
        cutoff_date: datetime,
    ) -> str:
        title = title.strip() if isinstance(title, str) else ""
        if not title:
            raise InvalidWager("Title is required")
        if not author_id:
            raise InvalidWager("Author is required")
        normalized = _normalize_options(options)
        if not isinstance(cutoff_date, datetime):
            raise InvalidWager("Cutoff date must be a valid instant")
        cutoff_date = ensure_utc(cutoff_date)

        def _create(txn: Transaction) -> Wager:
            wager = Wager(
                id=txn.new_id(),
                title=title,
                author=author,
                author_id=author_id,
                options=normalized,
                cutoff_date=cutoff_date,
                status="open",
                bets=[],
                cancelled_at=None,
                created_at=self._clock(),
            )
            txn.put_wager(wager)
            return wager

        wager = self._store.run_transaction(_create)
        logger.info(f'{author} created wager {wager.id}: "{title}" ({len(normalized)} options)')
        return wager.id

    def place_bet(
        self,
        wager_id: str,
        user_id: str,
        username: str,
        option_text: str,
        amount: int,
    ) -> Bet:
        def _place(txn: Transaction) -> Tuple[Wager, Bet]:
            wager = txn.get_wager(wager_id)
            if not wager:
                raise NotFound(f"Wager {wager_id} not found")

            balance = txn.get_balance(user_id)
            if not balance:
                raise NotFound(f"No account for user {user_id}")

            if wager.find_bet(user_id):
                raise DuplicateBet("You have already placed a bet on this wager")

            if not _is_whole_number(amount) or amount <= 0:
                raise InvalidAmount("Bet amount must be a positive whole number of points")

            if wager.status != "open":
                raise InvalidState(f"Wager is {wager.status}, not open for betting")

            if not wager.find_option(option_text):
                raise InvalidOption(f'"{option_text}" is not an option on this wager')

            if amount > balance.points:
                raise InsufficientFunds(
                    f"Insufficient points: need {amount}, have {balance.points}"
                )

            now = self._clock()
            if now >= wager.cutoff_date:
                raise BettingClosed("The betting period for this wager has ended")

            bet = Bet(
                user_id=user_id,
                username=username,
                option=option_text,
                amount=amount,
                created_at=now,
            )
            wager.bets.append(bet)
            balance.points -= amount

            txn.put_balance(balance)
            txn.put_wager(wager)
            return wager, bet

        wager, bet = self._store.run_transaction(_place)
        logger.info(f'{username} bet {amount} on "{option_text}" in wager {wager_id}')

        self._notify(
            wager.author_id,
            wager_id,
            f'{username} placed a bet on your wager: "{wager.title}"',
        )
        return bet

    def settle_wager(self, wager_id: str, winning_option: str) -> SettlementResponse:
        """
        Settle a wager and credit winners stake + winnings.

        Losing stakes were debited at bet time and are not refunded. Winner
        credits and the status flip commit together.
        """
        def _settle(txn: Transaction) -> SettlementResponse:
            wager = txn.get_wager(wager_id)
            if not wager:
                raise NotFound(f"Wager {wager_id} not found")

            if wager.status == "settled":
                raise AlreadySettled("This wager has already been settled")
            if wager.status != "open":
                raise InvalidState(f"Cannot settle a {wager.status} wager")

            option = wager.find_option(winning_option)
            if not option:
                raise InvalidOption(f'"{winning_option}" is not an option on this wager')

            now = self._clock()
            winners = 0
            total_payout = 0

            for bet in wager.bets:
                if bet.option != winning_option:
                    continue

                credit = calculate_total_return(bet.amount, option.odds)
                balance = txn.get_balance(bet.user_id)
                if not balance:
                    balance = UserBalance(
                        user_id=bet.user_id,
                        display_name=bet.username,
                        points=0,
                        created_at=now,
                    )
                balance.points += credit
                txn.put_balance(balance)

                winners += 1
                total_payout += credit

            wager.status = "settled"
            wager.winning_option = winning_option
            wager.settled_at = now
            txn.put_wager(wager)

            return SettlementResponse(
                wager_id=wager_id,
                winning_option=winning_option,
                total_bets=len(wager.bets),
                winners=winners,
                losers=len(wager.bets) - winners,
                total_payout=total_payout,
                settled_at=now,
            )

        summary = self._store.run_transaction(_settle)
        logger.info(
            f'Settled wager {wager_id} on "{winning_option}": '
            f"{summary.winners} winners, {summary.losers} losers, {summary.total_payout} points paid"
        )
        return summary

    def cancel_wager(self, wager_id: str) -> CancellationResponse:
        """Cancel an open wager and refund every bettor's full stake."""
        def _cancel(txn: Transaction) -> Tuple[Wager, CancellationResponse]:
            wager = txn.get_wager(wager_id)
            if not wager:
                raise NotFound(f"Wager {wager_id} not found")

            if wager.status != "open":
                raise InvalidState("Only open wagers can be cancelled")

            now = self._clock()
            total_refunded = 0

            for bet in wager.bets:
                balance = txn.get_balance(bet.user_id)
                if not balance:
                    balance = UserBalance(
                        user_id=bet.user_id,
                        display_name=bet.username,
                        points=0,
                        created_at=now,
                    )
                balance.points += bet.amount
                txn.put_balance(balance)
                total_refunded += bet.amount

            wager.status = "cancelled"
            wager.cancelled_at = now
            txn.put_wager(wager)

            return wager, CancellationResponse(
                wager_id=wager_id,
                users_refunded=len(wager.bets),
                total_refunded=total_refunded,
                cancelled_at=now,
            )

        wager, summary = self._store.run_transaction(_cancel)
        logger.info(
            f"Cancelled wager {wager_id}: refunded {summary.total_refunded} points "
            f"to {summary.users_refunded} bettors"
        )

        for bet in wager.bets:
            self._notify(
                bet.user_id,
                wager_id,
                f'The wager "{wager.title}" has been cancelled. '
                f"Your bet of {bet.amount} points has been refunded.",
            )
        return summary

    def _notify(self, user_id: str, wager_id: str, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.emit(user_id, wager_id, message)
        except Exception:
            logger.exception(f"Notification to {user_id} for wager {wager_id} failed")


@lru_cache()
def get_ledger() -> LedgerService:
    settings = get_settings()
    store = get_store()
    return LedgerService(
        store,
        notifier=StoreNotificationEmitter(store),
        starting_points=settings.starting_points,
    )
