from fastapi import APIRouter, status, Depends, Query, Request
from typing import List, Optional
from datetime import datetime, timezone

from app.models.schemas import (
    Bet, BetCreate, CancellationResponse, CurrentUser, SettlementResponse,
    Wager, WagerCreate, WagerSettle, WagerStatus
)
from app.rate_limit import limiter, RATE_LIMITS
from app.services.auth import get_current_user
from app.services.errors import Forbidden, InvalidOption, InvalidWager
from app.services.ledger import LedgerService, get_ledger
from app.utils.time_utils import ensure_utc

router = APIRouter(prefix="/wagers", tags=["wagers"])


def _require_author(wager: Wager, current_user: CurrentUser) -> None:
    if wager.author_id != current_user.id:
        raise Forbidden("Only the wager's author can do that")


@router.get("", response_model=List[Wager])
async def get_wagers(
    status_filter: Optional[WagerStatus] = Query(default=None, alias="status"),
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """
    Get all wagers, newest first.
    Optionally filter by status (open, settled, cancelled).
    """
    return ledger.list_wagers(status=status_filter)


@router.get("/{wager_id}", response_model=Wager)
async def get_wager(
    wager_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """Get a single wager with its bets."""
    return ledger.get_wager(wager_id)


@router.post("", response_model=Wager, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["create_wager"])
async def create_wager(
    request: Request,
    wager_data: WagerCreate,
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """
    Create a new wager authored by the current user.

    If `initial_bet` is given, the author's bet is placed right after the
    wager is created (a separate transaction: if the bet is rejected the
    wager still exists and the bet error is returned).
    """
    if ensure_utc(wager_data.cutoff_date) <= datetime.now(timezone.utc):
        raise InvalidWager("cutoff_date must be in the future")

    initial_option = None
    if wager_data.initial_bet:
        initial_option = wager_data.initial_bet.option.strip()
        option_texts = {opt.text.strip() for opt in wager_data.options}
        if initial_option not in option_texts:
            raise InvalidOption("initial_bet.option must be one of the wager's options")

    wager_id = ledger.create_wager(
        title=wager_data.title,
        options=wager_data.options,
        author=current_user.display_name,
        author_id=current_user.id,
        cutoff_date=wager_data.cutoff_date,
    )

    if wager_data.initial_bet:
        ledger.place_bet(
            wager_id,
            current_user.id,
            current_user.display_name,
            initial_option,
            wager_data.initial_bet.amount,
        )

    return ledger.get_wager(wager_id)


@router.post("/{wager_id}/bets", response_model=Bet, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["place_bet"])
async def place_bet(
    request: Request,
    wager_id: str,
    bet_data: BetCreate,
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """
    Place the current user's bet on a wager.

    One bet per user per wager; the stake is debited immediately and the
    wager's author is notified.
    """
    return ledger.place_bet(
        wager_id,
        current_user.id,
        current_user.display_name,
        bet_data.option,
        bet_data.amount,
    )


@router.post("/{wager_id}/settle", response_model=SettlementResponse)
@limiter.limit(RATE_LIMITS["settle"])
async def settle_wager(
    request: Request,
    wager_id: str,
    settlement: WagerSettle,
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """
    Settle a wager and pay out winners (author only).

    This will:
    1. Mark the wager settled with the winning option
    2. Credit each winning bettor stake + winnings at the option's odds
    3. Leave losing stakes where they are (already debited)
    """
    _require_author(ledger.get_wager(wager_id), current_user)
    return ledger.settle_wager(wager_id, settlement.winning_option)


@router.post("/{wager_id}/cancel", response_model=CancellationResponse)
@limiter.limit(RATE_LIMITS["cancel"])
async def cancel_wager(
    request: Request,
    wager_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """
    Cancel an open wager and refund every bettor (author only).

    Each bettor gets their full stake back and a notification.
    """
    _require_author(ledger.get_wager(wager_id), current_user)
    return ledger.cancel_wager(wager_id)
