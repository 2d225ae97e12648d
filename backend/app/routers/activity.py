from fastapi import APIRouter, Depends, Query
from typing import List

from app.models.schemas import ActivityItem, CurrentUser
from app.services.activity import generate_activity_feed
from app.services.auth import get_current_user
from app.services.ledger import LedgerService, get_ledger

router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("", response_model=List[ActivityItem])
async def get_activity(
    limit: int = Query(default=50, ge=1, le=500),
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """Recent wager activity across everyone, newest first."""
    return generate_activity_feed(ledger.list_wagers())[:limit]
