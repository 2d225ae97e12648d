from fastapi import APIRouter, Depends, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import List, Optional
from pydantic import BaseModel

from app.models.schemas import CurrentUser
from app.services.auth import resolve_user
from app.services.leaderboard import build_leaderboard
from app.services.ledger import LedgerService, get_ledger

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])

# Optional auth - doesn't raise if no token provided
optional_security = HTTPBearer(auto_error=False)


async def get_optional_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security)
) -> Optional[CurrentUser]:
    """Get current user if authenticated, otherwise return None."""
    if not credentials:
        return None

    try:
        return resolve_user(credentials.credentials)
    except Exception:
        return None


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    display_name: str
    points: int
    potential_winnings: int
    potential_total: int
    is_current_user: bool = False


class LeaderboardResponse(BaseModel):
    entries: List[LeaderboardEntry]
    total_participants: int


@router.get("", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(default=100, ge=1, le=500),
    current_user: Optional[CurrentUser] = Depends(get_optional_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """
    Get the points leaderboard.

    Ranked by current points, ties broken by potential winnings: what the
    user would win if every one of their bets on still-open wagers came in.
    Potential winnings are a projection, not credited points.
    """
    rows = build_leaderboard(ledger.store.list_balances(), ledger.list_wagers(status="open"))
    current_user_id = current_user.id if current_user else None

    entries = [
        LeaderboardEntry(
            rank=index + 1,
            user_id=row.user_id,
            display_name=row.display_name,
            points=row.points,
            potential_winnings=row.potential_winnings,
            potential_total=row.potential_total,
            is_current_user=row.user_id == current_user_id
        )
        for index, row in enumerate(rows[:limit])
    ]

    return LeaderboardResponse(
        entries=entries,
        total_participants=len(rows)
    )
