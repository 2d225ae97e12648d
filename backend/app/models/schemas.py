from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, Literal, List


WagerStatus = Literal["open", "settled", "cancelled"]


class DocumentModel(BaseModel):
    """
    Base for persisted ledger documents.

    Attributes are snake_case in Python; the stored/JSON form uses the
    camelCase field names (userId, cutoffDate, ...) every backend exposes.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============ Ledger Documents ============

class WagerOption(DocumentModel):
    text: str
    odds: int


class Bet(DocumentModel):
    user_id: str
    username: str  # display copy taken at bet time, never re-resolved
    option: str
    amount: int
    created_at: datetime


class Wager(DocumentModel):
    id: str
    title: str
    author: str
    author_id: str
    options: List[WagerOption]
    cutoff_date: datetime
    status: WagerStatus = "open"
    bets: List[Bet] = Field(default_factory=list)
    winning_option: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    created_at: datetime

    def find_option(self, text: str) -> Optional[WagerOption]:
        return next((opt for opt in self.options if opt.text == text), None)

    def find_bet(self, user_id: str) -> Optional[Bet]:
        return next((bet for bet in self.bets if bet.user_id == user_id), None)

    @property
    def total_staked(self) -> int:
        return sum(bet.amount for bet in self.bets)


class UserBalance(DocumentModel):
    user_id: str
    display_name: str = ""
    points: int = Field(..., ge=0)
    created_at: Optional[datetime] = None


class Notification(DocumentModel):
    id: str
    user_id: str  # recipient
    wager_id: str
    message: str
    is_read: bool = False
    created_at: datetime


# ============ Identity ============

class CurrentUser(BaseModel):
    """Caller identity as supplied by the identity provider."""
    id: str
    display_name: str
    email: Optional[str] = None


# ============ Wager Schemas ============

class WagerOptionCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=200)
    odds: int


class InitialBet(BaseModel):
    """Bet the author places on their own wager right after creating it."""
    option: str
    amount: int = Field(..., gt=0)


class WagerCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    options: List[WagerOptionCreate] = Field(..., min_length=2)
    cutoff_date: datetime
    initial_bet: Optional[InitialBet] = None


class WagerSettle(BaseModel):
    winning_option: str


class SettlementResponse(BaseModel):
    wager_id: str
    winning_option: str
    total_bets: int
    winners: int
    losers: int
    total_payout: int
    settled_at: datetime


class CancellationResponse(BaseModel):
    wager_id: str
    users_refunded: int
    total_refunded: int
    cancelled_at: datetime


# ============ Bet Schemas ============

class BetCreate(BaseModel):
    option: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)


# ============ Account Schemas ============

class AccountOpen(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=30)


# ============ Activity Schemas ============

ActivityType = Literal["wager_created", "bet_placed", "wager_settled", "wager_cancelled"]


class ActivityItem(BaseModel):
    id: str
    text: str
    timestamp: datetime
    type: ActivityType

