from fastapi import APIRouter, Depends

from app.models.schemas import AccountOpen, CurrentUser, UserBalance
from app.services.auth import get_current_user
from app.services.ledger import LedgerService, get_ledger

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserBalance)
async def get_me(
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """Get the current user's point balance."""
    return ledger.get_balance(current_user.id)


@router.post("/me/account", response_model=UserBalance)
async def open_account(
    account: AccountOpen,
    current_user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger)
):
    """
    Open the current user's points account with the starting balance.
    Idempotent: an existing account is returned unchanged.
    """
    return ledger.open_account(
        current_user.id,
        account.display_name or current_user.display_name,
    )
