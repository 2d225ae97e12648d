from typing import Dict, Iterable

from app.models.schemas import Wager


def calculate_winnings(bet_amount: int, odds: int) -> int:
    """
    Winnings on a winning bet at American odds (stake not included).

    Positive odds pay odds/100 per point staked (underdog), negative odds pay
    100/|odds| (favorite). Points are whole numbers, so fractional winnings
    are floored.

    Examples:
        100 @ +150 -> 150
        100 @ -200 -> 50
    """
    if odds == 0:
        raise ValueError("odds must be nonzero")

    if odds > 0:
        return bet_amount * odds // 100
    return bet_amount * 100 // abs(odds)


def calculate_total_return(bet_amount: int, odds: int) -> int:
    """Stake plus winnings: what a winning bettor is credited at settlement."""
    return bet_amount + calculate_winnings(bet_amount, odds)


def calculate_potential_winnings(wagers: Iterable[Wager]) -> Dict[str, int]:
    """
    Project per-user winnings if every bet on an open wager came in.

    Read-side only (leaderboard); settlement never uses this. Bets whose
    option no longer exists on the wager are ignored.
    """
    potential: Dict[str, int] = {}

    for wager in wagers:
        if wager.status != "open":
            continue

        for bet in wager.bets:
            option = wager.find_option(bet.option)
            if not option:
                continue
            potential[bet.user_id] = potential.get(bet.user_id, 0) + calculate_winnings(
                bet.amount, option.odds
            )

    return potential
