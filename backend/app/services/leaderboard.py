from dataclasses import dataclass
from typing import Iterable, List

from app.models.schemas import UserBalance, Wager
from app.services.payout import calculate_potential_winnings


@dataclass
class LeaderboardRow:
    user_id: str
    display_name: str
    points: int
    potential_winnings: int

    @property
    def potential_total(self) -> int:
        return self.points + self.potential_winnings


def build_leaderboard(balances: Iterable[UserBalance], wagers: Iterable[Wager]) -> List[LeaderboardRow]:
    """
    Rank users by points, then by potential winnings on open wagers.

    Potential winnings are a projection only; they are not credited until
    the wager settles.
    """
    potential = calculate_potential_winnings(wagers)

    rows = [
        LeaderboardRow(
            user_id=balance.user_id,
            display_name=balance.display_name or balance.user_id,
            points=balance.points,
            potential_winnings=potential.get(balance.user_id, 0),
        )
        for balance in balances
    ]
    rows.sort(key=lambda r: (-r.points, -r.potential_winnings, r.display_name))
    return rows
