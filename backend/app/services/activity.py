from typing import Iterable, List

from app.models.schemas import ActivityItem, Wager


def generate_activity_feed(wagers: Iterable[Wager]) -> List[ActivityItem]:
    """
    Project wager documents into a human-readable activity feed.

    One item per wager creation, per bet, and per settlement/cancellation,
    newest first. Pure function over committed state.
    """
    activities: List[ActivityItem] = []

    for wager in wagers:
        activities.append(ActivityItem(
            id=wager.id,
            text=f'{wager.author} created the wager: "{wager.title}"',
            timestamp=wager.created_at,
            type="wager_created",
        ))

        for bet in wager.bets:
            activities.append(ActivityItem(
                id=f"{wager.id}-{bet.user_id}",
                text=f'{bet.username} bet on "{bet.option}" for the wager "{wager.title}"',
                timestamp=bet.created_at,
                type="bet_placed",
            ))

        if wager.status == "settled" and wager.winning_option:
            activities.append(ActivityItem(
                id=f"{wager.id}-settled",
                text=(
                    f'{wager.author} settled the wager "{wager.title}". '
                    f'The winner was "{wager.winning_option}".'
                ),
                # Wagers settled before settledAt existed fall back to creation time
                timestamp=wager.settled_at or wager.created_at,
                type="wager_settled",
            ))

        if wager.status == "cancelled":
            activities.append(ActivityItem(
                id=f"{wager.id}-cancelled",
                text=f'The wager "{wager.title}" was cancelled.',
                timestamp=wager.cancelled_at or wager.created_at,
                type="wager_cancelled",
            ))

    activities.sort(key=lambda a: a.timestamp, reverse=True)
    return activities
