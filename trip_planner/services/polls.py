"""Poll tallying and closing.

Used both by the explicit complete endpoint and by the scheduler that closes
polls past their expiry.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

from trip_planner.db.dal import Database
from trip_planner.models.constants import POLL_COMPLETED, POLL_TIE
from trip_planner.services.notifications import notify_trip_members


def tally(options: Sequence[Dict[str, Any]]) -> Tuple[str, Optional[int]]:
    """Return ``(status, winner_option_id)`` for a set of options with vote counts.

    Highest count wins. A shared top count is a TIE, and no votes at all
    completes the poll without a winner.
    """
    if not options:
        return POLL_COMPLETED, None
    top = max(int(o["vote_count"]) for o in options)
    if top == 0:
        return POLL_COMPLETED, None
    leaders = [o for o in options if int(o["vote_count"]) == top]
    if len(leaders) > 1:
        return POLL_TIE, None
    return POLL_COMPLETED, int(leaders[0]["id"])


def close_poll(db: Database, poll: Dict[str, Any], now: datetime) -> Optional[Tuple[str, Optional[int]]]:
    """Tally and close ``poll``, notifying trip members.

    Returns None when another caller already closed it.
    """
    options = db.get_poll_options([poll["id"]]).get(int(poll["id"]), [])
    status, winner_id = tally(options)
    if not db.complete_poll(int(poll["id"]), status, winner_id, now):
        return None

    if status == POLL_TIE:
        message = f'The poll "{poll["question"]}" ended in a tie.'
    elif winner_id is None:
        message = f'The poll "{poll["question"]}" closed with no votes.'
    else:
        winner_text = next(o["option_text"] for o in options if int(o["id"]) == winner_id)
        message = f'The poll "{poll["question"]}" closed. Winner: {winner_text}.'
    notify_trip_members(
        db,
        int(poll["trip_id"]),
        "POLL_COMPLETED",
        "Poll completed",
        message,
        related_id=poll["id"],
        data={"poll_id": poll["id"], "status": status, "winner_option_id": winner_id},
    )
    return status, winner_id
