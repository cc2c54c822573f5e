"""Strike/Ban Rules — pure decisions for the cancellation counter and suspension clock.

Invariants:
    - Only cancellations of PENDING/ACCEPTED fulfillments count as strikes
    - Reaching the threshold bans for ban_duration and resets the counter to 0
    - evaluate_cancellation is PURE: returns the outcome, does NOT mutate state

Design Decisions:
    - Shell applies the outcome with a single conditional UPDATE on the requester row
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from bloodmatch.core.clock import as_utc
from bloodmatch.core.domain_types import RequestStatus


@dataclass(frozen=True)
class StrikeOutcome:
    """Requester counters after a cancellation."""
    cancel_count: int
    banned_until: datetime | None
    counted: bool = False
    newly_banned: bool = False


def counts_as_strike(previous_status: RequestStatus) -> bool:
    return previous_status.is_outstanding


def evaluate_cancellation(
    cancel_count: int,
    banned_until: datetime | None,
    previous_status: RequestStatus,
    now: datetime,
    threshold: int,
    ban_duration: timedelta,
) -> StrikeOutcome:
    if not counts_as_strike(previous_status):
        return StrikeOutcome(cancel_count, banned_until)

    count = cancel_count + 1
    if count >= threshold:
        return StrikeOutcome(
            0, as_utc(now) + ban_duration, counted=True, newly_banned=True,
        )
    return StrikeOutcome(count, banned_until, counted=True)


def active_ban(banned_until: datetime | None, as_of: datetime) -> datetime | None:
    """Return banned_until if the suspension is still running at `as_of`."""
    if banned_until is None:
        return None
    banned_until = as_utc(banned_until)
    return banned_until if banned_until > as_utc(as_of) else None
