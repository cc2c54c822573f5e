"""Donor Eligibility Rules — cooldown arithmetic and city-first ordering.

Invariants:
    - next_eligible_date = donation_date + cooldown (never stored without last_donation_date)
    - A donor with no recorded donation is eligible
    - order_city_first is stable: ties keep input order

Design Decisions:
    - Cooldown passed in as timedelta: the value lives in Settings, never a literal here
"""

from datetime import datetime, timedelta
from typing import Iterable, Sequence, TypeVar

from bloodmatch.core.clock import as_utc

T = TypeVar("T")


def compute_next_eligible_date(
    donation_date: datetime, cooldown: timedelta,
) -> datetime:
    return as_utc(donation_date) + cooldown


def is_eligible(next_eligible_date: datetime | None, as_of: datetime) -> bool:
    """True if the donor has no pending cooldown at `as_of`."""
    if next_eligible_date is None:
        return True
    return as_utc(next_eligible_date) <= as_utc(as_of)


def normalize_city(city: str | None) -> str:
    return (city or "").strip().casefold()


def order_city_first(
    donors: Iterable[T], city: str | None, city_of=lambda d: d.city,
) -> Sequence[T]:
    """Donors in `city` first, then everyone else. No further ranking."""
    target = normalize_city(city)
    donors = list(donors)
    local = [d for d in donors if normalize_city(city_of(d)) == target]
    others = [d for d in donors if normalize_city(city_of(d)) != target]
    return local + others
