"""Renewal policy and upcoming-renewal projection.

Two date rules live here and must stay separate. The renewal date stored
when a subscription is written comes from a fixed day table (a month is 30
days, a year 365). The next occurrence reported by the projection adds whole
calendar months or years to the start date, using the same day table only to
count how many cycles have elapsed.

Everything in this module is pure: "today" is always passed in.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Protocol

from subtracker.business.subscription.errors import InvalidDateOrderError, InvalidFrequencyError


RENEWAL_PERIOD_DAYS: dict[str, int] = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
    "yearly": 365,
}

# Not a storable frequency; only the projection knows how to step it.
QUARTERLY = "quarterly"
QUARTER_PERIOD_DAYS = 90

STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"
STATUS_EXPIRED = "expired"


class RenewalCandidate(Protocol):
    user_id: str
    status: str
    frequency: str | None
    start_date: date


@dataclass(frozen=True, slots=True)
class RenewalFields:
    renewal_date: date
    # None leaves the caller's status untouched
    status: str | None = None


@dataclass(frozen=True, slots=True)
class UpcomingRenewal:
    subscription: RenewalCandidate
    next_renewal_date: date


def period_days(frequency: str | None) -> int:
    if frequency is None or frequency not in RENEWAL_PERIOD_DAYS:
        raise InvalidFrequencyError(frequency)
    return RENEWAL_PERIOD_DAYS[frequency]


def derive_renewal_fields(
    start_date: date,
    frequency: str | None,
    existing_renewal_date: date | None,
    now: date,
) -> RenewalFields:
    """Resolve the renewal date to persist for a subscription being written.

    An explicit renewal date is kept as long as it falls after ``start_date``.
    Otherwise the date is ``start_date`` plus the fixed period for
    ``frequency``, and the subscription is reported expired when that date
    has already passed.
    """

    if existing_renewal_date is not None:
        if existing_renewal_date <= start_date:
            raise InvalidDateOrderError(start_date, existing_renewal_date)
        return RenewalFields(renewal_date=existing_renewal_date)

    renewal_date = start_date + timedelta(days=period_days(frequency))
    if renewal_date < start_date or renewal_date < now:
        return RenewalFields(renewal_date=renewal_date, status=STATUS_EXPIRED)
    return RenewalFields(renewal_date=renewal_date)


def add_months(base_date: date, months: int) -> date:
    month_index = base_date.month - 1 + months
    year = base_date.year + (month_index // 12)
    month = month_index % 12 + 1
    day = min(base_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_renewal_date(start_date: date, frequency: str | None, now: date) -> date:
    """First renewal occurrence after the cycles already elapsed at ``now``.

    Unknown frequencies fall back to ``start_date``.
    """

    elapsed_days = (now - start_date).days

    if frequency in ("daily", "weekly"):
        period = RENEWAL_PERIOD_DAYS[frequency]
        return start_date + timedelta(days=period * (elapsed_days // period + 1))
    if frequency == "monthly":
        cycles = elapsed_days // RENEWAL_PERIOD_DAYS["monthly"]
        return add_months(start_date, cycles + 1)
    if frequency == QUARTERLY:
        cycles = elapsed_days // QUARTER_PERIOD_DAYS
        return add_months(start_date, 3 * (cycles + 1))
    if frequency == "yearly":
        cycles = elapsed_days // RENEWAL_PERIOD_DAYS["yearly"]
        return add_months(start_date, 12 * (cycles + 1))
    return start_date


def project_upcoming(
    subscriptions: Iterable[RenewalCandidate],
    now: date,
    window_days: int,
    owner_filter: str | None = None,
) -> list[UpcomingRenewal]:
    """Active subscriptions renewing within ``[now, now + window_days]``.

    Results are ordered by next renewal date; ties keep their input order.
    """

    if window_days < 0:
        raise ValueError("window_days must not be negative")

    window_end = now + timedelta(days=window_days)
    upcoming: list[UpcomingRenewal] = []
    for subscription in subscriptions:
        if subscription.status != STATUS_ACTIVE:
            continue
        if owner_filter is not None and subscription.user_id != owner_filter:
            continue
        candidate = next_renewal_date(subscription.start_date, subscription.frequency, now)
        if now <= candidate <= window_end:
            upcoming.append(UpcomingRenewal(subscription=subscription, next_renewal_date=candidate))

    return sorted(upcoming, key=lambda item: item.next_renewal_date)
