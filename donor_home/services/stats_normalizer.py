"""Donor statistics normalization and eligibility derivation.

Pure functions, no I/O. The backend returns donor stats in several shapes
(camelCase, snake_case, legacy keys); ``normalize`` resolves them through an
ordered alias table into one ``CanonicalStats`` record, and
``enhance_with_eligibility`` turns the optional eligibility pair into a
definite answer:

    1. Explicit flag:      the backend said eligible / not eligible
    2. Next-eligible date: eligible once that date has passed
    3. Last donation:      eligible DEFAULT_DEFERRAL_DAYS after it
    4. Default:            eligible

The current time is always passed in (or defaults to UTC now) so date
boundaries are deterministic under test.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr
from pydantic.alias_generators import to_camel

from donor_home.utils.data_normalization import (
    coerce_bool,
    coerce_count,
    first_present,
    normalize_string,
    parse_utc_datetime,
    to_iso_string,
)

logger = logging.getLogger(__name__)

# Minimum days between two whole-blood donations.
DEFAULT_DEFERRAL_DAYS = 120

DEFAULT_USER_ID = "unknown"
DEFAULT_STATS_ID = "default"

# Canonical field -> raw aliases, in precedence order.
STATS_ALIASES: dict[str, tuple[str, ...]] = {
    "user_id": ("userId", "user_id", "id"),
    "id": ("id", "statsId", "stats_id"),
    "next_appointment_date": ("nextAppointmentDate", "next_appointment_date"),
    "next_appointment_id": ("nextAppointmentId", "next_appointment_id"),
    "total_donations": ("totalDonations",),
    "total_points": ("totalPoints",),
    "donation_streak": ("donationStreak", "streak"),
    "last_donation_date": ("lastDonationDate", "last_donation_date"),
    "eligible_to_donate": ("eligibleToDonate", "eligible"),
    "next_eligible_date": ("nextEligibleDate", "nextEligible"),
    "last_updated": ("lastUpdated", "updatedAt"),
}

NEXT_ELIGIBLE_FALLBACK_ALIAS = "nextEligible"


class CanonicalStats(BaseModel):
    """A donor's home-screen statistics, independent of the backend's shape.

    Serializes with camelCase keys (``model_dump(by_alias=True)``) for the UI.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    next_appointment_date: Optional[str] = None
    next_appointment_id: Optional[str] = None
    total_donations: int = 0
    total_points: int = 0
    donation_streak: int = 0
    last_donation_date: Optional[str] = None
    eligible_to_donate: Optional[bool] = None
    next_eligible_date: Optional[str] = None
    last_updated: str

    # Whether the source payload carried its own eligibility flag.
    _eligibility_provided: bool = PrivateAttr(default=False)
    # Raw value of the "nextEligible" alias, kept for the explicit-flag step.
    _next_eligible_alias: Optional[str] = PrivateAttr(default=None)

    @property
    def eligibility_provided(self) -> bool:
        return self._eligibility_provided


@dataclass(frozen=True)
class EligibilityResolution:
    """Outcome of one eligibility step."""
    eligible: bool
    next_eligible_date: Optional[str] = None


EligibilityStep = Callable[[CanonicalStats, datetime, int], Optional[EligibilityResolution]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _resolve(raw: Mapping[str, Any], field: str) -> Any:
    return first_present(raw, STATS_ALIASES[field])


def default_stats(now: Optional[datetime] = None) -> CanonicalStats:
    """The record shown when no usable stats payload is available."""
    return CanonicalStats(
        id=DEFAULT_STATS_ID,
        user_id=DEFAULT_USER_ID,
        eligible_to_donate=True,
        last_updated=to_iso_string(_resolve_now(now)),
    )


def normalize(raw: Any, now: Optional[datetime] = None) -> CanonicalStats:
    """
    Build a CanonicalStats record from an untrusted stats payload.

    Never raises. A payload that is not a mapping, or an empty one, yields
    ``default_stats``.

    The payload counts as carrying an explicit eligibility flag when
    ``eligibleToDonate`` or ``eligible`` holds a value readable as a boolean
    (``False`` included). A ``null`` or unreadable value such as ``"maybe"``
    is treated as absent, so eligibility is derived from the dates instead.

    Args:
        raw: Decoded JSON from a stats or dashboard endpoint.
        now: Timestamp used when the payload has no usable lastUpdated.

    Returns:
        The normalized record. ``eligible_to_donate`` may still be None here;
        run ``enhance_with_eligibility`` to resolve it.
    """
    now = _resolve_now(now)
    if not isinstance(raw, Mapping) or not raw:
        return default_stats(now)

    user_id = normalize_string(_resolve(raw, "user_id")) or DEFAULT_USER_ID
    stats_id = normalize_string(_resolve(raw, "id")) or f"home-stats-{user_id}"

    eligible = coerce_bool(_resolve(raw, "eligible_to_donate"))
    eligibility_provided = eligible is not None and any(
        alias in raw for alias in STATS_ALIASES["eligible_to_donate"]
    )

    last_updated = normalize_string(_resolve(raw, "last_updated"))
    if last_updated is None or parse_utc_datetime(last_updated) is None:
        last_updated = to_iso_string(now)

    stats = CanonicalStats(
        id=stats_id,
        user_id=user_id,
        next_appointment_date=normalize_string(_resolve(raw, "next_appointment_date")),
        next_appointment_id=normalize_string(_resolve(raw, "next_appointment_id")),
        total_donations=coerce_count(_resolve(raw, "total_donations")),
        total_points=coerce_count(_resolve(raw, "total_points")),
        donation_streak=coerce_count(_resolve(raw, "donation_streak")),
        last_donation_date=normalize_string(_resolve(raw, "last_donation_date")),
        eligible_to_donate=eligible,
        next_eligible_date=normalize_string(_resolve(raw, "next_eligible_date")),
        last_updated=last_updated,
    )
    stats._eligibility_provided = eligibility_provided
    stats._next_eligible_alias = normalize_string(raw.get(NEXT_ELIGIBLE_FALLBACK_ALIAS))
    return stats


def _from_explicit_flag(
    stats: CanonicalStats, now: datetime, deferral_days: int
) -> Optional[EligibilityResolution]:
    if not stats.eligibility_provided or stats.eligible_to_donate is None:
        return None
    return EligibilityResolution(
        eligible=stats.eligible_to_donate,
        next_eligible_date=stats.next_eligible_date or stats._next_eligible_alias,
    )


def _from_next_eligible_date(
    stats: CanonicalStats, now: datetime, deferral_days: int
) -> Optional[EligibilityResolution]:
    date_string = stats.next_eligible_date or stats._next_eligible_alias
    try:
        next_eligible = parse_utc_datetime(date_string)
        if next_eligible is None:
            return None
        is_eligible = now >= next_eligible
    except (TypeError, ValueError, OverflowError) as e:
        logger.debug(f"Ignoring unusable next eligible date {date_string!r}: {e}")
        return None
    return EligibilityResolution(
        eligible=is_eligible,
        next_eligible_date=None if is_eligible else date_string,
    )


def _from_last_donation(
    stats: CanonicalStats, now: datetime, deferral_days: int
) -> Optional[EligibilityResolution]:
    try:
        last_donation = parse_utc_datetime(stats.last_donation_date)
        if last_donation is None:
            return None
        next_eligible = last_donation + timedelta(days=deferral_days)
        is_eligible = now >= next_eligible
    except (TypeError, ValueError, OverflowError) as e:
        logger.debug(
            f"Ignoring unusable last donation date {stats.last_donation_date!r}: {e}"
        )
        return None
    return EligibilityResolution(
        eligible=is_eligible,
        next_eligible_date=None if is_eligible else to_iso_string(next_eligible),
    )


def _default_eligibility(
    stats: CanonicalStats, now: datetime, deferral_days: int
) -> Optional[EligibilityResolution]:
    return EligibilityResolution(eligible=True)


ELIGIBILITY_STEPS: tuple[EligibilityStep, ...] = (
    _from_explicit_flag,
    _from_next_eligible_date,
    _from_last_donation,
    _default_eligibility,
)


def enhance_with_eligibility(
    stats: CanonicalStats,
    now: Optional[datetime] = None,
    deferral_days: int = DEFAULT_DEFERRAL_DAYS,
) -> CanonicalStats:
    """
    Resolve ``eligible_to_donate`` and ``next_eligible_date`` to a definite state.

    Returns a new record; the input is not modified.

    Args:
        stats: A normalized record.
        now: Current time. Defaults to UTC now.
        deferral_days: Days between donations for the last-donation fallback.
    """
    now = _resolve_now(now)
    resolution: Optional[EligibilityResolution] = None
    for step in ELIGIBILITY_STEPS:
        resolution = step(stats, now, deferral_days)
        if resolution is not None:
            break
    if resolution is None:
        resolution = EligibilityResolution(eligible=True)

    return stats.model_copy(
        update={
            "eligible_to_donate": resolution.eligible,
            "next_eligible_date": resolution.next_eligible_date,
        }
    )


def merge_stats(
    dashboard: CanonicalStats,
    authoritative: Optional[CanonicalStats],
    now: Optional[datetime] = None,
    deferral_days: int = DEFAULT_DEFERRAL_DAYS,
) -> CanonicalStats:
    """
    Merge dashboard-derived stats with the authoritative stats endpoint.

    The dashboard record is the base; every field the authoritative record
    has set overrides it, and eligibility always comes from the authoritative
    record. Without an authoritative record the dashboard is enhanced alone.
    """
    now = _resolve_now(now)
    if authoritative is None:
        return enhance_with_eligibility(dashboard, now, deferral_days)

    authoritative = enhance_with_eligibility(authoritative, now, deferral_days)
    updates = authoritative.model_dump(exclude_none=True)
    updates["eligible_to_donate"] = authoritative.eligible_to_donate
    updates["next_eligible_date"] = authoritative.next_eligible_date
    return dashboard.model_copy(update=updates)
