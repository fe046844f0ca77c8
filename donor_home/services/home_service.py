"""
Home screen data aggregation.

Fetches the dashboard bundle and the authoritative stats endpoint, merges
them into one CanonicalStats record and collects the lists shown on the home
screen (appointments, emergencies, featured campaigns). Reads degrade rather
than fail: a donor always gets some eligibility state, even when the backend
is down.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from donor_home.core.config import settings
from donor_home.services.api_client import (
    DonorAPIClient,
    DonorAPIError,
    DonorFetchError,
)
from donor_home.services.stats_normalizer import (
    CanonicalStats,
    default_stats,
    enhance_with_eligibility,
    merge_stats,
    normalize,
    utc_now,
)
from donor_home.utils.data_normalization import (
    coerce_bool,
    parse_utc_datetime,
    unwrap_data,
    unwrap_list,
)

logger = logging.getLogger(__name__)

API_ENDPOINTS = {
    "HOME_DATA": "/home/dashboard",
    "HOME_STATS": "/home/stats",
    "USER_STATS": "/users/stats",
    "USER_ACTIVITIES": "/users/activities",
    "USER_NOTIFICATIONS": "/users/notifications",
    "UPCOMING_APPOINTMENTS": "/appointments/upcoming",
    "USER_APPOINTMENTS": "/appointments/user",
    "UPCOMING_CAMPAIGNS": "/campaigns/upcoming",
    "CAMPAIGNS": "/campaigns",
    "EMERGENCIES": "/emergencies",
    "DONATION_ELIGIBILITY": "/donations/eligibility",
}

# An endpoint path plus its query parameters.
Source = tuple[str, Optional[dict[str, Any]]]


class DonationEligibility(BaseModel):
    """Eligibility summary as reported by /donations/eligibility."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_eligible: bool
    next_eligible_date: Optional[str] = None
    reasons: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class HomeScreenData(BaseModel):
    """Everything the home screen renders."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_stats: CanonicalStats
    upcoming_appointments: list[Any] = Field(default_factory=list)
    recent_activities: list[Any] = Field(default_factory=list)
    emergencies: list[Any] = Field(default_factory=list)
    featured_campaigns: list[Any] = Field(default_factory=list)
    notifications: list[Any] = Field(default_factory=list)
    donation_eligibility: DonationEligibility


def _is_approved(campaign: Mapping[str, Any]) -> bool:
    for key in ("isApproved", "approvalStatus"):
        value = campaign.get(key)
        if value is True:
            return True
        if isinstance(value, str) and value == "ACCEPTED":
            return True
    return False


def filter_featured_campaigns(
    campaigns: Sequence[Any],
    now: datetime,
    limit: int = 5,
) -> list[dict[str, Any]]:
    """
    Pick featured campaigns out of an unfiltered campaign list.

    Keeps campaigns that start in the future, are active (missing flag means
    active) and are approved, sorted by start time and capped at ``limit``.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    upcoming: list[tuple[datetime, dict[str, Any]]] = []
    for campaign in campaigns:
        if not isinstance(campaign, Mapping):
            continue
        start = parse_utc_datetime(campaign.get("startTime"))
        if start is None or start <= now:
            continue
        active = campaign.get("isActive")
        if active is not None and coerce_bool(active) is not True:
            continue
        if not _is_approved(campaign):
            continue
        upcoming.append((start, dict(campaign)))

    upcoming.sort(key=lambda item: item[0])
    return [campaign for _, campaign in upcoming[:limit]]


def _extract_stats_block(payload: Any) -> Any:
    """Find the stats mapping inside a stats or dashboard response."""
    data = unwrap_data(payload)
    if isinstance(data, Mapping):
        for key in ("userStats", "stats"):
            if isinstance(data.get(key), Mapping):
                return data[key]
    return data


def _eligibility_from_stats(stats: CanonicalStats) -> DonationEligibility:
    return DonationEligibility(
        is_eligible=stats.eligible_to_donate is not False,
        next_eligible_date=stats.next_eligible_date,
    )


class HomeService:
    """
    Collects the home screen data for the signed-in donor.

    Usage:
        service = HomeService()
        home = await service.get_home_data()
        home.user_stats.eligible_to_donate
    """

    def __init__(
        self,
        client: DonorAPIClient | None = None,
        clock: Callable[[], datetime] = utc_now,
        deferral_days: int | None = None,
    ):
        self.client = client or DonorAPIClient()
        self.clock = clock
        self.deferral_days = (
            deferral_days if deferral_days is not None else settings.DONATION_DEFERRAL_DAYS
        )

    async def _fetch_first_list(
        self, sources: Sequence[Source], entity: str
    ) -> list[Any] | None:
        """Return the first list any source yields, or None when all fail."""
        for endpoint, params in sources:
            try:
                payload = await self.client.get(endpoint, params=params)
            except DonorAPIError as e:
                logger.warning(f"Failed to fetch {entity} from {endpoint}: {e}")
                continue

            records = unwrap_list(payload, entity)
            if records is not None:
                logger.debug(f"Fetched {len(records)} {entity} from {endpoint}")
                return records
            logger.warning(f"Unexpected {entity} response shape from {endpoint}")
        return None

    async def fetch_list(
        self,
        sources: Sequence[Source],
        entity: str,
        critical: bool = False,
    ) -> list[Any]:
        """
        Read a list of records, trying each source in order.

        Args:
            sources: (endpoint, params) pairs; later ones are fallbacks.
            entity: Envelope key the records may be wrapped in (e.g. "appointments").
            critical: Raise instead of returning an empty list when every
                source fails.

        Raises:
            DonorFetchError: If ``critical`` and no source yields a list.
        """
        records = await self._fetch_first_list(sources, entity)
        if records is not None:
            return records
        if critical:
            raise DonorFetchError(f"Could not fetch {entity} from any source")
        logger.warning(f"No {entity} available, returning empty list")
        return []

    async def _fetch_stats_payload(self) -> Any:
        """Fetch raw stats, falling back from /home/stats to /users/stats."""
        try:
            payload = await self.client.get(API_ENDPOINTS["HOME_STATS"])
        except DonorAPIError as e:
            logger.warning(f"Home stats unavailable, trying user stats: {e}")
            payload = await self.client.get(API_ENDPOINTS["USER_STATS"])
        return _extract_stats_block(payload)

    async def get_user_stats(self) -> CanonicalStats:
        """
        Fetch the donor's stats with eligibility resolved.

        Raises:
            DonorAPIError: If both stats endpoints fail.
        """
        logger.info("Fetching user stats")
        payload = await self._fetch_stats_payload()
        now = self.clock()
        return enhance_with_eligibility(normalize(payload, now), now, self.deferral_days)

    async def get_upcoming_appointments(self) -> list[dict[str, Any]]:
        logger.info("Fetching upcoming appointments")
        return await self.fetch_list(
            [
                (API_ENDPOINTS["UPCOMING_APPOINTMENTS"], None),
                (API_ENDPOINTS["USER_APPOINTMENTS"], None),
            ],
            "appointments",
        )

    async def get_featured_campaigns(
        self, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """
        Fetch featured campaigns.

        Falls back to filtering the full campaign list client-side when the
        featured endpoint is unavailable.
        """
        limit = limit if limit is not None else settings.FEATURED_CAMPAIGNS_LIMIT
        logger.info(f"Fetching featured campaigns (limit={limit})")

        campaigns = await self._fetch_first_list(
            [(API_ENDPOINTS["UPCOMING_CAMPAIGNS"], {"featured": "true", "limit": limit})],
            "campaigns",
        )
        if campaigns is not None:
            return campaigns

        all_campaigns = await self._fetch_first_list(
            [(API_ENDPOINTS["CAMPAIGNS"], None)], "campaigns"
        )
        if all_campaigns is None:
            logger.warning("No campaigns available, returning empty list")
            return []
        return filter_featured_campaigns(all_campaigns, self.clock(), limit)

    async def get_active_emergencies(self) -> list[dict[str, Any]]:
        logger.info("Fetching active emergencies")
        return await self.fetch_list(
            [
                (
                    API_ENDPOINTS["EMERGENCIES"],
                    {"status": "ACTIVE", "limit": settings.EMERGENCIES_LIMIT},
                )
            ],
            "emergencies",
        )

    async def get_recent_activities(self, limit: int = 10) -> list[dict[str, Any]]:
        logger.info(f"Fetching recent activities (limit={limit})")
        return await self.fetch_list(
            [(API_ENDPOINTS["USER_ACTIVITIES"], {"limit": limit, "recent": "true"})],
            "activities",
        )

    async def get_unread_notifications(self, limit: int = 5) -> list[dict[str, Any]]:
        logger.info(f"Fetching unread notifications (limit={limit})")
        return await self.fetch_list(
            [(API_ENDPOINTS["USER_NOTIFICATIONS"], {"isRead": "false", "limit": limit})],
            "notifications",
        )

    async def check_donation_eligibility(self) -> DonationEligibility:
        """
        Ask the backend whether the donor may donate.

        Raises:
            DonorAPIError: If the request fails or the response is malformed.
        """
        logger.info("Checking donation eligibility")
        payload = unwrap_data(await self.client.get(API_ENDPOINTS["DONATION_ELIGIBILITY"]))
        try:
            return DonationEligibility.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Unexpected eligibility response: {e}")
            raise DonorAPIError(f"Unexpected eligibility response: {e}") from e

    async def get_home_data(self, refresh: bool = False) -> HomeScreenData:
        """
        Build the complete home screen data.

        The dashboard is fetched first, then the authoritative stats endpoint;
        the stats endpoint wins for eligibility. If the dashboard itself is
        unavailable the parts are fetched independently.

        Args:
            refresh: Ask the backend to bypass its cache.

        Raises:
            DonorAPIError: Only if the fallback assembly hits an unexpected error.
        """
        logger.info("Fetching home data")
        params = {"refresh": "true"} if refresh else None

        try:
            payload = await self.client.get(API_ENDPOINTS["HOME_DATA"], params=params)
        except DonorAPIError as e:
            logger.error(f"Failed to fetch home data: {e}")
            return await self._assemble_from_parts(e)

        dashboard = unwrap_data(payload)
        if not isinstance(dashboard, Mapping):
            dashboard = {}

        now = self.clock()
        dashboard_stats = normalize(_extract_stats_block(dashboard), now)

        try:
            authoritative: Optional[CanonicalStats] = normalize(
                await self._fetch_stats_payload(), now
            )
        except DonorAPIError as e:
            logger.warning(f"Failed to fetch authoritative stats, using dashboard stats: {e}")
            authoritative = None

        user_stats = merge_stats(dashboard_stats, authoritative, now, self.deferral_days)

        appointments = unwrap_list(dashboard.get("upcomingAppointments"), "appointments")
        if appointments is None:
            appointments = await self.get_upcoming_appointments()

        emergencies = unwrap_list(dashboard.get("emergencies"), "emergencies")
        if emergencies is None:
            emergencies = await self.get_active_emergencies()

        campaigns = unwrap_list(dashboard.get("featuredCampaigns"), "campaigns")
        if campaigns is None:
            campaigns = await self.get_featured_campaigns()

        return HomeScreenData(
            user_stats=user_stats,
            upcoming_appointments=appointments,
            recent_activities=unwrap_list(dashboard.get("recentActivities"), "activities") or [],
            emergencies=emergencies,
            featured_campaigns=campaigns,
            notifications=unwrap_list(dashboard.get("notifications"), "notifications") or [],
            donation_eligibility=_eligibility_from_stats(user_stats),
        )

    async def refresh_home_data(self) -> HomeScreenData:
        return await self.get_home_data(refresh=True)

    async def _assemble_from_parts(self, original: DonorAPIError) -> HomeScreenData:
        """Best-effort home data from independent sub-resource fetches."""
        logger.warning("Assembling home data from individual endpoints")

        stats, appointments, emergencies = await asyncio.gather(
            self.get_user_stats(),
            self.get_upcoming_appointments(),
            self.get_active_emergencies(),
            return_exceptions=True,
        )

        for result in (stats, appointments, emergencies):
            if isinstance(result, BaseException) and not isinstance(result, DonorAPIError):
                raise original from result

        if isinstance(stats, DonorAPIError):
            logger.warning(f"User stats unavailable, using defaults: {stats}")
            now = self.clock()
            stats = enhance_with_eligibility(default_stats(now), now, self.deferral_days)
        if isinstance(appointments, DonorAPIError):
            appointments = []
        if isinstance(emergencies, DonorAPIError):
            emergencies = []

        return HomeScreenData(
            user_stats=stats,
            upcoming_appointments=appointments,
            emergencies=emergencies,
            donation_eligibility=_eligibility_from_stats(stats),
        )
