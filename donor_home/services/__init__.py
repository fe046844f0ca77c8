"""Service layer for the Donor Home package."""

from donor_home.services.api_client import (
    DonorAPIClient,
    DonorAPIError,
    DonorAuthError,
    DonorFetchError,
    DonorNotFoundError,
)
from donor_home.services.home_service import (
    DonationEligibility,
    HomeScreenData,
    HomeService,
    filter_featured_campaigns,
)
from donor_home.services.stats_normalizer import (
    DEFAULT_DEFERRAL_DAYS,
    CanonicalStats,
    enhance_with_eligibility,
    merge_stats,
    normalize,
)

__all__ = [
    "DonorAPIClient",
    "DonorAPIError",
    "DonorAuthError",
    "DonorFetchError",
    "DonorNotFoundError",
    "DonationEligibility",
    "HomeScreenData",
    "HomeService",
    "filter_featured_campaigns",
    "DEFAULT_DEFERRAL_DAYS",
    "CanonicalStats",
    "enhance_with_eligibility",
    "merge_stats",
    "normalize",
]
