"""Utility functions for the Donor Home service layer."""

from donor_home.utils.data_normalization import (
    coerce_bool,
    coerce_count,
    first_present,
    normalize_string,
    parse_datetime,
    parse_utc_datetime,
    to_iso_string,
    unwrap_data,
    unwrap_list,
)

__all__ = [
    "coerce_bool",
    "coerce_count",
    "first_present",
    "normalize_string",
    "parse_datetime",
    "parse_utc_datetime",
    "to_iso_string",
    "unwrap_data",
    "unwrap_list",
]
