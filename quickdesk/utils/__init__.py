"""Utility modules."""

from quickdesk.utils.datetimes import as_utc, now_utc, parse_iso
from quickdesk.utils.normalization import (
    normalize_email,
    normalize_name,
    normalize_tag,
)

__all__ = [
    # Datetimes
    "as_utc",
    "now_utc",
    "parse_iso",
    # Normalization
    "normalize_email",
    "normalize_name",
    "normalize_tag",
]
