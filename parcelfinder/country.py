"""Domestic vs. international classification.

A missing country is treated as domestic. That is a policy choice toward
the simpler path, not a detection: an order with no country may still
ship abroad.
"""

from typing import Optional

from .normalize import normalize_country

DEFAULT_HOME_COUNTRY = "FR"


def is_international(country_code: Optional[str], home_country: str = DEFAULT_HOME_COUNTRY) -> bool:
    """True iff ``country_code`` is present and differs from ``home_country`` (case-insensitive)."""
    country = normalize_country(country_code)
    if country is None:
        return False
    return country != (normalize_country(home_country) or DEFAULT_HOME_COUNTRY)
