"""
Pytest configuration and shared fixtures.
"""

import pytest

from stormintel.core.config import ScoringConfig
from stormintel.models import GeoPoint, LookbackWindow, TrackedProperty

from storm_helpers import PROPERTY_LAT, PROPERTY_LNG, utc


@pytest.fixture
def scoring_config():
    """Scoring configuration with the documented defaults."""
    return ScoringConfig()


@pytest.fixture
def now():
    """Fixed ingestion time: 2024-06-01 00:00 UTC."""
    return utc(2024, 6, 1)


@pytest.fixture
def window(now):
    """120-day lookback ending at ``now``."""
    return LookbackWindow.ending(now, 120)


@pytest.fixture
def property_location():
    """Dallas, TX."""
    return GeoPoint(lat=PROPERTY_LAT, lng=PROPERTY_LNG)


@pytest.fixture
def dallas_property():
    return TrackedProperty(
        id="prop-dallas",
        lat=PROPERTY_LAT,
        lng=PROPERTY_LNG,
        address="1500 Marilla St, Dallas, TX 75201",
    )
