"""
Shared test configuration for venue deduplication tests

Database fixtures come from tests.fixtures; the ones here build engine parts.
"""

import pytest

from database.models import Venue
from tests.fixtures import test_db, venue_seeder  # noqa: F401
from venues.deduplicator import VenueDeduplicator
from venues.exclusions import ExclusionRegistry
from venues.providers import InMemorySpatialProvider


@pytest.fixture
def make_venue():
    """Factory for transient venues used by pure scoring and clustering tests"""

    def _make(venue_id: int, name: str, latitude=None, longitude=None, city_id: int = 1) -> Venue:
        return Venue(id=venue_id, name=name, latitude=latitude, longitude=longitude, city_id=city_id, provider_ids={})

    return _make


@pytest.fixture
def provider(test_db):
    return InMemorySpatialProvider(test_db)


@pytest.fixture
def exclusions(test_db):
    return ExclusionRegistry(test_db)


@pytest.fixture
def deduplicator(test_db, provider):
    return VenueDeduplicator(session=test_db, provider=provider)


@pytest.fixture
def city(venue_seeder):
    return venue_seeder.city("New York")


@pytest.fixture
def blue_note_venues(venue_seeder, city):
    """
    Three venues around one corner of Manhattan

    "Blue Note" and "Blue Note Jazz Club" are ~6.5m apart, "Jazz Club" sits
    ~6.5m from the club and ~13m from "Blue Note" with no shared trigrams.
    """
    a = venue_seeder.venue("Blue Note", city, 40.0, -73.0, provider_ids={"songkick": "sk-1"})
    b = venue_seeder.venue("Blue Note Jazz Club", city, 40.00005, -73.00004, provider_ids={"bandsintown": "bit-9"})
    c = venue_seeder.venue("Jazz Club", city, 40.0001, -73.00008)
    return a, b, c
