"""
Test Fixtures Package

Provides centralized fixtures for test isolation and setup:
- Database fixtures (test_db, venue_seeder, mock_production_db)
"""

# Import database fixtures
from .database import VenueSeeder, mock_production_db, test_db, venue_seeder

__all__ = [
    "VenueSeeder",
    "mock_production_db",
    "test_db",
    "venue_seeder",
]
