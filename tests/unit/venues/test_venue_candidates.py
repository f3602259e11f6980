"""
Tests for single-venue candidate generation
"""
from venues.candidates import CandidateGenerator


class TestCandidateGenerator:
    def test_geocoded_venue_searches_radius_in_own_city(self, test_db, provider, venue_seeder, city):
        venue = venue_seeder.venue("Blue Note", city, 40.0, -73.0)
        near = venue_seeder.venue("Blue Note Jazz Club", city, 40.00005, -73.00004)
        venue_seeder.venue("Blue Note Uptown", city, 40.1, -73.0)
        other_city = venue_seeder.city("Hoboken")
        venue_seeder.venue("Blue Note", other_city, 40.00001, -73.0)

        candidates = CandidateGenerator(test_db, provider).find_candidates(venue, 2000.0)

        assert [c.id for c in candidates] == [near.id]

    def test_bit_identical_coordinates_are_filtered(self, test_db, provider, venue_seeder, city):
        venue = venue_seeder.venue("Madison Square Garden", city, 40.7128, -74.006)
        venue_seeder.venue("MSG", city, 40.7128, -74.006)

        assert CandidateGenerator(test_db, provider).find_candidates(venue, 2000.0) == []

    def test_venue_without_coordinates_falls_back_to_city(self, test_db, provider, venue_seeder, city):
        venue = venue_seeder.venue("Blue Note", city)
        far = venue_seeder.venue("Blue Note Far Away", city, 45.0, -75.0)
        ungeocoded = venue_seeder.venue("The Blue Note", city)

        candidates = CandidateGenerator(test_db, provider).find_candidates(venue, 10.0)

        assert [c.id for c in candidates] == [far.id, ungeocoded.id]

    def test_limit_applies_to_fallback(self, test_db, provider, venue_seeder, city):
        venue = venue_seeder.venue("Somewhere", city)
        for i in range(4):
            venue_seeder.venue(f"Other {i}", city)

        assert len(CandidateGenerator(test_db, provider).find_candidates(venue, 10.0, limit=2)) == 2

    def test_venue_without_city_has_no_candidates(self, test_db, provider, venue_seeder):
        venue = venue_seeder.venue("Nowhere", None, 40.0, -73.0)

        assert CandidateGenerator(test_db, provider).find_candidates(venue, 2000.0) == []
