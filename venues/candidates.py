"""
Candidate generation for single-venue duplicate lookups

Geocoded venues get a radius search inside their own city through the
spatial provider. Venues without coordinates fall back to every other venue
in the same city.
"""
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ProviderUnavailableError
from core.logging import get_logger
from database.models import Venue
from venues.providers import SpatialTextProvider


class CandidateGenerator:
    """Finds venues that could be duplicates of a given venue"""

    def __init__(self, session: Session, provider: SpatialTextProvider):
        self.session = session
        self.provider = provider
        self.logger = get_logger("venue_candidates", domain="venues")

    def find_candidates(self, venue: Venue, radius_meters: float, limit: Optional[int] = None) -> List[Venue]:
        if venue.city_id is None:
            self.logger.debug(f"Venue {venue.id} has no city, no candidates")
            return []

        if venue.has_coordinates:
            return self.provider.venues_within(
                venue.latitude,
                venue.longitude,
                [venue.city_id],
                radius_meters,
                exclude_venue_ids=[venue.id],
                limit=limit,
            )

        return self._same_city_candidates(venue, limit)

    def _same_city_candidates(self, venue: Venue, limit: Optional[int]) -> List[Venue]:
        """No distance filter is possible without coordinates"""
        try:
            query = (
                self.session.query(Venue)
                .filter(Venue.city_id == venue.city_id, Venue.id != venue.id)
                .order_by(Venue.id)
            )
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            raise ProviderUnavailableError("catalog", f"same-city lookup failed: {e}", venue_id=venue.id) from e
