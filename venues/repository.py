"""
Repository for venue catalog reads used by the deduplication screens.

Lookups, batched event counts, name search and merge history.
"""

from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from core.logging import get_logger
from database.models import City, Event, PublicEvent, Venue, VenueMergeAudit

logger = get_logger("venue_repository", domain="venues")


class VenueRepository:
    """Read-side queries over venues, events and merge audits"""

    def __init__(self, db: Session):
        self.db = db

    def get_venue(self, venue_id: int) -> Venue:
        """Get venue by ID, raising NotFoundError if missing"""
        venue = self.db.get(Venue, venue_id)
        if venue is None:
            raise NotFoundError("Venue", venue_id)
        return venue

    def ensure_cities_exist(self, city_ids: list[int]) -> None:
        """Raise NotFoundError for the first unknown city id"""
        if not city_ids:
            return
        found = {row[0] for row in self.db.query(City.id).filter(City.id.in_(city_ids)).all()}
        for city_id in city_ids:
            if city_id not in found:
                raise NotFoundError("City", city_id)

    def count_events_batch(self, venue_ids: list[int]) -> dict[int, int]:
        """
        Events plus public events per venue, two grouped queries

        Args:
            venue_ids: venues to count for

        Returns:
            Mapping for every requested id, 0 when a venue has no events
        """
        if not venue_ids:
            return {}

        counts = {venue_id: 0 for venue_id in venue_ids}
        for model in (Event, PublicEvent):
            rows = (
                self.db.query(model.venue_id, func.count(model.id))
                .filter(model.venue_id.in_(venue_ids))
                .group_by(model.venue_id)
                .all()
            )
            for venue_id, count in rows:
                counts[venue_id] += count

        return counts

    def count_events(self, venue_id: int) -> int:
        return self.count_events_batch([venue_id]).get(venue_id, 0)

    def search(self, query: str, city_id: int | None = None, limit: int = 20) -> list[Venue]:
        """Case-insensitive substring search on venue name, ordered by name"""
        term = (query or "").strip().lower()
        if not term:
            return []

        q = self.db.query(Venue).filter(func.lower(Venue.name).contains(term, autoescape=True))
        if city_id is not None:
            q = q.filter(Venue.city_id == city_id)

        venues = q.order_by(Venue.name, Venue.id).limit(limit).all()
        logger.debug(f"Venue search '{term}' matched {len(venues)} venues")
        return venues

    def merge_history(self, venue_id: int, limit: int = 50) -> list[VenueMergeAudit]:
        """Merges where the venue was source or target, newest first"""
        return (
            self.db.query(VenueMergeAudit)
            .filter(
                or_(
                    VenueMergeAudit.source_venue_id == venue_id,
                    VenueMergeAudit.target_venue_id == venue_id,
                )
            )
            .order_by(desc(VenueMergeAudit.inserted_at), desc(VenueMergeAudit.id))
            .limit(limit)
            .all()
        )

    def recent_merges(self, limit: int = 50) -> list[VenueMergeAudit]:
        return (
            self.db.query(VenueMergeAudit)
            .order_by(desc(VenueMergeAudit.inserted_at), desc(VenueMergeAudit.id))
            .limit(limit)
            .all()
        )
