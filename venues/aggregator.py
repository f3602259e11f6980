"""
Duplicate count aggregation

Counts strict duplicate pairs for listings and the city index. The strict
rules are tighter than the pairwise matcher's tiers: both venues in the same
city, strictly closer than the radius, and a name similarity at or above the
minimum or one name containing the other. Excluded pairs never count.
"""
from collections import Counter
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import get_settings
from core.exceptions import NotFoundError, ProviderUnavailableError
from core.logging import get_logger
from database.models import City, Venue
from venues.exclusions import ExclusionRegistry
from venues.providers import SpatialTextProvider
from venues.similarity import is_substring_match
from venues.types import CityDuplicateCount, ProximityPair, canonical_pair
from venues.validation import validate_identity, validate_identity_list, validate_non_negative, validate_similarity


class DuplicateCountAggregator:
    def __init__(self, session: Session, provider: SpatialTextProvider, exclusions: ExclusionRegistry):
        self.session = session
        self.provider = provider
        self.exclusions = exclusions
        self.settings = get_settings()
        self.logger = get_logger("venue_duplicate_counts", domain="venues")

    def _criteria(self, distance_meters: Optional[float], min_similarity: Optional[float]):
        if distance_meters is None:
            distance_meters = self.settings.dedup_strict_radius_meters
        if min_similarity is None:
            min_similarity = self.settings.dedup_strict_min_similarity
        return validate_non_negative(distance_meters, "distance_meters"), validate_similarity(min_similarity)

    @staticmethod
    def _strict_match(name_a: str, name_b: str, similarity: float, min_similarity: float) -> bool:
        return similarity >= min_similarity or is_substring_match(name_a, name_b)

    def _strict_pairs(
        self,
        locality_ids: Optional[List[int]],
        distance_meters: float,
        min_similarity: float,
        venue_ids: Optional[List[int]] = None,
    ) -> List[ProximityPair]:
        """Same-city pairs passing the strict rules, exclusions removed"""
        pairs = self.provider.venue_pairs_within(
            locality_ids, distance_meters, same_locality=True, venue_ids=venue_ids
        )
        if not pairs:
            return []

        involved = {p.venue_a.id for p in pairs} | {p.venue_b.id for p in pairs}
        excluded = self.exclusions.excluded_pairs(involved)

        return [
            pair
            for pair in pairs
            if pair.distance_meters < distance_meters
            and self._strict_match(pair.venue_a.name, pair.venue_b.name, pair.similarity, min_similarity)
            and canonical_pair(pair.venue_a.id, pair.venue_b.id) not in excluded
        ]

    def batch_duplicate_counts(
        self,
        venue_ids: Iterable[int],
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
    ) -> Dict[int, int]:
        """
        Strict duplicate count per venue from one set-based pair query

        Every requested id appears in the result, 0 when it has no duplicates.
        """
        ids = validate_identity_list(venue_ids, "venue_ids")
        distance_meters, min_similarity = self._criteria(distance_meters, min_similarity)
        if not ids:
            return {}

        try:
            rows = self.session.query(Venue.id, Venue.city_id).filter(Venue.id.in_(ids)).all()
        except SQLAlchemyError as e:
            raise ProviderUnavailableError("catalog", f"venue lookup failed: {e}") from e

        found = {venue_id: city_id for venue_id, city_id in rows}
        missing = [venue_id for venue_id in ids if venue_id not in found]
        if missing:
            raise NotFoundError("Venue", missing[0])

        counts = {venue_id: 0 for venue_id in ids}
        locality_ids = sorted({city_id for city_id in found.values() if city_id is not None})
        if not locality_ids:
            return counts

        wanted = set(ids)
        for pair in self._strict_pairs(locality_ids, distance_meters, min_similarity, venue_ids=ids):
            if pair.venue_a.id in wanted:
                counts[pair.venue_a.id] += 1
            if pair.venue_b.id in wanted:
                counts[pair.venue_b.id] += 1

        return counts

    def duplicate_count(
        self,
        venue_id: int,
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
    ) -> int:
        """Strict duplicate count for one venue via a radius search around it"""
        validate_identity(venue_id)
        distance_meters, min_similarity = self._criteria(distance_meters, min_similarity)

        venue = self.session.get(Venue, venue_id)
        if venue is None:
            raise NotFoundError("Venue", venue_id)
        if not venue.has_coordinates or venue.city_id is None:
            return 0

        nearby = self.provider.venues_within(
            venue.latitude,
            venue.longitude,
            [venue.city_id],
            distance_meters,
            exclude_venue_ids=[venue.id],
        )
        excluded = set(self.exclusions.excluded_partners(venue.id))

        count = 0
        for other in nearby:
            if other.id in excluded:
                continue
            distance = self.provider.distance_meters(venue, other)
            if distance is None or distance >= distance_meters:
                continue
            if self._strict_match(venue.name, other.name, self.provider.similarity(venue.name, other.name), min_similarity):
                count += 1
        return count

    def cities_with_duplicates(
        self,
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
    ) -> List[CityDuplicateCount]:
        """Cities holding at least one strict pair, most duplicates first"""
        distance_meters, min_similarity = self._criteria(distance_meters, min_similarity)

        per_city = Counter(pair.venue_a.city_id for pair in self._strict_pairs(None, distance_meters, min_similarity))
        if not per_city:
            return []

        try:
            cities = self.session.query(City).filter(City.id.in_(list(per_city))).all()
        except SQLAlchemyError as e:
            raise ProviderUnavailableError("catalog", f"city lookup failed: {e}") from e

        results = [
            CityDuplicateCount(city_id=city.id, name=city.name, slug=city.slug, duplicate_count=per_city[city.id])
            for city in cities
        ]
        results.sort(key=lambda c: (-c.duplicate_count, c.name, c.city_id))
        return results

    def total_duplicate_count(
        self,
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
    ) -> int:
        distance_meters, min_similarity = self._criteria(distance_meters, min_similarity)
        return len(self._strict_pairs(None, distance_meters, min_similarity))
