"""
Spatial/text query providers

The deduplication engine needs radius search over venue coordinates, pair
enumeration within a radius, geodesic distance and name similarity. Any
backend meeting that contract can be plugged in:

- InMemorySpatialProvider: loads venues through the session (bounding-box
  pre-filter), then applies haversine distance and a grid bucket index.
  Works on any SQL dialect.
- PostGISSpatialProvider: pushes ST_DWithin / ST_Distance on geography and
  pg_trgm similarity() into PostgreSQL.

Database failures inside a provider surface as ProviderUnavailableError.
"""
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, func, literal, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from core.config import get_settings
from core.exceptions import ConfigurationError, ProviderUnavailableError
from core.logging import get_logger
from database.models import Venue
from venues.geo import grid_cell, grid_steps, haversine_meters, same_point, venue_distance
from venues.similarity import name_similarity
from venues.types import ProximityPair

logger = get_logger("venue_spatial_provider", domain="venues")


class SpatialTextProvider(ABC):
    """Capability contract consumed by the deduplication engine"""

    name = "abstract"

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _guard(self, operation: str):
        try:
            yield
        except SQLAlchemyError as e:
            raise ProviderUnavailableError(self.name, f"{operation} failed: {e}", operation=operation) from e

    @abstractmethod
    def venues_within(
        self,
        latitude: float,
        longitude: float,
        locality_ids: Sequence[int],
        max_distance_meters: float,
        exclude_venue_ids: Iterable[int] = (),
        limit: Optional[int] = None,
    ) -> List[Venue]:
        """
        Venues in the given localities within max_distance_meters of a point,
        nearest first. Venues sitting exactly on the point are left out.
        """

    @abstractmethod
    def venue_pairs_within(
        self,
        locality_ids: Optional[Sequence[int]],
        max_distance_meters: float,
        same_locality: bool = False,
        venue_ids: Optional[Sequence[int]] = None,
    ) -> List[ProximityPair]:
        """
        Every unordered pair of geocoded venues within max_distance_meters.

        Both venues must belong to locality_ids (all localities when None),
        share a locality when same_locality is set, and include at least one
        of venue_ids when given. Pairs with identical coordinates are skipped.
        """

    def distance_meters(self, venue_a: Venue, venue_b: Venue) -> Optional[float]:
        return venue_distance(venue_a, venue_b)

    def similarity(self, name_a: str, name_b: str) -> float:
        return name_similarity(name_a, name_b)


class InMemorySpatialProvider(SpatialTextProvider):
    """Haversine and trigram scoring over venues fetched from the catalog"""

    name = "memory"

    def venues_within(
        self,
        latitude: float,
        longitude: float,
        locality_ids: Sequence[int],
        max_distance_meters: float,
        exclude_venue_ids: Iterable[int] = (),
        limit: Optional[int] = None,
    ) -> List[Venue]:
        if not locality_ids:
            return []

        lat_step, lng_step = grid_steps(max_distance_meters, abs(latitude))
        excluded = set(exclude_venue_ids)

        with self._guard("venues_within"):
            query = self.session.query(Venue).filter(
                Venue.city_id.in_(list(locality_ids)),
                Venue.latitude.isnot(None),
                Venue.longitude.isnot(None),
                Venue.latitude.between(latitude - lat_step, latitude + lat_step),
                Venue.longitude.between(longitude - lng_step, longitude + lng_step),
            )
            if excluded:
                query = query.filter(Venue.id.notin_(excluded))
            rows = query.all()

        hits: List[Tuple[float, int, Venue]] = []
        for venue in rows:
            if venue.latitude == latitude and venue.longitude == longitude:
                continue
            distance = haversine_meters(latitude, longitude, venue.latitude, venue.longitude)
            if distance <= max_distance_meters:
                hits.append((distance, venue.id, venue))

        hits.sort(key=lambda hit: (hit[0], hit[1]))
        venues = [venue for _, _, venue in hits]
        return venues[:limit] if limit is not None else venues

    def venue_pairs_within(
        self,
        locality_ids: Optional[Sequence[int]],
        max_distance_meters: float,
        same_locality: bool = False,
        venue_ids: Optional[Sequence[int]] = None,
    ) -> List[ProximityPair]:
        if locality_ids is not None and not locality_ids:
            return []

        with self._guard("venue_pairs_within"):
            query = self.session.query(Venue).filter(Venue.latitude.isnot(None), Venue.longitude.isnot(None))
            if locality_ids is not None:
                query = query.filter(Venue.city_id.in_(list(locality_ids)))
            venues = query.order_by(Venue.id).all()

        if len(venues) < 2:
            return []

        wanted: Optional[Set[int]] = set(venue_ids) if venue_ids is not None else None
        max_abs_latitude = max(abs(venue.latitude) for venue in venues)
        lat_step, lng_step = grid_steps(max_distance_meters, max_abs_latitude)

        # Spatial grid so each venue is only compared with its 3x3 neighbourhood
        cells: Dict[tuple, List[Venue]] = defaultdict(list)
        for venue in venues:
            cells[grid_cell(venue.latitude, venue.longitude, lat_step, lng_step)].append(venue)

        pairs: List[ProximityPair] = []
        for venue in venues:
            row, col = grid_cell(venue.latitude, venue.longitude, lat_step, lng_step)
            for lat_offset in (-1, 0, 1):
                for lng_offset in (-1, 0, 1):
                    for other in cells.get((row + lat_offset, col + lng_offset), ()):
                        if other.id <= venue.id:
                            continue
                        if same_locality and other.city_id != venue.city_id:
                            continue
                        if wanted is not None and venue.id not in wanted and other.id not in wanted:
                            continue
                        if same_point(venue, other):
                            continue

                        distance = haversine_meters(venue.latitude, venue.longitude, other.latitude, other.longitude)
                        if distance > max_distance_meters:
                            continue

                        pairs.append(
                            ProximityPair(
                                venue_a=venue,
                                venue_b=other,
                                distance_meters=distance,
                                similarity=self.similarity(venue.name, other.name),
                            )
                        )

        return pairs


def _geography(longitude, latitude):
    return func.geography(func.ST_SetSRID(func.ST_MakePoint(longitude, latitude), 4326))


class PostGISSpatialProvider(SpatialTextProvider):
    """PostGIS geography distance and pg_trgm similarity in the database"""

    name = "postgis"

    def venues_within(
        self,
        latitude: float,
        longitude: float,
        locality_ids: Sequence[int],
        max_distance_meters: float,
        exclude_venue_ids: Iterable[int] = (),
        limit: Optional[int] = None,
    ) -> List[Venue]:
        if not locality_ids:
            return []

        query = self.build_venues_within_query(
            latitude, longitude, locality_ids, max_distance_meters, exclude_venue_ids, limit
        )
        with self._guard("venues_within"):
            return [venue for venue, _ in query.all()]

    def build_venues_within_query(
        self,
        latitude: float,
        longitude: float,
        locality_ids: Sequence[int],
        max_distance_meters: float,
        exclude_venue_ids: Iterable[int] = (),
        limit: Optional[int] = None,
    ):
        point = _geography(literal(longitude), literal(latitude))
        venue_point = _geography(Venue.longitude, Venue.latitude)
        distance = func.ST_Distance(point, venue_point)

        query = self.session.query(Venue, distance.label("distance")).filter(
            Venue.city_id.in_(list(locality_ids)),
            Venue.latitude.isnot(None),
            Venue.longitude.isnot(None),
            func.ST_DWithin(point, venue_point, max_distance_meters),
            ~and_(Venue.latitude == latitude, Venue.longitude == longitude),
        )
        excluded = list(exclude_venue_ids)
        if excluded:
            query = query.filter(Venue.id.notin_(excluded))

        query = query.order_by(distance, Venue.id)
        if limit is not None:
            query = query.limit(limit)
        return query

    def venue_pairs_within(
        self,
        locality_ids: Optional[Sequence[int]],
        max_distance_meters: float,
        same_locality: bool = False,
        venue_ids: Optional[Sequence[int]] = None,
    ) -> List[ProximityPair]:
        if locality_ids is not None and not locality_ids:
            return []

        query = self.build_pairs_query(locality_ids, max_distance_meters, same_locality, venue_ids)
        with self._guard("venue_pairs_within"):
            rows = query.all()

        return [
            ProximityPair(venue_a=v1, venue_b=v2, distance_meters=float(distance), similarity=float(similarity))
            for v1, v2, distance, similarity in rows
        ]

    def build_pairs_query(
        self,
        locality_ids: Optional[Sequence[int]],
        max_distance_meters: float,
        same_locality: bool = False,
        venue_ids: Optional[Sequence[int]] = None,
    ):
        v1 = aliased(Venue)
        v2 = aliased(Venue)
        p1 = _geography(v1.longitude, v1.latitude)
        p2 = _geography(v2.longitude, v2.latitude)

        query = (
            self.session.query(
                v1,
                v2,
                func.ST_Distance(p1, p2).label("distance"),
                func.similarity(v1.name, v2.name).label("name_similarity"),
            )
            .join(v2, v1.id < v2.id)
            .filter(
                v1.latitude.isnot(None),
                v1.longitude.isnot(None),
                v2.latitude.isnot(None),
                v2.longitude.isnot(None),
                ~and_(v1.latitude == v2.latitude, v1.longitude == v2.longitude),
                func.ST_DWithin(p1, p2, max_distance_meters),
            )
        )
        if locality_ids is not None:
            ids = list(locality_ids)
            query = query.filter(v1.city_id.in_(ids), v2.city_id.in_(ids))
        if same_locality:
            query = query.filter(v1.city_id == v2.city_id)
        if venue_ids is not None:
            wanted = list(venue_ids)
            query = query.filter(or_(v1.id.in_(wanted), v2.id.in_(wanted)))
        return query

    def similarity(self, name_a: str, name_b: str) -> float:
        with self._guard("similarity"):
            score = self.session.query(func.similarity(name_a, name_b)).scalar()
        return float(score or 0.0)


PROVIDERS = {
    "memory": InMemorySpatialProvider,
    "postgis": PostGISSpatialProvider,
}


def get_spatial_provider(session: Session, name: Optional[str] = None) -> SpatialTextProvider:
    """Pick a provider by name or, for "auto", by the session's SQL dialect"""
    name = (name or get_settings().spatial_provider).lower()

    if name == "auto":
        dialect = session.get_bind().dialect.name
        name = "postgis" if dialect == "postgresql" else "memory"

    provider_class = PROVIDERS.get(name)
    if provider_class is None:
        raise ConfigurationError(f"Unknown spatial provider '{name}'", setting="spatial_provider")

    logger.debug(f"Using {name} spatial provider")
    return provider_class(session)
