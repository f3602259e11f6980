"""
Venue Deduplicator

Entry point for venue duplicate detection and merging. Wires the spatial
provider, candidate generator, pairwise matcher, cluster builder, exclusion
registry, duplicate count aggregator and merge engine around one session.

Detection is read-only and assistive: when the spatial provider fails the
condition is logged and an empty result is returned. Malformed input and
unknown venues or cities always raise.
"""
import time
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from core.config import get_settings
from core.exceptions import ProviderUnavailableError
from core.logging import get_logger, log_timing
from database.models import VenueDuplicateExclusion, VenueMergeAudit
from database.session import SessionLocal
from venues.aggregator import DuplicateCountAggregator
from venues.candidates import CandidateGenerator
from venues.clustering import build_clusters
from venues.confidence import classify_severity, count_by_level, pair_confidence
from venues.exclusions import ExclusionRegistry
from venues.matcher import PairwiseMatcher
from venues.merge import VenueMerger
from venues.providers import SpatialTextProvider, get_spatial_provider
from venues.repository import VenueRepository
from venues.similarity import is_substring_match
from venues.thresholds import qualifies
from venues.types import (
    CityDuplicateCount,
    DuplicateGroup,
    DuplicateMetrics,
    DuplicatePair,
    MergeResult,
    Severity,
    VenueDuplicate,
    VenueSearchResult,
)
from venues.validation import (
    validate_identity,
    validate_identity_list,
    validate_limit,
    validate_non_negative,
    validate_similarity,
)


class VenueDeduplicator:
    """
    Venue duplicate detection, review and merge

    Single-venue lookups, city-level pairs and groups, health metrics,
    strict duplicate counts, exclusions and transactional merges.
    """

    def __init__(self, session: Optional[Session] = None, provider: Optional[SpatialTextProvider] = None):
        self.settings = get_settings()
        self.logger = get_logger("venue_deduplicator", domain="venues")
        self.session = session or SessionLocal()
        self.provider = provider or get_spatial_provider(self.session)

        self.repository = VenueRepository(self.session)
        self.exclusions = ExclusionRegistry(self.session)
        self.candidates = CandidateGenerator(self.session, self.provider)
        self.matcher = PairwiseMatcher(self.provider, self.exclusions)
        self.aggregator = DuplicateCountAggregator(self.session, self.provider, self.exclusions)
        self.merger = VenueMerger(self.session)

    # Detection

    def find_duplicates_for_venue(
        self,
        venue_id: int,
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[VenueDuplicate]:
        """
        Potential duplicates of one venue, most similar first

        Candidates come from the same city (within distance_meters when the
        venue is geocoded). Excluded partners are dropped and the rest must
        reach the distance-tiered minimum similarity, or have one name contain
        the other.
        """
        validate_identity(venue_id)
        distance_meters = validate_non_negative(
            self.settings.dedup_venue_radius_meters if distance_meters is None else distance_meters,
            "distance_meters",
        )
        min_similarity = validate_similarity(
            self.settings.dedup_venue_min_similarity if min_similarity is None else min_similarity
        )
        limit = validate_limit(self.settings.dedup_venue_limit if limit is None else limit)

        venue = self.repository.get_venue(venue_id)
        excluded = set(self.exclusions.excluded_partners(venue.id))

        try:
            candidates = self.candidates.find_candidates(venue, distance_meters, limit * 3)

            scored = []
            for candidate in candidates:
                if candidate.id in excluded:
                    continue
                similarity = self.provider.similarity(venue.name, candidate.name)
                distance = self.provider.distance_meters(venue, candidate)
                if qualifies(similarity, distance, min_similarity) or is_substring_match(venue.name, candidate.name):
                    scored.append((candidate, similarity, distance))
        except ProviderUnavailableError as e:
            self.logger.error(f"Duplicate lookup for venue {venue_id} degraded to empty result: {e}")
            return []

        scored.sort(key=lambda s: (-s[1], s[2] is None, s[2] or 0.0, s[0].id))
        scored = scored[:limit]

        event_counts = self.repository.count_events_batch([candidate.id for candidate, _, _ in scored])
        return [
            VenueDuplicate(
                venue=candidate,
                similarity=similarity,
                distance_meters=distance,
                confidence=pair_confidence(similarity, distance),
                event_count=event_counts.get(candidate.id, 0),
            )
            for candidate, similarity, distance in scored
        ]

    def _city_search_options(self, locality_ids, distance_meters, min_similarity, row_limit):
        locality_ids = validate_identity_list(locality_ids, "locality_ids")
        self.repository.ensure_cities_exist(locality_ids)
        distance_meters = validate_non_negative(
            self.settings.dedup_city_radius_meters if distance_meters is None else distance_meters,
            "distance_meters",
        )
        min_similarity = validate_similarity(
            self.settings.dedup_city_min_similarity if min_similarity is None else min_similarity
        )
        row_limit = validate_limit(self.settings.dedup_row_limit if row_limit is None else row_limit, "row_limit")
        return locality_ids, distance_meters, min_similarity, row_limit

    def _qualifying_pairs(self, locality_ids, distance_meters, min_similarity, row_limit) -> List[DuplicatePair]:
        try:
            with log_timing(self.logger, "duplicate_scan", locality_ids=locality_ids) as scan:
                pairs = self.matcher.find_pairs(locality_ids, distance_meters, min_similarity, row_limit)
                scan["pair_count"] = len(pairs)
            return pairs
        except ProviderUnavailableError as e:
            self.logger.error(f"Duplicate scan for cities {locality_ids} degraded to empty result: {e}")
            return []

    def find_duplicate_pairs(
        self,
        locality_ids: Sequence[int],
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
        limit: Optional[int] = None,
        row_limit: Optional[int] = None,
    ) -> List[DuplicatePair]:
        """Independent duplicate pairs in the given cities, highest confidence first"""
        locality_ids, distance_meters, min_similarity, row_limit = self._city_search_options(
            locality_ids, distance_meters, min_similarity, row_limit
        )
        limit = validate_limit(self.settings.dedup_pair_limit if limit is None else limit)
        if not locality_ids:
            return []

        pairs = self._qualifying_pairs(locality_ids, distance_meters, min_similarity, row_limit)

        venue_ids = sorted({venue_id for pair in pairs for venue_id in pair.key})
        event_counts = self.repository.count_events_batch(venue_ids)
        for pair in pairs:
            pair.event_count_a = event_counts.get(pair.venue_a.id, 0)
            pair.event_count_b = event_counts.get(pair.venue_b.id, 0)

        pairs.sort(key=lambda p: (-p.confidence, -p.similarity, p.distance_meters, p.key))
        return pairs[:limit]

    def find_duplicates_for_city(
        self,
        locality_ids: Sequence[int],
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
        limit: Optional[int] = None,
        row_limit: Optional[int] = None,
    ) -> List[DuplicateGroup]:
        """Transitive duplicate groups in the given cities, highest confidence first"""
        locality_ids, distance_meters, min_similarity, row_limit = self._city_search_options(
            locality_ids, distance_meters, min_similarity, row_limit
        )
        limit = validate_limit(self.settings.dedup_group_limit if limit is None else limit)
        if not locality_ids:
            return []

        groups = build_clusters(self._qualifying_pairs(locality_ids, distance_meters, min_similarity, row_limit))

        venue_ids = sorted({venue_id for group in groups for venue_id in group.venue_ids})
        event_counts = self.repository.count_events_batch(venue_ids)
        for group in groups:
            group.event_counts = {venue_id: event_counts.get(venue_id, 0) for venue_id in group.venue_ids}

        groups.sort(key=lambda g: (-g.confidence, g.venue_ids[0]))
        return groups[:limit]

    def calculate_duplicate_metrics(
        self,
        locality_ids: Sequence[int],
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
        limit: Optional[int] = None,
        row_limit: Optional[int] = None,
    ) -> DuplicateMetrics:
        """City health summary built from the independent pairs"""
        pairs = self.find_duplicate_pairs(locality_ids, distance_meters, min_similarity, limit, row_limit)
        if not pairs:
            return DuplicateMetrics()

        unique_venue_ids = {venue_id for pair in pairs for venue_id in pair.key}
        affected_events = sum(pair.affected_events for pair in pairs)
        high, medium, low = count_by_level(pair.confidence for pair in pairs)

        return DuplicateMetrics(
            pair_count=len(pairs),
            unique_venue_count=len(unique_venue_ids),
            affected_events=affected_events,
            high_confidence_count=high,
            medium_confidence_count=medium,
            low_confidence_count=low,
            severity=Severity(classify_severity(high, affected_events, len(unique_venue_ids))),
            duplicate_pairs=pairs,
        )

    # Strict duplicate counts

    def get_duplicate_counts_batch(self, venue_ids: Sequence[int]) -> Dict[int, int]:
        try:
            return self.aggregator.batch_duplicate_counts(venue_ids)
        except ProviderUnavailableError as e:
            self.logger.error(f"Duplicate counts degraded to zero: {e}")
            return {venue_id: 0 for venue_id in validate_identity_list(venue_ids, "venue_ids")}

    def get_duplicate_count(self, venue_id: int) -> int:
        try:
            return self.aggregator.duplicate_count(venue_id)
        except ProviderUnavailableError as e:
            self.logger.error(f"Duplicate count for venue {venue_id} degraded to zero: {e}")
            return 0

    def get_cities_with_duplicates(
        self,
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
    ) -> List[CityDuplicateCount]:
        try:
            return self.aggregator.cities_with_duplicates(distance_meters, min_similarity)
        except ProviderUnavailableError as e:
            self.logger.error(f"City duplicate index degraded to empty result: {e}")
            return []

    def get_total_duplicate_count(
        self,
        distance_meters: Optional[float] = None,
        min_similarity: Optional[float] = None,
    ) -> int:
        try:
            return self.aggregator.total_duplicate_count(distance_meters, min_similarity)
        except ProviderUnavailableError as e:
            self.logger.error(f"Total duplicate count degraded to zero: {e}")
            return 0

    # Catalog reads

    def search_venues(self, query: str, city_id: Optional[int] = None, limit: int = 20) -> List[VenueSearchResult]:
        """Name search with event and strict duplicate counts per hit"""
        if city_id is not None:
            validate_identity(city_id, "city_id")
            self.repository.ensure_cities_exist([city_id])
        validate_limit(limit)

        venues = self.repository.search(query, city_id=city_id, limit=limit)
        venue_ids = [venue.id for venue in venues]
        event_counts = self.repository.count_events_batch(venue_ids)
        duplicate_counts = self.get_duplicate_counts_batch(venue_ids) if venue_ids else {}

        return [
            VenueSearchResult(
                venue=venue,
                event_count=event_counts.get(venue.id, 0),
                duplicate_count=duplicate_counts.get(venue.id, 0),
            )
            for venue in venues
        ]

    def count_events_batch(self, venue_ids: Sequence[int]) -> Dict[int, int]:
        return self.repository.count_events_batch(validate_identity_list(venue_ids, "venue_ids"))

    def get_merge_history(self, venue_id: int, limit: int = 50) -> List[VenueMergeAudit]:
        validate_identity(venue_id)
        return self.repository.merge_history(venue_id, limit=validate_limit(limit))

    def list_recent_merges(self, limit: int = 50) -> List[VenueMergeAudit]:
        return self.repository.recent_merges(limit=validate_limit(limit))

    # Mutations

    def exclude_pair(
        self,
        venue_id_a: int,
        venue_id_b: int,
        user_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> VenueDuplicateExclusion:
        return self.exclusions.exclude(venue_id_a, venue_id_b, user_id=user_id, reason=reason)

    def is_excluded(self, venue_id_a: int, venue_id_b: int) -> bool:
        return self.exclusions.is_excluded(venue_id_a, venue_id_b)

    def get_excluded_venue_ids(self, venue_id: int) -> List[int]:
        return self.exclusions.excluded_partners(venue_id)

    def remove_exclusion(self, venue_id_a: int, venue_id_b: int) -> None:
        self.exclusions.remove_exclusion(venue_id_a, venue_id_b)

    def merge_venues(
        self,
        source_venue_id: int,
        target_venue_id: int,
        user_id: Optional[int] = None,
        reason: str = "manual",
        similarity_score: Optional[float] = None,
        distance_meters: Optional[float] = None,
    ) -> MergeResult:
        return self.merger.merge(
            source_venue_id,
            target_venue_id,
            user_id=user_id,
            reason=reason,
            similarity_score=similarity_score,
            distance_meters=distance_meters,
        )


# Convenience functions for common deduplication tasks


def detect_duplicates_only(
    locality_ids: Sequence[int],
    session: Optional[Session] = None,
    **options,
) -> List[DuplicatePair]:
    """
    Only detect duplicate pairs without merging

    Useful for review and analysis
    """
    deduplicator = VenueDeduplicator(session=session)
    return deduplicator.find_duplicate_pairs(locality_ids, **options)


def city_health_report(locality_ids: Sequence[int], session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Metrics plus groups for a set of cities in one summary

    Returns a JSON-friendly dict for reports and the CLI
    """
    start = time.time()
    deduplicator = VenueDeduplicator(session=session)

    metrics = deduplicator.calculate_duplicate_metrics(locality_ids)
    groups = deduplicator.find_duplicates_for_city(locality_ids)

    return {
        "pair_count": metrics.pair_count,
        "unique_venue_count": metrics.unique_venue_count,
        "affected_events": metrics.affected_events,
        "high_confidence_count": metrics.high_confidence_count,
        "medium_confidence_count": metrics.medium_confidence_count,
        "low_confidence_count": metrics.low_confidence_count,
        "severity": metrics.severity.value,
        "group_count": len(groups),
        "largest_group": max((len(group.venues) for group in groups), default=0),
        "processing_time_seconds": time.time() - start,
    }
