"""
Pairwise duplicate matching

Each qualifying pair is reported on its own. Two pairs sharing a venue stay
two pairs; nothing here chains them into groups (see venues.clustering for
that).
"""
from typing import List, Optional, Sequence

from core.logging import get_logger
from venues.confidence import pair_confidence
from venues.exceptions import DeduplicationException
from venues.exclusions import ExclusionRegistry
from venues.providers import SpatialTextProvider
from venues.thresholds import qualifies
from venues.types import DuplicatePair, ProximityPair, canonical_pair


class PairwiseMatcher:
    def __init__(self, provider: SpatialTextProvider, exclusions: ExclusionRegistry):
        self.provider = provider
        self.exclusions = exclusions
        self.logger = get_logger("venue_pairwise_matcher", domain="venues")

    def find_pairs(
        self,
        locality_ids: Sequence[int],
        max_distance: float,
        default_min_similarity: float,
        row_limit: Optional[int] = None,
    ) -> List[DuplicatePair]:
        """
        Qualifying pairs in the given localities, best first.

        A pair qualifies when both venues are geocoded, sit within max_distance
        of each other at different coordinates, are not excluded, and their
        names reach the distance-tiered minimum similarity. Rows are sorted by
        similarity descending then distance ascending and cut at row_limit
        before confidence is computed.
        """
        proximity = self.provider.venue_pairs_within(locality_ids, max_distance)
        if not proximity:
            return []

        involved = {p.venue_a.id for p in proximity} | {p.venue_b.id for p in proximity}
        excluded = self.exclusions.excluded_pairs(involved)

        rows: List[ProximityPair] = []
        for pair in proximity:
            if pair.venue_a.id == pair.venue_b.id:
                raise DeduplicationException(
                    f"Provider paired venue {pair.venue_a.id} with itself", venue_ids=[pair.venue_a.id]
                )
            if canonical_pair(pair.venue_a.id, pair.venue_b.id) in excluded:
                continue
            if not qualifies(pair.similarity, pair.distance_meters, default_min_similarity):
                continue
            rows.append(pair)

        rows.sort(key=lambda p: (-p.similarity, p.distance_meters, canonical_pair(p.venue_a.id, p.venue_b.id)))
        if row_limit is not None:
            rows = rows[:row_limit]

        self.logger.debug(
            f"{len(rows)} qualifying pairs of {len(proximity)} within {max_distance}m "
            f"({len(excluded)} exclusions in scope)"
        )

        return [
            DuplicatePair(
                venue_a=row.venue_a,
                venue_b=row.venue_b,
                similarity=row.similarity,
                distance_meters=row.distance_meters,
                confidence=pair_confidence(row.similarity, row.distance_meters),
            )
            for row in rows
        ]
