"""
Type definitions for the venue deduplication domain

Pairs and groups are computed on demand and never persisted.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from database.models import Venue, VenueMergeAudit
from venues.confidence import confidence_level

PairKey = Tuple[int, int]


class MatchConfidence(str, Enum):
    """Confidence bands used by city-level metrics"""

    HIGH = "high"  # >= 0.8
    MEDIUM = "medium"  # 0.5 - 0.8
    LOW = "low"  # < 0.5


class Severity(str, Enum):
    """City-level duplicate health"""

    CRITICAL = "critical"
    WARNING = "warning"
    HEALTHY = "healthy"


def canonical_pair(venue_id_1: int, venue_id_2: int) -> PairKey:
    """Order a pair of venue ids smaller first"""
    if venue_id_1 <= venue_id_2:
        return venue_id_1, venue_id_2
    return venue_id_2, venue_id_1


@dataclass(frozen=True)
class ProximityPair:
    """Raw provider output: two venues within a search radius"""

    venue_a: Venue
    venue_b: Venue
    distance_meters: float
    similarity: float


@dataclass
class DuplicatePair:
    """Two distinct venues that look like the same place, smaller id first"""

    venue_a: Venue
    venue_b: Venue
    similarity: float
    distance_meters: Optional[float] = None
    confidence: float = 0.0
    event_count_a: int = 0
    event_count_b: int = 0

    def __post_init__(self):
        if self.venue_a.id == self.venue_b.id:
            raise ValueError(f"A duplicate pair needs two distinct venues, got {self.venue_a.id} twice")
        if self.venue_a.id > self.venue_b.id:
            self.venue_a, self.venue_b = self.venue_b, self.venue_a
            self.event_count_a, self.event_count_b = self.event_count_b, self.event_count_a

    @property
    def key(self) -> PairKey:
        return self.venue_a.id, self.venue_b.id

    @property
    def affected_events(self) -> int:
        return self.event_count_a + self.event_count_b

    @property
    def confidence_level(self) -> MatchConfidence:
        return MatchConfidence(confidence_level(self.confidence))

    def involves(self, venue_id: int) -> bool:
        return venue_id in self.key


@dataclass
class DuplicateGroup:
    """Connected component of venues linked by qualifying pairs"""

    venues: List[Venue]
    distances: Dict[PairKey, Optional[float]]
    similarities: Dict[PairKey, float]
    confidence: float = 0.0
    event_counts: Dict[int, int] = field(default_factory=dict)

    @property
    def venue_ids(self) -> List[int]:
        return [venue.id for venue in self.venues]

    @property
    def pair_count(self) -> int:
        return len(self.similarities)

    @property
    def total_events(self) -> int:
        return sum(self.event_counts.get(venue_id, 0) for venue_id in self.venue_ids)

    @property
    def avg_distance(self) -> Optional[float]:
        known = [self.distances[key] for key in sorted(self.distances) if self.distances[key] is not None]
        if not known:
            return None
        return math.fsum(known) / len(known)


@dataclass
class VenueDuplicate:
    """A potential duplicate found for one specific venue"""

    venue: Venue
    similarity: float
    distance_meters: Optional[float]
    confidence: float
    event_count: int = 0


@dataclass
class DuplicateMetrics:
    """Aggregate duplicate health for a set of localities"""

    pair_count: int = 0
    unique_venue_count: int = 0
    affected_events: int = 0
    high_confidence_count: int = 0
    medium_confidence_count: int = 0
    low_confidence_count: int = 0
    severity: Severity = Severity.HEALTHY
    duplicate_pairs: List[DuplicatePair] = field(default_factory=list)


@dataclass
class CityDuplicateCount:
    city_id: int
    name: str
    slug: str
    duplicate_count: int


@dataclass
class VenueSearchResult:
    venue: Venue
    event_count: int = 0
    duplicate_count: int = 0


@dataclass
class MergeResult:
    """Outcome of a committed merge"""

    target_venue: Venue
    audit: VenueMergeAudit
    counts: Dict[str, int] = field(default_factory=dict)
