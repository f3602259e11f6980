"""
Venues - duplicate detection and merging for the venue catalog

Finds venues that describe the same physical place (geospatial proximity plus
fuzzy name matching), groups them, ranks them by confidence, records
"not a duplicate" exclusions and merges duplicates with a full audit trail.
"""

from database.models import Venue, VenueDuplicateExclusion, VenueMergeAudit

from .aggregator import DuplicateCountAggregator
from .candidates import CandidateGenerator
from .clustering import build_clusters
from .confidence import classify_severity, group_confidence, pair_confidence
from .deduplicator import VenueDeduplicator, city_health_report, detect_duplicates_only
from .exceptions import ConstraintViolationException, DeduplicationException, MergeException
from .exclusions import ExclusionRegistry
from .matcher import PairwiseMatcher
from .merge import VenueMerger, merge_venues
from .providers import InMemorySpatialProvider, PostGISSpatialProvider, SpatialTextProvider, get_spatial_provider
from .similarity import name_similarity, names_match
from .thresholds import distance_weight, minimum_similarity
from .types import (
    CityDuplicateCount,
    DuplicateGroup,
    DuplicateMetrics,
    DuplicatePair,
    MatchConfidence,
    MergeResult,
    Severity,
    VenueDuplicate,
    VenueSearchResult,
)

__all__ = [
    # Models
    "Venue",
    "VenueDuplicateExclusion",
    "VenueMergeAudit",
    # Deduplicator
    "VenueDeduplicator",
    "detect_duplicates_only",
    "city_health_report",
    # Components
    "CandidateGenerator",
    "PairwiseMatcher",
    "build_clusters",
    "ExclusionRegistry",
    "DuplicateCountAggregator",
    "VenueMerger",
    "merge_venues",
    # Providers
    "SpatialTextProvider",
    "InMemorySpatialProvider",
    "PostGISSpatialProvider",
    "get_spatial_provider",
    # Scoring
    "name_similarity",
    "names_match",
    "minimum_similarity",
    "distance_weight",
    "pair_confidence",
    "group_confidence",
    "classify_severity",
    # Types
    "DuplicatePair",
    "DuplicateGroup",
    "DuplicateMetrics",
    "VenueDuplicate",
    "VenueSearchResult",
    "CityDuplicateCount",
    "MergeResult",
    "MatchConfidence",
    "Severity",
    # Exceptions
    "DeduplicationException",
    "MergeException",
    "ConstraintViolationException",
]
