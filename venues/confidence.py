"""
Confidence scoring for duplicate pairs and groups

Pairs blend name similarity (70%) with proximity (30%). Groups average the
product similarity x proximity over their internal pairs, without the 70/30
blend, so a group and a lone pair with identical inputs can score
differently. Both formulas are kept as they are used by different screens.
"""
import math
from typing import Iterable, Mapping, Optional, Tuple

from venues.thresholds import distance_weight

SIMILARITY_WEIGHT = 0.7
PROXIMITY_WEIGHT = 0.3

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5

# Severity triggers
CRITICAL_HIGH_CONFIDENCE_PAIRS = 5
CRITICAL_AFFECTED_EVENTS = 100
WARNING_HIGH_CONFIDENCE_PAIRS = 2
WARNING_UNIQUE_VENUES = 10


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def pair_confidence(similarity: float, distance_meters: Optional[float]) -> float:
    """Confidence that a single pair is the same venue"""
    base = similarity * SIMILARITY_WEIGHT + distance_weight(distance_meters) * PROXIMITY_WEIGHT
    return _clamp(base)


def group_confidence(
    similarities: Mapping[Tuple[int, int], float],
    distances: Mapping[Tuple[int, int], Optional[float]],
) -> float:
    """Average of similarity x proximity weight over a group's pairs"""
    if not similarities:
        return 0.0

    # fsum keeps the result independent of pair iteration order
    weighted = [similarities[key] * distance_weight(distances.get(key)) for key in sorted(similarities)]
    return _clamp(math.fsum(weighted) / len(weighted))


def confidence_level(confidence: float) -> str:
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def classify_severity(high_confidence_count: int, affected_events: int, unique_venue_count: int) -> str:
    """critical / warning / healthy for a city's duplicate load"""
    if high_confidence_count >= CRITICAL_HIGH_CONFIDENCE_PAIRS or affected_events >= CRITICAL_AFFECTED_EVENTS:
        return "critical"
    if high_confidence_count >= WARNING_HIGH_CONFIDENCE_PAIRS or unique_venue_count >= WARNING_UNIQUE_VENUES:
        return "warning"
    return "healthy"


def count_by_level(confidences: Iterable[float]) -> Tuple[int, int, int]:
    """(high, medium, low) counts"""
    high = medium = low = 0
    for confidence in confidences:
        level = confidence_level(confidence)
        if level == "high":
            high += 1
        elif level == "medium":
            medium += 1
        else:
            low += 1
    return high, medium, low
