"""
Distance-based similarity thresholds

Venues that sit very close together need only weak name evidence to count as
duplicates; venues further apart need stronger evidence. Tiers are half-open
intervals: 50.0 m falls in the [50, 100) tier.
"""
from typing import Optional, Tuple

# (upper bound in meters, exclusive; required similarity)
SIMILARITY_TIERS: Tuple[Tuple[float, float], ...] = (
    (50.0, 0.30),
    (100.0, 0.40),
    (200.0, 0.45),
)

# (upper bound in meters, exclusive; weight)
DISTANCE_WEIGHT_TIERS: Tuple[Tuple[float, float], ...] = (
    (20.0, 1.0),  # Same building
    (50.0, 0.95),  # Very close
    (100.0, 0.85),  # Close
    (200.0, 0.70),  # Nearby
    (500.0, 0.50),  # In area
)
DISTANT_WEIGHT = 0.30


def minimum_similarity(distance_meters: Optional[float], default_min: float) -> float:
    """Required name similarity for a pair at the given distance"""
    if distance_meters is None:
        return default_min

    for upper_bound, required in SIMILARITY_TIERS:
        if distance_meters < upper_bound:
            return required

    return default_min


def distance_weight(distance_meters: Optional[float]) -> float:
    """Proximity weight in (0, 1]; unknown distance is treated as distant"""
    if distance_meters is None:
        return DISTANT_WEIGHT

    for upper_bound, weight in DISTANCE_WEIGHT_TIERS:
        if distance_meters < upper_bound:
            return weight

    return DISTANT_WEIGHT


def qualifies(similarity: float, distance_meters: Optional[float], default_min: float) -> bool:
    return similarity >= minimum_similarity(distance_meters, default_min)
