"""
Duplicate clustering

Groups qualifying pairs into connected components. Members are sorted by id
and per-pair statistics are keyed by canonical pair, so the output depends
only on the set of input pairs, never on their order.
"""
import math
from collections import defaultdict
from typing import Dict, Iterable, List, Set

from database.models import Venue
from venues.confidence import group_confidence
from venues.types import DuplicateGroup, DuplicatePair


def _connected_components(adjacency: Dict[int, Set[int]]) -> List[List[int]]:
    """Iterative depth-first search, components returned as sorted id lists"""
    visited: Set[int] = set()
    components: List[List[int]] = []

    for start in sorted(adjacency):
        if start in visited:
            continue

        component = []
        stack = [start]
        visited.add(start)
        while stack:
            venue_id = stack.pop()
            component.append(venue_id)
            for neighbor in adjacency[venue_id]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    stack.append(neighbor)

        components.append(sorted(component))

    return components


def _pair_rank(pair: DuplicatePair) -> tuple:
    """Higher similarity wins, then the shorter known distance"""
    distance = pair.distance_meters
    return (pair.similarity, -(math.inf if distance is None else distance))


def build_clusters(pairs: Iterable[DuplicatePair]) -> List[DuplicateGroup]:
    """
    Connected components of the duplicate graph

    Args:
        pairs: qualifying pairs; repeated pairs are collapsed by canonical key

    Returns:
        One DuplicateGroup per component, ordered by smallest member id
    """
    adjacency: Dict[int, Set[int]] = defaultdict(set)
    venues_by_id: Dict[int, Venue] = {}
    pairs_by_key: Dict[tuple, DuplicatePair] = {}

    for pair in pairs:
        a, b = pair.venue_a.id, pair.venue_b.id
        adjacency[a].add(b)
        adjacency[b].add(a)
        venues_by_id[a] = pair.venue_a
        venues_by_id[b] = pair.venue_b

        existing = pairs_by_key.get(pair.key)
        if existing is None or _pair_rank(pair) > _pair_rank(existing):
            pairs_by_key[pair.key] = pair

    groups: List[DuplicateGroup] = []
    for member_ids in _connected_components(adjacency):
        if len(member_ids) < 2:
            continue

        members = set(member_ids)
        keys = sorted(key for key in pairs_by_key if key[0] in members)
        distances = {key: pairs_by_key[key].distance_meters for key in keys}
        similarities = {key: pairs_by_key[key].similarity for key in keys}

        groups.append(
            DuplicateGroup(
                venues=[venues_by_id[venue_id] for venue_id in member_ids],
                distances=distances,
                similarities=similarities,
                confidence=group_confidence(similarities, distances),
            )
        )

    return groups
