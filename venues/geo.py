"""Geodesic helpers for venue coordinates"""
import math
from typing import Optional

EARTH_RADIUS_METERS = 6371000
GRID_METERS_PER_DEGREE = 100000.0


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great circle distance in meters"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def venue_distance(venue_a, venue_b) -> Optional[float]:
    """Distance between two venues in meters, None if either lacks coordinates"""
    if not (venue_a.has_coordinates and venue_b.has_coordinates):
        return None
    return haversine_meters(venue_a.latitude, venue_a.longitude, venue_b.latitude, venue_b.longitude)


def same_point(venue_a, venue_b) -> bool:
    """
    True when both venues carry exactly the same coordinates.

    Identical points almost always come from geocoders falling back to the
    city center, so they never count as evidence of a duplicate.
    """
    return (
        venue_a.has_coordinates
        and venue_b.has_coordinates
        and venue_a.latitude == venue_b.latitude
        and venue_a.longitude == venue_b.longitude
    )


def grid_cell(latitude: float, longitude: float, lat_step: float, lng_step: float) -> tuple:
    """Bucket key for a coordinate on a grid of the given step sizes (degrees)"""
    return math.floor(latitude / lat_step), math.floor(longitude / lng_step)


def grid_steps(radius_meters: float, max_abs_latitude: float) -> tuple:
    """
    Grid step sizes in degrees such that any two points within radius_meters
    fall in the same or an adjacent cell.
    """
    # Undersized meters-per-degree keeps cells slightly larger than the radius
    radius = max(radius_meters, 1.0)
    lat_step = radius / GRID_METERS_PER_DEGREE
    cos_lat = math.cos(math.radians(min(abs(max_abs_latitude), 89.0)))
    lng_step = radius / (GRID_METERS_PER_DEGREE * cos_lat)
    return lat_step, lng_step
