"""
Campus delivery zones

Each zone is a circle around a campus. Demo orders and runners are placed
inside a zone so pickups, drop-offs and runner positions stay walkable or
bikeable (typically under 3 km apart).
"""

import math
import random
from typing import Optional


KM_PER_MILE = 1.609344

CAMPUS_ZONES = [
    {
        "campus": "UC Berkeley",
        "lat": 37.8719,
        "lon": -122.2585,
        "radius_km": 2.0,
        "weight": 0.30,
        "buildings": ["Unit 1", "Unit 2", "Foothill", "Clark Kerr", "Blackwell Hall"],
    },
    {
        "campus": "University of Washington",
        "lat": 47.6553,
        "lon": -122.3035,
        "radius_km": 2.5,
        "weight": 0.25,
        "buildings": ["McMahon Hall", "Lander Hall", "Willow Hall", "Maple Hall"],
    },
    {
        "campus": "University of Cincinnati",
        "lat": 39.1329,
        "lon": -84.5150,
        "radius_km": 1.8,
        "weight": 0.20,
        "buildings": ["Daniels Hall", "Dabney Hall", "Calhoun Hall", "Siddall Hall"],
    },
    {
        "campus": "UT Dallas",
        "lat": 32.9858,
        "lon": -96.7501,
        "radius_km": 2.2,
        "weight": 0.25,
        "buildings": ["Residence Hall North", "Residence Hall South", "Canyon Creek", "University Village"],
    },
]


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in kilometers using Haversine formula."""
    R = 6371  # Earth's radius in km

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_distance(lat1, lon1, lat2, lon2) / KM_PER_MILE


def get_zone_for_coordinates(lat: float, lon: float) -> Optional[dict]:
    """
    Find which campus zone contains the given coordinates.
    Returns None if coordinates are outside all zones.
    """
    for zone in CAMPUS_ZONES:
        distance = haversine_distance(lat, lon, zone["lat"], zone["lon"])
        if distance <= zone["radius_km"]:
            return zone
    return None


def random_point_in_zone(zone: dict, spread: float = 1.0) -> tuple[float, float]:
    """Uniform random point inside `spread` * the zone radius."""
    # sqrt keeps the distribution uniform over the disc
    r = zone["radius_km"] * spread * math.sqrt(random.random())
    theta = random.uniform(0, 2 * math.pi)

    # 1 degree lat ≈ 111 km
    lat_offset = (r * math.cos(theta)) / 111.0
    lon_offset = (r * math.sin(theta)) / (111.0 * math.cos(math.radians(zone["lat"])))

    return zone["lat"] + lat_offset, zone["lon"] + lon_offset


def get_all_zones() -> list[dict]:
    """Get list of all campus zones."""
    return CAMPUS_ZONES.copy()


def get_zone_weights() -> list[float]:
    """Get probability weights for zone selection."""
    return [zone["weight"] for zone in CAMPUS_ZONES]
