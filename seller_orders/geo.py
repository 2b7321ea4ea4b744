import math
from typing import Iterable, List, Optional, Tuple

EARTH_RADIUS_KM = 6371


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_distance(km: float) -> str:
    if km < 1:
        return f"{round(km * 1000)}m away"
    return f"{km:.1f}km away"


def coordinates(obj) -> Optional[Tuple[float, float]]:
    """(lat, lng) of anything with latitude/longitude attributes, or None."""
    lat = getattr(obj, "latitude", None)
    lng = getattr(obj, "longitude", None)
    if lat is None or lng is None or lat == "" or lng == "":
        return None
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        return None


def stores_within(stores: Iterable, lat: float, lng: float, radius_km: float) -> List[Tuple[object, float]]:
    """Stores inside ``radius_km`` of the point, nearest first. Stores without coordinates are skipped."""
    found = []
    for store in stores:
        point = coordinates(store)
        if point is None:
            continue
        distance = haversine_km(lat, lng, point[0], point[1])
        if distance <= radius_km:
            found.append((store, distance))
    found.sort(key=lambda pair: pair[1])
    return found
