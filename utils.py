import math
from datetime import date
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0088
TOTAL_SHARE = 100

def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))

def contains_ci(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()

def windows_overlap(start: date, end: date,
                    query_start: Optional[date], query_end: Optional[date]) -> bool:
    """True when [start, end] intersects the query window; open ends match anything."""
    if query_start is not None and end < query_start:
        return False
    if query_end is not None and start > query_end:
        return False
    return True

def complete_shares(owner_share: Optional[int], harvester_share: Optional[int]) -> Tuple[Optional[int], Optional[int]]:
    """Fill in the missing side of an owner/harvester split."""
    if owner_share is not None and harvester_share is None:
        return owner_share, TOTAL_SHARE - owner_share
    if harvester_share is not None and owner_share is None:
        return TOTAL_SHARE - harvester_share, harvester_share
    return owner_share, harvester_share
