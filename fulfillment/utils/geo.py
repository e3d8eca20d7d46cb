"""
Geospatial helpers: great-circle distance, ETA and staleness text.

Display helpers only; nothing here is used for billing except
``distance_km``, which feeds the local delivery tariff.
"""
import math
from collections import namedtuple
from datetime import datetime, timezone
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0
AVERAGE_SPEED_KMH = 25.0

# Approximate bounding box used to pick the display currency
URUGUAY_BOUNDS = {
    'north': -30.0,
    'south': -35.0,
    'east': -53.0,
    'west': -58.5,
}

Coordinates = Tuple[float, float]

Eta = namedtuple('Eta', ['minutes', 'text'])


def is_valid_coordinate(lat, lon) -> bool:
    """True for finite latitude/longitude within range."""
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def distance_km(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance in km between two (lat, lon) pairs."""
    lat1, lon1 = a
    lat2, lon2 = b
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def estimate_eta(distance: float) -> Eta:
    """
    Estimate travel time at an average urban speed of 25 km/h.

    Examples:
        estimate_eta(0) -> Eta(1, '< 1 min')
        estimate_eta(5) -> Eta(12, '12 min')
        estimate_eta(30) -> Eta(72, '1h 12min')
    """
    minutes = math.ceil(distance / AVERAGE_SPEED_KMH * 60)
    if minutes < 1:
        return Eta(1, '< 1 min')
    if minutes < 60:
        return Eta(minutes, f'{minutes} min')
    hours, remaining = divmod(minutes, 60)
    return Eta(minutes, f'{hours}h {remaining}min' if remaining else f'{hours}h')


def format_staleness(timestamp: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human readable age of a position report."""
    if timestamp is None:
        return 'never'
    now = now or datetime.now(timezone.utc)
    # SQLite hands back naive datetimes; they are stored as UTC
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    minutes = int((now - timestamp).total_seconds() // 60)
    if minutes < 1:
        return 'just now'
    if minutes < 60:
        return f'{minutes} min ago'
    hours = minutes // 60
    if hours < 24:
        return f'{hours}h ago'
    return f'{hours // 24}d ago'


def detect_country(lat: float, lon: float) -> str:
    """'UY' when the point falls inside Uruguay's bounding box, else 'BR'."""
    if (URUGUAY_BOUNDS['south'] <= lat <= URUGUAY_BOUNDS['north']
            and URUGUAY_BOUNDS['west'] <= lon <= URUGUAY_BOUNDS['east']):
        return 'UY'
    return 'BR'
