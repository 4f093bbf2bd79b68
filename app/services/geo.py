# app/services/geo.py
# -----------------------------------------------------------------------------
# Small geometry layer: GeoPoint + haversine (scalar and numpy-vectorized)
# -----------------------------------------------------------------------------
from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEG_LAT = 111_320.0


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """WGS84 latitude/longitude in decimal degrees."""

    lat: float
    lng: float


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_matrix_m(
    cell_lat: np.ndarray, cell_lng: np.ndarray, poi_lat: np.ndarray, poi_lng: np.ndarray
) -> np.ndarray:
    """
    Pairwise haversine distances, shape (cells, pois).
    Same formula as haversine_m, broadcast over both axes.
    """
    lat1 = np.radians(cell_lat)[:, None]
    lat2 = np.radians(poi_lat)[None, :]
    d_lat = lat2 - lat1
    d_lng = np.radians(poi_lng)[None, :] - np.radians(cell_lng)[:, None]
    a = np.sin(d_lat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(d_lng / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def meters_per_deg_lng(lat: float) -> float:
    # flat-earth local approximation, fine at city scale
    return METERS_PER_DEG_LAT * math.cos(math.radians(lat))
