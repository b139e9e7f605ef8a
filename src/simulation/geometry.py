"""
Geographic helpers: WKT decoding, great-circle distance, path interpolation.

Distances are in kilometres throughout; incident radii are converted from
metres by the callers.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry import LineString

from .models import Position

EARTH_RADIUS_KM = 6371.0


class GeometryError(ValueError):
    """A route geometry could not be decoded into a usable path."""


def parse_wkt_linestring(text: str) -> list[Position]:
    """
    Decode a WKT LINESTRING into an ordered list of positions.

    WKT coordinates are `lng lat`. Returns an empty list when the text is
    missing, malformed or not a line string.
    """
    if not text:
        return []

    try:
        geometry = wkt.loads(text)
    except (ShapelyError, ValueError):
        return []

    if not isinstance(geometry, LineString) or geometry.is_empty:
        return []

    return [Position(lat=float(y), lng=float(x)) for x, y, *_ in geometry.coords]


def decode_route_path(geometry: str) -> list[Position]:
    """
    Decode and validate a route geometry.

    Raises:
        GeometryError: if the geometry is missing, is not a LINESTRING,
            cannot be parsed, or has fewer than 2 points
    """
    if not geometry:
        raise GeometryError("Invalid route: missing geometry")

    if "LINESTRING" not in geometry.upper():
        raise GeometryError("Invalid route: geometry is not a LINESTRING")

    path = parse_wkt_linestring(geometry)
    if not path:
        raise GeometryError("Unable to trace route: WKT parsing failed")
    if len(path) < 2:
        raise GeometryError("Invalid route: fewer than 2 points")

    return path


def haversine_distance(a: Position, b: Position) -> float:
    """Compute great-circle distance in kilometres."""
    lat1, lon1 = np.radians(a.as_tuple())
    lat2, lon2 = np.radians(b.as_tuple())

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    c = 2 * np.arcsin(np.sqrt(np.clip(h, 0.0, 1.0)))

    return float(c * EARTH_RADIUS_KM)


def is_within_radius(point: Position, center: Position, radius_km: float) -> bool:
    """Whether `point` lies inside the circle of `radius_km` around `center`."""
    return haversine_distance(point, center) <= radius_km


def segment_lengths(path: Sequence[Position]) -> np.ndarray:
    """Length in km of each consecutive segment of `path`."""
    if len(path) < 2:
        return np.zeros(0)
    return np.array(
        [haversine_distance(path[i], path[i + 1]) for i in range(len(path) - 1)]
    )


def calculate_path_distance(path: Sequence[Position]) -> float:
    """Total length of `path` in km."""
    return float(segment_lengths(path).sum())


def interpolate_along_path(
    path: Sequence[Position],
    progress: float,
) -> tuple[Position, int]:
    """
    Find the point at fractional `progress` along `path`.

    Progress is measured by cumulative great-circle length; a path whose
    points all coincide falls back to splitting progress evenly between
    segments.

    Returns:
        (position, index of the segment containing it)
    """
    if not path:
        raise GeometryError("Cannot interpolate along an empty path")
    if len(path) == 1:
        return path[0], 0

    progress = float(np.clip(progress, 0.0, 1.0))
    n_segments = len(path) - 1

    lengths = segment_lengths(path)
    total = lengths.sum()

    if total > 0:
        cumulative = np.concatenate(([0.0], np.cumsum(lengths)))
        target = progress * total
        index = int(np.searchsorted(cumulative, target, side="right") - 1)
        index = min(max(index, 0), n_segments - 1)
        seg_length = lengths[index]
        t = (target - cumulative[index]) / seg_length if seg_length > 0 else 0.0
    else:
        scaled = progress * n_segments
        index = min(int(scaled), n_segments - 1)
        t = scaled - index

    t = float(np.clip(t, 0.0, 1.0))
    start, end = path[index], path[index + 1]
    position = Position(
        lat=start.lat + (end.lat - start.lat) * t,
        lng=start.lng + (end.lng - start.lng) * t,
    )
    return position, index
