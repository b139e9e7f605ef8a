"""
Parcel simulation engine.

Pure functions over immutable parcel snapshots: movement along a route,
geofence collision detection and the parcel state machine. Nothing here
touches the store or the clock; callers decide what to do with the
replacement values.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from .geometry import GeometryError, interpolate_along_path, is_within_radius
from .models import Incident, Parcel, ParcelState, Position, RouteDescriptor, Routed

DELIVERY_THRESHOLD = 0.99
MIN_ROUTE_DISTANCE_KM = 1e-9
MS_PER_HOUR = 60 * 60 * 1000


class InvalidTransitionError(ValueError):
    """A parcel was asked to make a state change its state machine forbids."""


def start_parcel(parcel: Parcel, now: Optional[datetime] = None) -> Parcel:
    """
    Promote a routed PLANNED parcel to TRANSIT.

    Raises:
        InvalidTransitionError: if the parcel has no route or is not PLANNED
    """
    if not parcel.is_routed:
        raise InvalidTransitionError(f"Parcel {parcel.id} has no route to follow")
    if parcel.state is not ParcelState.PLANNED:
        raise InvalidTransitionError(
            f"Parcel {parcel.id} cannot start from {parcel.state.value}"
        )

    return replace(
        parcel,
        state=ParcelState.TRANSIT,
        start_time=now or datetime.now(),
    )


def advance(
    parcel: Parcel,
    delta_ms: float,
    speed_multiplier: float,
    now: Optional[datetime] = None,
    threshold: float = DELIVERY_THRESHOLD,
    min_distance_km: float = MIN_ROUTE_DISTANCE_KM,
) -> Parcel:
    """
    Move a TRANSIT parcel along its path.

    Args:
        parcel: Parcel snapshot
        delta_ms: Elapsed time in milliseconds
        speed_multiplier: Playback speed factor
        now: Timestamp recorded as actual arrival on delivery
        threshold: Progress at which the parcel counts as delivered
        min_distance_km: Routes shorter than this do not move

    Returns:
        The unchanged parcel when it cannot move, otherwise a new snapshot
    """
    if parcel.state is not ParcelState.TRANSIT or not parcel.path:
        return parcel

    total_km = parcel.route.total_distance_km
    if not math.isfinite(total_km) or total_km < min_distance_km:
        # Degenerate route: no movement rather than a non-finite progress
        return parcel

    hours = max(0.0, delta_ms) / MS_PER_HOUR
    distance_km = max(0.0, parcel.speed * speed_multiplier * hours)
    increment = distance_km / total_km
    if not math.isfinite(increment):
        return parcel

    new_progress = min(max(parcel.progress + increment, parcel.progress), 1.0)
    position, segment_index = interpolate_along_path(parcel.path, new_progress)

    delivered = new_progress >= threshold
    return replace(
        parcel,
        position=position,
        progress=new_progress,
        path_segment_index=segment_index,
        state=ParcelState.DELIVERED if delivered else parcel.state,
        actual_arrival=(now or datetime.now()) if delivered else parcel.actual_arrival,
    )


def detect_collision(
    parcel: Parcel,
    incidents: Iterable[Incident],
) -> Optional[Incident]:
    """
    Find the first incident whose geofence newly contains the parcel.

    Incidents are checked in iteration order and the first match wins, not
    the nearest. Resolved incidents and those already in
    `affected_incident_ids` are skipped.
    """
    for incident in incidents:
        if incident.resolved:
            continue
        if incident.id in parcel.affected_incident_ids:
            continue
        if is_within_radius(parcel.position, incident.position, incident.radius / 1000):
            return incident
    return None


def mark_incident(parcel: Parcel, incident_id: str) -> Parcel:
    """
    Stop a TRANSIT parcel at an incident.

    The id is appended without deduplication; `detect_collision` is what
    keeps the same incident from triggering twice.
    """
    if parcel.state is not ParcelState.TRANSIT:
        raise InvalidTransitionError(
            f"Parcel {parcel.id} cannot enter INCIDENT from {parcel.state.value}"
        )

    return replace(
        parcel,
        state=ParcelState.INCIDENT,
        affected_incident_ids=parcel.affected_incident_ids + (incident_id,),
    )


def reanchor_to_route(
    parcel: Parcel,
    new_route: RouteDescriptor,
    new_path: Sequence[Position],
    now: Optional[datetime] = None,
) -> Parcel:
    """
    Put a parcel on a recalculated route and resume transit.

    Progress is kept as the same fraction of the new path, so the parcel
    may jump: the same fraction is a different distance on a different
    route.
    """
    if parcel.state not in (ParcelState.INCIDENT, ParcelState.TRANSIT):
        raise InvalidTransitionError(
            f"Parcel {parcel.id} cannot be rerouted from {parcel.state.value}"
        )
    if not new_path:
        raise GeometryError(f"Route {new_route.id} has an empty path")

    position, segment_index = interpolate_along_path(new_path, parcel.progress)
    now = now or datetime.now()

    return replace(
        parcel,
        routing=Routed(route=new_route, path=tuple(new_path)),
        position=position,
        path_segment_index=segment_index,
        state=ParcelState.TRANSIT,
        estimated_arrival=now + timedelta(minutes=new_route.estimated_duration_min),
    )


def estimate_arrival(parcel: Parcel, now: Optional[datetime] = None) -> Optional[datetime]:
    """Project the arrival time from remaining distance and nominal speed."""
    if parcel.route is None or parcel.state is not ParcelState.TRANSIT:
        return parcel.estimated_arrival
    if parcel.speed <= 0:
        return parcel.estimated_arrival

    remaining_km = parcel.route.total_distance_km * (1.0 - parcel.progress)
    hours_remaining = remaining_km / parcel.speed
    return (now or datetime.now()) + timedelta(hours=hours_remaining)


def incident_affects_route(incident: Incident, path: Sequence[Position]) -> bool:
    """Whether any point of `path` lies inside the incident geofence."""
    radius_km = incident.radius / 1000
    return any(is_within_radius(p, incident.position, radius_km) for p in path)
