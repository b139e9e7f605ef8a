"""
Domain records for the parcel delivery simulation.

Parcels and incidents are immutable snapshots: every change produces a
replacement value through `dataclasses.replace`, and only the store keeps
the current one.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional, Union

from .config import SimulationConfig


class ParcelState(str, Enum):
    """
    Delivery state of a parcel.

    PLANNED -> TRANSIT -> INCIDENT -> TRANSIT -> DELIVERED
    TRANSIT may reach DELIVERED directly; DELIVERED is terminal.
    """

    PLANNED = "PLANNED"
    TRANSIT = "TRANSIT"
    INCIDENT = "INCIDENT"
    DELIVERED = "DELIVERED"


class IncidentType(str, Enum):
    """Kinds of hazard a user can place on the map."""

    ROAD_CLOSURE = "ROAD_CLOSURE"
    TRAFFIC = "TRAFFIC"
    VEHICLE_BREAKDOWN = "VEHICLE_BREAKDOWN"
    WEATHER = "WEATHER"


@dataclass(frozen=True)
class Position:
    """A geographic point in decimal degrees."""

    lat: float
    lng: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Hub:
    """A pickup or delivery location known to the route service."""

    id: str
    address: str
    latitude: float
    longitude: float
    type: str = "HUB"

    @property
    def position(self) -> Position:
        return Position(self.latitude, self.longitude)


@dataclass(frozen=True)
class RouteDescriptor:
    """A route as returned by the route service."""

    id: str
    geometry: str  # WKT LINESTRING
    total_distance_km: float
    estimated_duration_min: float


@dataclass(frozen=True)
class Unrouted:
    """Routing variant for a parcel that has no route yet."""


@dataclass(frozen=True)
class Routed:
    """Routing variant for a parcel following `route` along `path`."""

    route: RouteDescriptor
    path: tuple[Position, ...]


Routing = Union[Unrouted, Routed]


@dataclass(frozen=True)
class Parcel:
    """A parcel moving (or waiting to move) along its route."""

    id: str
    tracking_code: str
    position: Position
    routing: Routing = field(default_factory=Unrouted)
    state: ParcelState = ParcelState.PLANNED
    progress: float = 0.0
    path_segment_index: int = 0
    start_time: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    speed: float = 40.0  # km/h
    affected_incident_ids: tuple[str, ...] = ()
    details: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        if not 0.0 <= self.progress <= 1.0:
            raise ValueError(f"progress must be in [0, 1], got {self.progress}")
        if isinstance(self.routing, Unrouted) and self.state is not ParcelState.PLANNED:
            raise ValueError(
                f"Parcel {self.id} has no route and cannot be {self.state.value}"
            )

    @property
    def is_routed(self) -> bool:
        return isinstance(self.routing, Routed)

    @property
    def route(self) -> Optional[RouteDescriptor]:
        return self.routing.route if isinstance(self.routing, Routed) else None

    @property
    def path(self) -> tuple[Position, ...]:
        return self.routing.path if isinstance(self.routing, Routed) else ()


@dataclass(frozen=True)
class Incident:
    """A circular hazard zone placed on the map."""

    id: str
    type: IncidentType
    position: Position
    radius: float  # metres
    timestamp: datetime
    description: str = ""
    resolved: bool = False
    affected_route_ids: tuple[str, ...] = ()


def create_routed_parcel(
    parcel_id: str,
    tracking_code: str,
    route: RouteDescriptor,
    path: list[Position],
    config: Optional[SimulationConfig] = None,
    now: Optional[datetime] = None,
    details: Optional[dict[str, Any]] = None,
) -> Parcel:
    """
    Create a PLANNED parcel positioned at the start of its route.

    The caller is expected to promote it to TRANSIT with `start_parcel`.
    """
    config = config or SimulationConfig()
    now = now or datetime.now()
    origin = path[0] if path else Position(*config.fallback_origin)

    return Parcel(
        id=parcel_id,
        tracking_code=tracking_code,
        position=origin,
        routing=Routed(route=route, path=tuple(path)),
        estimated_arrival=now + timedelta(minutes=route.estimated_duration_min),
        speed=config.base_speed_kmh,
        details=dict(details or {}),
    )


def create_unrouted_parcel(
    parcel_id: str,
    tracking_code: str,
    hub: Optional[Hub] = None,
    config: Optional[SimulationConfig] = None,
    details: Optional[dict[str, Any]] = None,
) -> Parcel:
    """Create a parcel with no route, pinned at its pickup hub if known."""
    config = config or SimulationConfig()
    position = hub.position if hub else Position(*config.fallback_origin)

    return Parcel(
        id=parcel_id,
        tracking_code=tracking_code,
        position=position,
        speed=config.unrouted_speed_kmh,
        details=dict(details or {}),
    )


def create_incident(
    position: Position,
    incident_type: IncidentType,
    description: Optional[str] = None,
    config: Optional[SimulationConfig] = None,
    now: Optional[datetime] = None,
    affected_route_ids: tuple[str, ...] = (),
) -> Incident:
    """Create an unresolved incident with the radius its type implies."""
    config = config or SimulationConfig()
    if incident_type is IncidentType.ROAD_CLOSURE:
        radius = config.road_closure_radius_m
    else:
        radius = config.default_incident_radius_m

    return Incident(
        id=f"incident-{uuid.uuid4().hex[:12]}",
        type=incident_type,
        position=position,
        radius=radius,
        timestamp=now or datetime.now(),
        description=description or f"Incident: {incident_type.value}",
        affected_route_ids=affected_route_ids,
    )
