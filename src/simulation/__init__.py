"""
Parcel delivery simulation core.

Provides the pure movement/collision engine, the per-frame clock and the
single-writer state store.
"""

from .actions import Action, ActionType
from .clock import SimulationClock, TickResult
from .config import SimulationConfig
from .engine import (
    DELIVERY_THRESHOLD,
    InvalidTransitionError,
    advance,
    detect_collision,
    estimate_arrival,
    incident_affects_route,
    mark_incident,
    reanchor_to_route,
    start_parcel,
)
from .geometry import (
    GeometryError,
    calculate_path_distance,
    decode_route_path,
    haversine_distance,
    interpolate_along_path,
    is_within_radius,
    parse_wkt_linestring,
)
from .metrics import SimulationStats, StatsRecorder, compute_stats, parcels_to_dataframe
from .models import (
    Hub,
    Incident,
    IncidentType,
    Parcel,
    ParcelState,
    Position,
    RouteDescriptor,
    Routed,
    Unrouted,
    create_incident,
    create_routed_parcel,
    create_unrouted_parcel,
)
from .store import SimulationState, SimulationStore, reduce

__all__ = [
    # Engine
    "DELIVERY_THRESHOLD",
    "InvalidTransitionError",
    "advance",
    "detect_collision",
    "estimate_arrival",
    "incident_affects_route",
    "mark_incident",
    "reanchor_to_route",
    "start_parcel",
    # Clock
    "SimulationClock",
    "TickResult",
    # Store
    "Action",
    "ActionType",
    "SimulationState",
    "SimulationStore",
    "reduce",
    # Models
    "Hub",
    "Incident",
    "IncidentType",
    "Parcel",
    "ParcelState",
    "Position",
    "RouteDescriptor",
    "Routed",
    "Unrouted",
    "create_incident",
    "create_routed_parcel",
    "create_unrouted_parcel",
    # Geometry
    "GeometryError",
    "calculate_path_distance",
    "decode_route_path",
    "haversine_distance",
    "interpolate_along_path",
    "is_within_radius",
    "parse_wkt_linestring",
    # Metrics
    "SimulationStats",
    "StatsRecorder",
    "compute_stats",
    "parcels_to_dataframe",
    # Config
    "SimulationConfig",
]
