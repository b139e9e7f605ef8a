"""
Configuration for the parcel delivery simulation.

Defaults mirror the constants the simulation was tuned with; a YAML file
can override them through `SimulationConfig.from_dict`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any


@dataclass
class SimulationConfig:
    """Configuration for a simulation session."""

    # Movement
    base_speed_kmh: float = 40.0  # average urban delivery speed
    unrouted_speed_kmh: float = 30.0
    delivery_threshold: float = 0.99  # absorbs floating-point error near 1.0
    min_route_distance_km: float = 1e-9

    # Playback
    frame_interval_seconds: float = 1 / 60  # display refresh rate
    default_speed_multiplier: float = 1.0

    # Parcels without a route are pinned here unless a pickup hub is known
    fallback_origin: tuple[float, float] = (4.05, 9.7)

    # Incidents (metres)
    road_closure_radius_m: float = 500.0
    default_incident_radius_m: float = 200.0

    # Route service
    api_base_url: str = "http://localhost:8080/api/v1"
    request_timeout_seconds: float = 30.0
    cancel_recalculations_on_pause: bool = True

    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SimulationConfig:
        """
        Build a config from the `simulation` and `routing` sections of a
        loaded YAML document.

        Unknown keys are kept in `extra` rather than rejected.
        """
        known = {f.name for f in fields(cls)} - {"extra"}
        merged: dict[str, Any] = {}
        merged.update(data.get("simulation", {}) or {})
        merged.update(data.get("routing", {}) or {})

        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in merged.items():
            if key in known:
                kwargs[key] = value
            else:
                extra[key] = value

        if "fallback_origin" in kwargs:
            lat, lng = kwargs["fallback_origin"]
            kwargs["fallback_origin"] = (float(lat), float(lng))

        return cls(**kwargs, extra=extra)
