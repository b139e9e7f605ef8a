"""
Store actions for the simulation.

Defines the closed set of named mutations the store accepts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Mapping, Optional

from .models import Hub, Incident, IncidentType, Parcel


class ActionType(Enum):
    """Types of store actions."""

    SET_HUBS = auto()  # Replace the known hub list
    ADD_PARCEL = auto()  # Insert or replace a parcel by id
    UPDATE_PARCEL = auto()  # Merge field updates into an existing parcel
    REMOVE_PARCEL = auto()  # Drop a parcel
    ADD_INCIDENT = auto()  # Insert a new incident
    RESOLVE_INCIDENT = auto()  # Flip an incident to resolved
    PLAY = auto()  # Start playback
    PAUSE = auto()  # Stop playback
    SET_SPEED = auto()  # Change the playback speed multiplier
    TOGGLE_INCIDENT_MODE = auto()  # Enter/leave incident placement mode
    SELECT_PARCEL = auto()  # Change the selected parcel
    UPDATE_ALL_PARCELS = auto()  # Replace the whole parcel map (clock batches)


@dataclass(frozen=True)
class Action:
    """A store action with its payload."""

    action_type: ActionType
    payload: dict[str, Any] = field(default_factory=dict)


def set_hubs(hubs: list[Hub]) -> Action:
    return Action(ActionType.SET_HUBS, {"hubs": tuple(hubs)})


def add_parcel(parcel: Parcel) -> Action:
    return Action(ActionType.ADD_PARCEL, {"parcel": parcel})


def update_parcel(parcel_id: str, **updates: Any) -> Action:
    """Create an action merging `updates` into the parcel with `parcel_id`."""
    return Action(ActionType.UPDATE_PARCEL, {"id": parcel_id, "updates": updates})


def remove_parcel(parcel_id: str) -> Action:
    return Action(ActionType.REMOVE_PARCEL, {"id": parcel_id})


def add_incident(incident: Incident) -> Action:
    return Action(ActionType.ADD_INCIDENT, {"incident": incident})


def resolve_incident(incident_id: str) -> Action:
    return Action(ActionType.RESOLVE_INCIDENT, {"id": incident_id})


def play() -> Action:
    return Action(ActionType.PLAY)


def pause() -> Action:
    return Action(ActionType.PAUSE)


def set_speed(multiplier: float) -> Action:
    return Action(ActionType.SET_SPEED, {"speed": multiplier})


def toggle_incident_mode(incident_type: Optional[IncidentType]) -> Action:
    """Enter placement mode for `incident_type`, or leave it with None."""
    return Action(
        ActionType.TOGGLE_INCIDENT_MODE,
        {"active": incident_type is not None, "type": incident_type},
    )


def select_parcel(parcel_id: Optional[str]) -> Action:
    return Action(ActionType.SELECT_PARCEL, {"id": parcel_id})


def update_all_parcels(parcels: Mapping[str, Parcel]) -> Action:
    """Create a bulk-replace action; used by the clock to batch a tick."""
    return Action(ActionType.UPDATE_ALL_PARCELS, {"parcels": dict(parcels)})
