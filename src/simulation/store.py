"""
Single-writer state store for the simulation.

Holds the canonical parcel and incident maps plus playback and UI state.
Every change goes through `SimulationStore.dispatch`, which runs the pure
`reduce` function and swaps in the resulting snapshot. The store performs
no I/O and no async work.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from .actions import Action, ActionType
from .models import Hub, Incident, IncidentType, Parcel

logger = logging.getLogger(__name__)

Listener = Callable[["SimulationState", Action], None]


def _frozen(mapping: Optional[Mapping] = None) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class SimulationState:
    """An immutable snapshot of the whole simulation."""

    parcels: Mapping[str, Parcel] = field(default_factory=_frozen)
    incidents: Mapping[str, Incident] = field(default_factory=_frozen)
    hubs: tuple[Hub, ...] = ()
    is_playing: bool = False
    speed_multiplier: float = 1.0
    incident_placement_mode: bool = False
    selected_incident_type: Optional[IncidentType] = None
    selected_parcel_id: Optional[str] = None

    def find_hub(self, hub_id: str) -> Optional[Hub]:
        return next((h for h in self.hubs if h.id == hub_id), None)


def _set_hubs(state: SimulationState, payload: dict) -> SimulationState:
    return replace(state, hubs=tuple(payload["hubs"]))


def _add_parcel(state: SimulationState, payload: dict) -> SimulationState:
    parcel: Parcel = payload["parcel"]
    parcels = dict(state.parcels)
    parcels[parcel.id] = parcel
    return replace(state, parcels=_frozen(parcels))


def _update_parcel(state: SimulationState, payload: dict) -> SimulationState:
    existing = state.parcels.get(payload["id"])
    if existing is None:
        return state

    parcels = dict(state.parcels)
    parcels[existing.id] = replace(existing, **payload["updates"])
    return replace(state, parcels=_frozen(parcels))


def _remove_parcel(state: SimulationState, payload: dict) -> SimulationState:
    if payload["id"] not in state.parcels:
        return state

    parcels = dict(state.parcels)
    del parcels[payload["id"]]
    selected = state.selected_parcel_id
    if selected == payload["id"]:
        selected = None
    return replace(state, parcels=_frozen(parcels), selected_parcel_id=selected)


def _add_incident(state: SimulationState, payload: dict) -> SimulationState:
    incident: Incident = payload["incident"]
    incidents = dict(state.incidents)
    incidents[incident.id] = incident
    return replace(state, incidents=_frozen(incidents))


def _resolve_incident(state: SimulationState, payload: dict) -> SimulationState:
    incident = state.incidents.get(payload["id"])
    if incident is None:
        return state

    incidents = dict(state.incidents)
    incidents[incident.id] = replace(incident, resolved=True)
    return replace(state, incidents=_frozen(incidents))


def _play(state: SimulationState, payload: dict) -> SimulationState:
    return replace(state, is_playing=True)


def _pause(state: SimulationState, payload: dict) -> SimulationState:
    return replace(state, is_playing=False)


def _set_speed(state: SimulationState, payload: dict) -> SimulationState:
    speed = float(payload["speed"])
    if not math.isfinite(speed) or speed < 0:
        raise ValueError(f"Speed multiplier must be a finite non-negative number, got {speed}")
    return replace(state, speed_multiplier=speed)


def _toggle_incident_mode(state: SimulationState, payload: dict) -> SimulationState:
    return replace(
        state,
        incident_placement_mode=payload["active"],
        selected_incident_type=payload["type"],
    )


def _select_parcel(state: SimulationState, payload: dict) -> SimulationState:
    return replace(state, selected_parcel_id=payload["id"])


def _update_all_parcels(state: SimulationState, payload: dict) -> SimulationState:
    return replace(state, parcels=_frozen(payload["parcels"]))


_REDUCERS: dict[ActionType, Callable[[SimulationState, dict], SimulationState]] = {
    ActionType.SET_HUBS: _set_hubs,
    ActionType.ADD_PARCEL: _add_parcel,
    ActionType.UPDATE_PARCEL: _update_parcel,
    ActionType.REMOVE_PARCEL: _remove_parcel,
    ActionType.ADD_INCIDENT: _add_incident,
    ActionType.RESOLVE_INCIDENT: _resolve_incident,
    ActionType.PLAY: _play,
    ActionType.PAUSE: _pause,
    ActionType.SET_SPEED: _set_speed,
    ActionType.TOGGLE_INCIDENT_MODE: _toggle_incident_mode,
    ActionType.SELECT_PARCEL: _select_parcel,
    ActionType.UPDATE_ALL_PARCELS: _update_all_parcels,
}


def reduce(state: SimulationState, action: Action) -> SimulationState:
    """Apply `action` to `state`, returning a new snapshot."""
    reducer = _REDUCERS.get(action.action_type)
    if reducer is None:
        return state
    return reducer(state, action.payload)


class SimulationStore:
    """
    Holder of the current simulation snapshot.

    Listeners are called after every dispatch with the new state and the
    action that produced it.
    """

    def __init__(self, initial_state: Optional[SimulationState] = None):
        self._state = initial_state or SimulationState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> SimulationState:
        return self._state

    def dispatch(self, action: Action) -> SimulationState:
        """Apply an action and notify listeners."""
        self._state = reduce(self._state, action)
        logger.debug(f"Dispatched {action.action_type.name}")

        for listener in list(self._listeners):
            listener(self._state, action)

        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
