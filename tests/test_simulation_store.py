"""
Tests for src/simulation/store.py and src/simulation/actions.py.

Tests cover:
- ActionType enum and action constructors
- Each reducer branch
- Snapshot immutability and listener notification
"""

import pytest

from src.simulation import actions
from src.simulation.actions import Action, ActionType
from src.simulation.models import (
    Hub,
    IncidentType,
    ParcelState,
    Position,
    create_incident,
)
from src.simulation.store import SimulationState, SimulationStore, reduce


class TestActionType:
    """Tests for ActionType enum."""

    def test_all_actions_exist(self):
        expected = [
            "SET_HUBS",
            "ADD_PARCEL",
            "UPDATE_PARCEL",
            "REMOVE_PARCEL",
            "ADD_INCIDENT",
            "RESOLVE_INCIDENT",
            "PLAY",
            "PAUSE",
            "SET_SPEED",
            "TOGGLE_INCIDENT_MODE",
            "SELECT_PARCEL",
            "UPDATE_ALL_PARCELS",
        ]
        for name in expected:
            assert hasattr(ActionType, name)

    def test_reduce_is_pure(self):
        """reduce returns a new snapshot and leaves its input alone."""
        state = SimulationState()

        new_state = reduce(state, Action(ActionType.PLAY))

        assert new_state is not state
        assert new_state.is_playing is True
        assert state.is_playing is False


class TestDefaultState:
    """Tests for the initial snapshot."""

    def test_defaults(self):
        state = SimulationState()

        assert dict(state.parcels) == {}
        assert dict(state.incidents) == {}
        assert state.hubs == ()
        assert state.is_playing is False
        assert state.speed_multiplier == 1.0
        assert state.incident_placement_mode is False
        assert state.selected_incident_type is None
        assert state.selected_parcel_id is None


class TestReducer:
    """Tests for individual actions."""

    @pytest.fixture
    def store(self):
        return SimulationStore()

    def test_set_hubs(self, store):
        hubs = [Hub("hub-1", "Akwa", 4.05, 9.7), Hub("hub-2", "Bonaberi", 4.07, 9.67)]

        store.dispatch(actions.set_hubs(hubs))

        assert store.state.hubs == tuple(hubs)
        assert store.state.find_hub("hub-2") == hubs[1]
        assert store.state.find_hub("missing") is None

    def test_add_parcel(self, store, make_parcel):
        parcel = make_parcel()

        store.dispatch(actions.add_parcel(parcel))

        assert store.state.parcels["parcel-1"] is parcel

    def test_update_parcel_merges_fields(self, store, make_parcel):
        store.dispatch(actions.add_parcel(make_parcel(progress=0.2)))

        store.dispatch(actions.update_parcel("parcel-1", state=ParcelState.INCIDENT))

        updated = store.state.parcels["parcel-1"]
        assert updated.state == ParcelState.INCIDENT
        assert updated.progress == 0.2

    def test_update_missing_parcel_is_noop(self, store):
        before = store.state

        store.dispatch(actions.update_parcel("ghost", progress=0.5))

        assert store.state is before

    def test_remove_parcel(self, store, make_parcel):
        store.dispatch(actions.add_parcel(make_parcel()))
        store.dispatch(actions.select_parcel("parcel-1"))

        store.dispatch(actions.remove_parcel("parcel-1"))

        assert "parcel-1" not in store.state.parcels
        assert store.state.selected_parcel_id is None

    def test_incidents_keep_insertion_order(self, store):
        first = create_incident(Position(4.0, 9.0), IncidentType.TRAFFIC)
        second = create_incident(Position(4.1, 9.1), IncidentType.WEATHER)

        store.dispatch(actions.add_incident(first))
        store.dispatch(actions.add_incident(second))

        assert list(store.state.incidents) == [first.id, second.id]

    def test_resolve_incident(self, store):
        incident = create_incident(Position(4.0, 9.0), IncidentType.TRAFFIC)
        store.dispatch(actions.add_incident(incident))

        store.dispatch(actions.resolve_incident(incident.id))

        assert store.state.incidents[incident.id].resolved is True
        assert incident.resolved is False

    def test_resolve_unknown_incident_is_noop(self, store):
        before = store.state
        store.dispatch(actions.resolve_incident("incident-missing"))
        assert store.state is before

    def test_play_and_pause(self, store):
        store.dispatch(actions.play())
        assert store.state.is_playing is True

        store.dispatch(actions.pause())
        assert store.state.is_playing is False

    def test_set_speed(self, store):
        store.dispatch(actions.set_speed(4))
        assert store.state.speed_multiplier == 4.0

    @pytest.mark.parametrize("speed", [-1.0, float("nan"), float("inf")])
    def test_set_speed_rejects_invalid(self, store, speed):
        with pytest.raises(ValueError):
            store.dispatch(actions.set_speed(speed))
        assert store.state.speed_multiplier == 1.0

    def test_toggle_incident_mode(self, store):
        store.dispatch(actions.toggle_incident_mode(IncidentType.ROAD_CLOSURE))
        assert store.state.incident_placement_mode is True
        assert store.state.selected_incident_type == IncidentType.ROAD_CLOSURE

        store.dispatch(actions.toggle_incident_mode(None))
        assert store.state.incident_placement_mode is False
        assert store.state.selected_incident_type is None

    def test_select_parcel(self, store):
        store.dispatch(actions.select_parcel("parcel-7"))
        assert store.state.selected_parcel_id == "parcel-7"

    def test_update_all_parcels_replaces_map(self, store, make_parcel):
        store.dispatch(actions.add_parcel(make_parcel("old")))
        replacement = {"new": make_parcel("new")}

        store.dispatch(actions.update_all_parcels(replacement))

        assert list(store.state.parcels) == ["new"]


class TestSnapshots:
    """Tests for copy-on-write snapshots and listeners."""

    def test_previous_snapshot_unchanged(self, make_parcel):
        store = SimulationStore()
        before = store.state

        store.dispatch(actions.add_parcel(make_parcel()))

        assert len(before.parcels) == 0
        assert len(store.state.parcels) == 1

    def test_parcel_map_is_read_only(self, make_parcel):
        store = SimulationStore()
        store.dispatch(actions.add_parcel(make_parcel()))

        with pytest.raises(TypeError):
            store.state.parcels["other"] = make_parcel("other")

    def test_bulk_replace_copies_input(self, make_parcel):
        store = SimulationStore()
        parcels = {"a": make_parcel("a")}
        store.dispatch(actions.update_all_parcels(parcels))

        parcels["b"] = make_parcel("b")

        assert list(store.state.parcels) == ["a"]

    def test_listeners_notified(self):
        store = SimulationStore()
        seen = []
        unsubscribe = store.subscribe(lambda state, action: seen.append(action.action_type))

        store.dispatch(actions.play())
        unsubscribe()
        store.dispatch(actions.pause())

        assert seen == [ActionType.PLAY]

    def test_initial_state(self):
        store = SimulationStore(SimulationState(speed_multiplier=8.0))
        assert store.state.speed_multiplier == 8.0
