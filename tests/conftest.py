"""Shared fixtures for the simulation tests."""

import asyncio
from datetime import datetime
from typing import Optional

import pytest

from src.routing.client import (
    IncidentDescriptor,
    RouteConstraints,
    RouteService,
    RouteServiceError,
)
from src.simulation.models import (
    Hub,
    Parcel,
    ParcelState,
    Position,
    RouteDescriptor,
    Routed,
)

NOW = datetime(2026, 1, 5, 8, 0, 0)

ROUTE_WKT = "LINESTRING(9.0 4.0, 9.1 4.0)"
DETOUR_WKT = "LINESTRING(9.0 4.0, 9.05 4.05, 9.1 4.0)"


class FakeRouteService(RouteService):
    """In-memory route service recording the requests it receives."""

    def __init__(
        self,
        route: Optional[RouteDescriptor] = None,
        recalculated: Optional[RouteDescriptor] = None,
        hubs: tuple = (),
        fail_calculate: bool = False,
        fail_recalculate: bool = False,
        gate: Optional[asyncio.Event] = None,
    ):
        self.route = route
        self.recalculated = recalculated
        self.hubs = list(hubs)
        self.fail_calculate = fail_calculate
        self.fail_recalculate = fail_recalculate
        self.gate = gate
        self.calculate_calls: list[tuple] = []
        self.recalculate_calls: list[tuple[str, IncidentDescriptor]] = []

    async def list_hubs(self) -> list[Hub]:
        return list(self.hubs)

    async def calculate_route(
        self,
        origin_id: str,
        destination_id: str,
        constraints: Optional[RouteConstraints] = None,
        parcel_id: Optional[str] = None,
    ) -> RouteDescriptor:
        self.calculate_calls.append((origin_id, destination_id, constraints, parcel_id))
        if self.fail_calculate:
            raise RouteServiceError("Server error, try again later", status_code=500)
        return self.route

    async def recalculate_route(
        self,
        route_id: str,
        incident: IncidentDescriptor,
    ) -> RouteDescriptor:
        self.recalculate_calls.append((route_id, incident))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_recalculate:
            raise RouteServiceError("Unable to reach the route service")
        return self.recalculated


@pytest.fixture
def route():
    """A 10 km route along two points."""
    return RouteDescriptor(
        id="route-1",
        geometry=ROUTE_WKT,
        total_distance_km=10.0,
        estimated_duration_min=15.0,
    )


@pytest.fixture
def detour_route():
    """A recalculated route bending north of the original."""
    return RouteDescriptor(
        id="route-2",
        geometry=DETOUR_WKT,
        total_distance_km=14.0,
        estimated_duration_min=21.0,
    )


@pytest.fixture
def path():
    return (Position(4.0, 9.0), Position(4.0, 9.1))


@pytest.fixture
def detour_path():
    return (Position(4.0, 9.0), Position(4.05, 9.05), Position(4.0, 9.1))


@pytest.fixture
def make_parcel(route, path):
    """Factory for routed parcels with sensible defaults."""

    def _make(
        parcel_id: str = "parcel-1",
        state: ParcelState = ParcelState.TRANSIT,
        progress: float = 0.0,
        **overrides,
    ) -> Parcel:
        fields = {
            "id": parcel_id,
            "tracking_code": f"TRK-{parcel_id}",
            "position": path[0],
            "routing": Routed(route=route, path=path),
            "state": state,
            "progress": progress,
            "speed": 40.0,
            "start_time": NOW,
        }
        fields.update(overrides)
        return Parcel(**fields)

    return _make


@pytest.fixture
def notifications():
    """A notifier that records (level, message) pairs."""
    received = []

    def notify(level, message):
        received.append((level, message))

    notify.received = received
    return notify


@pytest.fixture
def now():
    """Fixed wall-clock time used for timestamps."""
    return NOW


@pytest.fixture
def fake_service():
    """Factory for FakeRouteService instances."""
    return FakeRouteService
