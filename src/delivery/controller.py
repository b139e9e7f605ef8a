"""
User-facing simulation controller.

Wires the store, the clock and the recalculation scheduler together and
exposes the actions an operator can trigger: loading hubs, creating
deliveries, placing incidents and controlling playback. Errors from the
route service or from route geometry are reported through the notifier
and leave the store untouched.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from ..routing.client import RouteConstraints, RouteService, RouteServiceError
from ..routing.recalculation import RecalculationScheduler
from ..simulation import actions
from ..simulation.clock import SimulationClock, monotonic_ms
from ..simulation.config import SimulationConfig
from ..simulation.engine import InvalidTransitionError, incident_affects_route, start_parcel
from ..simulation.geometry import GeometryError, decode_route_path
from ..simulation.metrics import SimulationStats, compute_stats
from ..simulation.models import (
    Hub,
    Incident,
    IncidentType,
    Parcel,
    ParcelState,
    Position,
    RouteDescriptor,
    create_incident,
    create_routed_parcel,
    create_unrouted_parcel,
)
from ..simulation.notifications import NotificationLevel, Notifier, log_notifier
from ..simulation.store import SimulationState, SimulationStore

logger = logging.getLogger(__name__)


class SimulationController:
    """Operator entry point for a simulation session."""

    def __init__(
        self,
        service: RouteService,
        config: Optional[SimulationConfig] = None,
        store: Optional[SimulationStore] = None,
        notify: Notifier = log_notifier,
        time_source: Callable[[], float] = monotonic_ms,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or SimulationConfig()
        self.service = service
        self.notify = notify
        self.wall_clock = wall_clock
        self.store = store or SimulationStore(
            SimulationState(speed_multiplier=self.config.default_speed_multiplier)
        )
        self.recalculations = RecalculationScheduler(
            self.store, service, notify=notify, wall_clock=wall_clock
        )
        self.clock = SimulationClock(
            self.store,
            on_collision=self.recalculations.schedule,
            config=self.config,
            time_source=time_source,
            wall_clock=wall_clock,
        )
        self._suspended: set[str] = set()

    @property
    def state(self) -> SimulationState:
        return self.store.state

    def stats(self) -> SimulationStats:
        return compute_stats(self.store.state.parcels)

    # Hubs and parcels

    async def load_hubs(self) -> list[Hub]:
        """Fetch hubs from the route service into the store."""
        try:
            hubs = await self.service.list_hubs()
        except RouteServiceError as e:
            logger.error(f"Failed to load hubs: {e}")
            self.notify(NotificationLevel.ERROR, "Error while loading hubs")
            return []

        self.store.dispatch(actions.set_hubs(hubs))
        logger.info(f"Loaded {len(hubs)} hubs")
        return hubs

    def add_parcel(
        self,
        parcel_id: str,
        tracking_code: str,
        route: Optional[RouteDescriptor] = None,
        pickup_hub_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> Optional[Parcel]:
        """
        Add a parcel to the simulation.

        With a route, the geometry is validated and the parcel starts in
        TRANSIT right away. Without one it stays PLANNED at its pickup hub.

        Returns:
            The stored parcel, or None if the route geometry was rejected
        """
        details = dict(details or {})
        if pickup_hub_id:
            details.setdefault("pickup_location", pickup_hub_id)

        if route is None:
            hub = self.store.state.find_hub(pickup_hub_id) if pickup_hub_id else None
            parcel = create_unrouted_parcel(
                parcel_id, tracking_code, hub=hub, config=self.config, details=details
            )
            self.store.dispatch(actions.add_parcel(parcel))
            logger.info(f"Parcel {parcel_id} added without route (will remain PLANNED)")
            return parcel

        try:
            path = decode_route_path(route.geometry)
        except GeometryError as e:
            logger.error(f"Rejected route {route.id} for parcel {parcel_id}: {e}")
            self.notify(NotificationLevel.ERROR, str(e))
            return None

        now = self.wall_clock()
        parcel = create_routed_parcel(
            parcel_id,
            tracking_code,
            route,
            path,
            config=self.config,
            now=now,
            details=details,
        )
        parcel = start_parcel(parcel, now=now)
        self.store.dispatch(actions.add_parcel(parcel))
        self.notify(NotificationLevel.SUCCESS, f"Delivery started: {tracking_code}")
        return parcel

    async def create_delivery(
        self,
        parcel_id: str,
        tracking_code: str,
        origin_id: str,
        destination_id: str,
        constraints: Optional[RouteConstraints] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> Optional[Parcel]:
        """Calculate a route between two hubs and start a parcel on it."""
        if origin_id == destination_id:
            self.notify(NotificationLevel.WARNING, "Pickup and delivery hubs must be different")
            return None

        try:
            route = await self.service.calculate_route(
                origin_id, destination_id, constraints, parcel_id=parcel_id
            )
        except RouteServiceError as e:
            logger.error(f"Route calculation failed for parcel {parcel_id}: {e}")
            self.notify(NotificationLevel.ERROR, "Error while calculating the route")
            return None

        details = dict(details or {})
        details.setdefault("delivery_location", destination_id)
        return self.add_parcel(
            parcel_id,
            tracking_code,
            route=route,
            pickup_hub_id=origin_id,
            details=details,
        )

    def start_parcel(self, parcel_id: str) -> Optional[Parcel]:
        """Start a routed PLANNED parcel."""
        parcel = self.store.state.parcels.get(parcel_id)
        if parcel is None:
            return None

        try:
            started = start_parcel(parcel, now=self.wall_clock())
        except InvalidTransitionError as e:
            self.notify(NotificationLevel.WARNING, str(e))
            return None

        self.store.dispatch(
            actions.update_parcel(parcel_id, state=started.state, start_time=started.start_time)
        )
        self.notify(NotificationLevel.SUCCESS, f"Delivery started: {parcel.tracking_code}")
        return started

    def remove_parcel(self, parcel_id: str) -> None:
        """Remove a parcel and cancel its pending recalculation."""
        self.recalculations.cancel(parcel_id)
        self._suspended.discard(parcel_id)
        self.store.dispatch(actions.remove_parcel(parcel_id))

    def select_parcel(self, parcel_id: Optional[str]) -> None:
        self.store.dispatch(actions.select_parcel(parcel_id))

    # Incidents

    def toggle_incident_mode(self, incident_type: Optional[IncidentType]) -> None:
        self.store.dispatch(actions.toggle_incident_mode(incident_type))

    def create_incident(
        self,
        position: Position,
        incident_type: IncidentType,
        description: Optional[str] = None,
    ) -> Incident:
        """Place an incident and leave placement mode."""
        incident = create_incident(
            position,
            incident_type,
            description,
            config=self.config,
            now=self.wall_clock(),
        )
        affected = tuple(
            p.route.id
            for p in self.store.state.parcels.values()
            if p.route is not None and incident_affects_route(incident, p.path)
        )
        if affected:
            incident = replace(incident, affected_route_ids=affected)

        self.store.dispatch(actions.add_incident(incident))
        self.notify(NotificationLevel.WARNING, f"Incident created: {incident_type.value}")
        self.store.dispatch(actions.toggle_incident_mode(None))
        return incident

    def place_incident(self, position: Position) -> Optional[Incident]:
        """Handle a map click: place the selected incident type, if in placement mode."""
        state = self.store.state
        if not state.incident_placement_mode or state.selected_incident_type is None:
            return None
        return self.create_incident(position, state.selected_incident_type)

    def resolve_incident(self, incident_id: str) -> None:
        self.store.dispatch(actions.resolve_incident(incident_id))
        self.notify(NotificationLevel.SUCCESS, "Incident resolved")

    # Playback

    def play(self) -> None:
        """Start playback; starts the asyncio driver when a loop is running."""
        self.store.dispatch(actions.play())
        self.clock.resume()

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No loop: an external driver calls clock.tick() and process_recalculations()
            return

        self._resume_recalculations()
        self.clock.start()

    def pause(self) -> None:
        """Stop playback and suspend in-flight recalculations until the next play."""
        self.store.dispatch(actions.pause())
        if self.config.cancel_recalculations_on_pause:
            cancelled = self.recalculations.cancel_all()
            self._suspended.update(cancelled)
            if cancelled:
                logger.info(f"Suspended {len(cancelled)} recalculations on pause")

    def set_speed(self, multiplier: float) -> None:
        try:
            self.store.dispatch(actions.set_speed(multiplier))
        except ValueError as e:
            self.notify(NotificationLevel.WARNING, str(e))

    async def process_recalculations(self) -> None:
        """Send recalculations queued by ticks run without an event loop and wait for them."""
        self.recalculations.flush()
        await self.recalculations.wait_all()

    def _resume_recalculations(self) -> None:
        """Send queued recalculations and re-issue those cancelled by the last pause."""
        self.recalculations.flush()
        state = self.store.state
        suspended, self._suspended = self._suspended, set()

        for parcel_id in suspended:
            parcel = state.parcels.get(parcel_id)
            if parcel is None or parcel.state is not ParcelState.INCIDENT:
                continue
            incident = state.incidents.get(parcel.affected_incident_ids[-1])
            if incident is not None:
                self.recalculations.schedule(parcel, incident)
