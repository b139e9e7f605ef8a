"""
Asynchronous route recalculation.

When the clock stops a parcel at an incident, a recalculation request is
sent to the route service as an asyncio task keyed by parcel id. The tick
never waits for it; the task commits its result to the store with a single
action when the service answers.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ..simulation import actions
from ..simulation.engine import reanchor_to_route
from ..simulation.geometry import GeometryError, decode_route_path
from ..simulation.models import Incident, Parcel, ParcelState
from ..simulation.notifications import NotificationLevel, Notifier, log_notifier
from ..simulation.store import SimulationStore
from .client import IncidentDescriptor, RouteService, RouteServiceError

logger = logging.getLogger(__name__)


class RecalculationScheduler:
    """
    Tracks in-flight recalculation tasks.

    At most one task runs per parcel; scheduling a new one cancels the
    previous. Failures leave the parcel in INCIDENT and are not retried.
    """

    def __init__(
        self,
        store: SimulationStore,
        service: RouteService,
        notify: Notifier = log_notifier,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.service = service
        self.notify = notify
        self.wall_clock = wall_clock
        self._tasks: dict[str, asyncio.Task] = {}
        self._deferred: dict[str, tuple[str, Incident]] = {}  # parcel id -> (route id, incident)

    @property
    def pending(self) -> list[str]:
        """Ids of parcels with a recalculation in flight."""
        return [pid for pid, task in self._tasks.items() if not task.done()]

    @property
    def deferred(self) -> list[str]:
        """Ids of parcels waiting for an event loop before their request is sent."""
        return list(self._deferred)

    def schedule(self, parcel: Parcel, incident: Incident) -> Optional[asyncio.Task]:
        """
        Start recalculating `parcel`'s route around `incident`.

        Without a running event loop the request is queued and sent by the
        next `flush()`. Returns None when nothing was started.
        """
        if parcel.route is None:
            logger.warning(f"Parcel {parcel.id} has no route to recalculate")
            return None

        self.cancel(parcel.id)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred[parcel.id] = (parcel.route.id, incident)
            logger.info(f"No event loop; queued route recalculation for parcel {parcel.id}")
            return None

        descriptor = IncidentDescriptor.from_incident(incident)
        task = loop.create_task(
            self._recalculate(parcel.id, parcel.route.id, descriptor),
            name=f"recalc-{parcel.id}",
        )
        self._tasks[parcel.id] = task
        task.add_done_callback(lambda t, pid=parcel.id: self._forget(pid, t))
        return task

    def flush(self) -> list[asyncio.Task]:
        """
        Send the queued requests. Must be called from a running event loop.

        Parcels removed or no longer in INCIDENT since they were queued are
        skipped.
        """
        queued, self._deferred = self._deferred, {}
        state = self.store.state
        tasks = []

        for parcel_id, (route_id, incident) in queued.items():
            parcel = state.parcels.get(parcel_id)
            if parcel is None or parcel.state is not ParcelState.INCIDENT:
                continue
            if parcel.route is None or parcel.route.id != route_id:
                continue
            task = self.schedule(parcel, incident)
            if task is not None:
                tasks.append(task)

        return tasks

    def cancel(self, parcel_id: str) -> bool:
        """Cancel the recalculation for `parcel_id`, if any."""
        self._deferred.pop(parcel_id, None)
        task = self._tasks.pop(parcel_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info(f"Cancelled route recalculation for parcel {parcel_id}")
        return True

    def cancel_all(self) -> list[str]:
        """Cancel every in-flight recalculation; returns the affected parcel ids."""
        return [pid for pid in list(self._tasks) if self.cancel(pid)]

    async def wait_all(self) -> None:
        """Wait for the in-flight recalculations to settle."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, parcel_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(parcel_id) is task:
            del self._tasks[parcel_id]

    async def _recalculate(
        self,
        parcel_id: str,
        route_id: str,
        incident: IncidentDescriptor,
    ) -> Optional[Parcel]:
        self.notify(NotificationLevel.INFO, f"Recalculating route for parcel {parcel_id}...")

        try:
            route = await self.service.recalculate_route(route_id, incident)
            path = decode_route_path(route.geometry)
        except (RouteServiceError, GeometryError) as e:
            logger.error(f"Recalculation failed for parcel {parcel_id}: {e}")
            self.notify(NotificationLevel.ERROR, f"Route recalculation failed for parcel {parcel_id}")
            return None
        except Exception:
            logger.exception(f"Unexpected error while recalculating parcel {parcel_id}")
            self.notify(NotificationLevel.ERROR, f"Route recalculation failed for parcel {parcel_id}")
            return None

        # Apply against the current record, not the one that triggered the request
        current = self.store.state.parcels.get(parcel_id)
        if current is None:
            logger.info(f"Parcel {parcel_id} was removed; dropping recalculated route {route.id}")
            return None
        if current.state is not ParcelState.INCIDENT:
            logger.info(
                f"Parcel {parcel_id} is {current.state.value}; dropping stale route {route.id}"
            )
            return None

        updated = reanchor_to_route(current, route, path, now=self.wall_clock())
        self.store.dispatch(
            actions.update_parcel(
                parcel_id,
                routing=updated.routing,
                position=updated.position,
                path_segment_index=updated.path_segment_index,
                state=updated.state,
                estimated_arrival=updated.estimated_arrival,
            )
        )
        self.notify(NotificationLevel.SUCCESS, f"Route recalculated for parcel {parcel_id}")
        return updated
