"""
Simulation clock.

Drives the engine once per frame: computes elapsed time since the previous
tick, advances every parcel in transit, detects incident collisions and
commits the whole frame to the store as a single action.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from . import actions
from .config import SimulationConfig
from .engine import advance, detect_collision, mark_incident
from .models import Incident, Parcel, ParcelState
from .store import SimulationStore

logger = logging.getLogger(__name__)

RecalculationHook = Callable[[Parcel, Incident], None]


def monotonic_ms() -> float:
    """Default time source in milliseconds."""
    return time.monotonic() * 1000


@dataclass
class TickResult:
    """What happened during one tick."""

    delta_ms: float = 0.0
    advanced: list[str] = field(default_factory=list)
    delivered: list[str] = field(default_factory=list)
    collisions: list[tuple[str, str]] = field(default_factory=list)  # (parcel, incident)


class SimulationClock:
    """
    Cooperative per-frame scheduler.

    `tick(now)` can be called by any periodic driver; `run()` is an asyncio
    driver that re-arms after each tick until playback stops.
    """

    def __init__(
        self,
        store: SimulationStore,
        on_collision: Optional[RecalculationHook] = None,
        config: Optional[SimulationConfig] = None,
        time_source: Callable[[], float] = monotonic_ms,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.on_collision = on_collision
        self.config = config or SimulationConfig()
        self.time_source = time_source
        self.wall_clock = wall_clock

        self._last_tick: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def resume(self, now: Optional[float] = None) -> None:
        """Reset the elapsed-time reference so paused time is not replayed."""
        self._last_tick = self.time_source() if now is None else now

    def tick(self, now: Optional[float] = None) -> Optional[TickResult]:
        """
        Run one frame.

        Args:
            now: Current time in milliseconds (defaults to the time source)

        Returns:
            TickResult, or None when playback is paused
        """
        now = self.time_source() if now is None else now
        state = self.store.state

        if not state.is_playing:
            self._last_tick = None
            return None

        if self._last_tick is None:
            # First frame after play/resume
            self._last_tick = now
        delta_ms = max(0.0, now - self._last_tick)
        self._last_tick = now

        result = TickResult(delta_ms=delta_ms)
        wall_now = self.wall_clock()
        incidents = list(state.incidents.values())
        updated_parcels = dict(state.parcels)
        triggered: list[tuple[Parcel, Incident]] = []

        for parcel_id, parcel in state.parcels.items():
            if parcel.state is not ParcelState.TRANSIT:
                continue

            updated = advance(
                parcel,
                delta_ms,
                state.speed_multiplier,
                now=wall_now,
                threshold=self.config.delivery_threshold,
                min_distance_km=self.config.min_route_distance_km,
            )

            if updated.state is ParcelState.DELIVERED:
                result.delivered.append(parcel_id)
            elif updated.state is ParcelState.TRANSIT:
                incident = detect_collision(updated, incidents)
                if incident is not None:
                    updated = mark_incident(updated, incident.id)
                    triggered.append((updated, incident))
                    result.collisions.append((parcel_id, incident.id))

            if updated != parcel:
                updated_parcels[parcel_id] = updated
                result.advanced.append(parcel_id)

        if result.advanced:
            self.store.dispatch(actions.update_all_parcels(updated_parcels))

        for parcel_id in result.delivered:
            logger.info(f"Parcel {parcel_id} delivered")

        for parcel, incident in triggered:
            logger.warning(
                f"Parcel {parcel.id} entered incident {incident.id} ({incident.type.value})"
            )
            if self.on_collision is None:
                continue
            try:
                self.on_collision(parcel, incident)
            except Exception:
                logger.exception(f"Collision handler failed for parcel {parcel.id}")

        return result

    async def run(self, interval: Optional[float] = None) -> None:
        """Tick every `interval` seconds while playback is on."""
        interval = self.config.frame_interval_seconds if interval is None else interval
        self.resume()

        while self.store.state.is_playing:
            self.tick()
            await asyncio.sleep(interval)

        self._last_tick = None

    def start(self, interval: Optional[float] = None) -> asyncio.Task:
        """Start the asyncio driver on the running loop."""
        if self.is_running:
            return self._task
        self._task = asyncio.get_running_loop().create_task(self.run(interval))
        return self._task

    async def stop(self) -> None:
        """Cancel the asyncio driver and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._last_tick = None
