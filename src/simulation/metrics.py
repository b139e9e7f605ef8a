"""
Statistics over simulation snapshots.

Summarises parcel states for dashboards and exports parcels and time series
as pandas DataFrames for analysis.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Mapping

import numpy as np
import pandas as pd

from .models import Parcel, ParcelState


@dataclass
class SimulationStats:
    """Aggregate counts for one snapshot."""

    total_parcels: int = 0
    in_transit: int = 0
    delivered: int = 0
    with_incidents: int = 0
    planned: int = 0
    total_distance_km: float = 0.0
    average_speed: float = 0.0


def compute_stats(parcels: Mapping[str, Parcel]) -> SimulationStats:
    """Compute aggregate statistics for a parcel map."""
    values = list(parcels.values())
    if not values:
        return SimulationStats()

    states = [p.state for p in values]
    return SimulationStats(
        total_parcels=len(values),
        in_transit=states.count(ParcelState.TRANSIT),
        delivered=states.count(ParcelState.DELIVERED),
        with_incidents=states.count(ParcelState.INCIDENT),
        planned=states.count(ParcelState.PLANNED),
        total_distance_km=float(
            sum(p.route.total_distance_km for p in values if p.route is not None)
        ),
        average_speed=float(np.mean([p.speed for p in values])),
    )


def parcels_to_dataframe(parcels: Mapping[str, Parcel]) -> pd.DataFrame:
    """One row per parcel with its state, progress and position."""
    columns = [
        "parcel_id",
        "tracking_code",
        "state",
        "progress",
        "lat",
        "lng",
        "route_id",
        "total_distance_km",
        "speed",
        "start_time",
        "estimated_arrival",
        "actual_arrival",
        "n_incidents",
    ]
    rows = [
        {
            "parcel_id": p.id,
            "tracking_code": p.tracking_code,
            "state": p.state.value,
            "progress": p.progress,
            "lat": p.position.lat,
            "lng": p.position.lng,
            "route_id": p.route.id if p.route else None,
            "total_distance_km": p.route.total_distance_km if p.route else 0.0,
            "speed": p.speed,
            "start_time": p.start_time,
            "estimated_arrival": p.estimated_arrival,
            "actual_arrival": p.actual_arrival,
            "n_incidents": len(p.affected_incident_ids),
        }
        for p in parcels.values()
    ]
    return pd.DataFrame(rows, columns=columns)


@dataclass
class StatsSnapshot:
    """Statistics taken at a point in simulated playback."""

    time: float  # seconds since recording started
    stats: SimulationStats = field(default_factory=SimulationStats)


class StatsRecorder:
    """
    Records statistics snapshots at a fixed interval.

    Call `observe` as often as convenient; a snapshot is only taken once
    `snapshot_interval` seconds have passed since the previous one.
    """

    def __init__(self, snapshot_interval: float = 5.0):
        self.snapshot_interval = snapshot_interval
        self.snapshots: list[StatsSnapshot] = []
        self._next_snapshot = 0.0

    def observe(self, time: float, parcels: Mapping[str, Parcel]) -> bool:
        """Take a snapshot if one is due; returns whether it did."""
        if time < self._next_snapshot:
            return False

        self.snapshots.append(StatsSnapshot(time=time, stats=compute_stats(parcels)))
        self._next_snapshot = time + self.snapshot_interval
        return True

    def reset(self) -> None:
        self.snapshots = []
        self._next_snapshot = 0.0

    def time_series(self) -> list[dict]:
        return [{"time": s.time, **asdict(s.stats)} for s in self.snapshots]

    def to_dataframe(self) -> pd.DataFrame:
        if not self.snapshots:
            return pd.DataFrame()
        return pd.DataFrame(self.time_series())
