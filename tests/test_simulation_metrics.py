"""
Tests for src/simulation/metrics.py and src/simulation/config.py.

Tests cover:
- aggregate statistics over a parcel map
- DataFrame export
- StatsRecorder snapshot cadence
- SimulationConfig loading from YAML sections
"""

import pytest
import yaml

from src.simulation.config import SimulationConfig
from src.simulation.metrics import (
    SimulationStats,
    StatsRecorder,
    compute_stats,
    parcels_to_dataframe,
)
from src.simulation.models import ParcelState, create_unrouted_parcel


@pytest.fixture
def parcels(make_parcel):
    return {
        "parcel-1": make_parcel("parcel-1"),
        "parcel-2": make_parcel("parcel-2", state=ParcelState.DELIVERED, progress=1.0),
        "parcel-3": make_parcel("parcel-3", state=ParcelState.INCIDENT, progress=0.4),
        "parcel-4": create_unrouted_parcel("parcel-4", "TRK-4"),
    }


class TestComputeStats:
    """Tests for compute_stats."""

    def test_empty(self):
        assert compute_stats({}) == SimulationStats()

    def test_counts_by_state(self, parcels):
        stats = compute_stats(parcels)

        assert stats.total_parcels == 4
        assert stats.in_transit == 1
        assert stats.delivered == 1
        assert stats.with_incidents == 1
        assert stats.planned == 1

    def test_distance_and_speed(self, parcels):
        stats = compute_stats(parcels)

        assert stats.total_distance_km == pytest.approx(30.0)
        assert stats.average_speed == pytest.approx((40.0 * 3 + 30.0) / 4)


class TestParcelsToDataframe:
    """Tests for parcels_to_dataframe."""

    def test_one_row_per_parcel(self, parcels):
        df = parcels_to_dataframe(parcels)

        assert len(df) == 4
        assert list(df["parcel_id"]) == list(parcels)
        assert df.loc[df["parcel_id"] == "parcel-4", "route_id"].iloc[0] is None
        assert set(df["state"]) == {"TRANSIT", "DELIVERED", "INCIDENT", "PLANNED"}

    def test_empty_keeps_columns(self):
        df = parcels_to_dataframe({})

        assert df.empty
        assert "progress" in df.columns


class TestStatsRecorder:
    """Tests for StatsRecorder."""

    def test_snapshot_interval(self, parcels):
        recorder = StatsRecorder(snapshot_interval=5.0)

        taken = [recorder.observe(t, parcels) for t in [0.0, 1.0, 4.9, 5.0, 7.0, 10.2]]

        assert taken == [True, False, False, True, False, True]
        assert [s.time for s in recorder.snapshots] == [0.0, 5.0, 10.2]

    def test_time_series_and_dataframe(self, parcels):
        recorder = StatsRecorder()
        recorder.observe(0.0, parcels)

        series = recorder.time_series()
        df = recorder.to_dataframe()

        assert series[0]["time"] == 0.0
        assert series[0]["total_parcels"] == 4
        assert list(df["delivered"]) == [1]

    def test_reset(self, parcels):
        recorder = StatsRecorder()
        recorder.observe(0.0, parcels)

        recorder.reset()

        assert recorder.snapshots == []
        assert recorder.to_dataframe().empty
        assert recorder.observe(0.0, parcels) is True


class TestSimulationConfig:
    """Tests for SimulationConfig."""

    def test_defaults(self):
        config = SimulationConfig()

        assert config.base_speed_kmh == 40.0
        assert config.unrouted_speed_kmh == 30.0
        assert config.delivery_threshold == 0.99
        assert config.fallback_origin == (4.05, 9.7)
        assert config.request_timeout_seconds == 30.0
        assert config.cancel_recalculations_on_pause is True

    def test_from_yaml_sections(self):
        document = yaml.safe_load(
            """
            simulation:
              name: douala
              base_speed_kmh: 35
              fallback_origin: [4.06, 9.71]
            routing:
              api_base_url: http://routing:8080/api/v1
              cancel_recalculations_on_pause: false
            """
        )

        config = SimulationConfig.from_dict(document)

        assert config.base_speed_kmh == 35
        assert config.fallback_origin == (4.06, 9.71)
        assert config.api_base_url == "http://routing:8080/api/v1"
        assert config.cancel_recalculations_on_pause is False
        assert config.extra == {"name": "douala"}

    def test_missing_sections(self):
        assert SimulationConfig.from_dict({}) == SimulationConfig()
