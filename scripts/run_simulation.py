#!/usr/bin/env python3
"""
Run a headless delivery simulation from a YAML configuration file.

Usage:
    python -m scripts.run_simulation --config configs/douala_demo.yaml --duration 120

Options:
    --config PATH       Path to YAML configuration file (required)
    --base-url URL      Override the route service base URL
    --duration FLOAT    Override playback duration (seconds)
    --speed FLOAT       Override playback speed multiplier
    --output-dir PATH   Override output directory from config
    --verbose           Enable verbose logging
    --dry-run           Parse config and show settings without running
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def load_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    return config


def setup_logging(config: dict[str, Any], verbose: bool = False) -> None:
    """Setup logging based on configuration."""
    log_config = config.get("logging", {})
    level = logging.DEBUG if verbose else getattr(logging, log_config.get("level", "INFO"))

    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file) if log_file else logging.NullHandler(),
        ],
    )


async def run_simulation(
    config: dict[str, Any],
    duration_seconds: float,
    output_dir: Path,
) -> dict[str, Any]:
    """Create the configured deliveries, play them back and record statistics."""
    from src.delivery import SimulationController
    from src.routing import HttpRouteService, RouteConstraints
    from src.simulation import (
        IncidentType,
        Position,
        SimulationConfig,
        StatsRecorder,
    )

    sim_config = SimulationConfig.from_dict(config)
    output_config = config.get("output", {})
    recorder = StatsRecorder(
        snapshot_interval=output_config.get("snapshot_interval_seconds", 5.0)
    )

    async with HttpRouteService(config=sim_config) as service:
        controller = SimulationController(service, config=sim_config)

        logger.info("Loading hubs...")
        await controller.load_hubs()

        logger.info("Creating deliveries...")
        for delivery in config.get("deliveries", []):
            constraints = None
            if delivery.get("constraints"):
                constraints = RouteConstraints(
                    algorithm=delivery["constraints"].get("algorithm"),
                    vehicle_type=delivery["constraints"].get("vehicle_type"),
                )
            await controller.create_delivery(
                parcel_id=delivery["parcel_id"],
                tracking_code=delivery.get("tracking_code", delivery["parcel_id"]),
                origin_id=delivery["origin"],
                destination_id=delivery["destination"],
                constraints=constraints,
            )

        pending_incidents = sorted(
            config.get("incidents", []), key=lambda i: i.get("after_seconds", 0)
        )

        logger.info(f"Playing for {duration_seconds}s at x{controller.state.speed_multiplier}")
        controller.play()
        start = time.monotonic()
        step = min(recorder.snapshot_interval, 1.0)

        while True:
            elapsed = time.monotonic() - start
            if elapsed >= duration_seconds:
                break
            while pending_incidents and pending_incidents[0].get("after_seconds", 0) <= elapsed:
                incident_config = pending_incidents.pop(0)
                controller.create_incident(
                    Position(incident_config["lat"], incident_config["lng"]),
                    IncidentType[incident_config.get("type", "TRAFFIC")],
                    incident_config.get("description"),
                )
            recorder.observe(elapsed, controller.state.parcels)
            await asyncio.sleep(step)

        controller.pause()
        await controller.clock.stop()
        await controller.recalculations.wait_all()
        recorder.observe(duration_seconds, controller.state.parcels)

        save_results(controller, recorder, config, output_dir)
        stats = controller.stats()

    logger.info(
        f"Simulation finished: {stats.delivered}/{stats.total_parcels} delivered, "
        f"{stats.with_incidents} stuck at incidents"
    )
    return {
        "total_parcels": stats.total_parcels,
        "delivered": stats.delivered,
        "in_transit": stats.in_transit,
        "with_incidents": stats.with_incidents,
        "total_distance_km": stats.total_distance_km,
    }


def save_results(controller, recorder, config: dict[str, Any], output_dir: Path) -> None:
    """Save parcel table, statistics time series and the config used."""
    from src.simulation import parcels_to_dataframe

    output_dir.mkdir(parents=True, exist_ok=True)

    parcels_path = output_dir / "parcels.csv"
    parcels_to_dataframe(controller.state.parcels).to_csv(parcels_path, index=False)
    logger.info(f"Saved parcel data to {parcels_path}")

    ts_path = output_dir / "time_series.json"
    with open(ts_path, "w") as f:
        json.dump(recorder.time_series(), f, indent=2)
    logger.info(f"Saved time series to {ts_path}")

    config_path = output_dir / "config_used.yaml"
    with open(config_path, "w") as f:
        yaml.dump(config, f, default_flow_style=False)


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run a delivery simulation from a YAML configuration file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="Override the route service base URL",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Override playback duration (seconds)",
    )
    parser.add_argument(
        "--speed",
        type=float,
        default=None,
        help="Override playback speed multiplier",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Override output directory from config",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse config and show settings without running",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point."""
    args = parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Error parsing config: {e}", file=sys.stderr)
        return 1

    setup_logging(config, args.verbose)

    sim_config = config.setdefault("simulation", {})
    routing_config = config.setdefault("routing", {})
    output_config = config.get("output", {})

    if args.base_url:
        routing_config["api_base_url"] = args.base_url
    if args.speed is not None:
        sim_config["default_speed_multiplier"] = args.speed

    duration = args.duration or sim_config.pop("duration_seconds", 60.0)
    output_dir = args.output_dir or Path(output_config.get("directory", "results/simulation"))

    print(f"Simulation: {sim_config.get('name', 'Unnamed')}")
    print(f"  Config: {args.config}")
    print(f"  Route service: {routing_config.get('api_base_url', 'default')}")
    print(f"  Deliveries: {len(config.get('deliveries', []))}")
    print(f"  Duration: {duration}s")
    print(f"  Output: {output_dir}")
    print()

    if args.dry_run:
        print("Dry run - not executing simulation")
        print("\nFull configuration:")
        print(yaml.dump(config, default_flow_style=False))
        return 0

    try:
        summary = asyncio.run(run_simulation(config, duration, output_dir))

        print("\nResults:")
        print(f"  Parcels: {summary['total_parcels']}")
        print(f"  Delivered: {summary['delivered']}")
        print(f"  In transit: {summary['in_transit']}")
        print(f"  Stuck at incidents: {summary['with_incidents']}")
        print(f"\nResults saved to: {output_dir}")
        return 0

    except KeyboardInterrupt:
        print("\nSimulation interrupted by user.")
        return 130
    except Exception as e:
        logging.exception(f"Simulation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
