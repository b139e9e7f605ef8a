"""Operator-facing controller for delivery simulations."""

from .controller import SimulationController

__all__ = ["SimulationController"]
