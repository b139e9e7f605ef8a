"""Route service client and asynchronous route recalculation."""

from .client import (
    HttpRouteService,
    IncidentDescriptor,
    RouteConstraints,
    RouteService,
    RouteServiceError,
)
from .recalculation import RecalculationScheduler

__all__ = [
    "HttpRouteService",
    "IncidentDescriptor",
    "RecalculationScheduler",
    "RouteConstraints",
    "RouteService",
    "RouteServiceError",
]
