"""
Route service client.

The routing algorithm runs on a remote service; this module only speaks its
request/response contract. `RouteService` is the interface the rest of the
code depends on and `HttpRouteService` implements it over the service's
JSON HTTP API.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..simulation.config import SimulationConfig
from ..simulation.models import Hub, Incident, IncidentType, Position, RouteDescriptor

logger = logging.getLogger(__name__)


class RouteServiceError(Exception):
    """The route service could not be reached or returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class IncidentDescriptor:
    """Incident details sent along with a recalculation request."""

    type: IncidentType
    location: Position
    radius: float  # metres
    description: str = ""

    @classmethod
    def from_incident(cls, incident: Incident) -> IncidentDescriptor:
        return cls(
            type=incident.type,
            location=incident.position,
            radius=incident.radius,
            description=incident.description,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "location": {
                "latitude": self.location.lat,
                "longitude": self.location.lng,
            },
            "radius": self.radius,
            "description": self.description,
        }


@dataclass(frozen=True)
class RouteConstraints:
    """Optional routing preferences."""

    algorithm: Optional[str] = None
    vehicle_type: Optional[str] = None

    def to_payload(self) -> dict[str, str]:
        payload = {}
        if self.algorithm:
            payload["algorithm"] = self.algorithm
        if self.vehicle_type:
            payload["vehicleType"] = self.vehicle_type
        return payload


def route_from_payload(data: dict[str, Any]) -> RouteDescriptor:
    """Build a RouteDescriptor from a service response body."""
    try:
        return RouteDescriptor(
            id=str(data["id"]),
            geometry=data.get("routeGeometry") or "",
            total_distance_km=float(data["totalDistanceKm"]),
            estimated_duration_min=float(data["estimatedDurationMin"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RouteServiceError(f"Malformed route response: {e}") from e


def hub_from_payload(data: dict[str, Any]) -> Hub:
    """Build a Hub from a service response body."""
    try:
        return Hub(
            id=str(data["id"]),
            address=data.get("address", ""),
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            type=data.get("type", "HUB"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RouteServiceError(f"Malformed hub response: {e}") from e


class RouteService(ABC):
    """Asynchronous route calculation contract."""

    @abstractmethod
    async def list_hubs(self) -> list[Hub]:
        """Fetch the hubs parcels can travel between."""
        pass

    @abstractmethod
    async def calculate_route(
        self,
        origin_id: str,
        destination_id: str,
        constraints: Optional[RouteConstraints] = None,
        parcel_id: Optional[str] = None,
    ) -> RouteDescriptor:
        """Compute a route between two hubs."""
        pass

    @abstractmethod
    async def recalculate_route(
        self,
        route_id: str,
        incident: IncidentDescriptor,
    ) -> RouteDescriptor:
        """Compute a replacement for `route_id` that avoids `incident`."""
        pass


async def _log_request(request: httpx.Request) -> None:
    logger.debug(f"{request.method} {request.url}")


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.debug(f"{request.method} {request.url} - {response.status_code}")


class HttpRouteService(RouteService):
    """RouteService backed by the logistics backend's HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        config: Optional[SimulationConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = config or SimulationConfig()
        self.base_url = base_url or config.api_base_url
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else config.request_timeout_seconds,
            headers={"Content-Type": "application/json"},
            event_hooks={"request": [_log_request], "response": [_log_response]},
            transport=transport,
        )

    async def __aenter__(self) -> HttpRouteService:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                message = "Resource not found"
            elif status >= 500:
                message = "Server error, try again later"
            else:
                message = f"Request rejected with status {status}"
            logger.error(f"{method} {url} - {status}")
            raise RouteServiceError(message, status_code=status) from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} - network error: {e}")
            raise RouteServiceError("Unable to reach the route service") from e

        try:
            return response.json()
        except ValueError as e:
            raise RouteServiceError(f"Invalid JSON from {url}") from e

    async def list_hubs(self) -> list[Hub]:
        data = await self._request("GET", "/hubs")
        return [hub_from_payload(item) for item in data]

    async def calculate_route(
        self,
        origin_id: str,
        destination_id: str,
        constraints: Optional[RouteConstraints] = None,
        parcel_id: Optional[str] = None,
    ) -> RouteDescriptor:
        payload: dict[str, Any] = {
            "startHubId": origin_id,
            "endHubId": destination_id,
        }
        if parcel_id:
            payload["parcelId"] = parcel_id
        if constraints:
            payload["constraints"] = constraints.to_payload()

        data = await self._request("POST", "/routes/calculate", json=payload)
        return route_from_payload(data)

    async def recalculate_route(
        self,
        route_id: str,
        incident: IncidentDescriptor,
    ) -> RouteDescriptor:
        data = await self._request(
            "POST",
            f"/routes/{route_id}/recalculate",
            json=incident.to_payload(),
        )
        return route_from_payload(data)
