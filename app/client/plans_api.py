"""
HTTP client for the plans API.

Used by the trip store and the itinerary board; maps API error responses
back onto the shared exception types so callers can tell "not allowed"
from "please retry".
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.config import settings
from app.exceptions import ConflictError, NotFoundError, SyncError, ValidationError
from app.models.plans import (
    ActivePlanResponse,
    CustomOrderItem,
    ItineraryResponse,
    PlanResponse,
    TripRestaurant,
    TripVineyard,
)

logger = logging.getLogger(__name__)

_ERRORS_BY_STATUS = {
    400: ValidationError,
    404: NotFoundError,
    409: ConflictError,
}


class PlansApiClient:
    """Client for the /plans endpoints, authenticated as one user."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = (base_url or f"http://localhost:{settings.api_port}/api/v1").rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self.http_client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(f"Plans API {method} {path} failed: {exc}")
            raise SyncError("Could not reach the server, please retry") from exc

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            error_class = _ERRORS_BY_STATUS.get(response.status_code)
            if error_class is not None:
                raise error_class(str(detail))
            logger.error(f"Plans API {method} {path} returned {response.status_code}: {detail}")
            raise SyncError("Server error, please retry")

        return response.json()

    async def get_active_plan(self) -> Optional[PlanResponse]:
        data = await self._request("GET", "/plans", params={"type": "active"})
        return ActivePlanResponse(**data).plan

    async def get_plan(self, plan_id: str) -> PlanResponse:
        return PlanResponse(**await self._request("GET", f"/plans/{plan_id}"))

    async def save_draft(
        self,
        vineyards: Sequence[TripVineyard],
        restaurant: Optional[TripRestaurant] = None,
        title: Optional[str] = None,
    ) -> PlanResponse:
        payload = {
            "vineyards": [v.model_dump() for v in vineyards],
            "restaurant": restaurant.model_dump() if restaurant else None,
            "title": title,
        }
        return PlanResponse(**await self._request("POST", "/plans", json=payload))

    async def confirm(self, plan_id: str) -> PlanResponse:
        return PlanResponse(**await self._request("POST", f"/plans/{plan_id}/confirm"))

    async def list_confirmed(self) -> List[PlanResponse]:
        data = await self._request("GET", "/plans", params={"type": "confirmed"})
        return [PlanResponse(**plan) for plan in data.get("plans", [])]

    async def get_itinerary(self, plan_id: str) -> ItineraryResponse:
        return ItineraryResponse(**await self._request("GET", f"/plans/{plan_id}/itinerary"))

    async def update_stop_time(self, plan_id: str, location_id: str, time: str) -> None:
        await self._request(
            "POST",
            "/plans/update-time",
            json={"plan_id": plan_id, "location_id": location_id, "time": time},
        )

    async def update_custom_order(self, plan_id: str, order: Sequence[CustomOrderItem]) -> None:
        await self._request(
            "POST",
            "/plans/update-order",
            json={"plan_id": plan_id, "order": [item.model_dump() for item in order]},
        )
