"""
Itinerary board - map-view state for a confirmed plan.

Holds the ordered stops and the route over them. Reorders and time edits
apply locally first; the server is updated afterwards on a best-effort
basis:

* a failed order save is logged and the local order kept,
* a failed time save reverts that one stop to its last saved time.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from app.client.plans_api import PlansApiClient
from app.exceptions import PlanError, SyncError
from app.models.plans import LocationItem, PlanResponse, RouteSummary
from app.services.ordering import move_item, order_locations, to_custom_order
from app.services.route_service import RouteService, points_from_locations

logger = logging.getLogger(__name__)


class ItineraryBoard:
    """Ordered, editable stop list of one plan."""

    def __init__(self, api: PlansApiClient, plan: PlanResponse, routes: Optional[RouteService] = None):
        self.api = api
        self.plan = plan
        self.routes = routes
        self.locations: List[LocationItem] = order_locations(plan)
        self.route: Optional[RouteSummary] = None
        self._saved_times: Dict[str, str] = {loc.id: loc.time for loc in self.locations}
        # per-stop edit sequence; only the newest edit may revert a stop
        self._time_edits: Dict[str, int] = {}
        self._saved_edit: Dict[str, int] = {}
        self._background: Set[asyncio.Task] = set()

    @classmethod
    async def open(
        cls,
        api: PlansApiClient,
        plan_id: str,
        routes: Optional[RouteService] = None,
    ) -> "ItineraryBoard":
        """Fetch a plan and compute its route."""
        plan = await api.get_plan(plan_id)
        board = cls(api, plan, routes)
        await board.refresh_route()
        return board

    @property
    def location_ids(self) -> List[str]:
        return [loc.id for loc in self.locations]

    async def refresh_route(self) -> Optional[RouteSummary]:
        """
        Recompute the route for the current order; None hides the overlay.

        A result computed for an order that has since changed is discarded.
        """
        if self.routes is None:
            self.route = None
            return None
        requested_ids = self.location_ids
        route = await self.routes.try_calculate(points_from_locations(self.locations))
        if self.location_ids != requested_ids:
            logger.debug("Discarding route computed for an outdated stop order")
            return self.route
        self.route = route
        return route

    # ------------------------------------------------------------------
    # Reordering
    # ------------------------------------------------------------------

    def reorder(self, active_id: str, over_id: str) -> List[LocationItem]:
        """
        Drop ``active_id`` onto ``over_id``'s slot.

        The new order is applied immediately; saving it runs in the
        background. Must be called from a running event loop.
        """
        ids = self.location_ids
        if active_id == over_id or active_id not in ids or over_id not in ids:
            return self.locations

        self.locations = move_item(self.locations, ids.index(active_id), ids.index(over_id))
        self._spawn(self._save_order(list(self.locations)))
        if self.routes is not None:
            self._spawn(self.refresh_route())
        return self.locations

    async def _save_order(self, locations: List[LocationItem]) -> None:
        try:
            await self.api.update_custom_order(self.plan.id, to_custom_order(locations))
        except (PlanError, SyncError) as e:
            logger.error(f"Error saving drag order for plan {self.plan.id}: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for background saves (teardown, tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Times
    # ------------------------------------------------------------------

    def _set_time(self, location_id: str, time: str) -> None:
        self.locations = [
            loc.model_copy(update={"time": time}) if loc.id == location_id else loc
            for loc in self.locations
        ]

    async def update_time(self, location_id: str, time: str) -> bool:
        """
        Change one stop's time.

        Returns:
            True when the server accepted it; False when it was reverted.
        """
        if location_id not in self._saved_times:
            return False

        edit = self._time_edits.get(location_id, 0) + 1
        self._time_edits[location_id] = edit

        self._set_time(location_id, time)
        try:
            await self.api.update_stop_time(self.plan.id, location_id, time)
        except (PlanError, SyncError) as e:
            logger.error(f"Error updating time of {location_id}: {e}")
            # a newer edit of this stop owns the displayed value
            if self._time_edits[location_id] == edit:
                self._set_time(location_id, self._saved_times[location_id])
            return False

        if edit > self._saved_edit.get(location_id, 0):
            self._saved_edit[location_id] = edit
            self._saved_times[location_id] = time
        return True
