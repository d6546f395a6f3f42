"""
Trip store - optimistic local mirror of the user's draft plan.

The UI mutates ``trip`` synchronously; the server only sees it on
``save_plan``. Two states are kept apart:

* ``trip``: what the user is editing,
* ``server_snapshot``: the last state the server confirmed.

``server_snapshot`` only changes after a successful save or an applied
load. Unsaved local edits always win over a background load: a load that
would overwrite them is parked in ``pending_conflict`` until the caller
settles it with ``resolve_conflict``.

There is no concurrency token on the server; two stores saving for the
same user race and the last save wins.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from app.client.plans_api import PlansApiClient
from app.config import settings
from app.exceptions import PlanError, SyncError
from app.models.plans import PlanResponse, TripRestaurant, TripState, TripVineyard
from app.utils.normalizers import derive_title, restaurant_id_of, vineyard_id_of

logger = logging.getLogger(__name__)


def trip_differs(local: TripState, snapshot: TripState) -> bool:
    """True when the local trip has edits the server has not seen."""
    return local.model_dump() != snapshot.model_dump()


class TripStore:
    """Owned, injectable trip state for one signed-in user.

    Lifecycle: ``init`` (hydrate) -> mutations -> ``save_plan``/``flush``
    -> ``teardown`` (logout).
    """

    def __init__(
        self,
        api: PlansApiClient,
        max_vineyards: Optional[int] = None,
        autosave_delay: Optional[float] = None,
    ):
        self.api = api
        self.max_vineyards = max_vineyards if max_vineyards is not None else settings.max_vineyards
        self.autosave_delay = autosave_delay

        self.trip = TripState()
        self.server_snapshot = TripState()
        self.plan_id: Optional[str] = None
        self.plan_status: Optional[str] = None
        self.pending_conflict: Optional[TripState] = None
        self._pending_plan: Optional[PlanResponse] = None

        # bumped by every local edit, save and adopt; a load started
        # under an older revision is stale
        self._revision = 0
        self._title_is_custom = False
        self._save_lock = asyncio.Lock()
        self._autosave_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Sync state
    # ------------------------------------------------------------------

    @property
    def has_unsaved_changes(self) -> bool:
        return trip_differs(self.trip, self.server_snapshot)

    def is_state_synced(self) -> bool:
        """Gate for steps that need the server copy (e.g. the map view)."""
        return not self.has_unsaved_changes and self.pending_conflict is None

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    def _changed(self) -> None:
        self._revision += 1
        if self.autosave_delay is not None:
            self.schedule_save()

    def add_vineyard(self, vineyard: Dict[str, Any], offer: Optional[Dict[str, Any]] = None) -> bool:
        """
        Append a vineyard to the trip.

        Returns:
            False when the trip is full or the vineyard is already in it.
        """
        if len(self.trip.vineyards) >= self.max_vineyards:
            return False

        new_id = vineyard_id_of(vineyard)
        for existing in self.trip.vineyards:
            if vineyard_id_of(existing.vineyard) == new_id:
                return False

        self.trip.vineyards.append(TripVineyard(vineyard=vineyard, offer=offer))
        self._changed()
        return True

    def remove_vineyard(self, vineyard_id: str) -> None:
        self.trip.vineyards = [
            v for v in self.trip.vineyards if vineyard_id_of(v.vineyard) != vineyard_id
        ]
        self._changed()

    def move_vineyard(self, old_index: int, new_index: int) -> None:
        vineyards = list(self.trip.vineyards)
        vineyards.insert(new_index, vineyards.pop(old_index))
        self.trip.vineyards = vineyards
        self._changed()

    def add_restaurant(self, restaurant: Dict[str, Any]) -> None:
        """Set the lunch stop; a trip has at most one."""
        self.trip.restaurant = TripRestaurant(restaurant=restaurant)
        self._changed()

    def remove_restaurant(self, restaurant_id: Optional[str] = None) -> None:
        current = self.trip.restaurant
        if current is None:
            return
        if restaurant_id is not None and restaurant_id_of(current.restaurant) != restaurant_id:
            return
        self.trip.restaurant = None
        self._changed()

    def update_vineyard_time(self, vineyard_id: str, time: str) -> None:
        for entry in self.trip.vineyards:
            if vineyard_id_of(entry.vineyard) == vineyard_id:
                entry.time = time
        self._changed()

    def update_restaurant_time(self, time: str) -> None:
        if self.trip.restaurant is not None:
            self.trip.restaurant.time = time
            self._changed()

    def set_title(self, title: Optional[str]) -> None:
        self.trip.title = title or None
        self._title_is_custom = bool(title)
        self._changed()

    # ------------------------------------------------------------------
    # Server sync
    # ------------------------------------------------------------------

    def _adopt(self, plan: Optional[PlanResponse]) -> None:
        self._revision += 1
        server_trip = plan.to_trip() if plan else TripState()
        self.server_snapshot = server_trip
        self.trip = server_trip.model_copy(deep=True)
        self.plan_id = plan.id if plan else None
        self.plan_status = plan.status if plan else None
        self._title_is_custom = bool(
            plan and plan.title and plan.title != derive_title([v.vineyard for v in plan.vineyards])
        )

    async def save_plan(self) -> PlanResponse:
        """
        Push the local trip as the user's draft.

        Edits made while the request is in flight are kept: the server
        response becomes the snapshot, and only replaces ``trip`` when
        nothing changed locally in the meantime.

        Raises:
            SyncError: Network or server failure; local edits are kept.
            ValidationError: The server rejected the stop selection.
        """
        async with self._save_lock:
            submitted = self.trip.model_copy(deep=True)
            title = submitted.title if self._title_is_custom else None
            title_was_custom = self._title_is_custom

            try:
                plan = await self.api.save_draft(submitted.vineyards, submitted.restaurant, title)
            except SyncError:
                logger.warning("Saving the trip failed; local edits kept")
                raise

            self._revision += 1
            if trip_differs(self.trip, submitted):
                self.server_snapshot = plan.to_trip()
                self.plan_id = plan.id
                self.plan_status = plan.status
            else:
                self._adopt(plan)
                self._title_is_custom = title_was_custom
            self._clear_conflict()
            logger.info(f"Trip saved as plan {plan.id}")
            return plan

    async def load_plan(self, force: bool = False) -> bool:
        """
        Pull the active plan from the server.

        Returns:
            True when the server state was applied. False when the response
            is stale (the trip was edited, saved or replaced while it was in
            flight; it is dropped) or when local edits are unsaved (the
            server state is parked in ``pending_conflict``).
        """
        started_at = self._revision
        try:
            plan = await self.api.get_active_plan()
        except SyncError as e:
            logger.error(f"Error loading plan: {e}")
            return False

        if self._revision != started_at:
            logger.warning("Background load dropped: trip changed while it was in flight")
            return False

        if self.has_unsaved_changes and not force:
            self.pending_conflict = plan.to_trip() if plan else TripState()
            self._pending_plan = plan
            logger.warning("Background load ignored: trip has unsaved changes")
            return False

        self._adopt(plan)
        self._clear_conflict()
        return True

    def resolve_conflict(self, keep_local: bool) -> None:
        """
        Settle a parked load.

        ``keep_local`` keeps the edits (they still need a save); otherwise
        the server state replaces them.
        """
        if self.pending_conflict is None:
            return
        pending_plan = self._pending_plan
        self._clear_conflict()

        if not keep_local:
            self._adopt(pending_plan)

    def _clear_conflict(self) -> None:
        self.pending_conflict = None
        self._pending_plan = None

    # ------------------------------------------------------------------
    # Autosave & lifecycle
    # ------------------------------------------------------------------

    def schedule_save(self, delay: Optional[float] = None) -> asyncio.Task:
        """Debounced save: every call restarts the countdown."""
        if self._autosave_task is not None and not self._autosave_task.done():
            self._autosave_task.cancel()
        wait = delay if delay is not None else (self.autosave_delay or 0.0)
        self._autosave_task = asyncio.create_task(self._save_after(wait))
        return self._autosave_task

    async def _save_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if not self.has_unsaved_changes:
            return
        try:
            await self.save_plan()
        except (SyncError, PlanError) as e:
            # autosave is best effort; the trip stays dirty for the next attempt
            logger.error(f"Autosave failed: {e}")

    def _cancel_autosave(self) -> None:
        if self._autosave_task is not None and not self._autosave_task.done():
            self._autosave_task.cancel()
        self._autosave_task = None

    async def init(self) -> None:
        """Hydrate from the server when nothing is held locally."""
        if self.trip.is_empty():
            await self.load_plan()

    async def flush(self) -> Optional[PlanResponse]:
        """Save now if anything is unsaved."""
        self._cancel_autosave()
        if self.has_unsaved_changes:
            return await self.save_plan()
        return None

    def teardown(self) -> None:
        """Forget everything (logout)."""
        self._revision += 1
        self._cancel_autosave()
        self.trip = TripState()
        self.server_snapshot = TripState()
        self.plan_id = None
        self.plan_status = None
        self._clear_conflict()
        self._title_is_custom = False
