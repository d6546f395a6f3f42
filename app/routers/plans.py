"""Plans router - draft/confirm lifecycle and itinerary ordering for day trips."""

from typing import Optional, Union

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_user, get_plan_store
from app.models.plan_record import Plan
from app.models.plans import (
    ActionResponse,
    ActivePlanResponse,
    ItineraryResponse,
    PlanListResponse,
    PlanResponse,
    PlanUpsertRequest,
    RemoveItemRequest,
    UpdateOrderRequest,
    UpdateTimeRequest,
)
from app.services.ordering import order_locations
from app.services.plan_store import PlanStore
from app.services.route_service import RouteService, get_route_service, points_from_locations

router = APIRouter(prefix="/plans", tags=["plans"])


def _to_response(plan: Optional[Plan]) -> Optional[PlanResponse]:
    if plan is None:
        return None
    return PlanResponse.model_validate(plan)


@router.get("", response_model=Union[ActivePlanResponse, PlanListResponse])
async def list_plans(
    type: Optional[str] = Query(None, description="'active', 'draft' or 'confirmed'"),
    status: Optional[str] = Query(None, description="Filter by status (draft, confirmed)"),
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
):
    """
    Read the caller's plans.

    ``type=active`` returns the plan the trip builder should hydrate from
    (the draft, else the newest confirmed plan); ``type=draft`` only the
    draft; ``type=confirmed`` every unexpired confirmed plan. Without a
    type, all active plans optionally filtered by ``status``.
    """
    user_id = current_user["id"]

    if type == "active":
        return ActivePlanResponse(plan=_to_response(store.get_active_plan(user_id)))
    if type == "draft":
        return ActivePlanResponse(plan=_to_response(store.get_active_draft(user_id)))
    if type == "confirmed":
        return PlanListResponse(plans=[_to_response(p) for p in store.list_confirmed(user_id)])

    return PlanListResponse(plans=[_to_response(p) for p in store.list_plans(user_id, status)])


@router.post("", response_model=PlanResponse)
async def upsert_plan(
    payload: PlanUpsertRequest,
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
):
    """Create the active draft, or replace its stops and title."""
    plan = store.upsert_draft(
        current_user["id"],
        payload.vineyards,
        restaurant=payload.restaurant,
        title=payload.title,
    )
    return _to_response(plan)


@router.post("/update-time", response_model=ActionResponse)
async def update_time(
    payload: UpdateTimeRequest,
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
):
    """Update a single stop's scheduled time."""
    store.update_stop_time(current_user["id"], payload.plan_id, payload.location_id, payload.time)
    return ActionResponse(message="Time updated successfully")


@router.post("/update-order", response_model=ActionResponse)
async def update_order(
    payload: UpdateOrderRequest,
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
):
    """Replace the custom stop order."""
    store.update_custom_order(current_user["id"], payload.plan_id, payload.order)
    return ActionResponse(message="Order updated successfully")


@router.post("/remove-item", response_model=PlanResponse)
async def remove_item(
    payload: RemoveItemRequest,
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
):
    """Remove one stop from a plan."""
    plan = store.remove_stop(current_user["id"], payload.plan_id, payload.location_id)
    return _to_response(plan)


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(
    plan_id: str,
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
):
    """Get a specific plan."""
    return _to_response(store.get_plan(current_user["id"], plan_id))


@router.delete("/{plan_id}", response_model=ActionResponse)
async def delete_plan(
    plan_id: str,
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
):
    """Soft delete a plan."""
    store.discard(current_user["id"], plan_id)
    return ActionResponse(message="Plan deleted successfully")


@router.post("/{plan_id}/confirm", response_model=PlanResponse)
async def confirm_plan(
    plan_id: str,
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
):
    """Confirm a draft; starts the expiry clock."""
    return _to_response(store.confirm(current_user["id"], plan_id))


@router.get("/{plan_id}/itinerary", response_model=ItineraryResponse)
async def get_itinerary(
    plan_id: str,
    current_user: dict = Depends(get_current_user),
    store: PlanStore = Depends(get_plan_store),
    routes: RouteService = Depends(get_route_service),
):
    """
    Ordered stops of a plan with the driving route through them.

    ``route`` is null when there are fewer than two mappable stops or the
    directions provider fails; the stops are returned regardless.
    """
    plan = store.get_plan(current_user["id"], plan_id)
    locations = order_locations(plan)
    route = await routes.try_calculate(points_from_locations(locations))

    return ItineraryResponse(
        plan_id=plan.id,
        title=plan.title,
        expires_at=plan.expires_at,
        locations=locations,
        route=route,
    )
