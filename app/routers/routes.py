"""
Routes router - driving directions between arbitrary points.

Proxies the directions provider so the frontend never talks to it directly.
"""
import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user
from app.models.plans import RouteRequest, RouteSummary
from app.services.route_service import RouteService, get_route_service

router = APIRouter(prefix="/routes", tags=["routes"])
logger = logging.getLogger(__name__)


@router.post("/calculate", response_model=RouteSummary)
async def calculate_route(
    req: RouteRequest,
    current_user: dict = Depends(get_current_user),
    routes: RouteService = Depends(get_route_service),
):
    """
    Calculate a route through ``points`` in the given order.

    Unlike the itinerary view, a provider failure here is an error (502):
    the caller asked for a route and nothing else.
    """
    points = [(p[0], p[1]) for p in req.points if len(p) >= 2]
    logger.debug(f"Route requested for {len(points)} points by {current_user['id']}")
    return await routes.calculate(points, profile=req.profile)
