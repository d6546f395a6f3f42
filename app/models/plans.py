"""Pydantic models for day-trip plans."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

StopType = Literal["vineyard", "restaurant"]


class TripVineyard(BaseModel):
    """A vineyard selected for the trip, as the client holds it."""

    vineyard: Dict[str, Any] = Field(..., description="Vineyard catalogue snapshot")
    offer: Optional[Dict[str, Any]] = Field(None, description="Selected tasting offer snapshot")
    time: Optional[str] = Field(None, description="Scheduled arrival (e.g., '10:30')")


class TripRestaurant(BaseModel):
    """The lunch stop selected for the trip."""

    restaurant: Dict[str, Any] = Field(..., description="Restaurant catalogue snapshot")
    time: Optional[str] = None


class TripState(BaseModel):
    """Client-local mirror of the active draft."""

    vineyards: List[TripVineyard] = Field(default_factory=list)
    restaurant: Optional[TripRestaurant] = None
    title: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.vineyards and self.restaurant is None


class PlanVineyard(TripVineyard):
    """Stored vineyard stop."""

    vineyard_id: str


class PlanRestaurant(TripRestaurant):
    """Stored restaurant stop."""

    restaurant_id: str


class CustomOrderItem(BaseModel):
    """One entry of a user-authored stop order."""

    id: str = Field(..., description="Stop id, e.g. 'vineyard-0' or 'restaurant-0'")
    order: int
    type: StopType


class PlanUpsertRequest(BaseModel):
    """Create-or-replace payload for the active draft."""

    vineyards: List[TripVineyard] = Field(default_factory=list)
    restaurant: Optional[TripRestaurant] = None
    title: Optional[str] = None


class PlanResponse(BaseModel):
    """Plan response returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: Optional[str] = None
    vineyards: List[PlanVineyard] = Field(default_factory=list)
    restaurant: Optional[PlanRestaurant] = None
    custom_order: List[CustomOrderItem] = Field(default_factory=list)
    status: str
    is_active: bool
    expires_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_trip(self) -> TripState:
        """Project the stored plan onto the client trip shape."""
        return TripState(
            vineyards=[
                TripVineyard(vineyard=v.vineyard, offer=v.offer, time=v.time)
                for v in self.vineyards
            ],
            restaurant=(
                TripRestaurant(restaurant=self.restaurant.restaurant, time=self.restaurant.time)
                if self.restaurant
                else None
            ),
            title=self.title,
        )


class ActivePlanResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    plan: Optional[PlanResponse] = None


class PlanListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    plans: List[PlanResponse] = Field(default_factory=list)


class UpdateTimeRequest(BaseModel):
    plan_id: str
    location_id: str = Field(..., description="Stop id, e.g. 'vineyard-1'")
    time: str = Field(..., description="New time ('HH:MM'); empty string clears it")


class UpdateOrderRequest(BaseModel):
    plan_id: str
    order: List[CustomOrderItem]


class RemoveItemRequest(BaseModel):
    plan_id: str
    location_id: str


class ActionResponse(BaseModel):
    success: bool = True
    message: str


class LocationItem(BaseModel):
    """A geocoded stop as shown on the map view."""

    id: str
    type: StopType
    name: str
    time: str = ""
    lat: float
    lng: float
    offer: Optional[Dict[str, Any]] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class RouteLeg(BaseModel):
    distance_meters: float
    duration_seconds: float
    distance_text: str
    duration_text: str


class RouteSummary(BaseModel):
    """Aggregated driving route over an ordered stop list."""

    legs: List[RouteLeg]
    total_distance_meters: float
    total_duration_seconds: float
    total_distance_text: str
    total_duration_text: str
    geometry: Optional[str] = Field(None, description="Encoded polyline of the whole route")


class RouteRequest(BaseModel):
    points: List[List[float]] = Field(..., description="Ordered [lat, lng] pairs", min_length=2)
    profile: Optional[str] = Field(None, description="Routing profile; defaults to settings")


class ItineraryResponse(BaseModel):
    """Ordered stops for a confirmed plan plus the route over them, if any."""

    plan_id: str
    title: Optional[str] = None
    expires_at: Optional[datetime] = None
    locations: List[LocationItem]
    route: Optional[RouteSummary] = None
