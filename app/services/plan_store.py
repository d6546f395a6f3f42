"""
Plan store - lifecycle rules for a user's day-trip plans.

State machine::

    draft (expires_at=None) --confirm--> confirmed (expires_at=now+TTL)
    confirmed --(now > expires_at)--> expired (is_active=False)

Expiry is evaluated lazily at every read boundary; nothing runs in the
background. The "one active draft per user" rule is enforced by the
query pattern only: two concurrent upserts for the same user race and the
last write wins.
"""

import copy
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.plan_record import (
    PLAN_STATUS_CONFIRMED,
    PLAN_STATUS_DRAFT,
    PLAN_STATUS_EXPIRED,
    Plan,
    utcnow,
)
from app.models.plans import CustomOrderItem, TripRestaurant, TripVineyard
from app.services.ordering import (
    RESTAURANT_STOP_ID,
    parse_stop_id,
    prune_custom_order,
    shift_after_removal,
    vineyard_stop_id,
)
from app.utils.normalizers import derive_title, restaurant_id_of, vineyard_id_of

logger = logging.getLogger(__name__)


def is_expired(plan: Plan, now: datetime) -> bool:
    """True once a plan's expiry has passed, whatever its stored flags say."""
    return plan.expires_at is not None and now > plan.expires_at


def stop_ids(plan: Plan) -> List[str]:
    ids = [vineyard_stop_id(index) for index in range(len(plan.vineyards or []))]
    if plan.restaurant:
        ids.append(RESTAURANT_STOP_ID)
    return ids


class PlanStore:
    """Single source of truth for a user's draft and confirmed plans."""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        ttl_minutes: Optional[int] = None,
        max_vineyards: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.plan_ttl)
        self.max_vineyards = max_vineyards if max_vineyards is not None else settings.max_vineyards

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expire_overdue(self, user_id: Optional[str] = None) -> int:
        """
        Flip every active plan past its expiry to ``expired``.

        Called by each read path for the caller's plans; with no ``user_id``
        it sweeps the whole table.

        Returns:
            Number of plans expired.
        """
        now = self.clock()
        query = self.db.query(Plan).filter(
            Plan.is_active.is_(True),
            Plan.expires_at.isnot(None),
            Plan.expires_at < now,
        )
        if user_id is not None:
            query = query.filter(Plan.user_id == user_id)

        overdue = query.all()
        for plan in overdue:
            self._mark_expired(plan)

        if overdue:
            self.db.commit()
            logger.info(f"Expired {len(overdue)} plan(s) for user_id={user_id or '*'}")
        return len(overdue)

    def _mark_expired(self, plan: Plan) -> None:
        plan.status = PLAN_STATUS_EXPIRED
        plan.is_active = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _find_draft(self, user_id: str) -> Optional[Plan]:
        return (
            self.db.query(Plan)
            .filter(
                Plan.user_id == user_id,
                Plan.is_active.is_(True),
                Plan.status == PLAN_STATUS_DRAFT,
            )
            .order_by(Plan.created_at.desc())
            .first()
        )

    def get_active_draft(self, user_id: str) -> Optional[Plan]:
        """
        Return the user's active draft, or None.

        A draft emptied of every stop counts as no draft; its row stays and
        is reused by the next upsert.
        """
        self.expire_overdue(user_id)
        plan = self._find_draft(user_id)
        if plan is None or is_expired(plan, self.clock()):
            return None
        if not plan.vineyards and not plan.restaurant:
            return None
        return plan

    def list_confirmed(self, user_id: str) -> List[Plan]:
        """Confirmed, unexpired plans, newest confirmation first."""
        self.expire_overdue(user_id)
        now = self.clock()
        return (
            self.db.query(Plan)
            .filter(
                Plan.user_id == user_id,
                Plan.is_active.is_(True),
                Plan.status == PLAN_STATUS_CONFIRMED,
                Plan.expires_at >= now,
            )
            .order_by(Plan.confirmed_at.desc())
            .all()
        )

    def get_active_plan(self, user_id: str) -> Optional[Plan]:
        """The draft if there is one, else the newest confirmed plan."""
        draft = self.get_active_draft(user_id)
        if draft is not None:
            return draft
        confirmed = self.list_confirmed(user_id)
        return confirmed[0] if confirmed else None

    def list_plans(self, user_id: str, status: Optional[str] = None) -> List[Plan]:
        """Active plans for the user, optionally filtered by status, newest first."""
        self.expire_overdue(user_id)
        query = self.db.query(Plan).filter(Plan.user_id == user_id, Plan.is_active.is_(True))
        if status:
            query = query.filter(Plan.status == status)
        now = self.clock()
        return [
            plan
            for plan in query.order_by(Plan.created_at.desc()).all()
            if not is_expired(plan, now)
        ]

    def _load_owned(self, user_id: str, plan_id: str, expired_error=ConflictError) -> Plan:
        plan = self.db.query(Plan).filter(Plan.id == plan_id, Plan.user_id == user_id).first()
        if plan is None:
            raise NotFoundError("Plan not found")

        # discarded plans are gone, not expired
        if not plan.is_active and plan.status != PLAN_STATUS_EXPIRED:
            raise NotFoundError("Plan not found")

        if plan.status == PLAN_STATUS_EXPIRED or is_expired(plan, self.clock()):
            if plan.is_active:
                self._mark_expired(plan)
                self.db.commit()
                logger.info(f"Plan {plan.id} expired on access")
            raise expired_error("Plan has expired")

        return plan

    def get_plan(self, user_id: str, plan_id: str) -> Plan:
        return self._load_owned(user_id, plan_id, expired_error=NotFoundError)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _vineyard_records(self, vineyards: Sequence[TripVineyard]) -> List[Dict[str, Any]]:
        if not vineyards:
            raise ValidationError("At least one vineyard is required")
        if len(vineyards) > self.max_vineyards:
            raise ValidationError(f"Maximum {self.max_vineyards} vineyards allowed")

        records = []
        for entry in vineyards:
            vineyard_id = vineyard_id_of(entry.vineyard)
            if not vineyard_id:
                raise ValidationError("Vineyard is missing its vineyard_id")
            records.append(
                {
                    "vineyard_id": vineyard_id,
                    "vineyard": dict(entry.vineyard),
                    "offer": dict(entry.offer) if entry.offer else None,
                    "time": entry.time or None,
                }
            )
        return records

    def _restaurant_record(self, restaurant: Optional[TripRestaurant]) -> Optional[Dict[str, Any]]:
        if restaurant is None:
            return None
        restaurant_id = restaurant_id_of(restaurant.restaurant)
        if not restaurant_id:
            raise ValidationError("Restaurant is missing its restaurant_id")
        return {
            "restaurant_id": restaurant_id,
            "restaurant": dict(restaurant.restaurant),
            "time": restaurant.time or None,
        }

    def upsert_draft(
        self,
        user_id: str,
        vineyards: Sequence[TripVineyard],
        restaurant: Optional[TripRestaurant] = None,
        title: Optional[str] = None,
    ) -> Plan:
        """
        Create the user's draft, or replace the contents of the existing one.

        Raises:
            ValidationError: Empty or oversized vineyard list, or a stop
                without a catalogue id.
        """
        vineyard_records = self._vineyard_records(vineyards)
        restaurant_record = self._restaurant_record(restaurant)
        resolved_title = (title or "").strip() or derive_title([record["vineyard"] for record in vineyard_records])

        self.expire_overdue(user_id)
        plan = self._find_draft(user_id)

        if plan is not None:
            plan.vineyards = vineyard_records
            plan.restaurant = restaurant_record
            plan.title = resolved_title
            plan.expires_at = None
            plan.custom_order = prune_custom_order(plan.custom_order or [], stop_ids(plan))
            plan.updated_at = self.clock()
            logger.info(f"Updated draft plan {plan.id} for user_id={user_id}")
        else:
            now = self.clock()
            plan = Plan(
                user_id=user_id,
                title=resolved_title,
                vineyards=vineyard_records,
                restaurant=restaurant_record,
                custom_order=[],
                status=PLAN_STATUS_DRAFT,
                is_active=True,
                expires_at=None,
                created_at=now,
                updated_at=now,
            )
            self.db.add(plan)
            logger.info(f"Created draft plan for user_id={user_id}")

        self.db.commit()
        self.db.refresh(plan)
        return plan

    def confirm(self, user_id: str, plan_id: str) -> Plan:
        """
        Confirm a draft into a time-boxed plan.

        Repeating the call on a confirmed plan is harmless: neither
        ``confirmed_at`` nor ``expires_at`` move.

        Raises:
            NotFoundError: Unknown plan, someone else's plan, or discarded.
            ConflictError: The plan has already expired.
            ValidationError: The plan has no vineyards.
        """
        plan = self._load_owned(user_id, plan_id)

        if not plan.vineyards:
            raise ValidationError("Plan must have at least one vineyard")

        now = self.clock()
        plan.status = PLAN_STATUS_CONFIRMED
        if plan.confirmed_at is None:
            plan.confirmed_at = now
        if plan.expires_at is None:
            plan.expires_at = now + self.ttl
        plan.updated_at = now

        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Confirmed plan {plan.id}, expires_at={plan.expires_at.isoformat()}")
        return plan

    def update_stop_time(self, user_id: str, plan_id: str, stop_id: str, time: Optional[str]) -> Plan:
        """Set the scheduled time of one stop; ordering state is untouched."""
        plan = self._load_owned(user_id, plan_id)
        stop_type, index = parse_stop_id(stop_id)

        if stop_type == "vineyard":
            vineyards = copy.deepcopy(plan.vineyards or [])
            if index >= len(vineyards):
                raise NotFoundError(f"Stop {stop_id} not found")
            vineyards[index]["time"] = time or None
            plan.vineyards = vineyards
        else:
            if index != 0 or not plan.restaurant:
                raise NotFoundError(f"Stop {stop_id} not found")
            restaurant = copy.deepcopy(plan.restaurant)
            restaurant["time"] = time or None
            plan.restaurant = restaurant

        plan.updated_at = self.clock()
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Updated time of {stop_id} on plan {plan.id} to {time!r}")
        return plan

    def update_custom_order(self, user_id: str, plan_id: str, order: Sequence[CustomOrderItem]) -> Plan:
        """Replace the custom stop order wholesale."""
        plan = self._load_owned(user_id, plan_id)
        plan.custom_order = [item.model_dump() for item in order]
        plan.updated_at = self.clock()
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Saved custom order of {len(order)} stop(s) on plan {plan.id}")
        return plan

    def remove_stop(self, user_id: str, plan_id: str, stop_id: str) -> Plan:
        """
        Remove a vineyard or the restaurant from a plan.

        Raises:
            ValidationError: Malformed stop id, or the stop is the last vineyard.
            NotFoundError: No such stop on the plan.
        """
        plan = self._load_owned(user_id, plan_id)
        stop_type, index = parse_stop_id(stop_id)

        if stop_type == "vineyard":
            vineyards = copy.deepcopy(plan.vineyards or [])
            if index >= len(vineyards):
                raise NotFoundError(f"Stop {stop_id} not found")
            if len(vineyards) == 1:
                raise ValidationError("Cannot remove the last vineyard. At least one vineyard is required.")
            del vineyards[index]
            plan.vineyards = vineyards
        else:
            if index != 0 or not plan.restaurant:
                raise NotFoundError(f"Stop {stop_id} not found")
            plan.restaurant = None

        plan.custom_order = shift_after_removal(plan.custom_order or [], stop_id)
        plan.updated_at = self.clock()

        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Removed {stop_id} from plan {plan.id}")
        return plan

    def discard(self, user_id: str, plan_id: str) -> Plan:
        """Soft delete: the plan stops being active but the row is kept."""
        plan = self._load_owned(user_id, plan_id, expired_error=NotFoundError)
        plan.is_active = False
        plan.updated_at = self.clock()
        self.db.commit()
        logger.info(f"Discarded plan {plan.id}")
        return plan
