"""
Itinerary ordering.

Turns the stops of a plan into the definitive, ordered list of map
locations. A saved custom order wins; without one, stops are arranged by
their scheduled time. Everything here is pure so that the API (itinerary
endpoint) and the client (map board) produce the same sequence.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.exceptions import ValidationError
from app.models.plans import CustomOrderItem, LocationItem
from app.utils.normalizers import (
    coordinates_of,
    restaurant_name_of,
    time_sort_key,
    vineyard_name_of,
)

VINEYARD_PREFIX = "vineyard-"
RESTAURANT_PREFIX = "restaurant-"
RESTAURANT_STOP_ID = "restaurant-0"


def vineyard_stop_id(index: int) -> str:
    return f"{VINEYARD_PREFIX}{index}"


def parse_stop_id(stop_id: str) -> Tuple[str, int]:
    """
    Split a synthetic stop id into ``(type, index)``.

    Raises:
        ValidationError: If the id is not ``vineyard-{n}`` or ``restaurant-{n}``.
    """
    for prefix, stop_type in ((VINEYARD_PREFIX, "vineyard"), (RESTAURANT_PREFIX, "restaurant")):
        if stop_id and stop_id.startswith(prefix):
            suffix = stop_id[len(prefix):]
            if suffix.isdigit():
                return stop_type, int(suffix)
    raise ValidationError(f"Invalid location ID: {stop_id!r}")


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _as_dict(value: Any) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return dict(value)


def build_location_items(plan: Any) -> List[LocationItem]:
    """
    Build the candidate stop set of a plan.

    Accepts the ORM record, a ``PlanResponse`` or a plain dict. Stops
    without coordinates are skipped; ids keep the stop's position in the
    plan so they stay stable for custom orders.
    """
    items: List[LocationItem] = []

    for index, entry in enumerate(_field(plan, "vineyards") or []):
        snapshot = _field(entry, "vineyard") or {}
        coords = coordinates_of(snapshot)
        if coords is None:
            continue
        items.append(
            LocationItem(
                id=vineyard_stop_id(index),
                type="vineyard",
                name=vineyard_name_of(snapshot),
                time=_field(entry, "time") or "",
                lat=coords[0],
                lng=coords[1],
                offer=_as_dict(_field(entry, "offer")),
                data=dict(snapshot),
            )
        )

    restaurant = _field(plan, "restaurant")
    if restaurant:
        snapshot = _field(restaurant, "restaurant") or {}
        coords = coordinates_of(snapshot)
        if coords is not None:
            items.append(
                LocationItem(
                    id=RESTAURANT_STOP_ID,
                    type="restaurant",
                    name=restaurant_name_of(snapshot),
                    time=_field(restaurant, "time") or "",
                    lat=coords[0],
                    lng=coords[1],
                    data=dict(snapshot),
                )
            )

    return items


def apply_custom_order(
    items: Sequence[LocationItem],
    custom_order: Iterable[Any],
) -> List[LocationItem]:
    """
    Arrange ``items`` by a saved custom order.

    Entries are taken in ascending ``order`` (ties keep their list position).
    Items the order does not mention, e.g. stops added after it was saved,
    follow in their original relative order. Entries naming unknown stops
    are ignored.
    """
    def rank(pair: Tuple[int, Any]) -> Tuple[int, int]:
        position, entry = pair
        order = _field(entry, "order")
        return (order if isinstance(order, int) else position, position)

    entries = sorted(enumerate(custom_order), key=rank)

    remaining = {item.id: item for item in items}
    ordered: List[LocationItem] = []
    for _, entry in entries:
        item = remaining.pop(_field(entry, "id"), None)
        if item is not None:
            ordered.append(item)

    ordered.extend(item for item in items if item.id in remaining)
    return ordered


def sort_by_time(items: Sequence[LocationItem]) -> List[LocationItem]:
    """
    Order stops by scheduled time.

    Times compare as the ``"HH:MM"`` string with the colon removed. An
    untimed stop has no preference against any other stop, so it keeps its
    slot; the timed stops are sorted stably into the remaining slots.
    """
    keys = [time_sort_key(item.time) for item in items]
    timed_slots = [index for index, key in enumerate(keys) if key is not None]
    timed_sorted = sorted(timed_slots, key=lambda index: keys[index])

    result = list(items)
    for slot, source in zip(timed_slots, timed_sorted):
        result[slot] = items[source]
    return result


def order_locations(plan: Any) -> List[LocationItem]:
    """Definitive stop sequence for a plan."""
    items = build_location_items(plan)
    custom_order = _field(plan, "custom_order") or []
    if custom_order:
        return apply_custom_order(items, custom_order)
    return sort_by_time(items)


def move_item(items: Sequence[LocationItem], old_index: int, new_index: int) -> List[LocationItem]:
    """Move one element, shifting the others (drag-and-drop semantics)."""
    result = list(items)
    if not result:
        return result
    item = result.pop(old_index)
    result.insert(new_index, item)
    return result


def to_custom_order(items: Sequence[LocationItem]) -> List[CustomOrderItem]:
    return [
        CustomOrderItem(id=item.id, order=index, type=item.type)
        for index, item in enumerate(items)
    ]


def prune_custom_order(custom_order: Iterable[Dict[str, Any]], valid_ids: Iterable[str]) -> List[Dict[str, Any]]:
    """Drop entries that reference stops which no longer exist."""
    valid = set(valid_ids)
    return [dict(entry) for entry in custom_order if entry.get("id") in valid]


def shift_after_removal(custom_order: Iterable[Dict[str, Any]], removed_id: str) -> List[Dict[str, Any]]:
    """
    Rewrite a custom order after a stop is removed.

    The removed id disappears and ids of the same type with a higher index
    move down by one, matching the re-indexed stop list.
    """
    removed_type, removed_index = parse_stop_id(removed_id)
    prefix = VINEYARD_PREFIX if removed_type == "vineyard" else RESTAURANT_PREFIX

    rewritten: List[Dict[str, Any]] = []
    for entry in custom_order:
        entry_id = entry.get("id")
        if entry_id == removed_id:
            continue
        entry = dict(entry)
        if entry_id and entry_id.startswith(prefix):
            suffix = entry_id[len(prefix):]
            if suffix.isdigit() and int(suffix) > removed_index:
                entry["id"] = f"{prefix}{int(suffix) - 1}"
        rewritten.append(entry)
    return rewritten
