"""Unit tests for itinerary ordering."""

import pytest

from app.exceptions import ValidationError
from app.models.plans import LocationItem
from app.services.ordering import (
    apply_custom_order,
    build_location_items,
    move_item,
    order_locations,
    parse_stop_id,
    prune_custom_order,
    shift_after_removal,
    sort_by_time,
    to_custom_order,
)
from app.utils.normalizers import coordinates_of, derive_title, time_sort_key
from tests.factories import restaurant, vineyard


def _item(stop_id: str, time: str = "") -> LocationItem:
    stop_type = "restaurant" if stop_id.startswith("restaurant") else "vineyard"
    return LocationItem(id=stop_id, type=stop_type, name=stop_id, time=time, lat=-34.6, lng=-58.4)


def _plan(times, restaurant_time=None, custom_order=None):
    return {
        "vineyards": [
            {"vineyard": vineyard(f"v{i}", f"Vineyard {i}"), "time": time}
            for i, time in enumerate(times)
        ],
        "restaurant": {"restaurant": restaurant("r1", "Lunch"), "time": restaurant_time},
        "custom_order": custom_order or [],
    }


class TestSortByTime:
    """Test cases for time-based ordering."""

    def test_orders_timed_stops(self):
        items = [_item("vineyard-0", "13:30"), _item("vineyard-1", "09:00"), _item("restaurant-0", "12:00")]

        assert [i.id for i in sort_by_time(items)] == ["vineyard-1", "restaurant-0", "vineyard-0"]

    def test_untimed_stop_keeps_its_slot(self):
        items = [_item("vineyard-0", "13:30"), _item("vineyard-1"), _item("restaurant-0", "09:00")]

        result = [i.id for i in sort_by_time(items)]

        assert result == ["restaurant-0", "vineyard-1", "vineyard-0"]

    def test_deterministic_for_any_mix(self):
        items = [_item("vineyard-0", "09:00"), _item("vineyard-1"), _item("restaurant-0", "13:30")]

        first = [i.id for i in sort_by_time(items)]
        second = [i.id for i in sort_by_time(list(items))]

        assert first == second == ["vineyard-0", "vineyard-1", "restaurant-0"]

    def test_equal_times_keep_input_order(self):
        items = [_item("vineyard-0", "10:00"), _item("vineyard-1", "10:00")]

        assert [i.id for i in sort_by_time(items)] == ["vineyard-0", "vineyard-1"]


class TestCustomOrder:
    """Test cases for user-authored orders."""

    def test_custom_order_wins_over_times(self):
        plan = _plan(
            ["09:00", "10:00"],
            restaurant_time="12:00",
            custom_order=[
                {"id": "restaurant-0", "order": 0, "type": "restaurant"},
                {"id": "vineyard-1", "order": 1, "type": "vineyard"},
                {"id": "vineyard-0", "order": 2, "type": "vineyard"},
            ],
        )

        assert [i.id for i in order_locations(plan)] == ["restaurant-0", "vineyard-1", "vineyard-0"]

    def test_unreferenced_stop_goes_last(self):
        plan = _plan(
            ["09:00", "10:00"],
            custom_order=[
                {"id": "vineyard-1", "order": 0, "type": "vineyard"},
                {"id": "restaurant-0", "order": 1, "type": "restaurant"},
            ],
        )

        assert [i.id for i in order_locations(plan)] == ["vineyard-1", "restaurant-0", "vineyard-0"]

    def test_entries_sorted_by_order_value(self):
        items = [_item("vineyard-0"), _item("vineyard-1")]
        order = [{"id": "vineyard-0", "order": 5}, {"id": "vineyard-1", "order": 1}]

        assert [i.id for i in apply_custom_order(items, order)] == ["vineyard-1", "vineyard-0"]

    def test_unknown_entries_ignored(self):
        items = [_item("vineyard-0")]
        order = [{"id": "vineyard-7", "order": 0}, {"id": "vineyard-0", "order": 1}]

        assert [i.id for i in apply_custom_order(items, order)] == ["vineyard-0"]

    def test_move_then_serialize(self):
        items = [_item("vineyard-0"), _item("vineyard-1"), _item("restaurant-0")]

        moved = move_item(items, 2, 0)
        order = to_custom_order(moved)

        assert [(o.id, o.order, o.type) for o in order] == [
            ("restaurant-0", 0, "restaurant"),
            ("vineyard-0", 1, "vineyard"),
            ("vineyard-1", 2, "vineyard"),
        ]


class TestLocationItems:
    """Test cases for building map locations from stored plans."""

    def test_skips_stops_without_coordinates(self):
        plan = {
            "vineyards": [
                {"vineyard": {"vineyard_id": "v0", "vineyard": "No map"}},
                {"vineyard": vineyard("v1", "Mapped")},
            ],
            "restaurant": None,
        }

        items = build_location_items(plan)

        assert [i.id for i in items] == ["vineyard-1"]
        assert items[0].name == "Mapped"

    def test_restaurant_uses_legacy_name_key(self):
        items = build_location_items(_plan([None]))

        assert items[-1].id == "restaurant-0"
        assert items[-1].name == "Lunch"
        assert items[-1].time == ""


class TestStopIds:
    """Test cases for synthetic stop ids."""

    def test_parse(self):
        assert parse_stop_id("vineyard-2") == ("vineyard", 2)
        assert parse_stop_id("restaurant-0") == ("restaurant", 0)

    @pytest.mark.parametrize("stop_id", ["", "vineyard-", "vineyard--1", "bar-0"])
    def test_parse_rejects_malformed(self, stop_id):
        with pytest.raises(ValidationError):
            parse_stop_id(stop_id)

    def test_prune(self):
        order = [{"id": "vineyard-0", "order": 0}, {"id": "vineyard-3", "order": 1}]

        assert prune_custom_order(order, ["vineyard-0"]) == [{"id": "vineyard-0", "order": 0}]

    def test_shift_after_removal_leaves_other_type(self):
        order = [
            {"id": "restaurant-0", "order": 0, "type": "restaurant"},
            {"id": "vineyard-1", "order": 1, "type": "vineyard"},
        ]

        assert shift_after_removal(order, "vineyard-0") == [
            {"id": "restaurant-0", "order": 0, "type": "restaurant"},
            {"id": "vineyard-0", "order": 1, "type": "vineyard"},
        ]


class TestNormalizers:
    """Test cases for snapshot helpers."""

    def test_coordinates_fallback_keys(self):
        assert coordinates_of({"lat": "-34.5", "lng": -58.1}) == (-34.5, -58.1)
        assert coordinates_of({"latitude": 0, "longitude": -58.1}) is None
        assert coordinates_of({"latitude": "n/a", "longitude": 1}) is None

    def test_time_sort_key(self):
        assert time_sort_key("09:30") == "0930"
        assert time_sort_key("  ") is None

    @pytest.mark.parametrize(
        "names, expected",
        [
            ([], None),
            (["Alpha"], "Alpha Tour"),
            (["Alpha", "Beta"], "Alpha & Beta Tour"),
            (["Alpha", "Beta", "Gamma"], "Alpha & Beta Tour +1 more"),
        ],
    )
    def test_derive_title(self, names, expected):
        assert derive_title([{"vineyard": name} for name in names]) == expected
