"""API tests for the plans and routes routers."""

import pytest
from fastapi import HTTPException

from app.config import settings
from app.dependencies import verify_auth0_token
from app.services.route_cache import route_cache
from app.services.route_service import get_route_service
from tests.factories import (
    OTHER_USER_ID,
    TTL_MINUTES,
    failing_osrm_handler,
    make_route_service,
    restaurant,
    vineyard,
)

PLANS = "/api/v1/plans"


def _payload(*names, with_restaurant=True, title=None):
    body = {
        "vineyards": [
            {"vineyard": vineyard(f"v{i}", name, lng=-58.4 - i / 10), "offer": {"name": "Tasting"}}
            for i, name in enumerate(names)
        ],
        "restaurant": {"restaurant": restaurant("r1", "Lunch")} if with_restaurant else None,
    }
    if title is not None:
        body["title"] = title
    return body


def _create(client, *names, **kwargs):
    response = client.post(PLANS, json=_payload(*names, **kwargs))
    assert response.status_code == 200, response.text
    return response.json()


class TestPlansEndpoints:
    """Test cases for the plan lifecycle over HTTP."""

    def test_upsert_and_read_active(self, client):
        created = _create(client, "Alpha", "Beta")

        response = client.get(PLANS, params={"type": "active"})

        assert response.status_code == 200
        plan = response.json()["plan"]
        assert plan["id"] == created["id"]
        assert plan["status"] == "draft"
        assert plan["title"] == "Alpha & Beta Tour"
        assert [v["vineyard_id"] for v in plan["vineyards"]] == ["v0", "v1"]
        assert plan["restaurant"]["restaurant_id"] == "r1"

    def test_active_is_null_without_plans(self, client):
        response = client.get(PLANS, params={"type": "active"})

        assert response.status_code == 200
        assert response.json() == {"plan": None}

    def test_too_many_vineyards(self, client):
        response = client.post(PLANS, json=_payload("A", "B", "C", "D"))

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_confirm_and_list_confirmed(self, client):
        created = _create(client, "Alpha")

        confirmed = client.post(f"{PLANS}/{created['id']}/confirm")
        listed = client.get(PLANS, params={"type": "confirmed"})

        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "confirmed"
        assert confirmed.json()["expires_at"] is not None
        assert [p["id"] for p in listed.json()["plans"]] == [created["id"]]
        assert client.get(PLANS, params={"type": "draft"}).json() == {"plan": None}

    def test_list_by_status(self, client):
        created = _create(client, "Alpha")

        response = client.get(PLANS, params={"status": "draft"})

        assert [p["id"] for p in response.json()["plans"]] == [created["id"]]

    def test_expired_plan(self, client, clock):
        created = _create(client, "Alpha", "Beta")
        client.post(f"{PLANS}/{created['id']}/confirm")
        clock.advance(minutes=TTL_MINUTES + 1)

        update = client.post(
            f"{PLANS}/update-time",
            json={"plan_id": created["id"], "location_id": "vineyard-0", "time": "10:00"},
        )
        read = client.get(f"{PLANS}/{created['id']}")

        assert update.status_code == 409
        assert update.json()["error"] == "CONFLICT"
        assert read.status_code == 404
        assert client.get(PLANS, params={"type": "active"}).json() == {"plan": None}

    def test_other_users_plan_is_hidden(self, client, current_user):
        created = _create(client, "Alpha")
        current_user["id"] = OTHER_USER_ID

        assert client.get(f"{PLANS}/{created['id']}").status_code == 404
        assert client.post(f"{PLANS}/{created['id']}/confirm").status_code == 404

    def test_update_time_and_order(self, client):
        created = _create(client, "Alpha", "Beta")

        time_response = client.post(
            f"{PLANS}/update-time",
            json={"plan_id": created["id"], "location_id": "restaurant-0", "time": "12:30"},
        )
        order_response = client.post(
            f"{PLANS}/update-order",
            json={
                "plan_id": created["id"],
                "order": [
                    {"id": "restaurant-0", "order": 0, "type": "restaurant"},
                    {"id": "vineyard-1", "order": 1, "type": "vineyard"},
                ],
            },
        )
        plan = client.get(f"{PLANS}/{created['id']}").json()

        assert time_response.json() == {"success": True, "message": "Time updated successfully"}
        assert order_response.json()["success"] is True
        assert plan["restaurant"]["time"] == "12:30"
        assert [entry["id"] for entry in plan["custom_order"]] == ["restaurant-0", "vineyard-1"]

    def test_update_time_malformed_id(self, client):
        created = _create(client, "Alpha")

        response = client.post(
            f"{PLANS}/update-time",
            json={"plan_id": created["id"], "location_id": "cellar-1", "time": "10:00"},
        )

        assert response.status_code == 400

    def test_remove_item(self, client):
        created = _create(client, "Alpha", "Beta")

        removed = client.post(
            f"{PLANS}/remove-item",
            json={"plan_id": created["id"], "location_id": "vineyard-0"},
        )
        last = client.post(
            f"{PLANS}/remove-item",
            json={"plan_id": created["id"], "location_id": "vineyard-0"},
        )

        assert removed.status_code == 200
        assert [v["vineyard_id"] for v in removed.json()["vineyards"]] == ["v1"]
        assert last.status_code == 400

    def test_delete_plan(self, client):
        created = _create(client, "Alpha")

        response = client.delete(f"{PLANS}/{created['id']}")

        assert response.status_code == 200
        assert client.get(f"{PLANS}/{created['id']}").status_code == 404
        assert client.delete(f"{PLANS}/{created['id']}").status_code == 404


class TestItineraryEndpoint:
    """Test cases for GET /plans/{id}/itinerary."""

    def test_ordered_locations_with_route(self, client):
        created = _create(client, "Alpha", "Beta")
        client.post(
            f"{PLANS}/update-time",
            json={"plan_id": created["id"], "location_id": "vineyard-0", "time": "15:00"},
        )
        client.post(
            f"{PLANS}/update-time",
            json={"plan_id": created["id"], "location_id": "vineyard-1", "time": "10:00"},
        )

        response = client.get(f"{PLANS}/{created['id']}/itinerary")

        assert response.status_code == 200
        body = response.json()
        assert [loc["id"] for loc in body["locations"]] == ["vineyard-1", "vineyard-0", "restaurant-0"]
        assert len(body["route"]["legs"]) == 2
        assert body["route"]["total_distance_text"] == "3.0 km"

    def test_route_omitted_on_provider_failure(self, client, api_app):
        created = _create(client, "Alpha", "Beta")
        api_app.dependency_overrides[get_route_service] = lambda: make_route_service(failing_osrm_handler)

        response = client.get(f"{PLANS}/{created['id']}/itinerary")

        assert response.status_code == 200
        assert response.json()["route"] is None
        assert len(response.json()["locations"]) == 3

    def test_single_stop_has_no_route(self, client):
        created = _create(client, "Alpha", with_restaurant=False)

        body = client.get(f"{PLANS}/{created['id']}/itinerary").json()

        assert [loc["id"] for loc in body["locations"]] == ["vineyard-0"]
        assert body["route"] is None


class TestRoutesEndpoint:
    """Test cases for POST /routes/calculate."""

    def test_calculate(self, client):
        response = client.post(
            "/api/v1/routes/calculate",
            json={"points": [[-34.6, -58.4], [-34.7, -58.5], [-34.8, -58.6]]},
        )

        assert response.status_code == 200
        assert len(response.json()["legs"]) == 2

    def test_needs_two_points(self, client):
        response = client.post("/api/v1/routes/calculate", json={"points": [[-34.6, -58.4]]})

        assert response.status_code == 422

    def test_provider_failure_is_bad_gateway(self, client, api_app):
        api_app.dependency_overrides[get_route_service] = lambda: make_route_service(failing_osrm_handler)

        response = client.post(
            "/api/v1/routes/calculate",
            json={"points": [[-34.6, -58.4], [-34.7, -58.5]]},
        )

        assert response.status_code == 502
        assert response.json()["error"] == "PROVIDER_ERROR"


class TestAuth:
    """Test cases for token verification."""

    def test_rejects_when_auth0_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "auth0_domain", "")

        with pytest.raises(HTTPException) as exc_info:
            verify_auth0_token("token")

        assert exc_info.value.status_code == 401

    def test_health_survives_cache_outage(self, client, monkeypatch):
        monkeypatch.setattr(route_cache, "ping", lambda: False)

        assert client.get("/health").json() == {"status": "healthy", "route_cache": "down"}
