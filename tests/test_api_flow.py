from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from fastapi import FastAPI
from fastapi.testclient import TestClient

from groupbooking.controllers.admin_controller import router as admin_router
from groupbooking.controllers.booking_controller import router as booking_router
from groupbooking.domain.models import BookingStatus, PricingMode
from groupbooking.repository.data_repository import DataRepository
from groupbooking.services.auth_service import AuthService
from groupbooking.services.booking_service import GroupBookingService
from groupbooking.services.capacity_service import CapacityResolver, SlotCapacityFilter
from groupbooking.services.pricing_service import GroupPricingService
from groupbooking.services.tier_service import TierManagementService
from groupbooking.utils.config import get_settings


ADMIN_TOKEN = "secret-admin-token"


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, admin_token=ADMIN_TOKEN)


def _build_test_app(tmp_path, filename: str = "api_flow.db", initialize: bool = True):
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    if initialize:
        repository.initialize_database()
        repository.seed_demo_data()

    capacity_resolver = CapacityResolver(resources=repository, settings=settings)
    app = FastAPI()
    app.include_router(booking_router)
    app.include_router(admin_router)
    app.state.repository = repository
    app.state.capacity_filter = SlotCapacityFilter(
        repository=repository,
        settings=settings,
        capacity_resolver=capacity_resolver,
    )
    app.state.pricing_service = GroupPricingService(repository=repository, settings=settings)
    app.state.booking_service = GroupBookingService(
        repository=repository,
        settings=settings,
        capacity_resolver=capacity_resolver,
    )
    app.state.tier_service = TierManagementService(repository=repository, settings=settings)
    app.state.auth_service = AuthService(settings=settings)
    return app, repository


def _admin_headers(client: TestClient) -> dict[str, str]:
    response = client.post("/login", json={"admin_token": ADMIN_TOKEN})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_availability_and_booking_flow(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)
    repository.create_booking(resource_id=1, date="2026-05-01", time="18:00", quantity=5)

    check = client.post(
        "/check_availability",
        json={"resource_id": 1, "date": "2026-05-01", "time": "18:00", "quantity": 4},
    )
    assert check.status_code == 200, check.text
    assert check.json() == {
        "available": False,
        "max_available": 3,
        "message": "This time slot cannot accommodate your group size.",
    }

    slots = client.post(
        "/available_slots",
        json={
            "resource_id": 1,
            "quantity": 4,
            "slots": {
                "2026-05-01": {"18:00": {"id": "a"}, "20:00": {"id": "b"}},
                "2026-05-02": {"18:00": {"id": "c"}},
            },
        },
    )
    assert slots.status_code == 200, slots.text
    assert slots.json()["slots"] == {
        "2026-05-01": {"20:00": {"id": "b"}},
        "2026-05-02": {"18:00": {"id": "c"}},
    }

    booked = client.post(
        "/bookings",
        json={
            "resource_id": 1,
            "date": "2026-05-01",
            "time": "18:00",
            "quantity": 3,
            "participants": ["Lin", "  ", "Sam"],
        },
    )
    assert booked.status_code == 201, booked.text
    booking_id = booked.json()["booking_id"]
    assert repository.get_booking(booking_id).participants == ["Lin", "Sam"]

    conflict = client.post(
        "/bookings",
        json={"resource_id": 1, "date": "2026-05-01", "time": "18:00", "quantity": 2},
    )
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["retryable"] is True
    assert conflict.json()["detail"]["max_available"] == 0

    anonymous = client.post(f"/bookings/{booking_id}/status", json={"status": "cancelled"})
    assert anonymous.status_code == 401

    headers = _admin_headers(client)
    cancelled = client.post(
        f"/bookings/{booking_id}/status", json={"status": "cancelled"}, headers=headers
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == BookingStatus.CANCELLED.value

    retry = client.post(
        "/bookings",
        json={"resource_id": 1, "date": "2026-05-01", "time": "18:00", "quantity": 2},
    )
    assert retry.status_code == 201


def test_booking_rejects_invalid_group_size(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.post(
        "/bookings",
        json={"resource_id": 1, "date": "2026-05-01", "time": "18:00", "quantity": 1},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == {
        "code": "group_size_below_min",
        "message": "Minimum group size is 2 people.",
    }

    validation = client.post("/validate_group_size", json={"resource_id": 1, "quantity": 9})
    assert validation.status_code == 200
    assert validation.json()["code"] == "group_size_above_max"


def test_request_validation_rejects_bad_slot_inputs(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    bad_time = client.post(
        "/check_availability",
        json={"resource_id": 1, "date": "2026-05-01", "time": "25:00", "quantity": 1},
    )
    bad_quantity = client.post(
        "/check_availability",
        json={"resource_id": 1, "date": "2026-05-01", "time": "10:00", "quantity": 0},
    )
    bad_date_key = client.post(
        "/available_slots",
        json={"resource_id": 1, "quantity": 1, "slots": {"May 1": {"10:00": {}}}},
    )

    assert bad_time.status_code == 422
    assert bad_quantity.status_code == 422
    assert bad_date_key.status_code == 422


def test_calculate_price_for_demo_resources(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    per_person = client.post("/calculate_price", json={"resource_id": 1, "quantity": 4})
    flat = client.post("/calculate_price", json={"resource_id": 2, "quantity": 12})
    tiered = client.post("/calculate_price", json={"resource_id": 3, "quantity": 20})
    unknown = client.post("/calculate_price", json={"resource_id": 99, "quantity": 2})

    assert per_person.json()["total"] == 100.0
    assert per_person.json()["breakdown"] == [
        {"label": "$25.00 × 4 people", "value": 100.0, "is_discount": False}
    ]
    assert flat.json()["total_formatted"] == "$400.00"
    body = tiered.json()
    assert body["total"] == 558.0
    assert body["breakdown"][1] == {"label": "Group discount", "value": -50.0, "is_discount": True}
    assert round(sum(line["value"] for line in body["breakdown"]), 2) == body["total"]
    assert unknown.status_code == 400
    assert unknown.json()["detail"] == "Invalid service."


def test_admin_tier_management_requires_login(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)

    unauthorized = client.get("/resources/3/tiers")
    assert unauthorized.status_code == 401

    bad_login = client.post("/login", json={"admin_token": "wrong"})
    assert bad_login.status_code == 401

    headers = _admin_headers(client)
    listed = client.get("/resources/3/tiers", headers=headers)
    assert listed.status_code == 200
    assert [tier["min_quantity"] for tier in listed.json()] == [1, 10]

    created = client.post(
        "/resources/3/tiers",
        headers=headers,
        json={"min_quantity": 31, "max_quantity": 40, "price_type": "flat", "price": 900},
    )
    assert created.status_code == 201, created.text
    assert created.json()["message"] == "Tier added successfully."
    tier_id = created.json()["tier_id"]
    assert repository.find_matching_tier(3, 35).price == Decimal("900")

    invalid = client.post(
        "/resources/3/tiers",
        headers=headers,
        json={"min_quantity": 12, "max_quantity": 4, "price": 10},
    )
    assert invalid.status_code == 400

    missing_resource = client.post("/resources/77/tiers", headers=headers, json={"price": 10})
    assert missing_resource.status_code == 404

    deleted = client.delete(f"/tiers/{tier_id}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Tier deleted."}
    assert client.delete(f"/tiers/{tier_id}", headers=headers).status_code == 404

    logout = client.post("/logout", headers=headers)
    assert logout.status_code == 204
    assert client.get("/resources/3/tiers", headers=headers).status_code == 401


def test_admin_resource_upsert_and_occupants(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)
    headers = _admin_headers(client)

    updated = client.put(
        "/resources/4",
        headers=headers,
        json={
            "name": "Climbing Wall",
            "base_price": 15,
            "capacity": 6,
            "pricing_mode": "per_person",
            "discount": {"enabled": True, "min_quantity": 4, "discount_type": "fixed", "discount_value": 10},
        },
    )
    assert updated.status_code == 204, updated.text
    stored = repository.get_resource_config(4)
    assert (stored.name, stored.base_price, stored.capacity) == ("Climbing Wall", Decimal("15"), 6)
    assert stored.pricing_mode is PricingMode.PER_PERSON
    assert stored.discount is not None and stored.discount.min_quantity == 4

    price = client.post("/calculate_price", json={"resource_id": 4, "quantity": 4})
    assert price.json()["total"] == 50.0

    client.post(
        "/bookings",
        json={"resource_id": 4, "date": "2026-05-03", "time": "09:30", "quantity": 4},
    )
    occupants = client.get("/resources/4/slots/2026-05-03/09:30/occupants", headers=headers)
    assert occupants.status_code == 200
    assert occupants.json()["max_available"] == 2
    assert [item["quantity"] for item in occupants.json()["occupants"]] == [4]

    bad_bounds = client.put(
        "/resources/4",
        headers=headers,
        json={"min_quantity": 5, "max_quantity": 2},
    )
    assert bad_bounds.status_code == 422


def test_storage_failure_returns_retryable_503(tmp_path):
    app, _ = _build_test_app(tmp_path, "uninitialized.db", initialize=False)
    client = TestClient(app)

    response = client.post(
        "/check_availability",
        json={"resource_id": 1, "date": "2026-05-01", "time": "18:00", "quantity": 2},
    )

    assert response.status_code == 503
    assert response.json()["detail"] == "Please try again."


def test_booking_lookup_and_reconfirm_conflict(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    headers = _admin_headers(client)
    slot = {"resource_id": 1, "date": "2026-05-04", "time": "12:00"}

    first = client.post("/bookings", json={**slot, "quantity": 8, "participants": ["Kim", "Lee"]})
    first_id = first.json()["booking_id"]

    assert client.get(f"/bookings/{first_id}").status_code == 401
    detail = client.get(f"/bookings/{first_id}", headers=headers)
    assert detail.status_code == 200
    assert detail.json()["participants"] == ["Kim", "Lee"]
    assert detail.json()["quantity"] == 8
    assert client.get("/bookings/9999", headers=headers).status_code == 404

    client.post(f"/bookings/{first_id}/status", json={"status": "cancelled"}, headers=headers)
    assert client.post("/bookings", json={**slot, "quantity": 8}).status_code == 201

    reconfirm = client.post(
        f"/bookings/{first_id}/status", json={"status": "confirmed"}, headers=headers
    )
    assert reconfirm.status_code == 409
    assert reconfirm.json()["detail"]["retryable"] is True
    assert client.get(f"/bookings/{first_id}", headers=headers).json()["status"] == "cancelled"
