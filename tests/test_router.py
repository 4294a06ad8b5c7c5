from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from attrimet.adapters.fastapi_router import build_router
from attrimet.adapters.memory import InMemoryAttributionRepository
from attrimet.config import AttributionConfig
from attrimet.service import AttributionService

T0 = datetime(2026, 1, 6, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def client():
    service = AttributionService(InMemoryAttributionRepository(), config=AttributionConfig())
    app = FastAPI()
    app.include_router(build_router(service))
    return TestClient(app)


def _touchpoint(session_id="s1", affiliate_id="aff-1", offset_hours=-2, **extra):
    payload = {
        "session_id": session_id,
        "affiliate_id": affiliate_id,
        "interaction_quality": 0.7,
        "conversion_probability": 0.4,
        "channel": "Email",
        "type": "product_view",
        "timestamp": (T0 + timedelta(hours=offset_hours)).isoformat(),
        "engagement": {"time_spent": 45, "pages_viewed": 2, "interactions": 1},
    }
    payload.update(extra)
    return payload


def test_record_touchpoint(client):
    response = client.post("/attribution/touchpoints", json=_touchpoint())

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "recorded"
    assert body["affiliate_id"] == "aff-1"
    assert body["interaction_quality"] == 0.7


def test_record_touchpoint_validates_payload(client):
    response = client.post("/attribution/touchpoints", json={"session_id": ""})

    assert response.status_code == 422


def test_conversion_flow(client):
    client.post("/attribution/touchpoints", json=_touchpoint(affiliate_id="aff-1", offset_hours=-5))
    client.post("/attribution/touchpoints", json=_touchpoint(affiliate_id="aff-2", offset_hours=-1))

    response = client.post(
        "/attribution/conversions",
        json={"session_id": "s1", "order_id": "o1", "conversion_value": 100.0, "conversion_time": T0.isoformat()},
    )

    assert response.status_code == 200
    body = response.json()
    assert set(body["final_attribution"]) == {"aff-1", "aff-2"}
    assert sum(body["final_attribution"].values()) == pytest.approx(160.0)
    assert body["per_strategy_results"]["last_click"] == {"aff-1": 0.0, "aff-2": 100.0}
    assert 0.0 <= body["confidence"] <= 1.0

    fetched = client.get("/attribution/results/o1/s1")
    assert fetched.status_code == 200
    assert fetched.json()["final_attribution"] == body["final_attribution"]


def test_late_touchpoint_conflicts(client):
    client.post("/attribution/touchpoints", json=_touchpoint())
    client.post("/attribution/conversions", json={"session_id": "s1", "order_id": "o1", "conversion_value": 10})

    response = client.post("/attribution/touchpoints", json=_touchpoint(offset_hours=1))

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "ATTR_409"


def test_negative_conversion_value_rejected(client):
    response = client.post(
        "/attribution/conversions",
        json={"session_id": "s1", "order_id": "o1", "conversion_value": -5},
    )

    assert response.status_code == 422


def test_missing_result_is_404(client):
    response = client.get("/attribution/results/none/none")

    assert response.status_code == 404


def test_form_submission_route(client):
    response = client.post(
        "/attribution/form-submissions",
        json={
            "session_id": "s1",
            "affiliate_id": "aff-1",
            "form_data": {"name": "Jane Doe", "email": "jane@acme.io", "message": "request a demo"},
            "timestamp": T0.isoformat(),
            "referrer": "https://www.google.com/",
            "pages_visited": 4,
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["type"] == "form_submission"
    assert body["interaction_quality"] == pytest.approx(0.8)
    assert 0.01 <= body["conversion_probability"] <= 0.95
