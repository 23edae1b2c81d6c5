"""Tests for the public HTTP endpoints."""

import base64
import json

from fastapi.testclient import TestClient

from nutrition_pipeline.api.app import create_app
from tests.conftest import JPEG_BYTES


def test_health_endpoint(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_text_analysis_endpoint(container, completion_client) -> None:
    completion_client.responses.append(
        json.dumps({"meal_name": "Hummus Plate", "calories": 350, "protein_g": 12})
    )
    client = TestClient(create_app(container))

    response = client.post(
        "/analysis/text", json={"description": "hummus with pita", "language": "he-IL"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["tier"] == "strict"
    assert body["reason"] is None
    assert body["data"]["name"] == "Hummus Plate"
    assert body["data"]["calories"] == 350


def test_image_analysis_endpoint_degrades(container, completion_client) -> None:
    completion_client.responses.append(RuntimeError("model down"))
    client = TestClient(create_app(container))

    response = client.post(
        "/analysis/image",
        json={"image_base64": base64.b64encode(JPEG_BYTES).decode()},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["tier"] == "synthetic"
    assert body["reason"] == "model_error"
    assert body["data"]["ingredients"]


def test_invalid_inputs_return_400(container, completion_client) -> None:
    client = TestClient(create_app(container))

    empty = client.post("/analysis/text", json={"description": "   "})
    bad_image = client.post("/analysis/image", json={"image_base64": "not an image"})
    empty_chat = client.post("/chat", json={"message": ""})

    assert empty.status_code == 400
    assert bad_image.status_code == 400
    assert empty_chat.status_code == 400
    assert completion_client.calls == []


def test_update_analysis_endpoint(container) -> None:
    container.analysis_service.client = None
    client = TestClient(create_app(container))

    response = client.post(
        "/analysis/update",
        json={
            "analysis": {"meal_name": "Rice Bowl", "calories": 400, "protein_g": 10},
            "update_text": "it was a large portion",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["data"]["name"] == "Rice Bowl (Updated)"
    assert body["data"]["calories"] == 520


def test_meal_plan_endpoints(container) -> None:
    client = TestClient(create_app(container))

    plan = client.post("/meal-plans", json={"snacks_per_day": 1})
    replacement = client.post(
        "/meal-plans/replacement",
        json={"current_meal": {"name": "Pasta", "meal_timing": "DINNER"}},
    )

    assert plan.status_code == 200
    assert plan.json()["degraded"] is True
    assert len(plan.json()["plan"]["weekly_plan"]) == 7
    assert len(plan.json()["plan"]["weekly_plan"][0]["meals"]) == 4
    assert replacement.status_code == 200
    assert replacement.json()["meal_timing"] == "DINNER"


def test_chat_endpoint(container, completion_client) -> None:
    completion_client.responses.append("Have some yogurt.")
    client = TestClient(create_app(container))

    response = client.post(
        "/chat",
        json={
            "message": "Snack ideas?",
            "context": {"allergies": ["nuts"]},
            "history": [{"role": "assistant", "content": "Hello!"}],
            "language": "english",
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "text": "Have some yogurt.",
        "degraded": False,
        "locale": "en",
    }
    assert len(completion_client.calls[0]["messages"]) == 3


def test_price_endpoints(container, completion_client) -> None:
    completion_client.responses.append(
        json.dumps([{"name": "milk", "price_per_100g": 0.7, "confidence": "high"}])
    )
    client = TestClient(create_app(container))

    batch = client.post(
        "/prices/batch",
        json={"items": [{"name": "Milk", "category": "dairy"}, {"name": "Saffron"}]},
    )
    product = client.post(
        "/prices/product", json={"name": "milk", "category": "dairy", "quantity": 1000}
    )
    meal = client.post("/prices/meal", json={"ingredients": []})
    invalid = client.post("/prices/batch", json={"items": []})

    assert batch.status_code == 200
    assert batch.json()["Milk"]["confidence"] == "high"
    assert batch.json()["Saffron"]["estimated_price"] == 10
    assert product.json()["estimated_price"] == 7
    assert product.json()["currency"] == "ILS"
    assert len(completion_client.calls) == 1
    assert meal.json()["total_cost"] == 0
    assert invalid.status_code == 422


def test_menu_price_endpoint_falls_back(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/prices/menu",
        json={
            "meals": [
                {"name": "Breakfast", "ingredients": [{"name": "oats"}]},
                {"name": "Dinner", "ingredients": [{"name": "fish"}]},
            ]
        },
    )

    assert response.status_code == 200
    assert response.json()["total_cost"] == 40
    assert response.json()["confidence"] == "low"
