import logging
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from agriml.envelope import utcnow
from agriml.errors import ModelLoadError
from agriml.risk_models import flood_model
from main import create_app

FLOOD_PAYLOAD = {
    "rainfall_24h": 150,
    "rainfall_7d": 300,
    "elevation": 50,
    "slope": 2,
    "river_distance": 200,
    "location": {"country": "Nigeria", "region": "Benue", "lat": 7.3, "lng": 8.7},
}


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "live" in response.json()["message"]


def test_predict_flood(client):
    response = client.post("/predict/flood", json=FLOOD_PAYLOAD)
    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "flood"
    assert body["prediction"]["value"] == "high"
    assert body["prediction"]["severity"] == "high"
    assert body["prediction"]["confidence"] == 0.9
    assert body["location"]["region"] == "Benue"
    assert body["input_data"]["humidity"] == 60
    assert "location" not in body["input_data"]
    assert body["model_info"]["accuracy"] == 0.85
    assert body["status"] == "active"


def test_predict_drought_defaults(client):
    body = client.post("/predict/drought", json={}).json()
    assert body["type"] == "drought"
    assert body["prediction"]["severity"] == "low"
    assert body["prediction"]["confidence"] == 0.75
    assert body["location"]["country"] == "unknown"


def test_predict_crops(client):
    body = client.post("/predict/crops", json={"ph": 6.2, "rainfall": 1200, "temperature": 27}).json()
    assert [rec["crop"] for rec in body["prediction"]["value"]] == ["cassava", "maize", "yam", "sorghum"]
    assert body["prediction"]["confidence"] == 0.85


def test_predict_price_heuristic(client):
    body = client.post("/predict/price", json={"crop": "maize", "historical_price": 220, "days_ahead": 14}).json()
    assert body["type"] == "price"
    assert body["prediction"]["value"]["current_price"] == 220
    assert body["input_data"]["crop"] == "maize"
    assert body["model_info"]["algorithm"] == "Supply-Demand Heuristic"


def test_predict_price_linear_history(client):
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    history = [
        {"date": (start + timedelta(days=i)).isoformat(), "price": 100 + 2 * i}
        for i in range(30)
    ]
    payload = {"crop": "rice", "method": "linear", "days_ahead": 10, "history": history, "historical_price": 158}
    first = client.post("/predict/price", json=payload).json()
    second = client.post("/predict/price", json=payload).json()
    assert abs(first["prediction"]["value"]["predicted_price"] - 178) < 0.5
    assert first["prediction"]["value"] == second["prediction"]["value"]


def test_predict_price_requires_crop(client):
    assert client.post("/predict/price", json={"supply": 10}).status_code == 422


def test_list_and_validate(client):
    created = client.post("/predict/flood", json=FLOOD_PAYLOAD).json()
    client.post("/predict/drought", json={})

    listed = client.get("/predictions", params={"type": "flood"}).json()
    assert [record["id"] for record in listed] == [created["id"]]

    response = client.put(
        f"/predictions/{created['id']}/validate",
        json={"actual_value": "high", "accuracy": 0.92, "validated_by": "field-team"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "validated"
    assert body["validation"]["accuracy"] == 0.92
    assert body["prediction"] == created["prediction"]


def test_validate_unknown_prediction(client):
    response = client.put("/predictions/missing/validate", json={"accuracy": 0.5})
    assert response.status_code == 404
    assert "missing" in response.json()["error"]


def test_validate_rejects_out_of_range_accuracy(client):
    created = client.post("/predict/drought", json={}).json()
    assert client.put(f"/predictions/{created['id']}/validate", json={"accuracy": 1.5}).status_code == 422


def test_status_and_info(client):
    status = client.get("/ml/status").json()
    assert status["models"]["flood"]["mode"] == "rule_based"

    info = client.get("/ml/models/crop/info").json()
    assert info["name"] == "Crop Recommendation Model"

    response = client.get("/ml/models/pest/info")
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid model type: pest"}


def test_retrain_rejects_non_csv(client):
    response = client.post("/ml/retrain", files={"file": ("data.txt", b"a,b\n1,2\n", "text/plain")})
    assert response.status_code == 400
    assert response.json() == {"error": "File must be a CSV."}


def test_retrain_rejects_csv_without_targets(client):
    response = client.post("/ml/retrain", files={"file": ("data.csv", b"a,b\n1,2\n", "text/csv")})
    assert response.status_code == 400
    assert "No target column" in response.json()["error"]


def test_retrain_switches_models(client, training_frame):
    csv = training_frame.to_csv(index=False).encode()
    response = client.post("/ml/retrain", files={"file": ("training.csv", csv, "text/csv")})
    assert response.status_code == 200
    assert response.json()["results"]["flood"]["rows"] == len(training_frame)

    status = client.get("/ml/status").json()["models"]
    assert status["flood"]["mode"] == "trained"
    assert status["crop"]["mode"] == "trained"

    body = client.post("/predict/flood", json=FLOOD_PAYLOAD).json()
    assert body["model_info"]["algorithm"] == "Gradient Boosted Trees"


def test_regression_price_without_current_price_uses_last_history_point(client):
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    history = [
        {"date": (start + timedelta(days=i)).isoformat(), "price": 100 + 2 * i}
        for i in range(30)
    ]
    body = client.post(
        "/predict/price", json={"crop": "rice", "method": "linear", "days_ahead": 10, "history": history}
    ).json()
    assert body["prediction"]["value"]["current_price"] == 158
    assert body["input_data"]["historical_price"] is None


def test_regression_price_on_synthetic_history_reports_market_price(client):
    body = client.post("/predict/price", json={"crop": "cocoa", "method": "linear"}).json()
    # synthetic cocoa series never drops below half its 2500 base
    assert body["prediction"]["value"]["current_price"] >= 1250


def test_heuristic_price_without_current_price_defaults_to_200(client):
    body = client.post("/predict/price", json={"crop": "maize"}).json()
    assert body["prediction"]["value"]["current_price"] == 200


def test_high_risk_predictions(client):
    flood = client.post("/predict/flood", json=FLOOD_PAYLOAD).json()
    client.post("/predict/drought", json={})
    client.post("/predict/flood", json={})

    listed = client.get("/predictions/high-risk").json()
    assert [record["id"] for record in listed] == [flood["id"]]

    assert client.get("/predictions/high-risk", params={"min_confidence": 0.95}).json() == []


def test_listing_expires_ended_predictions(client, store):
    past = utcnow() - timedelta(days=30)
    features = {"rainfall_24h": 150}
    stale = store.create(flood_model().predict(features, past), features, now=past)
    fresh = client.post("/predict/flood", json=FLOOD_PAYLOAD).json()

    active = client.get("/predictions").json()
    assert [record["id"] for record in active] == [fresh["id"]]

    everything = client.get("/predictions", params={"active_only": False}).json()
    statuses = {record["id"]: record["status"] for record in everything}
    assert statuses == {fresh["id"]: "active", stale.id: "expired"}


def test_predictions_persist_across_apps(client, settings, service):
    created = client.post("/predict/flood", json=FLOOD_PAYLOAD).json()

    app = create_app(settings=settings, service=service)
    try:
        with TestClient(app) as restarted:
            listed = restarted.get("/predictions").json()
    finally:
        app.state.store.close()
    assert [record["id"] for record in listed] == [created["id"]]


def test_server_side_model_error_is_logged_with_traceback(client, service, monkeypatch, caplog):
    def broken_status():
        raise ModelLoadError("Could not load flood_model.pkl")

    monkeypatch.setattr(service, "model_status", broken_status)
    with caplog.at_level(logging.ERROR, logger="agriml"):
        response = client.get("/ml/status")

    assert response.status_code == 500
    assert response.json() == {"error": "Could not load flood_model.pkl"}
    failures = [record for record in caplog.records if "/ml/status failed" in record.getMessage()]
    assert failures and failures[-1].exc_info is not None


def test_price_input_data_holds_only_model_inputs(client):
    body = client.post("/predict/price", json={"crop": "maize", "storage_cost": 75}).json()
    assert set(body["input_data"]) == {
        "crop", "historical_price", "supply", "demand", "season",
        "weather_impact", "fuel_price", "exchange_rate",
    }
