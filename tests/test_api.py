import pytest
from fastapi.testclient import TestClient

from rifornimenti.api.main import app
from rifornimenti.api.routes import get_orchestrator
from rifornimenti.errors import UpstreamRateLimited

from conftest import AUTH, IMAGE_B64, FakeCompletionClient


@pytest.fixture
def client_for(make_orchestrator):
    def _client(**kwargs):
        orchestrator = make_orchestrator(**kwargs)
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


def test_health(client_for):
    r = client_for().get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_ocr_receipt_success(client_for):
    r = client_for().post("/ocr-receipt", json={"image_base64": IMAGE_B64}, headers={"Authorization": AUTH})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["available_fuel_types"] == ["Diesel", "Benzina", "GPL"]

    data = body["data"]
    assert data["targa"] == "AB123CD"
    assert data["tipo_carburante"] == "Diesel"
    assert data["importo_totale"] == 81.4
    assert data["chilometraggio"] == 125000
    assert data["confidence_score"] == 100
    assert "validation_warnings" not in data
    assert data["raw_text"].startswith("ENI STATION")


def test_ocr_receipt_empty_text_has_no_confidence(client_for):
    r = client_for(text="").post("/ocr-receipt", json={"image_base64": IMAGE_B64}, headers={"Authorization": AUTH})
    assert r.status_code == 200
    data = r.json()["data"]
    assert "confidence_score" not in data
    assert data["raw_text"] == "Nessun testo estratto dall'immagine"
    assert data["targa"] is None


def test_ocr_receipt_warnings_are_exposed(client_for):
    r = client_for(reply="niente json").post(
        "/ocr-receipt", json={"image_base64": IMAGE_B64}, headers={"Authorization": AUTH}
    )
    data = r.json()["data"]
    assert data["confidence_score"] == 0
    assert data["validation_warnings"][0] == "parse failure"


def test_ocr_receipt_requires_auth(client_for):
    r = client_for().post("/ocr-receipt", json={"image_base64": IMAGE_B64})
    assert r.status_code == 401
    assert r.json() == {"error": "Non autorizzato - header mancante"}


def test_ocr_receipt_missing_image(client_for):
    r = client_for().post("/ocr-receipt", json={}, headers={"Authorization": AUTH})
    assert r.status_code == 400
    assert r.json() == {"error": "Immagine non fornita"}


def test_ocr_receipt_rate_limited(client_for):
    client = FakeCompletionClient(exc=UpstreamRateLimited("Limite richieste Gemini superato."))
    r = client_for(client=client).post(
        "/ocr-receipt", json={"image_base64": IMAGE_B64}, headers={"Authorization": AUTH}
    )
    assert r.status_code == 429
    assert r.json() == {"error": "Limite richieste Gemini superato."}


def test_ocr_receipt_non_finite_model_numbers(client_for):
    r = client_for(reply='{"quantita": NaN, "chilometraggio": Infinity}').post(
        "/ocr-receipt", json={"image_base64": IMAGE_B64}, headers={"Authorization": AUTH}
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["quantita"] == 45.5
    assert data["chilometraggio"] == 125000
