import numpy as np
import pytest
from fastapi.testclient import TestClient

from backend.main import ModelHandle, create_app
from softreg.persistence import save_model


@pytest.fixture
def client(fitted_model, tmp_path):
    handle = ModelHandle(tmp_path / "model.json", model=fitted_model)
    return TestClient(create_app(handle))


def test_health_reports_loaded_model(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "model_loaded": True}


def test_predict_matches_model(client, fitted_model, random_matrix):
    response = client.post("/predict", json={"features": random_matrix.tolist()})
    assert response.status_code == 200
    body = response.json()
    assert body["predictions"] == fitted_model.predict(random_matrix).tolist()
    probs = np.array(body["probabilities"])
    np.testing.assert_allclose(probs.sum(axis=1), 1.0, atol=1e-9)
    np.testing.assert_allclose(body["confidence"], probs.max(axis=1))


@pytest.mark.parametrize(
    "features",
    [[], [[1.0, 2.0], [3.0]], [[1.0, 2.0, 3.0]]],
    ids=["empty", "ragged", "wrong-width"],
)
def test_predict_rejects_bad_input(client, features):
    response = client.post("/predict", json={"features": features})
    assert response.status_code == 400


def test_predict_without_model_fails(tmp_path):
    client = TestClient(create_app(ModelHandle(tmp_path / "missing.json")))
    response = client.post("/predict", json={"features": [[0.0, 0.0]]})
    assert response.status_code == 500
    assert response.json()["detail"] == "Model not loaded"
    assert client.get("/health").json()["model_loaded"] is False


def test_startup_loads_model_from_disk(fitted_model, tmp_path):
    path = tmp_path / "model.json"
    save_model(fitted_model, path)
    with TestClient(create_app(ModelHandle(path))) as client:
        assert client.get("/health").json()["model_loaded"] is True
        response = client.post("/predict", json={"features": [[2.0, 2.1]]})
        assert response.json()["predictions"] == [2]


def test_reload_swaps_in_file_model(fitted_model, tmp_path):
    path = tmp_path / "model.json"
    client = TestClient(create_app(ModelHandle(path)))
    save_model(fitted_model, path)

    response = client.post("/reload")
    assert response.status_code == 200
    assert response.json() == {"status": "reloaded", "n_features": 2, "n_classes": 3}
    assert client.get("/health").json()["model_loaded"] is True


def test_failed_reload_keeps_previous_model(client, tmp_path):
    (tmp_path / "model.json").write_text("{not json", encoding="utf-8")
    response = client.post("/reload")
    assert response.status_code == 500
    assert "Error loading model" in response.json()["detail"]
    assert client.post("/predict", json={"features": [[-1.0, -1.0]]}).json()["predictions"] == [0]


def test_startup_survives_binary_model_file(tmp_path):
    path = tmp_path / "model.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    with TestClient(create_app(ModelHandle(path))) as client:
        assert client.get("/health").json()["model_loaded"] is False


def test_predict_with_huge_features_is_a_client_error(client):
    response = client.post("/predict", json={"features": [[1e308, -1e308]]})
    assert response.status_code == 400
