"""API endpoint tests."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGateway, response_dict, signal_dict
from signal_compiler.api import app, get_catalog, get_gateway, get_settings, get_store
from signal_compiler.exceptions import InferenceTransportError
from signal_compiler.settings import Settings
from signal_compiler.store import FileRunStore


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(response_dict([signal_dict("S1"), signal_dict("S2", quotes=[])]))


@pytest.fixture
def client(catalog, store, artifacts_dir: Path, gateway: FakeGateway):
    settings = Settings(default_pack="demo_pack", search_roots=[str(artifacts_dir)])
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "timestamp" in data


def test_list_packs(client: TestClient) -> None:
    response = client.get("/packs")

    assert response.status_code == 200
    assert response.json() == [
        {"id": "demo_pack", "name": "Demo pack", "file_count": 5},
        {"id": "other_pack", "name": "other_pack", "file_count": 1},
    ]


class TestCompile:
    def test_compile_pack(self, client: TestClient, store) -> None:
        response = client.post("/packs/demo_pack/compile")

        assert response.status_code == 200
        data = response.json()
        assert data["case_id"] == "demo_case"
        assert [s["id"] for s in data["signals"]] == ["S1"]
        assert [d["id"] for d in data["drops"]] == ["D_S2"]
        assert data["drops"][0]["reason"] == "MISSING_EVIDENCE"
        assert "_cached" not in data
        assert store.exists("demo_pack")

    def test_compile_default_pack(self, client: TestClient) -> None:
        response = client.post("/compile")

        assert response.status_code == 200
        assert response.json()["case_id"] == "demo_case"

    def test_unknown_pack(self, client: TestClient, store, gateway: FakeGateway) -> None:
        response = client.post("/packs/nope/compile")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "UnknownPack"
        assert data["known_packs"] == ["demo_pack", "other_pack"]
        assert gateway.calls == []
        assert not store.root.exists()

    def test_no_artifacts(self, client: TestClient) -> None:
        response = client.post("/packs/other_pack/compile")

        assert response.status_code == 422
        assert response.json()["error"] == "NoArtifacts"

    def test_inference_failure_falls_back_to_cached_run(self, client: TestClient, gateway: FakeGateway) -> None:
        first = client.post("/packs/demo_pack/compile").json()
        gateway.error = InferenceTransportError("provider unavailable")

        response = client.post("/packs/demo_pack/compile")

        assert response.status_code == 200
        data = response.json()
        assert data.pop("_cached") is True
        assert data == first

    def test_inference_failure_without_cache(self, client: TestClient, gateway: FakeGateway) -> None:
        gateway.error = InferenceTransportError("provider unavailable")

        response = client.post("/packs/demo_pack/compile")

        assert response.status_code == 502
        assert response.json() == {"error": "InferenceTransportError", "detail": "provider unavailable"}


class TestExport:
    def test_latest_run_requires_a_compile(self, client: TestClient) -> None:
        response = client.get("/packs/demo_pack/runs/latest")

        assert response.status_code == 404
        assert response.json()["error"] == "NoCachedRun"

    def test_latest_run(self, client: TestClient) -> None:
        client.post("/packs/demo_pack/compile")

        response = client.get("/packs/demo_pack/runs/latest")

        assert response.status_code == 200
        data = response.json()
        assert data["run_meta"]["run_id"].endswith("_demo_pack")
        assert data["run_meta"]["model"] == "fake-model"
        assert len(data["inputs"]) == 5
        assert all(len(d["sha256"]) == 64 for d in data["inputs"])
        assert [e["id"] for e in data["evidence"]] == ["ev_1"]

    def test_latest_run_unknown_pack(self, client: TestClient) -> None:
        assert client.get("/packs/nope/runs/latest").status_code == 400

    def test_report_markdown(self, client: TestClient) -> None:
        client.post("/packs/demo_pack/compile")

        response = client.get("/packs/demo_pack/report.md")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/markdown")
        assert response.text.startswith("# Signal Report: `demo_pack`")
        assert "| High | 1 |" in response.text

    def test_report_requires_a_compile(self, client: TestClient) -> None:
        assert client.get("/packs/demo_pack/report.md").status_code == 404


class _BrokenStore(FileRunStore):
    def load_latest(self, pack_id):
        raise RuntimeError("store offline")


def test_unexpected_error_returns_json_body(catalog, tmp_path: Path) -> None:
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_store] = lambda: _BrokenStore(tmp_path / "runs")
    try:
        with TestClient(app, raise_server_exceptions=False) as c:
            response = c.get("/packs/demo_pack/runs/latest")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "InternalError", "detail": "RuntimeError: store offline"}
