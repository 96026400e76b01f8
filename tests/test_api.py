from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from doc_resizer.api import create_app
from doc_resizer.client import DocsClient
from doc_resizer.config import AppConfig, RuntimeConfig
from doc_resizer.core import ResizeService

from docfixtures import DocBuilder, FakeDocsServer


def build_client(tmp_path: Path, server: FakeDocsServer) -> TestClient:
    config = AppConfig(runtime=RuntimeConfig(output_dir=tmp_path / "runs", enable_local_api=True))

    def factory(token: str) -> DocsClient:
        return DocsClient(token, base_url="https://docs.test/v1", transport=httpx.MockTransport(server))

    service = ResizeService(config, client_factory=factory, sleep=lambda _: None)
    return TestClient(create_app(config=config, service=service))


def sample_server() -> FakeDocsServer:
    builder = DocBuilder(document_id="doc-1")
    builder.heading("Intro", 1)
    builder.inline_image("kix.a")
    builder.heading("Later", 1)
    builder.inline_image("kix.b")
    return FakeDocsServer(builder.build())


def test_health(tmp_path: Path) -> None:
    client = build_client(tmp_path, sample_server())
    assert client.get("/health").json() == {"status": "ok"}


def test_structure_requires_bearer_token(tmp_path: Path) -> None:
    client = build_client(tmp_path, sample_server())
    response = client.post("/api/v1/documents/doc-1/structure")
    assert response.status_code == 401


def test_structure_lists_headings(tmp_path: Path) -> None:
    client = build_client(tmp_path, sample_server())
    response = client.post("/api/v1/documents/doc-1/structure", headers={"Authorization": "Bearer tok"})
    assert response.status_code == 200
    payload = response.json()
    assert [item["title"] for item in payload["items"]] == ["Intro", "Later"]
    assert payload["items"][0]["image_count"] == 1


def test_resize_with_scope(tmp_path: Path) -> None:
    server = sample_server()
    client = build_client(tmp_path, server)
    structure = client.post("/api/v1/documents/doc-1/structure", headers={"Authorization": "Bearer tok"}).json()
    later = structure["items"][1]
    response = client.post(
        "/api/v1/documents/doc-1/resize",
        headers={"Authorization": "Bearer tok"},
        json={
            "target_width_cm": 10,
            "scopes": [{"start_index": later["start_index"], "end_index": later["scope_end_index"]}],
        },
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["results"] == {"total": 1, "success": 1, "failed": 0, "skipped": 0}
    assert list(payload["new_id_mapping"]) == ["kix.b"]


def test_resize_with_property_update_strategy(tmp_path: Path) -> None:
    server = sample_server()
    client = build_client(tmp_path, server)
    response = client.post(
        "/api/v1/documents/doc-1/resize",
        headers={"Authorization": "Bearer tok"},
        json={"target_width_cm": 5, "selected_image_ids": ["kix.a"], "strategy": "property_update"},
    )
    assert response.status_code == 200
    assert response.json()["new_id_mapping"] == {}
    assert [list(operation) for operation in server.batches[0]] == [["updateEmbeddedObjectSize"]]


def test_resize_rejects_unknown_strategy(tmp_path: Path) -> None:
    client = build_client(tmp_path, sample_server())
    response = client.post(
        "/api/v1/documents/doc-1/resize",
        headers={"Authorization": "Bearer tok"},
        json={"target_width_cm": 5, "strategy": "teleport"},
    )
    assert response.status_code == 422


def test_resize_rejects_non_positive_width(tmp_path: Path) -> None:
    client = build_client(tmp_path, sample_server())
    response = client.post(
        "/api/v1/documents/doc-1/resize",
        headers={"Authorization": "Bearer tok"},
        json={"target_width_cm": 0},
    )
    assert response.status_code == 422


def test_fetch_failure_maps_to_bad_gateway(tmp_path: Path) -> None:
    client = build_client(tmp_path, sample_server())
    response = client.post(
        "/api/v1/documents/missing/resize",
        headers={"Authorization": "Bearer tok"},
        json={"target_width_cm": 5},
    )
    assert response.status_code == 502
    assert response.json()["detail"] == "FETCH_FAILED"


def test_disabled_api_raises(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError):
        create_app(config=AppConfig(runtime=RuntimeConfig(output_dir=tmp_path)))
