from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.main import CurationPipeline, PipelineConfig
from src.models.content import Category
from src.server import create_app

from tests.fakes import FakeCandidateProvider, FakeWikidata, FakeWikipedia, make_record


@pytest.fixture
def client(scoring):
    def factory() -> CurationPipeline:
        wikipedia = FakeWikipedia(
            feeds={Category.EVENT: [make_record("India", 1947, excerpt="India gains independence from British rule.")]},
            html={"India": "Date of independence: 15 August 1947"},
        )
        return CurationPipeline(
            config=PipelineConfig(),
            wikipedia=wikipedia,
            wikidata=FakeWikidata(),
            ai_service=FakeCandidateProvider(),
            scoring=scoring,
        )

    return TestClient(create_app(factory))


def test_healthcheck(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "service": "on-this-day-curator"}


def test_history_success(client):
    response = client.post("/api/history", json={"date": "2024-08-15", "limit": "12"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["date"] == "2024-08-15"
    assert [e["title"] for e in body["events"]] == ["Independence of India"]
    assert body["totals"]["returned"] == 1


def test_history_invalid_date_is_a_bad_request(client):
    response = client.post("/api/history", json={"date": "August 15"})

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_INPUT"


def test_history_pipeline_failure_is_reported_in_body(client, monkeypatch):
    def explode(self, pool, n):
        raise RuntimeError("selector exploded")

    monkeypatch.setattr("src.main.QuotaSelector.select", explode)

    response = client.post("/api/history", json={"date": "2024-08-15"})

    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "error": "UPSTREAM_OR_PIPELINE_FAILURE",
        "detail": "RuntimeError: selector exploded",
    }


def test_pipeline_construction_failure_is_reported_in_body():
    def broken_factory() -> CurationPipeline:
        raise ValueError("could not convert string to float: 'abc'")

    client = TestClient(create_app(broken_factory))
    response = client.post("/api/history", json={"date": "2024-08-15"})

    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "error": "UPSTREAM_OR_PIPELINE_FAILURE",
        "detail": "ValueError: could not convert string to float: 'abc'",
    }
