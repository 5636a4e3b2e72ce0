"""Tests for the reports API."""

import json
from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from pydantic_ai.messages import ModelResponse, TextPart
from pydantic_ai.models.function import FunctionModel

from app.main import create_app
from app.services.enhancement_prompt import BLOCK_END, BLOCK_START
from app.workers.llm import ReportGenerationRunner


def parse_sse_events(text: str) -> List:
    events = []
    for line in text.strip().split("\n"):
        line = line.strip()
        if line.startswith("data: "):
            payload = line[6:]
            events.append(payload if payload == "[DONE]" else json.loads(payload))
    return events


@pytest.fixture
def seeded(client: TestClient, conversation_id):
    resp = client.post(
        "/reports/enhance",
        json={"conversation_id": conversation_id, "prompt": "Analyze AAPL"},
    )
    assert resp.status_code == 200
    return conversation_id


def test_enhance_creates_then_enhances(client: TestClient, conversation_id):
    resp = client.post(
        "/reports/enhance",
        json={"conversation_id": conversation_id, "prompt": "Analyze AAPL"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["context"]["metadata"]["version"] == 1
    assert body["context"]["state"]["report_type"] == "single"
    assert body["operations"][0]["section_id"] == "main-analysis"

    resp = client.post(
        "/reports/enhance",
        json={"conversation_id": conversation_id, "prompt": "Add technical indicators"},
    )
    assert resp.json()["context"]["metadata"]["version"] == 2


def test_enhance_requires_conversation_id(client: TestClient):
    resp = client.post("/reports/enhance", json={"conversation_id": "", "prompt": "x"})
    assert resp.status_code == 422


def test_enhance_stream(client: TestClient, conversation_id):
    resp = client.post(
        "/reports/enhance/stream",
        json={"conversation_id": conversation_id, "prompt": "Analyze AAPL"},
    )
    assert resp.status_code == 200
    assert "text/event-stream" in resp.headers["content-type"]
    events = parse_sse_events(resp.text)
    assert events[0]["type"] == "metadata"
    assert events[0]["context"]["assets"] == ["AAPL"]
    assert events[-1] == "[DONE]"
    assert events[-2]["type"] == "complete"
    assert events[-3]["type"] == "sections"
    chunks = [e["content"] for e in events[1:-3]]
    assert all(len(chunk) <= 2000 for chunk in chunks)
    assert 'id="main-analysis"' in "".join(chunks)


def test_get_report_and_404(client: TestClient, seeded):
    resp = client.get(f"/reports/{seeded}")
    assert resp.status_code == 200
    assert resp.json()["conversation_id"] == seeded
    assert client.get("/reports/unknown-conversation").status_code == 404


def test_list_reports_paginated(client: TestClient, seeded):
    resp = client.get("/reports", params={"page": 1, "size": 10})
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["items"][0]["conversation_id"] == seeded
    assert body["items"][0]["section_count"] == 1


def test_document_and_markdown(client: TestClient, seeded):
    resp = client.get(f"/reports/{seeded}/document")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert 'id="main-analysis"' in resp.text

    resp = client.get(f"/reports/{seeded}/markdown")
    body = resp.json()
    assert body["markdown"].startswith("# Stock Analysis")
    assert "Apple Inc." in body["markdown"]
    assert "<div" not in body["markdown"]
    assert body["stats"]["section_count"] == 1

    assert client.get("/reports/missing/document").status_code == 404


def test_generation_prompt(client: TestClient, seeded):
    resp = client.get(f"/reports/{seeded}/prompt", params={"prompt": "Add risks"})
    assert resp.status_code == 200
    assert "New Request: Add risks" in resp.text
    assert BLOCK_START in resp.text


def test_apply_generated(client: TestClient, seeded):
    output = (
        f'{BLOCK_START}{{"action": "add", "section": "Dividend History", "content": "<p>div</p>"}}{BLOCK_END}'
        f"{BLOCK_START}oops{BLOCK_END}"
    )
    resp = client.post(
        f"/reports/{seeded}/generated", json={"prompt": "dividends", "output": output}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["applied_blocks"] == 1
    assert body["skipped_blocks"] == 1
    assert "<p>div</p>" in body["response"]["document"]

    resp = client.post("/reports/missing/generated", json={"output": output})
    assert resp.status_code == 404


def test_generate_not_configured(client: TestClient, seeded):
    resp = client.post(f"/reports/{seeded}/generate", json={"prompt": "Add dividends"})
    assert resp.status_code == 503


def test_generate_with_model(store, conversation_id):
    def respond(messages, info):
        return ModelResponse(
            parts=[
                TextPart(
                    content=f'{BLOCK_START}{{"action": "add", "section": "Outlook", "content": "<p>outlook</p>"}}{BLOCK_END}'
                )
            ]
        )

    runner = ReportGenerationRunner(model=FunctionModel(respond))
    app = create_app(testing=True, store=store, generation_runner=runner)
    with TestClient(app) as c:
        c.post(
            "/reports/enhance",
            json={"conversation_id": conversation_id, "prompt": "Analyze AAPL"},
        )
        resp = c.post(f"/reports/{conversation_id}/generate", json={"prompt": "Add outlook"})
    assert resp.status_code == 200
    assert resp.json()["applied_blocks"] == 1
    assert store.get(conversation_id).find_section("outlook") is not None


def test_generate_runner_failure(store, conversation_id):
    runner = MagicMock(spec=ReportGenerationRunner)
    runner.generate = AsyncMock(side_effect=RuntimeError("upstream down"))
    app = create_app(testing=True, store=store, generation_runner=runner)
    with TestClient(app) as c:
        c.post(
            "/reports/enhance",
            json={"conversation_id": conversation_id, "prompt": "Analyze AAPL"},
        )
        resp = c.post(f"/reports/{conversation_id}/generate", json={"prompt": "x"})
    assert resp.status_code == 502
    assert store.get(conversation_id).metadata.version == 1


def test_insert_and_delete_section(client: TestClient, seeded):
    resp = client.post(
        f"/reports/{seeded}/sections",
        json={"prompt": "notes", "position": 1, "title": "Analyst Notes"},
    )
    assert resp.status_code == 201
    assert resp.json()["context"]["state"]["sections"][0]["id"] == "analyst-notes"

    resp = client.delete(f"/reports/{seeded}/sections/analyst-notes")
    assert resp.status_code == 200
    assert 'id="analyst-notes"' not in resp.json()["document"]

    assert client.delete(f"/reports/{seeded}/sections/analyst-notes").status_code == 404


def test_insert_section_rejects_zero_position(client: TestClient, seeded):
    resp = client.post(f"/reports/{seeded}/sections", json={"prompt": "x", "position": 0})
    assert resp.status_code == 422


def test_compress_within_bounds(client: TestClient, seeded):
    resp = client.post(f"/reports/{seeded}/compress")
    assert resp.status_code == 200
    assert resp.json()["compressed"] is False
    assert client.post("/reports/missing/compress").status_code == 404


def test_export_then_import(client: TestClient, seeded):
    exported = client.get(f"/reports/{seeded}/export")
    assert exported.status_code == 200

    app = create_app(testing=True)
    with TestClient(app) as other:
        resp = other.post("/reports/import", json={"serialized": exported.text})
        assert resp.status_code == 201
        assert resp.json()["conversation_id"] == seeded
        assert other.get(f"/reports/{seeded}").status_code == 200

        bad = other.post("/reports/import", json={"serialized": "{}"})
        assert bad.status_code == 400


def test_evict_idle(client: TestClient, clock, seeded):
    resp = client.post("/reports/evict", json={"max_age_minutes": 30})
    assert resp.json()["count"] == 0

    clock.advance(hours=2)
    resp = client.post("/reports/evict")
    assert resp.status_code == 200
    assert resp.json()["evicted"] == [seeded]
    assert client.get(f"/reports/{seeded}").status_code == 404


def test_health(client: TestClient):
    resp = client.get("/system/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["generation_enabled"] is False


def test_enhance_production_engine(conversation_id):
    # default wiring: the engine has no injected clock
    app = create_app(testing=True)
    with TestClient(app) as c:
        first = c.post(
            "/reports/enhance",
            json={"conversation_id": conversation_id, "prompt": "Analyze AAPL"},
        )
        second = c.post(
            "/reports/enhance",
            json={"conversation_id": conversation_id, "prompt": "Add technical indicators"},
        )
    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["context"]["metadata"]["version"] == 2


def test_enhance_context_lost_mid_call(client: TestClient, seeded):
    engine = client.app.state.engine
    with patch.object(engine, "enhance", return_value=None):
        resp = client.post(
            "/reports/enhance",
            json={"conversation_id": seeded, "prompt": "Add technical indicators"},
        )
        assert resp.status_code == 404
        stream = client.post(
            "/reports/enhance/stream",
            json={"conversation_id": seeded, "prompt": "Add technical indicators"},
        )
        assert stream.status_code == 404


def test_import_then_create_gets_fresh_id(client: TestClient, seeded):
    exported = client.get(f"/reports/{seeded}/export").text

    app = create_app(testing=True)
    with TestClient(app) as other:
        other.post("/reports/import", json={"serialized": exported})
        created = other.post(
            "/reports/enhance",
            json={"conversation_id": "another", "prompt": "Analyze MSFT"},
        )
        imported_id = other.get(f"/reports/{seeded}").json()["id"]
    assert created.json()["context"]["id"] != imported_id


def test_evict_forgets_conversation_locks(client: TestClient, clock, seeded):
    locks = client.app.state.locks
    assert len(locks) == 1
    clock.advance(hours=2)
    resp = client.post("/reports/evict")
    assert resp.json()["evicted"] == [seeded]
    assert len(locks) == 0
