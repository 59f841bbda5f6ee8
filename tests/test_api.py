# =============================================================================
# API Tests — HTTP Endpoints
# =============================================================================
#
# FastAPI TestClient with the table store and analyzer swapped through
# dependency_overrides: sample filings in memory, keyword rules, no
# database or LLM.
# =============================================================================

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.agents.requirements import REQ_EARNINGS_QUALITY, RuleBasedQueryAnalyzer
from app.api.deps import get_query_analyzer, get_table_store
from app.main import app
from app.services.events import ChunkReassembler, parse_frame
from app.services.table_store import InMemoryTableStore

SAMPLE_TABLES = Path(__file__).resolve().parent.parent / "data" / "samples" / "samsung_tables.json"
SAMSUNG = "00126380"
FULL_QUERY = (
    "Analyze earnings quality, accruals, cash flow vs net income, "
    "one-time items, M-Score, rating and specific concerns"
)


@pytest.fixture
def store():
    return InMemoryTableStore.from_json_file(SAMPLE_TABLES)


@pytest.fixture
def client(store):
    app.dependency_overrides[get_table_store] = lambda: store
    app.dependency_overrides[get_query_analyzer] = lambda: RuleBasedQueryAnalyzer()
    yield TestClient(app)
    app.dependency_overrides.clear()


def _stream_events(response) -> tuple[list[dict], bool]:
    """Parse an SSE body into reassembled events plus a saw-[DONE] flag."""
    reassembler = ChunkReassembler()
    events: list[dict] = []
    done = False
    for frame in response.text.split("\n\n"):
        if not frame.strip():
            continue
        event = parse_frame(frame)
        if event is None:
            done = True
            break
        complete = reassembler.feed(event)
        if complete is not None:
            events.append(complete)
    assert reassembler.pending == 0
    return events, done


# ---------------------------------------------------------------------------
# Test: Health and Companies
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == "0.1.0"


class TestCompanies:
    def test_list(self, client):
        body = client.get("/companies").json()
        assert body["total"] == len(body["companies"]) == 10
        samsung = body["companies"][0]
        assert samsung == {
            "name": "Samsung Electronics",
            "name_ko": "삼성전자",
            "code": SAMSUNG,
            "sector": "Technology",
            "has_data": True,
        }

    def test_get_one(self, client):
        assert client.get("/companies/00164779").json()["name"] == "SK Hynix"

    def test_unknown_is_404(self, client):
        assert client.get("/companies/00000000").status_code == 404


# ---------------------------------------------------------------------------
# Test: POST /earnings-quality
# ---------------------------------------------------------------------------


class TestEarningsQuality:
    def test_sample_filings(self, client):
        response = client.post("/earnings-quality", json={"corp_code": SAMSUNG})
        assert response.status_code == 200

        body = response.json()
        assert body["status"] == "success"
        assert body["rating"] == {"score": 83, "grade": "GOOD", "confidence": 0.85}
        assert body["metrics"]["operating_cf"] == 52_640_421
        assert body["alerts"][0]["severity"] == "warning"
        assert "-5.80%" in body["alerts"][0]["message"]
        assert set(body["insights"]) == {
            "accrualQuality", "cashFlowQuality", "manipulationRisk", "overallAssessment",
        }
        assert len(body["sources"]) == 3
        assert body["error"] is None

    def test_camel_case_alias(self, client):
        response = client.post("/earnings-quality", json={"corpCode": SAMSUNG})
        assert response.status_code == 200

    def test_missing_corp_code_is_422(self, client):
        assert client.post("/earnings-quality", json={}).status_code == 422

    def test_invalid_language_is_422(self, client):
        response = client.post(
            "/earnings-quality", json={"corp_code": SAMSUNG, "language": "fr"},
        )
        assert response.status_code == 422

    def test_store_failure_is_500_envelope(self, client):
        failing = AsyncMock()
        failing.fetch_tables.side_effect = RuntimeError("database unavailable")
        app.dependency_overrides[get_table_store] = lambda: failing

        response = client.post("/earnings-quality", json={"corp_code": SAMSUNG})
        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert body["error"] == "database unavailable"
        assert "total" in body["execution_time"]


# ---------------------------------------------------------------------------
# Test: POST /earnings-quality/requirements
# ---------------------------------------------------------------------------


class TestRequirements:
    def test_preview(self, client):
        response = client.post(
            "/earnings-quality/requirements",
            json={"query": "What is Samsung's earnings quality? Any red flags in accruals?"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["intent"] == "earnings_quality_analysis"
        assert len(body["requirements"]) == 2
        assert body["entities"]["company"] == "Samsung Electronics"
        assert body["complexity"] == "simple"

    def test_short_query_is_422(self, client):
        response = client.post("/earnings-quality/requirements", json={"query": "hi"})
        assert response.status_code == 422

    def test_missing_llm_key_is_503(self):
        with patch(
            "app.api.deps._get_query_analyzer",
            side_effect=ValueError("No Anthropic API key configured"),
        ):
            response = TestClient(app).post(
                "/earnings-quality/requirements", json={"query": "earnings quality"},
            )
        assert response.status_code == 503
        assert "API key" in response.json()["detail"]


# ---------------------------------------------------------------------------
# Test: POST /earnings-quality/orchestrated
# ---------------------------------------------------------------------------


class TestOrchestrated:
    def test_blank_query_is_400(self, client):
        response = client.post(
            "/earnings-quality/orchestrated", json={"corp_code": SAMSUNG, "query": "  "},
        )
        assert response.status_code == 400
        assert response.json() == {
            "status": "error",
            "error": "Corp code and query are required",
        }

    def test_blank_query_starts_no_run(self, client):
        analyzer = AsyncMock()
        app.dependency_overrides[get_query_analyzer] = lambda: analyzer

        response = client.post(
            "/earnings-quality/orchestrated", json={"corpCode": SAMSUNG, "query": ""},
        )
        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/json")
        assert "detail" not in response.json()
        analyzer.analyze.assert_not_called()

    def test_stream(self, client):
        response = client.post(
            "/earnings-quality/orchestrated",
            json={
                "corp_code": SAMSUNG,
                "query": FULL_QUERY,
            },
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events, done = _stream_events(response)
        assert done
        types = [e["type"] for e in events]
        assert types[0] == "message"
        assert types.index("analysis") < types.index("plan") < types.index("task_update")
        assert types[-1] == "result"

        result = events[-1]["data"]
        assert result["status"] == "success"
        assert result["rating"]["score"] == 83
        assert set(result["execution_time"]) == {
            "extraction", "calculation", "assessment", "total",
        }

        final_plan = [e for e in events if e["type"] == "plan"][-1]["data"]
        assert len(final_plan["tasks"]) == 9
        assert all(t["status"] == "completed" for t in final_plan["tasks"])

    def test_large_events_arrive_chunked(self, client):
        response = client.post(
            "/earnings-quality/orchestrated",
            json={"corp_code": SAMSUNG, "query": FULL_QUERY},
        )
        raw = [parse_frame(f) for f in response.text.split("\n\n") if f.strip()]
        chunks = [e for e in raw if e is not None and e["type"] == "chunk"]
        assert chunks
        assert all(len(c["chunk"].encode("utf-8")) <= 1000 for c in chunks)

    def test_confirmed_requirements(self, client):
        response = client.post(
            "/earnings-quality/orchestrated",
            json={
                "corpCode": SAMSUNG,
                "query": "anything at all",
                "confirmedRequirements": [REQ_EARNINGS_QUALITY],
            },
        )
        events, done = _stream_events(response)
        assert done
        analysis = next(e for e in events if e["type"] == "analysis")["data"]
        assert analysis["requirements"] == [REQ_EARNINGS_QUALITY]

    def test_failure_streams_error_without_done(self, client):
        analyzer = AsyncMock()
        analyzer.analyze.side_effect = RuntimeError("analyzer crashed")
        app.dependency_overrides[get_query_analyzer] = lambda: analyzer

        response = client.post(
            "/earnings-quality/orchestrated",
            json={"corp_code": SAMSUNG, "query": "earnings quality"},
        )
        events, done = _stream_events(response)
        assert not done
        assert events[-1] == {"type": "error", "data": {"message": "analyzer crashed"}}
