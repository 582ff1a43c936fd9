"""
Tests for API Contract
======================

Ensures every endpoint returns valid JSON with the expected structure
and status code, for both success and error cases.
"""

import pytest
import json
import os
from pathlib import Path

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fastapi.testclient import TestClient
from dispute_backend import pipeline as pipeline_module
from dispute_backend.api import app
from dispute_backend.extractor import FactExtractor
from dispute_backend.generator import FormGenerator
from dispute_backend.pipeline import CasePipeline, ExtractionStage, GenerationStage
from dispute_backend.schemas import (
    DocumentsResponse,
    ExtractedFacts,
    HealthResponse,
    RecommendedState,
    RoutingResponse,
)


# =============================================================================
# Test Client
# =============================================================================

@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client over a fresh SQLite DB and a backend-free pipeline"""
    from dispute_backend.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = f"sqlite:///{tmp_path / 'api.db'}"
    reset_engine()
    init_db()

    monkeypatch.setattr(pipeline_module, "_pipeline", CasePipeline(
        extraction=ExtractionStage(FactExtractor(backend=None, use_llm=False)),
        generation=GenerationStage(FormGenerator(backend=None)),
    ))

    yield TestClient(app)

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


@pytest.fixture
def debt_case():
    """Load the unpaid invoice fixture"""
    fixture_path = Path(__file__).parent / "fixtures" / "debt_transcript.json"
    with open(fixture_path, 'r', encoding='utf-8') as f:
        return json.load(f)


@pytest.fixture
def employment_strategy():
    return {
        "dispute_type": "employment",
        "key_facts": [
            "I was employed as a warehouse operative by Northside Logistics Ltd",
            "My contract said I would be paid monthly",
            "My March wages were not paid",
            "I raised a grievance on 2 April 2025",
            "The grievance was ignored",
        ],
        "evidence_mentioned": ["Payslips for January and February"],
        "desired_outcome": "Compensation for unpaid wages",
    }


def create_case(client, title="Unpaid cleaning invoice"):
    response = client.post("/api/v1/cases", json={"title": title})
    assert response.status_code == 201
    return response.json()["case_id"]


def store_ready_extraction(case_id, dispute_type, evidence_count=1):
    """Persist an extraction that reached the summary step"""
    from dispute_backend.db.session import get_db_session
    from dispute_backend.gathering import build_gathering_state
    from dispute_backend.persistence import save_extraction

    extracted = ExtractedFacts(
        dispute_type=dispute_type,
        readiness_score=100,
        recommended_state=RecommendedState.CONFIRMING_SUMMARY,
    )
    with get_db_session() as db:
        save_extraction(db, case_id, extracted, evidence_count, build_gathering_state([], extracted, evidence_count))


def extract_debt_case(client, case_id, debt_case):
    response = client.post(f"/api/v1/cases/{case_id}/extract", json={"transcript": debt_case["transcript"]})
    assert response.status_code == 200


# =============================================================================
# Health Check Tests
# =============================================================================

class TestHealthEndpoint:
    """Tests for /health endpoint"""

    def test_health_returns_valid_json(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        HealthResponse(**data)
        assert data["status"] == "healthy"
        assert "llm_mode" in data


# =============================================================================
# Case lifecycle
# =============================================================================

class TestCaseFlow:
    """Create -> extract -> confirm -> plan -> generate over HTTP"""

    def test_create_case(self, client):
        response = client.post("/api/v1/cases", json={"title": "Unpaid cleaning invoice"})
        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Unpaid cleaning invoice"
        assert data["case_id"]
        assert "created_at" in data

    def test_state_before_extraction(self, client):
        case_id = create_case(client)
        response = client.get(f"/api/v1/cases/{case_id}/state")
        assert response.status_code == 200
        assert response.json()["stage"] == "INITIAL"

    def test_full_flow(self, client, debt_case):
        case_id = create_case(client, debt_case["case_title"])

        response = client.post(f"/api/v1/cases/{case_id}/extract", json={
            "transcript": debt_case["transcript"],
            "evidence_count": 0,
        })
        assert response.status_code == 200
        assert response.json()["state"]["stage"] == "READY_FOR_ROUTING"

        response = client.post(f"/api/v1/cases/{case_id}/confirm", json={
            "strategy": debt_case["strategy"],
            "evidence": debt_case["evidence"],
        })
        assert response.status_code == 200
        routing = RoutingResponse(**response.json())
        assert routing.decision.forum == "county_court_small_claims"
        assert routing.gate.allowed

        response = client.get(f"/api/v1/cases/{case_id}/routing")
        assert response.status_code == 200
        assert response.json()["decision"]["forum"] == "county_court_small_claims"

        response = client.post(f"/api/v1/cases/{case_id}/plan", json={"strategy": debt_case["strategy"]})
        assert response.status_code == 201
        assert response.json()["complexity"] == "SIMPLE"

        response = client.post(f"/api/v1/cases/{case_id}/generate", json={"evidence": debt_case["evidence"]})
        assert response.status_code == 200
        documents = DocumentsResponse(**response.json()).documents
        assert len(documents) == 1
        assert documents[0].status.value == "GENERATED"
        assert documents[0].audit.passed

        response = client.get(f"/api/v1/cases/{case_id}/documents")
        assert response.status_code == 200
        assert response.json()["documents"][0]["content"] == documents[0].content

    def test_reject_routing(self, client, debt_case):
        case_id = create_case(client)
        extract_debt_case(client, case_id, debt_case)
        client.post(f"/api/v1/cases/{case_id}/confirm", json={"strategy": debt_case["strategy"]})

        response = client.post(f"/api/v1/cases/{case_id}/routing/reject")
        assert response.status_code == 200
        assert response.json()["stage"] == "FACTS_GATHERING"

    def test_rejected_routing_blocks_generation(self, client, debt_case):
        case_id = create_case(client)
        extract_debt_case(client, case_id, debt_case)
        client.post(f"/api/v1/cases/{case_id}/confirm", json={"strategy": debt_case["strategy"]})
        client.post(f"/api/v1/cases/{case_id}/plan", json={"strategy": debt_case["strategy"]})
        client.post(f"/api/v1/cases/{case_id}/routing/reject")

        gate = client.get(f"/api/v1/cases/{case_id}/routing").json()["gate"]
        assert not gate["allowed"]
        assert gate["error"] == "Routing decision was rejected by the user"

        response = client.post(f"/api/v1/cases/{case_id}/generate", json={"evidence": debt_case["evidence"]})
        assert response.status_code == 409
        assert response.json()["detail"]["gate_name"] == "GATE_2_STATUS_APPROVED"

        documents = client.get(f"/api/v1/cases/{case_id}/documents").json()["documents"]
        assert all(d["status"] == "PENDING" for d in documents)

    def test_generate_with_interest(self, client, debt_case):
        case_id = create_case(client)
        extract_debt_case(client, case_id, debt_case)
        client.post(f"/api/v1/cases/{case_id}/confirm", json={"strategy": debt_case["strategy"]})
        client.post(f"/api/v1/cases/{case_id}/plan", json={"strategy": debt_case["strategy"]})

        response = client.post(f"/api/v1/cases/{case_id}/generate", json={
            "evidence": debt_case["evidence"],
            "include_interest": True,
            "interest_from": "2025-03-03",
        })
        assert response.status_code == 200
        letter = response.json()["documents"][0]
        assert letter["status"] == "GENERATED"
        assert "Total including interest: £" in letter["content"]
        assert "Interest at 8% per annum for " in letter["content"]


# =============================================================================
# Planning
# =============================================================================

class TestPlanEndpoints:
    """Plan status codes"""

    def test_incomplete_strategy_returns_422(self, client):
        case_id = create_case(client)
        response = client.post(f"/api/v1/cases/{case_id}/plan", json={"strategy": {"key_facts": []}})
        assert response.status_code == 422

        data = response.json()
        assert "error" in data
        assert data["detail"]["missing_fields"] == ["disputeType", "desiredOutcome", "keyFacts"]

        response = client.get(f"/api/v1/cases/{case_id}/plan")
        assert response.status_code == 404

    def test_second_plan_returns_409(self, client, employment_strategy):
        case_id = create_case(client)
        response = client.post(f"/api/v1/cases/{case_id}/plan", json={"strategy": employment_strategy})
        assert response.status_code == 201

        response = client.post(f"/api/v1/cases/{case_id}/plan", json={"strategy": employment_strategy})
        assert response.status_code == 409
        assert "error" in response.json()

    def test_delete_plan(self, client, employment_strategy):
        case_id = create_case(client)
        client.post(f"/api/v1/cases/{case_id}/plan", json={"strategy": employment_strategy})

        response = client.delete(f"/api/v1/cases/{case_id}/plan")
        assert response.status_code == 200
        assert response.json() == {"deleted": True}

        response = client.delete(f"/api/v1/cases/{case_id}/plan")
        assert response.status_code == 404


# =============================================================================
# Error cases
# =============================================================================

class TestErrorResponses:
    """Gate rejections and missing resources"""

    def test_blocked_case_returns_409(self, client, employment_strategy):
        case_id = create_case(client, "Unpaid wages")
        store_ready_extraction(case_id, "employment")
        response = client.post(f"/api/v1/cases/{case_id}/confirm", json={"strategy": employment_strategy})
        assert response.status_code == 200
        routing = response.json()
        assert routing["decision"]["status"] == "BLOCKED"
        assert not routing["gate"]["allowed"]

        client.post(f"/api/v1/cases/{case_id}/plan", json={"strategy": employment_strategy})

        response = client.post(f"/api/v1/cases/{case_id}/generate", json={})
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["gate_name"] == "GATE_2_STATUS_APPROVED"
        assert detail["prerequisites"] == ["ACAS Early Conciliation Certificate"]

        documents = client.get(f"/api/v1/cases/{case_id}/documents").json()["documents"]
        assert all(d["status"] == "PENDING" for d in documents)

    def test_confirm_before_summary_returns_409(self, client, debt_case):
        case_id = create_case(client)
        client.post(f"/api/v1/cases/{case_id}/extract", json={
            "transcript": [{"role": "user", "content": "hi"}],
        })

        response = client.post(f"/api/v1/cases/{case_id}/confirm", json={"strategy": debt_case["strategy"]})
        assert response.status_code == 409
        data = response.json()
        assert "error" in data
        assert data["detail"]["case_id"] == case_id

        assert client.get(f"/api/v1/cases/{case_id}/routing").status_code == 404
        assert client.get(f"/api/v1/cases/{case_id}/state").json()["stage"] == "INITIAL"

    def test_unrouted_case(self, client):
        case_id = create_case(client)
        assert client.get(f"/api/v1/cases/{case_id}/routing").status_code == 404

    def test_unknown_case_returns_404(self, client):
        response = client.get("/api/v1/cases/does-not-exist/state")
        assert response.status_code == 404
        assert "error" in response.json()

    def test_invalid_body_returns_422(self, client):
        case_id = create_case(client)
        response = client.post(f"/api/v1/cases/{case_id}/extract", json={"evidence_count": -1})
        assert response.status_code == 422


# =============================================================================
# Stateless audit
# =============================================================================

class TestAuditEndpoint:
    """POST /api/v1/audit"""

    def test_audit_flags_placeholder(self, client, debt_case):
        case_id = create_case(client)
        extract_debt_case(client, case_id, debt_case)
        routing = client.post(f"/api/v1/cases/{case_id}/confirm", json={"strategy": debt_case["strategy"]}).json()

        response = client.post("/api/v1/audit", json={
            "content": "The sum of £[AMOUNT] remains outstanding under the agreement.",
            "strategy": debt_case["strategy"],
            "routing_decision": routing["decision"],
        })
        assert response.status_code == 200

        data = response.json()
        assert data["passed"] is False
        assert 'PLACEHOLDER UNFILLED: "[AMOUNT]" - document not court-ready' in data["critical"]
        assert data["score"] <= 8.0
