import json

import pytest
from fastapi.testclient import TestClient

from career_coach.app.api.dependencies import get_cache, get_orchestrator
from career_coach.app.core.errors import (
    AuthError,
    EmptyResponseError,
    MalformedOutputError,
    QuotaError,
    TransportError,
)
from career_coach.app.llm.backend import BackendResponse
from career_coach.app.main import create_app

STORIES = [
    {"id": "story-alpha", "title": "Led migration", "tags": ["leadership"], "result": "Saved money"},
    {"id": "story-beta", "title": "Fixed outage", "tags": ["incident"], "result": "Restored service"},
]


@pytest.fixture
def client(settings, orchestrator, cache):
    app = create_app(settings)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_cache] = lambda: cache
    return TestClient(app)


def test_analyze_job(client, mock_backend):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"fit_score": 6, "required_skills": ["Go"], "missing_skills": ["Go"]})
    )

    response = client.post("/api/jobs/analyze", json={"job_description": "Go developer wanted"})

    assert response.status_code == 200
    body = response.json()
    assert body["fit_score"] == 6
    assert body["missing_skills"] == ["Go"]


def test_analyze_job_empty_description(client, mock_backend):
    response = client.post("/api/jobs/analyze", json={"job_description": "   "})
    assert response.status_code == 400
    assert response.json()["detail"] == "Job description cannot be empty."
    mock_backend.generate.assert_not_called()


@pytest.mark.parametrize(
    "error, status_code",
    [
        (AuthError(), 401),
        (QuotaError(), 429),
        (TransportError(), 502),
        (EmptyResponseError(), 502),
    ],
)
def test_generation_errors_map_to_http(client, mock_backend, error, status_code):
    mock_backend.generate.side_effect = error

    response = client.post("/api/companies/research", json={"company": "Acme"})

    assert response.status_code == status_code
    assert response.json()["detail"] == error.cause


def test_malformed_output_is_bad_gateway(client, mock_backend):
    mock_backend.generate.return_value = BackendResponse(text="not json at all")
    response = client.post("/api/jobs/analyze", json={"job_description": "Go developer wanted"})
    assert response.status_code == 502
    assert response.json()["detail"] == MalformedOutputError.default_cause


def test_research_company(client, mock_backend):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"company_name": "Acme", "industry": "Retail", "overview": "Anvils."})
    )
    response = client.post("/api/companies/research", json={"company": "Acme", "role": "SRE"})
    assert response.status_code == 200
    assert response.json()["company_name"] == "Acme"


def test_predict_questions_partial_result(client, mock_backend):
    truncated = (
        '{"questions": [{"question": "Q1?", "category": "behavioral", "best_story_index": 1},'
        ' {"question": "Q2?", "category": "technical"}, {"question": "Q3'
    )
    mock_backend.generate.return_value = BackendResponse(text=truncated, truncated=True)

    response = client.post(
        "/api/interview/questions",
        json={"company": "Acme", "role": "SRE", "stories": STORIES, "count": 3},
    )

    assert response.status_code == 200
    body = response.json()
    assert [q["question"] for q in body] == ["Q1?", "Q2?"]
    assert body[0]["matched_story_id"] == "story-beta"
    assert body[1]["matched_story_id"] is None


def test_predict_questions_rejects_bad_count(client):
    response = client.post("/api/interview/questions", json={"company": "Acme", "role": "SRE", "count": 0})
    assert response.status_code == 422


def test_match_story(client, mock_backend):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"story_index": 0, "reasoning": "Leadership", "opening_line": "At my last job"})
    )
    response = client.post("/api/interview/match-story", json={"question": "Lead?", "stories": STORIES})
    assert response.status_code == 200
    assert response.json()["story_id"] == "story-alpha"


def test_match_story_no_match(client, mock_backend):
    mock_backend.generate.return_value = BackendResponse(text=json.dumps({"story_index": 5, "reasoning": "None"}))
    response = client.post("/api/interview/match-story", json={"question": "Lead?", "stories": STORIES})
    assert response.status_code == 200
    assert response.json() is None


def test_interview_answer(client, mock_backend):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps(
            {
                "title": "Outage story",
                "narrative": "When the site went down...",
                "sources": {"matched_story_indices": [1], "synthesized": False},
            }
        )
    )
    response = client.post(
        "/api/interview/answer",
        json={"question": "Tell me about pressure.", "company": "Acme", "role": "SRE", "stories": STORIES},
    )
    assert response.status_code == 200
    assert response.json()["sources"] == {"story_ids": ["story-beta"], "synthesized": False}


def test_interview_answer_malformed(client, mock_backend):
    mock_backend.generate.return_value = BackendResponse(text=json.dumps({"title": "no narrative"}))
    response = client.post(
        "/api/interview/answer",
        json={"question": "Why us?", "company": "Acme", "role": "SRE"},
    )
    assert response.status_code == 502


def test_cache_stats_and_clear(client, mock_backend, cache):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"company_name": "Acme", "industry": "Retail", "overview": "Anvils."})
    )
    client.post("/api/companies/research", json={"company": "Acme"})
    cache.set("analysis:job:1", {"fit_score": 1}, ttl=60)

    assert client.get("/api/cache/stats").json() == {"memory_size": 2, "storage_keys": 2}

    response = client.delete("/api/cache", params={"namespace": "research"})
    assert response.status_code == 204
    assert client.get("/api/cache/stats").json() == {"memory_size": 1, "storage_keys": 1}

    client.delete("/api/cache")
    assert client.get("/api/cache/stats").json() == {"memory_size": 0, "storage_keys": 0}
