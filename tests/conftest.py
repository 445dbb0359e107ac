from unittest.mock import AsyncMock

import pytest

from career_coach.app.core.config import Settings
from career_coach.app.llm.backend import BackendResponse
from career_coach.app.llm.cache import ResultCache
from career_coach.app.llm.models import CandidateProfile, Story
from career_coach.app.llm.orchestration import GenerationOrchestrator
from career_coach.app.llm.storage import MemoryStore


class FakeClock:
    """A settable clock for cache expiry tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache(store, clock):
    return ResultCache(store=store, clock=clock)


@pytest.fixture
def mock_backend():
    """A backend whose `generate` is an AsyncMock returning an empty JSON object."""
    backend = AsyncMock()
    backend.generate.return_value = BackendResponse(text="{}")
    return backend


@pytest.fixture
def orchestrator(mock_backend, cache):
    return GenerationOrchestrator(backend=mock_backend, cache=cache)


@pytest.fixture
def profile():
    return CandidateProfile(
        name="Jane Doe",
        headline="Backend Engineer",
        years_experience=7,
        technical_skills=["Python", "PostgreSQL", "Kubernetes"],
        soft_skills=["Mentoring"],
    )


@pytest.fixture
def stories():
    return [
        Story(
            id="story-alpha",
            title="Led migration to Kubernetes",
            tags=["leadership", "infrastructure"],
            situation="Legacy VMs were costly.",
            result="Cut hosting costs by 40%.",
        ),
        Story(
            id="story-beta",
            title="Resolved a production outage",
            tags=["incident", "debugging"],
            result="Restored service in 20 minutes.",
        ),
        Story(
            id="story-gamma",
            title="Mentored two junior engineers",
            tags=["mentoring"],
            result="Both were promoted within a year.",
        ),
    ]


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        LLM_API_KEY="test-key",
        CACHE_STORE="memory",
        CACHE_DIR=str(tmp_path / "cache"),
    )
