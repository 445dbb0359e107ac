import json

import pytest

from career_coach.app.core.errors import MalformedOutputError
from career_coach.app.llm.backend import BackendResponse
from career_coach.app.llm.cache import DEFAULT_TTL_SECONDS, TTLClass
from career_coach.app.llm.models import CandidateProfile, JobAnalysis, Story
from career_coach.app.llm.tasks import (
    analyze_job_description,
    build_profile_context,
    company_slug,
    format_story,
    generate_interview_answer,
    match_story_to_question,
    predict_interview_questions,
    reanalyze_job_description,
    research_company,
)

ANALYSIS_JSON = json.dumps(
    {
        "fit_score": 8,
        "required_skills": ["Python", "Kubernetes"],
        "matched_skills": ["Python"],
        "missing_skills": [],
        "talking_points": ["Led a migration"],
        "red_flags": [],
    }
)

TRUNCATED_QUESTIONS = (
    '{"questions": ['
    '{"question": "Tell me about a time you led a risky migration.", "category": "behavioral",'
    ' "likelihood": "high", "difficulty": "medium", "best_story_index": 0},'
    '{"question": "How do you handle a production outage?", "category": "situational",'
    ' "likelihood": "medium", "difficulty": "hard", "best_story_index": 99},'
    '{"question": "Describe how you mentor jun'
)


def test_format_story_never_includes_id(stories):
    text = format_story(stories[0])
    assert text == "Led migration to Kubernetes - Tags: leadership, infrastructure - Result: Cut hosting costs by 40%."
    assert "story-alpha" not in text


def test_format_story_truncates_long_result():
    story = Story(id="s", title="T", result="x" * 300)
    assert format_story(story).endswith("x" * 100)
    assert "x" * 101 not in format_story(story)


def test_build_profile_context(profile):
    text = build_profile_context(profile)
    assert "Name: Jane Doe" in text
    assert "Experience: 7 years" in text
    assert "Technical Skills: Python, PostgreSQL, Kubernetes" in text


def test_company_slug():
    assert company_slug("  Acme   Corp ") == "acme-corp"


@pytest.mark.asyncio
async def test_analyze_job_description_empty_input(orchestrator):
    with pytest.raises(ValueError, match="Job description cannot be empty."):
        await analyze_job_description(orchestrator, " ", profile=None)


@pytest.mark.asyncio
async def test_analyze_job_description_caches_by_normalized_text(orchestrator, mock_backend, profile, cache):
    mock_backend.generate.return_value = BackendResponse(text=ANALYSIS_JSON)

    first = await analyze_job_description(orchestrator, "Senior Python Engineer.\n\nKubernetes!", profile)
    second = await analyze_job_description(orchestrator, "senior python engineer kubernetes", profile)

    assert isinstance(first, JobAnalysis)
    assert first.fit_score == 8
    assert second == first
    mock_backend.generate.assert_awaited_once()
    assert cache.get_stats().memory_size == 1
    prompt_text = mock_backend.generate.await_args.args[0].to_string()
    assert "Name: Jane Doe" in prompt_text


@pytest.mark.asyncio
async def test_analyze_job_description_separates_profiles(orchestrator, mock_backend, profile):
    mock_backend.generate.return_value = BackendResponse(text=ANALYSIS_JSON)
    other = CandidateProfile(name="Sam Roe", technical_skills=["COBOL"])

    await analyze_job_description(orchestrator, "Senior Python Engineer", profile)
    await analyze_job_description(orchestrator, "Senior Python Engineer", other)

    assert mock_backend.generate.await_count == 2
    prompt_text = mock_backend.generate.await_args.args[0].to_string()
    assert "Technical Skills: COBOL" in prompt_text


@pytest.mark.asyncio
async def test_reanalyze_job_description_regenerates(orchestrator, mock_backend, profile):
    mock_backend.generate.return_value = BackendResponse(text=ANALYSIS_JSON)
    await analyze_job_description(orchestrator, "Python role", profile)
    await reanalyze_job_description(orchestrator, "Python role", profile)
    assert mock_backend.generate.await_count == 2


@pytest.mark.asyncio
async def test_research_company_uses_research_ttl(orchestrator, mock_backend, store, clock):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"company_name": "Acme", "industry": "Retail", "overview": "Sells anvils."})
    )

    research = await research_company(orchestrator, "Acme", role="SRE")
    await research_company(orchestrator, "  acme ", role="sre")

    assert research.company_name == "Acme"
    mock_backend.generate.assert_awaited_once()
    [storage_key] = store.keys("coach:cache:research:company:")
    assert json.loads(store.get_item(storage_key))["ttl"] == DEFAULT_TTL_SECONDS[TTLClass.RESEARCH]


@pytest.mark.asyncio
async def test_research_company_separates_roles(orchestrator, mock_backend):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"company_name": "Acme", "industry": "Retail", "overview": "Sells anvils."})
    )

    await research_company(orchestrator, "Acme", role="SRE")
    await research_company(orchestrator, "Acme", role="Product Manager")

    assert mock_backend.generate.await_count == 2


@pytest.mark.asyncio
async def test_research_company_empty_name(orchestrator):
    with pytest.raises(ValueError, match="Company name cannot be empty."):
        await research_company(orchestrator, "")


@pytest.mark.asyncio
async def test_predict_questions_truncated_answer_end_to_end(orchestrator, mock_backend, profile, stories):
    """A cut-off answer yields the complete questions, with stories resolved, and is cached."""
    mock_backend.generate.return_value = BackendResponse(text=TRUNCATED_QUESTIONS, truncated=True)

    questions = await predict_interview_questions(
        orchestrator,
        profile=profile,
        stories=stories,
        company="Acme",
        role="Platform Engineer",
        interview_stage="behavioral",
        count=3,
    )

    assert [q.question for q in questions] == [
        "Tell me about a time you led a risky migration.",
        "How do you handle a production outage?",
    ]
    assert questions[0].matched_story_id == "story-alpha"
    assert questions[1].matched_story_id is None
    mock_backend.generate.assert_awaited_once()

    prompt_value, _, sampling = mock_backend.generate.await_args.args
    prompt_text = prompt_value.to_string()
    assert "[0] Led migration to Kubernetes" in prompt_text
    assert "story-alpha" not in prompt_text
    assert sampling.max_output_tokens == 8192

    again = await predict_interview_questions(
        orchestrator,
        profile=profile,
        stories=list(reversed(stories)),
        company="acme",
        role="Platform Engineer",
        interview_stage="behavioral",
        count=3,
    )
    assert again == questions
    mock_backend.generate.assert_awaited_once()


@pytest.mark.asyncio
async def test_predict_questions_stage_partitions_cache(orchestrator, mock_backend, profile, stories):
    mock_backend.generate.return_value = BackendResponse(text=json.dumps({"questions": []}))
    for stage in ("behavioral", "technical"):
        await predict_interview_questions(orchestrator, profile, stories, "Acme", "SRE", stage)
    assert mock_backend.generate.await_count == 2


@pytest.mark.asyncio
async def test_predict_questions_long_stage_is_hashed_into_key(orchestrator, mock_backend, profile, stories, store):
    mock_backend.generate.return_value = BackendResponse(text=json.dumps({"questions": []}))
    stage = "final round with the VP of engineering " * 20

    await predict_interview_questions(orchestrator, profile, stories, "Acme", "SRE", stage)
    await predict_interview_questions(orchestrator, profile, stories, "Acme", "SRE", stage.upper())

    mock_backend.generate.assert_awaited_once()
    [storage_key] = store.keys("coach:cache:questions:interview:")
    assert "final round" not in storage_key
    assert len(storage_key) < 64


@pytest.mark.asyncio
async def test_predict_questions_salvage_drops_invalid_elements(orchestrator, mock_backend, profile, stories):
    """A recovered question with an unknown category is dropped, the rest are kept."""
    raw = (
        '{"questions": ['
        '{"question": "Tell me about a conflict.", "category": "behavioral", "best_story_index": 0},'
        '{"question": "Design a rate limiter.", "category": "technical"},'
        '{"question": "How do you lead?", "category": "leadership"},'
        '{"question": "Why do you want to work he'
    )
    mock_backend.generate.return_value = BackendResponse(text=raw, truncated=True)

    questions = await predict_interview_questions(orchestrator, profile, stories, "Acme", "SRE", "behavioral")

    assert [q.question for q in questions] == ["Tell me about a conflict.", "Design a rate limiter."]
    assert questions[0].matched_story_id == "story-alpha"


@pytest.mark.asyncio
async def test_predict_questions_salvage_with_no_valid_elements(orchestrator, mock_backend, profile, stories):
    raw = '{"questions": [{"question": "How do you lead?", "category": "leadership"}, {"question": "cut'
    mock_backend.generate.return_value = BackendResponse(text=raw, truncated=True)

    with pytest.raises(MalformedOutputError):
        await predict_interview_questions(orchestrator, profile, stories, "Acme", "SRE", "behavioral")


@pytest.mark.asyncio
async def test_predict_questions_nothing_salvageable(orchestrator, mock_backend, profile, stories):
    mock_backend.generate.return_value = BackendResponse(text='{"questions": [{"question": "cut', truncated=True)
    with pytest.raises(MalformedOutputError):
        await predict_interview_questions(orchestrator, profile, stories, "Acme", "SRE", "behavioral")


@pytest.mark.asyncio
async def test_match_story_to_question(orchestrator, mock_backend, profile, stories):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"story_index": 1, "reasoning": "Shows calm under pressure", "opening_line": "Last spring..."})
    )

    match = await match_story_to_question(orchestrator, "Tell me about an outage.", stories, profile)

    assert match.story_id == "story-beta"
    assert match.reasoning == "Shows calm under pressure"


@pytest.mark.asyncio
@pytest.mark.parametrize("story_index", [None, 3, -1, 1.5, "0"])
async def test_match_story_invalid_index_is_no_match(orchestrator, mock_backend, profile, stories, story_index):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"story_index": story_index, "reasoning": "none fit"})
    )
    assert await match_story_to_question(orchestrator, "Why us?", stories, profile) is None


@pytest.mark.asyncio
async def test_match_story_without_stories_skips_backend(orchestrator, mock_backend, profile):
    assert await match_story_to_question(orchestrator, "Why us?", [], profile) is None
    mock_backend.generate.assert_not_called()


@pytest.mark.asyncio
async def test_generate_interview_answer_resolves_sources(orchestrator, mock_backend, profile, stories):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps(
            {
                "title": "Leading the migration",
                "narrative": "At my last company...",
                "bullet_points": ["Planned", "Executed"],
                "delivery_tips": ["Slow down"],
                "sources": {"matched_story_indices": [0, 2, 7], "synthesized": False},
            }
        )
    )

    answer = await generate_interview_answer(
        orchestrator,
        question="Tell me about a big project.",
        profile=profile,
        stories=stories,
        company="Acme",
        role="SRE",
    )

    assert answer.sources.story_ids == ["story-alpha", "story-gamma"]
    assert answer.sources.synthesized is False
    assert answer.title == "Leading the migration"


@pytest.mark.asyncio
async def test_generate_interview_answer_without_sources(orchestrator, mock_backend, profile):
    mock_backend.generate.return_value = BackendResponse(
        text=json.dumps({"title": "Why Acme", "narrative": "I admire..."})
    )

    answer = await generate_interview_answer(orchestrator, "Why Acme?", profile, [], "Acme", "SRE")

    assert answer.sources.story_ids == []
    prompt_text = mock_backend.generate.await_args.args[0].to_string()
    assert "No stories available" in prompt_text
