import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from career_coach.app.api.dependencies import get_cache, get_orchestrator
from career_coach.app.api.routes.route_models import (
    AnalyzeJobRequest,
    CacheStatsResponse,
    InterviewAnswerRequest,
    MatchStoryRequest,
    PredictQuestionsRequest,
    ResearchCompanyRequest,
)
from career_coach.app.core.errors import (
    AuthError,
    GenerationError,
    QuotaError,
)
from career_coach.app.llm.cache import ResultCache
from career_coach.app.llm.models import (
    CompanyResearch,
    InterviewAnswer,
    JobAnalysis,
    PredictedQuestion,
    StoryMatch,
)
from career_coach.app.llm.orchestration import GenerationOrchestrator
from career_coach.app.llm.tasks import (
    analyze_job_description,
    generate_interview_answer,
    match_story_to_question,
    predict_interview_questions,
    research_company,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generation"])


def generation_http_error(error: GenerationError) -> HTTPException:
    """Map a typed generation failure onto an HTTP error.

    Args:
        error (GenerationError): The failure raised by the orchestrator.

    Returns:
        HTTPException: 401 for auth, 429 for quota, 502 for everything else,
            carrying the failure's human-readable cause.

    """
    if isinstance(error, AuthError):
        status_code = 401
    elif isinstance(error, QuotaError):
        status_code = 429
    else:
        status_code = 502
    return HTTPException(status_code=status_code, detail=error.cause)


@router.post("/jobs/analyze", response_model=JobAnalysis)
async def analyze_job(
    payload: AnalyzeJobRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Analyze a job description against the candidate profile."""
    _msg = "analyze_job starting"
    log.debug(_msg)
    try:
        return await analyze_job_description(
            orchestrator,
            job_description=payload.job_description,
            profile=payload.profile,
            regenerate=payload.regenerate,
        )
    except GenerationError as e:
        raise generation_http_error(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/companies/research", response_model=CompanyResearch)
async def research(
    payload: ResearchCompanyRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Research a company, reusing a cached result for the same company and role.

    Args:
        payload (ResearchCompanyRequest): The company, optional role and regenerate flag.
        orchestrator (GenerationOrchestrator): Runs the generation.

    Returns:
        CompanyResearch: The research record.

    Raises:
        HTTPException: 400 for an empty company name, otherwise the mapped generation failure.

    """
    _msg = "research starting"
    log.debug(_msg)
    try:
        return await research_company(
            orchestrator,
            company=payload.company,
            role=payload.role,
            regenerate=payload.regenerate,
        )
    except GenerationError as e:
        raise generation_http_error(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/interview/questions", response_model=list[PredictedQuestion])
async def predict_questions(
    payload: PredictQuestionsRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Predict interview questions.

    The list may be shorter than requested when the model's answer was cut
    off; only complete questions are returned.
    """
    try:
        return await predict_interview_questions(
            orchestrator,
            profile=payload.profile,
            stories=payload.stories,
            company=payload.company,
            role=payload.role,
            interview_stage=payload.interview_stage,
            count=payload.count,
            regenerate=payload.regenerate,
        )
    except GenerationError as e:
        raise generation_http_error(e) from e


@router.post("/interview/match-story", response_model=StoryMatch | None)
async def match_story(
    payload: MatchStoryRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Pick the story that best answers a question.

    Args:
        payload (MatchStoryRequest): The question, candidate stories and profile.
        orchestrator (GenerationOrchestrator): Runs the generation.

    Returns:
        StoryMatch | None: The match, or None when no story fits or none were given.

    """
    try:
        return await match_story_to_question(
            orchestrator,
            question=payload.question,
            stories=payload.stories,
            profile=payload.profile,
        )
    except GenerationError as e:
        raise generation_http_error(e) from e


@router.post("/interview/answer", response_model=InterviewAnswer)
async def interview_answer(
    payload: InterviewAnswerRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Draft an answer to an interview question.

    Args:
        payload (InterviewAnswerRequest): The question, profile, stories, company and role.
        orchestrator (GenerationOrchestrator): Runs the generation.

    Returns:
        InterviewAnswer: The answer, with the ids of the stories it draws on.

    """
    try:
        return await generate_interview_answer(
            orchestrator,
            question=payload.question,
            profile=payload.profile,
            stories=payload.stories,
            company=payload.company,
            role=payload.role,
            regenerate=payload.regenerate,
        )
    except GenerationError as e:
        raise generation_http_error(e) from e


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(cache: ResultCache = Depends(get_cache)):
    """Report how many entries each cache tier holds."""
    stats = cache.get_stats()
    return CacheStatsResponse(memory_size=stats.memory_size, storage_keys=stats.storage_keys)


@router.delete("/cache", status_code=204)
async def clear_cache(
    namespace: str | None = Query(default=None),
    cache: ResultCache = Depends(get_cache),
):
    """Clear cached results, optionally only those under one namespace."""
    _msg = f"clear_cache starting for namespace '{namespace}'"
    log.debug(_msg)
    cache.clear(namespace=namespace)
    return Response(status_code=204)
