import logging
import re

from career_coach.app.llm.backend import SamplingParams
from career_coach.app.llm.cache import TTLClass, normalize_text, stable_hash
from career_coach.app.llm.models import (
    CandidateProfile,
    CompanyResearch,
    InterviewAnswer,
    InterviewAnswerDraft,
    JobAnalysis,
    PredictedQuestion,
    PredictedQuestionDraftSet,
    PredictedQuestionSet,
    Story,
    StoryMatch,
    StoryMatchDraft,
)
from career_coach.app.llm.orchestration import GenerationOrchestrator, GenerationRequest
from career_coach.app.llm.prompts import (
    COMPANY_RESEARCH_HUMAN_PROMPT,
    COMPANY_RESEARCH_SYSTEM_PROMPT,
    INTERVIEW_ANSWER_HUMAN_PROMPT,
    INTERVIEW_ANSWER_SYSTEM_PROMPT,
    JOB_ANALYSIS_HUMAN_PROMPT,
    JOB_ANALYSIS_SYSTEM_PROMPT,
    MATCH_STORY_HUMAN_PROMPT,
    MATCH_STORY_SYSTEM_PROMPT,
    PREDICT_QUESTIONS_HUMAN_PROMPT,
    PREDICT_QUESTIONS_SYSTEM_PROMPT,
)
from career_coach.app.llm.references import ReferenceBinding
from career_coach.app.llm.salvage import SalvageRule

log = logging.getLogger(__name__)

DEFAULT_QUESTION_COUNT = 12


def build_profile_context(profile: CandidateProfile) -> str:
    return "\n".join(
        [
            f"Name: {profile.name}",
            f"Headline: {profile.headline}",
            f"Experience: {profile.years_experience} years",
            f"Technical Skills: {', '.join(profile.technical_skills[:15])}",
            f"Soft Skills: {', '.join(profile.soft_skills)}",
        ]
    )


def format_story(story: Story) -> str:
    """Describe a story for the prompt. The story id is never included."""
    result = story.result[:100]
    return f"{story.title} - Tags: {', '.join(story.tags)} - Result: {result}"


def company_slug(company: str) -> str:
    return re.sub(r"\s+", "-", company.strip().lower())


async def analyze_job_description(
    orchestrator: GenerationOrchestrator,
    job_description: str,
    profile: CandidateProfile,
    regenerate: bool = False,
) -> JobAnalysis:
    """Analyze a job description against the candidate profile.

    Args:
        orchestrator (GenerationOrchestrator): Runs the generation.
        job_description (str): The job description to analyze.
        profile (CandidateProfile): The candidate.
        regenerate (bool): Skip the cached analysis.

    Returns:
        JobAnalysis: The structured analysis.

    Raises:
        ValueError: If the job description is empty.

    Notes:
        1. The cache key covers the normalized description and the profile, so
           whitespace and punctuation edits reuse the same analysis while a
           different candidate gets a fresh one.

    """
    _msg = "analyze_job_description starting"
    log.debug(_msg)

    if not job_description.strip():
        raise ValueError("Job description cannot be empty.")

    request = GenerationRequest(
        system_prompt=JOB_ANALYSIS_SYSTEM_PROMPT,
        human_prompt=JOB_ANALYSIS_HUMAN_PROMPT,
        output_shape=JobAnalysis,
        namespace="analysis",
        category="job",
        key_inputs=(stable_hash(normalize_text(job_description)), profile.model_dump()),
        variables={
            "job_description": job_description,
            "profile": build_profile_context(profile),
        },
        ttl_class=TTLClass.ANALYSIS,
    )
    analysis = await orchestrator.generate(request, regenerate=regenerate)

    _msg = "analyze_job_description returning"
    log.debug(_msg)
    return analysis


async def reanalyze_job_description(
    orchestrator: GenerationOrchestrator,
    job_description: str,
    profile: CandidateProfile,
) -> JobAnalysis:
    """Re-run a job analysis, replacing any cached result."""
    return await analyze_job_description(orchestrator, job_description, profile, regenerate=True)


async def research_company(
    orchestrator: GenerationOrchestrator,
    company: str,
    role: str | None = None,
    regenerate: bool = False,
) -> CompanyResearch:
    """Summarize what is known about a company. Cached per company and role for a week."""
    if not company.strip():
        raise ValueError("Company name cannot be empty.")

    request = GenerationRequest(
        system_prompt=COMPANY_RESEARCH_SYSTEM_PROMPT,
        human_prompt=COMPANY_RESEARCH_HUMAN_PROMPT,
        output_shape=CompanyResearch,
        namespace="research",
        category="company",
        key_inputs=(company_slug(company), normalize_text(role or "")),
        variables={"company": company, "role": role or "N/A"},
        ttl_class=TTLClass.RESEARCH,
    )
    return await orchestrator.generate(request, regenerate=regenerate)


async def predict_interview_questions(
    orchestrator: GenerationOrchestrator,
    profile: CandidateProfile,
    stories: list[Story],
    company: str,
    role: str,
    interview_stage: str,
    count: int | None = None,
    regenerate: bool = False,
) -> list[PredictedQuestion]:
    """Predict likely interview questions and match each to a story.

    Args:
        orchestrator (GenerationOrchestrator): Runs the generation.
        profile (CandidateProfile): The candidate.
        stories (list[Story]): Candidate stories, best first. Only the first few are shown to the model.
        company (str): The target company.
        role (str): The target role.
        interview_stage (str): E.g. "phone-screen", "technical", "behavioral".
        count (int | None): How many questions to ask for.
        regenerate (bool): Skip the cached prediction.

    Returns:
        list[PredictedQuestion]: The questions. When the answer was cut off this
            holds only the questions that arrived complete.

    Notes:
        1. Stories are referred to by index in the prompt; each returned index is
           resolved to a story id, and invalid indices become no match.
        2. A truncated answer is salvaged element by element. A question is kept
           only when it has both "question" and "category".

    """
    _msg = "predict_interview_questions starting"
    log.debug(_msg)

    question_count = count or DEFAULT_QUESTION_COUNT
    request = GenerationRequest(
        system_prompt=PREDICT_QUESTIONS_SYSTEM_PROMPT,
        human_prompt=PREDICT_QUESTIONS_HUMAN_PROMPT,
        output_shape=PredictedQuestionDraftSet,
        record_shape=PredictedQuestionSet,
        namespace="questions",
        category="interview",
        key_inputs=(
            normalize_text(interview_stage),
            company_slug(company),
            normalize_text(role),
            question_count,
            profile.model_dump(),
            sorted(story.id for story in stories),
        ),
        variables={
            "profile": build_profile_context(profile),
            "company": company,
            "role": role,
            "interview_stage": interview_stage,
            "question_count": question_count,
        },
        ttl_class=TTLClass.ANALYSIS,
        references=stories,
        reference_formatter=format_story,
        reference_bindings=(ReferenceBinding("questions[].best_story_index", "matched_story_id"),),
        salvage=SalvageRule(array_field="questions", required_keys=("question", "category")),
        sampling=SamplingParams(max_output_tokens=8192),
    )
    question_set = await orchestrator.generate(request, regenerate=regenerate)

    _msg = f"predict_interview_questions returning {len(question_set.questions)} questions"
    log.debug(_msg)
    return question_set.questions


async def match_story_to_question(
    orchestrator: GenerationOrchestrator,
    question: str,
    stories: list[Story],
    profile: CandidateProfile,
) -> StoryMatch | None:
    """Pick the story that best answers `question`.

    Returns:
        StoryMatch | None: The match, or None when there are no stories or the
            model's choice does not name a real story.

    """
    if not stories:
        return None

    request = GenerationRequest(
        system_prompt=MATCH_STORY_SYSTEM_PROMPT,
        human_prompt=MATCH_STORY_HUMAN_PROMPT,
        output_shape=StoryMatchDraft,
        record_shape=StoryMatch,
        namespace="match",
        category="story",
        key_inputs=(normalize_text(question), sorted(story.id for story in stories)),
        variables={"question": question, "profile": build_profile_context(profile)},
        ttl_class=TTLClass.STORY_MATCH,
        references=stories,
        reference_formatter=format_story,
        reference_bindings=(ReferenceBinding("story_index", "story_id"),),
    )
    match = await orchestrator.generate(request)
    if match.story_id is None:
        return None
    return match


async def generate_interview_answer(
    orchestrator: GenerationOrchestrator,
    question: str,
    profile: CandidateProfile,
    stories: list[Story],
    company: str,
    role: str,
    regenerate: bool = False,
) -> InterviewAnswer:
    """Write an answer to an interview question, citing the stories it uses."""
    request = GenerationRequest(
        system_prompt=INTERVIEW_ANSWER_SYSTEM_PROMPT,
        human_prompt=INTERVIEW_ANSWER_HUMAN_PROMPT,
        output_shape=InterviewAnswerDraft,
        record_shape=InterviewAnswer,
        namespace="answer",
        category="interview",
        key_inputs=(
            normalize_text(question),
            company_slug(company),
            normalize_text(role),
            profile.model_dump(),
            sorted(story.id for story in stories),
        ),
        variables={
            "question": question,
            "company": company,
            "role": role,
            "profile": build_profile_context(profile),
        },
        ttl_class=TTLClass.ANALYSIS,
        references=stories,
        reference_formatter=format_story,
        reference_bindings=(ReferenceBinding("sources.matched_story_indices[]", "story_ids"),),
        sampling=SamplingParams(temperature=0.7, max_output_tokens=4096),
    )
    return await orchestrator.generate(request, regenerate=regenerate)
