import logging

from pydantic import BaseModel, Field

from career_coach.app.llm.models import (
    AssistantContext,
    CandidateProfile,
    ClassificationResult,
    Story,
)

log = logging.getLogger(__name__)


class ClassifyRequest(BaseModel):
    """Request model for classifying an assistant message.

    Attributes:
        message (str): The user's message.
        context (AssistantContext | None): What the user is looking at.
        min_confidence (int | None): Overrides the configured threshold for `should_proceed`.

    """

    message: str
    context: AssistantContext | None = None
    min_confidence: int | None = Field(default=None, ge=0, le=100)


class ClassifyResponse(BaseModel):
    """Response model for a classification.

    Attributes:
        classification (ClassificationResult): The classifier's answer.
        should_proceed (bool): Whether the answer is strong enough to act on.

    """

    classification: ClassificationResult
    should_proceed: bool


class AnalyzeJobRequest(BaseModel):
    job_description: str
    profile: CandidateProfile = Field(default_factory=CandidateProfile)
    regenerate: bool = False


class ResearchCompanyRequest(BaseModel):
    company: str
    role: str | None = None
    regenerate: bool = False


class PredictQuestionsRequest(BaseModel):
    company: str
    role: str
    interview_stage: str = "behavioral"
    profile: CandidateProfile = Field(default_factory=CandidateProfile)
    stories: list[Story] = Field(default_factory=list)
    count: int | None = Field(default=None, gt=0, le=30)
    regenerate: bool = False


class MatchStoryRequest(BaseModel):
    question: str
    stories: list[Story] = Field(default_factory=list)
    profile: CandidateProfile = Field(default_factory=CandidateProfile)


class InterviewAnswerRequest(BaseModel):
    question: str
    company: str
    role: str
    profile: CandidateProfile = Field(default_factory=CandidateProfile)
    stories: list[Story] = Field(default_factory=list)
    regenerate: bool = False


class CacheStatsResponse(BaseModel):
    memory_size: int
    storage_keys: int
