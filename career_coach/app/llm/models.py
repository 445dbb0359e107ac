import logging
from enum import Enum

from pydantic import BaseModel, Field, model_validator

log = logging.getLogger(__name__)


class IntentCategory(str, Enum):
    """Kinds of user message that warrant the expensive research path."""

    SALARY = "salary"
    INDUSTRY = "industry"
    TECHNICAL = "technical"
    INTERVIEW = "interview"


class ClassificationResult(BaseModel):
    """Whether a user message needs an expensive action, and which one."""

    needs_action: bool = Field(
        ...,
        description="True ONLY if answering requires current, factual information from the web.",
    )
    category: IntentCategory | None = Field(
        default=None,
        description="One of 'salary', 'industry', 'technical', 'interview', or null when needs_action is false.",
    )
    confidence: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Confidence in the classification, from 0 to 100.",
    )
    extracted_query: str = Field(
        default="",
        description="The most relevant search query extracted from the message.",
    )
    reasoning: str = Field(
        default="",
        description="One sentence explaining the decision.",
    )

    @model_validator(mode="after")
    def _category_requires_action(self) -> "ClassificationResult":
        if not self.needs_action:
            self.category = None
        return self


class AssistantContext(BaseModel):
    """What the user is looking at when they send a message."""

    kind: str = "general"
    company: str | None = None
    role: str | None = None


class CandidateProfile(BaseModel):
    name: str = ""
    headline: str = ""
    years_experience: int = 0
    technical_skills: list[str] = Field(default_factory=list)
    soft_skills: list[str] = Field(default_factory=list)


class Story(BaseModel):
    """A prior experience the candidate can draw on, in STAR form."""

    id: str
    title: str
    tags: list[str] = Field(default_factory=list)
    situation: str = ""
    result: str = ""


class JobAnalysis(BaseModel):
    """A structured analysis of a job description against the candidate profile."""

    fit_score: int = Field(
        ...,
        ge=0,
        le=10,
        description="How well the candidate fits the role, from 0 to 10.",
    )
    required_skills: list[str] = Field(
        ...,
        description="The most important skills and qualifications from the job description.",
    )
    matched_skills: list[str] = Field(
        default_factory=list,
        description="Required skills the candidate demonstrably has.",
    )
    missing_skills: list[str] = Field(
        default_factory=list,
        description="Required skills the candidate lacks or has not shown.",
    )
    talking_points: list[str] = Field(
        default_factory=list,
        description="Points the candidate should emphasize when applying.",
    )
    red_flags: list[str] = Field(
        default_factory=list,
        description="Concerns about the role or the candidate's fit.",
    )


class CompanyResearch(BaseModel):
    """A research summary about a company, aimed at interview preparation."""

    company_name: str = Field(..., description="The company's name.")
    industry: str = Field(..., description="The company's primary industry.")
    overview: str = Field(..., description="A short overview of what the company does.")
    culture_notes: list[str] = Field(
        default_factory=list,
        description="Notes about engineering culture and ways of working.",
    )
    interview_topics: list[str] = Field(
        default_factory=list,
        description="Topics commonly covered in this company's interviews.",
    )
    red_flags: list[str] = Field(default_factory=list, description="Reasons for caution.")
    green_flags: list[str] = Field(default_factory=list, description="Reasons for optimism.")


class QuestionCategory(str, Enum):
    BEHAVIORAL = "behavioral"
    TECHNICAL = "technical"
    SITUATIONAL = "situational"
    ROLE_SPECIFIC = "role-specific"
    COMPANY_SPECIFIC = "company-specific"


class LikelihoodLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DifficultyLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class _PredictedQuestionBase(BaseModel):
    question: str = Field(..., description="The exact question the interviewer is likely to ask.")
    category: QuestionCategory = Field(
        ...,
        description="One of: behavioral, technical, situational, role-specific, company-specific.",
    )
    likelihood: LikelihoodLevel = Field(
        default=LikelihoodLevel.MEDIUM,
        description="high (>70%), medium (40-70%) or low (<40%).",
    )
    difficulty: DifficultyLevel = Field(default=DifficultyLevel.MEDIUM, description="easy, medium or hard.")
    source: str = Field(default="", description="Why this question is predicted, in 1-2 sentences.")
    suggested_approach: str = Field(default="", description="A brief strategy to answer well.")


class PredictedQuestionDraft(_PredictedQuestionBase):
    best_story_index: int | None = Field(
        default=None,
        description="Index of the best matching story from the list, or null if none match well.",
    )


class PredictedQuestion(_PredictedQuestionBase):
    matched_story_id: str | None = None


class PredictedQuestionDraftSet(BaseModel):
    questions: list[PredictedQuestionDraft] = Field(..., description="The predicted questions.")


class PredictedQuestionSet(BaseModel):
    questions: list[PredictedQuestion]


class StoryMatchDraft(BaseModel):
    story_index: int | None = Field(
        default=None,
        description="Index of the best story from the list, or null if none fit.",
    )
    reasoning: str = Field(..., description="Why this story fits, in 1-2 sentences.")
    opening_line: str = Field(default="", description="How to start the answer naturally, in one sentence.")


class StoryMatch(BaseModel):
    story_id: str | None = None
    reasoning: str
    opening_line: str = ""


class AnswerSourcesDraft(BaseModel):
    matched_story_indices: list[int] = Field(
        default_factory=list,
        description="Indices of the stories the answer draws on.",
    )
    synthesized: bool = Field(default=False, description="True if the answer is not based on a specific story.")


class AnswerSources(BaseModel):
    story_ids: list[str] = Field(default_factory=list)
    synthesized: bool = False


class _InterviewAnswerBase(BaseModel):
    title: str = Field(..., description="A short title for the answer.")
    narrative: str = Field(..., description="The full spoken answer.")
    bullet_points: list[str] = Field(default_factory=list, description="Key points to hit.")
    delivery_tips: list[str] = Field(default_factory=list, description="Advice on delivery.")


class InterviewAnswerDraft(_InterviewAnswerBase):
    sources: AnswerSourcesDraft = Field(default_factory=AnswerSourcesDraft)


class InterviewAnswer(_InterviewAnswerBase):
    sources: AnswerSources = Field(default_factory=AnswerSources)
