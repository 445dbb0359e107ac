"""Cheap-first classification of assistant messages.

Most messages plainly do not need the expensive research path, and a handful
plainly do. Both cases are settled by a pattern table without calling the
model. Only the ambiguous middle is escalated, and an escalation that fails
falls back to the heuristic answer instead of blocking the conversation.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Protocol, Sequence

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from career_coach.app.core.errors import EmptyResponseError, GenerationError
from career_coach.app.llm.backend import GenerationBackend, SamplingParams
from career_coach.app.llm.cache import ResultCache, TTLClass, make_key, normalize_text
from career_coach.app.llm.models import AssistantContext, ClassificationResult, IntentCategory
from career_coach.app.llm.prompts import CLASSIFICATION_HUMAN_PROMPT, CLASSIFICATION_SYSTEM_PROMPT
from career_coach.app.llm.salvage import parse_structured_output

log = logging.getLogger(__name__)

PATTERN_CONFIDENCE = 75
SHORT_MESSAGE_CONFIDENCE = 90
FALLBACK_CONFIDENCE = 40
DEFAULT_MIN_CONFIDENCE = 70
DEFAULT_SHORT_MESSAGE_LENGTH = 50

CATEGORY_PATTERNS: tuple[tuple[IntentCategory, tuple[re.Pattern, ...]], ...] = (
    (
        IntentCategory.SALARY,
        (
            re.compile(r"\b(salary|compensation|pay|wages?|earnings?)\b", re.IGNORECASE),
            re.compile(r"\bhow much (do|does|can|should)\b.*\b(earn|make|get paid)\b", re.IGNORECASE),
            re.compile(r"\bpay (range|scale|rate)\b", re.IGNORECASE),
            re.compile(r"\bmarket rate\b", re.IGNORECASE),
            re.compile(r"\b(total comp|tc)\b", re.IGNORECASE),
        ),
    ),
    (
        IntentCategory.INDUSTRY,
        (
            re.compile(r"\b(industry|market|sector)\b.*\b(trend|outlook|future|forecast)\b", re.IGNORECASE),
            re.compile(r"\btrends? in\b", re.IGNORECASE),
            re.compile(r"\bfuture of\b", re.IGNORECASE),
            re.compile(r"\bmarket (for|outlook|conditions?)\b", re.IGNORECASE),
            re.compile(r"\bjob market\b", re.IGNORECASE),
            re.compile(r"\bhiring (trend|outlook)\b", re.IGNORECASE),
        ),
    ),
    (
        IntentCategory.TECHNICAL,
        (
            re.compile(r"\bhow (does|do|is)\b.*\b(work|implemented|function)\b", re.IGNORECASE),
            re.compile(r"\bwhat is\b.*\b(framework|library|tool|language|technology)\b", re.IGNORECASE),
            re.compile(r"\bexplain\b.*\b(concept|pattern|architecture)\b", re.IGNORECASE),
            re.compile(r"\b(compare|vs|versus|difference between)\b", re.IGNORECASE),
            re.compile(r"\blearn(ing)?\b.*\b(about|resources?)\b", re.IGNORECASE),
            re.compile(r"\bpros and cons\b", re.IGNORECASE),
            re.compile(r"\bwhen (to|should)\b.*\buse\b", re.IGNORECASE),
        ),
    ),
    (
        IntentCategory.INTERVIEW,
        (
            re.compile(r"\binterview(s|ing)?\b.*\b(at|for|with|process|questions?)\b", re.IGNORECASE),
            re.compile(r"\bquestions? (at|for|asked|they ask)\b", re.IGNORECASE),
            re.compile(r"\bhow (to|do I) (prepare|prep)\b.*\binterview\b", re.IGNORECASE),
            re.compile(r"\bwhat (do they|does.*company) (look for|ask|expect)\b", re.IGNORECASE),
            re.compile(r"\b(glassdoor|blind|levels\.fyi)\b", re.IGNORECASE),
        ),
    ),
)

TRIGGER_PHRASES: tuple[str, ...] = (
    "research",
    "find out",
    "look up",
    "what is the",
    "how much",
    "trends in",
    "interview at",
    "salary for",
    "compare",
)


@dataclass(frozen=True)
class PreFilter:
    """What the cheap checks concluded about a message.

    Attributes:
        likely_needs (bool): A pattern or trigger phrase matched.
        suggested_category (IntentCategory | None): The category of the first matching pattern.

    """

    likely_needs: bool
    suggested_category: IntentCategory | None


def pre_filter(message: str) -> PreFilter:
    """Run the pattern table and trigger phrases against `message`."""
    for category, patterns in CATEGORY_PATTERNS:
        for pattern in patterns:
            if pattern.search(message):
                return PreFilter(likely_needs=True, suggested_category=category)

    lowered = message.lower()
    has_trigger = any(phrase in lowered for phrase in TRIGGER_PHRASES)
    return PreFilter(likely_needs=has_trigger, suggested_category=None)


def fallback_result(message: str, heuristic: PreFilter, reasoning: str) -> ClassificationResult:
    return ClassificationResult(
        needs_action=heuristic.likely_needs,
        category=heuristic.suggested_category,
        confidence=FALLBACK_CONFIDENCE,
        extracted_query=message,
        reasoning=reasoning,
    )


class ClassificationStrategy(Protocol):
    """One link of the classification chain.

    Returns a definitive result, or None to defer to the next strategy.
    """

    async def attempt(
        self,
        message: str,
        heuristic: PreFilter,
        context: AssistantContext | None,
    ) -> ClassificationResult | None: ...


class PatternStrategy:
    """Settles messages that match a category pattern, without the model."""

    async def attempt(self, message, heuristic, context):
        if heuristic.suggested_category is None:
            return None
        return ClassificationResult(
            needs_action=True,
            category=heuristic.suggested_category,
            confidence=PATTERN_CONFIDENCE,
            extracted_query=message,
            reasoning=f"Matched {heuristic.suggested_category.value} pattern",
        )


class ShortMessageStrategy:
    """Settles short messages with no signal at all as not needing action."""

    def __init__(self, max_length: int = DEFAULT_SHORT_MESSAGE_LENGTH):
        self.max_length = max_length

    async def attempt(self, message, heuristic, context):
        if heuristic.likely_needs or len(message) >= self.max_length:
            return None
        return ClassificationResult(
            needs_action=False,
            category=None,
            confidence=SHORT_MESSAGE_CONFIDENCE,
            extracted_query=message,
            reasoning="Short message without research indicators",
        )


class ModelStrategy:
    """Asks the generation backend to classify the message.

    Always returns a result: any backend or parse failure degrades to the
    pre-filter's answer with a reduced, fixed confidence.

    Args:
        backend (GenerationBackend | None): The backend. When None, the fallback is returned.
        cache (ResultCache | None): Caches model answers under the "classification" namespace.
        ttl_seconds (float): Lifetime of cached answers.

    """

    namespace = "classification"

    def __init__(
        self,
        backend: GenerationBackend | None,
        cache: ResultCache | None = None,
        ttl_seconds: float = 60 * 60,
    ):
        self._backend = backend
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    def _context_block(self, context: AssistantContext | None) -> str:
        if context is None:
            return ""
        return (
            "\nCurrent context:\n"
            f"- Type: {context.kind}\n"
            f"- Company: {context.company or 'N/A'}\n"
            f"- Role: {context.role or 'N/A'}\n"
        )

    def _coerce(self, parsed: dict, message: str) -> ClassificationResult:
        """Normalize a raw model answer into a valid result.

        Notes:
            1. Missing fields take safe defaults.
            2. Confidence is clamped to [0, 100].
            3. The category is dropped when the model says no action is needed.

        """
        confidence = parsed.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = 50
        confidence = int(round(min(100, max(0, confidence))))
        return ClassificationResult(
            needs_action=bool(parsed.get("needs_action", False)),
            category=parsed.get("category") or None,
            confidence=confidence,
            extracted_query=parsed.get("extracted_query") or message,
            reasoning=parsed.get("reasoning") or "Classification completed",
        )

    async def attempt(self, message, heuristic, context):
        if self._backend is None:
            return fallback_result(message, heuristic, "No classifier backend configured; using pattern matching")

        key = make_key(
            self.namespace,
            normalize_text(message),
            context.model_dump() if context else None,
            category="intent",
        )
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                try:
                    return ClassificationResult.model_validate(cached)
                except ValidationError:
                    self._cache.remove(key)

        parser = PydanticOutputParser(pydantic_object=ClassificationResult)
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", CLASSIFICATION_SYSTEM_PROMPT),
                ("human", CLASSIFICATION_HUMAN_PROMPT),
            ]
        ).partial(format_instructions=parser.get_format_instructions())
        prompt_value = prompt.format_prompt(message=message, context_block=self._context_block(context))

        try:
            response = await self._backend.generate(
                prompt_value,
                ClassificationResult,
                SamplingParams(temperature=0.0),
            )
            if not response.text or not response.text.strip():
                raise EmptyResponseError("Empty response from classifier")
            parsed = parse_structured_output(response.text)
            if not isinstance(parsed, dict):
                raise ValueError("Classifier response is not a JSON object")
            result = self._coerce(parsed, message)
        except (GenerationError, json.JSONDecodeError, ValueError) as e:
            _msg = f"Intent classification failed, falling back to pattern matching: {e!s}"
            log.warning(_msg)
            return fallback_result(message, heuristic, "Fallback to pattern matching due to classification error")

        if self._cache is not None:
            self._cache.set(key, result.model_dump(mode="json"), self._ttl_seconds)
        return result


class IntentClassifier:
    """Runs an ordered chain of classification strategies.

    Args:
        strategies (Sequence[ClassificationStrategy]): Tried in order; the first
            non-None result wins. The last strategy must always return a result.

    """

    def __init__(self, strategies: Sequence[ClassificationStrategy]):
        if not strategies:
            raise ValueError("At least one classification strategy is required.")
        self._strategies = tuple(strategies)

    @classmethod
    def create(
        cls,
        backend: GenerationBackend | None = None,
        cache: ResultCache | None = None,
        short_message_length: int = DEFAULT_SHORT_MESSAGE_LENGTH,
        ttl_seconds: float | None = None,
    ) -> "IntentClassifier":
        """Build the standard pattern, short-message, model chain."""
        model_strategy = ModelStrategy(
            backend=backend,
            cache=cache,
            ttl_seconds=ttl_seconds if ttl_seconds is not None else 60 * 60,
        )
        return cls(
            [
                PatternStrategy(),
                ShortMessageStrategy(max_length=short_message_length),
                model_strategy,
            ]
        )

    async def classify(self, message: str, context: AssistantContext | None = None) -> ClassificationResult:
        """Classify a user message.

        Args:
            message (str): The user's message.
            context (AssistantContext | None): What the user is looking at.

        Returns:
            ClassificationResult: The first definitive result in the chain.

        """
        _msg = "classify starting"
        log.debug(_msg)

        heuristic = pre_filter(message)
        for strategy in self._strategies:
            result = await strategy.attempt(message, heuristic, context)
            if result is not None:
                _msg = f"classify returning from {type(strategy).__name__}"
                log.debug(_msg)
                return result
        return fallback_result(message, heuristic, "No strategy produced a classification")


def should_proceed(result: ClassificationResult, min_confidence: int = DEFAULT_MIN_CONFIDENCE) -> bool:
    """Decide whether a classification is strong enough to act on.

    Args:
        result (ClassificationResult): The classification.
        min_confidence (int): The minimum confidence required.

    Returns:
        bool: True only when action is needed, a category is known and confidence meets the threshold.

    """
    return result.needs_action and result.category is not None and result.confidence >= min_confidence
