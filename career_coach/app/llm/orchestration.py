import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence, get_args

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, ValidationError

from career_coach.app.core.errors import EmptyResponseError, MalformedOutputError
from career_coach.app.llm.backend import GenerationBackend, SamplingParams
from career_coach.app.llm.cache import (
    DEFAULT_CATEGORY,
    DEFAULT_TTL_SECONDS,
    ResultCache,
    TTLClass,
    make_key,
)
from career_coach.app.llm.references import (
    ReferenceBinding,
    ReferenceIndexMapper,
    default_id_getter,
)
from career_coach.app.llm.salvage import SalvageRule, parse_or_salvage

log = logging.getLogger(__name__)


@dataclass
class GenerationRequest:
    """Everything the orchestrator needs to produce one structured record.

    Attributes:
        system_prompt (str): System message template. Should contain `{format_instructions}`.
        human_prompt (str): Human message template. Contains `{references}` when references are supplied.
        output_shape (type[BaseModel]): The shape the backend is asked to emit.
        namespace (str): Cache namespace, e.g. "analysis".
        key_inputs (tuple[Any, ...]): The semantic inputs identifying the request.
        variables (dict[str, Any]): Values for the prompt templates.
        record_shape (type[BaseModel] | None): The shape of the final record after
            reference resolution. Defaults to `output_shape`.
        category (str): Cache sub-partition within the namespace.
        ttl_class (TTLClass): How long the record stays cached.
        references (Sequence[Any] | None): Candidates the backend may refer to by index.
        reference_formatter (Callable[[Any], str] | None): Renders one candidate for the prompt.
        reference_id_getter (Callable[[Any], str]): Returns a candidate's stable id.
        reference_bindings (tuple[ReferenceBinding, ...]): Where indices appear in the output.
        salvage (SalvageRule | None): Enables recovery of a truncated array.
        sampling (SamplingParams): Sampling controls for the backend.

    """

    system_prompt: str
    human_prompt: str
    output_shape: type[BaseModel]
    namespace: str
    key_inputs: tuple[Any, ...]
    variables: dict[str, Any] = field(default_factory=dict)
    record_shape: type[BaseModel] | None = None
    category: str = DEFAULT_CATEGORY
    ttl_class: TTLClass = TTLClass.ANALYSIS
    references: Sequence[Any] | None = None
    reference_formatter: Callable[[Any], str] | None = None
    reference_id_getter: Callable[[Any], str] = default_id_getter
    reference_bindings: tuple[ReferenceBinding, ...] = ()
    salvage: SalvageRule | None = None
    sampling: SamplingParams = field(default_factory=SamplingParams)

    @property
    def cache_key(self) -> str:
        return make_key(self.namespace, *self.key_inputs, category=self.category)

    @property
    def final_shape(self) -> type[BaseModel]:
        return self.record_shape or self.output_shape


class GenerationOrchestrator:
    """Coordinates cache, backend, salvage and reference resolution.

    Args:
        backend (GenerationBackend): Produces text for a prompt.
        cache (ResultCache): Where finished records are kept.
        mapper (ReferenceIndexMapper | None): Assigns and resolves reference indices.
        ttl_seconds (Mapping[TTLClass, float] | None): Duration of each TTL class.
        single_flight (bool): When True, concurrent calls for the same uncached
            key share one backend call.

    Notes:
        1. A single backend failure is terminal for the call. Retrying is the caller's decision.
        2. Nothing about a call in progress is observable except its eventual result.

    """

    def __init__(
        self,
        backend: GenerationBackend,
        cache: ResultCache,
        mapper: ReferenceIndexMapper | None = None,
        ttl_seconds: Mapping[TTLClass, float] | None = None,
        single_flight: bool = True,
    ):
        self._backend = backend
        self._cache = cache
        self._mapper = mapper or ReferenceIndexMapper()
        self._ttl_seconds = dict(DEFAULT_TTL_SECONDS)
        if ttl_seconds:
            self._ttl_seconds.update(ttl_seconds)
        self._single_flight = single_flight
        self._pending: dict[str, asyncio.Future] = {}

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def mapper(self) -> ReferenceIndexMapper:
        return self._mapper

    def ttl_for(self, ttl_class: TTLClass) -> float:
        return self._ttl_seconds[ttl_class]

    async def generate(self, request: GenerationRequest, regenerate: bool = False) -> BaseModel:
        """Produce the record for `request`, from cache when possible.

        Args:
            request (GenerationRequest): What to generate.
            regenerate (bool): Skip the cache read. The fresh record still replaces the cached one.

        Returns:
            BaseModel: A validated instance of the request's record shape.

        Raises:
            AuthError: The backend is not configured or rejected the credentials.
            QuotaError: The backend is rate limited.
            TransportError: The backend failed or returned no text.
            MalformedOutputError: Nothing usable could be parsed from the backend's text.

        Notes:
            1. Compute the cache key from the request's semantic inputs.
            2. Unless regenerating, return a cached record when one validates.
            3. Unless regenerating, join an in-flight call for the same key when single-flight is enabled.
            4. Otherwise run the backend path in `_generate_and_store`.

        """
        key = request.cache_key
        _msg = f"generate starting for '{key}' (regenerate={regenerate})"
        log.debug(_msg)

        if regenerate:
            return await self._generate_and_store(request, key)

        cached = self._cache.get(key)
        if cached is not None:
            try:
                record = request.final_shape.model_validate(cached)
                _msg = f"Cache hit for '{key}'"
                log.debug(_msg)
                return record
            except ValidationError:
                _msg = f"Discarding cached value for '{key}' that no longer matches its shape"
                log.warning(_msg)
                self._cache.remove(key)

        if not self._single_flight:
            return await self._generate_and_store(request, key)

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._generate_and_store(request, key))
            self._pending[key] = pending
            pending.add_done_callback(lambda done, k=key: self._forget_pending(k, done))
        else:
            _msg = f"Joining in-flight generation for '{key}'"
            log.debug(_msg)
        return await asyncio.shield(pending)

    def _forget_pending(self, key: str, done: asyncio.Future) -> None:
        if self._pending.get(key) is done:
            del self._pending[key]

    def _build_prompt(self, request: GenerationRequest, variables: dict[str, Any]):
        parser = PydanticOutputParser(pydantic_object=request.output_shape)
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", request.system_prompt),
                ("human", request.human_prompt),
            ]
        ).partial(format_instructions=parser.get_format_instructions())
        return prompt.format_prompt(**variables)

    async def _generate_and_store(self, request: GenerationRequest, key: str) -> BaseModel:
        """Run the backend path and write the record through to the cache.

        Notes:
            1. Number the reference candidates, if any, and render them into the `references` variable.
            2. Build the prompt with format instructions for the output shape and invoke the backend.
            3. Treat an empty response as a transport failure.
            4. Parse the text, falling back to array salvage when the request allows it.
            5. Replace reference indices with stable ids.
            6. For a salvaged payload, drop array elements that do not fit the element shape.
            7. Validate against the record shape, cache the JSON form and return the record.

        """
        variables = dict(request.variables)
        references = None
        if request.references is not None:
            references = self._mapper.to_indexed_list(request.references, id_getter=request.reference_id_getter)
            variables["references"] = references.render(request.reference_formatter or str)

        prompt_value = self._build_prompt(request, variables)

        log.debug("Calling generation backend for '%s'", key)
        response = await self._backend.generate(prompt_value, request.output_shape, request.sampling)

        if not response.text or not response.text.strip():
            _msg = f"Empty response from generation backend for '{key}'"
            log.error(_msg)
            raise EmptyResponseError()

        try:
            payload, salvaged = parse_or_salvage(response.text, request.salvage)
        except json.JSONDecodeError as e:
            _msg = f"Failed to parse LLM response as JSON for '{key}': {e!s}"
            log.exception(_msg)
            raise MalformedOutputError() from e

        if salvaged:
            _msg = f"Returning a partial record for '{key}' (truncated={response.truncated})"
            log.warning(_msg)

        if references is not None and request.reference_bindings:
            self._mapper.apply_bindings(payload, request.reference_bindings, references)

        if salvaged:
            self._drop_invalid_elements(request, payload, key)

        try:
            record = request.final_shape.model_validate(payload)
        except ValidationError as e:
            _msg = f"LLM response for '{key}' failed validation: {e!s}"
            log.exception(_msg)
            raise MalformedOutputError() from e

        self._cache.set(key, record.model_dump(mode="json"), self.ttl_for(request.ttl_class))

        _msg = f"generate returning for '{key}'"
        log.debug(_msg)
        return record

    def _drop_invalid_elements(self, request: GenerationRequest, payload: dict, key: str) -> None:
        """Keep only the salvaged elements that validate on their own.

        Raises:
            MalformedOutputError: No element survives validation.

        """
        array_field = request.salvage.array_field
        annotation = request.final_shape.model_fields[array_field].annotation
        element_shape = get_args(annotation)[0]

        kept = []
        for position, element in enumerate(payload[array_field]):
            try:
                element_shape.model_validate(element)
            except ValidationError as e:
                _msg = f"Dropping salvaged '{array_field}' element {position} for '{key}': {e!s}"
                log.warning(_msg)
                continue
            kept.append(element)

        if not kept:
            _msg = f"No salvaged '{array_field}' element for '{key}' passed validation"
            log.error(_msg)
            raise MalformedOutputError()
        payload[array_field] = kept
