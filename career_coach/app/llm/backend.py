import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import openai
from langchain_core.prompt_values import PromptValue
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from career_coach.app.core.errors import AuthError, QuotaError, TransportError

log = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "gpt-4o"
DEFAULT_TEMPERATURE = 0.7


@dataclass(frozen=True)
class SamplingParams:
    """Sampling controls forwarded to the backend.

    Attributes:
        temperature (float): Sampling temperature.
        max_output_tokens (int | None): Output token budget. Long answers are cut off at this limit.

    """

    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int | None = None


@dataclass(frozen=True)
class BackendResponse:
    """Raw text returned by the backend.

    Attributes:
        text (str): The generated text. May be empty.
        truncated (bool): True when generation stopped at the output token budget.

    """

    text: str
    truncated: bool = False


@runtime_checkable
class GenerationBackend(Protocol):
    """Anything that turns a prompt and an optional output shape into text."""

    async def generate(
        self,
        prompt: PromptValue,
        output_shape: type[BaseModel] | None = None,
        sampling: SamplingParams | None = None,
    ) -> BackendResponse:
        """Generate text for `prompt`.

        Raises:
            TransportError: The backend could not be reached or failed.
            QuotaError: The request was rate limited.
            AuthError: The backend is not configured or rejected the credentials.

        """
        ...


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


class LangChainBackend:
    """Generation backend backed by an OpenAI-compatible chat model.

    Args:
        llm_endpoint (str | None): The custom LLM endpoint URL.
        api_key (str | None): The LLM API key.
        llm_model_name (str | None): The model name. Falls back to "gpt-4o".

    Network access:
        - `generate` makes a network request to the configured endpoint.

    """

    def __init__(
        self,
        llm_endpoint: str | None = None,
        api_key: str | None = None,
        llm_model_name: str | None = None,
    ):
        self.llm_endpoint = llm_endpoint
        self.api_key = api_key
        self.llm_model_name = llm_model_name

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key or self.llm_endpoint)

    def _llm_params(self, sampling: SamplingParams) -> dict[str, Any]:
        """Build the ChatOpenAI constructor arguments.

        Notes:
            1. Use the configured model name, falling back to the default.
            2. Point the client at a custom endpoint when one is configured, adding
               the attribution headers OpenRouter expects.
            3. Use the API key when given. Custom non-OpenRouter endpoints (e.g. local
               models) get a dummy key to satisfy the client library.

        """
        llm_params: dict[str, Any] = {
            "model": self.llm_model_name if self.llm_model_name else DEFAULT_MODEL_NAME,
            "temperature": sampling.temperature,
        }
        if sampling.max_output_tokens:
            llm_params["max_tokens"] = sampling.max_output_tokens
        if self.llm_endpoint:
            llm_params["openai_api_base"] = self.llm_endpoint
            if "openrouter.ai" in self.llm_endpoint:
                llm_params["default_headers"] = {
                    "HTTP-Referer": "http://localhost:8000/",
                    "X-Title": "Career Coach",
                }

        if self.api_key:
            llm_params["api_key"] = self.api_key
        elif self.llm_endpoint and "openrouter.ai" not in self.llm_endpoint:
            llm_params["api_key"] = "not-needed"
        return llm_params

    async def generate(
        self,
        prompt: PromptValue,
        output_shape: type[BaseModel] | None = None,
        sampling: SamplingParams | None = None,
    ) -> BackendResponse:
        """Invoke the chat model once.

        Args:
            prompt (PromptValue): The fully formatted prompt.
            output_shape (type[BaseModel] | None): When given, the model is asked for a JSON object.
            sampling (SamplingParams | None): Sampling controls.

        Returns:
            BackendResponse: The generated text and whether it was cut off.

        Raises:
            AuthError: No API key or endpoint is configured, or the credentials were rejected.
            QuotaError: The request was rate limited.
            TransportError: Any other client or server failure.

        """
        _msg = "LangChainBackend.generate starting"
        log.debug(_msg)

        if not self.is_configured:
            raise AuthError("LLM API key is not configured. Please set LLM_API_KEY or LLM_ENDPOINT.")

        llm = ChatOpenAI(**self._llm_params(sampling or SamplingParams()))
        runnable = llm.bind(response_format={"type": "json_object"}) if output_shape else llm

        try:
            message = await runnable.ainvoke(prompt)
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            log.exception("LLM authentication failed")
            raise AuthError("The AI service rejected the API key. Please check your settings.") from e
        except openai.RateLimitError as e:
            log.exception("LLM request was rate limited")
            raise QuotaError() from e
        except openai.APIError as e:
            _msg = f"LLM request failed: {e!s}"
            log.exception(_msg)
            raise TransportError() from e

        finish_reason = (getattr(message, "response_metadata", None) or {}).get("finish_reason")
        truncated = finish_reason == "length"
        if truncated:
            log.warning("LLM response was cut off at the output token limit")

        _msg = "LangChainBackend.generate returning"
        log.debug(_msg)
        return BackendResponse(text=_message_text(message.content), truncated=truncated)
