import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    This class defines all configuration values used by the application,
    including the LLM connection, the persistent cache tier and the
    classifier thresholds. Values are loaded from environment variables with
    fallback defaults.

    Attributes:
        llm_api_key (str | None): API key for accessing LLM services.
        llm_endpoint (str | None): Custom OpenAI-compatible endpoint URL.
        llm_model_name (str | None): Model to use. Falls back to "gpt-4o" when unset.
        cache_store (str): Persistent cache tier, one of "memory", "file" or "redis".
        cache_dir (str): Directory used by the "file" store.
        redis_url (str): Connection URL used by the "redis" store.
        cache_storage_prefix (str): Prefix applied to every key written to the persistent tier.
        ttl_classification_seconds (int): Lifetime of cached classification results.
        ttl_analysis_seconds (int): Lifetime of cached job analyses and question sets.
        ttl_story_match_seconds (int): Lifetime of cached story matches.
        ttl_research_seconds (int): Lifetime of cached company research.
        classifier_min_confidence (int): Confidence required before acting on a classification.
        classifier_short_message_length (int): Messages shorter than this skip the model when no signal is found.
        reference_cap (int): Maximum number of candidates shown to the model as references.
        single_flight (bool): Whether concurrent identical generations share one backend call.

    """

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # LLM settings
    llm_api_key: str | None = Field(default=None, validation_alias="LLM_API_KEY")
    llm_endpoint: str | None = Field(default=None, validation_alias="LLM_ENDPOINT")
    llm_model_name: str | None = Field(default=None, validation_alias="LLM_MODEL_NAME")

    # Cache settings
    cache_store: Literal["memory", "file", "redis"] = Field(
        default="memory",
        validation_alias="CACHE_STORE",
    )
    cache_dir: str = Field(default=".cache/career_coach", validation_alias="CACHE_DIR")
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias="REDIS_URL",
    )
    cache_storage_prefix: str = Field(
        default="coach:cache:",
        validation_alias="CACHE_STORAGE_PREFIX",
    )

    # TTL classes
    ttl_classification_seconds: int = Field(
        default=60 * 60,
        validation_alias="TTL_CLASSIFICATION_SECONDS",
    )
    ttl_analysis_seconds: int = Field(
        default=24 * 60 * 60,
        validation_alias="TTL_ANALYSIS_SECONDS",
    )
    ttl_story_match_seconds: int = Field(
        default=24 * 60 * 60,
        validation_alias="TTL_STORY_MATCH_SECONDS",
    )
    ttl_research_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        validation_alias="TTL_RESEARCH_SECONDS",
    )

    # Classifier settings
    classifier_min_confidence: int = Field(
        default=70,
        ge=0,
        le=100,
        validation_alias="CLASSIFIER_MIN_CONFIDENCE",
    )
    classifier_short_message_length: int = Field(
        default=50,
        ge=0,
        validation_alias="CLASSIFIER_SHORT_MESSAGE_LENGTH",
    )

    # Orchestration settings
    reference_cap: int = Field(default=10, gt=0, validation_alias="REFERENCE_CAP")
    single_flight: bool = Field(default=True, validation_alias="SINGLE_FLIGHT")


@lru_cache
def get_settings() -> Settings:
    """
    Get the global settings instance.

    Returns:
        Settings: The global settings instance, containing all configuration values.

    Raises:
        ValidationError: If environment variables are present but invalid.

    Notes:
        1. Reads configuration from environment variables and the .env file.
        2. The function returns a cached instance to avoid repeated parsing of the .env file.
        3. This function performs disk access to read the .env file at startup.

    """
    return Settings()
