import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from career_coach.app.api.dependencies import Services
from career_coach.app.api.routes.assistant import router as assistant_router
from career_coach.app.api.routes.generation import router as generation_router
from career_coach.app.core.config import Settings, get_settings
from career_coach.app.llm.backend import LangChainBackend
from career_coach.app.llm.cache import ResultCache, TTLClass
from career_coach.app.llm.classifier import IntentClassifier
from career_coach.app.llm.orchestration import GenerationOrchestrator
from career_coach.app.llm.references import ReferenceIndexMapper
from career_coach.app.llm.storage import create_store

log = logging.getLogger(__name__)


def build_services(settings: Settings) -> Services:
    """Build the cache, backend, orchestrator and classifier from settings.

    Args:
        settings (Settings): The application settings.

    Returns:
        Services: The wired components.

    Notes:
        1. Create the persistent store selected by `cache_store` and wrap it in a `ResultCache`.
        2. Create the LangChain backend from the LLM settings. An unconfigured
           backend is allowed; generation calls then fail with `AuthError` and
           classification degrades to pattern matching.
        3. Create the orchestrator with the configured TTL classes, reference cap and single-flight flag.
        4. Create the classifier sharing the same cache and backend.

    """
    _msg = "build_services starting"
    log.debug(_msg)

    store = create_store(
        settings.cache_store,
        cache_dir=settings.cache_dir,
        redis_url=settings.redis_url,
    )
    cache = ResultCache(store=store, storage_prefix=settings.cache_storage_prefix)

    backend = LangChainBackend(
        llm_endpoint=settings.llm_endpoint,
        api_key=settings.llm_api_key,
        llm_model_name=settings.llm_model_name,
    )
    if not backend.is_configured:
        _msg = "No LLM API key or endpoint configured; generation requests will be rejected"
        log.warning(_msg)

    orchestrator = GenerationOrchestrator(
        backend=backend,
        cache=cache,
        mapper=ReferenceIndexMapper(cap=settings.reference_cap),
        ttl_seconds={
            TTLClass.CLASSIFICATION: settings.ttl_classification_seconds,
            TTLClass.ANALYSIS: settings.ttl_analysis_seconds,
            TTLClass.STORY_MATCH: settings.ttl_story_match_seconds,
            TTLClass.RESEARCH: settings.ttl_research_seconds,
        },
        single_flight=settings.single_flight,
    )
    classifier = IntentClassifier.create(
        backend=backend if backend.is_configured else None,
        cache=cache,
        short_message_length=settings.classifier_short_message_length,
        ttl_seconds=settings.ttl_classification_seconds,
    )

    _msg = "build_services returning"
    log.debug(_msg)
    return Services(
        settings=settings,
        cache=cache,
        orchestrator=orchestrator,
        classifier=classifier,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings (Settings | None): Settings to build the services from. Defaults to `get_settings()`.

    Returns:
        FastAPI: The configured FastAPI application instance.

    Notes:
        1. Build the services and attach them to `app.state`.
        2. Add CORS middleware allowing requests from any origin.
        3. Include the assistant and generation routers.
        4. Define a health check endpoint at "/health".

    """
    _msg = "Creating FastAPI application"
    log.debug(_msg)

    app = FastAPI(title="Career Coach API")
    app.state.services = build_services(settings or get_settings())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(assistant_router)
    app.include_router(generation_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        _msg = "Health check endpoint called"
        log.debug(_msg)
        return {"status": "ok"}

    _msg = "FastAPI application created successfully"
    log.debug(_msg)
    return app


def main(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the API server with uvicorn."""
    uvicorn.run(create_app(), host=host, port=port)
