import logging
from dataclasses import dataclass

from fastapi import Depends, Request

from career_coach.app.core.config import Settings
from career_coach.app.llm.cache import ResultCache
from career_coach.app.llm.classifier import IntentClassifier
from career_coach.app.llm.orchestration import GenerationOrchestrator

log = logging.getLogger(__name__)


@dataclass
class Services:
    """The application's long-lived components, built once at startup.

    Attributes:
        settings (Settings): The configuration the services were built from.
        cache (ResultCache): The shared two-tier result cache.
        orchestrator (GenerationOrchestrator): Runs structured generations.
        classifier (IntentClassifier): Classifies assistant messages.

    """

    settings: Settings
    cache: ResultCache
    orchestrator: GenerationOrchestrator
    classifier: IntentClassifier


def get_services(request: Request) -> Services:
    """
    Dependency returning the services attached to the running application.

    Args:
        request (Request): The incoming request.

    Returns:
        Services: The services stored on `app.state` by `create_app`.

    """
    return request.app.state.services


def get_orchestrator(services: Services = Depends(get_services)) -> GenerationOrchestrator:
    return services.orchestrator


def get_classifier(services: Services = Depends(get_services)) -> IntentClassifier:
    return services.classifier


def get_cache(services: Services = Depends(get_services)) -> ResultCache:
    return services.cache


def get_app_settings(services: Services = Depends(get_services)) -> Settings:
    return services.settings
