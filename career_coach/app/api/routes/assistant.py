import logging

from fastapi import APIRouter, Depends

from career_coach.app.api.dependencies import get_app_settings, get_classifier
from career_coach.app.api.routes.route_models import ClassifyRequest, ClassifyResponse
from career_coach.app.core.config import Settings
from career_coach.app.llm.classifier import IntentClassifier, should_proceed

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assistant", tags=["assistant"])


@router.post("/classify", response_model=ClassifyResponse)
async def classify_message(
    payload: ClassifyRequest,
    classifier: IntentClassifier = Depends(get_classifier),
    settings: Settings = Depends(get_app_settings),
) -> ClassifyResponse:
    """
    Classify an assistant message and decide whether to start research.

    Args:
        payload (ClassifyRequest): The message, optional context and optional threshold.
        classifier (IntentClassifier): The classifier dependency.
        settings (Settings): The application settings dependency.

    Returns:
        ClassifyResponse: The classification and the go/no-go decision.

    Notes:
        1. Classification never fails: backend errors degrade to pattern matching.
        2. The request's `min_confidence` overrides the configured threshold.

    """
    _msg = "classify_message starting"
    log.debug(_msg)

    result = await classifier.classify(payload.message, payload.context)
    min_confidence = (
        payload.min_confidence
        if payload.min_confidence is not None
        else settings.classifier_min_confidence
    )
    response = ClassifyResponse(
        classification=result,
        should_proceed=should_proceed(result, min_confidence),
    )

    _msg = "classify_message returning"
    log.debug(_msg)
    return response
