import logging

log = logging.getLogger(__name__)


class GenerationError(Exception):
    """Base class for every failure that can escape a generation call.

    Attributes:
        cause (str): A human-readable explanation suitable for showing to a user.

    """

    default_cause = "The AI service failed to produce a result. Please try again."

    def __init__(self, cause: str | None = None):
        self.cause = cause or self.default_cause
        super().__init__(self.cause)


class TransportError(GenerationError):
    """The generation backend could not be reached or failed mid-request."""

    default_cause = "The AI service could not be reached. Please try again."


class EmptyResponseError(TransportError):
    """The backend reported success but returned no text."""

    default_cause = "The AI service returned an empty response. Please try again."


class QuotaError(GenerationError):
    """The backend rejected the request because of rate limiting or exhausted quota."""

    default_cause = "The AI service is rate limited right now. Please wait and try again."


class AuthError(GenerationError):
    """The backend is not configured or rejected the supplied credentials."""

    default_cause = "The AI service is not configured. Please check your API key."


class MalformedOutputError(GenerationError, ValueError):
    """The backend answered, but nothing usable could be parsed from the answer."""

    default_cause = "The AI service returned an unexpected response. Please try again."
