"""
Domain exceptions. Every error carries a machine-readable code so callers can
choose remediation copy instead of showing a raw failure.
"""


class GradingError(Exception):
    """Base class for all categorized grading failures."""

    code = "GRADING_ERROR"
    status_code = 500

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFoundError(GradingError):
    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(GradingError):
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(GradingError):
    """Mutation rejected because of the exam or submission lifecycle state."""

    code = "CONFLICT"
    status_code = 409


class InvalidStateError(GradingError):
    code = "INVALID_STATE"
    status_code = 400


class GradingValidationError(GradingError):
    code = "VALIDATION_ERROR"
    status_code = 400


class FinalizationError(GradingError):
    code = "FINALIZATION_FAILED"
    status_code = 500


# ============== AI PROVIDER ERRORS ==============

class AIGradingError(GradingError):
    """Failure talking to the language-model provider."""

    code = "AI_GRADING_ERROR"
    status_code = 502


class MissingApiKeyError(AIGradingError):
    code = "MISSING_API_KEY"
    status_code = 400


class InvalidApiKeyError(AIGradingError):
    code = "INVALID_API_KEY"
    status_code = 401


class ServiceUnavailableError(AIGradingError):
    """Provider unreachable or still failing after all retries."""

    code = "SERVICE_UNAVAILABLE"
    status_code = 503


class ProviderError(AIGradingError):
    """Non-transient provider rejection (4xx other than 429)."""

    code = "PROVIDER_ERROR"
    status_code = 502


class TransientProviderError(AIGradingError):
    """Timeout, 429, 5xx or connection reset. Retried by the client."""

    code = "TRANSIENT_PROVIDER_ERROR"
    status_code = 503


CREDENTIAL_ERRORS = (MissingApiKeyError, InvalidApiKeyError)
