"""Exception taxonomy — every error carries the HTTP status the server reports it with."""

from __future__ import annotations


class PromptBenchError(Exception):
    """Base error with an HTTP status and a human-readable message."""

    status_code: int = 500

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidRequestError(PromptBenchError):
    status_code = 400


class NotFoundError(PromptBenchError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found", details=f"{entity} id: {entity_id}")


class ReferentialIntegrityError(PromptBenchError):
    """Raised when a row still has dependents (test results or later versions)."""

    status_code = 400

    def __init__(self, details: str | None = None):
        super().__init__(
            "Cannot delete prompt: It has dependent data (test results or versioned prompts). "
            "Please delete the dependent data first.",
            details=details,
        )


# ============================================================
# Upstream (completion API) errors
# ============================================================

class UpstreamError(PromptBenchError):
    """Completion API call failed; ``elapsed_ms`` covers every attempt made."""

    status_code = 500
    default_message = "Failed to test prompt with the completion API"

    def __init__(self, details: str = "", elapsed_ms: int = 0, attempts: int = 1):
        self.elapsed_ms = elapsed_ms
        self.attempts = attempts
        super().__init__(self.default_message, details=details)


class AuthError(UpstreamError):
    status_code = 401
    default_message = "Invalid OpenAI API key. Please check your API key configuration."


class RateLimited(UpstreamError):
    status_code = 429
    default_message = "OpenAI API rate limit exceeded. Please try again in a few minutes."


class QuotaExceeded(UpstreamError):
    status_code = 402
    default_message = "OpenAI API quota exceeded. Please check your billing."
