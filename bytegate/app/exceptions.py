"""Custom exceptions for the gateway application."""

from typing import Dict

from bytegate.app.middleware.rate_limit import AdmissionDecision, rate_limit_headers


class GatewayException(Exception):
    """Base class for gateway exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500
    error_code: str = "gateway_error"

    def __init__(self, message: str = "Gateway error", headers: Dict[str, str] | None = None):
        self.message = message
        self._headers = dict(headers or {})
        super().__init__(message)

    @property
    def headers(self) -> Dict[str, str]:
        """Extra response headers, e.g. the caller's rate limit state."""
        return dict(self._headers)

    def to_response(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class AuthenticationError(GatewayException):
    """Raised when the caller cannot be authenticated.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401
    error_code = "authentication_failed"

    def __init__(self, detail: str = "Authentication required"):
        self.detail = detail
        super().__init__(detail)


class InvalidRequestError(GatewayException):
    """Raised when the request body is malformed or fails validation.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    error_code = "invalid_request"

    def __init__(
        self,
        message: str = "Invalid request structure",
        details: str | None = None,
        error_code: str | None = None,
        headers: Dict[str, str] | None = None,
    ):
        self.details = details
        if error_code:
            self.error_code = error_code
        super().__init__(message, headers)

    def to_response(self) -> dict:
        body = super().to_response()
        if self.details:
            body["details"] = self.details
        return body


class RateLimitExceededError(GatewayException):
    """Raised when a caller has no admission tokens left.

    Carries the admission decision so the response can include
    Retry-After and X-RateLimit-* headers.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, decision: AdmissionDecision):
        self.decision = decision
        self.retry_after = decision.retry_after
        super().__init__(
            f"Rate limit exceeded. Please try again after {decision.retry_after} seconds."
        )

    @property
    def headers(self) -> Dict[str, str]:
        return rate_limit_headers(self.decision)

    def to_response(self) -> dict:
        body = super().to_response()
        body["retry_after"] = self.retry_after
        return body


class ProviderUnavailableError(GatewayException):
    """Raised when no AI provider is configured or reachable.

    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503
    error_code = "provider_unavailable"

    def __init__(
        self,
        message: str = "AI service unavailable",
        headers: Dict[str, str] | None = None,
    ):
        super().__init__(message, headers)


class ProviderResponseError(GatewayException):
    """Raised when the AI provider fails or returns no usable answer.

    Maps to HTTP 502 Bad Gateway.
    """
    status_code = 502
    error_code = "bad_gateway"

    def __init__(
        self,
        message: str = "No response generated from AI",
        headers: Dict[str, str] | None = None,
    ):
        super().__init__(message, headers)
