"""Error models and the exception hierarchy for modelbridge."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Body of an OpenAI-style error."""

    message: str = Field(..., description="Human-readable error message")
    type: str = Field(..., description="Error class, e.g. invalid_request_error")
    code: Optional[str] = Field(default=None, description="Specific error code for programmatic handling")
    param: Optional[str] = Field(default=None, description="Request field that caused the error")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: ErrorDetail

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": {
                "message": "temperature must be between 0 and 2",
                "type": "invalid_request_error",
                "code": "invalid_value",
                "param": "temperature"
            }
        }
    })


class ErrorTypes:
    """Values of the ``type`` field of an error body."""

    INVALID_REQUEST = "invalid_request_error"
    AUTHENTICATION = "authentication_error"
    PERMISSION = "permission_error"
    NOT_FOUND = "not_found_error"
    RATE_LIMIT = "rate_limit_error"
    API = "api_error"
    TIMEOUT = "timeout_error"


class ErrorCodes:
    """Values of the ``code`` field of an error body."""

    # Request errors
    INVALID_JSON = "invalid_json"
    INVALID_VALUE = "invalid_value"
    MISSING_FIELD = "missing_field"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    REQUEST_TOO_LARGE = "request_too_large"

    # Routing errors
    NO_SUITABLE_MODEL = "no_suitable_model"
    PROVIDER_ACCESS_REQUIRED = "provider_access_required"
    ENDPOINT_NOT_FOUND = "endpoint_not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    REQUEST_TIMEOUT = "request_timeout"

    # Provider errors
    PROVIDER_PERMISSION_DENIED = "provider_permission_denied"
    PROVIDER_CONTENT_BLOCKED = "provider_content_blocked"
    PROVIDER_MODEL_NOT_FOUND = "provider_model_not_found"
    PROVIDER_ERROR = "provider_error"

    # Server errors
    DISCOVERY_FAILED = "discovery_failed"
    INTERNAL_SERVER_ERROR = "internal_server_error"


class ModelBridgeError(Exception):
    """Base exception for errors that are reported to API clients."""

    status_code = 500
    error_type = ErrorTypes.API

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        param: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.param = param
        self.details = details or {}

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=ErrorDetail(
                message=self.message,
                type=self.error_type,
                code=self.code,
                param=self.param,
            )
        )


class ValidationError(ModelBridgeError):
    """Malformed or out-of-range request fields."""

    status_code = 400
    error_type = ErrorTypes.INVALID_REQUEST

    def __init__(self, message: str, param: Optional[str] = None, code: Optional[str] = None, **kwargs):
        super().__init__(message, code=code or ErrorCodes.INVALID_VALUE, param=param, **kwargs)


class AuthenticationError(ModelBridgeError):
    """Provider access unavailable."""

    status_code = 401
    error_type = ErrorTypes.AUTHENTICATION


class PermissionDeniedError(ModelBridgeError):
    """The provider refused the request."""

    status_code = 403
    error_type = ErrorTypes.PERMISSION


class NotFoundError(ModelBridgeError):
    """Unknown model or endpoint."""

    status_code = 404
    error_type = ErrorTypes.NOT_FOUND


class MethodNotAllowedError(ModelBridgeError):
    status_code = 405
    error_type = ErrorTypes.INVALID_REQUEST


class RequestTimeoutError(ModelBridgeError):
    """The request exceeded the configured wall-clock limit."""

    status_code = 408
    error_type = ErrorTypes.TIMEOUT


class RateLimitError(ModelBridgeError):
    """Concurrency cap exceeded."""

    status_code = 429
    error_type = ErrorTypes.RATE_LIMIT


class InternalServerError(ModelBridgeError):
    status_code = 500
    error_type = ErrorTypes.API


class ProviderError(ModelBridgeError):
    """Upstream failure not otherwise classified."""

    status_code = 502
    error_type = ErrorTypes.API

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        kwargs.setdefault("code", ErrorCodes.PROVIDER_ERROR)
        super().__init__(message, **kwargs)
        if provider:
            self.details["provider"] = provider


class ServiceUnavailableError(ModelBridgeError):
    """No model can serve the request."""

    status_code = 503
    error_type = ErrorTypes.API
