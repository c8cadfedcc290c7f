from enum import Enum


class ErrorKind(Enum):
    PERMISSION_DENIED = "permissionDenied"
    CAPTURE_FAILED = "captureFailed"
    ENGINE_NOT_AVAILABLE = "engineNotAvailable"
    API_KEY_REQUIRED = "apiKeyRequired"
    INVALID_API_KEY = "invalidApiKey"
    UNSUPPORTED_LANGUAGE_PAIR = "unsupportedLanguagePair"
    RATE_LIMIT_EXCEEDED = "rateLimitExceeded"
    PARSE_ERROR = "parseError"
    EMPTY_RESPONSE = "emptyResponse"
    NETWORK_ERROR = "networkError"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class SnapTraError(Exception):
    """Base class for every failure a lookup can end with"""

    kind: ErrorKind = None
    default_message = "Lookup failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PermissionDeniedError(SnapTraError):
    kind = ErrorKind.PERMISSION_DENIED
    default_message = "Enable screen capture permission"


class CaptureFailedError(SnapTraError):
    kind = ErrorKind.CAPTURE_FAILED
    default_message = "Capture failed"


class LookupCancelledError(SnapTraError):
    kind = ErrorKind.CANCELLED
    default_message = "Lookup cancelled"


class TranslationEngineError(SnapTraError):
    """Failures raised by translation backends"""
    default_message = "Translation engine error"


class EngineNotAvailableError(TranslationEngineError):
    kind = ErrorKind.ENGINE_NOT_AVAILABLE
    default_message = "Translation engine not available"


class ApiKeyRequiredError(TranslationEngineError):
    kind = ErrorKind.API_KEY_REQUIRED
    default_message = "API key is required for this service"


class InvalidApiKeyError(TranslationEngineError):
    kind = ErrorKind.INVALID_API_KEY
    default_message = "Invalid API key"


class UnsupportedLanguagePairError(TranslationEngineError):
    kind = ErrorKind.UNSUPPORTED_LANGUAGE_PAIR
    default_message = "Language pair not supported"


class RateLimitExceededError(TranslationEngineError):
    kind = ErrorKind.RATE_LIMIT_EXCEEDED
    default_message = "Rate limit exceeded, please try again later"


class ParseError(TranslationEngineError):
    kind = ErrorKind.PARSE_ERROR
    default_message = "Failed to parse response"


class EmptyResponseError(TranslationEngineError):
    kind = ErrorKind.EMPTY_RESPONSE
    default_message = "Empty response from server"


class NetworkError(TranslationEngineError):
    kind = ErrorKind.NETWORK_ERROR
    default_message = "Network error"

    def __init__(self, message: str = None, cause: Exception = None):
        if cause is not None and message is None:
            message = f"Network error: {cause}"
        super().__init__(message)
        self.cause = cause


class RequestTimeoutError(TranslationEngineError):
    kind = ErrorKind.TIMEOUT
    default_message = "Request timeout"
