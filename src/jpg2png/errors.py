"""Error definitions for the JPG to PNG converter."""

import logging
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .logging_config import get_logger


class ErrorCode(Enum):
    """Machine-readable failure codes returned to HTTP clients."""

    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    PARSE_ERROR = "PARSE_ERROR"
    NO_FILE_FOUND = "NO_FILE_FOUND"
    INVALID_FORMAT = "INVALID_FORMAT"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ConversionError(Exception):
    """Base exception for conversion errors."""

    pass


class InvalidFormatError(ConversionError):
    """Raised when the source bytes fail the JPEG magic-byte check."""

    pass


class CodecError(ConversionError):
    """Raised when the image codec cannot decode or encode a buffer."""

    pass


class StageFailureError(ConversionError):
    """Raised when a pipeline stage's codec operation fails.

    Attributes:
        stage: Identifier of the failing stage (e.g. ``"reduce-noise"``)
        cause: The underlying exception
    """

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {type(cause).__name__}: {cause}")


class EncodeFailureError(ConversionError):
    """Raised when the final target-format encode fails.

    Attributes:
        target: Target format name
        cause: The underlying exception
    """

    def __init__(self, target: str, cause: Exception):
        self.target = target
        self.cause = cause
        super().__init__(f"Encoding to {target} failed: {type(cause).__name__}: {cause}")


class InvalidFileError(ConversionError):
    """Raised when a file on disk cannot be read or written."""

    pass


class SecurityError(ConversionError):
    """Raised when a path fails security checks (e.g. traversal)."""

    pass


class PipelineAbortedError(ConversionError):
    """Raised when the caller abandons an in-flight pipeline between stages."""

    pass


class RequestError(ConversionError):
    """Raised by the transport layer when a request cannot be processed.

    Attributes:
        code: Machine-readable error code
    """

    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        super().__init__(message)


class ErrorCategory(Enum):
    """Categories of errors for classification."""

    INPUT_VALIDATION = "input_validation"
    PROCESSING = "processing"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FailureResponse:
    """Tagged failure result handed back to the transport layer.

    Attributes:
        code: Machine-readable error code
        message: User-facing error message
        http_status: HTTP status the transport should answer with
    """

    code: ErrorCode
    message: str
    http_status: int

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON failure envelope."""
        return {"success": False, "error": self.message, "code": self.code.value}


_STATUS_BY_CODE = {
    ErrorCode.INVALID_CONTENT_TYPE: 400,
    ErrorCode.PARSE_ERROR: 400,
    ErrorCode.NO_FILE_FOUND: 400,
    ErrorCode.INVALID_FORMAT: 400,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.INTERNAL_ERROR: 500,
}


def status_for(code: ErrorCode) -> int:
    """HTTP status for an error code."""
    return _STATUS_BY_CODE[code]


class ErrorHandler:
    """Turn exceptions into logged, tagged failure responses.

    Classifies the error, picks the machine-readable code, builds a
    user-facing message and logs the error with its context.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        """Initialize the error handler.

        Args:
            logger: Optional logger instance. If None, creates a default logger.
        """
        self.logger = logger or get_logger(__name__)

    def handle_error(self, error: Exception, context: dict[str, Any]) -> FailureResponse:
        """Handle an error raised while serving a request.

        Args:
            error: The exception that occurred
            context: Context information (e.g., filename, operation)

        Returns:
            FailureResponse with the code, message and HTTP status
        """
        category = self._classify_error(error)
        code = self._error_code(error, category)
        message = self._generate_user_message(error, category, context)

        self._log_error(error, category, context)

        return FailureResponse(code=code, message=message, http_status=status_for(code))

    def _classify_error(self, error: Exception) -> ErrorCategory:
        """Classify error into category for appropriate handling.

        Args:
            error: The exception to classify

        Returns:
            ErrorCategory indicating the type of error
        """
        if isinstance(error, (InvalidFormatError, RequestError, InvalidFileError, SecurityError)):
            return ErrorCategory.INPUT_VALIDATION
        elif isinstance(error, (StageFailureError, EncodeFailureError, PipelineAbortedError)):
            return ErrorCategory.PROCESSING
        elif isinstance(error, (ValueError, TypeError)):
            return ErrorCategory.CONFIGURATION
        elif isinstance(error, ConversionError):
            return ErrorCategory.PROCESSING
        else:
            return ErrorCategory.UNKNOWN

    def _error_code(self, error: Exception, category: ErrorCategory) -> ErrorCode:
        """Pick the machine-readable code for an error."""
        if isinstance(error, RequestError):
            return error.code
        if isinstance(error, InvalidFormatError):
            return ErrorCode.INVALID_FORMAT
        if category == ErrorCategory.CONFIGURATION:
            # Bad options or parameter overrides supplied by the client
            return ErrorCode.PARSE_ERROR
        return ErrorCode.INTERNAL_ERROR

    def _generate_user_message(
        self, error: Exception, category: ErrorCategory, context: dict[str, Any]
    ) -> str:
        """Generate a clear error message for the client.

        Args:
            error: The exception that occurred
            category: The error category
            context: Context information

        Returns:
            User-facing error message
        """
        base_message = str(error)

        if category == ErrorCategory.INPUT_VALIDATION:
            if isinstance(error, InvalidFormatError):
                return f"Invalid file format: {base_message}. Only JPG/JPEG images are supported."
            return base_message

        elif category == ErrorCategory.PROCESSING:
            operation = context.get("operation", "conversion")
            return f"Processing error during {operation}: {base_message}"

        elif category == ErrorCategory.CONFIGURATION:
            return f"Invalid request parameters: {base_message}"

        else:  # UNKNOWN
            return f"Internal error: {base_message}"

    def _log_error(
        self, error: Exception, category: ErrorCategory, context: dict[str, Any]
    ) -> None:
        """Log error with full context and stack trace.

        Args:
            error: The exception that occurred
            category: The error category
            context: Context information
        """
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())

        self.logger.error(
            f"Error [{category.value}]: {type(error).__name__}: {error}",
            extra={"context": context_str},
        )

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                f"Stack trace for error in {context.get('filename', 'request')}:\n"
                f"{''.join(traceback.format_exception(type(error), error, error.__traceback__))}"
            )
