"""
Error codes, user-facing messages and pipeline exceptions.
"""
from typing import Dict, Optional

# Error codes
class ErrorCodes:
    DATASET_TOO_SMALL = "DATASET_TOO_SMALL"
    DATASET_TOO_LARGE = "DATASET_TOO_LARGE"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

# User-facing error messages
ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    ErrorCodes.DATASET_TOO_SMALL: {
        "message": "There isn't enough data to analyze",
        "detail": "We need a header row and at least one row of data, and at least one row has to survive cleaning.",
        "suggestion": "💡 Check that the first row holds column names and that the rows below it aren't empty or exact duplicates."
    },
    ErrorCodes.DATASET_TOO_LARGE: {
        "message": "This dataset is larger than we analyze in one go",
        "detail": "The number of rows or columns exceeds the configured limit for a single analysis.",
        "suggestion": "💡 Send a sample of the rows or only the columns you care about. Most patterns are visible in a few thousand rows."
    },
    ErrorCodes.INVALID_PAYLOAD: {
        "message": "The chart suggestions couldn't be read",
        "detail": "The insight generator's response was not a JSON object with dashboard views.",
        "suggestion": "💡 Request a fresh set of suggestions and try again."
    },
    ErrorCodes.PROCESSING_ERROR: {
        "message": "Something went wrong while processing",
        "detail": "We hit a snag while analyzing your data.",
        "suggestion": "💡 Check that your data is organized in columns with a single header row, then try again."
    },
    ErrorCodes.RATE_LIMIT_EXCEEDED: {
        "message": "Whoa there! Slow down a bit",
        "detail": "You're sending analyses faster than we can keep up! We limit requests to keep the service fast for everyone.",
        "suggestion": "💡 Take a quick break and try again in about a minute."
    },
    ErrorCodes.TIMEOUT: {
        "message": "This is taking longer than expected",
        "detail": "The analysis did not finish within the allowed time.",
        "suggestion": "💡 Try a smaller sample of your data."
    },
    ErrorCodes.UNKNOWN_ERROR: {
        "message": "Hmm, something unexpected happened",
        "detail": "We encountered an issue we weren't expecting. Don't worry - it's not your fault!",
        "suggestion": "💡 Give it another try in a moment."
    }
}

def get_error_response(error_code: str, additional_detail: Optional[str] = None) -> Dict[str, str]:
    """
    Get user-friendly error response for an error code.

    Args:
        error_code: One of the ErrorCodes constants
        additional_detail: Optional additional detail to append

    Returns:
        Dictionary with code, message, detail, and suggestion
    """
    error_info = ERROR_MESSAGES.get(error_code, ERROR_MESSAGES[ErrorCodes.UNKNOWN_ERROR])

    response = {
        "code": error_code,
        "message": error_info["message"],
        "detail": error_info["detail"],
        "suggestion": error_info["suggestion"]
    }

    if additional_detail:
        response["detail"] = f"{response['detail']} {additional_detail}"

    return response


class PipelineError(Exception):
    """Base class for errors raised by the analysis pipeline."""
    code = ErrorCodes.PROCESSING_ERROR

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class UnrecoverableInputError(PipelineError):
    """The dataset cannot be analyzed at all."""
    code = ErrorCodes.DATASET_TOO_SMALL


class InvalidPayloadError(PipelineError):
    """The generator response is not a usable JSON object."""
    code = ErrorCodes.INVALID_PAYLOAD


class CandidateRejected(PipelineError):
    """A single chart candidate was dropped; the analysis continues."""

    def __init__(self, message: str, stage: str):
        super().__init__(message)
        self.stage = stage


class DegenerateAggregation(CandidateRejected):
    """Fewer than two groups or points survived aggregation."""

    def __init__(self, message: str):
        super().__init__(message, stage="aggregation")


class StructuralValidationError(CandidateRejected):
    """A chart reached the final gate in an inconsistent state."""

    def __init__(self, message: str):
        super().__init__(message, stage="structural_validation")
