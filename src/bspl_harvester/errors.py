"""Exception hierarchy for the harvester.

Every failure a stage can recover from by dropping the current item derives
from HarvesterError. Stages catch HarvesterError per item and let anything
else (programming errors, cancellation) propagate.
"""

from typing import Any, Dict, Optional


class HarvesterError(Exception):
    """Base class for recoverable harvester failures."""
    pass


class ConfigurationError(HarvesterError):
    """Raised when required configuration is missing or invalid."""
    pass


class RequestError(HarvesterError):
    """Transport-level failure (connection error, timeout, ...)."""
    pass


class UnsuccessfulResponseError(HarvesterError):
    """Raised when a remote service answers with a non-2xx status code.

    Attributes:
        status: HTTP status code of the response.
        body: Decoded response body, kept for diagnostics.
    """

    def __init__(self, message: str, status: int, body: str = ""):
        super().__init__(f"{message} (status={status})")
        self.message = message
        self.status = status
        self.body = body


class MalformedResponseError(HarvesterError):
    """The response arrived but its content is not what was expected."""
    pass


class EmptyAnswerError(MalformedResponseError):
    """The recognition service reported success but returned a blank answer."""
    pass


class RecognitionError(HarvesterError):
    """Structured error reported by the OCR recognition service.

    The service answers errors with a body shaped like
    ``{"error": <code>, "message": "<text>"}``. Use ``from_body`` to get the
    subclass matching the code.
    """

    code: Optional[int] = None

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(f"Recognition service error {code}: {message}")
        self.message = message
        if code is not None:
            self.code = code

    @classmethod
    def from_body(cls, body: Dict[str, Any]) -> "RecognitionError":
        """Build the error matching the code found in an error body."""
        code = body.get("error")
        message = str(body.get("message", ""))
        # Only integer codes are known; anything else is reported as is
        if not isinstance(code, int) or isinstance(code, bool):
            return RecognitionError(message or f"unrecognized error {code!r}")
        error_class = _RECOGNITION_ERRORS.get(code, RecognitionError)
        return error_class(message, code)


class IncompleteJobError(RecognitionError):
    """The answer is not ready yet. Polling again later may succeed."""
    code = 14


class OutOfCreditError(RecognitionError):
    """The recognition account has no credit left. No request can succeed."""
    code = 16


_RECOGNITION_ERRORS = {
    IncompleteJobError.code: IncompleteJobError,
    OutOfCreditError.code: OutOfCreditError,
}


class InvalidTransitionError(RuntimeError):
    """A challenge state was built without going through its transition.

    This is a programming error, not a HarvesterError, so
    no stage swallows it.
    """
    pass
