from typing import Optional


class PlainstepError(Exception):
    """Base class for all executor errors."""


class ParseAmbiguity(PlainstepError):
    """Raised inside the parser when no matcher recognises a step.

    Never escapes ``parse``; the parser turns it into a best-effort click.
    """


class ElementNotFoundError(PlainstepError):
    failure_type = "elementNotFound"

    def __init__(self, selector: str, descriptive_term: Optional[str] = None):
        self.selector = selector
        self.descriptive_term = descriptive_term
        message = f"Element not found: {selector}"
        if descriptive_term and descriptive_term != selector:
            message += f" ({descriptive_term})"
        super().__init__(message)


class ActionFailedError(PlainstepError):
    failure_type = "actionFailed"


class SessionCrashedError(PlainstepError):
    """The browser execution context went away; relaunch and retry the case."""
    failure_type = "other"


class ExternalServiceError(PlainstepError):
    def __init__(self, message: str, retryable: bool = False, status: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.status = status


CRASH_SIGNATURES = (
    "execution context was destroyed",
    "target closed",
    "target page, context or browser has been closed",
    "browser has been closed",
    "session closed",
    "frame was detached",
    "browser has disconnected",
)


def is_crash_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(sig in message for sig in CRASH_SIGNATURES)


def failure_type_of(error: BaseException) -> str:
    return getattr(error, "failure_type", "actionFailed")


def raise_if_crash(error: BaseException):
    if isinstance(error, SessionCrashedError):
        raise error
    if is_crash_error(error):
        raise SessionCrashedError(str(error)) from error
