from __future__ import annotations
import math
from typing import Literal, Optional

ThrottleScope = Literal["session", "global"]


class SurveyError(Exception):
    """Base class for errors raised by the survey core."""


class ThrottledError(SurveyError):
    """A session or origin exceeded its request budget.

    `retry_after` is the number of whole seconds until the oldest request in the
    window expires, so the caller can wait or tell the respondent.
    """

    def __init__(self, scope: ThrottleScope, retry_after: float, limit: int, window: float):
        self.scope = scope
        self.retry_after = max(1, int(math.ceil(retry_after)))
        self.limit = limit
        self.window = window
        if scope == "global":
            msg = "Too many requests from this origin, please try again later"
        else:
            msg = f"Maximum {limit} requests per {int(window)}s allowed per session"
        super().__init__(msg)


class ValidationTransportError(SurveyError):
    """The LLM call failed (network, auth, quota, timeout)."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class ConfigurationError(SurveyError):
    """Malformed survey config or prompt template."""
