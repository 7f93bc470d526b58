from __future__ import annotations

EMPTY_CODE = "REMOTE_EMPTY"
EMPTY_PROD_CODE = "REMOTE_EMPTY_PROD"
SAFETY_CODE = "REMOTE_SAFETY"
TIMEOUT_CODE = "REMOTE_TIMEOUT"


class ParseError(RuntimeError):
    """Remote analysis produced nothing usable. ``code`` says why."""

    def __init__(self, message: str, *, code: str = EMPTY_CODE):
        super().__init__(message)
        self.code = code


class QuotaError(RuntimeError):
    def __init__(self, message: str, *, reason: str = "QUOTA", retry_at: float | None = None):
        super().__init__(message)
        self.reason = reason
        self.retry_at = retry_at
