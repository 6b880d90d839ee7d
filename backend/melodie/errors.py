"""Error taxonomy for the report pipeline.

Only ``ReportError`` subclasses cross the request boundary; ``main`` maps them
to ``{"ok": false, "error": ...}`` responses with the carried status code.
``LLMError`` and ``UpstreamDegraded`` are raised by collaborators and always
absorbed into fallback values by the engines that call them.
"""

from __future__ import annotations


class ReportError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ReportError):
    status_code = 400


class AuthError(ReportError):
    status_code = 401


class CaptchaError(AuthError):
    status_code = 403


class NotFoundError(ReportError):
    status_code = 404


class ConflictError(ReportError):
    status_code = 409


class DeliveryError(ReportError):
    status_code = 500


class InternalError(ReportError):
    status_code = 500


class UpstreamDegraded(Exception):
    """A data provider failed; callers substitute an offline value."""


class LLMError(UpstreamDegraded):
    """The LLM is unconfigured, failed, timed out or returned unusable JSON."""
