"""
Error taxonomy for the media pipeline.

Every error carries the HTTP status it maps to and a message that is safe to
show to the client. Diagnostics from external tools stay in the logs.
"""

from typing import Optional


class MediaError(Exception):
    """Base class for all errors surfaced to API clients."""

    status = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ValidationError(MediaError):
    """Bad input shape or URL."""

    status = 400


class InvalidRequestError(MediaError):
    """Malformed identifier inside an otherwise valid URL."""

    status = 400


class NotFoundError(MediaError):
    """No media or images could be found."""

    status = 404


class ExtractionError(MediaError):
    """External extraction tool failed."""

    status = 500

    def __init__(self, message: str, diagnostics: str = "", exit_code: Optional[int] = None):
        super().__init__(message)
        self.diagnostics = diagnostics
        self.exit_code = exit_code


class UpstreamAuthError(MediaError):
    """Session cookie for authenticated search is missing, too short or rejected."""

    status = 500


__all__ = [
    'MediaError',
    'ValidationError',
    'InvalidRequestError',
    'NotFoundError',
    'ExtractionError',
    'UpstreamAuthError',
]
