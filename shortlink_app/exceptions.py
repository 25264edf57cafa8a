"""
Typed failures of the shortener core.

Every error carries a stable ``kind`` string callers can branch on and the
HTTP status the API layer maps it to. Storage internals never leak past
``StorageFailure``.
"""

from typing import List, Optional


class ShortenerError(Exception):
    """Base class for all typed shortener failures"""

    kind = "error"
    status_code = 500
    default_message = "Shortener error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ShortenerError):
    kind = "not_found"
    status_code = 404
    default_message = "Short URL not found or has expired"


class Forbidden(ShortenerError):
    kind = "forbidden"
    status_code = 403
    default_message = "Not authorized to modify this URL"


class AuthenticationRequired(ShortenerError):
    kind = "authentication_required"
    status_code = 401
    default_message = "Authentication required"


class DuplicateKey(ShortenerError):
    """Raised by document stores when a unique key would be violated"""

    kind = "duplicate_key"
    status_code = 409
    default_message = "Unique key violated"


class SlugTaken(ShortenerError):
    kind = "slug_taken"
    status_code = 409
    default_message = "Custom slug is already in use"


class QuotaExceeded(ShortenerError):
    kind = "quota_exceeded"
    status_code = 429
    default_message = "URL quota exceeded for this plan"


class GenerationExhausted(ShortenerError):
    kind = "generation_exhausted"
    status_code = 503
    default_message = "Could not generate a unique short code"


class InvalidDate(ShortenerError):
    kind = "invalid_date"
    status_code = 400
    default_message = "Invalid expiration"


class InvalidInput(ShortenerError):
    kind = "invalid_input"
    status_code = 400
    default_message = "Invalid input"


class NoFieldsProvided(ShortenerError):
    kind = "no_fields_provided"
    status_code = 400
    default_message = "No fields provided for update"


class OrphanClick(ShortenerError):
    kind = "orphan_click"
    status_code = 404
    default_message = "Click recorded for a short code without a URL"


class StatisticsConflict(ShortenerError):
    kind = "statistics_conflict"
    status_code = 409
    default_message = "Statistics update lost too many races"


class RenderFailure(ShortenerError):
    kind = "render_failure"
    status_code = 500
    default_message = "Failed to render QR code"


class StorageFailure(ShortenerError):
    kind = "storage_failure"
    status_code = 503
    default_message = "Storage layer failure"


class PartialWriteFailure(ShortenerError):
    """
    A multi-write operation finished some of its writes and failed others.

    Nothing is rolled back; ``completed`` and ``failed`` name the steps so an
    operator can clean up.
    """

    kind = "partial_write_failure"
    status_code = 500
    default_message = "Operation partially applied"

    def __init__(
        self,
        message: Optional[str] = None,
        completed: Optional[List[str]] = None,
        failed: Optional[List[str]] = None,
    ):
        self.completed = completed or []
        self.failed = failed or []
        super().__init__(message)
