"""
photoauth exception hierarchy.

Failures in the authenticate -> embed chain are raised as exceptions so that a
caller can never mistake a failed attempt for an authenticated photo.
Verification results are returned as values (see photoauth.verifier).
"""

from typing import Optional


class PhotoAuthError(Exception):
    """Base class for all photoauth errors."""


class StoreUnavailable(PhotoAuthError):
    """The secure storage backend could not be reached or written."""


class KeyUnavailable(PhotoAuthError):
    """
    The signing key could not be retrieved or created.

    Recoverable by retrying later. A weaker or temporary key is never
    substituted.
    """


class SigningFailed(PhotoAuthError):
    """Producing an authentication record failed."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class EmbedFailed(PhotoAuthError):
    """The record could not be embedded in the image container."""

    def __init__(self, message: str, image_format: Optional[str] = None):
        super().__init__(message)
        self.image_format = image_format


class MalformedRecord(PhotoAuthError):
    """Embedded metadata exists but does not hold a complete record."""
