"""
photoauth - cryptographic provenance for captured photos.

This package binds the exact bytes of a freshly captured image, its capture
time, the capturing device, the camera position and an optional location into
a device-signed record embedded in the image itself, and verifies such images
later.
"""

__version__ = "1.0.0"

# Errors
from .errors import (
    PhotoAuthError,
    StoreUnavailable,
    KeyUnavailable,
    SigningFailed,
    EmbedFailed,
    MalformedRecord,
)

# Storage and long-lived device state
from .store import SecureStore, MemorySecureStore, FileSecureStore, RedisSecureStore
from .keys import Signer, SoftwareSigner, KeyManager, load_public_key
from .device import DeviceId, DeviceIdentity

# Protocol
from .record import AuthenticationRecord, canonical_payload, format_location
from .engine import AuthenticationEngine, compute_image_hash
from .media import MetadataEmbedder
from .verifier import Verifier, VerificationOutcome, VerificationStatus
from .service import PhotoAuthenticator


__all__ = [
    "__version__",
    # Errors
    "PhotoAuthError",
    "StoreUnavailable",
    "KeyUnavailable",
    "SigningFailed",
    "EmbedFailed",
    "MalformedRecord",
    # Storage
    "SecureStore",
    "MemorySecureStore",
    "FileSecureStore",
    "RedisSecureStore",
    # Keys and identity
    "Signer",
    "SoftwareSigner",
    "KeyManager",
    "load_public_key",
    "DeviceId",
    "DeviceIdentity",
    # Protocol
    "AuthenticationRecord",
    "canonical_payload",
    "format_location",
    "AuthenticationEngine",
    "compute_image_hash",
    "MetadataEmbedder",
    "Verifier",
    "VerificationOutcome",
    "VerificationStatus",
    "PhotoAuthenticator",
]
