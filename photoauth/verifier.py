"""
photoauth Verifier - checks authenticated photos for tampering and forgery.

Verification answers one question about the bytes a holder presents: were
they produced, unmodified, by the device owning the signing key?

The embedded record is removed from the presented bytes and the remainder is
hashed. For an untouched photo that remainder is exactly the byte sequence the
device signed, so any change outside the record shows up as a hash mismatch
(TAMPERED). Changes to the record fields themselves break the signature
(INVALID_SIGNATURE).

A provenance segment that is present but can no longer be read, or bytes
that still name the record namespace without a readable segment, are the
result of modification as well and give TAMPERED. NO_RECORD is reserved for
images that were never authenticated.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ec

from photoauth import config
from photoauth.engine import compute_image_hash
from photoauth.errors import EmbedFailed, MalformedRecord
from photoauth.keys import KeyManager, SIGNATURE_ALGORITHM, load_public_key
from photoauth.media import MetadataEmbedder
from photoauth.record import AuthenticationRecord


logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    """Structured outcome of verifying an image."""

    NO_RECORD = "no_record"  # nothing embedded
    TAMPERED = "tampered"  # bytes differ from the signed bytes, or the record is damaged
    INVALID_SIGNATURE = "invalid_signature"  # record fields not signed by this device
    VALID = "valid"


_MESSAGES = {
    VerificationStatus.NO_RECORD: "No authentication record found",
    VerificationStatus.TAMPERED: "Image or its authentication record has been modified",
    VerificationStatus.INVALID_SIGNATURE: "Signature does not match the authentication record",
    VerificationStatus.VALID: "Photo is authentic",
}


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of verifying an image."""

    status: VerificationStatus
    record: Optional[AuthenticationRecord] = None

    @property
    def is_valid(self) -> bool:
        return self.status is VerificationStatus.VALID

    @property
    def message(self) -> str:
        return _MESSAGES[self.status]


class Verifier:
    """
    Verifies authenticated photos against a device public key.

    Example:
        >>> verifier = Verifier(key_manager=manager)
        >>> outcome = verifier.verify(authenticated_bytes)
        >>> outcome.status
        <VerificationStatus.VALID: 'valid'>

        # Verifying elsewhere with a published key
        >>> verifier = Verifier.from_public_key(public_key_pem)
    """

    def __init__(
        self,
        key_manager: Optional[KeyManager] = None,
        public_key: Optional[ec.EllipticCurvePublicKey] = None,
        embedder: Optional[MetadataEmbedder] = None,
        version: str = config.AUTH_VERSION,
    ):
        """
        Initialize the verifier.

        Args:
            key_manager: Supplies the device public key on demand.
            public_key: Explicit P-256 public key, used instead of key_manager.
            embedder: Metadata reader (default: MetadataEmbedder()).
            version: Protocol version records must carry.

        Raises:
            ValueError: If neither key_manager nor public_key is provided.
        """
        if key_manager is None and public_key is None:
            raise ValueError("Verifier requires a key_manager or a public_key")

        self._key_manager = key_manager
        self._public_key = public_key
        self._embedder = embedder or MetadataEmbedder()
        self._version = version

    @classmethod
    def from_public_key(cls, data: Union[str, bytes], **kwargs) -> "Verifier":
        """Create a verifier from a PEM or JWK encoded public key."""
        return cls(public_key=load_public_key(data), **kwargs)

    def _resolve_public_key(self) -> ec.EllipticCurvePublicKey:
        if self._public_key is not None:
            return self._public_key
        # KeyUnavailable propagates: a local problem, not a verdict on the photo
        return self._key_manager.public_key()

    def verify(self, candidate_bytes: Union[bytes, bytearray, memoryview]) -> VerificationOutcome:
        """
        Verify an image.

        Args:
            candidate_bytes: The image bytes as presented for verification.

        Returns:
            VerificationOutcome. record is None for NO_RECORD and for a
            TAMPERED outcome whose embedded record could not be read back.

        Raises:
            KeyUnavailable: If the device public key cannot be obtained.
        """
        data = bytes(candidate_bytes)

        try:
            fields = self._embedder.extract(data)
            if fields is None:
                return VerificationOutcome(VerificationStatus.NO_RECORD)
            record = AuthenticationRecord.from_metadata(fields)
        except MalformedRecord as e:
            logger.info(f"Embedded record is damaged: {e}")
            return VerificationOutcome(VerificationStatus.TAMPERED)

        try:
            signed_bytes = self._embedder.strip(data)
        except EmbedFailed as e:
            logger.warning(f"Cannot recover signed bytes: {e}")
            return VerificationOutcome(VerificationStatus.TAMPERED, record)

        if compute_image_hash(signed_bytes) != record.image_hash:
            logger.info("Hash mismatch - image has been tampered with")
            return VerificationOutcome(VerificationStatus.TAMPERED, record)

        if not self.verify_record(record):
            logger.info("Signature verification failed")
            return VerificationOutcome(VerificationStatus.INVALID_SIGNATURE, record)

        return VerificationOutcome(VerificationStatus.VALID, record)

    def verify_record(self, record: AuthenticationRecord) -> bool:
        """
        Check the record's signature over its canonical payload.

        Records of another protocol version, or whose fields cannot form an
        unambiguous payload, never verify.

        Returns:
            True if the signature is valid for the device public key.
        """
        if record.version != self._version:
            logger.debug(f"Unsupported record version: {record.version!r}")
            return False

        try:
            payload = record.payload()
        except ValueError as e:
            logger.debug(f"Ambiguous record payload: {e}")
            return False

        try:
            signature = base64.b64decode(record.signature, validate=True)
        except (binascii.Error, ValueError):
            return False
        # Only the canonical encoding is accepted
        if base64.b64encode(signature).decode("ascii") != record.signature:
            return False

        public_key = self._resolve_public_key()
        try:
            public_key.verify(signature, payload, SIGNATURE_ALGORITHM)
            return True
        except InvalidSignature:
            return False
