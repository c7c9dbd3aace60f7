"""
photoauth Authentication Engine - produces signed provenance records.

The engine binds the exact image bytes, capture time, device, camera position
and optional location into one AuthenticationRecord signed with the device key.
"""

import base64
import hashlib
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from photoauth import config
from photoauth.device import DeviceIdentity
from photoauth.errors import KeyUnavailable, SigningFailed
from photoauth.keys import KeyManager
from photoauth.record import AuthenticationRecord, canonical_payload, normalize_timestamp


logger = logging.getLogger(__name__)


def compute_image_hash(image_bytes: bytes) -> str:
    """Lowercase hex SHA-256 of the exact image bytes."""
    return hashlib.sha256(image_bytes).hexdigest()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuthenticationEngine:
    """
    Signs freshly captured images.

    Example:
        >>> engine = AuthenticationEngine(key_manager, device_identity)
        >>> record = engine.authenticate(jpeg_bytes, camera_position='back')
        >>> record.image_hash
        '3f2a...'
    """

    def __init__(
        self,
        key_manager: KeyManager,
        device_identity: DeviceIdentity,
        version: str = config.AUTH_VERSION,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize the engine.

        Args:
            key_manager: Source of the device signing key.
            device_identity: Source of the device identifier.
            version: Protocol version written into every record.
            clock: Returns the current timezone-aware instant.
        """
        self._key_manager = key_manager
        self._device_identity = device_identity
        self._version = version
        self._clock = clock

    @property
    def version(self) -> str:
        return self._version

    def authenticate(
        self,
        image_bytes: Union[bytes, bytearray, memoryview],
        camera_position: str,
        location: Optional[str] = None,
    ) -> AuthenticationRecord:
        """
        Produce a signed AuthenticationRecord for image_bytes.

        Args:
            image_bytes: Encoded image exactly as captured.
            camera_position: Camera label from the capture pipeline ("front"/"back").
            location: Optional "latitude,longitude" string. None means no location.

        Returns:
            The signed record.

        Raises:
            SigningFailed: If the signing key is unavailable, signing fails, or
                camera_position contains the payload separator "|".
                ``retryable`` is True when the key store could not be reached.
        """
        # Work on an immutable snapshot so the caller's buffer is never touched
        data = bytes(image_bytes)

        image_hash = compute_image_hash(data)
        timestamp = normalize_timestamp(self._clock())
        device_id = self._device_identity.get_or_create_device_id()
        if not device_id.persisted:
            logger.warning("Signing with a device id that is not yet persisted")

        try:
            payload = canonical_payload(
                image_hash=image_hash,
                timestamp=timestamp,
                device_id=device_id.value,
                camera_position=camera_position,
                version=self._version,
                location=location,
            )
        except ValueError as e:
            raise SigningFailed(f"Cannot build signing payload: {e}") from e

        try:
            signer = self._key_manager.get_or_create_signing_key()
        except KeyUnavailable as e:
            logger.error(f"Failed to sign photo authentication data: {e}")
            raise SigningFailed(f"Signing key unavailable: {e}", retryable=True) from e

        try:
            signature_bytes = signer.sign(payload)
        except Exception as e:
            logger.error(f"Failed to create signature: {e}")
            raise SigningFailed(f"Signature creation failed: {e}") from e

        signature_b64 = base64.b64encode(signature_bytes).decode("ascii")
        logger.debug(f"Authenticated {len(data)} bytes, hash {image_hash[:12]}...")

        return AuthenticationRecord(
            image_hash=image_hash,
            timestamp=timestamp,
            device_id=device_id.value,
            signature=signature_b64,
            version=self._version,
            camera_position=camera_position,
            location=location,
        )
