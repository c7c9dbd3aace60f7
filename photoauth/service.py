"""
photoauth Service - the outward interface of the authentication core.

Wires KeyManager, DeviceIdentity, AuthenticationEngine, MetadataEmbedder and
Verifier together and exposes the two operations capture and review code
need: authenticate_and_embed() and verify().
"""

import io
import logging
from typing import Optional, Union

from PIL import Image

from photoauth import config
from photoauth.device import DeviceIdentity
from photoauth.engine import AuthenticationEngine
from photoauth.errors import EmbedFailed, SigningFailed
from photoauth.keys import KeyManager
from photoauth.media import MetadataEmbedder
from photoauth.metrics import PhotoAuthMetrics, get_metrics
from photoauth.record import BACK, AuthenticationRecord
from photoauth.store import FileSecureStore, RedisSecureStore, SecureStore
from photoauth.verifier import VerificationOutcome, Verifier


logger = logging.getLogger(__name__)

SELF_TEST_LOCATION = "40.7128,-74.0060"


def default_store() -> SecureStore:
    """Secure store selected by configuration (Redis if PHOTOAUTH_REDIS_URL is set)."""
    if config.REDIS_URL:
        return RedisSecureStore.from_url(config.REDIS_URL)
    return FileSecureStore(config.STORE_DIR)


class PhotoAuthenticator:
    """
    Authenticates captured photos and verifies authenticated ones.

    authenticate_and_embed() either returns bytes carrying a valid record or
    raises; it never returns a photo that only looks authenticated.

    Example:
        >>> auth = PhotoAuthenticator.from_config()
        >>> authenticated = auth.authenticate_and_embed(jpeg_bytes, 'back', '40.7128,-74.0060')
        >>> auth.verify(authenticated).is_valid
        True
    """

    def __init__(
        self,
        key_manager: KeyManager,
        device_identity: DeviceIdentity,
        embedder: Optional[MetadataEmbedder] = None,
        engine: Optional[AuthenticationEngine] = None,
        metrics: Optional[PhotoAuthMetrics] = None,
    ):
        self.key_manager = key_manager
        self.device_identity = device_identity
        self.embedder = embedder or MetadataEmbedder()
        self.engine = engine or AuthenticationEngine(key_manager, device_identity)
        self.verifier = Verifier(key_manager=key_manager, embedder=self.embedder)
        self.metrics = metrics or get_metrics()

    @classmethod
    def from_store(cls, store: SecureStore, **kwargs) -> "PhotoAuthenticator":
        """Build the full stack on one secure store."""
        return cls(KeyManager(store), DeviceIdentity(store), **kwargs)

    @classmethod
    def from_config(cls, **kwargs) -> "PhotoAuthenticator":
        """Build the full stack on the configured secure store."""
        return cls.from_store(default_store(), **kwargs)

    def authenticate(
        self, image_bytes: bytes, camera_position: str, location: Optional[str] = None
    ) -> AuthenticationRecord:
        """Sign image_bytes; see AuthenticationEngine.authenticate."""
        try:
            with self.metrics.timer("authenticate"):
                record = self.engine.authenticate(image_bytes, camera_position, location)
        except SigningFailed:
            self.metrics.record_authentication(success=False)
            raise
        self.metrics.record_authentication(success=True)
        return record

    def embed(self, original_bytes: bytes, record: AuthenticationRecord) -> bytes:
        """Embed record; see MetadataEmbedder.embed."""
        try:
            with self.metrics.timer("embed"):
                authenticated = self.embedder.embed(original_bytes, record)
        except EmbedFailed:
            self.metrics.record_embedding(success=False)
            raise
        self.metrics.record_embedding(success=True)
        return authenticated

    def authenticate_and_embed(
        self,
        image_bytes: Union[bytes, bytearray, memoryview],
        camera_position: str,
        location: Optional[str] = None,
    ) -> bytes:
        """
        Sign a freshly captured image and embed the record in it.

        Args:
            image_bytes: Encoded image exactly as captured (JPEG or PNG).
            camera_position: Camera label from the capture pipeline.
            location: Optional "latitude,longitude" string.

        Returns:
            The authenticated image bytes, ready to persist.

        Raises:
            SigningFailed: The photo could not be signed (device problem).
            EmbedFailed: The record could not be embedded; discard the attempt.
        """
        data = bytes(image_bytes)
        record = self.authenticate(data, camera_position, location)
        authenticated = self.embed(data, record)
        logger.info(f"Photo authenticated ({camera_position}, {len(authenticated)} bytes)")
        return authenticated

    def verify(self, candidate_bytes: Union[bytes, bytearray, memoryview]) -> VerificationOutcome:
        """Verify an image; see Verifier.verify."""
        with self.metrics.timer("verify"):
            outcome = self.verifier.verify(candidate_bytes)
        self.metrics.record_verification(outcome.status.value)
        return outcome

    def self_test(self) -> VerificationOutcome:
        """
        Run the full pipeline on a generated image.

        Authenticates a small JPEG as a back-camera capture with a fixed
        location, embeds the record and verifies the result.

        Raises:
            SigningFailed, EmbedFailed: If the pipeline itself fails.
        """
        img = Image.new("RGB", (64, 64), color="white")
        buf = io.BytesIO()
        img.save(buf, "JPEG")

        authenticated = self.authenticate_and_embed(
            buf.getvalue(), camera_position=BACK, location=SELF_TEST_LOCATION
        )
        outcome = self.verify(authenticated)
        if outcome.is_valid:
            logger.info("Authentication system working")
        else:
            logger.error(f"Self-test verification failed: {outcome.message}")
        return outcome
