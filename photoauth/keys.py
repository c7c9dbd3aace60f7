"""
photoauth Key Management.

Owns the device signing key: an ECDSA P-256 key pair created once per
installation, stored under a fixed application tag, and reused for every
photo afterwards. Signing goes through the ``Signer`` capability so that a
hardware-backed implementation and a software test double are
interchangeable.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jwcrypto import jwk

from photoauth import config
from photoauth.errors import KeyUnavailable, StoreUnavailable
from photoauth.store import SecureStore


logger = logging.getLogger(__name__)

SIGNATURE_ALGORITHM = ec.ECDSA(hashes.SHA256())


class Signer(ABC):
    """
    Signing capability backed by a private key that is never exposed.

    Implementations sign with ECDSA P-256 over SHA-256 and return the
    DER (X9.62) encoded signature.
    """

    @abstractmethod
    def sign(self, payload: bytes) -> bytes:
        """Sign payload and return the DER-encoded signature."""
        pass

    @abstractmethod
    def public_key(self) -> ec.EllipticCurvePublicKey:
        """Return the public half of the signing key."""
        pass

    def public_key_pem(self) -> str:
        """Return the public key as a SubjectPublicKeyInfo PEM string."""
        return self.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def public_key_jwk(self) -> str:
        """Return the public key as a JWK JSON string (kty=EC, crv=P-256)."""
        key = jwk.JWK.from_pyca(self.public_key())
        return key.export_public()


class SoftwareSigner(Signer):
    """
    Signer holding a P-256 private key in process memory.

    Used for installations without secure hardware and as the test double.

    Example:
        >>> signer = SoftwareSigner.generate()
        >>> signature = signer.sign(b'payload')
    """

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ValueError("Private key is not ECDSA")
        if not isinstance(private_key.curve, ec.SECP256R1):
            raise ValueError(f"Private key must use P-256, got {private_key.curve.name}")
        self._private_key = private_key

    @classmethod
    def generate(cls) -> "SoftwareSigner":
        """Generate a fresh P-256 key pair."""
        return cls(ec.generate_private_key(ec.SECP256R1()))

    @classmethod
    def from_pem(cls, pem_data: Union[str, bytes]) -> "SoftwareSigner":
        """
        Load a signer from PKCS#8 PEM key material.

        Raises:
            ValueError: If the PEM data is invalid or not a P-256 key.
            TypeError: If the key is password protected.
            UnsupportedAlgorithm: If the key type is not supported by the backend.
        """
        if isinstance(pem_data, str):
            pem_data = pem_data.encode("utf-8")
        private_key = serialization.load_pem_private_key(pem_data, password=None)
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ValueError("Private key is not ECDSA")
        return cls(private_key)

    def _to_pem(self) -> bytes:
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def sign(self, payload: bytes) -> bytes:
        return self._private_key.sign(payload, SIGNATURE_ALGORITHM)

    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._private_key.public_key()


class KeyManager:
    """
    Creates and retrieves the device signing key.

    The key material lives in a SecureStore under ``key_tag``. The first call
    to get_or_create_signing_key() generates and persists it; later calls and
    later processes load the same key. A failure to reach the store or to
    create the key raises KeyUnavailable; no substitute key is ever used.

    Example:
        >>> manager = KeyManager(FileSecureStore('~/.photoauth'))
        >>> signer = manager.get_or_create_signing_key()
        >>> signature = signer.sign(b'payload')
    """

    def __init__(
        self,
        store: Optional[SecureStore] = None,
        key_tag: str = config.KEY_TAG,
        signer: Optional[Signer] = None,
    ):
        """
        Initialize the key manager.

        Args:
            store: Secure storage holding the key material.
            key_tag: Storage key of the signing key.
            signer: Pre-provisioned signer (hardware or test double). When
                given, the store is not consulted.

        Raises:
            ValueError: If neither store nor signer is provided.
        """
        if store is None and signer is None:
            raise ValueError("KeyManager requires a secure store or a signer")

        self._store = store
        self._key_tag = key_tag
        self._signer = signer
        self._lock = threading.Lock()

    @classmethod
    def from_signer(cls, signer: Signer) -> "KeyManager":
        """Wrap an already provisioned signer."""
        return cls(signer=signer)

    @property
    def key_tag(self) -> str:
        return self._key_tag

    def get_signing_key(self) -> Optional[Signer]:
        """
        Look up the existing signing key without creating one.

        Returns:
            The signer, or None if no key has been created yet.

        Raises:
            KeyUnavailable: If the store cannot be read or holds invalid key material.
        """
        with self._lock:
            if self._signer is None:
                self._signer = self._load()
            return self._signer

    def get_or_create_signing_key(self) -> Signer:
        """
        Return the device signing key, generating and persisting it if absent.

        Raises:
            KeyUnavailable: If the store is unreachable or key creation fails.
        """
        with self._lock:
            if self._signer is not None:
                return self._signer

            signer = self._load()
            if signer is None:
                signer = self._create()
            self._signer = signer
            return signer

    def public_key(self) -> ec.EllipticCurvePublicKey:
        """
        Return the public key of the existing signing key.

        Raises:
            KeyUnavailable: If no signing key exists or it cannot be loaded.
        """
        signer = self.get_signing_key()
        if signer is None:
            raise KeyUnavailable(f"No signing key stored under '{self._key_tag}'")
        return signer.public_key()

    def _load(self) -> Optional[Signer]:
        if self._store is None:
            return None
        try:
            material = self._store.get(self._key_tag)
        except StoreUnavailable as e:
            raise KeyUnavailable(f"Secure store unavailable: {e}") from e

        if material is None:
            return None

        try:
            return SoftwareSigner.from_pem(material)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            logger.error(f"Stored signing key '{self._key_tag}' is invalid: {e}")
            raise KeyUnavailable(f"Stored signing key is invalid: {e}") from e

    def _create(self) -> Signer:
        try:
            signer = SoftwareSigner.generate()
            stored = self._store.add(self._key_tag, signer._to_pem())
        except StoreUnavailable as e:
            raise KeyUnavailable(f"Cannot persist new signing key: {e}") from e
        except Exception as e:
            logger.error(f"Signing key generation failed: {e}")
            raise KeyUnavailable(f"Signing key generation failed: {e}") from e

        if not stored:
            # Another process created the key first; use theirs.
            existing = self._load()
            if existing is None:
                raise KeyUnavailable(f"Signing key '{self._key_tag}' vanished during creation")
            return existing

        logger.info(f"Created new signing key '{self._key_tag}'")
        return signer


def load_public_key(data: Union[str, bytes]) -> ec.EllipticCurvePublicKey:
    """
    Load a P-256 public key from PEM or JWK JSON.

    Raises:
        ValueError: If the data is neither a PEM nor a JWK EC public key.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    text = data.strip()

    if text.startswith("{"):
        try:
            key = jwk.JWK.from_json(text).get_op_key("verify")
        except Exception as e:
            raise ValueError(f"Invalid JWK public key: {e}")
    else:
        key = serialization.load_pem_public_key(text.encode("ascii"))

    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise ValueError("Public key is not ECDSA")
    return key
