"""
Unit tests for KeyManager and the Signer capability.
"""

import json

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from photoauth import config
from photoauth.errors import KeyUnavailable
from photoauth.keys import (
    SIGNATURE_ALGORITHM,
    KeyManager,
    SoftwareSigner,
    load_public_key,
)
from photoauth.store import MemorySecureStore


class TestSoftwareSigner:
    """Tests for SoftwareSigner."""

    def test_sign_and_verify(self):
        """Signatures verify with the signer's public key."""
        signer = SoftwareSigner.generate()
        signature = signer.sign(b"payload")
        signer.public_key().verify(signature, b"payload", SIGNATURE_ALGORITHM)

    def test_signature_rejects_other_payload(self):
        """A signature does not verify for different data."""
        signer = SoftwareSigner.generate()
        signature = signer.sign(b"payload")
        with pytest.raises(InvalidSignature):
            signer.public_key().verify(signature, b"other", SIGNATURE_ALGORITHM)

    def test_rejects_other_curves(self):
        """Only P-256 keys are accepted."""
        with pytest.raises(ValueError, match="P-256"):
            SoftwareSigner(ec.generate_private_key(ec.SECP384R1()))

    def test_public_key_jwk(self):
        """JWK export carries no private component."""
        jwk = json.loads(SoftwareSigner.generate().public_key_jwk())
        assert jwk["kty"] == "EC"
        assert jwk["crv"] == "P-256"
        assert "d" not in jwk

    def test_public_key_pem(self):
        """PEM export is a SubjectPublicKeyInfo block."""
        pem = SoftwareSigner.generate().public_key_pem()
        assert pem.startswith("-----BEGIN PUBLIC KEY-----")


class TestKeyManager:
    """Tests for KeyManager."""

    def test_requires_store_or_signer(self):
        """Constructing without a backend fails."""
        with pytest.raises(ValueError):
            KeyManager()

    def test_creates_key_once(self, store):
        """First call creates and persists the key under the fixed tag."""
        manager = KeyManager(store)
        signer = manager.get_or_create_signing_key()
        assert store.get(config.KEY_TAG) is not None
        assert manager.get_or_create_signing_key() is signer

    def test_key_persists_across_instances(self, store):
        """A new manager on the same store loads the same key."""
        first = KeyManager(store).get_or_create_signing_key()
        second = KeyManager(store).get_or_create_signing_key()
        assert first.public_key_pem() == second.public_key_pem()

    def test_get_signing_key_does_not_create(self, store):
        """get_signing_key() returns None on a fresh store."""
        assert KeyManager(store).get_signing_key() is None
        assert len(store) == 0

    def test_public_key_without_key_raises(self, store):
        """public_key() requires an existing key."""
        with pytest.raises(KeyUnavailable):
            KeyManager(store).public_key()

    def test_public_key_matches_signer(self, key_manager):
        """public_key() is the public half of the signing key."""
        signer = key_manager.get_or_create_signing_key()
        signature = signer.sign(b"data")
        key_manager.public_key().verify(signature, b"data", SIGNATURE_ALGORITHM)

    def test_unavailable_store(self):
        """An unreachable store raises KeyUnavailable, never a substitute key."""
        manager = KeyManager(MemorySecureStore(available=False))
        with pytest.raises(KeyUnavailable):
            manager.get_or_create_signing_key()

    def test_recovers_when_store_returns(self):
        """After an outage the key is created normally."""
        store = MemorySecureStore(available=False)
        manager = KeyManager(store)
        with pytest.raises(KeyUnavailable):
            manager.get_or_create_signing_key()
        store.available = True
        assert manager.get_or_create_signing_key() is not None

    def test_corrupt_key_material(self, store):
        """Invalid stored material is reported, not replaced."""
        store.put(config.KEY_TAG, b"not a key")
        with pytest.raises(KeyUnavailable, match="invalid"):
            KeyManager(store).get_or_create_signing_key()
        assert store.get(config.KEY_TAG) == b"not a key"

    def test_password_protected_key(self, store):
        """An encrypted key cannot be used and is reported as unavailable."""
        pem = ec.generate_private_key(ec.SECP256R1()).private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(b"secret"),
        )
        store.put(config.KEY_TAG, pem)
        with pytest.raises(KeyUnavailable, match="invalid"):
            KeyManager(store).get_or_create_signing_key()

    def test_custom_tag(self, store):
        """Keys are bound to their tag."""
        KeyManager(store, key_tag="tag.a").get_or_create_signing_key()
        assert store.get("tag.a") is not None
        assert store.get(config.KEY_TAG) is None

    def test_from_signer(self):
        """An injected signer is used as-is."""
        signer = SoftwareSigner.generate()
        manager = KeyManager.from_signer(signer)
        assert manager.get_or_create_signing_key() is signer
        assert manager.get_signing_key() is signer


class TestLoadPublicKey:
    """Tests for load_public_key()."""

    def test_load_pem(self):
        """PEM public keys load."""
        signer = SoftwareSigner.generate()
        key = load_public_key(signer.public_key_pem())
        assert key.public_numbers() == signer.public_key().public_numbers()

    def test_load_jwk(self):
        """JWK public keys load."""
        signer = SoftwareSigner.generate()
        key = load_public_key(signer.public_key_jwk())
        assert key.public_numbers() == signer.public_key().public_numbers()

    def test_load_garbage(self):
        """Garbage input raises ValueError."""
        with pytest.raises(ValueError):
            load_public_key("{not json")
