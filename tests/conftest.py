"""
Shared pytest fixtures for photoauth tests.
"""

import io
from datetime import datetime, timezone

import pytest
from PIL import Image, PngImagePlugin

from photoauth import (
    AuthenticationEngine,
    DeviceIdentity,
    KeyManager,
    MemorySecureStore,
    MetadataEmbedder,
    PhotoAuthenticator,
    Verifier,
)
from photoauth.metrics import PhotoAuthMetrics


CAPTURE_TIME = datetime(2025, 6, 29, 14, 3, 12, tzinfo=timezone.utc)


def make_image() -> Image.Image:
    """Small RGB image with some structure so encoders emit real data."""
    img = Image.new("RGB", (32, 32), color="blue")
    for x in range(16):
        for y in range(16):
            img.putpixel((x, y), (0, 200, 100))
    return img


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A JPEG carrying EXIF Make/Model, as a camera would produce."""
    exif = Image.Exif()
    exif[0x010F] = "TestMake"
    exif[0x0110] = "TestModel"
    buf = io.BytesIO()
    make_image().save(buf, "JPEG", exif=exif.tobytes())
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """A PNG carrying an existing text chunk."""
    info = PngImagePlugin.PngInfo()
    info.add_text("Comment", "captured by test suite")
    buf = io.BytesIO()
    make_image().save(buf, "PNG", pnginfo=info)
    return buf.getvalue()


@pytest.fixture
def store() -> MemorySecureStore:
    """An in-memory secure store."""
    return MemorySecureStore()


@pytest.fixture
def key_manager(store) -> KeyManager:
    """Key manager backed by the memory store."""
    return KeyManager(store)


@pytest.fixture
def device_identity(store) -> DeviceIdentity:
    """Device identity backed by the memory store."""
    return DeviceIdentity(store)


@pytest.fixture
def engine(key_manager, device_identity) -> AuthenticationEngine:
    """Engine with a fixed clock."""
    return AuthenticationEngine(key_manager, device_identity, clock=lambda: CAPTURE_TIME)


@pytest.fixture
def embedder() -> MetadataEmbedder:
    return MetadataEmbedder()


@pytest.fixture
def verifier(key_manager, embedder) -> Verifier:
    return Verifier(key_manager=key_manager, embedder=embedder)


@pytest.fixture
def metrics() -> PhotoAuthMetrics:
    """Metrics collector without Prometheus registration."""
    return PhotoAuthMetrics(enable_prometheus=False)


@pytest.fixture
def authenticator(key_manager, device_identity, engine, metrics) -> PhotoAuthenticator:
    """Full pipeline on the memory store."""
    return PhotoAuthenticator(key_manager, device_identity, engine=engine, metrics=metrics)
