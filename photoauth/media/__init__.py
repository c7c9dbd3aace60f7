# photoauth/media/__init__.py
"""
photoauth Media Module - embedding provenance records in image containers.
"""

from photoauth.media.embedder import (
    MetadataEmbedder,
    SUPPORTED_FORMATS,
    decode_image,
    encode_metadata,
)

__all__ = [
    "MetadataEmbedder",
    "SUPPORTED_FORMATS",
    "decode_image",
    "encode_metadata",
]
