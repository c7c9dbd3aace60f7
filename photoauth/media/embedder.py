# photoauth/media/embedder.py
"""
Metadata Embedding for Authenticated Photos

Writes an AuthenticationRecord into the image container as a namespaced
metadata dictionary and reads it back. Only metadata changes: the image data
and every pre-existing metadata segment are kept byte for byte, which is
checked by decoding the result and comparing pixels with the original.

Supported containers: JPEG and PNG, including animated PNG. Multi-picture
JPEGs (MPO) are rejected.
"""

import io
import json
import hashlib
import logging
from typing import Optional, Dict, Any, Tuple, Union

from PIL import Image, ImageSequence

from photoauth import config
from photoauth.errors import EmbedFailed, MalformedRecord
from photoauth.media import containers
from photoauth.record import AuthenticationRecord

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = (containers.JPEG, containers.PNG)

# Pillow's name for multi-picture JPEGs. Their MPF header records the size of
# the first picture and the offsets of the others, so no segment can be added
MULTI_PICTURE_FORMAT = "MPO"


def decode_image(image_bytes: bytes) -> Tuple[str, str]:
    """
    Fully decode an image with Pillow.

    Returns:
        Tuple of (Pillow format name, SHA-256 hex digest of mode, size and
        pixel data of every frame)

    Raises:
        EmbedFailed: If Pillow cannot identify or decode the image.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            image_format = img.format
            digest = hashlib.sha256()
            for frame in ImageSequence.Iterator(img):
                frame.load()
                digest.update(f"{frame.mode}:{frame.size[0]}x{frame.size[1]}:".encode("ascii"))
                digest.update(frame.tobytes())
    except Exception as e:
        raise EmbedFailed(f"Not a decodable image: {e}")

    return image_format, digest.hexdigest()


def encode_metadata(record: AuthenticationRecord) -> bytes:
    """Serialize the namespaced field dictionary as compact JSON."""
    metadata = {config.METADATA_NAMESPACE: record.to_metadata()}
    return json.dumps(metadata, sort_keys=True, separators=(",", ":")).encode("utf-8")


class MetadataEmbedder:
    """
    Embeds authentication records into image containers.

    Example:
        >>> embedder = MetadataEmbedder()
        >>> authenticated = embedder.embed(jpeg_bytes, record)
        >>> embedder.extract(authenticated)['AuthCameraPosition']
        'back'
    """

    def embed(
        self,
        original_bytes: Union[bytes, bytearray, memoryview],
        record: AuthenticationRecord,
    ) -> bytes:
        """
        Return a copy of original_bytes carrying record in its metadata.

        Args:
            original_bytes: The exact bytes the record was computed over.
            record: The signed record.

        Returns:
            Authenticated image bytes, same container type, same pixels.

        Raises:
            EmbedFailed: If the container is unsupported or corrupt, already
                carries a record, or the result does not decode to the same pixels.
        """
        data = bytes(original_bytes)
        image_format, pixels = decode_image(data)

        if image_format == MULTI_PICTURE_FORMAT:
            raise EmbedFailed("Multi-picture JPEG (MPO) is not supported", image_format=image_format)
        if image_format not in SUPPORTED_FORMATS or containers.detect_format(data) != image_format:
            raise EmbedFailed(f"Unsupported container: {image_format}", image_format=image_format)

        try:
            if containers.has_record_trace(data):
                raise EmbedFailed(
                    "Image already carries an authentication record", image_format=image_format
                )
            authenticated = containers.insert_record_segment(
                data, image_format, encode_metadata(record)
            )
        except containers.ContainerError as e:
            logger.error(f"Failed to embed authentication data: {e}")
            raise EmbedFailed(f"Cannot embed record: {e}", image_format=image_format) from e

        out_format, out_pixels = decode_image(authenticated)
        if out_format != image_format or out_pixels != pixels:
            logger.error("Failed to finalize image with metadata: pixel data changed")
            raise EmbedFailed("Embedding changed the image data", image_format=image_format)

        logger.debug(f"Embedded authentication record into {image_format} ({len(authenticated)} bytes)")
        return authenticated

    def extract(self, candidate_bytes: bytes) -> Optional[Dict[str, Any]]:
        """
        Read the namespaced field dictionary from an image.

        Returns:
            The PhotoAuthentication dictionary, or None if the bytes carry no
            record at all.

        Raises:
            MalformedRecord: If a record was embedded but can no longer be read.
        """
        image_format = containers.detect_format(candidate_bytes)
        segment = None
        problem = "provenance segment not found"
        if image_format is not None:
            try:
                segment = containers.find_record_segment(candidate_bytes, image_format)
            except containers.ContainerError as e:
                logger.debug(f"Cannot walk {image_format} container: {e}")
                problem = str(e)

        if segment is None:
            if containers.has_record_trace(candidate_bytes):
                raise MalformedRecord(f"Damaged authentication record: {problem}")
            return None

        try:
            metadata = json.loads(segment[2].decode("utf-8"))
        except ValueError as e:
            raise MalformedRecord(f"Embedded record is not valid JSON: {e}")

        fields = metadata.get(config.METADATA_NAMESPACE) if isinstance(metadata, dict) else None
        if not isinstance(fields, dict):
            raise MalformedRecord(f"Embedded record has no {config.METADATA_NAMESPACE} dictionary")
        return fields

    def strip(self, candidate_bytes: bytes) -> bytes:
        """
        Return candidate_bytes without the embedded record.

        For an untouched authenticated image this is exactly the byte sequence
        that was signed.

        Raises:
            EmbedFailed: If the bytes are not a walkable supported container.
        """
        image_format = containers.detect_format(candidate_bytes)
        if image_format is None:
            raise EmbedFailed("Unsupported container")
        try:
            return containers.remove_record_segment(candidate_bytes, image_format)
        except containers.ContainerError as e:
            raise EmbedFailed(f"Cannot strip record: {e}", image_format=image_format) from e
