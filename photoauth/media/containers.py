# photoauth/media/containers.py
"""
Container-level splicing of the provenance segment.

The record is stored in a segment of its own so that the rest of the file,
including all image data and pre-existing metadata, is kept byte for byte:

- JPEG: an APP11 segment whose payload starts with ``PhotoAuthentication\\0``,
  placed after the leading APPn segments.
- PNG: an uncompressed ``iTXt`` chunk with keyword ``PhotoAuthentication``,
  placed before the first IDAT chunk.

Removing that segment again yields the exact bytes that were signed.
"""

import io
import struct
import zlib
from typing import List, Optional, Tuple

from PIL import PngImagePlugin

from photoauth import config


# =============================================================================
# Constants
# =============================================================================

JPEG = "JPEG"
PNG = "PNG"

JPEG_SOI = b"\xff\xd8"
JPEG_APP11 = 0xEB
JPEG_SOS = 0xDA
JPEG_EOI = 0xD9
JPEG_STANDALONE = {0x01} | set(range(0xD0, 0xD8))
JPEG_MAX_PAYLOAD = 0xFFFF - 2

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

RECORD_KEYWORD = config.METADATA_NAMESPACE.encode("latin-1")
JPEG_IDENTIFIER = RECORD_KEYWORD + b"\x00"


class ContainerError(ValueError):
    """The byte stream does not have the expected container structure."""


# Segment: (start offset, end offset, record payload)
Segment = Tuple[int, int, bytes]


def detect_format(data: bytes) -> Optional[str]:
    """Identify a supported container by its magic bytes."""
    if data.startswith(PNG_SIGNATURE):
        return PNG
    if data.startswith(JPEG_SOI):
        return JPEG
    return None


# =============================================================================
# JPEG
# =============================================================================


def _jpeg_segments(data: bytes) -> List[Tuple[int, int, int]]:
    """Walk marker segments up to and including SOS as (marker, start, end)."""
    if not data.startswith(JPEG_SOI):
        raise ContainerError("Missing JPEG SOI marker")

    segments = [(0xD8, 0, 2)]
    pos = 2
    size = len(data)
    while pos < size:
        if data[pos] != 0xFF:
            raise ContainerError(f"Expected JPEG marker at offset {pos}")
        while pos < size and data[pos] == 0xFF:
            pos += 1
        if pos >= size:
            raise ContainerError("Truncated JPEG marker")
        # Fill bytes before the marker are not part of the segment
        start = pos - 1
        marker = data[pos]
        pos += 1

        if marker in JPEG_STANDALONE:
            segments.append((marker, start, pos))
            continue
        if marker == JPEG_EOI:
            segments.append((marker, start, pos))
            break

        if pos + 2 > size:
            raise ContainerError(f"Truncated JPEG segment at offset {start}")
        (length,) = struct.unpack(">H", data[pos:pos + 2])
        end = pos + length
        if length < 2 or end > size:
            raise ContainerError(f"Invalid JPEG segment length at offset {start}")
        segments.append((marker, start, end))
        pos = end

        if marker == JPEG_SOS:
            # Entropy-coded data follows; nothing after it is walked
            break

    return segments


def _jpeg_find(data: bytes) -> Optional[Segment]:
    for marker, start, end in _jpeg_segments(data):
        if marker != JPEG_APP11:
            continue
        body = data[start + 4:end]
        if body.startswith(JPEG_IDENTIFIER):
            return start, end, body[len(JPEG_IDENTIFIER):]
    return None


def _jpeg_insert(data: bytes, payload: bytes) -> bytes:
    if len(JPEG_IDENTIFIER) + len(payload) > JPEG_MAX_PAYLOAD:
        raise ContainerError("Record too large for a JPEG APP11 segment")

    insert_at = 2
    for marker, start, end in _jpeg_segments(data)[1:]:
        if not 0xE0 <= marker <= 0xEF:
            break
        insert_at = end

    body = JPEG_IDENTIFIER + payload
    segment = bytes([0xFF, JPEG_APP11]) + struct.pack(">H", len(body) + 2) + body
    return data[:insert_at] + segment + data[insert_at:]


# =============================================================================
# PNG
# =============================================================================


def _png_chunks(data: bytes) -> List[Tuple[bytes, int, int]]:
    """Walk chunks as (type, start, end) up to and including IEND."""
    if not data.startswith(PNG_SIGNATURE):
        raise ContainerError("Missing PNG signature")

    chunks = []
    pos = len(PNG_SIGNATURE)
    size = len(data)
    while pos < size:
        if pos + 8 > size:
            raise ContainerError(f"Truncated PNG chunk header at offset {pos}")
        length, chunk_type = struct.unpack(">I4s", data[pos:pos + 8])
        end = pos + 12 + length
        if end > size:
            raise ContainerError(f"Truncated PNG chunk at offset {pos}")
        chunks.append((chunk_type, pos, end))
        pos = end
        if chunk_type == b"IEND":
            break

    return chunks


def _parse_itxt(chunk_data: bytes) -> Optional[bytes]:
    """Return the text of a PhotoAuthentication iTXt chunk, None for other keywords."""
    keyword, _, rest = chunk_data.partition(b"\x00")
    if keyword != RECORD_KEYWORD:
        return None
    if len(rest) < 2:
        raise ContainerError("Truncated iTXt chunk")
    if rest[0] != 0 or rest[1] != 0:
        raise ContainerError("Compressed provenance chunk is not supported")
    _language, _, rest = rest[2:].partition(b"\x00")
    _translated, _, text = rest.partition(b"\x00")
    return text


def _png_find(data: bytes) -> Optional[Segment]:
    for chunk_type, start, end in _png_chunks(data):
        if chunk_type != b"iTXt":
            continue
        text = _parse_itxt(data[start + 8:end - 4])
        if text is None:
            continue
        # The chunk is removed before hashing, so its CRC is checked here
        (crc,) = struct.unpack(">I", data[end - 4:end])
        if zlib.crc32(data[start + 4:end - 4]) != crc:
            raise ContainerError("Provenance chunk CRC mismatch")
        return start, end, text
    return None


def _png_insert(data: bytes, payload: bytes) -> bytes:
    insert_at = None
    for chunk_type, start, _end in _png_chunks(data):
        if chunk_type == b"IDAT":
            insert_at = start
            break
    if insert_at is None:
        raise ContainerError("PNG has no IDAT chunk")

    # keyword, compression flag, method, language tag, translated keyword, text
    chunk_data = RECORD_KEYWORD + b"\x00\x00\x00" + b"\x00" + b"\x00" + payload
    buf = io.BytesIO()
    PngImagePlugin.putchunk(buf, b"iTXt", chunk_data)
    return data[:insert_at] + buf.getvalue() + data[insert_at:]


# =============================================================================
# Dispatch
# =============================================================================


def find_record_segment(data: bytes, image_format: str) -> Optional[Segment]:
    """
    Locate the provenance segment.

    Returns:
        (start, end, payload) of the first provenance segment, or None.

    Raises:
        ContainerError: If the container structure cannot be walked.
    """
    if image_format == JPEG:
        return _jpeg_find(data)
    if image_format == PNG:
        return _png_find(data)
    raise ContainerError(f"Unsupported container: {image_format}")


def insert_record_segment(data: bytes, image_format: str, payload: bytes) -> bytes:
    """Return a copy of data with a provenance segment holding payload."""
    if image_format == JPEG:
        return _jpeg_insert(data, payload)
    if image_format == PNG:
        return _png_insert(data, payload)
    raise ContainerError(f"Unsupported container: {image_format}")


def remove_record_segment(data: bytes, image_format: str) -> bytes:
    """Return a copy of data without its first provenance segment."""
    segment = find_record_segment(data, image_format)
    if segment is None:
        return data
    start, end, _payload = segment
    return data[:start] + data[end:]


def has_record_trace(data: bytes) -> bool:
    """
    Whether the bytes name the record namespace anywhere.

    An embedded record names it twice, as segment identifier and as
    dictionary key, so no single changed byte removes both.
    """
    return RECORD_KEYWORD in data
