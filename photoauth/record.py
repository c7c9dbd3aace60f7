# photoauth/record.py
"""
Authentication Records

An AuthenticationRecord is the provenance evidence for one photo: the hash of
the exact image bytes, the capture time, the capturing device, the camera
position, the optional location and the device signature over all of them.

The signed content is the canonical payload:

    <image_hash>|<timestamp>|<device_id>|<camera_position>|<version>[|<location>]

Field order, the pipe separator and the timestamp text form are part of the
protocol. The trailing location segment is present only when a location was
given, so adding or removing it invalidates the signature.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple

from photoauth import config
from photoauth.errors import MalformedRecord


# =============================================================================
# Constants
# =============================================================================

PAYLOAD_SEPARATOR = "|"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Camera position labels supplied by the capture pipeline
FRONT = "front"
BACK = "back"

# Embedded metadata field names
FIELD_HASH = "AuthHash"
FIELD_TIMESTAMP = "AuthTimestamp"
FIELD_DEVICE_ID = "AuthDeviceId"
FIELD_SIGNATURE = "AuthSignature"
FIELD_VERSION = "AuthVersion"
FIELD_CAMERA_POSITION = "AuthCameraPosition"
FIELD_LOCATION = "AuthLocation"

REQUIRED_FIELDS = (
    FIELD_HASH,
    FIELD_TIMESTAMP,
    FIELD_DEVICE_ID,
    FIELD_SIGNATURE,
    FIELD_VERSION,
    FIELD_CAMERA_POSITION,
)


# =============================================================================
# Timestamps
# =============================================================================


def normalize_timestamp(value: datetime) -> datetime:
    """Convert to UTC and drop sub-second precision."""
    if value.tzinfo is None:
        raise ValueError("Timestamp must be timezone-aware")
    return value.astimezone(timezone.utc).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Canonical ISO-8601 text form, e.g. 2025-06-29T14:03:12Z."""
    return normalize_timestamp(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """
    Parse an ISO-8601 timestamp with a UTC designator or offset.

    Raises:
        ValueError: If the text is not an ISO-8601 instant with an offset.
    """
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        raise ValueError(f"Timestamp has no UTC offset: {text}")
    return normalize_timestamp(value)


# =============================================================================
# Locations
# =============================================================================


def format_location(latitude: float, longitude: float) -> str:
    """Format coordinates the way the location provider does: 'lat,lon'."""
    if not -90.0 <= latitude <= 90.0:
        raise ValueError(f"Latitude out of range: {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise ValueError(f"Longitude out of range: {longitude}")
    return f"{latitude},{longitude}"


def parse_location(location: str) -> Tuple[float, float]:
    """Split a 'lat,lon' string into floats."""
    parts = location.split(",")
    if len(parts) != 2:
        raise ValueError(f"Location must be 'latitude,longitude': {location!r}")
    return float(parts[0]), float(parts[1])


# =============================================================================
# Canonical Payload
# =============================================================================


def canonical_payload(
    image_hash: str,
    timestamp: datetime,
    device_id: str,
    camera_position: str,
    version: str,
    location: Optional[str] = None,
) -> bytes:
    """
    Create the canonical payload to sign.

    Only the trailing location may contain the separator; in any earlier
    field it would let segments shift between fields under one signature.

    Raises:
        ValueError: If image_hash, device_id, camera_position or version
            contains the separator.
    """
    fixed = {
        "image_hash": image_hash,
        "device_id": device_id,
        "camera_position": camera_position,
        "version": version,
    }
    for name, value in fixed.items():
        if PAYLOAD_SEPARATOR in value:
            raise ValueError(f"{name} must not contain '{PAYLOAD_SEPARATOR}': {value!r}")

    segments = [image_hash, format_timestamp(timestamp), device_id, camera_position, version]
    if location is not None:
        segments.append(location)
    return PAYLOAD_SEPARATOR.join(segments).encode("utf-8")


# =============================================================================
# Record
# =============================================================================


@dataclass(frozen=True)
class AuthenticationRecord:
    """Provenance evidence for a single photo."""

    image_hash: str  # lowercase hex SHA-256 of the pre-embedding bytes
    timestamp: datetime  # UTC, whole seconds
    device_id: str
    signature: str  # base64 DER ECDSA signature over the canonical payload
    version: str
    camera_position: str
    location: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "timestamp", normalize_timestamp(self.timestamp))

    @property
    def timestamp_text(self) -> str:
        return format_timestamp(self.timestamp)

    def payload(self) -> bytes:
        """
        The canonical payload this record's signature covers.

        Raises:
            ValueError: If a field before the location contains the separator.
        """
        return canonical_payload(
            image_hash=self.image_hash,
            timestamp=self.timestamp,
            device_id=self.device_id,
            camera_position=self.camera_position,
            version=self.version,
            location=self.location,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["timestamp"] = self.timestamp_text
        return data

    def to_metadata(self) -> Dict[str, str]:
        """Field dictionary stored under the PhotoAuthentication namespace."""
        metadata = {
            FIELD_HASH: self.image_hash,
            FIELD_TIMESTAMP: self.timestamp_text,
            FIELD_DEVICE_ID: self.device_id,
            FIELD_SIGNATURE: self.signature,
            FIELD_VERSION: self.version,
            FIELD_CAMERA_POSITION: self.camera_position,
        }
        if self.location is not None:
            metadata[FIELD_LOCATION] = self.location
        return metadata

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> "AuthenticationRecord":
        """
        Rebuild a record from its embedded field dictionary.

        Raises:
            MalformedRecord: If a required field is missing or not a string,
                or the timestamp cannot be parsed.
        """
        if not isinstance(metadata, dict):
            raise MalformedRecord(f"{config.METADATA_NAMESPACE} is not a dictionary")

        missing = [name for name in REQUIRED_FIELDS if not isinstance(metadata.get(name), str)]
        if missing:
            raise MalformedRecord(f"Missing or invalid fields: {', '.join(missing)}")

        location = metadata.get(FIELD_LOCATION)
        if location is not None and not isinstance(location, str):
            raise MalformedRecord(f"{FIELD_LOCATION} is not a string")

        timestamp_text = metadata[FIELD_TIMESTAMP]
        try:
            timestamp = parse_timestamp(timestamp_text)
        except ValueError as e:
            raise MalformedRecord(f"Invalid {FIELD_TIMESTAMP}: {e}")
        if format_timestamp(timestamp) != timestamp_text:
            raise MalformedRecord(f"{FIELD_TIMESTAMP} is not in canonical form: {timestamp_text}")

        return cls(
            image_hash=metadata[FIELD_HASH],
            timestamp=timestamp,
            device_id=metadata[FIELD_DEVICE_ID],
            signature=metadata[FIELD_SIGNATURE],
            version=metadata[FIELD_VERSION],
            camera_position=metadata[FIELD_CAMERA_POSITION],
            location=location,
        )
