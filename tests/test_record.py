"""
Unit tests for AuthenticationRecord and the canonical payload.
"""

import dataclasses
import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from photoauth.errors import MalformedRecord
from photoauth.record import (
    AuthenticationRecord,
    canonical_payload,
    format_location,
    format_timestamp,
    parse_location,
    parse_timestamp,
)


ABC_HASH = hashlib.sha256(b"ABC").hexdigest()
TS = datetime(2025, 6, 29, 14, 3, 12, tzinfo=timezone.utc)


@pytest.fixture
def record() -> AuthenticationRecord:
    return AuthenticationRecord(
        image_hash=ABC_HASH,
        timestamp=TS,
        device_id="6F1C2E0A-0000-4000-8000-000000000001",
        signature="c2lnbmF0dXJl",
        version="1.0",
        camera_position="back",
    )


class TestTimestamps:
    """Tests for timestamp normalisation and text form."""

    def test_format(self):
        """Canonical form is UTC with a Z designator and whole seconds."""
        assert format_timestamp(TS.replace(microsecond=999999)) == "2025-06-29T14:03:12Z"

    def test_format_converts_to_utc(self):
        """Offsets are converted to UTC."""
        local = datetime(2025, 6, 29, 16, 3, 12, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(local) == "2025-06-29T14:03:12Z"

    def test_naive_rejected(self):
        """Naive datetimes are ambiguous and rejected."""
        with pytest.raises(ValueError):
            format_timestamp(datetime(2025, 6, 29, 14, 3, 12))

    def test_parse(self):
        """Parsing the canonical form restores the instant."""
        assert parse_timestamp("2025-06-29T14:03:12Z") == TS

    def test_parse_requires_offset(self):
        """Timestamps without offset are rejected."""
        with pytest.raises(ValueError):
            parse_timestamp("2025-06-29T14:03:12")


class TestLocation:
    """Tests for the 'lat,lon' helpers."""

    def test_format(self):
        assert format_location(40.7128, -74.006) == "40.7128,-74.006"

    def test_parse(self):
        assert parse_location("40.7128,-74.0060") == (40.7128, -74.006)

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            format_location(91.0, 0.0)

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_location("40.7128")


class TestCanonicalPayload:
    """Tests for canonical_payload()."""

    def test_without_location(self):
        """Five pipe-delimited segments in fixed order."""
        payload = canonical_payload(ABC_HASH, TS, "DEVICE", "back", "1.0")
        assert payload == f"{ABC_HASH}|2025-06-29T14:03:12Z|DEVICE|back|1.0".encode("utf-8")

    def test_with_location(self):
        """Location adds a sixth segment."""
        payload = canonical_payload(ABC_HASH, TS, "DEVICE", "back", "1.0", "40.7128,-74.0060")
        assert payload.decode("utf-8").split("|") == [
            ABC_HASH,
            "2025-06-29T14:03:12Z",
            "DEVICE",
            "back",
            "1.0",
            "40.7128,-74.0060",
        ]

    def test_empty_location_differs_from_none(self):
        """An empty location is not the same as no location."""
        without = canonical_payload(ABC_HASH, TS, "DEVICE", "back", "1.0", None)
        empty = canonical_payload(ABC_HASH, TS, "DEVICE", "back", "1.0", "")
        assert without != empty
        assert empty.endswith(b"|")

    def test_utf8(self):
        """Non-ASCII labels are encoded as UTF-8."""
        payload = canonical_payload(ABC_HASH, TS, "DEVICE", "arrière", "1.0")
        assert "arrière".encode("utf-8") in payload

    @pytest.mark.parametrize(
        "device_id, camera_position, version",
        [
            ("DEV|ICE", "back", "1.0"),
            ("DEVICE", "back|1.0", "1.0"),
            ("DEVICE", "back", "1.0|40.7128"),
        ],
    )
    def test_separator_before_location_rejected(self, device_id, camera_position, version):
        """Fields before the location cannot contain '|'."""
        with pytest.raises(ValueError, match="must not contain"):
            canonical_payload(ABC_HASH, TS, device_id, camera_position, version, "-74.0060")

    def test_separator_in_location(self):
        payload = canonical_payload(ABC_HASH, TS, "DEVICE", "back", "1.0", "40.7128|-74.0060")
        assert payload.endswith(b"|back|1.0|40.7128|-74.0060")


class TestAuthenticationRecord:
    """Tests for AuthenticationRecord."""

    def test_immutable(self, record):
        """Records cannot be modified after signing."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.camera_position = "front"

    def test_payload(self, record):
        """payload() uses the record's own fields."""
        assert record.payload() == canonical_payload(
            ABC_HASH, TS, record.device_id, "back", "1.0"
        )

    def test_timestamp_normalised(self):
        """Sub-second precision is dropped on construction."""
        rec = AuthenticationRecord(
            image_hash=ABC_HASH,
            timestamp=TS.replace(microsecond=5),
            device_id="D",
            signature="S",
            version="1.0",
            camera_position="back",
        )
        assert rec.timestamp == TS

    def test_metadata_fields(self, record):
        """Metadata uses the Auth* names and omits absent location."""
        metadata = record.to_metadata()
        assert metadata == {
            "AuthHash": ABC_HASH,
            "AuthTimestamp": "2025-06-29T14:03:12Z",
            "AuthDeviceId": record.device_id,
            "AuthSignature": "c2lnbmF0dXJl",
            "AuthVersion": "1.0",
            "AuthCameraPosition": "back",
        }

    def test_metadata_with_location(self, record):
        """AuthLocation is present only when a location was given."""
        located = dataclasses.replace(record, location="40.7128,-74.0060")
        assert located.to_metadata()["AuthLocation"] == "40.7128,-74.0060"

    def test_from_metadata_roundtrip(self, record):
        """from_metadata() restores an equal record."""
        located = dataclasses.replace(record, location="1,2")
        assert AuthenticationRecord.from_metadata(located.to_metadata()) == located

    def test_to_dict(self, record):
        """to_dict() renders the timestamp as text."""
        assert record.to_dict()["timestamp"] == "2025-06-29T14:03:12Z"
        assert record.to_dict()["location"] is None

    @pytest.mark.parametrize(
        "field",
        ["AuthHash", "AuthTimestamp", "AuthDeviceId", "AuthSignature", "AuthVersion", "AuthCameraPosition"],
    )
    def test_missing_field(self, record, field):
        """Every field but AuthLocation is required."""
        metadata = record.to_metadata()
        del metadata[field]
        with pytest.raises(MalformedRecord):
            AuthenticationRecord.from_metadata(metadata)

    def test_non_string_field(self, record):
        """Fields must be strings."""
        metadata = record.to_metadata()
        metadata["AuthVersion"] = 1.0
        with pytest.raises(MalformedRecord):
            AuthenticationRecord.from_metadata(metadata)

    def test_non_canonical_timestamp(self, record):
        """Timestamps must be in canonical text form."""
        metadata = record.to_metadata()
        metadata["AuthTimestamp"] = "2025-06-29T16:03:12+02:00"
        with pytest.raises(MalformedRecord, match="canonical"):
            AuthenticationRecord.from_metadata(metadata)

    def test_unparseable_timestamp(self, record):
        """Garbage timestamps are rejected."""
        metadata = record.to_metadata()
        metadata["AuthTimestamp"] = "yesterday"
        with pytest.raises(MalformedRecord):
            AuthenticationRecord.from_metadata(metadata)
