"""
photoauth Device Identity.

Provides the stable, opaque identifier of the signing device. The identifier
is a random UUID generated once per installation; it carries no hardware or
personal information.
"""

import uuid
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from photoauth import config
from photoauth.errors import StoreUnavailable
from photoauth.store import SecureStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceId:
    """
    A device identifier and whether it is durably stored.

    Attributes:
        value: The identifier string written into records.
        persisted: False when the secure store could not be reached and the
            identifier only lives in this process so far.
    """

    value: str
    persisted: bool = True

    def __str__(self) -> str:
        return self.value


class DeviceIdentity:
    """
    Creates and retrieves the per-installation device identifier.

    If the store is unreachable, an ephemeral identifier is handed out with
    ``persisted=False``. That same identifier is returned by every later call
    in the process and is written to the store as soon as it becomes
    reachable, so the value does not change between calls. If another writer
    stored an identifier in the meantime, the stored one wins.

    Example:
        >>> identity = DeviceIdentity(MemorySecureStore())
        >>> device_id = identity.get_or_create_device_id()
        >>> device_id == identity.get_or_create_device_id()
        True
    """

    def __init__(self, store: SecureStore, storage_key: str = config.DEVICE_ID_KEY):
        self._store = store
        self._storage_key = storage_key
        self._lock = threading.Lock()
        self._cached: Optional[DeviceId] = None

    def get_or_create_device_id(self) -> DeviceId:
        """Return the device identifier, creating and persisting it if absent."""
        with self._lock:
            if self._cached is not None and self._cached.persisted:
                return self._cached

            pending = self._cached.value if self._cached is not None else None
            try:
                self._cached = self._resolve(pending)
            except StoreUnavailable as e:
                if pending is None:
                    pending = self._generate()
                    logger.warning(f"Device id store unavailable, using ephemeral id: {e}")
                self._cached = DeviceId(pending, persisted=False)
            return self._cached

    def _resolve(self, pending: Optional[str]) -> DeviceId:
        stored = self._read()
        if stored is not None:
            if pending is not None and stored != pending:
                logger.warning("Ephemeral device id superseded by stored id")
            return DeviceId(stored)

        candidate = pending or self._generate()
        if self._store.add(self._storage_key, candidate.encode("utf-8")):
            logger.info(f"Stored new device id under '{self._storage_key}'")
            return DeviceId(candidate)

        # Lost a creation race; the winner's value is authoritative.
        stored = self._read()
        if stored is None:
            raise StoreUnavailable(f"Device id '{self._storage_key}' vanished during creation")
        return DeviceId(stored)

    def _read(self) -> Optional[str]:
        data = self._store.get(self._storage_key)
        if not data:
            return None
        try:
            value = data.decode("utf-8").strip()
        except UnicodeDecodeError:
            logger.error(f"Stored device id '{self._storage_key}' is not UTF-8")
            raise StoreUnavailable("Stored device id is corrupt")
        return value or None

    @staticmethod
    def _generate() -> str:
        return str(uuid.uuid4()).upper()
