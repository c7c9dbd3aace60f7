"""
photoauth Secure Storage Layer.

Provides pluggable storage backends for the long-lived device state (the
signing key material and the device identifier). Supports in-memory,
file-backed and Redis-backed storage.

Backends raise StoreUnavailable instead of returning a default, so callers
can tell "nothing stored yet" (None) apart from "store unreachable".
"""

import os
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import quote

from photoauth.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class SecureStore(ABC):
    """Abstract interface for secure storage implementations."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Get a value. Returns None if the key is not stored."""
        pass

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        """Store a value, replacing any existing one."""
        pass

    @abstractmethod
    def add(self, key: str, value: bytes) -> bool:
        """Store a value only if the key is absent. Returns True if stored."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if the key existed."""
        pass


class MemorySecureStore(SecureStore):
    """
    Thread-safe in-memory store.

    Suitable for tests and ephemeral sessions. Setting ``available`` to False
    simulates an unreachable backend.

    Example:
        >>> store = MemorySecureStore()
        >>> store.put('com.photoauth.device.uuid', b'6F1C...')
        >>> store.get('com.photoauth.device.uuid')
        b'6F1C...'
    """

    def __init__(self, available: bool = True):
        self._items: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        self.available = available

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailable("Memory store is marked unavailable")

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            self._check()
            return self._items.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._check()
            self._items[key] = bytes(value)

    def add(self, key: str, value: bytes) -> bool:
        with self._lock:
            self._check()
            if key in self._items:
                return False
            self._items[key] = bytes(value)
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            self._check()
            return self._items.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._items)


class FileSecureStore(SecureStore):
    """
    File-backed store: one file per key inside a private directory.

    The directory is created with mode 0700 and every entry with mode 0600.
    Writes go through a temporary file and an atomic rename, and ``add`` uses
    a hard link so that two processes racing to create the same key cannot
    both win.

    Example:
        >>> store = FileSecureStore('~/.photoauth')
        >>> store.add('com.photoauth.device.uuid', b'6F1C...')
        True
    """

    def __init__(self, directory: Union[str, Path]):
        """
        Initialize the file store.

        Args:
            directory: Directory holding the entries. Created on first write.
        """
        self._dir = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / quote(key, safe="")

    def _ensure_dir(self) -> None:
        try:
            self._dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"Cannot create store directory {self._dir}: {e}") from e

    def _write_temp(self, value: bytes) -> str:
        fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=".tmp-")
        try:
            os.chmod(tmp_name, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return tmp_name

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"File store read error for {path.name}: {e}")
            raise StoreUnavailable(f"Cannot read {path}: {e}") from e

    def put(self, key: str, value: bytes) -> None:
        self._ensure_dir()
        try:
            tmp_name = self._write_temp(value)
            os.replace(tmp_name, self._path(key))
        except OSError as e:
            logger.warning(f"File store write error for {key}: {e}")
            raise StoreUnavailable(f"Cannot write {key}: {e}") from e

    def add(self, key: str, value: bytes) -> bool:
        self._ensure_dir()
        try:
            tmp_name = self._write_temp(value)
        except OSError as e:
            raise StoreUnavailable(f"Cannot write {key}: {e}") from e
        try:
            os.link(tmp_name, self._path(key))
            return True
        except FileExistsError:
            return False
        except OSError as e:
            logger.warning(f"File store write error for {key}: {e}")
            raise StoreUnavailable(f"Cannot write {key}: {e}") from e
        finally:
            Path(tmp_name).unlink(missing_ok=True)

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreUnavailable(f"Cannot delete {key}: {e}") from e


class RedisSecureStore(SecureStore):
    """
    Redis-backed store for fleets of capture services sharing one identity.

    Example:
        >>> import redis
        >>> client = redis.Redis.from_url('redis://localhost:6379/0')
        >>> store = RedisSecureStore(client, key_prefix='photoauth:')
    """

    def __init__(self, redis_client, key_prefix: str = "photoauth:"):
        """
        Initialize Redis store.

        Args:
            redis_client: A synchronous Redis client (redis.Redis).
            key_prefix: Prefix for all keys.
        """
        self._redis = redis_client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "photoauth:") -> "RedisSecureStore":
        import redis

        return cls(redis.Redis.from_url(url), key_prefix=key_prefix)

    def _key(self, key: str) -> str:
        """Generate prefixed key."""
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[bytes]:
        try:
            value = self._redis.get(self._key(key))
        except Exception as e:
            logger.warning(f"Redis get error: {e}")
            raise StoreUnavailable(f"Redis get failed: {e}") from e
        if value is None:
            return None
        return value.encode("utf-8") if isinstance(value, str) else value

    def put(self, key: str, value: bytes) -> None:
        try:
            self._redis.set(self._key(key), value)
        except Exception as e:
            logger.warning(f"Redis set error: {e}")
            raise StoreUnavailable(f"Redis set failed: {e}") from e

    def add(self, key: str, value: bytes) -> bool:
        try:
            return bool(self._redis.set(self._key(key), value, nx=True))
        except Exception as e:
            logger.warning(f"Redis set error: {e}")
            raise StoreUnavailable(f"Redis set failed: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            return self._redis.delete(self._key(key)) > 0
        except Exception as e:
            logger.warning(f"Redis delete error: {e}")
            raise StoreUnavailable(f"Redis delete failed: {e}") from e

    def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(self._redis.ping())
        except Exception:
            return False
