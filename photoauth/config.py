# photoauth/config.py
"""
Centralized configuration for photoauth.

All configurable values are read from environment variables with sensible defaults.
Signing keys and device identifiers are bound to these names, so changing
KEY_TAG or DEVICE_ID_KEY on an existing installation behaves like a new device.

Usage:
    from photoauth.config import AUTH_VERSION, STORE_DIR

Environment Variables:
    PHOTOAUTH_KEY_TAG: Storage tag of the signing key (default: com.photoauth.authentication.key)
    PHOTOAUTH_DEVICE_ID_KEY: Storage key of the device identifier (default: com.photoauth.device.uuid)
    PHOTOAUTH_STORE_DIR: Directory used by the file-backed secure store (default: ~/.photoauth)
    PHOTOAUTH_REDIS_URL: Redis URL for the Redis-backed secure store (default: unset)
"""

import os
from pathlib import Path
from typing import Final, Optional

# =============================================================================
# Protocol Constants
# =============================================================================

# Written into every record and into the signed payload
AUTH_VERSION: Final[str] = "1.0"

# Namespace of the embedded metadata dictionary
METADATA_NAMESPACE: Final[str] = "PhotoAuthentication"

# =============================================================================
# Secure Storage Configuration
# =============================================================================

KEY_TAG: Final[str] = os.getenv(
    "PHOTOAUTH_KEY_TAG",
    "com.photoauth.authentication.key"
)

DEVICE_ID_KEY: Final[str] = os.getenv(
    "PHOTOAUTH_DEVICE_ID_KEY",
    "com.photoauth.device.uuid"
)

STORE_DIR: Final[Path] = Path(
    os.getenv("PHOTOAUTH_STORE_DIR", str(Path.home() / ".photoauth"))
).expanduser()

REDIS_URL: Final[Optional[str]] = os.getenv("PHOTOAUTH_REDIS_URL") or None

# =============================================================================
# Configuration Summary (for debugging)
# =============================================================================

def print_config() -> None:
    """Print current configuration (useful for debugging)."""
    print("photoauth Configuration:")
    print(f"  AUTH_VERSION:       {AUTH_VERSION}")
    print(f"  METADATA_NAMESPACE: {METADATA_NAMESPACE}")
    print(f"  KEY_TAG:            {KEY_TAG}")
    print(f"  DEVICE_ID_KEY:      {DEVICE_ID_KEY}")
    print(f"  STORE_DIR:          {STORE_DIR}")
    print(f"  REDIS_URL:          {REDIS_URL or '(not set)'}")


if __name__ == "__main__":
    print_config()
