"""Encryption key and storage root resolution."""

from __future__ import annotations

import asyncio
from pathlib import Path

from memory_capture.config import Settings, get_settings
from memory_capture.exceptions import KeyProviderError
from memory_capture.logging import get_logger

log = get_logger("memory_capture.store.keys")


async def get_encryption_key(settings: Settings | None = None) -> str | None:
    """Resolve the store passphrase.

    The environment wins over the key file. A missing or empty source is
    not an error: it means capture is not configured on this machine.

    Raises:
        KeyProviderError: If the key file exists but cannot be read.
    """
    settings = settings or get_settings()

    if settings.encryption_key is not None:
        value = settings.encryption_key.get_secret_value().strip()
        if value:
            return value

    path = settings.key_file.expanduser()
    if not path.is_file():
        log.debug("key_file_missing", path=str(path))
        return None

    try:
        value = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise KeyProviderError(f"Cannot read key file {path}: {exc}") from exc

    return value.strip() or None


async def get_memory_root(settings: Settings | None = None) -> Path:
    """Resolve the store's root directory."""
    settings = settings or get_settings()
    return settings.memory_root.expanduser()
