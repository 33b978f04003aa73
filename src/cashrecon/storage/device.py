"""Stable per-device identifier used to tag heartbeats."""

from __future__ import annotations

import secrets
import string
import time

from loguru import logger

from cashrecon.core.config import DEVICE_ID_KEY
from cashrecon.errors import PersistenceCorruptionError
from cashrecon.storage.file_store import FileStore

_BASE36 = string.digits + string.ascii_lowercase


def generate_device_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"user_{int(time.time() * 1000)}_{suffix}"


def get_or_create_device_id(store: FileStore, *, key: str = DEVICE_ID_KEY) -> str:
    """Return the stored device id, creating and persisting one on first use."""
    try:
        existing = store.get(key)
    except PersistenceCorruptionError as e:
        logger.bind(reason=str(e)).warning("Device id unreadable ({}); regenerating", e)
        existing = None

    if isinstance(existing, str) and existing:
        return existing

    device_id = generate_device_id()
    store.set(key, device_id)
    logger.bind(device_id=device_id).info("Created device id {}", device_id)
    return device_id
