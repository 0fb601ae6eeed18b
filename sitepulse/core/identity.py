"""
Visitor identity.

session_id   → random UUID, one per page load, memory only
fingerprint  → SHA-256 over "{ua}-{width}-{height}-{color_depth}-{timezone}",
               hex-truncated to 32 chars; stable across reloads on the same
               device, stored in durable client storage

The fingerprint is a dedupe key, not a security primitive. Near-identical
devices are expected to collide.
"""

import hashlib
import uuid
from typing import Protocol

from sitepulse.config import get_settings

FINGERPRINT_LENGTH = 32


class KeyValueStorage(Protocol):
    """Durable client storage (localStorage equivalent)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


def new_session_id() -> str:
    return str(uuid.uuid4())


def compute_fingerprint(
    user_agent: str,
    screen_width: int,
    screen_height: int,
    color_depth: int,
    timezone: str,
) -> str:
    raw = f"{user_agent}-{screen_width}-{screen_height}-{color_depth}-{timezone}"
    return hashlib.sha256(raw.encode()).hexdigest()[:FINGERPRINT_LENGTH]


def fingerprint(env) -> str:
    """Fingerprint the device behind an Environment snapshot."""
    screen = env.get_screen_metrics()
    return compute_fingerprint(
        env.get_user_agent() or "",
        screen.width,
        screen.height,
        screen.color_depth,
        env.get_timezone() or "",
    )


def stored_fingerprint(env, storage: KeyValueStorage, key: str | None = None) -> str:
    """Return the persisted fingerprint, computing and saving it on first use."""
    if key is None:
        key = get_settings().fingerprint_storage_key

    saved = storage.get(key)
    if saved:
        return saved

    value = fingerprint(env)
    storage.set(key, value)
    return value
