"""Durable key/value storage and checkout session persistence."""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from pydantic import ValidationError

from .models import CheckoutSessionSnapshot

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "checkout_session_snapshot"
SNAPSHOT_MAX_AGE = timedelta(minutes=30)

BANNER_KEY = "welcome_promo_last_shown"
BANNER_INTERVAL = timedelta(minutes=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """
    Key/value store backed by a JSON file.

    Every write rewrites the whole file (last write wins). No locking is
    attempted across processes.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def _load(self) -> dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            # If file is corrupted, start fresh
            logger.warning(f"Could not read store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f)
        # Set restrictive permissions on the store file
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        del data[key]
        if data:
            self._save(data)
        else:
            os.remove(self.path)


def is_snapshot_restorable(
    snapshot: CheckoutSessionSnapshot,
    now: datetime,
    user_id: Optional[str],
    max_age: timedelta = SNAPSHOT_MAX_AGE,
) -> bool:
    """Younger than `max_age` and either anonymous or owned by `user_id`."""
    timestamp = snapshot.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if now - timestamp >= max_age:
        return False
    return snapshot.user_id is None or snapshot.user_id == user_id


class CheckoutSessionPersistence:
    """Saves checkout state before payment hand-off and restores it once on return."""

    def __init__(self, store: KeyValueStore, key: str = SNAPSHOT_KEY, max_age: timedelta = SNAPSHOT_MAX_AGE) -> None:
        self.store = store
        self.key = key
        self.max_age = max_age

    def save(self, snapshot: CheckoutSessionSnapshot) -> None:
        self.store.set(self.key, snapshot.model_dump_json())
        logger.info(f"Checkout snapshot saved (user={snapshot.user_id or 'guest'})")

    def restore(self, user_id: Optional[str], now: Optional[datetime] = None) -> Optional[CheckoutSessionSnapshot]:
        """
        Read the stored snapshot once.

        The stored copy is deleted whether or not it is returned.
        """
        raw = self.store.get(self.key)
        if raw is None:
            return None
        self.store.remove(self.key)

        try:
            snapshot = CheckoutSessionSnapshot.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable checkout snapshot: {e}")
            return None

        if not is_snapshot_restorable(snapshot, now or utcnow(), user_id, self.max_age):
            logger.info("Discarding stale or foreign checkout snapshot")
            return None

        logger.info("Checkout snapshot restored")
        return snapshot

    def clear(self) -> None:
        self.store.remove(self.key)


class BannerGate:
    """Shows a one-time banner at most once per interval."""

    def __init__(self, store: KeyValueStore, key: str = BANNER_KEY, interval: timedelta = BANNER_INTERVAL) -> None:
        self.store = store
        self.key = key
        self.interval = interval

    def should_show(self, now: Optional[datetime] = None) -> bool:
        raw = self.store.get(self.key)
        if raw is None:
            return True
        try:
            last_shown = datetime.fromisoformat(raw)
        except ValueError:
            return True
        if last_shown.tzinfo is None:
            last_shown = last_shown.replace(tzinfo=timezone.utc)
        return (now or utcnow()) - last_shown > self.interval

    def mark_shown(self, now: Optional[datetime] = None) -> None:
        self.store.set(self.key, (now or utcnow()).isoformat())
