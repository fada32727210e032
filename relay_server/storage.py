"""
Durable ephemeral key-value store: get/set/delete/pop with per-key TTL.

All cross-redirect state (relay records, authorization codes) and usage counters
live here. Values are JSON-encoded on write and decoded once on read by
decode_value(); callers never see raw store payloads.

Backends: in-memory (tests, single process), SQLAlchemy (sqlite/postgres), Redis.
"""
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import redis
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from relay_server.database import init_db, make_engine, make_session_factory
from relay_server.models import KeyValueEntry

logger = logging.getLogger(__name__)


def decode_value(raw: Any) -> Any:
    """
    Parse a stored payload. Strings (and bytes) are parsed as JSON; if that fails the raw
    string is returned unchanged. Values that are already decoded pass through.
    """
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


def encode_value(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


class EphemeralStore(ABC):
    """Key-value store with expiry. pop() must be atomic per key."""

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._set_raw(key, encode_value(value), ttl_seconds)

    def get(self, key: str) -> Any:
        return decode_value(self._get_raw(key))

    def pop(self, key: str) -> Any:
        """Read and delete in one step. Of concurrent callers, at most one gets the value."""
        return decode_value(self._pop_raw(key))

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def ping(self) -> bool: ...

    def close(self) -> None:
        pass

    @abstractmethod
    def _set_raw(self, key: str, raw: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    def _get_raw(self, key: str) -> str | None: ...

    @abstractmethod
    def _pop_raw(self, key: str) -> str | None: ...


class MemoryStore(EphemeralStore):
    """Process-local store. Expiry is checked on access against the injected clock; writes sweep expired entries."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _clean_expired(self) -> None:
        # Called with the lock held; abandoned flows are never read back
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._data.items() if now >= expires_at]
        for k in expired:
            del self._data[k]

    def _set_raw(self, key: str, raw: str, ttl_seconds: int) -> None:
        with self._lock:
            self._clean_expired()
            self._data[key] = (raw, self._clock() + ttl_seconds)

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return raw

    def _get_raw(self, key: str) -> str | None:
        with self._lock:
            return self._live(key)

    def _pop_raw(self, key: str) -> str | None:
        with self._lock:
            raw = self._live(key)
            self._data.pop(key, None)
            return raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for k in list(self._data) if self._live(k) is not None)


class SqlStore(EphemeralStore):
    """
    kv_entries table via SQLAlchemy. pop() deletes with a guard on the value read, so
    only the caller whose DELETE affects a row wins.
    """

    def __init__(self, url: str, clock: Callable[[], float] = time.time):
        self._clock = clock
        self.engine = make_engine(url)
        init_db(self.engine)
        self._session_factory = make_session_factory(self.engine)

    def _set_raw(self, key: str, raw: str, ttl_seconds: int) -> None:
        now = self._clock()
        with self._session_factory() as db:
            db.execute(delete(KeyValueEntry).where(KeyValueEntry.expires_at <= now))
            db.merge(KeyValueEntry(key=key, value=raw, expires_at=now + ttl_seconds))
            db.commit()

    def _get_raw(self, key: str) -> str | None:
        with self._session_factory() as db:
            row = db.execute(select(KeyValueEntry).where(KeyValueEntry.key == key)).scalar_one_or_none()
            if row is None:
                return None
            if row.expires_at <= self._clock():
                db.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
                db.commit()
                return None
            return row.value

    def _pop_raw(self, key: str) -> str | None:
        with self._session_factory() as db:
            row = db.execute(select(KeyValueEntry).where(KeyValueEntry.key == key)).scalar_one_or_none()
            if row is None:
                return None
            raw, expires_at = row.value, row.expires_at
            result = db.execute(
                delete(KeyValueEntry).where(KeyValueEntry.key == key, KeyValueEntry.value == raw)
            )
            db.commit()
            if result.rowcount != 1:
                # Another caller consumed it between our read and delete
                return None
            if expires_at <= self._clock():
                return None
            return raw

    def delete(self, key: str) -> None:
        with self._session_factory() as db:
            db.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
            db.commit()

    def purge_expired(self) -> int:
        """Remove rows past their expiry. Returns number of rows deleted."""
        with self._session_factory() as db:
            result = db.execute(delete(KeyValueEntry).where(KeyValueEntry.expires_at <= self._clock()))
            db.commit()
            return result.rowcount or 0

    def ping(self) -> bool:
        try:
            with self._session_factory() as db:
                db.execute(select(1))
            return True
        except SQLAlchemyError as e:
            logger.warning("SQL store ping failed: %s", e)
            return False

    def close(self) -> None:
        self.engine.dispose()


class RedisStore(EphemeralStore):
    """Redis with native key expiry; pop() uses GETDEL."""

    def __init__(self, url: str, client=None):
        if client is None:
            client = redis.Redis.from_url(url, encoding="utf-8", decode_responses=True)
        self._client = client

    def _set_raw(self, key: str, raw: str, ttl_seconds: int) -> None:
        self._client.set(key, raw, ex=ttl_seconds)

    def _get_raw(self, key: str) -> str | None:
        return self._client.get(key)

    def _pop_raw(self, key: str) -> str | None:
        return self._client.getdel(key)

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.warning("Redis store ping failed: %s", e)
            return False

    def close(self) -> None:
        self._client.close()


def create_store(url: str) -> EphemeralStore:
    """Pick a backend from the store URL scheme."""
    if not url or url.startswith("memory://"):
        logger.info("Using in-memory ephemeral store (single process only)")
        return MemoryStore()
    if url.startswith(("redis://", "rediss://", "unix://")):
        logger.info("Using Redis ephemeral store")
        return RedisStore(url)
    logger.info("Using SQL ephemeral store (%s)", url.split(":", 1)[0])
    return SqlStore(url)
