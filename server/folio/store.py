"""
Key-value store used by the passkey core.

Thin adapter over a Django cache alias (Redis in production, locmem in
development and tests). Values are raw bytes; serialization of typed records
happens in ``folio.records``. Every backend failure is surfaced as
``StoreUnavailable`` so that callers never mistake an outage for a missing key.
"""
import logging
import secrets
import time
from contextlib import contextmanager

from django.conf import settings
from django.core.cache import caches

from folio.utils.exceptions import LockTimeout, StoreUnavailable

logger = logging.getLogger(__name__)

LOCK_PREFIX = "lock"
LOCK_POLL_INTERVAL_SECONDS = 0.02


class KeyValueStore:
    def __init__(self, backend, lock_timeout: int = 5, lock_wait: float = 2.0):
        self._backend = backend
        self.lock_timeout = lock_timeout
        self.lock_wait = lock_wait

    @classmethod
    def from_settings(cls, alias: str | None = None) -> "KeyValueStore":
        alias = alias or getattr(settings, "PASSKEY_STORE_CACHE", "default")
        return cls(
            caches[alias],
            lock_timeout=getattr(settings, "STORE_LOCK_TIMEOUT_SECONDS", 5),
            lock_wait=getattr(settings, "STORE_LOCK_WAIT_SECONDS", 2),
        )

    def get(self, key: str) -> bytes | None:
        try:
            return self._backend.get(key)
        except Exception as exc:
            logger.exception("Store read failed for %s", key)
            raise StoreUnavailable(f"read failed for {key}") from exc

    def put(self, key: str, value: bytes, ttl: int | None = None) -> None:
        """Write ``value``; ``ttl=None`` keeps the key until it is deleted."""
        try:
            self._backend.set(key, value, timeout=ttl)
        except Exception as exc:
            logger.exception("Store write failed for %s", key)
            raise StoreUnavailable(f"write failed for {key}") from exc

    def add(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        """Insert ``value`` only if ``key`` is absent. Returns True on insert."""
        try:
            return bool(self._backend.add(key, value, timeout=ttl))
        except Exception as exc:
            logger.exception("Store conditional write failed for %s", key)
            raise StoreUnavailable(f"conditional write failed for {key}") from exc

    def delete(self, key: str) -> bool:
        try:
            return bool(self._backend.delete(key))
        except Exception as exc:
            logger.exception("Store delete failed for %s", key)
            raise StoreUnavailable(f"delete failed for {key}") from exc

    def ping(self) -> bool:
        health_key = f"health:{secrets.token_hex(4)}"
        self.put(health_key, b"ok", ttl=10)
        try:
            return self.get(health_key) == b"ok"
        finally:
            self.delete(health_key)

    @contextmanager
    def lock(self, name: str, timeout: int | None = None, wait: float | None = None):
        """
        Hold ``lock:{name}`` for the duration of the block.

        The lock expires on its own after ``timeout`` seconds so that a crashed
        holder cannot wedge a key forever. Raises ``LockTimeout`` when the lock
        cannot be taken within ``wait`` seconds.
        """
        timeout = self.lock_timeout if timeout is None else timeout
        wait = self.lock_wait if wait is None else wait
        key = f"{LOCK_PREFIX}:{name}"
        token = secrets.token_bytes(16)
        deadline = time.monotonic() + wait

        while not self.add(key, token, ttl=timeout):
            if time.monotonic() >= deadline:
                logger.warning("Timed out waiting for lock %s", name)
                raise LockTimeout(f"could not acquire lock {name}")
            time.sleep(LOCK_POLL_INTERVAL_SECONDS)

        try:
            yield
        finally:
            self._release(key, token)

    def _release(self, key: str, token: bytes) -> None:
        # Only release a lock we still own; it may have expired and been retaken.
        try:
            if self._backend.get(key) == token:
                self._backend.delete(key)
        except Exception:
            logger.exception("Failed to release %s", key)
