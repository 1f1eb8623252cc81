"""
Keyed mutual exclusion for ledger and appointment mutations.

Keys are strings such as ``doctor:12`` or ``appointment:40``. The local
manager serializes threads of one worker process; the Redis manager
serializes across processes sharing the same Redis.
"""
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
import logging
import threading

from redis.exceptions import LockError, RedisError

from .config import settings
from .database import get_redis
from .errors import LockTimeoutError

logger = logging.getLogger(__name__)


def doctor_key(doctor_id: int) -> str:
    return f"doctor:{doctor_id}"


def appointment_key(appointment_id: int) -> str:
    return f"appointment:{appointment_id}"


class LocalLockManager:
    """Per-key ``threading.Lock`` registry.

    Entries are reference counted and dropped once no thread holds or waits
    on them, so the registry does not grow with the number of doctors.
    """

    def __init__(self, timeout: float = None):
        self.timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._waiters: Dict[str, int] = {}

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            wait = self.timeout if timeout is None else timeout
            if not lock.acquire(timeout=wait):
                logger.warning(f"Timed out waiting for lock {key}")
                raise LockTimeoutError()
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)

    def is_held(self, key: str) -> bool:
        with self._guard:
            lock = self._locks.get(key)
        return bool(lock and lock.locked())


class RedisLockManager:
    """Distributed locks built on ``redis.lock.Lock``.

    Every lock carries an expiry so a crashed worker cannot hold a doctor's
    ledger forever.
    """

    def __init__(self, client=None, timeout: float = None, expire: float = None, prefix: str = "lock:"):
        self.client = client if client is not None else get_redis()
        self.timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self.expire = settings.LOCK_EXPIRE_SECONDS if expire is None else expire
        self.prefix = prefix

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        lock = self.client.lock(
            f"{self.prefix}{key}",
            timeout=self.expire,
            blocking_timeout=self.timeout if timeout is None else timeout,
        )
        try:
            acquired = lock.acquire()
        except RedisError as e:
            logger.error(f"Redis lock {key} unavailable: {str(e)}")
            raise LockTimeoutError("Lock service unavailable, please retry")
        if not acquired:
            logger.warning(f"Timed out waiting for lock {key}")
            raise LockTimeoutError()
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # Expired while held; the next holder already owns the key
                logger.error(f"Lock {key} expired before release")


_lock_manager = None
_lock_manager_guard = threading.Lock()


def get_lock_manager():
    """Process-wide lock manager chosen by ``LOCK_BACKEND``."""
    global _lock_manager
    with _lock_manager_guard:
        if _lock_manager is None:
            if settings.LOCK_BACKEND == "redis":
                _lock_manager = RedisLockManager()
            else:
                _lock_manager = LocalLockManager()
            logger.info(f"Using {type(_lock_manager).__name__} for slot and appointment locks")
        return _lock_manager
