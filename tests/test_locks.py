import threading
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, LockError

from clinic_booking.core.errors import LockTimeoutError
from clinic_booking.core.locks import (
    LocalLockManager, RedisLockManager, appointment_key, doctor_key
)

class TestLocalLockManager:

    def test_hold_marks_key_locked(self):
        locks = LocalLockManager(timeout=1)

        with locks.hold(doctor_key(1)):
            assert locks.is_held(doctor_key(1))
            assert not locks.is_held(doctor_key(2))

        assert not locks.is_held(doctor_key(1))

    def test_registry_emptied_after_release(self):
        locks = LocalLockManager(timeout=1)
        with locks.hold(appointment_key(5)):
            pass

        assert locks._locks == {}
        assert locks._waiters == {}

    def test_contended_key_times_out(self):
        locks = LocalLockManager(timeout=0.1)
        held = threading.Event()
        done = threading.Event()

        def holder():
            with locks.hold(doctor_key(1)):
                held.set()
                done.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            held.wait(2)
            with pytest.raises(LockTimeoutError):
                with locks.hold(doctor_key(1)):
                    pass
            # A different doctor is not blocked
            with locks.hold(doctor_key(2)):
                pass
        finally:
            done.set()
            thread.join()

    def test_lock_released_on_error(self):
        locks = LocalLockManager(timeout=0.1)

        with pytest.raises(ValueError):
            with locks.hold(doctor_key(1)):
                raise ValueError("boom")

        with locks.hold(doctor_key(1)):
            pass

class TestRedisLockManager:

    def make_manager(self, acquire_result=True):
        client = MagicMock()
        lock = client.lock.return_value
        lock.acquire.return_value = acquire_result
        return RedisLockManager(client=client, timeout=2, expire=30), client, lock

    def test_acquires_and_releases_prefixed_key(self):
        manager, client, lock = self.make_manager()

        with manager.hold(doctor_key(3)):
            lock.release.assert_not_called()

        client.lock.assert_called_once_with("lock:doctor:3", timeout=30, blocking_timeout=2)
        lock.acquire.assert_called_once()
        lock.release.assert_called_once()

    def test_not_acquired_raises_timeout(self):
        manager, client, lock = self.make_manager(acquire_result=False)

        with pytest.raises(LockTimeoutError):
            with manager.hold(doctor_key(3)):
                pass

        lock.release.assert_not_called()

    def test_redis_down_raises_timeout(self):
        manager, client, lock = self.make_manager()
        lock.acquire.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(LockTimeoutError):
            with manager.hold(doctor_key(3)):
                pass

    def test_expired_lock_on_release_is_logged(self, caplog):
        manager, client, lock = self.make_manager()
        lock.release.side_effect = LockError("Cannot release an unlocked lock")

        with manager.hold(doctor_key(3)):
            pass

        assert "expired before release" in caplog.text
