"""Tests for Lock, CondVar, RWLock, OnceLatch and WaitGroup."""

from __future__ import annotations

import copy
import threading
import time

import pytest

from conftest import spawn, wait_until
from taskcore.foundation.errors import (
    ContractViolationError,
    LockMisuseError,
    OnceFailedError,
    WaitGroupMisuseError,
    is_recoverable,
)
from taskcore.runtime.concurrency import CondVar, Lock, OnceLatch, RWLock, WaitGroup


# ─────────────────────────────────────────────────────────────────────────────
# Lock
# ─────────────────────────────────────────────────────────────────────────────


class TestLock:
    """Tests for Lock."""

    def test_acquire_release(self) -> None:
        lock = Lock()
        assert lock.acquire()
        assert lock.locked and lock.owned
        lock.release()
        assert not lock.locked and not lock.owned

    def test_context_manager(self) -> None:
        lock = Lock()
        with lock:
            assert lock.owned
        assert not lock.locked

    def test_release_unlocked_is_misuse(self) -> None:
        lock = Lock()
        with pytest.raises(LockMisuseError) as exc_info:
            lock.release()
        assert isinstance(exc_info.value, ContractViolationError)
        assert not is_recoverable(exc_info.value)

    def test_release_from_other_thread_is_misuse(self) -> None:
        lock = Lock()
        lock.acquire()
        errors: list[BaseException] = []

        def intruder() -> None:
            try:
                lock.release()
            except LockMisuseError as exc:
                errors.append(exc)

        spawn(intruder).join(2)
        assert len(errors) == 1
        assert lock.owned  # still held by this thread
        lock.release()

    def test_timed_acquire_fails_while_held(self) -> None:
        lock = Lock()
        lock.acquire()
        outcome: list[bool] = []
        spawn(lambda: outcome.append(lock.acquire(timeout=0.05))).join(2)
        assert outcome == [False]
        assert lock.acquire(timeout=0) is False  # not reentrant
        lock.release()

    def test_zero_timeout_on_free_lock(self) -> None:
        lock = Lock()
        assert lock.acquire(timeout=0)
        lock.release()

    def test_counter_1000_concurrent_increments(self) -> None:
        lock = Lock()
        state = {"value": 0}

        def increment() -> None:
            with lock:
                current = state["value"]
                time.sleep(0)
                state["value"] = current + 1

        threads = [spawn(increment) for _ in range(1000)]
        for t in threads:
            t.join(5)
        assert state["value"] == 1000

    def test_cannot_copy(self) -> None:
        with pytest.raises(TypeError):
            copy.copy(Lock())
        with pytest.raises(TypeError):
            copy.deepcopy(Lock())


# ─────────────────────────────────────────────────────────────────────────────
# CondVar
# ─────────────────────────────────────────────────────────────────────────────


class TestCondVar:
    """Tests for CondVar."""

    def test_wait_without_lock_is_misuse(self) -> None:
        cond = CondVar()
        with pytest.raises(LockMisuseError):
            cond.wait(0.01)

    def test_wait_timeout_reacquires_lock(self) -> None:
        lock = Lock()
        cond = CondVar(lock)
        with lock:
            assert cond.wait(0.02) is False
            assert lock.owned

    def test_wait_releases_lock_while_parked(self) -> None:
        lock = Lock()
        cond = CondVar(lock)
        state = {"ready": False}
        got_lock = threading.Event()

        def waiter() -> None:
            with lock:
                cond.wait_for(lambda: state["ready"])

        t = spawn(waiter)
        assert wait_until(lambda: cond.waiting == 1)
        # The parked waiter must not hold the lock
        assert lock.acquire(timeout=1.0)
        got_lock.set()
        state["ready"] = True
        cond.signal()
        lock.release()
        t.join(2)
        assert not t.is_alive()
        assert got_lock.is_set()

    def test_waiter_rechecks_predicate_after_wake(self) -> None:
        lock = Lock()
        cond = CondVar(lock)
        state = {"ready": False}
        woke = threading.Event()

        def waiter() -> None:
            with lock:
                while not state["ready"]:
                    cond.wait()
            woke.set()

        t = spawn(waiter)
        assert wait_until(lambda: cond.waiting == 1)
        with lock:
            cond.signal()  # wake without the predicate holding
        assert not woke.wait(0.1)
        assert wait_until(lambda: cond.waiting == 1)
        with lock:
            state["ready"] = True
            cond.signal()
        assert woke.wait(2)
        t.join(2)

    def test_broadcast_wakes_all(self) -> None:
        lock = Lock()
        cond = CondVar(lock)
        state = {"go": False}
        woken: list[int] = []

        def waiter(n: int) -> None:
            with lock:
                cond.wait_for(lambda: state["go"])
                woken.append(n)

        threads = [spawn(lambda n=n: waiter(n)) for n in range(5)]
        assert wait_until(lambda: cond.waiting == 5)
        with lock:
            state["go"] = True
            cond.broadcast()
        for t in threads:
            t.join(2)
        assert sorted(woken) == [0, 1, 2, 3, 4]

    def test_wait_for_times_out_with_falsy_result(self) -> None:
        cond = CondVar()
        with cond:
            assert not cond.wait_for(lambda: False, timeout=0.05)


# ─────────────────────────────────────────────────────────────────────────────
# RWLock
# ─────────────────────────────────────────────────────────────────────────────


class TestRWLock:
    """Tests for RWLock."""

    def test_readers_hold_concurrently(self) -> None:
        rw = RWLock()
        n = 5
        barrier = threading.Barrier(n, timeout=2)
        broken: list[BaseException] = []

        def reader() -> None:
            with rw.read_locked():
                try:
                    barrier.wait()  # only passes if all n readers are inside together
                except threading.BrokenBarrierError as exc:
                    broken.append(exc)

        threads = [spawn(reader) for _ in range(n)]
        for t in threads:
            t.join(3)
        assert not broken
        assert rw.readers == 0

    def test_writer_never_overlaps_readers(self) -> None:
        rw = RWLock()
        violations: list[str] = []
        shared = {"value": 0}

        def writer() -> None:
            for _ in range(50):
                with rw.write_locked():
                    if rw.readers:
                        violations.append("writer saw readers")
                    shared["value"] += 1

        def reader() -> None:
            for _ in range(50):
                with rw.read_locked():
                    if rw.writer_active:
                        violations.append("reader saw writer")
                    _ = shared["value"]

        threads = [spawn(writer) for _ in range(3)] + [spawn(reader) for _ in range(5)]
        for t in threads:
            t.join(10)
        assert not violations
        assert shared["value"] == 150

    def test_waiting_writer_blocks_new_readers(self) -> None:
        rw = RWLock(prefer_writers=True)
        rw.acquire_read()
        writer_in = threading.Event()
        late_reader_in = threading.Event()

        def writer() -> None:
            rw.acquire_write()
            writer_in.set()
            time.sleep(0.05)
            rw.release_write()

        def late_reader() -> None:
            rw.acquire_read()
            late_reader_in.set()
            rw.release_read()

        w = spawn(writer)
        assert wait_until(lambda: rw._waiting_writers == 1)
        r = spawn(late_reader)
        assert not late_reader_in.wait(0.1)
        rw.release_read()
        assert writer_in.wait(2)
        assert late_reader_in.wait(2)
        w.join(2)
        r.join(2)

    def test_reader_preference_lets_readers_pass_waiting_writer(self) -> None:
        rw = RWLock(prefer_writers=False)
        rw.acquire_read()
        late_reader_in = threading.Event()

        w = spawn(lambda: (rw.acquire_write(), rw.release_write()))
        assert wait_until(lambda: rw._waiting_writers == 1)

        def late_reader() -> None:
            with rw.read_locked():
                late_reader_in.set()

        spawn(late_reader)
        assert late_reader_in.wait(2)
        rw.release_read()
        w.join(2)
        assert not w.is_alive()

    def test_policy_defaults_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from taskcore.foundation.config import clear_settings_cache

        assert RWLock().prefer_writers is True
        monkeypatch.setenv("TASKCORE_SYNC_RWLOCK_PREFER_WRITERS", "false")
        clear_settings_cache()
        assert RWLock().prefer_writers is False

    def test_release_read_without_acquire_is_misuse(self) -> None:
        with pytest.raises(LockMisuseError):
            RWLock().release_read()

    def test_release_write_without_acquire_is_misuse(self) -> None:
        rw = RWLock()
        rw.acquire_read()
        with pytest.raises(LockMisuseError):
            rw.release_write()
        rw.release_read()

    def test_release_write_from_other_thread_is_misuse(self) -> None:
        rw = RWLock()
        rw.acquire_write()
        errors: list[BaseException] = []

        def intruder() -> None:
            try:
                rw.release_write()
            except LockMisuseError as exc:
                errors.append(exc)

        spawn(intruder).join(2)
        assert len(errors) == 1
        assert rw.writer_active
        rw.release_write()


# ─────────────────────────────────────────────────────────────────────────────
# OnceLatch
# ─────────────────────────────────────────────────────────────────────────────


class TestOnceLatch:
    """Tests for OnceLatch."""

    def test_concurrent_callers_run_action_once(self) -> None:
        latch: OnceLatch[str] = OnceLatch()
        calls = {"n": 0}
        finished = threading.Event()
        k = 16
        start = threading.Barrier(k, timeout=2)
        observed: list[tuple[str, bool]] = []
        observed_lock = threading.Lock()

        def action() -> str:
            calls["n"] += 1
            time.sleep(0.05)
            finished.set()
            return "initialized"

        def caller() -> None:
            start.wait()
            value = latch.do(action)
            with observed_lock:
                observed.append((value, finished.is_set()))

        threads = [spawn(caller) for _ in range(k)]
        for t in threads:
            t.join(5)
        assert calls["n"] == 1
        assert len(observed) == k
        # Every caller returned only after the single execution finished
        assert all(value == "initialized" and done for value, done in observed)
        assert latch.done

    def test_later_calls_return_cached_value(self) -> None:
        latch: OnceLatch[int] = OnceLatch()
        assert latch.do(lambda: 7) == 7
        assert latch.do(lambda: 8) == 7

    def test_failure_is_final_by_default(self) -> None:
        latch: OnceLatch[int] = OnceLatch()

        def boom() -> int:
            raise ValueError("bad config")

        with pytest.raises(ValueError):
            latch.do(boom)
        assert latch.done
        with pytest.raises(OnceFailedError) as exc_info:
            latch.do(lambda: 1)
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert isinstance(latch.error, ValueError)

    def test_retry_on_error_policy(self) -> None:
        latch: OnceLatch[int] = OnceLatch(retry_on_error=True)
        attempts = {"n": 0}

        def flaky() -> int:
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise RuntimeError("transient")
            return 42

        with pytest.raises(RuntimeError):
            latch.do(flaky)
        assert not latch.done
        assert latch.do(flaky) == 42
        assert latch.do(flaky) == 42
        assert attempts["n"] == 2

    def test_retry_policy_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from taskcore.foundation.config import clear_settings_cache

        monkeypatch.setenv("TASKCORE_SYNC_ONCE_RETRY_ON_ERROR", "true")
        clear_settings_cache()
        assert OnceLatch().retry_on_error is True


# ─────────────────────────────────────────────────────────────────────────────
# WaitGroup
# ─────────────────────────────────────────────────────────────────────────────


class TestWaitGroup:
    """Tests for WaitGroup."""

    def test_wait_blocks_until_all_done(self) -> None:
        wg = WaitGroup()
        finished: list[int] = []
        wg.add(5)

        def work(n: int) -> None:
            time.sleep(0.01 * n)
            finished.append(n)
            wg.done()

        for n in range(5):
            spawn(lambda n=n: work(n))
        assert wg.wait(timeout=3)
        assert sorted(finished) == [0, 1, 2, 3, 4]
        assert wg.count == 0

    def test_wait_on_zero_returns_immediately(self) -> None:
        assert WaitGroup().wait(timeout=0.01)

    def test_wait_timeout(self) -> None:
        wg = WaitGroup()
        wg.add()
        assert wg.wait(timeout=0.05) is False

    def test_negative_counter_is_misuse(self) -> None:
        wg = WaitGroup()
        with pytest.raises(WaitGroupMisuseError):
            wg.done()
        assert wg.count == 0
