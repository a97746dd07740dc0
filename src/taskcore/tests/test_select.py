"""Tests for select(), try_select() and after()."""

from __future__ import annotations

import time
from collections import Counter

import pytest

from conftest import spawn
from taskcore.foundation.errors import SelectTimeoutError, is_recoverable
from taskcore.runtime.concurrency import CLOSED, Channel, after, select, try_select


def test_ready_channel_beats_longer_timeout() -> None:
    ch: Channel[int] = Channel(1)
    ch.send(42)
    for _ in range(20):
        fired = select(ch, timeout=1.0)
        assert fired.index == 0 and fired.value == 42
        ch.send(42)


def test_reports_which_source_fired() -> None:
    idle: Channel[str] = Channel(1)
    busy: Channel[str] = Channel(1)
    busy.send("work")
    fired = select(idle, busy, timeout=5.0)
    assert fired.index == 1
    assert fired.source is busy
    assert fired.value == "work"
    assert not fired.closed


def test_timeout_raises() -> None:
    start = time.monotonic()
    with pytest.raises(SelectTimeoutError) as exc_info:
        select(Channel(1), Channel(1), timeout=0.05)
    assert time.monotonic() - start >= 0.04
    assert isinstance(exc_info.value, TimeoutError)
    assert is_recoverable(exc_info.value)


def test_zero_timeout_polls_once() -> None:
    with pytest.raises(SelectTimeoutError):
        select(Channel(1), timeout=0)


def test_closed_channel_fires_with_closed_signal() -> None:
    ch: Channel[int] = Channel(1)
    ch.close()
    fired = select(Channel(1), ch, timeout=1.0)
    assert fired.index == 1
    assert fired.value is CLOSED
    assert fired.closed


def test_wakes_on_later_send() -> None:
    ch: Channel[str] = Channel(1)

    def late() -> None:
        time.sleep(0.05)
        ch.send("late")

    t = spawn(late)
    fired = select(Channel(1), ch, timeout=2.0)
    assert fired.value == "late"
    t.join(2)


def test_wakes_on_later_close() -> None:
    ch: Channel[str] = Channel()

    def closer() -> None:
        time.sleep(0.05)
        ch.close()

    t = spawn(closer)
    assert select(ch, timeout=2.0).closed
    t.join(2)


def test_receives_from_parked_rendezvous_sender() -> None:
    ch: Channel[str] = Channel()
    t = spawn(lambda: ch.send("handoff"))
    fired = select(ch, timeout=2.0)
    assert fired.value == "handoff"
    t.join(2)
    assert not t.is_alive()


def test_fair_selection_reaches_every_ready_source() -> None:
    a: Channel[str] = Channel(100)
    b: Channel[str] = Channel(100)
    for _ in range(100):
        a.send("a")
        b.send("b")
    hits = Counter(select(a, b, fair=True).value for _ in range(100))
    assert hits["a"] > 0 and hits["b"] > 0


def test_unfair_selection_prefers_earlier_sources() -> None:
    a: Channel[str] = Channel(10)
    b: Channel[str] = Channel(10)
    for _ in range(10):
        a.send("a")
        b.send("b")
    assert [select(a, b, fair=False).value for _ in range(10)] == ["a"] * 10


def test_fairness_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    from taskcore.foundation.config import clear_settings_cache

    monkeypatch.setenv("TASKCORE_SELECT_FAIR", "false")
    clear_settings_cache()
    a: Channel[str] = Channel(5)
    b: Channel[str] = Channel(5)
    for _ in range(5):
        a.send("a")
        b.send("b")
    assert {select(a, b).value for _ in range(5)} == {"a"}


def test_accepts_receive_only_views() -> None:
    ch: Channel[int] = Channel(1)
    ch.send(3)
    assert select(ch.receiver(), timeout=1.0).value == 3


def test_watchers_removed_after_select() -> None:
    ch: Channel[int] = Channel(1)
    with pytest.raises(SelectTimeoutError):
        select(ch, timeout=0.01)
    ch.send(1)
    select(ch, timeout=1.0)
    assert ch._watchers == []


def test_requires_a_source() -> None:
    with pytest.raises(ValueError):
        select()
    with pytest.raises(ValueError):
        try_select()


def test_try_select() -> None:
    ch: Channel[int] = Channel(1)
    assert try_select(ch) is None
    ch.send(8)
    fired = try_select(Channel(1), ch)
    assert fired is not None and fired.index == 1 and fired.value == 8


def test_after_fires_once_then_closes() -> None:
    timer = after(0.05)
    fired = select(Channel(1), timer, timeout=2.0)
    assert fired.index == 1
    assert isinstance(fired.value, float)
    assert select(timer, timeout=1.0).closed
