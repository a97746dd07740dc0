"""Shared fixtures: fresh settings and silent logging for every test."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator

import pytest

from taskcore.foundation.config import clear_settings_cache
from taskcore.runtime.observability import CaptureRenderer, NoOpRenderer, set_renderer


@pytest.fixture(autouse=True)
def clean_settings() -> Iterator[None]:
    """Reload settings from the environment around each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[None]:
    set_renderer(NoOpRenderer(), "INFO")
    yield
    set_renderer(NoOpRenderer(), "INFO")


@pytest.fixture
def captured_logs() -> CaptureRenderer:
    renderer = CaptureRenderer()
    set_renderer(renderer, "DEBUG")
    return renderer


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll predicate until true or timeout; returns the final value."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() >= deadline:
            return predicate()
        time.sleep(0.005)
    return True


def spawn(target: Callable[[], object]) -> threading.Thread:
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread
