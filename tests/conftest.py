"""Pytest configuration and shared fixtures.

Pipeline tests need control over when background jobs finish, so two
executors stand in for the thread pool: ``ImmediateExecutor`` runs every
job at submit time, ``ManualExecutor`` queues jobs until a test runs them
(in any order it likes).
"""

from __future__ import annotations

import io
import os
from concurrent.futures import Executor, Future

import pytest
from PIL import Image

# Headless Qt for the widget smoke tests
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


def _run_job(future: Future, fn, args, kwargs) -> None:
    try:
        result = fn(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001 - forwarded through the future
        future.set_exception(exc)
    else:
        future.set_result(result)


class ImmediateExecutor(Executor):
    """Runs each job synchronously inside ``submit``."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        _run_job(future, fn, args, kwargs)
        return future


class ManualExecutor(Executor):
    """Queues jobs; tests complete them explicitly with ``run``."""

    def __init__(self):
        self.jobs: list[tuple[Future, object, tuple, dict]] = []
        self.shut_down = False

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def run(self, index: int) -> Future:
        future, fn, args, kwargs = self.jobs[index]
        _run_job(future, fn, args, kwargs)
        return future

    def run_all(self) -> None:
        for index in range(len(self.jobs)):
            if not self.jobs[index][0].done():
                self.run(index)

    def shutdown(self, wait=True, *, cancel_futures=False):
        self.shut_down = True


def make_image_bytes(width: int, height: int, color=(200, 30, 30), fmt: str = "PNG", **save_kwargs) -> bytes:
    img = Image.new("RGB", (width, height), color)
    buf = io.BytesIO()
    img.save(buf, fmt, **save_kwargs)
    return buf.getvalue()


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def wide_png():
    """200x100 (2:1) PNG."""
    return make_image_bytes(200, 100)


@pytest.fixture
def tall_png():
    """100x200 (1:2) PNG."""
    return make_image_bytes(100, 200, color=(30, 30, 200))
