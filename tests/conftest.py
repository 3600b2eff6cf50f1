"""Shared pytest fixtures: fake microphone and a hand-driven scheduler."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from approval_meter.level_meter import AudioBlock, SampleEncoding  # noqa: E402
from approval_meter.errors import AcquisitionError, CaptureReadError  # noqa: E402


class FakeCapture:
    """Capture provider that hands out pre-made blocks and counts handles."""

    def __init__(self, blocks=None, fail_acquire=False):
        self.blocks = list(blocks or [])
        self.fail_acquire = fail_acquire
        self.fail_read = False
        self.acquired = 0
        self.released = 0
        self.open_handles = set()
        self._next_id = 0

    def acquire(self):
        if self.fail_acquire:
            raise AcquisitionError("permission denied")
        self._next_id += 1
        self.acquired += 1
        self.open_handles.add(self._next_id)
        return self._next_id

    def read_block(self, handle):
        assert handle in self.open_handles, "read from a released handle"
        if self.fail_read:
            raise CaptureReadError("device unplugged")
        if self.blocks:
            return self.blocks.pop(0)
        return AudioBlock.from_array(np.zeros(16), SampleEncoding.FLOAT32)

    def release(self, handle):
        self.open_handles.discard(handle)
        self.released += 1


class _Handle:
    def __init__(self, scheduler, delay, callback):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Collects scheduled callbacks; tests fire them with run_next()."""

    def __init__(self):
        self.handles = []
        self.fail_next = False

    def schedule(self, delay, callback):
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("timer unavailable")
        handle = _Handle(self, delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def run_next(self):
        handle = self.pending[0]
        self.handles.remove(handle)
        handle.callback()

    def run(self, cycles):
        for _ in range(cycles):
            self.run_next()


def float_block(values):
    return AudioBlock.from_array(np.asarray(values, dtype=np.float32), SampleEncoding.FLOAT32)


def block_at_db(db, size=64):
    """Square wave whose RMS equals ``db`` dBFS."""
    amplitude = 10 ** (db / 20)
    return float_block([amplitude, -amplitude] * (size // 2))


@pytest.fixture
def fake_capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
