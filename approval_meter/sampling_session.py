"""
sampling_session.py

Measurement session: owns the microphone while running and, once per
cycle, reads a block -> measures its loudness -> updates the verdict.

Cycles are scheduled one at a time (the next one is only scheduled after
the current one finished), so two cycles never overlap.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol

from .decision_engine import ApprovalState, DecisionEngine
from .level_meter import AudioBlock, LevelMeter
from .threshold_model import ThresholdModel

# roughly a display refresh (30 cycles per second)
DEFAULT_CYCLE_INTERVAL_SEC = 1.0 / 30


class SessionState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class CaptureProvider(Protocol):
    def acquire(self) -> Any: ...

    def read_block(self, handle: Any) -> AudioBlock: ...

    def release(self, handle: Any) -> None: ...


class Cancelable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay: float, callback: Callable[[], None]) -> Cancelable: ...


class TimerScheduler:
    """Runs each callback once on a daemon ``threading.Timer``."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


@dataclass(frozen=True)
class SessionSnapshot:
    running: bool
    latest_reading: Optional[float]
    peak_level: float
    approval: ApprovalState
    required_level: float
    occupancy: int
    density: float
    cycles: int
    last_error: Optional[str]


Listener = Callable[[SessionSnapshot], None]


class SamplingSession:
    def __init__(
        self,
        capture: CaptureProvider,
        model: Optional[ThresholdModel] = None,
        scheduler: Optional[Scheduler] = None,
        interval: float = DEFAULT_CYCLE_INTERVAL_SEC,
        occupancy: int = 0,
        meter: Optional[LevelMeter] = None,
        engine: Optional[DecisionEngine] = None,
    ) -> None:
        """
        :param capture: provider of the microphone handle and audio blocks.
        :param model: occupancy -> required dB model.
        :param scheduler: one-shot, cancelable callback scheduler.
        :param interval: seconds between the end of one cycle and the next.
        :param occupancy: initial number of people present.
        """
        self.capture = capture
        self.model = model or ThresholdModel()
        self.scheduler = scheduler or TimerScheduler()
        self.interval = interval
        self.meter = meter or LevelMeter()
        self.engine = engine or DecisionEngine()

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._handle: Any = None
        self._pending: Optional[Cancelable] = None
        # bumped on every start/stop; cycles from an older run are dropped
        self._generation = 0
        self._cycles = 0
        self._occupancy = 0
        self.occupancy = occupancy
        self.last_error: Optional[str] = None
        self._listeners: List[Listener] = []

    # ───── observable state ─────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def occupancy(self) -> int:
        return self._occupancy

    @occupancy.setter
    def occupancy(self, value: int) -> None:
        value = int(value)
        if value < 0:
            raise ValueError(f"occupancy must be >= 0, got {value}")
        self._occupancy = value

    def required_level(self) -> float:
        return self.model.required_level(self._occupancy)

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                running=self.running,
                latest_reading=self.engine.latest_reading,
                peak_level=self.engine.peak_level,
                approval=self.engine.approval,
                required_level=self.required_level(),
                occupancy=self._occupancy,
                density=self.model.density(self._occupancy),
                cycles=self._cycles,
                last_error=self.last_error,
            )

    def add_listener(self, listener: Listener) -> None:
        """Call ``listener(snapshot)`` after every cycle and after a stop."""
        self._listeners.append(listener)

    # ───── lifecycle control ─────

    def start(self) -> None:
        """
        Open the microphone and begin sampling. A running session is fully
        stopped first, so a restart never holds two capture handles.

        :raises AcquisitionError: the microphone could not be opened; the
            session is left idle and the previous statistics are kept.
        """
        # set while a stop has happened that listeners have not heard about
        stopped: Optional[SessionSnapshot] = None
        try:
            with self._lock:
                if self.running:
                    self._stop_locked()
                    stopped = self.snapshot()

                handle = self.capture.acquire()

                self._handle = handle
                self.engine.reset()
                self._cycles = 0
                self.last_error = None
                self._state = SessionState.RUNNING
                self._generation += 1
                try:
                    self._schedule(self._generation, 0.0)
                except Exception as e:
                    logging.error("Could not schedule the first cycle: %s", e)
                    self.last_error = str(e) or type(e).__name__
                    self._stop_locked()
                    stopped = self.snapshot()
                    raise

                stopped = None
                logging.info(
                    "Session started (occupancy=%d, required=%.2f dB)",
                    self._occupancy,
                    self.required_level(),
                )
        finally:
            if stopped is not None:
                logging.info("Session stopped after %d cycles", stopped.cycles)
                self._notify(stopped)

    def stop(self) -> None:
        """Stop sampling and release the microphone. No-op when idle."""
        with self._lock:
            if not self.running:
                return
            self._stop_locked()
            snapshot = self.snapshot()
        logging.info("Session stopped after %d cycles", snapshot.cycles)
        self._notify(snapshot)

    def _stop_locked(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._generation += 1
        self._state = SessionState.IDLE

        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                self.capture.release(handle)
            except Exception as e:
                logging.warning("Error releasing capture device: %s", e)

    # ───── cycle ─────

    def _schedule(self, generation: int, delay: float) -> None:
        self._pending = self.scheduler.schedule(delay, lambda: self._run_cycle(generation))

    def _run_cycle(self, generation: int) -> None:
        with self._lock:
            # stop() or a restart got here first
            if generation != self._generation or not self.running:
                return
            self._pending = None

            try:
                block = self.capture.read_block(self._handle)
                reading = self.meter.measure(block)
                threshold = self.required_level()
                previous = self.engine.approval
                verdict = self.engine.on_reading(reading, threshold)
                self._cycles += 1

                logging.debug(
                    "cycle %d: %.2f dB (peak %.2f, required %.2f) -> %s",
                    self._cycles,
                    reading,
                    self.engine.peak_level,
                    threshold,
                    verdict.value,
                )
                if verdict is not previous:
                    logging.info("Verdict: %s", verdict.value)

                self._schedule(generation, self.interval)
            except Exception as e:
                # fatal to this session only; the handle is released below
                logging.error("Measurement cycle failed, stopping session: %s", e)
                self.last_error = str(e) or type(e).__name__
                self._stop_locked()
            snapshot = self.snapshot()

        self._notify(snapshot)

    def _notify(self, snapshot: SessionSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logging.exception("Session listener failed")
