"""
Export progress estimation.

The engine's own progress reporting is unreliable once input seeking is in
play, so progress is taken from the best source available, in order:

1. native fraction reported by the engine,
2. processed time parsed from its log (``time=HH:MM:SS.xx``) over the clip duration,
3. a synthetic time-based curve while the engine is silent.

Every value is mapped into the render band of the overall export and only
ever moves forward.
"""

import math
import re
import threading
import time
from contextlib import contextmanager
from typing import Callable, Optional

# Export milestones (percent)
PROGRESS_INIT = 1
PROGRESS_MOUNTED = 4
PROGRESS_CAPTIONS = 6
PROGRESS_PRE_RENDER = 8
PROGRESS_RENDER_MAX = 92
PROGRESS_READ_OUTPUT = 94
PROGRESS_VALIDATE = 95
PROGRESS_PACKAGED = 96
PROGRESS_DONE = 100

# Synthetic curve, as fractions of the render band
SYNTHETIC_RAMP_TARGET = 0.94
SYNTHETIC_CEILING = 0.99
SYNTHETIC_SILENCE_SECONDS = 1.5
TICK_SECONDS = 0.25

_TIME_RE = re.compile(r"\btime=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)\b")
_OUT_TIME_US_RE = re.compile(r"\bout_time_(?:us|ms)=(\d+)\b")


def parse_timecode(timecode: str) -> Optional[float]:
    """``HH:MM:SS(.ff)`` -> seconds."""
    match = re.match(r"^(\d+):(\d{2}):(\d{2}(?:\.\d+)?)$", timecode.strip())
    if not match:
        return None
    h, m, s = match.groups()
    return int(h) * 3600 + int(m) * 60 + float(s)


def parse_log_time(line: str) -> Optional[float]:
    """Processed seconds from an FFmpeg stats or ``-progress`` line, if any."""
    match = _TIME_RE.search(line)
    if match:
        h, m, s = match.groups()
        return int(h) * 3600 + int(m) * 60 + float(s)
    match = _OUT_TIME_US_RE.search(line)
    if match:
        # out_time_ms is microseconds too
        return int(match.group(1)) / 1_000_000
    return None


class ProgressEstimator:
    """
    Turns engine telemetry into monotonic integer percentages.

    ``emit`` receives each new value exactly once; lower or equal values
    are dropped.
    """

    def __init__(
        self,
        clip_duration: float,
        emit: Optional[Callable[[int], None]] = None,
        render_start: int = PROGRESS_PRE_RENDER,
        render_max: int = PROGRESS_RENDER_MAX,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.clip_duration = max(0.5, float(clip_duration))
        self._emit = emit
        self.render_start = render_start
        self.render_max = render_max
        self._clock = clock
        self._lock = threading.RLock()
        self.last = 0
        self._render_started_at: Optional[float] = None
        self._last_telemetry_at: Optional[float] = None
        self._time_baseline: Optional[float] = None
        self._log_baseline: Optional[float] = None

    # ----- reporting -----

    def report(self, pct: float) -> bool:
        """Emit ``pct`` (clamped, rounded) if it moves progress forward."""
        if pct is None or not math.isfinite(pct):
            return False
        value = int(math.floor(min(100.0, max(0.0, pct)) + 0.5))
        with self._lock:
            if value <= self.last:
                return False
            self.last = value
            if self._emit:
                self._emit(value)
        return True

    def report_render_fraction(self, fraction: float) -> bool:
        fraction = min(1.0, max(0.0, fraction))
        return self.report(self.render_start + fraction * (self.render_max - self.render_start))

    # ----- render attempts -----

    def start_render(self):
        """Begin a render attempt (a retry starts a new one)."""
        self.report(self.render_start)
        self._render_started_at = self._clock()
        self._last_telemetry_at = None
        self._time_baseline = None
        self._log_baseline = None

    def _normalize(self, seconds: float, source: str) -> float:
        # First value seen (or a jump backwards) becomes the baseline, so
        # time spent decoding the pre-seek cushion doesn't count.
        if not math.isfinite(seconds) or seconds <= 0:
            return 0.0
        attr = "_time_baseline" if source == "native" else "_log_baseline"
        baseline = getattr(self, attr)
        if baseline is None or seconds + 0.25 < baseline:
            setattr(self, attr, seconds)
            return 0.0
        return max(0.0, seconds - baseline)

    def on_native(self, fraction: Optional[float] = None, out_seconds: Optional[float] = None) -> bool:
        if out_seconds is not None and out_seconds > 0:
            processed = self._normalize(out_seconds, "native")
            if processed > 0:
                self._last_telemetry_at = self._clock()
                return self.report_render_fraction(processed / self.clip_duration)
        if fraction is not None and 0 < fraction <= 1.05:
            self._last_telemetry_at = self._clock()
            return self.report_render_fraction(fraction)
        return False

    def on_log_line(self, line: str) -> bool:
        seconds = parse_log_time(line)
        if seconds is None or seconds <= 0:
            return False
        processed = self._normalize(seconds, "log")
        if processed <= 0:
            return False
        self._last_telemetry_at = self._clock()
        return self.report_render_fraction(processed / self.clip_duration)

    def synthetic_fraction(self, elapsed: float) -> float:
        """Render-band fraction the time-based curve assigns to ``elapsed`` seconds."""
        ramp = max(4.0, self.clip_duration * 2.5)
        tau = max(12.0, self.clip_duration * 5.0)
        if elapsed <= ramp:
            linear = min(1.0, max(0.0, elapsed / ramp))
            return SYNTHETIC_RAMP_TARGET * (1 - (1 - linear) ** 3)
        tail = 1 - math.exp(-(elapsed - ramp) / tau)
        return SYNTHETIC_RAMP_TARGET + (SYNTHETIC_CEILING - SYNTHETIC_RAMP_TARGET) * tail

    def tick(self) -> bool:
        """Advance the synthetic curve if the engine has been silent long enough."""
        if self._render_started_at is None:
            return False
        now = self._clock()
        quiet_since = self._last_telemetry_at or self._render_started_at
        if now - quiet_since < SYNTHETIC_SILENCE_SECONDS:
            return False
        return self.report_render_fraction(self.synthetic_fraction(now - self._render_started_at))

    @contextmanager
    def ticking(self, interval: float = TICK_SECONDS):
        """Run ``tick`` on a background thread for the duration of the block."""
        stop = threading.Event()

        def _loop():
            while not stop.wait(interval):
                self.tick()

        thread = threading.Thread(target=_loop, name="shortsmith-progress", daemon=True)
        thread.start()
        try:
            yield self
        finally:
            stop.set()
            thread.join(timeout=1.0)
