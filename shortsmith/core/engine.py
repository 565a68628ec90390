"""
FFmpeg engine session.

One EngineSession owns access to the ffmpeg binary: jobs are serialized
through ``acquire()``, log/progress listeners are attached for the scope of
a job with ``subscribe()``, and every run streams stderr line by line so
callers can follow progress and keep a log tail for diagnostics.
"""

import logging
import os
import re
import shutil
import subprocess
import tempfile
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional

from ..errors import EngineExecutionError, ExportCancelledError, ResourceError
from .progress import parse_log_time

logger = logging.getLogger("shortsmith")

LogListener = Callable[[str], None]
ProgressListener = Callable[[Optional[float], Optional[float]], None]

# key=value lines written by -progress; they feed progress, not the log tail
_PROGRESS_KV_RE = re.compile(r"^[a-z_0-9]+=\S*$")


def ffmpeg_binary() -> str:
    return os.environ.get("SHORTSMITH_FFMPEG", "ffmpeg")


@dataclass
class MountedSource:
    """Source media made visible to the engine inside a private work directory."""
    directory: str
    input_name: str

    @property
    def input_path(self) -> str:
        return os.path.join(self.directory, self.input_name)


def _safe_name(filename: str) -> str:
    name = re.sub(r"[^\w.-]+", "_", os.path.basename(filename or "")) or "source"
    return name.lstrip(".") or "source"


class EngineSession:
    """
    Serialized access to one FFmpeg binary.

    Construct your own for isolation, or share the process-wide one from
    ``get_default_session()``.
    """

    def __init__(self, binary: Optional[str] = None, log_tail_lines: int = 40, timeout: int = 3600):
        self.binary = binary or ffmpeg_binary()
        self.log_tail_lines = log_tail_lines
        self.timeout = timeout
        self._job_lock = threading.Lock()
        self._listeners_lock = threading.Lock()
        self._log_listeners: List[LogListener] = []
        self._progress_listeners: List[ProgressListener] = []
        self._capabilities: Optional[FrozenSet[str]] = None
        self._version: Optional[str] = None

    # ----- serialization -----

    @contextmanager
    def acquire(self):
        """Hold the session for one job. Overlapping callers wait their turn."""
        if not self._job_lock.acquire(blocking=False):
            logger.info("Engine busy, waiting for the running export to finish")
            self._job_lock.acquire()
        try:
            yield self
        finally:
            self._job_lock.release()

    @property
    def busy(self) -> bool:
        return self._job_lock.locked()

    # ----- listeners -----

    @contextmanager
    def subscribe(self, on_log: Optional[LogListener] = None, on_progress: Optional[ProgressListener] = None):
        """
        Attach listeners for the duration of the block.

        ``on_log(line)`` sees every stderr line; ``on_progress(fraction, out_seconds)``
        sees the engine's native progress reports.
        """
        with self._listeners_lock:
            if on_log:
                self._log_listeners.append(on_log)
            if on_progress:
                self._progress_listeners.append(on_progress)
        try:
            yield
        finally:
            with self._listeners_lock:
                if on_log in self._log_listeners:
                    self._log_listeners.remove(on_log)
                if on_progress in self._progress_listeners:
                    self._progress_listeners.remove(on_progress)

    def _notify_log(self, line: str):
        with self._listeners_lock:
            listeners = list(self._log_listeners)
        for listener in listeners:
            listener(line)

    def _notify_progress(self, fraction: Optional[float], out_seconds: Optional[float]):
        with self._listeners_lock:
            listeners = list(self._progress_listeners)
        for listener in listeners:
            listener(fraction, out_seconds)

    # ----- capabilities -----

    def capabilities(self) -> FrozenSet[str]:
        """Names of the filters this ffmpeg build provides (cached)."""
        if self._capabilities is not None:
            return self._capabilities
        try:
            result = subprocess.run(
                [self.binary, "-hide_banner", "-filters"],
                capture_output=True, text=True, timeout=30,
            )
        except FileNotFoundError:
            raise EngineExecutionError(
                "ffmpeg not found. Install FFmpeg: https://ffmpeg.org/download.html",
                command=[self.binary, "-filters"],
            )
        except subprocess.TimeoutExpired:
            raise EngineExecutionError("ffmpeg -filters timed out", command=[self.binary, "-filters"])

        names = set()
        for line in result.stdout.splitlines():
            parts = line.split()
            # " T.C drawtext          V->V       Draw text on top of video frames..."
            if len(parts) >= 3 and "->" in parts[2]:
                names.add(parts[1])
        self._capabilities = frozenset(names)
        logger.debug(f"ffmpeg provides {len(names)} filters")
        return self._capabilities

    def version(self) -> str:
        """First line of ``ffmpeg -version`` (cached), or "" if it can't be run."""
        if self._version is None:
            try:
                result = subprocess.run([self.binary, "-version"], capture_output=True, text=True, timeout=15)
                lines = result.stdout.splitlines()
                self._version = lines[0] if lines else ""
            except (FileNotFoundError, subprocess.TimeoutExpired):
                self._version = ""
        return self._version

    # ----- mounting -----

    @contextmanager
    def mount(self, source_media, filename: str):
        """
        Expose the source inside a fresh work directory for one job.

        ``source_media`` may be a path, raw bytes, or a binary file object.
        The directory and everything written into it are removed on exit;
        a removal failure is logged and never raised.
        """
        try:
            directory = tempfile.mkdtemp(prefix="shortsmith_render_")
        except OSError as e:
            raise ResourceError(f"Could not create work directory: {e}")

        mounted = MountedSource(directory=directory, input_name=_safe_name(filename))
        try:
            if isinstance(source_media, (bytes, bytearray, memoryview)):
                with open(mounted.input_path, "wb") as f:
                    f.write(source_media)
            elif hasattr(source_media, "read"):
                with open(mounted.input_path, "wb") as f:
                    shutil.copyfileobj(source_media, f)
            else:
                src = os.path.abspath(os.fspath(source_media))
                if not os.path.isfile(src):
                    raise ResourceError(f"Source media not found: {src}")
                try:
                    os.symlink(src, mounted.input_path)
                except OSError:
                    shutil.copyfile(src, mounted.input_path)
        except OSError as e:
            shutil.rmtree(directory, ignore_errors=True)
            raise ResourceError(f"Could not mount source media: {e}")
        except ResourceError:
            shutil.rmtree(directory, ignore_errors=True)
            raise

        logger.debug(f"Mounted {filename} at {mounted.input_path}")
        try:
            yield mounted
        finally:
            try:
                shutil.rmtree(directory)
            except OSError as e:
                logger.warning(f"{ResourceError(f'Could not remove work directory {directory}: {e}')}")

    # ----- execution -----

    def run(self, args: List[str], cwd: Optional[str] = None,
            cancel_event: Optional[threading.Event] = None,
            timeout: Optional[float] = None, log_tail_lines: Optional[int] = None) -> List[str]:
        """
        Run ffmpeg with ``args`` and stream its stderr to listeners.

        ``timeout`` and ``log_tail_lines`` override the session defaults for
        this run.

        Returns:
            The log tail (last ``log_tail_lines`` non-progress lines).

        Raises:
            EngineExecutionError: On a missing binary, timeout or non-zero exit.
            ExportCancelledError: If ``cancel_event`` was set while running.
        """
        cmd = [self.binary, "-hide_banner", "-nostdin", "-y", "-progress", "pipe:2"] + list(args)
        logger.debug(f"Running: {' '.join(cmd)}")
        timeout = self.timeout if timeout is None else timeout
        tail = deque(maxlen=self.log_tail_lines if log_tail_lines is None else log_tail_lines)

        try:
            proc = subprocess.Popen(
                cmd, cwd=cwd,
                stdout=subprocess.DEVNULL, stderr=subprocess.PIPE,
                text=True, errors="replace",
            )
        except FileNotFoundError:
            raise EngineExecutionError(
                "ffmpeg not found. Install FFmpeg: https://ffmpeg.org/download.html", command=cmd
            )

        stopped = {"reason": None}
        finished = threading.Event()

        def _watch():
            deadline = time.monotonic() + timeout
            while not finished.wait(0.2):
                if cancel_event is not None and cancel_event.is_set():
                    stopped["reason"] = "cancelled"
                elif time.monotonic() > deadline:
                    stopped["reason"] = "timeout"
                else:
                    continue
                proc.kill()
                return

        watcher = threading.Thread(target=_watch, name="shortsmith-engine-watch", daemon=True)
        watcher.start()
        try:
            for raw in proc.stderr:
                line = raw.strip()
                if not line:
                    continue
                if _PROGRESS_KV_RE.match(line):
                    if line.startswith(("out_time_us=", "out_time_ms=")):
                        seconds = parse_log_time(line)
                        if seconds:
                            self._notify_progress(None, seconds)
                    continue
                tail.append(line)
                self._notify_log(line)
            proc.wait()
        finally:
            finished.set()
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            watcher.join(timeout=1.0)

        if stopped["reason"] == "cancelled":
            raise ExportCancelledError("Export cancelled")
        if stopped["reason"] == "timeout":
            raise EngineExecutionError(
                f"ffmpeg timed out after {timeout}s", command=cmd, log_tail=list(tail)
            )
        if proc.returncode != 0:
            raise EngineExecutionError(
                f"ffmpeg exited with code {proc.returncode}",
                command=cmd, log_tail=list(tail), returncode=proc.returncode,
            )
        return list(tail)


_default_session: Optional[EngineSession] = None
_default_lock = threading.Lock()


def get_default_session() -> EngineSession:
    """Process-wide session, created on first use and kept for the process lifetime."""
    global _default_session
    with _default_lock:
        if _default_session is None:
            _default_session = EngineSession()
        return _default_session
