"""
Shortsmith error taxonomy.

Every failure surfaced by the export pipeline is one of these types. All of
them carry the last progress value the caller saw and a diagnostic block
(key=value lines) so the UI can show what was being attempted.
"""

from typing import List, Optional


class ShortsmithError(RuntimeError):
    """Base class for all export pipeline failures."""

    def __init__(self, message: str, last_progress: int = 0, diagnostics: str = ""):
        super().__init__(message)
        self.message = message
        self.last_progress = last_progress
        self.diagnostics = diagnostics

    def __str__(self) -> str:
        if self.diagnostics:
            return f"{self.message}\n{self.diagnostics}"
        return self.message


class InvalidMediaError(ShortsmithError):
    """Source media is unreadable or reports zero/non-finite dimensions."""


class ConfigurationError(ShortsmithError):
    """Unknown style preset, platform, or an invalid configuration value."""


class FilterSyntaxError(ShortsmithError):
    """Caption text cannot be encoded safely into the filter graph."""


class EngineExecutionError(ShortsmithError):
    """The transcoding engine process failed."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        log_tail: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        last_progress: int = 0,
        diagnostics: str = "",
    ):
        super().__init__(message, last_progress=last_progress, diagnostics=diagnostics)
        self.command = list(command or [])
        self.log_tail = list(log_tail or [])
        self.returncode = returncode

    def __str__(self) -> str:
        parts = [self.message]
        if self.diagnostics:
            parts.append(self.diagnostics)
        if self.log_tail:
            parts.append("ffmpeg-log-tail:")
            parts.extend(self.log_tail[-8:])
        return "\n".join(parts)


class ResourceError(ShortsmithError):
    """Mount, unmount or temp-file IO failed."""


class ExportCancelledError(ShortsmithError):
    """The caller cancelled a running export."""
