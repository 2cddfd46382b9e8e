"""Exception hierarchy for AudioPruner.

Every failure the orchestrator can surface derives from ``AudioPrunerError``
and carries a short ``title`` plus the HTTP status the API renders it with.
"""

from pathlib import Path
from typing import Optional


class AudioPrunerError(Exception):
    """Base class for all AudioPruner failures."""

    title = "AudioPruner error"
    http_status = 500


class ToolNotFound(AudioPrunerError):
    """The ffmpeg/ffprobe executable could not be located."""

    title = "Media tool not found"


class LaunchFailed(AudioPrunerError):
    """The external process could not be started."""

    title = "Failed to launch media tool"


class ToolExecutionFailed(AudioPrunerError):
    """The external process exited with an error or produced no output."""

    title = "Media tool failed"

    def __init__(self, message: str, diagnostic_text: str = "", exit_code: Optional[int] = None):
        super().__init__(message)
        self.diagnostic_text = diagnostic_text
        self.exit_code = exit_code


class ToolTimeout(ToolExecutionFailed):
    """The external process exceeded its deadline and was killed."""

    title = "Media tool timed out"


class MalformedOutput(AudioPrunerError):
    """The probe output could not be parsed."""

    title = "Malformed probe output"


class AudioIndexNotFound(AudioPrunerError):
    """The requested tool-native audio index is not present in the file."""

    title = "Audio stream not found"
    http_status = 400

    def __init__(self, index: int, available: Optional[list[int]] = None):
        super().__init__(f"ffmpeg audio index {index} not found in file.")
        self.index = index
        self.available = available or []


class BackupAlreadyExists(AudioPrunerError):
    """The backup target already exists and will not be overwritten."""

    title = "Backup already exists"
    http_status = 409

    def __init__(self, path: Path):
        super().__init__(f"Backup file already exists: {path}")
        self.path = path


class NotFound(AudioPrunerError):
    """A required file or library item is missing."""

    title = "Not found"
    http_status = 404

    def __init__(self, which: str, path: Optional[str | Path] = None):
        message = f"{which.capitalize()} not found"
        if path is not None:
            message = f"{message}: {path}"
        super().__init__(message)
        self.which = which
        self.path = path


class InvalidInput(AudioPrunerError):
    """A request value failed validation."""

    title = "Invalid input"
    http_status = 400

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
