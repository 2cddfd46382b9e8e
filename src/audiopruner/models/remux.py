"""Remux request, plan, process and event models."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


@dataclass
class RemuxRequest:
    """A request to keep a single audio stream of a video file."""

    source_path: Path
    audio_stream_index: int  # ffprobe stream index
    keep_subtitles: bool = True
    keep_chapters: bool = True
    create_backup: bool = True


@dataclass
class RemuxPlan:
    """ffmpeg arguments and target paths for one remux."""

    arguments: list[str]
    output_path: Path
    backup_path: Optional[Path] = None


@dataclass
class ProcessResult:
    """Outcome of a fully collected process run."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def diagnostic_text(self) -> str:
        """Text describing what the tool reported (stderr, else stdout)."""
        return self.stderr if self.stderr.strip() else self.stdout


@dataclass
class ProcessExit:
    """Terminal marker of a streamed process run."""

    exit_code: int
    output_present: bool = True
    tail: str = ""  # last diagnostic lines, for error messages

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.output_present


@dataclass
class RemuxOutcome:
    """Result of a successful remux."""

    output_path: Path
    backup_path: Optional[Path] = None
    backup_error: Optional[str] = None  # set when the advisory backup failed


@dataclass
class ProgressEvent:
    """One diagnostic line relayed from ffmpeg."""

    line: str

    def to_sse(self) -> str:
        # A data field cannot span lines
        line = self.line.replace("\r", "").replace("\n", "\\n")
        return f"data: {line}\n\n"


@dataclass
class DoneEvent:
    """Terminal success event carrying the new file."""

    output_path: Path
    backup_path: Optional[Path] = None

    def to_sse(self) -> str:
        payload = {
            "new_file": str(self.output_path),
            "backup_file": str(self.backup_path) if self.backup_path else None,
        }
        return f"event: done\ndata: {json.dumps(payload)}\n\n"


@dataclass
class ErrorEvent:
    """Terminal failure event."""

    message: str

    def to_sse(self) -> str:
        return f"event: error\ndata: {json.dumps({'message': self.message})}\n\n"


RemuxEvent = Union[ProgressEvent, DoneEvent, ErrorEvent]
