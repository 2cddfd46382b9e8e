"""Shared pytest fixtures for AudioPruner tests."""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from audiopruner.config import Config, LibraryConfig, LoggingConfig, ToolConfig
from audiopruner.core.orchestrator import RemuxOrchestrator
from audiopruner.core.planner import RemuxPlanner
from audiopruner.models.remux import ProcessExit, ProcessResult

FIXED_NOW = datetime(2024, 5, 17, 12, 30, 45, tzinfo=timezone.utc)
FIXED_STAMP = "20240517123045"

# 1 video + 2 audio streams, plus a subtitle, as ffprobe reports them
PROBE_DOCUMENT = {
    "streams": [
        {"index": 0, "codec_type": "video", "codec_name": "h264", "width": 1920},
        {
            "index": 1,
            "codec_type": "audio",
            "codec_name": "aac",
            "channels": 2,
            "tags": {"language": "eng", "title": "Stereo"},
        },
        {
            "index": 2,
            "codec_type": "audio",
            "codec_name": "ac3",
            "channels": 6,
            "tags": {"language": "jpn"},
        },
        {"index": 3, "codec_type": "subtitle", "codec_name": "subrip"},
    ],
    "format": {"format_name": "matroska,webm", "nb_streams": 4},
}


class FakeMediaTool:
    """Stands in for ProcessRunner, emulating ffprobe and ffmpeg.

    ffprobe calls return ``probe_output``. ffmpeg calls write the output file
    (last argument) unless configured to fail, and track how many ffmpeg
    runs are in flight at once.
    """

    def __init__(self, probe_output: Optional[str] = None):
        self.probe_output = probe_output if probe_output is not None else json.dumps(PROBE_DOCUMENT)
        self.probe_exit_code = 0
        self.probe_stderr = ""
        self.ffmpeg_exit_code = 0
        self.ffmpeg_stderr = "frame=  100 fps=0.0 q=-1.0 size=1024kB time=00:00:04.00"
        self.ffmpeg_lines = ["Input #0, matroska,webm", "frame=  10 time=00:00:01.00", "frame=  20 time=00:00:02.00"]
        self.write_output = True
        self.delay = 0.0
        self.calls: list[tuple[str, list[str]]] = []
        self.active = 0
        self.max_active = 0
        self.stream_closed = False

    @property
    def ffmpeg_calls(self) -> list[list[str]]:
        return [args for name, args in self.calls if name.startswith("ffmpeg")]

    def _record(self, exe: Path, args) -> str:
        name = Path(exe).name
        self.calls.append((name, list(args)))
        return name

    async def run_collecting(self, exe, args, timeout=None, expected_output=None):
        name = self._record(exe, args)
        if name.startswith("ffprobe"):
            return ProcessResult(
                exit_code=self.probe_exit_code, stdout=self.probe_output, stderr=self.probe_stderr
            )

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if self.ffmpeg_exit_code == 0 and self.write_output:
                Path(args[-1]).write_bytes(b"remuxed")
            return ProcessResult(exit_code=self.ffmpeg_exit_code, stderr=self.ffmpeg_stderr)
        finally:
            self.active -= 1

    async def run_streaming(self, exe, args, timeout=None, expected_output=None):
        self._record(exe, args)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            for line in self.ffmpeg_lines:
                await asyncio.sleep(self.delay)
                yield line
            if self.ffmpeg_exit_code == 0 and self.write_output:
                Path(args[-1]).write_bytes(b"remuxed")
            yield ProcessExit(
                exit_code=self.ffmpeg_exit_code,
                output_present=Path(args[-1]).exists(),
                tail="\n".join(self.ffmpeg_lines),
            )
        finally:
            self.active -= 1
            self.stream_closed = True


@pytest.fixture
def tool_dir(tmp_path):
    """Directory holding placeholder ffmpeg/ffprobe executables."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    for name in ("ffmpeg", "ffprobe", "ffmpeg.exe", "ffprobe.exe"):
        tool = bin_dir / name
        tool.write_text("#!/bin/sh\n")
        tool.chmod(0o755)
    return bin_dir


@pytest.fixture
def media_dir(tmp_path):
    """Library directory."""
    directory = tmp_path / "media"
    directory.mkdir()
    return directory


@pytest.fixture
def media_file(media_dir):
    """A synthetic MKV source file."""
    path = media_dir / "Movie.mkv"
    path.write_bytes(b"original-content")
    return path


@pytest.fixture
def test_config(tool_dir, media_dir):
    """Configuration pointing at the placeholder tools and test library."""
    return Config(
        tools=ToolConfig(ffmpeg_path=str(tool_dir)),
        library=LibraryConfig(roots=[str(media_dir)]),
        logging=LoggingConfig(format="text", level="debug", output=None),
    )


@pytest.fixture
def fake_tool():
    """Fake media tool runner."""
    return FakeMediaTool()


@pytest.fixture
def orchestrator(test_config, fake_tool):
    """Orchestrator wired to the fake media tool and a fixed clock."""
    return RemuxOrchestrator(
        test_config,
        runner=fake_tool,
        planner=RemuxPlanner(test_config.remux.attachment_extensions, clock=lambda: FIXED_NOW),
    )
