"""Audio stream enumeration using ffprobe."""

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from audiopruner.config import ToolConfig
from audiopruner.core.runner import ProcessRunner
from audiopruner.core.tools import resolve_ffprobe
from audiopruner.errors import MalformedOutput, ToolExecutionFailed
from audiopruner.models.stream import AudioStreamDescriptor
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)

PROBE_ARGS = ["-v", "error", "-print_format", "json", "-show_streams", "-show_format"]


class _StreamTags(BaseModel):
    model_config = ConfigDict(extra="ignore")

    language: Optional[str] = None
    title: Optional[str] = None


class _ProbedStream(BaseModel):
    model_config = ConfigDict(extra="ignore")

    codec_type: Optional[str] = None
    index: Optional[int] = None
    codec_name: Optional[str] = None
    channels: Optional[int] = None
    tags: _StreamTags = Field(default_factory=_StreamTags)


def parse_audio_streams(document: str) -> list[AudioStreamDescriptor]:
    """Parse ffprobe JSON output into audio stream descriptors.

    Only streams with ``codec_type == "audio"`` are returned, in ffprobe's
    order. A document without a ``streams`` key has no streams.

    Args:
        document: ffprobe stdout

    Returns:
        List of AudioStreamDescriptor

    Raises:
        MalformedOutput: If the document cannot be parsed
    """
    try:
        data: Any = json.loads(document)
    except json.JSONDecodeError as e:
        raise MalformedOutput(f"ffprobe output is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedOutput("ffprobe output is not a JSON object")

    streams = data.get("streams", [])
    if not isinstance(streams, list):
        raise MalformedOutput("ffprobe 'streams' is not a list")

    descriptors = []
    for position, raw in enumerate(streams):
        if not isinstance(raw, dict) or raw.get("codec_type") != "audio":
            continue

        try:
            stream = _ProbedStream.model_validate(raw)
        except ValidationError as e:
            raise MalformedOutput(f"Invalid audio stream entry at position {position}: {e}") from e

        if stream.index is None:
            raise MalformedOutput(f"Audio stream at position {position} has no index")

        descriptors.append(
            AudioStreamDescriptor(
                stream_index=stream.index,
                language=stream.tags.language or "",
                title=stream.tags.title or "",
                codec_name=stream.codec_name or "",
                channels=str(stream.channels) if stream.channels is not None else "",
            )
        )

    return descriptors


class ProbeClient:
    """Enumerate the audio streams of a media file."""

    def __init__(self, tools: ToolConfig, runner: Optional[ProcessRunner] = None):
        """Initialize probe client.

        Args:
            tools: Media tool configuration
            runner: Process runner (defaults to a new ProcessRunner)
        """
        self.tools = tools
        self.runner = runner or ProcessRunner()

    async def probe(self, file_path: Path) -> list[AudioStreamDescriptor]:
        """Probe a file for audio streams.

        Args:
            file_path: Path to the media file

        Returns:
            Audio streams in ffprobe order

        Raises:
            ToolNotFound: If ffprobe cannot be located
            LaunchFailed: If ffprobe cannot start
            ToolExecutionFailed: If ffprobe exits non-zero
            MalformedOutput: If the output cannot be parsed
        """
        ffprobe = resolve_ffprobe(self.tools.ffmpeg_path)

        logger.debug("Probing audio streams", file=str(file_path), ffprobe=str(ffprobe))

        result = await self.runner.run_collecting(
            ffprobe,
            [*PROBE_ARGS, str(file_path)],
            timeout=self.tools.probe_timeout_seconds,
        )

        if result.exit_code != 0:
            logger.error(
                "ffprobe failed",
                file=str(file_path),
                returncode=result.exit_code,
                stderr=result.stderr,
            )
            raise ToolExecutionFailed(
                f"ffprobe failed: {result.diagnostic_text.strip()}",
                diagnostic_text=result.diagnostic_text,
                exit_code=result.exit_code,
            )

        try:
            streams = parse_audio_streams(result.stdout)
        except MalformedOutput as e:
            logger.error("Failed to parse ffprobe output", file=str(file_path), error=str(e))
            raise

        logger.info(
            "Audio streams probed",
            file=str(file_path),
            stream_count=len(streams),
            indices=[s.stream_index for s in streams],
            languages=[s.language for s in streams],
        )

        return streams
