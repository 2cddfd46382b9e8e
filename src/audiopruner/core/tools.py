"""Resolution of the ffmpeg and ffprobe executables."""

import os
import shutil
from pathlib import Path
from typing import Optional

from audiopruner.errors import ToolNotFound
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)


def executable_name(tool: str) -> str:
    """Platform-specific file name of a tool."""
    return f"{tool}.exe" if os.name == "nt" else tool


def resolve_ffmpeg(configured: Optional[str]) -> Path:
    """Resolve the ffmpeg executable.

    Args:
        configured: Directory containing ffmpeg, path to the executable,
            or None to search PATH

    Returns:
        Absolute path to ffmpeg

    Raises:
        ToolNotFound: If ffmpeg cannot be located
    """
    if not configured:
        found = shutil.which("ffmpeg")
        if found:
            return Path(found).absolute()
        raise ToolNotFound("ffmpeg not found in PATH and no ffmpeg_path configured")

    path = Path(configured).expanduser()

    if path.is_dir():
        candidate = path / executable_name("ffmpeg")
        if candidate.is_file():
            return candidate.absolute()

    if path.is_file():
        return path.absolute()

    raise ToolNotFound(f"ffmpeg binary not found at configured path: {configured}")


def resolve_ffprobe(configured: Optional[str]) -> Path:
    """Resolve the ffprobe executable, expected next to ffmpeg.

    When ``configured`` points straight at an executable and no ffprobe sits
    beside it, the configured executable itself is used.

    Raises:
        ToolNotFound: If ffprobe cannot be located
    """
    ffmpeg = resolve_ffmpeg(configured)
    candidate = ffmpeg.parent / executable_name("ffprobe")
    if candidate.is_file():
        return candidate

    if configured and Path(configured).expanduser().is_file():
        logger.warning(
            "ffprobe not found next to ffmpeg, using configured path",
            configured=configured,
        )
        return Path(configured).expanduser().absolute()

    raise ToolNotFound(f"ffprobe not found next to ffmpeg: {candidate}")
