"""Pydantic models for API requests and responses."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from audiopruner.core.catalog import LibraryItem
from audiopruner.models.stream import AudioStreamDescriptor


class VideoInfo(BaseModel):
    """Identity of a library video."""

    id: str
    name: str
    path: str

    @classmethod
    def from_item(cls, item: LibraryItem) -> "VideoInfo":
        return cls(id=item.item_id, name=item.name, path=str(item.path))


class AudioStreamResponse(BaseModel):
    """An audio stream of a video."""

    ffmpeg_index: int = Field(..., description="ffprobe stream index to pass back when pruning")
    language: str
    title: str
    codec: str
    channels: str

    @classmethod
    def from_descriptor(cls, stream: AudioStreamDescriptor) -> "AudioStreamResponse":
        return cls(
            ffmpeg_index=stream.stream_index,
            language=stream.language,
            title=stream.title,
            codec=stream.codec_name,
            channels=stream.channels,
        )


class ItemsResponse(BaseModel):
    """Library listing."""

    count: int
    items: List[VideoInfo]


class TracksResponse(BaseModel):
    """Audio streams of one video."""

    video: VideoInfo
    audio: List[AudioStreamResponse]


class PruneRequest(BaseModel):
    """Request to keep a single audio stream.

    Omitted policy flags fall back to the configured defaults.
    """

    item_id: str = Field(..., min_length=1)
    audio_stream_index: int = Field(..., ge=0, description="ffprobe index of the stream to keep")
    keep_subtitles: Optional[bool] = None
    keep_chapters: Optional[bool] = None
    create_backup: Optional[bool] = None


class PruneResponse(BaseModel):
    """Result of a successful prune."""

    status: Literal["ok"] = "ok"
    new_file: str
    backup_file: Optional[str] = None
    warning: Optional[str] = None


class RestoreRequest(BaseModel):
    """Request to put a backup back in place."""

    original_path: str = Field(..., min_length=1)
    backup_path: str = Field(..., min_length=1)


class RestoreResponse(BaseModel):
    """Result of a successful restore."""

    status: Literal["ok"] = "ok"
    message: str


class ErrorResponse(BaseModel):
    """Structured failure diagnostic."""

    status: Literal["error"] = "error"
    title: str
    detail: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded"]
    version: str
    uptime_seconds: float
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    library_items: int
