"""Audio stream data models."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AudioStreamDescriptor:
    """An audio stream as reported by ffprobe.

    Two descriptors are equal when they name the same tool-native stream,
    regardless of their tags.
    """

    stream_index: int  # ffprobe stream index, not the audio-only position
    language: str = field(default="", compare=False)  # e.g. "eng", empty if untagged
    title: str = field(default="", compare=False)
    codec_name: str = field(default="", compare=False)  # e.g. "aac", "ac3"
    channels: str = field(default="", compare=False)  # channel count as text, empty if unknown

    def __str__(self) -> str:
        """Human-readable representation."""
        parts = [f"#{self.stream_index}", self.language or "und", self.codec_name or "unknown"]
        if self.channels:
            parts.append(f"{self.channels}ch")
        if self.title:
            parts.append(f"({self.title})")
        return " ".join(parts)
