"""ffmpeg argument construction for single-audio remuxes."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from audiopruner.models.remux import RemuxPlan

OUTPUT_MARKER = "audiopruner-out"
BACKUP_MARKER = "bak"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class RemuxPlanner:
    """Build the ffmpeg invocation that keeps one audio stream.

    Output and backup names are siblings of the source, stamped with the
    current UTC time at second resolution::

        Movie.mkv -> Movie.audiopruner-out-20240101120000.mkv
                     Movie.bak-20240101120000.mkv

    Two plans for the same file within the same second produce the same
    names.
    """

    def __init__(
        self,
        attachment_extensions: Iterable[str] = (".mkv",),
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize planner.

        Args:
            attachment_extensions: Extensions of containers whose attachment
                streams (fonts, cover art) should be carried over
            clock: Source of the current time (defaults to UTC now)
        """
        self.attachment_extensions = {ext.lower() for ext in attachment_extensions}
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def supports_attachments(self, path: Path) -> bool:
        return path.suffix.lower() in self.attachment_extensions

    def output_paths(self, source_path: Path, now: Optional[datetime] = None) -> tuple[Path, Path]:
        """Compute (output, backup) paths for a source file."""
        now = now or self.clock()
        stamp = now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
        directory, stem, ext = source_path.parent, source_path.stem, source_path.suffix
        return (
            directory / f"{stem}.{OUTPUT_MARKER}-{stamp}{ext}",
            directory / f"{stem}.{BACKUP_MARKER}-{stamp}{ext}",
        )

    def plan(
        self,
        source_path: Path,
        audio_stream_index: int,
        keep_subtitles: bool,
        keep_chapters: bool,
        create_backup: bool = True,
        now: Optional[datetime] = None,
    ) -> RemuxPlan:
        """Build a remux plan.

        Args:
            source_path: File to remux
            audio_stream_index: ffprobe index of the audio stream to keep
            keep_subtitles: Map all subtitle streams (if any)
            keep_chapters: Keep chapter metadata, strip it otherwise
            create_backup: Whether a backup path is needed
            now: Timestamp for the generated names (defaults to the clock)

        Returns:
            RemuxPlan with the argument list (excluding the executable)
        """
        output_path, backup_path = self.output_paths(source_path, now)

        args = [
            "-y",
            "-i", str(source_path),
            "-map", "0:v",
            "-map", f"0:{audio_stream_index}",
        ]

        if keep_subtitles:
            args.extend(["-map", "0:s?"])  # trailing ? tolerates files without subtitles

        args.extend(["-map_chapters", "0" if keep_chapters else "-1"])

        if self.supports_attachments(source_path):
            args.extend(["-map", "0:t?"])

        args.extend([
            "-c", "copy",
            "-disposition:a", "default",
            str(output_path),
        ])

        return RemuxPlan(
            arguments=args,
            output_path=output_path,
            backup_path=backup_path if create_backup else None,
        )
