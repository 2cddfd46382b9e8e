"""AudioPruner - keep a single audio track in video files without re-encoding."""

__version__ = "0.1.0"
