"""Data models."""

from audiopruner.models.remux import RemuxOutcome, RemuxPlan, RemuxRequest
from audiopruner.models.stream import AudioStreamDescriptor

__all__ = ["AudioStreamDescriptor", "RemuxOutcome", "RemuxPlan", "RemuxRequest"]
