"""Remux orchestration and file-mutation engine."""

from audiopruner.core.backup import BackupManager
from audiopruner.core.locks import PathLockRegistry
from audiopruner.core.orchestrator import RemuxOrchestrator
from audiopruner.core.planner import RemuxPlanner
from audiopruner.core.probe import ProbeClient
from audiopruner.core.runner import ProcessRunner

__all__ = [
    "BackupManager",
    "PathLockRegistry",
    "ProbeClient",
    "ProcessRunner",
    "RemuxOrchestrator",
    "RemuxPlanner",
]
