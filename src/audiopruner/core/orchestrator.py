"""Remux orchestration: lock, probe, validate, run, back up, unlock."""

import asyncio
import uuid
from contextlib import aclosing
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Optional

from audiopruner.config import Config
from audiopruner.core.backup import BackupManager
from audiopruner.core.locks import PathLockRegistry
from audiopruner.core.planner import RemuxPlanner
from audiopruner.core.probe import ProbeClient
from audiopruner.core.runner import ProcessRunner
from audiopruner.core.tools import resolve_ffmpeg
from audiopruner.errors import (
    AudioIndexNotFound,
    AudioPrunerError,
    InvalidInput,
    NotFound,
    ToolExecutionFailed,
)
from audiopruner.models.remux import (
    DoneEvent,
    ErrorEvent,
    ProcessExit,
    ProgressEvent,
    RemuxEvent,
    RemuxOutcome,
    RemuxPlan,
    RemuxRequest,
)
from audiopruner.models.stream import AudioStreamDescriptor
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)


class RemuxState(str, Enum):
    """Lifecycle of a single remux operation."""

    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    PROBED = "probed"
    VALIDATED = "validated"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOCK_RELEASED = "lock_released"


class RemuxOrchestrator:
    """Run remux and restore operations with per-path serialization.

    Every mutating operation holds the path lock of its file from before the
    probe until after the backup, and releases it on every exit path.
    """

    def __init__(
        self,
        config: Config,
        runner: Optional[ProcessRunner] = None,
        locks: Optional[PathLockRegistry] = None,
        probe_client: Optional[ProbeClient] = None,
        planner: Optional[RemuxPlanner] = None,
        backups: Optional[BackupManager] = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Application configuration
            runner: Process runner shared by probe and remux
            locks: Path lock registry (one per process)
            probe_client: Audio stream prober
            planner: ffmpeg argument planner
            backups: Backup manager
        """
        self.config = config
        self.runner = runner or ProcessRunner()
        self.locks = locks or PathLockRegistry()
        self.probe_client = probe_client or ProbeClient(config.tools, self.runner)
        self.planner = planner or RemuxPlanner(config.remux.attachment_extensions)
        self.backups = backups or BackupManager()

    def _transition(self, op_id: str, state: RemuxState, **fields) -> None:
        logger.debug("Remux state", op_id=op_id, state=state.value, **fields)

    @staticmethod
    def _check_source(path: str | Path) -> Path:
        path = Path(path)
        if not path.is_absolute():
            raise InvalidInput(f"Path must be absolute: {path}")
        if not path.exists():
            raise NotFound("source", path)
        if not path.is_file():
            raise InvalidInput(f"Not a regular file: {path}")
        return path

    def _check_request(self, request: RemuxRequest) -> Path:
        index = request.audio_stream_index
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise InvalidInput(f"Invalid audio stream index: {index!r}")
        return self._check_source(request.source_path)

    async def probe(self, path: str | Path) -> list[AudioStreamDescriptor]:
        """List the audio streams of a file (read-only, not locked)."""
        return await self.probe_client.probe(self._check_source(path))

    async def _prepare(self, op_id: str, source: Path, request: RemuxRequest) -> RemuxPlan:
        streams = await self.probe_client.probe(source)
        self._transition(op_id, RemuxState.PROBED, stream_count=len(streams))

        available = [s.stream_index for s in streams]
        if request.audio_stream_index not in available:
            logger.warning(
                "Requested audio index not in file",
                op_id=op_id,
                file=str(source),
                requested=request.audio_stream_index,
                available=available,
            )
            raise AudioIndexNotFound(request.audio_stream_index, available)
        self._transition(op_id, RemuxState.VALIDATED)

        plan = self.planner.plan(
            source,
            request.audio_stream_index,
            keep_subtitles=request.keep_subtitles,
            keep_chapters=request.keep_chapters,
            create_backup=request.create_backup,
        )
        return plan

    async def _back_up(self, op_id: str, source: Path, plan: RemuxPlan) -> RemuxOutcome:
        """Create the advisory backup; failures are reported, not raised."""
        outcome = RemuxOutcome(output_path=plan.output_path)
        if plan.backup_path is None:
            return outcome

        loop = asyncio.get_running_loop()
        try:
            outcome.backup_path = await loop.run_in_executor(
                None, self.backups.backup, source, plan.backup_path
            )
        except (AudioPrunerError, OSError) as e:
            logger.warning("Backup failed", op_id=op_id, file=str(source), error=str(e))
            outcome.backup_error = str(e)
        return outcome

    async def remux(self, request: RemuxRequest) -> RemuxOutcome:
        """Keep one audio stream, writing a new file next to the source.

        Args:
            request: Remux request

        Returns:
            RemuxOutcome with the new file and backup

        Raises:
            AudioPrunerError: On validation, probe or ffmpeg failure
        """
        source = self._check_request(request)
        op_id = uuid.uuid4().hex[:12]
        self._transition(op_id, RemuxState.IDLE, file=str(source))

        try:
            async with self.locks.hold(source):
                self._transition(op_id, RemuxState.LOCK_ACQUIRED)
                try:
                    plan = await self._prepare(op_id, source, request)
                    ffmpeg = resolve_ffmpeg(self.config.tools.ffmpeg_path)

                    self._transition(op_id, RemuxState.EXECUTING)
                    logger.info(
                        "Running ffmpeg",
                        op_id=op_id,
                        file=str(source),
                        ffmpeg=str(ffmpeg),
                        command=plan.arguments,
                    )
                    result = await self.runner.run_collecting(
                        ffmpeg,
                        plan.arguments,
                        timeout=self.config.tools.remux_timeout_seconds,
                        expected_output=plan.output_path,
                    )

                    if result.exit_code != 0 or not plan.output_path.exists():
                        diagnostic = result.diagnostic_text.strip() or (
                            f"ffmpeg exited with status {result.exit_code} "
                            "without producing an output file"
                        )
                        logger.error(
                            "ffmpeg failed",
                            op_id=op_id,
                            file=str(source),
                            returncode=result.exit_code,
                            stderr=diagnostic[-2000:],
                        )
                        raise ToolExecutionFailed(
                            f"ffmpeg remux failed: {diagnostic}",
                            diagnostic_text=diagnostic,
                            exit_code=result.exit_code,
                        )

                    outcome = await self._back_up(op_id, source, plan)
                except Exception as e:
                    self._transition(op_id, RemuxState.FAILED, error=str(e))
                    raise
                self._transition(op_id, RemuxState.SUCCEEDED, output=str(outcome.output_path))
        finally:
            self._transition(op_id, RemuxState.LOCK_RELEASED)

        logger.info(
            "Remux complete",
            op_id=op_id,
            file=str(source),
            output=str(outcome.output_path),
            backup=str(outcome.backup_path) if outcome.backup_path else None,
        )
        return outcome

    async def remux_stream(self, request: RemuxRequest) -> AsyncIterator[RemuxEvent]:
        """Remux while relaying ffmpeg diagnostics.

        Yields a ProgressEvent per ffmpeg line, then exactly one DoneEvent or
        ErrorEvent. Failures never propagate to the consumer; they become the
        ErrorEvent. The path lock is released before the terminal event.
        """
        op_id = uuid.uuid4().hex[:12]
        try:
            source = self._check_request(request)
        except AudioPrunerError as e:
            logger.warning("Rejected streaming remux", op_id=op_id, error=str(e))
            yield ErrorEvent(str(e))
            return

        self._transition(op_id, RemuxState.IDLE, file=str(source))
        terminal: RemuxEvent

        async with self.locks.hold(source):
            self._transition(op_id, RemuxState.LOCK_ACQUIRED)
            try:
                plan = await self._prepare(op_id, source, request)
                ffmpeg = resolve_ffmpeg(self.config.tools.ffmpeg_path)

                self._transition(op_id, RemuxState.EXECUTING)
                logger.info(
                    "Running ffmpeg (streaming)",
                    op_id=op_id,
                    file=str(source),
                    ffmpeg=str(ffmpeg),
                    command=plan.arguments,
                )

                exit_marker: Optional[ProcessExit] = None
                output = self.runner.run_streaming(
                    ffmpeg,
                    plan.arguments,
                    timeout=self.config.tools.remux_timeout_seconds,
                    expected_output=plan.output_path,
                )
                async with aclosing(output):
                    async for item in output:
                        if isinstance(item, ProcessExit):
                            exit_marker = item
                        else:
                            yield ProgressEvent(item)

                if exit_marker is None or not exit_marker.succeeded:
                    terminal = ErrorEvent(self._stream_failure_message(exit_marker))
                    logger.error(
                        "ffmpeg failed",
                        op_id=op_id,
                        file=str(source),
                        returncode=exit_marker.exit_code if exit_marker else None,
                        stderr=exit_marker.tail if exit_marker else None,
                    )
                    self._transition(op_id, RemuxState.FAILED)
                else:
                    outcome = await self._back_up(op_id, source, plan)
                    terminal = DoneEvent(outcome.output_path, outcome.backup_path)
                    self._transition(op_id, RemuxState.SUCCEEDED, output=str(outcome.output_path))
            except AudioPrunerError as e:
                logger.error("Streaming remux failed", op_id=op_id, file=str(source), error=str(e))
                self._transition(op_id, RemuxState.FAILED, error=str(e))
                terminal = ErrorEvent(str(e))
            except Exception as e:
                logger.exception("Unexpected streaming remux failure", op_id=op_id, file=str(source))
                self._transition(op_id, RemuxState.FAILED, error=str(e))
                terminal = ErrorEvent(f"Remux failed: {e}")

        self._transition(op_id, RemuxState.LOCK_RELEASED)
        yield terminal

    @staticmethod
    def _stream_failure_message(exit_marker: Optional[ProcessExit]) -> str:
        if exit_marker is None:
            return "ffmpeg ended without an exit status"
        if exit_marker.exit_code != 0:
            message = f"ffmpeg failed (exit {exit_marker.exit_code})"
        else:
            message = "ffmpeg did not produce an output file"
        last_line = exit_marker.tail.splitlines()[-1] if exit_marker.tail else ""
        return f"{message}: {last_line}" if last_line else message

    async def restore(self, original_path: str | Path, backup_path: str | Path) -> None:
        """Put a backup back in place of the original, under the path lock.

        Raises:
            InvalidInput: If either path is not absolute
            NotFound: If the backup or original is missing
        """
        original_path, backup_path = Path(original_path), Path(backup_path)
        for path in (original_path, backup_path):
            if not path.is_absolute():
                raise InvalidInput(f"Path must be absolute: {path}")

        async with self.locks.hold(original_path):
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.backups.restore, original_path, backup_path)
