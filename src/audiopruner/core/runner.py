"""Launching ffmpeg/ffprobe and capturing their diagnostics.

Processes are started with an argument vector (never through a shell) in
one of two modes:

* batch: stdout and stderr are collected until the process exits
* streaming: stderr is relayed line by line while the process runs,
  followed by a single :class:`ProcessExit` marker

The streaming mode is a pull-based async generator, so output is only read
from the pipe when the consumer asks for the next line.
"""

import asyncio
import codecs
import re
from collections import deque
from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator, Optional, Sequence, Union

from audiopruner.errors import LaunchFailed, ToolTimeout
from audiopruner.models.remux import ProcessExit, ProcessResult
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 4096

# ffmpeg redraws its progress line with carriage returns
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def remove_partial_output(path: Optional[Path]) -> None:
    """Delete a partially written output file, logging any failure."""
    if path is None:
        return
    try:
        if path.exists():
            path.unlink()
            logger.info("Removed partial output", file=str(path))
    except OSError as e:
        logger.warning("Failed to remove partial output", file=str(path), error=str(e))


class ProcessRunner:
    """Run external media tools."""

    def __init__(self, tail_lines: int = 20):
        """Initialize runner.

        Args:
            tail_lines: Number of trailing diagnostic lines kept for error
                reporting in streaming mode
        """
        self.tail_lines = tail_lines

    async def _launch(
        self, exe: Path, args: Sequence[str], stdout: int
    ) -> asyncio.subprocess.Process:
        logger.debug("Launching process", executable=str(exe), args=list(args))
        try:
            return await asyncio.create_subprocess_exec(
                str(exe),
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to launch process", executable=str(exe), error=str(e))
            raise LaunchFailed(f"Failed to start {Path(exe).name}: {e}") from e

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        logger.warning("Killed unfinished process", pid=proc.pid)

    async def run_collecting(
        self,
        exe: Path,
        args: Sequence[str],
        timeout: Optional[float] = None,
        expected_output: Optional[Path] = None,
    ) -> ProcessResult:
        """Run a process to completion and collect its output.

        Args:
            exe: Executable path
            args: Arguments (not including the executable)
            timeout: Seconds before the process is killed, None for no limit
            expected_output: File the process should produce; removed if the
                run fails

        Returns:
            ProcessResult with exit code and decoded output

        Raises:
            LaunchFailed: If the process cannot start
            ToolTimeout: If the timeout elapses
        """
        proc = await self._launch(exe, args, asyncio.subprocess.PIPE)
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError as e:
            raise ToolTimeout(
                f"{Path(exe).name} timed out after {timeout} seconds",
                diagnostic_text="timeout",
            ) from e
        finally:
            if proc.returncode is None:
                await self._terminate(proc)
                remove_partial_output(expected_output)

        result = ProcessResult(
            exit_code=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

        if expected_output is not None and (
            result.exit_code != 0 or not expected_output.exists()
        ):
            remove_partial_output(expected_output)

        logger.debug("Process finished", executable=str(exe), exit_code=result.exit_code)
        return result

    async def run_streaming(
        self,
        exe: Path,
        args: Sequence[str],
        timeout: Optional[float] = None,
        expected_output: Optional[Path] = None,
    ) -> AsyncIterator[Union[str, ProcessExit]]:
        """Run a process, yielding each stderr line as it arrives.

        Yields diagnostic lines (``str``) followed by exactly one
        :class:`ProcessExit`. Closing the generator early kills the process
        and removes the partial output.

        Raises:
            LaunchFailed: If the process cannot start
            ToolTimeout: If the timeout elapses
        """
        proc = await self._launch(exe, args, asyncio.subprocess.DEVNULL)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        tail: deque[str] = deque(maxlen=self.tail_lines)

        try:
            try:
                async with aclosing(self._read_lines(proc.stderr, deadline)) as lines:
                    async for line in lines:
                        tail.append(line)
                        yield line
                exit_code = await self._until(proc.wait(), deadline)
            except asyncio.TimeoutError as e:
                raise ToolTimeout(
                    f"{Path(exe).name} timed out after {timeout} seconds",
                    diagnostic_text="\n".join(tail),
                ) from e

            outcome = ProcessExit(
                exit_code=exit_code,
                output_present=expected_output is None or expected_output.exists(),
                tail="\n".join(tail),
            )
            if expected_output is not None and not outcome.succeeded:
                remove_partial_output(expected_output)

            logger.debug("Process finished", executable=str(exe), exit_code=exit_code)
            yield outcome
        finally:
            if proc.returncode is None:
                await self._terminate(proc)
                remove_partial_output(expected_output)

    async def _until(self, awaitable, deadline: Optional[float]):
        if deadline is None:
            return await awaitable
        remaining = deadline - asyncio.get_running_loop().time()
        return await asyncio.wait_for(awaitable, max(remaining, 0))

    async def _read_lines(
        self, stream: asyncio.StreamReader, deadline: Optional[float]
    ) -> AsyncIterator[str]:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        while True:
            chunk = await self._until(stream.read(CHUNK_SIZE), deadline)
            if not chunk:
                break
            buffer += decoder.decode(chunk)
            *lines, buffer = _LINE_BREAK.split(buffer)
            for line in lines:
                if line.strip():
                    yield line
        buffer += decoder.decode(b"", final=True)
        if buffer.strip():
            yield buffer
