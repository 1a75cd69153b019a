"""
Shell command execution for claimed jobs.

Any way a command can fail (non-zero exit, spawn error, timeout) becomes a
failed ``ExecutionResult``; nothing here raises into the worker loop.
"""

import asyncio
import logging
import os
import signal
import time

from cmdqueue.types.job import ExecutionResult

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n[output truncated]"


def _decode_output(data: bytes, limit: int | None) -> str:
    if limit is not None and len(data) > limit:
        return data[:limit].decode("utf-8", errors="replace") + TRUNCATION_MARKER
    return data.decode("utf-8", errors="replace")


async def run_command(
    command: str,
    timeout: float | None = None,
    output_limit: int | None = None,
) -> ExecutionResult:
    """
    Run a shell command and capture its combined stdout and stderr.

    Args:
        command: Command line passed to the system shell.
        timeout: Seconds before the process is killed. None waits forever.
        output_limit: Maximum bytes of output kept. None keeps everything.

    Returns:
        ExecutionResult with ``success`` set for exit code 0 only.
    """
    start_time = time.monotonic()

    def elapsed_ms() -> float:
        return (time.monotonic() - start_time) * 1000

    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True,
        )
    except OSError as e:
        logger.warning("Failed to start command", extra={"error": str(e)})
        return ExecutionResult(
            success=False,
            output=str(e),
            error=f"Failed to start command: {e}",
            duration_ms=elapsed_ms(),
        )

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _terminate(process)
        message = f"Command timed out after {timeout}s"
        logger.warning(message, extra={"pid": process.pid})
        return ExecutionResult(
            success=False,
            output=message,
            error=message,
            duration_ms=elapsed_ms(),
        )
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    exit_code = process.returncode
    success = exit_code == 0
    return ExecutionResult(
        success=success,
        output=_decode_output(stdout or b"", output_limit),
        exit_code=exit_code,
        error=None if success else f"Command exited with code {exit_code}",
        duration_ms=elapsed_ms(),
    )


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """
    Kill the command's whole process group and reap the shell.

    The shell runs as a session leader, so its pid is also the group id and
    background children started by the command die with it.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    await process.wait()
