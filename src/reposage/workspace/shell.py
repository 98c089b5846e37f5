import asyncio
import contextlib
import os
import signal
import time
from logging import Logger
from pathlib import Path

from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, Field

from reposage.clients.errors.workspace import ToolExecutionFailedError, ToolExecutionTimeoutError

DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
DEFAULT_TIMEOUT_SECONDS = 60.0

TERMINATE_GRACE_SECONDS = 3.0

logger: Logger = get_logger(__name__)


class ToolInvocationResult(BaseModel):
    """The captured result of a shell command."""

    command: str = Field(description="The command that was run.")
    stdout: str = Field(default="", description="The captured standard output.")
    stderr: str = Field(default="", description="The captured standard error.")
    exit_status: int | None = Field(default=None, description="The exit status, or None if the process was killed.")
    timed_out: bool = Field(default=False, description="Whether the command exceeded its timeout.")
    stdout_truncated: bool = Field(default=False, description="Whether stdout exceeded the capture limit.")
    stderr_truncated: bool = Field(default=False, description="Whether stderr exceeded the capture limit.")
    duration_ms: int = Field(default=0, description="The wall-clock duration of the command in milliseconds.")

    @property
    def output(self) -> str:
        """Standard output followed by standard error."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.exit_status == 0

    def raise_for_status(self, timeout: float) -> None:
        """Raises:
        ToolExecutionTimeoutError: If the command timed out.
        ToolExecutionFailedError: If the command exited with a non-zero status.
        """

        if self.timed_out:
            raise ToolExecutionTimeoutError(command=self.command, timeout=timeout, output=self.output)

        if self.exit_status != 0:
            raise ToolExecutionFailedError(command=self.command, exit_status=self.exit_status or -1, output=self.output)


def _decode(output: bytes, max_output_bytes: int) -> tuple[str, bool]:
    truncated: bool = len(output) > max_output_bytes
    return output[:max_output_bytes].decode("utf-8", errors="replace"), truncated


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Terminate the process group, escalating to SIGKILL if it does not exit."""

    if os.name == "nt":
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        return

    with contextlib.suppress(ProcessLookupError):
        os.killpg(process.pid, signal.SIGTERM)

    try:
        _ = await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            os.killpg(process.pid, signal.SIGKILL)


async def run_shell(
    command: str,
    cwd: Path | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    env: dict[str, str] | None = None,
) -> ToolInvocationResult:
    """Run `command` through the shell, capturing its output. Timeouts are reported on the result, not raised."""

    logger.info(f"Running `{command}` in {cwd} with a timeout of {timeout}s")

    started: float = time.monotonic()

    process: asyncio.subprocess.Process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd) if cwd else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env={**os.environ, **env} if env else None,
        start_new_session=os.name != "nt",
    )

    timed_out: bool = False

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        timed_out = True

        logger.warning(f"`{command}` timed out after {timeout}s, terminating")

        await _terminate(process)

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            stdout_bytes, stderr_bytes = b"", b""

    stdout, stdout_truncated = _decode(stdout_bytes, max_output_bytes)
    stderr, stderr_truncated = _decode(stderr_bytes, max_output_bytes)

    duration_ms: int = int((time.monotonic() - started) * 1000)

    logger.info(f"`{command}` finished with exit status {process.returncode} in {duration_ms}ms")

    return ToolInvocationResult(
        command=command,
        stdout=stdout,
        stderr=stderr,
        exit_status=None if timed_out else process.returncode,
        timed_out=timed_out,
        stdout_truncated=stdout_truncated,
        stderr_truncated=stderr_truncated,
        duration_ms=duration_ms,
    )
