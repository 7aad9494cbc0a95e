"""Async subprocess helper used by the version-control integration.

Example:
    >>> stdout, stderr, code = await run_command("git", "status", cwd="/repo", check=False)
"""

import asyncio
import subprocess
from pathlib import Path


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
) -> tuple[str, str, int]:
    """Run a command without a shell and capture its output.

    Args:
        *args: Executable followed by its arguments
        cwd: Working directory, defaults to the current directory
        check: Raise CalledProcessError on a non-zero exit code
        timeout: Seconds to wait before killing the process

    Returns:
        Tuple of (stdout, stderr, return_code), decoded as UTF-8

    Raises:
        subprocess.CalledProcessError: If check=True and the command fails
        TimeoutError: If the timeout is exceeded
        FileNotFoundError: If the executable does not exist
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        raise

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(process.returncode, args, stdout, stderr)

    return stdout, stderr, process.returncode or 0
