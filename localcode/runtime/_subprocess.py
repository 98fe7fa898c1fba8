"""Async subprocess helpers for talking to the docker CLI."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


async def async_run_command(
    cmd: list[str], timeout: Optional[float] = None
) -> tuple[int, str, str]:
    """Run a command asynchronously and return (returncode, stdout, stderr).

    A missing executable is reported as returncode 127 with the OS error
    as stderr; a timeout kills the child and returns -1.
    """
    logger.debug("exec: %s", " ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return 127, "", str(exc)

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return -1, "", f"timed out after {timeout}s: {' '.join(cmd)}"

    returncode = proc.returncode if proc.returncode is not None else -1
    return (
        returncode,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )
