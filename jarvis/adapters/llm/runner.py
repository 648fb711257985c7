"""Subprocess helper for CLI-backed gateways."""

import asyncio
from typing import List, Tuple


async def run_cancellable(args: List[str], timeout: float) -> Tuple[asyncio.subprocess.Process, bytes, bytes]:
    """Run a command, killing the child on timeout or cancellation.

    Raises asyncio.TimeoutError after ``timeout`` seconds.
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
        raise
    return proc, stdout, stderr
