# motionwatch/pipeline/alert.py
from __future__ import annotations
import asyncio
from typing import List, Optional

from motionwatch.common.logging import get_logger

log = get_logger()


class AlertDispatcher:
    """Runs the alert command (no arguments). Failures are logged, never raised."""

    def __init__(self, command: Optional[List[str]] = None):
        self.command = list(command or [])

    async def fire(self) -> bool:
        if not self.command:
            log.warning("[alert] ALERT (no alert command configured)")
            return False

        log.info(f"[alert] running {' '.join(self.command)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            out, err = await proc.communicate()
        except OSError as e:
            log.error(f"[alert] failed to run alert command: {e}")
            return False

        for line in (out or b"").decode(errors="ignore").splitlines():
            log.info(f"[alert] stdout: {line}")
        for line in (err or b"").decode(errors="ignore").splitlines():
            log.info(f"[alert] stderr: {line}")
        if proc.returncode != 0:
            log.error(f"[alert] alert command exited {proc.returncode}")
            return False
        return True
