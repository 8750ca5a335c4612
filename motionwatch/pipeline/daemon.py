# motionwatch/pipeline/daemon.py
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from motionwatch.common.logging import get_logger
from motionwatch.pipeline.decoder import DaemonSignal, classify_stderr

log = get_logger()


@dataclass
class DaemonExit:
    returncode: Optional[int]
    fatal: bool = False
    restarts: int = 0


class MotionDaemon:
    """
    Supervises the motion daemon:
      <command...>   (e.g. motion -c ./motion.conf)
    stdout lines go to on_line; stderr lines are classified, a permission error
    is fatal and stops the daemon.
    """

    def __init__(
        self,
        command: List[str],
        on_line: Callable[[str], Awaitable[None]],
        restart_on_exit: bool = False,
        max_restarts: int = 3,
        restart_delay_sec: float = 2.0,
    ):
        self.command = list(command)
        self.on_line = on_line
        self.restart_on_exit = restart_on_exit
        self.max_restarts = max_restarts
        self.restart_delay_sec = restart_delay_sec
        self.ready = False
        self.fatal = False
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    async def _pump_stdout(self, stream: asyncio.StreamReader):
        while True:
            raw = await stream.readline()
            if not raw:
                return
            await self.on_line(raw.decode("utf-8", errors="replace"))

    async def _pump_stderr(self, stream: asyncio.StreamReader):
        while True:
            raw = await stream.readline()
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip()
            signal = classify_stderr(line)
            if signal is DaemonSignal.READY:
                self.ready = True
                log.info(f"[daemon] ready: {line}")
            elif signal is DaemonSignal.PERMISSION_DENIED:
                self.fatal = True
                log.error(f"[daemon] fatal: {line}")
                if self.running:
                    # keep draining; run_once() returns once the process is gone
                    try:
                        self._proc.terminate()
                    except ProcessLookupError:
                        pass
            else:
                log.debug(f"[daemon] {line}")

    async def run_once(self) -> Optional[int]:
        log.info(f"[daemon] starting {' '.join(self.command)}")
        self.ready = False
        self._proc = await asyncio.create_subprocess_exec(
            *self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        await asyncio.gather(
            self._pump_stdout(self._proc.stdout),
            self._pump_stderr(self._proc.stderr),
        )
        code = await self._proc.wait()
        log.info(f"[daemon] exited with code {code}")
        return code

    async def supervise(self) -> DaemonExit:
        """Run the daemon until it exits for good (or stop() is called)."""
        restarts = 0
        while True:
            try:
                code = await self.run_once()
            except OSError as e:
                log.error(f"[daemon] failed to start {self.command[0]}: {e}")
                return DaemonExit(returncode=None, fatal=True, restarts=restarts)

            if self.fatal or self._stopping:
                return DaemonExit(returncode=code, fatal=self.fatal, restarts=restarts)
            if not self.restart_on_exit or restarts >= self.max_restarts:
                return DaemonExit(returncode=code, restarts=restarts)

            restarts += 1
            log.warning(f"[daemon] restarting ({restarts}/{self.max_restarts}) in {self.restart_delay_sec}s")
            await asyncio.sleep(self.restart_delay_sec)
            if self._stopping:
                return DaemonExit(returncode=code, restarts=restarts)

    async def terminate(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        log.info("[daemon] terminating")
        try:
            self._proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(self._proc.wait(), timeout)
        except asyncio.TimeoutError:
            log.warning("[daemon] did not stop in time; killing")
            self._proc.kill()
            await self._proc.wait()

    async def stop(self) -> None:
        self._stopping = True
        await self.terminate()
