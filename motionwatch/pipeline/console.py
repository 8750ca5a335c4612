# motionwatch/pipeline/console.py
from __future__ import annotations
import asyncio, sys
from typing import Any, Awaitable, Callable, Dict, Optional

from motionwatch.common.logging import get_logger

log = get_logger()

Action = Callable[[], Awaitable[Any]]


class CommandConsole:
    """Fixed table of operator commands -> zero-argument async actions."""

    def __init__(self, commands: Optional[Dict[str, Action]] = None):
        self._commands: Dict[str, Action] = dict(commands or {})

    def register(self, name: str, action: Action) -> None:
        self._commands[name.strip().lower()] = action

    @property
    def names(self):
        return sorted(self._commands)

    async def execute(self, line: str) -> bool:
        """Run the command named on the line. Unknown input is logged and ignored."""
        name = (line or "").strip().lower()
        if not name:
            return False
        action = self._commands.get(name)
        if action is None:
            log.warning(f"[console] unknown command {name!r} (known: {', '.join(self.names)})")
            return False
        log.info(f"[console] {name}")
        await action()
        return True


async def read_console_lines(on_line: Callable[[str], Awaitable[None]], stream=None) -> None:
    """Feed stdin lines to on_line until EOF."""
    stream = stream or sys.stdin
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), stream)
    while True:
        raw = await reader.readline()
        if not raw:
            log.info("[console] input closed")
            return
        await on_line(raw.decode(errors="ignore").rstrip("\r\n"))
