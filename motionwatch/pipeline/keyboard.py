# motionwatch/pipeline/keyboard.py
from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional

from motionwatch.common.logging import get_logger

log = get_logger()


def resolve_key_code(name: str) -> int:
    """KEY_R -> 19. Plain integers are accepted as-is."""
    if name.strip().isdigit():
        return int(name)
    from evdev import ecodes
    try:
        return int(ecodes.ecodes[name.strip().upper()])
    except KeyError:
        raise ValueError(f"unknown key name {name!r}") from None


class KeyboardReader:
    """
    Hardware keyboard via evdev. Every key-down is reported as a key code; the
    device is grabbed so key presses do not leak to the console.
    """

    def __init__(self, device_path: str, grab: bool = True):
        self.device_path = device_path
        self.grab = grab
        self._device: Optional[Any] = None

    def open(self):
        from evdev import InputDevice
        self._device = InputDevice(self.device_path)
        if self.grab:
            self._device.grab()
        log.info(f"[keyboard] opened {self.device_path} name={getattr(self._device, 'name', '?')}")
        return self

    async def run(self, on_key: Callable[[int], Awaitable[None]]) -> None:
        from evdev import ecodes
        assert self._device is not None, "Call open() first"
        async for ev in self._device.async_read_loop():
            if ev.type == ecodes.EV_KEY and ev.value == 1:
                await on_key(ev.code)

    def release(self) -> None:
        """Ungrab and close. Must happen before the process exits or the device stays grabbed."""
        if self._device is None:
            return
        device, self._device = self._device, None
        try:
            if self.grab:
                device.ungrab()
        except OSError as e:
            log.warning(f"[keyboard] ungrab failed: {e}")
        device.close()
        log.info(f"[keyboard] released {self.device_path}")
