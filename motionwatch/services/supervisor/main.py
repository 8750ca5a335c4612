# motionwatch/services/supervisor/main.py
from __future__ import annotations
import asyncio, os, signal, sys
from typing import Optional

from motionwatch.common.bus import EventBus
from motionwatch.common.config import Settings, load_settings
from motionwatch.common.logging import get_logger, set_level
from motionwatch.pipeline.alert import AlertDispatcher
from motionwatch.pipeline.comparator import SceneComparator
from motionwatch.pipeline.console import read_console_lines
from motionwatch.pipeline.coordinator import PipelineCoordinator
from motionwatch.pipeline.daemon import MotionDaemon
from motionwatch.pipeline.keyboard import KeyboardReader, resolve_key_code
from motionwatch.pipeline.snapshot import SnapshotTrigger

log = get_logger()


def build_coordinator(settings: Settings, bus: Optional[EventBus] = None,
                      snapshot: Optional[SnapshotTrigger] = None) -> PipelineCoordinator:
    setref_key = None
    if settings.keyboard_device:
        setref_key = resolve_key_code(settings.keyboard_setref_key)
    return PipelineCoordinator(
        comparator=SceneComparator(settings.diff_command),
        alert=AlertDispatcher(settings.alert_command),
        snapshot=snapshot,
        scene_fuzz=settings.scene_fuzz,
        reference_fuzz=settings.reference_fuzz,
        max_groups=settings.max_groups,
        setref_key=setref_key,
        bus=bus,
    )


_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _handler(signum: int):
        log.info(f"Received signal {signum}; shutting down")
        stop_event.set()

    for sig in _SIGNALS:
        loop.add_signal_handler(sig, _handler, sig)


def _remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in _SIGNALS:
        loop.remove_signal_handler(sig)


async def _stop_keyboard(task: Optional[asyncio.Task], keyboard: KeyboardReader) -> None:
    # the reader must be gone before the device is closed under it
    if task is not None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
    keyboard.release()


async def main(config_path: Optional[str] = None) -> int:
    settings = load_settings(config_path)
    set_level(log, settings.log_level)
    log.info("motionwatch starting…")

    bus = None
    if settings.redis_url:
        bus = EventBus(settings.redis_url, stream=settings.telemetry_stream)
        try:
            await bus.connect()
        except Exception as e:
            log.warning(f"Telemetry disabled: {e}")
            bus = None

    snapshot = SnapshotTrigger(settings.snapshot_url, timeout_sec=settings.snapshot_timeout_sec)
    coordinator = build_coordinator(settings, bus=bus, snapshot=snapshot)

    daemon = MotionDaemon(
        settings.daemon_command,
        on_line=coordinator.submit_line,
        restart_on_exit=settings.restart_on_exit,
        max_restarts=settings.max_restarts,
        restart_delay_sec=settings.restart_delay_sec,
    )

    keyboard = None
    if settings.keyboard_device:
        try:
            keyboard = KeyboardReader(settings.keyboard_device, grab=settings.keyboard_grab).open()
        except OSError as e:
            log.error(f"[keyboard] cannot open {settings.keyboard_device}: {e}")
            keyboard = None

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    workers = [asyncio.create_task(coordinator.run(), name="pipeline")]
    if settings.console_enabled and sys.stdin is not None and sys.stdin.isatty():
        workers.append(asyncio.create_task(read_console_lines(coordinator.submit_command), name="console"))
    keyboard_task = None
    if keyboard is not None:
        keyboard_task = asyncio.create_task(keyboard.run(coordinator.submit_key), name="keyboard")

    daemon_task = asyncio.create_task(daemon.supervise(), name="daemon")
    stop_task = asyncio.create_task(stop_event.wait(), name="stop")
    await asyncio.wait({daemon_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

    exit_code = 0
    if daemon_task.done():
        result = daemon_task.result()
        exit_code = 1 if result.fatal else (result.returncode or 0)
        log.info(f"Daemon gone (code={result.returncode} fatal={result.fatal}); shutting down")

    # release the input device first, a grabbed keyboard can hang the exit
    if keyboard is not None:
        await _stop_keyboard(keyboard_task, keyboard)
    await daemon.stop()
    if not daemon_task.done():
        await daemon_task

    # let queued events and in-flight comparisons finish
    try:
        await asyncio.wait_for(coordinator.queue.join(), settings.shutdown_grace_sec)
        await asyncio.wait_for(coordinator.wait_idle(), settings.shutdown_grace_sec)
    except asyncio.TimeoutError:
        log.warning("Pending comparisons did not finish in time; abandoning them")

    for t in workers + [stop_task]:
        t.cancel()
    await asyncio.gather(*workers, stop_task, return_exceptions=True)
    _remove_signal_handlers()

    await snapshot.close()
    if bus is not None:
        await bus.close()
    log.info(f"motionwatch stopped (exit={exit_code})")
    return exit_code


def run() -> None:
    sys.exit(asyncio.run(main(os.getenv("MOTIONWATCH_CONFIG"))))


if __name__ == "__main__":
    run()
