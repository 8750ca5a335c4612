"""
End-to-end run of the supervisor service against a fake daemon and diff tool.
"""
import asyncio
import json
import signal

import pytest

from motionwatch.common.config import Settings
from motionwatch.services.supervisor.main import _stop_keyboard, build_coordinator, main


def _echo(payload: dict) -> str:
    return f"echo '{json.dumps(payload)}'"


def test_build_coordinator_uses_settings():
    settings = Settings(scene_fuzz=11, reference_fuzz=22, max_groups=5, alert_command=["/bin/true"])
    coordinator = build_coordinator(settings)
    assert coordinator.scene_fuzz == 11
    assert coordinator.controller.reference_fuzz == 22
    assert coordinator.frames.max_groups == 5
    assert coordinator.controller.alert.command == ["/bin/true"]
    assert coordinator.setref_key is None


@pytest.mark.asyncio
async def test_daemon_session_end_to_end(make_script, tmp_path):
    alerted = tmp_path / "alerted"
    compared = tmp_path / "compared"
    diff = make_script("diff", f'echo "$1 $2" >> {compared}\necho 5 1>&2\nexit 1')
    alert = make_script("alert", f"touch {alerted}")
    motion = make_script("motion", "\n".join([
        _echo({"action": "event_start", "eventid": "1"}),
        _echo({"action": "picture_save", "eventid": "1", "img": "1-01.jpg"}),
        "echo '{not json'",
        _echo({"action": "event_end", "eventid": "1"}),
        _echo({"action": "event_start", "eventid": "2"}),
        _echo({"action": "picture_save", "eventid": "2", "img": "2-01.jpg"}),
        _echo({"action": "picture_save", "eventid": "2", "img": "2-02.jpg"}),
        "exit 0",
    ]))
    config = tmp_path / "config.yaml"
    config.write_text(
        f"daemon:\n  command: {motion}\n  config: null\n"
        f"diff:\n  command: \"{diff} {{before}} {{after}}\"\n"
        f"alert:\n  command: {alert}\n"
        "snapshot:\n  url: ''\n"
        "console:\n  enabled: false\n"
        "runtime:\n  shutdown_grace_sec: 5\n"
    )

    assert await main(str(config)) == 0
    # one comparison between the first frames of events 1 and 2; no reference set, so no alert
    assert compared.read_text().split() == ["1-01.jpg", "2-01.jpg"]
    assert not alerted.exists()
    # signal handlers do not outlive the service
    loop = asyncio.get_running_loop()
    assert loop.remove_signal_handler(signal.SIGINT) is False
    assert loop.remove_signal_handler(signal.SIGTERM) is False


@pytest.mark.asyncio
async def test_permission_error_exits_nonzero(make_script, tmp_path):
    motion = make_script("motion", "echo 'open /dev/video0: Permission denied' 1>&2\nexec sleep 30")
    config = tmp_path / "config.yaml"
    config.write_text(
        f"daemon:\n  command: {motion}\n  config: null\n"
        "snapshot:\n  url: ''\n"
        "console:\n  enabled: false\n"
    )
    assert await main(str(config)) == 1


class _Keyboard:
    """Stands in for KeyboardReader: reads until cancelled."""

    def __init__(self):
        self.reading = False
        self.released_while_reading = None

    async def run(self, on_key):
        self.reading = True
        try:
            while True:
                await asyncio.sleep(0.01)
        finally:
            self.reading = False

    def release(self):
        self.released_while_reading = self.reading


@pytest.mark.asyncio
async def test_keyboard_reader_stops_before_release():
    keyboard = _Keyboard()
    task = asyncio.create_task(keyboard.run(None))
    await asyncio.sleep(0.02)
    assert keyboard.reading

    await _stop_keyboard(task, keyboard)
    assert task.done()
    assert keyboard.released_while_reading is False
