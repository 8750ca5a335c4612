"""
Unit tests for the external-process and operator-input adapters:
alert command, snapshot trigger, command console, telemetry bus.
"""
import os
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from motionwatch.common.bus import EventBus
from motionwatch.common.schemas import TelemetryRecord
from motionwatch.pipeline import alert as alert_module
from motionwatch.pipeline.alert import AlertDispatcher
from motionwatch.pipeline.console import CommandConsole, read_console_lines
from motionwatch.pipeline.snapshot import SnapshotTrigger


class TestAlertDispatcher:
    @pytest.mark.asyncio
    async def test_runs_command(self, make_script, tmp_path):
        marker = tmp_path / "alerted"
        script = make_script("alert.sh", f"touch {marker}\necho sent")
        dispatcher = AlertDispatcher([script])
        assert await dispatcher.fire() is True
        assert marker.exists()

    @pytest.mark.asyncio
    async def test_failing_command_is_not_raised(self, make_script):
        script = make_script("alert.sh", "echo 'smtp down' 1>&2\nexit 4")
        assert await AlertDispatcher([script]).fire() is False

    @pytest.mark.asyncio
    async def test_missing_command_is_not_raised(self, tmp_path):
        assert await AlertDispatcher([str(tmp_path / "nope.sh")]).fire() is False

    @pytest.mark.asyncio
    async def test_unconfigured(self, monkeypatch):
        log = MagicMock()
        monkeypatch.setattr(alert_module, "log", log)
        assert await AlertDispatcher().fire() is False
        assert "no alert command configured" in log.warning.call_args.args[0]


def _client(status: int, seen: list) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(status, text="Snapshot completed")
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSnapshotTrigger:
    URL = "http://127.0.0.1:8080/0/action/snapshot"

    @pytest.mark.asyncio
    async def test_requests_snapshot(self):
        seen = []
        trigger = SnapshotTrigger(self.URL, client=_client(200, seen))
        assert await trigger.trigger() is True
        assert seen == [self.URL]

    @pytest.mark.asyncio
    async def test_http_error_is_reported(self):
        trigger = SnapshotTrigger(self.URL, client=_client(500, []))
        assert await trigger.trigger() is False

    @pytest.mark.asyncio
    async def test_no_url(self):
        assert await SnapshotTrigger(None).trigger() is False


class TestCommandConsole:
    @pytest.mark.asyncio
    async def test_dispatch_is_case_insensitive(self):
        action = AsyncMock()
        console = CommandConsole({"setref": action})
        assert await console.execute("  SetRef \n") is True
        action.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_ignored(self):
        action = AsyncMock()
        console = CommandConsole({"setref": action})
        assert await console.execute("setreff") is False
        action.assert_not_awaited()

    def test_register(self):
        console = CommandConsole()
        console.register("Status", AsyncMock())
        assert console.names == ["status"]

    @pytest.mark.asyncio
    async def test_reads_lines_until_eof(self):
        r, w = os.pipe()
        os.write(w, b"setref\nstatus\r\n")
        os.close(w)
        lines = []

        async def on_line(line):
            lines.append(line)

        with os.fdopen(r, "rb", buffering=0) as stream:
            await read_console_lines(on_line, stream)
        assert lines == ["setref", "status"]


class TestEventBus:
    @pytest.mark.asyncio
    async def test_publish_appends_json_entry(self):
        bus = EventBus("redis://127.0.0.1:6379/0", stream="tele", maxlen=500)
        bus._redis = AsyncMock()
        bus._redis.xadd.return_value = "1700000000000-0"
        record = TelemetryRecord(event="reference.set", event_id=7, data={"path": "ref.jpg"})

        assert await bus.publish(record) == "1700000000000-0"
        stream, fields = bus._redis.xadd.await_args.args
        assert stream == "tele"
        assert bus._redis.xadd.await_args.kwargs == {"maxlen": 500, "approximate": True}
        assert EventBus.decode(fields) == record

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        bus = EventBus("redis://127.0.0.1:6379/0")
        redis = bus._redis = AsyncMock()
        await bus.close()
        await bus.close()
        redis.aclose.assert_awaited_once()
