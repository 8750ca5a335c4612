# motionwatch/pipeline/coordinator.py
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Any, Coroutine, Optional, Set, Union

from motionwatch.common.bus import EventBus
from motionwatch.common.logging import get_logger
from motionwatch.common.schemas import MotionAction, MotionEvent, TelemetryRecord
from motionwatch.pipeline.aggregator import FrameAggregator
from motionwatch.pipeline.alert import AlertDispatcher
from motionwatch.pipeline.comparator import SceneComparator
from motionwatch.pipeline.console import CommandConsole
from motionwatch.pipeline.decoder import EventDecodeError, decode_line
from motionwatch.pipeline.reference import ReferenceController
from motionwatch.pipeline.snapshot import SnapshotTrigger
from motionwatch.pipeline.state import PipelineState

log = get_logger()

# ---------------- queue messages ----------------

@dataclass(frozen=True)
class DaemonLine:
    text: str

@dataclass(frozen=True)
class ConsoleLine:
    text: str

@dataclass(frozen=True)
class KeyPress:
    code: int

Message = Union[DaemonLine, ConsoleLine, KeyPress]

_LIFECYCLE = {
    MotionAction.EVENT_START: "start",
    MotionAction.EVENT_END: "end",
    MotionAction.MOTION_DETECTED: "motion",
}

# ---------------- coordinator ----------------

class PipelineCoordinator:
    """
    Owns the pipeline state and is its only writer.

    Daemon lines, console lines and key presses are queued and handled one at a
    time by run(). External tools run as tasks; they only read the frame paths
    handed to them, so several comparisons can be in flight at once.
    """

    def __init__(
        self,
        comparator: SceneComparator,
        alert: AlertDispatcher,
        snapshot: Optional[SnapshotTrigger] = None,
        scene_fuzz: int = 20,
        reference_fuzz: int = 30,
        max_groups: int = 0,
        setref_key: Optional[int] = None,
        bus: Optional[EventBus] = None,
    ):
        self.state = PipelineState(frames=FrameAggregator(max_groups=max_groups))
        self.comparator = comparator
        self.scene_fuzz = scene_fuzz
        self.setref_key = setref_key
        self.bus = bus
        self.queue: asyncio.Queue[Message] = asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()

        self.controller = ReferenceController(
            self.state, comparator, alert,
            snapshot=snapshot, reference_fuzz=reference_fuzz, spawn=self.spawn,
        )
        self.console = CommandConsole({
            "setref": self.controller.set_reference,
            "ack": self._cmd_ack,
            "status": self._cmd_status,
            "help": self._cmd_help,
        })

    @property
    def frames(self) -> FrameAggregator:
        return self.state.frames

    # ---------- task bookkeeping ----------
    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every in-flight comparison, alert and snapshot (tasks may spawn tasks)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---------- producers ----------
    async def submit_line(self, text: str) -> None:
        await self.queue.put(DaemonLine(text))

    async def submit_command(self, text: str) -> None:
        await self.queue.put(ConsoleLine(text))

    async def submit_key(self, code: int) -> None:
        await self.queue.put(KeyPress(code))

    # ---------- consumer ----------
    async def run(self) -> None:
        log.info("[pipeline] consuming daemon events and operator commands")
        while True:
            msg = await self.queue.get()
            try:
                await self.handle(msg)
            except Exception:
                log.exception(f"[pipeline] failed to handle {msg!r}")
            finally:
                self.queue.task_done()

    async def handle(self, msg: Message) -> None:
        if isinstance(msg, DaemonLine):
            await self.handle_line(msg.text)
        elif isinstance(msg, ConsoleLine):
            await self.console.execute(msg.text)
        elif isinstance(msg, KeyPress):
            await self.handle_key(msg.code)

    async def handle_line(self, text: str) -> Optional[MotionEvent]:
        try:
            event = decode_line(text)
        except EventDecodeError as e:
            log.warning(f"[decode] dropped line: {e}")
            return None
        await self.handle_event(event)
        return event

    async def handle_event(self, event: MotionEvent) -> None:
        if event.action is None:
            log.debug(f"[event] ignoring unknown event {event!r}")
            return
        if event.event_id is not None:
            self.state.current_event_id = event.event_id

        if event.action is MotionAction.PICTURE_SAVE:
            self._on_picture(event.event_id, event.image_path)
            return

        log.info(f"[event] {_LIFECYCLE[event.action]} event={event.event_id}")
        self._publish(TelemetryRecord(event="motion.event", event_id=event.event_id,
                                      data={"action": event.action.value}))

    async def handle_key(self, code: int) -> None:
        # any key acknowledges a running alert
        self.controller.acknowledge()
        if self.setref_key is not None and code == self.setref_key:
            await self.controller.set_reference()
        else:
            log.debug(f"[keyboard] key={code}")

    # ---------- frames ----------
    def _on_picture(self, event_id: int, path: str) -> None:
        if self.controller.on_frame_captured(path):
            self._publish(TelemetryRecord(event="reference.set", event_id=event_id, data={"path": path}))
            return

        opens_group = event_id not in self.frames
        group = self.frames.record_frame(event_id, path)
        log.info(f"[frames] event={event_id} frame={len(group)} path={path}")
        if not opens_group:
            return

        before = self.frames.first_frame(event_id - 1)
        if before is None:
            log.info(f"[frames] event={event_id} has no previous group; kept as baseline")
            return

        # an anchor is compared once and never kept as a normal frame
        self.frames.drop_first_frame(event_id)
        self.spawn(self._compare_scene(event_id, before, path))

    async def _compare_scene(self, event_id: int, before: str, after: str) -> None:
        try:
            result = await self.comparator.compare(before, after, self.scene_fuzz)
            if result is None:
                return
            self._publish(TelemetryRecord(event="scene.compared", event_id=event_id,
                                          data=result.model_dump()))
            if not result.changed:
                log.info(f"[comparison] NO-CHANGE event={event_id} before={before} after={after}")
                return

            log.info(f"[comparison] CHANGED event={event_id} before={before} after={after} score={result.score}")
            # a setref may land while the reference comparison runs
            reference = self.state.reference_frame
            if await self.controller.on_scene_changed(after):
                self._publish(TelemetryRecord(event="alert.fired", event_id=event_id,
                                              data={"path": after, "reference": reference}))
        except Exception:
            log.exception(f"[comparison] failed event={event_id} before={before} after={after}")

    # ---------- telemetry ----------
    def _publish(self, record: TelemetryRecord) -> None:
        if self.bus is None:
            return
        self.spawn(self._send(record))

    async def _send(self, record: TelemetryRecord) -> None:
        try:
            await self.bus.publish(record)
        except Exception as e:
            log.warning(f"[telemetry] publish failed event={record.event}: {e}")

    # ---------- console commands ----------
    async def _cmd_ack(self) -> None:
        if not self.controller.acknowledge():
            log.info("[alert] no alert to acknowledge")

    async def _cmd_status(self) -> None:
        log.info(f"[status] {self.state.summary()}")

    async def _cmd_help(self) -> None:
        log.info(f"[console] commands: {', '.join(self.console.names)}")
