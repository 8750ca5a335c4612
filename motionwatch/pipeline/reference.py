# motionwatch/pipeline/reference.py
from __future__ import annotations
import asyncio
from typing import Any, Callable, Coroutine, Optional

from motionwatch.common.logging import get_logger
from motionwatch.pipeline.alert import AlertDispatcher
from motionwatch.pipeline.comparator import SceneComparator
from motionwatch.pipeline.snapshot import SnapshotTrigger
from motionwatch.pipeline.state import PipelineState, ReferenceMode

log = get_logger()


class ReferenceController:
    """
    NORMAL <-> AWAITING_REFERENCE.

    set_reference() arms the controller and asks the daemon for a snapshot; the next
    captured frame (whatever its event id) becomes the reference instead of being
    aggregated. A scene change is only alerted on when it also differs from the
    reference.
    """

    def __init__(
        self,
        state: PipelineState,
        comparator: SceneComparator,
        alert: AlertDispatcher,
        snapshot: Optional[SnapshotTrigger] = None,
        reference_fuzz: int = 30,
        spawn: Optional[Callable[[Coroutine[Any, Any, Any]], Any]] = None,
    ):
        self.state = state
        self.comparator = comparator
        self.alert = alert
        self.snapshot = snapshot
        self.reference_fuzz = reference_fuzz
        self.spawn = spawn or asyncio.create_task

    @property
    def awaiting(self) -> bool:
        return self.state.mode is ReferenceMode.AWAITING_REFERENCE

    async def set_reference(self) -> None:
        if self.awaiting:
            log.info("[reference] already waiting for a reference frame")
            return
        self.state.mode = ReferenceMode.AWAITING_REFERENCE
        log.info("[reference] armed; next captured frame becomes the reference")
        if self.snapshot is not None:
            # fire and forget: the frame comes back as a picture_save event
            self.spawn(self.snapshot.trigger())

    def on_frame_captured(self, image_path: str) -> bool:
        """True when the frame was taken as the new reference."""
        if not self.awaiting:
            return False
        previous = self.state.reference_frame
        self.state.reference_frame = image_path
        self.state.mode = ReferenceMode.NORMAL
        log.info(f"[reference] set path={image_path} previous={previous}")
        return True

    async def on_scene_changed(self, after_path: str) -> bool:
        """Confirm a scene change against the reference; True when an alert fired."""
        reference = self.state.reference_frame
        if reference is None:
            log.info(f"[reference] unconfirmed change after={after_path} (no reference frame set; use 'setref')")
            return False

        result = await self.comparator.compare(reference, after_path, self.reference_fuzz)
        if result is None or not result.changed:
            log.info(f"[reference] NO-CHANGE vs reference={reference} after={after_path}")
            return False

        log.warning(f"[reference] CHANGED vs reference={reference} after={after_path} score={result.score}")
        self.state.alert_active = True
        await self.alert.fire()
        return True

    def acknowledge(self) -> bool:
        was_active = self.state.alert_active
        self.state.alert_active = False
        if was_active:
            log.info("[alert] acknowledged")
        return was_active
