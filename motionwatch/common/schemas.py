from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
    model_validator,
)


class MotionAction(str, Enum):
    EVENT_START = "event_start"
    EVENT_END = "event_end"
    MOTION_DETECTED = "motion_detected"
    PICTURE_SAVE = "picture_save"


class MotionEvent(BaseModel):
    """
    One line of daemon stdout, e.g.
      {"action":"picture_save","eventid":"12","img":"/var/lib/motion/12-01.jpg"}
    action is None when the line carries no action, or one we do not know.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    action: Optional[MotionAction] = None
    event_id: Optional[int] = Field(default=None, alias="eventid", ge=0)
    image_path: Optional[str] = Field(default=None, alias="img")

    @field_validator("action", mode="before")
    @classmethod
    def _unknown_action(cls, v: Any) -> Any:
        if isinstance(v, MotionAction):
            return v
        try:
            return MotionAction(v)
        except ValueError:
            return None

    @field_validator("event_id", mode="wrap")
    @classmethod
    def _event_id(cls, v: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo) -> Optional[int]:
        # motion prints the id as a string; "" means the field is unset
        if isinstance(v, str):
            v = v.strip() or None
        try:
            return handler(v)
        except ValidationError:
            # an unknown event is still decoded; its id is not trusted
            if info.data.get("action") is None:
                return None
            raise

    @model_validator(mode="after")
    def _picture_needs_frame(self) -> "MotionEvent":
        if self.action is MotionAction.PICTURE_SAVE:
            if self.event_id is None:
                raise ValueError("picture_save without eventid")
            if not self.image_path:
                raise ValueError("picture_save without img")
        return self


class ComparisonResult(BaseModel):
    before: str
    after: str
    score: int = Field(default=0, ge=0)
    error: Optional[str] = None   # set when the diff tool failed and we assumed "no change"

    @property
    def changed(self) -> bool:
        return self.score > 0


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TelemetryRecord(BaseModel):
    event: str                   # motion.event | scene.compared | reference.set | alert.fired
    ts: str = Field(default_factory=_utc_now)   # ISO8601 UTC
    event_id: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)
