# motionwatch/pipeline/state.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from motionwatch.pipeline.aggregator import FrameAggregator


class ReferenceMode(str, Enum):
    NORMAL = "normal"
    AWAITING_REFERENCE = "awaiting_reference"


@dataclass
class PipelineState:
    """Everything the pipeline mutates. Owned by the coordinator, lives for the process."""
    frames: FrameAggregator = field(default_factory=FrameAggregator)
    mode: ReferenceMode = ReferenceMode.NORMAL
    reference_frame: Optional[str] = None
    alert_active: bool = False
    current_event_id: Optional[int] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "reference_frame": self.reference_frame,
            "alert_active": self.alert_active,
            "current_event_id": self.current_event_id,
            "groups": len(self.frames),
        }
