# motionwatch/pipeline/aggregator.py
from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from motionwatch.common.logging import get_logger

log = get_logger()


class FrameAggregator:
    """
    Frame groups keyed by daemon event id, in capture order.

    The first frame of group N is the comparison anchor against the first frame of
    group N-1; once compared it is dropped so the rest of the group stays archival.
    max_groups=0 keeps every group for the life of the process.
    """

    def __init__(self, max_groups: int = 0):
        if max_groups < 0:
            raise ValueError("max_groups must be >= 0")
        # never evict N-1 while N is being filled
        self.max_groups = max(max_groups, 2) if max_groups else 0
        self._groups: Dict[int, List[str]] = {}

    def record_frame(self, event_id: int, image_path: str) -> Tuple[str, ...]:
        group = self._groups.get(event_id)
        if group is None:
            group = self._groups[event_id] = []
            self._evict()
        group.append(image_path)
        return tuple(group)

    def first_frame(self, event_id: int) -> Optional[str]:
        group = self._groups.get(event_id)
        return group[0] if group else None

    def drop_first_frame(self, event_id: int) -> Optional[str]:
        group = self._groups.get(event_id)
        if not group:
            return None
        return group.pop(0)

    def group(self, event_id: int) -> Tuple[str, ...]:
        return tuple(self._groups.get(event_id, ()))

    def event_ids(self) -> List[int]:
        return list(self._groups)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._groups

    def __len__(self) -> int:
        return len(self._groups)

    def _evict(self) -> None:
        if not self.max_groups:
            return
        while len(self._groups) > self.max_groups:
            oldest = next(iter(self._groups))
            dropped = self._groups.pop(oldest)
            log.debug(f"[frames] evicted group event={oldest} frames={len(dropped)}")
