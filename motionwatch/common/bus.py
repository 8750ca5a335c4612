# motionwatch/common/bus.py
from __future__ import annotations
import json
from typing import Optional
from redis import asyncio as aioredis
from motionwatch.common.logging import get_logger
from motionwatch.common.schemas import TelemetryRecord

log = get_logger()

class EventBus:
    """
    Pipeline telemetry on one Redis stream; each entry is {"json": <TelemetryRecord>}.
    Consumers read it with XREAD/XREADGROUP like any other stream.
    """

    def __init__(self, redis_url: str, stream: str = "motionwatch.telemetry", maxlen: int = 10000):
        self.stream = stream
        self._redis_url = redis_url
        self._maxlen = maxlen
        self._redis: Optional[aioredis.Redis] = None

    async def connect(self) -> "EventBus":
        if self._redis is None:
            log.info(f"[telemetry] connecting to Redis: {self._redis_url} stream={self.stream}")
            self._redis = aioredis.from_url(self._redis_url, encoding="utf-8", decode_responses=True)
            try:
                pong = await self._redis.ping()
                log.info(f"[telemetry] Redis ping: {pong}")
            except Exception as e:
                log.error(f"[telemetry] Redis connection failed: {e}")
                await self.close()
                raise
        return self

    async def close(self) -> None:
        if self._redis is not None:
            redis, self._redis = self._redis, None
            await redis.aclose()

    async def publish(self, record: TelemetryRecord) -> str:
        assert self._redis is not None, "Call connect() first"
        data = {"json": record.model_dump_json()}
        msg_id = await self._redis.xadd(self.stream, data, maxlen=self._maxlen, approximate=True)
        log.debug(f"[telemetry] XADD stream={self.stream} id={msg_id} event={record.event}")
        return msg_id

    @staticmethod
    def decode(fields: dict) -> TelemetryRecord:
        """Inverse of publish() for stream readers."""
        return TelemetryRecord.model_validate(json.loads(fields.get("json", "{}")))
