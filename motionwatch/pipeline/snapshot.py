# motionwatch/pipeline/snapshot.py
from __future__ import annotations
from typing import Optional

import httpx

from motionwatch.common.logging import get_logger

log = get_logger()


class SnapshotTrigger:
    """
    Asks the daemon (web control) to save one still out of band.
    The frame shows up later as a picture_save event; nothing is returned here.
    """

    def __init__(self, url: Optional[str], timeout_sec: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._timeout = timeout_sec
        self._client = client
        self._owns_client = client is None

    async def trigger(self) -> bool:
        if not self.url:
            log.warning("[snapshot] no snapshot url configured; waiting for the next motion frame")
            return False
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        try:
            resp = await self._client.get(self.url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            log.error(f"[snapshot] request failed url={self.url}: {e}")
            return False
        log.info(f"[snapshot] requested url={self.url} status={resp.status_code}")
        return True

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
