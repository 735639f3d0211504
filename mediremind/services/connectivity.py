import logging

import httpx

from mediremind.config import CONNECTIVITY_PROBE_URL, CONNECTIVITY_TIMEOUT_SECONDS, OFFLINE_MODE

logger = logging.getLogger(__name__)


class ConnectivityProbe:
    """Network reachability check awaited before each scan."""

    def __init__(
        self,
        url: str = CONNECTIVITY_PROBE_URL,
        timeout: float = CONNECTIVITY_TIMEOUT_SECONDS,
        offline: bool = OFFLINE_MODE,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.offline = offline

    async def __call__(self) -> bool:
        return await self.is_reachable()

    async def is_reachable(self) -> bool:
        if self.offline:
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                await client.head(self.url)
        except httpx.HTTPError as exc:
            logger.warning("Connectivity probe to %s failed: %s", self.url, exc)
            return False
        return True
