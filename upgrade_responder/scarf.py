from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "upgrade-responder"


class ScarfForwarder:
    """
    Forwards one download event per check-upgrade request to a Scarf.sh
    endpoint. `endpoint_template` may contain a `{version}` placeholder.
    Disabled when the template is empty.
    """

    def __init__(self, endpoint_template: str, timeout_s: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.endpoint_template = endpoint_template
        self.timeout_s = timeout_s
        self.enabled = bool(endpoint_template)
        self._client = client
        self._tasks: Set[asyncio.Task] = set()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    def send_event(self, app_version: str, client_ip: str) -> None:
        if not self.enabled:
            return
        task = asyncio.create_task(self._send(app_version, client_ip), name="scarf_event")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, app_version: str, client_ip: str) -> None:
        try:
            await self.send_event_sync(app_version, client_ip)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("Failed to send Scarf.sh event for version %s: %s", app_version, e)
        else:
            logger.debug("Successfully sent Scarf.sh event for version %s", app_version)

    async def send_event_sync(self, app_version: str, client_ip: str) -> None:
        url = self.endpoint_template.replace("{version}", app_version)
        headers = {"User-Agent": USER_AGENT}
        if client_ip:
            headers["X-Scarf-IP"] = client_ip
        await self._get_client().get(url, headers=headers)

    async def aclose(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._client is not None:
            await self._client.aclose()
            self._client = None
