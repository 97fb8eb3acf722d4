"""
Upgrade checker for applications that report to an upgrade responder.

Usage:
    checker = UpgradeChecker("https://example.com/v1/checkupgrade", MyRequester())
    checker.start()
    ...
    await checker.stop()
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Protocol

import httpx

from .models import CheckUpgradeRequest, CheckUpgradeResponse

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_INTERVAL_S = 3600.0


class UpgradeCheckError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"query return status code {status_code}, message {message}")


class UpgradeRequester(Protocol):
    def get_current_version(self) -> str: ...

    def get_extra_info(self) -> Dict[str, str]: ...

    def process_upgrade_response(self, response: Optional[CheckUpgradeResponse], err: Optional[Exception]) -> None: ...


class UpgradeChecker:
    def __init__(
        self,
        address: str,
        requester: UpgradeRequester,
        default_request_interval_s: float = DEFAULT_REQUEST_INTERVAL_S,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.address = address
        self.requester = requester
        self.default_request_interval_s = default_request_interval_s
        self.timeout_s = timeout_s
        self.transport = transport
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="upgrade_checker")

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> None:
        interval = self.default_request_interval_s
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
            while True:
                resp: Optional[CheckUpgradeResponse] = None
                err: Optional[Exception] = None
                try:
                    resp = await self.check_upgrade(
                        self.requester.get_current_version(),
                        self.requester.get_extra_info(),
                        client=client,
                    )
                except (httpx.HTTPError, UpgradeCheckError, ValueError) as e:
                    err = e
                if resp is not None and resp.request_interval_in_minutes > 0:
                    interval = resp.request_interval_in_minutes * 60.0
                self.requester.process_upgrade_response(resp, err)

                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=interval)
                    return
                except asyncio.TimeoutError:
                    pass

    async def check_upgrade(
        self,
        current_version: str,
        extra_info: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> CheckUpgradeResponse:
        """Send the current version and extra info; return the parsed response."""
        req = CheckUpgradeRequest(app_version=current_version, extra_info=extra_info)
        body = req.model_dump(by_alias=True, exclude_none=True, exclude_defaults=True)
        body["appVersion"] = current_version

        if client is None:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as c:
                r = await c.post(self.address, json=body)
        else:
            r = await client.post(self.address, json=body)

        if r.status_code != 200:
            raise UpgradeCheckError(r.status_code, r.text)
        return CheckUpgradeResponse.model_validate(r.json())
