"""
Client for the MIO remote-monitoring device API.
"""
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any, Optional
import httpx

from carehub.core.config import MioSettings
from carehub.utils import get_logger

log = get_logger(__name__)


class MioAPIError(Exception):
    """Raised when the device API is unreachable or answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"MIO API error {status_code}: {body}")


class MioClient:
    """
    Async client for device readings.

    Settings are injected so tests and scripts can point it at any server.
    Use as an async context manager, or call connect() and close().
    """

    def __init__(self, settings: MioSettings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers={"x-api-key": self.settings.api_key, "Accept": "application/json"},
                timeout=self.settings.timeout,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "MioClient":
        await self.connect()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def get_readings(
        self,
        imei: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """
        Readings reported by the device with the given IMEI.

        Raises:
            RuntimeError: if the client is not connected.
            MioAPIError: on a transport error or a non-2xx response.
        """
        if self._http is None:
            raise RuntimeError("MioClient is not connected. Use 'async with MioClient(settings) as client:'.")
        if not self.settings.base_url:
            raise MioAPIError(0, "MIO_BASE_URL is not configured")

        params = {}
        if start is not None:
            params["from"] = start.isoformat()
        if end is not None:
            params["to"] = end.isoformat()

        try:
            resp = await self._http.get(f"/devices/{imei}/readings", params=params)
        except httpx.HTTPError as exc:
            raise MioAPIError(0, str(exc)) from exc

        if resp.status_code not in range(200, 300):
            raise MioAPIError(resp.status_code, resp.text)

        body = resp.json() if resp.content else []
        if isinstance(body, dict):
            body = body.get("readings", body.get("data", []))
        log.debug("Fetched %d readings for device %s", len(body), imei)
        return body


async def get_mio_client() -> AsyncGenerator[MioClient, None]:
    async with MioClient(MioSettings.from_env()) as client:
        yield client
