"""
Async HTTP client for the credential and ledger services.

Both services speak JSON over HTTP and answer with an object that carries
a ``success`` flag. This client only moves JSON; interpreting ``success``
is the session manager's job. Anything that prevents a JSON object from
coming back (timeout, refused connection, HTML error page) becomes a
TransportError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from blackbook_wallet.errors import TransportError

logger = logging.getLogger("blackbook_client")

DEFAULT_TIMEOUT = 15.0


class ServiceClient:
    """
    One shared ``aiohttp.ClientSession`` for every outbound call.

    The session is created lazily so the client can be constructed outside
    a running event loop.
    """

    def __init__(
        self,
        credential_url: str,
        ledger_url: str | None = None,
        l2_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.credential_url = credential_url.rstrip("/")
        self.ledger_url = (ledger_url or credential_url).rstrip("/")
        self.l2_url = (l2_url or self.ledger_url).rstrip("/")
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> ServiceClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ---- transport ----

    async def _request(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with session.request(
                method, url, json=payload, params=params, timeout=timeout,
            ) as resp:
                body = await resp.json(content_type=None)
                status = resp.status
        except asyncio.TimeoutError as exc:
            logger.warning("%s %s timed out after %.1fs", method, url, self.timeout)
            raise TransportError(f"request to {url} timed out") from exc
        except aiohttp.ClientError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"request to {url} failed: {exc}") from exc
        except ValueError as exc:
            raise TransportError(f"non-JSON response from {url}") from exc

        if not isinstance(body, dict):
            raise TransportError(f"unexpected response shape from {url}")
        logger.debug("%s %s -> %d", method, url, status)
        return body

    # ---- services ----

    async def post_credential(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", self.credential_url + path, payload)

    async def post_ledger(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", self.ledger_url + path, payload)

    async def post_l2(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", self.l2_url + path, payload)

    async def get_ledger(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._request("GET", self.ledger_url + path, params=params)
