"""Outbound command transport: fire-and-forget POSTs to the controller's web API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol
from urllib.parse import urlencode

import aiohttp

from pyblaq.exceptions import BlaqTransportError

_logger = logging.getLogger(__name__)


def normalize_api_base_url(url: str) -> str:
    """Default to ``http://`` and drop a trailing slash."""
    corrected = url.strip()
    if "://" not in corrected:
        corrected = f"http://{corrected}"
    if corrected.endswith("/"):
        corrected = corrected[:-1]
    return corrected


class CommandTransport(Protocol):
    """Structural transport interface used by entities.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpCommandTransport`) concrete.
    """

    async def post(self, url: str) -> None:
        ...


class HttpCommandTransport:
    """POSTs commands with aiohttp; the response body is never consumed."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        auth: aiohttp.BasicAuth | None = None,
    ) -> None:
        self._http = http_session
        self._auth = auth

    async def post(self, url: str) -> None:
        _logger.debug("POST %s", url)
        try:
            async with self._http.post(url, auth=self._auth) as resp:
                if resp.status >= 300:
                    text = await resp.text()
                    raise BlaqTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except BlaqTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise BlaqTransportError(f"Request to {url} failed: {exc}", url=url) from exc
        except TimeoutError as exc:
            raise BlaqTransportError(f"Request to {url} timed out", url=url) from exc


class CommandIssuer:
    """Builds command URLs for one entity and sends them.

    ``send`` awaits the POST so failures can be logged, but never raises
    and never retries: the next state event from the device corrects any
    optimistic update that did not take.
    """

    def __init__(
        self,
        api_base_url: str,
        transport: CommandTransport,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._api_base_url = normalize_api_base_url(api_base_url)
        self._transport = transport
        self._logger = logger or _logger

    @property
    def api_base_url(self) -> str:
        return self._api_base_url

    def set_api_base_url(self, url: str) -> None:
        self._api_base_url = normalize_api_base_url(url)

    def build_url(
        self,
        category: str,
        slug: str,
        action: str,
        params: Mapping[str, Any] | None = None,
    ) -> str:
        url = f"{self._api_base_url}/{category}/{slug}/{action}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    async def send(
        self,
        category: str,
        slug: str,
        action: str,
        params: Mapping[str, Any] | None = None,
    ) -> bool:
        """POST ``{base}/{category}/{slug}/{action}``; returns whether it succeeded."""
        url = self.build_url(category, slug, action, params)
        try:
            await self._transport.post(url)
        except BlaqTransportError as exc:
            self._logger.error("Command %s/%s/%s failed: %s", category, slug, action, exc)
            return False
        return True
