"""HTTP transport for the request/response write actions."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pycarfeed._constants import USER_AGENT
from pycarfeed._redact import redact_for_log
from pycarfeed.config import FeedConfig
from pycarfeed.exceptions import CarFeedProtocolError, CarFeedTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by :class:`~pycarfeed.actions.ActionClient`.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def post_json(
        self,
        endpoint: str,
        payload: Mapping[str, Any],
        *,
        require_json: bool = True,
    ) -> Any:
        ...

    async def post_form(self, endpoint: str, form: aiohttp.FormData) -> Any:
        ...


class HttpTransport:
    """Single-attempt HTTP transport mapping failures onto pycarfeed errors.

    Both methods return the decoded JSON body, or ``None`` for an empty body.
    With ``require_json=False`` a 2xx body that is not JSON is returned as
    text instead of raising :class:`CarFeedProtocolError`.
    """

    def __init__(self, config: FeedConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def post_json(
        self,
        endpoint: str,
        payload: Mapping[str, Any],
        *,
        require_json: bool = True,
    ) -> Any:
        _logger.debug("POST %s json=%s", endpoint, redact_for_log(dict(payload)))
        return await self._post(
            endpoint,
            data=json.dumps(dict(payload)),
            headers={"content-type": "application/json", "user-agent": USER_AGENT},
            require_json=require_json,
        )

    async def post_form(self, endpoint: str, form: aiohttp.FormData) -> Any:
        _logger.debug("POST %s multipart", endpoint)
        return await self._post(endpoint, data=form, headers={"user-agent": USER_AGENT})

    async def _post(self, endpoint: str, *, require_json: bool = True, **kwargs: Any) -> Any:
        url = self._config.endpoint_url(endpoint)

        try:
            async with self._http.post(url, timeout=self._timeout, **kwargs) as resp:
                body = await resp.read()
                if not 200 <= resp.status < 300:
                    preview = body[:200].decode("utf-8", errors="replace")
                    raise CarFeedTransportError(
                        f"HTTP {resp.status} from {endpoint}: {preview}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except CarFeedTransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise CarFeedTransportError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise CarFeedTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if not body.strip():
            _logger.debug("Empty response body from %s", endpoint)
            return None

        try:
            decoded = json.loads(body)
        except ValueError as exc:
            if not require_json:
                text = body.decode("utf-8", errors="replace")
                _logger.debug("Non-JSON response from %s: %s", endpoint, redact_for_log(text))
                return text
            raise CarFeedProtocolError(
                f"Invalid JSON from {endpoint}: {body[:64]!r}",
                endpoint=endpoint,
            ) from exc

        _logger.debug("Response from %s: %s", endpoint, redact_for_log(decoded))
        return decoded
