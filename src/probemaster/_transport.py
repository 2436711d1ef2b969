"""HTTP transport with shared-secret header injection."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from probemaster._constants import ACCESS_KEY_HEADER
from probemaster._redact import redact_for_log
from probemaster.config import ProbeMasterConfig
from probemaster.exceptions import ProbeMasterAuthorizationError, ProbeMasterTransportError

_logger = logging.getLogger(__name__)


class HttpTransport(Protocol):
    """Structural transport interface used by the poll loops and REST fetchers.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`AccessKeyTransport`) concrete.
    """

    async def get_json(self, endpoint: str, params: Mapping[str, str] | None = None) -> Any:
        ...


class AccessKeyTransport:
    """GET-only JSON transport that adds the ``X-Access-Key`` header."""

    def __init__(self, config: ProbeMasterConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self) -> dict[str, str]:
        return {
            ACCESS_KEY_HEADER: self._config.access_key,
            "Content-Type": "application/json",
        }

    async def get_json(self, endpoint: str, params: Mapping[str, str] | None = None) -> Any:
        """Fetch ``endpoint`` and decode its JSON body.

        Raises
        ------
        ProbeMasterAuthorizationError
            The server answered 401.
        ProbeMasterTransportError
            Network failure, any other non-2xx status, or a body that is not JSON.
        """
        url = f"{self._config.base_url}{endpoint}"
        headers = self._headers()
        _logger.debug("GET %s params=%s headers=%s", url, dict(params or {}), redact_for_log(headers))

        try:
            async with self._http.get(url, params=params, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status == 401:
                    raise ProbeMasterAuthorizationError(
                        f"Unauthorized from {endpoint} (check access key)",
                        status_code=401,
                        endpoint=endpoint,
                    )
                if not 200 <= resp.status < 300:
                    raise ProbeMasterTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except ProbeMasterTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ProbeMasterTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ProbeMasterTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc
