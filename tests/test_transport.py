from __future__ import annotations

from typing import Any

import aiohttp
import pytest

from probemaster._transport import AccessKeyTransport
from probemaster.config import ProbeMasterConfig
from probemaster.exceptions import ProbeMasterAuthorizationError, ProbeMasterTransportError


class _FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeSession:
    def __init__(self, status: int = 200, text: str = "{}", error: Exception | None = None) -> None:
        self._status = status
        self._text = text
        self._error = error
        self.requests: list[dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"url": url, **kwargs})
        if self._error is not None:
            raise self._error
        return _FakeResponse(self._status, self._text)


def _transport(session: _FakeSession) -> AccessKeyTransport:
    config = ProbeMasterConfig(base_url="http://probe.local/api/", access_key="s3cret")
    return AccessKeyTransport(config, session)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_get_json_sends_access_key_and_params() -> None:
    session = _FakeSession(text='{"messages": [{"id": "1", "data": "x"}]}')

    payload = await _transport(session).get_json("/poll", params={"length": "100"})

    assert payload == {"messages": [{"id": "1", "data": "x"}]}
    request = session.requests[0]
    assert request["url"] == "http://probe.local/api/poll"
    assert request["params"] == {"length": "100"}
    assert request["headers"]["X-Access-Key"] == "s3cret"


@pytest.mark.asyncio
async def test_unauthorized_maps_to_authorization_error() -> None:
    with pytest.raises(ProbeMasterAuthorizationError) as excinfo:
        await _transport(_FakeSession(status=401, text="no")).get_json("/areas")

    assert excinfo.value.status_code == 401
    assert excinfo.value.endpoint == "/areas"


@pytest.mark.asyncio
async def test_server_error_maps_to_transport_error() -> None:
    with pytest.raises(ProbeMasterTransportError) as excinfo:
        await _transport(_FakeSession(status=503, text="busy")).get_json("/stats")

    assert not isinstance(excinfo.value, ProbeMasterAuthorizationError)
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_invalid_json_maps_to_transport_error() -> None:
    with pytest.raises(ProbeMasterTransportError, match="Invalid JSON"):
        await _transport(_FakeSession(text="<html>")).get_json("/pixels")


@pytest.mark.asyncio
async def test_network_failure_maps_to_transport_error() -> None:
    session = _FakeSession(error=aiohttp.ClientConnectionError("refused"))

    with pytest.raises(ProbeMasterTransportError, match="refused"):
        await _transport(session).get_json("/poll")
