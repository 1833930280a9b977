from __future__ import annotations

import copy
import json

import httpx
import pytest

from tickload.config import TargetConfig
from tickload.loadgen.client import failure_outcome, send_request
from tickload.metrics import UNKNOWN_ERROR, ErrorType, OutcomeKind

URL = "http://load.test/api/items"


@pytest.mark.asyncio
async def test_get_sends_query_params_and_bearer_token(mock_client) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"items": [1, 2]})

    params = {"param1": "value1", "param2": "valueA"}
    async with mock_client(handler) as client:
        outcome = await send_request(client, TargetConfig(url=URL, token="tok"), 7, params)

    assert outcome.kind is OutcomeKind.SUCCESS
    assert outcome.ok
    assert outcome.sequence_number == 7
    assert outcome.status == 200
    assert outcome.body == {"items": [1, 2]}
    assert outcome.elapsed_ms >= 0
    assert dict(seen[0].url.params) == params
    assert seen[0].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_post_sends_payload_unmodified(mock_client) -> None:
    bodies: list[object] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, text="created")

    payload = {"key1": "value1", "nested": {"values": [1, 2, 3]}, "key3": 4}
    snapshot = copy.deepcopy(payload)
    target = TargetConfig(url=URL, method="POST")
    async with mock_client(handler) as client:
        outcome = await send_request(client, target, 1, payload)

    assert bodies == [snapshot]
    assert payload == snapshot
    assert outcome.status == 201
    assert outcome.body == "created"


@pytest.mark.asyncio
async def test_non_2xx_response_is_a_completed_outcome(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        return httpx.Response(503, json={"error": "overloaded"})

    async with mock_client(handler) as client:
        outcome = await send_request(client, TargetConfig(url=URL), 3, None)

    assert outcome.kind is OutcomeKind.SUCCESS
    assert outcome.status == 503
    assert not outcome.ok
    assert outcome.body == {"error": "overloaded"}


@pytest.mark.asyncio
async def test_connection_refused_yields_unknown_error(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    async with mock_client(handler) as client:
        outcome = await send_request(client, TargetConfig(url=URL), 9, None)

    assert outcome.kind is OutcomeKind.FAILURE
    assert outcome.status == UNKNOWN_ERROR
    assert outcome.body == "Connection refused"
    assert outcome.error_type is ErrorType.CONNECT
    assert not outcome.ok


@pytest.mark.asyncio
async def test_timeout_is_classified(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with mock_client(handler) as client:
        outcome = await send_request(client, TargetConfig(url=URL, timeout_sec=0.5), 2, None)

    assert outcome.error_type is ErrorType.TIMEOUT
    assert outcome.status == UNKNOWN_ERROR


def test_failure_with_response_keeps_status_and_server_body() -> None:
    request = httpx.Request("GET", URL)
    response = httpx.Response(502, json={"error": "bad gateway"}, request=request)
    exc = httpx.HTTPStatusError("bad gateway", request=request, response=response)
    outcome = failure_outcome(4, exc, 12)
    assert outcome.status == 502
    assert outcome.body == {"error": "bad gateway"}
    assert outcome.elapsed_ms == 12
    assert outcome.error_type is ErrorType.OTHER


def test_failure_without_message_uses_exception_name() -> None:
    outcome = failure_outcome(5, RuntimeError(), 0)
    assert outcome.status == UNKNOWN_ERROR
    assert outcome.body == "RuntimeError"
