from __future__ import annotations

import asyncio
import itertools
import json
from pathlib import Path

import httpx
import pytest

from conftest import make_config
from tickload.config import RunConfig, TargetConfig
from tickload.loadgen.runner import RunCoordinator, client_limits, run_load, start_banner
from tickload.payloads import QueryCycle, TemplateBody, template_from
from tickload.storage import Storage

QUERY_SETS = [
    {"param1": "value1", "param2": "valueA"},
    {"param1": "value2", "param2": "valueB"},
    {"param1": "value3", "param2": "valueC"},
]


@pytest.mark.asyncio
async def test_fifty_rps_for_twenty_seconds(tmp_path: Path, mock_client) -> None:
    seen_params: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_params.append(dict(request.url.params))
        return httpx.Response(200, json={"ok": True})

    results = tmp_path / "results" / "results.txt"
    async with mock_client(handler) as client:
        report = await run_load(make_config(50, 20, results), QueryCycle(QUERY_SETS), client=client)

    assert report.state.sent == report.state.completed == 1000
    assert report.summary.ok_count == 1000
    assert results.read_text() == "Test completed. Total sent: 1000, Completed: 1000.\n"
    assert report.summary_line == "Test completed. Total sent: 1000, Completed: 1000."
    assert len(seen_params) == 1000
    assert all(params in QUERY_SETS for params in seen_params)
    assert seen_params.count(QUERY_SETS[1]) == 334


@pytest.mark.asyncio
async def test_connection_refused_run_records_every_request(tmp_path: Path, mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    results = tmp_path / "results.txt"
    async with mock_client(handler) as client:
        report = await run_load(make_config(4, 3, results), QueryCycle([]), client=client)

    text = results.read_text()
    assert text.count("Status: Unknown error\n") == 12
    assert text.count('Response body: "Connection refused"\n') == 12
    assert text.endswith("Test completed. Total sent: 12, Completed: 12.\n")
    assert report.summary.transport_failure_count == 12


@pytest.mark.asyncio
async def test_failures_only_records_non_2xx(tmp_path: Path, mock_client) -> None:
    statuses = itertools.cycle([200, 200, 500])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses), json={"echo": json.loads(request.content)})

    results = tmp_path / "post_results.txt"
    config = make_config(3, 3, results, method="POST", summary_label=" POST-requests")
    async with mock_client(handler) as client:
        report = await run_load(config, TemplateBody(template_from({"key1": "value1"})), client=client)

    text = results.read_text()
    assert text.count("Request ") == 3
    assert text.count("Status: 500\n") == 3
    assert 'Response body: {"echo": {"key1": "value1"}}' in text
    assert text.splitlines()[-1] == "Test completed. Total sent: 9, Completed: 9 POST-requests."
    assert report.summary.error_response_count == 3


@pytest.mark.asyncio
async def test_log_all_records_each_outcome_then_summary(tmp_path: Path, mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    results = tmp_path / "results.txt"
    async with mock_client(handler) as client:
        report = await run_load(
            make_config(5, 2, results, log_all_responses=True),
            QueryCycle(QUERY_SETS),
            client=client,
        )

    blocks = results.read_text().split("\n\n")
    assert len(blocks) == 11
    numbers = sorted(int(block.splitlines()[0].split()[1]) for block in blocks[:-1])
    assert numbers == list(range(1, 11))
    assert blocks[-1] == "Test completed. Total sent: 10, Completed: 10.\n"
    assert report.per_second


@pytest.mark.asyncio
async def test_run_is_persisted_to_storage(tmp_path: Path, mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    storage = Storage(tmp_path / "db" / "tickload.duckdb")
    config = make_config(2, 3, tmp_path / "results.txt", run_id="run-1", notes="smoke")
    async with mock_client(handler) as client:
        report = await run_load(config, QueryCycle([]), storage=storage, client=client)

    assert report.run_id == "run-1"
    meta = storage.load_run_meta("run-1")
    assert meta is not None
    assert meta["total_budget"] == 6
    assert meta["summary"]["completed"] == 6
    outcomes = storage.load_outcomes("run-1")
    assert outcomes["sequence_number"].tolist() == [1, 2, 3, 4, 5, 6]
    assert not storage.load_per_second("run-1").empty
    assert storage.list_runs()["notes"].tolist() == ["smoke"]

    with pytest.raises(ValueError, match="already exists"):
        RunCoordinator(config, QueryCycle([]), storage=storage).start()


@pytest.mark.asyncio
async def test_coordinator_requires_start_before_wait(tmp_path: Path) -> None:
    coordinator = RunCoordinator(make_config(1, 1, tmp_path / "r.txt"), QueryCycle([]))
    assert len(coordinator.run_id) == 32
    with pytest.raises(RuntimeError):
        await coordinator.wait()


def test_start_banner() -> None:
    assert start_banner(make_config(50, 20)) == "Starting GET test: 50 RPS for 20s..."


def test_default_client_limits_leave_the_pool_unbounded() -> None:
    limits = client_limits(make_config(150, 1))
    assert limits.max_connections is None
    assert limits.max_keepalive_connections is None
    assert client_limits(make_config(150, 1, max_connections=20)).max_connections == 20


@pytest.mark.asyncio
async def test_slow_target_sees_a_full_tick_in_flight(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY"):
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(name.lower(), raising=False)

    active = 0
    peak = 0

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        nonlocal active, peak
        await reader.readuntil(b"\r\n\r\n")
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(1.0)
        active -= 1
        writer.write(b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\nConnection: close\r\n\r\nok")
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0, backlog=512)
    port = server.sockets[0].getsockname()[1]
    config = RunConfig(
        target=TargetConfig(url=f"http://127.0.0.1:{port}/"),
        target_rate=150,
        duration_sec=1,
        tick_interval_sec=0.01,
        results_path=tmp_path / "results.txt",
    )
    async with server:
        report = await run_load(config, QueryCycle([]))

    assert peak == 150
    assert report.state.sent == report.state.completed == 150
    assert report.summary.ok_count == 150
