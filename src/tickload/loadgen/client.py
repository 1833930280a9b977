from __future__ import annotations

import time
from typing import Any

import httpx

from tickload.config import TargetConfig
from tickload.metrics import UNKNOWN_ERROR, ErrorType, Outcome, OutcomeKind


async def send_request(
    client: httpx.AsyncClient,
    target: TargetConfig,
    sequence_number: int,
    payload: Any,
) -> Outcome:
    start_mono = time.perf_counter()
    try:
        if target.method.upper() == "GET":
            resp = await client.request(
                target.method,
                target.url,
                headers=target.request_headers(),
                params=payload,
                timeout=target.timeout_sec,
            )
        else:
            resp = await client.request(
                target.method,
                target.url,
                headers=target.request_headers(),
                json=payload,
                timeout=target.timeout_sec,
            )
    except httpx.HTTPError as exc:
        return failure_outcome(sequence_number, exc, elapsed_ms(start_mono))
    took_ms = elapsed_ms(start_mono)
    return Outcome(
        sequence_number=sequence_number,
        kind=OutcomeKind.SUCCESS,
        status=resp.status_code,
        body=response_body(resp),
        elapsed_ms=took_ms,
        completed_mono=time.perf_counter(),
    )


def failure_outcome(sequence_number: int, exc: BaseException, elapsed_ms: int) -> Outcome:
    status: int | str = UNKNOWN_ERROR
    body: Any = str(exc) or type(exc).__name__
    response = _attached_response(exc)
    if response is not None:
        status = response.status_code
        body = response_body(response)
    return Outcome(
        sequence_number=sequence_number,
        kind=OutcomeKind.FAILURE,
        status=status,
        body=body,
        elapsed_ms=elapsed_ms,
        error_type=classify_error(exc),
        completed_mono=time.perf_counter(),
    )


def classify_error(exc: BaseException) -> ErrorType:
    if isinstance(exc, httpx.TimeoutException):
        return ErrorType.TIMEOUT
    if isinstance(exc, httpx.ConnectError):
        return ErrorType.CONNECT
    if isinstance(exc, httpx.ReadError):
        return ErrorType.READ
    return ErrorType.OTHER


def response_body(resp: httpx.Response) -> Any:
    if not resp.content:
        return ""
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _attached_response(exc: BaseException) -> httpx.Response | None:
    # Only HTTPStatusError guarantees a response; other errors raise on access.
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response
    return None


def elapsed_ms(start_mono: float) -> int:
    return max(0, int(round((time.perf_counter() - start_mono) * 1000.0)))
