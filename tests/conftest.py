from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest

from tickload.config import RunConfig, TargetConfig

TARGET_URL = "http://load.test/api/items"


def make_config(
    rate: int,
    duration: int,
    results_path: Path | None = None,
    method: str = "GET",
    **kwargs: object,
) -> RunConfig:
    extra: dict[str, object] = dict(kwargs)
    if results_path is not None:
        extra["results_path"] = results_path
    return RunConfig(
        target=TargetConfig(url=TARGET_URL, method=method, token="secret-token"),
        target_rate=rate,
        duration_sec=duration,
        tick_interval_sec=0.001,
        **extra,
    )


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    def build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build
