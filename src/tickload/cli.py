from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import structlog

from tickload.config import ConfigurationError, RunConfig, Settings, TargetConfig
from tickload.loadgen.runner import run_load, start_banner
from tickload.logging import setup_logging
from tickload.payloads import PayloadSource, QueryCycle, TemplateBody, template_from
from tickload.storage import default_storage

logger = structlog.get_logger()

DEFAULT_QUERY_SETS: list[dict[str, str]] = [
    {"param1": "value1", "param2": "valueA"},
    {"param1": "value2", "param2": "valueB"},
    {"param1": "value3", "param2": "valueC"},
]

DEFAULT_POST_TEMPLATE: dict[str, Any] = {
    "key1": "value1",
    "key2": "value2",
    "key3": {"$randint": [1, 9]},
}

RESULT_FILES = {"get": "results.txt", "post": "post_results.txt"}
SUMMARY_LABELS = {"get": "", "post": " POST-requests"}


def _parse_param_set(raw: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in raw.split(","):
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            msg = f"Malformed query parameter {pair!r}, expected key=value"
            raise ConfigurationError(msg)
        params[key.strip()] = value.strip()
    return params


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        msg = f"Cannot read {path}: {exc}"
        raise ConfigurationError(msg) from exc


def _build_payloads(args: argparse.Namespace) -> PayloadSource:
    if args.command == "get":
        param_sets: list[dict[str, str]] = []
        if args.params_file:
            loaded = _read_json(Path(args.params_file))
            if not isinstance(loaded, list) or not all(isinstance(p, dict) for p in loaded):
                msg = f"{args.params_file} must hold a JSON list of objects"
                raise ConfigurationError(msg)
            param_sets.extend({str(k): str(v) for k, v in p.items()} for p in loaded)
        param_sets.extend(_parse_param_set(raw) for raw in args.param)
        if not args.params_file and not args.param:
            param_sets = [dict(p) for p in DEFAULT_QUERY_SETS]
        return QueryCycle(param_sets)
    template = DEFAULT_POST_TEMPLATE
    if args.body_template:
        template = _read_json(Path(args.body_template))
    return TemplateBody(template_from(template))


def build_config(args: argparse.Namespace, settings: Settings) -> RunConfig:
    url = args.target or settings.base_url
    if not url:
        msg = "BASE_URL is not defined"
        raise ConfigurationError(msg)
    target = TargetConfig(
        url=url,
        method=args.command.upper(),
        token=args.token or settings.token,
        timeout_sec=args.timeout,
        headers={"Content-Type": "application/json"} if args.command == "post" else {},
    )
    return RunConfig(
        target=target,
        target_rate=args.rps,
        duration_sec=args.duration,
        log_all_responses=args.log_all,
        results_path=Path(args.results_dir) / RESULT_FILES[args.command],
        summary_label=SUMMARY_LABELS[args.command],
        notes=args.notes,
        max_connections=args.max_connections,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fixed-rate HTTP load generator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument("--target", help="Target URL (defaults to BASE_URL)")
    shared.add_argument("--token", help="Bearer token (defaults to TOKEN)")
    shared.add_argument("--rps", type=int, default=50)
    shared.add_argument("--duration", type=int, default=20)
    shared.add_argument("--timeout", type=float, default=10.0)
    shared.add_argument("--max-connections", type=int, default=None, help="Cap the connection pool (default: unbounded)")
    shared.add_argument("--results-dir", default="results")
    shared.add_argument("--log-all", action="store_true", help="Record successful responses too")
    shared.add_argument("--store", action=argparse.BooleanOptionalAction, default=False)
    shared.add_argument("--notes", default="")
    shared.add_argument("--log-level", default=None)

    get = subparsers.add_parser("get", parents=[shared], help="GET with cyclic query parameters")
    get.add_argument("--params-file", help="JSON list of query parameter objects")
    get.add_argument("--param", action="append", default=[], help="key=value[,key=value]")

    post = subparsers.add_parser("post", parents=[shared], help="POST with a templated JSON body")
    post.add_argument("--body-template", help="JSON body template file")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(args.log_level or settings.log_level)

    try:
        config = build_config(args, settings)
        payloads = _build_payloads(args)
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1) from exc

    storage = default_storage() if args.store else None
    print(start_banner(config))
    report = asyncio.run(run_load(config, payloads, storage=storage))
    print(report.summary_line)
    logger.info("results_written", path=str(report.results_path), run_id=report.run_id)


if __name__ == "__main__":
    main()
