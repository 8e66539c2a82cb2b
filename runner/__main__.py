"""Command line entry point: ``python -m runner execute|record|serve``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from .config import RunConfig, load_config

log = logging.getLogger("runner")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="runner", description="Run and record JSON browser test scenarios")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.toml (default: ./config.toml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    execute = commands.add_parser("execute", help="Execute a scenario JSON file")
    execute.add_argument("scenario", type=Path, help="Scenario JSON file ('-' reads stdin)")
    execute.add_argument("--headed", action="store_true", help="Show the browser window")
    execute.add_argument("--screenshots", action="store_true", help="Capture a screenshot after every action")
    execute.add_argument("--output", type=Path, default=None, help="Write the result JSON here instead of stdout")

    record = commands.add_parser("record", help="Record a scenario from a list of page URLs")
    record.add_argument("urls", nargs="+", help="Page URLs in visiting order")
    record.add_argument("--name", default="Recorded scenario", help="Scenario name")
    record.add_argument("--description", default=None)
    record.add_argument("--credentials", type=Path, default=None,
                        help="JSON object mapping field label/id/name to the value used at login")
    record.add_argument("--headed", action="store_true")
    record.add_argument("--output", type=Path, default=None)

    serve = commands.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=7000)
    return parser


def _emit(payload: dict, output: Optional[Path]) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if output is None:
        print(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    log.info("Wrote %s", output)


def _execute(args: argparse.Namespace, config: RunConfig) -> int:
    from scenario.service import ScenarioService

    if args.headed:
        config = replace(config, headless=False)
    if args.screenshots:
        config = replace(config, capture_screenshots=True)
    raw = sys.stdin.read() if str(args.scenario) == "-" else args.scenario.read_text(encoding="utf-8")
    result = ScenarioService(config).execute_test(raw)
    _emit(result, args.output)
    return 0 if result["status"] == "Passed" else 1


def _record(args: argparse.Namespace, config: RunConfig) -> int:
    from scenario.service import ScenarioService

    if args.headed:
        config = replace(config, headless=False)
    credentials = None
    if args.credentials is not None:
        credentials = json.loads(args.credentials.read_text(encoding="utf-8"))
    payload = ScenarioService(config).generate_scenario_json(
        {
            "scenarioName": args.name,
            "description": args.description,
            "pages": list(args.urls),
            "credentials": credentials,
        }
    )
    _emit(payload, args.output)
    return 0


def _serve(args: argparse.Namespace) -> int:
    from .automation_server import app

    app.run(args.host, args.port, threaded=True)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    config = load_config(args.config)
    if args.command == "execute":
        return _execute(args, config)
    if args.command == "record":
        return _record(args, config)
    return _serve(args)


if __name__ == "__main__":  # pragma: no cover - manual run helper
    sys.exit(main())
