"""Flask HTTP front end over :class:`~scenario.service.ScenarioService` and background runs."""

from __future__ import annotations

import asyncio
import atexit
import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any, AsyncIterator, Iterator, Optional

from flask import Flask, Response, jsonify, request, stream_with_context
from werkzeug.exceptions import HTTPException

from scenario.dsl.registry import registry
from scenario.service import ScenarioService

from .runs import RunManager

app = Flask(__name__)
logging.basicConfig(level=logging.INFO)
log = logging.getLogger("runner.server")

_service: ScenarioService | None = None
_run_manager: RunManager | None = None


def _get_service() -> ScenarioService:
    global _service
    if _service is None:
        _service = ScenarioService()
    return _service


def _get_run_manager() -> RunManager:
    global _run_manager
    if _run_manager is None:
        _run_manager = RunManager(_get_service())
    return _run_manager


@atexit.register
def _shutdown_run_manager() -> None:  # pragma: no cover - shutdown path
    manager = _run_manager
    if manager is None:
        return
    manager.shutdown()


@app.errorhandler(Exception)
def handle_exception(error):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description}), error.code
    correlation_id = str(uuid.uuid4())[:8]
    log.exception("[%s] Uncaught exception: %s", correlation_id, error)
    return jsonify(
        {
            "status": "Failed",
            "errorMessage": f"Internal failure - {error}",
            "correlation_id": correlation_id,
        }
    ), 500


def _json_body() -> Optional[Any]:
    return request.get_json(force=True, silent=True)


def _scenario_payload(data: Any) -> Any:
    """Accept ``{"testJson": "..."}`` wrappers as well as a bare scenario object."""

    if isinstance(data, Mapping):
        for key, value in data.items():
            if isinstance(key, str) and key.lower() == "testjson":
                return value
    return data


def _iterate(agen: AsyncIterator[Any]) -> Iterator[Any]:
    loop = asyncio.new_event_loop()
    try:
        while True:
            try:
                item = loop.run_until_complete(agen.__anext__())
            except StopAsyncIteration:
                break
            yield item
    finally:
        loop.run_until_complete(agen.aclose())
        loop.close()


# ---------------------------------------------------------------------------
# Test executor


@app.post("/api/test-executor/execute")
def execute_test():
    data = _json_body()
    if data is None:
        return jsonify({"error": "request body must be JSON"}), 400
    result = _get_service().execute_test(_scenario_payload(data))
    return jsonify(result)


@app.post("/api/test-executor/execute-stream")
def execute_test_stream():
    data = _json_body()
    if data is None:
        return jsonify({"error": "request body must be JSON"}), 400
    events = _get_service().stream_execution(_scenario_payload(data))

    def generate() -> Iterator[str]:
        for event in _iterate(events):
            yield json.dumps(event.as_dict(), ensure_ascii=False) + "\n"

    return Response(stream_with_context(generate()), mimetype="application/x-ndjson")


@app.post("/api/test-executor/runs")
def start_run():
    data = _json_body()
    if data is None:
        return jsonify({"error": "request body must be JSON"}), 400
    run_id = _get_run_manager().start_run(_scenario_payload(data))
    return jsonify({"run_id": run_id}), 202


@app.get("/api/test-executor/runs/<run_id>")
def get_run(run_id: str):
    info = _get_run_manager().get_status(run_id)
    if info is None:
        return jsonify({"error": "run not found"}), 404
    return jsonify(info)


@app.post("/api/test-executor/runs/<run_id>/cancel")
def cancel_run(run_id: str):
    if not _get_run_manager().cancel_run(run_id):
        return jsonify({"error": "run not found"}), 404
    return jsonify({"status": "cancelling"})


@app.get("/api/test-executor/actions")
def list_actions():
    return jsonify(registry.metadata())


# ---------------------------------------------------------------------------
# Recorder and analyzer


@app.post("/api/test-scenario/generate-json")
def generate_scenario_json():
    data = _json_body()
    if not isinstance(data, Mapping):
        return jsonify({"error": "request body must be a JSON object"}), 400
    try:
        payload = _get_service().generate_scenario_json(data)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(payload)


@app.post("/api/page-analyzer/analyze-html")
def analyze_html():
    data = _json_body()
    html = None
    if isinstance(data, Mapping):
        html = data.get("htmlContent", data.get("html"))
    if not isinstance(html, str) or not html.strip():
        return jsonify({"error": "htmlContent is required"}), 400
    return jsonify(_get_service().analyze_html(html))


@app.get("/api/test-data")
def list_test_data():
    data_set = request.args.get("dataSet") or None
    return jsonify(_get_service().test_data_entries(data_set))


@app.get("/healthz")
def health():  # pragma: no cover - trivial endpoint
    return "ok", 200


if __name__ == "__main__":  # pragma: no cover - manual run helper
    app.run("0.0.0.0", 7000, threaded=True)
