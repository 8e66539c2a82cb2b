import json

import pytest
from playwright.async_api import Error as PlaywrightError

from fakes import FakeElement, FakePage, SessionFactory
from runner.cancellation import CancellationToken
from runner.errors import BrowserLaunchError, ScenarioParseError
from runner.executor import ScenarioExecutor, parse_scenario
from scenario.dsl.results import ExecutionStatus


def _scenario(*steps):
    return {"scenarioName": "Checkout", "steps": list(steps)}


def _step(order, *actions, **extra):
    return {"order": order, "pageName": f"Page {order}", "actions": list(actions), **extra}


@pytest.fixture
def page():
    return FakePage(
        url="about:blank",
        elements={"#email": FakeElement(), "#go": FakeElement(), "#next": FakeElement()},
    )


def _events(config, result):
    path = config.log_root / result.run_id / "events.jsonl"
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


@pytest.mark.asyncio
async def test_successful_run(config, page):
    factory = SessionFactory(page)
    executor = ScenarioExecutor(config, session_factory=factory)
    payload = _scenario(
        _step(1, {"action": "fill", "selector": "#email", "value": "ada@example.test"}, pageUrl="https://example.test/"),
        _step(2, {"action": "click", "selector": "#go"}),
    )

    result = await executor.execute_scenario(payload)

    assert result.status is ExecutionStatus.PASSED
    assert result.error_message is None
    assert [step.step_order for step in result.step_outcomes] == [1, 2]
    assert (factory.opened, factory.closed) == (1, 1)
    assert page.gotos() == ["https://example.test/", "about:blank"]
    assert result.completed


@pytest.mark.asyncio
async def test_run_halts_after_first_failed_step(config, page):
    executor = ScenarioExecutor(config, session_factory=SessionFactory(page))
    payload = _scenario(
        _step(1, {"action": "click", "selector": "#go"}),
        _step(2, {"action": "click", "selector": "#missing"}, {"action": "click", "selector": "#next"}),
        _step(3, {"action": "click", "selector": "#next"}),
    )

    result = await executor.execute_scenario(payload)

    assert result.status is ExecutionStatus.FAILED
    assert [step.status for step in result.step_outcomes] == [ExecutionStatus.PASSED, ExecutionStatus.FAILED]
    assert result.error_message.startswith("Step 2 failed: Action 1 (click) failed: No element matching '#missing'")
    assert len(result.step_outcomes[1].action_outcomes) == 2
    assert page.gotos().count("about:blank") == 1


@pytest.mark.asyncio
async def test_invalid_scenario_never_opens_a_browser(config, page):
    factory = SessionFactory(page)
    executor = ScenarioExecutor(config, session_factory=factory)

    broken_json = await executor.execute_scenario('{"scenarioName": "x", ')
    no_steps = await executor.execute_scenario({"scenarioName": "Empty", "steps": []})

    assert broken_json.status is ExecutionStatus.FAILED
    assert broken_json.error_message.startswith("Invalid scenario JSON")
    assert no_steps.status is ExecutionStatus.FAILED
    assert no_steps.scenario_name == "Empty"
    assert no_steps.error_message.startswith("Invalid scenario: steps")
    assert factory.opened == 0
    assert page.calls == []


def test_parse_scenario_accepts_json_text():
    scenario = parse_scenario(json.dumps(_scenario(_step(1))))

    assert scenario.scenario_name == "Checkout"
    with pytest.raises(ScenarioParseError):
        parse_scenario(42)


@pytest.mark.asyncio
async def test_launch_failure_fails_the_run(config, page):
    factory = SessionFactory(page, launch_error=BrowserLaunchError("Failed to launch browser: no chromium"))
    executor = ScenarioExecutor(config, session_factory=factory)

    result = await executor.execute_scenario(_scenario(_step(1)))

    assert result.status is ExecutionStatus.FAILED
    assert result.error_message == "Failed to launch browser: no chromium"
    assert result.step_outcomes == []


@pytest.mark.asyncio
async def test_cleanup_failure_is_only_logged(config):
    page = FakePage(elements={"#go": FakeElement()}, goto_errors={"about:blank": PlaywrightError("gone")})
    executor = ScenarioExecutor(config, session_factory=SessionFactory(page))

    result = await executor.execute_scenario(_scenario(_step(1, {"action": "click", "selector": "#go"})))

    assert result.status is ExecutionStatus.PASSED


@pytest.mark.asyncio
async def test_cancellation_stops_the_run_and_still_cleans_up(config, page):
    token = CancellationToken()
    page.elements["#go"] = FakeElement(on_click=lambda _: token.cancel())
    executor = ScenarioExecutor(config, session_factory=SessionFactory(page))
    payload = _scenario(
        _step(1, {"action": "click", "selector": "#go"}, {"action": "click", "selector": "#next"}),
        _step(2, {"action": "click", "selector": "#next"}),
    )

    result = await executor.execute_scenario(payload, cancel=token)

    assert result.status is ExecutionStatus.FAILED
    assert result.error_message == "Execution cancelled"
    assert result.step_outcomes == []
    assert page.gotos() == ["about:blank"]


@pytest.mark.asyncio
async def test_step_listener_and_event_log(config, page):
    seen = []

    async def on_step(outcome):
        seen.append(outcome.step_order)

    executor = ScenarioExecutor(config, session_factory=SessionFactory(page))
    result = await executor.execute_scenario(
        _scenario(_step(1, {"action": "click", "selector": "#go"}), _step(2)),
        on_step=on_step,
    )

    assert seen == [1, 2]
    events = _events(config, result)
    assert [event["event"] for event in events] == ["action", "step", "step", "run"]
    assert [event["seq"] for event in events] == [1, 2, 3, 4]
    assert events[-1]["payload"]["status"] == "Passed"
    assert all(event["run_id"] == result.run_id for event in events)


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_the_run(config, page):
    def on_step(outcome):
        raise RuntimeError("listener down")

    executor = ScenarioExecutor(config, session_factory=SessionFactory(page))

    result = await executor.execute_scenario(_scenario(_step(1), _step(2)), on_step=on_step)

    assert result.status is ExecutionStatus.PASSED
    assert len(result.step_outcomes) == 2
