from dataclasses import replace

import pytest

from fakes import FakeElement, FakePage, SessionFactory
from runner.errors import NavigationError
from runner.recorder import ScenarioRecorder, _targets, find_navigation_button, synthesize_inputs
from scenario.dsl.models import PageElement, Scenario

LOGIN_URL = "https://shop.test/login"
CHECKOUT_URL = "https://shop.test/checkout"

LOGIN_HTML = """
<title>Login</title>
<label for="email">Email</label><input id="email" name="email" type="email">
<label>Password <input type="password" name="password"></label>
<input type="hidden" name="csrf" value="t">
<button id="signin" type="submit">Sign in</button>
"""

CHECKOUT_HTML = """
<title>Checkout</title>
<select name="country"><option>JP</option></select>
<label><input type="checkbox" name="terms"> Accept terms</label>
<button id="next">Next</button>
"""

CONFIRM_HTML = """
<title>Confirm</title>
<label for="coupon">Coupon</label><input id="coupon" name="coupon">
<label><input type="checkbox" name="terms"> Accept terms</label>
<button id="confirm">Confirm order</button>
"""


def _go(url, html):
    def navigate(page):
        page.url = url
        page.html = html

    return navigate


@pytest.fixture
def page():
    return FakePage(
        routes={LOGIN_URL: LOGIN_HTML, CHECKOUT_URL: CHECKOUT_HTML},
        elements={
            "[name='email']": FakeElement(),
            "[name='password']": FakeElement(),
            "#signin": FakeElement(on_click=_go("https://shop.test/account", "<title>Account</title>")),
            "#next": FakeElement(on_click=_go("https://shop.test/confirm", CONFIRM_HTML)),
            "#confirm": FakeElement(on_click=_go("https://shop.test/done", "<title>Done</title><p>Thanks</p>")),
        },
    )


def _actions(step):
    return [(action.action, action.selector, action.value, action.is_navigation) for action in step.actions]


@pytest.mark.asyncio
async def test_records_login_and_multi_screen_page(config, page):
    recorder = ScenarioRecorder(config, session_factory=SessionFactory(page))

    recording = await recorder.record_from_pages(
        [{"pageName": "Sign in", "pageUrl": LOGIN_URL}, CHECKOUT_URL],
        credentials={"EMAIL": "ada@example.test", "password": "pw"},
        scenario_name="Purchase",
    )

    scenario = recording.scenario
    assert isinstance(scenario, Scenario)
    assert scenario.scenario_name == "Purchase"
    login, checkout = scenario.steps

    assert login.page_name == "Sign in"
    assert _actions(login) == [
        ("fill", "[name='email']", "ada@example.test", False),
        ("fill", "[name='password']", "pw", False),
        ("click", "#signin", None, True),
    ]
    assert login.actions[2].delay_ms == 1000
    assert page.elements["[name='email']"].value == "ada@example.test"

    assert checkout.page_name == "Checkout"
    assert checkout.page_url == CHECKOUT_URL
    assert _actions(checkout) == [
        ("select_option", "[name='country']", "", False),
        ("check", "[name='terms']", None, False),
        ("click", "#next", None, True),
        ("fill", "[name='coupon']", "", False),
        ("click", "#confirm", None, True),
    ]
    assert [action.order for action in checkout.actions] == [1, 2, 3, 4, 5]

    first, second = recording.pages
    assert (first.stop_reason, first.final_url) == ("logged_in", "https://shop.test/account")
    assert (second.stop_reason, second.iterations, second.elements_found) == ("no_navigation_button", 3, 6)
    assert page.gotos() == [LOGIN_URL, CHECKOUT_URL, "about:blank"]


@pytest.mark.asyncio
async def test_login_without_credentials_stops_before_submitting(config, page):
    recorder = ScenarioRecorder(config, session_factory=SessionFactory(page))

    recording = await recorder.record_from_pages([LOGIN_URL])

    assert recording.pages[0].stop_reason == "login"
    assert [action.value for action in recording.scenario.steps[0].actions[:2]] == ["", ""]
    assert not [call for call in page.calls if call[0] == "click"]


@pytest.mark.asyncio
async def test_unchanged_page_stops_recording(config):
    html = "<title>Wizard</title><button id='next'>Continue</button>"
    page = FakePage(routes={"https://w.test/": html}, elements={"#next": FakeElement()})
    recorder = ScenarioRecorder(config, session_factory=SessionFactory(page))

    recording = await recorder.record_from_pages(["https://w.test/"])

    assert recording.pages[0].stop_reason == "no_navigation"
    assert recording.pages[0].iterations == 1


@pytest.mark.asyncio
async def test_iteration_cap(config):
    def grow(page):
        page.html += "<!-- more -->"

    page = FakePage(
        routes={"https://w.test/": "<button id='next'>Next</button>"},
        elements={"#next": FakeElement(on_click=grow)},
    )
    recorder = ScenarioRecorder(replace(config, recorder_max_iterations=3), session_factory=SessionFactory(page))

    recording = await recorder.record_from_pages(["https://w.test/"])

    assert recording.pages[0].stop_reason == "max_iterations"
    assert recording.pages[0].iterations == 3
    assert [action.action for action in recording.scenario.steps[0].actions] == ["click"] * 3


@pytest.mark.asyncio
async def test_failures_are_recorded_and_recording_continues(config, page):
    page.goto_errors["https://down.test/"] = NavigationError("unreachable")
    page.routes["https://broken.test/"] = "<button id='ghost'>Next</button>"
    recorder = ScenarioRecorder(config, session_factory=SessionFactory(page))

    recording = await recorder.record_from_pages(["https://down.test/", "https://broken.test/", CHECKOUT_URL])

    reasons = [recorded.stop_reason for recorded in recording.pages]
    assert reasons == ["navigation_failed", "click_failed", "no_navigation_button"]
    assert recording.scenario.steps[0].actions == ()
    assert len(recording.scenario.steps) == 3
    payload = recording.to_payload()
    assert payload["recording"][1]["stopReason"] == "click_failed"


def test_page_targets_are_validated():
    with pytest.raises(ValueError):
        _targets([])
    with pytest.raises(ValueError):
        _targets([{"order": 1, "pageUrl": "https://a.test"}, {"order": 1, "pageUrl": "https://b.test"}])

    targets = _targets([{"order": 5, "pageUrl": "https://b.test"}, "https://a.test"])
    assert [(target.order, target.page_url) for target in targets] == [(2, "https://a.test"), (5, "https://b.test")]


def test_synthesize_inputs_skips_seen_and_unfillable_elements():
    elements = [
        PageElement(type="input", name="email", label="E-mail"),
        PageElement(type="input", name="upload", input_type="file"),
        PageElement(type="input", name="token", input_type="hidden"),
        PageElement(type="input", name="email2", label="E-mail"),
        PageElement(type="radio", id="plan-a", label="Plan A"),
        PageElement(type="textarea", id="notes"),
        PageElement(type="button", label="Next"),
    ]
    seen = set()

    actions = synthesize_inputs(elements, seen, {"e-mail": "x@y.z"})

    assert actions == [
        {"element": "E-mail", "action": "fill", "selector": "[name='email']", "value": "x@y.z"},
        {"element": "Plan A", "action": "check", "selector": "#plan-a"},
        {"element": "notes", "action": "fill", "selector": "#notes", "value": ""},
    ]
    assert synthesize_inputs(elements, seen) == []


def test_find_navigation_button_uses_document_order():
    elements = [
        PageElement(type="link", label="Next page", href="/n"),
        PageElement(type="button", label="Cancel"),
        PageElement(type="button", label="Submit form"),
        PageElement(type="button", label="Continue"),
    ]

    assert find_navigation_button(elements).label == "Submit form"
    assert find_navigation_button(elements[:2]) is None


@pytest.mark.asyncio
async def test_recorded_payload_parses_back_into_the_same_scenario(config, page):
    recorder = ScenarioRecorder(config, session_factory=SessionFactory(page))

    recording = await recorder.record_from_pages([CHECKOUT_URL], description="checkout flow")

    assert Scenario.model_validate(recording.to_payload()) == recording.scenario
