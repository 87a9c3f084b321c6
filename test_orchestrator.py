from playwright.sync_api import Error as PlaywrightError

from conftest import (
    FakeAI, FakeElement, FakePage, FakeSession, fast_resolver_settings, fast_settings, no_prompt, no_quirks,
)
from plainstep.actions.interaction import SUBMIT_SELECTORS
from plainstep.browser.credentials import CredentialStore
from plainstep.executor.healing import build_healed_step, can_heal
from plainstep.executor.orchestrator import TestExecutor
from plainstep.models.ai import SelectorSuggestion
from plainstep.parser.step_parser import parse


def executor(session, ai=None, credentials=None):
    return TestExecutor(
        ai_service=ai,
        ai_enabled=ai is not None,
        settings=fast_settings(),
        resolver_settings=fast_resolver_settings(),
        quirks=no_quirks(),
        credentials=credentials or CredentialStore(None, None, prompt=no_prompt, secret_prompt=no_prompt),
        log_dir=None,
        session_factory=lambda: session,
    )


def login_page():
    page = FakePage()
    page.add("#username", FakeElement("user", tag="input", type="text", value=""))
    page.add("#password", FakeElement("pw", tag="input", type="password", value=""))
    page.add(SUBMIT_SELECTORS[0], FakeElement("submit", tag="button"))
    return page


def test_login_flow_passes():
    page = login_page()
    session = FakeSession(page)
    runner = executor(session, credentials=CredentialStore(None, "s3cret"))

    result = runner.execute_test_case("TC-1", [
        "Navigate to https://example.com/login",
        "Type 'alice' into the username field",
        "Type {credential-password} into the password field",
    ], title="Login")

    assert result.status == "passed"
    assert [s.status for s in result.steps] == ["passed"] * 3
    assert [s.step_number for s in result.steps] == [1, 2, 3]
    assert result.title == "Login"
    assert result.logs
    assert session.closed == 1
    assert runner.credentials._values == {"password": "s3cret"}
    runner.close()
    assert runner.credentials._values == {}


def test_fail_fast_stops_after_failed_step():
    page = FakePage()
    page.add('[id="first"]', FakeElement("first"))
    third = page.add('[id="third"]', FakeElement("third"))

    result = executor(FakeSession(page)).execute_test_case("TC-2", [
        "Click (id: first)",
        "Click (id: missing)",
        "Click (id: third)",
    ])

    assert result.status == "failed"
    assert len(result.steps) == 2
    failed = result.steps[1]
    assert failed.status == "failed"
    assert failed.failure_type == "elementNotFound"
    assert failed.screenshot_base64
    assert "missing" in failed.message
    assert third.clicks == 0


def test_failed_step_is_healed_on_first_retry():
    page = FakePage()
    broken = PlaywrightError("Element is not clickable")
    page.add('[id="old"]', FakeElement("old", click_error=broken, js_click_error=broken))
    fresh = page.add("#new", FakeElement("new"))
    ai = FakeAI([SelectorSuggestion(suggested_selector="#new", suggested_strategy="css")])

    result = executor(FakeSession(page), ai).execute_test_case("TC-3", ["Click (id: old)"])

    step = result.steps[0]
    assert step.status == "passed"
    assert step.heal_attempts == 1
    assert step.healed_step == "click (css: #new)"
    assert fresh.clicks == 1


def test_healing_stops_after_retry_budget():
    page = FakePage()
    broken = PlaywrightError("Element is not clickable")
    page.add('[id="old"]', FakeElement("old", click_error=broken, js_click_error=broken))
    ai = FakeAI([SelectorSuggestion(suggested_selector="#nope")])

    result = executor(FakeSession(page), ai).execute_test_case("TC-4", ["Click (id: old)"])

    step = result.steps[0]
    assert step.status == "failed"
    assert step.heal_attempts == 2
    assert step.failure_type == "elementNotFound"


def test_no_healing_without_suggestion():
    page = FakePage()
    result = executor(FakeSession(page), FakeAI()).execute_test_case("TC-5", ["Click (id: ghost)"])

    assert result.steps[0].heal_attempts == 0
    assert result.status == "failed"


def test_ambiguous_step_is_interpreted():
    page = FakePage()
    widget = page.add('[id="widget"]', FakeElement("widget"))
    ai = FakeAI(interpretations={"Frobnicate the widget": "click (id: widget)"})

    result = executor(FakeSession(page), ai).execute_test_case("TC-6", ["Frobnicate the widget"])

    assert result.status == "passed"
    assert widget.clicks == 1
    assert ai.interpret_calls == ["Frobnicate the widget"]


def test_crash_recovery_restarts_case(crash_error):
    crashed = FakePage()
    crashed.goto_error = crash_error
    healthy = FakePage()
    session = FakeSession(crashed, healthy)

    result = executor(session).execute_test_case("TC-7", ["Navigate to https://example.com", "Wait 1 second"])

    assert result.status == "passed"
    assert result.crash_recoveries == 1
    assert len(result.steps) == 2
    assert healthy.navigations == ["https://example.com"]


def test_repeated_crash_fails_case(crash_error):
    crashed = FakePage()
    crashed.goto_error = crash_error
    session = FakeSession(crashed)

    result = executor(session).execute_test_case("TC-8", ["Navigate to https://example.com"])

    assert result.status == "failed"
    assert result.crash_recoveries == 1
    assert result.steps[-1].failure_type == "other"
    assert "crashed" in result.steps[-1].message


def test_launch_failure_is_reported():
    session = FakeSession(start_error=RuntimeError("chromium missing"))

    result = executor(session).execute_test_case("TC-9", ["Wait 1 second"])

    assert result.status == "failed"
    assert result.steps[0].step_number == 0
    assert "chromium missing" in result.steps[0].message


def test_result_serialises_with_camel_case_keys():
    result = executor(FakeSession(FakePage())).execute_test_case("TC-10", ["Wait 1 second"])

    data = result.model_dump(by_alias=True)
    assert data["testCaseId"] == "TC-10"
    assert data["steps"][0]["stepNumber"] == 1
    assert "durationMs" in data


def test_healed_steps_reparse_to_the_same_action():
    suggestion = SelectorSuggestion(suggested_selector="//input[@name='q']", suggested_strategy="xpath")
    for text in [
        "Type 'shoes' into the search box",
        "Select 'Canada' from the country dropdown",
        "Verify the greeting has text 'Hi'",
        "Click Delete and accept confirm",
        "Upload 'a.txt' to the file field",
    ]:
        step = parse(text)
        healed = parse(build_healed_step(step, suggestion))
        assert healed.action == step.action
        assert healed.target == "(xpath: //input[@name='q'])"
        assert healed.value == step.value
        assert healed.file_path == step.file_path
        assert healed.expects_dialog == step.expects_dialog
        if step.assertion:
            assert healed.assertion.type == step.assertion.type
            assert healed.assertion.expected_text == step.assertion.expected_text


def test_healed_drag_keeps_the_other_end():
    step = parse("Drag the photo to the trash")
    suggestion = SelectorSuggestion(suggested_selector="#bin")

    healed = parse(build_healed_step(step, suggestion, failed_target=step.destination_target))

    assert healed.target == "photo"
    assert healed.destination_target == "(css: #bin)"


def test_navigation_and_page_assertions_are_not_healed():
    assert not can_heal(parse("Navigate to https://example.com"))
    assert not can_heal(parse("Verify the page contains 'Hi'"))
    assert can_heal(parse("Verify (id: msg) has text 'Hi'"))


def test_three_step_login_with_hints():
    page = FakePage()
    email = page.add("#email", FakeElement("email", tag="input", type="email", value=""))
    submit = page.add("#submit", FakeElement("submit", tag="button"))

    result = executor(FakeSession(page)).execute_test_case("TC-11", [
        "navigate to https://example.com/login",
        'type "user@example.com" into (css: #email)',
        "click (css: #submit)",
    ])

    assert result.status == "passed"
    assert [(s.step_number, s.status) for s in result.steps] == [(1, "passed"), (2, "passed"), (3, "passed")]
    assert page.navigations == ["https://example.com/login"]
    assert email.filled[-1] == "user@example.com"
    assert submit.clicks == 1


def test_ai_client_crash_during_healing_fails_the_step():
    page = FakePage()
    ai = FakeAI([UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")])

    result = executor(FakeSession(page), ai).execute_test_case("TC-12", ["Click (id: gone)"])

    assert result.status == "failed"
    step = result.steps[0]
    assert step.failure_type == "elementNotFound"
    assert step.heal_attempts == 0
    assert any("failed unexpectedly" in line for line in result.logs)


def test_ai_client_crash_during_interpretation_keeps_fallback_click():
    page = FakePage()
    ai = FakeAI(interpretations={"Frobnicate the widget": RuntimeError("client exploded")})

    result = executor(FakeSession(page), ai).execute_test_case("TC-13", ["Frobnicate the widget"])

    assert ai.interpret_calls == ["Frobnicate the widget"]
    assert result.steps[0].step_description == "Frobnicate the widget"
    assert result.status == "failed"
    assert result.steps[0].failure_type == "elementNotFound"


def test_prompted_password_is_forgotten_after_each_case():
    asked = []
    credentials = CredentialStore(None, None, prompt=no_prompt,
                                  secret_prompt=lambda label: asked.append(label) or "pw")
    session = FakeSession(login_page(), login_page())
    runner = executor(session, credentials=credentials)
    steps = ["Type {credential-password} into the password field"]

    assert runner.execute_test_case("TC-14", steps).status == "passed"
    assert credentials._values == {}
    assert runner.execute_test_case("TC-15", steps).status == "passed"

    assert len(asked) == 2
