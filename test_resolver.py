import time

import pytest
from playwright.sync_api import Error as PlaywrightError

from conftest import FakeAI, FakeElement, FakeFrame, fast_resolver_settings, no_quirks
from plainstep.browser.quirks import SiteQuirks
from plainstep.errors import ElementNotFoundError, ExternalServiceError, SessionCrashedError
from plainstep.models.ai import SelectorSuggestion
from plainstep.models.dsl import ElementDescriptor
from plainstep.resolver.resolver import ElementResolver, suggestion_selector
from plainstep.resolver.strategies import fallback_strategies, login_heuristics


def _resolver(log, ai=None, quirks=None):
    return ElementResolver(log, ai, fast_resolver_settings(), quirks or no_quirks())


def _strategy(term, name):
    return next(selector for strategy, selector in fallback_strategies(term) if strategy == name)


def test_immediate_hit_never_calls_ai(log):
    frame = FakeFrame()
    button = frame.add('[id="go"]', FakeElement("go"))
    ai = FakeAI([SelectorSuggestion(suggested_selector="#other")])

    found = _resolver(log, ai).resolve(frame, ElementDescriptor.from_target("(id: go)"), ai_enabled=True)

    assert found.handle is button
    assert found.strategy == "immediate"
    assert ai.suggest_calls == []


def test_ai_suggestion_used_when_immediate_fails(log):
    frame = FakeFrame()
    target = frame.add("xpath=//button[@data-x='1']", FakeElement("ai"))
    ai = FakeAI([SelectorSuggestion(suggested_selector="//button[@data-x='1']", suggested_strategy="xpath")])

    descriptor = ElementDescriptor.from_target("(id: gone)")
    found = _resolver(log, ai).resolve(frame, descriptor, "Click (id: gone)", ai_enabled=True)

    assert found.handle is target
    assert found.strategy == "ai-suggestion"
    context = ai.suggest_calls[0]
    assert context.failed_selector == "(id: gone)"
    assert context.descriptive_term == "gone"
    assert context.original_step == "Click (id: gone)"
    assert context.page_url == frame.url


def test_ai_alternative_selector(log):
    frame = FakeFrame()
    alt = frame.add("#alt", FakeElement("alt"))
    ai = FakeAI([SelectorSuggestion(suggested_selector="#nope", alternative_selectors=["", "#alt"])])

    found = _resolver(log, ai).resolve(frame, ElementDescriptor.from_target("(id: gone)"), ai_enabled=True)

    assert found.handle is alt
    assert found.strategy == "ai-alternative"


def test_ai_outage_falls_through_to_fallbacks(log):
    frame = FakeFrame()
    button = frame.add(_strategy("Login", "fallback:button-text"), FakeElement("login", tag="button"))
    ai = FakeAI([ExternalServiceError("boom", retryable=True, status=503)])

    found = _resolver(log, ai).resolve(frame, ElementDescriptor.from_target("Login", "the Login button"),
                                       ai_enabled=True)

    assert found.handle is button
    assert found.strategy == "fallback:button-text"
    assert len(ai.suggest_calls) == 2


def test_unexpected_ai_client_error_still_runs_fallbacks(log):
    frame = FakeFrame()
    button = frame.add(_strategy("Login", "fallback:button-text"), FakeElement("login", tag="button"))
    ai = FakeAI([UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")])

    found = _resolver(log, ai).resolve(frame, ElementDescriptor.from_target("Login", "the Login button"),
                                       ai_enabled=True)

    assert found.handle is button
    assert len(ai.suggest_calls) == 1
    assert any("failed unexpectedly (UnicodeDecodeError)" in line for line in log.lines)


def test_ai_disabled_skips_service(log):
    frame = FakeFrame()
    frame.add("#Login", FakeElement("login"))
    ai = FakeAI([SelectorSuggestion(suggested_selector="#x")])

    found = _resolver(log, ai).resolve(frame, ElementDescriptor.from_target("Login"), ai_enabled=False)

    assert found.strategy == "fallback:id"
    assert ai.suggest_calls == []


def test_site_fallback_selectors_come_first(log):
    frame = FakeFrame(url="https://www.w3schools.com/howto/howto_css_modals.asp")
    modal_button = frame.add("#myBtn", FakeElement("modal"))
    quirks = SiteQuirks(config_path=None)

    found = _resolver(log, quirks=quirks).resolve(frame, ElementDescriptor.from_target("Open Modal"))

    assert found.handle is modal_button
    assert found.strategy == "site:w3schools"


def test_not_found_is_bounded_and_records_attempts(log):
    frame = FakeFrame(markup="<html>" + "x" * 50000 + "</html>")
    resolver = _resolver(log)

    started = time.monotonic()
    with pytest.raises(ElementNotFoundError) as excinfo:
        resolver.resolve(frame, ElementDescriptor.from_target("(id: missing)"))

    assert time.monotonic() - started < 5
    assert excinfo.value.selector == "(id: missing)"
    assert resolver.attempts[0].strategy_name == "immediate"
    assert all(a.outcome != "found" for a in resolver.attempts)
    assert any("truncated" in line for line in log.lines)


def test_hidden_matches_are_skipped(log):
    frame = FakeFrame()
    hidden = FakeElement("hidden", visible=False)
    shown = FakeElement("shown")
    frame.add(".row", hidden, shown)

    found = _resolver(log).resolve(frame, ElementDescriptor.from_target("(css: .row)"))

    assert found.handle is shown
    assert hidden.disposed
    assert found.index == 1


def test_hidden_allowed_when_visibility_not_required(log):
    frame = FakeFrame()
    hidden = frame.add("input.upload", FakeElement("file", visible=False))

    found = _resolver(log).resolve(frame, ElementDescriptor.from_target("(css: input.upload)"),
                                   require_visible=False)

    assert found.handle is hidden


def test_index_picks_nth_match(log):
    frame = FakeFrame()
    items = frame.add("li", FakeElement("a"), FakeElement("b"), FakeElement("c"))

    last = _resolver(log).resolve(frame, ElementDescriptor.from_target("(css: li)", index=-1))
    second = _resolver(log).resolve(frame, ElementDescriptor.from_target("(css: li)", index=1))

    assert last.handle is items[2]
    assert second.handle is items[1]


def test_crash_during_lookup_propagates(log, crash_error):
    frame = FakeFrame()
    frame.query_error = crash_error

    with pytest.raises(SessionCrashedError):
        _resolver(log).resolve(frame, ElementDescriptor.from_target("(id: any)"))


def test_invalid_selector_is_not_fatal(log):
    frame = FakeFrame()
    frame.query_error = PlaywrightError("Unexpected token in selector")

    with pytest.raises(ElementNotFoundError):
        _resolver(log).resolve(frame, ElementDescriptor.from_target("(css: ]]bad)"))


@pytest.mark.parametrize("raw, strategy, selector", [
    ("#id", "css", "#id"),
    ("//div", None, "xpath=//div"),
    ("(xpath: //a)", None, "xpath=//a"),
    ("(id: x)", None, '[id="x"]'),
    ("div > a", "xpath", "xpath=div > a"),
    ("css=.a", None, "css=.a"),
])
def test_suggestion_selector(raw, strategy, selector):
    assert suggestion_selector(raw, strategy) == selector


def test_login_heuristics():
    assert ("heuristic:password", "input[type=password]") in login_heuristics("the password field")
    assert any(name == "heuristic:username" for name, _ in login_heuristics("Email"))
    assert ("heuristic:submit", "button[type=submit]") in login_heuristics("Sign in")
    assert login_heuristics("Cancel") == []
