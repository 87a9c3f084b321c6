import os
from typing import Dict, List, Optional

import pytest
from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from plainstep.actions.assertion import PAGE_TEXT_JS
from plainstep.actions.base import ActionContext
from plainstep.actions.drag import CHILD_COUNT_JS, MARK_ORIGIN_JS, PARENT_CHANGED_JS
from plainstep.browser.credentials import CredentialStore
from plainstep.browser.quirks import SiteQuirks
from plainstep.config import ExecutorSettings, ResolverSettings
from plainstep.llm.base import AIService
from plainstep.models.ai import SelectorSuggestion
from plainstep.resolver.dom import DOM_SNIPPET_JS, ELEMENT_INFO_JS, JS_CLICK, SCROLL_INTO_VIEW_JS, VISIBILITY_JS
from plainstep.resolver.resolver import ElementResolver
from plainstep.runlog import RunLogger


class FakeElement:
    """Stands in for a Playwright ElementHandle."""

    def __init__(self, label="el", visible=True, tag="div", type="", name="", placeholder="",
                 value=None, text="", options=None, children=0, click_error=None, js_click_error=None,
                 on_click=None, on_files=None, frame=None, box=None):
        self.label = label
        self.visible = visible
        self.info = {"tag": tag, "type": type, "name": name, "placeholder": placeholder,
                     "value": value, "text": text}
        self.options = options or []
        self.children = children
        self.moved = False
        self.files: List[str] = []
        self.click_error = click_error
        self.js_click_error = js_click_error
        self.on_click = on_click
        self.on_files = on_files
        self.frame = frame
        self.box = box if box is not None else {"x": 10, "y": 20, "width": 100, "height": 40}
        self.clicks = 0
        self.js_clicks = 0
        self.filled: List[str] = []
        self.pressed: List[str] = []
        self.hovered = 0
        self.scrolled = 0
        self.disposed = False

    def __repr__(self):
        return f"FakeElement({self.label})"

    def evaluate(self, script, arg=None):
        if script == VISIBILITY_JS:
            return self.visible
        if script == ELEMENT_INFO_JS:
            return dict(self.info)
        if script == SCROLL_INTO_VIEW_JS:
            return None
        if script == JS_CLICK:
            if self.js_click_error:
                raise self.js_click_error
            self.js_clicks += 1
            self._clicked()
            return None
        if script == CHILD_COUNT_JS:
            return self.children
        if script == MARK_ORIGIN_JS:
            return True
        if script == PARENT_CHANGED_JS:
            return self.moved
        return None

    def _clicked(self):
        if self.on_click:
            self.on_click(self)

    def click(self, timeout=None):
        if self.click_error:
            raise self.click_error
        self.clicks += 1
        self._clicked()

    def fill(self, value, timeout=None):
        self.filled.append(value)
        self.info["value"] = value

    def press(self, key, timeout=None):
        self.pressed.append(key)

    def hover(self, timeout=None):
        self.hovered += 1

    def scroll_into_view_if_needed(self, timeout=None):
        self.scrolled += 1

    def select_option(self, value=None, label=None, timeout=None):
        if value is not None:
            return [v for v, _ in self.options if v == value]
        return [v for v, l in self.options if l == label]

    def set_input_files(self, files, timeout=None):
        self.files.append(os.path.basename(files))
        if self.on_files:
            self.on_files()

    def content_frame(self):
        return self.frame

    def bounding_box(self):
        return self.box

    def dispose(self):
        self.disposed = True


class FakeLocator:
    def __init__(self, frame, selector, index=0):
        self.frame = frame
        self.selector = selector
        self.index = index

    def nth(self, index):
        return FakeLocator(self.frame, self.selector, index)

    def drag_to(self, target, timeout=None):
        if self.frame.drag_error:
            raise self.frame.drag_error
        self.frame.drags.append((self.selector, target.selector))
        self.frame.drag_positions.append((self.index, target.index))


class FakeFrame:
    """Stands in for a Playwright Frame: elements are registered per selector."""

    def __init__(self, url="https://example.com/", markup="<html></html>", page_text=""):
        self.url = url
        self.markup = markup
        self.page_text = page_text
        self.elements: Dict[str, List[FakeElement]] = {}
        self.queries: List[str] = []
        self.waits: List[tuple] = []
        self.scripts: Dict[str, object] = {}
        self.evaluated: List[str] = []
        self.drags: List[tuple] = []
        self.drag_positions: List[tuple] = []
        self.drag_error: Optional[Exception] = None
        self.query_error: Optional[Exception] = None

    def add(self, selector, *elements):
        self.elements.setdefault(selector, []).extend(elements)
        return elements[0] if len(elements) == 1 else elements

    def query_selector_all(self, selector):
        self.queries.append(selector)
        if self.query_error:
            raise self.query_error
        return list(self.elements.get(selector, []))

    def wait_for_selector(self, selector, state="visible", timeout=None):
        self.waits.append((selector, state, timeout))
        for element in self.elements.get(selector, []):
            if state != "visible" or element.visible:
                return element
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    def wait_for_function(self, script, timeout=None):
        return True

    def evaluate(self, script, arg=None):
        self.evaluated.append(script)
        if script in self.scripts:
            result = self.scripts[script]
            if isinstance(result, Exception):
                raise result
            return result
        if script == PAGE_TEXT_JS:
            return self.page_text
        if script == DOM_SNIPPET_JS:
            return f"url: {self.url}"
        return None

    def content(self):
        return self.markup

    def locator(self, selector):
        return FakeLocator(self, selector)


class FakeMouse:
    def __init__(self):
        self.moves: List[tuple] = []
        self.downs = 0
        self.ups = 0
        self.on_up = None

    def move(self, x, y, steps=1):
        self.moves.append((x, y))

    def down(self):
        self.downs += 1

    def up(self):
        self.ups += 1
        if self.on_up:
            self.on_up()


class FakeDialog:
    def __init__(self, type="alert", message="Hello"):
        self.type = type
        self.message = message
        self.accepted = None
        self.prompt_text = None

    def accept(self, prompt_text=None):
        self.accepted = True
        self.prompt_text = prompt_text

    def dismiss(self):
        self.accepted = False


class FakePage(FakeFrame):
    def __init__(self, url="about:blank", **kwargs):
        super().__init__(url=url, **kwargs)
        self.mouse = FakeMouse()
        self.listeners: Dict[str, list] = {}
        self.navigations: List[str] = []
        self.load_states: List[str] = []
        self.timeouts: List[int] = []
        self.goto_error: Optional[Exception] = None

    def goto(self, url, wait_until=None, timeout=None):
        if self.goto_error:
            raise self.goto_error
        self.navigations.append(url)
        self.url = url

    def wait_for_load_state(self, state="load", timeout=None):
        self.load_states.append(state)

    def wait_for_timeout(self, ms):
        self.timeouts.append(ms)

    def once(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        if handler in self.listeners.get(event, []):
            self.listeners[event].remove(handler)

    def fire_dialog(self, dialog):
        handlers = self.listeners.pop("dialog", [])
        for handler in handlers:
            handler(dialog)
        return bool(handlers)

    def screenshot(self, type="png", full_page=False):
        return b"png"


class FakeSession:
    """BrowserSession double; each (re)launch hands out the next page."""

    def __init__(self, *pages, start_error=None, relaunch_error=None):
        self.pages = list(pages) or [FakePage()]
        self.start_error = start_error
        self.relaunch_error = relaunch_error
        self.page = None
        self.launches = 0
        self.closed = 0

    def start(self):
        if self.start_error:
            raise self.start_error
        self.page = self.pages[min(self.launches, len(self.pages) - 1)]
        self.launches += 1
        return self.page

    def relaunch(self):
        if self.relaunch_error:
            raise self.relaunch_error
        return self.start()

    def screenshot_base64(self):
        return "cG5n" if self.page is not None else None

    def close(self):
        self.closed += 1


class FakeAI(AIService):
    def __init__(self, suggestions=None, interpretations=None):
        self.suggestions = list(suggestions or [])
        self.interpretations = interpretations or {}
        self.suggest_calls = []
        self.interpret_calls = []

    def interpret_step(self, step):
        self.interpret_calls.append(step)
        result = self.interpretations.get(step, step)
        if isinstance(result, Exception):
            raise result
        return result

    def suggest_selector(self, context):
        self.suggest_calls.append(context)
        if not self.suggestions:
            return SelectorSuggestion()
        if len(self.suggestions) == 1:
            result = self.suggestions[0]
        else:
            result = self.suggestions.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def fast_resolver_settings():
    return ResolverSettings(
        ai_suggestion_wait_ms=50, fallback_wait_ms=10, fallback_budget_ms=200,
        ai_max_attempts=2, ai_retry_base_delay=0,
    )


def fast_settings():
    return ExecutorSettings(
        consent_settle_ms=0, dialog_wait_ms=300, upload_confirm_ms=500,
        content_frame_retries=3, content_frame_interval_ms=0, search_settle_ms=0,
    )


def no_quirks():
    return SiteQuirks(entries=[])


def no_prompt(label):
    raise AssertionError(f"unexpected prompt: {label}")


@pytest.fixture
def page():
    return FakePage(url="https://example.com/")


@pytest.fixture
def log():
    run_log = RunLogger("test-case")
    yield run_log
    run_log.close()


@pytest.fixture
def make_ctx(log):
    def build(page, ai_service=None, quirks=None, credentials=None, settings=None, base_url=""):
        quirks = quirks if quirks is not None else no_quirks()
        resolver = ElementResolver(log, ai_service, fast_resolver_settings(), quirks)
        return ActionContext(
            page=page, frame=page, log=log, resolver=resolver,
            settings=settings or fast_settings(),
            credentials=credentials or CredentialStore(None, None, prompt=no_prompt, secret_prompt=no_prompt),
            quirks=quirks, ai_enabled=ai_service is not None, base_url=base_url,
        )
    return build


@pytest.fixture
def crash_error():
    return PlaywrightError("Target page, context or browser has been closed")
