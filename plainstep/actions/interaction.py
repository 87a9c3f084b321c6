from playwright.sync_api import Error as PlaywrightError

from plainstep.actions.base import ActionContext
from plainstep.actions.navigation import dismiss_overlays
from plainstep.browser.credentials import CredentialStore
from plainstep.errors import ActionFailedError, ElementNotFoundError, raise_if_crash
from plainstep.models.dsl import ParsedStep
from plainstep.parser.hints import extract_hinted_selector
from plainstep.resolver.dom import JS_CLICK, element_info, is_visible, safe_dispose
from plainstep.resolver.resolver import ResolvedElement
from plainstep.resolver.strategies import SUBMIT_WORDS

_UP = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOW = "abcdefghijklmnopqrstuvwxyz"

# Tried in order after a password is typed
SUBMIT_SELECTORS = [
    'button[type="submit"]',
    'input[type="submit"]',
    "xpath=//button[" + " or ".join(
        f"contains(translate(normalize-space(.), '{_UP}', '{_LOW}'), '{w}')"
        for w in ("log in", "login", "sign in", "signin", "submit", "continue")
    ) + "]",
    '[role="button"][aria-label*="log in" i]',
    '[role="button"][aria-label*="sign in" i]',
]

SCROLL_SCRIPTS = {
    "top": "() => window.scrollTo(0, 0)",
    "bottom": "() => window.scrollTo(0, document.body.scrollHeight)",
    "up": "() => window.scrollBy(0, -window.innerHeight)",
    "down": "() => window.scrollBy(0, window.innerHeight)",
}


def _settle(ctx: ActionContext):
    try:
        ctx.page.wait_for_load_state("domcontentloaded", timeout=ctx.settings.action_timeout_ms)
    except PlaywrightError as e:
        raise_if_crash(e)


def click_element(ctx: ActionContext, element: ResolvedElement):
    handle = element.handle
    try:
        handle.scroll_into_view_if_needed(timeout=ctx.settings.action_timeout_ms)
    except PlaywrightError as e:
        raise_if_crash(e)
        ctx.log.debug(f"scrollIntoView failed: {e}")
    try:
        handle.click(timeout=ctx.settings.action_timeout_ms)
        ctx.log.info(f"Clicked {element.selector}")
    except PlaywrightError as e:
        raise_if_crash(e)
        ctx.log.warning(f"Native click on {element.selector} failed, trying JS click: {str(e).splitlines()[0]}")
        try:
            handle.evaluate(JS_CLICK)
        except PlaywrightError as js_error:
            raise_if_crash(js_error)
            raise ActionFailedError(f"Click failed on {element.selector}: {str(e).splitlines()[0]}") from e
        ctx.log.info(f"Clicked {element.selector} via JS")


def _looks_like_submit(step: ParsedStep) -> bool:
    text = " ".join(t for t in (step.target, step.descriptive_term) if t)
    return bool(SUBMIT_WORDS.search(text))


def click(ctx: ActionContext, step: ParsedStep):
    dismiss_overlays(ctx, ctx.quirks.overlay_selectors(ctx.url))
    try:
        with ctx.element(step.target, step) as element:
            click_element(ctx, element)
    except ElementNotFoundError:
        if ctx.password_submitted and _looks_like_submit(step):
            ctx.log.info("Login form was already submitted after the password, treating submit click as done")
            return
        raise
    _settle(ctx)


def _auto_submit(ctx: ActionContext, field: ResolvedElement):
    for selector in SUBMIT_SELECTORS:
        try:
            handles = ctx.frame.query_selector_all(selector)
        except PlaywrightError as e:
            raise_if_crash(e)
            continue
        chosen = next((h for h in handles if is_visible(h)), None)
        for h in handles:
            if h is not chosen:
                safe_dispose(h)
        if chosen is not None:
            ctx.log.info(f"Submitting login form via {selector}")
            try:
                click_element(ctx, ResolvedElement(chosen, selector, "auto-submit"))
            finally:
                safe_dispose(chosen)
            ctx.password_submitted = True
            _settle(ctx)
            return
    ctx.log.info("No submit button found, pressing Enter")
    field.handle.press("Enter")
    ctx.password_submitted = True
    _settle(ctx)


def type_text(ctx: ActionContext, step: ParsedStep):
    placeholder = CredentialStore.placeholder_key(step.value)
    value = ctx.credentials.resolve(step.value) or ""

    with ctx.element(step.target, step) as element:
        info = element_info(element.handle)
        is_password = info.get("type") == "password"
        shown = "*" * 8 if (is_password or placeholder == "password") else value

        if is_password and value and info.get("value") == value:
            ctx.log.info(f"Password field {element.selector} already holds the value, not retyping")
        else:
            element.handle.fill(value, timeout=ctx.settings.action_timeout_ms)
            ctx.log.info(f"Typed '{shown}' into {element.selector}")

        search_hints = " ".join(str(info.get(k) or "") for k in ("type", "name", "placeholder")).lower()
        if "search" in search_hints:
            ctx.page.wait_for_timeout(ctx.settings.search_settle_ms)

        if is_password and ctx.settings.auto_submit_password:
            _auto_submit(ctx, element)


def select(ctx: ActionContext, step: ParsedStep):
    if step.value is None:
        raise ActionFailedError("Select step has no option value")
    with ctx.element(step.target, step) as element:
        try:
            selected = element.handle.select_option(value=step.value, timeout=2000)
        except PlaywrightError as e:
            raise_if_crash(e)
            selected = []
        if not selected:
            ctx.log.info(f"No option with value '{step.value}', matching by label")
            selected = element.handle.select_option(label=step.value, timeout=ctx.settings.action_timeout_ms)
        if not selected:
            raise ActionFailedError(f"Option '{step.value}' not found in {element.selector}")
        ctx.log.info(f"Selected {selected} in {element.selector}")


def hover(ctx: ActionContext, step: ParsedStep):
    with ctx.element(step.target, step) as element:
        element.handle.hover(timeout=ctx.settings.action_timeout_ms)
        ctx.log.info(f"Hovered over {element.selector}")


def scroll(ctx: ActionContext, step: ParsedStep):
    target = step.target or "down"
    is_hint = extract_hinted_selector(target) is not None
    if not is_hint and target.lower() in SCROLL_SCRIPTS:
        ctx.frame.evaluate(SCROLL_SCRIPTS[target.lower()])
        ctx.log.info(f"Scrolled {target.lower()}")
        return
    with ctx.element(target, step) as element:
        element.handle.scroll_into_view_if_needed(timeout=ctx.settings.action_timeout_ms)
        ctx.log.info(f"Scrolled to {element.selector}")
