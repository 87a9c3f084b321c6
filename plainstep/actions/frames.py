from playwright.sync_api import Error as PlaywrightError

from plainstep.actions.base import ActionContext
from plainstep.errors import ActionFailedError, raise_if_crash
from plainstep.models.dsl import ParsedStep
from plainstep.parser.hints import extract_hinted_selector, finalize_selector, strip_quotes, xpath_literal
from plainstep.resolver.dom import SCROLL_INTO_VIEW_JS, safe_dispose

READY_STATE_JS = "() => document.readyState === 'interactive' || document.readyState === 'complete'"


def iframe_selector(target: str) -> str:
    hint = extract_hinted_selector(target or "")
    if hint and not hint.remaining_step:
        return finalize_selector(hint.type, hint.value)
    text = strip_quotes(target or "").strip()
    literal = xpath_literal(text)
    return (
        f"xpath=//iframe[@id={literal} or @name={literal} or @title={literal}"
        f" or contains(@class, {literal}) or contains(@src, {literal})]"
    )


def switch_to_iframe(ctx: ActionContext, step: ParsedStep):
    settings = ctx.settings
    try:
        ctx.frame.wait_for_selector("iframe", state="attached", timeout=settings.iframe_any_timeout_ms)
    except PlaywrightError as e:
        raise_if_crash(e)
        raise ActionFailedError("No iframe found on the page") from e

    selector = iframe_selector(step.target) if step.target else "iframe"
    try:
        iframe = ctx.frame.wait_for_selector(selector, state="attached", timeout=settings.iframe_match_timeout_ms)
    except PlaywrightError as e:
        raise_if_crash(e)
        raise ActionFailedError(f"Iframe not found: {step.target}") from e

    try:
        try:
            iframe.evaluate(SCROLL_INTO_VIEW_JS)
        except PlaywrightError as e:
            raise_if_crash(e)

        frame = None
        for attempt in range(settings.content_frame_retries):
            frame = iframe.content_frame()
            if frame is not None:
                break
            ctx.page.wait_for_timeout(settings.content_frame_interval_ms)
        if frame is None:
            raise ActionFailedError(f"Iframe {selector} has no content frame")

        try:
            frame.wait_for_function(READY_STATE_JS, timeout=settings.iframe_ready_timeout_ms)
        except PlaywrightError as e:
            raise_if_crash(e)
            raise ActionFailedError(f"Iframe {selector} never finished loading") from e
    finally:
        safe_dispose(iframe)

    ctx.frame = frame
    ctx.log.info(f"Switched to iframe {selector}")


def switch_to_main_content(ctx: ActionContext, step: ParsedStep):
    ctx.frame = ctx.page
    ctx.log.info("Switched to main content")
