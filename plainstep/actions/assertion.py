from plainstep.actions.base import ActionContext
from plainstep.errors import ActionFailedError
from plainstep.models.dsl import ParsedStep, AssertionDetails
from plainstep.resolver.dom import ELEMENT_INFO_JS, is_visible

PAGE_TEXT_JS = "() => document.body ? document.body.innerText : ''"


def _compare(actual: str, expected: str, condition: str) -> bool:
    if condition == "equals":
        return actual.strip() == expected.strip()
    return expected in actual


def _page_text(ctx: ActionContext) -> str:
    text = ctx.frame.evaluate(PAGE_TEXT_JS) or ""
    return text


def _assert_url(ctx: ActionContext, details: AssertionDetails):
    actual = ctx.url
    expected = details.expected_text or ""
    if not _compare(actual, expected, details.condition):
        raise ActionFailedError(f"URL assertion failed: expected url to {details.condition} '{expected}', got '{actual}'")
    ctx.log.info(f"URL {details.condition} '{expected}'")


def _assert_element(ctx: ActionContext, step: ParsedStep, details: AssertionDetails):
    target = details.selector or step.target
    # visibility is checked explicitly below so a hidden match fails with a clear message
    require_visible = details.type == "elementText"
    with ctx.element(target, step, require_visible=require_visible) as element:
        if details.type == "elementVisible":
            if not is_visible(element.handle):
                raise ActionFailedError(f"Element {element.selector} is not visible")
            ctx.log.info(f"Element {element.selector} is visible")
            return

        info = element.handle.evaluate(ELEMENT_INFO_JS) or {}
        if details.type == "elementValue":
            actual = info.get("value")
            if actual is None:
                raise ActionFailedError(f"Element {element.selector} has no value property")
        else:
            actual = info.get("text") or ""
        expected = details.expected_text or ""
        label = "value" if details.type == "elementValue" else "text"
        if not _compare(actual, expected, details.condition):
            raise ActionFailedError(
                f"Element {label} assertion failed: expected {label} to {details.condition} '{expected}', got '{actual}'"
            )
        ctx.log.info(f"Element {element.selector} {label} {details.condition} '{expected}'")


def _assert_page_text(ctx: ActionContext, details: AssertionDetails):
    expected = details.expected_text or ""
    if _compare(_page_text(ctx), expected, details.condition):
        ctx.log.info(f"Page text {details.condition} '{expected}'")
        return
    # text may only exist in markup (hidden inputs, attributes)
    if details.condition != "equals" and expected in ctx.frame.content():
        ctx.log.info(f"Page markup contains '{expected}'")
        return
    raise ActionFailedError(f"Page text assertion failed: '{expected}' not found")


def _assert_literal(ctx: ActionContext, step: ParsedStep):
    content = ctx.frame.content()
    text = _page_text(ctx)
    candidates = [c for c in (step.target, ctx.expected_result) if c]
    if not candidates:
        raise ActionFailedError(f"Nothing to assert in step: {step.original_step}")
    for literal in candidates:
        if literal in text or literal in content:
            ctx.log.info(f"Page contains '{literal}'")
            return
    raise ActionFailedError(f"Assertion failed: '{candidates[0]}' not found on page")


def assert_step(ctx: ActionContext, step: ParsedStep):
    details = step.assertion
    if details is None:
        _assert_literal(ctx, step)
    elif details.type == "url":
        _assert_url(ctx, details)
    elif details.type == "pageText":
        _assert_page_text(ctx, details)
    else:
        _assert_element(ctx, step, details)
