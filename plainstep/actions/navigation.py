import re
from urllib.parse import urljoin, urlparse

from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from plainstep.actions.base import ActionContext
from plainstep.errors import ActionFailedError, ElementNotFoundError, raise_if_crash
from plainstep.models.dsl import ParsedStep
from plainstep.parser.hints import extract_hinted_selector, finalize_selector
from plainstep.resolver.dom import is_visible, safe_dispose

_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_OTHER_SCHEME = re.compile(r"^(?:javascript|data|file|about|mailto|chrome):", re.IGNORECASE)
_DOMAIN = re.compile(r"^(?:www\.|localhost|[\w-]+(?:\.[\w-]+)+)(?::\d+)?(?:[/?#]|$)")

_UP = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOW = "abcdefghijklmnopqrstuvwxyz"


def _consent_xpath() -> str:
    container = " or ".join(
        f"contains(translate(concat(@id, ' ', @class), '{_UP}', '{_LOW}'), '{word}')"
        for word in ("cookie", "consent", "gdpr", "cmp", "privacy")
    )
    label = " or ".join(
        f"contains(translate(normalize-space(.), '{_UP}', '{_LOW}'), '{word}')"
        for word in ("accept", "agree", "got it", "allow all", "i understand")
    )
    return f"xpath=//*[{container}]//*[self::button or self::a][{label}]"


CONSENT_SELECTORS = [
    _consent_xpath(),
    "button#hs-eu-confirmation-button",
    "button.cc-btn.cc-dismiss",
    'button[data-testid="GDPR-accept"]',
    '[id*="consent"] button[class*="accept"]',
]


def resolve_url(target: str, base_url: str = "") -> str:
    """Absolute URL for a navigate target; relative paths join the case base URL."""
    target = (target or "").strip()
    if not target:
        raise ActionFailedError("Navigate step has no URL")
    if _SCHEME.match(target) or _OTHER_SCHEME.match(target):
        return target
    if _DOMAIN.match(target):
        return f"https://{target}"
    if base_url:
        return urljoin(base_url, target)
    raise ActionFailedError(f"Invalid URL: {target}")


def dismiss_overlays(ctx: ActionContext, selectors) -> bool:
    """Click the first visible overlay/consent button. Best effort."""
    for selector in selectors:
        try:
            handles = ctx.frame.query_selector_all(selector)
        except Exception as e:
            raise_if_crash(e)
            continue
        try:
            for handle in handles:
                if is_visible(handle):
                    handle.click(timeout=2000)
                    ctx.log.info(f"Dismissed overlay: {selector}")
                    ctx.page.wait_for_timeout(ctx.settings.consent_settle_ms)
                    return True
        except Exception as e:
            raise_if_crash(e)
            ctx.log.debug(f"Overlay button {selector} not clickable: {e}")
        finally:
            for handle in handles:
                safe_dispose(handle)
    return False


def navigate(ctx: ActionContext, step: ParsedStep):
    url = resolve_url(step.target, ctx.base_url)
    scheme = urlparse(url).scheme.lower()
    if scheme not in ("http", "https"):
        raise ActionFailedError(f"Refusing to navigate to non-http URL: {url}")

    ctx.log.info(f"Navigating to {url}")
    ctx.page.goto(url, wait_until="domcontentloaded", timeout=ctx.settings.navigation_timeout_ms)
    ctx.frame = ctx.page

    extra_wait = ctx.quirks.navigation_wait_ms(url)
    if extra_wait:
        try:
            ctx.page.wait_for_load_state("networkidle", timeout=extra_wait)
        except PlaywrightTimeoutError:
            ctx.log.info(f"Network still busy after {extra_wait}ms, continuing")

    dismiss_overlays(ctx, CONSENT_SELECTORS + ctx.quirks.overlay_selectors(url))


def wait(ctx: ActionContext, step: ParsedStep):
    if step.value == "load":
        ctx.log.info("Waiting for page load")
        ctx.page.wait_for_load_state("load", timeout=step.timeout or ctx.settings.navigation_timeout_ms)
        return

    if step.target:
        hint = extract_hinted_selector(step.target)
        if hint and not hint.remaining_step:
            selector = finalize_selector(hint.type, hint.value)
            timeout = step.timeout or ctx.settings.action_timeout_ms
            ctx.log.info(f"Waiting up to {timeout}ms for {selector}")
            try:
                handle = ctx.frame.wait_for_selector(selector, state="visible", timeout=timeout)
            except PlaywrightTimeoutError as e:
                raise ElementNotFoundError(step.target, step.descriptive_term) from e
            safe_dispose(handle)
            return
        with ctx.element(step.target, step):
            ctx.log.info(f"Element '{step.target}' is present")
        return

    timeout = step.timeout if step.timeout is not None else 3000
    ctx.log.info(f"Waiting {timeout}ms")
    ctx.page.wait_for_timeout(timeout)


def execute_script(ctx: ActionContext, step: ParsedStep):
    if not step.value:
        raise ActionFailedError("No script to execute")
    ctx.log.info(f"Executing script: {step.value[:200]}")
    result = ctx.frame.evaluate(step.value)
    if result is not None:
        ctx.log.info(f"Script returned: {str(result)[:200]}")


def skip(ctx: ActionContext, step: ParsedStep):
    ctx.log.info(f"Skipping step: {step.value or step.original_step}")
