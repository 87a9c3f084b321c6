import os

from playwright.sync_api import Error as PlaywrightError

from plainstep.actions.assertion import PAGE_TEXT_JS
from plainstep.actions.base import ActionContext
from plainstep.errors import ActionFailedError, raise_if_crash
from plainstep.models.dsl import ParsedStep
from plainstep.resolver.dom import element_info, is_visible, safe_dispose

UPLOAD_CONFIRMATION_SELECTORS = [
    "#uploaded-files",
    ".upload-success",
    ".uploaded-file",
    ".dz-success",
    '[data-upload-status="done"]',
]
POLL_MS = 250


def _visible_confirmations(ctx: ActionContext, selectors) -> set:
    visible = set()
    for selector in selectors:
        try:
            handles = ctx.frame.query_selector_all(selector)
        except Exception as e:
            raise_if_crash(e)
            continue
        if any(is_visible(h) for h in handles):
            visible.add(selector)
        for h in handles:
            safe_dispose(h)
    return visible


def _page_text(ctx: ActionContext) -> str:
    try:
        return ctx.frame.evaluate(PAGE_TEXT_JS) or ""
    except PlaywrightError as e:
        raise_if_crash(e)
        return ""


class UploadSnapshot:
    """What the page showed before the file was set, so only new signals count."""

    def __init__(self, ctx: ActionContext, file_name: str):
        self.file_name = file_name
        self.selectors = ctx.quirks.upload_confirmation_selectors(ctx.url) + UPLOAD_CONFIRMATION_SELECTORS
        self.visible_before = _visible_confirmations(ctx, self.selectors)
        self.name_shown_before = file_name in _page_text(ctx)

    def confirmed(self, ctx: ActionContext) -> bool:
        fresh = _visible_confirmations(ctx, self.selectors) - self.visible_before
        if fresh:
            ctx.log.info(f"Upload confirmed by {sorted(fresh)[0]}")
            return True
        if not self.name_shown_before and self.file_name in _page_text(ctx):
            ctx.log.info(f"Upload confirmed: page now lists {self.file_name}")
            return True
        return False


def wait_for_confirmation(ctx: ActionContext, snapshot: UploadSnapshot):
    waited = 0
    while not snapshot.confirmed(ctx):
        if waited >= ctx.settings.upload_confirm_ms:
            raise ActionFailedError(
                f"Upload of {snapshot.file_name} was not confirmed within {ctx.settings.upload_confirm_ms}ms"
            )
        ctx.page.wait_for_timeout(POLL_MS)
        waited += POLL_MS


def upload(ctx: ActionContext, step: ParsedStep):
    if not step.file_path:
        raise ActionFailedError("Upload step has no file path")
    path = os.path.abspath(os.path.expanduser(step.file_path))
    if not os.path.isfile(path):
        raise ActionFailedError(f"File to upload not found: {path}")

    # file inputs are often hidden behind a styled button
    with ctx.element(step.target, step, require_visible=False) as element:
        info = element_info(element.handle)
        if info.get("tag") != "input" or info.get("type") != "file":
            raise ActionFailedError(
                f"Upload target {element.selector} is not a file input "
                f"(<{info.get('tag')} type='{info.get('type')}'>)"
            )
        snapshot = UploadSnapshot(ctx, os.path.basename(path))
        element.handle.set_input_files(path, timeout=ctx.settings.action_timeout_ms)
        ctx.log.info(f"Set {path} on {element.selector}")
        wait_for_confirmation(ctx, snapshot)
