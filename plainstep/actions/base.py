from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from plainstep.browser.credentials import CredentialStore
from plainstep.browser.quirks import SiteQuirks
from plainstep.config import ExecutorSettings
from plainstep.errors import (
    ActionFailedError, ElementNotFoundError, SessionCrashedError, raise_if_crash,
)
from plainstep.models.dsl import ElementDescriptor, ParsedStep, DialogExpectation
from plainstep.resolver.dom import safe_dispose
from plainstep.resolver.resolver import ElementResolver, ResolvedElement
from plainstep.runlog import RunLogger

DIALOG_POLL_MS = 100


@dataclass
class ActionContext:
    page: Any
    frame: Any
    log: RunLogger
    resolver: ElementResolver
    settings: ExecutorSettings
    credentials: CredentialStore
    quirks: SiteQuirks
    ai_enabled: bool = False
    base_url: str = ""
    expected_result: Optional[str] = None
    password_submitted: bool = False

    @property
    def url(self) -> str:
        return getattr(self.page, "url", "") or ""

    @contextmanager
    def element(self, target: Optional[str], step: ParsedStep, require_visible: bool = True):
        """Resolve `target` in the current frame; the handle is disposed on exit."""
        if not target:
            raise ActionFailedError(f"No target element in step: {step.original_step}")
        descriptor = ElementDescriptor.from_target(target, step.descriptive_term, step.index)
        resolved: ResolvedElement = self.resolver.resolve(
            self.frame, descriptor, step.original_step, self.ai_enabled, require_visible
        )
        try:
            yield resolved
        finally:
            safe_dispose(resolved.handle)


class DialogWatcher:
    """One-shot handler for a dialog the step says will appear."""

    def __init__(self, ctx: ActionContext, expectation: DialogExpectation):
        self.ctx = ctx
        self.expectation = expectation
        self.seen = False
        self.message = None

    def __call__(self, dialog):
        self.seen = True
        self.message = dialog.message
        expected = self.expectation
        if dialog.type != expected.type:
            self.ctx.log.warning(f"Expected a {expected.type} dialog but got {dialog.type}: '{dialog.message}'")
        else:
            self.ctx.log.info(f"Dialog ({dialog.type}): '{dialog.message}'")
        if expected.action == "accept":
            if expected.prompt_text is not None:
                dialog.accept(expected.prompt_text)
            else:
                dialog.accept()
        else:
            dialog.dismiss()
        self.ctx.log.info(f"Dialog {expected.action}ed")

    def wait(self, timeout_ms: int):
        waited = 0
        while not self.seen and waited < timeout_ms:
            self.ctx.page.wait_for_timeout(DIALOG_POLL_MS)
            waited += DIALOG_POLL_MS
        if not self.seen:
            raise ActionFailedError(f"Expected {self.expectation.type} dialog did not appear")


Action = Callable[[ActionContext, ParsedStep], None]


def perform(ctx: ActionContext, step: ParsedStep, actions: Dict[str, Action]):
    """Run one primitive. Playwright errors come out as ActionFailedError or SessionCrashedError."""
    handler = actions.get(step.action)
    if handler is None:
        raise ActionFailedError(f"Unsupported action: {step.action}")

    watcher = None
    if step.expects_dialog is not None:
        watcher = DialogWatcher(ctx, step.expects_dialog)
        ctx.page.once("dialog", watcher)

    try:
        handler(ctx, step)
        if watcher is not None:
            watcher.wait(ctx.settings.dialog_wait_ms)
    except (ElementNotFoundError, ActionFailedError, SessionCrashedError):
        raise
    except Exception as e:
        raise_if_crash(e)
        raise ActionFailedError(f"{step.action} failed: {_first_line(e)}") from e
    finally:
        if watcher is not None and not watcher.seen:
            try:
                ctx.page.remove_listener("dialog", watcher)
            except Exception as e:
                ctx.log.debug(f"Could not remove dialog handler: {e}")


def _first_line(error: BaseException) -> str:
    text = str(error).strip()
    return text.splitlines()[0] if text else error.__class__.__name__
