import time
from enum import Enum
from typing import Callable, List, Optional, Tuple

from plainstep.actions.base import ActionContext, perform
from plainstep.actions.registry import ACTIONS
from plainstep.browser.credentials import CredentialStore
from plainstep.browser.quirks import SiteQuirks
from plainstep.browser.session import BrowserSession
from plainstep.config import (
    ExecutorSettings, ResolverSettings, PLAINSTEP_AI_HEALING, PLAINSTEP_HEADLESS, PLAINSTEP_LOG_DIR,
)
from plainstep.errors import (
    ActionFailedError, ElementNotFoundError, SessionCrashedError, failure_type_of,
)
from plainstep.executor.healing import build_healed_step, can_heal
from plainstep.llm.base import AIService
from plainstep.llm.retry import call_ai
from plainstep.models.dsl import ParsedStep, StepResult, TestCaseResult
from plainstep.parser.step_parser import StepParser
from plainstep.resolver.resolver import ElementResolver
from plainstep.runlog import RunLogger


class RunState(str, Enum):
    IDLE = "Idle"
    INITIALIZING = "Initializing"
    RUNNING_STEP = "RunningStep"
    STEP_PASSED = "StepPassed"
    STEP_FAILED = "StepFailed"
    AI_HEAL_RETRY = "AIHealRetry"
    ABORTED = "Aborted"
    COMPLETED = "Completed"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class TestExecutor:
    """
    Runs a test case step by step against one browser session.
    Fail-fast: the first step that still fails after healing ends the case.
    """
    __test__ = False

    def __init__(self, ai_service: Optional[AIService] = None, ai_enabled: bool = PLAINSTEP_AI_HEALING,
                 headless: bool = PLAINSTEP_HEADLESS, settings: Optional[ExecutorSettings] = None,
                 resolver_settings: Optional[ResolverSettings] = None, quirks: Optional[SiteQuirks] = None,
                 credentials: Optional[CredentialStore] = None, log_dir: Optional[str] = PLAINSTEP_LOG_DIR,
                 session_factory: Optional[Callable[[], BrowserSession]] = None, echo: bool = False):
        self.ai_service = ai_service
        self.ai_enabled = ai_enabled and ai_service is not None
        self.settings = settings or ExecutorSettings()
        self.resolver_settings = resolver_settings or ResolverSettings()
        self.quirks = quirks or SiteQuirks()
        self.credentials = credentials or CredentialStore()
        self.log_dir = log_dir
        self.echo = echo
        self.session_factory = session_factory or (lambda: BrowserSession(headless=headless))
        self.parser = StepParser()
        self.state = RunState.IDLE

    def _transition(self, log: RunLogger, state: RunState, detail: str = ""):
        self.state = state
        log.debug(f"[state] {state.value}{' ' + detail if detail else ''}")

    def execute_test_case(self, test_case_id: str, steps: List[str], expected_result: Optional[str] = None,
                          base_url: str = "", title: Optional[str] = None) -> TestCaseResult:
        log = RunLogger(test_case_id, self.log_dir, echo=self.echo)
        result = TestCaseResult(test_case_id=test_case_id, title=title)
        started = time.monotonic()
        log.info(f"Starting test case {test_case_id}{f' ({title})' if title else ''} with {len(steps)} steps")
        self._transition(log, RunState.INITIALIZING)

        session = self.session_factory()
        try:
            try:
                session.start()
            except Exception as e:
                log.error(f"Browser launch failed: {e}")
                result.steps = [StepResult(
                    step_number=0, step_description="Launch browser", status="failed",
                    message=f"Browser launch failed: {e}", failure_type="other",
                )]
            else:
                result.steps, result.crash_recoveries = self._run_with_recovery(
                    session, log, steps, expected_result, base_url
                )
        finally:
            session.close()
            self.credentials.clear()

        failed = any(s.status == "failed" for s in result.steps)
        result.status = "failed" if failed else "passed"
        result.duration_ms = _elapsed_ms(started)
        self._transition(log, RunState.ABORTED if failed else RunState.COMPLETED)
        log.info(f"Test case {test_case_id} {result.status} in {result.duration_ms}ms")
        result.logs = list(log.lines)
        log.close()
        return result

    def _run_with_recovery(self, session: BrowserSession, log: RunLogger, steps: List[str],
                           expected_result: Optional[str], base_url: str) -> Tuple[List[StepResult], int]:
        recoveries = 0
        while True:
            results, crash = self._run_steps(session, log, steps, expected_result, base_url)
            if crash is None:
                return results, recoveries
            step_number, step_text, step_start, error = crash
            if recoveries >= self.settings.max_crash_recoveries:
                log.error(f"Browser session crashed again on step {step_number}, giving up: {error}")
                results.append(StepResult(
                    step_number=step_number, step_description=step_text, status="failed",
                    message=f"Browser session crashed: {error}", failure_type="other",
                    duration_ms=_elapsed_ms(step_start),
                ))
                return results, recoveries
            recoveries += 1
            log.warning(f"Browser session crashed on step {step_number} ({error}), relaunching and restarting the case")
            try:
                session.relaunch()
            except Exception as e:
                log.error(f"Browser relaunch failed: {e}")
                results.append(StepResult(
                    step_number=step_number, step_description=step_text, status="failed",
                    message=f"Browser session crashed and could not be relaunched: {e}", failure_type="other",
                    duration_ms=_elapsed_ms(step_start),
                ))
                return results, recoveries

    def _run_steps(self, session: BrowserSession, log: RunLogger, steps: List[str],
                   expected_result: Optional[str], base_url: str):
        resolver = ElementResolver(log, self.ai_service, self.resolver_settings, self.quirks)
        ctx = ActionContext(
            page=session.page, frame=session.page, log=log, resolver=resolver, settings=self.settings,
            credentials=self.credentials, quirks=self.quirks, ai_enabled=self.ai_enabled,
            base_url=base_url, expected_result=expected_result,
        )
        results: List[StepResult] = []
        for number, text in enumerate(steps, start=1):
            step_start = time.monotonic()
            try:
                step_result = self._run_step(ctx, session, number, text)
            except SessionCrashedError as e:
                return results, (number, text, step_start, e)
            results.append(step_result)
            if step_result.status == "failed":
                remaining = len(steps) - number
                if remaining:
                    log.info(f"Skipping remaining {remaining} step(s) after failure")
                break
        return results, None

    def _parse(self, ctx: ActionContext, text: str) -> ParsedStep:
        parsed = self.parser.parse(text)
        if not (parsed.ambiguous and self.ai_enabled):
            return parsed
        ctx.log.info(f"Step is ambiguous, asking AI to interpret: '{text}'")
        interpreted = call_ai(
            lambda: self.ai_service.interpret_step(text),
            "AI step interpretation",
            max_attempts=self.resolver_settings.ai_max_attempts,
            base_delay=self.resolver_settings.ai_retry_base_delay,
            log=ctx.log,
        )
        if interpreted and interpreted.strip() != text:
            reparsed = self.parser.parse(interpreted)
            if not reparsed.ambiguous:
                ctx.log.info(f"Interpreted as: '{interpreted}'")
                return reparsed
        return parsed

    def _run_step(self, ctx: ActionContext, session: BrowserSession, number: int, text: str) -> StepResult:
        started = time.monotonic()
        attempt = 0
        current = text
        healed_step = None
        ctx.log.info(f"Step {number}: {text}")

        while True:
            self._transition(ctx.log, RunState.RUNNING_STEP, f"{number} (attempt {attempt + 1})")
            parsed = self._parse(ctx, current)
            ctx.log.debug(f"Parsed: {parsed.model_dump_json(by_alias=True, exclude_none=True)}")
            try:
                perform(ctx, parsed, ACTIONS)
            except (ElementNotFoundError, ActionFailedError) as e:
                error = e
            else:
                self._transition(ctx.log, RunState.STEP_PASSED, str(number))
                return StepResult(
                    step_number=number, step_description=text, status="passed",
                    duration_ms=_elapsed_ms(started), heal_attempts=attempt, healed_step=healed_step,
                )

            self._transition(ctx.log, RunState.STEP_FAILED, str(number))
            ctx.log.error(f"Step {number} failed: {error}")

            if self.ai_enabled and attempt < self.settings.max_ai_retries and can_heal(parsed):
                failed_target = error.selector if isinstance(error, ElementNotFoundError) else parsed.target
                suggestion = ctx.resolver.request_suggestion(
                    ctx.frame, failed_target or "", parsed.descriptive_term, parsed.original_step
                )
                if suggestion is not None:
                    attempt += 1
                    current = build_healed_step(parsed, suggestion, failed_target)
                    healed_step = current
                    self._transition(ctx.log, RunState.AI_HEAL_RETRY, f"{number} -> '{current}'")
                    ctx.log.info(f"Retrying step {number} with healed step: {current}")
                    continue

            return StepResult(
                step_number=number, step_description=text, status="failed", message=str(error),
                screenshot_base64=session.screenshot_base64(), failure_type=failure_type_of(error),
                duration_ms=_elapsed_ms(started), heal_attempts=attempt, healed_step=healed_step,
            )

    def close(self):
        """End of run: forget every credential, including pre-seeded ones."""
        self.credentials.clear(keep_seeded=False)
