import time
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from plainstep.config import ResolverSettings
from plainstep.errors import ElementNotFoundError, raise_if_crash
from plainstep.llm.base import AIService
from plainstep.llm.retry import call_ai
from plainstep.models.ai import SelectorContext, SelectorSuggestion
from plainstep.models.dsl import ElementDescriptor, ResolutionAttempt
from plainstep.parser.hints import extract_hinted_selector, finalize_selector, is_xpath
from plainstep.resolver.dom import capture_dom_snippet, is_visible, safe_dispose
from plainstep.resolver.strategies import fallback_strategies


@dataclass
class ResolvedElement:
    handle: Any
    selector: str
    strategy: str
    index: int = 0  # position of the handle among all matches of selector


def _now_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def suggestion_selector(selector: str, strategy: Optional[str] = None) -> str:
    """Normalise a selector coming back from the AI service."""
    selector = selector.strip()
    hint = extract_hinted_selector(selector)
    if hint and not hint.remaining_step:
        return finalize_selector(hint.type, hint.value)
    if selector.startswith(("xpath=", "css=")):
        return selector
    if strategy == "xpath" or selector.startswith(("/", "(")):
        return finalize_selector("xpath", selector)
    return selector


class ElementResolver:
    """
    Finds the live element for a descriptor:
    1. immediate lookup of the hint / raw selector
    2. AI suggested selector (when enabled)
    3. deterministic fallbacks derived from the description, time bounded
    """

    def __init__(self, log, ai_service: Optional[AIService] = None,
                 settings: Optional[ResolverSettings] = None, quirks=None):
        self.log = log
        self.ai_service = ai_service
        self.settings = settings or ResolverSettings()
        self.quirks = quirks
        self.attempts: List[ResolutionAttempt] = []

    def resolve(self, frame, descriptor: ElementDescriptor, original_step: str = "",
                ai_enabled: bool = False, require_visible: bool = True) -> ResolvedElement:
        self.attempts = []
        term = descriptor.descriptive_term or descriptor.raw_text
        self.log.info(f"  - Resolving '{descriptor.raw_text}'")

        # 1. Immediate lookup
        for selector in self._immediate_selectors(descriptor):
            found = self._query(frame, selector, descriptor.index, require_visible, "immediate")
            if found:
                return found

        # 2. AI healing
        if ai_enabled and self.ai_service is not None:
            found = self._ai_lookup(frame, descriptor, original_step, require_visible)
            if found:
                return found

        # 3. Deterministic fallbacks
        found = self._fallback_lookup(frame, descriptor, term, require_visible)
        if found:
            return found

        self._dump_markup(frame)
        raise ElementNotFoundError(descriptor.raw_text, term)

    def _immediate_selectors(self, descriptor: ElementDescriptor) -> List[str]:
        if descriptor.hint_type:
            return [finalize_selector(descriptor.hint_type, descriptor.hint_value)]
        raw = descriptor.raw_text.strip()
        if raw.startswith(("xpath=", "css=", "text=")):
            return [raw]
        selectors = []
        if not raw.startswith(("/", "(")):
            selectors.append(raw)
        if is_xpath(raw):
            selectors.append(finalize_selector("xpath", raw))
        return selectors

    def _record(self, strategy: str, selector: str, outcome: str, start: float):
        attempt = ResolutionAttempt(
            strategy_name=strategy, selector_used=selector, outcome=outcome, elapsed_ms=_now_ms(start)
        )
        self.attempts.append(attempt)
        if outcome == "found":
            self.log.info(f"  - Resolved via {strategy}: {selector}")
        else:
            self.log.debug(f"  - {strategy} {outcome}: {selector}")

    def _pick(self, handles: List[Any], index: int,
              require_visible: bool) -> Tuple[Optional[Any], int, bool]:
        """Returns (handle, position among the matches, saw_hidden). Index 0 means the first usable match."""
        chosen = None
        position = 0
        saw_hidden = False
        if index:
            if -len(handles) <= index < len(handles):
                candidate = handles[index]
                if not require_visible or is_visible(candidate):
                    chosen = candidate
                    position = index % len(handles)
                else:
                    saw_hidden = True
        else:
            for i, candidate in enumerate(handles):
                if not require_visible or is_visible(candidate):
                    chosen = candidate
                    position = i
                    break
                saw_hidden = True
        for handle in handles:
            if handle is not chosen:
                safe_dispose(handle)
        return chosen, position, saw_hidden

    def _query(self, frame, selector: str, index: int, require_visible: bool,
               strategy: str) -> Optional[ResolvedElement]:
        start = time.monotonic()
        try:
            handles = frame.query_selector_all(selector)
        except Exception as e:
            raise_if_crash(e)
            self._record(strategy, selector, "error", start)
            return None
        chosen, position, saw_hidden = self._pick(handles or [], index, require_visible)
        if chosen is None:
            self._record(strategy, selector, "hidden" if saw_hidden else "not_found", start)
            return None
        self._record(strategy, selector, "found", start)
        return ResolvedElement(chosen, selector, strategy, position)

    def _wait_for(self, frame, selector: str, index: int, require_visible: bool,
                  strategy: str, timeout_ms: int) -> Optional[ResolvedElement]:
        start = time.monotonic()
        state = "visible" if require_visible else "attached"
        try:
            handle = frame.wait_for_selector(selector, state=state, timeout=timeout_ms)
        except Exception as e:
            raise_if_crash(e)
            self._record(strategy, selector, "not_found", start)
            return None
        if handle is None:
            self._record(strategy, selector, "not_found", start)
            return None
        # re-pick so the match position is known
        safe_dispose(handle)
        return self._query(frame, selector, index, require_visible, strategy)

    def request_suggestion(self, frame, failed_selector: str, descriptive_term: Optional[str],
                           original_step: str) -> Optional[SelectorSuggestion]:
        if self.ai_service is None:
            return None
        context = SelectorContext(
            failed_selector=failed_selector,
            descriptive_term=descriptive_term,
            page_url=getattr(frame, "url", "") or "",
            dom_snippet=capture_dom_snippet(frame),
            original_step=original_step,
        )
        self.log.info(f"  - Asking AI for a selector for '{descriptive_term or failed_selector}'")
        suggestion = call_ai(
            lambda: self.ai_service.suggest_selector(context),
            "AI selector suggestion",
            max_attempts=self.settings.ai_max_attempts,
            base_delay=self.settings.ai_retry_base_delay,
            log=self.log,
        )
        if suggestion is None or not suggestion.has_suggestion:
            self.log.info("  - AI returned no suggestion")
            return None
        self.log.info(
            f"  - AI suggested {suggestion.suggested_selector} "
            f"(strategy={suggestion.suggested_strategy}, confidence={suggestion.confidence})"
        )
        return suggestion

    def _ai_lookup(self, frame, descriptor: ElementDescriptor, original_step: str,
                   require_visible: bool) -> Optional[ResolvedElement]:
        suggestion = self.request_suggestion(
            frame, descriptor.raw_text, descriptor.descriptive_term, original_step
        )
        if suggestion is None:
            return None

        selector = suggestion_selector(suggestion.suggested_selector, suggestion.suggested_strategy)
        found = self._wait_for(
            frame, selector, descriptor.index, require_visible, "ai-suggestion",
            self.settings.ai_suggestion_wait_ms,
        )
        if found:
            return found
        for alternative in suggestion.alternative_selectors:
            found = self._query(
                frame, suggestion_selector(alternative), descriptor.index, require_visible, "ai-alternative"
            )
            if found:
                return found
        return None

    def _fallback_lookup(self, frame, descriptor: ElementDescriptor, term: str,
                         require_visible: bool) -> Optional[ResolvedElement]:
        strategies = []
        if self.quirks is not None:
            strategies += self.quirks.fallback_selectors(getattr(frame, "url", ""), term)
        # cleaned target first, then the full description
        texts = [term]
        if descriptor.hint_type is None:
            texts.insert(0, descriptor.raw_text)
        elif descriptor.hint_type in ("css", "xpath"):
            texts.append(descriptor.hint_value)
        seen = set(self._immediate_selectors(descriptor))
        for text in texts:
            for name, selector in fallback_strategies(text or ""):
                if selector not in seen:
                    seen.add(selector)
                    strategies.append((name, selector))

        # Cheap pass first, then give each strategy its own short wait within the budget
        for name, selector in strategies:
            found = self._query(frame, selector, descriptor.index, require_visible, name)
            if found:
                return found

        deadline = time.monotonic() + self.settings.fallback_budget_ms / 1000
        for name, selector in strategies:
            remaining = int((deadline - time.monotonic()) * 1000)
            if remaining <= 0:
                self.log.warning(f"  - Fallback budget of {self.settings.fallback_budget_ms}ms used up")
                break
            found = self._wait_for(
                frame, selector, descriptor.index, require_visible, name,
                min(self.settings.fallback_wait_ms, remaining),
            )
            if found:
                return found
        return None

    def _dump_markup(self, frame):
        try:
            markup = frame.content()
        except Exception as e:
            raise_if_crash(e)
            self.log.warning(f"Could not read frame markup: {e}")
            return
        limit = self.settings.dom_dump_limit
        if len(markup) > limit:
            markup = markup[:limit] + f"... [truncated {len(markup) - limit} chars]"
        self.log.debug(f"Frame markup at failure:\n{markup}")
