import re
from typing import Callable, List, Optional

from plainstep.errors import ParseAmbiguity
from plainstep.models.dsl import ParsedStep
from plainstep.parser.hints import (
    extract_hinted_selector, extract_dialog_expectation, quoted_text, to_hint, xpath_literal,
)
from plainstep.parser.matchers import (
    match_wait, match_iframe, match_upload, match_drag, match_assertion, match_script,
    match_standard, _ordinal_index,
)

_LIST_PREFIX = re.compile(r"^(?:[-•*]\s*|\d+[.)]?\s+|\d+[.)]\s*|[A-Za-z][.)]\s+)")

_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOWER = "abcdefghijklmnopqrstuvwxyz"


def fallback_xpath(term: str) -> str:
    """Broad OR over clickable things whose text, value, aria-label or placeholder mention ``term``."""
    literal = xpath_literal(term)
    lower = xpath_literal(term.lower())
    return (
        f".//button[contains(normalize-space(.), {literal})]"
        f" | .//a[contains(normalize-space(.), {literal})]"
        f" | .//input[@type='submit' and @value={literal}]"
        f" | .//input[@type='button' and @value={literal}]"
        f" | (.//button | .//input | .//a)[contains(translate(@aria-label, '{_UPPER}', '{_LOWER}'), {lower})]"
        f" | .//input[contains(translate(@placeholder, '{_UPPER}', '{_LOWER}'), {lower})]"
    )


class StepParser:
    """Ordered cascade of matchers; the first one that recognises a step wins."""

    def __init__(self):
        self.matchers: List[Callable[[str], Optional[ParsedStep]]] = [
            match_wait,
            match_iframe,
            match_upload,
            match_drag,
            match_assertion,
            match_script,
            self._match_actions,
        ]

    def parse(self, step_text: str) -> ParsedStep:
        text = (step_text or "").strip()
        if not text:
            return ParsedStep(action="skip", value="empty step", original_step=text)
        try:
            return self._match(text)
        except ParseAmbiguity:
            return self._fallback(text)

    def _match(self, text: str) -> ParsedStep:
        for matcher in self.matchers:
            step = matcher(text)
            if step is not None:
                return step
        raise ParseAmbiguity(text)

    def _match_actions(self, text: str) -> Optional[ParsedStep]:
        # 7. selector hint
        hint = extract_hinted_selector(text)
        remaining = hint.remaining_step if hint else text

        # 8. dialog expectation suffix
        remaining, dialog = extract_dialog_expectation(remaining)

        index = None
        if hint:
            remaining, index = _ordinal_index(remaining)

        # 9. standard actions
        step = match_standard(text, remaining, hint, dialog, index)
        if step is not None:
            return step

        # 10. hint with no recognised verb
        if hint:
            return ParsedStep(
                action="click", target=hint.as_target, descriptive_term=remaining or hint.value,
                expects_dialog=dialog, index=index, original_step=text,
            )
        return None

    def _fallback(self, text: str) -> ParsedStep:
        remaining, dialog = extract_dialog_expectation(text)
        term = quoted_text(remaining) or remaining.rstrip(".")
        return ParsedStep(
            action="click",
            target=to_hint("xpath", fallback_xpath(term)),
            descriptive_term=term,
            expects_dialog=dialog,
            ambiguous=True,
            original_step=text,
        )


_default_parser = StepParser()


def parse(step_text: str) -> ParsedStep:
    return _default_parser.parse(step_text)


def parse_raw_steps(raw: str) -> List[str]:
    """Split a pasted block into step sentences, dropping bullets and numbering."""
    steps = []
    for line in (raw or "").splitlines():
        line = line.strip()
        if not line:
            continue
        line = _LIST_PREFIX.sub("", line, count=1).strip()
        if line:
            steps.append(line)
    return steps
