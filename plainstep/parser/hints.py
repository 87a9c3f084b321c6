import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple, Sequence

from plainstep.models.dsl import DialogExpectation

logger = logging.getLogger(__name__)

HINT_TYPES = ("css", "xpath", "id", "name", "text", "value", "aria", "placeholder", "title", "data")

_HINT_START = re.compile(r"\(\s*(" + "|".join(HINT_TYPES) + r")\s*:", re.IGNORECASE)

_DIALOG_SUFFIX = re.compile(
    r"\s+and\s+(accept|dismiss)\s+(?:the\s+)?(alert|confirm|confirmation|prompt)(?:\s+dialog)?"
    r"(?:\s+with\s+(['\"])(.*?)\3)?\s*$",
    re.IGNORECASE,
)

_QUOTED = re.compile(r"[\"'“‘`](.*?)[\"'”’`]")


@dataclass
class HintExtraction:
    type: str
    value: str
    remaining_step: str
    raw: str

    @property
    def as_target(self) -> str:
        return to_hint(self.type, self.value)


def to_hint(hint_type: str, value: str) -> str:
    return f"({hint_type}: {value})"


def _closing_paren(text: str, start: int, respect_quotes: bool) -> int:
    """Index of the parenthesis closing the one at ``start``, or -1."""
    depth = 0
    quote = None
    for i in range(start, len(text)):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
            continue
        if respect_quotes and ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def extract_hinted_selector(text: str) -> Optional[HintExtraction]:
    """Pull the first ``(type: value)`` hint out of a step.

    The value keeps nested parentheses and quotes, e.g.
    ``(xpath: (//a[contains(text(),'Go')])[1])``.
    """
    if not text:
        return None
    for match in _HINT_START.finditer(text):
        start = match.start()
        end = _closing_paren(text, start, respect_quotes=True)
        if end == -1:
            end = _closing_paren(text, start, respect_quotes=False)
        if end == -1:
            continue
        value = text[match.end():end].strip()
        if not value:
            continue
        remaining = (text[:start] + " " + text[end + 1:]).strip()
        remaining = re.sub(r"\s{2,}", " ", remaining)
        return HintExtraction(
            type=match.group(1).lower(),
            value=value,
            remaining_step=remaining,
            raw=text[start:end + 1],
        )
    return None


def _css_attr(name: str, value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'[{name}="{escaped}"]'


def finalize_selector(hint_type: Optional[str], value: str) -> str:
    """Turn a hint into a selector string Playwright understands."""
    hint_type = (hint_type or "css").lower()
    value = value.strip()

    if hint_type == "xpath":
        if value.startswith("xpath="):
            value = value[len("xpath="):]
        if not value.startswith(("//", "./", "(")):
            logger.warning(f"XPath hint does not look like a path expression: {value}")
        return f"xpath={value}"
    if hint_type == "css":
        return value
    if hint_type == "text":
        return f'text="{value}"'
    if hint_type == "aria":
        return _css_attr("aria-label", value)
    if hint_type == "data":
        if "=" in value:
            key, _, attr_value = value.partition("=")
            key = key.strip()
            if not key.startswith("data-"):
                key = f"data-{key}"
            return _css_attr(key, attr_value.strip().strip("'\""))
        return _css_attr("data-testid", value)
    # id, name, value, placeholder, title
    return _css_attr(hint_type, value)


def is_xpath(selector: str) -> bool:
    return selector.startswith(("xpath=", "/", "(")) or "//" in selector


def extract_dialog_expectation(text: str) -> Tuple[str, Optional[DialogExpectation]]:
    """Strip a trailing 'and accept confirm' style suffix."""
    match = _DIALOG_SUFFIX.search(text)
    if not match:
        return text, None

    action = match.group(1).lower()
    dialog_type = match.group(2).lower()
    if dialog_type == "confirmation":
        dialog_type = "confirm"

    prompt_text = None
    if dialog_type == "prompt" and action == "accept":
        prompt_text = match.group(4)

    remaining = text[:match.start()].strip()
    return remaining, DialogExpectation(type=dialog_type, action=action, prompt_text=prompt_text)


def dialog_suffix(expectation: DialogExpectation) -> str:
    suffix = f" and {expectation.action} {expectation.type}"
    if expectation.prompt_text is not None:
        suffix += f' with "{expectation.prompt_text}"'
    return suffix


def quoted_text(text: str) -> Optional[str]:
    match = _QUOTED.search(text or "")
    return match.group(1) if match else None


def strip_quotes(text: str) -> str:
    text = (text or "").strip()
    if len(text) >= 2 and text[0] in "\"'`“‘" and text[-1] in "\"'`”’":
        return text[1:-1]
    return text


def split_outside(text: str, connectors: Sequence[str]) -> Optional[Tuple[str, str, str]]:
    """Split on the first connector word that sits outside parentheses and quotes."""
    words = [re.compile(r"\s+" + re.escape(c) + r"\s+", re.IGNORECASE) for c in connectors]
    depth = 0
    quote = None
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            # an apostrophe inside a word is not a quote
            if not (ch == "'" and 0 < i < len(text) - 1 and text[i - 1].isalnum() and text[i + 1].isalnum()):
                quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        elif depth == 0 and ch.isspace():
            for pattern in words:
                m = pattern.match(text, i)
                if m:
                    left = text[:i].strip()
                    right = text[m.end():].strip()
                    if left and right:
                        return left, m.group(0).strip().lower(), right
        i += 1
    return None


def xpath_literal(text: str) -> str:
    if '"' not in text:
        return f'"{text}"'
    if "'" not in text:
        return f"'{text}'"
    parts = text.split('"')
    return "concat(" + ", '\"', ".join(f'"{p}"' for p in parts) + ")"
