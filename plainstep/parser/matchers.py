import re
from typing import Optional, Tuple

from plainstep.models.dsl import ParsedStep, AssertionDetails, DialogExpectation
from plainstep.parser.hints import (
    HintExtraction, extract_hinted_selector, extract_dialog_expectation,
    quoted_text, strip_quotes, split_outside,
)

ASSERT_VERBS = r"(?:assert|verify|expect|ensure|validate|check\s+that)"

_UNIT_MS = {"ms": 1, "millisecond": 1, "milliseconds": 1}

_WAIT_DURATION = re.compile(
    r"^(?:wait|pause|delay|sleep)(?:\s+for)?\s+(\d+(?:\.\d+)?)\s*"
    r"(milliseconds?|ms|seconds?|secs?|s|minutes?|mins?|m)?\.?$",
    re.IGNORECASE,
)
_WAIT_BARE = re.compile(r"^(?:wait|pause)(?:\s+a\s+(?:moment|bit|while))?\.?$", re.IGNORECASE)
_WAIT_FOR = re.compile(r"^wait\s+(?:for|until)\s+(.+)$", re.IGNORECASE)
_WAIT_LIMIT = re.compile(
    r"\s+(?:for\s+)?(?:up\s+to|at\s+most|max(?:imum)?)\s+(\d+(?:\.\d+)?)\s*"
    r"(milliseconds?|ms|seconds?|secs?|s)?\s*$",
    re.IGNORECASE,
)
_WAIT_CONDITION_TAIL = re.compile(
    r"\s+(?:to\s+(?:appear|be\s+visible|be\s+displayed|load)|appears|is\s+visible|is\s+displayed)\s*$",
    re.IGNORECASE,
)
_PAGE_LOAD = re.compile(r"^(?:the\s+)?page(?:\s+to)?\s+(?:load|finish\s+loading)(?:ed|s)?$", re.IGNORECASE)

_IFRAME = re.compile(r"^(?:switch|change|move|go)\s+(?:in)?to\s+(?:the\s+)?i?frame\b\s*(.*)$", re.IGNORECASE)
_MAIN_CONTENT = re.compile(
    r"^(?:(?:switch|return|go|change|move|come)\s+(?:back\s+)?to\s+(?:the\s+)?"
    r"(?:main|default|parent|top)(?:\s+(?:content|frame|page|document|window))?"
    r"|(?:exit|leave)\s+(?:the\s+)?i?frame)\.?$",
    re.IGNORECASE,
)

_UPLOAD = re.compile(r"^upload\s+(?:the\s+)?(?:file\s+)?(.+)$", re.IGNORECASE)
_DRAG = re.compile(r"^drag\s+(?:and\s+drop\s+)?(.+)$", re.IGNORECASE)

_ASSERT_URL = re.compile(
    rf"^{ASSERT_VERBS}\s+(?:that\s+)?(?:the\s+)?(?:current\s+)?(?:page\s+)?url\s+(?:should\s+)?"
    r"(equals?|is|be|contains?|includes?|has)\s+(.+)$",
    re.IGNORECASE,
)
_ASSERT_STRUCTURED = re.compile(rf"^{ASSERT_VERBS}\s*\((.*\btype\s*[=:].*)\)\s*$", re.IGNORECASE)
_ASSERT_VALUE = re.compile(
    rf"^{ASSERT_VERBS}\s+(?:that\s+)?(?:the\s+)?(?:element\s+)?(.+?)\s+"
    r"(has\s+(?:the\s+)?value|value\s+(?:is|equals|should\s+be)|(?:should\s+)?contains?\s+(?:the\s+)?value)\s+(.+)$",
    re.IGNORECASE,
)
_ASSERT_VALUE_OF = re.compile(
    rf"^{ASSERT_VERBS}\s+(?:that\s+)?(?:the\s+)?value\s+of\s+(?:the\s+)?(.+?)\s+(is|equals|should\s+be|contains)\s+(.+)$",
    re.IGNORECASE,
)
_ASSERT_PAGE = re.compile(
    rf"^{ASSERT_VERBS}\s+(?:that\s+)?(?:the\s+)?page\s+(?:should\s+)?"
    r"(?:contains?|has|includes?|shows|displays)(?:\s+(?:the\s+)?text)?\s+(.+)$",
    re.IGNORECASE,
)
_ASSERT_TEXT = re.compile(
    rf"^{ASSERT_VERBS}\s+(?:that\s+)?(?:the\s+)?(?:element\s+)?(.+?)\s+"
    r"(has\s+(?:the\s+)?text|text\s+(?:is|equals|should\s+be)|reads|"
    r"(?:should\s+)?(?:has|have|contains?|includes?)\s+(?:the\s+)?text|shows|displays|contains?)\s+(.+)$",
    re.IGNORECASE,
)
_ASSERT_VISIBLE = re.compile(
    rf"^{ASSERT_VERBS}\s+(?:that\s+)?(?:the\s+)?(?:element\s+)?(.+?)\s+"
    r"(?:is|are|should\s+be|becomes?)\s+(?:visible|displayed|shown|present)(?:\s+on\s+(?:the\s+)?page)?\.?$",
    re.IGNORECASE,
)
_ASSERT_ANY = re.compile(rf"^{ASSERT_VERBS}\s+(?:that\s+)?(.+)$", re.IGNORECASE)

_SCRIPT = re.compile(r"^(?:execute|run|evaluate)\s+(?:the\s+)?(?:java)?script\s*:?\s*(.+)$", re.IGNORECASE | re.DOTALL)
_SCRIPT_DIALOG = re.compile(
    r"\s+and\s+expect\s+(?:an?\s+)?(alert|confirm|confirmation|prompt)(?:\s+dialog)?"
    r"(?:\s+(?:then|and)\s+(accept|dismiss)(?:\s+it)?)?(?:\s+with\s+(['\"])(.*?)\3)?\s*$",
    re.IGNORECASE,
)

_NAVIGATE = re.compile(
    r"^(?:navigate\s+to|go\s+to|open|visit|browse\s+to|load)\s+(?:the\s+)?"
    r"(?:(?:url|page|website|site)\s+)?(.+)$",
    re.IGNORECASE,
)
_URL = re.compile(r"(https?://[^\s'\"]+)", re.IGNORECASE)
_URL_LIKE = re.compile(r"^(?:www\.|/|[\w-]+(?:\.[\w-]+)+(?:[/:?#]\S*)?$)", re.IGNORECASE)

_TYPE = re.compile(r"^(type|enter|input|write|put|fill(?:\s+in|\s+out)?)\s+(.+)$", re.IGNORECASE)
_SELECT = re.compile(r"^(?:select|choose|pick)\s+(.+)$", re.IGNORECASE)
_HOVER = re.compile(r"^(?:hover|mouse\s*over|move\s+(?:the\s+)?mouse\s+(?:over|to))(?:\s+(?:over|on))?\s*(.*)$", re.IGNORECASE)
_SCROLL = re.compile(r"^scroll\b\s*(.*)$", re.IGNORECASE)
_SCROLL_DIRECTION = re.compile(r"^(?:the\s+page\s+)?(?:to\s+(?:the\s+)?)?(top|bottom|up|down)\b", re.IGNORECASE)
_SKIP = re.compile(r"^skip\b[\s:-]*(.*)$", re.IGNORECASE)
_CLICK = re.compile(
    r"^(?:double[- ]?click|right[- ]?click|click|press|tap|hit|push|check|uncheck|toggle)"
    r"(?:\s+on)?\s*(.*)$",
    re.IGNORECASE,
)

_ORDINAL_TAIL = re.compile(
    r"\s*\b(?:the\s+)?(first|second|third|fourth|fifth|last|\d+(?:st|nd|rd|th))(?:\s+(?:one|element|match|item))?\s*$",
    re.IGNORECASE,
)
_ORDINALS = {"first": 0, "second": 1, "third": 2, "fourth": 3, "fifth": 4, "last": -1}

_LEADING_ARTICLE = re.compile(r"^(?:the|a|an)\s+", re.IGNORECASE)
_TRAILING_NOUN = re.compile(
    r"\s+(?:button|link|tab|icon|element|field|input|textbox|text\s+box|box|checkbox|option|"
    r"dropdown|menu\s+item|image|item)$",
    re.IGNORECASE,
)

_MASK = "\x00"


def to_ms(amount: str, unit: Optional[str], default_unit: str = "s") -> int:
    value = float(amount)
    unit = (unit or default_unit).lower()
    if unit in _UNIT_MS or unit.startswith("ms"):
        return int(value)
    if unit.startswith("m") and not unit.startswith("ms"):
        return int(value * 60000)
    return int(value * 1000)


def clean_target(text: str) -> str:
    """Reduce a natural-language element reference to its key words."""
    quoted = quoted_text(text)
    if quoted:
        return quoted
    text = _LEADING_ARTICLE.sub("", text.strip().rstrip(".")).strip()
    stripped = _TRAILING_NOUN.sub("", text).strip()
    return stripped or text


def target_of(text: str) -> Tuple[str, str]:
    """Returns (target, descriptive_term) for a fragment that may hold a hint."""
    hint = extract_hinted_selector(text)
    if hint:
        return hint.as_target, hint.remaining_step or hint.value
    return clean_target(text), text.strip()


def _mask_hint(text: str) -> Tuple[str, Optional[HintExtraction]]:
    hint = extract_hinted_selector(text)
    if not hint:
        return text, None
    return text.replace(hint.raw, _MASK, 1), hint


def _unmask(fragment: str, hint: Optional[HintExtraction]) -> Tuple[str, str]:
    fragment = fragment.strip()
    if hint and _MASK in fragment:
        return hint.as_target, hint.value
    return clean_target(fragment), fragment


def _ordinal_index(text: str) -> Tuple[str, Optional[int]]:
    match = _ORDINAL_TAIL.search(text)
    if not match:
        return text, None
    word = match.group(1).lower()
    index = _ORDINALS.get(word)
    if index is None:
        index = max(int(re.match(r"\d+", word).group(0)) - 1, 0)
    return text[:match.start()].strip(), index


# --- 1. wait -----------------------------------------------------------------

def match_wait(text: str) -> Optional[ParsedStep]:
    match = _WAIT_DURATION.match(text)
    if match:
        return ParsedStep(action="wait", timeout=to_ms(match.group(1), match.group(2)), original_step=text)
    if _WAIT_BARE.match(text):
        return ParsedStep(action="wait", timeout=3000, original_step=text)

    match = _WAIT_FOR.match(text)
    if not match:
        return None
    rest = match.group(1).strip()
    timeout = None
    limit = _WAIT_LIMIT.search(rest)
    if limit:
        timeout = to_ms(limit.group(1), limit.group(2))
        rest = rest[:limit.start()].strip()

    if _PAGE_LOAD.match(rest):
        return ParsedStep(action="wait", value="load", timeout=timeout, original_step=text)
    rest = _WAIT_CONDITION_TAIL.sub("", rest).strip()
    target, term = target_of(rest)
    return ParsedStep(action="wait", target=target, descriptive_term=term, timeout=timeout, original_step=text)


# --- 2. iframes --------------------------------------------------------------

def match_iframe(text: str) -> Optional[ParsedStep]:
    if _MAIN_CONTENT.match(text):
        return ParsedStep(action="switchToMainContent", original_step=text)
    match = _IFRAME.match(text)
    if not match:
        return None
    rest = re.sub(r"^(?:with|named|called|titled)\s+", "", match.group(1).strip(), flags=re.IGNORECASE)
    if not rest:
        return ParsedStep(action="switchToIframe", original_step=text)
    target, term = target_of(rest)
    return ParsedStep(action="switchToIframe", target=target, descriptive_term=term, original_step=text)


# --- 3. upload ---------------------------------------------------------------

def match_upload(text: str) -> Optional[ParsedStep]:
    match = _UPLOAD.match(text)
    if not match:
        return None
    parts = split_outside(match.group(1), ["to", "into", "using", "on", "via", "in"])
    if not parts:
        return None
    path, _, rest = parts
    target, term = target_of(rest)
    return ParsedStep(
        action="upload", file_path=strip_quotes(path), target=target,
        descriptive_term=term, original_step=text,
    )


# --- 4. drag and drop --------------------------------------------------------

def match_drag(text: str) -> Optional[ParsedStep]:
    match = _DRAG.match(text)
    if not match:
        return None
    parts = split_outside(match.group(1), ["to", "onto", "into", "on", "over"])
    if not parts:
        return None
    source, _, destination = parts
    source_target, source_term = target_of(source)
    destination_target, _ = target_of(destination)
    return ParsedStep(
        action="dragAndDrop", target=source_target, destination_target=destination_target,
        descriptive_term=source_term, original_step=text,
    )


# --- 5. assertions -----------------------------------------------------------

def _split_commas(body: str):
    chunks, current = [], []
    depth, quote = 0, None
    for ch in body:
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth = max(depth - 1, 0)
        elif ch == "," and depth == 0:
            chunks.append("".join(current))
            current = []
            continue
        current.append(ch)
    chunks.append("".join(current))
    return chunks


def _split_pairs(body: str):
    pairs = {}
    for chunk in _split_commas(body):
        match = re.match(r"^\s*(\w+)\s*[=:]\s*(.*?)\s*$", chunk, re.DOTALL)
        if match:
            pairs[match.group(1).lower()] = strip_quotes(match.group(2))
    return pairs


def _structured_assertion(text: str, body: str) -> Optional[ParsedStep]:
    pairs = _split_pairs(body)
    kind = pairs.get("type", "")
    kinds = {k.lower(): k for k in ("url", "elementText", "elementVisible", "pageText", "elementValue")}
    if kind.lower() not in kinds:
        return None
    kind = kinds[kind.lower()]
    condition = pairs.get("condition")
    if condition not in ("equals", "contains", "isVisible"):
        condition = "isVisible" if kind == "elementVisible" else "contains"
    selector = pairs.get("selector") or pairs.get("target")
    expected = pairs.get("expected") or pairs.get("expectedtext") or pairs.get("text") or pairs.get("value")
    assertion = AssertionDetails(type=kind, selector=selector, expected_text=expected, condition=condition)
    return ParsedStep(
        action="assert", target=selector, assertion=assertion,
        descriptive_term=selector or expected, original_step=text,
    )


def match_assertion(text: str) -> Optional[ParsedStep]:
    if not re.match(rf"^{ASSERT_VERBS}\b", text, re.IGNORECASE):
        return None

    match = _ASSERT_URL.match(text)
    if match:
        condition = "contains" if match.group(1).lower().startswith(("contain", "include", "has")) else "equals"
        expected = strip_quotes(match.group(2).rstrip("."))
        return ParsedStep(
            action="assert", original_step=text, descriptive_term="url",
            assertion=AssertionDetails(type="url", expected_text=expected, condition=condition),
        )

    match = _ASSERT_STRUCTURED.match(text)
    if match:
        step = _structured_assertion(text, match.group(1))
        if step:
            return step

    masked, hint = _mask_hint(text)

    def build(kind, subject, expected=None, condition="contains"):
        selector, term = _unmask(subject, hint)
        return ParsedStep(
            action="assert", target=selector, descriptive_term=term, original_step=text,
            assertion=AssertionDetails(type=kind, selector=selector, expected_text=expected, condition=condition),
        )

    match = _ASSERT_VALUE_OF.match(masked)
    if match:
        condition = "contains" if match.group(2).lower() == "contains" else "equals"
        return build("elementValue", match.group(1), strip_quotes(match.group(3).rstrip(".")), condition)

    match = _ASSERT_VALUE.match(masked)
    if match:
        condition = "contains" if "contain" in match.group(2).lower() else "equals"
        return build("elementValue", match.group(1), strip_quotes(match.group(3).rstrip(".")), condition)

    match = _ASSERT_PAGE.match(masked)
    if match:
        expected = strip_quotes(match.group(1).rstrip("."))
        return ParsedStep(
            action="assert", original_step=text, descriptive_term=expected,
            assertion=AssertionDetails(type="pageText", expected_text=expected, condition="contains"),
        )

    match = _ASSERT_TEXT.match(masked)
    if match and match.group(1).strip().lower() not in ("page", "the page"):
        verb = match.group(2).lower()
        condition = "equals" if verb.startswith(("has text", "has the text", "text", "reads")) else "contains"
        return build("elementText", match.group(1), strip_quotes(match.group(3).rstrip(".")), condition)

    match = _ASSERT_VISIBLE.match(masked)
    if match:
        subject = match.group(1).strip()
        if _MASK not in subject and strip_quotes(subject) != subject:
            expected = strip_quotes(subject)
            return ParsedStep(
                action="assert", original_step=text, descriptive_term=expected,
                assertion=AssertionDetails(type="pageText", expected_text=expected, condition="contains"),
            )
        return build("elementVisible", subject, condition="isVisible")

    if hint:
        return build("elementVisible", _MASK, condition="isVisible")

    match = _ASSERT_ANY.match(text)
    rest = match.group(1).strip() if match else text
    literal = quoted_text(rest) or rest.rstrip(".")
    return ParsedStep(action="assert", target=literal, descriptive_term=rest, original_step=text)


# --- 6. executeScript --------------------------------------------------------

def match_script(text: str) -> Optional[ParsedStep]:
    match = _SCRIPT.match(text)
    if not match:
        return None
    body = match.group(1).strip()
    expectation = None

    dialog = _SCRIPT_DIALOG.search(body)
    if dialog:
        dialog_type = dialog.group(1).lower()
        if dialog_type == "confirmation":
            dialog_type = "confirm"
        action = (dialog.group(2) or "accept").lower()
        prompt_text = dialog.group(4) if dialog_type == "prompt" and action == "accept" else None
        expectation = DialogExpectation(type=dialog_type, action=action, prompt_text=prompt_text)
        body = body[:dialog.start()].strip()
    else:
        body, expectation = extract_dialog_expectation(body)

    body = strip_quotes(body)
    if not body:
        return None
    return ParsedStep(action="executeScript", value=body, expects_dialog=expectation, original_step=text)


# --- 9. standard actions -----------------------------------------------------

def _value_beside_hint(rest: str, connectors: str) -> str:
    quoted = quoted_text(rest)
    if quoted is not None:
        return quoted
    rest = re.sub(rf"\s+(?:{connectors})(?:\s+the)?(?:\s+\w+)?$", "", rest, flags=re.IGNORECASE)
    return strip_quotes(rest)


def match_standard(text: str, remaining: str, hint: Optional[HintExtraction],
                   dialog: Optional[DialogExpectation], index: Optional[int]) -> Optional[ParsedStep]:
    def step(action, target=None, term=None, **kwargs):
        if hint:
            target = hint.as_target
            term = term or hint.value
        return ParsedStep(
            action=action, target=target, descriptive_term=term, expects_dialog=dialog,
            index=index, original_step=text, **kwargs,
        )

    if not hint:
        match = _NAVIGATE.match(remaining)
        if match:
            rest = match.group(1).strip()
            url = _URL.search(rest)
            candidate = url.group(1) if url else strip_quotes(rest).rstrip(".")
            if url or _URL_LIKE.match(candidate):
                return step("navigate", target=candidate, term=candidate)

    match = _TYPE.match(remaining)
    if match:
        verb, rest = match.group(1).lower(), match.group(2).strip()
        if hint:
            return step("type", value=_value_beside_hint(rest, "into|in|to|on|with"))
        if verb.startswith("fill"):
            parts = split_outside(rest, ["with"])
            if parts:
                return step("type", target=clean_target(parts[0]), term=parts[0], value=strip_quotes(parts[2]))
        parts = split_outside(rest, ["into"]) or split_outside(rest, ["in", "on", "to", "for"])
        if parts:
            return step("type", target=clean_target(parts[2]), term=parts[2], value=strip_quotes(parts[0]))

    match = _SELECT.match(remaining)
    if match:
        rest = match.group(1).strip()
        if hint:
            return step("select", value=_value_beside_hint(rest, "from|in|on"))
        parts = split_outside(rest, ["from", "in"])
        if parts:
            return step("select", target=clean_target(parts[2]), term=parts[2], value=strip_quotes(parts[0]))

    match = _HOVER.match(remaining)
    if match and (hint or match.group(1).strip()):
        rest = match.group(1).strip()
        return step("hover", target=clean_target(rest) if rest else None, term=rest or None)

    match = _SCROLL.match(remaining)
    if match:
        rest = match.group(1).strip()
        if hint:
            return step("scroll")
        direction = _SCROLL_DIRECTION.match(rest)
        if direction:
            return step("scroll", target=direction.group(1).lower())
        if not rest:
            return step("scroll", target="down")
        rest = re.sub(r"^(?:to|into\s+view\s+of|until)\s+", "", rest, flags=re.IGNORECASE)
        return step("scroll", target=clean_target(rest), term=rest)

    match = _SKIP.match(remaining)
    if match and not hint:
        return ParsedStep(action="skip", value=match.group(1).strip() or None, original_step=text)

    match = _CLICK.match(remaining)
    if match:
        rest = match.group(1).strip()
        if hint or rest:
            return step("click", target=clean_target(rest) if rest else None, term=rest or None)

    return None
