import re
from typing import List, Tuple

from plainstep.parser.hints import xpath_literal

Strategy = Tuple[str, str]  # (name, selector)

_IDENT = re.compile(r"^[A-Za-z_][\w-]*$")
_CSS_LIKE = re.compile(r"^[#.\[]|^[a-z]+[#.\[:]|[>~+]|\w+\s*\[", re.IGNORECASE)

USERNAME_WORDS = re.compile(r"\b(user\s*name|username|user|login\s*id|e-?mail)\b", re.IGNORECASE)
PASSWORD_WORDS = re.compile(r"\bpass\s*word|\bpasscode\b|\bpwd\b", re.IGNORECASE)
SUBMIT_WORDS = re.compile(r"\b(log\s*in|sign\s*in|submit|continue)\b", re.IGNORECASE)


def _attr(name: str, value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'[{name}="{escaped}"]'


def login_heuristics(term: str) -> List[Strategy]:
    """Common login form controls, tried when the description mentions them."""
    found: List[Strategy] = []
    if PASSWORD_WORDS.search(term):
        found += [("heuristic:password", "input[type=password]")]
    elif USERNAME_WORDS.search(term):
        found += [
            ("heuristic:username", "input[autocomplete=username]"),
            ("heuristic:username", "input[type=email]"),
            ("heuristic:username", "input[name*=user i], input[id*=user i]"),
            ("heuristic:username", "input[name*=email i], input[id*=email i]"),
        ]
    if SUBMIT_WORDS.search(term):
        found += [
            ("heuristic:submit", "button[type=submit]"),
            ("heuristic:submit", "input[type=submit]"),
        ]
    return found


def fallback_strategies(term: str) -> List[Strategy]:
    """Deterministic selectors derived from a raw element description, most specific first."""
    term = (term or "").strip()
    if not term:
        return []
    literal = xpath_literal(term)
    strategies: List[Strategy] = []

    if _CSS_LIKE.search(term) and not term.startswith("//"):
        strategies.append(("fallback:css", term))
    if term.startswith(("/", "(")):
        strategies.append(("fallback:xpath", f"xpath={term}"))

    if _IDENT.match(term):
        strategies += [
            ("fallback:id", f"#{term}"),
            ("fallback:class", f".{term}"),
        ]
    strategies += [
        ("fallback:name", _attr("name", term)),
        ("fallback:data-testid", _attr("data-testid", term)),
        ("fallback:aria-label", _attr("aria-label", term)),
        ("fallback:placeholder", _attr("placeholder", term)),
        ("fallback:title", _attr("title", term)),
        ("fallback:img-alt", "img" + _attr("alt", term)),
        ("fallback:exact-text", f"xpath=//*[normalize-space(text())={literal}]"),
        ("fallback:button-text",
         f"xpath=//button[contains(normalize-space(.), {literal})]"
         f" | //input[(@type='button' or @type='submit') and contains(@value, {literal})]"),
        ("fallback:link-text", f"xpath=//a[contains(normalize-space(.), {literal})]"),
        ("fallback:label-input",
         f"xpath=//input[@id=//label[contains(normalize-space(.), {literal})]/@for]"
         f" | //label[contains(normalize-space(.), {literal})]//*[self::input or self::textarea or self::select]"),
        ("fallback:clickable-text",
         f"xpath=//*[(@onclick or @role='button' or @role='link' or @tabindex) and contains(normalize-space(.), {literal})]"),
        ("fallback:contains-text", f"xpath=//*[contains(normalize-space(text()), {literal})]"),
    ]
    if _IDENT.match(term):
        strategies.append(("fallback:role", _attr("role", term.lower())))
    strategies.append(("fallback:value", _attr("value", term)))
    strategies += login_heuristics(term)
    return strategies
