from typing import Optional

from plainstep.models.ai import SelectorSuggestion
from plainstep.models.dsl import ParsedStep
from plainstep.parser.hints import dialog_suffix, to_hint

# Actions whose failure can be fixed by pointing at a different element
HEALABLE_ACTIONS = {"click", "type", "select", "hover", "scroll", "upload", "dragAndDrop", "switchToIframe", "wait"}


def can_heal(step: ParsedStep) -> bool:
    if step.action == "navigate":
        return False
    if step.action == "assert":
        return step.assertion is not None and step.assertion.type in ("elementText", "elementVisible", "elementValue")
    return step.action in HEALABLE_ACTIONS and bool(step.target)


def suggestion_hint(suggestion: SelectorSuggestion) -> str:
    selector = suggestion.suggested_selector.strip()
    if selector.startswith("xpath="):
        return to_hint("xpath", selector[len("xpath="):])
    if selector.startswith("css="):
        return to_hint("css", selector[len("css="):])
    if suggestion.suggested_strategy == "xpath" or selector.startswith(("/", "(")):
        return to_hint("xpath", selector)
    return to_hint("css", selector)


def _quote(value: Optional[str]) -> str:
    value = value or ""
    return f"'{value}'" if '"' in value else f'"{value}"'


def build_healed_step(step: ParsedStep, suggestion: SelectorSuggestion,
                      failed_target: Optional[str] = None) -> str:
    """Rewrite a step so its target is the AI suggested selector, in hint syntax."""
    hint = suggestion_hint(suggestion)
    action = step.action

    if action == "type":
        text = f"type {_quote(step.value)} into {hint}"
    elif action == "select":
        text = f"select {_quote(step.value)} from {hint}"
    elif action == "hover":
        text = f"hover over {hint}"
    elif action == "scroll":
        text = f"scroll to {hint}"
    elif action == "upload":
        text = f"upload {_quote(step.file_path)} to {hint}"
    elif action == "switchToIframe":
        text = f"switch to iframe {hint}"
    elif action == "wait":
        text = f"wait for {hint}"
    elif action == "dragAndDrop":
        if failed_target is not None and failed_target == step.destination_target:
            text = f"drag {step.target} to {hint}"
        else:
            text = f"drag {hint} to {step.destination_target}"
    elif action == "assert" and step.assertion is not None:
        details = step.assertion
        expected = _quote(details.expected_text)
        if details.type == "elementVisible":
            text = f"assert {hint} is visible"
        elif details.type == "elementValue":
            verb = "contains value" if details.condition == "contains" else "has value"
            text = f"assert {hint} {verb} {expected}"
        else:
            verb = "contains text" if details.condition == "contains" else "has text"
            text = f"assert {hint} {verb} {expected}"
    else:
        text = f"click {hint}"

    if step.expects_dialog is not None:
        text += dialog_suffix(step.expects_dialog)
    return text
