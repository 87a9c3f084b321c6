from typing import Dict

from plainstep.actions.assertion import assert_step
from plainstep.actions.base import Action
from plainstep.actions.drag import drag_and_drop
from plainstep.actions.frames import switch_to_iframe, switch_to_main_content
from plainstep.actions.interaction import click, type_text, select, hover, scroll
from plainstep.actions.navigation import navigate, wait, execute_script, skip
from plainstep.actions.upload import upload

ACTIONS: Dict[str, Action] = {
    "navigate": navigate,
    "click": click,
    "type": type_text,
    "select": select,
    "hover": hover,
    "scroll": scroll,
    "upload": upload,
    "dragAndDrop": drag_and_drop,
    "assert": assert_step,
    "switchToIframe": switch_to_iframe,
    "switchToMainContent": switch_to_main_content,
    "executeScript": execute_script,
    "wait": wait,
    "skip": skip,
}
