import random
from dataclasses import dataclass
from typing import List, Tuple

from playwright.sync_api import Error as PlaywrightError

from plainstep.actions.base import ActionContext
from plainstep.errors import ActionFailedError, raise_if_crash
from plainstep.models.dsl import ParsedStep
from plainstep.resolver.dom import safe_dispose
from plainstep.resolver.resolver import ResolvedElement

MARK_ORIGIN_JS = "el => { if (el.parentElement) el.parentElement.setAttribute('data-plainstep-drag-origin', '1'); return true; }"
PARENT_CHANGED_JS = """el => {
    const moved = !el.isConnected || !el.parentElement || !el.parentElement.hasAttribute('data-plainstep-drag-origin');
    document.querySelectorAll('[data-plainstep-drag-origin]').forEach(n => n.removeAttribute('data-plainstep-drag-origin'));
    return moved;
}"""
CHILD_COUNT_JS = "el => el.children.length"
DROP_MARKERS = '.dragged, .dropped, [data-dragged="true"], .ui-draggable-dropped'


@dataclass
class DragOptions:
    drag_delay_ms: int = 300
    drop_delay_ms: int = 300
    steps: int = 20
    wait_after_drop_ms: int = 1000
    curve: float = 10.0


def bezier_path(start: Tuple[float, float], end: Tuple[float, float], steps: int,
                curve: float = 10.0, rng=random) -> List[Tuple[float, float]]:
    """Points along a quadratic Bezier from start to end with a small random bend."""
    (x0, y0), (x2, y2) = start, end
    x1 = (x0 + x2) / 2 + rng.uniform(-curve, curve)
    y1 = (y0 + y2) / 2 + rng.uniform(-curve, curve)
    points = []
    for i in range(1, steps + 1):
        t = i / steps
        x = (1 - t) ** 2 * x0 + 2 * (1 - t) * t * x1 + t ** 2 * x2
        y = (1 - t) ** 2 * y0 + 2 * (1 - t) * t * y1 + t ** 2 * y2
        points.append((x, y))
    return points


def _center(element: ResolvedElement) -> Tuple[float, float]:
    box = element.handle.bounding_box()
    if not box:
        raise ActionFailedError(f"Element {element.selector} has no bounding box (hidden or detached)")
    return box["x"] + box["width"] / 2, box["y"] + box["height"] / 2


def native_drag(ctx: ActionContext, source: ResolvedElement, destination: ResolvedElement):
    source_locator = ctx.frame.locator(source.selector).nth(source.index)
    destination_locator = ctx.frame.locator(destination.selector).nth(destination.index)
    source_locator.drag_to(destination_locator, timeout=ctx.settings.action_timeout_ms)


def manual_drag(ctx: ActionContext, source: ResolvedElement, destination: ResolvedElement,
                options: DragOptions):
    mouse = ctx.page.mouse
    source.handle.hover(timeout=ctx.settings.action_timeout_ms)
    start = _center(source)
    end = _center(destination)

    mouse.move(start[0], start[1], steps=5)
    mouse.down()
    ctx.page.wait_for_timeout(options.drag_delay_ms)
    for x, y in bezier_path(start, end, options.steps, options.curve):
        mouse.move(x, y)
    ctx.page.wait_for_timeout(options.drop_delay_ms)
    mouse.up()
    # some drop zones only react to a final small movement
    mouse.move(end[0] + 2, end[1] + 2)
    mouse.move(end[0], end[1])


def _child_count(element: ResolvedElement) -> int:
    try:
        return int(element.handle.evaluate(CHILD_COUNT_JS))
    except PlaywrightError as e:
        raise_if_crash(e)
        return -1


def verify_drop(ctx: ActionContext, source: ResolvedElement, destination: ResolvedElement,
                children_before: int) -> bool:
    try:
        if source.handle.evaluate(PARENT_CHANGED_JS):
            ctx.log.info("Drop verified: source element moved to a new parent")
            return True
    except PlaywrightError as e:
        raise_if_crash(e)
    children_after = _child_count(destination)
    if children_before >= 0 and children_after > children_before:
        ctx.log.info(f"Drop verified: destination children {children_before} -> {children_after}")
        return True
    try:
        markers = ctx.frame.query_selector_all(DROP_MARKERS)
    except PlaywrightError as e:
        raise_if_crash(e)
        markers = []
    if markers:
        for marker in markers:
            safe_dispose(marker)
        ctx.log.info("Drop verified: drag/drop marker classes present")
        return True
    return False


def drag_and_drop(ctx: ActionContext, step: ParsedStep, options: DragOptions = None):
    options = options or DragOptions()
    if not step.destination_target:
        raise ActionFailedError("Drag step has no destination")

    with ctx.element(step.target, step) as source:
        destination_step = step.model_copy(update={"descriptive_term": step.destination_target, "index": None})
        with ctx.element(step.destination_target, destination_step) as destination:
            children_before = _child_count(destination)
            try:
                source.handle.evaluate(MARK_ORIGIN_JS)
            except PlaywrightError as e:
                raise_if_crash(e)

            native_ok = False
            if ctx.quirks.native_drag_broken(ctx.url):
                ctx.log.info("Native drag is unreliable on this site, using manual drag")
            else:
                try:
                    native_drag(ctx, source, destination)
                    native_ok = True
                    ctx.log.info(f"Native drag {source.selector} -> {destination.selector} done")
                except PlaywrightError as e:
                    raise_if_crash(e)
                    ctx.log.warning(f"Native drag failed, falling back to manual drag: {str(e).splitlines()[0]}")

            if not native_ok:
                manual_drag(ctx, source, destination, options)
                ctx.log.info(f"Manual drag {source.selector} -> {destination.selector} done")

            ctx.page.wait_for_timeout(options.wait_after_drop_ms)
            if not verify_drop(ctx, source, destination, children_before):
                ctx.log.warning("Drop could not be verified (no DOM change detected)")
