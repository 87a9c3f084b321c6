from typing import Any

from playwright.sync_api import Error as PlaywrightError

from plainstep.errors import raise_if_crash

# JS snippets evaluated against element handles / frames. Kept as constants so
# every caller evaluates exactly the same source.

VISIBILITY_JS = """el => {
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    return style.display !== 'none'
        && style.visibility !== 'hidden'
        && parseFloat(style.opacity || '1') > 0
        && rect.width > 0 && rect.height > 0;
}"""

ELEMENT_INFO_JS = """el => ({
    tag: el.tagName.toLowerCase(),
    type: (el.getAttribute('type') || '').toLowerCase(),
    name: el.getAttribute('name') || '',
    placeholder: el.getAttribute('placeholder') || '',
    value: 'value' in el ? String(el.value) : null,
    text: (el.innerText || el.textContent || '').trim().slice(0, 200),
})"""

SCROLL_INTO_VIEW_JS = "el => el.scrollIntoView({block: 'center', inline: 'center'})"
JS_CLICK = "el => el.click()"

DOM_SNIPPET_JS = """(limits) => {
    const clip = (s, n) => (s || '').replace(/\\s+/g, ' ').trim().slice(0, n);
    const describe = (el) => {
        const parts = [el.tagName.toLowerCase()];
        for (const attr of ['id', 'name', 'type', 'class', 'placeholder', 'aria-label', 'data-testid', 'title', 'alt', 'value', 'role', 'href']) {
            const v = el.getAttribute(attr);
            if (v) parts.push(`${attr}="${clip(v, limits.attr)}"`);
        }
        const text = clip(el.innerText || el.textContent, limits.text);
        return `<${parts.join(' ')}>${text}`;
    };
    const take = (selector, n) => Array.from(document.querySelectorAll(selector)).slice(0, n).map(describe);
    const sections = [
        `title: ${clip(document.title, 100)}`,
        `url: ${location.href}`,
        'buttons:', ...take('button, input[type=submit], input[type=button], [role=button]', limits.buttons),
        'inputs:', ...take('input:not([type=hidden]), textarea, select', limits.inputs),
        'images:', ...take('img', limits.images),
        'links:', ...take('a[href]', limits.links),
        'containers:', ...take('div[id], div[class*=gallery], div[class*=trash], div[class*=modal], div[class*=popup]', limits.containers),
        'spans:', ...take('span', limits.spans),
    ];
    return sections.join('\\n');
}"""

SNIPPET_LIMITS = {
    "buttons": 10,
    "inputs": 5,
    "images": 5,
    "links": 5,
    "containers": 5,
    "spans": 5,
    "text": 50,
    "attr": 30,
}

SNIPPET_MAX_CHARS = 6000


def capture_dom_snippet(frame: Any, max_chars: int = SNIPPET_MAX_CHARS) -> str:
    """Bounded summary of interactive elements on the current frame for the AI service."""
    try:
        snippet = frame.evaluate(DOM_SNIPPET_JS, SNIPPET_LIMITS)
    except Exception as e:
        return f"(DOM snippet unavailable: {e})"
    snippet = snippet or ""
    return snippet[:max_chars]


def is_visible(handle: Any) -> bool:
    try:
        return bool(handle.evaluate(VISIBILITY_JS))
    except Exception as e:
        raise_if_crash(e)
        return False


def element_info(handle: Any) -> dict:
    return handle.evaluate(ELEMENT_INFO_JS) or {}


def safe_dispose(handle: Any):
    if handle is None:
        return
    try:
        handle.dispose()
    except PlaywrightError:
        return  # already detached
