import os
import re
from typing import List, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from plainstep.config import PLAINSTEP_QUIRKS_FILE


def _check_regex(pattern: str) -> str:
    try:
        re.compile(pattern)
    except re.error as e:
        raise ValueError(f"invalid regex {pattern!r}: {e}") from e
    return pattern


class FallbackRule(BaseModel):
    match: str = Field(..., description="Regex tested against the element description")
    selectors: List[str] = Field(default_factory=list)

    @field_validator("match")
    @classmethod
    def _compiles(cls, value: str) -> str:
        return _check_regex(value)


class SiteQuirk(BaseModel):
    name: str
    url_pattern: str
    native_drag_broken: bool = False
    navigation_wait_ms: int = 0
    overlay_selectors: List[str] = Field(default_factory=list)
    fallback_selectors: List[FallbackRule] = Field(default_factory=list)
    upload_confirmation_selectors: List[str] = Field(default_factory=list)

    @field_validator("url_pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        return _check_regex(value)

    def applies_to(self, url: str) -> bool:
        return bool(url) and re.search(self.url_pattern, url, re.IGNORECASE) is not None


DEFAULT_QUIRKS = [
    {
        "name": "globalsqa",
        "url_pattern": r"globalsqa\.com",
        "native_drag_broken": True,
    },
    {
        "name": "w3schools",
        "url_pattern": r"w3schools\.com",
        "navigation_wait_ms": 3000,
        "overlay_selectors": [
            "#snigel-cmp-widget #snigel-cmp-framework button.snigel-cmp-button.snigel-cmp-accept-all",
            "#accept-choices",
            'button[aria-label="Close Welcome Banner"]',
            'button[id^="close-"]',
        ],
        "fallback_selectors": [
            {"match": r"open\s*modal|modal\s*button", "selectors": ["xpath=//button[text()='Open Modal']", "#myBtn"]},
            {"match": r"close|×", "selectors": [".modal .close", "span.close"]},
        ],
    },
]


class SiteQuirks:
    """Per-site overrides, looked up by URL.

    Loaded from a YAML file shaped like:

        quirks:
          - name: example
            url_pattern: example\\.com
            native_drag_broken: true
    """

    def __init__(self, config_path: str = PLAINSTEP_QUIRKS_FILE, entries: List[dict] = None):
        self.quirks: List[SiteQuirk] = []

        raw = entries
        if raw is None and config_path and os.path.exists(config_path):
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config = yaml.safe_load(f) or {}
                    raw = config.get("quirks", []) if isinstance(config, dict) else config
            except (OSError, yaml.YAMLError) as e:
                print(f"Error loading site quirks: {e}")
        if raw is None:
            raw = DEFAULT_QUIRKS

        for entry in raw:
            try:
                self.quirks.append(SiteQuirk.model_validate(entry))
            except ValidationError as e:
                print(f"Skipping invalid site quirk {entry!r}: {e}")

    def for_url(self, url: str) -> List[SiteQuirk]:
        return [q for q in self.quirks if q.applies_to(url)]

    def native_drag_broken(self, url: str) -> bool:
        return any(q.native_drag_broken for q in self.for_url(url))

    def navigation_wait_ms(self, url: str) -> int:
        return max([q.navigation_wait_ms for q in self.for_url(url)] or [0])

    def overlay_selectors(self, url: str) -> List[str]:
        return [s for q in self.for_url(url) for s in q.overlay_selectors]

    def upload_confirmation_selectors(self, url: str) -> List[str]:
        return [s for q in self.for_url(url) for s in q.upload_confirmation_selectors]

    def fallback_selectors(self, url: str, term: str) -> List[Tuple[str, str]]:
        found = []
        for quirk in self.for_url(url):
            for rule in quirk.fallback_selectors:
                if term and re.search(rule.match, term, re.IGNORECASE):
                    found.extend((f"site:{quirk.name}", s) for s in rule.selectors)
        return found
