from typing import List, Optional, Literal
from pydantic import Field, field_validator
from plainstep.models.dsl import CamelModel


class SelectorContext(CamelModel):
    """Request body for the selector-suggestion service."""
    failed_selector: str
    descriptive_term: Optional[str] = None
    page_url: str = ""
    dom_snippet: str = ""
    original_step: str = ""


class SelectorSuggestion(CamelModel):
    suggested_selector: Optional[str] = None
    suggested_strategy: Optional[Literal["css", "xpath"]] = None
    alternative_selectors: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None
    reasoning: Optional[str] = None

    @field_validator("suggested_strategy", mode="before")
    @classmethod
    def _normalise_strategy(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            return value if value in ("css", "xpath") else None
        return value

    @field_validator("alternative_selectors", mode="before")
    @classmethod
    def _drop_empty(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [v for v in value if isinstance(v, str) and v.strip()]

    @property
    def has_suggestion(self) -> bool:
        return bool(self.suggested_selector and self.suggested_selector.strip())
