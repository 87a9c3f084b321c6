from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ActionType = Literal[
    "navigate", "click", "type", "wait", "assert", "select", "hover", "scroll",
    "upload", "dragAndDrop", "switchToIframe", "switchToMainContent",
    "executeScript", "skip",
]

AssertionType = Literal["url", "elementText", "elementVisible", "pageText", "elementValue"]
AssertionCondition = Literal["equals", "contains", "isVisible"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AssertionDetails(CamelModel):
    type: AssertionType
    selector: Optional[str] = Field(None, description="Target element, raw text or (type: value) hint")
    expected_text: Optional[str] = None
    condition: AssertionCondition = "contains"


class DialogExpectation(CamelModel):
    type: Literal["alert", "confirm", "prompt"]
    action: Literal["accept", "dismiss"] = "accept"
    prompt_text: Optional[str] = None


class ParsedStep(CamelModel):
    action: ActionType = Field(..., description="What to do. Never empty.")
    target: Optional[str] = Field(None, description="Raw text or a (type: value) selector hint")
    destination_target: Optional[str] = Field(None, description="Drop target for dragAndDrop")
    value: Optional[str] = Field(None, description="Text to type/select, or script body")
    file_path: Optional[str] = None
    timeout: Optional[int] = Field(None, description="Milliseconds")
    index: Optional[int] = Field(None, description="0-based match index, -1 for last")
    assertion: Optional[AssertionDetails] = None
    expects_dialog: Optional[DialogExpectation] = None
    descriptive_term: Optional[str] = None
    ambiguous: bool = False
    original_step: str


class ElementDescriptor(CamelModel):
    raw_text: str
    hint_type: Optional[str] = None
    hint_value: Optional[str] = None
    descriptive_term: Optional[str] = None
    index: int = 0

    @classmethod
    def from_target(cls, target: str, descriptive_term: Optional[str] = None,
                    index: Optional[int] = None) -> "ElementDescriptor":
        # Imported here, hints depends on this module
        from plainstep.parser.hints import extract_hinted_selector

        hint = extract_hinted_selector(target)
        if hint and not hint.remaining_step:
            return cls(
                raw_text=target,
                hint_type=hint.type,
                hint_value=hint.value,
                descriptive_term=descriptive_term or hint.value,
                index=index or 0,
            )
        return cls(raw_text=target, descriptive_term=descriptive_term or target, index=index or 0)


class ResolutionAttempt(CamelModel):
    strategy_name: str
    selector_used: str
    outcome: Literal["found", "not_found", "hidden", "error"]
    elapsed_ms: int = 0


class StepResult(CamelModel):
    step_number: int
    step_description: str
    status: Literal["passed", "failed"]
    message: Optional[str] = None
    screenshot_base64: Optional[str] = None
    failure_type: Optional[Literal["elementNotFound", "actionFailed", "other"]] = None
    duration_ms: int = 0
    heal_attempts: int = 0
    healed_step: Optional[str] = None


class TestCaseResult(CamelModel):
    __test__ = False  # not a pytest class

    test_case_id: str
    title: Optional[str] = None
    status: Literal["passed", "failed"] = "passed"
    steps: List[StepResult] = Field(default_factory=list)
    duration_ms: int = 0
    logs: List[str] = Field(default_factory=list)
    crash_recoveries: int = 0


class TestCase(CamelModel):
    __test__ = False

    id: str
    title: Optional[str] = None
    steps: List[str]
    expected_result: Optional[str] = None
    base_url: Optional[str] = None
