import json
import openai
from openai import OpenAI
from pydantic import ValidationError

from plainstep.errors import ExternalServiceError
from plainstep.llm.base import AIService
from plainstep.llm.retry import is_retryable_status
from plainstep.models.ai import SelectorContext, SelectorSuggestion
from plainstep.config import OPENAI_API_KEY, OPENAI_MODEL, OPENAI_BASE_URL, PLAINSTEP_AI_TIMEOUT, check_api_key

INTERPRET_PROMPT = """
You rewrite a single browser test step so that a simple rule-based parser understands it.

Supported step shapes:
- navigate to <url>
- click <element>
- type "<text>" into <element>
- select "<option>" from <element>
- hover over <element>
- scroll to top | bottom | up | down | <element>
- upload "<path>" to <element>
- drag <source> to <destination>
- wait <n> seconds
- assert that <element> is visible / has text "<text>" / has value "<text>"
- assert that the url contains "<text>"
- switch to iframe <element> / switch to main content
- execute script <javascript>

Elements may be written as selector hints: (css: #id), (xpath: //button[text()='Go']),
(id: ...), (name: ...), (text: ...), (placeholder: ...).

Rules:
1. Return ONLY the rewritten step as plain text, on one line.
2. Keep quoted values exactly as given.
3. If the step is already clear, return it unchanged.
"""

SUGGEST_PROMPT = """
You are an expert in web test automation. A test step could not find its target element.
Given the failed selector, the human description of the element and a snippet of the page DOM,
propose a better selector.

Output Schema (JSON):
{
  "suggestedSelector": "selector string",
  "suggestedStrategy": "css" | "xpath",
  "alternativeSelectors": ["other", "candidates"],
  "confidence": 0.0-1.0,
  "reasoning": "one sentence"
}

Rules:
1. ONLY return valid JSON. Do not include markdown formatting like ```json.
2. Prefer ids, names, data-testid and aria-label over positional selectors.
3. XPath selectors must start with // or (.
4. If nothing in the DOM matches, return {"suggestedSelector": null}.
"""


def _strip_fences(content: str) -> str:
    content = content.strip()
    # Clean up potential markdown formatting if the model disobeys
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


class OpenAIService(AIService):
    def __init__(self, model: str = OPENAI_MODEL, client=None):
        if client is None:
            check_api_key("openai")
            client = OpenAI(
                api_key=OPENAI_API_KEY,
                base_url=OPENAI_BASE_URL,
                timeout=PLAINSTEP_AI_TIMEOUT,
            )
        self.client = client
        self.model = model

    def _complete(self, system_prompt: str, user_content: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content}
                ],
                temperature=0.0
            )
        except openai.APIStatusError as e:
            raise ExternalServiceError(
                f"OpenAI error {e.status_code}: {e.message}",
                retryable=is_retryable_status(e.status_code), status=e.status_code,
            ) from e
        except (openai.APIConnectionError, openai.APITimeoutError) as e:
            raise ExternalServiceError(f"Cannot reach OpenAI ({OPENAI_BASE_URL}): {e}", retryable=True) from e
        except openai.APIError as e:
            raise ExternalServiceError(f"OpenAI request failed: {e}") from e
        if not response.choices:
            raise ExternalServiceError("OpenAI returned no choices")
        return _strip_fences(response.choices[0].message.content or "")

    def interpret_step(self, step: str) -> str:
        content = self._complete(INTERPRET_PROMPT, step)
        line = content.splitlines()[0].strip() if content else ""
        return line or step

    def suggest_selector(self, context: SelectorContext) -> SelectorSuggestion:
        user_content = json.dumps(context.model_dump(by_alias=True), ensure_ascii=False)
        content = self._complete(SUGGEST_PROMPT, user_content)
        try:
            return SelectorSuggestion.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ExternalServiceError(f"Malformed selector suggestion: {e}") from e
