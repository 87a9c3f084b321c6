import http.client
import json
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

from pydantic import ValidationError

from plainstep.errors import ExternalServiceError
from plainstep.llm.base import AIService
from plainstep.llm.retry import is_retryable_status
from plainstep.models.ai import SelectorContext, SelectorSuggestion
from plainstep.config import PLAINSTEP_API_URL, PLAINSTEP_API_TOKEN, PLAINSTEP_AI_TIMEOUT


class BackendAIService(AIService):
    """Talks to the backend's /ai/interpret and /ai/suggest-selector routes."""

    def __init__(self, api_url: str = PLAINSTEP_API_URL, token: Optional[str] = PLAINSTEP_API_TOKEN,
                 timeout: float = PLAINSTEP_AI_TIMEOUT):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        request = urllib.request.Request(
            url, data=json.dumps(payload).encode("utf-8"), headers=headers, method="POST"
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            raise ExternalServiceError(
                f"HTTP Error {e.code} from {url}", retryable=is_retryable_status(e.code), status=e.code
            ) from e
        except UnicodeDecodeError as e:
            raise ExternalServiceError(f"Response from {url} is not UTF-8: {e}") from e
        # URLError, socket timeouts and resets are all OSErrors
        except (OSError, http.client.HTTPException) as e:
            raise ExternalServiceError(f"Cannot reach {url}: {e}", retryable=True) from e

        try:
            data = json.loads(body) if body else {}
        except json.JSONDecodeError as e:
            raise ExternalServiceError(f"Invalid JSON from {url}: {e}") from e
        # Backend wraps payloads as {"success": ..., "data": {...}}
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        return data if isinstance(data, dict) else {}

    def interpret_step(self, step: str) -> str:
        data = self._post("/ai/interpret", {"step": step})
        interpreted = data.get("interpretedStep") or data.get("step") or data.get("result")
        return interpreted.strip() if isinstance(interpreted, str) and interpreted.strip() else step

    def suggest_selector(self, context: SelectorContext) -> SelectorSuggestion:
        data = self._post("/ai/suggest-selector", context.model_dump(by_alias=True))
        try:
            return SelectorSuggestion.model_validate(data)
        except ValidationError as e:
            raise ExternalServiceError(f"Malformed selector suggestion: {e}") from e
