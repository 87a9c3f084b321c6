from abc import ABC, abstractmethod
from plainstep.models.ai import SelectorContext, SelectorSuggestion


class AIService(ABC):
    @abstractmethod
    def interpret_step(self, step: str) -> str:
        """
        Rewrites an unclear step into one the grammar understands.
        Returns the original step when the service has nothing better.
        """
        pass

    @abstractmethod
    def suggest_selector(self, context: SelectorContext) -> SelectorSuggestion:
        """
        Proposes a selector for an element the resolver could not find.
        A suggestion without `suggested_selector` means "no suggestion".
        """
        pass
