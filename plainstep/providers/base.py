from abc import ABC, abstractmethod
from typing import List
from plainstep.models.dsl import TestCase

class TestCaseProvider(ABC):
    __test__ = False

    @abstractmethod
    def get_cases(self) -> List[TestCase]:
        """
        Returns a list of test cases.
        Each case has an id and its plain-English steps, optionally a title,
        an expected result and a base URL.
        """
        pass
