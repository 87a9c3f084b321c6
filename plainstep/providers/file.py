import json
import os
from typing import Any, List

import yaml
from pydantic import ValidationError

from plainstep.models.dsl import TestCase
from plainstep.parser.step_parser import parse_raw_steps
from plainstep.providers.base import TestCaseProvider


class FileProvider(TestCaseProvider):
    """
    Loads test cases from a file:
    - .yaml / .yml / .json: a list of cases, or {"cases": [...]}, or a single case
    - anything else: one case whose steps are the file's lines
    """

    def __init__(self, path: str):
        self.path = path

    def get_cases(self) -> List[TestCase]:
        ext = os.path.splitext(self.path)[1].lower()
        with open(self.path, 'r', encoding='utf-8') as f:
            raw = f.read()

        if ext in ['.yaml', '.yml']:
            data = yaml.safe_load(raw)
        elif ext == '.json':
            data = json.loads(raw)
        else:
            case_id = os.path.splitext(os.path.basename(self.path))[0]
            return [TestCase(id=case_id, steps=parse_raw_steps(raw))]

        return self._normalize(data)

    def _normalize(self, data: Any) -> List[TestCase]:
        if isinstance(data, dict):
            data = data.get("cases", [data])
        if not isinstance(data, list):
            raise ValueError(f"{self.path}: expected a list of test cases")

        cases = []
        for idx, item in enumerate(data):
            if not isinstance(item, dict):
                print(f"Skipping entry {idx + 1} in {self.path}: not a mapping")
                continue
            steps = item.get("steps", [])
            if isinstance(steps, str):
                steps = parse_raw_steps(steps)
            item = {**item, "steps": [str(s) for s in steps]}
            item.setdefault("id", str(idx + 1))
            item["id"] = str(item["id"])
            try:
                cases.append(TestCase.model_validate(item))
            except ValidationError as e:
                print(f"Skipping entry {idx + 1} in {self.path}: {e}")
        return cases
