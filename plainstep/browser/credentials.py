import getpass
from typing import Callable, Dict, Optional

from plainstep.config import PLAINSTEP_USERNAME, PLAINSTEP_PASSWORD

PLACEHOLDERS = {
    "credential-username": "username",
    "credential-password": "password",
}


class CredentialStore:
    """Holds login secrets for one case run. Asks the operator at most once per key.

    Values passed in up front (from the environment) survive clear(); answers
    typed at a prompt do not.
    """

    def __init__(self, username: Optional[str] = PLAINSTEP_USERNAME, password: Optional[str] = PLAINSTEP_PASSWORD,
                 prompt: Optional[Callable[[str], str]] = None, secret_prompt: Optional[Callable[[str], str]] = None):
        self._seeded: Dict[str, str] = {}
        if username:
            self._seeded["username"] = username
        if password:
            self._seeded["password"] = password
        self._values: Dict[str, str] = dict(self._seeded)
        self._prompt = prompt or input
        self._secret_prompt = secret_prompt or getpass.getpass

    @staticmethod
    def placeholder_key(value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return PLACEHOLDERS.get(value.strip().strip("{}").strip().lower())

    def get(self, key: str) -> str:
        if key not in self._values:
            if key == "password":
                self._values[key] = self._secret_prompt("Password for this test run: ")
            else:
                self._values[key] = self._prompt(f"{key.capitalize()} for this test run: ").strip()
        return self._values[key]

    def resolve(self, value: Optional[str]) -> Optional[str]:
        """Swap a credential placeholder for the real secret; other values pass through."""
        key = self.placeholder_key(value)
        return self.get(key) if key else value

    def clear(self, keep_seeded: bool = True):
        if not keep_seeded:
            self._seeded = {}
        self._values = dict(self._seeded)
