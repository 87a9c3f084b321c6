import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Backend AI service (interpret + suggest-selector)
PLAINSTEP_API_URL = os.getenv("PLAINSTEP_API_URL", "http://localhost:5000/api")
PLAINSTEP_API_TOKEN = os.getenv("PLAINSTEP_API_TOKEN")
PLAINSTEP_AI_PROVIDER = os.getenv("PLAINSTEP_AI_PROVIDER", "backend")  # backend | openai | none
PLAINSTEP_AI_TIMEOUT = float(os.getenv("PLAINSTEP_AI_TIMEOUT", "30"))
PLAINSTEP_AI_HEALING = _env_bool("PLAINSTEP_AI_HEALING", True)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_API_BASE_URL", os.getenv("OPENAI_BASE_URL")) # Support both namings
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")

PLAINSTEP_HEADLESS = _env_bool("PLAINSTEP_HEADLESS", True)
PLAINSTEP_LOG_DIR = os.getenv("PLAINSTEP_LOG_DIR", "logs")
PLAINSTEP_QUIRKS_FILE = os.getenv("PLAINSTEP_QUIRKS_FILE", "site_quirks.yaml")

# Optional pre-seeded credentials for credential-username / credential-password
PLAINSTEP_USERNAME = os.getenv("PLAINSTEP_USERNAME")
PLAINSTEP_PASSWORD = os.getenv("PLAINSTEP_PASSWORD")

BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]
VIEWPORT = {"width": 1280, "height": 720}

MAX_AI_RETRIES = 2


@dataclass
class ResolverSettings:
    """Timing knobs for element resolution, all in milliseconds."""
    ai_suggestion_wait_ms: int = 5000
    fallback_wait_ms: int = 2000
    fallback_budget_ms: int = 10000
    dom_dump_limit: int = 20000
    ai_max_attempts: int = 3
    ai_retry_base_delay: float = 1.0


@dataclass
class ExecutorSettings:
    navigation_timeout_ms: int = 30000
    action_timeout_ms: int = 10000
    consent_settle_ms: int = 1500
    dialog_wait_ms: int = 2000
    upload_confirm_ms: int = 5000
    iframe_any_timeout_ms: int = 10000
    iframe_match_timeout_ms: int = 15000
    iframe_ready_timeout_ms: int = 10000
    content_frame_retries: int = 10
    content_frame_interval_ms: int = 500
    search_settle_ms: int = 750
    max_ai_retries: int = MAX_AI_RETRIES
    max_crash_recoveries: int = 1
    auto_submit_password: bool = True


def check_api_key(provider: str = PLAINSTEP_AI_PROVIDER):
    if provider == "openai" and not OPENAI_API_KEY:
        print("Error: OPENAI_API_KEY environment variable is not set.")
        print("Please export OPENAI_API_KEY='sk-...' or create a .env file.")
        sys.exit(1)
    if provider == "backend" and not PLAINSTEP_API_URL:
        print("Error: PLAINSTEP_API_URL environment variable is not set.")
        sys.exit(1)
