# config.py
# Environment-driven defaults. Values are read once at import time; a .env file
# in the working directory is honoured.

import os

from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


DEFAULT_MODEL = os.getenv("LLM_FUNCTIONS_MODEL", "gpt-4o-mini")
DEFAULT_TEMPERATURE = float(os.getenv("LLM_FUNCTIONS_TEMPERATURE", "0.7"))
DEFAULT_MAX_TOKENS = _optional_int("LLM_FUNCTIONS_MAX_TOKENS")

# Schema-validation retries allowed after the first attempt.
MAX_RETRIES = int(os.getenv("LLM_FUNCTIONS_MAX_RETRIES", "3"))


def api_key() -> str | None:
    return os.getenv("OPENAI_API_KEY") or os.getenv("OPENROUTER_API_KEY")


def base_url() -> str | None:
    """OpenAI-compatible endpoint, e.g. https://openrouter.ai/api/v1. None means api.openai.com."""
    return os.getenv("LLM_FUNCTIONS_BASE_URL") or None
