"""
Runtime configuration: provider credentials and environment settings.

Values come from the process environment, optionally populated from a .env
file through python-dotenv.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field

from .artifact import ApiProvider, StrictModel
from .constants import (
    GEMINI_API_KEY_ENV_VAR,
    GEMINI_API_KEY_FALLBACK_ENV_VAR,
    HUGGINGFACE_API_KEY_ENV_VAR,
)

# Providers that refuse anonymous calls
KEYED_PROVIDERS = frozenset({ApiProvider.GEMINI, ApiProvider.HUGGINGFACE})


class Credentials(StrictModel):
    """API keys supplied per call to the provider adapter."""
    gemini_api_key: Optional[str] = Field(None, description="Google AI Studio key for Gemini and Imagen.")
    huggingface_api_key: Optional[str] = Field(None, description="Hugging Face access token for the inference API.")

    def key_for(self, provider: ApiProvider) -> Optional[str]:
        if provider == ApiProvider.GEMINI:
            return self.gemini_api_key or None
        if provider == ApiProvider.HUGGINGFACE:
            return self.huggingface_api_key or None
        return None

    def has_key_for(self, provider: ApiProvider) -> bool:
        return provider not in KEYED_PROVIDERS or bool(self.key_for(provider))


def requires_api_key(provider: ApiProvider) -> bool:
    return provider in KEYED_PROVIDERS


def load_credentials(dotenv_path: Optional[str] = None) -> Credentials:
    """Read provider API keys from the environment (after loading .env)."""
    load_dotenv(dotenv_path)
    return Credentials(
        gemini_api_key=os.getenv(GEMINI_API_KEY_ENV_VAR) or os.getenv(GEMINI_API_KEY_FALLBACK_ENV_VAR),
        huggingface_api_key=os.getenv(HUGGINGFACE_API_KEY_ENV_VAR),
    )


def get_request_timeout() -> float:
    """Per-request timeout in seconds for provider calls."""
    return float(os.getenv("COMIC_REQUEST_TIMEOUT", "120"))


def get_llm_log_path() -> str:
    return os.getenv("COMIC_LLM_LOG_PATH", "llm_log.txt")


def get_data_dir() -> str:
    return os.getenv("COMIC_DATA_DIR", "data")
