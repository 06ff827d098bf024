"""Shared configuration for the SOC1 analysis pipeline.

Values are resolved in three layers: built-in defaults, then environment
variables (loaded from the project-root ``.env``), then explicit overrides.
"""

import logging
import os
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ROOT = Path(__file__).parent.parent.parent.resolve()
load_dotenv(ROOT / ".env")

# OpenRouter is used whenever the local endpoint is switched off
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_REMOTE_MODEL = "google/gemini-2.0-flash-exp:free"
DEFAULT_LOCAL_MODEL = "llama3.1:8b"

# Conservative per-call budget; 1 token is approximated as 4 characters
MAX_TOKENS_PER_CHUNK = 25000
CHARS_PER_TOKEN = 4

# Environment variable keys
ENV_KEYS = {
    "use_local_model": "SOC1_USE_LOCAL_MODEL",
    "api_key": "SOC1_API_KEY",
    "local_endpoint_url": "SOC1_LOCAL_ENDPOINT_URL",
    "local_model_name": "SOC1_LOCAL_MODEL_NAME",
    "request_timeout": "SOC1_REQUEST_TIMEOUT",
}


class APIConfig(BaseModel):
    """Connection settings for the model endpoint."""

    use_local_model: bool = True
    api_key: str = ""
    local_endpoint_url: str = "http://localhost:11434/v1"
    local_model_name: str = DEFAULT_LOCAL_MODEL
    request_timeout: float = 300.0
    max_tokens_per_chunk: int = MAX_TOKENS_PER_CHUNK


def get_config_from_env() -> dict:
    """Read whichever APIConfig fields are set in the environment."""
    config: dict = {}

    use_local_model = os.getenv(ENV_KEYS["use_local_model"])
    if use_local_model is not None:
        config["use_local_model"] = use_local_model.strip().lower() in ("true", "1")

    for field in ("api_key", "local_endpoint_url", "local_model_name"):
        value = os.getenv(ENV_KEYS[field])
        if value:
            config[field] = value

    timeout = os.getenv(ENV_KEYS["request_timeout"])
    if timeout:
        try:
            config["request_timeout"] = float(timeout)
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", ENV_KEYS["request_timeout"], timeout)

    return config


def get_api_config(**overrides) -> APIConfig:
    """Return the complete configuration: defaults < environment < overrides."""
    return APIConfig(**{**get_config_from_env(), **overrides})


def validate_config(config: APIConfig) -> tuple[bool, list[str]]:
    """Check that the configuration is usable; returns (is_valid, errors)."""
    errors: list[str] = []

    if not config.api_key and not config.use_local_model:
        errors.append("API key is required for OpenRouter")

    if config.use_local_model:
        if not config.local_endpoint_url:
            errors.append("Local endpoint URL is required when using local models")
        if not config.local_model_name:
            errors.append("Local model name is required when using local models")

        parsed = urlparse(config.local_endpoint_url or "")
        if not parsed.scheme or not parsed.netloc:
            errors.append("Invalid local endpoint URL format")

    return len(errors) == 0, errors


def get_default_model(use_local_model: bool) -> str:
    """Return the model id used when the caller does not pick one."""
    return DEFAULT_LOCAL_MODEL if use_local_model else DEFAULT_REMOTE_MODEL
