"""OpenAI-compatible chat transport for OpenRouter or a local model server.

Returns the raw response envelope as a plain dict so that the normaliser can
cope with servers that deviate from the OpenAI response shape.  Every SDK
failure is re-raised as a classified ``TransportError``.
"""

import json
import logging
import time

from openai import OpenAI

from soc1_analyzer.analysis.errors import EmptyResponseError, classify_transport_error
from soc1_analyzer.config import OPENROUTER_BASE_URL, APIConfig

logger = logging.getLogger(__name__)

TEMPERATURE = 0.1
MAX_COMPLETION_TOKENS = 4000

# Local servers (Ollama, llama.cpp, vLLM) ignore the key but the SDK requires one
LOCAL_API_KEY = "not-needed"


class ModelClient:
    """Thin wrapper around ``openai.OpenAI`` configured from an APIConfig."""

    def __init__(self, config: APIConfig, client: OpenAI | None = None):
        self.config = config
        self._client = client or self._build_client(config)

    @staticmethod
    def _build_client(config: APIConfig) -> OpenAI:
        if config.use_local_model:
            base_url = config.local_endpoint_url.rstrip("/")
            logger.info("Using local model endpoint at %s", base_url)
            return OpenAI(base_url=base_url, api_key=LOCAL_API_KEY, timeout=config.request_timeout, max_retries=0)

        logger.info("Using OpenRouter at %s", OPENROUTER_BASE_URL)
        return OpenAI(
            base_url=OPENROUTER_BASE_URL,
            api_key=config.api_key,
            timeout=config.request_timeout,
            default_headers={"X-Title": "SOC1 Compliance Analyzer"},
        )

    def resolve_model(self, model_id: str) -> str:
        """Local servers always run the configured local model."""
        if self.config.use_local_model:
            return self.config.local_model_name or model_id
        return model_id

    def complete(self, system_prompt: str, user_message: str, model_id: str) -> dict:
        """Send one chat request and return the response envelope as a dict."""
        model = self.resolve_model(model_id)
        t0 = time.time()
        try:
            completion = self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                temperature=TEMPERATURE,
                max_tokens=MAX_COMPLETION_TOKENS,
                stream=False,
                response_format={"type": "json_object"},
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            elapsed = time.time() - t0
            error = classify_transport_error(exc)
            logger.error("Model call to %s failed after %.1fs (%s): %s", model, elapsed, error.kind, exc)
            raise error from exc

        logger.debug("Model %s responded in %.1fs", model, time.time() - t0)
        payload = json.loads(completion.to_json())
        if not payload.get("choices"):
            raise EmptyResponseError("No response from AI model", body=payload)
        return payload

    def test_connection(self) -> bool:
        """Return True if the endpoint answers a model-list request."""
        try:
            self._client.models.list()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            endpoint = "Local" if self.config.use_local_model else "OpenRouter"
            logger.error("%s API connection test failed: %s", endpoint, exc)
            return False
        return True
