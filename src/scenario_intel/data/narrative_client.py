"""Async client for the optional external narrative service.

Speaks the OpenAI-compatible Responses API with strict JSON-schema output.
The service is consumed only at its boundary: callers validate every
response and fall back to deterministic output on any failure.
"""

import asyncio
import json
import logging
import os
import random
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Service configuration
NARRATIVE_ENABLED = os.environ.get("NARRATIVE_ENABLED", "false").lower() in ("1", "true", "yes")
_api_key = os.environ.get("OPENAI_API_KEY")
_model = os.environ.get("NARRATIVE_MODEL", "gpt-4o-mini")
_base_url = os.environ.get("NARRATIVE_BASE_URL", "https://api.openai.com/v1")
_timeout = float(os.environ.get("NARRATIVE_TIMEOUT", "8.0"))  # seconds

# Retry configuration
_max_retries = int(os.environ.get("NARRATIVE_MAX_RETRIES", "2"))
_base_delay = float(os.environ.get("NARRATIVE_BASE_DELAY", "0.5"))  # seconds
_max_delay = float(os.environ.get("NARRATIVE_MAX_DELAY", "4.0"))  # seconds


class NarrativeServiceError(Exception):
    """Raised when the narrative service fails after all retries."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


def _is_retryable_error(error: Exception) -> bool:
    """Transport failures, rate limits and 5xx are transient."""
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        return status_code == 429 or 500 <= status_code < 600
    return False


def _calculate_backoff(attempt: int) -> float:
    """Calculate delay with exponential backoff and jitter."""
    delay = _base_delay * (2**attempt)
    jitter = delay * 0.25 * (2 * random.random() - 1)
    return min(delay + jitter, _max_delay)


def extract_text(payload: Any) -> str | None:
    """
    Pull the model's text out of a service response.

    Handles the Responses API (output_text, or output[0].content[0].text)
    and the Chat Completions shape (choices[0].message.content).
    """
    if not isinstance(payload, dict):
        return None

    if isinstance(payload.get("output_text"), str):
        return payload["output_text"]

    output = payload.get("output")
    if isinstance(output, list) and output and isinstance(output[0], dict):
        content = output[0].get("content")
        if isinstance(content, list) and content and isinstance(content[0], dict):
            text = content[0].get("text")
            if isinstance(text, str):
                return text

    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]

    return None


def narrative_service_configured() -> bool:
    return NARRATIVE_ENABLED and bool(_api_key)


class NarrativeServiceClient:
    """
    Minimal async client for strict-JSON narrative requests.

    A transport can be injected (httpx.MockTransport in tests).
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else _api_key
        self.model = model or _model
        self.base_url = (base_url or _base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else _timeout
        self.max_retries = max_retries if max_retries is not None else _max_retries
        self._transport = transport

    def _build_body(
        self,
        system: str,
        user_payload: dict[str, Any],
        schema_name: str,
        schema: dict[str, Any],
    ) -> dict[str, Any]:
        return {
            "model": self.model,
            "temperature": 0.2,
            "input": [
                {"role": "system", "content": system},
                {
                    "role": "user",
                    "content": "Return STRICT JSON ONLY.\n\n" + json.dumps(user_payload, sort_keys=True),
                },
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "schema": schema,
                    "strict": True,
                }
            },
        }

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.post("/responses", json=body, headers=headers)
            response.raise_for_status()
            return response.json()

    async def respond(
        self,
        system: str,
        user_payload: dict[str, Any],
        schema_name: str,
        schema: dict[str, Any],
    ) -> str | None:
        """
        Send one strict-schema request and return the model's raw text.

        Retries transient failures with exponential backoff.

        Returns:
            Response text, or None if the payload carried no text

        Raises:
            NarrativeServiceError: If all retries are exhausted
            httpx.HTTPStatusError: On non-retryable HTTP errors (4xx)
        """
        body = self._build_body(system, user_payload, schema_name, schema)
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                payload = await self._post(body)
                return extract_text(payload)
            except Exception as e:
                last_error = e
                if not _is_retryable_error(e):
                    raise
                if attempt >= self.max_retries:
                    logger.warning(
                        f"narrative service ({schema_name}): Failed after {attempt + 1} attempts. "
                        f"Last error: {e}"
                    )
                    raise NarrativeServiceError(
                        f"Failed after {attempt + 1} attempts: {e}",
                        last_error=last_error,
                    ) from e

                delay = _calculate_backoff(attempt)
                logger.info(
                    f"narrative service ({schema_name}): Attempt {attempt + 1} failed ({e}). "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)

        raise NarrativeServiceError(
            f"Failed after {self.max_retries + 1} attempts",
            last_error=last_error,
        )


def get_default_client() -> NarrativeServiceClient | None:
    """Client from the environment, or None when the service is disabled."""
    if not narrative_service_configured():
        return None
    return NarrativeServiceClient()
