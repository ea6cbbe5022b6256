"""Request/response boundary to an OpenAI-compatible chat completions API."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from .config import AppConfig
from .errors import EnzymeError

logger = logging.getLogger(__name__)


class ModelClientError(EnzymeError):
    """Raised when the model API call fails or returns no completion."""

    pass


class ModelClient:
    """Sends one chat completion request per call. No retries, no streaming."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: AppConfig) -> "ModelClient":
        return cls(
            base_url=config.model_api_url,
            api_key=config.model_api_key,
            model=config.model_name,
            timeout=config.model_timeout_seconds,
        )

    async def complete(self, messages: List[Dict[str, str]], temperature: float = 0.7) -> str:
        """Return the assistant text for ``messages``.

        Raises:
            ModelClientError: If no API key is configured, the request fails,
                or the response has no choices.
        """
        if not self.api_key:
            raise ModelClientError("MODEL_API_KEY is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "messages": messages,
                        "temperature": temperature,
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Model API error", extra={"status_code": e.response.status_code})
            raise ModelClientError(f"API error: {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise ModelClientError("Request timeout") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ModelClientError(f"Model call failed: {e}") from e

        choices = data.get("choices", [])
        if not choices:
            raise ModelClientError("No response from model")

        content = choices[0].get("message", {}).get("content") or ""
        logger.info(
            "Model completion received",
            extra={"model": self.model, "message_count": len(messages), "chars": len(content)},
        )
        return content


__all__ = ["ModelClient", "ModelClientError"]
