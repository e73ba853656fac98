"""
Perplexity chat-completions client.

POST https://api.perplexity.ai/chat/completions with a Bearer key. Retries
follow community.retry (429 / 5xx / transport errors, 200ms base, 2s cap).
Any failure, including a missing key, returns None so callers can fall back.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from services.api.community.retry import request_with_retry

logger = logging.getLogger(__name__)

PERPLEXITY_API_URL = "https://api.perplexity.ai/chat/completions"


class PerplexityClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        model: str = "sonar",
        timeout_s: float = 30.0,
        max_tokens: int = 1800,
        temperature: float = 0.2,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self.model = model
        self._timeout_s = timeout_s
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def request(
        self,
        messages: list[dict[str, str]],
        response_format: dict[str, Any] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> dict[str, Any] | None:
        if not self._api_key:
            logger.warning("PERPLEXITY_API_KEY is not configured")
            return None

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if response_format is not None:
            payload["response_format"] = response_format

        resp = await request_with_retry(
            self._http,
            "POST",
            PERPLEXITY_API_URL,
            label="Perplexity",
            json=payload,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            timeout=self._timeout_s,
        )
        if resp is None:
            return None
        if resp.status_code != 200:
            logger.warning("Perplexity request failed: HTTP %d %s", resp.status_code, resp.text[:300])
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Perplexity returned a non-JSON body")
            return None
        return data if isinstance(data, dict) else None
