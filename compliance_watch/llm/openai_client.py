"""Small OpenAI-compatible JSON client used by the relevance classifier."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

import requests

DEFAULT_BASE_URL = "https://api.openai.com/v1"
CONNECT_TIMEOUT_S = 10.0


class OpenAIClientError(RuntimeError):
    pass


@dataclass
class OpenAIJSONClient:
    model: str = "gpt-4o"
    api_key: str | None = None
    timeout_s: float = 60.0
    base_url: str | None = None

    def _api_key(self) -> str:
        key = self.api_key or os.getenv("OPENAI_API_KEY")
        if not key:
            raise OpenAIClientError("OPENAI_API_KEY is missing")
        return key

    def _base_url(self) -> str:
        return (self.base_url or os.getenv("OPENAI_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")

    def complete_json(self, *, system_prompt: str, user_prompt: str, temperature: float = 0.0) -> dict[str, Any]:
        payload = {
            "model": self.model,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self._api_key()}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(
                f"{self._base_url()}/chat/completions",
                headers=headers,
                json=payload,
                timeout=(min(CONNECT_TIMEOUT_S, self.timeout_s), self.timeout_s),
            )
        except requests.RequestException as e:
            raise OpenAIClientError(f"OpenAI request failed: {e}") from e
        if resp.status_code >= 400:
            raise OpenAIClientError(f"OpenAI API error {resp.status_code}: {resp.text[:500]}")

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OpenAIClientError(f"Unexpected OpenAI response shape: {e}") from e

        if not isinstance(content, str):
            raise OpenAIClientError("OpenAI response content is not a string")

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise OpenAIClientError(f"Model returned non-JSON content: {e}") from e

        if not isinstance(parsed, dict):
            raise OpenAIClientError("Model JSON root must be an object")
        return parsed
