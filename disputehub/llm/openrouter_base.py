"""
OpenRouter Client
=================

Chat completions against OpenRouter for the document drafter.

Synchronous: drafting runs inside the request that triggered the decision
gate. `call()` never raises for transport or API problems; the caller gets
an LLMCallResult with success=False and decides what that means for the
document.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

REFERER = "https://disputehub.com"


@dataclass
class LLMCallResult:
    content: str
    model: str
    success: bool = True
    error: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @classmethod
    def failed(cls, model: str, error: str) -> "LLMCallResult":
        return cls(content="", model=model, success=False, error=error)


class OpenRouterBaseClient:
    """Thin httpx wrapper; one lazily created client per instance"""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: int = 60,
        app_name: str = "DisputeHub Documents",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.endpoint = base_url.rstrip("/") + "/chat/completions"
        self.timeout = timeout
        self.app_name = app_name
        self._transport = transport
        self._http: Optional[httpx.Client] = None

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=self.timeout, transport=self._transport)
        return self._http

    def close(self):
        if self._http is not None:
            self._http.close()
            self._http = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": REFERER,
            "X-Title": self.app_name,
        }

    def _parse(self, data: Dict[str, Any]) -> LLMCallResult:
        choices = data.get("choices") or []
        if not choices or "message" not in choices[0]:
            logger.error(f"[OpenRouter] Response without choices from {self.model}")
            return LLMCallResult.failed(self.model, "Response missing content")

        usage = data.get("usage") or {}
        return LLMCallResult(
            content=choices[0]["message"].get("content") or "",
            model=data.get("model", self.model),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
        )

    def call(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.3,
        max_tokens: int = 1500,
    ) -> LLMCallResult:
        """Send one chat completion request"""
        if not self.api_key:
            return LLMCallResult.failed(self.model, "API key not configured")

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        try:
            response = self.http.post(self.endpoint, json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"[OpenRouter] HTTP {e.response.status_code} from {self.model}")
            return LLMCallResult.failed(self.model, f"HTTP {e.response.status_code}: {e.response.text[:200]}")
        except httpx.HTTPError as e:
            logger.error(f"[OpenRouter] Request failed: {e}")
            return LLMCallResult.failed(self.model, str(e))

        try:
            data = response.json()
        except ValueError:
            return LLMCallResult.failed(self.model, "Response is not JSON")

        return self._parse(data)
