"""Transports for local LLM services (Ollama and LM Studio)."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..errors import EmptyResponseError, TransportError
from .base_client import BaseLLMClient, build_messages, status_hint


logger = logging.getLogger(__name__)


class LocalHTTPClient(BaseLLMClient):
    """Common plumbing for local HTTP services with model discovery."""

    is_local = True
    display_name = "local"
    url_setting = ""
    chat_path = ""

    def __init__(self, config: Any, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def base_url(self) -> str:
        return (getattr(self.config, self.url_setting, '') or '').rstrip('/')

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.config.timeout)
        return self._http

    def validate_config(self) -> List[str]:
        if not self.base_url.strip():
            return [f"{self.display_name} URL is missing"]
        return []

    def build_request(self, prompt: Dict[str, str], model: str) -> Dict[str, Any]:
        raise NotImplementedError

    def extract_text(self, payload: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError

    def request_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def send_message(self, prompt: Dict[str, str], model: str) -> str:
        endpoint = f"{self.base_url}{self.chat_path}"
        try:
            response = await self.http.post(
                endpoint,
                json=self.build_request(prompt, model),
                headers=self.request_headers(),
            )
        except httpx.HTTPError as e:
            raise TransportError(self.provider_name,
                                 f"{self.display_name} request failed: {type(e).__name__}: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"{self.display_name} error {response.status_code}: {response.text[:500]}")
            raise TransportError(
                self.provider_name,
                f"{self.display_name} API error: {response.status_code}{status_hint(response.status_code)}",
                response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(self.provider_name, f"{self.display_name} returned invalid JSON") from e

        content = self.extract_text(payload) if isinstance(payload, dict) else None
        if not content:
            raise EmptyResponseError(self.provider_name, f"{self.display_name} returned an empty response")

        logger.info(f"Received {len(content)} characters from {self.provider_name} ({model})")
        return content

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None


class OllamaClient(LocalHTTPClient):
    """Ollama ``/api/chat`` transport."""

    display_name = "Ollama"
    url_setting = "ollama_url"
    chat_path = "/api/chat"

    @property
    def provider_name(self) -> str:
        return "ollama"

    def build_request(self, prompt: Dict[str, str], model: str) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": build_messages(prompt),
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }

    def extract_text(self, payload: Dict[str, Any]) -> Optional[str]:
        message = payload.get('message') or {}
        return message.get('content') if isinstance(message, dict) else None


class LMStudioClient(LocalHTTPClient):
    """LM Studio OpenAI-compatible ``/v1/chat/completions`` transport."""

    display_name = "LM Studio"
    url_setting = "lmstudio_url"
    chat_path = "/v1/chat/completions"

    @property
    def provider_name(self) -> str:
        return "lmstudio"

    def request_headers(self) -> Dict[str, str]:
        # LM Studio ignores the key but expects the header shape
        return {"Content-Type": "application/json", "Authorization": "Bearer lm-studio"}

    def build_request(self, prompt: Dict[str, str], model: str) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": build_messages(prompt),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    def extract_text(self, payload: Dict[str, Any]) -> Optional[str]:
        choices = payload.get('choices') or []
        if not choices or not isinstance(choices[0], dict):
            return None
        return (choices[0].get('message') or {}).get('content')

