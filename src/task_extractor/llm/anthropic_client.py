"""Anthropic transport built on the official SDK."""

import logging
from typing import Dict, Any, List

import anthropic
from anthropic import APIConnectionError, APIStatusError, APITimeoutError

from ..config import DEFAULT_ANTHROPIC_URL
from ..errors import EmptyResponseError, TransportError
from .base_client import BaseLLMClient, status_hint


logger = logging.getLogger(__name__)

ANTHROPIC_MESSAGES_PATH = "/v1/messages"

KNOWN_MODELS = [
    'claude-opus-4-1-20250805',
    'claude-opus-4-20250514',
    'claude-sonnet-4-20250514',
    'claude-3-7-sonnet-20250219',
    'claude-3-5-sonnet-20241022',
    'claude-3-5-sonnet-20240620',
    'claude-3-5-haiku-20241022',
    'claude-3-opus-20240229',
    'claude-3-sonnet-20240229',
    'claude-3-haiku-20240307',
]


def normalize_anthropic_url(url: str) -> str:
    """Repair an anthropic.com URL that lacks the /v1/messages endpoint."""
    url = (url or '').strip() or DEFAULT_ANTHROPIC_URL
    if 'anthropic.com' in url and ANTHROPIC_MESSAGES_PATH not in url:
        logger.warning(f"Fixed invalid Anthropic URL {url} to use the {ANTHROPIC_MESSAGES_PATH} endpoint")
        return DEFAULT_ANTHROPIC_URL
    return url


class AnthropicClient(BaseLLMClient):
    """Anthropic Messages API via ``anthropic.AsyncAnthropic``."""

    def __init__(self, config: Any):
        super().__init__(config)
        self._api_key = (getattr(config, 'api_key', '') or '').strip()
        self.configured_url = (getattr(config, 'anthropic_url', '') or '').strip() or DEFAULT_ANTHROPIC_URL
        self.endpoint = normalize_anthropic_url(self.configured_url)
        self._client = None

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def validate_config(self) -> List[str]:
        errors = []
        if not self._api_key:
            errors.append("Anthropic API key is missing")
        if 'api.anthropic.com/v1/messages' not in self.configured_url:
            errors.append(f"Anthropic URL must point to {DEFAULT_ANTHROPIC_URL}")
        if not (self.config.model or '').strip():
            errors.append("Anthropic model is not specified")
        return errors

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            base_url = self.endpoint.split(ANTHROPIC_MESSAGES_PATH)[0]
            # The orchestrator owns retries
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key,
                base_url=base_url,
                timeout=float(self.config.timeout),
                max_retries=0,
            )
        return self._client

    async def send_message(self, prompt: Dict[str, str], model: str) -> str:
        model = model or 'claude-3-5-haiku-20241022'
        try:
            message = await self.client.messages.create(
                model=model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=prompt.get('system', ''),
                messages=[{"role": "user", "content": prompt.get('user', '')}],
            )
        except APIStatusError as e:
            message = f"Anthropic API error: {e.status_code}{status_hint(e.status_code)}"
            raise TransportError(self.provider_name, message, e.status_code) from e
        except (APIConnectionError, APITimeoutError) as e:
            raise TransportError(self.provider_name, f"Anthropic connection error: {e}") from e

        usage = getattr(message, 'usage', None)
        if usage is not None:
            self._last_usage = {
                'input_tokens': getattr(usage, 'input_tokens', None),
                'output_tokens': getattr(usage, 'output_tokens', None),
            }

        response_text = self._extract_text_from_response(message.content)
        if not response_text:
            raise EmptyResponseError(self.provider_name, "Anthropic returned no text content")

        logger.info(f"Received {len(response_text)} characters from {self.provider_name} ({model})")
        return response_text

    def _extract_text_from_response(self, content) -> str:
        """
        Extract text from the response content blocks.

        Args:
            content: Response content from the Anthropic API

        Returns:
            Text of the first text block, or an empty string
        """
        if not content:
            return ""

        for block in content:
            if getattr(block, 'type', None) == 'text' and hasattr(block, 'text'):
                return block.text

        logger.warning("No text content found in Anthropic response")
        return ""

    async def list_models(self) -> List[str]:
        # No public model listing is used; return the known catalogue
        return list(KNOWN_MODELS)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
