"""OpenAI transport built on LiteLLM."""

import logging
from typing import Dict, Any, List

import httpx
from litellm import acompletion

from ..errors import EmptyResponseError, TransportError
from .base_client import BaseLLMClient, build_messages, status_hint


logger = logging.getLogger(__name__)

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"


class OpenAIClient(BaseLLMClient):
    """OpenAI chat completions through ``litellm.acompletion``."""

    def __init__(self, config: Any):
        super().__init__(config)
        self._api_key = (getattr(config, 'api_key', '') or '').strip()

    @property
    def provider_name(self) -> str:
        return "openai"

    def validate_config(self) -> List[str]:
        errors = []
        if not self._api_key:
            errors.append("OpenAI API key is missing")
        elif not self._api_key.startswith('sk-'):
            errors.append('OpenAI API key should start with "sk-"')
        if not (self.config.model or '').strip():
            errors.append("OpenAI model is not specified")
        return errors

    async def send_message(self, prompt: Dict[str, str], model: str) -> str:
        model = model or 'gpt-4o-mini'
        try:
            response = await acompletion(
                model=f"openai/{model}",
                messages=build_messages(prompt),
                api_key=self._api_key,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                timeout=self.config.timeout,
                num_retries=0,
            )
        except Exception as e:
            status = getattr(e, 'status_code', None)
            message = f"OpenAI API error: {status or type(e).__name__}"
            if isinstance(status, int):
                message += status_hint(status)
            raise TransportError(self.provider_name, f"{message} ({e})", status) from e

        usage = getattr(response, 'usage', None)
        if usage is not None:
            self._last_usage = {
                'prompt_tokens': getattr(usage, 'prompt_tokens', None),
                'completion_tokens': getattr(usage, 'completion_tokens', None),
                'total_tokens': getattr(usage, 'total_tokens', None),
            }

        choices = getattr(response, 'choices', None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise EmptyResponseError(self.provider_name, "OpenAI returned an empty response")

        logger.info(f"Received {len(content)} characters from {self.provider_name} ({model})")
        return content

    async def list_models(self) -> List[str]:
        """List chat-capable GPT models visible to the configured key."""
        async with httpx.AsyncClient(timeout=self.config.timeout) as client:
            response = await client.get(
                OPENAI_MODELS_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        if response.status_code >= 300:
            raise TransportError(self.provider_name,
                                 f"OpenAI API error: {response.status_code}", response.status_code)
        data = response.json().get('data') or []
        return sorted(
            m['id'] for m in data
            if isinstance(m, dict) and 'gpt' in m.get('id', '') and 'instruct' not in m['id']
        )
