"""Provider orchestration: configuration gate, retries and local fallback."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx

from ..config import CLOUD_PROVIDERS
from ..errors import ConfigurationError, ServiceUnavailableError
from ..events import EventSink, NullEventSink
from ..models import ProviderServiceRecord
from .base_client import BaseLLMClient
from .factory import create_llm_client, get_default_models
from .registry import ServiceRegistry, select_model


logger = logging.getLogger(__name__)


class LLMProviderManager:
    """Calls the configured provider with retry, then falls back locally.

    ``call_llm`` never raises for provider problems: configuration errors,
    exhausted retries and exhausted fallback all return None.
    """

    def __init__(self, config: Any,
                 registry: Optional[ServiceRegistry] = None,
                 clients: Optional[Dict[str, BaseLLMClient]] = None,
                 events: Optional[EventSink] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Initialize the orchestrator.

        Args:
            config: Configuration object
            registry: Local service registry (created from config if omitted)
            clients: Pre-built transports keyed by provider name
            events: Structured event sink
            http_client: Shared HTTP client for local transports and probes
            sleep: Backoff sleep, replaceable in tests
        """
        self.config = config
        self.events = events or NullEventSink()
        self._http = http_client
        self.registry = registry or ServiceRegistry(config, http_client=http_client, events=self.events)
        self._clients: Dict[str, BaseLLMClient] = dict(clients or {})
        self._sleep = sleep
        self._api_key_missing_notified: Set[str] = set()
        self._cloud_model_cache: Dict[str, List[str]] = {}

    def get_client(self, provider: str) -> BaseLLMClient:
        """Return the transport for a provider, creating it on first use."""
        if provider not in self._clients:
            self._clients[provider] = create_llm_client(self.config, provider, http_client=self._http)
        return self._clients[provider]

    async def call_llm(self, system_prompt: str, user_prompt: str) -> Optional[str]:
        """
        Send a system/user prompt pair to the configured provider.

        Args:
            system_prompt: Instructions for the model
            user_prompt: The document to analyze

        Returns:
            The raw response text, or None when every option failed
        """
        provider = self.config.provider
        prompt = {'system': system_prompt, 'user': user_prompt}
        correlation_id = self.events.start_operation('llm-call', f"Calling {provider}", {
            'provider': provider,
            'model': self.config.model,
        })

        api_key = (self.config.api_key or '').strip()
        notification_key = f"{provider}-no-api-key"
        if provider in CLOUD_PROVIDERS and not api_key:
            if notification_key not in self._api_key_missing_notified:
                logger.warning(f"{provider.upper()} API key not configured in settings")
                self._api_key_missing_notified.add(notification_key)
            self.events.emit('error', 'validation', 'API key missing', {'provider': provider}, correlation_id)
            return None
        self._api_key_missing_notified.discard(notification_key)

        try:
            client = self.get_client(provider)
            self._check_config(client)
        except (ConfigurationError, ValueError) as e:
            logger.error(f"Not calling {provider}: {e}")
            self.events.emit('error', 'validation', 'Provider configuration invalid', {
                'provider': provider,
                'errors': getattr(e, 'problems', [str(e)]),
            }, correlation_id)
            return None

        attempts = self.config.retries
        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                result = await self._invoke(client, prompt)
                self.events.emit('info', 'llm-call', 'LLM call succeeded', {
                    'provider': provider,
                    'retryAttempt': attempt,
                    'responseLength': len(result),
                    'processingTime': int((time.monotonic() - started) * 1000),
                    'usage': client.get_usage_info(),
                }, correlation_id)
                return result
            except Exception as e:
                logger.warning(f"Attempt {attempt}/{attempts} failed for {provider}: {e}")
                self.events.emit('warn', 'llm-call', 'LLM call attempt failed', {
                    'provider': provider,
                    'retryAttempt': attempt,
                    'error': str(e),
                }, correlation_id)
                if attempt < attempts:
                    backoff = attempt * self.config.retry_delay_seconds
                    await self._sleep(backoff)

        if client.is_local:
            logger.info(f"{provider} exhausted {attempts} attempts, trying other local services")
            return await self._fallback(prompt, provider, correlation_id)

        logger.error(f"{provider} failed after {attempts} attempts")
        self.events.emit('error', 'llm-call', 'All attempts failed', {
            'provider': provider,
            'totalAttempts': attempts,
        }, correlation_id)
        return None

    def _check_config(self, client: BaseLLMClient) -> None:
        problems = client.validate_config()
        if problems:
            raise ConfigurationError(client.provider_name, problems)

    async def _invoke(self, client: BaseLLMClient, prompt: Dict[str, str]) -> str:
        if not client.is_local:
            return await client.send_message(prompt, self.config.model)

        record = await self.registry.get_service(client.provider_name)
        if record is None or not record.usable:
            raise ServiceUnavailableError(
                client.provider_name,
                f"{client.provider_name} service not available or no models loaded",
            )
        return await client.send_message(prompt, select_model(record, self.config.model))

    async def _fallback(self, prompt: Dict[str, str], primary: str,
                        correlation_id: Optional[str]) -> Optional[str]:
        services = await self.registry.available_services()
        for record in services:
            if record.name == primary:
                continue
            logger.info(f"Trying fallback to {record.name}")
            try:
                client = self.get_client(record.name)
                result = await client.send_message(prompt, select_model(record, self.config.model))
                self.events.emit('info', 'llm-call', 'Fallback succeeded', {
                    'primaryProvider': primary,
                    'fallbackProvider': record.name,
                }, correlation_id)
                return result
            except Exception as e:
                logger.warning(f"Fallback to {record.name} failed: {e}")
                self.events.emit('warn', 'llm-call', 'Fallback failed', {
                    'fallbackProvider': record.name,
                    'error': str(e),
                }, correlation_id)

        logger.warning("All LLM services failed. Check your configuration.")
        self.events.emit('error', 'llm-call', 'All LLM services failed', {
            'primaryProvider': primary,
            'availableServices': [record.name for record in services],
        }, correlation_id)
        return None

    async def detect_services(self) -> List[ProviderServiceRecord]:
        return await self.registry.detect_services()

    async def fetch_cloud_models(self, provider: str) -> List[str]:
        """
        List models for a cloud provider, cached per provider and key.

        Args:
            provider: 'openai' or 'anthropic'

        Returns:
            Model names; the provider defaults if listing fails
        """
        api_key = (self.config.api_key or '').strip()
        if not api_key:
            return []

        cache_key = f"{provider}-{api_key[-4:]}"
        if cache_key in self._cloud_model_cache:
            return self._cloud_model_cache[cache_key]

        try:
            models = await self.get_client(provider).list_models()
        except Exception as e:
            logger.warning(f"Failed to fetch {provider} models: {e}")
            return get_default_models(provider)

        self._cloud_model_cache[cache_key] = models
        return models or get_default_models(provider)

    def cleanup(self) -> None:
        self._cloud_model_cache.clear()
        self._api_key_missing_notified.clear()
        self.registry.clear()

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        await self.registry.aclose()
