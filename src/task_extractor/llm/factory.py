"""Factory for creating provider transports based on configuration."""

import logging
from typing import Any, Optional

import httpx

from .base_client import BaseLLMClient
from .anthropic_client import AnthropicClient
from .local_clients import LMStudioClient, OllamaClient
from .openai_client import OpenAIClient


logger = logging.getLogger(__name__)


# Registry of available provider transports
CLIENT_REGISTRY = {
    'openai': OpenAIClient,
    'anthropic': AnthropicClient,
    'ollama': OllamaClient,
    'lmstudio': LMStudioClient,
}

DEFAULT_MODELS = {
    'openai': ['gpt-4o', 'gpt-4o-mini', 'gpt-4-turbo', 'gpt-3.5-turbo'],
    'anthropic': ['claude-opus-4-1-20250805', 'claude-sonnet-4-20250514', 'claude-3-7-sonnet-20250219',
                  'claude-3-5-sonnet-20241022', 'claude-3-5-haiku-20241022', 'claude-3-opus-20240229'],
    'ollama': ['llama3.2', 'mistral', 'codellama'],
    'lmstudio': ['local-model'],
}


def create_llm_client(config: Any, provider_name: Optional[str] = None,
                      http_client: Optional[httpx.AsyncClient] = None) -> BaseLLMClient:
    """
    Create a provider transport.

    Args:
        config: Configuration object containing provider settings
        provider_name: Optional override for the configured provider
        http_client: Shared HTTP client for local transports

    Returns:
        BaseLLMClient: Transport instance (configuration is not validated here)

    Raises:
        ValueError: If the provider is not supported
    """
    if provider_name is None:
        provider_name = getattr(config, 'provider', 'openai')

    if provider_name not in CLIENT_REGISTRY:
        available_providers = list(CLIENT_REGISTRY.keys())
        raise ValueError(
            f"Unsupported LLM provider: {provider_name}. "
            f"Available providers: {available_providers}"
        )

    client_class = CLIENT_REGISTRY[provider_name]
    if client_class.is_local:
        client = client_class(config, http_client=http_client)
    else:
        client = client_class(config)

    logger.debug(f"Created {provider_name} client")
    return client


def list_available_providers() -> list[str]:
    """
    Get a list of supported providers.

    Returns:
        List of provider names that can be used
    """
    return list(CLIENT_REGISTRY.keys())


def get_default_models(provider_name: str) -> list[str]:
    return list(DEFAULT_MODELS.get(provider_name, []))


def get_provider_info(provider_name: str) -> dict[str, Any]:
    """Describe a registered provider.

    Raises:
        ValueError: If the provider is not registered
    """
    client_class = CLIENT_REGISTRY.get(provider_name)
    if client_class is None:
        raise ValueError(f"Unknown provider: {provider_name}")

    return {
        'name': provider_name,
        'class': client_class.__name__,
        'local': client_class.is_local,
        'needs_api_key': not client_class.is_local,
        'default_models': get_default_models(provider_name),
    }
