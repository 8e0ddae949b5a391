"""LLM provider layer for the task extractor."""

from .base_client import BaseLLMClient
from .factory import (
    create_llm_client,
    list_available_providers,
    get_provider_info,
    get_default_models
)
from .anthropic_client import AnthropicClient
from .local_clients import OllamaClient, LMStudioClient
from .openai_client import OpenAIClient
from .manager import LLMProviderManager
from .registry import ServiceRegistry, TTLCache

__all__ = [
    'BaseLLMClient',
    'OpenAIClient',
    'AnthropicClient',
    'OllamaClient',
    'LMStudioClient',
    'LLMProviderManager',
    'ServiceRegistry',
    'TTLCache',
    'create_llm_client',
    'list_available_providers',
    'get_provider_info',
    'get_default_models'
]
