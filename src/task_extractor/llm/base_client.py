"""Base abstract class for LLM provider transports."""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional


def build_messages(prompt: Dict[str, str]) -> List[Dict[str, str]]:
    """Build a system + user chat message list from a prompt dict."""
    return [
        {"role": "system", "content": prompt.get('system', '')},
        {"role": "user", "content": prompt.get('user', '')},
    ]


def status_hint(status: int) -> str:
    """Return a user-actionable hint for common HTTP failure codes."""
    if status in (401, 403):
        return ". Check that the API key is valid and has the required permissions."
    if status == 400:
        return ". Request format may be invalid - check model name and request parameters."
    if status == 404:
        return ". Check that the provider URL points at the correct endpoint."
    if status == 429:
        return ". Rate limit exceeded - please try again later."
    return ""


class BaseLLMClient(ABC):
    """Abstract base class for provider transports.

    A transport issues exactly one request per ``send_message`` call and
    converts the provider's response shape into plain text. Retries and
    fallback belong to the orchestrator.
    """

    is_local = False

    def __init__(self, config: Any):
        """
        Initialize the LLM client.

        Args:
            config: Configuration object containing provider settings
        """
        self.config = config
        self._last_usage: Optional[Dict[str, Any]] = None

    @abstractmethod
    async def send_message(self, prompt: Dict[str, str], model: str) -> str:
        """
        Send a prompt to the provider and return the response text.

        Args:
            prompt: Dictionary with 'system' and 'user' prompts
            model: Model name to request

        Returns:
            The response text

        Raises:
            TransportError: If the request fails or returns no text
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the LLM provider."""

    @property
    def model_name(self) -> str:
        """Return the configured model name."""
        return getattr(self.config, 'model', '')

    def get_usage_info(self) -> Optional[Dict[str, Any]]:
        """
        Get usage information for the last request (tokens).

        Returns:
            Dictionary with usage information, or None if not available
        """
        return self._last_usage

    def validate_config(self) -> List[str]:
        """
        Validate the provider configuration before any network call.

        Returns:
            List of specific problems; empty when the configuration is usable
        """
        return []

    async def list_models(self) -> List[str]:
        """List models offered by the provider, when it supports listing."""
        return []

    async def aclose(self) -> None:
        """Release any network resources held by the client."""
