"""Exception hierarchy for the task extractor."""

from typing import List, Optional


class TaskExtractorError(Exception):
    """Base class for all task extractor errors."""


class ConfigurationError(TaskExtractorError):
    """Provider or processing configuration is missing or malformed.

    Configuration errors are never retried.
    """

    def __init__(self, provider: str, problems: List[str]):
        self.provider = provider
        self.problems = list(problems)
        super().__init__(f"{provider} configuration errors: {', '.join(self.problems)}")


class TransportError(TaskExtractorError):
    """An LLM provider call failed at the HTTP or network level."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        super().__init__(message)


class ServiceUnavailableError(TransportError):
    """A local provider is unreachable or reports no loaded models."""


class EmptyResponseError(TransportError):
    """The provider answered successfully but returned no text."""
