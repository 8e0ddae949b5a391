"""Task extraction pipeline: prompt, LLM call, normalization."""

import logging
import time
from typing import Any, Optional

from .events import EventSink, NullEventSink
from .models import TaskExtractionResult
from .normalizer import normalize_response
from .prompt_manager import PromptManager


logger = logging.getLogger(__name__)


class ExtractionPipeline:
    """Turns one document into a TaskExtractionResult."""

    def __init__(self, config: Any, llm_manager, prompt_manager: Optional[PromptManager] = None,
                 events: Optional[EventSink] = None):
        """
        Initialize the extraction pipeline.

        Args:
            config: Configuration object
            llm_manager: LLMProviderManager used for the provider call
            prompt_manager: Prompt builder (created from config if omitted)
            events: Structured event sink
        """
        self.config = config
        self.llm = llm_manager
        self.prompt_manager = prompt_manager or PromptManager(config)
        self.events = events or NullEventSink()

    async def extract(self, content: str, source_path: str) -> TaskExtractionResult:
        """
        Extract tasks from a document.

        Never raises: any failure is logged and reported as nothing found.

        Args:
            content: Full document text
            source_path: Vault path of the document

        Returns:
            TaskExtractionResult
        """
        correlation_id = self.events.start_operation('llm-call', 'Starting task extraction', {
            'sourcePath': source_path,
            'contentLength': len(content),
            'provider': self.config.provider,
        })
        started = time.monotonic()

        try:
            prompt = self.prompt_manager.build_extraction_prompt(source_path, content)
            response = await self.llm.call_llm(prompt['system'], prompt['user'])
            if response is None:
                logger.warning(f"No LLM response for {source_path}")
                self.events.emit('warn', 'llm-call', 'No response from LLM', {
                    'sourcePath': source_path,
                }, correlation_id)
                return TaskExtractionResult.nothing_found()

            result = normalize_response(response, self.events, correlation_id)
            self.events.emit('info', 'llm-call', 'Task extraction completed', {
                'sourcePath': source_path,
                'found': result.found,
                'taskCount': len(result.tasks),
                'processingTime': int((time.monotonic() - started) * 1000),
            }, correlation_id)
            return result

        except Exception as e:
            logger.error(f"Task extraction failed for {source_path}: {e}", exc_info=True)
            self.events.emit('error', 'error', 'Task extraction failed', {
                'sourcePath': source_path,
                'error': str(e),
            }, correlation_id)
            return TaskExtractionResult.nothing_found()
