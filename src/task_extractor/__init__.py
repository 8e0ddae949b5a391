"""Task Extractor - LLM-powered extraction of actionable tasks from vault notes."""

__version__ = "0.1.0"

from .config import Config, FrontmatterField
from .file_system import VaultDocumentStore
from .models import ExtractedTask, TaskExtractionResult
from .note_processor import TaskProcessor
from .pipeline import ExtractionPipeline
from .prompt_manager import PromptManager
from .task_notes import TaskNoteWriter

__all__ = [
    "Config",
    "FrontmatterField",
    "VaultDocumentStore",
    "ExtractedTask",
    "TaskExtractionResult",
    "TaskProcessor",
    "ExtractionPipeline",
    "PromptManager",
    "TaskNoteWriter"
]
