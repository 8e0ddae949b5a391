"""Data model shared by the processing stages."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


CONFIDENCE_LEVELS = ('high', 'medium', 'low')
PRIORITY_LEVELS = ('high', 'medium', 'low')


class ProcessingStatus(Enum):
    """Lifecycle of a file inside the processing registry."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProcessingEntry:
    """Bookkeeping for one in-flight file path.

    At most one entry exists per path; the processor removes it exactly once.
    """
    path: str
    status: ProcessingStatus = ProcessingStatus.QUEUED
    started_at: float = field(default_factory=time.monotonic)
    watchdog_handle: Optional[asyncio.TimerHandle] = None
    task: Optional["asyncio.Task[Any]"] = None
    timed_out: bool = False

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


@dataclass
class ProviderServiceRecord:
    """Discovery result for a local LLM service."""
    name: str
    url: str
    available: bool = False
    models: List[str] = field(default_factory=list)
    last_checked_at: float = 0.0

    @property
    def usable(self) -> bool:
        # A reachable service with no models cannot serve requests
        return self.available and len(self.models) > 0


@dataclass(frozen=True)
class ExtractedTask:
    """One task identified by the LLM. Never mutated after normalization."""
    title: str
    details: str = ""
    due_date: Optional[str] = None
    priority: Optional[str] = None
    project: Optional[str] = None
    client: Optional[str] = None
    contexts: Optional[List[str]] = None
    projects: Optional[List[str]] = None
    source_excerpt: str = ""
    confidence: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_fields(self) -> Dict[str, Any]:
        """
        Return the task keyed the way the LLM was asked to emit it.

        Additional keys the LLM returned are included, but never override
        the normalized values.
        """
        fields: Dict[str, Any] = dict(self.extra)
        fields.update({
            'task_title': self.title,
            'task_details': self.details,
            'due_date': self.due_date,
            'priority': self.priority,
            'project': self.project,
            'client': self.client,
            'contexts': self.contexts,
            'projects': self.projects,
            'source_excerpt': self.source_excerpt,
            'confidence': self.confidence,
        })
        return fields


@dataclass
class TaskExtractionResult:
    """Aggregate handed from the extraction pipeline to the processor."""
    found: bool
    tasks: List[ExtractedTask] = field(default_factory=list)
    confidence: Optional[str] = None

    @classmethod
    def nothing_found(cls) -> "TaskExtractionResult":
        return cls(found=False, tasks=[])
