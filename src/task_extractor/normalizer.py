"""Parsing and validation of untrusted LLM output.

LLM responses are decoded into exactly one of three variants before any
field is read: a multi-task payload, a legacy single-task payload, or an
unparseable response. Each candidate task is then validated on its own, so
one bad task never sinks its siblings.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .events import EventSink, NullEventSink
from .models import CONFIDENCE_LEVELS, PRIORITY_LEVELS, ExtractedTask, TaskExtractionResult


logger = logging.getLogger(__name__)

JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')
ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

MAX_TITLE_LENGTH = 100
MAX_DETAILS_LENGTH = 300
MAX_EXCERPT_LENGTH = 150

KNOWN_TASK_KEYS = {
    'task_title', 'title', 'task_details', 'details', 'due_date', 'priority',
    'project', 'client', 'contexts', 'projects', 'source_excerpt', 'confidence', 'found',
}


@dataclass(frozen=True)
class MultiTaskResponse:
    """``{"found": ..., "tasks": [...], "confidence": ...}``"""
    found: Optional[bool]
    tasks: List[Any] = field(default_factory=list)
    confidence: Optional[str] = None


@dataclass(frozen=True)
class LegacyTaskResponse:
    """``{"found": ..., "task_title": ..., ...}`` with a single task."""
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnparseableResponse:
    reason: str


DecodedResponse = Union[MultiTaskResponse, LegacyTaskResponse, UnparseableResponse]


def safe_parse_json(text: Optional[str]) -> Optional[Any]:
    """
    Parse JSON from LLM output, repairing common damage.

    Tries, in order: the whole text; the first-to-last brace substring; that
    substring with single quotes replaced by double quotes.

    Args:
        text: Raw LLM response

    Returns:
        The parsed value, or None if no step succeeded
    """
    if not text:
        return None

    try:
        return json.loads(text)
    except ValueError:
        pass

    match = JSON_OBJECT_PATTERN.search(text)
    if not match:
        return None
    candidate = match.group(0)

    try:
        return json.loads(candidate)
    except ValueError:
        pass

    try:
        return json.loads(candidate.replace("'", '"'))
    except ValueError:
        return None


def decode_response(text: Optional[str]) -> DecodedResponse:
    """Classify raw LLM output into one of the response variants."""
    parsed = safe_parse_json(text)
    if parsed is None:
        return UnparseableResponse("no JSON object found in response")
    if not isinstance(parsed, dict):
        return UnparseableResponse(f"expected a JSON object, got {type(parsed).__name__}")

    if isinstance(parsed.get('tasks'), list):
        found = parsed['found'] if isinstance(parsed.get('found'), bool) else None
        confidence = parsed.get('confidence')
        return MultiTaskResponse(
            found=found,
            tasks=list(parsed['tasks']),
            confidence=confidence if confidence in CONFIDENCE_LEVELS else None,
        )

    if 'found' in parsed:
        return LegacyTaskResponse(payload=parsed)

    return UnparseableResponse(f"unrecognized response keys: {sorted(parsed.keys())}")


def is_valid_task(candidate: Any) -> Tuple[bool, str]:
    """
    Structurally validate one candidate task.

    Returns:
        Tuple of (valid, reason); reason is empty for valid tasks
    """
    if not isinstance(candidate, dict):
        return False, "task is not an object"

    title = candidate.get('task_title')
    if not isinstance(title, str) or not title.strip():
        return False, "missing task_title"

    confidence = candidate.get('confidence')
    if confidence and confidence not in CONFIDENCE_LEVELS:
        return False, f"invalid confidence: {confidence!r}"

    priority = candidate.get('priority')
    if priority and priority not in PRIORITY_LEVELS:
        return False, f"invalid priority: {priority!r}"

    due_date = candidate.get('due_date')
    if due_date and (not isinstance(due_date, str) or not ISO_DATE_PATTERN.match(due_date)):
        return False, f"invalid due_date: {due_date!r}"

    return True, ""


def _clip(value: Any, limit: int) -> str:
    if value is None:
        return ""
    return str(value).strip()[:limit]


def _optional_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _string_list(value: Any) -> Optional[List[str]]:
    if value is None or value == "" or value == []:
        return None
    if isinstance(value, list):
        return [str(item) for item in value if item not in (None, "")]
    return [str(value)]


def build_task(candidate: Dict[str, Any]) -> ExtractedTask:
    """Convert a validated candidate into an immutable ExtractedTask."""
    return ExtractedTask(
        title=_clip(candidate['task_title'], MAX_TITLE_LENGTH),
        details=_clip(candidate.get('task_details'), MAX_DETAILS_LENGTH),
        due_date=candidate.get('due_date') or None,
        priority=candidate.get('priority') or None,
        project=_optional_text(candidate.get('project')),
        client=_optional_text(candidate.get('client')),
        contexts=_string_list(candidate.get('contexts')),
        projects=_string_list(candidate.get('projects')),
        source_excerpt=_clip(candidate.get('source_excerpt'), MAX_EXCERPT_LENGTH),
        confidence=candidate.get('confidence') or None,
        extra={k: v for k, v in candidate.items() if k not in KNOWN_TASK_KEYS},
    )


def _collect_tasks(candidates: List[Any], events: EventSink,
                   correlation_id: Optional[str]) -> List[ExtractedTask]:
    tasks = []
    for index, candidate in enumerate(candidates):
        valid, reason = is_valid_task(candidate)
        if not valid:
            logger.warning(f"Dropping invalid task #{index + 1}: {reason}")
            events.emit('warn', 'validation', 'Invalid task dropped', {
                'index': index,
                'reason': reason,
            }, correlation_id)
            continue
        tasks.append(build_task(candidate))
    return tasks


def normalize_response(text: Optional[str], events: Optional[EventSink] = None,
                       correlation_id: Optional[str] = None) -> TaskExtractionResult:
    """
    Turn raw LLM output into a TaskExtractionResult.

    Malformed output degrades to "nothing found" and never raises.

    Args:
        text: Raw LLM response (None when the provider call failed)
        events: Optional structured event sink
        correlation_id: Correlation id for emitted events

    Returns:
        TaskExtractionResult
    """
    events = events or NullEventSink()
    decoded = decode_response(text)

    if isinstance(decoded, UnparseableResponse):
        if text:
            logger.warning(f"Could not parse LLM response: {decoded.reason}")
            logger.debug(f"Raw response that failed to parse: {text}")
        events.emit('warn', 'validation', 'Unparseable LLM response', {
            'reason': decoded.reason,
            'responseLength': len(text or ''),
        }, correlation_id)
        return TaskExtractionResult.nothing_found()

    if isinstance(decoded, MultiTaskResponse):
        tasks = _collect_tasks(decoded.tasks, events, correlation_id)
        found = decoded.found if decoded.found is not None else bool(tasks)
        logger.info(f"LLM returned {len(decoded.tasks)} task(s), {len(tasks)} valid")
        return TaskExtractionResult(found=found, tasks=tasks, confidence=decoded.confidence)

    payload = decoded.payload
    if payload.get('found') is not True:
        return TaskExtractionResult.nothing_found()

    candidate = dict(payload)
    candidate['task_title'] = payload.get('task_title') or payload.get('title') or ''
    candidate['task_details'] = payload.get('task_details') or payload.get('details') or ''
    tasks = _collect_tasks([candidate], events, correlation_id)
    confidence = payload.get('confidence')
    return TaskExtractionResult(
        found=True,
        tasks=tasks,
        confidence=confidence if confidence in CONFIDENCE_LEVELS else None,
    )
