"""Materialization of extracted tasks as task notes in the vault."""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Set

import yaml

from .config import FrontmatterField
from .events import EventSink, NullEventSink
from .file_system import VaultDocumentStore
from .models import ExtractedTask, TaskExtractionResult
from .utils import make_filename_safe, sanitize_folder, today_iso


logger = logging.getLogger(__name__)

DATE_TOKEN = '{{date}}'
YAML_STRUCTURAL_CHARS = re.compile(r'[\s:#\[\]{},&*!|>\'"%@`]')
ISO_DATE = re.compile(r'\d{4}-\d{2}-\d{2}')

# Extraction keys that may carry the value of a schema field
FIELD_ALIASES = {
    'task': ('task_title', 'title'),
    'task_title': ('task', 'title'),
    'title': ('task_title', 'task'),
    'due': ('due_date',),
    'due_date': ('due',),
    'details': ('task_details',),
    'task_details': ('details',),
}


@dataclass
class CreationSummary:
    """Outcome of writing the task notes for one source document."""
    created: int = 0
    failed: int = 0
    paths: List[str] = field(default_factory=list)


def _is_empty(value: Any) -> bool:
    return value is None or value == '' or value == []


def resolve_field_value(fields: Dict[str, Any], frontmatter_field: FrontmatterField, today: str) -> Any:
    """
    Resolve the value of one schema field for a task.

    Lookup order: exact key, known aliases, the key with its first
    underscore removed, then the configured default. A ``{{date}}`` value
    becomes ``today``.

    Args:
        fields: Task values keyed the way the LLM emitted them
        frontmatter_field: Schema entry
        today: Current date as YYYY-MM-DD

    Returns:
        The resolved value, or None if nothing applies
    """
    key = frontmatter_field.key
    candidates = (key,) + FIELD_ALIASES.get(key, ()) + (key.replace('_', '', 1),)

    value = None
    for candidate in candidates:
        if not _is_empty(fields.get(candidate)):
            value = fields[candidate]
            break

    if value is None and frontmatter_field.default_value:
        value = frontmatter_field.default_value

    if value == DATE_TOKEN:
        value = today
    return value


def _retyped_by_yaml(text: str) -> bool:
    """True when a bare scalar would not load back as the same string.

    ISO dates stay bare so date fields keep their date type.
    """
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError:
        return True
    if isinstance(loaded, date) and ISO_DATE.fullmatch(text):
        return False
    return loaded != text


def render_value(value: Any) -> str:
    """Render a scalar or list as a YAML frontmatter value."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, tuple)):
        return '[' + ', '.join(render_value(item) for item in value) + ']'
    text = str(value)
    if not isinstance(value, str):
        return text
    if YAML_STRUCTURAL_CHARS.search(text) or text != text.strip() or _retyped_by_yaml(text):
        escaped = text.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    return text


def render_task_note(task: ExtractedTask, schema: List[FrontmatterField], source_path: str,
                     link_back: bool, today: str, type_field: Optional[str] = None,
                     default_type: str = '') -> str:
    """
    Render the full text of a task note.

    Args:
        task: Extracted task
        schema: Configured frontmatter fields, in output order
        source_path: Vault path of the source document
        link_back: Whether to append a wiki link to the source
        today: Current date as YYYY-MM-DD
        type_field: Trigger field name; filled with ``default_type`` when empty
        default_type: Value for ``type_field``

    Returns:
        Note text
    """
    values = task.as_fields()
    lines = ['---']
    for frontmatter_field in schema:
        value = resolve_field_value(values, frontmatter_field, today)
        if _is_empty(value) and frontmatter_field.key == type_field and default_type:
            value = default_type
        if _is_empty(value):
            continue
        lines.append(f"{frontmatter_field.key}: {render_value(value)}")
    lines.append('---')
    lines.append('')
    lines.append(task.details or '')
    lines.append('')

    if link_back:
        lines.append(f"Source: [[{source_path}]]")

    if task.source_excerpt:
        lines.append('')
        lines.append('> Justification excerpt:')
        lines.append('> ' + task.source_excerpt.replace('\n', ' '))

    return '\n'.join(lines)


class TaskNoteWriter:
    """Writes one note per extracted task into the tasks folder."""

    def __init__(self, store: VaultDocumentStore, config: Any, events: Optional[EventSink] = None,
                 today: Callable[[], str] = today_iso):
        self.store = store
        self.config = config
        self.events = events or NullEventSink()
        self._today = today

    @property
    def folder(self) -> str:
        return sanitize_folder(self.config.tasks_folder)

    async def unique_note_path(self, title: str, reserved: Set[str]) -> str:
        """
        Pick ``{folder}/{title}.md``, or the first free ``{title}-N.md``.

        Args:
            title: Task title
            reserved: Paths already taken during the current run

        Returns:
            Vault-relative path for the new note
        """
        safe_title = make_filename_safe(title or 'task') or 'task'
        path = f"{self.folder}/{safe_title}.md"
        counter = 1
        while path in reserved or await self.store.exists(path):
            path = f"{self.folder}/{safe_title}-{counter}.md"
            counter += 1
        return path

    async def _create_unique(self, title: str, content: str, reserved: Set[str]) -> str:
        """Create the note under the first free name and return its path.

        Concurrent runs can pick the same free name; the exclusive create
        decides the winner and the loser moves on to the next suffix.
        """
        while True:
            path = await self.unique_note_path(title, reserved)
            reserved.add(path)
            try:
                await self.store.create_document(path, content)
                return path
            except FileExistsError:
                logger.debug(f"{path} was taken concurrently, trying the next name")

    async def create_task_notes(self, result: TaskExtractionResult, source_path: str,
                                correlation_id: Optional[str] = None) -> CreationSummary:
        """
        Create a note for every task in ``result``.

        A failure writing one note is logged and counted; the remaining
        tasks are still written.

        Args:
            result: Normalized extraction result
            source_path: Vault path of the source document
            correlation_id: Correlation id for emitted events

        Returns:
            CreationSummary
        """
        summary = CreationSummary()
        reserved: Set[str] = set()

        for task in result.tasks:
            path = None
            try:
                content = render_task_note(
                    task,
                    self.config.frontmatter_fields,
                    source_path,
                    self.config.link_back,
                    self._today(),
                    type_field=self.config.trigger_frontmatter_field,
                    default_type=self.config.default_task_type,
                )
                self.events.emit('info', 'task-creation', 'Creating task note', {
                    'sourceFile': source_path,
                    'taskTitle': task.title,
                }, correlation_id)
                path = await self._create_unique(task.title, content, reserved)
            except Exception as e:
                summary.failed += 1
                logger.error(f"Failed to create task note '{task.title}' from {source_path}: {e}")
                self.events.emit('error', 'task-creation', 'Failed to create task note', {
                    'sourceFile': source_path,
                    'taskTitle': task.title,
                    'taskPath': path,
                    'error': str(e),
                }, correlation_id)
                continue

            summary.created += 1
            summary.paths.append(path)
            logger.info(f"Created task note: {path}")
            self.events.emit('info', 'task-creation', 'Task note created successfully', {
                'sourceFile': source_path,
                'taskTitle': task.title,
                'taskPath': path,
                'contentLength': len(content),
            }, correlation_id)

        return summary
