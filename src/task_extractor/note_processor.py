"""File processing state machine: debounce, admission, watchdog and cleanup."""

import asyncio
import fnmatch
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .config import validate_frontmatter_field
from .events import EventSink, NullEventSink
from .file_system import VaultDocumentStore
from .models import ProcessingEntry, ProcessingStatus
from .pipeline import ExtractionPipeline
from .task_notes import TaskNoteWriter
from .utils import add_marker_to_text, get_nested_value, is_truthy_flag, sanitize_folder, set_nested_value


logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]


def _log_notifier(message: str) -> None:
    logger.info(message)


class TaskProcessor:
    """Turns vault change events into task extraction runs.

    Each path moves through debouncing, admission and processing. At most
    one ProcessingEntry exists per path, and every exit path (success,
    filtered out, error, watchdog timeout) releases it.
    """

    def __init__(self, store: VaultDocumentStore, pipeline: ExtractionPipeline,
                 writer: TaskNoteWriter, config: Any,
                 events: Optional[EventSink] = None,
                 notifier: Optional[Notifier] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Initialize the processor.

        Args:
            store: Vault document store
            pipeline: Extraction pipeline (prompt, LLM, normalization)
            writer: Task note writer
            config: Configuration object
            events: Structured event sink
            notifier: Receives one user-facing message per processed file
            sleep: Pause between scan batches, replaceable in tests
        """
        self.store = store
        self.pipeline = pipeline
        self.writer = writer
        self.config = config
        self.events = events or NullEventSink()
        self.notify = notifier or _log_notifier
        self._sleep = sleep
        self._debouncers: Dict[str, asyncio.TimerHandle] = {}
        self._entries: Dict[str, ProcessingEntry] = {}
        self._background: Set["asyncio.Task[bool]"] = set()
        self._stopped = False

    # Lifecycle

    def start(self) -> None:
        self._stopped = False
        logger.info("Task processor started")

    async def stop(self) -> None:
        """Cancel pending debounce timers, watchdogs and in-flight runs."""
        self._stopped = True
        for handle in self._debouncers.values():
            handle.cancel()
        self._debouncers.clear()
        for task in list(self._background):
            task.cancel()

        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            if entry.watchdog_handle:
                entry.watchdog_handle.cancel()
            if entry.task and not entry.task.done():
                entry.task.cancel()
        tasks = [entry.task for entry in entries if entry.task]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Task processor stopped")

    def is_processing(self, path: str) -> bool:
        return path in self._entries

    def is_debouncing(self, path: str) -> bool:
        return path in self._debouncers

    # Debounce

    def handle_event(self, path: str) -> None:
        """
        Record a change event for ``path``.

        Each event restarts the path's debounce timer; only the last event
        inside the window leads to a processing attempt. Must be called from
        the event loop thread.
        """
        if self._stopped:
            return
        if not path.endswith('.md'):
            logger.debug(f"Ignoring change to non-markdown file: {path}")
            return

        existing = self._debouncers.pop(path, None)
        if existing:
            existing.cancel()

        loop = asyncio.get_running_loop()
        self._debouncers[path] = loop.call_later(self.config.debounce_seconds, self._debounce_fired, path)

    def _debounce_fired(self, path: str) -> None:
        self._debouncers.pop(path, None)
        if self._stopped:
            return
        task = asyncio.ensure_future(self.process_file(path))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Admission

    async def process_file(self, path: str) -> bool:
        """
        Admit ``path`` and run it through the pipeline.

        A path that already has an entry (in any state) is dropped.

        Args:
            path: Vault-relative document path

        Returns:
            True if the document was processed to completion, False if it
            was dropped, filtered out, failed or timed out
        """
        if path in self._entries:
            logger.info(f"Skipping {path}: already being processed")
            self.events.emit('info', 'file-processing', 'File skipped: already being processed', {
                'filePath': path,
                'status': self._entries[path].status.value,
            })
            return False

        entry = ProcessingEntry(path=path)
        self._entries[path] = entry

        loop = asyncio.get_running_loop()
        entry.watchdog_handle = loop.call_later(
            self.config.processing_timeout_seconds, self._watchdog_expired, entry)
        entry.task = asyncio.ensure_future(self._run(entry))

        try:
            return await entry.task
        except asyncio.CancelledError:
            if entry.timed_out:
                return False
            raise

    def _release(self, entry: ProcessingEntry) -> None:
        if entry.watchdog_handle:
            entry.watchdog_handle.cancel()
            entry.watchdog_handle = None
        # A late release from a timed-out run must not drop a newer entry
        if self._entries.get(entry.path) is entry:
            del self._entries[entry.path]

    def _watchdog_expired(self, entry: ProcessingEntry) -> None:
        if self._entries.get(entry.path) is not entry:
            return
        entry.timed_out = True
        entry.watchdog_handle = None
        timeout = self.config.processing_timeout_seconds
        logger.warning(f"Processing timeout for {entry.path} after {timeout}s, releasing")
        self.events.emit('warn', 'file-processing', 'Processing timeout', {
            'filePath': entry.path,
            'timeoutSeconds': timeout,
            'cancelled': bool(self.config.cancel_on_timeout),
        })
        self._release(entry)
        if self.config.cancel_on_timeout and entry.task and not entry.task.done():
            entry.task.cancel()

    # Processing

    async def _run(self, entry: ProcessingEntry) -> bool:
        path = entry.path
        correlation_id = self.events.start_operation('file-processing', 'Processing file', {
            'filePath': path,
        })
        entry.status = ProcessingStatus.PROCESSING

        try:
            reason = await self.filter_reason(path)
            if reason:
                logger.info(f"Skipping {path}: {reason}")
                self.events.emit('info', 'file-processing', f"File skipped: {reason}", {
                    'filePath': path,
                }, correlation_id)
                entry.status = ProcessingStatus.COMPLETED
                return False

            content = await self.store.read_document(path)
            logger.info(f"Extracting tasks from {path} ({len(content)} chars)")
            result = await self.pipeline.extract(content, path)

            if result.found and result.tasks:
                summary = await self.writer.create_task_notes(result, path, correlation_id)
                if summary.created == 0:
                    # Leave the source unmarked so a later edit can retry
                    entry.status = ProcessingStatus.FAILED
                    self.notify(f"Task Extractor: failed to create task notes for {path}, see log")
                    return False
                message = f"Task Extractor: created {summary.created} task(s) from {path}"
                if summary.failed:
                    message += f" ({summary.failed} failed)"
            else:
                logger.info(f"No tasks found in {path}")
                message = f"Task Extractor: no tasks found in {path}"

            await self.mark_processed(path)
            entry.status = ProcessingStatus.COMPLETED
            self.notify(message)
            self.events.emit('info', 'file-processing', 'File processing completed successfully', {
                'filePath': path,
                'processingTime': int(entry.elapsed * 1000),
            }, correlation_id)
            return True

        except asyncio.CancelledError:
            entry.status = ProcessingStatus.FAILED
            if entry.timed_out:
                self.notify(f"Task Extractor: processing {path} timed out, see log")
            raise
        except Exception as e:
            entry.status = ProcessingStatus.FAILED
            logger.error(f"Error processing {path}: {e}", exc_info=True)
            self.events.emit('error', 'error', 'File processing failed with error', {
                'filePath': path,
                'error': str(e),
                'processingTime': int(entry.elapsed * 1000),
            }, correlation_id)
            self.notify(f"Task Extractor: error processing {path}, see log")
            return False
        finally:
            self._release(entry)

    # Filtering

    def path_filter_reason(self, path: str) -> Optional[str]:
        """Reason to skip ``path`` based on its location alone, or None."""
        if not path.endswith('.md'):
            return "not a markdown file"

        for excluded in self.config.excluded_paths:
            prefix = excluded.strip('/')
            if path == prefix or path.startswith(prefix + '/'):
                return f"excluded path '{excluded}'"

        for pattern in self.config.excluded_patterns:
            if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(path.rsplit('/', 1)[-1], pattern):
                return f"matches excluded pattern '{pattern}'"

        tasks_folder = sanitize_folder(self.config.tasks_folder)
        if path.startswith(tasks_folder + '/'):
            return "inside the tasks folder"

        return None

    async def filter_reason(self, path: str) -> Optional[str]:
        """
        Decide whether ``path`` should be sent to the LLM.

        Returns:
            A human-readable reason to skip the document, or None to process it
        """
        reason = self.path_filter_reason(path)
        if reason:
            return reason

        frontmatter = await self.store.get_frontmatter(path)
        if frontmatter is None:
            return "no frontmatter found"

        trigger_types = self.config.trigger_types
        if not isinstance(trigger_types, list) or not trigger_types:
            logger.warning("Invalid trigger types configuration, skipping processing")
            return "invalid trigger types configuration"

        processed_key = self.config.processed_frontmatter_key
        if is_truthy_flag(get_nested_value(frontmatter, processed_key)):
            return "already processed"

        field_name = validate_frontmatter_field(self.config.trigger_frontmatter_field)
        raw_value = get_nested_value(frontmatter, field_name)
        value = str(raw_value if raw_value is not None else '').strip().lower()
        accepted = [t.lower() for t in trigger_types]
        if value not in accepted:
            return f"{field_name} '{value}' does not match trigger types {accepted}"

        if not (self.config.owner_name or '').strip():
            logger.warning("Owner name not configured, skipping processing")
            return "owner name not configured"

        return None

    # Marking

    async def mark_processed(self, path: str) -> None:
        """
        Set the processed marker on the source document.

        Falls back to a textual patch of the raw document when the
        structured frontmatter update fails.
        """
        key = self.config.processed_frontmatter_key
        try:
            await self.store.mutate_frontmatter(path, lambda frontmatter: set_nested_value(frontmatter, key, True))
            logger.debug(f"Marked {path} as processed")
            return
        except Exception as e:
            logger.warning(f"Structured frontmatter update failed for {path}, using text fallback: {e}")

        try:
            content = await self.store.read_document(path)
            updated = add_marker_to_text(content, key)
            if updated is None:
                logger.debug(f"{path} already carries {key}")
                return
            await self.store.write_document(path, updated)
            logger.info(f"Marked {path} as processed (text fallback)")
        except Exception as e:
            # A missing marker does not fail the run
            logger.error(f"Could not mark {path} as processed: {e}", exc_info=True)

    # Bulk scan

    async def scan_existing_files(self) -> int:
        """
        Process every unprocessed document that matches the trigger criteria.

        Documents are admitted in batches of ``scan_batch_size`` with a short
        pause between batches.

        Returns:
            Number of documents processed to completion
        """
        paths = await self.store.list_documents()
        candidates: List[str] = []
        for path in paths:
            try:
                reason = await self.filter_reason(path)
            except Exception as e:
                logger.warning(f"Could not inspect {path} during scan: {e}")
                continue
            if reason is None:
                candidates.append(path)

        logger.info(f"Scan found {len(candidates)} unprocessed document(s) out of {len(paths)}")
        self.events.emit('info', 'file-processing', 'Vault scan started', {
            'totalDocuments': len(paths),
            'candidates': len(candidates),
        })

        batch_size = max(1, int(self.config.scan_batch_size))
        processed = 0
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start:start + batch_size]
            results = await asyncio.gather(*(self.process_file(path) for path in batch),
                                           return_exceptions=True)
            for path, outcome in zip(batch, results):
                if isinstance(outcome, BaseException):
                    logger.error(f"Scan failed for {path}: {outcome}")
                elif outcome:
                    processed += 1
            if start + batch_size < len(candidates):
                await self._sleep(self.config.scan_batch_pause_seconds)

        logger.info(f"Scan complete. Processed {processed}/{len(candidates)} documents")
        return processed
