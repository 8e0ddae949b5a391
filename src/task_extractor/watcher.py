"""Vault change feed backed by watchdog."""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer


logger = logging.getLogger(__name__)

PathCallback = Callable[[str], None]


class VaultEventHandler(FileSystemEventHandler):
    """Forward markdown change events from the observer thread to the loop."""

    def __init__(self, vault_path: Path, loop: asyncio.AbstractEventLoop,
                 callback: PathCallback, process_on_update: bool = False):
        super().__init__()
        self.vault_path = vault_path
        self.loop = loop
        self.callback = callback
        self.process_on_update = process_on_update

    def _relative(self, raw_path) -> Optional[str]:
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if path.suffix != '.md':
            return None
        try:
            relative = path.resolve().relative_to(self.vault_path)
        except ValueError:
            return None
        if any(part.startswith('.') for part in relative.parts):
            return None
        return relative.as_posix()

    def _forward(self, raw_path) -> None:
        relative = self._relative(raw_path)
        if relative is None:
            return
        logger.debug(f"Change detected: {relative}")
        self.loop.call_soon_threadsafe(self.callback, relative)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.dest_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if self.process_on_update and not event.is_directory:
            self._forward(event.src_path)


class VaultWatcher:
    """Runs a watchdog Observer over the vault for the lifetime of a session."""

    def __init__(self, vault_path: str, callback: PathCallback, process_on_update: bool = False):
        self.vault_path = Path(vault_path).resolve()
        self.callback = callback
        self.process_on_update = process_on_update
        self._observer: Optional[Observer] = None

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self._observer is not None:
            return
        loop = loop or asyncio.get_running_loop()
        handler = VaultEventHandler(self.vault_path, loop, self.callback, self.process_on_update)
        self._observer = Observer()
        self._observer.schedule(handler, str(self.vault_path), recursive=True)
        self._observer.start()
        logger.info(f"Watching {self.vault_path} for changes")

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info("Stopped watching vault")
