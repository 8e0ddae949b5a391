"""Command line entry point for the task extractor."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import httpx
import typer
from dotenv import load_dotenv

from .config import Config
from .events import DebugEventLog, create_event_sink
from .file_system import VaultDocumentStore
from .llm import LLMProviderManager
from .note_processor import TaskProcessor
from .pipeline import ExtractionPipeline
from .task_notes import TaskNoteWriter
from .watcher import VaultWatcher


app = typer.Typer(
    name="task-extractor",
    help="Extract actionable tasks from vault notes with an LLM",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False):
    """
    Configure logging for the application.

    Returns:
        Logger instance for the main module
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # httpx logs every request at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)
    return logging.getLogger(__name__)


def load_config(settings: Optional[Path], vault: Optional[Path], debug: bool) -> Config:
    load_dotenv()
    config = Config.from_sources(str(settings) if settings else None)
    if vault:
        config.vault_path = str(vault)
    if debug:
        config.debug_mode = True
    if not config.vault_path:
        raise ValueError("No vault configured. Set OBSIDIAN_VAULT_PATH or pass --vault")
    return config


class Application:
    """Wires the store, LLM layer, pipeline and processor for one session."""

    def __init__(self, config: Config):
        self.config = config
        self.events = create_event_sink(config)
        self.http = httpx.AsyncClient(timeout=config.timeout)
        self.store = VaultDocumentStore(config.vault_path)
        self.llm = LLMProviderManager(config, events=self.events, http_client=self.http)
        self.pipeline = ExtractionPipeline(config, self.llm, events=self.events)
        self.writer = TaskNoteWriter(self.store, config, events=self.events)
        self.processor = TaskProcessor(self.store, self.pipeline, self.writer, config,
                                       events=self.events, notifier=typer.echo)

    async def refresh_local_services(self) -> None:
        """Re-probe the local LLM services every local_model_refresh_interval minutes."""
        interval = self.config.local_model_refresh_interval * 60
        while True:
            await asyncio.sleep(interval)
            self.llm.cleanup()
            services = await self.llm.detect_services()
            available = [record.name for record in services if record.usable]
            logger.debug(f"Refreshed local services: {available or 'none available'}")

    async def aclose(self, debug_log: Optional[Path] = None) -> None:
        await self.processor.stop()
        await self.llm.aclose()
        await self.http.aclose()
        self.llm.cleanup()
        if debug_log and isinstance(self.events, DebugEventLog):
            debug_log.write_text(self.events.export(), encoding='utf-8')


SETTINGS_OPTION = typer.Option(None, "--settings", "-s", help="Path to settings YAML file")
VAULT_OPTION = typer.Option(None, "--vault", help="Vault directory (overrides OBSIDIAN_VAULT_PATH)")
DEBUG_OPTION = typer.Option(False, "--debug", help="Enable debug logging and the event log")
DEBUG_LOG_OPTION = typer.Option(None, "--debug-log", help="Write collected debug events to this file on exit")


def _run(coro, logger) -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as e:
        logger.error(f"Fatal error: {str(e)}", exc_info=True)
        raise typer.Exit(code=1)


@app.command("scan")
def scan(settings: Optional[Path] = SETTINGS_OPTION, vault: Optional[Path] = VAULT_OPTION,
         debug: bool = DEBUG_OPTION, debug_log: Optional[Path] = DEBUG_LOG_OPTION):
    """Process every unprocessed matching note in the vault once."""
    logger = setup_logging(debug)

    async def _scan():
        application = Application(load_config(settings, vault, debug))
        application.processor.start()
        try:
            count = await application.processor.scan_existing_files()
            logger.info(f"Successfully processed {count} notes")
        finally:
            await application.aclose(debug_log)

    _run(_scan(), logger)


@app.command("watch")
def watch(settings: Optional[Path] = SETTINGS_OPTION, vault: Optional[Path] = VAULT_OPTION,
          debug: bool = DEBUG_OPTION, debug_log: Optional[Path] = DEBUG_LOG_OPTION):
    """Scan the vault, then process notes as they are created or changed."""
    logger = setup_logging(debug)

    async def _watch():
        application = Application(load_config(settings, vault, debug))
        config = application.config
        watcher = VaultWatcher(config.vault_path, application.processor.handle_event,
                               process_on_update=config.process_on_update)
        application.processor.start()
        refresher = None
        try:
            if config.is_local_provider:
                services = await application.llm.detect_services()
                for record in services:
                    logger.info(f"{record.name}: {'available' if record.usable else 'unavailable'} "
                                f"({len(record.models)} models)")
                refresher = asyncio.ensure_future(application.refresh_local_services())
            await application.processor.scan_existing_files()
            watcher.start()
            await asyncio.Event().wait()
        finally:
            watcher.stop()
            if refresher:
                refresher.cancel()
            await application.aclose(debug_log)

    _run(_watch(), logger)


@app.command("extract")
def extract(path: str = typer.Argument(..., help="Vault-relative path of the note"),
            settings: Optional[Path] = SETTINGS_OPTION, vault: Optional[Path] = VAULT_OPTION,
            debug: bool = DEBUG_OPTION, debug_log: Optional[Path] = DEBUG_LOG_OPTION):
    """Process a single note now, without debouncing."""
    logger = setup_logging(debug)

    async def _extract():
        application = Application(load_config(settings, vault, debug))
        application.processor.start()
        try:
            if not await application.processor.process_file(path):
                logger.info(f"{path} was not processed")
        finally:
            await application.aclose(debug_log)

    _run(_extract(), logger)


@app.command("services")
def services(settings: Optional[Path] = SETTINGS_OPTION, debug: bool = DEBUG_OPTION):
    """Probe the local LLM services and list their models."""
    logger = setup_logging(debug)

    async def _services():
        load_dotenv()
        config = Config.from_sources(str(settings) if settings else None)
        async with httpx.AsyncClient(timeout=config.timeout) as http:
            manager = LLMProviderManager(config, http_client=http)
            for record in await manager.detect_services():
                status = 'available' if record.usable else 'unavailable'
                typer.echo(f"{record.name} ({record.url}): {status}")
                for model in record.models:
                    typer.echo(f"  - {model}")
            if config.provider in ('openai', 'anthropic'):
                models = await manager.fetch_cloud_models(config.provider)
                typer.echo(f"{config.provider}: {', '.join(models) or 'no API key configured'}")
            await manager.aclose()

    _run(_services(), logger)


def main():
    app()


if __name__ == "__main__":
    main()
