"""Test configuration and fixtures for pytest."""

import sys
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Add src to path so we can import modules
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from task_extractor.config import Config
from task_extractor.errors import TransportError
from task_extractor.file_system import VaultDocumentStore
from task_extractor.llm.base_client import BaseLLMClient


MEETING_NOTE = """---
Type: Meeting Note
title: Weekly sync
---

# Weekly sync

- Alex Doe to send the Q3 budget draft to finance by 2025-03-14
- Priya will book the offsite venue
"""


@pytest.fixture
def temp_vault_dir(tmp_path):
    """Create a temporary directory structure mimicking an Obsidian vault."""
    vault_path = tmp_path / "vault"
    vault_path.mkdir()
    (vault_path / "Meetings").mkdir()
    (vault_path / "Inbox").mkdir()
    (vault_path / ".obsidian").mkdir()  # Should be excluded
    return vault_path


@pytest.fixture
def write_note(temp_vault_dir):
    """Helper fixture to create notes in the vault."""
    def _write(relative_path: str, content: str) -> Path:
        file_path = temp_vault_dir / relative_path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding='utf-8')
        return file_path

    return _write


@pytest.fixture
def make_config(temp_vault_dir):
    """Factory for configurations with fast timings suitable for tests."""
    def _make(**overrides) -> Config:
        values = dict(
            vault_path=str(temp_vault_dir),
            owner_name="Alex Doe",
            api_key="sk-test-key-1234",
            debounce_seconds=0.05,
            processing_timeout_seconds=5.0,
            retry_delay_seconds=0.0,
            scan_batch_pause_seconds=0.0,
        )
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def store(temp_vault_dir):
    return VaultDocumentStore(str(temp_vault_dir))


class FakeLLMClient(BaseLLMClient):
    """Scripted transport: returns or raises the queued outcomes in order."""

    def __init__(self, config, name: str = "fake", responses: Optional[List] = None,
                 is_local: bool = False):
        super().__init__(config)
        self._name = name
        self.is_local = is_local
        self.responses = list(responses or [])
        self.calls: List[Dict] = []
        self.problems: List[str] = []

    @property
    def provider_name(self) -> str:
        return self._name

    def validate_config(self) -> List[str]:
        return list(self.problems)

    async def send_message(self, prompt, model):
        self.calls.append({'prompt': prompt, 'model': model})
        if not self.responses:
            raise TransportError(self._name, f"{self._name} request failed")
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_client_factory(config):
    def _make(name: str = "fake", responses: Optional[List] = None, is_local: bool = False,
              client_config=None) -> FakeLLMClient:
        return FakeLLMClient(client_config or config, name=name, responses=responses, is_local=is_local)

    return _make


@pytest.fixture
def mock_llm_manager():
    """LLM manager double whose call_llm is an AsyncMock."""
    manager = Mock()
    manager.call_llm = AsyncMock(return_value='{"found": false, "tasks": []}')
    return manager
