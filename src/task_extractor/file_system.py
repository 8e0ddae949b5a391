"""Local vault document store used as the host for task extraction."""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
import logging

from .utils import parse_frontmatter, generate_frontmatter, split_frontmatter


logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_FOLDERS = ['.obsidian', '.trash', '.git']

FrontmatterMutator = Callable[[Dict[str, Any]], None]


class VaultDocumentStore:
    """Async document store over a Markdown vault directory.

    Paths handed in and out are vault-relative POSIX strings
    (``"Meetings/standup.md"``).
    """

    def __init__(self, vault_path: str, exclude_folders: Optional[List[str]] = None):
        """
        Initialize the document store.

        Args:
            vault_path: Path to the vault directory
            exclude_folders: Folder names never listed
        """
        self.vault_path = Path(vault_path).resolve()
        if not self.vault_path.exists():
            raise ValueError(f"Vault path does not exist: {vault_path}")
        if not self.vault_path.is_dir():
            raise ValueError(f"Vault path is not a directory: {vault_path}")

        self.exclude_folders = exclude_folders if exclude_folders is not None else list(DEFAULT_EXCLUDE_FOLDERS)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

        logger.info(f"Initialized document store for vault: {self.vault_path}")

    def resolve(self, path: str) -> Path:
        """Map a vault-relative path to an absolute path inside the vault."""
        full_path = (self.vault_path / path).resolve()
        if full_path != self.vault_path and self.vault_path not in full_path.parents:
            raise ValueError(f"Path escapes the vault: {path}")
        return full_path

    def relative(self, full_path: Path) -> str:
        return full_path.resolve().relative_to(self.vault_path).as_posix()

    async def list_documents(self) -> List[str]:
        """
        List Markdown documents in the vault.

        Returns:
            Vault-relative paths, newest modification first
        """
        return await asyncio.to_thread(self._list_documents)

    def _list_documents(self) -> List[str]:
        documents = []
        for file_path in self.vault_path.rglob('*.md'):
            if not file_path.is_file() or not self._should_include_file(file_path):
                continue
            documents.append((file_path.stat().st_mtime, self.relative(file_path)))

        documents.sort(key=lambda item: item[0], reverse=True)
        logger.info(f"Found {len(documents)} documents in {self.vault_path}")
        return [path for _, path in documents]

    def _should_include_file(self, file_path: Path) -> bool:
        """Check if a file lies outside every excluded folder."""
        try:
            relative_path = file_path.relative_to(self.vault_path)
        except ValueError:
            return False
        return not any(part in self.exclude_folders for part in relative_path.parts[:-1])

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self.resolve(path).exists)

    async def read_document(self, path: str) -> str:
        """
        Read a document's text.

        Args:
            path: Vault-relative path

        Returns:
            Document content
        """
        try:
            content = await asyncio.to_thread(self.resolve(path).read_text, encoding='utf-8')
            logger.debug(f"Read {len(content)} characters from {path}")
            return content
        except Exception as e:
            logger.error(f"Error reading document {path}: {e}")
            raise

    async def write_document(self, path: str, content: str) -> None:
        """
        Write a document, creating parent folders as needed.

        Args:
            path: Vault-relative path
            content: Text to write
        """
        try:
            await asyncio.to_thread(self._write_atomic, self.resolve(path), content)
            logger.info(f"Wrote {len(content)} characters to {path}")
        except Exception as e:
            logger.error(f"Error writing document {path}: {e}")
            raise

    async def create_document(self, path: str, content: str) -> None:
        """Create a new document. Fails if the path is already taken."""
        full_path = self.resolve(path)

        def _create():
            full_path.parent.mkdir(parents=True, exist_ok=True)
            with open(full_path, 'x', encoding='utf-8') as f:
                f.write(content)

        try:
            await asyncio.to_thread(_create)
            logger.info(f"Created document: {path}")
        except FileExistsError:
            raise
        except Exception as e:
            logger.error(f"Error creating document {path}: {e}")
            raise

    @staticmethod
    def _write_atomic(full_path: Path, content: str) -> None:
        full_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=full_path.parent, prefix='.', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
            os.replace(temp_name, full_path)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

    async def get_frontmatter(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Read the frontmatter mapping of a document.

        Returns:
            The parsed mapping, or None if the document has none (or it is
            not valid YAML)
        """
        content = await self.read_document(path)
        _, frontmatter = parse_frontmatter(content)
        return frontmatter

    async def mutate_frontmatter(self, path: str, mutator: FrontmatterMutator) -> None:
        """
        Apply ``mutator`` to a document's frontmatter and write it back.

        Mutations of the same path are serialized, and the rewrite is atomic.

        Raises:
            ValueError: If the existing frontmatter is not a YAML mapping
        """
        lock = self._locks.setdefault(path, asyncio.Lock())
        self._lock_users[path] = self._lock_users.get(path, 0) + 1
        try:
            async with lock:
                content = await self.read_document(path)
                frontmatter_text, body = split_frontmatter(content)
                if frontmatter_text is None:
                    frontmatter: Dict[str, Any] = {}
                    body = content if content.startswith('\n') else f"\n{content}"
                else:
                    _, parsed = parse_frontmatter(content)
                    if parsed is None:
                        raise ValueError(f"Frontmatter in {path} is not a YAML mapping")
                    frontmatter = parsed

                mutator(frontmatter)
                await self.write_document(path, generate_frontmatter(frontmatter) + body)
        finally:
            self._release_lock(path)

    def _release_lock(self, path: str) -> None:
        remaining = self._lock_users[path] - 1
        if remaining:
            self._lock_users[path] = remaining
        else:
            del self._lock_users[path]
            del self._locks[path]
