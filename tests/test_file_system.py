"""Tests for the vault document store."""

import asyncio
import os
import time

import pytest

from task_extractor.file_system import VaultDocumentStore


class TestVaultDocumentStoreInit:
    """Test store construction."""

    def test_nonexistent_path(self, tmp_path):
        with pytest.raises(ValueError, match="does not exist"):
            VaultDocumentStore(str(tmp_path / "missing"))

    def test_file_instead_of_directory(self, tmp_path):
        file_path = tmp_path / "file.md"
        file_path.write_text("x")
        with pytest.raises(ValueError, match="not a directory"):
            VaultDocumentStore(str(file_path))

    def test_resolve_rejects_escape(self, store):
        with pytest.raises(ValueError, match="escapes the vault"):
            store.resolve("../outside.md")


class TestListDocuments:
    """Test document discovery."""

    async def test_lists_markdown_recursively(self, store, write_note):
        write_note("Meetings/standup.md", "a")
        write_note("Inbox/email.md", "b")
        write_note("Inbox/attachment.pdf", "c")
        write_note(".obsidian/workspace.md", "d")

        documents = await store.list_documents()

        assert sorted(documents) == ["Inbox/email.md", "Meetings/standup.md"]

    async def test_newest_first(self, store, write_note):
        old = write_note("old.md", "old")
        new = write_note("new.md", "new")
        past = time.time() - 3600
        os.utime(old, (past, past))

        assert await store.list_documents() == ["new.md", "old.md"]

    async def test_custom_exclusions(self, temp_vault_dir, write_note):
        write_note("Templates/t.md", "x")
        write_note("keep.md", "y")
        store = VaultDocumentStore(str(temp_vault_dir), exclude_folders=["Templates"])
        assert await store.list_documents() == ["keep.md"]


class TestReadWrite:
    """Test reading, writing and creating documents."""

    async def test_read_document(self, store, write_note):
        write_note("note.md", "Content with émojis 🎉")
        assert await store.read_document("note.md") == "Content with émojis 🎉"

    async def test_read_missing_document_raises(self, store):
        with pytest.raises(FileNotFoundError):
            await store.read_document("missing.md")

    async def test_write_creates_parents(self, store, temp_vault_dir):
        await store.write_document("Deep/Nested/note.md", "hello")
        assert (temp_vault_dir / "Deep" / "Nested" / "note.md").read_text() == "hello"
        assert not any(p.name.endswith('.tmp') for p in (temp_vault_dir / "Deep" / "Nested").iterdir())

    async def test_create_fails_when_taken(self, store, write_note):
        write_note("Tasks/Do-it.md", "existing")
        with pytest.raises(FileExistsError):
            await store.create_document("Tasks/Do-it.md", "new")
        assert await store.read_document("Tasks/Do-it.md") == "existing"

    async def test_exists(self, store, write_note):
        write_note("here.md", "x")
        assert await store.exists("here.md")
        assert not await store.exists("gone.md")


class TestFrontmatter:
    """Test structured frontmatter access."""

    async def test_get_frontmatter(self, store, write_note):
        write_note("note.md", "---\nType: Email\n---\nBody")
        assert await store.get_frontmatter("note.md") == {"Type": "Email"}

    async def test_get_frontmatter_absent(self, store, write_note):
        write_note("note.md", "Body only")
        assert await store.get_frontmatter("note.md") is None

    async def test_mutate_frontmatter(self, store, write_note):
        write_note("note.md", "---\nType: Email\n---\nBody")

        await store.mutate_frontmatter("note.md", lambda fm: fm.update({"done": True}))

        content = await store.read_document("note.md")
        assert content == "---\nType: Email\ndone: true\n---\nBody"

    async def test_mutate_adds_frontmatter_when_missing(self, store, write_note):
        write_note("note.md", "Body only")

        await store.mutate_frontmatter("note.md", lambda fm: fm.update({"done": True}))

        assert await store.get_frontmatter("note.md") == {"done": True}
        assert (await store.read_document("note.md")).endswith("Body only")

    async def test_mutate_rejects_non_mapping(self, store, write_note):
        write_note("note.md", "---\n- a\n---\nBody")
        with pytest.raises(ValueError, match="not a YAML mapping"):
            await store.mutate_frontmatter("note.md", lambda fm: None)

    async def test_concurrent_mutations_are_serialized(self, store, write_note):
        write_note("note.md", "---\ncount: 0\n---\n")

        def increment(fm):
            fm["count"] += 1

        await asyncio.gather(*(store.mutate_frontmatter("note.md", increment) for _ in range(5)))

        assert (await store.get_frontmatter("note.md"))["count"] == 5
        assert store._locks == {}

    async def test_lock_dropped_after_failed_mutation(self, store, write_note):
        write_note("note.md", "---\n- a\n---\nBody")

        with pytest.raises(ValueError):
            await store.mutate_frontmatter("note.md", lambda fm: None)

        assert store._locks == {}
