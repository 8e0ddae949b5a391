"""Tests for utils module."""

import re

from task_extractor.utils import (
    add_marker_to_text,
    generate_frontmatter,
    get_nested_value,
    is_truthy_flag,
    make_filename_safe,
    parse_frontmatter,
    sanitize_folder,
    set_nested_value,
    today_iso,
)


class TestParseFrontmatter:
    """Test the parse_frontmatter function."""

    def test_no_frontmatter(self):
        """Test content without frontmatter."""
        content = "# Title\n\nBody"
        body, frontmatter = parse_frontmatter(content)
        assert body == content
        assert frontmatter is None

    def test_with_frontmatter(self):
        """Test content with a YAML mapping."""
        content = "---\nType: Email\ntags: [a, b]\n---\nBody text"
        body, frontmatter = parse_frontmatter(content)
        assert frontmatter == {'Type': 'Email', 'tags': ['a', 'b']}
        assert body == "Body text"

    def test_empty_frontmatter_block(self):
        body, frontmatter = parse_frontmatter("---\n\n---\nBody")
        assert frontmatter == {}
        assert body == "Body"

    def test_invalid_yaml(self):
        """Test that unparseable YAML is reported as no frontmatter."""
        content = "---\nType: [unclosed\n---\nBody"
        body, frontmatter = parse_frontmatter(content)
        assert frontmatter is None
        assert body == content

    def test_non_mapping_yaml(self):
        _, frontmatter = parse_frontmatter("---\n- a\n- b\n---\nBody")
        assert frontmatter is None


class TestGenerateFrontmatter:
    """Test the generate_frontmatter function."""

    def test_preserves_key_order(self):
        result = generate_frontmatter({'zeta': 1, 'alpha': 'two'})
        assert result == "---\nzeta: 1\nalpha: two\n---\n"

    def test_roundtrip_through_parser(self):
        metadata = {'Type': 'Email', 'taskExtractor': {'processed': True}}
        _, parsed = parse_frontmatter(generate_frontmatter(metadata) + "Body")
        assert parsed == metadata


class TestNestedValues:
    """Test dotted key access."""

    def test_literal_key_wins(self):
        data = {'taskExtractor.processed': True, 'taskExtractor': {'processed': False}}
        assert get_nested_value(data, 'taskExtractor.processed') is True

    def test_nested_path(self):
        assert get_nested_value({'a': {'b': {'c': 3}}}, 'a.b.c') == 3

    def test_missing_path(self):
        assert get_nested_value({'a': 'scalar'}, 'a.b') is None
        assert get_nested_value(None, 'a') is None

    def test_set_creates_intermediate_mappings(self):
        data = {'taskExtractor': 'not a mapping'}
        set_nested_value(data, 'taskExtractor.processed', True)
        assert data == {'taskExtractor': {'processed': True}}

    def test_truthy_flag(self):
        assert is_truthy_flag(True)
        assert is_truthy_flag('TRUE')
        assert not is_truthy_flag('yes')
        assert not is_truthy_flag(1)
        assert not is_truthy_flag(None)


class TestFilenames:
    """Test filename and folder sanitization."""

    def test_strips_unsafe_characters(self):
        assert make_filename_safe("Call: Bob / re #42") == "Call-Bob-re-42"

    def test_collapses_whitespace(self):
        assert make_filename_safe("  Send   the\tdraft ") == "Send-the-draft"

    def test_caps_length(self):
        assert len(make_filename_safe("x" * 300)) == 120

    def test_sanitize_folder(self):
        assert sanitize_folder('Work:Tasks') == 'WorkTasks'
        assert sanitize_folder('  ') == 'Tasks'

    def test_today_iso_format(self):
        assert re.match(r'^\d{4}-\d{2}-\d{2}$', today_iso())


class TestAddMarkerToText:
    """Test the textual processed-marker fallback."""

    def test_inserts_into_existing_frontmatter(self):
        content = "---\nType: email\n---\nBody"
        assert add_marker_to_text(content, 'done') == "---\nType: email\ndone: true\n---\nBody"

    def test_creates_frontmatter_when_missing(self):
        assert add_marker_to_text("Body", 'done') == "---\ndone: true\n---\n\nBody"

    def test_dotted_key(self):
        result = add_marker_to_text("---\nType: email\n---\n", 'taskExtractor.processed')
        assert "taskExtractor.processed: true" in result
        assert result.endswith("---\n")

    def test_existing_marker_is_not_duplicated(self):
        content = "---\nType: email\ndone: false\n---\nBody"
        assert add_marker_to_text(content, 'done') is None
