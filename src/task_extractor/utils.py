"""Utility functions for the task extractor."""

import re
import yaml
from datetime import date
from typing import Tuple, Dict, Any, Optional

# Constants
FRONTMATTER_DELIMITER_OFFSET = 4  # Length of "---\n"
FRONTMATTER_PATTERN = re.compile(r'^---\n([\s\S]*?)\n---(?:\n|$)')
UNSAFE_FILENAME_CHARS = re.compile(r"[\\/:*?\"<>|#%{}^~\[\]`;'@&=+]")
UNSAFE_FOLDER_CHARS = re.compile(r'[\\/:*?"<>|]')
MAX_FILENAME_LENGTH = 120


def split_frontmatter(content: str) -> Tuple[Optional[str], str]:
    """
    Split raw frontmatter text from the document body.

    Args:
        content: Full document text

    Returns:
        Tuple of (frontmatter_text or None, body)
    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return None, content
    return match.group(1), content[match.end():]


def parse_frontmatter(content: str) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Parse YAML frontmatter from content.

    Args:
        content: Full content including potential frontmatter

    Returns:
        Tuple of (content_without_frontmatter, frontmatter_dict). The dict is
        None when there is no frontmatter block or it is not a YAML mapping.
    """
    frontmatter_text, body = split_frontmatter(content)
    if frontmatter_text is None:
        return content, None

    try:
        frontmatter = yaml.safe_load(frontmatter_text)
    except yaml.YAMLError:
        return content, None

    if frontmatter is None:
        frontmatter = {}
    if not isinstance(frontmatter, dict):
        return content, None
    return body, frontmatter


def generate_frontmatter(metadata: Dict[str, Any]) -> str:
    """
    Generate YAML frontmatter from metadata, preserving key order.

    Args:
        metadata: Dictionary of metadata fields

    Returns:
        str: Formatted YAML frontmatter with --- delimiters
    """
    yaml_content = yaml.dump(
        metadata,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False
    )
    return f"---\n{yaml_content}---\n"


def get_nested_value(data: Optional[Dict[str, Any]], key: str) -> Any:
    """Look up a possibly dotted key ("a.b.c") in nested mappings.

    A literal key containing dots takes precedence over the nested path.
    """
    if not data:
        return None
    if key in data:
        return data[key]
    current: Any = data
    for part in key.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def set_nested_value(data: Dict[str, Any], key: str, value: Any) -> None:
    """Set a dotted key, creating intermediate mappings as needed."""
    parts = key.split('.')
    current = data
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def is_truthy_flag(value: Any) -> bool:
    """True for boolean true or the string "true" (any case)."""
    return value is True or (isinstance(value, str) and value.strip().lower() == 'true')


def make_filename_safe(title: str) -> str:
    """Strip filesystem-hostile characters and hyphenate whitespace."""
    cleaned = UNSAFE_FILENAME_CHARS.sub('', title)
    cleaned = re.sub(r'\s+', '-', cleaned.strip())
    return cleaned[:MAX_FILENAME_LENGTH]


def sanitize_folder(folder: str, default: str = "Tasks") -> str:
    cleaned = UNSAFE_FOLDER_CHARS.sub('', (folder or '').strip())
    return cleaned or default


def today_iso() -> str:
    """Current local date as YYYY-MM-DD."""
    return date.today().isoformat()


def add_marker_to_text(content: str, key: str) -> Optional[str]:
    """
    Insert ``key: true`` into a document's frontmatter textually.

    Used when structured frontmatter mutation fails (for example because the
    existing YAML does not parse).

    Args:
        content: Full document text
        key: Marker key, possibly dotted

    Returns:
        The patched text, or None when the marker is already present
    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return f"---\n{key}: true\n---\n\n{content}"

    frontmatter_text = match.group(1)
    if re.search(r'^' + re.escape(key) + r':', frontmatter_text, re.MULTILINE):
        return None

    lines = frontmatter_text.split('\n')
    lines.append(f"{key}: true")
    updated = '\n'.join(lines)
    return f"---\n{updated}\n---" + content[match.end() - (1 if match.group(0).endswith('\n') else 0):]
