"""Configuration management for the task extractor."""

import logging
import os
import re
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

# Default configuration constants
DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_LMSTUDIO_URL = "http://localhost:1234"
DEFAULT_ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_TASKS_FOLDER = "Tasks"
DEFAULT_PROCESSED_KEY = "taskExtractor.processed"
DEFAULT_TRIGGER_FIELD = "Type"
DEFAULT_OWNER_NAME = ""
DEFAULT_TRIGGER_TYPES = ["email", "meetingnote", "meeting note", "meeting notes"]
DEFAULT_MAX_TOKENS = 800
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_RETRIES = 3

SUPPORTED_PROVIDERS = ("openai", "anthropic", "ollama", "lmstudio")
LOCAL_PROVIDERS = ("ollama", "lmstudio")
CLOUD_PROVIDERS = ("openai", "anthropic")
FIELD_TYPES = ("text", "date", "select", "boolean")

PROCESSED_KEY_PART_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_-]*$')
FRONTMATTER_FIELD_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_.-]*$')

# (min, max) bounds applied when loading settings
NUMERIC_BOUNDS = {
    'local_model_refresh_interval': (1, 60),
    'max_tokens': (100, 2000),
    'temperature': (0.0, 1.0),
    'timeout': (10, 120),
    'retries': (1, 5),
    'debug_max_entries': (100, 10000),
}


logger = logging.getLogger(__name__)


@dataclass
class FrontmatterField:
    """One key of the frontmatter block written into each task note."""
    key: str
    default_value: str = ""
    type: str = "text"
    required: bool = False
    options: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["FrontmatterField"]:
        """Build a field from settings data, or None if the entry is invalid."""
        if not isinstance(data, dict):
            return None
        key = data.get('key')
        default_value = data.get('default_value', data.get('defaultValue', ''))
        field_type = data.get('type', 'text')
        required = data.get('required', False)
        if not isinstance(key, str) or not key.strip():
            return None
        if not isinstance(default_value, str):
            return None
        if field_type not in FIELD_TYPES or not isinstance(required, bool):
            return None
        options = data.get('options')
        if options is not None and not isinstance(options, list):
            options = None
        return cls(key=key.strip(), default_value=default_value, type=field_type,
                   required=required, options=options)


def default_frontmatter_fields() -> List[FrontmatterField]:
    return [
        FrontmatterField('task', '', 'text', True),
        FrontmatterField('status', 'inbox', 'select', True,
                         ['inbox', 'next', 'waiting', 'someday', 'done', 'cancelled']),
        FrontmatterField('priority', 'medium', 'select', True, ['low', 'medium', 'high', 'urgent']),
        FrontmatterField('due', '', 'date', False),
        FrontmatterField('project', '', 'text', False),
        FrontmatterField('client', '', 'text', False),
        FrontmatterField('created', '{{date}}', 'date', True),
        FrontmatterField('tags', 'task', 'text', False),
    ]


def validate_frontmatter_field(field_name: Any) -> str:
    """
    Validate a trigger frontmatter field name.

    Args:
        field_name: Configured field name

    Returns:
        The trimmed field name, or "Type" when it is not a usable YAML key
    """
    if not isinstance(field_name, str) or not field_name.strip():
        logger.warning(f"Empty frontmatter field name, falling back to \"{DEFAULT_TRIGGER_FIELD}\"")
        return DEFAULT_TRIGGER_FIELD

    trimmed = field_name.strip()
    if not FRONTMATTER_FIELD_PATTERN.match(trimmed):
        logger.warning(f"Invalid frontmatter field name \"{trimmed}\", falling back to \"{DEFAULT_TRIGGER_FIELD}\"")
        return DEFAULT_TRIGGER_FIELD

    if '..' in trimmed or trimmed.startswith('.') or trimmed.endswith('.'):
        logger.warning(f"Problematic frontmatter field name \"{trimmed}\", falling back to \"{DEFAULT_TRIGGER_FIELD}\"")
        return DEFAULT_TRIGGER_FIELD

    return trimmed


def _is_valid_processed_key(key: str) -> bool:
    parts = key.split('.')
    return all(part and PROCESSED_KEY_PART_PATTERN.match(part) for part in parts)


def _clamp(value: Any, bounds: tuple, fallback: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return fallback
    low, high = bounds
    return type(fallback)(max(low, min(high, value)))


@dataclass
class Config:
    """Application configuration."""

    # Provider settings
    provider: str = DEFAULT_PROVIDER
    api_key: str = ""
    model: str = DEFAULT_MODEL
    ollama_url: str = DEFAULT_OLLAMA_URL
    lmstudio_url: str = DEFAULT_LMSTUDIO_URL
    anthropic_url: str = DEFAULT_ANTHROPIC_URL
    local_model_refresh_interval: int = 5  # minutes

    # Processing settings
    vault_path: str = ""
    tasks_folder: str = DEFAULT_TASKS_FOLDER
    link_back: bool = True
    processed_frontmatter_key: str = DEFAULT_PROCESSED_KEY
    owner_name: str = DEFAULT_OWNER_NAME
    process_on_update: bool = False
    trigger_types: List[str] = field(default_factory=lambda: list(DEFAULT_TRIGGER_TYPES))
    trigger_frontmatter_field: str = DEFAULT_TRIGGER_FIELD

    # Exclusion settings
    excluded_paths: List[str] = field(default_factory=list)
    excluded_patterns: List[str] = field(default_factory=list)

    # Task note schema
    frontmatter_fields: List[FrontmatterField] = field(default_factory=default_frontmatter_fields)
    custom_prompt: str = ""
    default_task_type: str = "Task"

    # Advanced settings
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = 0.0
    timeout: int = DEFAULT_TIMEOUT_SECONDS
    retries: int = DEFAULT_RETRIES
    retry_delay_seconds: float = 1.0

    # Processing state machine timings
    debounce_seconds: float = 2.0
    processing_timeout_seconds: float = 30.0
    cancel_on_timeout: bool = True
    scan_batch_size: int = 5
    scan_batch_pause_seconds: float = 0.1
    service_cache_ttl_seconds: float = 30 * 60

    # Debug settings
    debug_mode: bool = False
    debug_max_entries: int = 1000

    def __post_init__(self):
        """Sanitize values so every setting is within its accepted range."""
        if self.provider not in SUPPORTED_PROVIDERS:
            logger.warning(f"Unsupported provider '{self.provider}', using {DEFAULT_PROVIDER}")
            self.provider = DEFAULT_PROVIDER

        self.tasks_folder = (self.tasks_folder or '').strip() or DEFAULT_TASKS_FOLDER
        self.owner_name = (self.owner_name or '').strip()
        self.default_task_type = (self.default_task_type or '').strip() or "Task"

        key = (self.processed_frontmatter_key or '').strip()
        if not _is_valid_processed_key(key):
            logger.warning(f"Invalid processed frontmatter key '{key}', using {DEFAULT_PROCESSED_KEY}")
            key = DEFAULT_PROCESSED_KEY
        self.processed_frontmatter_key = key

        self.trigger_frontmatter_field = validate_frontmatter_field(self.trigger_frontmatter_field)

        if isinstance(self.trigger_types, list):
            self.trigger_types = [t.strip() for t in self.trigger_types
                                  if isinstance(t, str) and t.strip()]

        fields = []
        for entry in self.frontmatter_fields or []:
            if isinstance(entry, dict):
                entry = FrontmatterField.from_dict(entry)
            if isinstance(entry, FrontmatterField):
                fields.append(entry)
        self.frontmatter_fields = fields or default_frontmatter_fields()

        self.excluded_paths = [p.strip() for p in self.excluded_paths
                               if isinstance(p, str) and 0 < len(p.strip()) < 500]
        self.excluded_patterns = [p.strip() for p in self.excluded_patterns
                                  if isinstance(p, str) and 0 < len(p.strip()) < 500
                                  and not re.search(r'[<>:"|?]', p)]

        defaults = Config.__dataclass_fields__
        for name, bounds in NUMERIC_BOUNDS.items():
            setattr(self, name, _clamp(getattr(self, name), bounds, defaults[name].default))

    @property
    def is_local_provider(self) -> bool:
        return self.provider in LOCAL_PROVIDERS

    @classmethod
    def from_sources(cls, settings_path: Optional[str] = None) -> "Config":
        """
        Build configuration from environment variables and a YAML settings file.

        Args:
            settings_path: Path to a settings YAML file. Defaults to the
                TASK_EXTRACTOR_SETTINGS environment variable, then
                config/settings.yaml in the working directory.

        Returns:
            Config: Validated configuration
        """
        values: Dict[str, Any] = {}

        path = settings_path or os.environ.get('TASK_EXTRACTOR_SETTINGS') or 'config/settings.yaml'
        config_path = Path(path)
        if config_path.exists():
            with open(config_path, 'r') as f:
                settings = yaml.safe_load(f) or {}
            values.update(cls._load_settings(settings))
            logger.info(f"Loaded settings from {config_path}")
        elif settings_path:
            raise ValueError(f"Settings file does not exist: {settings_path}")

        vault_path = os.environ.get('OBSIDIAN_VAULT_PATH', '')
        if vault_path:
            values['vault_path'] = vault_path

        provider = values.get('provider', DEFAULT_PROVIDER)
        api_key = os.environ.get('TASK_EXTRACTOR_API_KEY', '')
        if not api_key and provider == 'openai':
            api_key = os.environ.get('OPENAI_API_KEY', '')
        if not api_key and provider == 'anthropic':
            api_key = os.environ.get('ANTHROPIC_API_KEY', '')
        if api_key:
            values['api_key'] = api_key

        return cls(**values)

    @staticmethod
    def _load_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten the sectioned YAML settings into Config keyword arguments."""
        known = set(Config.__dataclass_fields__)
        values: Dict[str, Any] = {}

        for section in ('llm', 'processing', 'frontmatter', 'advanced', 'debug'):
            section_values = settings.get(section) or {}
            if not isinstance(section_values, dict):
                logger.warning(f"Ignoring settings section '{section}': expected a mapping")
                continue
            for key, value in section_values.items():
                if section == 'frontmatter' and key == 'fields':
                    values['frontmatter_fields'] = value
                elif key in known:
                    values[key] = value
                else:
                    logger.warning(f"Ignoring unknown setting {section}.{key}")

        return values
