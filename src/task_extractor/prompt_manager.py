"""Prompt construction for task extraction."""

import logging
from typing import Any, Dict, List

from .config import FrontmatterField
from .models import PRIORITY_LEVELS


logger = logging.getLogger(__name__)

OWNER_PLACEHOLDER = "{ownerName}"
NOTE_BEGIN_MARKER = "---BEGIN NOTE---"
NOTE_END_MARKER = "---END NOTE---"

DEFAULT_EXTRACTION_PROMPT = """You are an expert task extraction specialist. You read notes, emails and meeting records and extract only legitimate, actionable tasks with accurate metadata.

## ANALYSIS
- Identify the document type (meeting notes, email, project notes, etc.)
- Locate mentions of the target person: {ownerName}
- Note project or client references and any explicit dates or deadlines

## WHAT COUNTS AS A TASK
- Contains a specific action verb (schedule, create, review, send, complete, ...)
- Has a clear outcome or deliverable
- Is explicitly assigned to or requested from {ownerName}
- Is realistic and concrete, not an aspiration or a loose idea

DO NOT extract completed actions, past events, brainstorming, informational
updates, or tasks assigned to other people (unless {ownerName} is collaborating).

## FIELD RULES
- task_title: concise, action-oriented (6-100 chars)
- task_details: 1-3 sentences of context (max 300 chars)
- due_date: YYYY-MM-DD only when explicitly stated, otherwise null
- priority: high (explicit urgency or deadline), medium (standard request), low (optional)
- source_excerpt: exact quote from the note (max 150 chars) that justifies the task
- confidence: high (explicit assignment), medium (clearly implied), low (ambiguous)

NEVER guess. Use null for anything uncertain. Accuracy matters more than
completeness: when in doubt, do not extract. Return valid JSON only."""

NO_TASKS_RESPONSE = '{"found": false, "tasks": []}'


def describe_field(field: FrontmatterField) -> tuple:
    """Return (llm_key, description) for one output field."""
    key = field.key
    if key in ('task', 'task_title'):
        return 'task_title', 'short (6-100 chars) actionable title'
    if key in ('details', 'task_details'):
        return 'task_details', '1-3 sentences describing what to do and any context'
    if key in ('due', 'due_date'):
        return 'due_date', 'ISO date YYYY-MM-DD if explicitly present in the text, otherwise null'
    if key == 'priority':
        options = [o for o in (field.options or []) if o in PRIORITY_LEVELS] or list(PRIORITY_LEVELS)
        return 'priority', f"{'|'.join(options)} (choose best match)"
    if key == 'project':
        return 'project', 'project name if mentioned, otherwise null'
    if key == 'client':
        return 'client', 'client name if mentioned, otherwise null'
    if key == 'contexts':
        return 'contexts', 'Array of contexts (e.g. ["work", "office"]) if evident, otherwise null'
    if key == 'projects':
        return 'projects', 'Array of project names if mentioned, otherwise null'
    return key, field.default_value or 'appropriate value based on context'


class PromptManager:
    """Builds the system/user prompt pair for an extraction call."""

    def __init__(self, config: Any):
        """
        Initialize the prompt manager.

        Args:
            config: Configuration object containing prompt and schema settings
        """
        self.config = config

    def base_prompt(self) -> str:
        """The custom prompt (if configured) or the default, owner substituted.

        The placeholder is replaced as a literal substring with no escaping;
        an owner name that itself contains the placeholder is not re-expanded.
        """
        template = self.config.custom_prompt or DEFAULT_EXTRACTION_PROMPT
        return template.replace(OWNER_PLACEHOLDER, self.config.owner_name)

    def field_descriptions(self) -> List[str]:
        """One ``"key": "description"`` line per field the LLM should emit."""
        described: Dict[str, str] = {}
        for key, description in (describe_field(FrontmatterField('task_title')),
                                 describe_field(FrontmatterField('task_details'))):
            described[key] = description

        for field in self.config.frontmatter_fields:
            if not (field.required or field.key in ('contexts', 'projects')):
                continue
            if field.default_value == '{{date}}':
                continue
            key, description = describe_field(field)
            described.setdefault(key, description)

        return [f'"{key}": "{description}"' for key, description in described.items()]

    def build_extraction_prompt(self, source_path: str, content: str) -> Dict[str, str]:
        """
        Build the prompt pair for one document.

        Args:
            source_path: Vault path of the document
            content: Full document text (not truncated)

        Returns:
            Dict with 'system' and 'user' prompts
        """
        fields = ',\n      '.join(self.field_descriptions())
        system = f"""{self.base_prompt()}

When tasks are found, return JSON in this format:
{{
  "found": true,
  "tasks": [
    {{
      {fields},
      "source_excerpt": "exact quote from source (max 150 chars)",
      "confidence": "high|medium|low"
    }}
  ],
  "confidence": "high|medium|low"
}}

When no tasks found, return: {NO_TASKS_RESPONSE}"""

        user = f"SOURCE_PATH: {source_path}\n{NOTE_BEGIN_MARKER}\n{content}\n{NOTE_END_MARKER}"

        logger.debug(f"Built prompt for {source_path}: system={len(system)} chars, user={len(user)} chars")
        return {
            'system': system,
            'user': user
        }
