"""Tests for prompt construction."""

from task_extractor.config import FrontmatterField
from task_extractor.prompt_manager import DEFAULT_EXTRACTION_PROMPT, PromptManager


class TestBasePrompt:
    """Test template selection and owner substitution."""

    def test_default_prompt_substitutes_owner(self, make_config):
        prompt = PromptManager(make_config(owner_name="Alex Doe")).base_prompt()
        assert "{ownerName}" not in prompt
        assert prompt.count("Alex Doe") == DEFAULT_EXTRACTION_PROMPT.count("{ownerName}")

    def test_custom_prompt_overrides_default(self, make_config):
        config = make_config(custom_prompt="Find tasks for {ownerName} only.")
        assert PromptManager(config).base_prompt() == "Find tasks for Alex Doe only."

    def test_substitution_is_literal(self, make_config):
        config = make_config(owner_name="R&D $1 \\g<0>", custom_prompt="Owner: {ownerName}")
        assert PromptManager(config).base_prompt() == "Owner: R&D $1 \\g<0>"

    def test_owner_containing_placeholder_is_not_reexpanded(self, make_config):
        config = make_config(owner_name="{ownerName}", custom_prompt="{ownerName} and {ownerName}")
        assert PromptManager(config).base_prompt() == "{ownerName} and {ownerName}"


class TestFieldDescriptions:
    """Test the per-field key list given to the LLM."""

    def test_default_schema(self, config):
        lines = PromptManager(config).field_descriptions()
        keys = [line.split('"')[1] for line in lines]

        assert keys[:2] == ['task_title', 'task_details']
        assert 'priority' in keys
        assert 'status' in keys
        # Date-template fields are filled at note creation, not by the LLM
        assert 'created' not in keys
        assert keys.count('task_title') == 1

    def test_priority_options_restricted_to_accepted_values(self, config):
        lines = PromptManager(config).field_descriptions()
        [priority] = [line for line in lines if line.startswith('"priority"')]
        assert 'high|medium|low' in priority or 'low|medium|high' in priority
        assert 'urgent' not in priority

    def test_optional_fields_are_omitted(self, make_config):
        config = make_config(frontmatter_fields=[
            FrontmatterField('task', required=True),
            FrontmatterField('client', required=False),
            FrontmatterField('due', type='date', required=True),
            FrontmatterField('contexts'),
        ])
        keys = [line.split('"')[1] for line in PromptManager(config).field_descriptions()]
        assert keys == ['task_title', 'task_details', 'due_date', 'contexts']


class TestBuildExtractionPrompt:
    """Test the full system/user prompt pair."""

    def test_user_prompt_wraps_document(self, config):
        content = "Line one\n" * 5000
        prompt = PromptManager(config).build_extraction_prompt("Meetings/standup.md", content)

        assert prompt['user'] == f"SOURCE_PATH: Meetings/standup.md\n---BEGIN NOTE---\n{content}\n---END NOTE---"

    def test_system_prompt_contains_format(self, config):
        system = PromptManager(config).build_extraction_prompt("a.md", "x")['system']

        assert system.startswith(PromptManager(config).base_prompt())
        assert '"found": true' in system
        assert '"task_title": "short (6-100 chars) actionable title"' in system
        assert '"source_excerpt"' in system
        assert '{"found": false, "tasks": []}' in system
