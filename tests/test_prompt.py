"""Tests for tool permission resolution and prompt assembly."""

from pathlib import Path

import pytest

from gitlab_agent.config import ActionConfig
from gitlab_agent.errors import PromptWriteError
from gitlab_agent.prompt.builder import (
    BASE_ALLOWED_TOOLS,
    PROMPT_FILENAME,
    build_allowed_tools,
    build_disallowed_tools,
    create_prompt,
    generate_prompt,
    get_event_type_and_context,
)
from gitlab_agent.tools.gitlab import User
from gitlab_agent.triggers.models import TriggerType

from factories import make_issue_context, make_mr_context


# ── Tool permissions ─────────────────────────────────────────────────────────


class TestAllowedTools:
    def test_base_list(self):
        assert build_allowed_tools() == ",".join(BASE_ALLOWED_TOOLS)
        assert "mcp__gitlab_file_ops__update_claude_comment" in build_allowed_tools()

    def test_custom_tools_are_appended(self):
        result = build_allowed_tools(["Bash(npm test)", "WebFetch"])
        assert result.endswith(",Bash(npm test),WebFetch")
        assert result.startswith("Edit,MultiEdit,Glob")


class TestDisallowedTools:
    def test_base_list(self):
        assert build_disallowed_tools() == "WebSearch,WebFetch"

    def test_explicit_allow_wins_over_base_deny(self):
        assert build_disallowed_tools(None, ["WebFetch"]) == "WebSearch"

    def test_custom_deny_is_appended_after_filtering(self):
        result = build_disallowed_tools(["Bash"], ["WebSearch"])
        assert result == "WebFetch,Bash"

    def test_everything_allowed(self):
        assert build_disallowed_tools([], ["WebSearch", "WebFetch"]) == ""

    def test_only_custom_when_base_is_emptied(self):
        assert build_disallowed_tools(["Bash"], ["WebSearch", "WebFetch"]) == "Bash"


# ── Event labelling ──────────────────────────────────────────────────────────


class TestEventType:
    @pytest.mark.parametrize(
        "trigger_type, expected_type, expected_context",
        [
            (TriggerType.COMMENT, "ISSUE_COMMENT", "issue comment with '@claude'"),
            (TriggerType.ASSIGNEE, "ISSUE_ASSIGNED", "issue assigned to 'claude-helper'"),
            (TriggerType.LABEL, "ISSUE_LABELED", "issue labeled with 'claude'"),
            (TriggerType.DIRECT, "DIRECT_TRIGGER", "direct programmatic trigger"),
            (None, "UNKNOWN", "unknown trigger type"),
        ],
    )
    def test_issue_labels(self, trigger_type, expected_type, expected_context):
        config = ActionConfig(assignee_trigger="claude-helper")
        context = make_issue_context(trigger_type=trigger_type)
        assert get_event_type_and_context(context, config) == (expected_type, expected_context)

    @pytest.mark.parametrize(
        "trigger_type, expected_type, expected_context",
        [
            (TriggerType.COMMENT, "MR_COMMENT", "merge request comment with '@claude'"),
            (TriggerType.ASSIGNEE, "MR_ASSIGNED", "merge request assigned to 'claude-helper'"),
            (TriggerType.LABEL, "MR_LABELED", "merge request labeled with 'claude'"),
            (TriggerType.DIRECT, "DIRECT_TRIGGER", "direct programmatic trigger"),
        ],
    )
    def test_merge_request_labels(self, trigger_type, expected_type, expected_context):
        config = ActionConfig(assignee_trigger="claude-helper")
        context = make_mr_context(trigger_type=trigger_type)
        assert get_event_type_and_context(context, config) == (expected_type, expected_context)


# ── Prompt body ──────────────────────────────────────────────────────────────


class TestGeneratePrompt:
    def test_issue_prompt_substitutions(self, config):
        context = make_issue_context(comment_body="@claude fix [this](docs/a.md)")
        prompt = generate_prompt(context, config, "987", "claude/issue-12")

        assert "<event_type>ISSUE_COMMENT</event_type>" in prompt
        assert "<is_mr>false</is_mr>" in prompt
        assert "<issue_number>12</issue_number>" in prompt
        assert "<mr_number>" not in prompt
        assert "<project>acme/widgets</project>" in prompt
        assert "<claude_comment_id>987</claude_comment_id>" in prompt
        assert "<trigger_username>alice</trigger_username>" in prompt
        assert "<trigger_display_name>Alice Doe</trigger_display_name>" in prompt
        assert "<trigger_phrase>@claude</trigger_phrase>" in prompt
        assert "<trigger_comment>\n@claude fix [this]\n</trigger_comment>" in prompt
        assert "## Issue #12: Broken build" in prompt

    def test_issue_branch_guidance(self, config):
        prompt = generate_prompt(make_issue_context(), config, "1", "claude/issue-12")

        assert "You are already on the correct branch (claude/issue-12)" in prompt
        assert (
            "https://gitlab.example.com/acme/widgets/-/merge_requests/new"
            "?merge_request[source_branch]=claude%2Fissue-12"
            "&merge_request[target_branch]=main"
        ) in prompt
        assert "Reference to the original issue" in prompt
        assert "Co-authored-by: Alice Doe <alice@users.noreply.gitlab.example.com>" in prompt

    def test_merge_request_without_branch_pushes_to_existing(self, config):
        prompt = generate_prompt(make_mr_context(), config, "1")

        assert "<mr_number>3</mr_number>" in prompt
        assert "<is_mr>true</is_mr>" in prompt
        assert "Push directly using mcp__gitlab_file_ops__commit_files to the existing branch" in prompt
        assert "Always push to the existing branch when triggered on a MR." in prompt
        assert "Create a MR" not in prompt
        assert "MR CRITICAL" in prompt

    def test_display_name_falls_back_to_username(self, config):
        context = make_issue_context(user=User(username="bob"))
        prompt = generate_prompt(context, config, "1")
        assert "<trigger_display_name>bob</trigger_display_name>" in prompt

    def test_unknown_user(self, config):
        context = make_issue_context(user=None)
        prompt = generate_prompt(context, config, "1")
        assert "<trigger_username>Unknown</trigger_username>" in prompt
        assert "<trigger_display_name>Unknown</trigger_display_name>" in prompt

    def test_without_trigger_comment(self, config):
        prompt = generate_prompt(make_issue_context(), config, "1")
        assert "<trigger_comment>" not in prompt
        assert "the comment/issue that contains '@claude'" in prompt

    def test_direct_prompt_block(self, config):
        context = make_issue_context(trigger_type=TriggerType.DIRECT, prompt="Summarize the issue")
        prompt = generate_prompt(context, config, "1")
        assert "<direct_prompt>\nSummarize the issue\n</direct_prompt>" in prompt
        assert "Your instructions are in the <direct_prompt> tag above." in prompt

    def test_custom_instructions_are_appended(self):
        config = ActionConfig(custom_instructions="Always write tests.")
        prompt = generate_prompt(make_issue_context(), config, "1")
        assert prompt.endswith("\n\nCUSTOM INSTRUCTIONS:\nAlways write tests.")

    def test_template_is_deterministic(self, config):
        context = make_issue_context()
        assert generate_prompt(context, config, "1", "b") == generate_prompt(context, config, "1", "b")


class TestCreatePrompt:
    def test_writes_prompt_file(self, config, tmp_path):
        config = ActionConfig(allowed_tools=["WebFetch"], disallowed_tools=["Bash"])
        result = create_prompt(make_issue_context(), config, "55", "claude/issue-12", prompt_dir=str(tmp_path / "prompts"))

        path = Path(result.prompt_file)
        assert path == tmp_path / "prompts" / PROMPT_FILENAME
        assert path.read_text(encoding="utf-8") == result.prompt
        assert result.event_type == "ISSUE_COMMENT"
        assert result.allowed_tools.endswith(",WebFetch")
        assert result.disallowed_tools == "WebSearch,Bash"

    def test_prompt_dir_from_environment(self, config, tmp_path, monkeypatch):
        monkeypatch.setenv("PROMPT_DIR", str(tmp_path))
        result = create_prompt(make_issue_context(), config, "55")
        assert result.prompt_file == str(tmp_path / PROMPT_FILENAME)

    def test_write_failure_is_fatal(self, config, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")

        with pytest.raises(PromptWriteError):
            create_prompt(make_issue_context(), config, "55", prompt_dir=str(blocker))
