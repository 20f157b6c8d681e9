"""Tests for the GitLab REST client using httpx.MockTransport."""

import json

import httpx
import pytest

from gitlab_agent.config import GitLabSettings
from gitlab_agent.errors import ConfigError, GitLabAPIError
from gitlab_agent.tools.gitlab import GitLabClient

from factories import project_block


def _client(settings, handler):
    return GitLabClient(settings, transport=httpx.MockTransport(handler))


class TestGitLabClient:
    def test_requires_url_and_token(self):
        with pytest.raises(ConfigError, match="GITLAB_URL and GITLAB_TOKEN must be set"):
            GitLabClient(GitLabSettings())

    @pytest.mark.asyncio
    async def test_get_project_sends_bearer_token(self, settings):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=project_block())

        project = await _client(settings, handler).get_project(42)

        assert project.path_with_namespace == "acme/widgets"
        assert seen["url"] == "https://gitlab.example.com/api/v4/projects/42"
        assert seen["auth"] == "Bearer glpat-test"

    @pytest.mark.asyncio
    async def test_notes_are_requested_in_ascending_order(self, settings):
        def handler(request):
            assert request.url.path == "/api/v4/projects/42/issues/12/notes"
            assert request.url.params["sort"] == "asc"
            assert request.url.params["order_by"] == "created_at"
            return httpx.Response(200, json=[
                {"id": 1, "body": "first", "system": False},
                {"id": 2, "body": "second", "system": True},
            ])

        notes = await _client(settings, handler).get_issue_notes(42, 12)
        assert [n.id for n in notes] == [1, 2]
        assert notes[1].system is True

    @pytest.mark.asyncio
    async def test_get_file_encodes_path(self, settings):
        def handler(request):
            assert request.url.raw_path.startswith(
                b"/api/v4/projects/42/repository/files/src%2Fapp%2Fmain.py"
            )
            assert request.url.params["ref"] == "feature/x"
            return httpx.Response(200, json={"file_path": "src/app/main.py", "content": "cGFzcw=="})

        file = await _client(settings, handler).get_file(42, "src/app/main.py", "feature/x")
        assert file.content == "cGFzcw=="

    @pytest.mark.asyncio
    async def test_create_commit_payload(self, settings):
        def handler(request):
            assert request.method == "POST"
            body = json.loads(request.content)
            assert body["branch"] == "claude/issue-12"
            assert body["commit_message"] == "fix: thing"
            assert body["actions"][0]["action"] == "create"
            return httpx.Response(201, json={"id": "a" * 40, "short_id": "aaaaaaa", "title": "fix: thing"})

        commit = await _client(settings, handler).create_commit(
            42, "claude/issue-12", "fix: thing",
            [{"action": "create", "file_path": "a.py", "content": "cGFzcw==", "encoding": "base64"}],
        )
        assert commit.short_id == "aaaaaaa"

    @pytest.mark.asyncio
    async def test_create_merge_request_note(self, settings):
        def handler(request):
            assert request.url.path == "/api/v4/projects/42/merge_requests/3/notes"
            assert json.loads(request.content) == {"body": "hello"}
            return httpx.Response(201, json={"id": 77, "body": "hello"})

        note = await _client(settings, handler).create_merge_request_note(42, 3, "hello")
        assert note.id == 77

    @pytest.mark.asyncio
    async def test_get_current_user(self, settings):
        def handler(request):
            assert request.method == "GET"
            assert request.url.path == "/api/v4/user"
            return httpx.Response(200, json={"id": 99, "username": "claude-helper", "name": "Claude"})

        user = await _client(settings, handler).get_current_user()
        assert user.id == 99
        assert user.username == "claude-helper"

    @pytest.mark.asyncio
    async def test_delete_branch_with_empty_body(self, settings):
        def handler(request):
            assert request.method == "DELETE"
            assert request.url.raw_path.endswith(b"/branches/claude%2Fissue-12")
            return httpx.Response(204)

        assert await _client(settings, handler).delete_branch(42, "claude/issue-12") is None

    @pytest.mark.asyncio
    async def test_error_carries_status_and_body(self, settings):
        def handler(request):
            return httpx.Response(404, text='{"message":"404 Project Not Found"}')

        with pytest.raises(GitLabAPIError) as exc:
            await _client(settings, handler).get_project(999)

        assert exc.value.status_code == 404
        assert "404 Project Not Found" in exc.value.body
        assert str(exc.value).startswith("GitLab API error: 404")
