"""Builders for webhook payloads, API records and contexts used across tests."""

from gitlab_agent.context.models import Context
from gitlab_agent.tools.gitlab import Issue, MergeRequest, Note, Project, User
from gitlab_agent.triggers.models import ResourceType, TriggerResult, TriggerType

GITLAB_URL = "https://gitlab.example.com"


# ── Webhook payloads ─────────────────────────────────────────────────────────


def project_block(project_id=42):
    return {
        "id": project_id,
        "name": "widgets",
        "path_with_namespace": "acme/widgets",
        "default_branch": "main",
        "web_url": f"{GITLAB_URL}/acme/widgets",
    }


def user_block(username="alice", name="Alice Doe", user_id=7):
    return {"id": user_id, "username": username, "name": name}


def note_payload(body="@claude please help", noteable_type="Issue", system=False, **user):
    payload = {
        "object_kind": "note",
        "event_type": "note",
        "user": user_block(**user),
        "project": project_block(),
        "object_attributes": {
            "id": 1001,
            "note": body,
            "noteable_type": noteable_type,
            "noteable_id": 555,
            "system": system,
            "created_at": "2024-05-01T10:00:00Z",
            "updated_at": "2024-05-01T10:00:00Z",
        },
    }
    if noteable_type == "Issue":
        payload["issue"] = {"id": 555, "iid": 12, "title": "Broken build", "state": "opened"}
    elif noteable_type == "MergeRequest":
        payload["merge_request"] = {"id": 555, "iid": 3, "title": "Add feature", "state": "opened"}
    return payload


def resource_payload(
    kind="issue",
    title="Some title",
    description=None,
    state="opened",
    assignees=(),
    labels=(),
    **user,
):
    attributes = {
        "id": 900,
        "iid": 12 if kind == "issue" else 3,
        "title": title,
        "description": description,
        "state": state,
        "action": "open",
    }
    if kind == "merge_request":
        attributes.update(source_branch="feature/x", target_branch="main")
    return {
        "object_kind": kind,
        "event_type": kind,
        "user": user_block(**user),
        "project": project_block(),
        "object_attributes": attributes,
        "assignees": [user_block(username=a, name=a.title()) for a in assignees],
        "labels": [{"id": i, "title": t, "color": "#ff0000"} for i, t in enumerate(labels)],
    }


def push_payload():
    return {
        "object_kind": "push",
        "event_name": "push",
        "ref": "refs/heads/main",
        "checkout_sha": "abc123",
        "user_id": 7,
        "user_name": "Alice Doe",
        "user_username": "alice",
        "project": project_block(),
    }


# ── API records ──────────────────────────────────────────────────────────────


def make_project():
    return Project.model_validate(project_block())


def make_issue(iid=12, **overrides):
    data = {
        "id": 900,
        "iid": iid,
        "title": "Broken build",
        "description": "The build fails on main.",
        "state": "opened",
        "created_at": "2024-05-01T09:00:00Z",
        "updated_at": "2024-05-01T09:30:00Z",
        "author": user_block(),
        "labels": [],
        "web_url": f"{GITLAB_URL}/acme/widgets/-/issues/{iid}",
        "project_id": 42,
    }
    data.update(overrides)
    return Issue.model_validate(data)


def make_merge_request(iid=3, state="opened", **overrides):
    data = {
        "id": 901,
        "iid": iid,
        "title": "Add feature",
        "description": "Adds the feature.",
        "state": state,
        "created_at": "2024-05-01T09:00:00Z",
        "updated_at": "2024-05-01T09:30:00Z",
        "author": user_block(),
        "web_url": f"{GITLAB_URL}/acme/widgets/-/merge_requests/{iid}",
        "source_branch": "feature/x",
        "target_branch": "main",
        "sha": "deadbeef",
        "merge_status": "can_be_merged",
    }
    data.update(overrides)
    return MergeRequest.model_validate(data)


def make_trigger(
    resource_type=ResourceType.ISSUE,
    resource_id=12,
    trigger_type=TriggerType.COMMENT,
    user=None,
    comment_body=None,
    prompt=None,
):
    comment = None
    if comment_body is not None:
        comment = Note(id=1001, body=comment_body, author=user)
    return TriggerResult(
        should_trigger=True,
        trigger_type=trigger_type,
        resource_type=resource_type,
        resource_id=resource_id,
        project_id=42,
        triggered_by=user,
        trigger_comment=comment,
        prompt=prompt,
    )


def make_issue_context(**trigger_kwargs):
    trigger_kwargs.setdefault("user", User(id=7, username="alice", name="Alice Doe"))
    return Context(
        project=make_project(),
        issue=make_issue(),
        trigger_result=make_trigger(**trigger_kwargs),
    )


def make_mr_context(state="opened", **trigger_kwargs):
    trigger_kwargs.setdefault("user", User(id=7, username="alice", name="Alice Doe"))
    trigger_kwargs.setdefault("resource_type", ResourceType.MERGE_REQUEST)
    trigger_kwargs.setdefault("resource_id", 3)
    return Context(
        project=make_project(),
        merge_request=make_merge_request(state=state),
        trigger_result=make_trigger(**trigger_kwargs),
    )
