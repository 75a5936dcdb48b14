"""Shared pytest fixtures for slack bot tests."""

import pytest

from slackbot.api.cluster import MockClusterClient
from slackbot.api.slack import MockSlackClient
from slackbot.config import DispatchConfig


def make_activity_resource(
    name="build-1",
    namespace="ns",
    status="Running",
    stages=(("Build", "Running"),),
    build="1",
    owner="acme",
    repo="app",
    branch="main",
    author="Jane Dev",
    author_email="dev@example.com",
    completed=None,
    resource_version="10",
):
    """Build a PipelineActivity resource dict like the cluster API returns."""
    steps = []
    for i, (stage_name, stage_status) in enumerate(stages):
        stage = {
            "name": stage_name,
            "status": stage_status,
            "startedTimestamp": f"2024-01-01T10:0{i}:00Z",
        }
        if stage_status in ("Succeeded", "Failed", "Aborted"):
            stage["completedTimestamp"] = f"2024-01-01T10:0{i}:45Z"
        steps.append({"kind": "Stage", "stage": stage})

    spec = {
        "pipeline": f"{owner}/{repo}/{branch}",
        "build": build,
        "gitOwner": owner,
        "gitRepository": repo,
        "gitBranch": branch,
        "status": status,
        "startedTimestamp": "2024-01-01T10:00:00Z",
        "steps": steps,
        "lastCommitSHA": "0123456789abcdef",
        "lastCommitMessage": "Fix the flux capacitor\n\nLonger description",
        "author": author,
        "authorEmail": author_email,
    }
    if completed:
        spec["completedTimestamp"] = completed

    return {
        "apiVersion": "jenkins.io/v1",
        "kind": "PipelineActivity",
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": resource_version},
        "spec": spec,
    }


@pytest.fixture
def activity_resource():
    """Factory for PipelineActivity resource dicts."""
    return make_activity_resource


@pytest.fixture
def mock_slack():
    """Create a mock Slack client."""
    return MockSlackClient()


@pytest.fixture
def mock_cluster():
    """Create a mock cluster client."""
    return MockClusterClient()


@pytest.fixture
def fast_dispatch_config():
    """Dispatch settings without real waiting."""
    return DispatchConfig(max_attempts=5, base_delay=0.001, max_delay=0.01, min_interval=0.0)


@pytest.fixture
def sample_jx_users():
    """jx User resources linking git identities to Slack accounts."""
    return [
        {
            "metadata": {"name": "jdev"},
            "spec": {
                "login": "jdev",
                "name": "Jane Dev",
                "email": "jane@corp.example.com",
                "accounts": [
                    {"provider": "github", "login": "jane-gh"},
                    {"provider": "slack", "id": "UJANE"},
                ],
            },
        },
        {
            "metadata": {"name": "nochat"},
            "spec": {"login": "nochat", "name": "No Chat", "email": "nochat@example.com"},
        },
    ]
