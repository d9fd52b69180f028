"""Tests for the HTTP API"""

import pytest

from app.analyzer.github_client import GitHubClient
from app.analyzer.openrouter import OpenRouterClient
from app.analyzer.orchestrator import AnalysisOrchestrator
from app.analyzer.tasks import AnalysisTaskManager
from app.api import routes

from tests.helpers import BlockingGitHub, FakeGitHub, FakeOpenRouter, commit_detail, commit_item, no_sleep


def sample_github(**kwargs) -> FakeGitHub:
    commits = [
        commit_item("merge", "Merge pull request #3", "2024-05-03T10:00:00Z", 1, "ada"),
        commit_item("typo", "Fix typo", "2024-05-02T10:00:00Z", 2, "bob"),
        commit_item("release", "v1.0.0 release", "2024-05-01T10:00:00Z", 1, "ada"),
    ]
    details = {
        "merge": commit_detail(600, 200, 5),
        "typo": commit_detail(1, 0, 1),
        "release": commit_detail(20, 4, 3),
    }
    return FakeGitHub(commits=commits, details=details, **kwargs)


@pytest.fixture
def manager():
    return AnalysisTaskManager()


@pytest.fixture
def wired(api_app, session_factory, manager):
    """Route dependencies pointed at fake upstreams"""
    fake = sample_github()

    def github():
        return GitHubClient(token="t", base_url="https://api.github.test", transport=fake.transport)

    api_app.dependency_overrides[routes.get_github_client] = github
    api_app.dependency_overrides[routes.get_orchestrator] = lambda: AnalysisOrchestrator(
        session_factory=session_factory,
        github_client=github(),
        generator_factory=lambda model_config: None,
    )
    api_app.dependency_overrides[routes.get_task_manager] = lambda: manager
    return fake


async def register(client) -> dict:
    response = await client.post("/api/repositories", json={"repository": "https://github.com/octo/demo"})
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_liveness(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_register_repository(client, wired):
    repo = await register(client)

    assert repo["full_name"] == "octo/demo"
    assert repo["stars"] == 12

    duplicate = await client.post("/api/repositories", json={"repository": "octo/demo"})
    assert duplicate.status_code == 400

    listed = await client.get("/api/repositories")
    assert [r["full_name"] for r in listed.json()] == ["octo/demo"]


@pytest.mark.asyncio
async def test_register_rejects_bad_input(client, wired):
    response = await client.post("/api/repositories", json={"repository": "not a repo"})
    assert response.status_code == 400

    response = await client.post("/api/repositories", json={"repository": "octo/missing"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_analysis_lifecycle(client, wired, manager):
    repo = await register(client)

    response = await client.post(f"/api/repositories/{repo['id']}/analyze")
    assert response.status_code == 202
    analysis_id = response.json()["analysis_id"]

    await manager.wait(repo["id"])

    analysis = (await client.get(f"/api/analyses/{analysis_id}")).json()
    assert analysis["status"] == "COMPLETED"
    assert analysis["progress"] == 100
    assert analysis["commits_analyzed"] == 3

    commits = (await client.get(f"/api/repositories/{repo['id']}/commits")).json()
    assert [c["sha"] for c in commits] == ["merge", "typo", "release"]

    key = (await client.get(f"/api/repositories/{repo['id']}/commits", params={"key_only": True})).json()
    assert {c["sha"] for c in key} == {"merge", "release"}

    contributors = (await client.get(f"/api/repositories/{repo['id']}/contributors")).json()
    assert [c["login"] for c in contributors] == ["ada", "bob"]
    assert contributors[0]["is_first_contributor"] is True

    health = (await client.get(f"/api/repositories/{repo['id']}/health")).json()
    assert 0 <= health["overall"] <= 100
    assert health["metrics"]["total_commits"] == 3

    history = (await client.get(f"/api/repositories/{repo['id']}/analyses")).json()
    assert [a["id"] for a in history] == [analysis_id]

    stats = (await client.get("/api/stats")).json()
    assert stats == {
        "repositories": 1,
        "analyses_completed": 1,
        "analyses_processing": 0,
        "commits": 3,
        "key_commits": 2,
    }


@pytest.mark.asyncio
async def test_concurrent_analysis_conflicts_and_cancel(client, api_app, wired, manager, session_factory):
    repo = await register(client)
    blocking = BlockingGitHub()
    api_app.dependency_overrides[routes.get_orchestrator] = lambda: AnalysisOrchestrator(
        session_factory=session_factory,
        github_client=blocking,
        generator_factory=lambda model_config: None,
    )

    first = await client.post(f"/api/repositories/{repo['id']}/analyze")
    assert first.status_code == 202
    await blocking.started.wait()

    second = await client.post(f"/api/repositories/{repo['id']}/analyze")
    assert second.status_code == 409

    analysis_id = first.json()["analysis_id"]
    cancelled = await client.post(f"/api/analyses/{analysis_id}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "FAILED"
    assert cancelled.json()["error"] == "Analysis cancelled"

    again = await client.post(f"/api/analyses/{analysis_id}/cancel")
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_unknown_resources_return_404(client, wired):
    assert (await client.get("/api/repositories/99")).status_code == 404
    assert (await client.post("/api/repositories/99/analyze")).status_code == 404
    assert (await client.get("/api/analyses/99")).status_code == 404
    assert (await client.get("/api/repositories/99/health")).status_code == 404
    assert (await client.get("/api/mcp/biography/99")).status_code == 404


@pytest.mark.asyncio
async def test_model_catalog(client):
    everything = (await client.get("/api/models")).json()
    free = (await client.get("/api/models", params={"free_only": True})).json()

    assert len(everything) == 9
    assert all(m["is_free"] for m in free)
    assert len(free) == 7


@pytest.mark.asyncio
async def test_model_configuration_updates(client):
    active = (await client.get("/api/admin/ai-models")).json()
    assert active["primary"] == "deepseek/deepseek-r1:free"
    assert active["version"] is None

    body = {
        "primary": "google/gemma-2-9b-it:free",
        "fallback": "deepseek/deepseek-chat:free",
        "enabled": ["google/gemma-2-9b-it:free", "deepseek/deepseek-chat:free"],
        "expected_version": 0,
        "updated_by": "admin",
    }
    saved = await client.post("/api/admin/ai-models", json=body)
    assert saved.status_code == 200
    assert saved.json()["config"]["version"] == 1

    stale = await client.post("/api/admin/ai-models", json=body)
    assert stale.status_code == 409

    invalid = await client.post("/api/admin/ai-models", json={**body, "primary": "ghost/model", "expected_version": None})
    assert invalid.status_code == 400
    assert "ghost/model" in invalid.json()["detail"]

    assert (await client.get("/api/admin/ai-models")).json()["primary"] == "google/gemma-2-9b-it:free"


@pytest.mark.asyncio
async def test_model_probe(client, api_app):
    fake = FakeOpenRouter({"google/gemma-2-9b-it:free": [500]})

    api_app.dependency_overrides[routes.get_generator_factory] = lambda: (lambda model_config: None)
    unconfigured = await client.post("/api/admin/ai-models/test", json={"model_id": "deepseek/deepseek-r1:free"})
    assert unconfigured.status_code == 503

    api_app.dependency_overrides[routes.get_generator_factory] = lambda: (
        lambda model_config: OpenRouterClient(api_key="k", model_config=model_config, retry_delay=0,
                                              transport=fake.transport, sleep=no_sleep)
    )
    assert (await client.post("/api/admin/ai-models/test", json={"model_id": "ghost"})).status_code == 400

    ok = await client.post("/api/admin/ai-models/test", json={"model_id": "deepseek/deepseek-r1:free"})
    assert ok.json() == {"model_id": "deepseek/deepseek-r1:free", "available": True}

    down = await client.post("/api/admin/ai-models/test", json={"model_id": "google/gemma-2-9b-it:free"})
    assert down.json()["available"] is False


@pytest.mark.asyncio
async def test_mcp_endpoints(client, wired, manager):
    repo = await register(client)
    await client.post(f"/api/repositories/{repo['id']}/analyze")
    await manager.wait(repo["id"])

    bio = (await client.get(f"/api/mcp/biography/{repo['id']}")).json()
    assert bio["total_commits"] == 3

    intel = await client.get("/api/mcp/intel", params={"repository_id": repo["id"], "commit_sha": "typo"})
    assert intel.json()["commit"]["sha"] == "typo"
    assert (await client.get("/api/mcp/intel", params={"repository_id": repo["id"]})).status_code == 400
    assert (await client.get("/api/mcp/intel", params={"repository_id": repo["id"], "commit_sha": "zzz"})).status_code == 404

    diagnosis = await client.post("/api/mcp/diagnose-bug-origin",
                                  json={"repository_id": repo["id"], "bug_description": "typo in docs"})
    assert diagnosis.json()["potential_origin"]["sha"] == "merge"
    blank = await client.post("/api/mcp/diagnose-bug-origin", json={"repository_id": repo["id"], "bug_description": " "})
    assert blank.status_code == 400

    shifts = (await client.get(f"/api/mcp/architectural-shifts/{repo['id']}")).json()
    assert {s["sha"] for s in shifts["shifts"]} == {"merge", "release"}

    guidelines = (await client.get(f"/api/mcp/review-guidelines/{repo['id']}")).json()
    assert guidelines["context"]["common_issues"] == ["Bug fixes common"]
