from __future__ import annotations

import asyncio
from typing import Optional

import pytest
from fastapi import FastAPI, Header
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.api import deps
from app.api.router import api_router
from app.core.db import create_tables
from app.models.github_installation import ContainerType
from app.schemas.github import NewGitHubInstallation
from app.services.github.github_app_client_inmemory import InMemoryGitHubAppClient
from app.services.github.github_integration_service import GitHubIntegrationService
from app.services.github.installation_store import GitHubInstallationStore
from app.services.integration_store import SQLAlchemyIntegrationStore
from app.services.integrations import build_integrations_manager


def _tenant_url(tmp_path, slug: str) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / slug}.db"


async def _prepare(url: str, installation: Optional[NewGitHubInstallation]) -> None:
    engine = create_async_engine(url, poolclass=NullPool)
    try:
        await create_tables(engine)
        if installation is not None:
            store = GitHubInstallationStore(async_sessionmaker(bind=engine, expire_on_commit=False))
            await store.create_installation(installation)
    finally:
        await engine.dispose()


@pytest.fixture
def github_client() -> InMemoryGitHubAppClient:
    client = InMemoryGitHubAppClient()
    client.add_installation(1, "acme", repos=["acme/api", "acme/web"])
    return client


@pytest.fixture
def api(tmp_path, github_client: InMemoryGitHubAppClient):
    """Two tenant databases sharing one App; only ``acme`` onboarded installation 1."""
    urls = {"acme": _tenant_url(tmp_path, "acme"), "globex": _tenant_url(tmp_path, "globex")}
    asyncio.run(
        _prepare(
            urls["acme"],
            NewGitHubInstallation(
                name="acme", container_type=ContainerType.ORG, installation_id=1, repos=["acme/api", "acme/web"]
            ),
        )
    )
    asyncio.run(_prepare(urls["globex"], None))

    engines = {slug: create_async_engine(url, poolclass=NullPool) for slug, url in urls.items()}

    async def tenant_service(x_tenant_id: Optional[str] = Header(default=None)) -> GitHubIntegrationService:
        session_factory = async_sessionmaker(bind=engines[x_tenant_id or "acme"], expire_on_commit=False)
        installation_store = GitHubInstallationStore(session_factory)
        manager = build_integrations_manager(
            SQLAlchemyIntegrationStore(session_factory), github_client.app, github_client, installation_store
        )
        return GitHubIntegrationService(manager, installation_store, github_client.app, github_client)

    app = FastAPI()
    app.include_router(api_router, prefix="/api")
    app.dependency_overrides[deps.get_github_service] = tenant_service

    with TestClient(app) as client:
        yield client


def test_sync_endpoint_reports_counts(api: TestClient) -> None:
    response = api.post("/api/github/installations/sync", headers={"X-Tenant-ID": "acme"})

    assert response.status_code == 200
    assert response.json() == {
        "message": "GitHub installations synced",
        "synced_installations": 1,
        "deleted_integrations": 0,
        "healed_count": 0,
    }


def test_enable_repository_created_then_existing(api: TestClient) -> None:
    created = api.post("/api/github/repos/acme/api", json={"branch": "develop"})
    again = api.post("/api/github/repos/acme/api")

    assert created.status_code == 201
    assert created.json()["metadata"]["branch"] == "develop"
    assert created.json()["status"] == "active"
    assert again.status_code == 200
    assert again.json()["id"] == created.json()["id"]


def test_enable_repository_for_other_tenants_installation_is_forbidden(api: TestClient) -> None:
    response = api.post("/api/github/repos/acme/api", headers={"X-Tenant-ID": "globex"})
    listed = api.get("/api/integrations", headers={"X-Tenant-ID": "globex"})

    assert response.status_code == 403
    assert response.json()["detail"] == "This GitHub installation is not connected to your organization"
    assert listed.json()["total"] == 0


def test_enable_unknown_repository_returns_404(api: TestClient) -> None:
    response = api.post("/api/github/repos/acme/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "Repository not found in any GitHub App installation"


def test_installation_callback_redirects(api: TestClient, github_client: InMemoryGitHubAppClient) -> None:
    github_client.add_installation(2, "octocat", account_type="User", repos=["octocat/dotfiles"])

    cancelled = api.get(
        "/api/github/installation/callback",
        params={"installation_id": 2, "setup_action": "request"},
        follow_redirects=False,
    )
    installed = api.get(
        "/api/github/installation/callback",
        params={"installation_id": 2, "setup_action": "install"},
        headers={"X-Tenant-ID": "globex"},
        follow_redirects=False,
    )
    overview = api.get("/api/github/installations", headers={"X-Tenant-ID": "globex"})

    assert cancelled.status_code == 307
    assert cancelled.headers["location"].endswith("/integrations/github?error=setup_cancelled")
    assert installed.status_code == 307
    assert installed.headers["location"].endswith("/integrations/github/user/octocat?new_installation=true")
    assert [o["name"] for o in overview.json()] == ["octocat"]


def test_summary_and_disable_repository(api: TestClient) -> None:
    api.post("/api/github/repos/acme/web")

    summary = api.get("/api/github/summary")
    disabled = api.delete("/api/github/repos/acme/web")
    missing = api.delete("/api/github/repos/acme/web")

    assert summary.json() == {
        "app_configured": True,
        "org_count": 1,
        "user_count": 0,
        "total_repos": 2,
        "enabled_repos": 1,
        "needs_attention": 0,
    }
    assert disabled.status_code == 200
    assert disabled.json()["name"] == "acme/web"
    assert missing.status_code == 404


def test_integration_crud_goes_through_orchestrator(api: TestClient) -> None:
    rejected = api.post("/api/integrations", json={"type": "github", "name": "bad", "metadata": {"repo": "bad"}})
    created = api.post("/api/integrations", json={"type": "static_file", "name": "docs"})
    integration_id = created.json()["id"]
    patched = api.patch(f"/api/integrations/{integration_id}", json={"name": "handbook"})
    checked = api.post(f"/api/integrations/{integration_id}/access-check")
    deleted = api.delete(f"/api/integrations/{integration_id}")
    gone = api.get(f"/api/integrations/{integration_id}")

    assert rejected.status_code == 403
    assert created.status_code == 201
    assert created.json()["metadata"] == {"file_count": 0}
    assert patched.json()["name"] == "handbook"
    assert checked.json()["result"]["has_access"] is True
    assert deleted.status_code == 200
    assert gone.status_code == 404


def test_create_integration_for_other_tenants_installation_is_forbidden(api: TestClient) -> None:
    payload = {"type": "github", "name": "acme/api", "metadata": {"repo": "acme/api", "installation_id": 1}}

    foreign = api.post("/api/integrations", json=payload, headers={"X-Tenant-ID": "globex"})
    owned = api.post("/api/integrations", json=payload, headers={"X-Tenant-ID": "acme"})

    assert foreign.status_code == 403
    assert api.get("/api/integrations", headers={"X-Tenant-ID": "globex"}).json()["total"] == 0
    assert owned.status_code == 201
    assert owned.json()["status"] == "active"
