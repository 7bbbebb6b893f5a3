from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from app.models.github_installation import ContainerType
from app.models.integration import IntegrationStatus, IntegrationType
from app.schemas.github import NewGitHubInstallation
from app.schemas.integration import IntegrationRead, NewIntegration
from app.services.github.exceptions import (
    InstallationCallbackError,
    InstallationNotConnectedError,
    RepositoryNotInstalledError,
)
from app.services.github.github_app_client_inmemory import InMemoryGitHubAppClient
from app.services.github.github_integration_service import GitHubIntegrationService
from app.services.github.installation_store import GitHubInstallationStore
from app.services.github.integration_sweep import (
    cleanup_orphaned_github_integrations,
    ensure_installation_connected,
    heal_github_integrations,
    is_orphaned_github_integration,
)
from app.services.integration_store import SQLAlchemyIntegrationStore
from app.services.integrations import build_integrations_manager


def _service(session_factory, client: InMemoryGitHubAppClient) -> GitHubIntegrationService:
    installation_store = GitHubInstallationStore(session_factory)
    manager = build_integrations_manager(
        SQLAlchemyIntegrationStore(session_factory), client.app, client, installation_store
    )
    return GitHubIntegrationService(manager, installation_store, client.app, client)


async def _onboard(service: GitHubIntegrationService, name: str, installation_id: int, repos=None):
    return await service.installation_store.create_installation(
        NewGitHubInstallation(
            name=name,
            container_type=ContainerType.ORG,
            installation_id=installation_id,
            repos=repos or [],
        )
    )


async def _github(service: GitHubIntegrationService, repo: str, status=IntegrationStatus.ACTIVE, **metadata):
    """Seed a stored record directly, as left behind by earlier runs or other writers."""
    return await service.manager.store.create_integration(
        NewIntegration(
            type=IntegrationType.GITHUB,
            name=repo,
            status=status,
            metadata={"repo": repo, "branch": "main", "features": [], "github_app_id": service.app.app_id, **metadata},
        )
    )


def _record(type_=IntegrationType.GITHUB, status=IntegrationStatus.ACTIVE, **metadata) -> IntegrationRead:
    return IntegrationRead(
        id=1,
        type=type_,
        name="acme/api",
        status=status,
        metadata={"repo": "acme/api", **metadata},
        created_at=datetime(2026, 1, 1),
    )


@pytest.mark.parametrize(
    "record, expected",
    [
        (_record(installation_id=1), False),
        (_record(installation_id=2), True),
        (_record(status=IntegrationStatus.PENDING_INSTALLATION), False),
        (_record(status=IntegrationStatus.ACTIVE), False),
        (_record(status=IntegrationStatus.NEEDS_REPO_ACCESS), True),
        (_record(status=IntegrationStatus.ERROR), True),
        (_record(type_=IntegrationType.STATIC_FILE, installation_id=2), False),
    ],
)
def test_orphan_predicate(record: IntegrationRead, expected: bool) -> None:
    assert is_orphaned_github_integration(record, {1}) is expected


def test_cleanup_deletes_only_orphans(database) -> None:
    client = InMemoryGitHubAppClient()

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            await _onboard(service, "acme", 1)
            await _github(service, "acme/kept", installation_id=1)
            await _github(service, "acme/stale", installation_id=2)
            await _github(service, "acme/pending", status=IntegrationStatus.PENDING_INSTALLATION)
            await _github(service, "acme/broken", status=IntegrationStatus.NEEDS_REPO_ACCESS)
            await service.manager.create_integration(NewIntegration(type=IntegrationType.STATIC_FILE, name="docs"))

            deleted = await cleanup_orphaned_github_integrations(
                service.manager,
                await service.installation_store.list_installations(),
                await service.manager.list_integrations(),
            )
            return deleted, sorted(i.name for i in await service.manager.list_integrations())

    deleted, remaining = asyncio.run(scenario())

    assert deleted == 2
    assert remaining == ["acme/kept", "acme/pending", "docs"]


def test_cleanup_continues_past_failed_delete(database) -> None:
    client = InMemoryGitHubAppClient()

    async def veto_first(existing, ctx) -> bool:
        return existing.name != "acme/first"

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            service.manager.registry.get(IntegrationType.GITHUB).pre_delete = veto_first
            await _github(service, "acme/first", installation_id=7)
            await _github(service, "acme/second", installation_id=7)
            deleted = await cleanup_orphaned_github_integrations(
                service.manager, [], await service.manager.list_integrations()
            )
            return deleted, [i.name for i in await service.manager.list_integrations()]

    deleted, remaining = asyncio.run(scenario())

    assert deleted == 1
    assert remaining == ["acme/first"]


def test_heal_counts_only_recovered_integrations(database) -> None:
    client = InMemoryGitHubAppClient()
    client.add_installation(1, "acme", repos=["acme/api"])

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            await _onboard(service, "acme", 1, ["acme/api"])
            recovered = await _github(
                service, "acme/api", IntegrationStatus.NEEDS_REPO_ACCESS,
                installation_id=1, access_error="repoNotAccessibleByApp",
            )
            still_broken = await _github(
                service, "acme/private", IntegrationStatus.NEEDS_REPO_ACCESS,
                installation_id=1, access_error="repoNotAccessibleByApp",
            )
            await _github(service, "acme/healthy", installation_id=1)

            behavior = service.manager.registry.get(IntegrationType.GITHUB)
            original = behavior.handle_access_check
            checked = []

            async def tracking(integration, ctx):
                checked.append(integration.name)
                return await original(integration, ctx)

            behavior.handle_access_check = tracking
            healed = await heal_github_integrations(service.manager, await service.manager.list_integrations())
            return (
                healed,
                checked,
                await service.manager.get_integration(recovered.id),
                await service.manager.get_integration(still_broken.id),
            )

    healed, checked, recovered, still_broken = asyncio.run(scenario())

    assert healed == 1
    assert sorted(checked) == ["acme/api", "acme/private"]
    assert recovered.status == IntegrationStatus.ACTIVE
    assert still_broken.status == IntegrationStatus.NEEDS_REPO_ACCESS


def test_heal_skips_records_whose_check_raises(database) -> None:
    client = InMemoryGitHubAppClient()

    async def explode(integration, ctx):
        raise RuntimeError("unexpected")

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            await _github(service, "acme/api", installation_id=1, access_error="appInstallationUninstalled")
            service.manager.registry.get(IntegrationType.GITHUB).handle_access_check = explode
            return await heal_github_integrations(service.manager, await service.manager.list_integrations())

    assert asyncio.run(scenario()) == 0


def test_ownership_guard(database) -> None:
    async def scenario():
        async with database() as session_factory:
            store = GitHubInstallationStore(session_factory)
            await store.create_installation(
                NewGitHubInstallation(name="acme", container_type=ContainerType.ORG, installation_id=1)
            )
            found = await ensure_installation_connected(store, 1)
            with pytest.raises(InstallationNotConnectedError) as excinfo:
                await ensure_installation_connected(store, 2)
            return found, excinfo.value

    found, error = asyncio.run(scenario())

    assert found.name == "acme"
    assert error.status_code == 403
    assert error.message == "This GitHub installation is not connected to your organization"


def test_cross_tenant_enable_is_refused(tmp_path) -> None:
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
    from sqlalchemy.pool import NullPool

    from app.core.db import create_tables

    client = InMemoryGitHubAppClient()
    client.add_installation(1, "acme", repos=["acme/api"])

    async def tenant(name: str):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / name}.db", poolclass=NullPool)
        await create_tables(engine)
        return engine, _service(async_sessionmaker(bind=engine, expire_on_commit=False), client)

    async def scenario():
        engine_a, tenant_a = await tenant("tenant_a")
        engine_b, tenant_b = await tenant("tenant_b")
        try:
            await _onboard(tenant_a, "acme", 1, ["acme/api"])

            with pytest.raises(InstallationNotConnectedError):
                await tenant_b.enable_repository("acme", "api")
            integration, created = await tenant_a.enable_repository("acme", "api", branch="develop")
            return (
                integration,
                created,
                await tenant_a.manager.count_integrations(),
                await tenant_b.manager.count_integrations(),
            )
        finally:
            await engine_a.dispose()
            await engine_b.dispose()

    integration, created, count_a, count_b = asyncio.run(scenario())

    assert created is True
    assert integration.status == IntegrationStatus.ACTIVE
    assert integration.metadata["installation_id"] == 1
    assert integration.metadata["branch"] == "develop"
    assert integration.metadata["github_app_id"] == client.app.app_id
    assert count_a == 1
    assert count_b == 0


def test_enable_repository_existing_and_missing(database) -> None:
    client = InMemoryGitHubAppClient()
    client.add_installation(1, "acme", repos=["acme/api"])

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            await _onboard(service, "acme", 1, ["acme/api"])
            first, first_created = await service.enable_repository("acme", "api")
            again, again_created = await service.enable_repository("Acme", "API")
            with pytest.raises(RepositoryNotInstalledError):
                await service.enable_repository("acme", "unknown")
            return first, first_created, again, again_created

    first, first_created, again, again_created = asyncio.run(scenario())

    assert first_created is True
    assert again_created is False
    assert again.id == first.id


def test_sync_pass_heals_after_reinstall(database) -> None:
    client = InMemoryGitHubAppClient()
    client.add_installation(1, "acme", repos=["acme/web"])

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            await _onboard(service, "acme", 1, ["acme/web"])
            broken = await _github(
                service, "acme/api", IntegrationStatus.NEEDS_REPO_ACCESS,
                installation_id=1, access_error="repoRemovedFromInstallation",
            )
            # The user grants the App access to the repository again
            client.repositories[1].append("acme/api")
            result = await service.sync_installations()
            return result, await service.manager.get_integration(broken.id)

    result, integration = asyncio.run(scenario())

    assert result.synced_installations == 1
    assert result.deleted_integrations == 0
    assert result.healed_count == 1
    assert integration.status == IntegrationStatus.ACTIVE
    assert "access_error" not in integration.metadata


def test_sync_pass_removes_integrations_of_replaced_installation(database) -> None:
    client = InMemoryGitHubAppClient()
    client.add_installation(5, "acme", repos=["acme/api"])

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            await _onboard(service, "acme", 1, ["acme/api"])
            await _github(service, "acme/api", installation_id=1)
            result = await service.sync_installations()
            return result, await service.manager.list_integrations(), await service.installation_store.lookup_by_name("acme")

    result, integrations, row = asyncio.run(scenario())

    assert row.installation_id == 5
    assert result.deleted_integrations == 1
    assert integrations == []


def test_sync_pass_survives_failing_stages(database) -> None:
    client = InMemoryGitHubAppClient()

    class BrokenStore(GitHubInstallationStore):
        async def list_installations(self):
            raise RuntimeError("database unavailable")

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            service.installation_store = BrokenStore(session_factory)
            return await service.sync_installations()

    result = asyncio.run(scenario())

    assert result.synced_installations == 0
    assert result.deleted_integrations == 0
    assert result.healed_count == 0
    assert result.message


def test_installation_callback_flow(database) -> None:
    client = InMemoryGitHubAppClient()
    client.add_installation(3, "octocat", account_type="User", repos=["octocat/dotfiles"])
    client.add_installation(4, "globex", repos=["globex/api"])
    client.token_failures.add(4)

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            codes = []
            for installation_id, action in ((3, "request"), (None, "install"), (99, "install"), (4, "install")):
                try:
                    await service.handle_installation_callback(installation_id, action)
                except InstallationCallbackError as exc:
                    codes.append(exc.code)
            created = await service.handle_installation_callback(3, "install")
            return codes, created, await service.installation_store.list_installations()

    codes, created, rows = asyncio.run(scenario())

    assert codes == ["setup_cancelled", "no_installation_id", "installation_not_found", "failed_to_get_access_token"]
    assert created.name == "octocat"
    assert created.container_type == ContainerType.USER
    assert created.repos == ["octocat/dotfiles"]
    assert [r.name for r in rows] == ["octocat"]


def test_delete_installation_removes_bound_integrations(database) -> None:
    client = InMemoryGitHubAppClient()
    client.add_installation(1, "acme", repos=["acme/api"])

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            row = await _onboard(service, "acme", 1, ["acme/api"])
            await _github(service, "acme/api", installation_id=1)
            await _github(service, "acme/pending", status=IntegrationStatus.PENDING_INSTALLATION)
            await _github(service, "globex/api", installation_id=2)
            deleted = await service.delete_installation(row.id, uninstall=True)
            return (
                deleted,
                [i.name for i in await service.manager.list_integrations()],
                await service.installation_store.list_installations(),
            )

    deleted, remaining, rows = asyncio.run(scenario())

    assert deleted == 2
    assert remaining == ["globex/api"]
    assert rows == []
    assert client.deleted_installations == [1]


def test_summary_counts(database) -> None:
    client = InMemoryGitHubAppClient()

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            await _onboard(service, "acme", 1, ["acme/api", "acme/web", "acme/docs"])
            await _github(service, "acme/api", installation_id=1)
            await _github(service, "acme/web", IntegrationStatus.NEEDS_REPO_ACCESS, installation_id=1)
            return await service.get_summary()

    summary = asyncio.run(scenario())

    assert summary.app_configured is True
    assert summary.org_count == 1
    assert summary.user_count == 0
    assert summary.total_repos == 3
    assert summary.enabled_repos == 1
    assert summary.needs_attention == 1


def test_malformed_record_does_not_abort_the_sync_pass(database) -> None:
    client = InMemoryGitHubAppClient()
    client.add_installation(1, "acme", repos=["acme/api"])

    async def scenario():
        async with database() as session_factory:
            service = _service(session_factory, client)
            await _onboard(service, "acme", 1, ["acme/api"])
            await _github(service, "acme/gone", installation_id=999)
            malformed = await _github(service, "acme/bad", installation_id=1, features="docs")
            broken = await _github(
                service, "acme/api", IntegrationStatus.NEEDS_REPO_ACCESS,
                installation_id=1, access_error="repoNotAccessibleByApp",
            )
            result = await service.sync_installations()
            summary = await service.get_summary()
            return (
                result,
                summary,
                sorted(i.name for i in await service.manager.list_integrations()),
                await service.manager.get_integration(malformed.id),
                await service.manager.get_integration(broken.id),
            )

    result, summary, remaining, malformed, healed = asyncio.run(scenario())

    assert result.deleted_integrations == 1
    assert result.healed_count == 1
    assert remaining == ["acme/api", "acme/bad"]
    assert malformed.metadata["features"] == "docs"
    assert healed.status == IntegrationStatus.ACTIVE
    assert summary.org_count == 1
    assert summary.enabled_repos == 2


def test_malformed_record_is_read_without_installation() -> None:
    record = _record(status=IntegrationStatus.ERROR, installation_id="not-a-number", access_error="repoNotAccessibleByApp")

    assert is_orphaned_github_integration(record, {1}) is True
    assert is_orphaned_github_integration(_record(installation_id=[1]), {1}) is False
