from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

from app.core.config import get_settings
from app.models.base import Base  # noqa: F401 ensure models import
import app.models  # noqa: F401

config = context.config
settings = get_settings()
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def resolve_url() -> str:
    """Database to migrate: ``-x url=...``, else ``-x tenant=<slug>``, else DATABASE_URL."""
    cmd_opts = context.get_x_argument(as_dictionary=True)
    if "url" in cmd_opts:
        return cmd_opts["url"]
    tenant = cmd_opts.get("tenant")
    if tenant:
        if tenant not in settings.tenant_database_urls:
            raise SystemExit(f"Unknown tenant: {tenant}")
        return settings.tenant_database_urls[tenant]
    return settings.database_url


def to_sync_url(url: str) -> str:
    if url.startswith("sqlite+aiosqlite"):
        url = url.replace("sqlite+aiosqlite", "sqlite", 1)
    if url.startswith("postgresql://") or url.startswith("postgres://"):
        url = "postgresql+psycopg://" + url.split("://", 1)[1]
    return url


def run_migrations_offline() -> None:
    context.configure(
        url=to_sync_url(resolve_url()),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = to_sync_url(resolve_url())
    connectable = engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
