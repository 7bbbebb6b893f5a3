from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.db import create_tables
import app.models  # noqa: F401


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'tenant.db'}"


@pytest.fixture
def database(database_url: str) -> Callable[[], AsyncIterator[async_sessionmaker[AsyncSession]]]:
    """Async context manager factory: a fresh tenant database with all tables created.

    Use it inside the coroutine passed to ``asyncio.run`` so the engine lives on
    that event loop.
    """

    @asynccontextmanager
    async def _open() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
        engine = create_async_engine(database_url, poolclass=NullPool)
        await create_tables(engine)
        try:
            yield async_sessionmaker(bind=engine, expire_on_commit=False)
        finally:
            await engine.dispose()

    return _open


@pytest.fixture(scope="session")
def rsa_key_pair() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem
