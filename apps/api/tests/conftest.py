import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from unwrap_api.app import create_app  # noqa: E402
from unwrap_api.core.settings import settings  # noqa: E402
from unwrap_api.db.base import Base  # noqa: E402
from unwrap_api.db.session import get_session  # noqa: E402
from unwrap_api.models import GiftCard  # noqa: E402,F401
from unwrap_api.observability.gift_cards import get_gift_card_store  # noqa: E402
from unwrap_api.services.ledger import InMemoryLedgerClient  # noqa: E402
from unwrap_api.services.notifications import InMemoryEmailBackend  # noqa: E402


async def _build_factory(url: str):
    engine = create_async_engine(url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture(autouse=True)
def reset_gift_card_metrics():
    store = get_gift_card_store()
    store.reset()
    yield store
    store.reset()


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _build_factory("sqlite+aiosqlite:///:memory:")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so concurrent sessions get their own connections."""

    engine, factory = await _build_factory(f"sqlite+aiosqlite:///{tmp_path / 'unwrap.db'}")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def ledger_client() -> InMemoryLedgerClient:
    return InMemoryLedgerClient.from_settings(settings)


@pytest.fixture
def email_backend() -> InMemoryEmailBackend:
    return InMemoryEmailBackend()


def _build_app(factory, ledger_client, email_backend, monkeypatch):
    monkeypatch.setattr(settings, "tracing_enabled", False)
    app = create_app(ledger_client=ledger_client, email_backend=email_backend, session_factory=factory)

    async def override_get_session():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    return app


@pytest_asyncio.fixture
async def app_with_db(session_factory, ledger_client, email_backend, monkeypatch):
    app = _build_app(session_factory, ledger_client, email_backend, monkeypatch)
    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def app_with_file_db(file_session_factory, ledger_client, email_backend, monkeypatch):
    app = _build_app(file_session_factory, ledger_client, email_backend, monkeypatch)
    try:
        yield app, file_session_factory
    finally:
        app.dependency_overrides.clear()
