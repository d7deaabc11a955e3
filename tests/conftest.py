import os
import tempfile

# Settings are read at import time; point them at SQLite before any app module loads.
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="stock-"), "import.db"),
)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STOREFRONT_REVALIDATE_URL", "")

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from db import inventory, product  # noqa: F401
from fakes import RecordingNotifier, create_schema, sqlite_url
from services.reconciliation import StockReconciler
from services.stocktake import StocktakeWorkflow


@pytest.fixture
async def engine(tmp_path):
    # NullPool: one fresh connection per session, so concurrent sessions really are concurrent
    engine = create_async_engine(sqlite_url(tmp_path), poolclass=NullPool)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def reconciler(notifier):
    reconciler = StockReconciler(notifier=notifier)
    yield reconciler
    await reconciler.drain_notifications()


@pytest.fixture
def stocktake(reconciler):
    return StocktakeWorkflow(reconciler)
