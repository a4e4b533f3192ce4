"""
Shared test fixtures.

============================================================
PURPOSE
============================================================
Every test gets a fresh SQLite file database, an in-memory
price oracle and the services wired on top of them.

============================================================
"""

import pytest

from ledger.portfolio_service import PortfolioService
from llm_planner.config_service import ConfigService
from market_data.oracle import MockPriceOracle
from storage.database import Database, DatabaseConfig


@pytest.fixture
async def database(tmp_path):
    """Fresh database with every table created."""
    db = Database(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'desk.db'}"))
    await db.create_all_tables()
    yield db
    await db.dispose()


@pytest.fixture
def oracle():
    """In-memory oracle with a couple of quotes."""
    mock = MockPriceOracle()
    mock.set_price("AAPL", "190.00", previous_close="188.00")
    mock.set_price("MSFT", "410.50", previous_close="405.00")
    return mock


@pytest.fixture
def portfolio_service(database, oracle):
    """Portfolio service over the test database."""
    return PortfolioService(database, oracle)


@pytest.fixture
def config_service(database, portfolio_service):
    """Provider/prompt/schedule service over the test database."""
    return ConfigService(database, portfolio_service)
