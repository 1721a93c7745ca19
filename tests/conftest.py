from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)

from sqla_joinedby import SqlDialect, join_cache_clear
from sqla_joinedby.node import Node, get_node, init_node

from .models import (
    Article,
    ArticleLabel,
    Base,
    Device,
    Employee,
    EmployeeProject,
    Label,
    Ledger,
    LedgerEntry,
    Project,
)


pytestmark = pytest.mark.anyio


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["postgres", "mysql", "mariadb", "sqlite"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def _init_node() -> None:
    """Initialize the Node singleton with the join properties of the test models.

    Sync, no DB needed -- safe to run for all tests including unit tests.
    """
    try:
        Node()
    except RuntimeError:
        Node.reset()
        init_node(get_node(Base))


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    match db_backend:
        case "postgres":
            from testcontainers.postgres import PostgresContainer

            pg = PostgresContainer(image="postgres:latest")
            if os.name == "nt":
                pg.get_container_host_ip = lambda: "127.0.0.1"
            with pg:
                host = pg.get_container_host_ip()
                dsn = (
                    f"postgresql+asyncpg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "mysql" | "mariadb":
            from testcontainers.mysql import MySqlContainer

            my = MySqlContainer(image="mysql:8.0" if db_backend == "mysql" else "mariadb:latest")
            if os.name == "nt":
                my.get_container_host_ip = lambda: "127.0.0.1"
            with my:
                host = my.get_container_host_ip()
                port = my.get_exposed_port(my.port)
                dsn = (
                    f"mysql+asyncmy://{my.username}:{my.password}"
                    f"@{host}:{port}/{my.dbname}"
                )
                yield dsn

        case "sqlite":
            tmp = tmp_path_factory.mktemp("db")
            yield f"sqlite+aiosqlite:///{tmp}/test.db"


@pytest.fixture(scope="session")
def engine(db_config: str) -> AsyncEngine:
    return create_async_engine(db_config, echo=False)


@pytest.fixture(scope="session")
def dialect(engine: AsyncEngine) -> SqlDialect:
    """Dialect rendering SQL in the paramstyle of the engine's driver."""
    return SqlDialect.from_engine(engine)


@pytest.fixture(scope="session")
async def _create_tables(engine: AsyncEngine) -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def connection(
    engine: AsyncEngine, _create_tables: None
) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        trans = await conn.begin()
        yield conn
        await trans.rollback()


@pytest.fixture
async def session(connection: AsyncConnection) -> AsyncIterator[AsyncSession]:
    sess = AsyncSession(bind=connection, expire_on_commit=False)
    yield sess
    await sess.close()


async def _insert(conn: AsyncConnection, model: type[Base], rows: list[dict[str, object]]) -> None:
    await conn.execute(sa.insert(model.__table__), rows)  # type: ignore[arg-type]


@pytest.fixture
async def seed_data(connection: AsyncConnection) -> None:
    await _insert(connection, Employee, [
        {"id": 1, "name": "alice", "department_id": 10},
        {"id": 2, "name": "bob", "department_id": 10},
        {"id": 3, "name": "charlie", "department_id": 20},
    ])
    await _insert(connection, Project, [
        {"id": 10, "title": "apollo", "employee_id": 1},
        {"id": 11, "title": "gemini", "employee_id": 1},
        {"id": 12, "title": "mercury", "employee_id": 2},
        {"id": 13, "title": "skylab", "employee_id": None},
    ])
    await _insert(connection, EmployeeProject, [
        {"employee_id": 1, "project_id": 12, "role": "reviewer"},
        {"employee_id": 1, "project_id": 13, "role": "member"},
        {"employee_id": 2, "project_id": 10, "role": "member"},
        {"employee_id": 2, "project_id": 13, "role": "lead"},
    ])
    await _insert(connection, Device, [
        {"id": 1, "serial": "SN-1", "owner_id": 1},
        {"id": 2, "serial": "SN-2", "owner_id": 1},
        {"id": 3, "serial": "SN-3", "owner_id": 3},
    ])
    await _insert(connection, Ledger, [
        {"id": 1, "region": "eu", "year": 2024, "quarter": 1, "batch": 1},
        {"id": 2, "region": "us", "year": 2024, "quarter": 2, "batch": 1},
    ])
    await _insert(connection, LedgerEntry, [
        {"id": 1, "region": "eu", "year": 2024, "quarter": 1, "batch": 1, "amount": 100},
        {"id": 2, "region": "eu", "year": 2024, "quarter": 1, "batch": 2, "amount": 200},
        {"id": 3, "region": "eu", "year": 2024, "quarter": 3, "batch": 1, "amount": 300},
        {"id": 4, "region": "us", "year": 2024, "quarter": 2, "batch": 1, "amount": 400},
        {"id": 5, "region": "us", "year": 2023, "quarter": 2, "batch": 1, "amount": 500},
    ])
    await _insert(connection, Article, [
        {"id": 1, "title": "intro"},
        {"id": 2, "title": "advanced"},
    ])
    await _insert(connection, Label, [
        {"id": 1, "name": "python", "article_id": 2},
        {"id": 2, "name": "sql", "article_id": None},
    ])
    await _insert(connection, ArticleLabel, [
        {"article_id": 1, "label_id": 1},
        {"article_id": 1, "label_id": 2},
        {"article_id": 2, "label_id": 2},
    ])


@pytest.fixture(autouse=True)
def clear_join_caches() -> Iterator[None]:
    yield
    join_cache_clear()


@pytest.fixture
def reset_node_singleton() -> Iterator[None]:
    saved = Node._Node__instance  # type: ignore[attr-defined]
    yield
    Node._Node__instance = saved  # type: ignore[attr-defined]
