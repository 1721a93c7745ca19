"""Basic sqla-joinedby usage examples.

Demonstrates initialization, loading a direct join for a batch of owners,
loading a two-hop join through a junction table and deleting related rows.

NOTE: This file is illustrative: it won't run standalone
without a database and seeded data.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine

from sqla_joinedby import (
    JoinConfig,
    SqlDialect,
    get_node,
    group_pairs,
    init_node,
    init_registry,
    register_dialect,
    resolve_join,
)

from .models import Base, Employee, Project


# ── 1. Initialize once at startup ────────────────────────────────────

engine = create_async_engine("sqlite+aiosqlite:///:memory:")
dialect = register_dialect(SqlDialect.from_engine(engine))


async def setup() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Call once: collects the joined_by declarations of every model
    init_node(get_node(Base))
    # SQLite does not enforce ON DELETE CASCADE unless asked to
    init_registry(JoinConfig(cascade_delete_defined_in_db=False))


class EmployeeDao:
    """Owner module: descriptors and config are scoped to it."""


# ── 2. Direct join, one query for the whole batch ───────────────────


async def load_projects(conn: AsyncConnection) -> list[Employee]:
    employees = list((await conn.execute(sa.select(Employee))).all())
    owners = [Employee(id=row.id, name=row.name) for row in employees]

    descriptor = resolve_join(EmployeeDao, Employee, "projects")
    sql, bind = descriptor.batch_select_sql(("id", "title"), len(owners), dialect=dialect)
    rows = await conn.exec_driver_sql(sql, bind(owners))

    descriptor.populate(owners, [Project(**row._mapping) for row in rows])
    return owners


# ── 3. Two-hop join through EmployeeProject ─────────────────────────


async def load_assignments(conn: AsyncConnection, owners: list[Employee]) -> None:
    descriptor = resolve_join(EmployeeDao, Employee, "assignments")
    sql, bind = descriptor.batch_select_sql(("id", "title"), len(owners), dialect=dialect)
    label = descriptor.templates(dialect).owner_key_label
    rows = await conn.exec_driver_sql(sql, bind(owners))

    grouped = group_pairs(
        (row._mapping[label], Project(id=row.id, title=row.title)) for row in rows
    )
    descriptor.populate(owners, grouped)


# ── 4. Deleting related rows ────────────────────────────────────────


async def delete_assignments(conn: AsyncConnection, owner: Employee) -> None:
    main, intermediate, bind = resolve_join(EmployeeDao, Employee, "assignments").delete_sql(
        dialect=dialect
    )
    await conn.exec_driver_sql(main, bind(owner))
    if intermediate is not None:
        await conn.exec_driver_sql(intermediate, bind(owner))
