"""Benchmarks: cached join resolution vs rebuilding, and two-query loading vs ORM joins.

Measures resolution and template rendering, plus actual query execution
for a batch load.
Run with: pytest tests/benchmarks/ -v -s
Skip with: pytest tests/ -m "not benchmark"
"""
from __future__ import annotations

import time
from typing import Any, Callable, Final

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from sqla_joinedby import JoinConfig, SqlDialect, resolve_join
from sqla_joinedby.core import build_descriptor
from sqla_joinedby.node import Node

from ..models import Employee, Project

pytestmark = [pytest.mark.anyio, pytest.mark.benchmark]


N: Final[int] = 1000
N_QUERIES: Final[int] = 100


class EmployeeDao:
    pass


def _measure(fn: Callable[[], Any], n: int = N) -> float:
    # Call fn() n times after one warm-up call, return total seconds.
    fn()

    start = time.perf_counter()
    for _ in range(n):
        fn()

    return time.perf_counter() - start


def _fmt(label: str, elapsed: float, n: int = N) -> str:
    return f"    {label:<30s} {elapsed:.3f}s ({n} calls, {elapsed / n * 1_000_000:.1f}us/call)"


class TestResolutionBenchmarks:
    def test_resolve_cached_vs_rebuilt(self) -> None:
        node = Node()
        joined = node.find(Employee, "assignments")
        assert joined is not None

        t_cached = _measure(lambda: resolve_join(EmployeeDao, Employee, "assignments"))
        t_built = _measure(
            lambda: build_descriptor(Employee, "employees", joined, node=node, config=JoinConfig())
        )

        print(f"\n  Resolve Employee.assignments ({N} calls):")
        print(_fmt("cached registry:", t_cached))
        print(_fmt("build_descriptor:", t_built))
        print(f"    ratio (built/cached): {t_built / t_cached:.2f}x")

        assert t_cached < t_built

    def test_batch_select_cached_vs_first_render(self) -> None:
        descriptor = resolve_join(EmployeeDao, Employee, "projects")
        sizes = iter(range(1, N + 2))

        t_cached = _measure(lambda: descriptor.batch_select_sql(("title",), 50))
        t_fresh = _measure(lambda: descriptor.batch_select_sql(("title",), next(sizes)))

        print(f"\n  Batch select SQL for Employee.projects ({N} calls):")
        print(_fmt("cached batch size:", t_cached))
        print(_fmt("new batch size each call:", t_fresh))


async def _load_with_joined_by(conn: AsyncConnection, dialect: SqlDialect) -> list[Employee]:
    result = await conn.execute(sa.select(Employee).order_by(Employee.id))
    owners = [Employee(id=row.id, name=row.name) for row in result]
    descriptor = resolve_join(EmployeeDao, Employee, "projects")
    sql, bind = descriptor.batch_select_sql(("id", "title"), len(owners), dialect=dialect)
    rows = await conn.exec_driver_sql(sql, bind(owners))
    descriptor.populate(owners, [Project(**row._mapping) for row in rows])

    return owners


class TestExecutionBenchmarks:
    async def test_two_queries_vs_outer_join(
        self,
        connection: AsyncConnection,
        session: AsyncSession,
        dialect: SqlDialect,
        seed_data: None,
    ) -> None:
        await _load_with_joined_by(connection, dialect)
        start = time.perf_counter()
        for _ in range(N_QUERIES):
            owners = await _load_with_joined_by(connection, dialect)
        t_joined_by = time.perf_counter() - start

        query = sa.select(Employee, Project).outerjoin(Project, Project.employee_id == Employee.id)
        start = time.perf_counter()
        for _ in range(N_QUERIES):
            (await session.execute(query)).all()
            session.expunge_all()
        t_join = time.perf_counter() - start

        print(f"\n  Employee.projects ({N_QUERIES} loads):")
        print(f"    {'joined_by (2 queries):':<30s} {t_joined_by:.3f}s")
        print(f"    {'ORM outer join:':<30s} {t_join:.3f}s")

        assert sorted(p.id for p in owners[0].projects) == [10, 11]
