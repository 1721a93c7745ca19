"""Per-dialect SQL templates for one join property.

Every template is composed from SQLAlchemy constructs: the two-hop "middle
select" is a real subquery passed to ``IN``, never text spliced into
another statement. Placeholders are rendered positionally, in the order the
matching binder returns its parameters.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import sqlalchemy as sa
from sqlalchemy import orm

from .dialects import SqlDialect
from .exceptions import JoinConstructionError
from .tools import default_value, get_columns, get_table


ParamsFunc = Callable[[Any], tuple[Any, ...]]
Binder = Callable[[Any], tuple[Any, ...]]
BatchBinder = Callable[[Iterable[Any]], tuple[Any, ...]]
SelectSQLBuilder = Callable[[Sequence[str]], str]
BatchSelectSQLBuilder = Callable[[Sequence[str], int], str]
BatchDeleteSQLBuilder = Callable[[int], str]


@dataclass(slots=True, frozen=True)
class TemplateBundle:
    """SQL builders and binders of one join property for one dialect.

    Builders take property names to project (empty selects every column of
    the referenced table) and, for batch variants, the number of owners.
    ``intermediate_*`` members are set for two-hop joins whose
    intermediate rows are not removed by an ``ON DELETE CASCADE``.
    ``owner_key_label`` names the owner-key column a two-hop batch select
    appends to each row.
    """

    dialect: str
    select_sql: SelectSQLBuilder
    select_binder: Binder
    batch_select_sql: BatchSelectSQLBuilder
    batch_binder: BatchBinder
    set_null_sql: str
    set_null_binder: Binder
    delete_sql: str
    intermediate_delete_sql: str | None
    delete_binder: Binder
    batch_delete_sql: BatchDeleteSQLBuilder
    intermediate_batch_delete_sql: BatchDeleteSQLBuilder | None
    owner_key_label: str | None = None


def _check_batch_size(batch_size: int) -> None:
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")


def _projection(
    model: type[orm.DeclarativeBase],
    columns: Sequence[str],
    required: Sequence[str],
) -> list[sa.Column[Any]] | None:
    """Columns to select, with *required* key properties prepended when missing."""
    if not columns:
        return None

    missing = [name for name in required if name not in columns]

    return get_columns(model, [*missing, *columns])


def _batch_binder(params: ParamsFunc) -> BatchBinder:
    def bind(owners: Iterable[Any]) -> tuple[Any, ...]:
        return tuple(value for owner in owners for value in params(owner))

    return bind


def build_direct_templates(
    dialect: SqlDialect,
    *,
    referenced: type[orm.DeclarativeBase],
    target_props: Sequence[str],
    params: ParamsFunc,
) -> TemplateBundle:
    """Templates for a join whose key columns live on the referenced table.

    Single statements filter with ``t1 = ? AND t2 = ? ...``. Batches use
    ``t IN (?, ...)`` for one key column and an ``OR`` of repeated equality
    blocks for composite keys.
    """
    targets = get_columns(referenced, target_props)
    defaults = tuple(default_value(column) for column in targets)

    def equality(block: int) -> sa.ColumnElement[bool]:
        return sa.and_(
            *(column == sa.bindparam(f"key_{block}_{i}") for i, column in enumerate(targets))
        )

    def batch_clause(batch_size: int) -> sa.ColumnElement[bool]:
        if len(targets) == 1:
            return targets[0].in_([sa.bindparam(f"key_{i}_0") for i in range(batch_size)])

        return sa.or_(*(equality(block) for block in range(batch_size)))

    def base_select(columns: Sequence[str]) -> sa.Select[Any]:
        projection = _projection(referenced, columns, target_props)
        if projection is None:
            return dialect.select_from(referenced)

        return dialect.select(projection)

    single = equality(0)

    @lru_cache(maxsize=256)
    def cached_select(columns: tuple[str, ...]) -> str:
        return dialect.render(base_select(columns).where(single))

    @lru_cache(maxsize=256)
    def cached_batch_select(columns: tuple[str, ...], batch_size: int) -> str:
        if batch_size == 1:
            return cached_select(columns)

        return dialect.render(base_select(columns).where(batch_clause(batch_size)))

    def select_sql(columns: Sequence[str] = ()) -> str:
        return cached_select(tuple(columns))

    def batch_select_sql(columns: Sequence[str] = (), batch_size: int = 1) -> str:
        _check_batch_size(batch_size)
        return cached_batch_select(tuple(columns), batch_size)

    delete_sql = dialect.render(dialect.delete(referenced).where(single))

    @lru_cache(maxsize=256)
    def batch_delete_sql(batch_size: int) -> str:
        _check_batch_size(batch_size)
        if batch_size == 1:
            return delete_sql

        return dialect.render(dialect.delete(referenced).where(batch_clause(batch_size)))

    set_null_sql = dialect.render(
        dialect.update(referenced)
        .ordered_values(
            *((column, sa.bindparam(f"default_{i}")) for i, column in enumerate(targets))
        )
        .where(single)
    )

    def set_null_binder(owner: Any) -> tuple[Any, ...]:
        return (*defaults, *params(owner))

    return TemplateBundle(
        dialect=dialect.name,
        select_sql=select_sql,
        select_binder=params,
        batch_select_sql=batch_select_sql,
        batch_binder=_batch_binder(params),
        set_null_sql=set_null_sql,
        set_null_binder=set_null_binder,
        delete_sql=delete_sql,
        intermediate_delete_sql=None,
        delete_binder=params,
        batch_delete_sql=batch_delete_sql,
        intermediate_batch_delete_sql=None,
    )


def owner_key_label(
    referenced: type[orm.DeclarativeBase],
    intermediate: type[orm.DeclarativeBase],
    near_prop: str,
) -> str:
    """Label of the owner-key column appended to two-hop batch selects.

    The intermediate column's own name is used unless the referenced table
    has a column of the same name, in which case it is prefixed with the
    intermediate table name and the batch select reads the referenced table
    through an alias.

    Raises:
        JoinConstructionError: If the prefixed label still collides.
    """
    (near,) = get_columns(intermediate, [near_prop])
    table = get_table(referenced)
    names = {column.name for column in table.c}

    if near.name not in names:
        return near.name

    label = f"{get_table(intermediate).name}_{near.name}"
    if label in names:
        raise JoinConstructionError(
            f"Cannot disambiguate column {near.name!r} of {get_table(intermediate).name!r} "
            f"from table {table.name!r}: label {label!r} is taken too"
        )

    return label


def build_two_hop_templates(
    dialect: SqlDialect,
    *,
    referenced: type[orm.DeclarativeBase],
    target_prop: str,
    intermediate: type[orm.DeclarativeBase],
    near_prop: str,
    far_prop: str,
    params: ParamsFunc,
    cascade_delete_defined_in_db: bool,
) -> TemplateBundle:
    """Templates for a join bridged by an intermediate (junction) entity.

    ``owner.source = Mid.near`` and ``Mid.far = Referenced.target``. Single
    statements filter the referenced table with
    ``target IN (SELECT far FROM mid WHERE near = ?)``; batch selects
    inner-join the intermediate table and return the owner key as the last
    column so rows can be grouped per owner.
    """
    (target,) = get_columns(referenced, [target_prop])
    near, far = get_columns(intermediate, [near_prop, far_prop])
    mid_table = get_table(intermediate)
    label = owner_key_label(referenced, intermediate, near_prop)
    target_default = default_value(target)

    def middle_select(clause: sa.ColumnElement[bool]) -> sa.Select[Any]:
        return dialect.select([far]).select_from(mid_table).where(clause)

    def owner_in(batch_size: int) -> sa.ColumnElement[bool]:
        return near.in_([sa.bindparam(f"key_{i}_0") for i in range(batch_size)])

    single_key = near == sa.bindparam("key_0_0")
    single = target.in_(middle_select(single_key))

    def projection(columns: Sequence[str]) -> list[sa.Column[Any]]:
        return _projection(referenced, columns, [target_prop]) or list(get_table(referenced).c)

    @lru_cache(maxsize=256)
    def cached_select(columns: tuple[str, ...]) -> str:
        if not columns:
            return dialect.render(dialect.select_from(referenced).where(single))

        return dialect.render(dialect.select(projection(columns)).where(single))

    ref_table: sa.FromClause = get_table(referenced)
    if label != near.name:
        ref_table = ref_table.alias(f"{ref_table.name}_ref")

    @lru_cache(maxsize=256)
    def cached_batch_select(columns: tuple[str, ...], batch_size: int) -> str:
        selected = [ref_table.c[column.key] for column in projection(columns)]
        statement = (
            dialect.select([*selected, near.label(label)])
            .select_from(ref_table.join(mid_table, ref_table.c[target.key] == far))
            .where(owner_in(batch_size))
        )

        return dialect.render(statement)

    def select_sql(columns: Sequence[str] = ()) -> str:
        return cached_select(tuple(columns))

    def batch_select_sql(columns: Sequence[str] = (), batch_size: int = 1) -> str:
        _check_batch_size(batch_size)
        return cached_batch_select(tuple(columns), batch_size)

    delete_sql = dialect.render(dialect.delete(referenced).where(single))
    middle_delete_sql = dialect.render(dialect.delete(intermediate).where(single_key))

    @lru_cache(maxsize=256)
    def batch_delete_sql(batch_size: int) -> str:
        _check_batch_size(batch_size)
        if batch_size == 1:
            return delete_sql

        clause = target.in_(middle_select(owner_in(batch_size)))

        return dialect.render(dialect.delete(referenced).where(clause))

    @lru_cache(maxsize=256)
    def batch_middle_delete_sql(batch_size: int) -> str:
        _check_batch_size(batch_size)
        if batch_size == 1:
            return middle_delete_sql

        return dialect.render(dialect.delete(intermediate).where(owner_in(batch_size)))

    set_null_sql = dialect.render(
        dialect.update(referenced)
        .ordered_values((target, sa.bindparam("default_0")))
        .where(single)
    )

    def set_null_binder(owner: Any) -> tuple[Any, ...]:
        return (target_default, *params(owner))

    return TemplateBundle(
        dialect=dialect.name,
        select_sql=select_sql,
        select_binder=params,
        batch_select_sql=batch_select_sql,
        batch_binder=_batch_binder(params),
        set_null_sql=set_null_sql,
        set_null_binder=set_null_binder,
        delete_sql=delete_sql,
        intermediate_delete_sql=None if cascade_delete_defined_in_db else middle_delete_sql,
        delete_binder=params,
        batch_delete_sql=batch_delete_sql,
        intermediate_batch_delete_sql=(
            None if cascade_delete_defined_in_db else batch_middle_delete_sql
        ),
        owner_key_label=label,
    )
