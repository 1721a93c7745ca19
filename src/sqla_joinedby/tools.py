from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from functools import lru_cache
from typing import Any, TypeVar

import sqlalchemy as sa
from sqlalchemy import orm


T = TypeVar("T", bound=orm.DeclarativeBase)

_ZERO_VALUES: dict[type, Any] = {int: 0, float: 0.0, bool: False, Decimal: Decimal(0)}


def is_entity(cls: Any) -> bool:
    """Return ``True`` when *cls* is a mapped SQLAlchemy class."""
    if not isinstance(cls, type):
        return False

    return isinstance(sa.inspect(cls, raiseerr=False), orm.Mapper)


@lru_cache
def _get_table(model: type[T]) -> sa.Table:
    """Return the local table *model* is mapped to (cached)."""
    return sa.inspect(model).local_table  # type: ignore[return-value]


@lru_cache
def _get_table_name(model: type[T]) -> str:
    """Return the table name for *model*, preferring ``__tablename__`` (cached)."""
    result = getattr(model, "__tablename__", None) or _get_table(model).name
    if not result:
        raise ValueError(f"Cannot determine tablename for {model}")

    return result


@lru_cache(maxsize=1024)
def _get_column(model: type[T], prop_name: str) -> sa.Column[Any] | None:
    """Return the column behind the column property *prop_name*, or ``None``."""
    column_attrs = sa.inspect(model).column_attrs
    if prop_name not in column_attrs:
        return None

    return column_attrs[prop_name].columns[0]  # type: ignore[return-value]


def get_table(model: type[T]) -> sa.Table:
    """Get the table a SQLAlchemy model is mapped to."""
    return _get_table(model)


def get_table_name(model: type[T]) -> str:
    """Get the table name for a SQLAlchemy model.

    Args:
        model: SQLAlchemy model class.

    Returns:
        The table name as a string.

    Raises:
        ValueError: If the table name cannot be determined.
    """
    return _get_table_name(model)


def get_column(model: type[T], prop_name: str) -> sa.Column[Any] | None:
    """Look up the column mapped to attribute *prop_name* on *model*.

    Only plain column properties qualify; relationships, synonyms and join
    properties declared with ``joined_by`` return ``None``.
    """
    return _get_column(model, prop_name)


def get_columns(model: type[T], prop_names: Sequence[str]) -> list[sa.Column[Any]]:
    """Resolve attribute names to columns, raising ``ValueError`` on unknown names."""
    columns: list[sa.Column[Any]] = []
    for name in prop_names:
        column = _get_column(model, name)
        if column is None:
            raise ValueError(f"No column property {name!r} in class: {model.__name__}")
        columns.append(column)

    return columns


def python_type_of(column: sa.Column[Any]) -> type:
    """Normalized Python type of *column*.

    Types that sort to the same Python class (``Integer``/``BigInteger``/
    ``SmallInteger`` → ``int``) compare equal; types that cannot report a
    ``python_type``, or report only ``object``, fall back to their
    SQLAlchemy type class.
    """
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return type(column.type)

    return type(column.type) if python_type is object else python_type


def default_value(column: sa.Column[Any]) -> Any:
    """Value written by a set-null update: ``None`` unless the column is NOT NULL."""
    if column.nullable:
        return None

    return _ZERO_VALUES.get(python_type_of(column))


def is_null_or_default(value: Any) -> bool:
    """Return ``True`` for ``None`` and the zero value of numeric/bool types.

    Strings, bytes and other objects are never considered default values.
    """
    if value is None:
        return True
    if isinstance(value, (bool, int, float, Decimal)):
        return not value

    return False
