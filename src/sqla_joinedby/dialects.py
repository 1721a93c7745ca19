from __future__ import annotations

import re
import threading
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Final

import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.dialects import registry as dialect_registry
from sqlalchemy.engine import default

from .exceptions import DialectError
from .tools import get_table


if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

DEFAULT_DIALECT: Final[str] = "default"
BUILTIN_DIALECTS: Final[tuple[str, ...]] = (
    "default",
    "sqlite",
    "postgresql",
    "mysql",
    "mssql",
    "oracle",
)

_NEWLINES = re.compile(r"\s*\n\s*")


class SqlDialect:
    """Statement factory and renderer for one SQL dialect.

    Wraps a SQLAlchemy ``Dialect`` that binds parameters positionally, so the
    rendered SQL can be executed with the tuples produced by the join
    binders (``cursor.execute(sql, params)`` or
    ``connection.exec_driver_sql(sql, params)``).

    The four construction primitives return SQLAlchemy statements; callers
    narrow them with ``.where(...)`` and turn them into text with
    :meth:`render`.
    """

    __slots__ = ("dialect", "name")

    def __init__(self, name: str, dialect: sa.Dialect) -> None:
        if not dialect.positional:
            raise DialectError(
                f"Dialect {name!r} uses the {dialect.paramstyle!r} paramstyle; "
                "join templates need a positional one (qmark, format, numeric)"
            )

        self.name = name
        self.dialect = dialect

    @classmethod
    def for_name(cls, name: str, *, paramstyle: str = "qmark") -> SqlDialect:
        """Build a dialect from its SQLAlchemy name (``"postgresql"``, ``"mysql"``...)."""
        if name == DEFAULT_DIALECT:
            return cls(name, default.DefaultDialect(paramstyle=paramstyle))

        try:
            dialect_cls = dialect_registry.load(name)
        except sa.exc.NoSuchModuleError as exc:
            raise DialectError(f"Unknown SQL dialect: {name!r}") from exc

        return cls(name, dialect_cls(paramstyle=paramstyle))

    @classmethod
    def from_engine(cls, engine: sa.Engine | AsyncEngine) -> SqlDialect:
        """Wrap the dialect an engine actually talks to, keeping its driver paramstyle."""
        return cls(f"{engine.dialect.name}+{engine.dialect.driver}", engine.dialect)

    @property
    def cache_key(self) -> tuple[str, type[sa.Dialect], str]:
        """Identifies the rendered SQL: two dialects sharing a name may differ in paramstyle."""
        return self.name, type(self.dialect), self.dialect.paramstyle

    def select(self, columns: Sequence[sa.ColumnElement[Any]]) -> sa.Select[Any]:
        return sa.select(*columns)

    def select_from(self, entity: type[orm.DeclarativeBase]) -> sa.Select[Any]:
        return sa.select(get_table(entity))

    def update(self, entity: type[orm.DeclarativeBase]) -> sa.Update:
        return sa.update(get_table(entity))

    def delete(self, entity: type[orm.DeclarativeBase]) -> sa.Delete:
        return sa.delete(get_table(entity))

    def render(self, statement: sa.ClauseElement) -> str:
        """Compile *statement* to single-line SQL text."""
        return _NEWLINES.sub(" ", str(statement.compile(dialect=self.dialect))).strip()

    def __repr__(self) -> str:
        return f"<SqlDialect {self.name} ({self.dialect.paramstyle})>"


_dialects: dict[str, SqlDialect] = {}
_dialects_lock = threading.Lock()


def register_dialect(dialect: SqlDialect) -> SqlDialect:
    """Make *dialect* available to :func:`get_dialect` under its name."""
    with _dialects_lock:
        _dialects[dialect.name] = dialect

    return dialect


def get_dialect(dialect: str | SqlDialect) -> SqlDialect:
    """Return the dialect registered as *dialect*, creating built-ins on demand.

    Raises:
        DialectError: If the name is neither registered nor built in.
    """
    if isinstance(dialect, SqlDialect):
        return dialect

    if (found := _dialects.get(dialect)) is not None:
        return found

    if dialect not in BUILTIN_DIALECTS:
        raise DialectError(
            f"Unknown SQL dialect: {dialect!r}. Registered: {sorted(_dialects)}; "
            f"built in: {list(BUILTIN_DIALECTS)}"
        )

    with _dialects_lock:
        if (found := _dialects.get(dialect)) is None:
            found = _dialects[dialect] = SqlDialect.for_name(dialect)

    return found
