from __future__ import annotations

from collections.abc import Collection, Sequence
from typing import Any, overload

from sqlalchemy import orm


class JoinedBy:
    """Data descriptor declaring a join property on a declarative model.

    The property is never persisted; it is filled in by
    :func:`sqla_joinedby.populate` from rows fetched with the SQL of the
    property's :class:`~sqla_joinedby.core.JoinDescriptor`.

    Unset scalar properties read as ``None``. Unset collection properties
    are initialised to an empty collection of their kind on first read.
    """

    __slots__ = ("collection", "name", "owner", "spec", "target")

    def __init__(
        self,
        spec: str | Sequence[str],
        target: type[orm.DeclarativeBase] | str,
        *,
        collection: type[Collection[Any]] | None = None,
    ) -> None:
        self.spec: str = spec if isinstance(spec, str) else ", ".join(spec)
        self.target = target
        self.collection = collection
        self.name: str = ""
        self.owner: type | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.owner = owner
        self.name = name

    @property
    def uselist(self) -> bool:
        return self.collection is not None

    @property
    def target_name(self) -> str:
        return self.target if isinstance(self.target, str) else self.target.__name__

    @overload
    def __get__(self, instance: None, owner: type | None = None) -> JoinedBy: ...

    @overload
    def __get__(self, instance: object, owner: type | None = None) -> Any: ...

    def __get__(self, instance: object | None, owner: type | None = None) -> Any:
        if instance is None:
            return self

        try:
            return instance.__dict__[self.name]
        except KeyError:
            if self.collection is None:
                return None

            value = instance.__dict__[self.name] = self.collection()
            return value

    def __set__(self, instance: object, value: Any) -> None:
        instance.__dict__[self.name] = value

    def __repr__(self) -> str:
        owner = self.owner.__name__ if self.owner else "?"
        return f"<JoinedBy {owner}.{self.name} -> {self.target_name} ({self.spec!r})>"


def joined_by(
    spec: str | Sequence[str],
    target: type[orm.DeclarativeBase] | str,
    *,
    collection: type[Collection[Any]] | None = None,
) -> Any:
    """Declare a join property.

    Args:
        spec: Join specification, e.g. ``"employee_id"``, ``"id = owner_id"``
            or ``"id = EmployeeProject.employee_id, EmployeeProject.project_id = id"``.
            A sequence of strings is joined with ``", "``.
        target: Referenced model class, or its class name.
        collection: ``None`` for a single related entity, otherwise the
            collection type to fill (``list``, ``set``, ``tuple``...).

    Example:
        >>> class Employee(Base):
        ...     __tablename__ = "employees"
        ...     id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
        ...     projects = joined_by(
        ...         "id = EmployeeProject.employee_id, EmployeeProject.project_id = id",
        ...         "Project",
        ...         collection=list,
        ...     )
    """
    return JoinedBy(spec, target, collection=collection)


def iter_joined_by(cls: type) -> tuple[JoinedBy, ...]:
    """Collect the join properties of *cls*, base classes first, in declaration order."""
    found: dict[str, JoinedBy] = {}
    for klass in reversed(cls.__mro__):
        for name, value in vars(klass).items():
            if isinstance(value, JoinedBy):
                found[name] = value

    return tuple(found.values())
