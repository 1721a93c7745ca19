from __future__ import annotations

import sys
from collections.abc import Mapping, Sequence
from typing import ClassVar, final

from sqlalchemy import orm

from .datastructures import frozendict
from .declarations import JoinedBy, iter_joined_by
from .tools import is_entity


@final
class Node:
    """Singleton holding the join properties of every mapped model.

    Built once at startup from a declarative base (see :func:`get_node`), the
    Node is the schema-introspection source the registry reads join
    declarations from. It also locates intermediate entities of two-hop joins
    by their simple class name.
    """

    __instance: ClassVar[Node | None] = None
    _node: Mapping[type[orm.DeclarativeBase], Sequence[JoinedBy]]

    def __new__(
        cls,
        node: Mapping[type[orm.DeclarativeBase], Sequence[JoinedBy]] | None = None,
    ) -> Node:
        if cls.__instance is None:
            instance = super().__new__(cls)
            if node is not None:
                instance.set_node(node)

            cls.__instance = instance

        if not getattr(cls.__instance, "_node", None):
            raise RuntimeError("Node is not initialized or empty")

        return cls.__instance

    def get(self, model: type[orm.DeclarativeBase]) -> Sequence[JoinedBy]:
        """Join properties declared on *model*, or an empty sequence."""
        return self.node.get(model, ())

    def __getitem__(self, model: type[orm.DeclarativeBase]) -> Sequence[JoinedBy]:
        """Look up join properties for *model*, raising ``KeyError`` if not mapped."""
        return self.node[model]

    @property
    def node(self) -> Mapping[type[orm.DeclarativeBase], Sequence[JoinedBy]]:
        """The underlying model-to-join-properties mapping (read-only)."""
        return self._node

    def set_node(
        self,
        node: Mapping[type[orm.DeclarativeBase], Sequence[JoinedBy]],
    ) -> None:
        self._node = node

    def find(self, model: type[orm.DeclarativeBase], name: str) -> JoinedBy | None:
        """Return the join property *name* of *model*, or ``None``."""
        return next((joined for joined in self.get(model) if joined.name == name), None)

    def find_entity(
        self, name: str, near: type[orm.DeclarativeBase]
    ) -> type[orm.DeclarativeBase] | None:
        """Locate a mapped class by simple name.

        The module that defines *near* is searched first, then every class the
        Node knows, then *near*'s declarative registry. Within each source a
        class from *near*'s module wins over a same-named class elsewhere.
        """
        module = sys.modules.get(near.__module__)
        if module is not None and is_entity(candidate := getattr(module, name, None)):
            return candidate

        candidates = [model for model in self.node if model.__name__ == name]
        registry = getattr(near, "registry", None)
        if not candidates and registry is not None:
            candidates = [m.class_ for m in registry.mappers if m.class_.__name__ == name]

        if not candidates:
            return None

        return next((c for c in candidates if c.__module__ == near.__module__), candidates[0])

    @classmethod
    def reset(cls) -> None:
        """Destroy the singleton, allowing re-initialization (primarily for tests)."""
        cls._node = {}
        cls.__instance = None


def get_node(
    base: type[orm.DeclarativeBase],
) -> Mapping[type[orm.DeclarativeBase], Sequence[JoinedBy]]:
    """Extract join declarations from a SQLAlchemy declarative base.

    Every mapper of the base's registry gets an entry, including models that
    declare no join properties, so intermediate entities stay discoverable.

    Raises:
        AssertionError: If base is not a direct subclass of orm.DeclarativeBase.
    """
    assert orm.DeclarativeBase in getattr(base, "__bases__", ()), (
        "base must be a subclass of orm.DeclarativeBase"
    )

    return frozendict({
        mapper.class_: iter_joined_by(mapper.class_) for mapper in base.registry.mappers
    })


def init_node(
    node: Mapping[type[orm.DeclarativeBase], Sequence[JoinedBy]],
) -> None:
    """Initialize the global Node singleton.

    Example:
        >>> from myapp.models import Base
        >>> init_node(get_node(Base))
    """
    Node(node)
