from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final

from sqlalchemy import orm

from .datastructures import frozendict
from .declarations import JoinedBy
from .dialects import DEFAULT_DIALECT, SqlDialect, get_dialect
from .exceptions import JoinSpecError
from .keys import KeyFunc, make_key_extractor, make_params_getter
from .node import Node
from .populate import populate
from .spec import JoinTopology, ParsedJoinSpec, parse_join_spec
from .templates import (
    BatchBinder,
    Binder,
    TemplateBundle,
    build_direct_templates,
    build_two_hop_templates,
)
from .tools import get_column, get_table_name, is_entity, python_type_of


logger = logging.getLogger(__name__)

JOIN_CONFIG_ATTR: Final[str] = "__join_config__"


@dataclass(slots=True, frozen=True)
class JoinConfig:
    """Settings applied to join properties resolved under one owner module.

    Attributes:
        allow_null_join_key: Join on owner keys that are ``None`` or a zero
            value instead of raising :class:`~sqla_joinedby.JoinKeyError`.
        cascade_delete_defined_in_db: The database removes intermediate rows
            of two-hop joins through ``ON DELETE CASCADE``; when ``False`` the
            delete templates include explicit intermediate-table statements.
    """

    allow_null_join_key: bool = False
    cascade_delete_defined_in_db: bool = True


@dataclass(slots=True, frozen=True, eq=False)
class JoinDescriptor:
    """Resolved, immutable description of one join property.

    Created by :class:`JoinRegistry` and cached for the process lifetime.
    SQL templates are built lazily, once per dialect.
    """

    owner: type[orm.DeclarativeBase]
    table_name: str
    prop_name: str
    spec: ParsedJoinSpec
    referenced: type[orm.DeclarativeBase]
    source_props: tuple[str, ...]
    target_props: tuple[str, ...]
    collection: type | None
    allow_null_join_key: bool
    cascade_delete_defined_in_db: bool
    owner_key: KeyFunc
    referenced_key: KeyFunc
    owner_params: Callable[[Any], tuple[Any, ...]] = field(repr=False)
    intermediate: type[orm.DeclarativeBase] | None = None
    intermediate_props: tuple[str, str] | None = None
    _bundles: dict[Hashable, TemplateBundle] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def topology(self) -> JoinTopology:
        return self.spec.topology

    @property
    def is_two_hop(self) -> bool:
        return self.spec.is_two_hop

    @property
    def uselist(self) -> bool:
        return self.collection is not None

    def templates(self, dialect: str | SqlDialect = DEFAULT_DIALECT) -> TemplateBundle:
        """Return the template bundle for *dialect*, building it on first use."""
        sql_dialect = get_dialect(dialect)
        key = sql_dialect.cache_key
        if (bundle := self._bundles.get(key)) is not None:
            return bundle

        with self._lock:
            if (bundle := self._bundles.get(key)) is None:
                bundle = self._build_templates(sql_dialect)
                self._bundles[key] = bundle

        return bundle

    def _build_templates(self, dialect: SqlDialect) -> TemplateBundle:
        logger.debug(
            "Building %s templates for %s.%s (%s)",
            dialect.name,
            self.owner.__name__,
            self.prop_name,
            self.topology.value,
        )
        if self.intermediate is None or self.intermediate_props is None:
            return build_direct_templates(
                dialect,
                referenced=self.referenced,
                target_props=self.target_props,
                params=self.owner_params,
            )

        near, far = self.intermediate_props
        return build_two_hop_templates(
            dialect,
            referenced=self.referenced,
            target_prop=self.target_props[0],
            intermediate=self.intermediate,
            near_prop=near,
            far_prop=far,
            params=self.owner_params,
            cascade_delete_defined_in_db=self.cascade_delete_defined_in_db,
        )

    def select_sql(
        self, columns: Sequence[str] = (), *, dialect: str | SqlDialect = DEFAULT_DIALECT
    ) -> tuple[str, Binder]:
        """SQL selecting the related rows of one owner, and its binder."""
        bundle = self.templates(dialect)
        return bundle.select_sql(columns), bundle.select_binder

    def batch_select_sql(
        self,
        columns: Sequence[str] = (),
        batch_size: int = 1,
        *,
        dialect: str | SqlDialect = DEFAULT_DIALECT,
    ) -> tuple[str, BatchBinder]:
        """SQL selecting the related rows of *batch_size* owners, and its binder.

        For two-hop joins every row ends with the owner key, labelled
        ``templates(dialect).owner_key_label``.
        """
        bundle = self.templates(dialect)
        return bundle.batch_select_sql(columns, batch_size), bundle.batch_binder

    def set_null_sql(self, *, dialect: str | SqlDialect = DEFAULT_DIALECT) -> tuple[str, Binder]:
        """SQL detaching related rows from one owner by resetting their join columns."""
        bundle = self.templates(dialect)
        return bundle.set_null_sql, bundle.set_null_binder

    def delete_sql(
        self, *, dialect: str | SqlDialect = DEFAULT_DIALECT
    ) -> tuple[str, str | None, Binder]:
        """``(delete_sql, intermediate_delete_sql | None, binder)`` for one owner.

        Both statements take the same parameters. The intermediate statement
        is only present for two-hop joins without a cascading foreign key.
        """
        bundle = self.templates(dialect)
        return bundle.delete_sql, bundle.intermediate_delete_sql, bundle.delete_binder

    def batch_delete_sql(
        self, batch_size: int, *, dialect: str | SqlDialect = DEFAULT_DIALECT
    ) -> tuple[str, str | None, BatchBinder]:
        """Batch counterpart of :meth:`delete_sql` for *batch_size* owners."""
        bundle = self.templates(dialect)
        intermediate = (
            bundle.intermediate_batch_delete_sql(batch_size)
            if bundle.intermediate_batch_delete_sql is not None
            else None
        )

        return bundle.batch_delete_sql(batch_size), intermediate, bundle.batch_binder

    def populate(
        self,
        owners: Iterable[Any],
        related: Iterable[Any] | Mapping[Hashable, Sequence[Any]],
    ) -> None:
        """Shortcut for :func:`sqla_joinedby.populate.populate` with this descriptor."""
        populate(self, owners, related)


def _fail(joined: JoinedBy, owner: type, message: str) -> JoinSpecError:
    return JoinSpecError(
        f"Invalid joined_by value {joined.spec!r} on property {joined.name!r} "
        f"in class: {owner.__name__}. {message}"
    )


def _column_type(model: type, prop: str, joined: JoinedBy, owner: type) -> type:
    column = get_column(model, prop)
    if column is None:
        raise _fail(
            joined, owner, f"No property found with name: {prop!r} in the class: {model.__name__}"
        )

    return python_type_of(column)


def _check_types(joined: JoinedBy, owner: type, *pairs: tuple[type, type]) -> None:
    if any(left is not right for left, right in pairs):
        found = [cls.__name__ for pair in pairs for cls in pair]
        raise _fail(
            joined,
            owner,
            f"The types of source property and referenced property are not the same: {found}",
        )


def build_descriptor(
    owner: type[orm.DeclarativeBase],
    table_name: str,
    joined: JoinedBy,
    *,
    node: Node,
    config: JoinConfig,
) -> JoinDescriptor:
    """Validate *joined* and build its descriptor.

    Raises:
        JoinSpecError: On any configuration problem; nothing is cached.
    """
    target = joined.target
    referenced = node.find_entity(target, near=owner) if isinstance(target, str) else target
    if referenced is None or not is_entity(referenced):
        raise _fail(joined, owner, f"{target!r} is not a mapped entity type")

    try:
        parsed = parse_join_spec(joined.spec, owner.__name__, referenced.__name__)
    except JoinSpecError as exc:
        raise _fail(joined, owner, str(exc)) from exc

    intermediate: type[orm.DeclarativeBase] | None = None
    intermediate_props: tuple[str, str] | None = None

    if parsed.is_two_hop:
        first, second = parsed.pairs
        if parsed.intermediate is not None:
            intermediate = node.find_entity(parsed.intermediate, near=owner)
        if intermediate is None:
            raise _fail(
                joined,
                owner,
                "For two-hop joins the intermediate entity class is required but it's not "
                f"defined or found by name: {parsed.intermediate!r}",
            )

        _check_types(
            joined,
            owner,
            (
                _column_type(owner, first.source, joined, owner),
                _column_type(intermediate, first.target, joined, owner),
            ),
            (
                _column_type(referenced, second.target, joined, owner),
                _column_type(intermediate, second.source, joined, owner),
            ),
        )
        source_props: tuple[str, ...] = (first.source,)
        target_props: tuple[str, ...] = (second.target,)
        intermediate_props = (first.target, second.source)
    else:
        source_props = tuple(pair.source for pair in parsed.pairs)
        target_props = tuple(pair.target for pair in parsed.pairs)
        for source, target_prop in zip(source_props, target_props):
            _check_types(
                joined,
                owner,
                (
                    _column_type(owner, source, joined, owner),
                    _column_type(referenced, target_prop, joined, owner),
                ),
            )

    allow_null = config.allow_null_join_key
    descriptor = JoinDescriptor(
        owner=owner,
        table_name=table_name,
        prop_name=joined.name,
        spec=parsed,
        referenced=referenced,
        source_props=source_props,
        target_props=target_props,
        collection=joined.collection,
        allow_null_join_key=allow_null,
        cascade_delete_defined_in_db=config.cascade_delete_defined_in_db,
        owner_key=make_key_extractor(source_props, allow_null=allow_null, owner=owner),
        referenced_key=make_key_extractor(target_props),
        owner_params=make_params_getter(source_props, allow_null=allow_null, owner=owner),
        intermediate=intermediate,
        intermediate_props=intermediate_props,
    )
    logger.debug(
        "Resolved %s.%s -> %s (%s)",
        owner.__name__,
        joined.name,
        referenced.__name__,
        parsed.topology.value,
    )

    return descriptor


_CacheKey = tuple[Hashable, type, str]


class JoinRegistry:
    """Cache of join descriptors keyed by ``(owner_module, owner_type, table_name)``.

    ``owner_module`` scopes configuration: usually the DAO class or module
    that owns the queries. When it exposes a ``__join_config__``
    :class:`JoinConfig`, that config replaces the registry default for
    descriptors resolved under it.

    Each key is computed once, under a lock; published maps are never
    mutated, only dropped by :meth:`clear`.
    """

    __slots__ = ("_cache", "_hits", "_lock", "_misses", "_node", "config")

    def __init__(self, config: JoinConfig | None = None, node: Node | None = None) -> None:
        self.config = config or JoinConfig()
        self._node = node
        self._cache: dict[_CacheKey, frozendict[str, JoinDescriptor]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def node(self) -> Node:
        return self._node if self._node is not None else Node()

    def config_for(self, owner_module: Hashable) -> JoinConfig:
        config = getattr(owner_module, JOIN_CONFIG_ATTR, None)
        return config if isinstance(config, JoinConfig) else self.config

    def resolve_all(
        self,
        owner_module: Hashable,
        owner_type: type[orm.DeclarativeBase],
        table_name: str | None = None,
    ) -> frozendict[str, JoinDescriptor]:
        """Descriptors of every join property of *owner_type*, in declaration order."""
        key = (owner_module, owner_type, table_name or get_table_name(owner_type))
        if (found := self._cache.get(key)) is not None:
            self._hits += 1
            return found

        with self._lock:
            if (found := self._cache.get(key)) is None:
                self._misses += 1
                found = self._build(owner_module, owner_type, key[2])
                self._cache[key] = found
            else:
                self._hits += 1

        return found

    def _build(
        self,
        owner_module: Hashable,
        owner_type: type[orm.DeclarativeBase],
        table_name: str,
    ) -> frozendict[str, JoinDescriptor]:
        node = self.node
        config = self.config_for(owner_module)

        return frozendict({
            joined.name: build_descriptor(owner_type, table_name, joined, node=node, config=config)
            for joined in node.get(owner_type)
        })

    def resolve(
        self,
        owner_module: Hashable,
        owner_type: type[orm.DeclarativeBase],
        table_name: str | None,
        prop_name: str,
    ) -> JoinDescriptor:
        """Descriptor of the join property *prop_name* of *owner_type*.

        Raises:
            JoinSpecError: If *prop_name* is not a join property, or any join
                property of *owner_type* is misconfigured.
        """
        descriptor = self.resolve_all(owner_module, owner_type, table_name).get(prop_name)
        if descriptor is None:
            raise JoinSpecError(
                f"No join property found by name {prop_name!r} in class: {owner_type.__name__}"
            )

        return descriptor

    def prop_names_by_type(
        self,
        owner_module: Hashable,
        owner_type: type[orm.DeclarativeBase],
        table_name: str | None,
        referenced_type: type[orm.DeclarativeBase],
    ) -> tuple[str, ...]:
        """Names of the join properties of *owner_type* that reference *referenced_type*."""
        return tuple(
            name
            for name, descriptor in self.resolve_all(owner_module, owner_type, table_name).items()
            if descriptor.referenced is referenced_type
        )

    def cache_info(self) -> dict[str, int]:
        return {"hits": self._hits, "misses": self._misses, "currsize": len(self._cache)}

    def clear(self) -> None:
        with self._lock:
            self._cache = {}
            self._hits = self._misses = 0


_registry: JoinRegistry | None = None
_registry_lock = threading.Lock()


def init_registry(config: JoinConfig | None = None, node: Node | None = None) -> JoinRegistry:
    """Install the process-wide registry used by :func:`resolve_join` and friends.

    Example:
        >>> init_node(get_node(Base))
        >>> init_registry(JoinConfig(cascade_delete_defined_in_db=False))
    """
    global _registry  # noqa: PLW0603

    with _registry_lock:
        _registry = JoinRegistry(config, node)

    return _registry


def get_registry() -> JoinRegistry:
    """Return the process-wide registry, creating a default one on first use."""
    global _registry  # noqa: PLW0603

    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = JoinRegistry()

    return _registry


def resolve_join(
    owner_module: Hashable,
    owner_type: type[orm.DeclarativeBase],
    prop_name: str,
    *,
    table_name: str | None = None,
) -> JoinDescriptor:
    """Resolve one join property through the process-wide registry.

    Example::

        descriptor = resolve_join(EmployeeDao, Employee, "projects")
        sql, bind = descriptor.batch_select_sql(("id", "title"), len(employees))
        rows = conn.exec_driver_sql(sql, bind(employees)).all()
        descriptor.populate(employees, [Project(**row._mapping) for row in rows])
    """
    return get_registry().resolve(owner_module, owner_type, table_name, prop_name)


def resolve_joins(
    owner_module: Hashable,
    owner_type: type[orm.DeclarativeBase],
    *,
    table_name: str | None = None,
) -> frozendict[str, JoinDescriptor]:
    """Resolve every join property of *owner_type* through the process-wide registry."""
    return get_registry().resolve_all(owner_module, owner_type, table_name)


def join_cache_info() -> dict[str, Any]:
    """Return statistics for the registry and the internal metadata caches."""
    from .tools import _get_column, _get_table, _get_table_name

    return {
        "registry": get_registry().cache_info(),
        **{fn.__name__: fn.cache_info() for fn in (_get_column, _get_table, _get_table_name)},
    }


def join_cache_clear() -> None:
    """Drop every cached descriptor and metadata lookup."""
    from .tools import _get_column, _get_table, _get_table_name

    get_registry().clear()
    for fn in (_get_column, _get_table, _get_table_name):
        fn.cache_clear()
