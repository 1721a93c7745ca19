"""Declarative "joined-by" relationship resolution for SQLAlchemy models.

sqla_joinedby turns ``joined_by`` declarations on mapped classes into cached
:class:`JoinDescriptor` objects holding the SQL to select, detach and delete
related rows, for one owner or a batch, in any positional-paramstyle
dialect.  Initialize the ``Node`` singleton at startup with your declarative
base, then call ``resolve_join(owner_module, Model, "prop")`` and run the SQL
with the parameters its binders produce.
"""

from ._version import __version__, __version_tuple__
from .core import (
    JoinConfig,
    JoinDescriptor,
    JoinRegistry,
    get_registry,
    init_registry,
    join_cache_clear,
    join_cache_info,
    resolve_join,
    resolve_joins,
)
from .datastructures import CompositeKey, frozendict
from .declarations import JoinedBy, joined_by
from .dialects import SqlDialect, get_dialect, register_dialect
from .exceptions import (
    DialectError,
    JoinConstructionError,
    JoinedByError,
    JoinKeyError,
    JoinSpecError,
)
from .keys import make_key_extractor
from .node import Node, get_node, init_node
from .populate import group_pairs, group_related, populate
from .spec import JoinTopology, parse_join_spec


__all__ = (
    "CompositeKey",
    "DialectError",
    "JoinConfig",
    "JoinConstructionError",
    "JoinDescriptor",
    "JoinKeyError",
    "JoinRegistry",
    "JoinSpecError",
    "JoinTopology",
    "JoinedBy",
    "JoinedByError",
    "Node",
    "SqlDialect",
    "__version__",
    "__version_tuple__",
    "frozendict",
    "get_dialect",
    "get_node",
    "get_registry",
    "group_pairs",
    "group_related",
    "init_node",
    "init_registry",
    "join_cache_clear",
    "join_cache_info",
    "joined_by",
    "make_key_extractor",
    "parse_join_spec",
    "populate",
    "register_dialect",
    "resolve_join",
    "resolve_joins",
)
