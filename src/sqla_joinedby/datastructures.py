from __future__ import annotations

import sys
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, TypeVar


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


K = TypeVar("K")
V = TypeVar("V")


class frozendict(Mapping[K, V]):  # noqa: N801
    """Read-only, hashable mapping that keeps insertion order.

    Published registry entries (``propname -> JoinDescriptor``) and the
    ``Node`` graph are handed out as frozendicts so callers cannot mutate a
    cached map in place. The hash is computed on first use, since values
    such as descriptors are hashable by identity only.

    Example:
        >>> fd = frozendict({"projects": 1})
        >>> fd.merge(devices=2)
        <frozendict {'projects': 1, 'devices': 2}>
    """

    __slots__ = ("_data", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._data: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._data[key]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[K]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def merge(self, *others: Mapping[K, V], **extra: V) -> Self:
        """Return a new frozendict with *others* and *extra* layered on top."""
        data = dict(self._data)
        for other in others:
            data.update(other)
        data.update(extra)  # type: ignore[arg-type]

        return type(self)(data)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._data!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._data == other._data
        if isinstance(other, dict):
            return self._data == other

        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._data.items()))

        return self._hash


class CompositeKey(tuple):  # type: ignore[type-arg]
    """Join key for relationships joined by more than three columns.

    Behaves like a tuple (ordered, component-wise equality and hashing) but
    stays recognisable in reprs and debug output.
    """

    __slots__ = ()

    def __new__(cls, components: Iterable[Any] = ()) -> Self:
        return super().__new__(cls, components)

    def __repr__(self) -> str:
        return f"{type(self).__name__}{tuple.__repr__(self)}"
