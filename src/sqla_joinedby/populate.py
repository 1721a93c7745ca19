from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, TypeVar


if TYPE_CHECKING:
    from .core import JoinDescriptor

E = TypeVar("E")


def group_related(
    related: Iterable[E], key_fn: Callable[[E], Hashable]
) -> dict[Hashable, list[E]]:
    """Group *related* entities by ``key_fn``, keeping input order within each group."""
    grouped: dict[Hashable, list[E]] = {}
    for entity in related:
        grouped.setdefault(key_fn(entity), []).append(entity)

    return grouped


def group_pairs(pairs: Iterable[tuple[Hashable, E]]) -> dict[Hashable, list[E]]:
    """Group ``(owner_key, entity)`` pairs, e.g. rows of a two-hop batch select.

    Example::

        label = descriptor.templates("sqlite").owner_key_label
        grouped = group_pairs(
            (row._mapping[label], Project(**{k: row._mapping[k] for k in cols}))
            for row in result
        )
        descriptor.populate(employees, grouped)
    """
    grouped: dict[Hashable, list[E]] = {}
    for key, entity in pairs:
        grouped.setdefault(key, []).append(entity)

    return grouped


def _assign(descriptor: JoinDescriptor, owner: Any, matches: Sequence[Any]) -> None:
    collection = descriptor.collection
    if collection is None:
        value = matches[0]
    elif collection is list:
        value = list(matches)
    else:
        value = collection(matches)

    setattr(owner, descriptor.prop_name, value)


def populate(
    descriptor: JoinDescriptor,
    owners: Iterable[Any],
    related: Iterable[Any] | Mapping[Hashable, Sequence[Any]],
) -> None:
    """Attach related entities to the join property of each owner.

    Args:
        descriptor: Resolved join property.
        owners: Entities owning the join property.
        related: Related entities (grouped here by the referenced-side key),
            or a mapping ``owner key -> related entities`` grouped beforehand
            so one grouping can serve several calls.

    Collection properties receive every match in order, built into the
    declared collection type; scalar properties receive the first match.
    Owners without a match keep their current value.

    Raises:
        TypeError: If ungrouped entities are passed for a two-hop join, whose
            rows must be grouped by owner key (see :func:`group_pairs`).
        JoinKeyError: If an owner's key is ``None``/default and the
            descriptor does not allow null join keys.
    """
    if isinstance(related, Mapping):
        grouped: Mapping[Hashable, Sequence[Any]] = related
    elif descriptor.is_two_hop:
        raise TypeError(
            f"Join property {descriptor.owner.__name__}.{descriptor.prop_name} is a two-hop "
            "join; pass related entities grouped by owner key (see group_pairs)"
        )
    else:
        grouped = group_related(related, descriptor.referenced_key)

    for owner in owners:
        matches = grouped.get(descriptor.owner_key(owner))
        if matches:
            _assign(descriptor, owner, matches)
