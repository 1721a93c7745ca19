from __future__ import annotations

from collections.abc import Callable, Hashable, Sequence
from operator import attrgetter
from typing import Any, Final

from .datastructures import CompositeKey
from .exceptions import JoinKeyError
from .tools import is_null_or_default


KeyFunc = Callable[[Any], Hashable]

_MAX_TUPLE_KEY: Final[int] = 3


def _component(prop: str, *, allow_null: bool, owner: type | None) -> KeyFunc:
    getter = attrgetter(prop)
    if allow_null:
        return getter

    owner_name = owner.__name__ if owner is not None else "entity"

    def checked(entity: Any) -> Hashable:
        value = getter(entity)
        if is_null_or_default(value):
            raise JoinKeyError(
                f"The join property value can't be None or default for property: "
                f"{owner_name}.{prop} (got {value!r}). "
                "Set JoinConfig(allow_null_join_key=True) to join on such values"
            )

        return value

    return checked


def make_params_getter(
    props: Sequence[str],
    *,
    allow_null: bool = True,
    owner: type | None = None,
) -> Callable[[Any], tuple[Any, ...]]:
    """Build ``entity -> (value, ...)`` returning the join values of *props* in order.

    Used by the SQL binders; applies the same null/default check as
    :func:`make_key_extractor`.
    """
    getters = tuple(_component(prop, allow_null=allow_null, owner=owner) for prop in props)

    def params(entity: Any) -> tuple[Any, ...]:
        return tuple(getter(entity) for getter in getters)

    return params


def make_key_extractor(
    props: Sequence[str],
    *,
    allow_null: bool = True,
    owner: type | None = None,
) -> KeyFunc:
    """Build ``entity -> key`` from the join properties *props*.

    One property gives the raw value, two or three give a tuple and more give
    a :class:`CompositeKey`. Keys compare equal iff every component does.

    Args:
        props: Property names, in join-column order.
        allow_null: When ``False``, raise :class:`JoinKeyError` for a
            component that is ``None`` or its type's zero value.
        owner: Entity class named in error messages.
    """
    if not props:
        raise ValueError("At least one join property is required to build a key")

    getters = tuple(_component(prop, allow_null=allow_null, owner=owner) for prop in props)

    if len(getters) == 1:
        return getters[0]

    if len(getters) <= _MAX_TUPLE_KEY:

        def tuple_key(entity: Any) -> Hashable:
            return tuple(getter(entity) for getter in getters)

        return tuple_key

    def composite_key(entity: Any) -> Hashable:
        return CompositeKey(getter(entity) for getter in getters)

    return composite_key
