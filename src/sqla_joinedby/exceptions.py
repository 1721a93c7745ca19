from __future__ import annotations


class JoinedByError(Exception):
    """Base class for every error raised by sqla_joinedby."""


class JoinSpecError(JoinedByError, ValueError):
    """A join property is misconfigured.

    Raised while a join property is resolved: malformed ``joined_by`` grammar,
    unknown properties, type mismatches across a join pair or an intermediate
    entity that cannot be located. Never cached and never retried.
    """


class JoinKeyError(JoinedByError, ValueError):
    """An owner's join key is ``None`` or its type's default value."""


class JoinConstructionError(JoinedByError, RuntimeError):
    """Template construction would produce ambiguous SQL."""


class DialectError(JoinedByError, LookupError):
    """Unknown dialect key or a dialect that cannot bind positionally."""
