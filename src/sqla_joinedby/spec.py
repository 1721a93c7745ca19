"""Parser for the ``joined_by`` grammar.

A specification is a comma-separated list of ``left[=right]`` pairs where
each side is ``name`` or ``Qualifier.name``::

    "employee_id"                        # owner.employee_id = ref.employee_id
    "id = owner_id"                      # owner.id = ref.owner_id
    "id = EmployeeProject.employee_id, EmployeeProject.project_id = id"

A qualifier that names neither the owner nor the referenced entity marks a
two-hop join through that intermediate entity.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Final

from .exceptions import JoinSpecError


TWO_HOP_FORMAT: Final[str] = "id = EmployeeProject.employee_id, EmployeeProject.project_id = id"


class JoinTopology(enum.Enum):
    DIRECT = "direct"
    TWO_HOP = "two_hop"


@dataclass(slots=True, frozen=True)
class ColumnPair:
    source: str
    target: str
    source_qualifier: str | None = None
    target_qualifier: str | None = None


@dataclass(slots=True, frozen=True)
class ParsedJoinSpec:
    spec: str
    pairs: tuple[ColumnPair, ...]
    topology: JoinTopology
    intermediate: str | None = None

    @property
    def is_two_hop(self) -> bool:
        return self.topology is JoinTopology.TWO_HOP


def _split_token(token: str, spec: str) -> tuple[str | None, str]:
    qualifier, sep, name = token.partition(".")
    if not sep:
        return None, token

    qualifier, name = qualifier.strip(), name.strip()
    if not qualifier or not name or "." in name:
        raise JoinSpecError(f"Invalid join specification {spec!r}: malformed name {token!r}")

    return qualifier, name


def _parse_pair(raw: str, spec: str) -> tuple[ColumnPair, bool]:
    tokens = [token.strip() for token in raw.split("=")]
    if len(tokens) > 2 or not all(tokens):  # noqa: PLR2004
        raise JoinSpecError(f"Invalid join specification {spec!r}: malformed pair {raw!r}")

    source_qualifier, source = _split_token(tokens[0], spec)
    if len(tokens) == 1:
        return ColumnPair(source, source, source_qualifier, source_qualifier), False

    target_qualifier, target = _split_token(tokens[1], spec)

    return ColumnPair(source, target, source_qualifier, target_qualifier), True


def parse_join_spec(spec: str, owner_name: str, referenced_name: str) -> ParsedJoinSpec:
    """Parse *spec* into ordered column pairs and classify its topology.

    Args:
        spec: Raw join specification.
        owner_name: Simple class name of the owner entity.
        referenced_name: Simple class name of the referenced entity.

    Returns:
        The parsed specification. For direct joins, qualifiers naming the
        owner or referenced entity are dropped from the pairs.

    Raises:
        JoinSpecError: Empty or malformed specification, a two-hop join that
            is not exactly two pairs, or pairs that do not share the
            intermediate entity.
    """
    if not spec or not spec.strip():
        raise JoinSpecError(f"Invalid join specification {spec!r}: it is empty")

    raw_pairs = [raw.strip() for raw in spec.split(",")]
    if not all(raw_pairs):
        raise JoinSpecError(f"Invalid join specification {spec!r}: empty column pair")

    parsed = [_parse_pair(raw, spec) for raw in raw_pairs]
    pairs = tuple(pair for pair, _ in parsed)

    known = {owner_name.lower(), referenced_name.lower()}
    qualifiers = [
        qualifier
        for pair in pairs
        for qualifier in (pair.source_qualifier, pair.target_qualifier)
        if qualifier is not None
    ]

    if all(qualifier.lower() in known for qualifier in qualifiers):
        return ParsedJoinSpec(
            spec=spec,
            pairs=tuple(ColumnPair(pair.source, pair.target) for pair in pairs),
            topology=JoinTopology.DIRECT,
        )

    if len(pairs) != 2 or not all(explicit for _, explicit in parsed):  # noqa: PLR2004
        raise JoinSpecError(
            f"Invalid join specification {spec!r}: a two-hop join takes exactly two "
            f"'left = right' pairs, e.g. {TWO_HOP_FORMAT!r}"
        )

    first, second = pairs
    intermediate = first.target_qualifier
    if intermediate is None or intermediate != second.source_qualifier:
        raise JoinSpecError(
            f"Invalid join specification {spec!r}: both pairs must reference the same "
            f"intermediate entity on their adjoining sides, e.g. {TWO_HOP_FORMAT!r}"
        )

    if first.source_qualifier is not None and first.source_qualifier.lower() != owner_name.lower():
        raise JoinSpecError(
            f"Invalid join specification {spec!r}: {first.source_qualifier!r} "
            f"is not the owner entity {owner_name!r}"
        )
    if (
        second.target_qualifier is not None
        and second.target_qualifier.lower() != referenced_name.lower()
    ):
        raise JoinSpecError(
            f"Invalid join specification {spec!r}: {second.target_qualifier!r} "
            f"is not the referenced entity {referenced_name!r}"
        )

    return ParsedJoinSpec(
        spec=spec,
        pairs=(
            ColumnPair(first.source, first.target, None, intermediate),
            ColumnPair(second.source, second.target, intermediate, None),
        ),
        topology=JoinTopology.TWO_HOP,
        intermediate=intermediate,
    )
