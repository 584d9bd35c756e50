"""
primitives.py — Core identifier types for the enrichkg analysis core.

Defines the Resource token, the submitted / canonical / external-key
identifier views, interactor identifiers and reactions.  All types are
frozen dataclasses so they can be used as set members and dict keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Resource name of the combined (all resources) statistics row
TOTAL = "TOTAL"


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Resource:
    """
    A named source database (e.g. ``UNIPROT``, ``CHEBI``).

    Resources are compared by name and are the primary grouping key of the
    analysis.  Obtain them from a :class:`~enrichkg.resources.ResourceRegistry`
    rather than constructing them ad hoc.

    :param name: Upper-case resource name.
    """

    name: str

    def __str__(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class SubmittedIdentifier:
    """
    An identifier as submitted by the user, with optional expression values.

    Equality, hashing and ordering use :attr:`id` only; the expression values
    ride along but never distinguish two identifiers.

    :param id: Identifier string.
    :param exp: Expression values, one per sample column (``None`` = missing).
    """

    id: str
    exp: tuple[float | None, ...] = field(default=(), compare=False)

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class CanonicalIdentifier:
    """
    A molecule as known internally, tagged with its main resource.

    :param resource: Main resource the identifier belongs to.
    :param value: Canonical id; its ``exp`` carries the expression values of
        the submission that hit it (empty at build time).
    """

    resource: Resource
    value: SubmittedIdentifier

    @property
    def id(self) -> str:
        return self.value.id

    def is_from(self, resource: Resource) -> bool:
        return self.resource == resource

    def __str__(self) -> str:
        return f"{self.resource.name}:{self.value.id}"


@dataclass(frozen=True)
class ExternalKey:
    """
    The submission-side view of an identifier: what was typed, and the
    resource it was resolved under.

    :param resource: Resource the submitted identifier was resolved under.
    :param value: The submitted identifier.
    """

    resource: Resource
    value: SubmittedIdentifier


@dataclass(frozen=True)
class InteractorIdentifier:
    """
    An identifier reached through an interaction with a canonical entity.

    :param source: The submitted identifier.
    :param maps_to: Interactor accession counted alongside canonical ids.
    :param interaction_id: Optional id of the supporting interaction evidence.
    """

    source: SubmittedIdentifier
    maps_to: str
    interaction_id: str | None = None

    @property
    def id(self) -> str:
        return self.source.id

    @property
    def exp(self) -> tuple[float | None, ...]:
        return self.source.exp


@dataclass(frozen=True)
class Reaction:
    """
    A reaction event, identified by its database id.

    :param db_id: Numeric database identifier.
    :param st_id: Optional stable identifier (ignored for equality).
    """

    db_id: int
    st_id: str | None = field(default=None, compare=False)
