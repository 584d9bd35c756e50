"""
external.py — Transport representation of a pathway's analysis result.

Plain dataclasses mirroring the wire / on-disk record of one pathway:
statistics rows (one per resource plus ``TOTAL``), the found entities with
their canonical mappings, the found interactors and the found reactions.
``to_dict`` produces camelCase keys; ``from_dict`` accepts them back.

Conversion to and from :class:`~enrichkg.node_data.PathwayNodeData` lives on
that class (:meth:`~enrichkg.node_data.PathwayNodeData.to_external`,
:meth:`~enrichkg.node_data.PathwayNodeData.from_external`).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from enrichkg.primitives import CanonicalIdentifier, SubmittedIdentifier

if TYPE_CHECKING:
    from enrichkg.node_data import Counter
    from enrichkg.resources import ResourceRegistry


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@dataclass
class ExternalStatistics:
    """
    One statistics row: a main resource, or ``TOTAL`` for all combined.
    """

    resource: str
    entities_count: int = 0
    entities_found: int = 0
    entities_ratio: float | None = None
    entities_p_value: float | None = None
    entities_fdr: float | None = None
    interactors_count: int = 0
    interactors_found: int = 0
    interactors_ratio: float | None = None
    entities_and_interactors_count: int = 0
    reactions_count: int = 0
    reactions_found: int = 0
    reactions_ratio: float | None = None

    @classmethod
    def from_counter(cls, resource: str, counter: Counter) -> ExternalStatistics:
        return cls(
            resource=resource,
            entities_count=counter.total_entities,
            entities_found=counter.found_entities,
            entities_ratio=counter.entities_ratio,
            entities_p_value=counter.entities_p_value,
            entities_fdr=counter.entities_fdr,
            interactors_count=counter.total_interactors,
            interactors_found=counter.found_interactors,
            interactors_ratio=counter.interactors_ratio,
            entities_and_interactors_count=counter.total_found,
            reactions_count=counter.total_reactions,
            reactions_found=counter.found_reactions,
            reactions_ratio=counter.reactions_ratio,
        )

    def to_counter(self) -> Counter:
        from enrichkg.node_data import Counter

        return Counter(
            total_entities=self.entities_count,
            found_entities=self.entities_found,
            entities_ratio=self.entities_ratio,
            entities_p_value=self.entities_p_value,
            entities_fdr=self.entities_fdr,
            total_interactors=self.interactors_count,
            found_interactors=self.interactors_found,
            interactors_ratio=self.interactors_ratio,
            total_found=self.entities_and_interactors_count,
            total_reactions=self.reactions_count,
            found_reactions=self.reactions_found,
            reactions_ratio=self.reactions_ratio,
        )

    def to_dict(self) -> dict:
        return {
            "resource": self.resource,
            "entitiesCount": self.entities_count,
            "entitiesFound": self.entities_found,
            "entitiesRatio": self.entities_ratio,
            "entitiesPValue": self.entities_p_value,
            "entitiesFDR": self.entities_fdr,
            "interactorsCount": self.interactors_count,
            "interactorsFound": self.interactors_found,
            "interactorsRatio": self.interactors_ratio,
            "entitiesAndInteractorsCount": self.entities_and_interactors_count,
            "reactionsCount": self.reactions_count,
            "reactionsFound": self.reactions_found,
            "reactionsRatio": self.reactions_ratio,
        }

    @classmethod
    def from_dict(cls, d: dict) -> ExternalStatistics:
        return cls(
            resource=d["resource"],
            entities_count=d.get("entitiesCount", 0),
            entities_found=d.get("entitiesFound", 0),
            entities_ratio=d.get("entitiesRatio"),
            entities_p_value=d.get("entitiesPValue"),
            entities_fdr=d.get("entitiesFDR"),
            interactors_count=d.get("interactorsCount", 0),
            interactors_found=d.get("interactorsFound", 0),
            interactors_ratio=d.get("interactorsRatio"),
            entities_and_interactors_count=d.get("entitiesAndInteractorsCount", 0),
            reactions_count=d.get("reactionsCount", 0),
            reactions_found=d.get("reactionsFound", 0),
            reactions_ratio=d.get("reactionsRatio"),
        )


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


@dataclass
class ExternalMainIdentifier:
    """A canonical identifier: resource name, id and expression values."""

    resource: str
    id: str
    exp: list[float | None] = field(default_factory=list)

    @classmethod
    def from_canonical(cls, canonical: CanonicalIdentifier) -> ExternalMainIdentifier:
        return cls(resource=canonical.resource.name, id=canonical.id, exp=list(canonical.value.exp))

    def to_canonical(self, registry: ResourceRegistry) -> CanonicalIdentifier:
        return CanonicalIdentifier(registry.get(self.resource), SubmittedIdentifier(self.id, tuple(self.exp)))

    def to_dict(self) -> dict:
        return {"resource": self.resource, "id": self.id, "exp": list(self.exp)}

    @classmethod
    def from_dict(cls, d: dict) -> ExternalMainIdentifier:
        return cls(resource=d["resource"], id=d["id"], exp=list(d.get("exp") or []))


@dataclass
class ExternalIdentifier:
    """A submitted identifier and the canonical identifiers it resolved to."""

    id: str
    exp: list[float | None] = field(default_factory=list)
    maps_to: list[ExternalMainIdentifier] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "exp": list(self.exp),
            "mapsTo": [m.to_dict() for m in self.maps_to],
        }

    @classmethod
    def from_dict(cls, d: dict) -> ExternalIdentifier:
        return cls(
            id=d["id"],
            exp=list(d.get("exp") or []),
            maps_to=[ExternalMainIdentifier.from_dict(m) for m in d.get("mapsTo", [])],
        )


@dataclass
class ExternalInteraction:
    """One interactor accession and the canonical identifiers it interacts with."""

    maps_to: str
    interaction_id: str | None = None
    interacts_with: list[ExternalMainIdentifier] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "mapsTo": self.maps_to,
            "interactionId": self.interaction_id,
            "interactsWith": [m.to_dict() for m in self.interacts_with],
        }

    @classmethod
    def from_dict(cls, d: dict) -> ExternalInteraction:
        return cls(
            maps_to=d["mapsTo"],
            interaction_id=d.get("interactionId"),
            interacts_with=[ExternalMainIdentifier.from_dict(m) for m in d.get("interactsWith", [])],
        )


@dataclass
class ExternalInteractor:
    """A submitted identifier found through interactions."""

    id: str
    exp: list[float | None] = field(default_factory=list)
    maps_to: list[ExternalInteraction] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "exp": list(self.exp),
            "mapsTo": [m.to_dict() for m in self.maps_to],
        }

    @classmethod
    def from_dict(cls, d: dict) -> ExternalInteractor:
        return cls(
            id=d["id"],
            exp=list(d.get("exp") or []),
            maps_to=[ExternalInteraction.from_dict(m) for m in d.get("mapsTo", [])],
        )


@dataclass
class ExternalReaction:
    """A found reaction and the resources it was found through."""

    db_id: int
    st_id: str | None = None
    resources: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"dbId": self.db_id, "stId": self.st_id, "resources": list(self.resources)}

    @classmethod
    def from_dict(cls, d: dict) -> ExternalReaction:
        return cls(db_id=int(d["dbId"]), st_id=d.get("stId"), resources=list(d.get("resources", [])))


# ---------------------------------------------------------------------------
# Pathway record
# ---------------------------------------------------------------------------


@dataclass
class ExternalPathwayNodeData:
    """
    Transport record of one pathway's analysis result.

    :param pathway_id: Optional pathway identifier.
    :param statistics: Per-resource rows plus the ``TOTAL`` row.
    :param entities: Found submitted identifiers with their canonical mappings.
    :param interactors: Found interactors, or ``None`` when not analysed.
    :param reactions: Found reactions.
    """

    pathway_id: str | None = None
    statistics: list[ExternalStatistics] = field(default_factory=list)
    entities: list[ExternalIdentifier] = field(default_factory=list)
    interactors: list[ExternalInteractor] | None = None
    reactions: list[ExternalReaction] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pathwayId": self.pathway_id,
            "statistics": [s.to_dict() for s in self.statistics],
            "entities": [e.to_dict() for e in self.entities],
            "interactors": (
                [i.to_dict() for i in self.interactors] if self.interactors is not None else None
            ),
            "reactions": [r.to_dict() for r in self.reactions],
        }

    @classmethod
    def from_dict(cls, d: dict) -> ExternalPathwayNodeData:
        interactors = d.get("interactors")
        return cls(
            pathway_id=d.get("pathwayId"),
            statistics=[ExternalStatistics.from_dict(s) for s in d.get("statistics", [])],
            entities=[ExternalIdentifier.from_dict(e) for e in d.get("entities", [])],
            interactors=(
                [ExternalInteractor.from_dict(i) for i in interactors] if interactors is not None else None
            ),
            reactions=[ExternalReaction.from_dict(r) for r in d.get("reactions", [])],
        )

    def to_json(self, *, indent: int | None = 2) -> str:
        """Serialise to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> ExternalPathwayNodeData:
        return cls.from_dict(json.loads(text))
