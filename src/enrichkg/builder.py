"""
builder.py — BackgroundBuilder: populate and finalize a species background.

Takes already-resolved pathway content (which canonical entities each
pathway contains, the reactions they take part in, interactions known for
the species) and produces a :class:`~enrichkg.dataset.SpeciesBackground`:

1. each pathway's direct content is rolled up into all of its ancestors;
2. the species root is populated with the union of all content;
3. the root is finalized against itself, every pathway against the root.

Roll-up is a set-union, so the order content is added in does not matter.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from enrichkg.dataset import EntityMapping, InteractorMapping, SpeciesBackground
from enrichkg.multimap import MultiMap
from enrichkg.node_data import PathwayNodeData
from enrichkg.primitives import (
    CanonicalIdentifier,
    ExternalKey,
    InteractorIdentifier,
    Reaction,
    Resource,
    SubmittedIdentifier,
)
from enrichkg.resources import ResourceRegistry, default_registry

logger = logging.getLogger(__name__)


class BackgroundBuilder:
    """
    Collects pathway content for one species and builds its background.

    Example::

        builder = BackgroundBuilder("Homo sapiens")
        builder.add_pathway("R-HSA-1", name="Signal Transduction")
        builder.add_pathway("R-HSA-2", name="MAPK cascade", parent="R-HSA-1")
        builder.add_entity("R-HSA-2", "UNIPROT", "P27361",
                           reactions=[Reaction(101)], synonyms=["MAPK3"])
        background = builder.build()

    :param species: Species name.
    :param registry: Registry resolving resource names.
    """

    def __init__(self, species: str, registry: ResourceRegistry | None = None) -> None:
        self.species = species
        self.registry = registry or default_registry()
        self._direct: dict[str, PathwayNodeData] = {}
        self._names: dict[str, str] = {}
        self._parents: dict[str, str | None] = {}
        self._inferred: set[str] = set()
        self._entity_pathways: dict[CanonicalIdentifier, MultiMap[str, Reaction]] = {}
        self._synonyms: MultiMap[str, CanonicalIdentifier] = MultiMap()
        self._interactions: dict[tuple[str, CanonicalIdentifier, str | None], InteractorMapping] = {}
        self._built = False

    def _resource(self, resource: str | Resource) -> Resource:
        if isinstance(resource, Resource):
            return resource
        return self.registry.get(resource)

    def _node(self, pathway_id: str) -> PathwayNodeData:
        try:
            return self._direct[pathway_id]
        except KeyError:
            raise ValueError(f"unknown pathway {pathway_id!r}; call add_pathway() first") from None

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def add_pathway(
        self,
        pathway_id: str,
        name: str = "",
        *,
        parent: str | None = None,
        inferred: bool = False,
    ) -> None:
        """
        Register a pathway (idempotent; a later call may set name or parent).

        :param pathway_id: Pathway identifier.
        :param name: Display name.
        :param parent: Identifier of the enclosing pathway, if any.
        :param inferred: The pathway was inferred from another species.
        """
        if pathway_id not in self._direct:
            self._direct[pathway_id] = PathwayNodeData()
            self._parents[pathway_id] = None
        if name:
            self._names[pathway_id] = name
        if parent is not None:
            self._parents[pathway_id] = parent
        if inferred:
            self._inferred.add(pathway_id)

    def add_entity(
        self,
        pathway_id: str,
        resource: str | Resource,
        canonical_id: str,
        reactions: Iterable[Reaction] = (),
        synonyms: Iterable[str] = (),
    ) -> CanonicalIdentifier:
        """
        Record a canonical entity directly contained in *pathway_id*.

        :param pathway_id: Pathway that contains the entity.
        :param resource: Main resource (name or :class:`Resource`).
        :param canonical_id: Identifier within *resource*.
        :param reactions: Reactions of the pathway the entity takes part in.
        :param synonyms: Other identifiers resolving to this entity.
        :return: The canonical identifier.
        :raises UnknownResourceError: If *resource* is not registered.
        """
        node = self._node(pathway_id)
        res = self._resource(resource)
        canonical_id = canonical_id.strip()
        canonical = CanonicalIdentifier(res, SubmittedIdentifier(canonical_id))
        reactions = list(reactions)

        node.add_entity(ExternalKey(res, canonical.value), canonical)
        if reactions:
            node.add_reactions(res, reactions)

        self._entity_pathways.setdefault(canonical, MultiMap()).add_many(pathway_id, reactions)
        self._synonyms.add(canonical_id.upper(), canonical)
        for synonym in synonyms:
            self._synonyms.add(synonym.strip().upper(), canonical)
        return canonical

    def add_interaction(
        self,
        resource: str | Resource,
        canonical_id: str,
        interactor_id: str,
        interaction_id: str | None = None,
    ) -> None:
        """
        Record that *interactor_id* interacts with a canonical entity.

        Applies to every pathway containing the entity.  The interactor
        accession is stripped and upper-cased.
        """
        interactor_id = interactor_id.strip().upper()
        target = CanonicalIdentifier(self._resource(resource), SubmittedIdentifier(canonical_id.strip()))
        self._interactions.setdefault(
            (interactor_id, target, interaction_id),
            InteractorMapping(interactor_id, target, interaction_id),
        )

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _lineage(self, pathway_id: str) -> list[str]:
        """*pathway_id* followed by all of its ancestors."""
        lineage = [pathway_id]
        parent = self._parents.get(pathway_id)
        while parent is not None:
            if parent in lineage:
                raise ValueError(f"pathway hierarchy has a cycle through {parent!r}")
            if parent not in self._direct:
                raise ValueError(f"pathway {lineage[-1]!r} has unknown parent {parent!r}")
            lineage.append(parent)
            parent = self._parents.get(parent)
        return lineage

    def build(self) -> SpeciesBackground:
        """
        Roll up, finalize and index the collected content.

        :return: The finalized species background.
        :raises RuntimeError: If called more than once.
        :raises ValueError: On unknown parents or hierarchy cycles.
        """
        if self._built:
            raise RuntimeError("build() may only be called once per builder")
        self._built = True

        # interactors attach to every pathway directly containing their target
        for mapping in self._interactions.values():
            containing = self._entity_pathways.get(mapping.target)
            if containing is None:
                logger.debug("Interactor %s targets %s, absent from all pathways",
                             mapping.interactor_id, mapping.target)
                continue
            interactor = InteractorIdentifier(
                SubmittedIdentifier(mapping.interactor_id), mapping.interactor_id, mapping.interaction_id
            )
            for pathway_id in containing:
                self._direct[pathway_id].add_interactor(mapping.target, interactor)

        lineages = {pid: self._lineage(pid) for pid in self._direct}

        nodes = {pid: PathwayNodeData() for pid in self._direct}
        root = PathwayNodeData()
        for pid, direct in self._direct.items():
            for ancestor in lineages[pid]:
                nodes[ancestor].merge(direct)
            root.merge(direct)

        root.finalize(root)
        for node in nodes.values():
            node.finalize(root)

        mappings: dict[CanonicalIdentifier, EntityMapping] = {}
        for canonical, direct_pathways in self._entity_pathways.items():
            rolled: MultiMap[str, Reaction] = MultiMap()
            for pid, reactions in direct_pathways.items():
                for ancestor in lineages[pid]:
                    rolled.add_many(ancestor, reactions)
            mappings[canonical] = EntityMapping(
                canonical, {pid: frozenset(reactions) for pid, reactions in rolled.items()}
            )

        entity_index = {
            identifier: [mappings[c] for c in canonicals]
            for identifier, canonicals in self._synonyms.items()
        }
        interactor_index: MultiMap[str, InteractorMapping] = MultiMap()
        for (interactor_id, _, _), mapping in self._interactions.items():
            interactor_index.add(interactor_id.upper(), mapping)

        logger.info(
            "Built %s background: %d pathways, %d entities, %d reactions, %d interactions",
            self.species,
            len(nodes),
            root.entities_count(),
            root.reactions_count(),
            len(self._interactions),
        )
        return SpeciesBackground(
            self.species,
            root,
            nodes,
            entity_index,
            {k: list(v) for k, v in interactor_index.items()},
            pathway_names=self._names,
            inferred=self._inferred,
        )
