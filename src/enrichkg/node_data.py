"""
node_data.py — PathwayNodeData: per-pathway aggregation and statistics.

For each pathway the analysis keeps three things: (1) the mapping between
the identifiers submitted by the user and the canonical identifiers used for
the result, (2) the reactions hit for each main resource and (3) the result
counters, per main resource and for all resources combined.

The containers play two roles over the lifetime of a node:

* while the background is built they hold the pathway's full content, and
  :meth:`PathwayNodeData.finalize` turns that content into totals and ratios
  relative to the species root before emptying them;
* during an analysis they hold what the submission hit, and
  :meth:`PathwayNodeData.compute_significance` turns those hits into found
  counts and p-values.

The roles are made explicit by :class:`NodeState`::

    BUILDING --finalize--> FINALIZED --start_analysis--> ACCUMULATING
    ACCUMULATING --compute_significance--> SIGNIFICANT
    SIGNIFICANT --start_analysis--> ACCUMULATING

Calls outside these transitions raise :class:`AggregatorStateError`.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from enrichkg.multimap import MultiMap
from enrichkg.primitives import (
    TOTAL,
    CanonicalIdentifier,
    ExternalKey,
    InteractorIdentifier,
    Reaction,
    Resource,
    SubmittedIdentifier,
)
from enrichkg.statistics import calculate_p_value

if TYPE_CHECKING:
    from enrichkg.external import ExternalPathwayNodeData, ExternalStatistics
    from enrichkg.resources import ResourceRegistry

PValueFunction = Callable[[float, int, int], float]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AggregatorStateError(RuntimeError):
    """Raised when a node is used outside its legal lifecycle transitions."""


class BackgroundDataError(ValueError):
    """Raised when pathway content has no matching species denominator."""


# ---------------------------------------------------------------------------
# Counter
# ---------------------------------------------------------------------------


class NodeState(Enum):
    BUILDING = "building"
    FINALIZED = "finalized"
    ACCUMULATING = "accumulating"
    SIGNIFICANT = "significant"


@dataclass
class Counter:
    """
    Result counters for one scope (a main resource, or all combined).

    Totals and ratios are set once by :meth:`PathwayNodeData.finalize`; the
    found counts, p-value and FDR belong to a single analysis run.
    """

    total_entities: int = 0
    found_entities: int = 0
    entities_ratio: float | None = None
    entities_p_value: float | None = None
    entities_fdr: float | None = None

    total_interactors: int = 0
    found_interactors: int = 0
    interactors_ratio: float | None = None

    # entities and interactors, deduplicated by id
    total_found: int = 0

    total_reactions: int = 0
    found_reactions: int = 0
    reactions_ratio: float | None = None

    def reset_found(self) -> None:
        """Clear the per-analysis fields, keeping the build-time ones."""
        self.found_entities = 0
        self.found_interactors = 0
        self.found_reactions = 0
        self.entities_p_value = None
        self.entities_fdr = None


def _ratio(part: int, whole: int, what: str) -> float:
    if whole == 0:
        if part == 0:
            return 0.0
        raise BackgroundDataError(f"{what}: pathway holds {part} but the species total is 0")
    return part / whole


def _finite_ratio(part: int, whole: int) -> float:
    # a pathway without background interactors contributes 0%, not "undefined"
    if whole == 0:
        return 0.0
    value = part / whole
    return value if math.isfinite(value) else 0.0


# ---------------------------------------------------------------------------
# PathwayNodeData
# ---------------------------------------------------------------------------


class PathwayNodeData:
    """
    Aggregated content, hits and statistics of one pathway (or species root).

    Typical build-time use::

        root = PathwayNodeData()
        node = PathwayNodeData()
        node.add_entity(key, canonical)          # for every contained entity
        node.add_reactions(resource, reactions)  # for every resource
        root.finalize(root)
        node.finalize(root)

    Typical analysis-time use::

        run = node.working_copy()
        run.start_analysis()
        run.add_entity(key, canonical)           # for every hit
        run.compute_significance({resource: 40}, not_found=3, include_interactors=False)
        run.entities_p_value()
    """

    def __init__(self) -> None:
        self._state = NodeState.BUILDING

        self._entities: MultiMap[ExternalKey, CanonicalIdentifier] = MultiMap()
        self._reactions: MultiMap[Resource, Reaction] = MultiMap()
        self._interactors: MultiMap[CanonicalIdentifier, InteractorIdentifier] = MultiMap()
        # resource -> ids reachable as entity or interactor; kept in lockstep
        # with _entities and _interactors by the add_* methods
        self._found_total: MultiMap[Resource, str] = MultiMap()

        self._counters: dict[Resource, Counter] = {}
        self._combined = Counter()

    @property
    def state(self) -> NodeState:
        return self._state

    # ------------------------------------------------------------------
    # Lifecycle guards
    # ------------------------------------------------------------------

    def _require(self, *states: NodeState, action: str) -> None:
        if self._state not in states:
            allowed = ", ".join(s.name for s in states)
            raise AggregatorStateError(
                f"cannot {action} in state {self._state.name} (allowed: {allowed})"
            )

    def _require_found(self, action: str) -> None:
        self._require(NodeState.ACCUMULATING, NodeState.SIGNIFICANT, action=action)

    def _counter(self, resource: Resource) -> Counter:
        counter = self._counters.get(resource)
        if counter is None:
            counter = self._counters[resource] = Counter()
        return counter

    def _scope(self, resource: Resource | None) -> Counter | None:
        if resource is None:
            return self._combined
        return self._counters.get(resource)

    # ------------------------------------------------------------------
    # Population / accumulation
    # ------------------------------------------------------------------

    def add_entity(self, key: ExternalKey, canonical: CanonicalIdentifier) -> None:
        """
        Record that *key* resolves to *canonical* within this pathway.

        :param key: Submission-side identifier.
        :param canonical: Canonical identifier it maps to.
        """
        self._require(NodeState.BUILDING, NodeState.ACCUMULATING, action="add entities")
        self._entities.add(key, canonical)
        self._found_total.add(canonical.resource, canonical.id)

    def add_interactor(self, canonical: CanonicalIdentifier, interactor: InteractorIdentifier) -> None:
        """
        Record an interactor of *canonical* within this pathway.

        The interactor's ``maps_to`` accession is counted under the canonical
        identifier's resource.
        """
        self._require(NodeState.BUILDING, NodeState.ACCUMULATING, action="add interactors")
        self._interactors.add(canonical, interactor)
        self._found_total.add(canonical.resource, interactor.maps_to)

    def add_reactions(self, resource: Resource, reactions: Iterable[Reaction]) -> None:
        self._require(NodeState.BUILDING, NodeState.ACCUMULATING, action="add reactions")
        self._reactions.add_many(resource, reactions)

    def merge(self, other: PathwayNodeData) -> None:
        """
        Union the content of *other* into this node (both in ``BUILDING``).

        Used to roll sub-pathway content up into parents; order independent.
        """
        self._require(NodeState.BUILDING, action="merge content")
        other._require(NodeState.BUILDING, action="be merged")
        self._entities.merge(other._entities)
        self._reactions.merge(other._reactions)
        self._interactors.merge(other._interactors)
        self._found_total.merge(other._found_total)

    # ------------------------------------------------------------------
    # Build time
    # ------------------------------------------------------------------

    def finalize(self, species: PathwayNodeData) -> None:
        """
        Turn the contained content into totals and ratios, then drop it.

        Must be called exactly once, after population.  *species* supplies the
        denominators; the species root is finalized against itself.

        :param species: Species root node (``self`` or a non-building node).
        :raises AggregatorStateError: If already finalized, or if *species*
            is another node still in ``BUILDING``.
        :raises BackgroundDataError: If content exists under a resource whose
            species total is zero.
        """
        self._require(NodeState.BUILDING, action="finalize")
        if species is not self and species.state is NodeState.BUILDING:
            raise AggregatorStateError("the species root must be finalized before its pathways")
        combined = self._combined

        # REACTIONS: the combined total is the union, a reaction may be filed
        # under several resources
        all_reactions: set[Reaction] = set()
        for resource, reactions in self._reactions.items():
            counter = self._counter(resource)
            counter.total_reactions = len(reactions)
            all_reactions.update(reactions)
            counter.reactions_ratio = _ratio(
                counter.total_reactions, species.reactions_count(resource), f"reactions[{resource}]"
            )
        combined.total_reactions = len(all_reactions)
        combined.reactions_ratio = _ratio(combined.total_reactions, species.reactions_count(), "reactions")

        # ENTITIES
        entities: MultiMap[Resource, SubmittedIdentifier] = MultiMap()
        for canonical in self._entities.values():
            entities.add(canonical.resource, canonical.value)
        combined.total_entities = 0
        for resource, values in entities.items():
            counter = self._counter(resource)
            counter.total_entities = len(values)
            counter.entities_ratio = _ratio(
                counter.total_entities, species.entities_count(resource), f"entities[{resource}]"
            )
            counter.total_found = len(self._found_total.get(resource))
            combined.total_entities += counter.total_entities
        combined.entities_ratio = _ratio(combined.total_entities, species.entities_count(), "entities")
        combined.total_found = sum(len(ids) for _, ids in self._found_total.items())

        # INTERACTORS, grouped by the resource of the molecule present in the pathway
        interactors: MultiMap[Resource, InteractorIdentifier] = MultiMap()
        for canonical, found in self._interactors.items():
            interactors.add_many(canonical.resource, found)
        combined.total_interactors = 0
        for resource in entities:
            counter = self._counter(resource)
            # distinct accessions; several interaction evidences count once
            counter.total_interactors = len({i.maps_to for i in interactors.get(resource)})
            counter.interactors_ratio = _finite_ratio(
                counter.total_found, species.entities_and_interactors_count(resource)
            )
            combined.total_interactors += counter.total_interactors
        combined.interactors_ratio = _finite_ratio(
            combined.total_found, species.entities_and_interactors_count()
        )

        self._clear_containers()
        self._state = NodeState.FINALIZED

    def _clear_containers(self) -> None:
        self._entities = MultiMap()
        self._reactions = MultiMap()
        self._interactors = MultiMap()
        self._found_total = MultiMap()

    # ------------------------------------------------------------------
    # Analysis time
    # ------------------------------------------------------------------

    def working_copy(self) -> PathwayNodeData:
        """
        Return an independent ``FINALIZED`` copy for one analysis run.

        Build-time totals and ratios are copied; nothing mutable is shared.
        """
        self._require(NodeState.FINALIZED, NodeState.SIGNIFICANT, action="copy")
        copy = PathwayNodeData()
        copy._counters = {r: replace(c) for r, c in self._counters.items()}
        copy._combined = replace(self._combined)
        for counter in (*copy._counters.values(), copy._combined):
            counter.reset_found()
        copy._state = NodeState.FINALIZED
        return copy

    def start_analysis(self) -> None:
        """Reset the hit containers and found counters and start accumulating."""
        self._require(NodeState.FINALIZED, NodeState.SIGNIFICANT, action="start an analysis")
        self._clear_containers()
        for counter in (*self._counters.values(), self._combined):
            counter.reset_found()
        self._state = NodeState.ACCUMULATING

    def compute_significance(
        self,
        sample_size_per_resource: Mapping[Resource, int],
        not_found: int,
        include_interactors: bool,
        p_value: PValueFunction = calculate_p_value,
    ) -> None:
        """
        Derive found counts and p-values from the accumulated hits.

        The p-value is only computed for scopes with at least one hit; other
        scopes keep ``entities_p_value = None``.  FDR is set afterwards via
        :meth:`set_entities_fdr` since it spans all pathways.

        :param sample_size_per_resource: Submitted identifiers resolved per resource.
        :param not_found: Submitted identifiers that resolved to nothing.
        :param include_interactors: Count interactors towards the hits.
        :param p_value: ``(ratio, sample_size, found) -> p`` function.
        """
        self._require(NodeState.ACCUMULATING, action="compute significance")

        for resource, counter in self._counters.items():
            counter.found_entities = len(self._found_entity_values(resource))
            counter.found_reactions = len(self._reactions.get(resource))
            if include_interactors:
                counter.found_interactors = self._distinct_maps_to(resource)
                # union of entities and interactors
                found = len(self._found_total.get(resource))
            else:
                found = counter.found_entities
            if found > 0:
                sample_size = sample_size_per_resource.get(resource, 0) + not_found
                ratio = counter.interactors_ratio if include_interactors else counter.entities_ratio
                counter.entities_p_value = p_value(ratio or 0.0, sample_size, found)

        combined = self._combined
        combined.found_entities = len(self._found_entity_values(None))
        combined.found_reactions = len(self._reactions.values())
        if include_interactors:
            combined.found_interactors = self._distinct_maps_to(None)
            found = sum(len(ids) for _, ids in self._found_total.items())
        else:
            found = combined.found_entities
        if found > 0:
            sample_size = not_found + sum(sample_size_per_resource.values())
            ratio = combined.interactors_ratio if include_interactors else combined.entities_ratio
            combined.entities_p_value = p_value(ratio or 0.0, sample_size, found)

        self._state = NodeState.SIGNIFICANT

    def set_entities_fdr(self, fdr: float, resource: Resource | None = None) -> None:
        """
        Store an externally corrected FDR for *resource* (or the combined scope).

        :raises ValueError: If the node has no statistics for *resource*.
        """
        self._require(NodeState.SIGNIFICANT, action="set the FDR")
        counter = self._scope(resource)
        if counter is None:
            raise ValueError(f"no statistics for resource {resource}")
        counter.entities_fdr = fdr

    def score(self, resource: Resource | None = None) -> float:
        """
        Ranking score ``0.75 * reactions found% + 0.25 * entities found%``.

        :raises ValueError: If the scope is unknown or has no reactions or entities.
        """
        self._require(NodeState.SIGNIFICANT, action="score")
        counter = self._scope(resource)
        if counter is None:
            raise ValueError(f"no statistics for resource {resource}")
        if counter.total_entities == 0 or counter.total_reactions == 0:
            raise ValueError(
                f"cannot score a scope with {counter.total_entities} entities "
                f"and {counter.total_reactions} reactions"
            )
        entities_pct = counter.found_entities / counter.total_entities
        reactions_pct = counter.found_reactions / counter.total_reactions
        return 0.75 * reactions_pct + 0.25 * entities_pct

    def is_scorable(self, resource: Resource | None = None) -> bool:
        counter = self._scope(resource)
        return counter is not None and counter.total_entities > 0 and counter.total_reactions > 0

    # ------------------------------------------------------------------
    # Found-side helpers
    # ------------------------------------------------------------------

    def _found_entity_values(self, resource: Resource | None) -> set[SubmittedIdentifier]:
        return {
            canonical.value
            for canonical in self._entities.values()
            if resource is None or canonical.is_from(resource)
        }

    def _found_interactor_values(self, resource: Resource | None) -> set[InteractorIdentifier]:
        out: set[InteractorIdentifier] = set()
        for canonical, interactors in self._interactors.items():
            if resource is None or canonical.is_from(resource):
                out.update(interactors)
        return out

    def _distinct_maps_to(self, resource: Resource | None) -> int:
        return len({i.maps_to for i in self._found_interactor_values(resource)})

    # ------------------------------------------------------------------
    # Read API: totals (any state after build)
    # ------------------------------------------------------------------

    def resources(self) -> list[Resource]:
        return list(self._counters)

    def entities_count(self, resource: Resource | None = None) -> int:
        counter = self._scope(resource)
        return counter.total_entities if counter else 0

    def interactors_count(self, resource: Resource | None = None) -> int:
        counter = self._scope(resource)
        return counter.total_interactors if counter else 0

    def entities_and_interactors_count(self, resource: Resource | None = None) -> int:
        counter = self._scope(resource)
        return counter.total_found if counter else 0

    def reactions_count(self, resource: Resource | None = None) -> int:
        counter = self._scope(resource)
        return counter.total_reactions if counter else 0

    def entities_ratio(self, resource: Resource | None = None) -> float | None:
        counter = self._scope(resource)
        return counter.entities_ratio if counter else None

    def interactors_ratio(self, resource: Resource | None = None) -> float | None:
        counter = self._scope(resource)
        return counter.interactors_ratio if counter else None

    def reactions_ratio(self, resource: Resource | None = None) -> float | None:
        counter = self._scope(resource)
        return counter.reactions_ratio if counter else None

    def entities_p_value(self, resource: Resource | None = None) -> float | None:
        counter = self._scope(resource)
        return counter.entities_p_value if counter else None

    def entities_fdr(self, resource: Resource | None = None) -> float | None:
        counter = self._scope(resource)
        return counter.entities_fdr if counter else None

    # ------------------------------------------------------------------
    # Read API: found side (after an accumulation pass)
    # ------------------------------------------------------------------

    def has_result(self) -> bool:
        self._require_found("query results")
        return not self._found_total.is_empty()

    def found_entities(self, resource: Resource | None = None) -> set[SubmittedIdentifier]:
        """Distinct canonical identifiers hit (optionally for one resource)."""
        self._require_found("query found entities")
        return self._found_entity_values(resource)

    def entities_found(self, resource: Resource | None = None) -> int:
        return len(self.found_entities(resource))

    def found_interactors(self, resource: Resource | None = None) -> set[InteractorIdentifier]:
        self._require_found("query found interactors")
        return self._found_interactor_values(resource)

    def interactors_found(self, resource: Resource | None = None) -> int:
        """Distinct interactor accessions hit."""
        self._require_found("query found interactors")
        return self._distinct_maps_to(resource)

    def entities_and_interactors_found(self, resource: Resource | None = None) -> int:
        self._require_found("query found totals")
        if resource is None:
            return sum(len(ids) for _, ids in self._found_total.items())
        return len(self._found_total.get(resource))

    def reactions(self, resource: Resource | None = None) -> set[Reaction]:
        self._require_found("query found reactions")
        if resource is None:
            return self._reactions.values()
        return self._reactions.get(resource)

    def reactions_found(self, resource: Resource | None = None) -> int:
        return len(self.reactions(resource))

    def identifier_map(self) -> MultiMap[ExternalKey, CanonicalIdentifier]:
        """Copy of the submitted-key → canonical identifier map."""
        self._require_found("query the identifier map")
        out: MultiMap[ExternalKey, CanonicalIdentifier] = MultiMap()
        out.merge(self._entities)
        return out

    def interactor_map(self) -> MultiMap[CanonicalIdentifier, InteractorIdentifier]:
        self._require_found("query the interactor map")
        out: MultiMap[CanonicalIdentifier, InteractorIdentifier] = MultiMap()
        out.merge(self._interactors)
        return out

    def expression_values_avg(self, resource: Resource | None = None) -> list[float | None]:
        """
        Column-wise average expression of the found identifiers.

        Entities and interactor sources are pooled and deduplicated by id;
        missing values are ignored and an all-missing column averages to ``None``.
        """
        self._require_found("average expression values")
        pooled: dict[str, tuple[float | None, ...]] = {}
        for value in self._found_entity_values(resource):
            pooled.setdefault(value.id, value.exp)
        for interactor in self._found_interactor_values(resource):
            pooled.setdefault(interactor.id, interactor.exp)

        width = max((len(exp) for exp in pooled.values()), default=0)
        averages: list[float | None] = []
        for i in range(width):
            column = np.array(
                [exp[i] for exp in pooled.values() if i < len(exp) and exp[i] is not None],
                dtype=float,
            )
            averages.append(float(column.mean()) if column.size else None)
        return averages

    # ------------------------------------------------------------------
    # External representation
    # ------------------------------------------------------------------

    def statistics_rows(self) -> list[ExternalStatistics]:
        """One statistics row per resource plus the combined ``TOTAL`` row."""
        from enrichkg.external import ExternalStatistics

        self._require(
            NodeState.FINALIZED, NodeState.ACCUMULATING, NodeState.SIGNIFICANT,
            action="export statistics",
        )
        rows = [ExternalStatistics.from_counter(r.name, c) for r, c in self._counters.items()]
        rows.append(ExternalStatistics.from_counter(TOTAL, self._combined))
        return rows

    def to_external(self, pathway_id: str | None = None) -> ExternalPathwayNodeData:
        """
        Export statistics and hits to the transport representation.

        :param pathway_id: Optional pathway identifier stored on the record.
        """
        from enrichkg.external import (
            ExternalIdentifier,
            ExternalInteraction,
            ExternalInteractor,
            ExternalMainIdentifier,
            ExternalPathwayNodeData,
            ExternalReaction,
        )

        self._require_found("export hits")

        entities = []
        for key, canonicals in self._entities.items():
            entity = ExternalIdentifier(id=key.value.id, exp=list(key.value.exp))
            for canonical in sorted(canonicals, key=lambda c: (c.resource.name, c.id)):
                entity.maps_to.append(ExternalMainIdentifier.from_canonical(canonical))
            entities.append(entity)

        interactors: dict[str, ExternalInteractor] = {}
        interactions: dict[tuple[str, str, str | None], ExternalInteraction] = {}
        for canonical, found in self._interactors.items():
            target = ExternalMainIdentifier.from_canonical(canonical)
            for interactor in found:
                record = interactors.get(interactor.id)
                if record is None:
                    record = interactors[interactor.id] = ExternalInteractor(
                        id=interactor.id, exp=list(interactor.exp)
                    )
                ikey = (interactor.id, interactor.maps_to, interactor.interaction_id)
                interaction = interactions.get(ikey)
                if interaction is None:
                    interaction = interactions[ikey] = ExternalInteraction(
                        maps_to=interactor.maps_to, interaction_id=interactor.interaction_id
                    )
                    record.maps_to.append(interaction)
                interaction.interacts_with.append(target)

        reactions: dict[int, ExternalReaction] = {}
        for resource, found_reactions in self._reactions.items():
            for reaction in found_reactions:
                record = reactions.get(reaction.db_id)
                if record is None:
                    record = reactions[reaction.db_id] = ExternalReaction(
                        db_id=reaction.db_id, st_id=reaction.st_id
                    )
                record.resources.append(resource.name)

        return ExternalPathwayNodeData(
            pathway_id=pathway_id,
            statistics=self.statistics_rows(),
            entities=entities,
            interactors=list(interactors.values()) or None,
            reactions=list(reactions.values()),
        )

    @classmethod
    def _from_rows(
        cls, rows: Iterable[ExternalStatistics], registry: ResourceRegistry, state: NodeState
    ) -> PathwayNodeData:
        node = cls()
        for row in rows:
            if row.resource == TOTAL:
                node._combined = row.to_counter()
            else:
                node._counters[registry.get(row.resource)] = row.to_counter()
        node._state = state
        return node

    @classmethod
    def from_statistics(
        cls, rows: Iterable[ExternalStatistics], registry: ResourceRegistry | None = None
    ) -> PathwayNodeData:
        """
        Rebuild a ``FINALIZED`` background node from its statistics rows.

        :param rows: Rows as produced by :meth:`statistics_rows`.
        :param registry: Registry used to resolve resource names.
        """
        from enrichkg.resources import default_registry

        return cls._from_rows(rows, registry or default_registry(), NodeState.FINALIZED)

    @classmethod
    def from_external(
        cls, data: ExternalPathwayNodeData, registry: ResourceRegistry | None = None
    ) -> PathwayNodeData:
        """
        Rebuild an analysed (``SIGNIFICANT``) node from its external record.

        :param data: Record as produced by :meth:`to_external`.
        :param registry: Registry used to resolve resource names.
        :raises UnknownResourceError: If the record names an unregistered resource.
        """
        from enrichkg.resources import default_registry

        registry = registry or default_registry()
        node = cls._from_rows(data.statistics, registry, NodeState.ACCUMULATING)

        for entity in data.entities:
            submitted = SubmittedIdentifier(entity.id, tuple(entity.exp))
            for emi in entity.maps_to:
                canonical = emi.to_canonical(registry)
                node.add_entity(ExternalKey(canonical.resource, submitted), canonical)

        for interactor in data.interactors or ():
            submitted = SubmittedIdentifier(interactor.id, tuple(interactor.exp))
            for interaction in interactor.maps_to:
                found = InteractorIdentifier(submitted, interaction.maps_to, interaction.interaction_id)
                for emi in interaction.interacts_with:
                    node.add_interactor(emi.to_canonical(registry), found)

        for reaction in data.reactions:
            for name in reaction.resources:
                node.add_reactions(registry.get(name), [Reaction(reaction.db_id, reaction.st_id)])

        node._state = NodeState.SIGNIFICANT
        return node

    def __repr__(self) -> str:
        return (
            f"PathwayNodeData(state={self._state.name}, "
            f"resources={[r.name for r in self._counters]}, "
            f"entities={self._combined.total_entities}, "
            f"reactions={self._combined.total_reactions})"
        )
