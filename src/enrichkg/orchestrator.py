"""
orchestrator.py — PathwayEnricher: over-representation analysis runs.

Owns one analysis request:
    submitted identifiers → index lookups → per-pathway working copies
    → accumulation → significance → FDR across pathways → ranked results
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from enrichkg.dataset import AnalysisData, SpeciesBackground
from enrichkg.multimap import MultiMap
from enrichkg.node_data import PathwayNodeData
from enrichkg.primitives import (
    CanonicalIdentifier,
    ExternalKey,
    InteractorIdentifier,
    Resource,
    SubmittedIdentifier,
)
from enrichkg.statistics import adjust_p_values

logger = logging.getLogger(__name__)

_SORT_KEYS = ("p_value", "score")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class AnalysisConfig:
    """
    Options for an analysis run.

    :param include_interactors: Also resolve submissions through interactors.
    :param fdr_method: ``statsmodels`` multiple-testing method (default ``fdr_bh``).
    :param p_value_cutoff: Keep only pathways whose combined FDR is at most
        this value.  ``None`` keeps all.
    :param min_found: Minimum hits (entities, plus interactors when included)
        a pathway needs to be reported.
    :param sort_by: ``"p_value"`` (default) or ``"score"``.
    """

    include_interactors: bool = False
    fdr_method: str = "fdr_bh"
    p_value_cutoff: float | None = None
    min_found: int = 1
    sort_by: str = "p_value"

    def __post_init__(self) -> None:
        if self.sort_by not in _SORT_KEYS:
            raise ValueError(f"sort_by must be one of {_SORT_KEYS}, got {self.sort_by!r}")
        if self.min_found < 1:
            raise ValueError(f"min_found must be at least 1, got {self.min_found}")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class PathwayResult:
    """
    Analysis result of one pathway.

    :param pathway_id: Pathway identifier.
    :param name: Pathway display name.
    :param data: The analysed (``SIGNIFICANT``) node.
    """

    pathway_id: str
    name: str
    data: PathwayNodeData

    @property
    def p_value(self) -> float | None:
        return self.data.entities_p_value()

    @property
    def fdr(self) -> float | None:
        return self.data.entities_fdr()

    @property
    def score(self) -> float | None:
        """Combined score, or ``None`` when the pathway has no reactions or entities."""
        return self.data.score() if self.data.is_scorable() else None

    def to_dict(self) -> dict:
        """Serialise to a plain dict (transport record plus name and score)."""
        return {
            "name": self.name,
            "score": self.score,
            **self.data.to_external(self.pathway_id).to_dict(),
        }


@dataclass
class AnalysisResult:
    """
    Result of :meth:`PathwayEnricher.analyse`.

    :param species: Species the submission was analysed against.
    :param include_interactors: Whether interactors were counted.
    :param pathways: Ranked pathway results.
    :param found: Submitted identifiers that resolved to something.
    :param not_found: Submitted identifiers that resolved to nothing.
    :param sample_sizes: Resolved submissions per resource name.
    """

    species: str
    include_interactors: bool
    pathways: list[PathwayResult] = field(default_factory=list)
    found: list[SubmittedIdentifier] = field(default_factory=list)
    not_found: list[SubmittedIdentifier] = field(default_factory=list)
    sample_sizes: dict[str, int] = field(default_factory=dict)

    def pathway(self, pathway_id: str) -> PathwayResult | None:
        for result in self.pathways:
            if result.pathway_id == pathway_id:
                return result
        return None

    def found_identifiers(self, resource: Resource | None = None) -> set[SubmittedIdentifier]:
        """Every canonical identifier hit in any reported pathway."""
        out: set[SubmittedIdentifier] = set()
        for result in self.pathways:
            out.update(result.data.found_entities(resource))
        return out

    def to_dict(self) -> dict:
        return {
            "species": self.species,
            "includeInteractors": self.include_interactors,
            "found": [i.id for i in self.found],
            "notFound": [i.id for i in self.not_found],
            "sampleSizes": dict(self.sample_sizes),
            "pathways": [p.to_dict() for p in self.pathways],
        }

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def to_dataframe(self):
        """
        One row per pathway with the combined-scope statistics.

        :return: ``pandas.DataFrame``.
        """
        import pandas as pd

        rows = []
        for p in self.pathways:
            d = p.data
            rows.append({
                "pathway_id": p.pathway_id,
                "name": p.name,
                "entities_found": d.entities_found(),
                "entities_total": d.entities_count(),
                "entities_ratio": d.entities_ratio(),
                "p_value": d.entities_p_value(),
                "fdr": d.entities_fdr(),
                "interactors_found": d.interactors_found(),
                "reactions_found": d.reactions_found(),
                "reactions_total": d.reactions_count(),
                "score": p.score,
            })
        columns = [
            "pathway_id", "name", "entities_found", "entities_total", "entities_ratio",
            "p_value", "fdr", "interactors_found", "reactions_found", "reactions_total", "score",
        ]
        return pd.DataFrame(rows, columns=columns)

    def __str__(self) -> str:
        lines = [
            f"species     : {self.species}",
            f"submitted   : {len(self.found) + len(self.not_found)}  "
            f"(found={len(self.found)}, not found={len(self.not_found)})",
            f"pathways    : {len(self.pathways)}",
        ]
        for p in self.pathways[:10]:
            p_value = f"{p.p_value:.3g}" if p.p_value is not None else "-"
            fdr = f"{p.fdr:.3g}" if p.fdr is not None else "-"
            lines.append(
                f"  {p.pathway_id:<16} p={p_value:<9} fdr={fdr:<9} "
                f"{p.data.entities_found()}/{p.data.entities_count()}  {p.name}"
            )
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# PathwayEnricher
# ---------------------------------------------------------------------------


class PathwayEnricher:
    """
    Runs over-representation analyses against a loaded background.

    Each call to :meth:`analyse` works on fresh working copies of the
    finalized pathway nodes, so one enricher (and one
    :class:`~enrichkg.dataset.AnalysisData`) can serve concurrent requests.

    Typical usage::

        data = AnalysisData.open("background.sqlite")
        enricher = PathwayEnricher(data, AnalysisConfig(include_interactors=True))
        result = enricher.analyse(["P27361", "MAPK1", "CHEBI:15377"], species="Homo sapiens")
        print(result)

    :param data: Background dataset handle.
    :param config: Analysis options.
    """

    def __init__(self, data: AnalysisData, config: AnalysisConfig | None = None) -> None:
        self.data = data
        self.config = config or AnalysisConfig()

    def analyse(
        self,
        identifiers: Iterable[SubmittedIdentifier | str],
        species: str,
    ) -> AnalysisResult:
        """
        Analyse a submission against the background of *species*.

        :param identifiers: Submitted identifiers (strings or
            :class:`~enrichkg.primitives.SubmittedIdentifier` with expression values).
        :param species: Species name.
        :return: :class:`AnalysisResult`.
        :raises ValueError: If *species* is not loaded.
        """
        background = self.data.background(species)
        include_interactors = self.config.include_interactors
        submitted = self._normalise(identifiers)

        runs: dict[str, PathwayNodeData] = {}
        sample: MultiMap[Resource, str] = MultiMap()
        found: list[SubmittedIdentifier] = []
        not_found: list[SubmittedIdentifier] = []

        for identifier in submitted:
            hit = self._accumulate_entities(background, identifier, runs, sample)
            if include_interactors:
                hit = self._accumulate_interactors(background, identifier, runs, sample) or hit
            (found if hit else not_found).append(identifier)

        sample_sizes = {resource: len(ids) for resource, ids in sample.items()}
        for node in runs.values():
            node.compute_significance(sample_sizes, len(not_found), include_interactors)
        self._apply_fdr(runs.values())

        results = [
            PathwayResult(pid, background.pathway_name(pid), node)
            for pid, node in runs.items()
            if self._reportable(node)
        ]
        self._sort(results)

        logger.info(
            "Analysed %d identifiers against %s: %d found, %d not found, %d pathways reported",
            len(submitted), species, len(found), len(not_found), len(results),
        )
        if not_found:
            logger.debug("Not found: %s", ", ".join(i.id for i in not_found[:20]))

        return AnalysisResult(
            species=species,
            include_interactors=include_interactors,
            pathways=results,
            found=found,
            not_found=not_found,
            sample_sizes={r.name: n for r, n in sample_sizes.items()},
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _normalise(identifiers: Iterable[SubmittedIdentifier | str]) -> list[SubmittedIdentifier]:
        """Strip, drop blanks and deduplicate (case-insensitive, first wins)."""
        seen: dict[str, SubmittedIdentifier] = {}
        for item in identifiers:
            if isinstance(item, str):
                item = SubmittedIdentifier(item)
            ident = item.id.strip()
            if not ident:
                continue
            if ident != item.id:
                item = SubmittedIdentifier(ident, item.exp)
            seen.setdefault(ident.upper(), item)
        return list(seen.values())

    @staticmethod
    def _run(background: SpeciesBackground, pathway_id: str, runs: dict[str, PathwayNodeData]) -> PathwayNodeData:
        node = runs.get(pathway_id)
        if node is None:
            node = background.pathway(pathway_id).working_copy()
            node.start_analysis()
            runs[pathway_id] = node
        return node

    def _accumulate_entities(
        self,
        background: SpeciesBackground,
        identifier: SubmittedIdentifier,
        runs: dict[str, PathwayNodeData],
        sample: MultiMap[Resource, str],
    ) -> bool:
        mappings = background.lookup_entities(identifier.id)
        for mapping in mappings:
            resource = mapping.canonical.resource
            sample.add(resource, identifier.id.upper())
            canonical = CanonicalIdentifier(resource, SubmittedIdentifier(mapping.canonical.id, identifier.exp))
            key = ExternalKey(resource, identifier)
            for pathway_id, reactions in mapping.pathways.items():
                node = self._run(background, pathway_id, runs)
                node.add_entity(key, canonical)
                if reactions:
                    node.add_reactions(resource, reactions)
        return bool(mappings)

    def _accumulate_interactors(
        self,
        background: SpeciesBackground,
        identifier: SubmittedIdentifier,
        runs: dict[str, PathwayNodeData],
        sample: MultiMap[Resource, str],
    ) -> bool:
        hit = False
        for found in background.lookup_interactors(identifier.id):
            mapping = background.mapping_for(found.target)
            if mapping is None:
                continue
            hit = True
            resource = found.target.resource
            sample.add(resource, identifier.id.upper())
            canonical = CanonicalIdentifier(resource, SubmittedIdentifier(found.target.id, identifier.exp))
            interactor = InteractorIdentifier(identifier, found.interactor_id, found.interaction_id)
            for pathway_id, reactions in mapping.pathways.items():
                node = self._run(background, pathway_id, runs)
                node.add_interactor(canonical, interactor)
                if reactions:
                    node.add_reactions(resource, reactions)
        return hit

    def _apply_fdr(self, nodes: Iterable[PathwayNodeData]) -> None:
        """Correct p-values across pathways, per resource and for the combined scope."""
        scopes: dict[Resource | None, list[tuple[PathwayNodeData, float]]] = {}
        for node in nodes:
            for scope in (None, *node.resources()):
                p_value = node.entities_p_value(scope)
                if p_value is not None:
                    scopes.setdefault(scope, []).append((node, p_value))

        for scope, entries in scopes.items():
            corrected = adjust_p_values([p for _, p in entries], method=self.config.fdr_method)
            for (node, _), fdr in zip(entries, corrected):
                node.set_entities_fdr(fdr, scope)

    def _reportable(self, node: PathwayNodeData) -> bool:
        if self.config.include_interactors:
            found = node.entities_and_interactors_found()
        else:
            found = node.entities_found()
        if found < self.config.min_found:
            return False
        cutoff = self.config.p_value_cutoff
        if cutoff is not None:
            fdr = node.entities_fdr()
            return fdr is not None and fdr <= cutoff
        return True

    def _sort(self, results: list[PathwayResult]) -> None:
        if self.config.sort_by == "score":
            results.sort(key=lambda r: (r.score is None, -(r.score or 0.0), r.pathway_id))
        else:
            results.sort(
                key=lambda r: (
                    r.p_value is None,
                    r.p_value if r.p_value is not None else 1.0,
                    -(r.score or 0.0),
                    r.pathway_id,
                )
            )
