"""
dataset.py — Background dataset handles.

A :class:`SpeciesBackground` bundles everything an analysis needs for one
species: the finalized species root (denominators), one finalized
:class:`~enrichkg.node_data.PathwayNodeData` per pathway, and the indices
resolving submitted identifiers to canonical identifiers and pathways.

:class:`AnalysisData` is an explicit, immutable handle over one or more
species backgrounds.  It is passed to whatever runs analyses; nothing is
cached process-wide.  Finalized nodes are only read during analysis (each run
works on a :meth:`~enrichkg.node_data.PathwayNodeData.working_copy`), so one
handle can be shared by concurrent runs.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from enrichkg.node_data import NodeState, PathwayNodeData
from enrichkg.primitives import CanonicalIdentifier, Reaction
from enrichkg.resources import ResourceRegistry

logger = logging.getLogger(__name__)


class DatasetUnavailableError(RuntimeError):
    """Raised when the background dataset is missing or was never loaded."""


# ---------------------------------------------------------------------------
# Index records
# ---------------------------------------------------------------------------


@dataclass
class EntityMapping:
    """
    A canonical identifier and the pathways that contain it.

    :param canonical: The canonical identifier (no expression values).
    :param pathways: Map ``{pathway_id: reactions the entity takes part in}``.
    """

    canonical: CanonicalIdentifier
    pathways: Mapping[str, frozenset[Reaction]] = field(default_factory=dict)


@dataclass(frozen=True)
class InteractorMapping:
    """
    An interactor accession interacting with a canonical identifier.

    :param interactor_id: Interactor accession.
    :param target: Canonical identifier it interacts with.
    :param interaction_id: Optional id of the interaction evidence.
    """

    interactor_id: str
    target: CanonicalIdentifier
    interaction_id: str | None = None


def _key(identifier: str) -> str:
    return identifier.strip().upper()


# ---------------------------------------------------------------------------
# SpeciesBackground
# ---------------------------------------------------------------------------


class SpeciesBackground:
    """
    Finalized background content of one species.

    Identifier lookups are case-insensitive.

    :param species: Species name.
    :param root: Finalized species root node.
    :param pathways: Map ``{pathway_id: finalized node}``.
    :param entity_index: Map ``{identifier: [EntityMapping, ...]}``.
    :param interactor_index: Map ``{interactor accession: [InteractorMapping, ...]}``.
    :param pathway_names: Map ``{pathway_id: display name}``.
    :param inferred: Pathways inferred from another species rather than curated.
    :raises ValueError: If any node is not finalized.
    """

    def __init__(
        self,
        species: str,
        root: PathwayNodeData,
        pathways: Mapping[str, PathwayNodeData],
        entity_index: Mapping[str, Iterable[EntityMapping]],
        interactor_index: Mapping[str, Iterable[InteractorMapping]] | None = None,
        pathway_names: Mapping[str, str] | None = None,
        inferred: Iterable[str] = (),
    ) -> None:
        for pid, node in (("<root>", root), *pathways.items()):
            if node.state is not NodeState.FINALIZED:
                raise ValueError(f"pathway {pid} is {node.state.name}, expected FINALIZED")
        self.species = species
        self.root = root
        self._pathways = dict(pathways)
        self._names = dict(pathway_names or {})
        self._inferred = frozenset(inferred)
        self._entities = {_key(k): list(v) for k, v in entity_index.items()}
        self._interactors = {_key(k): list(v) for k, v in (interactor_index or {}).items()}

        self._canonical: dict[CanonicalIdentifier, EntityMapping] = {}
        for mappings in self._entities.values():
            for mapping in mappings:
                self._canonical.setdefault(mapping.canonical, mapping)

    # ------------------------------------------------------------------
    # Pathways
    # ------------------------------------------------------------------

    def pathway_ids(self) -> list[str]:
        return list(self._pathways)

    def pathway(self, pathway_id: str) -> PathwayNodeData:
        """
        :raises ValueError: If *pathway_id* is not part of this background.
        """
        try:
            return self._pathways[pathway_id]
        except KeyError:
            raise ValueError(f"unknown pathway {pathway_id!r} for {self.species}") from None

    def pathway_name(self, pathway_id: str) -> str:
        return self._names.get(pathway_id, pathway_id)

    def is_inferred(self, pathway_id: str) -> bool:
        return pathway_id in self._inferred

    def inferred_pathways(self) -> list[str]:
        return [pid for pid in self._pathways if pid in self._inferred]

    # ------------------------------------------------------------------
    # Identifier lookups
    # ------------------------------------------------------------------

    def lookup_entities(self, identifier: str) -> list[EntityMapping]:
        return list(self._entities.get(_key(identifier), ()))

    def lookup_interactors(self, identifier: str) -> list[InteractorMapping]:
        return list(self._interactors.get(_key(identifier), ()))

    def mapping_for(self, canonical: CanonicalIdentifier) -> EntityMapping | None:
        """Return the pathway mapping of *canonical* (expression values are ignored)."""
        return self._canonical.get(canonical)

    def entity_mappings(self) -> list[EntityMapping]:
        """Every canonical identifier of the species, once."""
        return list(self._canonical.values())

    def entity_index(self) -> dict[str, list[EntityMapping]]:
        return {k: list(v) for k, v in self._entities.items()}

    def interactor_index(self) -> dict[str, list[InteractorMapping]]:
        return {k: list(v) for k, v in self._interactors.items()}

    def pathway_names(self) -> dict[str, str]:
        return dict(self._names)

    def __repr__(self) -> str:
        return (
            f"SpeciesBackground(species={self.species!r}, pathways={len(self._pathways)}, "
            f"identifiers={len(self._entities)}, interactors={len(self._interactors)})"
        )


# ---------------------------------------------------------------------------
# AnalysisData
# ---------------------------------------------------------------------------


class AnalysisData:
    """
    Handle over the background content of one or more species.

    Build it from :class:`SpeciesBackground` objects or load it with
    :meth:`open`.

    :param backgrounds: Species backgrounds; species names must be unique.
    """

    def __init__(self, backgrounds: Iterable[SpeciesBackground]) -> None:
        self._backgrounds: dict[str, SpeciesBackground] = {}
        for background in backgrounds:
            if background.species in self._backgrounds:
                raise ValueError(f"duplicate species {background.species!r}")
            self._backgrounds[background.species] = background
        if not self._backgrounds:
            raise DatasetUnavailableError("no species background available")

    @classmethod
    def open(cls, path: str | Path, registry: ResourceRegistry | None = None) -> AnalysisData:
        """
        Load every species stored in a background database.

        :param path: Path written by :class:`~enrichkg.store.BackgroundStore`.
        :param registry: Registry resolving stored resource names.
        :raises DatasetUnavailableError: If the file is missing, empty or not a
            background database.
        """
        from enrichkg.store import BackgroundStore

        path = Path(path)
        if not path.is_file():
            raise DatasetUnavailableError(f"{path} has not been found, please check the settings")

        try:
            with BackgroundStore(path, read_only=True) as store:
                names = store.species()
                if not names:
                    raise DatasetUnavailableError(f"{path} holds no species background")
                backgrounds = [store.load(name, registry=registry) for name in names]
        except sqlite3.DatabaseError as exc:
            raise DatasetUnavailableError(f"{path} is not a background database") from exc

        logger.info("Loaded background for %d species from %s", len(backgrounds), path)
        return cls(backgrounds)

    def species_names(self) -> list[str]:
        return list(self._backgrounds)

    def background(self, species: str) -> SpeciesBackground:
        """
        :raises ValueError: If *species* is not loaded.
        """
        try:
            return self._backgrounds[species]
        except KeyError:
            raise ValueError(
                f"unknown species {species!r}; available: {', '.join(self._backgrounds)}"
            ) from None

    def __contains__(self, species: object) -> bool:
        return species in self._backgrounds

    def __iter__(self) -> Iterator[SpeciesBackground]:
        return iter(list(self._backgrounds.values()))

    def __len__(self) -> int:
        return len(self._backgrounds)
