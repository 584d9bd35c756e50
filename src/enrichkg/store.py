"""
store.py — BackgroundStore: SQLite persistence of finalized species backgrounds.

Schema:
  species           — one row per species, root statistics as JSON
  pathway_nodes     — finalized pathway statistics rows as JSON
  entity_pathways   — canonical identifier → pathway (+ reactions JSON)
  entity_names      — submitted identifier → canonical identifier
  interactor_index  — interactor accession → canonical identifier

Only build-time state is stored: finalized nodes hold statistics, not
content, so a background round-trips through its statistics rows and indices.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from enrichkg.dataset import EntityMapping, InteractorMapping, SpeciesBackground
from enrichkg.external import ExternalStatistics
from enrichkg.multimap import MultiMap
from enrichkg.node_data import PathwayNodeData
from enrichkg.primitives import CanonicalIdentifier, Reaction, SubmittedIdentifier
from enrichkg.resources import ResourceRegistry, default_registry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS species (
    name        TEXT PRIMARY KEY,
    statistics  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pathway_nodes (
    species     TEXT NOT NULL,
    pathway_id  TEXT NOT NULL,
    name        TEXT,
    inferred    INTEGER NOT NULL DEFAULT 0,
    statistics  TEXT NOT NULL,
    PRIMARY KEY (species, pathway_id)
);

CREATE TABLE IF NOT EXISTS entity_pathways (
    species       TEXT NOT NULL,
    resource      TEXT NOT NULL,
    canonical_id  TEXT NOT NULL,
    pathway_id    TEXT NOT NULL,
    reactions     TEXT NOT NULL,
    PRIMARY KEY (species, resource, canonical_id, pathway_id)
);

CREATE TABLE IF NOT EXISTS entity_names (
    species       TEXT NOT NULL,
    identifier    TEXT NOT NULL,
    resource      TEXT NOT NULL,
    canonical_id  TEXT NOT NULL,
    PRIMARY KEY (species, identifier, resource, canonical_id)
);

CREATE TABLE IF NOT EXISTS interactor_index (
    species         TEXT NOT NULL,
    interactor_id   TEXT NOT NULL,
    interaction_id  TEXT,
    resource        TEXT NOT NULL,
    canonical_id    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_entity_names_id    ON entity_names(species, identifier);
CREATE INDEX IF NOT EXISTS idx_interactor_id      ON interactor_index(species, interactor_id);
"""

_TABLES = ("species", "pathway_nodes", "entity_pathways", "entity_names", "interactor_index")


def _rows_json(node: PathwayNodeData) -> str:
    return json.dumps([row.to_dict() for row in node.statistics_rows()])


def _rows_from_json(text: str) -> list[ExternalStatistics]:
    return [ExternalStatistics.from_dict(d) for d in json.loads(text)]


class BackgroundStore:
    """
    SQLite persistence layer for species backgrounds.

    :param db_path: Path to the SQLite database file.  Created on first write.
    :param read_only: Open an existing file read-only.
    """

    def __init__(self, db_path: str | Path, *, read_only: bool = False) -> None:
        self.db_path = Path(db_path)
        self.read_only = read_only
        if read_only:
            self._conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        if not read_only:
            self._conn.executescript(_SCHEMA_SQL)
            self._conn.commit()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, background: SpeciesBackground, *, wipe: bool = False) -> None:
        """
        Persist *background*, replacing any stored rows for the same species.

        :param background: Finalized species background.
        :param wipe: If ``True``, truncate all tables (every species) first.
        """
        if self.read_only:
            raise RuntimeError(f"{self.db_path} was opened read-only")
        species = background.species
        cur = self._conn.cursor()
        if wipe:
            for table in _TABLES:
                cur.execute(f"DELETE FROM {table}")
        else:
            cur.execute("DELETE FROM species WHERE name=?", (species,))
            for table in _TABLES[1:]:
                cur.execute(f"DELETE FROM {table} WHERE species=?", (species,))

        cur.execute(
            "INSERT INTO species (name, statistics) VALUES (?,?)",
            (species, _rows_json(background.root)),
        )
        names = background.pathway_names()
        cur.executemany(
            "INSERT INTO pathway_nodes (species, pathway_id, name, inferred, statistics) "
            "VALUES (?,?,?,?,?)",
            [
                (
                    species,
                    pid,
                    names.get(pid),
                    int(background.is_inferred(pid)),
                    _rows_json(background.pathway(pid)),
                )
                for pid in background.pathway_ids()
            ],
        )

        pathway_rows = []
        for mapping in background.entity_mappings():
            canonical = mapping.canonical
            for pid, reactions in mapping.pathways.items():
                rxn_json = json.dumps(sorted([r.db_id, r.st_id] for r in reactions))
                pathway_rows.append((species, canonical.resource.name, canonical.id, pid, rxn_json))
        cur.executemany(
            "INSERT OR REPLACE INTO entity_pathways "
            "(species, resource, canonical_id, pathway_id, reactions) VALUES (?,?,?,?,?)",
            pathway_rows,
        )

        name_rows = [
            (species, identifier, m.canonical.resource.name, m.canonical.id)
            for identifier, mappings in background.entity_index().items()
            for m in mappings
        ]
        cur.executemany(
            "INSERT OR IGNORE INTO entity_names (species, identifier, resource, canonical_id) "
            "VALUES (?,?,?,?)",
            name_rows,
        )

        interactor_rows = [
            (species, m.interactor_id, m.interaction_id, m.target.resource.name, m.target.id)
            for mappings in background.interactor_index().values()
            for m in mappings
        ]
        cur.executemany(
            "INSERT INTO interactor_index "
            "(species, interactor_id, interaction_id, resource, canonical_id) VALUES (?,?,?,?,?)",
            interactor_rows,
        )
        self._conn.commit()
        logger.info(
            "Stored %s background in %s: %d pathways, %d identifiers",
            species, self.db_path, len(background.pathway_ids()), len(name_rows),
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def species(self) -> list[str]:
        cur = self._conn.execute("SELECT name FROM species ORDER BY name")
        return [r["name"] for r in cur.fetchall()]

    def load(self, species: str, registry: ResourceRegistry | None = None) -> SpeciesBackground:
        """
        Rebuild the finalized background of *species*.

        :param species: Species name.
        :param registry: Registry resolving stored resource names.
        :raises ValueError: If *species* is not stored.
        :raises UnknownResourceError: If a stored resource is not registered.
        """
        registry = registry or default_registry()
        row = self._conn.execute(
            "SELECT statistics FROM species WHERE name=?", (species,)
        ).fetchone()
        if row is None:
            raise ValueError(f"species {species!r} not found in {self.db_path}")
        root = PathwayNodeData.from_statistics(_rows_from_json(row["statistics"]), registry)

        pathways: dict[str, PathwayNodeData] = {}
        names: dict[str, str] = {}
        inferred: list[str] = []
        cur = self._conn.execute(
            "SELECT pathway_id, name, inferred, statistics FROM pathway_nodes WHERE species=?",
            (species,),
        )
        for r in cur:
            pathways[r["pathway_id"]] = PathwayNodeData.from_statistics(
                _rows_from_json(r["statistics"]), registry
            )
            if r["name"]:
                names[r["pathway_id"]] = r["name"]
            if r["inferred"]:
                inferred.append(r["pathway_id"])

        contained: dict[CanonicalIdentifier, dict[str, frozenset[Reaction]]] = {}
        cur = self._conn.execute(
            "SELECT resource, canonical_id, pathway_id, reactions FROM entity_pathways WHERE species=?",
            (species,),
        )
        for r in cur:
            canonical = CanonicalIdentifier(
                registry.get(r["resource"]), SubmittedIdentifier(r["canonical_id"])
            )
            reactions = frozenset(Reaction(db_id, st_id) for db_id, st_id in json.loads(r["reactions"]))
            contained.setdefault(canonical, {})[r["pathway_id"]] = reactions
        mappings = {c: EntityMapping(c, p) for c, p in contained.items()}

        entity_index: MultiMap[str, CanonicalIdentifier] = MultiMap()
        cur = self._conn.execute(
            "SELECT identifier, resource, canonical_id FROM entity_names WHERE species=?", (species,)
        )
        for r in cur:
            canonical = CanonicalIdentifier(
                registry.get(r["resource"]), SubmittedIdentifier(r["canonical_id"])
            )
            if canonical in mappings:
                entity_index.add(r["identifier"], canonical)

        interactor_index: MultiMap[str, InteractorMapping] = MultiMap()
        cur = self._conn.execute(
            "SELECT interactor_id, interaction_id, resource, canonical_id "
            "FROM interactor_index WHERE species=?",
            (species,),
        )
        for r in cur:
            target = CanonicalIdentifier(registry.get(r["resource"]), SubmittedIdentifier(r["canonical_id"]))
            interactor_index.add(
                r["interactor_id"].upper(),
                InteractorMapping(r["interactor_id"], target, r["interaction_id"]),
            )

        logger.debug("Loaded %s: %d pathways, %d identifiers", species, len(pathways), len(entity_index))
        return SpeciesBackground(
            species,
            root,
            pathways,
            {k: [mappings[c] for c in v] for k, v in entity_index.items()},
            {k: list(v) for k, v in interactor_index.items()},
            pathway_names=names,
            inferred=inferred,
        )

    def stats(self) -> dict[str, int]:
        """
        Row counts per table.

        :return: Dict ``{table_name: row_count}``.
        """
        return {
            table: self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            for table in _TABLES
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> BackgroundStore:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"BackgroundStore(db_path={self.db_path!r}, read_only={self.read_only})"
