"""
export.py — Identifier-to-pathway link tables.

Read-only consumers of a background or an analysis result.  Each produces a
:class:`~enrichkg.multimap.MultiMap` from canonical identifier to pathway
ids, which :func:`iter_link_rows` flattens into rows and :func:`write_links`
writes as a tab-delimited file::

    links = background_identifier_pathways(background, registry.get("UNIPROT"))
    write_links(iter_link_rows(links, background), "uniprot2pathways.tsv")
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

from enrichkg.dataset import SpeciesBackground
from enrichkg.multimap import MultiMap
from enrichkg.orchestrator import AnalysisResult
from enrichkg.primitives import Resource, SubmittedIdentifier

logger = logging.getLogger(__name__)

LinkRow = tuple[str, str, str, str, str]

# Traceable Author Statement, Inferred from Electronic Annotation
EVIDENCE_CURATED = "TAS"
EVIDENCE_INFERRED = "IEA"


def background_identifier_pathways(
    background: SpeciesBackground,
    resource: Resource,
) -> MultiMap[SubmittedIdentifier, str]:
    """
    Every canonical identifier of *resource* and the pathways containing it.

    :param background: Finalized species background.
    :param resource: Main resource to export.
    """
    out: MultiMap[SubmittedIdentifier, str] = MultiMap()
    for mapping in background.entity_mappings():
        if mapping.canonical.is_from(resource):
            out.add_many(mapping.canonical.value, mapping.pathways)
    return out


def found_identifier_pathways(
    result: AnalysisResult,
    resource: Resource | None = None,
) -> MultiMap[SubmittedIdentifier, str]:
    """
    The canonical identifiers hit by an analysis and the reported pathways
    they were hit in.
    """
    out: MultiMap[SubmittedIdentifier, str] = MultiMap()
    for pathway in result.pathways:
        for identifier in pathway.data.found_entities(resource):
            out.add(identifier, pathway.pathway_id)
    return out


def iter_link_rows(
    identifier_pathways: MultiMap[SubmittedIdentifier, str],
    background: SpeciesBackground,
) -> Iterator[LinkRow]:
    """
    Flatten a link map into
    ``(identifier, pathway_id, pathway_name, evidence, species)`` rows, sorted
    by identifier then pathway id.  *evidence* is ``IEA`` for inferred
    pathways and ``TAS`` otherwise.
    """
    for identifier in sorted(identifier_pathways.keys()):
        for pathway_id in sorted(identifier_pathways.get(identifier)):
            evidence = EVIDENCE_INFERRED if background.is_inferred(pathway_id) else EVIDENCE_CURATED
            yield (
                identifier.id,
                pathway_id,
                background.pathway_name(pathway_id),
                evidence,
                background.species,
            )


def write_links(rows: Iterable[LinkRow], path: str | Path) -> int:
    """
    Write link rows as a tab-delimited file (no header).

    :param rows: Rows from :func:`iter_link_rows`.
    :param path: Output file; parent directories are created.
    :return: Number of rows written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh, delimiter="\t", lineterminator="\n")
        for row in rows:
            writer.writerow(row)
            count += 1
    logger.info("Wrote %d identifier-pathway links to %s", count, path)
    return count
