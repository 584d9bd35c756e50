"""
Shared fixtures: a small two-resource human background.

Hierarchy::

    R-HSA-1 Signal Transduction
        R-HSA-2 MAPK cascade
    R-HSA-3 Metabolism (inferred)

Content (resource: canonical id [synonyms] -> reactions):

    R-HSA-2  UNIPROT P27361 [MAPK3]   -> 101
             UNIPROT P28482 [MAPK1]   -> 102
    R-HSA-1  UNIPROT Q02750 [MAP2K1]  -> 103
    R-HSA-3  UNIPROT P00000           -> 203
             CHEBI   15377  [water]   -> 201
             CHEBI   17234  [glucose] -> 202

Interactor Q99999 interacts with UNIPROT P27361.
"""

import pytest

from enrichkg.builder import BackgroundBuilder
from enrichkg.dataset import AnalysisData
from enrichkg.primitives import Reaction
from enrichkg.resources import ResourceRegistry

SPECIES = "Homo sapiens"


@pytest.fixture()
def registry():
    return ResourceRegistry()


@pytest.fixture()
def uniprot(registry):
    return registry.get("UNIPROT")


@pytest.fixture()
def chebi(registry):
    return registry.get("CHEBI")


@pytest.fixture()
def builder(registry):
    b = BackgroundBuilder(SPECIES, registry=registry)
    b.add_pathway("R-HSA-1", name="Signal Transduction")
    b.add_pathway("R-HSA-2", name="MAPK cascade", parent="R-HSA-1")
    b.add_pathway("R-HSA-3", name="Metabolism", inferred=True)

    b.add_entity("R-HSA-2", "UNIPROT", "P27361", reactions=[Reaction(101, "R-HSA-101")], synonyms=["MAPK3"])
    b.add_entity("R-HSA-2", "UNIPROT", "P28482", reactions=[Reaction(102, "R-HSA-102")], synonyms=["MAPK1"])
    b.add_entity("R-HSA-1", "UNIPROT", "Q02750", reactions=[Reaction(103)], synonyms=["MAP2K1"])
    b.add_entity("R-HSA-3", "UNIPROT", "P00000", reactions=[Reaction(203)])
    b.add_entity("R-HSA-3", "CHEBI", "15377", reactions=[Reaction(201)], synonyms=["water"])
    b.add_entity("R-HSA-3", "CHEBI", "17234", reactions=[Reaction(202)], synonyms=["glucose"])

    b.add_interaction("UNIPROT", "P27361", "Q99999", interaction_id="EBI-1")
    return b


@pytest.fixture()
def background(builder):
    return builder.build()


@pytest.fixture()
def analysis_data(background):
    return AnalysisData([background])
