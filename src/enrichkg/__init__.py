"""
enrichkg — Pathway over-representation analysis core.

Aggregates pathway content per main resource, turns it into background
totals and ratios, and scores submitted identifier lists against them with
binomial p-values and Benjamini–Hochberg FDR.

Quick start::

    from enrichkg import AnalysisData, BackgroundBuilder, BackgroundStore, PathwayEnricher

    builder = BackgroundBuilder("Homo sapiens")
    builder.add_pathway("R-HSA-1", name="Signal Transduction")
    builder.add_entity("R-HSA-1", "UNIPROT", "P27361", synonyms=["MAPK3"])
    with BackgroundStore(".enrichkg/background.sqlite") as store:
        store.write(builder.build(), wipe=True)

    data = AnalysisData.open(".enrichkg/background.sqlite")
    result = PathwayEnricher(data).analyse(["MAPK3"], species="Homo sapiens")
    print(result)
"""

from enrichkg.builder import BackgroundBuilder
from enrichkg.dataset import AnalysisData, DatasetUnavailableError, SpeciesBackground
from enrichkg.node_data import AggregatorStateError, BackgroundDataError, NodeState, PathwayNodeData
from enrichkg.orchestrator import AnalysisConfig, AnalysisResult, PathwayEnricher, PathwayResult
from enrichkg.resources import ResourceRegistry, UnknownResourceError, default_registry
from enrichkg.store import BackgroundStore

__all__ = [
    "AggregatorStateError",
    "AnalysisConfig",
    "AnalysisData",
    "AnalysisResult",
    "BackgroundBuilder",
    "BackgroundDataError",
    "BackgroundStore",
    "DatasetUnavailableError",
    "NodeState",
    "PathwayEnricher",
    "PathwayNodeData",
    "PathwayResult",
    "ResourceRegistry",
    "SpeciesBackground",
    "UnknownResourceError",
    "default_registry",
]
