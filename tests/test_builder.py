"""
Tests for enrichkg.builder — BackgroundBuilder roll-up, finalization and indices.
"""

import pytest

from enrichkg.builder import BackgroundBuilder
from enrichkg.dataset import SpeciesBackground
from enrichkg.node_data import NodeState, PathwayNodeData
from enrichkg.primitives import CanonicalIdentifier, Reaction, SubmittedIdentifier
from enrichkg.resources import UnknownResourceError


class TestBuild:
    def test_pathways_and_names(self, background):
        assert background.species == "Homo sapiens"
        assert background.pathway_ids() == ["R-HSA-1", "R-HSA-2", "R-HSA-3"]
        assert background.pathway_name("R-HSA-2") == "MAPK cascade"
        assert background.pathway_name("R-HSA-404") == "R-HSA-404"

    def test_all_nodes_finalized(self, background):
        assert background.root.state is NodeState.FINALIZED
        for pid in background.pathway_ids():
            assert background.pathway(pid).state is NodeState.FINALIZED

    def test_species_root_totals(self, background, uniprot, chebi):
        root = background.root
        assert root.entities_count(uniprot) == 4
        assert root.entities_count(chebi) == 2
        assert root.entities_count() == 6
        assert root.reactions_count(uniprot) == 4
        assert root.reactions_count() == 6
        # four proteins plus the interactor
        assert root.entities_and_interactors_count(uniprot) == 5
        assert root.entities_ratio() == pytest.approx(1.0)

    def test_child_rolled_into_parent(self, background, uniprot):
        parent = background.pathway("R-HSA-1")
        assert parent.entities_count(uniprot) == 3
        assert parent.entities_ratio(uniprot) == pytest.approx(0.75)
        assert parent.reactions_count() == 3
        assert parent.interactors_count(uniprot) == 1

    def test_leaf_ratios(self, background, uniprot):
        leaf = background.pathway("R-HSA-2")
        assert leaf.entities_count(uniprot) == 2
        assert leaf.entities_ratio(uniprot) == pytest.approx(0.5)
        assert leaf.reactions_ratio(uniprot) == pytest.approx(0.5)
        assert leaf.reactions_ratio() == pytest.approx(2 / 6)
        assert leaf.interactors_ratio(uniprot) == pytest.approx(3 / 5)

    def test_mixed_resources(self, background, uniprot, chebi):
        node = background.pathway("R-HSA-3")
        assert node.resources() == [uniprot, chebi]
        assert node.entities_ratio() == pytest.approx(0.5)
        assert node.entities_ratio(chebi) == pytest.approx(1.0)

    def test_order_independent(self, registry):
        def build(order):
            b = BackgroundBuilder("Homo sapiens", registry=registry)
            b.add_pathway("A")
            b.add_pathway("B", parent="A")
            entities = [
                ("B", "UNIPROT", "P1", [Reaction(1)]),
                ("A", "UNIPROT", "P2", [Reaction(2)]),
                ("B", "CHEBI", "15377", [Reaction(1)]),
            ]
            for pid, res, ident, rxns in (entities if order else entities[::-1]):
                b.add_entity(pid, res, ident, reactions=rxns)
            return b.build()

        forward, backward = build(True), build(False)
        for pid in ("A", "B"):
            rows_f = {r.resource: r.to_dict() for r in forward.pathway(pid).statistics_rows()}
            rows_b = {r.resource: r.to_dict() for r in backward.pathway(pid).statistics_rows()}
            assert rows_f == rows_b


class TestIndices:
    def test_synonym_lookup_case_insensitive(self, background):
        mappings = background.lookup_entities("mapk3")
        assert len(mappings) == 1
        mapping = mappings[0]
        assert mapping.canonical.id == "P27361"
        assert set(mapping.pathways) == {"R-HSA-1", "R-HSA-2"}
        assert mapping.pathways["R-HSA-1"] == frozenset({Reaction(101)})

    def test_canonical_id_resolves_to_itself(self, background):
        assert background.lookup_entities(" p27361 ")[0].canonical.id == "P27361"

    def test_unknown_identifier(self, background):
        assert background.lookup_entities("NOPE") == []

    def test_interactor_lookup(self, background, uniprot):
        found = background.lookup_interactors("q99999")
        assert len(found) == 1
        assert found[0].interaction_id == "EBI-1"
        assert found[0].target == CanonicalIdentifier(uniprot, SubmittedIdentifier("P27361"))

    def test_mapping_for_ignores_expression(self, background, uniprot):
        canonical = CanonicalIdentifier(uniprot, SubmittedIdentifier("P27361", (1.0, 2.0)))
        assert background.mapping_for(canonical).canonical.id == "P27361"
        assert background.mapping_for(CanonicalIdentifier(uniprot, SubmittedIdentifier("X"))) is None

    def test_entity_mappings_unique(self, background):
        ids = [m.canonical.id for m in background.entity_mappings()]
        assert sorted(ids) == ["15377", "17234", "P00000", "P27361", "P28482", "Q02750"]


class TestErrors:
    def test_unknown_pathway(self, registry):
        b = BackgroundBuilder("Homo sapiens", registry=registry)
        with pytest.raises(ValueError):
            b.add_entity("R-HSA-1", "UNIPROT", "P1")

    def test_unknown_resource(self, registry):
        b = BackgroundBuilder("Homo sapiens", registry=registry)
        b.add_pathway("R-HSA-1")
        with pytest.raises(UnknownResourceError):
            b.add_entity("R-HSA-1", "NOPE", "P1")

    def test_cycle(self, registry):
        b = BackgroundBuilder("Homo sapiens", registry=registry)
        b.add_pathway("A", parent="B")
        b.add_pathway("B", parent="A")
        with pytest.raises(ValueError, match="cycle"):
            b.build()

    def test_unknown_parent(self, registry):
        b = BackgroundBuilder("Homo sapiens", registry=registry)
        b.add_pathway("A", parent="MISSING")
        with pytest.raises(ValueError, match="unknown parent"):
            b.build()

    def test_build_once(self, builder):
        builder.build()
        with pytest.raises(RuntimeError):
            builder.build()

    def test_background_requires_finalized_nodes(self):
        root = PathwayNodeData()
        with pytest.raises(ValueError):
            SpeciesBackground("Homo sapiens", root, {}, {})


class TestNormalisation:
    def test_canonical_id_stripped(self, registry):
        b = BackgroundBuilder("Homo sapiens", registry=registry)
        b.add_pathway("A")
        canonical = b.add_entity("A", "UNIPROT", " P1 ")
        background = b.build()
        assert canonical.id == "P1"
        assert background.lookup_entities("p1")[0].canonical.id == "P1"

    def test_interactor_accession_upper_cased(self, registry, uniprot):
        b = BackgroundBuilder("Homo sapiens", registry=registry)
        b.add_pathway("A")
        b.add_entity("A", "UNIPROT", "P1")
        b.add_entity("A", "UNIPROT", "P2")
        b.add_interaction("UNIPROT", "P1", " p2 ")
        background = b.build()

        assert background.lookup_interactors("P2")[0].interactor_id == "P2"
        # P2 reachable as entity and as interactor counts once
        assert background.pathway("A").entities_and_interactors_count(uniprot) == 2

    def test_interaction_evidences_count_one_interactor(self, registry, uniprot):
        b = BackgroundBuilder("Homo sapiens", registry=registry)
        b.add_pathway("A")
        b.add_entity("A", "UNIPROT", "P1")
        b.add_interaction("UNIPROT", "P1", "Q9", interaction_id="EBI-1")
        b.add_interaction("UNIPROT", "P1", "Q9", interaction_id="EBI-2")
        background = b.build()

        node = background.pathway("A")
        assert node.interactors_count(uniprot) == 1
        assert node.interactors_count() == 1
        assert len(background.lookup_interactors("Q9")) == 2

    def test_inferred_pathways(self, background):
        assert background.is_inferred("R-HSA-3")
        assert not background.is_inferred("R-HSA-1")
        assert background.inferred_pathways() == ["R-HSA-3"]
