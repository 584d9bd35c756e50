"""
Tests for enrichkg.store — BackgroundStore SQLite persistence, and
AnalysisData.open on top of it.
"""

import sqlite3

import pytest

from enrichkg.builder import BackgroundBuilder
from enrichkg.dataset import AnalysisData, DatasetUnavailableError
from enrichkg.node_data import NodeState
from enrichkg.store import BackgroundStore


@pytest.fixture()
def store(tmp_path):
    s = BackgroundStore(tmp_path / "background.sqlite")
    yield s
    s.close()


def _rows(node):
    return [r.to_dict() for r in node.statistics_rows()]


class TestWrite:
    def test_stats(self, store, background):
        store.write(background)
        assert store.stats() == {
            "species": 1,
            "pathway_nodes": 3,
            "entity_pathways": 8,
            "entity_names": 11,
            "interactor_index": 1,
        }

    def test_rewrite_replaces_species(self, store, background):
        store.write(background)
        store.write(background)
        assert store.stats()["pathway_nodes"] == 3
        assert store.stats()["interactor_index"] == 1

    def test_species_kept_side_by_side(self, store, background, registry):
        other = BackgroundBuilder("Mus musculus", registry=registry)
        other.add_pathway("R-MMU-1")
        other.add_entity("R-MMU-1", "UNIPROT", "P63085")
        store.write(background)
        store.write(other.build())
        assert store.species() == ["Homo sapiens", "Mus musculus"]

    def test_wipe(self, store, background, registry):
        other = BackgroundBuilder("Mus musculus", registry=registry)
        other.add_pathway("R-MMU-1")
        other.add_entity("R-MMU-1", "UNIPROT", "P63085")
        store.write(other.build())
        store.write(background, wipe=True)
        assert store.species() == ["Homo sapiens"]

    def test_read_only_refuses_writes(self, tmp_path, background):
        path = tmp_path / "background.sqlite"
        with BackgroundStore(path) as s:
            s.write(background)
        with BackgroundStore(path, read_only=True) as ro:
            assert ro.species() == ["Homo sapiens"]
            with pytest.raises(RuntimeError):
                ro.write(background)


class TestLoad:
    def test_round_trip(self, store, background, registry):
        store.write(background)
        loaded = store.load("Homo sapiens", registry=registry)

        assert loaded.pathway_ids() == background.pathway_ids()
        assert loaded.pathway_names() == background.pathway_names()
        assert loaded.inferred_pathways() == ["R-HSA-3"]
        assert _rows(loaded.root) == _rows(background.root)
        for pid in background.pathway_ids():
            node = loaded.pathway(pid)
            assert node.state is NodeState.FINALIZED
            assert _rows(node) == _rows(background.pathway(pid))

    def test_indices_survive(self, store, background, registry):
        store.write(background)
        loaded = store.load("Homo sapiens", registry=registry)

        mapping = loaded.lookup_entities("Mapk3")[0]
        assert dict(mapping.pathways) == dict(background.lookup_entities("MAPK3")[0].pathways)
        reaction = next(iter(mapping.pathways["R-HSA-2"]))
        assert reaction.st_id == "R-HSA-101"

        interactor = loaded.lookup_interactors("Q99999")[0]
        assert interactor.target.id == "P27361"
        assert interactor.interaction_id == "EBI-1"
        assert loaded.mapping_for(interactor.target) is not None

    def test_unknown_species(self, store, background):
        store.write(background)
        with pytest.raises(ValueError):
            store.load("Danio rerio")


class TestAnalysisDataOpen:
    def test_open(self, tmp_path, background):
        path = tmp_path / "background.sqlite"
        with BackgroundStore(path) as s:
            s.write(background)
        data = AnalysisData.open(path)
        assert data.species_names() == ["Homo sapiens"]
        assert "Homo sapiens" in data
        assert len(data) == 1
        assert data.background("Homo sapiens").pathway_name("R-HSA-3") == "Metabolism"

    def test_missing_file(self, tmp_path):
        with pytest.raises(DatasetUnavailableError):
            AnalysisData.open(tmp_path / "missing.sqlite")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.sqlite"
        BackgroundStore(path).close()
        with pytest.raises(DatasetUnavailableError):
            AnalysisData.open(path)

    def test_zero_byte_file(self, tmp_path):
        path = tmp_path / "empty.sqlite"
        path.write_bytes(b"")
        with pytest.raises(DatasetUnavailableError, match="not a background database"):
            AnalysisData.open(path)

    def test_foreign_sqlite_file(self, tmp_path):
        path = tmp_path / "other.sqlite"
        conn = sqlite3.connect(str(path))
        conn.execute("CREATE TABLE nodes (id TEXT)")
        conn.commit()
        conn.close()
        with pytest.raises(DatasetUnavailableError):
            AnalysisData.open(path)

    def test_not_sqlite_at_all(self, tmp_path):
        path = tmp_path / "notes.sqlite"
        path.write_text("just some text, not a database " * 10, encoding="utf-8")
        with pytest.raises(DatasetUnavailableError):
            AnalysisData.open(path)

    def test_unknown_species(self, analysis_data):
        with pytest.raises(ValueError):
            analysis_data.background("Danio rerio")

    def test_duplicate_species(self, background):
        with pytest.raises(ValueError):
            AnalysisData([background, background])

    def test_no_backgrounds(self):
        with pytest.raises(DatasetUnavailableError):
            AnalysisData([])
