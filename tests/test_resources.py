"""
Tests for enrichkg.resources — ResourceRegistry.
"""

import pytest

from enrichkg.primitives import Resource
from enrichkg.resources import (
    DEFAULT_MAIN_RESOURCES,
    ResourceRegistry,
    UnknownResourceError,
    default_registry,
)


class TestResourceRegistry:
    def test_defaults_registered(self):
        reg = ResourceRegistry()
        assert reg.names() == list(DEFAULT_MAIN_RESOURCES)
        assert len(reg) == len(DEFAULT_MAIN_RESOURCES)

    def test_lookup_is_case_insensitive(self):
        reg = ResourceRegistry()
        assert reg.get("uniprot") == Resource("UNIPROT")
        assert reg.get(" ChEBI ") is reg.get("CHEBI")
        assert "uniprot" in reg

    def test_unknown_resource(self):
        with pytest.raises(UnknownResourceError):
            ResourceRegistry().get("NOPE")

    def test_unknown_resource_is_key_error(self):
        with pytest.raises(KeyError):
            ResourceRegistry().get("NOPE")

    def test_register_is_idempotent(self):
        reg = ResourceRegistry(names=())
        first = reg.register("gene_db")
        second = reg.register("GENE_DB")
        assert first is second
        assert reg.names() == ["GENE_DB"]

    def test_total_is_reserved(self):
        with pytest.raises(ValueError):
            ResourceRegistry(names=()).register("total")

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            ResourceRegistry(names=()).register("  ")

    def test_iteration_yields_resources(self):
        reg = ResourceRegistry(names=("A", "B"))
        assert list(reg) == [Resource("A"), Resource("B")]

    def test_default_registry_is_shared(self):
        assert default_registry() is default_registry()
        assert "UNIPROT" in default_registry()
