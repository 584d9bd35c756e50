"""
resources.py — ResourceRegistry: the set of main resources.

A main resource is a source database recognised as authoritative for
canonical identifiers.  The registry is extensible: loaders may register
resources they encounter in a background dataset.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from enrichkg.primitives import TOTAL, Resource

DEFAULT_MAIN_RESOURCES: tuple[str, ...] = (
    "UNIPROT",
    "ENSEMBL",
    "CHEBI",
    "MIRBASE",
    "NCBI_PROTEIN",
    "EMBL",
    "COMPOUND",
    "PUBCHEM_COMPOUND",
    "IUPHAR",
)


class UnknownResourceError(KeyError):
    """Raised when a resource name is not registered."""


class ResourceRegistry:
    """
    Case-insensitive registry of :class:`~enrichkg.primitives.Resource` tokens.

    :param names: Resource names to register up front.
    """

    def __init__(self, names: Iterable[str] = DEFAULT_MAIN_RESOURCES) -> None:
        self._resources: dict[str, Resource] = {}
        for name in names:
            self.register(name)

    def register(self, name: str) -> Resource:
        """
        Register *name* (idempotent) and return its resource.

        :raises ValueError: If *name* is empty or the reserved ``TOTAL``.
        """
        key = name.strip().upper()
        if not key:
            raise ValueError("resource name must not be empty")
        if key == TOTAL:
            raise ValueError(f"{TOTAL!r} is reserved for the combined result")
        resource = self._resources.get(key)
        if resource is None:
            resource = self._resources[key] = Resource(key)
        return resource

    def get(self, name: str) -> Resource:
        """
        Look up a registered resource.

        :raises UnknownResourceError: If *name* is not registered.
        """
        try:
            return self._resources[name.strip().upper()]
        except KeyError:
            raise UnknownResourceError(name) from None

    def names(self) -> list[str]:
        return list(self._resources)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().upper() in self._resources

    def __iter__(self) -> Iterator[Resource]:
        return iter(list(self._resources.values()))

    def __len__(self) -> int:
        return len(self._resources)

    def __repr__(self) -> str:
        return f"ResourceRegistry({self.names()!r})"


_DEFAULT: ResourceRegistry | None = None


def default_registry() -> ResourceRegistry:
    """Return the shared registry pre-populated with the default resources."""
    global _DEFAULT
    if _DEFAULT is None:
        _DEFAULT = ResourceRegistry()
    return _DEFAULT
