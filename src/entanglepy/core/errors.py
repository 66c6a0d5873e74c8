"""Typed configuration errors raised by unit contraction."""

from __future__ import annotations


class ContractionError(ValueError):
    """Base class for all contraction configuration errors."""


class InvalidUnitsError(ContractionError):
    """A unit specification double-books a site or does not cover the crystal."""

    def __init__(self, message: str, sites: tuple[int, ...] = ()) -> None:
        super().__init__(message)
        self.sites = tuple(int(s) for s in sites)


class DimensionMismatchError(ContractionError):
    """Local Hilbert-space dimensions are inconsistent."""

    def __init__(self, message: str, dims: tuple[int, ...] = ()) -> None:
        super().__init__(message)
        self.dims = tuple(int(d) for d in dims)


class UnsupportedContractionError(ContractionError):
    """The system cannot be contracted (e.g. classical dipole mode)."""


class IncompatibleReshapeError(ContractionError):
    """A supercell reshaping would split a unit across cell boundaries."""

    def __init__(self, message: str, unit: tuple[int, ...] = (), site: int | None = None) -> None:
        super().__init__(message)
        self.unit = tuple(int(s) for s in unit)
        self.site = site


class UnsupportedOperationError(ContractionError):
    """Derived per-site data was written directly."""
