"""Validation helpers for unit specifications and contracted dimensions."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

import numpy as np

from entanglepy.core.errors import DimensionMismatchError, InvalidUnitsError


Units = tuple[tuple[int, ...], ...]


def validate_units(units: Sequence[Sequence[int]], natoms: int) -> Units:
    """Check that ``units`` groups each of ``natoms`` sites at most once and return it as tuples."""

    normalized: list[tuple[int, ...]] = []
    for unit in units:
        members = tuple(unit)
        if len(members) == 0:
            raise InvalidUnitsError("Entangled units must not be empty.")
        for site in members:
            if isinstance(site, (bool, np.bool_)) or not isinstance(site, (int, np.integer)):
                raise InvalidUnitsError(f"Unit members must be integer site indices, got {site!r}.")
            if not (0 <= site < natoms):
                raise InvalidUnitsError(f"Site {site} is out of range for a crystal with {natoms} sites.", sites=(site,))
        normalized.append(tuple(int(s) for s in members))

    counts = Counter(site for unit in normalized for site in unit)
    repeated = tuple(sorted(site for site, c in counts.items() if c > 1))
    if repeated:
        raise InvalidUnitsError(f"Invalid entangled unit specification: sites {list(repeated)} appear more than once.", sites=repeated)

    return tuple(normalized)


def validate_unit_dimensions(ns_unit: Sequence[Sequence[int]]) -> int:
    """Return the common contracted dimension, or raise if units differ."""

    dims = tuple(int(np.prod(ns)) for ns in ns_unit)
    if len(set(dims)) != 1:
        raise DimensionMismatchError(
            f"After contraction, the local Hilbert spaces of all units must have equal dimension; got {list(dims)}.",
            dims=dims,
        )
    return dims[0]
