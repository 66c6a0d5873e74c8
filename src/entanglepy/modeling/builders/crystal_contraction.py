"""Contract groups of crystal sites into single sites, and expand them back."""

from __future__ import annotations

import itertools
import logging
from typing import Sequence

import numpy as np

from entanglepy.core.crystal import Crystal
from entanglepy.core.errors import InvalidUnitsError
from entanglepy.core.types import ContractionInfo, InverseData
from entanglepy.modeling.schema import ContractConfig
from entanglepy.modeling.validators import validate_units


logger = logging.getLogger(__name__)


def _check_distinct_positions(
    positions: np.ndarray,
    inverse: Sequence[tuple[InverseData, ...]],
    symprec: float,
) -> None:
    for a, b in itertools.combinations(range(len(positions)), 2):
        d = positions[a] - positions[b]
        if np.all(np.abs(d - np.round(d)) < symprec):
            sites_a = tuple(m.site for m in inverse[a])
            sites_b = tuple(m.site for m in inverse[b])
            raise InvalidUnitsError(
                f"Units {sites_a} and {sites_b} would be placed at the same position of the contracted crystal.",
                sites=sites_a + sites_b,
            )


def contract_crystal(
    crystal: Crystal,
    units: Sequence[Sequence[int]],
    config: ContractConfig | None = None,
) -> tuple[Crystal, ContractionInfo]:
    """Group the sites listed in ``units`` into single sites of a new crystal.

    Ungrouped sites come first in their original order, followed by one site per
    unit (in the given order) placed at the mean of its members' positions. The
    new crystal has trivial symmetry: onsite operators folded from pair couplings
    need not respect the original site symmetry.
    """

    config = config or ContractConfig()
    units = validate_units(units, crystal.natoms)
    grouped = {site for unit in units for site in unit}
    ungrouped = [site for site in range(crystal.natoms) if site not in grouped]
    n_units = len(ungrouped) + len(units)

    forward: list[tuple[int, int]] = [(-1, -1)] * crystal.natoms
    inverse: list[tuple[InverseData, ...]] = [()] * n_units
    new_positions = np.zeros((n_units, 3))

    for unit_idx, site in enumerate(ungrouped):
        new_positions[unit_idx] = crystal.positions[site]
        forward[site] = (unit_idx, 0)
        inverse[unit_idx] = (InverseData(site=site, offset=np.zeros(3)),)

    for k, unit in enumerate(units):
        unit_idx = len(ungrouped) + k
        center = crystal.positions[list(unit)].mean(axis=0)
        new_positions[unit_idx] = center
        members = []
        for sub, site in enumerate(unit):
            forward[site] = (unit_idx, sub)
            members.append(InverseData(site=site, offset=crystal.positions[site] - center))
        inverse[unit_idx] = tuple(members)

    _check_distinct_positions(new_positions, inverse, config.symprec)
    new_crystal = Crystal(latvecs=crystal.latvecs, positions=new_positions, symprec=config.symprec)
    info = ContractionInfo(forward=tuple(forward), inverse=tuple(inverse))
    logger.debug(
        "Contracted %d sites into %d units (%d ungrouped, %d grouped).",
        crystal.natoms,
        n_units,
        len(ungrouped),
        len(units),
    )
    return new_crystal, info


def expand_crystal(contracted_crystal: Crystal, info: ContractionInfo) -> Crystal:
    """Reconstruct the original crystal from a contracted crystal and its contraction info."""

    if contracted_crystal.natoms != info.n_units:
        raise ValueError(
            f"Contracted crystal has {contracted_crystal.natoms} sites but contraction info lists {info.n_units} units."
        )
    positions = np.zeros((info.n_sites, 3))
    for unit_idx, members in enumerate(info.inverse):
        for member in members:
            positions[member.site] = contracted_crystal.positions[unit_idx] + member.offset
    return Crystal(latvecs=contracted_crystal.latvecs, positions=positions, symprec=contracted_crystal.symprec)
