"""Propagate supercell reshaping and periodic repetition to entangled systems."""

from __future__ import annotations

import logging
from typing import Sequence

from entanglepy.core.errors import IncompatibleReshapeError
from entanglepy.core.system import System
from entanglepy.core.types import Array, Cell

from .system import EntangledSystem


logger = logging.getLogger(__name__)

UnitImage = tuple[tuple[int, ...], int, Cell]


def _unit_images(reshaped_origin: System, esys: EntangledSystem) -> list[UnitImage]:
    # Pick an unassigned site of the reshaped cell, map it back to the origin
    # system, and carry its whole unit forward with the same lattice translation.
    sys_origin = esys.origin_system()
    info = esys.contraction_info
    original_units = info.original_units()
    crystal = reshaped_origin.crystal

    unassigned = list(range(crystal.natoms))
    images: list[UnitImage] = []
    while unassigned:
        new_atom = unassigned[0]
        new_position = reshaped_origin.position((0, 0, 0, new_atom))
        *cell, original_atom = sys_origin.position_to_site(new_position)
        offset = new_position - sys_origin.position((0, 0, 0, original_atom))
        unit_idx = info.unit_of(original_atom)
        original_unit = original_units[unit_idx]

        new_unit = []
        for atom in original_unit:
            r = sys_origin.position((0, 0, 0, atom)) + offset
            new_cell, new_site = crystal.position_to_site(crystal.fractional(r))
            if new_cell != (0, 0, 0):
                raise IncompatibleReshapeError(
                    f"Specified reshaping is incompatible with entangled unit {original_unit}: "
                    f"site {atom} would fall into neighboring cell {new_cell} of the reshaped system.",
                    unit=original_unit,
                    site=atom,
                )
            if new_site not in unassigned:
                raise IncompatibleReshapeError(
                    f"Reshaped site {new_site} would be assigned to more than one unit.",
                    unit=original_unit,
                    site=atom,
                )
            new_unit.append(new_site)
        images.append((tuple(new_unit), unit_idx, tuple(cell)))
        unassigned = [a for a in unassigned if a not in new_unit]
    return images


def units_for_reshaped_system(reshaped_origin: System, esys: EntangledSystem) -> list[tuple[int, ...]]:
    """Units of ``reshaped_origin`` equivalent to the units of ``esys``, including singletons."""

    return [unit for unit, _, _ in _unit_images(reshaped_origin, esys)]


def reshape_supercell(esys: EntangledSystem, shape: Array) -> EntangledSystem:
    """Reshape the origin system, re-derive units, and rebuild the contraction.

    Coherent states of the contracted units are carried over from the unit
    images of ``esys``.
    """

    new_origin = esys.origin_system().reshape_supercell(shape)
    images = _unit_images(new_origin, esys)
    new_units = [unit for unit, _, _ in images if len(unit) > 1]
    new_esys = EntangledSystem(new_origin, new_units, config=esys.config)

    old_coherents = esys.system.coherents
    for unit, old_unit, cell in images:
        new_unit = new_esys.contraction_info.unit_of(unit[0])
        new_esys.set_coherent(old_coherents[cell + (old_unit,)], (0, 0, 0, new_unit))
    logger.debug("Reshaped entangled system into %d units.", len(images))
    return new_esys


def repeat_periodically(esys: EntangledSystem, counts: Sequence[int]) -> EntangledSystem:
    """Tile both systems; atom indices are per cell, so the contraction info is reused."""

    sys_new = esys.system.repeat_periodically(counts)
    origin_new = esys.origin_system().repeat_periodically(counts)
    return EntangledSystem.from_parts(sys_new, origin_new, esys.contraction_info, esys.ns_unit, config=esys.config)
