"""Pairing of a contracted system with the original system it was built from."""

from __future__ import annotations

import logging
from functools import reduce
from typing import Iterator, Sequence

import numpy as np

from entanglepy.core.errors import UnsupportedOperationError
from entanglepy.core.operators import local_op_to_product_space, spin_matrices_of_dim
from entanglepy.core.system import System
from entanglepy.core.types import Array, ContractionInfo, Site
from entanglepy.modeling.builders import entangle_system
from entanglepy.modeling.builders.hamiltonian_contraction import NsUnit
from entanglepy.modeling.schema import ContractConfig


logger = logging.getLogger(__name__)


def embedded_spin_operators(ns_unit: NsUnit) -> list[list[Array]]:
    """For every unit and member, the ``(3, D, D)`` spin operators embedded in the unit space."""

    return [
        [np.stack([local_op_to_product_space(s, sub, ns) for s in spin_matrices_of_dim(n)]) for sub, n in enumerate(ns)]
        for ns in ns_unit
    ]


class EntangledSystem:
    """A contracted system of entangled units and the origin system it represents.

    The contracted system holds the authoritative state. Dipoles of the origin
    sites are derived from it: every accessor that returns origin data first
    recomputes them with :meth:`sync`, which is cheap and idempotent.
    """

    def __init__(
        self,
        sys_origin: System,
        units: Sequence[Sequence[int]],
        config: ContractConfig | None = None,
    ) -> None:
        config = config or ContractConfig()
        model = entangle_system(sys_origin, units, config=config)
        self._attach(model.system, sys_origin.clone(), model.contraction_info, model.ns_unit, config)
        self._set_product_state()
        logger.debug(
            "Built entangled system with %d units from %d origin sites per cell.",
            model.contraction_info.n_units,
            model.contraction_info.n_sites,
        )

    @classmethod
    def from_parts(
        cls,
        sys: System,
        sys_origin: System,
        contraction_info: ContractionInfo,
        ns_unit: NsUnit,
        config: ContractConfig | None = None,
    ) -> EntangledSystem:
        """Wrap already contracted and origin systems without rebuilding the Hamiltonian."""

        if sys.natoms != contraction_info.n_units or sys_origin.natoms != contraction_info.n_sites:
            raise ValueError("Systems are not consistent with the given contraction info.")
        if sys.latsize != sys_origin.latsize:
            raise ValueError("Contracted and origin systems must share the same latsize.")
        esys = cls.__new__(cls)
        esys._attach(sys, sys_origin, contraction_info, tuple(tuple(ns) for ns in ns_unit), config or ContractConfig())
        return esys

    def _attach(
        self,
        sys: System,
        sys_origin: System,
        contraction_info: ContractionInfo,
        ns_unit: NsUnit,
        config: ContractConfig,
    ) -> None:
        self._sys = sys
        self._sys_origin = sys_origin
        self._contraction_info = contraction_info
        self._ns_unit = ns_unit
        self._config = config
        self._embedded_spins = embedded_spin_operators(ns_unit)

    def _set_product_state(self) -> None:
        # Each unit starts in the product of its members' origin coherent states.
        origin = self._sys_origin.coherents
        for cell in np.ndindex(*self._sys.latsize):
            for unit in range(self._contraction_info.n_units):
                members = [origin[cell + (site,)] for site in self._contraction_info.sites_in_unit(unit)]
                self._sys.set_coherent(reduce(np.kron, members), cell + (unit,))

    # Accessors

    @property
    def system(self) -> System:
        """The contracted system (authoritative state)."""

        return self._sys

    @property
    def contraction_info(self) -> ContractionInfo:
        return self._contraction_info

    @property
    def ns_unit(self) -> NsUnit:
        return self._ns_unit

    @property
    def config(self) -> ContractConfig:
        return self._config

    def original_units(self) -> tuple[tuple[int, ...], ...]:
        return self._contraction_info.original_units()

    def eachsite(self) -> Iterator[Site]:
        """Sites of the contracted system."""

        return self._sys.eachsite()

    # Derived origin data

    def sync(self) -> None:
        """Recompute every origin dipole as ``<psi|S|psi>`` of its unit's coherent state."""

        z = self._sys.coherents
        dipoles = self._sys_origin.dipoles
        for unit, ops in enumerate(self._embedded_spins):
            zu = z[:, :, :, unit, :]
            for site, s_emb in zip(self._contraction_info.sites_in_unit(unit), ops):
                dipoles[:, :, :, site, :] = np.einsum("xyzi,bij,xyzj->xyzb", zu.conj(), s_emb, zu).real

    def dipoles(self) -> Array:
        self.sync()
        return self._sys_origin.dipoles.copy()

    def dipole(self, site: Site) -> Array:
        self.sync()
        return self._sys_origin.dipole(site)

    def magnetic_moment(self, site: Site) -> Array:
        self.sync()
        return self._sys_origin.magnetic_moment(site)

    def origin_system(self) -> System:
        """Snapshot of the origin system with synchronized dipoles."""

        self.sync()
        return self._sys_origin.clone()

    def set_dipole(self, dipole: Array, site: Site) -> None:
        raise UnsupportedOperationError(
            "Setting dipoles of an EntangledSystem is not well defined; set coherent states of the contracted system."
        )

    # Operations on the contracted state

    def energy(self) -> float:
        return self._sys.energy()

    def energy_per_site(self) -> float:
        """Energy per origin site."""

        return self._sys.energy() / self._sys_origin.nsites

    def randomize_spins(self) -> None:
        self._sys.randomize_spins()

    def minimize_energy(self, **kwargs) -> int:
        return self._sys.minimize_energy(**kwargs)

    def set_coherent(self, z: Array, site: Site) -> None:
        """Set the coherent state of a contracted site."""

        self._sys.set_coherent(z, site)
