"""Rebuild a spin Hamiltonian on the contracted crystal of entangled units."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from entanglepy.core.crystal import Crystal
from entanglepy.core.errors import UnsupportedContractionError
from entanglepy.core.operators import (
    coupling_operator,
    local_op_to_product_space,
    spin_matrices_of_dim,
    swap_bond_operator,
)
from entanglepy.core.system import System
from entanglepy.core.types import Array, Bond, ContractionInfo, PairCoupling
from entanglepy.modeling.schema import ContractConfig
from entanglepy.modeling.validators import validate_unit_dimensions

from .crystal_contraction import contract_crystal


logger = logging.getLogger(__name__)

NsUnit = tuple[tuple[int, ...], ...]


@dataclass(frozen=True)
class ContractedModel:
    """Contracted system together with the data needed to map back to the original."""

    system: System
    contraction_info: ContractionInfo
    ns_unit: NsUnit


def ns_in_units(sys: System, info: ContractionInfo) -> NsUnit:
    """Local dimensions of the members of every unit, in subindex order."""

    return tuple(tuple(int(sys.Ns[site]) for site in info.sites_in_unit(u)) for u in range(info.n_units))


def _check_homogeneous_field(sys: System) -> None:
    reference = sys.extfield[0, 0, 0]
    if not np.allclose(sys.extfield, reference[None, None, None]):
        raise UnsupportedContractionError("Contraction requires an external field that is identical in every unit cell.")


def _unit_zeeman_operator(sys: System, info: ContractionInfo, unit: int, ns: tuple[int, ...]) -> Array:
    dim = int(np.prod(ns))
    op = np.zeros((dim, dim), dtype=np.complex128)
    for site in info.sites_in_unit(unit):
        sub = info.subindex_of(site)
        spins = spin_matrices_of_dim(ns[sub])
        field = sys.mu_b * (sys.gs[site].T @ sys.extfield[0, 0, 0, site])
        op -= local_op_to_product_space(np.einsum("b,bij->ij", field, spins), sub, ns)
    return op


def intra_unit_operator(pc: PairCoupling, sys: System, info: ContractionInfo, ns: tuple[int, ...]) -> Array:
    """Fold a coupling that closes inside one unit into an operator on that unit."""

    i, j = pc.bond.i, pc.bond.j
    sub_i, sub_j = info.subindex_of(i), info.subindex_of(j)
    return coupling_operator(
        pc,
        int(sys.Ns[i]),
        int(sys.Ns[j]),
        left=lambda a: local_op_to_product_space(a, sub_i, ns),
        right=lambda b: local_op_to_product_space(b, sub_j, ns),
        dim=int(np.prod(ns)),
    )


def inter_unit_operator(pc: PairCoupling, sys: System, info: ContractionInfo, ns_unit: NsUnit) -> tuple[Bond, Array]:
    """Map a coupling between different units (or cells) onto a bond of the contracted crystal."""

    i, j = pc.bond.i, pc.bond.j
    unit1, sub1 = info.forward[i]
    unit2, sub2 = info.forward[j]
    ns1, ns2 = ns_unit[unit1], ns_unit[unit2]
    dim1, dim2 = int(np.prod(ns1)), int(np.prod(ns2))
    id1, id2 = np.eye(dim1), np.eye(dim2)
    op = coupling_operator(
        pc,
        int(sys.Ns[i]),
        int(sys.Ns[j]),
        left=lambda a: np.kron(local_op_to_product_space(a, sub1, ns1), id2),
        right=lambda b: np.kron(id1, local_op_to_product_space(b, sub2, ns2)),
        dim=dim1 * dim2,
    )
    return Bond(unit1, unit2, pc.bond.n), op


def merge_bond_operators(
    crystal: Crystal,
    pair_data: Sequence[tuple[Bond, Array]],
    dims: Sequence[int],
) -> list[tuple[Bond, Array]]:
    """Sum bond operators per symmetry class of bonds, one exemplar per class.

    Members equal to the reversed exemplar are re-oriented before summation.
    """

    remaining = list(pair_data)
    merged: list[tuple[Bond, Array]] = []
    while remaining:
        exemplar = remaining[0][0]
        reversed_exemplar = exemplar.reversed()
        total = np.zeros_like(remaining[0][1])
        unrelated = []
        for bond, op in remaining:
            if not crystal.is_related_by_symmetry(bond, exemplar):
                unrelated.append((bond, op))
            elif bond == exemplar:
                total += op
            elif bond == reversed_exemplar:
                total += swap_bond_operator(op, dims[bond.i], dims[bond.j])
            else:
                raise UnsupportedContractionError(
                    f"Bond {bond} is related to {exemplar} by a non-trivial symmetry; "
                    "contracted crystals must carry the trivial group."
                )
        merged.append((exemplar, total))
        remaining = unrelated
    return merged


def entangle_system(
    sys: System,
    units: Sequence[Sequence[int]],
    config: ContractConfig | None = None,
) -> ContractedModel:
    """Contract ``units`` of ``sys`` into generalized sites carrying the exact Hamiltonian."""

    config = config or ContractConfig()
    if sys.mode != "SUN":
        raise UnsupportedContractionError("Cannot contract a dipole system; contraction requires SU(N) mode.")
    _check_homogeneous_field(sys)

    contracted_crystal, info = contract_crystal(sys.crystal, units, config=config)
    ns_unit = ns_in_units(sys, info)
    dim = validate_unit_dimensions(ns_unit)
    dims = [dim] * info.n_units

    contracted = System(
        contracted_crystal,
        sys.latsize,
        spins=(dim - 1) / 2.0,
        mode="SUN",
        g=config.contracted_g,
        mu_b=sys.mu_b,
    )

    new_pair_data: list[tuple[Bond, Array]] = []
    for unit in range(info.n_units):
        ns = ns_unit[unit]
        unit_operator = _unit_zeeman_operator(sys, info, unit, ns)
        n_intra = 0
        for site in info.sites_in_unit(unit):
            interaction = sys.interactions[site]
            unit_operator += local_op_to_product_space(interaction.onsite, info.subindex_of(site), ns)
            for pc in interaction.pair:
                if pc.isculled:
                    continue
                if info.contains_bond(pc.bond):
                    unit_operator += intra_unit_operator(pc, sys, info, ns)
                    n_intra += 1
                else:
                    new_pair_data.append(inter_unit_operator(pc, sys, info, ns_unit))
        contracted.set_onsite_coupling(0.5 * (unit_operator + unit_operator.conj().T), unit)
        logger.debug("Unit %d: folded %d intra-unit couplings into the onsite operator.", unit, n_intra)

    merged = merge_bond_operators(contracted_crystal, new_pair_data, dims)
    for bond, op in merged:
        contracted.set_pair_coupling(0.5 * (op + op.conj().T), bond, tol=config.schmidt_tol)
    logger.debug(
        "Registered %d contracted bonds from %d inter-unit couplings.",
        len(merged),
        len(new_pair_data),
    )
    return ContractedModel(system=contracted, contraction_info=info, ns_unit=ns_unit)
