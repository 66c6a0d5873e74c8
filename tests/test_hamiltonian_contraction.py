from functools import reduce

import numpy as np
import pytest

from entanglepy import (
    Bond,
    ContractConfig,
    Crystal,
    DimensionMismatchError,
    System,
    UnsupportedContractionError,
    entangle_system,
    local_op_to_product_space,
)
from entanglepy.core import PairCoupling, pair_operator, spin_matrices_of_dim, swap_bond_operator
from entanglepy.core.crystal import SymOp, identity_symop
from entanglepy.modeling import inter_unit_operator, merge_bond_operators, ns_in_units


def _chain_crystal(xs) -> Crystal:
    return Crystal(latvecs=np.eye(3), positions=np.asarray([[x, 0.0, 0.0] for x in xs]))


def _heisenberg_dimer(J: float = 1.0) -> System:
    sys = System(_chain_crystal([0.0, 0.5]), (1, 1, 1), spins=0.5, seed=0)
    sys.set_exchange(J, Bond(0, 1))
    return sys


def _decorated_chain() -> System:
    # Four spin-1 atoms with every kind of coupling, grouped as units (0, 3) and (1, 2).
    rng = np.random.default_rng(21)
    sx, sy, sz = spin_matrices_of_dim(3)
    sys = System(_chain_crystal([0.0, 0.2, 0.45, 0.7]), (3, 1, 1), spins=1.0, seed=1)

    sys.set_onsite_coupling(0.3 * sz @ sz, 0)
    sys.set_onsite_coupling(0.2 * sx, 2)
    sys.set_exchange(1.0, Bond(0, 3), biquad=0.15)
    sys.set_exchange(rng.normal(size=(3, 3)), Bond(0, 2))
    sys.set_exchange(0.5, Bond(1, 3))
    sys.set_exchange(0.25, Bond(2, 1, (1, 0, 0)))
    sys.set_pair_coupling(np.kron(sz, sz @ sz), Bond(3, 0, (1, 0, 0)))
    sys.set_external_field([0.1, 0.0, 0.3])
    return sys


def _set_product_state(contracted: System, origin: System, units) -> None:
    for cell in np.ndindex(*origin.latsize):
        for unit, sites in enumerate(units):
            z = reduce(np.kron, [origin.coherents[cell + (s,)] for s in sites])
            contracted.set_coherent(z, cell + (unit,))


def test_dimer_ground_state_matches_pair_spectrum() -> None:
    sys = _heisenberg_dimer()
    model = entangle_system(sys, [(0, 1)])

    onsite = model.system.interactions[0].onsite
    direct = pair_operator(sys.pair_couplings()[0], 2, 2)

    assert model.system.natoms == 1
    assert model.system.N == 4
    assert model.system.pair_couplings() == []
    assert np.allclose(np.linalg.eigvalsh(onsite), np.linalg.eigvalsh(direct))
    assert np.isclose(np.linalg.eigvalsh(onsite)[0], -0.75)


def test_product_state_energy_is_preserved() -> None:
    origin = _decorated_chain()
    origin.randomize_spins()
    units = [(0, 3), (1, 2)]

    model = entangle_system(origin, units)
    _set_product_state(model.system, origin, units)

    assert model.ns_unit == ((3, 3), (3, 3))
    assert model.system.latsize == origin.latsize
    assert np.isclose(model.system.energy(), origin.energy())


def test_reversed_inter_unit_bonds_are_merged() -> None:
    model = entangle_system(_decorated_chain(), [(0, 3), (1, 2)])
    bonds = sorted((pc.bond.i, pc.bond.j, pc.bond.n) for pc in model.system.pair_couplings())

    # (0,2) and (1,3) share one bond, plus one periodic bond per unit.
    assert bonds == [(0, 0, (1, 0, 0)), (0, 1, (0, 0, 0)), (1, 1, (1, 0, 0))]


def test_contracted_g_and_mu_b_follow_config() -> None:
    sys = _heisenberg_dimer()
    sys.mu_b = 0.5
    model = entangle_system(sys, [(0, 1)], config=ContractConfig(contracted_g=2.0))

    assert np.allclose(model.system.gs[0], 2.0 * np.eye(3))
    assert model.system.mu_b == 0.5
    assert np.allclose(model.system.extfield, 0.0)


def test_zeeman_field_is_folded_into_onsite_operator() -> None:
    sys = _heisenberg_dimer(J=0.0)
    sys.set_external_field([0.0, 0.0, 1.0])
    model = entangle_system(sys, [(0, 1)])

    # Both spins aligned with the field: -g mu_b B (1/2 + 1/2).
    assert np.isclose(np.linalg.eigvalsh(model.system.interactions[0].onsite)[0], -2.0)


def test_inter_unit_operator_uses_each_units_identity() -> None:
    sys = System(_chain_crystal([0.0, 0.25, 0.5, 0.75]), (1, 1, 1), spins=0.5)
    sys.set_exchange(1.0, Bond(1, 2))
    model = entangle_system(sys, [(0, 1), (2, 3)])
    info = model.contraction_info

    bond, op = inter_unit_operator(sys.pair_couplings()[0], sys, info, ns_in_units(sys, info))

    spins = spin_matrices_of_dim(2)
    expected = sum(
        np.kron(local_op_to_product_space(s, 1, (2, 2)), local_op_to_product_space(s, 0, (2, 2))) for s in spins
    )
    assert bond == Bond(0, 1, (0, 0, 0))
    assert np.allclose(op, expected)


def test_merge_bond_operators_reorients_reversed_members() -> None:
    crystal = _chain_crystal([0.0, 0.5])
    sx, sy, sz = spin_matrices_of_dim(2)
    pair_data = [
        (Bond(0, 1), np.kron(sx, sz)),
        (Bond(0, 0, (1, 0, 0)), np.kron(sy, sy)),
        (Bond(1, 0), np.kron(sz, sx)),
    ]

    merged = merge_bond_operators(crystal, pair_data, dims=[2, 2])

    assert [bond for bond, _ in merged] == [Bond(0, 1), Bond(0, 0, (1, 0, 0))]
    assert np.allclose(merged[0][1], 2.0 * np.kron(sx, sz))
    assert np.allclose(merged[0][1], np.kron(sx, sz) + swap_bond_operator(np.kron(sz, sx), 2, 2))


def test_merge_rejects_nontrivial_symmetry() -> None:
    # Inversion through atom 0 maps bond 0->1 onto its partner in the neighboring cell.
    inversion = SymOp(rotation=-np.eye(3), translation=np.array([0.5, 0.0, 0.0]))
    crystal = Crystal(
        latvecs=np.eye(3),
        positions=np.asarray([[0.25, 0.0, 0.0], [0.75, 0.0, 0.0]]),
        symops=(identity_symop(), inversion),
    )
    pair_data = [(Bond(0, 1), np.eye(4)), (Bond(0, 1, (-1, 0, 0)), np.eye(4))]

    with pytest.raises(UnsupportedContractionError, match="non-trivial symmetry"):
        merge_bond_operators(crystal, pair_data, dims=[2, 2])


def test_dipole_mode_cannot_be_contracted() -> None:
    sys = System(_chain_crystal([0.0, 0.5]), (1, 1, 1), spins=0.5, mode="dipole")
    with pytest.raises(UnsupportedContractionError, match="dipole"):
        entangle_system(sys, [(0, 1)])


def test_unequal_unit_dimensions_are_rejected() -> None:
    sys = System(_chain_crystal([0.0, 0.3, 0.6]), (1, 1, 1), spins=0.5)
    with pytest.raises(DimensionMismatchError, match="equal dimension") as excinfo:
        entangle_system(sys, [(0, 1)])
    assert excinfo.value.dims == (2, 4)


def test_inhomogeneous_field_is_rejected() -> None:
    sys = System(_chain_crystal([0.0, 0.5]), (2, 1, 1), spins=0.5)
    sys.set_external_field_at([0.0, 0.0, 1.0], (1, 0, 0, 0))
    with pytest.raises(UnsupportedContractionError, match="identical"):
        entangle_system(sys, [(0, 1)])


def test_culled_copies_are_not_double_counted() -> None:
    sys = _heisenberg_dimer()
    sys.randomize_spins()
    model = entangle_system(sys, [(0, 1)])
    _set_product_state(model.system, sys, [(0, 1)])

    assert len(sys.interactions[0].pair) + len(sys.interactions[1].pair) == 2
    assert np.isclose(model.system.energy(), sys.energy())
    assert isinstance(sys.pair_couplings()[0], PairCoupling)
