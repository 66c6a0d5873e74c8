import numpy as np
import pytest

from entanglepy import (
    Bond,
    ContractionInfo,
    Crystal,
    InvalidUnitsError,
    System,
    contract_crystal,
    diamond_crystal,
    expand_crystal,
    ns_in_units,
)
from entanglepy.core.types import InverseData
from entanglepy.modeling import validate_units


DIAMOND_DIMERS = [(0, 2), (1, 3), (4, 6), (5, 7)]
DIAMOND_TETRAMERS = [(0, 2, 4, 5), (1, 3, 6, 7)]


def _assert_bijection(info: ContractionInfo, natoms: int) -> None:
    seen = set()
    for unit, members in enumerate(info.inverse):
        for sub, member in enumerate(members):
            assert info.forward[member.site] == (unit, sub)
            seen.add(member.site)
    assert seen == set(range(natoms))


def test_diamond_dimers_contract_to_four_units() -> None:
    crystal = diamond_crystal()
    contracted, info = contract_crystal(crystal, DIAMOND_DIMERS)

    assert contracted.natoms == 4
    assert contracted.is_trivial_symmetry
    assert info.n_sites == 8
    assert info.n_units == 4
    assert info.forward[1] == (1, 0)
    assert info.forward[6] == (2, 1)
    assert np.allclose(contracted.positions[0], [0.0, 0.25, 0.25])
    _assert_bijection(info, crystal.natoms)


def test_diamond_tetramers_contract_to_two_units() -> None:
    crystal = diamond_crystal()
    contracted, info = contract_crystal(crystal, DIAMOND_TETRAMERS)

    assert contracted.natoms == 2
    assert info.original_units() == tuple(DIAMOND_TETRAMERS)
    assert info.sites_in_unit(1) == (1, 3, 6, 7)
    _assert_bijection(info, crystal.natoms)


def test_partial_grouping_keeps_ungrouped_sites_first() -> None:
    crystal = diamond_crystal()
    contracted, info = contract_crystal(crystal, [(0, 2)])

    assert contracted.natoms == 7
    assert [info.forward[s] for s in (1, 3, 4, 5, 6, 7)] == [(k, 0) for k in range(6)]
    assert info.forward[0] == (6, 0)
    assert info.forward[2] == (6, 1)
    assert np.allclose(contracted.positions[0], crystal.positions[1])
    _assert_bijection(info, crystal.natoms)


@pytest.mark.parametrize("units", [DIAMOND_DIMERS, DIAMOND_TETRAMERS, [(0, 2)], []])
def test_expand_recovers_original_positions(units) -> None:
    crystal = diamond_crystal(a=3.5)
    contracted, info = contract_crystal(crystal, units)
    expanded = expand_crystal(contracted, info)

    assert expanded.natoms == crystal.natoms
    assert np.allclose(expanded.positions, crystal.positions)
    assert np.allclose(expanded.latvecs, crystal.latvecs)


def test_unit_offsets_sum_to_zero() -> None:
    _, info = contract_crystal(diamond_crystal(), DIAMOND_TETRAMERS)
    for members in info.inverse:
        assert np.allclose(sum(m.offset for m in members), 0.0)


def test_member_order_does_not_change_geometry() -> None:
    crystal = diamond_crystal()
    a, info_a = contract_crystal(crystal, [(0, 2), (5, 7)])
    b, info_b = contract_crystal(crystal, [(7, 5), (2, 0)])

    assert set(map(tuple, np.round(a.positions, 8))) == set(map(tuple, np.round(b.positions, 8)))
    assert info_b.forward[2] == (info_b.n_units - 1, 0)
    assert np.allclose(expand_crystal(b, info_b).positions, crystal.positions)


def test_repeated_site_is_rejected() -> None:
    with pytest.raises(InvalidUnitsError, match="more than once") as excinfo:
        contract_crystal(diamond_crystal(), [(0, 2), (2, 3)])
    assert excinfo.value.sites == (2,)


def test_out_of_range_site_is_rejected() -> None:
    with pytest.raises(InvalidUnitsError, match="out of range"):
        contract_crystal(diamond_crystal(), [(0, 8)])


def test_empty_unit_is_rejected() -> None:
    with pytest.raises(InvalidUnitsError, match="empty"):
        validate_units([(0, 1), ()], natoms=4)


def test_non_integer_member_is_rejected() -> None:
    with pytest.raises(InvalidUnitsError, match="integer"):
        validate_units([(0, 1.0)], natoms=4)


def test_invalid_units_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        validate_units([(0, 0)], natoms=2)


def test_expand_rejects_mismatched_contraction_info() -> None:
    crystal = diamond_crystal()
    contracted, _ = contract_crystal(crystal, DIAMOND_DIMERS)
    _, other_info = contract_crystal(crystal, DIAMOND_TETRAMERS)
    with pytest.raises(ValueError, match="units"):
        expand_crystal(contracted, other_info)


def test_contraction_info_rejects_inconsistent_maps() -> None:
    inverse = ((InverseData(site=1, offset=np.zeros(3)),), (InverseData(site=0, offset=np.zeros(3)),))
    with pytest.raises(ValueError, match="disagree"):
        ContractionInfo(forward=((0, 0), (1, 0)), inverse=inverse)


def test_bonds_in_unit_and_contains_bond() -> None:
    _, info = contract_crystal(diamond_crystal(), DIAMOND_TETRAMERS)
    bonds = info.bonds_in_unit(0)

    assert len(bonds) == 6
    assert all(info.contains_bond(b) for b in bonds)
    assert not info.contains_bond(Bond(0, 1, (0, 0, 0)))
    assert not info.contains_bond(Bond(0, 2, (1, 0, 0)))


def test_coinciding_unit_centers_are_rejected() -> None:
    square = Crystal(
        latvecs=np.eye(3),
        positions=np.asarray([[0.0, 0.0, 0.0], [0.5, 0.5, 0.0], [0.5, 0.0, 0.0], [0.0, 0.5, 0.0]]),
    )
    with pytest.raises(InvalidUnitsError, match="same position") as excinfo:
        contract_crystal(square, [(0, 1), (2, 3)])
    assert excinfo.value.sites == (0, 1, 2, 3)


def test_diamond_tetramer_local_dimensions() -> None:
    crystal = diamond_crystal()
    sys = System(crystal, (1, 1, 1), spins=0.5)
    _, info = contract_crystal(crystal, DIAMOND_TETRAMERS)

    assert ns_in_units(sys, info) == ((2,) * 4, (2,) * 4)
