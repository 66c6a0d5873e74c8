from .crystal_contraction import contract_crystal, expand_crystal
from .hamiltonian_contraction import (
    ContractedModel,
    entangle_system,
    inter_unit_operator,
    intra_unit_operator,
    merge_bond_operators,
    ns_in_units,
)

__all__ = [
    "contract_crystal",
    "expand_crystal",
    "ContractedModel",
    "entangle_system",
    "ns_in_units",
    "intra_unit_operator",
    "inter_unit_operator",
    "merge_bond_operators",
]
