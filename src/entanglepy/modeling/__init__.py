from .builders import (
    ContractedModel,
    contract_crystal,
    entangle_system,
    expand_crystal,
    inter_unit_operator,
    intra_unit_operator,
    merge_bond_operators,
    ns_in_units,
)
from .schema import ContractConfig
from .validators import validate_unit_dimensions, validate_units

__all__ = [
    "ContractConfig",
    "ContractedModel",
    "contract_crystal",
    "expand_crystal",
    "entangle_system",
    "ns_in_units",
    "intra_unit_operator",
    "inter_unit_operator",
    "merge_bond_operators",
    "validate_units",
    "validate_unit_dimensions",
]
