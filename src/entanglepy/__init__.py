from .core import Bond, ContractionInfo, Crystal, System, diamond_crystal, local_op_to_product_space
from .core.errors import (
    ContractionError,
    DimensionMismatchError,
    IncompatibleReshapeError,
    InvalidUnitsError,
    UnsupportedContractionError,
    UnsupportedOperationError,
)
from .entangled import EntangledSystem, repeat_periodically, reshape_supercell, units_for_reshaped_system
from .modeling import ContractConfig, contract_crystal, entangle_system, expand_crystal, ns_in_units

__all__ = [
    "Bond",
    "ContractionInfo",
    "Crystal",
    "System",
    "diamond_crystal",
    "local_op_to_product_space",
    "ContractConfig",
    "contract_crystal",
    "expand_crystal",
    "entangle_system",
    "ns_in_units",
    "EntangledSystem",
    "units_for_reshaped_system",
    "reshape_supercell",
    "repeat_periodically",
    "ContractionError",
    "InvalidUnitsError",
    "DimensionMismatchError",
    "UnsupportedContractionError",
    "IncompatibleReshapeError",
    "UnsupportedOperationError",
]
