from .crystal import Crystal, SymOp, diamond_crystal, identity_symop
from .errors import (
    ContractionError,
    DimensionMismatchError,
    IncompatibleReshapeError,
    InvalidUnitsError,
    UnsupportedContractionError,
    UnsupportedOperationError,
)
from .operators import (
    SCALAR_BIQUAD_METRIC,
    coupling_operator,
    local_op_to_product_space,
    operator_schmidt_decomposition,
    pair_operator,
    spin_matrices,
    spin_matrices_of_dim,
    stevens_matrices_of_dim,
    swap_bond_operator,
)
from .system import System
from .types import Bond, ContractionInfo, Interactions, InverseData, PairCoupling

__all__ = [
    "Bond",
    "ContractionInfo",
    "Interactions",
    "InverseData",
    "PairCoupling",
    "Crystal",
    "SymOp",
    "identity_symop",
    "diamond_crystal",
    "System",
    "ContractionError",
    "InvalidUnitsError",
    "DimensionMismatchError",
    "UnsupportedContractionError",
    "IncompatibleReshapeError",
    "UnsupportedOperationError",
    "SCALAR_BIQUAD_METRIC",
    "spin_matrices",
    "spin_matrices_of_dim",
    "stevens_matrices_of_dim",
    "local_op_to_product_space",
    "coupling_operator",
    "pair_operator",
    "swap_bond_operator",
    "operator_schmidt_decomposition",
]
