from .reshaping import repeat_periodically, reshape_supercell, units_for_reshaped_system
from .system import EntangledSystem, embedded_spin_operators

__all__ = [
    "EntangledSystem",
    "embedded_spin_operators",
    "units_for_reshaped_system",
    "reshape_supercell",
    "repeat_periodically",
]
