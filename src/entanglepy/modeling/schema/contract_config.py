"""Configuration for entangled-unit contraction."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ContractConfig:
    """Config knobs for crystal and Hamiltonian contraction."""

    contracted_g: float = 1.0
    symprec: float = 1e-5
    schmidt_tol: float = 1e-12
