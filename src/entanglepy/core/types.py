"""Core data structures for entangled-unit contraction."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

import numpy as np


Array = np.ndarray
Cell = tuple[int, int, int]
Site = tuple[int, int, int, int]


@dataclass(frozen=True)
class Bond:
    """Bond from atom ``i`` in cell 0 to atom ``j`` in cell ``n``."""

    i: int
    j: int
    n: Cell = (0, 0, 0)

    def __post_init__(self) -> None:
        n = tuple(int(x) for x in self.n)
        if len(n) != 3:
            raise ValueError("Bond offset n must have three components.")
        object.__setattr__(self, "i", int(self.i))
        object.__setattr__(self, "j", int(self.j))
        object.__setattr__(self, "n", n)

    def reversed(self) -> Bond:
        return Bond(self.j, self.i, tuple(-x for x in self.n))

    @property
    def is_canonical(self) -> bool:
        if self.i != self.j:
            return self.i < self.j
        return self.n > (0, 0, 0)


@dataclass(frozen=True)
class InverseData:
    """One member of a contracted unit: original atom and its offset from the unit center."""

    site: int
    offset: Array

    def __post_init__(self) -> None:
        offset = np.asarray(self.offset, dtype=float)
        if offset.shape != (3,):
            raise ValueError("InverseData.offset must be a 3-vector.")
        object.__setattr__(self, "offset", offset)


@dataclass(frozen=True)
class ContractionInfo:
    """Bidirectional map between original atoms and contracted units.

    - ``forward[s] = (unit, subindex)`` for every original atom ``s``.
    - ``inverse[u]`` lists the members of unit ``u`` in subindex order, each with
      its fractional offset from the unit position.
    """

    forward: tuple[tuple[int, int], ...]
    inverse: tuple[tuple[InverseData, ...], ...]

    def __post_init__(self) -> None:
        n_members = sum(len(members) for members in self.inverse)
        if n_members != len(self.forward):
            raise ValueError("ContractionInfo inverse must list every original site exactly once.")
        for site, (unit, sub) in enumerate(self.forward):
            if not (0 <= unit < len(self.inverse)) or not (0 <= sub < len(self.inverse[unit])):
                raise ValueError(f"ContractionInfo forward entry for site {site} is out of range.")
            if self.inverse[unit][sub].site != site:
                raise ValueError(f"ContractionInfo forward/inverse disagree for site {site}.")

    @property
    def n_sites(self) -> int:
        return len(self.forward)

    @property
    def n_units(self) -> int:
        return len(self.inverse)

    def unit_of(self, site: int) -> int:
        return self.forward[site][0]

    def subindex_of(self, site: int) -> int:
        return self.forward[site][1]

    def sites_in_unit(self, unit: int) -> tuple[int, ...]:
        return tuple(member.site for member in self.inverse[unit])

    def bonds_in_unit(self, unit: int) -> list[Bond]:
        """All zero-offset pairs of original atoms inside ``unit``."""

        sites = self.sites_in_unit(unit)
        return [Bond(a, b, (0, 0, 0)) for idx, a in enumerate(sites) for b in sites[idx + 1 :]]

    def contains_bond(self, bond: Bond) -> bool:
        """True when ``bond`` (in original atoms) closes inside a single unit."""

        return self.forward[bond.i][0] == self.forward[bond.j][0] and bond.n == (0, 0, 0)

    def original_units(self) -> tuple[tuple[int, ...], ...]:
        return tuple(self.sites_in_unit(u) for u in range(self.n_units))


@dataclass(frozen=True)
class PairCoupling:
    """Coupling on one bond: ``scalar + Si.J.Sj + Oi.K.Oj + sum(A (x) B)``.

    ``bilin`` and ``biquad`` are either scalars (isotropic forms) or 3x3 / 5x5
    matrices. ``general`` holds operator pairs ``(A, B)`` acting on ``i`` and ``j``.
    """

    bond: Bond
    scalar: float = 0.0
    bilin: float | Array = 0.0
    biquad: float | Array = 0.0
    general: tuple[tuple[Array, Array], ...] = ()
    isculled: bool = False

    def reversed(self) -> PairCoupling:
        bilin = self.bilin if np.isscalar(self.bilin) else np.asarray(self.bilin).T
        biquad = self.biquad if np.isscalar(self.biquad) else np.asarray(self.biquad).T
        general = tuple((b, a) for a, b in self.general)
        return replace(
            self,
            bond=self.bond.reversed(),
            bilin=bilin,
            biquad=biquad,
            general=general,
            isculled=not self.isculled,
        )


@dataclass
class Interactions:
    """Homogeneous interactions attached to one atom of the unit cell."""

    onsite: Array
    pair: list[PairCoupling] = field(default_factory=list)
