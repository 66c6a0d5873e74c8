"""Minimal crystal structure: lattice vectors, fractional positions and symmetry operations."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field

import numpy as np

from .types import Array, Bond, Cell


@dataclass(frozen=True)
class SymOp:
    """Space-group operation ``r -> R r + T`` in fractional coordinates."""

    rotation: Array
    translation: Array

    def __post_init__(self) -> None:
        rotation = np.asarray(self.rotation, dtype=float)
        translation = np.asarray(self.translation, dtype=float)
        if rotation.shape != (3, 3):
            raise ValueError("SymOp.rotation must be a 3x3 matrix.")
        if translation.shape != (3,):
            raise ValueError("SymOp.translation must be a 3-vector.")
        object.__setattr__(self, "rotation", rotation)
        object.__setattr__(self, "translation", translation)

    def apply(self, frac: Array) -> Array:
        return self.rotation @ np.asarray(frac, dtype=float) + self.translation


def identity_symop() -> SymOp:
    return SymOp(rotation=np.eye(3), translation=np.zeros(3))


def _wrap_unit_interval(frac: Array, tol: float) -> Array:
    wrapped = np.mod(frac, 1.0)
    wrapped[np.abs(wrapped - 1.0) < tol] = 0.0
    return wrapped


@dataclass(frozen=True)
class Crystal:
    """Periodic crystal.

    Notes:
    - ``latvecs`` holds the lattice vectors as columns.
    - ``positions`` are fractional and wrapped into ``[0, 1)``.
    - ``symops`` defaults to the identity only (trivial group, P1).
    """

    latvecs: Array
    positions: Array
    symops: tuple[SymOp, ...] = field(default_factory=lambda: (identity_symop(),))
    symprec: float = 1e-5

    def __post_init__(self) -> None:
        latvecs = np.asarray(self.latvecs, dtype=float)
        if latvecs.shape != (3, 3):
            raise ValueError("latvecs must be a 3x3 matrix with lattice vectors as columns.")
        if abs(np.linalg.det(latvecs)) < 1e-12:
            raise ValueError("latvecs must be linearly independent.")
        positions = np.asarray(self.positions, dtype=float)
        if positions.ndim != 2 or positions.shape[1] != 3 or positions.shape[0] == 0:
            raise ValueError("positions must be a non-empty (natoms, 3) array.")
        if self.symprec <= 0.0:
            raise ValueError("symprec must be positive.")
        positions = _wrap_unit_interval(positions, self.symprec)
        for a, b in itertools.combinations(range(positions.shape[0]), 2):
            d = positions[a] - positions[b]
            if np.all(np.abs(d - np.round(d)) < self.symprec):
                raise ValueError(f"Atoms {a} and {b} occupy the same position.")
        if len(self.symops) == 0:
            raise ValueError("symops must contain at least the identity.")
        object.__setattr__(self, "latvecs", latvecs)
        object.__setattr__(self, "positions", positions)
        object.__setattr__(self, "symops", tuple(self.symops))

    @property
    def natoms(self) -> int:
        return int(self.positions.shape[0])

    @property
    def is_trivial_symmetry(self) -> bool:
        return len(self.symops) == 1

    def cartesian(self, frac: Array) -> Array:
        return self.latvecs @ np.asarray(frac, dtype=float)

    def fractional(self, r: Array) -> Array:
        return np.linalg.solve(self.latvecs, np.asarray(r, dtype=float))

    def position_to_site(self, frac: Array) -> tuple[Cell, int]:
        """Resolve a fractional position to ``(cell, atom)`` without wraparound."""

        frac = np.asarray(frac, dtype=float)
        for atom, pos in enumerate(self.positions):
            d = frac - pos
            n = np.round(d)
            if np.all(np.abs(d - n) < self.symprec):
                return (int(n[0]), int(n[1]), int(n[2])), atom
        raise ValueError(f"No atom found at fractional position {frac.tolist()}.")

    def bond_from_positions(self, ri: Array, rj: Array) -> Bond:
        ci, ai = self.position_to_site(ri)
        cj, aj = self.position_to_site(rj)
        return Bond(ai, aj, tuple(b - a for a, b in zip(ci, cj)))

    def transform_bond(self, op: SymOp, bond: Bond) -> Bond:
        ri = self.positions[bond.i]
        rj = self.positions[bond.j] + np.asarray(bond.n, dtype=float)
        return self.bond_from_positions(op.apply(ri), op.apply(rj))

    def is_related_by_symmetry(self, b1: Bond, b2: Bond) -> bool:
        """True if some symop maps ``b1`` onto ``b2`` or onto its reverse."""

        reversed_b2 = b2.reversed()
        for op in self.symops:
            image = self.transform_bond(op, b1)
            if image == b2 or image == reversed_b2:
                return True
        return False

    def reshape(self, shape: Array) -> Crystal:
        """Return the supercell whose lattice vectors are the columns of ``latvecs @ shape``."""

        shape = np.asarray(shape)
        if shape.shape != (3, 3) or not np.allclose(shape, np.round(shape)):
            raise ValueError("shape must be a 3x3 integer matrix.")
        shape = np.round(shape).astype(int)
        det = int(round(np.linalg.det(shape)))
        if det == 0:
            raise ValueError("shape must be non-singular.")

        inv_shape = np.linalg.inv(shape)
        corners = np.array(list(itertools.product((0, 1), repeat=3)), dtype=float) @ shape.T
        lo = np.floor(corners.min(axis=0)).astype(int) - 1
        hi = np.ceil(corners.max(axis=0)).astype(int) + 1

        new_positions: list[Array] = []
        for m in itertools.product(*(range(lo[d], hi[d] + 1) for d in range(3))):
            for pos in self.positions:
                f = inv_shape @ (np.asarray(m, dtype=float) + pos)
                if np.all(f > -self.symprec) and np.all(f < 1.0 - self.symprec):
                    new_positions.append(f)
        expected = self.natoms * abs(det)
        if len(new_positions) != expected:
            raise ValueError(f"Reshaped cell contains {len(new_positions)} atoms, expected {expected}.")
        return Crystal(
            latvecs=self.latvecs @ shape,
            positions=np.asarray(new_positions),
            symprec=self.symprec,
        )


def diamond_crystal(a: float = 1.0) -> Crystal:
    """Conventional cubic cell of diamond with its 8 atoms."""

    positions = [
        [0.0, 0.0, 0.0],
        [0.25, 0.25, 0.25],
        [0.0, 0.5, 0.5],
        [0.25, 0.75, 0.75],
        [0.5, 0.0, 0.5],
        [0.75, 0.25, 0.75],
        [0.5, 0.5, 0.0],
        [0.75, 0.75, 0.25],
    ]
    return Crystal(latvecs=a * np.eye(3), positions=np.asarray(positions))
