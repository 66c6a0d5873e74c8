"""Homogeneous spin system on a periodic supercell.

Two modes are supported:
- ``"SUN"``: every site carries a normalized coherent state in ``C^N`` with a
  single ``N = 2S+1`` shared by all atoms; dipoles are derived expectation values.
- ``"dipole"``: every site carries a classical dipole of fixed length ``S``.

Interactions are stored per atom of the unit cell (identical in every cell).
Each bond is stored on both of its atoms; the non-canonical mirror entry is
flagged ``isculled`` so that sums over bonds visit every physical bond once.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Iterator, Sequence

import numpy as np
from scipy.optimize import minimize

from .crystal import Crystal
from .operators import (
    coupling_matrix,
    operator_schmidt_decomposition,
    pair_operator,
    spin_matrices_of_dim,
)
from .types import Array, Bond, Interactions, PairCoupling, Site


logger = logging.getLogger(__name__)

MODES = ("SUN", "dipole")
_CELL_AXES = (0, 1, 2)


def _per_atom_g(g: float | Array, natoms: int) -> Array:
    g_arr = np.asarray(g, dtype=float)
    if g_arr.ndim == 0:
        return np.repeat((float(g_arr) * np.eye(3))[None, :, :], natoms, axis=0)
    if g_arr.shape == (natoms,):
        return g_arr[:, None, None] * np.eye(3)[None, :, :]
    if g_arr.shape == (3, 3):
        return np.repeat(g_arr[None, :, :], natoms, axis=0)
    if g_arr.shape == (natoms, 3, 3):
        return g_arr.copy()
    raise ValueError("g must be a scalar, a 3x3 tensor, or given per atom.")


def _is_hermitian(op: Array) -> bool:
    return bool(np.allclose(op, op.conj().T, atol=1e-12))


class System:
    """Spin system with homogeneous couplings on a ``latsize`` supercell of ``crystal``."""

    def __init__(
        self,
        crystal: Crystal,
        latsize: Sequence[int],
        spins: float | Sequence[float],
        mode: str = "SUN",
        g: float | Array = 2.0,
        mu_b: float = 1.0,
        seed: int | None = None,
    ) -> None:
        if mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got '{mode}'.")
        latsize = tuple(int(x) for x in latsize)
        if len(latsize) != 3 or any(x <= 0 for x in latsize):
            raise ValueError("latsize must contain three positive integers.")

        natoms = crystal.natoms
        spins_arr = np.broadcast_to(np.asarray(spins, dtype=float), (natoms,)).copy()
        if np.any(spins_arr <= 0.0):
            raise ValueError("All spins must be positive.")
        ns = 2.0 * spins_arr + 1.0
        if not np.allclose(ns, np.round(ns)):
            raise ValueError("All spins must be multiples of 1/2.")
        ns = np.round(ns).astype(int)
        if mode == "SUN" and len(set(ns.tolist())) != 1:
            raise ValueError("SU(N) mode requires the same local dimension on every atom.")

        self.crystal = crystal
        self.latsize = latsize
        self.mode = mode
        self.spins = spins_arr
        self.Ns = ns
        self.N = int(ns[0]) if mode == "SUN" else 0
        self.gs = _per_atom_g(g, natoms)
        self.mu_b = float(mu_b)
        self.rng = np.random.default_rng(seed)

        self.interactions = [Interactions(onsite=np.zeros((n, n), dtype=np.complex128)) for n in ns]
        self.extfield = np.zeros(latsize + (natoms, 3))
        self.dipoles = np.zeros(latsize + (natoms, 3))
        self.dipoles[..., 2] = spins_arr
        if mode == "SUN":
            self.coherents: Array | None = np.zeros(latsize + (natoms, self.N), dtype=np.complex128)
            self.coherents[..., 0] = 1.0
        else:
            self.coherents = None

    # Geometry

    @property
    def natoms(self) -> int:
        return self.crystal.natoms

    @property
    def nsites(self) -> int:
        return int(np.prod(self.latsize)) * self.natoms

    def eachsite(self) -> Iterator[Site]:
        for site in np.ndindex(*self.latsize, self.natoms):
            yield tuple(int(x) for x in site)

    def position(self, site: Site) -> Array:
        """Cartesian position of ``site``."""

        *cell, atom = site
        return self.crystal.cartesian(np.asarray(cell, dtype=float) + self.crystal.positions[atom])

    def position_to_site(self, r: Array) -> Site:
        """Resolve a Cartesian position to a site, wrapping periodically over ``latsize``."""

        cell, atom = self.crystal.position_to_site(self.crystal.fractional(r))
        i, j, k = (c % n for c, n in zip(cell, self.latsize))
        return int(i), int(j), int(k), atom

    def _neighbor(self, site: Site, bond: Bond) -> Site:
        cell = tuple((c + n) % size for c, n, size in zip(site[:3], bond.n, self.latsize))
        return cell + (bond.j,)

    def _check_atom(self, atom: int) -> None:
        if not (0 <= atom < self.natoms):
            raise ValueError(f"Atom index {atom} out of range for {self.natoms} atoms.")

    def _check_site(self, site: Site) -> Site:
        site = tuple(int(x) for x in site)
        if len(site) != 4 or any(not (0 <= x < n) for x, n in zip(site, self.latsize + (self.natoms,))):
            raise ValueError(f"Site {site} is outside the system.")
        return site

    # Couplings

    def set_onsite_coupling(self, op: Array, atom: int) -> None:
        if self.mode != "SUN":
            raise ValueError("Onsite operators require SU(N) mode.")
        self._check_atom(atom)
        op = np.asarray(op, dtype=np.complex128)
        if op.shape != (self.N, self.N):
            raise ValueError(f"Onsite operator must have shape ({self.N}, {self.N}).")
        if not _is_hermitian(op):
            raise ValueError("Onsite operator must be Hermitian.")
        self.interactions[atom].onsite = op.copy()

    def set_exchange(self, J: float | Array, bond: Bond, biquad: float | Array = 0.0, scalar: float = 0.0) -> None:
        """Set ``scalar + Si.J.Sj + biquadratic`` on ``bond``.

        A scalar ``biquad`` means ``biquad * (Si.Sj)^2`` in both modes. In SU(N)
        mode it is stored as the quadrupole product ``Oi.K.Oj`` together with the
        bilinear and constant shifts that make the two forms equal. A 5x5
        ``biquad`` (SU(N) only) is the raw quadrupole coupling ``K``.
        """

        self._check_atom(bond.i)
        self._check_atom(bond.j)
        bilin = float(J) if np.isscalar(J) else coupling_matrix(np.asarray(J, dtype=float), 3)
        scalar = float(scalar)
        if np.isscalar(biquad):
            biquad = float(biquad)
            if self.mode == "SUN" and biquad != 0.0:
                # Oi.Oj = (Si.Sj)^2 + Si.Sj/2 - Si(Si+1)Sj(Sj+1)/3
                si, sj = self.spins[bond.i], self.spins[bond.j]
                bilin = bilin - biquad / 2.0 if np.isscalar(bilin) else bilin - (biquad / 2.0) * np.eye(3)
                scalar += biquad * si * (si + 1.0) * sj * (sj + 1.0) / 3.0
        elif self.mode == "dipole":
            raise ValueError("Dipole mode supports only scalar biquadratic couplings.")
        else:
            biquad = coupling_matrix(np.asarray(biquad, dtype=float), 5)
        self._register_pair(PairCoupling(bond=bond, scalar=scalar, bilin=bilin, biquad=biquad))

    def set_pair_coupling(self, op: Array, bond: Bond, tol: float = 1e-12) -> None:
        """Set a general Hermitian bond operator on the ``N*N`` dimensional bond space."""

        if self.mode != "SUN":
            raise ValueError("General pair operators require SU(N) mode.")
        op = np.asarray(op, dtype=np.complex128)
        if op.shape != (self.N * self.N, self.N * self.N):
            raise ValueError(f"Bond operator must have shape ({self.N ** 2}, {self.N ** 2}).")
        if not _is_hermitian(op):
            raise ValueError("Bond operator must be Hermitian.")
        general = operator_schmidt_decomposition(op, self.N, self.N, tol=tol)
        self._register_pair(PairCoupling(bond=bond, general=general))

    def _register_pair(self, pc: PairCoupling) -> None:
        bond = pc.bond
        self._check_atom(bond.i)
        self._check_atom(bond.j)
        if bond.i == bond.j and bond.n == (0, 0, 0):
            raise ValueError("A pair coupling cannot connect an atom to itself.")
        primary = pc if bond.is_canonical else pc.reversed()
        primary = replace(primary, isculled=False)
        mirror = primary.reversed()

        for entry in (primary, mirror):
            inter = self.interactions[entry.bond.i]
            kept = [p for p in inter.pair if p.bond != entry.bond]
            if len(kept) != len(inter.pair) and not entry.isculled:
                logger.warning("Overriding coupling on bond %s.", entry.bond)
            inter.pair = kept
        for entry in (primary, mirror):
            self.interactions[entry.bond.i].pair.append(entry)

    def pair_couplings(self) -> list[PairCoupling]:
        """All physical couplings, one entry per bond."""

        return [pc for inter in self.interactions for pc in inter.pair if not pc.isculled]

    def set_external_field(self, field: Array) -> None:
        field = np.asarray(field, dtype=float)
        if field.shape != (3,):
            raise ValueError("External field must be a 3-vector.")
        self.extfield[...] = field

    def set_external_field_at(self, field: Array, site: Site) -> None:
        field = np.asarray(field, dtype=float)
        if field.shape != (3,):
            raise ValueError("External field must be a 3-vector.")
        self.extfield[self._check_site(site)] = field

    # State

    def _refresh_dipoles(self) -> None:
        if self.coherents is None:
            return
        s = spin_matrices_of_dim(self.N)
        z = self.coherents
        self.dipoles = np.einsum("...i,bij,...j->...b", z.conj(), s, z).real

    def set_coherent(self, z: Array, site: Site) -> None:
        if self.mode != "SUN":
            raise ValueError("Coherent states require SU(N) mode.")
        site = self._check_site(site)
        z = np.asarray(z, dtype=np.complex128)
        if z.shape != (self.N,):
            raise ValueError(f"Coherent state must have length {self.N}.")
        norm = np.linalg.norm(z)
        if norm == 0.0:
            raise ValueError("Coherent state must be non-zero.")
        self.coherents[site] = z / norm
        s = spin_matrices_of_dim(self.N)
        zn = self.coherents[site]
        self.dipoles[site] = np.einsum("i,bij,j->b", zn.conj(), s, zn).real

    def set_dipole(self, dipole: Array, site: Site) -> None:
        site = self._check_site(site)
        dipole = np.asarray(dipole, dtype=float)
        norm = np.linalg.norm(dipole)
        if dipole.shape != (3,) or norm == 0.0:
            raise ValueError("Dipole must be a non-zero 3-vector.")
        if self.mode == "dipole":
            self.dipoles[site] = self.spins[site[3]] * dipole / norm
            return
        # Spin-coherent state: highest-weight eigenvector along the dipole direction.
        s = spin_matrices_of_dim(self.N)
        _, vecs = np.linalg.eigh(np.einsum("b,bij->ij", dipole / norm, s))
        self.set_coherent(vecs[:, -1], site)

    def randomize_spins(self) -> None:
        if self.mode == "SUN":
            shape = self.coherents.shape
            z = self.rng.normal(size=shape) + 1j * self.rng.normal(size=shape)
            self.coherents = z / np.linalg.norm(z, axis=-1, keepdims=True)
            self._refresh_dipoles()
        else:
            v = self.rng.normal(size=self.dipoles.shape)
            v /= np.linalg.norm(v, axis=-1, keepdims=True)
            self.dipoles = v * self.spins[None, None, None, :, None]

    def dipole(self, site: Site) -> Array:
        return self.dipoles[self._check_site(site)].copy()

    def magnetic_moment(self, site: Site) -> Array:
        site = self._check_site(site)
        return -self.mu_b * self.gs[site[3]] @ self.dipoles[site]

    # Energy

    def _zeeman_fields(self) -> Array:
        # Per-site (g^T B) scaled by mu_b, shape (L1, L2, L3, natoms, 3).
        return self.mu_b * np.einsum("aij,xyzai->xyzaj", self.gs, self.extfield)

    def _onsite_hamiltonians(self) -> Array:
        onsite = np.stack([inter.onsite for inter in self.interactions])
        h = np.broadcast_to(onsite, self.latsize + onsite.shape).astype(np.complex128)
        s = spin_matrices_of_dim(self.N)
        return h - np.einsum("xyzab,bij->xyzaij", self._zeeman_fields(), s)

    def _sun_energy_and_field(self, zn: Array) -> tuple[float, Array]:
        h = self._onsite_hamiltonians()
        energy = float(np.einsum("xyzai,xyzaij,xyzaj->", zn.conj(), h, zn).real)
        heff = h.copy()
        n = self.N
        for pc in self.pair_couplings():
            bond = pc.bond
            p4 = pair_operator(pc, n, n).reshape(n, n, n, n)
            zi = zn[:, :, :, bond.i, :]
            zj = np.roll(zn[:, :, :, bond.j, :], shift=tuple(-x for x in bond.n), axis=_CELL_AXES)
            hi = np.einsum("abcd,xyzb,xyzd->xyzac", p4, zj.conj(), zj)
            hj = np.einsum("abcd,xyza,xyzc->xyzbd", p4, zi.conj(), zi)
            energy += float(np.einsum("xyza,xyzac,xyzc->", zi.conj(), hi, zi).real)
            heff[:, :, :, bond.i] += hi
            heff[:, :, :, bond.j] += np.roll(hj, shift=bond.n, axis=_CELL_AXES)
        return energy, heff

    def _dipole_energy_and_field(self, s: Array) -> tuple[float, Array]:
        fields = self._zeeman_fields()
        energy = -float(np.sum(fields * s))
        grad = -fields
        ncells = int(np.prod(self.latsize))
        for pc in self.pair_couplings():
            bond = pc.bond
            j_mat = coupling_matrix(pc.bilin, 3).real
            b = float(pc.biquad)
            si = s[:, :, :, bond.i]
            sj = np.roll(s[:, :, :, bond.j], shift=tuple(-x for x in bond.n), axis=_CELL_AXES)
            dot = np.einsum("xyza,xyza->xyz", si, sj)
            energy += pc.scalar * ncells
            energy += float(np.einsum("xyza,ab,xyzb->", si, j_mat, sj)) + b * float(np.sum(dot**2))
            gi = np.einsum("ab,xyzb->xyza", j_mat, sj) + 2.0 * b * dot[..., None] * sj
            gj = np.einsum("xyza,ab->xyzb", si, j_mat) + 2.0 * b * dot[..., None] * si
            grad[:, :, :, bond.i] += gi
            grad[:, :, :, bond.j] += np.roll(gj, shift=bond.n, axis=_CELL_AXES)
        return energy, grad

    def energy(self) -> float:
        if self.mode == "SUN":
            return self._sun_energy_and_field(self.coherents)[0]
        return self._dipole_energy_and_field(self.dipoles)[0]

    def energy_per_site(self) -> float:
        return self.energy() / self.nsites

    def minimize_energy(self, maxiters: int = 1000, g_tol: float = 1e-8) -> int:
        """Relax the state with L-BFGS on unnormalized spin vectors. Returns the iteration count."""

        if self.mode == "SUN":
            shape = self.coherents.shape
            size = self.coherents.size

            def objective(x: Array) -> tuple[float, Array]:
                z = (x[:size] + 1j * x[size:]).reshape(shape)
                norms = np.linalg.norm(z, axis=-1, keepdims=True)
                zn = z / norms
                energy, heff = self._sun_energy_and_field(zn)
                hz = np.einsum("...ij,...j->...i", heff, zn)
                eloc = np.einsum("...i,...i->...", zn.conj(), hz)[..., None]
                g = (hz - eloc * zn) / norms
                return energy, 2.0 * np.concatenate([g.real.ravel(), g.imag.ravel()])

            x0 = np.concatenate([self.coherents.real.ravel(), self.coherents.imag.ravel()])
        else:
            shape = self.dipoles.shape
            lengths = self.spins[None, None, None, :, None]

            def objective(x: Array) -> tuple[float, Array]:
                v = x.reshape(shape)
                norms = np.linalg.norm(v, axis=-1, keepdims=True)
                vhat = v / norms
                energy, grad = self._dipole_energy_and_field(lengths * vhat)
                tangent = grad - np.sum(grad * vhat, axis=-1, keepdims=True) * vhat
                return energy, (lengths * tangent / norms).ravel()

            x0 = self.dipoles.ravel().copy()

        res = minimize(objective, x0, jac=True, method="L-BFGS-B", options={"maxiter": maxiters, "gtol": g_tol})
        if not res.success:
            logger.warning("Energy minimization did not converge after %d iterations: %s", res.nit, res.message)

        if self.mode == "SUN":
            z = (res.x[:size] + 1j * res.x[size:]).reshape(shape)
            self.coherents = z / np.linalg.norm(z, axis=-1, keepdims=True)
            self._refresh_dipoles()
        else:
            v = res.x.reshape(shape)
            self.dipoles = lengths * v / np.linalg.norm(v, axis=-1, keepdims=True)
        return int(res.nit)

    # Copies and supercells

    def clone(self) -> System:
        return copy.deepcopy(self)

    def repeat_periodically(self, counts: Sequence[int]) -> System:
        counts = tuple(int(c) for c in counts)
        if len(counts) != 3 or any(c <= 0 for c in counts):
            raise ValueError("counts must contain three positive integers.")
        new = self.clone()
        new.latsize = tuple(n * c for n, c in zip(self.latsize, counts))
        new.extfield = np.tile(self.extfield, counts + (1, 1))
        new.dipoles = np.tile(self.dipoles, counts + (1, 1))
        if self.coherents is not None:
            new.coherents = np.tile(self.coherents, counts + (1, 1))
        return new

    def reshape_supercell(self, shape: Array) -> System:
        """Return a single-cell system on the crystal reshaped by the integer matrix ``shape``.

        Couplings, fields and state are carried over from the corresponding
        sites of this system (wrapping periodically over ``latsize``).
        """

        new_crystal = self.crystal.reshape(shape)
        shape = np.asarray(np.round(shape), dtype=float)
        inv_shape = np.linalg.inv(shape)
        origins = [self.crystal.position_to_site(shape @ pos) for pos in new_crystal.positions]
        atoms = [atom for _, atom in origins]

        new = System(
            new_crystal,
            (1, 1, 1),
            spins=self.spins[atoms],
            mode=self.mode,
            g=self.gs[atoms],
            mu_b=self.mu_b,
            seed=int(self.rng.integers(2**32)),
        )
        for a, (cell, atom) in enumerate(origins):
            wrapped = tuple(c % n for c, n in zip(cell, self.latsize))
            new.interactions[a].onsite = self.interactions[atom].onsite.copy()
            new.extfield[0, 0, 0, a] = self.extfield[wrapped + (atom,)]
            new.dipoles[0, 0, 0, a] = self.dipoles[wrapped + (atom,)]
            if self.coherents is not None:
                new.coherents[0, 0, 0, a] = self.coherents[wrapped + (atom,)]
            for pc in self.interactions[atom].pair:
                if pc.isculled:
                    continue
                target = np.asarray(cell, dtype=float) + np.asarray(pc.bond.n) + self.crystal.positions[pc.bond.j]
                new_cell, b = new_crystal.position_to_site(inv_shape @ target)
                new._register_pair(replace(pc, bond=Bond(a, b, new_cell)))
        return new
