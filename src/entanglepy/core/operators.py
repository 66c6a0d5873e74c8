"""Local operator algebra: spin/Stevens generators and tensor-product embeddings."""

from __future__ import annotations

from functools import reduce
from typing import Callable, Sequence

import numpy as np

from .errors import DimensionMismatchError
from .types import Array, PairCoupling


# Metric g_q such that sum_q g_q O_i^q O_j^q is the scalar quadrupole product,
# with Stevens operators ordered q = 2, 1, 0, -1, -2.
SCALAR_BIQUAD_METRIC = np.array([1.0 / 2.0, 2.0, 1.0 / 6.0, 2.0, 1.0 / 2.0])

Embedding = Callable[[Array], Array]


def spin_matrices_of_dim(n: int) -> Array:
    """Return ``(Sx, Sy, Sz)`` as a ``(3, n, n)`` array, basis ordered m = S, ..., -S."""

    n = int(n)
    if n <= 0:
        raise ValueError("Local dimension must be positive.")
    s = (n - 1) / 2.0
    m = s - np.arange(n)
    splus = np.zeros((n, n), dtype=np.complex128)
    for k in range(1, n):
        splus[k - 1, k] = np.sqrt(s * (s + 1.0) - m[k] * (m[k] + 1.0))
    sminus = splus.conj().T
    sx = 0.5 * (splus + sminus)
    sy = -0.5j * (splus - sminus)
    sz = np.diag(m).astype(np.complex128)
    return np.stack([sx, sy, sz])


def spin_matrices(spin: float) -> Array:
    n = 2.0 * float(spin) + 1.0
    if abs(n - round(n)) > 1e-12:
        raise ValueError("Spin must be a non-negative multiple of 1/2.")
    return spin_matrices_of_dim(int(round(n)))


def stevens_matrices_of_dim(k: int, n: int) -> Array:
    """Stevens operators of rank ``k`` (1 or 2) ordered q = k, ..., -k."""

    sx, sy, sz = spin_matrices_of_dim(n)
    if k == 1:
        return np.stack([sx, sz, sy])
    if k == 2:
        s = (n - 1) / 2.0
        ident = np.eye(n, dtype=np.complex128)
        return np.stack(
            [
                sx @ sx - sy @ sy,
                0.5 * (sz @ sx + sx @ sz),
                3.0 * sz @ sz - s * (s + 1.0) * ident,
                0.5 * (sz @ sy + sy @ sz),
                sx @ sy + sy @ sx,
            ]
        )
    raise ValueError("Only Stevens operators of rank 1 and 2 are supported.")


def local_op_to_product_space(op: Array, index: int, ns: Sequence[int]) -> Array:
    """Embed ``op`` at position ``index`` of the product space ``I (x) ... (x) op (x) ... (x) I``."""

    op = np.asarray(op)
    ns = [int(n) for n in ns]
    if not (0 <= index < len(ns)):
        raise DimensionMismatchError(f"Subindex {index} is out of range for a unit of {len(ns)} sites.", dims=tuple(ns))
    if op.shape != (ns[index], ns[index]):
        raise DimensionMismatchError(
            f"Operator of shape {op.shape} is not consistent with local dimension {ns[index]} at subindex {index}.",
            dims=tuple(ns),
        )
    if len(ns) == 1:
        return op
    factors = [op if k == index else np.eye(n) for k, n in enumerate(ns)]
    return reduce(np.kron, factors)


def product_dim(ns: Sequence[int]) -> int:
    return int(np.prod([int(n) for n in ns], dtype=np.int64))


def coupling_matrix(value: float | Array, size: int, metric: Array | None = None) -> Array:
    if np.isscalar(value):
        diag = np.full(size, float(value)) if metric is None else float(value) * metric
        return np.diag(diag)
    mat = np.asarray(value)
    if mat.shape != (size, size):
        raise ValueError(f"Coupling matrix must have shape ({size}, {size}).")
    return mat


def coupling_operator(
    pc: PairCoupling,
    ni: int,
    nj: int,
    left: Embedding,
    right: Embedding,
    dim: int,
) -> Array:
    """Assemble ``scalar*I + Si.J.Sj + Oi.K.Oj + sum(A B)`` in a target space of size ``dim``.

    ``left`` and ``right`` embed operators of the bond's first and second site.
    """

    op = pc.scalar * np.eye(dim, dtype=np.complex128)

    j_mat = coupling_matrix(pc.bilin, 3)
    if np.any(j_mat != 0):
        si = np.stack([left(a) for a in spin_matrices_of_dim(ni)])
        sj = np.stack([right(b) for b in spin_matrices_of_dim(nj)])
        op = op + np.einsum("ab,aij,bjk->ik", j_mat, si, sj)

    k_mat = coupling_matrix(pc.biquad, 5, metric=SCALAR_BIQUAD_METRIC)
    if np.any(k_mat != 0):
        oi = np.stack([left(a) for a in stevens_matrices_of_dim(2, ni)])
        oj = np.stack([right(b) for b in stevens_matrices_of_dim(2, nj)])
        op = op + np.einsum("ab,aij,bjk->ik", k_mat, oi, oj)

    for a, b in pc.general:
        op = op + left(np.asarray(a)) @ right(np.asarray(b))
    return op


def pair_operator(pc: PairCoupling, ni: int, nj: int) -> Array:
    """Two-site operator of ``pc`` on the ``ni * nj`` dimensional bond space."""

    id_i = np.eye(ni)
    id_j = np.eye(nj)
    return coupling_operator(
        pc,
        ni,
        nj,
        left=lambda a: np.kron(a, id_j),
        right=lambda b: np.kron(id_i, b),
        dim=ni * nj,
    )


def swap_bond_operator(op: Array, ni: int, nj: int) -> Array:
    """Express a bond operator on ``i (x) j`` as an operator on ``j (x) i``."""

    return np.asarray(op).reshape(ni, nj, ni, nj).transpose(1, 0, 3, 2).reshape(ni * nj, ni * nj)


def operator_schmidt_decomposition(op: Array, ni: int, nj: int, tol: float = 1e-12) -> tuple[tuple[Array, Array], ...]:
    """Return pairs ``(A_k, B_k)`` with ``op = sum_k kron(A_k, B_k)``."""

    op = np.asarray(op, dtype=np.complex128)
    if op.shape != (ni * nj, ni * nj):
        raise DimensionMismatchError(f"Bond operator must have shape ({ni * nj}, {ni * nj}).", dims=(ni, nj))
    mat = op.reshape(ni, nj, ni, nj).transpose(0, 2, 1, 3).reshape(ni * ni, nj * nj)
    u, s, vh = np.linalg.svd(mat)
    if s.size == 0:
        return ()
    cutoff = tol * max(1.0, float(s[0]))
    terms = []
    for k in np.flatnonzero(s > cutoff):
        w = np.sqrt(s[k])
        terms.append((w * u[:, k].reshape(ni, ni), w * vh[k].reshape(nj, nj)))
    return tuple(terms)


def expectation(op: Array, z: Array) -> float:
    return float(np.real(np.vdot(z, op @ z)))
