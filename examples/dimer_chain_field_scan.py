"""Compare entangled-dimer and product-state ground states of a spin-1/2 dimer chain in a field."""

from __future__ import annotations

import argparse

import numpy as np

from entanglepy import Bond, Crystal, EntangledSystem, System


def _dimer_chain(j_intra: float, j_inter: float, field: float, seed: int) -> System:
    crystal = Crystal(latvecs=np.eye(3), positions=np.asarray([[0.0, 0.0, 0.0], [0.5, 0.0, 0.0]]))
    sys = System(crystal, (4, 1, 1), spins=0.5, seed=seed)
    sys.set_exchange(j_intra, Bond(0, 1))
    sys.set_exchange(j_inter, Bond(1, 0, (1, 0, 0)))
    sys.set_external_field([0.0, 0.0, field])
    return sys


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--j-intra", type=float, default=1.0)
    parser.add_argument("--j-inter", type=float, default=0.2)
    parser.add_argument("--field-max", type=float, default=1.5)
    parser.add_argument("--nfield", type=int, default=16)
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()

    print(f"{'B_z':>8} {'E_prod':>12} {'E_ent':>12} {'Sz_prod':>10} {'Sz_ent':>10}")
    for field in np.linspace(0.0, args.field_max, args.nfield):
        origin = _dimer_chain(args.j_intra, args.j_inter, field, args.seed)
        esys = EntangledSystem(origin, [(0, 1)])

        origin.randomize_spins()
        origin.minimize_energy()
        esys.randomize_spins()
        esys.minimize_energy()

        print(
            f"{field:8.3f} {origin.energy_per_site():12.6f} {esys.energy_per_site():12.6f} "
            f"{np.mean(origin.dipoles[..., 2]):10.4f} {np.mean(esys.dipoles()[..., 2]):10.4f}"
        )


if __name__ == "__main__":
    main()
