"""Contract nearest-neighbor dimers of the diamond lattice and compare ground-state energies."""

import itertools

import numpy as np

from entanglepy import Bond, EntangledSystem, System, contract_crystal, diamond_crystal, expand_crystal


crystal = diamond_crystal()
units = [(0, 1), (2, 3), (4, 5), (6, 7)]

contracted, info = contract_crystal(crystal, units)
expanded = expand_crystal(contracted, info)
print("Unit positions:")
print(contracted.positions)
print("Round trip exact:", np.allclose(expanded.positions, crystal.positions))

# Nearest neighbors sit at distance sqrt(3)/4 in the conventional cell.
sys = System(crystal, (1, 1, 1), spins=0.5, seed=0)
for i, j in itertools.product(range(crystal.natoms), repeat=2):
    for n in itertools.product((-1, 0, 1), repeat=3):
        d = crystal.cartesian(crystal.positions[j] + np.asarray(n) - crystal.positions[i])
        bond = Bond(i, j, n)
        if bond.is_canonical and np.isclose(np.linalg.norm(d), np.sqrt(3.0) / 4.0):
            sys.set_exchange(1.0, bond)

esys = EntangledSystem(sys, units)
sys.randomize_spins()
sys.minimize_energy()
esys.randomize_spins()
esys.minimize_energy()

print(f"Product-state energy per site: {sys.energy_per_site():.6f}")
print(f"Entangled-dimer energy per site: {esys.energy_per_site():.6f}")
