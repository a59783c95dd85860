"""
Demonstration script for the IBS emittance integrators.

Builds an isomagnetic 3 GeV electron ring from in-memory optics, evolves
the beam to its IBS-modified equilibrium with both stepping schemes and
runs a short fixed-step integration.
"""

import logging
import math

import numpy as np

from ibsode import IBSModel, evolve_fixed_steps, evolve_to_equilibrium
from ibsode.constants import ELECTRON_MASS_GEV
from ibsode.simulators import BeamHistory, BeamState
from ibsode.visualization import plot_evolution

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

NCELLS = 48
BEND_LENGTH = 2.0
DRIFT_LENGTH = 3.0


def create_ring():
    """Create the header and twiss columns of a simple isomagnetic ring."""
    angle = 2 * math.pi / NCELLS
    lengths = np.tile([BEND_LENGTH, DRIFT_LENGTH], NCELLS)
    angles = np.tile([angle, 0.0], NCELLS)
    n = len(lengths)

    columns = {
        "S": np.cumsum(lengths),
        "L": lengths,
        "BETX": np.full(n, 5.0),
        "BETY": np.full(n, 10.0),
        "ALFX": np.zeros(n),
        "ALFY": np.zeros(n),
        "DX": np.full(n, 0.3),
        "DPX": np.zeros(n),
        "ANGLE": angles,
        "K1L": np.zeros(n),
    }
    gamma = 3.0 / ELECTRON_MASS_GEV
    header = {
        "GAMMA": gamma,
        "PC": 3.0,
        "GAMMATR": 11.3,
        "MASS": ELECTRON_MASS_GEV,
        "CHARGE": -1,
        "Q1": 12.2,
        "Q2": 8.3,
        "LENGTH": float(lengths.sum()),
    }
    return header, columns


def demonstrate_equilibrium(header, columns, rf):
    """Evolve to equilibrium with both schemes."""
    print("\nAdaptive integration to equilibrium")
    print("=" * 50)

    seed = BeamState(t=0.0, ex=2e-8, ey=2e-10, sigs=3e-3)
    for scheme in ("der", "rlx"):
        result = evolve_to_equilibrium(
            header, columns, rf, seed,
            model=IBSModel.NAGAITSEV,
            particle_number=4e10,
            coupling_percentage=1,
            threshold=1e-4,
            scheme=scheme,
        )
        final = result.final_state
        print(f"  {scheme}: {result.stop_reason} after {result.steps}/{result.step_budget} steps")
        print(f"    ex = {final.ex:.4e} m (ex0 = {result.equilibrium.ex0:.4e} m)")
        print(f"    ey = {final.ey:.4e} m, sigs = {final.sigs:.4e} m, sige = {final.sige:.4e}")
    return result


def demonstrate_fixed_steps(header, columns, rf):
    """Run a fixed number of steps and export the history."""
    print("\nFixed-step integration")
    print("=" * 50)

    history = BeamHistory(BeamState(t=0.0, ex=2e-8, ey=2e-10, sigs=3e-3))
    result = evolve_fixed_steps(
        header, columns, rf, history,
        model=IBSModel.MADX,
        particle_number=4e10,
        nsteps=50,
        stepsize=1e-4,
        coupling_percentage=1,
        debug_output=True,
    )
    print(f"  {len(history)} states, t_end = {history.last.t:.4e} s")
    history.to_csv("fixed_step_history.csv")
    return result


def main():
    header, columns = create_ring()
    rf = ([400], [2.0])

    result = demonstrate_equilibrium(header, columns, rf)
    demonstrate_fixed_steps(header, columns, rf)

    fig = plot_evolution(result.history, result.equilibrium)
    fig.savefig("ring_evolution.png", dpi=120)
    print("\nSaved ring_evolution.png")


if __name__ == "__main__":
    main()
