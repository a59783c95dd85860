"""
Radiation equilibrium of an electron storage ring.

:func:`compute_equilibrium` derives, once per integration run, the damping
times, the natural equilibrium emittances and energy spread and the
synchrotron frequency that the emittance integrators relax towards.
"""

from typing import List, Tuple
import logging
import math

from pydantic import Field

from ..constants import quantum_constant
from ..exceptions import EquilibriumError
from ..models.base import FrozenPhysicsModel
from .lattice import LatticeSummary, TwissTable
from .longitudinal import (
    RFConfiguration,
    radiation_loss_per_turn,
    sigs_from_sige,
    synchronous_phase,
    synchrotron_tune,
)
from .radiation import RadiationIntegrals

logger = logging.getLogger(__name__)


class EquilibriumParameters(FrozenPhysicsModel):
    """
    Radiation damping and quantum excitation equilibrium of a ring.

    Computed from a LatticeSummary and RFConfiguration before integration
    starts and read-only afterwards.
    """

    tau_x: float = Field(gt=0, description="Horizontal emittance damping time in s")
    tau_y: float = Field(gt=0, description="Vertical emittance damping time in s")
    tau_s: float = Field(gt=0, description="Longitudinal damping time in s")
    ex0: float = Field(ge=0, description="Natural horizontal emittance in m")
    ey0: float = Field(ge=0, description="Natural vertical emittance in m")
    ey0_coupled: float = Field(ge=0, description="Vertical emittance target including coupling in m")
    sige0_squared: float = Field(gt=0, description="Equilibrium relative energy spread squared")
    sigs_inf: float = Field(gt=0, description="Equilibrium bunch length in m")
    omega_s: float = Field(gt=0, description="Synchrotron angular frequency in rad/s")

    u0: float = Field(gt=0, description="Energy loss per turn in eV")
    phi_s: float = Field(description="Synchronous phase in rad")
    qs: float = Field(gt=0, description="Synchrotron tune")
    omega0: float = Field(gt=0, description="Angular revolution frequency in rad/s")
    eta: float = Field(description="Phase slip factor")
    jx: float = Field(description="Horizontal damping partition number")
    jy: float = Field(description="Vertical damping partition number")
    js: float = Field(description="Longitudinal damping partition number")
    coupling: float = Field(default=0.0, ge=0, le=1, description="Betatron coupling fraction")

    @property
    def sige0(self) -> float:
        """Equilibrium relative energy spread."""
        return math.sqrt(self.sige0_squared)

    @property
    def damping_times(self) -> Tuple[float, float, float]:
        return self.tau_x, self.tau_y, self.tau_s

    def summary_rows(self) -> List[Tuple[str, float, str]]:
        """Rows ``(label, value, unit)`` for a human-readable summary."""
        return [
            ("Tau_rad_x", self.tau_x, "s"),
            ("Tau_rad_y", self.tau_y, "s"),
            ("Tau_rad_s", self.tau_s, "s"),
            ("U0", self.u0, "eV"),
            ("Synchronous phase", math.degrees(self.phi_s), "deg"),
            ("Synchrotron Tune", self.qs, ""),
            ("Synchrotron Freq", self.omega_s, "rad/s"),
            ("eta", self.eta, ""),
            ("SigEOE2", self.sige0_squared, ""),
            ("SigEOE", self.sige0, ""),
            ("Sigs_inf", self.sigs_inf, "m"),
            ("ex0", self.ex0, "m"),
            ("ey0", self.ey0, "m"),
            ("ey0 coupled", self.ey0_coupled, "m"),
            ("Coupling", self.coupling, ""),
        ]


def coupled_vertical_target(ex0: float, ey0: float, coupling: float) -> float:
    """
    Vertical emittance the beam relaxes to with betatron coupling.

    Coupling transfers a fraction of the horizontal emittance into the
    vertical plane; below that floor the natural vertical emittance applies.

    Args:
        ex0: Natural horizontal emittance
        ey0: Natural vertical emittance
        coupling: Coupling fraction in [0, 1]

    Returns:
        max(coupling * ex0, ey0)
    """
    return max(coupling * ex0, ey0)


def compute_equilibrium(
    lattice: LatticeSummary,
    twiss: TwissTable,
    rf: RFConfiguration,
    coupling: float = 0.0,
) -> EquilibriumParameters:
    """
    Compute damping times and equilibrium beam sizes from the lattice.

    Args:
        lattice: Machine parameters
        twiss: Ring optics used for the radiation integrals
        rf: RF systems used for the synchronous phase and synchrotron tune
        coupling: Betatron coupling fraction in [0, 1]

    Returns:
        EquilibriumParameters of the ring

    Raises:
        EquilibriumError: If the lattice does not bend, a partition number is
            not positive or the RF cannot hold the beam
    """
    integrals = RadiationIntegrals.from_twiss(twiss)
    if integrals.i2 <= 0:
        raise EquilibriumError("Lattice has no bending elements, radiation integral I2 is zero")

    u0 = radiation_loss_per_turn(lattice, integrals.i2)
    phi_s = synchronous_phase(u0, lattice.charge, rf)
    qs = synchrotron_tune(lattice, rf, phi_s)
    omega0 = lattice.omega0
    omega_s = qs * omega0

    jx, jy, js = integrals.partition_numbers()
    if min(jx, jy, js) <= 0:
        raise EquilibriumError(f"Damping partition numbers must be positive, got ({jx}, {jy}, {js})")

    energy_ev = lattice.energy * 1e9
    trev = lattice.revolution_period
    tau_x = 2.0 * energy_ev * trev / (jx * u0)
    tau_y = 2.0 * energy_ev * trev / (jy * u0)
    tau_s = 2.0 * energy_ev * trev / (js * u0)

    cq = quantum_constant(lattice.mass)
    gamma2 = lattice.gamma**2
    ex0 = cq * gamma2 * integrals.i5x / (jx * integrals.i2)
    # Dispersive contribution plus the quantum limit from the photon opening angle
    ey0 = (
        cq * gamma2 * integrals.i5y / (jy * integrals.i2)
        + 13.0 / 55.0 * cq * integrals.ibety / (jy * integrals.i2)
    )
    sige0_squared = cq * gamma2 * integrals.i3 / (js * integrals.i2)
    sigs_inf = sigs_from_sige(math.sqrt(sige0_squared), lattice.gamma, lattice.gammatr, omega_s)

    equilibrium = EquilibriumParameters(
        tau_x=tau_x,
        tau_y=tau_y,
        tau_s=tau_s,
        ex0=ex0,
        ey0=ey0,
        ey0_coupled=coupled_vertical_target(ex0, ey0, coupling),
        sige0_squared=sige0_squared,
        sigs_inf=sigs_inf,
        omega_s=omega_s,
        u0=u0,
        phi_s=phi_s,
        qs=qs,
        omega0=omega0,
        eta=lattice.slip_factor,
        jx=jx,
        jy=jy,
        js=js,
        coupling=coupling,
    )
    logger.debug(f"Equilibrium: tau=({tau_x:.4e}, {tau_y:.4e}, {tau_s:.4e}) s, ex0={ex0:.4e} m")
    return equilibrium
