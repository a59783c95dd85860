"""
RF system and longitudinal beam relations.

The synchronous phase and the synchrotron tune are derived from the RF
waveform of one or more cavity systems; the energy spread and the bunch
length of a matched bunch are related through the synchrotron angular
frequency. All functions here are pure.
"""

from typing import List, Mapping, Sequence, Tuple, Union
import logging
import math

import numpy as np
from pydantic import Field, ValidationError, field_validator, model_validator
from scipy import optimize

from ..constants import CLIGHT, SYNCHRONOUS_PHASE_GUESS_DEG, SYNCHRONOUS_PHASE_TOLERANCE
from ..exceptions import ConfigurationError, EquilibriumError
from ..models.base import FrozenPhysicsModel
from .lattice import LatticeSummary

logger = logging.getLogger(__name__)


class RFConfiguration(FrozenPhysicsModel):
    """
    RF systems of the ring.

    The first system defines the main harmonic; the others (for example
    higher-harmonic Landau cavities) are described relative to it.
    """

    harmonics: List[float] = Field(min_length=1, description="Harmonic number of each RF system")
    voltages: List[float] = Field(min_length=1, description="Peak voltage of each RF system in MV")

    @field_validator("harmonics")
    @classmethod
    def validate_harmonics(cls, v):
        if any(h <= 0 for h in v):
            raise ValueError(f"Harmonic numbers must be positive, got {v}")
        return v

    @model_validator(mode="after")
    def check_parallel_arrays(self):
        if len(self.harmonics) != len(self.voltages):
            raise ValueError(
                f"harmonics ({len(self.harmonics)}) and voltages ({len(self.voltages)}) must have equal length"
            )
        return self

    @classmethod
    def coerce(
        cls, value: Union["RFConfiguration", Tuple[Sequence[float], Sequence[float]], Mapping]
    ) -> "RFConfiguration":
        """
        Accept an RFConfiguration, a ``(harmonics, voltages)`` pair or a mapping.

        Raises:
            ConfigurationError: If the RF settings are invalid
        """
        if isinstance(value, cls):
            return value
        try:
            if isinstance(value, Mapping):
                return cls(**value)
            harmonics, voltages = value
            return cls(harmonics=list(harmonics), voltages=list(voltages))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid RF configuration: {e}") from e

    @property
    def nrf(self) -> int:
        """Number of RF systems."""
        return len(self.harmonics)

    @property
    def main_harmonic(self) -> float:
        return self.harmonics[0]

    def harmonic_ratios(self) -> np.ndarray:
        return np.asarray(self.harmonics) / self.main_harmonic

    def voltages_ev(self, charge: float) -> np.ndarray:
        """Energy gain amplitude per turn of each system in eV."""
        return abs(charge) * np.asarray(self.voltages) * 1e6


def slip_factor(gamma: float, gammatr: float) -> float:
    """Phase slip factor eta = 1/gammatr^2 - 1/gamma^2."""
    return 1.0 / gammatr**2 - 1.0 / gamma**2


def radiation_loss_per_turn(lattice: LatticeSummary, i2: float) -> float:
    """
    Energy radiated per particle and turn.

    U0 = 2/3 r0 m c^2 beta^3 gamma^4 I2

    Args:
        lattice: Machine parameters
        i2: Second radiation integral in 1/m

    Returns:
        U0 in eV
    """
    return (
        2.0 / 3.0 * lattice.classical_radius * lattice.mass * 1e9
        * lattice.beta**3 * lattice.gamma**4 * i2
    )


def synchronous_phase(
    u0: float,
    charge: float,
    rf: RFConfiguration,
    guess_deg: float = SYNCHRONOUS_PHASE_GUESS_DEG,
    tolerance: float = SYNCHRONOUS_PHASE_TOLERANCE,
) -> float:
    """
    Solve sum_k V_k sin(h_k/h_1 phi) = U0 for the synchronous phase.

    The Newton search starts near 180 deg (173 deg by default), on the
    falling slope of the waveform that is stable above transition.

    Args:
        u0: Energy loss per turn in eV
        charge: Particle charge in units of e
        rf: RF systems
        guess_deg: Starting phase in degrees
        tolerance: Absolute tolerance on the phase in rad

    Returns:
        Synchronous phase of the main system in rad

    Raises:
        EquilibriumError: If the RF voltage cannot compensate U0 or the search fails
    """
    amplitudes = rf.voltages_ev(charge)
    ratios = rf.harmonic_ratios()

    if np.sum(np.abs(amplitudes)) < u0:
        raise EquilibriumError(
            f"Total RF voltage ({np.sum(np.abs(amplitudes)):.6e} eV) cannot compensate U0 = {u0:.6e} eV"
        )

    def energy_balance(phi):
        return float(np.sum(amplitudes * np.sin(ratios * phi))) - u0

    def energy_balance_slope(phi):
        return float(np.sum(amplitudes * ratios * np.cos(ratios * phi)))

    try:
        phi_s = optimize.newton(
            energy_balance,
            math.radians(guess_deg),
            fprime=energy_balance_slope,
            tol=tolerance,
            maxiter=100,
        )
    except (RuntimeError, ZeroDivisionError) as e:
        raise EquilibriumError(f"Synchronous phase search failed: {e}") from e

    logger.debug(f"Synchronous phase: {math.degrees(phi_s):.4f} deg")
    return float(phi_s)


def synchrotron_tune(lattice: LatticeSummary, rf: RFConfiguration, phi_s: float) -> float:
    """
    Small-amplitude synchrotron tune from the RF bucket curvature.

    Qs^2 = h |eta| |sum_k V_k (h_k/h) cos(h_k/h phi_s)| / (2 pi beta pc)

    Raises:
        EquilibriumError: If the bucket curvature vanishes
    """
    amplitudes = rf.voltages_ev(lattice.charge)
    ratios = rf.harmonic_ratios()
    curvature = abs(float(np.sum(amplitudes * ratios * np.cos(ratios * phi_s))))
    if curvature == 0:
        raise EquilibriumError("RF bucket has zero curvature at the synchronous phase")

    qs2 = rf.main_harmonic * abs(lattice.slip_factor) * curvature / (
        2.0 * math.pi * lattice.beta * lattice.pc * 1e9
    )
    return math.sqrt(qs2)


def sigs_from_sige(sige: float, gamma: float, gammatr: float, omega_s: float) -> float:
    """
    Bunch length of a matched bunch with relative energy spread ``sige``.

    sigs = beta c |eta| sige / Omega_s

    Args:
        sige: Relative energy spread
        gamma: Relativistic gamma
        gammatr: Transition gamma
        omega_s: Synchrotron angular frequency in rad/s

    Returns:
        RMS bunch length in m
    """
    beta = math.sqrt(1.0 - 1.0 / gamma**2)
    return beta * CLIGHT * abs(slip_factor(gamma, gammatr)) * sige / omega_s


def sige_from_sigs(sigs: float, gamma: float, gammatr: float, omega_s: float) -> float:
    """Inverse of :func:`sigs_from_sige`."""
    beta = math.sqrt(1.0 - 1.0 / gamma**2)
    return sigs * omega_s / (beta * CLIGHT * abs(slip_factor(gamma, gammatr)))


def sige_from_rf_and_sigs(
    sigs: float, lattice: LatticeSummary, rf: RFConfiguration, phi_s: float
) -> float:
    """
    Relative energy spread matched to a bunch length in the given RF bucket.

    The synchrotron tune is evaluated from the RF waveform at ``phi_s``.
    """
    omega_s = synchrotron_tune(lattice, rf, phi_s) * lattice.omega0
    return sige_from_sigs(sigs, lattice.gamma, lattice.gammatr, omega_s)
