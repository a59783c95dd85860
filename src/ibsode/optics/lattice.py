"""
Machine description consumed by the equilibrium solver and the IBS models.

Two containers describe a ring:

- :class:`LatticeSummary` holds the scalar header quantities of a MAD-X
  twiss table (``GAMMA``, ``PC``, ``GAMMATR``, ``MASS``, ``CHARGE``, ``Q1``,
  ``LENGTH``) and derives the revolution and relativistic parameters.
- :class:`TwissTable` holds the per-element optical functions needed by the
  radiation integrals and the lattice-resolved growth-rate models.

Both are immutable for the duration of an integration run.
"""

from typing import Any, Dict, Mapping, Optional, Sequence, Union
import logging
import math

import numpy as np
import pandas as pd
from pydantic import Field, ValidationError, field_validator, model_validator

from ..constants import CLIGHT, CLASSICAL_PROTON_RADIUS, PROTON_MASS_GEV
from ..exceptions import LatticeInputError
from ..models.base import FrozenPhysicsModel
from ..models.validators import validate_equal_lengths, validate_positive_array

logger = logging.getLogger(__name__)

HEADER_KEYS = ("GAMMA", "PC", "GAMMATR", "MASS", "CHARGE", "Q1", "LENGTH")


class LatticeSummary(FrozenPhysicsModel):
    """
    Scalar machine parameters of a storage ring.

    Units follow the MAD-X twiss header: momentum and mass in GeV, charge in
    units of the elementary charge, ring length in m.
    """

    gamma: float = Field(gt=1.0, description="Relativistic gamma")
    pc: float = Field(gt=0, description="Reference momentum in GeV")
    gammatr: float = Field(gt=0, description="Transition gamma")
    mass: float = Field(gt=0, description="Particle rest energy in GeV")
    charge: float = Field(description="Particle charge in units of e")
    q1: float = Field(description="Horizontal tune")
    q2: Optional[float] = Field(default=None, description="Vertical tune (defaults to q1)")
    length: float = Field(gt=0, description="Ring circumference in m")

    @field_validator("charge")
    @classmethod
    def validate_charge(cls, v):
        """A neutral beam has no IBS and no synchrotron radiation."""
        if v == 0:
            raise ValueError("Particle charge must be non-zero")
        return v

    @classmethod
    def from_header(cls, header: Mapping[str, Any]) -> "LatticeSummary":
        """
        Build a summary from a MAD-X style twiss header mapping.

        Keys are matched case-insensitively. ``Q2`` is optional.

        Args:
            header: Mapping with at least the keys of ``HEADER_KEYS``

        Returns:
            Validated LatticeSummary

        Raises:
            LatticeInputError: If a required key is missing
        """
        upper = {str(key).upper(): value for key, value in header.items()}
        missing = [key for key in HEADER_KEYS if key not in upper]
        if missing:
            raise LatticeInputError(f"Twiss header is missing required keys: {missing}")

        return cls(
            gamma=float(upper["GAMMA"]),
            pc=float(upper["PC"]),
            gammatr=float(upper["GAMMATR"]),
            mass=float(upper["MASS"]),
            charge=float(upper["CHARGE"]),
            q1=float(upper["Q1"]),
            q2=float(upper["Q2"]) if "Q2" in upper else None,
            length=float(upper["LENGTH"]),
        )

    @classmethod
    def coerce(cls, value: Union["LatticeSummary", Mapping[str, Any]]) -> "LatticeSummary":
        """
        Accept either a LatticeSummary or a raw header mapping.

        Raises:
            LatticeInputError: If the header is incomplete or holds invalid values
        """
        if isinstance(value, cls):
            return value
        try:
            return cls.from_header(value)
        except ValidationError as e:
            raise LatticeInputError(f"Invalid twiss header: {e}") from e

    @property
    def vertical_tune(self) -> float:
        return self.q2 if self.q2 is not None else self.q1

    @property
    def beta(self) -> float:
        """Relativistic beta."""
        return math.sqrt(1.0 - 1.0 / self.gamma**2)

    @property
    def energy(self) -> float:
        """Total energy in GeV."""
        return self.gamma * self.mass

    @property
    def mass_ratio(self) -> float:
        """Rest mass in units of the proton mass."""
        return self.mass / PROTON_MASS_GEV

    @property
    def classical_radius(self) -> float:
        """Classical particle radius r0 = q^2 e^2 / (4 pi eps0 m c^2) in m."""
        return self.charge**2 * CLASSICAL_PROTON_RADIUS / self.mass_ratio

    @property
    def revolution_period(self) -> float:
        return self.length / (self.beta * CLIGHT)

    @property
    def revolution_frequency(self) -> float:
        return 1.0 / self.revolution_period

    @property
    def omega0(self) -> float:
        """Angular revolution frequency in rad/s."""
        return 2.0 * math.pi * self.revolution_frequency

    @property
    def slip_factor(self) -> float:
        """Phase slip factor eta = 1/gammatr^2 - 1/gamma^2."""
        return 1.0 / self.gammatr**2 - 1.0 / self.gamma**2

    @property
    def average_radius(self) -> float:
        return self.length / (2.0 * math.pi)


# Columns that must be present in every optics table
REQUIRED_COLUMNS = ("s", "l", "betx", "bety", "angle")

# Columns that default to zero when absent
OPTIONAL_COLUMNS = ("alfx", "alfy", "dx", "dpx", "dy", "dpy", "k1l", "e1", "e2")


class TwissTable(FrozenPhysicsModel):
    """
    Per-element optics of a ring, one row per element.

    Quantities are taken at the element exit as in a MAD-X twiss table.
    Lengths are in m, bending angles and edge angles in rad, integrated
    quadrupole strengths ``k1l`` in 1/m.
    """

    s: np.ndarray = Field(description="Longitudinal position at element exit in m")
    l: np.ndarray = Field(description="Element length in m")
    betx: np.ndarray = Field(description="Horizontal beta function in m")
    bety: np.ndarray = Field(description="Vertical beta function in m")
    alfx: Optional[np.ndarray] = Field(default=None, description="Horizontal alpha function")
    alfy: Optional[np.ndarray] = Field(default=None, description="Vertical alpha function")
    dx: Optional[np.ndarray] = Field(default=None, description="Horizontal dispersion in m")
    dpx: Optional[np.ndarray] = Field(default=None, description="Horizontal dispersion derivative")
    dy: Optional[np.ndarray] = Field(default=None, description="Vertical dispersion in m")
    dpy: Optional[np.ndarray] = Field(default=None, description="Vertical dispersion derivative")
    angle: np.ndarray = Field(description="Bending angle in rad")
    k1l: Optional[np.ndarray] = Field(default=None, description="Integrated quadrupole strength in 1/m")
    e1: Optional[np.ndarray] = Field(default=None, description="Entrance edge angle in rad")
    e2: Optional[np.ndarray] = Field(default=None, description="Exit edge angle in rad")

    @field_validator("*", mode="before")
    @classmethod
    def convert_to_array(cls, v):
        """Store every column as a 1-D float array."""
        if v is None:
            return v
        return np.atleast_1d(np.asarray(v, dtype=float))

    @field_validator("betx", "bety")
    @classmethod
    def validate_beta(cls, v, info):
        return validate_positive_array(v, info.field_name)

    @field_validator("l")
    @classmethod
    def validate_length(cls, v):
        if np.any(v < 0):
            raise ValueError("Element lengths must be non-negative")
        return v

    @model_validator(mode="after")
    def fill_and_check_columns(self):
        """Fill absent optional columns with zeros and check that all lengths agree."""
        n = validate_equal_lengths({name: getattr(self, name) for name in REQUIRED_COLUMNS})
        for name in OPTIONAL_COLUMNS:
            column = getattr(self, name)
            if column is None:
                object.__setattr__(self, name, np.zeros(n))
            elif len(column) != n:
                raise ValueError(f"Column {name} has length {len(column)}, expected {n}")
        return self

    @classmethod
    def from_columns(cls, columns: Mapping[str, Sequence[float]]) -> "TwissTable":
        """
        Build a table from a mapping of MAD-X column names to values.

        Column names are matched case-insensitively and unknown columns are
        ignored, so a full MAD-X twiss table can be passed directly.

        Raises:
            LatticeInputError: If a required column is missing
        """
        lower = {str(key).lower(): value for key, value in columns.items()}
        missing = [name for name in REQUIRED_COLUMNS if name not in lower]
        if missing:
            raise LatticeInputError(f"Optics table is missing required columns: {missing}")

        known = {name: lower[name] for name in REQUIRED_COLUMNS + OPTIONAL_COLUMNS if name in lower}
        return cls(**known)

    @classmethod
    def coerce(cls, value: Union["TwissTable", Mapping[str, Sequence[float]], pd.DataFrame]) -> "TwissTable":
        """
        Accept a TwissTable, a column mapping or a DataFrame.

        Raises:
            LatticeInputError: If columns are missing, inconsistent or unphysical
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, pd.DataFrame):
            value = {name: value[name].to_numpy() for name in value.columns}
        try:
            return cls.from_columns(value)
        except ValidationError as e:
            raise LatticeInputError(f"Invalid optics table: {e}") from e

    @property
    def n_elements(self) -> int:
        return len(self.s)

    @property
    def bend_mask(self) -> np.ndarray:
        """Boolean mask of elements with a non-zero bending angle and length."""
        return (self.angle != 0) & (self.l > 0)

    @property
    def weights(self) -> np.ndarray:
        """
        Integration weights for ring averages.

        Element lengths are used; for thin-element tables where every length
        is zero the spacing of the ``s`` column is used instead.
        """
        if np.any(self.l > 0):
            return self.l
        return np.diff(self.s, prepend=self.s[0])

    def average(self, values: np.ndarray) -> float:
        """Length-weighted ring average of a per-element quantity."""
        weights = self.weights
        return float(np.sum(np.asarray(values) * weights) / np.sum(weights))

    def curly_h_x(self) -> np.ndarray:
        """Horizontal dispersion invariant H = (D^2 + (beta D' + alpha D)^2) / beta."""
        return (self.dx**2 + (self.betx * self.dpx + self.alfx * self.dx) ** 2) / self.betx

    def curly_h_y(self) -> np.ndarray:
        """Vertical dispersion invariant."""
        return (self.dy**2 + (self.bety * self.dpy + self.alfy * self.dy) ** 2) / self.bety

    def averaged(self) -> "TwissTable":
        """
        Return a table with optics averaged over successive rows.

        Each row's optical functions are replaced by the mean of the values
        at the element entrance (previous row, wrapping around the ring) and
        exit. Lengths, angles and strengths are kept.
        """
        optics = ("betx", "bety", "alfx", "alfy", "dx", "dpx", "dy", "dpy")
        columns: Dict[str, np.ndarray] = {
            name: getattr(self, name) for name in REQUIRED_COLUMNS + OPTIONAL_COLUMNS
        }
        for name in optics:
            column = getattr(self, name)
            columns[name] = 0.5 * (column + np.roll(column, 1))
        return TwissTable(**columns)

    def to_dataframe(self) -> pd.DataFrame:
        """Return the table as a pandas DataFrame, one row per element."""
        return pd.DataFrame({name: getattr(self, name) for name in REQUIRED_COLUMNS + OPTIONAL_COLUMNS})
