"""Body dataclass for the gravitational hierarchy engine.

This module defines the canonical unit of the orbital hierarchy. Each body
carries:
- A stable identifier, a kind (star, planet, moon, ...) and a lifecycle status
- A physics snapshot: mass M, position x and velocity v (3D vectors)
- Optional orbital elements of its current orbit
- A parent reference, stored as the parent's id (never as an object)

The physics snapshot is owned by the external integrator. The hierarchy
engine reads it and only ever writes `parent_id` and `is_main_star`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import numpy as np


class BodyKind(Enum):
    """Classification used by the parent selection rules."""

    STAR = "star"
    PLANET = "planet"
    GAS_GIANT = "gas_giant"
    MOON = "moon"
    ASTEROID_FIELD = "asteroid_field"
    OORT_CLOUD = "oort_cloud"
    OTHER = "other"


class BodyStatus(Enum):
    """Lifecycle status. Transitions only move forward."""

    ACTIVE = "active"
    DESTROYED = "destroyed"
    ANNIHILATED = "annihilated"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    BodyStatus.ACTIVE: 0,
    BodyStatus.DESTROYED: 1,
    BodyStatus.ANNIHILATED: 2,
}

PLANETARY_KINDS = (BodyKind.PLANET, BodyKind.GAS_GIANT)
SMALL_BODY_KINDS = (BodyKind.MOON, BodyKind.ASTEROID_FIELD)


@dataclass
class OrbitalElements:
    """Elements of a body's current orbit around its parent.

    Attributes
    ----------
    semi_major_axis_m : float
        Semi-major axis [m]. Used as `a` in the Hill-sphere approximation.
    eccentricity : float
        Orbital eccentricity (0 = circular, <1 elliptical).
    inclination_rad, longitude_of_ascending_node_rad, argument_of_periapsis_rad,
    mean_anomaly_rad : float, optional
        Remaining Keplerian angles [rad]. Carried for completeness; the
        hierarchy rules do not use them.
    period_s : float, optional
        Orbital period [s].
    """

    semi_major_axis_m: float
    eccentricity: float = 0.0
    inclination_rad: Optional[float] = None
    longitude_of_ascending_node_rad: Optional[float] = None
    argument_of_periapsis_rad: Optional[float] = None
    mean_anomaly_rad: Optional[float] = None
    period_s: Optional[float] = None

    def __post_init__(self):
        """Validate orbital elements."""
        self.semi_major_axis_m = float(self.semi_major_axis_m)
        self.eccentricity = float(self.eccentricity)
        if not np.isfinite(self.semi_major_axis_m) or self.semi_major_axis_m <= 0:
            raise ValueError(
                f"Semi-major axis must be positive and finite, got {self.semi_major_axis_m}"
            )
        if self.eccentricity < 0:
            raise ValueError(f"Eccentricity must be non-negative, got {self.eccentricity}")


def _as_vec3(value, label: str) -> Optional[np.ndarray]:
    if value is None:
        return None
    vec = np.array(value, dtype=float)
    if vec.shape != (3,):
        raise ValueError(f"{label} must have shape (3,), got {vec.shape}")
    return vec


@dataclass
class Body:
    """A body in the orbital hierarchy.

    Attributes
    ----------
    id : str
        Unique, stable identifier. Registry key.
    kind : BodyKind
        Star, planet, gas giant, moon, asteroid field, Oort cloud or other.
    status : BodyStatus
        Only ACTIVE bodies take part in parent selection.
    mass_kg : float, optional
        Mass [kg]. None when the physics snapshot is unavailable.
    position_m : np.ndarray, optional
        Position vector [m], shape (3,).
    velocity_mps : np.ndarray, optional
        Velocity vector [m/s], shape (3,).
    orbit : OrbitalElements, optional
        Current orbital elements; `orbit.semi_major_axis_m` feeds the Hill
        radius when this body acts as a parent.
    parent_id : str, optional
        Id of the body this one orbits. None for hierarchy roots.
    is_main_star : bool
        True for the single root star anchoring the whole system.
    name : str, optional
        Display name. Defaults to the id.

    Notes
    -----
    **Missing physics**:
    A body with any of mass, position or velocity unset has no physics
    snapshot (`has_physics` is False). Distance and energy helpers treat
    such bodies as "cannot determine" rather than as zero.

    Examples
    --------
    >>> sun = Body("sun", BodyKind.STAR, mass_kg=1.989e30,
    ...            position_m=[0, 0, 0], velocity_mps=[0, 0, 0],
    ...            is_main_star=True)
    >>> earth = Body("earth", BodyKind.PLANET, mass_kg=5.972e24,
    ...              position_m=[1.496e11, 0, 0], velocity_mps=[0, 29780, 0],
    ...              orbit=OrbitalElements(1.496e11, 0.0167), parent_id="sun")
    >>> earth.has_physics, sun.is_root
    (True, True)
    """

    id: str
    kind: BodyKind
    status: BodyStatus = BodyStatus.ACTIVE
    mass_kg: Optional[float] = None
    position_m: Optional[np.ndarray] = None
    velocity_mps: Optional[np.ndarray] = None
    orbit: Optional[OrbitalElements] = None
    parent_id: Optional[str] = None
    is_main_star: bool = False
    name: Optional[str] = None

    def __post_init__(self):
        """Coerce enums and vectors, and validate parameters."""
        self.id = str(self.id)
        if not self.id:
            raise ValueError("Body id must be a non-empty string")
        self.kind = BodyKind(self.kind)
        self.status = BodyStatus(self.status)

        self.position_m = _as_vec3(self.position_m, f"Body '{self.id}' position_m")
        self.velocity_mps = _as_vec3(self.velocity_mps, f"Body '{self.id}' velocity_mps")

        if self.mass_kg is not None:
            self.mass_kg = float(self.mass_kg)
            if self.mass_kg < 0:
                raise ValueError(f"Body '{self.id}': mass must be non-negative, got {self.mass_kg}")

        if self.parent_id is not None:
            self.parent_id = str(self.parent_id)
            if self.parent_id == self.id:
                raise ValueError(f"Body '{self.id}' cannot be its own parent")

        if self.is_main_star and self.kind is not BodyKind.STAR:
            raise ValueError(f"Body '{self.id}' is a {self.kind.value}, only stars can be main star")

        if self.name is None:
            self.name = self.id

    @property
    def has_physics(self) -> bool:
        """True when mass, position and velocity are all known."""
        return (
            self.mass_kg is not None
            and self.position_m is not None
            and self.velocity_mps is not None
        )

    @property
    def is_active(self) -> bool:
        return self.status is BodyStatus.ACTIVE

    @property
    def is_star(self) -> bool:
        return self.kind is BodyKind.STAR

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def _advance_status(self, new_status: BodyStatus) -> None:
        if new_status.rank < self.status.rank:
            raise ValueError(
                f"Body '{self.id}': status cannot go from {self.status.value} "
                f"back to {new_status.value}"
            )
        self.status = new_status

    def mark_destroyed(self) -> None:
        """Transition ACTIVE -> DESTROYED. Idempotent for DESTROYED bodies."""
        self._advance_status(BodyStatus.DESTROYED)

    def mark_annihilated(self) -> None:
        self._advance_status(BodyStatus.ANNIHILATED)

    def __str__(self) -> str:
        lines = [f"Body '{self.id}' ({self.kind.value}, {self.status.value})"]
        if self.mass_kg is not None:
            lines.append(f"  M = {self.mass_kg:.3e} kg")
        if self.position_m is not None:
            x = self.position_m
            lines.append(f"  x = [{x[0]:.3e}, {x[1]:.3e}, {x[2]:.3e}]")
        if self.velocity_mps is not None:
            v = self.velocity_mps
            lines.append(f"  v = [{v[0]:.3e}, {v[1]:.3e}, {v[2]:.3e}]")
        if self.orbit is not None:
            lines.append(
                f"  a = {self.orbit.semi_major_axis_m:.3e} m, e = {self.orbit.eccentricity:.3f}"
            )
        lines.append(f"  parent = {self.parent_id}" + ("  [main star]" if self.is_main_star else ""))
        return "\n".join(lines)
