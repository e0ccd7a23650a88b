"""
Distance, influence and binding utilities for hierarchy decisions.

All functions are pure and read only the physics snapshot of the bodies
passed in (mass, position, velocity, orbital elements).

Conventions:
- SI units throughout: metres, kilograms, seconds.
- Missing data never reads as zero. Distances become +inf, influences and
  accelerations 0.0, energies None and binding/capture checks False, so a
  body with an incomplete snapshot can neither win a parent comparison nor
  be captured by accident.

The gravitational influence score m / d_AU^2 is a ranking heuristic. It is
only ever compared against other scores, never used as a force.
"""

import math
from typing import Optional

import numpy as np

from hierarchy.bodies import Body

# Physical constants (SI units)
G = 6.67430e-11  # m^3 kg^-1 s^-2
AU = 1.495978707e11  # m


def distance(a: Body, b: Body) -> float:
    """Euclidean distance between two bodies [m].

    Returns
    -------
    float
        |x_a - x_b|, or +inf when either position is unknown.
    """
    if a.position_m is None or b.position_m is None:
        return math.inf
    return float(np.linalg.norm(a.position_m - b.position_m))


def relative_speed(a: Body, b: Body) -> float:
    """Magnitude of the velocity difference [m/s]; +inf if a velocity is unknown."""
    if a.velocity_mps is None or b.velocity_mps is None:
        return math.inf
    return float(np.linalg.norm(a.velocity_mps - b.velocity_mps))


def gravitational_influence(source: Body, target: Body) -> float:
    """Ranking score for how strongly `source` pulls on `target`.

    Computes M_source / d_AU^2 with the separation expressed in astronomical
    units, which keeps scores in a tractable range for stellar masses.

    Parameters
    ----------
    source : Body
        Candidate attractor.
    target : Body
        Body being pulled.

    Returns
    -------
    float
        Influence score, 0.0 when the separation is zero or unknown or the
        source mass is missing or non-positive.

    Examples
    --------
    >>> sun = Body("sun", BodyKind.STAR, mass_kg=2e30, position_m=[0, 0, 0], velocity_mps=[0, 0, 0])
    >>> p = Body("p", BodyKind.PLANET, mass_kg=6e24, position_m=[2 * AU, 0, 0], velocity_mps=[0, 0, 0])
    >>> gravitational_influence(sun, p)
    5e+29
    """
    mass = source.mass_kg
    if mass is None or mass <= 0:
        return 0.0
    d = distance(source, target)
    if d == 0.0 or not math.isfinite(d):
        return 0.0
    d_au = d / AU
    return mass / (d_au * d_au)


def acceleration(source: Body, target: Body) -> float:
    """Newtonian acceleration G M_source / d^2 exerted on `target` [m/s^2]."""
    mass = source.mass_kg
    if mass is None or mass <= 0:
        return 0.0
    d = distance(source, target)
    if d == 0.0 or not math.isfinite(d):
        return 0.0
    return G * mass / (d * d)


def hill_radius(parent_mass_kg: float, parent_semi_major_axis_m: float,
                primary_mass_kg: float) -> float:
    """Hill-sphere radius r_H = a * (m / (3 M))^(1/3) [m].

    Parameters
    ----------
    parent_mass_kg : float
        Mass of the body whose sphere of influence is wanted.
    parent_semi_major_axis_m : float
        Semi-major axis of that body's orbit.
    primary_mass_kg : float
        Mass of the perturbing primary (normally the main star).

    Returns
    -------
    float
        Hill radius, or 0.0 when any input is non-positive or not finite.
    """
    values = (parent_mass_kg, parent_semi_major_axis_m, primary_mass_kg)
    if any(v is None or not math.isfinite(v) or v <= 0 for v in values):
        return 0.0
    return parent_semi_major_axis_m * (parent_mass_kg / (3.0 * primary_mass_kg)) ** (1.0 / 3.0)


def body_hill_radius(body: Body, primary_mass_kg: float) -> Optional[float]:
    """Hill radius of `body` from its own mass and orbit, None if unknown."""
    if body.mass_kg is None or body.mass_kg <= 0 or body.orbit is None:
        return None
    r_h = hill_radius(body.mass_kg, body.orbit.semi_major_axis_m, primary_mass_kg)
    return r_h if r_h > 0 else None


def escape_velocity(mass_kg: float, separation_m: float) -> float:
    """Escape velocity sqrt(2 G M / r) [m/s]; 0.0 for non-positive inputs."""
    if mass_kg is None or mass_kg <= 0 or separation_m <= 0 or not math.isfinite(separation_m):
        return 0.0
    return math.sqrt(2.0 * G * mass_kg / separation_m)


def specific_orbital_energy(child: Body, parent: Body) -> Optional[float]:
    """Two-body specific orbital energy 0.5 v_rel^2 - G M_parent / d [J/kg].

    Negative means bound (elliptical), non-negative means escaping.
    Returns None when the pair lacks a complete physics snapshot or the
    separation is zero.
    """
    if not (child.has_physics and parent.has_physics):
        return None
    d = distance(child, parent)
    if d == 0.0 or not math.isfinite(d):
        return None
    v_rel = relative_speed(child, parent)
    return 0.5 * v_rel * v_rel - G * parent.mass_kg / d


def is_bound(child: Body, parent: Body, primary_mass_kg: float) -> bool:
    """True if `child` is inside `parent`'s Hill sphere with negative energy.

    The Hill-sphere boundary is inclusive: a child exactly at r_H still
    counts as inside. The energy condition is strict, zero energy
    (parabolic) is not bound.

    Parameters
    ----------
    child : Body
        Orbiting body.
    parent : Body
        Nominal parent; its mass and `orbit.semi_major_axis_m` set r_H.
    primary_mass_kg : float
        Mass of the system's primary star.

    Returns
    -------
    bool
        False whenever anything needed is missing.
    """
    if not (child.has_physics and parent.has_physics):
        return False
    r_h = body_hill_radius(parent, primary_mass_kg)
    if r_h is None:
        return False
    d = distance(child, parent)
    if d > r_h:
        return False
    energy = specific_orbital_energy(child, parent)
    return energy is not None and energy < 0.0


def can_capture(capturer: Body, target: Body, primary_mass_kg: float) -> bool:
    """True if `capturer` can take `target` as a satellite.

    Requires, all at once:
    1. capturer strictly more massive than target,
    2. target within the capturer's Hill sphere (inclusive),
    3. relative speed strictly below the escape velocity from the capturer
       at the current separation.
    """
    if not (capturer.has_physics and target.has_physics):
        return False
    if capturer.mass_kg <= target.mass_kg:
        return False
    r_h = body_hill_radius(capturer, primary_mass_kg)
    if r_h is None:
        return False
    d = distance(capturer, target)
    if d == 0.0 or d > r_h:
        return False
    return relative_speed(capturer, target) < escape_velocity(capturer.mass_kg, d)
