"""Binding and escape evaluation for existing child-parent pairs.

A child stays with its parent while:
1. it is inside the parent's Hill sphere with negative orbital energy, and
2. no competing star pulls on it more than `tug_of_war_factor` times as
   hard as the parent does.

The sweep only reports escapes; committing them is the orchestrator's job.
"""

import logging
from typing import Dict, Optional

from hierarchy.bodies import Body
from hierarchy.physics import acceleration, body_hill_radius, distance, is_bound
from hierarchy.registry import BodyRegistry
from hierarchy.selection import find_nearest_star, primary_star_mass
from hierarchy.settings import EngineSettings

logger = logging.getLogger(__name__)


def max_competing_star_acceleration(child: Body, parent: Body,
                                    registry: BodyRegistry) -> float:
    """Strongest pull [m/s^2] any Active star other than `parent` exerts on `child`."""
    strongest = 0.0
    for star in registry.stars():
        if star.id == parent.id or star.id == child.id:
            continue
        if not star.has_physics:
            continue
        accel = acceleration(star, child)
        if accel > strongest:
            strongest = accel
    return strongest


def recheck_binding(child: Body, parent: Body, primary_star_mass: float,
                    registry: BodyRegistry,
                    tug_of_war_factor: float = 3.0) -> bool:
    """Whether `child` is still bound to `parent`.

    Parameters
    ----------
    child, parent : Body
        The pair under test.
    primary_star_mass : float
        Mass of the system's primary star [kg], for the Hill radius.
    registry : BodyRegistry
        Source of competing stars.
    tug_of_war_factor : float
        A competing star pulling more than this multiple of the parent's
        acceleration steals the child.

    Returns
    -------
    bool
        True only if `is_bound` holds and the strongest competing star's
        acceleration is at most `tug_of_war_factor` times the parent's.
    """
    if not is_bound(child, parent, primary_star_mass):
        return False
    parent_accel = acceleration(parent, child)
    if parent_accel <= 0.0:
        return False
    return max_competing_star_acceleration(child, parent, registry) <= tug_of_war_factor * parent_accel


def sweep_for_escapes(registry: BodyRegistry,
                      primary_star_mass_kg: Optional[float] = None,
                      settings: Optional[EngineSettings] = None) -> Dict[str, str]:
    """Map escaped children to their nearest star, without mutating anything.

    Parameters
    ----------
    registry : BodyRegistry
        All bodies of the system.
    primary_star_mass_kg : float, optional
        Primary star mass. Looked up from the registry when omitted.
    settings : EngineSettings, optional
        Supplies `tug_of_war_factor` and `escape_hill_factor`.

    Returns
    -------
    dict
        `child_id -> new_parent_id`. Empty when no primary star exists.

    Notes
    -----
    **Rules per Active non-star child with a parent**:

    - Parent missing or not Active: reassign to the nearest star.
    - Parent is a star: skipped. Star-level moves belong to the periodic
      competitive pass.
    - Otherwise, if `recheck_binding` fails *and* the child is more than
      `escape_hill_factor` Hill radii from the parent, reassign to the
      nearest star. The margin keeps children that are only marginally
      unbound on their current parent.
    - If the parent's Hill radius is unknown (no orbit), the child keeps
      its parent.
    """
    settings = settings or EngineSettings()
    if primary_star_mass_kg is None:
        primary_star_mass_kg = primary_star_mass(registry)
    if not primary_star_mass_kg:
        return {}

    assignments: Dict[str, str] = {}

    for child in registry.active():
        if child.is_star or child.parent_id is None:
            continue

        parent = registry.get(child.parent_id)
        if parent is None or not parent.is_active:
            star = find_nearest_star(child, registry)
            if star is not None:
                assignments[child.id] = star.id
            continue

        if parent.is_star:
            continue

        if recheck_binding(child, parent, primary_star_mass_kg, registry,
                           settings.tug_of_war_factor):
            continue

        r_h = body_hill_radius(parent, primary_star_mass_kg)
        if r_h is None:
            logger.debug(
                "Cannot evaluate escape of '%s': parent '%s' has no orbit data",
                child.id, parent.id,
            )
            continue

        if distance(child, parent) > settings.escape_hill_factor * r_h:
            star = find_nearest_star(child, registry)
            if star is not None and star.id != child.parent_id:
                assignments[child.id] = star.id

    return assignments
