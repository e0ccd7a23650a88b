"""Parent candidate selection.

Given a body and the registry, decide which single body it should orbit.

Rules:
- Stars can parent any non-star body.
- Moons and asteroid fields can also be held by gas giants, and by planets
  heavier than themselves.
- Planets and gas giants only ever orbit stars.
- Planets pick the star with the highest influence score. Everything else
  compares influence across all candidates, with an exponential penalty
  for non-stellar candidates further than the decay cutoff.

Ties resolve to the first candidate in registry order (strict `>`).
Selection never mutates the registry.
"""

import math
from typing import Iterable, List, Optional

from hierarchy.bodies import Body, BodyKind, PLANETARY_KINDS, SMALL_BODY_KINDS
from hierarchy.physics import AU, distance, gravitational_influence
from hierarchy.registry import BodyRegistry
from hierarchy.settings import EngineSettings


def _is_eligible(candidate: Body, target: Body) -> bool:
    if candidate.kind is BodyKind.STAR:
        return True
    if target.kind in SMALL_BODY_KINDS:
        if candidate.kind is BodyKind.GAS_GIANT:
            return True
        if candidate.kind is BodyKind.PLANET:
            return (candidate.mass_kg or 0.0) > (target.mass_kg or 0.0)
    return False


def candidate_parents(target: Body, registry: BodyRegistry,
                      exclude_ids: Iterable[str] = ()) -> List[Body]:
    """Active bodies that `target` may orbit, in registry order.

    Skips the target itself, anything in `exclude_ids`, non-Active bodies
    and bodies without a physics snapshot. Stars never get candidates.
    """
    if target.kind is BodyKind.STAR:
        return []
    excluded = set(exclude_ids)
    candidates = []
    for body in registry:
        if body.id == target.id or body.id in excluded:
            continue
        if not body.is_active or not body.has_physics:
            continue
        if _is_eligible(body, target):
            candidates.append(body)
    return candidates


def find_best_parent(target: Body, registry: BodyRegistry,
                     exclude_ids: Iterable[str] = (),
                     settings: Optional[EngineSettings] = None) -> Optional[Body]:
    """Best gravitational parent for `target`, or None.

    Parameters
    ----------
    target : Body
        Body that needs a parent.
    registry : BodyRegistry
        All bodies of the system.
    exclude_ids : iterable of str
        Ids never to consider, typically the bodies destroyed this step.
    settings : EngineSettings, optional
        Supplies the distance-decay cutoff and rate.

    Returns
    -------
    Body or None
        The candidate with the highest (possibly penalised) influence score.
        None means the target becomes a temporary orphan.

    Notes
    -----
    For a planet or gas giant the result is always a star or None.

    For other targets a non-stellar candidate at d_AU > cutoff has its
    score multiplied by exp(-rate * d_AU), so a far planet loses to any
    reasonably close star.
    """
    settings = settings or EngineSettings()
    candidates = candidate_parents(target, registry, exclude_ids)

    best: Optional[Body] = None
    max_influence = 0.0

    if target.kind in PLANETARY_KINDS:
        for star in candidates:
            if star.kind is not BodyKind.STAR:
                continue
            influence = gravitational_influence(star, target)
            if influence > max_influence:
                max_influence = influence
                best = star
        return best

    for candidate in candidates:
        influence = gravitational_influence(candidate, target)
        if candidate.kind is not BodyKind.STAR:
            d_au = distance(target, candidate) / AU
            if d_au > settings.decay_cutoff_au:
                influence *= math.exp(-settings.decay_rate * d_au)
        if influence > max_influence:
            max_influence = influence
            best = candidate

    return best


def find_nearest_star(target: Body, registry: BodyRegistry,
                      exclude_ids: Iterable[str] = ()) -> Optional[Body]:
    """Active star with the smallest straight-line distance to `target`.

    Stars at unknown distance are never chosen.
    """
    excluded = set(exclude_ids)
    nearest: Optional[Body] = None
    min_dist = math.inf
    for star in registry.stars():
        if star.id == target.id or star.id in excluded:
            continue
        d = distance(target, star)
        if d < min_dist:
            min_dist = d
            nearest = star
    return nearest


def find_new_main_star(registry: BodyRegistry,
                       exclude_ids: Iterable[str] = ()) -> Optional[Body]:
    """Most massive remaining Active star; first in registry order on ties."""
    excluded = set(exclude_ids)
    best: Optional[Body] = None
    best_mass = -math.inf
    for star in registry.stars():
        if star.id in excluded:
            continue
        mass = star.mass_kg or 0.0
        if mass > best_mass:
            best_mass = mass
            best = star
    return best


def primary_star_mass(registry: BodyRegistry,
                      default: Optional[float] = None) -> Optional[float]:
    """Mass of the system's primary star.

    Uses the main star, else the first Active root star. Falls back to
    `default` when neither has a known positive mass.
    """
    main = registry.main_star()
    if main is not None and main.mass_kg:
        return main.mass_kg
    for star in registry.stars():
        if star.is_root and star.mass_kg:
            return star.mass_kg
    return default
