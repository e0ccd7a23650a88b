"""
Reassignment orchestrator for the gravitational hierarchy.

This module repairs and rebalances the parent graph of a body registry.
It is driven by the host simulation loop, strictly between integration
steps, in two ways:

1. Destruction batches (`reassign_orphaned_objects`):
   a. Partition destroyed ids into stars and planets/gas giants
   b. Replace the main star if it died; re-parent orphaned stars onto it
   c. Re-run parent selection for planets whose star died
   d. Fan out the children of destroyed planets (largest child may
      capture its siblings, the rest go to the nearest star)
   e. Catch-all: anything still pointing at a dead parent goes to the
      nearest star, or is left drifting when no star remains

2. Periodic maintenance (`perform_hierarchy_maintenance`):
   - Competitive star pass with a hysteresis margin
   - Escape sweep that moves unbound children to their nearest star

Every mutation goes through `BodyRegistry.set_parent` and is recorded as a
`ParentChange`, so callers can inspect exactly what moved.

"No parent found" is a normal outcome, not an error. The only hard error is
losing every star, which is logged and reported, and the engine stops
there without attempting recovery.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from hierarchy.binding import sweep_for_escapes
from hierarchy.bodies import Body, PLANETARY_KINDS
from hierarchy.physics import can_capture, gravitational_influence
from hierarchy.registry import BodyRegistry
from hierarchy.selection import (
    find_best_parent,
    find_nearest_star,
    find_new_main_star,
    primary_star_mass,
)
from hierarchy.settings import EngineSettings

logger = logging.getLogger(__name__)


# ============================================================================
# Change log
# ============================================================================

@dataclass(frozen=True)
class ParentChange:
    """One parent-link mutation: `body_id` moved from old to new parent."""

    body_id: str
    old_parent_id: Optional[str]
    new_parent_id: Optional[str]

    def as_tuple(self):
        return (self.body_id, self.old_parent_id, self.new_parent_id)


@dataclass
class ReassignmentReport:
    """Outcome of one orchestrator run.

    Attributes
    ----------
    changes : list of ParentChange
        Parent-link mutations in the order they were applied.
    new_main_star_id : str, optional
        Set when the main star was replaced during this run.
    drifting_ids : list of str
        Active non-star bodies left without a parent.
    catastrophic : bool
        True when a main star replacement was needed but no star remained.
    """

    changes: List[ParentChange] = field(default_factory=list)
    new_main_star_id: Optional[str] = None
    drifting_ids: List[str] = field(default_factory=list)
    catastrophic: bool = False

    @property
    def changed_ids(self) -> List[str]:
        seen: List[str] = []
        for change in self.changes:
            if change.body_id not in seen:
                seen.append(change.body_id)
        return seen

    def final_parents(self) -> Dict[str, Optional[str]]:
        """Last recorded parent per changed body."""
        return {c.body_id: c.new_parent_id for c in self.changes}

    def extend(self, other: "ReassignmentReport") -> None:
        self.changes.extend(other.changes)
        for body_id in other.drifting_ids:
            if body_id not in self.drifting_ids:
                self.drifting_ids.append(body_id)
        self.new_main_star_id = other.new_main_star_id or self.new_main_star_id
        self.catastrophic = self.catastrophic or other.catastrophic

    def __len__(self) -> int:
        return len(self.changes)

    def __bool__(self) -> bool:
        return bool(self.changes) or self.new_main_star_id is not None or self.catastrophic


def _assign(registry: BodyRegistry, body: Body, new_parent_id: Optional[str],
            report: ReassignmentReport) -> None:
    if body.parent_id == new_parent_id:
        return
    old = registry.set_parent(body.id, new_parent_id)
    report.changes.append(ParentChange(body.id, old, new_parent_id))
    logger.debug("Re-parented '%s': %s -> %s", body.id, old, new_parent_id)


def _finish(registry: BodyRegistry, report: ReassignmentReport,
            settings: EngineSettings, require_main_star: bool,
            ignore_ids: Iterable[str] = ()) -> ReassignmentReport:
    if __debug__ and settings.check_invariants and not report.catastrophic:
        registry.assert_invariants(require_main_star=require_main_star, ignore_ids=ignore_ids)
    return report


# ============================================================================
# Destruction handling
# ============================================================================

def _replace_main_star(registry: BodyRegistry, destroyed_stars: List[Body],
                       report: ReassignmentReport) -> bool:
    """Promote the most massive surviving star. Returns False if none is left."""
    destroyed_ids = [s.id for s in destroyed_stars]
    new_main = find_new_main_star(registry, exclude_ids=destroyed_ids)
    if new_main is None:
        logger.error(
            "Main star destroyed and no Active star remains (destroyed: %s); "
            "hierarchy left as is",
            ", ".join(destroyed_ids) or "none",
        )
        report.catastrophic = True
        return False

    for star in registry.stars(active_only=False):
        if star.id != new_main.id and star.is_main_star:
            star.is_main_star = False
    new_main.is_main_star = True
    _assign(registry, new_main, None, report)
    report.new_main_star_id = new_main.id
    logger.info("New main star: '%s' (%.3e kg)", new_main.id, new_main.mass_kg or 0.0)
    return True


def _reassign_children_of_destroyed_planet(registry: BodyRegistry, planet_id: str,
                                           dead_ids: Set[str], primary_mass: float,
                                           report: ReassignmentReport) -> None:
    children = [
        c for c in registry.children_of(planet_id, active_only=True)
        if c.id not in dead_ids
    ]
    if not children:
        return

    def nearest_star_id(body: Body) -> Optional[str]:
        star = find_nearest_star(body, registry, exclude_ids=dead_ids)
        return star.id if star else None

    if len(children) == 1:
        _assign(registry, children[0], nearest_star_id(children[0]), report)
        return

    # Stable sort: equal masses keep registry order.
    ordered = sorted(children, key=lambda b: b.mass_kg or 0.0, reverse=True)
    largest = ordered[0]

    captured: Set[str] = set()
    for child in ordered[1:]:
        if can_capture(largest, child, primary_mass):
            captured.add(child.id)

    # The largest child must leave the dead planet before siblings point at it.
    _assign(registry, largest, nearest_star_id(largest), report)

    for child in ordered[1:]:
        if child.id in captured:
            _assign(registry, child, largest.id, report)
        else:
            _assign(registry, child, nearest_star_id(child), report)


def reassign_orphaned_objects(registry: BodyRegistry, destroyed_ids: Iterable[str],
                              settings: Optional[EngineSettings] = None) -> ReassignmentReport:
    """Repair the hierarchy after a batch of bodies was destroyed.

    Parameters
    ----------
    registry : BodyRegistry
        Live registry. Parent links and `is_main_star` flags are mutated in
        place; physics snapshots are never touched.
    destroyed_ids : iterable of str
        Bodies destroyed this step. They are treated as gone even if the
        lifecycle system has not flipped their status yet.
    settings : EngineSettings, optional
        Thresholds and physics mode. Non-N-body modes make this a no-op.

    Returns
    -------
    ReassignmentReport
        Change log, replacement main star (if any), drifting bodies and the
        catastrophic flag.

    Notes
    -----
    A body left without a parent is a valid, if degraded, state. It is only
    normal for root stars; for anything else it is reported as drifting.
    """
    settings = settings or EngineSettings()
    report = ReassignmentReport()
    if not settings.physics_mode.is_nbody:
        return report

    destroyed: List[Body] = []
    for body_id in dict.fromkeys(destroyed_ids):
        body = registry.get(body_id)
        if body is None:
            logger.warning("Ignoring unknown destroyed id '%s'", body_id)
            continue
        destroyed.append(body)
    if not destroyed:
        return report

    dead_ids: Set[str] = {b.id for b in destroyed}
    destroyed_stars = [b for b in destroyed if b.is_star]
    destroyed_planets = [b for b in destroyed if b.kind in PLANETARY_KINDS]
    destroyed_star_ids = [s.id for s in destroyed_stars]

    def is_gone(body_id: Optional[str]) -> bool:
        parent = registry.get(body_id)
        return parent is None or parent.id in dead_ids or not parent.is_active

    # --- Stars ---------------------------------------------------------------
    if destroyed_stars:
        main_lost = any(s.is_main_star for s in destroyed_stars)
        surviving_main = [
            s for s in registry.stars()
            if s.is_main_star and s.id not in dead_ids
        ]
        if main_lost or not surviving_main:
            if not _replace_main_star(registry, destroyed_stars, report):
                return report

        main = registry.main_star()
        for star in registry.stars():
            if star.id in dead_ids or star is main:
                continue
            if star.parent_id in destroyed_star_ids:
                _assign(registry, star, main.id if main else None, report)

        for body in registry.active(PLANETARY_KINDS):
            if body.id in dead_ids or body.parent_id not in destroyed_star_ids:
                continue
            best = find_best_parent(body, registry, exclude_ids=dead_ids, settings=settings)
            _assign(registry, body, best.id if best else None, report)

    # --- Planets (children fan-out) -----------------------------------------
    primary_mass = primary_star_mass(registry, default=settings.default_primary_mass_kg)
    for planet in destroyed_planets:
        _reassign_children_of_destroyed_planet(registry, planet.id, dead_ids, primary_mass, report)

    # --- Catch-all ----------------------------------------------------------
    for body in registry.active():
        if body.id in dead_ids or body.parent_id is None or not is_gone(body.parent_id):
            continue
        if body.is_star:
            main = registry.main_star()
            _assign(registry, body, main.id if main and main is not body else None, report)
            continue
        star = find_nearest_star(body, registry, exclude_ids=dead_ids)
        _assign(registry, body, star.id if star else None, report)

    for body in registry.active():
        if body.id in dead_ids or body.is_star or body.parent_id is not None:
            continue
        if body.id in report.changed_ids:
            report.drifting_ids.append(body.id)
            logger.warning("Body '%s' has no valid parent and is drifting", body.id)

    return _finish(registry, report, settings, require_main_star=bool(destroyed_stars),
                   ignore_ids=dead_ids)


# ============================================================================
# Periodic maintenance
# ============================================================================

def reassign_competitive_stars(registry: BodyRegistry,
                               settings: Optional[EngineSettings] = None) -> ReassignmentReport:
    """Move planets to a clearly stronger star.

    For every Active planet or gas giant with a parent and a physics
    snapshot, find the star with the highest influence score. Switch only
    when that score beats the current parent's by `star_switch_margin`
    (1.5x by default). The margin makes the pass idempotent: a second run
    with unchanged positions moves nothing.
    """
    settings = settings or EngineSettings()
    report = ReassignmentReport()
    if not settings.physics_mode.is_nbody:
        return report

    stars = [s for s in registry.stars() if s.has_physics]
    if len(stars) <= 1:
        return report

    for planet in registry.active(PLANETARY_KINDS):
        if not planet.has_physics or planet.parent_id is None:
            continue

        best: Optional[Body] = None
        max_influence = 0.0
        for star in stars:
            influence = gravitational_influence(star, planet)
            if influence > max_influence:
                max_influence = influence
                best = star

        if best is None or best.id == planet.parent_id:
            continue

        current = registry.get(planet.parent_id)
        if current is None or not current.is_active or not current.has_physics:
            continue

        current_influence = gravitational_influence(current, planet)
        if max_influence > current_influence * settings.star_switch_margin:
            _assign(registry, planet, best.id, report)

    return _finish(registry, report, settings, require_main_star=False)


def apply_escape_sweep(registry: BodyRegistry,
                       settings: Optional[EngineSettings] = None) -> ReassignmentReport:
    """Commit the moves proposed by `sweep_for_escapes`."""
    settings = settings or EngineSettings()
    report = ReassignmentReport()
    if not settings.physics_mode.is_nbody:
        return report

    for child_id, new_parent_id in sweep_for_escapes(registry, settings=settings).items():
        _assign(registry, registry[child_id], new_parent_id, report)

    return _finish(registry, report, settings, require_main_star=False)


def perform_hierarchy_maintenance(registry: BodyRegistry,
                                  settings: Optional[EngineSettings] = None) -> ReassignmentReport:
    """Competitive star pass followed by the escape sweep."""
    report = reassign_competitive_stars(registry, settings)
    report.extend(apply_escape_sweep(registry, settings))
    return report


# ============================================================================
# Host-facing engine
# ============================================================================

class HierarchyEngine:
    """Stateful wrapper the simulation loop calls between integration steps.

    Parameters
    ----------
    settings : EngineSettings, optional
        Thresholds, physics mode and maintenance cadence.

    Examples
    --------
    >>> engine = HierarchyEngine(EngineSettings(maintenance_every=500))
    >>> for step in range(n_steps):
    ...     integrate(registry)                      # host integrator
    ...     engine.on_physics_step(registry, destroyed_ids=collisions())
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self._step_count = 0

    @property
    def step_count(self) -> int:
        return self._step_count

    def handle_destruction(self, registry: BodyRegistry,
                           destroyed_ids: Iterable[str]) -> ReassignmentReport:
        destroyed_ids = list(destroyed_ids)
        if destroyed_ids:
            logger.info("Handling parent reassignment for %d destroyed bodies: %s",
                        len(destroyed_ids), ", ".join(destroyed_ids))
        return reassign_orphaned_objects(registry, destroyed_ids, self.settings)

    def maintain(self, registry: BodyRegistry) -> ReassignmentReport:
        return perform_hierarchy_maintenance(registry, self.settings)

    def on_physics_step(self, registry: BodyRegistry,
                        destroyed_ids: Iterable[str] = ()) -> ReassignmentReport:
        """Handle this step's destructions, and maintenance when it is due.

        Maintenance runs on the first call and then every
        `settings.maintenance_every` calls.
        """
        report = self.handle_destruction(registry, destroyed_ids)
        if self._step_count % self.settings.maintenance_every == 0 and not report.catastrophic:
            report.extend(self.maintain(registry))
        self._step_count += 1
        return report
