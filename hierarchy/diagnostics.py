"""Diagnostics module for the orbital hierarchy.

This module provides read-only views of a body registry for monitoring the
engine from the outside:
- Depth of every body in the parent tree (root stars have depth 0)
- Orphans: Active non-star bodies without a valid parent
- Per-pair binding state: separation, Hill radius, orbital energy
- A summary dict (counts, main star, roots, orphans, max depth)
- An indented text rendering of the tree, used by the CLI

None of these functions mutate the registry.
"""

from collections import Counter
from typing import Any, Dict, List, Optional

from hierarchy.physics import AU, body_hill_radius, distance, is_bound, specific_orbital_energy
from hierarchy.registry import BodyRegistry
from hierarchy.selection import primary_star_mass


def hierarchy_depths(registry: BodyRegistry) -> Dict[str, int]:
    """Number of ancestors of every Active body.

    Returns
    -------
    dict
        `id -> depth`. A root has depth 0, a planet of the main star 1,
        its moons 2.

    Raises
    ------
    HierarchyInvariantError
        If the parent graph contains a cycle.
    """
    return {body.id: len(registry.ancestors(body.id)) for body in registry.active()}


def find_orphans(registry: BodyRegistry) -> List[str]:
    """Active non-star bodies whose parent is unset, unknown or not Active."""
    orphans = []
    for body in registry.active():
        if body.is_star:
            continue
        parent = registry.get(body.parent_id)
        if parent is None or not parent.is_active:
            orphans.append(body.id)
    return orphans


def binding_table(registry: BodyRegistry,
                  primary_mass_kg: Optional[float] = None) -> List[Dict[str, Any]]:
    """Binding state of every Active child of a non-star parent.

    Parameters
    ----------
    registry : BodyRegistry
        System to inspect.
    primary_mass_kg : float, optional
        Primary star mass for Hill radii. Looked up when omitted.

    Returns
    -------
    list of dict
        One row per pair with keys 'child', 'parent', 'distance_m',
        'hill_radius_m', 'hill_fraction', 'energy_jkg' and 'bound'.
        Undeterminable quantities are None.

    Notes
    -----
    This mirrors the first half of the escape sweep (`is_bound`) without the
    competing-star term, so it shows *why* a moon may be about to escape.
    """
    if primary_mass_kg is None:
        primary_mass_kg = primary_star_mass(registry)

    rows = []
    for child in registry.active():
        parent = registry.get(child.parent_id)
        if parent is None or parent.is_star or not parent.is_active:
            continue
        d = distance(child, parent)
        r_h = body_hill_radius(parent, primary_mass_kg) if primary_mass_kg else None
        rows.append({
            'child': child.id,
            'parent': parent.id,
            'distance_m': d if d != float('inf') else None,
            'hill_radius_m': r_h,
            'hill_fraction': d / r_h if r_h and d != float('inf') else None,
            'energy_jkg': specific_orbital_energy(child, parent),
            'bound': bool(primary_mass_kg) and is_bound(child, parent, primary_mass_kg),
        })
    return rows


def summarize_hierarchy(registry: BodyRegistry) -> Dict[str, Any]:
    """Compact, JSON-friendly summary of the hierarchy.

    Examples
    --------
    >>> summary = summarize_hierarchy(registry)
    >>> summary['main_star'], summary['max_depth']
    ('sun', 2)
    """
    depths = hierarchy_depths(registry)
    main = registry.main_star()
    return {
        'n_bodies': len(registry),
        'n_active': len(registry.active()),
        'by_kind': dict(Counter(b.kind.value for b in registry.active())),
        'by_status': dict(Counter(b.status.value for b in registry)),
        'main_star': main.id if main else None,
        'roots': [b.id for b in registry.active() if b.parent_id is None],
        'orphans': find_orphans(registry),
        'max_depth': max(depths.values()) if depths else 0,
    }


def format_hierarchy(registry: BodyRegistry) -> str:
    """Render the Active hierarchy as an indented tree.

    Roots come first in registry order, each child is indented two spaces
    under its parent. The main star is marked with `*`. Bodies whose parent
    is missing or not Active are listed under a trailing "(orphaned)" line.

    Examples
    --------
    >>> print(format_hierarchy(registry))
    * sun [star]
      earth [planet] 1.000 AU
        luna [moon] 0.003 AU
    """
    lines: List[str] = []

    def render(body_id: str, indent: int, parent_id: Optional[str]) -> None:
        body = registry[body_id]
        marker = "* " if body.is_main_star else ""
        label = f"{'  ' * indent}{marker}{body.id} [{body.kind.value}]"
        if parent_id is not None:
            d = distance(body, registry[parent_id])
            if d != float('inf'):
                label += f" {d / AU:.3f} AU"
        lines.append(label)
        for child in registry.children_of(body_id, active_only=True):
            render(child.id, indent + 1, body_id)

    for body in registry.active():
        if body.parent_id is None:
            render(body.id, 0, None)

    orphaned = [
        b for b in registry.active()
        if b.parent_id is not None and _is_missing_or_inactive(registry, b.parent_id)
    ]
    if orphaned:
        lines.append("(orphaned)")
        for body in orphaned:
            render(body.id, 1, None)

    return "\n".join(lines)


def _is_missing_or_inactive(registry: BodyRegistry, body_id: str) -> bool:
    body = registry.get(body_id)
    return body is None or not body.is_active
