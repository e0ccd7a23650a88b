"""Configuration and I/O module for the hierarchy engine.

This module provides:
- YAML system loading and validation
- Example config generation
- CSV output for parent-change logs
- JSON output for reassignment reports

Bodies in the `bodies` list may use the canonical YAML schema or either of
the host schemas understood by `hierarchy.adapter`.
"""

import csv
import json
import logging
import warnings
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple

import numpy as np
import yaml

from hierarchy.adapter import body_from_raw, body_to_dict
from hierarchy.bodies import BodyStatus
from hierarchy.diagnostics import summarize_hierarchy
from hierarchy.physics import AU, G
from hierarchy.reassign import ParentChange, ReassignmentReport
from hierarchy.registry import BodyRegistry, HierarchyInvariantError
from hierarchy.settings import EngineSettings

logger = logging.getLogger(__name__)

_ENGINE_KEYS = (
    'tug_of_war_factor', 'star_switch_margin', 'escape_hill_factor',
    'decay_cutoff_au', 'decay_rate', 'default_primary_mass_kg',
    'maintenance_every', 'check_invariants',
)


def _parse_events(events_cfg: Any) -> List[Dict[str, Any]]:
    if events_cfg is None:
        return []
    if not isinstance(events_cfg, list):
        raise ValueError("Configuration 'events' must be a list")

    events = []
    for i, event_cfg in enumerate(events_cfg):
        if not isinstance(event_cfg, Mapping):
            raise ValueError(f"Event {i} must be a mapping, got {type(event_cfg).__name__}")
        destroy = event_cfg.get('destroy', [])
        if isinstance(destroy, str):
            destroy = [destroy]
        status = BodyStatus(str(event_cfg.get('status', 'destroyed')).lower())
        if status is BodyStatus.ACTIVE:
            raise ValueError(f"Event {i}: status must be 'destroyed' or 'annihilated'")
        events.append({
            'destroy': [str(body_id) for body_id in destroy],
            'status': status,
            'maintain': bool(event_cfg.get('maintain', False)),
        })
    return events


def load_config(yaml_path: str) -> Dict[str, Any]:
    """Load and parse a YAML system description.

    Parameters
    ----------
    yaml_path : str
        Path to YAML configuration file.

    Returns
    -------
    dict
        Configuration dictionary with keys:
        - 'settings': EngineSettings (physics mode and thresholds)
        - 'registry': BodyRegistry with every body, in file order
        - 'events': list of destruction batches, each a dict with
          'destroy' (list of ids), 'status' (BodyStatus) and 'maintain'
        - 'outputs': dict of output options (write_csv, write_json, output_dir)

    Raises
    ------
    FileNotFoundError
        If yaml_path does not exist.
    yaml.YAMLError
        If YAML parsing fails.
    KeyError
        If required configuration fields are missing.
    ValueError
        If configuration values are invalid (negative masses, duplicate ids, ...).

    Notes
    -----
    Only `bodies` is required. `physics_mode` defaults to 'verlet' and
    every `engine` threshold has a default (see EngineSettings).

    Examples
    --------
    >>> config = load_config("binary_system.yaml")
    >>> registry = config['registry']
    >>> print(f"Loaded {len(registry)} bodies, mode={config['settings'].physics_mode.value}")
    Loaded 7 bodies, mode=verlet

    See Also
    --------
    validate_config : Check the loaded hierarchy for structural problems
    create_example_config : Generate example YAML file
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with open(yaml_path, 'r') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None or not isinstance(raw_config, Mapping):
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    # Parse engine settings
    engine_cfg = raw_config.get('engine') or {}
    unknown = sorted(set(engine_cfg) - set(_ENGINE_KEYS))
    if unknown:
        warnings.warn(f"Ignoring unknown engine settings: {', '.join(unknown)}", UserWarning)
    engine_kwargs = {}
    try:
        for key in _ENGINE_KEYS:
            if key not in engine_cfg:
                continue
            if key == 'maintenance_every':
                engine_kwargs[key] = int(engine_cfg[key])
            elif key == 'check_invariants':
                engine_kwargs[key] = bool(engine_cfg[key])
            else:
                engine_kwargs[key] = float(engine_cfg[key])
        settings = EngineSettings(
            physics_mode=str(raw_config.get('physics_mode', 'verlet')),
            **engine_kwargs,
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid engine settings: {e}")

    # Parse bodies
    if 'bodies' not in raw_config:
        raise KeyError("Configuration missing required section 'bodies'")

    bodies_cfg = raw_config['bodies']
    if not isinstance(bodies_cfg, list) or len(bodies_cfg) == 0:
        raise ValueError("Configuration 'bodies' must be a non-empty list")

    registry = BodyRegistry()
    for i, body_cfg in enumerate(bodies_cfg):
        try:
            registry.add(body_from_raw(body_cfg))
        except KeyError as e:
            raise KeyError(f"Body {i} missing required field {e}")
        except (ValueError, TypeError) as e:
            name = body_cfg.get('id', 'unnamed') if isinstance(body_cfg, Mapping) else 'unnamed'
            raise ValueError(f"Body {i} ('{name}'): {e}")

    events = _parse_events(raw_config.get('events'))

    # Parse output options
    outputs_cfg = raw_config.get('outputs') or {}
    outputs = {
        'write_csv': bool(outputs_cfg.get('write_csv', True)),
        'write_json': bool(outputs_cfg.get('write_json', True)),
        'output_dir': str(outputs_cfg.get('output_dir', 'output')),
    }

    return {
        'settings': settings,
        'registry': registry,
        'events': events,
        'outputs': outputs,
    }


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate a loaded system for structural consistency.

    Parameters
    ----------
    config : dict
        Configuration dictionary from load_config().

    Returns
    -------
    is_valid : bool
        True if the system can be handed to the engine (may still have warnings).
    warnings_list : list of str
        List of error and warning messages.

    Notes
    -----
    **Errors** (make the config invalid):

    1. Parent ids that name no body
    2. Cycles in the parent graph
    3. More than one Active main star
    4. Events naming unknown ids

    **Warnings**:

    1. Active bodies without a physics snapshot (never chosen as parents)
    2. Active non-star roots (orphans waiting for a sweep)
    3. Active bodies whose parent is already destroyed
    4. Active stars present but no main star
    5. Events while the physics mode disables reassignment

    Examples
    --------
    >>> config = load_config("binary_system.yaml")
    >>> is_valid, warnings = validate_config(config)
    >>> for w in warnings:
    ...     print(w)
    Body 'voyager' has no physics snapshot and can never act as a parent
    """
    warnings_list = []
    is_valid = True

    try:
        settings = config['settings']
        registry = config['registry']
        events = config['events']
    except KeyError as e:
        return False, [f"Missing required config section: {e}"]

    for body in registry:
        if body.parent_id is not None and body.parent_id not in registry:
            is_valid = False
            warnings_list.append(f"Body '{body.id}' has unknown parent '{body.parent_id}'")

    cycles = set()
    for body in registry:
        try:
            registry.ancestors(body.id)
        except HierarchyInvariantError as e:
            cycles.add(str(e))
    if cycles:
        is_valid = False
        warnings_list.extend(sorted(cycles))

    mains = [s.id for s in registry.stars() if s.is_main_star]
    if len(mains) > 1:
        is_valid = False
        warnings_list.append(f"Multiple main stars: {', '.join(mains)}")
    elif not mains and registry.stars():
        warnings_list.append("Active stars exist but none is flagged is_main_star")

    for body in registry.active():
        if not body.has_physics:
            warnings_list.append(
                f"Body '{body.id}' has no physics snapshot and can never act as a parent"
            )
        if body.parent_id is None and not body.is_star:
            warnings_list.append(f"Body '{body.id}' ({body.kind.value}) has no parent")
        parent = registry.get(body.parent_id)
        if parent is not None and not parent.is_active:
            warnings_list.append(
                f"Body '{body.id}' orbits {parent.status.value} body '{parent.id}'"
            )

    for i, event in enumerate(events):
        for body_id in event['destroy']:
            if body_id not in registry:
                is_valid = False
                warnings_list.append(f"Event {i} destroys unknown body '{body_id}'")

    if events and not settings.physics_mode.is_nbody:
        warnings_list.append(
            f"Physics mode '{settings.physics_mode.value}' is not N-body; "
            f"destruction events will not trigger reassignment"
        )

    return is_valid, warnings_list


def create_example_config(output_path: str) -> None:
    """Generate example YAML configuration file.

    Writes a small Sun-centred system with a distant companion star, Earth
    and Luna, and Jupiter with two Galilean moons on circular orbits. A
    single event destroys Jupiter so running the file shows the moon
    fan-out.

    Parameters
    ----------
    output_path : str
        Path where YAML file will be written.

    Examples
    --------
    >>> create_example_config("solar_system.yaml")
    >>> config = load_config("solar_system.yaml")
    >>> len(config['registry'])
    7
    """
    M_sun = 1.989e30
    M_companion = 1.0e30
    M_earth = 5.972e24
    M_luna = 7.342e22
    M_jupiter = 1.898e27
    M_ganymede = 1.482e23
    M_callisto = 1.076e23

    a_earth = AU
    a_luna = 3.844e8
    a_jupiter = 5.2 * AU
    a_ganymede = 1.070e9
    a_callisto = 1.883e9

    def v_circ(M, r):
        return float(np.sqrt(G * M / r))

    x_earth = [a_earth, 0.0, 0.0]
    v_earth = [0.0, v_circ(M_sun, a_earth), 0.0]
    x_luna = [a_earth + a_luna, 0.0, 0.0]
    v_luna = [0.0, v_earth[1] + v_circ(M_earth, a_luna), 0.0]

    x_jupiter = [-a_jupiter, 0.0, 0.0]
    v_jupiter = [0.0, -v_circ(M_sun, a_jupiter), 0.0]
    x_ganymede = [-a_jupiter - a_ganymede, 0.0, 0.0]
    v_ganymede = [0.0, v_jupiter[1] - v_circ(M_jupiter, a_ganymede), 0.0]
    x_callisto = [-a_jupiter, a_callisto, 0.0]
    v_callisto = [v_circ(M_jupiter, a_callisto), v_jupiter[1], 0.0]

    x_companion = [0.0, 50.0 * AU, 0.0]

    def fmt(value):
        if isinstance(value, list):
            return "[" + ", ".join(fmt(v) for v in value) + "]"
        return f"{value:.9e}"

    yaml_content = f"""# Orbital Hierarchy Configuration
# Sun, distant companion star, Earth-Luna and Jupiter with two moons
#
# Positions in metres, velocities in m/s, masses in kg (SI throughout).

# Host integrator mode. Only 'symplectic' and 'verlet' enable reassignment;
# 'euler' and 'kepler' keep the hierarchy fixed.
physics_mode: verlet

# ============================================================================
# Engine thresholds (all optional)
# ============================================================================
engine:
  # A competing star pulling a moon this many times harder than its
  # parent breaks the binding.
  tug_of_war_factor: 3.0

  # A planet only switches star when the new one beats the current one
  # by this factor (hysteresis).
  star_switch_margin: 1.5

  # An unbound child is moved only beyond this many parent Hill radii.
  escape_hill_factor: 2.0

  # Physics steps between periodic maintenance passes.
  maintenance_every: 1000

# ============================================================================
# Bodies
# ============================================================================
bodies:
  - id: sun
    name: Sun
    kind: star
    mass_kg: {fmt(M_sun)}
    position_m: [0.0, 0.0, 0.0]
    velocity_mps: [0.0, 0.0, 0.0]
    is_main_star: true

  - id: companion
    kind: star
    mass_kg: {fmt(M_companion)}
    position_m: {fmt(x_companion)}
    velocity_mps: [0.0, 0.0, 0.0]
    parent: sun

  - id: earth
    kind: planet
    mass_kg: {fmt(M_earth)}
    position_m: {fmt(x_earth)}
    velocity_mps: {fmt(v_earth)}
    orbit:
      semi_major_axis_m: {fmt(a_earth)}
      eccentricity: 0.0167
    parent: sun

  - id: luna
    kind: moon
    mass_kg: {fmt(M_luna)}
    position_m: {fmt(x_luna)}
    velocity_mps: {fmt(v_luna)}
    orbit:
      semi_major_axis_m: {fmt(a_luna)}
    parent: earth

  - id: jupiter
    kind: gas_giant
    mass_kg: {fmt(M_jupiter)}
    position_m: {fmt(x_jupiter)}
    velocity_mps: {fmt(v_jupiter)}
    orbit:
      semi_major_axis_m: {fmt(a_jupiter)}
      eccentricity: 0.0489
    parent: sun

  - id: ganymede
    kind: moon
    mass_kg: {fmt(M_ganymede)}
    position_m: {fmt(x_ganymede)}
    velocity_mps: {fmt(v_ganymede)}
    orbit:
      semi_major_axis_m: {fmt(a_ganymede)}
    parent: jupiter

  - id: callisto
    kind: moon
    mass_kg: {fmt(M_callisto)}
    position_m: {fmt(x_callisto)}
    velocity_mps: {fmt(v_callisto)}
    orbit:
      semi_major_axis_m: {fmt(a_callisto)}
    parent: jupiter

# ============================================================================
# Destruction events, applied in order
# ============================================================================
events:
  - destroy: [jupiter]
    status: destroyed
    # Run a maintenance pass (competitive stars + escape sweep) afterwards
    maintain: true

# ============================================================================
# Outputs
# ============================================================================
outputs:
  write_csv: true
  write_json: true
  output_dir: output
"""

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        f.write(yaml_content)

    logger.info("Example configuration written to: %s", output_path)


def save_changes_csv(filepath: str, changes: Iterable[ParentChange]) -> int:
    """Save a parent-change log to CSV.

    Columns are seq, body_id, old_parent_id, new_parent_id; a missing parent
    is written as an empty field.

    Returns
    -------
    int
        Number of rows written.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    n_rows = 0
    with open(filepath, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['seq', 'body_id', 'old_parent_id', 'new_parent_id'])
        for seq, change in enumerate(changes):
            writer.writerow([seq, change.body_id, change.old_parent_id or '',
                             change.new_parent_id or ''])
            n_rows += 1

    logger.info("Saved %d parent changes to %s", n_rows, filepath)
    return n_rows


def _report_to_dict(report: ReassignmentReport) -> Dict[str, Any]:
    return {
        'changes': [
            {'body_id': c.body_id, 'old_parent_id': c.old_parent_id,
             'new_parent_id': c.new_parent_id}
            for c in report.changes
        ],
        'new_main_star_id': report.new_main_star_id,
        'drifting_ids': list(report.drifting_ids),
        'catastrophic': report.catastrophic,
    }


def save_report_json(filepath: str, reports: Mapping[str, ReassignmentReport],
                     registry: BodyRegistry) -> None:
    """Save reassignment reports and the resulting hierarchy to JSON.

    Parameters
    ----------
    filepath : str
        Output JSON file path.
    reports : mapping
        Ordered `label -> ReassignmentReport`, e.g. one entry per event.
    registry : BodyRegistry
        Registry after all reports were applied.

    Notes
    -----
    **Structure**:
    ```python
    {
        'reports': {'event_0': {'changes': [...], 'new_main_star_id': None,
                                'drifting_ids': [], 'catastrophic': False}},
        'summary': {...},        # summarize_hierarchy(registry)
        'parents': {'luna': 'earth', ...},
        'bodies': [...],         # canonical dict per body
    }
    ```
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    def convert_to_json_serializable(obj):
        """Recursively convert numpy values to plain Python."""
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, dict):
            return {key: convert_to_json_serializable(val) for key, val in obj.items()}
        elif isinstance(obj, list):
            return [convert_to_json_serializable(item) for item in obj]
        elif isinstance(obj, (np.integer, np.floating)):
            return obj.item()
        else:
            return obj

    payload = {
        'reports': {label: _report_to_dict(report) for label, report in reports.items()},
        'summary': summarize_hierarchy(registry),
        'parents': registry.parent_links(),
        'bodies': [body_to_dict(body) for body in registry],
    }

    with open(filepath, 'w') as f:
        json.dump(convert_to_json_serializable(payload), f, indent=2)

    logger.info("Saved %d reports to %s", len(reports), filepath)
