"""Physics adapter: normalise heterogeneous body representations.

Host simulations describe bodies in one of three shapes. All of them are
turned into the canonical `Body` here, so the rest of the package only
ever sees one schema.

**Object schema** (live objects holding a physics state)::

    {"id": "io", "type": "MOON", "status": "active",
     "physicsState": {"mass_kg": ..., "position_m": ..., "velocity_mps": ...},
     "orbit": {"semiMajorAxis_m": ..., "eccentricity": ...},
     "parent": <object with .id> | "jupiter",
     "isMainStar": false}

**Record schema** (plain records with string ids)::

    {"id": "io", "type": "MOON", "status": "active",
     "realMass_kg": ...,
     "physicsStateReal": {"mass_kg": ..., "position_m": ..., "velocity_mps": ...},
     "orbit": {"realSemiMajorAxis_m": ..., "eccentricity": ...},
     "parentId": "jupiter", "currentParentId": "jupiter",
     "properties": {"isMainStar": false}}

**Canonical schema** (the YAML config)::

    {"id": "io", "kind": "moon", "status": "active", "mass_kg": ...,
     "position_m": [...], "velocity_mps": [...],
     "orbit": {"semi_major_axis_m": ..., "eccentricity": ...},
     "parent": "jupiter", "is_main_star": false}

Vectors may be sequences or {x, y, z} mappings. Any field may be read from a
mapping key or an attribute. Missing physics stays missing (None); it is
never replaced by zeros.
"""

import math
import warnings
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np

from hierarchy.bodies import Body, BodyKind, BodyStatus, OrbitalElements
from hierarchy.registry import BodyRegistry

SCHEMA_OBJECT = "object"
SCHEMA_RECORD = "record"
SCHEMA_CANONICAL = "canonical"

_KIND_ALIASES = {
    "star": BodyKind.STAR,
    "planet": BodyKind.PLANET,
    "dwarfplanet": BodyKind.PLANET,
    "gasgiant": BodyKind.GAS_GIANT,
    "moon": BodyKind.MOON,
    "asteroidfield": BodyKind.ASTEROID_FIELD,
    "oortcloud": BodyKind.OORT_CLOUD,
}


def _field(raw: Any, name: str, default: Any = None) -> Any:
    if raw is None:
        return default
    if isinstance(raw, Mapping):
        return raw.get(name, default)
    return getattr(raw, name, default)


def _first(raw: Any, *names: str) -> Any:
    for name in names:
        value = _field(raw, name)
        if value is not None:
            return value
    return None


def _normalise_token(value: Any) -> str:
    text = getattr(value, "value", value)
    return str(text).replace("_", "").replace("-", "").replace(" ", "").lower()


def parse_kind(value: Any) -> BodyKind:
    """Map 'GAS_GIANT', 'gas-giant', 'GasGiant', ... to a BodyKind.

    Unknown kinds map to BodyKind.OTHER.
    """
    if isinstance(value, BodyKind):
        return value
    if value is None:
        return BodyKind.OTHER
    return _KIND_ALIASES.get(_normalise_token(value), BodyKind.OTHER)


def parse_status(value: Any) -> BodyStatus:
    if isinstance(value, BodyStatus):
        return value
    if value is None:
        return BodyStatus.ACTIVE
    token = _normalise_token(value)
    for status in BodyStatus:
        if status.value == token:
            return status
    raise ValueError(f"Unknown body status {value!r}")


def parse_vector(value: Any) -> Optional[np.ndarray]:
    """Coerce a sequence or {x, y, z} mapping into a finite 3-vector.

    Returns None for missing, malformed or non-finite input.
    """
    if value is None:
        return None
    if isinstance(value, Mapping) or hasattr(value, "x"):
        components = [_field(value, axis) for axis in ("x", "y", "z")]
        if components[2] is None and components[0] is not None and components[1] is not None:
            components[2] = 0.0
        if any(c is None for c in components):
            return None
        value = components
    try:
        vec = np.array(value, dtype=float)
    except (TypeError, ValueError):
        return None
    if vec.shape != (3,) or not np.all(np.isfinite(vec)):
        return None
    return vec


def _parse_mass(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        mass = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(mass) or mass < 0:
        return None
    return mass


def _parent_ref_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    ref = _field(value, "id")
    return str(ref) if ref is not None else None


def detect_schema(raw: Any) -> str:
    """Tell which representation `raw` uses.

    Returns
    -------
    str
        One of SCHEMA_RECORD, SCHEMA_OBJECT, SCHEMA_CANONICAL.
    """
    if _field(raw, "physicsStateReal") is not None or _field(raw, "realMass_kg") is not None:
        return SCHEMA_RECORD
    if _field(raw, "physicsState") is not None:
        return SCHEMA_OBJECT
    if _field(raw, "parentId") is not None or _field(raw, "currentParentId") is not None:
        return SCHEMA_RECORD
    return SCHEMA_CANONICAL


def _parse_orbit(raw_orbit: Any, *axis_keys: str) -> Optional[OrbitalElements]:
    if raw_orbit is None:
        return None
    a = _first(raw_orbit, *axis_keys)
    try:
        a = float(a) if a is not None else None
    except (TypeError, ValueError):
        a = None
    if a is None or not math.isfinite(a) or a <= 0:
        return None
    try:
        return OrbitalElements(
            semi_major_axis_m=a,
            eccentricity=float(_field(raw_orbit, "eccentricity", 0.0) or 0.0),
            inclination_rad=_first(raw_orbit, "inclination", "inclination_rad"),
            longitude_of_ascending_node_rad=_first(
                raw_orbit, "longitudeOfAscendingNode", "longitude_of_ascending_node_rad"),
            argument_of_periapsis_rad=_first(
                raw_orbit, "argumentOfPeriapsis", "argument_of_periapsis_rad"),
            mean_anomaly_rad=_first(raw_orbit, "meanAnomaly", "mean_anomaly_rad"),
            period_s=_first(raw_orbit, "period_s"),
        )
    except ValueError:
        return None


def body_from_raw(raw: Any) -> Body:
    """Build a canonical Body from any supported representation.

    Parameters
    ----------
    raw : mapping or object
        Body description in object, record or canonical schema.

    Returns
    -------
    Body

    Raises
    ------
    KeyError
        If no id is present.
    ValueError
        If the status is unknown.

    Notes
    -----
    **Authoritative fields**:

    - Record schema: `parentId` wins over `currentParentId`; mass comes from
      `physicsStateReal.mass_kg`, falling back to `realMass_kg`.
    - Object schema: `parent` (object or id) wins over `parentId`; mass
      comes from `physicsState.mass_kg`.
    - `isMainStar` / `is_main_star` is ignored on non-star bodies.

    Examples
    --------
    >>> body_from_raw({"id": "s", "type": "STAR", "realMass_kg": 2e30,
    ...                "physicsStateReal": {"position_m": [0, 0, 0],
    ...                                     "velocity_mps": [0, 0, 0]},
    ...                "properties": {"isMainStar": True}}).is_main_star
    True
    """
    body_id = _field(raw, "id")
    if body_id is None:
        raise KeyError("Body description has no 'id'")
    body_id = str(body_id)

    schema = detect_schema(raw)
    kind = parse_kind(_first(raw, "kind", "type"))
    status = parse_status(_field(raw, "status"))

    if schema == SCHEMA_RECORD:
        state = _field(raw, "physicsStateReal")
        mass = _parse_mass(_first(state, "mass_kg") if state is not None else None)
        if mass is None:
            mass = _parse_mass(_field(raw, "realMass_kg"))
        orbit = _parse_orbit(_field(raw, "orbit"), "realSemiMajorAxis_m", "semiMajorAxis_m")
        parent_id = _parent_ref_id(_first(raw, "parentId", "currentParentId"))
        main_flag = _first(_field(raw, "properties"), "isMainStar")
        if main_flag is None:
            main_flag = _field(raw, "isMainStar")
    elif schema == SCHEMA_OBJECT:
        state = _field(raw, "physicsState")
        mass = _parse_mass(_field(state, "mass_kg"))
        orbit = _parse_orbit(_field(raw, "orbit"), "semiMajorAxis_m", "realSemiMajorAxis_m")
        parent_id = _parent_ref_id(_field(raw, "parent")) or _parent_ref_id(_field(raw, "parentId"))
        main_flag = _field(raw, "isMainStar")
    else:
        state = raw
        mass = _parse_mass(_field(raw, "mass_kg"))
        orbit = _parse_orbit(_field(raw, "orbit"), "semi_major_axis_m")
        parent_id = _parent_ref_id(_first(raw, "parent", "parent_id"))
        main_flag = _field(raw, "is_main_star")

    position = parse_vector(_first(state, "position_m", "position"))
    velocity = parse_vector(_first(state, "velocity_mps", "velocity"))

    is_main = bool(main_flag) and kind is BodyKind.STAR
    if parent_id == body_id:
        warnings.warn(f"Body '{body_id}' lists itself as parent; treating it as a root", UserWarning)
        parent_id = None

    return Body(
        id=body_id,
        kind=kind,
        status=status,
        mass_kg=mass,
        position_m=position,
        velocity_mps=velocity,
        orbit=orbit,
        parent_id=parent_id,
        is_main_star=is_main,
        name=_field(raw, "name"),
    )


def registry_from_raw(items: Iterable[Any]) -> BodyRegistry:
    """Normalise a collection (or `id -> body` mapping) into a BodyRegistry."""
    if isinstance(items, Mapping):
        items = items.values()
    registry = BodyRegistry()
    for raw in items:
        registry.add(body_from_raw(raw))
    return registry


def body_to_dict(body: Body) -> Dict[str, Any]:
    """Canonical, YAML/JSON-friendly dict for a Body."""
    data: Dict[str, Any] = {
        "id": body.id,
        "name": body.name,
        "kind": body.kind.value,
        "status": body.status.value,
        "mass_kg": body.mass_kg,
        "position_m": body.position_m.tolist() if body.position_m is not None else None,
        "velocity_mps": body.velocity_mps.tolist() if body.velocity_mps is not None else None,
        "parent": body.parent_id,
        "is_main_star": body.is_main_star,
    }
    if body.orbit is not None:
        data["orbit"] = {
            "semi_major_axis_m": body.orbit.semi_major_axis_m,
            "eccentricity": body.orbit.eccentricity,
        }
    return data


def apply_parent_links(records: Any, registry: BodyRegistry) -> List[str]:
    """Write the registry's parent decisions back onto host records.

    Both `parentId` and `currentParentId` are set so the two fields can
    no longer disagree. For stars `properties.isMainStar` is updated as
    well. Works on a list or an `id -> record` mapping of mutable dicts.

    Returns
    -------
    list of str
        Ids of records whose parent link changed.
    """
    if isinstance(records, Mapping):
        records = records.values()
    changed: List[str] = []
    for record in records:
        body = registry.get(str(_field(record, "id")))
        if body is None:
            continue
        if record.get("parentId") != body.parent_id:
            changed.append(body.id)
        record["parentId"] = body.parent_id
        record["currentParentId"] = body.parent_id
        if body.is_star:
            props = record.setdefault("properties", {})
            if props is None:
                props = record["properties"] = {}
            props["isMainStar"] = body.is_main_star
    return changed
