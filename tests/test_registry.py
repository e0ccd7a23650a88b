"""
Tests for the body data model and the registry.

Validates:
1. Body / OrbitalElements validation and coercion
2. Monotonic lifecycle transitions
3. Registry queries (children, ancestors, main star)
4. Parent mutation guards and invariant checks
"""

import numpy as np
import pytest

from hierarchy.bodies import Body, BodyKind, BodyStatus, OrbitalElements
from hierarchy.registry import BodyRegistry, HierarchyInvariantError


def small_system():
    """sun <- earth <- luna, sun <- mars, plus a secondary star."""
    return BodyRegistry([
        Body("sun", BodyKind.STAR, mass_kg=2e30, is_main_star=True),
        Body("earth", BodyKind.PLANET, mass_kg=6e24, parent_id="sun"),
        Body("luna", BodyKind.MOON, mass_kg=7e22, parent_id="earth"),
        Body("mars", BodyKind.PLANET, mass_kg=6.4e23, parent_id="sun"),
        Body("barnard", BodyKind.STAR, mass_kg=3e29, parent_id="sun"),
    ])


class TestBody:
    """Tests for Body construction."""

    def test_vectors_are_coerced(self):
        body = Body("p", BodyKind.PLANET, mass_kg=1, position_m=[1, 2, 3], velocity_mps=(0, 1, 0))
        assert isinstance(body.position_m, np.ndarray)
        assert body.position_m.dtype == float
        assert body.mass_kg == 1.0
        assert body.has_physics

    def test_bad_vector_shape(self):
        with pytest.raises(ValueError, match="shape"):
            Body("p", BodyKind.PLANET, position_m=[1.0, 2.0])

    def test_negative_mass(self):
        with pytest.raises(ValueError, match="non-negative"):
            Body("p", BodyKind.PLANET, mass_kg=-1.0)

    def test_self_parent(self):
        with pytest.raises(ValueError):
            Body("p", BodyKind.PLANET, parent_id="p")

    def test_only_stars_can_be_main(self):
        with pytest.raises(ValueError, match="main star"):
            Body("p", BodyKind.PLANET, is_main_star=True)

    def test_enum_values_accepted(self):
        body = Body("g", "gas_giant", status="destroyed")
        assert body.kind is BodyKind.GAS_GIANT
        assert body.status is BodyStatus.DESTROYED

    def test_defaults(self):
        body = Body("io", BodyKind.MOON, mass_kg=8.9e22, position_m=[0, 0, 0])
        assert body.name == "io"
        assert body.is_active
        assert body.is_root
        assert not body.has_physics


class TestLifecycle:
    """Status transitions only move forward."""

    def test_forward(self):
        body = Body("p", BodyKind.PLANET)
        body.mark_destroyed()
        assert body.status is BodyStatus.DESTROYED
        body.mark_destroyed()
        body.mark_annihilated()
        assert body.status is BodyStatus.ANNIHILATED

    def test_active_straight_to_annihilated(self):
        body = Body("p", BodyKind.PLANET)
        body.mark_annihilated()
        assert body.status is BodyStatus.ANNIHILATED

    def test_backwards_raises(self):
        body = Body("p", BodyKind.PLANET, status=BodyStatus.ANNIHILATED)
        with pytest.raises(ValueError, match="cannot go"):
            body.mark_destroyed()


class TestOrbitalElements:

    def test_valid(self):
        orbit = OrbitalElements(1.5e11, 0.0167)
        assert orbit.semi_major_axis_m == 1.5e11
        assert orbit.period_s is None

    @pytest.mark.parametrize("a", [0.0, -1.0, float('inf')])
    def test_bad_semi_major_axis(self, a):
        with pytest.raises(ValueError):
            OrbitalElements(a)

    def test_negative_eccentricity(self):
        with pytest.raises(ValueError):
            OrbitalElements(1.0, -0.1)


class TestRegistryQueries:
    """Tests for lookups derived from parent ids."""

    def test_container_protocol(self):
        reg = small_system()
        assert len(reg) == 5
        assert "luna" in reg
        assert reg["luna"].kind is BodyKind.MOON
        assert reg.get("pluto") is None
        assert reg.get(None) is None
        assert reg.ids() == ["sun", "earth", "luna", "mars", "barnard"]
        assert [b.id for b in reg] == reg.ids()

    def test_duplicate_id(self):
        reg = small_system()
        with pytest.raises(ValueError, match="Duplicate"):
            reg.add(Body("earth", BodyKind.PLANET))

    def test_children_are_derived(self):
        reg = small_system()
        assert [b.id for b in reg.children_of("sun")] == ["earth", "mars", "barnard"]
        reg["mars"].mark_destroyed()
        assert [b.id for b in reg.children_of("sun", active_only=True)] == ["earth", "barnard"]

    def test_ancestors(self):
        reg = small_system()
        assert reg.ancestors("luna") == ["earth", "sun"]
        assert reg.ancestors("sun") == []

    def test_main_star_and_filters(self):
        reg = small_system()
        assert reg.main_star().id == "sun"
        assert [b.id for b in reg.stars()] == ["sun", "barnard"]
        assert [b.id for b in reg.active([BodyKind.PLANET])] == ["earth", "mars"]

        reg["sun"].mark_destroyed()
        assert reg.main_star() is None
        assert [b.id for b in reg.stars()] == ["barnard"]
        assert [b.id for b in reg.stars(active_only=False)] == ["sun", "barnard"]

    def test_iteration_survives_mutation(self):
        reg = small_system()
        for body in reg:
            if body.id == "earth":
                reg.add(Body("phobos", BodyKind.MOON, parent_id="mars"))
        assert "phobos" in reg


class TestSetParent:
    """Tests for guarded parent mutation."""

    def test_returns_previous_parent(self):
        reg = small_system()
        old = reg.set_parent("luna", "sun")
        assert old == "earth"
        assert reg["luna"].parent_id == "sun"

    def test_clear_parent(self):
        reg = small_system()
        assert reg.set_parent("barnard", None) == "sun"
        assert reg["barnard"].is_root

    def test_unknown_ids(self):
        reg = small_system()
        with pytest.raises(KeyError):
            reg.set_parent("pluto", "sun")
        with pytest.raises(KeyError):
            reg.set_parent("luna", "pluto")

    def test_self_parent(self):
        reg = small_system()
        with pytest.raises(HierarchyInvariantError):
            reg.set_parent("luna", "luna")

    def test_cycle_rejected(self):
        reg = small_system()
        with pytest.raises(HierarchyInvariantError, match="cycle"):
            reg.set_parent("sun", "luna")
        assert reg["sun"].parent_id is None


class TestInvariants:
    """Tests for check_invariants / assert_invariants."""

    def test_clean_system(self):
        reg = small_system()
        assert reg.check_invariants(require_main_star=True) == []
        reg.assert_invariants(require_main_star=True)

    def test_error_is_assertion_error(self):
        assert issubclass(HierarchyInvariantError, AssertionError)

    def test_multiple_main_stars(self):
        reg = small_system()
        reg["barnard"].is_main_star = True
        problems = reg.check_invariants()
        assert any("Multiple main stars" in p for p in problems)

    def test_missing_main_star_only_when_required(self):
        reg = small_system()
        reg["sun"].is_main_star = False
        assert reg.check_invariants() == []
        assert reg.check_invariants(require_main_star=True)

    def test_inactive_and_dangling_parents(self):
        reg = small_system()
        reg["earth"].mark_destroyed()
        reg["mars"].parent_id = "vulcan"
        problems = reg.check_invariants()
        assert any("luna" in p and "destroyed" in p for p in problems)
        assert any("vulcan" in p for p in problems)
        with pytest.raises(HierarchyInvariantError):
            reg.assert_invariants()

    def test_ignored_ids_skip_parent_check(self):
        reg = small_system()
        reg["earth"].mark_destroyed()
        assert reg.check_invariants()
        assert reg.check_invariants(ignore_ids=["luna"]) == []
        reg.assert_invariants(ignore_ids={"luna"})

    def test_cycle_detected(self):
        reg = small_system()
        reg["sun"].parent_id = "luna"
        problems = reg.check_invariants()
        assert any("Cycle" in p for p in problems)
        with pytest.raises(HierarchyInvariantError):
            reg.ancestors("luna")
