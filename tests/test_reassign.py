"""
Tests for the reassignment orchestrator.

Validates:
1. Destruction handling: planet fan-out, main-star replacement, sibling capture
2. Competitive star pass with hysteresis (and its idempotence)
3. Catch-all re-parenting, drifting bodies and catastrophic star loss
4. No-op behaviour outside N-body modes
5. HierarchyEngine maintenance cadence
"""

import logging

import pytest

from hierarchy.bodies import Body, BodyKind, OrbitalElements
from hierarchy.physics import AU
from hierarchy.reassign import (
    HierarchyEngine,
    ParentChange,
    ReassignmentReport,
    perform_hierarchy_maintenance,
    reassign_competitive_stars,
    reassign_orphaned_objects,
)
from hierarchy.registry import BodyRegistry
from hierarchy.settings import EngineSettings, PhysicsMode


def make_body(body_id, kind, mass, pos, vel=(0.0, 0.0, 0.0), parent=None, main=False, a=None):
    return Body(
        body_id, kind, mass_kg=mass, position_m=pos, velocity_mps=vel, parent_id=parent,
        is_main_star=main, orbit=OrbitalElements(a) if a is not None else None,
    )


def destroy(registry, *body_ids):
    for body_id in body_ids:
        registry[body_id].mark_destroyed()
    return list(body_ids)


def single_star_planet_moon():
    return BodyRegistry([
        make_body("sun", BodyKind.STAR, 2e30, [0.0, 0.0, 0.0], main=True),
        make_body("earth", BodyKind.PLANET, 6e24, [AU, 0.0, 0.0], vel=[0.0, 29780.0, 0.0],
                  parent="sun", a=AU),
        make_body("luna", BodyKind.MOON, 7e22, [AU + 3.84e8, 0.0, 0.0],
                  vel=[0.0, 30800.0, 0.0], parent="earth", a=3.84e8),
    ])


def gas_giant_with_two_moons(b_speed=10.0):
    """Moon B sits 1e5 m from Moon A, inside A's ~8.1e5 m Hill sphere."""
    gg_x = AU
    a_x = gg_x + 4e8
    return BodyRegistry([
        make_body("star", BodyKind.STAR, 2e30, [0.0, 0.0, 0.0], main=True),
        make_body("gg", BodyKind.GAS_GIANT, 1.9e27, [gg_x, 0.0, 0.0], parent="star", a=AU),
        make_body("moon_b", BodyKind.MOON, 1e21, [a_x + 1e5, 0.0, 0.0],
                  vel=[0.0, b_speed, 0.0], parent="gg", a=4e8),
        make_body("moon_a", BodyKind.MOON, 5e22, [a_x, 0.0, 0.0], parent="gg", a=4e8),
    ])


def two_star_planet(star2_mass):
    """Planet 1 AU from both stars: influence 1e31 from star1, star2_mass from star2."""
    return BodyRegistry([
        make_body("star1", BodyKind.STAR, 10e30, [-AU, 0.0, 0.0], main=True),
        make_body("star2", BodyKind.STAR, star2_mass, [AU, 0.0, 0.0], parent="star1"),
        make_body("planet", BodyKind.PLANET, 6e24, [0.0, 0.0, 0.0], parent="star1", a=AU),
    ])


class TestReport:

    def test_empty_report_is_falsy(self):
        report = ReassignmentReport()
        assert not report
        assert len(report) == 0

    def test_changed_ids_and_final_parents(self):
        report = ReassignmentReport(changes=[
            ParentChange("a", "x", "y"),
            ParentChange("b", None, "y"),
            ParentChange("a", "y", "z"),
        ])
        assert report.changed_ids == ["a", "b"]
        assert report.final_parents() == {"a": "z", "b": "y"}
        assert report.changes[1].as_tuple() == ("b", None, "y")

    def test_extend(self):
        first = ReassignmentReport(changes=[ParentChange("a", "x", "y")], drifting_ids=["a"])
        second = ReassignmentReport(new_main_star_id="s", drifting_ids=["a", "b"])
        first.extend(second)
        assert len(first) == 1
        assert first.drifting_ids == ["a", "b"]
        assert first.new_main_star_id == "s"


class TestPlanetDestruction:
    """A destroyed planet hands its children on."""

    def test_single_moon_goes_to_star(self):
        reg = single_star_planet_moon()
        report = reassign_orphaned_objects(reg, destroy(reg, "earth"))

        assert reg["luna"].parent_id == "sun"
        assert [c.as_tuple() for c in report.changes] == [("luna", "earth", "sun")]
        assert report.drifting_ids == []
        assert not report.catastrophic

    def test_destroyed_id_still_active(self):
        """Bodies named in the batch count as gone before their status flips."""
        reg = single_star_planet_moon()
        reassign_orphaned_objects(reg, ["earth"])
        assert reg["luna"].parent_id == "sun"

    def test_largest_moon_captures_sibling(self):
        reg = gas_giant_with_two_moons(b_speed=10.0)
        report = reassign_orphaned_objects(reg, destroy(reg, "gg"))

        assert reg["moon_a"].parent_id == "star"
        assert reg["moon_b"].parent_id == "moon_a"
        # The largest moon is moved first so its sibling never points at a dead body
        assert report.changed_ids == ["moon_a", "moon_b"]

    def test_fast_sibling_escapes_to_star(self):
        reg = gas_giant_with_two_moons(b_speed=1e4)
        reassign_orphaned_objects(reg, destroy(reg, "gg"))

        assert reg["moon_a"].parent_id == "star"
        assert reg["moon_b"].parent_id == "star"

    def test_children_go_to_their_own_nearest_star(self):
        reg = gas_giant_with_two_moons(b_speed=1e4)
        reg.add(make_body("far", BodyKind.STAR, 1e30, [AU + 4e8 + 1e9, 0.0, 0.0], parent="star"))
        reassign_orphaned_objects(reg, destroy(reg, "gg"))

        assert reg["moon_a"].parent_id == "far"
        assert reg["moon_b"].parent_id == "far"

    def test_catch_all_for_grandchildren(self):
        """A body orbiting a destroyed moon is re-parented to the nearest star."""
        reg = single_star_planet_moon()
        reg.add(make_body("satellite", BodyKind.OTHER, 1e3, [AU + 3.84e8 + 1e6, 0.0, 0.0],
                          parent="luna"))
        reg.add(make_body("far", BodyKind.STAR, 1e30, [100.0 * AU, 0.0, 0.0], parent="sun"))

        report = reassign_orphaned_objects(reg, destroy(reg, "luna"))

        assert reg["satellite"].parent_id == "sun"
        assert report.changed_ids == ["satellite"]

    def test_unknown_ids_ignored(self, caplog):
        reg = single_star_planet_moon()
        with caplog.at_level(logging.WARNING, logger="hierarchy.reassign"):
            report = reassign_orphaned_objects(reg, ["ghost"])
        assert not report
        assert "ghost" in caplog.text


class TestStarDestruction:
    """Main-star replacement and star orphans."""

    def test_secondary_becomes_main(self):
        reg = BodyRegistry([
            make_body("primary", BodyKind.STAR, 2e30, [0.0, 0.0, 0.0], main=True),
            make_body("secondary", BodyKind.STAR, 1e30, [10.0 * AU, 0.0, 0.0]),
        ])
        report = reassign_orphaned_objects(reg, destroy(reg, "primary"))

        assert reg["secondary"].is_main_star
        assert reg["secondary"].parent_id is None
        assert not reg["primary"].is_main_star
        assert report.new_main_star_id == "secondary"

    def test_most_massive_survivor_wins(self):
        reg = BodyRegistry([
            make_body("primary", BodyKind.STAR, 2e30, [0.0, 0.0, 0.0], main=True),
            make_body("small", BodyKind.STAR, 1e29, [5.0 * AU, 0.0, 0.0], parent="primary"),
            make_body("large", BodyKind.STAR, 1e30, [30.0 * AU, 0.0, 0.0], parent="primary"),
        ])
        report = reassign_orphaned_objects(reg, destroy(reg, "primary"))

        assert report.new_main_star_id == "large"
        assert reg["large"].parent_id is None
        assert reg["small"].parent_id == "large"
        reg.assert_invariants(require_main_star=True)

    def test_planets_rerun_selection(self):
        reg = BodyRegistry([
            make_body("primary", BodyKind.STAR, 2e30, [0.0, 0.0, 0.0], main=True),
            make_body("b", BodyKind.STAR, 1e30, [3.0 * AU, 0.0, 0.0], parent="primary"),
            make_body("c", BodyKind.STAR, 1e30, [-6.0 * AU, 0.0, 0.0], parent="primary"),
            make_body("p", BodyKind.PLANET, 6e24, [AU, 0.0, 0.0], parent="primary", a=AU),
            make_body("m", BodyKind.MOON, 7e22, [AU + 3.84e8, 0.0, 0.0], parent="p", a=3.84e8),
        ])
        reassign_orphaned_objects(reg, destroy(reg, "primary"))

        assert reg["p"].parent_id == "b"
        assert reg["m"].parent_id == "p"

    def test_non_main_star_destroyed(self):
        reg = BodyRegistry([
            make_body("sun", BodyKind.STAR, 2e30, [0.0, 0.0, 0.0], main=True),
            make_body("b", BodyKind.STAR, 1e30, [20.0 * AU, 0.0, 0.0], parent="sun"),
            make_body("p", BodyKind.PLANET, 6e24, [21.0 * AU, 0.0, 0.0], parent="b", a=AU),
        ])
        report = reassign_orphaned_objects(reg, destroy(reg, "b"))

        assert report.new_main_star_id is None
        assert reg["sun"].is_main_star
        assert reg["p"].parent_id == "sun"

    def test_batch_with_unflipped_status(self):
        """A body named in the batch but still ACTIVE is treated as gone, not as a violation."""
        reg = BodyRegistry([
            make_body("sun", BodyKind.STAR, 2e30, [0.0, 0.0, 0.0], main=True),
            make_body("star2", BodyKind.STAR, 1e30, [10.0 * AU, 0.0, 0.0], parent="sun"),
            make_body("earth", BodyKind.PLANET, 6e24, [AU, 0.0, 0.0], parent="sun", a=AU),
        ])
        reg["sun"].mark_destroyed()
        report = reassign_orphaned_objects(reg, ["sun", "earth"])

        assert report.new_main_star_id == "star2"
        assert report.changes == [ParentChange("star2", "sun", None)]
        assert reg["earth"].parent_id == "sun"
        assert reg.check_invariants(require_main_star=True, ignore_ids=["earth"]) == []

    def test_catastrophic_loss(self, caplog):
        reg = single_star_planet_moon()
        with caplog.at_level(logging.ERROR, logger="hierarchy.reassign"):
            report = reassign_orphaned_objects(reg, destroy(reg, "sun"))

        assert report.catastrophic
        assert report.changes == []
        assert reg["earth"].parent_id == "sun"
        assert "no Active star remains" in caplog.text


class TestDrifting:
    """Bodies left without any reachable star."""

    def test_no_star_in_system(self, caplog):
        reg = BodyRegistry([
            make_body("gg", BodyKind.GAS_GIANT, 1.9e27, [0.0, 0.0, 0.0]),
            make_body("m", BodyKind.MOON, 7e22, [4e8, 0.0, 0.0], parent="gg"),
        ])
        with caplog.at_level(logging.WARNING, logger="hierarchy.reassign"):
            report = reassign_orphaned_objects(reg, destroy(reg, "gg"))

        assert reg["m"].parent_id is None
        assert report.drifting_ids == ["m"]
        assert "drifting" in caplog.text

    def test_star_without_position(self):
        reg = single_star_planet_moon()
        reg["sun"].position_m = None
        report = reassign_orphaned_objects(reg, destroy(reg, "earth"))

        assert reg["luna"].parent_id is None
        assert report.drifting_ids == ["luna"]


class TestCompetitiveStars:
    """Periodic star switching with a 1.5x margin."""

    def test_switch_when_clearly_stronger(self):
        reg = two_star_planet(20e30)
        report = reassign_competitive_stars(reg)
        assert reg["planet"].parent_id == "star2"
        assert [c.as_tuple() for c in report.changes] == [("planet", "star1", "star2")]

    def test_no_switch_below_margin(self):
        reg = two_star_planet(12e30)
        report = reassign_competitive_stars(reg)
        assert reg["planet"].parent_id == "star1"
        assert not report

    def test_idempotent(self):
        reg = two_star_planet(20e30)
        reassign_competitive_stars(reg)
        second = reassign_competitive_stars(reg)
        assert not second
        assert reg["planet"].parent_id == "star2"

    def test_single_star_is_noop(self):
        reg = single_star_planet_moon()
        assert not reassign_competitive_stars(reg)

    def test_custom_margin(self):
        reg = two_star_planet(12e30)
        reassign_competitive_stars(reg, EngineSettings(star_switch_margin=1.1))
        assert reg["planet"].parent_id == "star2"

    def test_maintenance_runs_both_passes(self):
        reg = two_star_planet(20e30)
        reg.add(make_body("m", BodyKind.MOON, 7e22, [5e9, 0.0, 0.0], parent="planet", a=3.84e8))
        report = perform_hierarchy_maintenance(reg)

        assert reg["planet"].parent_id == "star2"
        # Planet Hill radius ~ 8.7e8 m with the 10e30 kg primary; the moon is far outside
        assert reg["m"].parent_id == "star2"
        assert report.changed_ids == ["planet", "m"]


class TestPhysicsMode:
    """Only N-body modes allow reassignment."""

    @pytest.mark.parametrize("mode", [PhysicsMode.KEPLER, PhysicsMode.EULER])
    def test_noop_outside_nbody(self, mode):
        settings = EngineSettings(physics_mode=mode)

        reg = single_star_planet_moon()
        before = reg.parent_links()
        report = reassign_orphaned_objects(reg, destroy(reg, "earth"), settings)
        assert not report
        assert reg.parent_links() == before

        reg = two_star_planet(20e30)
        assert not perform_hierarchy_maintenance(reg, settings)
        assert reg["planet"].parent_id == "star1"

    def test_symplectic_is_nbody(self):
        reg = single_star_planet_moon()
        reassign_orphaned_objects(reg, destroy(reg, "earth"), EngineSettings(physics_mode="symplectic"))
        assert reg["luna"].parent_id == "sun"


class TestInvariantsAfterRuns:

    def test_every_run_leaves_consistent_graph(self):
        reg = gas_giant_with_two_moons()
        reg.add(make_body("b", BodyKind.STAR, 1e30, [50.0 * AU, 0.0, 0.0], parent="star"))
        reassign_orphaned_objects(reg, destroy(reg, "gg"))
        reg.assert_invariants(require_main_star=True)

        reassign_orphaned_objects(reg, destroy(reg, "star"))
        reg.assert_invariants(require_main_star=True)
        assert reg.main_star().id == "b"
        for body in reg.active():
            if not body.is_star:
                assert reg.get(body.parent_id).is_active


class TestHierarchyEngine:
    """Maintenance cadence of the host-facing wrapper."""

    def test_cadence(self):
        reg = two_star_planet(20e30)
        engine = HierarchyEngine(EngineSettings(maintenance_every=3))

        engine.on_physics_step(reg)
        assert reg["planet"].parent_id == "star2"

        # star1 now dominates by far, but maintenance is not due again until step 3
        reg["star1"].position_m[0] = -0.1 * AU
        engine.on_physics_step(reg)
        engine.on_physics_step(reg)
        assert reg["planet"].parent_id == "star2"

        engine.on_physics_step(reg)
        assert reg["planet"].parent_id == "star1"
        assert engine.step_count == 4

    def test_destruction_every_step(self):
        reg = single_star_planet_moon()
        engine = HierarchyEngine(EngineSettings(maintenance_every=1000))
        engine.on_physics_step(reg)
        report = engine.on_physics_step(reg, destroyed_ids=destroy(reg, "earth"))
        assert report.changed_ids == ["luna"]
        assert reg["luna"].parent_id == "sun"
