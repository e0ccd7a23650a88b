"""
Tests for read-only hierarchy diagnostics.
"""

import pytest

from hierarchy.bodies import Body, BodyKind, OrbitalElements
from hierarchy.diagnostics import (
    binding_table,
    find_orphans,
    format_hierarchy,
    hierarchy_depths,
    summarize_hierarchy,
)
from hierarchy.physics import AU
from hierarchy.registry import BodyRegistry, HierarchyInvariantError


def solar_system():
    return BodyRegistry([
        Body("sun", BodyKind.STAR, mass_kg=2e30, position_m=[0, 0, 0],
             velocity_mps=[0, 0, 0], is_main_star=True),
        Body("earth", BodyKind.PLANET, mass_kg=6e24, position_m=[AU, 0, 0],
             velocity_mps=[0, 29780, 0], orbit=OrbitalElements(AU), parent_id="sun"),
        Body("luna", BodyKind.MOON, mass_kg=7e22, position_m=[AU + 3.84e8, 0, 0],
             velocity_mps=[0, 30800, 0], parent_id="earth"),
        Body("ceres", BodyKind.ASTEROID_FIELD, mass_kg=9e20, position_m=[2.8 * AU, 0, 0],
             velocity_mps=[0, 17900, 0]),
    ])


class TestDepthsAndOrphans:

    def test_depths(self):
        assert hierarchy_depths(solar_system()) == {"sun": 0, "earth": 1, "luna": 2, "ceres": 0}

    def test_depths_skip_inactive(self):
        reg = solar_system()
        reg["ceres"].mark_destroyed()
        assert "ceres" not in hierarchy_depths(reg)

    def test_cycle_raises(self):
        reg = solar_system()
        reg["earth"].parent_id = "luna"
        with pytest.raises(HierarchyInvariantError):
            hierarchy_depths(reg)

    def test_orphans(self):
        reg = solar_system()
        assert find_orphans(reg) == ["ceres"]
        reg["earth"].mark_destroyed()
        assert find_orphans(reg) == ["luna", "ceres"]


class TestBindingTable:

    def test_moon_row(self):
        rows = binding_table(solar_system())
        assert len(rows) == 1
        row = rows[0]
        assert row['child'] == "luna"
        assert row['parent'] == "earth"
        assert row['distance_m'] == pytest.approx(3.84e8)
        assert row['hill_radius_m'] == pytest.approx(0.01 * AU)
        assert row['hill_fraction'] == pytest.approx(3.84e8 / (0.01 * AU))
        assert row['energy_jkg'] < 0
        assert row['bound'] is True

    def test_no_primary(self):
        reg = solar_system()
        reg["sun"].mark_destroyed()
        row = binding_table(reg)[0]
        assert row['hill_radius_m'] is None
        assert row['bound'] is False


class TestSummary:

    def test_summary(self):
        summary = summarize_hierarchy(solar_system())
        assert summary['n_bodies'] == 4
        assert summary['main_star'] == "sun"
        assert summary['roots'] == ["sun", "ceres"]
        assert summary['orphans'] == ["ceres"]
        assert summary['max_depth'] == 2
        assert summary['by_kind'] == {"star": 1, "planet": 1, "moon": 1, "asteroid_field": 1}
        assert summary['by_status'] == {"active": 4}

    def test_format(self):
        text = format_hierarchy(solar_system())
        lines = text.splitlines()
        assert lines[0] == "* sun [star]"
        assert lines[1] == "  earth [planet] 1.000 AU"
        assert lines[2].startswith("    luna [moon] 0.003 AU")
        assert lines[3] == "ceres [asteroid_field]"

    def test_format_lists_orphaned(self):
        reg = solar_system()
        reg["earth"].mark_destroyed()
        lines = format_hierarchy(reg).splitlines()
        assert "(orphaned)" in lines
        assert lines[-1] == "  luna [moon]"
