"""Engine settings for dynamic hierarchy reassignment.

Two distinct "steal" thresholds are kept on purpose:
- `tug_of_war_factor` (3.0): reactive escape check. A star pulling a child
  harder than this multiple of its parent's pull breaks the binding.
- `star_switch_margin` (1.5): periodic rebalancing. A planet only switches
  star when the best alternative beats its current star by this margin.
"""

from dataclasses import dataclass
from enum import Enum


class PhysicsMode(Enum):
    """Integrator mode of the host simulation."""

    EULER = "euler"
    SYMPLECTIC = "symplectic"
    VERLET = "verlet"
    KEPLER = "kepler"

    @property
    def is_nbody(self) -> bool:
        """Only full N-body integrators let orbits change parent.

        Fixed Keplerian (and simple Euler) modes keep the generated
        hierarchy, so the engine does nothing in them.
        """
        return self in (PhysicsMode.SYMPLECTIC, PhysicsMode.VERLET)


@dataclass
class EngineSettings:
    """Tunable thresholds of the reassignment engine.

    Attributes
    ----------
    physics_mode : PhysicsMode
        Host integrator mode. Non-N-body modes turn the engine into a no-op.
    tug_of_war_factor : float
        A child stays bound only while the strongest competing star
        accelerates it by at most this multiple of the parent's pull.
    star_switch_margin : float
        Hysteresis margin for the periodic planet-to-star rebalancing.
    escape_hill_factor : float
        An unbound child is only reassigned once it is this many Hill radii
        away from its nominal parent.
    decay_cutoff_au : float
        Non-stellar candidates further than this [AU] get an exponential
        influence penalty.
    decay_rate : float
        Rate of that penalty, influence *= exp(-decay_rate * d_AU).
    default_primary_mass_kg : float
        Primary star mass used when no Active root star can be found.
    maintenance_every : int
        Physics steps between periodic maintenance passes.
    check_invariants : bool
        Assert registry invariants after each run (debug builds only).
    """

    physics_mode: PhysicsMode = PhysicsMode.VERLET
    tug_of_war_factor: float = 3.0
    star_switch_margin: float = 1.5
    escape_hill_factor: float = 2.0
    decay_cutoff_au: float = 0.1
    decay_rate: float = 10.0
    default_primary_mass_kg: float = 1e30
    maintenance_every: int = 1000
    check_invariants: bool = True

    def __post_init__(self):
        """Validate settings."""
        if isinstance(self.physics_mode, str):
            self.physics_mode = PhysicsMode(self.physics_mode.lower())
        else:
            self.physics_mode = PhysicsMode(self.physics_mode)
        if self.tug_of_war_factor <= 0:
            raise ValueError(f"tug_of_war_factor must be positive, got {self.tug_of_war_factor}")
        if self.star_switch_margin < 1.0:
            raise ValueError(
                f"star_switch_margin must be >= 1 to prevent oscillation, got {self.star_switch_margin}"
            )
        if self.escape_hill_factor <= 0:
            raise ValueError(f"escape_hill_factor must be positive, got {self.escape_hill_factor}")
        if self.decay_cutoff_au < 0:
            raise ValueError(f"decay_cutoff_au must be non-negative, got {self.decay_cutoff_au}")
        if self.decay_rate < 0:
            raise ValueError(f"decay_rate must be non-negative, got {self.decay_rate}")
        if self.default_primary_mass_kg <= 0:
            raise ValueError(
                f"default_primary_mass_kg must be positive, got {self.default_primary_mass_kg}"
            )
        if self.maintenance_every < 1:
            raise ValueError(f"maintenance_every must be >= 1, got {self.maintenance_every}")

    def __str__(self) -> str:
        return (
            f"EngineSettings(mode={self.physics_mode.value}, "
            f"tug_of_war={self.tug_of_war_factor:g}x, "
            f"star_switch={self.star_switch_margin:g}x, "
            f"escape={self.escape_hill_factor:g} R_H, "
            f"maintenance_every={self.maintenance_every})"
        )
