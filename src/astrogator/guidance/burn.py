"""
===============================================================================
ASTROGATOR - Burn Plans
===============================================================================
An impulsive maneuver stored as data: when to burn and the delta-V split into
prograde, normal and radial components of the orbit frame at that time.

Burn plans are immutable. Recomputation produces a new plan that supersedes
the old one, so readers on other threads never see a half-updated burn.

Burn duration follows the Tsiolkovsky rocket equation stage by stage:

    dv_stage  = Isp * g0 * ln(m0 / mf)
    t_stage   = Isp * g0 * (m0 - mf) / F
    t_partial = Isp * g0 * m0 * (1 - exp(-dv / (Isp * g0))) / F
===============================================================================
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from astrogator.core.constants import STANDARD_GRAVITY


@dataclass(frozen=True)
class StageInfo:
    """
    One propulsive stage, listed in firing order.

    Attributes:
        thrust: Engine thrust (N)
        isp: Specific impulse (s)
        start_mass: Vehicle mass when the stage ignites (kg)
        end_mass: Vehicle mass at burnout (kg)
    """
    thrust: float
    isp: float
    start_mass: float
    end_mass: float

    @property
    def exhaust_velocity(self) -> float:
        return self.isp * STANDARD_GRAVITY

    @property
    def delta_v(self) -> float:
        if self.end_mass <= 0 or self.start_mass <= self.end_mass:
            return 0.0
        return float(self.exhaust_velocity * np.log(self.start_mass / self.end_mass))

    @property
    def burn_time(self) -> float:
        if self.thrust <= 0:
            return float('inf')
        return self.exhaust_velocity * (self.start_mass - self.end_mass) / self.thrust


@dataclass(frozen=True)
class BurnPlan:
    """
    Impulsive burn.

    Attributes:
        at_time: Time of the burn (s); None means any time will do
        prograde: Prograde component (m/s)
        normal: Normal component, along the orbit's angular momentum (m/s)
        radial: Radial-out component (m/s)
    """
    at_time: Optional[float]
    prograde: float
    normal: float = 0.0
    radial: float = 0.0

    @classmethod
    def from_vector(cls, at_time: Optional[float], delta_v: Sequence[float]) -> 'BurnPlan':
        """Build from a (radial, normal, prograde) vector."""
        radial, normal, prograde = (float(x) for x in delta_v)
        return cls(at_time=at_time, prograde=prograde, normal=normal, radial=radial)

    @property
    def total_delta_v(self) -> float:
        return float(np.sqrt(self.prograde ** 2 + self.normal ** 2 + self.radial ** 2))

    def as_vector(self) -> np.ndarray:
        """Delta-V as a (radial, normal, prograde) vector."""
        return np.array([self.radial, self.normal, self.prograde])

    def is_expired(self, now: float) -> bool:
        return self.at_time is not None and self.at_time < now

    def duration(self, stages: Sequence[StageInfo]) -> Optional[float]:
        """
        Seconds needed to perform this burn with the given stages.

        Returns:
            None if there is no burn or no stage to perform it,
            inf if the stages run out of delta-V first,
            otherwise the burn time in seconds.
        """
        total = self.total_delta_v
        if total <= 0 or not stages:
            return None
        if total > sum(stage.delta_v for stage in stages):
            return float('inf')

        remaining = total
        t = 0.0
        for stage in stages:
            if remaining >= stage.delta_v:
                # Whole stage is spent
                remaining -= stage.delta_v
                t += stage.burn_time
            else:
                exhaust = stage.exhaust_velocity
                t += exhaust * stage.start_mass * (1.0 - np.exp(-remaining / exhaust)) / stage.thrust
                break
        return float(t)

    def __str__(self):
        when = 'any time' if self.at_time is None else f"t={self.at_time:.1f}s"
        return (f"Burn({when}, prograde={self.prograde:.2f}, normal={self.normal:.2f}, "
                f"radial={self.radial:.2f}, total={self.total_delta_v:.2f} m/s)")
