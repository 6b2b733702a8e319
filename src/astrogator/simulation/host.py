"""
===============================================================================
ASTROGATOR - Host Capabilities
===============================================================================
Reference implementations of what the planner needs from its host:

    StarSystem            -- body tree, tracked objects, current target and
                             the world clock
    PatchedConicPreviewer -- non-committing trajectory preview: apply a burn
                             to an orbit and follow the result outward
                             through sphere-of-influence exits
    InMemoryManeuverHost  -- maneuver commit / clear

A preview never mutates the system. The returned TrajectoryPreview is
revocable and doubles as a context manager so callers release it as soon as
they are done inspecting the patches.
===============================================================================
"""

import logging
import threading
from typing import Iterator, List, Optional, Sequence

import numpy as np

from astrogator.dynamics.orbit import CelestialBody, KeplerOrbit, Orbitable, Vessel
from astrogator.dynamics.orbit_math import time_of_true_anomaly
from astrogator.guidance.burn import BurnPlan

logger = logging.getLogger(__name__)


# =============================================================================
# STAR SYSTEM
# =============================================================================

class StarSystem:
    """
    The world as seen by the planner.

    Args:
        root: Root body (usually a star)
        space_objects: Tracked auxiliary objects such as asteroids
        vessels: Craft that may serve as origins
        universal_time: Initial world time (s)
        target: Currently tracked target, if any
    """

    def __init__(self, root: CelestialBody,
                 space_objects: Sequence[Vessel] = (),
                 vessels: Sequence[Vessel] = (),
                 universal_time: float = 0.0,
                 target: Optional[Orbitable] = None):
        self.root = root
        self.space_objects: List[Vessel] = list(space_objects)
        self.vessels: List[Vessel] = list(vessels)
        self.universal_time = universal_time
        self.target = target

    def now(self) -> float:
        """Current world time (s)."""
        return self.universal_time

    def advance(self, dt: float) -> float:
        self.universal_time += dt
        return self.universal_time

    def bodies(self) -> Iterator[CelestialBody]:
        """All bodies, depth first, parents before satellites."""
        stack = [self.root]
        while stack:
            body = stack.pop()
            yield body
            stack.extend(reversed(body.satellites))

    def find(self, name: str) -> Orbitable:
        """Look up a body, vessel or tracked object by name."""
        for obj in list(self.bodies()) + self.vessels + self.space_objects:
            if obj.name == name:
                return obj
        raise KeyError(f"No body or vessel named {name!r}")

    def space_objects_orbiting(self, body: CelestialBody) -> List[Vessel]:
        return [obj for obj in self.space_objects
                if obj.orbit is not None and obj.orbit.reference_body is body]


# =============================================================================
# TRAJECTORY PREVIEW
# =============================================================================

class TrajectoryPreview:
    """Patches produced by previewing one burn. Revocable, idempotently."""

    def __init__(self, burn: BurnPlan, patches: Sequence[KeplerOrbit]):
        self.burn = burn
        self._patches = list(patches)
        self.revoked = False

    @property
    def patches(self) -> List[KeplerOrbit]:
        return list(self._patches)

    def revoke(self):
        self._patches = []
        self.revoked = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.revoke()
        return False


def burn_frame(orbit: KeplerOrbit, t: float):
    """
    Unit (radial, normal, prograde) vectors of the orbit frame at time t,
    plus the inertial position and velocity there.
    """
    r, v = orbit.state_vectors_at(t)
    prograde = v / np.linalg.norm(v)
    up = r / np.linalg.norm(r)
    radial = up - np.dot(up, prograde) * prograde
    radial /= np.linalg.norm(radial)
    return radial, orbit.normal, prograde, r, v


class PatchedConicPreviewer:
    """
    Patched-conic trajectory preview.

    The burn is applied impulsively in the orbit frame at its time. Each
    resulting patch that leaves its reference body's sphere of influence is
    continued around the parent body from the exit state.
    """

    def __init__(self, max_patches: int = 4):
        if max_patches < 1:
            raise ValueError(f"max_patches must be >= 1, got {max_patches}")
        self.max_patches = max_patches

    def preview(self, orbit: KeplerOrbit, burn: BurnPlan) -> TrajectoryPreview:
        if burn.at_time is None:
            raise ValueError("Cannot preview a burn without a time")

        t = burn.at_time
        radial, normal, prograde, r, v = burn_frame(orbit, t)
        v_new = v + burn.radial * radial + burn.normal * normal + burn.prograde * prograde

        patch = KeplerOrbit.from_state_vectors(r, v_new, t, orbit.reference_body)
        patches = [patch]
        while len(patches) < self.max_patches:
            exit_state = self._soi_exit(patch, t)
            if exit_state is None:
                break
            t, r_exit, v_exit = exit_state
            body = patch.reference_body
            # Re-express the exit state around the parent body
            R, V = body.orbit.state_vectors_at(t)
            patch = KeplerOrbit.from_state_vectors(r_exit + R, v_exit + V, t, body.parent)
            patches.append(patch)

        logger.debug("Previewed %s: %d patch(es)", burn, len(patches))
        return TrajectoryPreview(burn, patches)

    @staticmethod
    def _soi_exit(patch: KeplerOrbit, start: float):
        body = patch.reference_body
        soi = body.sphere_of_influence
        if body.parent is None or not np.isfinite(soi):
            return None
        if patch.eccentricity <= 0 or patch.apoapsis <= soi:
            return None

        cos_nu = (patch.semi_latus_rectum / soi - 1.0) / patch.eccentricity
        exit_anomaly = float(np.arccos(np.clip(cos_nu, -1.0, 1.0)))
        t_exit = time_of_true_anomaly(patch, exit_anomaly, start)
        if t_exit is None or t_exit < start:
            return None
        r, v = patch.state_vectors_at(t_exit)
        return t_exit, r, v


# =============================================================================
# MANEUVER HOST
# =============================================================================

class InMemoryManeuverHost:
    """Keeps committed maneuvers in a list. Safe to call from any thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._maneuvers: List[BurnPlan] = []

    def add_maneuver(self, burn: BurnPlan):
        if burn.at_time is None:
            raise ValueError("Cannot commit a burn without a time")
        with self._lock:
            self._maneuvers.append(burn)

    def clear_maneuvers(self):
        with self._lock:
            count = len(self._maneuvers)
            self._maneuvers.clear()
        if count:
            logger.info("Cleared %d maneuver(s)", count)

    @property
    def maneuvers(self) -> List[BurnPlan]:
        with self._lock:
            return list(self._maneuvers)
