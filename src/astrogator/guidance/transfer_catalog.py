"""
===============================================================================
ASTROGATOR - Transfer Catalog
===============================================================================
Every destination reachable from one origin, in a stable display order.

Enumeration walks outward from the origin's starting body:

    level 0   the starting body: its satellites are destinations only when
              the origin is a vessel (a body does not transfer to its own
              moons)
    level k   each ancestor: every satellite except the one we just came
              from, plus the ancestor itself if it has a solid surface
              (a "return to parent" transfer)

Tracked auxiliary objects (asteroids and the like) are merged into the
level of the body they orbit, ordered by semi-major axis so each level
reads from innermost to outermost.

Before enumerating, the origin is classified:
    - landed or without an orbit  -> no transfers
    - vessel inclined too far     -> no transfers
    - hyperbolic, outbound        -> no transfers
    - hyperbolic, inbound         -> a single capture transfer

The host's tracked target is always offered first as a shortcut, even when
it also appears further down the list.
===============================================================================
"""

import logging
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence

import pandas as pd

from astrogator.core.config import AstrogatorConfig
from astrogator.dynamics.orbit import (
    CelestialBody, Orbitable, OrbitSnapshot, start_body, display_name,
)
from astrogator.dynamics.orbit_math import angle_from_equatorial
from astrogator.guidance.transfer_planner import TransferPlan, TransferPlanner

logger = logging.getLogger(__name__)


# =============================================================================
# SORTING
# =============================================================================

class SortKey(Enum):
    POSITION = 'position'
    NAME = 'name'
    TIME = 'time'
    DELTA_V = 'delta_v'


def _sort_value(plan: TransferPlan, key: SortKey, include_plane_change: bool = True):
    if key is SortKey.POSITION:
        return plan.index
    if key is SortKey.NAME:
        return display_name(plan.destination).lower()
    if key is SortKey.TIME:
        return plan.ejection_time
    return plan.delta_v(include_plane_change)


def sort_transfers(transfers: Iterable[TransferPlan], key: SortKey = SortKey.POSITION,
                   descending: bool = False,
                   include_plane_change: bool = True) -> List[TransferPlan]:
    """
    Sorted copy of the transfers. Plans without a value for the key (no
    ejection burn yet) always come last, whatever the direction.
    include_plane_change decides whether DELTA_V counts plane changes.
    """
    transfers = list(transfers)

    def value(plan):
        return _sort_value(plan, key, include_plane_change)

    present = [p for p in transfers if value(p) is not None]
    missing = [p for p in transfers if value(p) is None]
    present.sort(key=lambda p: (value(p), p.index), reverse=descending)
    return present + missing


# =============================================================================
# TRANSFER CATALOG
# =============================================================================

class TransferCatalog:
    """
    Ordered transfer plans for one origin plus the reasons, if any, that
    none could be listed.

    Args:
        config: Planner settings
        system: Host world (``target``, ``now()``, ``space_objects_orbiting``)
        planner: Planner used to fill in the burns
    """

    def __init__(self, config: AstrogatorConfig, system, planner: TransferPlanner):
        self.config = config
        self.system = system
        self.planner = planner

        self.origin: Optional[Orbitable] = None
        self.origin_snapshot: Optional[OrbitSnapshot] = None
        self.transfers: List[TransferPlan] = []

        self.not_orbiting = False
        self.bad_inclination = False
        self.hyperbolic_outbound = False

    # -----------------------------------------------------------------
    # Error flags
    # -----------------------------------------------------------------

    @property
    def ok(self) -> bool:
        return not (self.not_orbiting or self.bad_inclination or self.hyperbolic_outbound)

    @property
    def error_message(self) -> Optional[str]:
        if self.not_orbiting:
            return f"{display_name(self.origin)} is not in orbit"
        if self.bad_inclination:
            return f"{display_name(self.origin)} is too far from equatorial to plan accurately"
        if self.hyperbolic_outbound:
            return f"{display_name(self.origin)} is escaping on a hyperbolic trajectory"
        return None

    # -----------------------------------------------------------------
    # Building
    # -----------------------------------------------------------------

    def origin_changed(self, origin: Optional[Orbitable]) -> bool:
        """True if origin is a different object or its orbit has drifted."""
        if origin is not self.origin:
            return True
        if origin is None:
            return False
        snapshot = OrbitSnapshot.of(origin.orbit)
        if snapshot is None or self.origin_snapshot is None:
            return snapshot is not self.origin_snapshot
        return not self.origin_snapshot.matches(snapshot)

    def reset(self, origin: Optional[Orbitable]) -> List[TransferPlan]:
        """Replace every plan with fresh, empty ones for origin."""
        self.origin = origin
        self.origin_snapshot = OrbitSnapshot.of(origin.orbit) if origin is not None else None
        self.not_orbiting = False
        self.bad_inclination = False
        self.hyperbolic_outbound = False
        self.transfers = self._build(origin)
        logger.info("Catalog reset for %s: %d transfer(s)",
                    display_name(origin), len(self.transfers))
        return self.transfers

    def _build(self, origin: Optional[Orbitable]) -> List[TransferPlan]:
        if origin is None or origin.orbit is None or getattr(origin, 'landed', False):
            self.not_orbiting = True
            return []

        orbit = origin.orbit
        is_vessel = not isinstance(origin, CelestialBody)
        if is_vessel and angle_from_equatorial(orbit.inclination) > self.config.max_inclination:
            self.bad_inclination = True
            return []

        if orbit.is_hyperbolic:
            if orbit.true_anomaly_at(self.system.now()) >= 0:
                self.hyperbolic_outbound = True
                return []
            return [TransferPlan(origin, orbit.reference_body, index=0)]

        transfers = [TransferPlan(origin, dest) for dest in self._destinations(origin, is_vessel)]

        target = self.system.target
        if target is not None and target is not origin and target.orbit is not None:
            transfers.insert(0, TransferPlan(origin, target, is_target_shortcut=True))

        for index, plan in enumerate(transfers):
            plan.index = index
        return transfers

    def _destinations(self, origin: Orbitable, is_vessel: bool) -> List[Orbitable]:
        destinations = []
        skip = None
        body = start_body(origin)
        while body is not None:
            # A body's own satellites are not destinations from that body
            if is_vessel or skip is not None:
                if skip is not None and body.has_solid_surface:
                    destinations.append(body)
                destinations.extend(self._level_candidates(body, skip, origin))
            skip = body
            body = body.parent
        return destinations

    def _level_candidates(self, body: CelestialBody, skip: Optional[CelestialBody],
                          origin: Orbitable) -> List[Orbitable]:
        candidates: List[Orbitable] = [s for s in body.satellites if s is not skip]
        if self.config.include_tracked_auxiliary_objects:
            for obj in self.system.space_objects_orbiting(body):
                if obj is origin:
                    continue
                sma = obj.orbit.semi_major_axis
                position = len(candidates)
                for i, candidate in enumerate(candidates):
                    if candidate.orbit.semi_major_axis > sma:
                        position = i
                        break
                candidates.insert(position, obj)
        return candidates

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def has_destination(self, destination: Orbitable) -> bool:
        return any(plan.destination is destination for plan in self.transfers)

    def snapshot(self) -> Sequence[TransferPlan]:
        return tuple(self.transfers)

    def expired_transfers(self, now: float) -> List[TransferPlan]:
        """Plans whose ejection burn time has already passed."""
        return [plan for plan in self.transfers
                if plan.ejection_burn is not None and plan.ejection_burn.is_expired(now)]

    # -----------------------------------------------------------------
    # Batch computation
    # -----------------------------------------------------------------

    def calculate_ejection_burns(self, transfers: Optional[Sequence[TransferPlan]] = None) -> int:
        """
        Compute ejection burns; one failing transfer does not stop the rest.

        Returns:
            Number of transfers that raised.
        """
        failures = 0
        for plan in (self.transfers if transfers is None else transfers):
            try:
                self.planner.calculate_ejection_burn(plan)
            except Exception:
                failures += 1
                logger.exception("Ejection burn failed for %s", plan)
        return failures

    def calculate_plane_change_burns(self, transfers: Optional[Sequence[TransferPlan]] = None,
                                     on_failure: Optional[Callable[[], None]] = None) -> int:
        """
        Compute plane-change burns. on_failure runs after each failing
        transfer, to clean up anything a broken preview left behind.

        Returns:
            Number of transfers that raised.
        """
        failures = 0
        for plan in (self.transfers if transfers is None else transfers):
            try:
                self.planner.calculate_plane_change_burn(plan)
            except Exception:
                failures += 1
                logger.exception("Plane change burn failed for %s", plan)
                if on_failure is not None:
                    on_failure()
        return failures

    # -----------------------------------------------------------------
    # Summary
    # -----------------------------------------------------------------

    def to_dataframe(self, key: SortKey = SortKey.POSITION,
                     descending: bool = False) -> pd.DataFrame:
        """
        Tabulate the catalog, one row per transfer. total_dv counts the
        plane change only when include_plane_change_delta_v is set.
        """
        include = self.config.include_plane_change_delta_v
        rows = []
        for plan in sort_transfers(self.transfers, key, descending, include):
            ejection = plan.ejection_burn
            plane = plan.plane_change_burn
            rows.append({
                'position': plan.index,
                'destination': display_name(plan.destination),
                'parent': display_name(plan.transfer_parent) if plan.transfer_parent else None,
                'ejection_time': ejection.at_time if ejection else None,
                'ejection_dv': ejection.total_delta_v if ejection else None,
                'plane_change_time': plane.at_time if plane else None,
                'plane_change_dv': plane.total_delta_v if plane else None,
                'total_dv': plan.delta_v(include),
            })
        columns = ['position', 'destination', 'parent', 'ejection_time', 'ejection_dv',
                   'plane_change_time', 'plane_change_dv', 'total_dv']
        return pd.DataFrame(rows, columns=columns)
