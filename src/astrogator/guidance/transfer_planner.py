"""
===============================================================================
ASTROGATOR - Transfer Planner
===============================================================================
Computes the burns for one TransferPlan.

Ejection burn:
    Walk up the destination's ancestors until one of them is the reference
    body of the current orbit. If found, the transfer happens right here: a
    Hohmann transfer timed by the phase angle between the two orbits. If
    not, solve the same problem one level out (for the orbit of the body
    we are circling) and fold that outer burn inward: the outer burn's
    delta-V becomes the excess speed we must leave our SOI with, and the
    ejection angle tells us where on our orbit to burn.

    Special cases:
        - Landed origins get no ejection burn
        - An inbound hyperbolic orbit gets a capture burn at periapsis when
          the destination is the body being approached
        - A destination equal to the current reference body gets a burn
          that lowers periapsis to a good low orbit

Plane-change burn:
    Preview the trajectory produced by the ejection burn, find the patch
    around the transfer parent, and match planes with the destination at
    the first node crossing after departure. Negligible corrections are
    dropped.

Unreachable destinations produce None rather than errors; the plan stays
in the catalog and is retried on the next recompute.
===============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from astrogator.core.config import AstrogatorConfig
from astrogator.core.constants import PI, HALF_PI, DESTINATION_SOI_FRACTION
from astrogator.dynamics.orbit import (
    CelestialBody, KeplerOrbit, Orbitable,
    parent_body, parent_orbit, sphere_of_influence, good_low_orbit_radius, display_name,
)
from astrogator.dynamics.orbit_math import (
    relative_inclination, time_until_transfer_window, synodic_period, burn_time_search,
    orbital_period, radius_at_time, burn_to_new_ap, burn_to_new_pe,
    ejection_angle, time_at_angle_from_midnight, burn_to_escape,
    time_of_true_anomaly, speed_at_periapsis, time_of_plane_change, delta_v_to_match_planes,
)
from astrogator.guidance.burn import BurnPlan

logger = logging.getLogger(__name__)

# Half-width of the window searched around the closed-form estimate,
# as a fraction of the synodic period
WINDOW_SEARCH_FRACTION = 0.05


# =============================================================================
# TRANSFER PLAN
# =============================================================================

@dataclass
class TransferPlan:
    """
    One origin -> destination pair and its burns.

    Attributes:
        origin: Body or vessel the transfer starts from
        destination: Body or vessel to reach
        index: Discovery order in the catalog, used for the default sort
        ejection_burn: Departure burn, None while unsolved or unreachable
        plane_change_burn: Mid-course plane match, None if not needed
        transfer_parent: Body the transfer orbit is reckoned around
        transfer_destination: Object at that level that leads to destination
        retrograde: Transfer orbit and destination orbit run in opposite
            directions
        is_target_shortcut: Convenience copy of the tracked target
    """
    origin: Orbitable
    destination: Orbitable
    index: int = 0
    ejection_burn: Optional[BurnPlan] = None
    plane_change_burn: Optional[BurnPlan] = None
    transfer_parent: Optional[CelestialBody] = None
    transfer_destination: Optional[Orbitable] = None
    retrograde: bool = False
    is_target_shortcut: bool = False

    @property
    def ejection_time(self) -> Optional[float]:
        return self.ejection_burn.at_time if self.ejection_burn is not None else None

    @property
    def total_delta_v(self) -> Optional[float]:
        """Ejection plus plane change (m/s); None while there is no ejection."""
        return self.delta_v(include_plane_change=True)

    def delta_v(self, include_plane_change: bool = True) -> Optional[float]:
        """Ejection delta-V (m/s), plus the plane change if asked and present."""
        if self.ejection_burn is None:
            return None
        total = self.ejection_burn.total_delta_v
        if include_plane_change and self.plane_change_burn is not None:
            total += self.plane_change_burn.total_delta_v
        return total

    def create_maneuvers(self, host, config: AstrogatorConfig,
                         planner: Optional['TransferPlanner'] = None) -> int:
        """
        Replace the host's maneuvers with this plan's burns.

        A plane change that was never computed (the background loader skips
        them unless include_plane_change_delta_v is set) is computed here
        with planner when generate_plane_change_burns asks for one.

        Returns:
            Number of maneuvers committed.
        """
        if (config.generate_plane_change_burns and planner is not None
                and self.plane_change_burn is None and self.ejection_burn is not None):
            planner.calculate_plane_change_burn(self)

        host.clear_maneuvers()
        committed = 0
        if self.ejection_burn is not None and self.ejection_burn.at_time is not None:
            host.add_maneuver(self.ejection_burn)
            committed += 1
            if config.generate_plane_change_burns and self.plane_change_burn is not None:
                host.add_maneuver(self.plane_change_burn)
                committed += 1
        return committed

    def __str__(self):
        return f"Transfer({display_name(self.origin)} -> {display_name(self.destination)})"


# =============================================================================
# TRANSFER PLANNER
# =============================================================================

class TransferPlanner:
    """
    Fills in the burns of TransferPlans.

    Args:
        config: Planner settings
        clock: Callable returning the current world time (s)
        previewer: Trajectory preview capability with a
            ``preview(orbit, burn)`` method; plane changes are skipped
            without one
    """

    def __init__(self, config: AstrogatorConfig, clock: Callable[[], float], previewer=None):
        self.config = config
        self.clock = clock
        self.previewer = previewer

    # -----------------------------------------------------------------
    # Ejection
    # -----------------------------------------------------------------

    def calculate_ejection_burn(self, plan: TransferPlan) -> Optional[BurnPlan]:
        """Recompute plan.ejection_burn from the origin's current orbit."""
        now = self.clock()
        plan.transfer_parent = None
        plan.transfer_destination = None

        if getattr(plan.origin, 'landed', False):
            # Launch delta-V is not an ejection burn
            burn = None
        else:
            burn = self.generate_ejection_burn(plan, plan.origin.orbit, now)
        plan.ejection_burn = burn

        plane = plan.plane_change_burn
        if (burn is not None and plane is not None and plane.at_time is not None
                and burn.at_time is not None and plane.at_time < burn.at_time):
            plan.plane_change_burn = None

        logger.debug("%s ejection: %s", plan, burn)
        return burn

    def generate_ejection_burn(self, plan: TransferPlan, current_orbit: Optional[KeplerOrbit],
                               now: float) -> Optional[BurnPlan]:
        """
        Ejection burn from current_orbit toward plan.destination.

        Records the transfer parent and the immediate destination on the
        plan when they are found at some level of the recursion.
        """
        destination = plan.destination
        if current_orbit is None or destination is None:
            return None
        if current_orbit.is_hyperbolic:
            if current_orbit.reference_body is destination:
                return self._capture_burn(current_orbit, now)
            return None
        if destination.orbit is None or destination.orbit.is_hyperbolic:
            return None

        # Look for the level where the transfer happens
        found = False
        previous = None
        body = destination
        while body is not None:
            if current_orbit.reference_body is body:
                if previous is None:
                    logger.debug("%s is the current reference body; planning return burn",
                                 display_name(body))
                    return self._return_burn(current_orbit, now)
                if previous.orbit is current_orbit:
                    # Destination is inside our own SOI
                    return None
                plan.transfer_parent = body
                plan.transfer_destination = previous
                logger.debug("Transfer patch around %s toward %s",
                             display_name(body), display_name(previous))
                found = True
                break
            previous = body
            body = parent_body(body)

        if found:
            return self._hohmann_burn(plan, current_orbit, now)
        return self._fold_in_outer_burn(plan, current_orbit, now)

    def _hohmann_burn(self, plan: TransferPlan, current_orbit: KeplerOrbit,
                      now: float) -> Optional[BurnPlan]:
        """Base case: origin and destination share a reference body."""
        destination = plan.transfer_destination
        dest_orbit = destination.orbit
        plan.retrograde = relative_inclination(current_orbit, dest_orbit) > HALF_PI

        wait = time_until_transfer_window(current_orbit, dest_orbit, now)
        if wait is None:
            logger.debug("%s: relative phase never changes", plan)
            return None
        burn_time = self._refine_window(current_orbit, dest_orbit, now, now + wait)

        arrival_time = burn_time + 0.5 * orbital_period(
            dest_orbit.reference_body,
            dest_orbit.semi_major_axis,
            current_orbit.semi_major_axis,
        )
        arrival_radius = radius_at_time(dest_orbit, arrival_time)
        aim_offset = DESTINATION_SOI_FRACTION * sphere_of_influence(destination)

        if current_orbit.semi_major_axis < dest_orbit.semi_major_axis:
            delta_v = burn_to_new_ap(current_orbit, burn_time, arrival_radius - aim_offset)
        else:
            delta_v = burn_to_new_pe(current_orbit, burn_time, arrival_radius + aim_offset)
        return BurnPlan(burn_time, delta_v)

    def _refine_window(self, current_orbit: KeplerOrbit, dest_orbit: KeplerOrbit,
                       now: float, estimate: float) -> float:
        """
        Sharpen the closed-form window with the root-finder, keeping the
        estimate when no true zero is found nearby.
        """
        half_width = WINDOW_SEARCH_FRACTION * synodic_period(current_orbit, dest_orbit)
        if not np.isfinite(half_width) or half_width <= 0:
            return estimate
        refined = burn_time_search(
            current_orbit, dest_orbit,
            max(now, estimate - half_width), estimate + half_width,
            max_attempts=self.config.burn_search_max_attempts,
        )
        if refined is None or refined < now:
            logger.debug("Window search found nothing near t=%.1f; keeping estimate", estimate)
            return estimate
        return refined

    def _fold_in_outer_burn(self, plan: TransferPlan, current_orbit: KeplerOrbit,
                            now: float) -> Optional[BurnPlan]:
        """Recursive case: escape our SOI so as to perform the outer burn."""
        outer = self.generate_ejection_burn(plan, parent_orbit(current_orbit), now)
        if outer is None or outer.at_time is None:
            return None

        parent = current_orbit.reference_body
        excess_speed = outer.total_delta_v
        if excess_speed <= 0:
            return None
        # Retrograde outer burns leave from the midnight side
        angle_offset = 0.0 if outer.prograde < 0 else -PI

        burn_time = outer.at_time
        converged = False
        for iteration in range(self.config.ejection_iterations):
            angle = ejection_angle(parent, radius_at_time(current_orbit, burn_time), excess_speed)
            next_time = time_at_angle_from_midnight(parent.orbit, current_orbit, burn_time,
                                                    angle + angle_offset)
            if next_time is None:
                return None
            step = abs(next_time - burn_time)
            burn_time = next_time
            if step < self.config.ejection_time_tolerance:
                converged = True
                break

        if not converged:
            logger.warning("%s: ejection time from %s did not converge in %d iterations "
                           "(last step %.3f s)", plan, parent.name,
                           self.config.ejection_iterations, step)

        return BurnPlan(burn_time, burn_to_escape(parent, current_orbit, excess_speed, burn_time))

    @staticmethod
    def _capture_burn(orbit: KeplerOrbit, now: float) -> Optional[BurnPlan]:
        """Circularize at periapsis of an inbound hyperbolic orbit."""
        if orbit.true_anomaly_at(now) >= 0:
            return None
        burn_time = time_of_true_anomaly(orbit, 0.0, now)
        if burn_time is None:
            return None
        periapsis = orbit.periapsis
        _, v = orbit.state_vectors_at_true_anomaly(0.0)
        delta_v = speed_at_periapsis(orbit.reference_body, periapsis, periapsis) - float(np.linalg.norm(v))
        return BurnPlan(burn_time, delta_v)

    @staticmethod
    def _return_burn(orbit: KeplerOrbit, now: float) -> Optional[BurnPlan]:
        """Drop periapsis to a good low orbit, burning at the next apoapsis."""
        burn_time = time_of_true_anomaly(orbit, PI, now)
        if burn_time is None:
            return None
        target = good_low_orbit_radius(orbit.reference_body)
        return BurnPlan(burn_time, burn_to_new_pe(orbit, burn_time, target))

    # -----------------------------------------------------------------
    # Plane change
    # -----------------------------------------------------------------

    def calculate_plane_change_burn(self, plan: TransferPlan) -> Optional[BurnPlan]:
        """Recompute plan.plane_change_burn from a preview of the ejection burn."""
        plan.plane_change_burn = None
        ejection = plan.ejection_burn
        if not self.config.generate_plane_change_burns or self.previewer is None:
            return None
        if ejection is None or ejection.at_time is None:
            return None
        if plan.transfer_parent is None or plan.transfer_destination is None:
            return None
        origin_orbit = plan.origin.orbit
        dest_orbit = plan.transfer_destination.orbit
        if origin_orbit is None or dest_orbit is None:
            return None

        with self.previewer.preview(origin_orbit, ejection) as preview:
            for patch in preview.patches:
                if patch.reference_body is not plan.transfer_parent:
                    continue
                found = time_of_plane_change(patch, dest_orbit, max(ejection.at_time, patch.epoch))
                if found is None:
                    continue
                node_time, ascending = found
                burn = BurnPlan.from_vector(node_time,
                                            delta_v_to_match_planes(patch, dest_orbit, node_time))
                logger.debug("%s: plane change at %s node, %s",
                             plan, 'ascending' if ascending else 'descending', burn)
                if burn.total_delta_v > self.config.plane_change_threshold:
                    plan.plane_change_burn = burn
                break

        return plan.plane_change_burn
