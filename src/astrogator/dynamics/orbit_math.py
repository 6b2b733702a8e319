"""
===============================================================================
ASTROGATOR - Orbit Math Primitives
===============================================================================
Stateless numerical functions used by the transfer planner:

    - Angle wrapping and absolute phase angles
    - Vis-viva speeds, orbital periods, single-impulse apsis changes
    - Hyperbolic escape geometry (ejection angle, speed to exit an SOI)
    - Anomaly conversions and node crossings between two orbit planes
    - Bisection root-finder and the transfer-window search built on it
    - Delta-V decomposition for matching orbital planes

Every function is deterministic. Problems with no solution right now (a
root-finder bracket without a sign change, a hyperbolic orbit that never
reaches a requested true anomaly) return None; malformed inputs raise
ValueError.

Angles are radians, distances meters, times seconds.
===============================================================================
"""

import logging
from typing import Callable, Optional, Tuple

import numpy as np

from astrogator.core.constants import (
    TAU, PI, HALF_PI, ROOT_EPSILON, ROOT_RANGE_EPSILON, ANOMALY_WRAP_TOL,
)
from astrogator.dynamics.orbit import CelestialBody, KeplerOrbit

logger = logging.getLogger(__name__)


# =============================================================================
# ANGLES
# =============================================================================

def clamp(angle: float, min_angle: float = 0.0) -> float:
    """
    Wrap an angle into [min_angle, min_angle + 2*pi) by whole turns.

    The result has the same sine and cosine as the input; it is not the
    closest representative, just the one inside the window.
    """
    result = min_angle + (angle - min_angle) % TAU
    # Float rounding can land exactly on the open upper bound
    if result >= min_angle + TAU:
        result = min_angle
    return float(result)


def angle_from_equatorial(inclination: float) -> float:
    """
    Angle between an orbit plane and the equator regardless of direction:
    0 for prograde and retrograde equatorial orbits, pi/2 for polar ones.
    """
    return HALF_PI - abs(HALF_PI - abs(inclination))


def direction_sign(orbit: KeplerOrbit) -> int:
    """+1 for orbits traversed prograde, -1 for retrograde ones."""
    return 1 if np.cos(orbit.inclination) >= 0 else -1


def relative_inclination(a: KeplerOrbit, b: KeplerOrbit) -> float:
    """Angle between the two orbit normals, in [0, pi]."""
    return float(np.arccos(np.clip(np.dot(a.normal, b.normal), -1.0, 1.0)))


def absolute_phase_angle(orbit: KeplerOrbit, t: float) -> float:
    """
    Angle of an orbiting object from the reference direction at time t.

        phase = LAN + s*omega + s*nu(t),  s = sign(cos(i))

    The sign flip keeps prograde and retrograde orbits comparable, since
    retrograde orbits sweep argument and anomaly backwards.
    """
    s = direction_sign(orbit)
    return clamp(orbit.lan
                 + orbit.argument_of_periapsis * s
                 + orbit.true_anomaly_at(t) * s)


def radius_at_time(orbit: KeplerOrbit, t: float) -> float:
    return orbit.radius_at(t)


def radius_at_absolute_phase_angle(orbit: KeplerOrbit, phase_angle: float) -> float:
    """Radius where the orbit crosses the given absolute phase angle."""
    s = direction_sign(orbit)
    true_anomaly = s * (phase_angle - orbit.lan) - orbit.argument_of_periapsis
    return orbit.radius_at_true_anomaly(clamp(true_anomaly))


# =============================================================================
# VIS-VIVA
# =============================================================================

def speed_at_periapsis(parent: CelestialBody, apoapsis: float, periapsis: float) -> float:
    """
    Speed at periapsis of the orbit with the given apsides (vis-viva).

        v_pe = sqrt(mu * (2/r_pe - 2/(r_ap + r_pe)))
    """
    if apoapsis <= 0 or periapsis <= 0:
        raise ValueError(f"Apsis radii must be positive (ap={apoapsis}, pe={periapsis})")
    mu = parent.gravitational_parameter
    return float(np.sqrt(mu * (2.0 / periapsis - 2.0 / (apoapsis + periapsis))))


def speed_at_apoapsis(parent: CelestialBody, apoapsis: float, periapsis: float) -> float:
    """
    Speed at apoapsis of the orbit with the given apsides (vis-viva).

        v_ap = sqrt(mu * (2/r_ap - 2/(r_ap + r_pe)))
    """
    if apoapsis <= 0 or periapsis <= 0:
        raise ValueError(f"Apsis radii must be positive (ap={apoapsis}, pe={periapsis})")
    mu = parent.gravitational_parameter
    return float(np.sqrt(mu * (2.0 / apoapsis - 2.0 / (apoapsis + periapsis))))


def orbital_period(parent: CelestialBody, apoapsis: float, periapsis: float) -> float:
    """
    Period of the ellipse with the given apsides (Kepler's third law).

        T = 2*pi * sqrt(a^3 / mu),  a = (r_ap + r_pe) / 2
    """
    a = 0.5 * (apoapsis + periapsis)
    if a <= 0:
        raise ValueError(f"Orbital period is undefined for a <= 0 (got a = {a:.4e} m)")
    return float(TAU * np.sqrt(a ** 3 / parent.gravitational_parameter))


def burn_to_new_ap(orbit: KeplerOrbit, burn_time: float, new_apoapsis: float) -> float:
    """
    Prograde delta-V at burn_time that puts the apoapsis at new_apoapsis.
    The current radius becomes the periapsis.
    """
    r, v = orbit.state_vectors_at(burn_time)
    return speed_at_periapsis(orbit.reference_body, new_apoapsis, float(np.linalg.norm(r))) \
        - float(np.linalg.norm(v))


def burn_to_new_pe(orbit: KeplerOrbit, burn_time: float, new_periapsis: float) -> float:
    """
    Prograde delta-V at burn_time that puts the periapsis at new_periapsis.
    The current radius becomes the apoapsis.
    """
    r, v = orbit.state_vectors_at(burn_time)
    return speed_at_apoapsis(orbit.reference_body, float(np.linalg.norm(r)), new_periapsis) \
        - float(np.linalg.norm(v))


# =============================================================================
# HYPERBOLIC ESCAPE
# =============================================================================

def ejection_angle(parent: CelestialBody, periapsis: float, v_infinity: float) -> float:
    """
    Angle from local midnight at which to burn so that the escape
    asymptote points prograde along the parent's own orbit.

    For the escape hyperbola with excess speed v_inf:

        a = -mu / v_inf^2
        e = 1 - r_pe / a
        angle = 3*pi/2 - acos(-1/e)

    Parameters
    ----------
    parent : CelestialBody
        Body being escaped.
    periapsis : float
        Radius of the burn, which becomes the hyperbola's periapsis (m).
    v_infinity : float
        Required hyperbolic excess speed (m/s).

    Returns
    -------
    float
        Ejection angle (rad).
    """
    if v_infinity == 0:
        raise ValueError("Ejection angle needs a non-zero excess speed")
    a = -parent.gravitational_parameter / (v_infinity * v_infinity)
    e = 1.0 - periapsis / a
    return float(0.75 * TAU - np.arccos(-1.0 / e))


def speed_to_escape(parent: CelestialBody, radius: float, v_infinity: float) -> float:
    """Speed at radius that leaves an infinite SOI with v_infinity to spare."""
    return float(np.sqrt(2.0 * parent.gravitational_parameter / radius + v_infinity ** 2))


def speed_to_exit_soi(parent: CelestialBody, periapsis: float, v_at_soi: float) -> float:
    """
    Speed at periapsis that reaches the SOI edge with speed v_at_soi.

        v = sqrt(2*mu*(R_soi - r_pe) / (R_soi * r_pe) + v_soi^2)

    Converges to speed_to_escape as the SOI radius grows.
    """
    soi = parent.sphere_of_influence
    if not np.isfinite(soi):
        return speed_to_escape(parent, periapsis, v_at_soi)
    mu = parent.gravitational_parameter
    return float(np.sqrt(2.0 * mu * (soi - periapsis) / (soi * periapsis) + v_at_soi ** 2))


def burn_to_escape(parent: CelestialBody, orbit: KeplerOrbit, v_infinity: float,
                   burn_time: float) -> float:
    """Prograde delta-V at burn_time to leave parent's SOI at v_infinity."""
    r, v = orbit.state_vectors_at(burn_time)
    return speed_to_exit_soi(parent, float(np.linalg.norm(r)), v_infinity) \
        - float(np.linalg.norm(v))


def time_at_angle_from_midnight(parent_orbit: KeplerOrbit, satellite_orbit: KeplerOrbit,
                                min_time: float, angle: float) -> Optional[float]:
    """
    First time after min_time at which the satellite sits at the given angle
    from local midnight, measured along the satellite's direction of travel.
    Midnight is the point of the satellite orbit directly away from the
    parent's own reference body.
    """
    if satellite_orbit.is_hyperbolic:
        return None
    parent_ta = parent_orbit.true_anomaly_at(min_time)
    if relative_inclination(satellite_orbit, parent_orbit) < HALF_PI:
        satellite_ta = clamp(parent_orbit.lan + parent_orbit.argument_of_periapsis
                             - satellite_orbit.lan - satellite_orbit.argument_of_periapsis
                             + parent_ta + angle)
    else:
        satellite_ta = clamp(-parent_orbit.lan - parent_orbit.argument_of_periapsis
                             + satellite_orbit.lan - satellite_orbit.argument_of_periapsis
                             - parent_ta + angle + PI)
    next_time = time_of_true_anomaly(satellite_orbit, satellite_ta, min_time)
    if next_time is None:
        return None
    period = satellite_orbit.period
    orbits_needed = np.ceil((min_time - next_time) / period)
    return float(next_time + max(orbits_needed, 0.0) * period)


# =============================================================================
# ANOMALIES AND NODE CROSSINGS
# =============================================================================

def mean_motion(orbit: KeplerOrbit) -> float:
    return orbit.mean_motion


def mean_anomaly_at_time(orbit: KeplerOrbit, t: float) -> float:
    return orbit.mean_anomaly_at(t)


def eccentric_anomaly_at_true_anomaly(orbit: KeplerOrbit, true_anomaly: float) -> Optional[float]:
    """
    Eccentric anomaly (or hyperbolic anomaly) at the given true anomaly.

    Elliptic results are wrapped into [0, 2*pi). For hyperbolic orbits the
    result is signed, and None is returned when the true anomaly lies beyond
    the asymptotes and is never reached.
    """
    e = orbit.eccentricity
    ta = clamp(true_anomaly)
    denominator = 1.0 + e * np.cos(ta)

    if not orbit.is_hyperbolic:
        cos_E = np.clip((e + np.cos(ta)) / denominator, -1.0, 1.0)
        sin_E = np.sqrt(1.0 - cos_E * cos_E)
        if ta > PI:
            sin_E = -sin_E
        return clamp(np.arctan2(sin_E, cos_E))

    if denominator <= 0:
        return None
    cosh_E = (e + np.cos(ta)) / denominator
    if cosh_E < 1.0:
        return None
    E = float(np.arccosh(cosh_E))
    return -E if ta > PI else E


def mean_anomaly_at_eccentric_anomaly(orbit: KeplerOrbit, eccentric_anomaly: float) -> float:
    e = orbit.eccentricity
    if orbit.is_hyperbolic:
        return float(e * np.sinh(eccentric_anomaly) - eccentric_anomaly)
    return clamp(eccentric_anomaly - e * np.sin(eccentric_anomaly))


def time_of_true_anomaly(orbit: KeplerOrbit, true_anomaly: float, ut: float) -> Optional[float]:
    """
    Time at which the orbit reaches true_anomaly. For elliptic orbits this
    is the next occurrence at or after ut; hyperbolic orbits pass each
    anomaly once, so the result may lie before ut. None if the anomaly is
    never reached.
    """
    E = eccentric_anomaly_at_true_anomaly(orbit, true_anomaly)
    if E is None:
        return None
    M = mean_anomaly_at_eccentric_anomaly(orbit, E)
    diff = M - mean_anomaly_at_time(orbit, ut)
    if not orbit.is_hyperbolic:
        diff = clamp(diff)
        # Rounding just behind ut means "now", not one full orbit later
        if diff > TAU - ANOMALY_WRAP_TOL:
            diff = 0.0
    return float(ut + diff / mean_motion(orbit))


def true_anomaly_from_vector(orbit: KeplerOrbit, vector: np.ndarray) -> float:
    """True anomaly of the direction given by vector, projected onto the orbit plane."""
    R = orbit.rotation
    return clamp(np.arctan2(np.dot(vector, R[:, 1]), np.dot(vector, R[:, 0])))


def ascending_node_true_anomaly(orbit: KeplerOrbit, other: KeplerOrbit) -> float:
    """True anomaly on orbit where it rises through other's plane."""
    return true_anomaly_from_vector(orbit, np.cross(other.normal, orbit.normal))


def descending_node_true_anomaly(orbit: KeplerOrbit, other: KeplerOrbit) -> float:
    """True anomaly on orbit where it falls through other's plane."""
    return true_anomaly_from_vector(orbit, np.cross(orbit.normal, other.normal))


def time_of_ascending_node(orbit: KeplerOrbit, other: KeplerOrbit, ut: float) -> Optional[float]:
    return time_of_true_anomaly(orbit, ascending_node_true_anomaly(orbit, other), ut)


def time_of_descending_node(orbit: KeplerOrbit, other: KeplerOrbit, ut: float) -> Optional[float]:
    return time_of_true_anomaly(orbit, descending_node_true_anomaly(orbit, other), ut)


def time_of_plane_change(orbit: KeplerOrbit, target: KeplerOrbit,
                         min_time: float) -> Optional[Tuple[float, bool]]:
    """
    Sooner of the two node crossings with target's plane strictly after
    min_time.

    Returns:
        (time, ascending) where ascending tells which node was chosen, or
        None if neither node is reached after min_time.
    """
    candidates = []
    ascending_time = time_of_ascending_node(orbit, target, min_time)
    if ascending_time is not None and ascending_time > min_time:
        candidates.append((ascending_time, True))
    descending_time = time_of_descending_node(orbit, target, min_time)
    if descending_time is not None and descending_time > min_time:
        candidates.append((descending_time, False))
    if not candidates:
        return None
    return min(candidates, key=lambda c: c[0])


# =============================================================================
# PLANE MATCHING
# =============================================================================

def delta_v_to_match_planes(orbit: KeplerOrbit, target: KeplerOrbit, t: float) -> np.ndarray:
    """
    Velocity change at time t that rotates the horizontal velocity into the
    target orbit's plane while keeping its magnitude.

    Returns:
        np.ndarray [radial, normal, prograde] components (m/s) relative to
        the orbit's own frame at t.
    """
    r, v = orbit.state_vectors_at(t)
    up = r / np.linalg.norm(r)

    if relative_inclination(orbit, target) < HALF_PI:
        desired = np.cross(target.normal, up)
    else:
        desired = np.cross(up, target.normal)
    desired_norm = np.linalg.norm(desired)
    if desired_norm == 0:
        return np.zeros(3)
    desired /= desired_norm

    horizontal = v - np.dot(v, up) * up
    burn = np.linalg.norm(horizontal) * desired - horizontal

    prograde = v / np.linalg.norm(v)
    radial = up - np.dot(up, prograde) * prograde
    radial /= np.linalg.norm(radial)

    return np.array([
        np.dot(radial, burn),
        np.dot(orbit.normal, burn),
        np.dot(prograde, burn),
    ])


def plane_change_delta_v(orbit: KeplerOrbit, target: KeplerOrbit, t: float) -> float:
    """Magnitude (m/s) of delta_v_to_match_planes."""
    return float(np.linalg.norm(delta_v_to_match_planes(orbit, target, t)))


# =============================================================================
# TRANSFER WINDOWS
# =============================================================================

def transfer_travel_time(origin_orbit: KeplerOrbit, destination_orbit: KeplerOrbit,
                         depart_time: float,
                         arrival_phase_angle: Optional[float] = None) -> float:
    """
    Half the period of the transfer ellipse between the origin's radius at
    departure and the destination's radius at the arrival phase angle
    (default: opposite the departure point).
    """
    if arrival_phase_angle is None:
        arrival_phase_angle = absolute_phase_angle(origin_orbit, depart_time) + PI
    return 0.5 * orbital_period(
        destination_orbit.reference_body,
        radius_at_time(origin_orbit, depart_time),
        radius_at_absolute_phase_angle(destination_orbit, arrival_phase_angle),
    )


def arrival_phase_angle_difference(origin_orbit: KeplerOrbit, destination_orbit: KeplerOrbit,
                                   depart_time: float) -> float:
    """
    How far (rad, in [-pi, pi)) the destination is from the arrival point
    when a Hohmann transfer leaves at depart_time. Zero is a perfect
    encounter; the function jumps from +pi to -pi once per synodic period.
    """
    arrival_angle = absolute_phase_angle(origin_orbit, depart_time) + PI
    arrival_time = depart_time + transfer_travel_time(
        origin_orbit, destination_orbit, depart_time, arrival_angle)
    return clamp(arrival_angle - absolute_phase_angle(destination_orbit, arrival_time), -PI)


def find_root(f: Callable[[float], float], min_x: float, max_x: float,
              epsilon: float = ROOT_EPSILON,
              range_epsilon: float = ROOT_RANGE_EPSILON) -> Optional[float]:
    """
    Bisection search for a sign change of f in [min_x, max_x].

    Parameters
    ----------
    f : callable
        Function of one float.
    min_x, max_x : float
        Bracket; f must change sign across it.
    epsilon : float
        Stop when the bracket is narrower than this.
    range_epsilon : float
        Accept the midpoint only if |f(max) - f(min)| on the final bracket
        is below this. A periodic function that wraps from +pi to -pi has
        a sign change there that is not a zero, and this check rejects it.

    Returns
    -------
    float or None
        The root, or None if the endpoints share a sign or the final
        bracket straddles a discontinuity.
    """
    min_val, max_val = f(min_x), f(max_x)
    if not (np.isfinite(min_val) and np.isfinite(max_val)):
        return None
    if min_val == 0:
        return float(min_x)
    if max_val == 0:
        return float(max_x)
    if np.sign(min_val) == np.sign(max_val):
        return None

    while max_x - min_x > epsilon:
        mid = 0.5 * (min_x + max_x)
        mid_val = f(mid)
        if np.sign(mid_val) == np.sign(min_val):
            min_x, min_val = mid, mid_val
        else:
            max_x, max_val = mid, mid_val

    if abs(max_val - min_val) < range_epsilon:
        return float(0.5 * (min_x + max_x))
    return None


def optimal_transfer_time(origin_orbit: KeplerOrbit, destination_orbit: KeplerOrbit,
                          min_time: float, max_time: float) -> Optional[float]:
    """Departure time in [min_time, max_time] with a zero arrival phase difference."""
    return find_root(
        lambda t: arrival_phase_angle_difference(origin_orbit, destination_orbit, t),
        min_time, max_time)


def burn_time_search(origin_orbit: KeplerOrbit, destination_orbit: KeplerOrbit,
                     search_start: float, search_end: float,
                     max_attempts: Optional[int] = None) -> Optional[float]:
    """
    Look for an optimal departure time, sliding the window forward by its
    own width each time the root-finder fails. Unbounded unless max_attempts
    is given; returns None once the attempts run out.
    """
    interval = search_end - search_start
    if interval <= 0:
        raise ValueError(f"Search window must be positive, got [{search_start}, {search_end}]")

    attempts = 0
    while max_attempts is None or attempts < max_attempts:
        burn_time = optimal_transfer_time(origin_orbit, destination_orbit, search_start, search_end)
        if burn_time is not None:
            return burn_time
        logger.debug("No transfer window in [%.1f, %.1f]; sliding forward", search_start, search_end)
        search_start = search_end
        search_end += interval
        attempts += 1
    return None


def time_until_transfer_window(origin_orbit: KeplerOrbit, destination_orbit: KeplerOrbit,
                               now: float) -> Optional[float]:
    """
    Closed-form wait until the Hohmann phase angle between two orbits about
    the same body, assuming near-circular orbits.

    Phase is measured along the origin's direction of travel. Each absolute
    phase angle advances at s*n (direction sign times mean motion), so the
    relative phase psi = s_o*(theta_d - theta_o) changes at

        rate = s_o*s_d*n_d - n_o

    The transfer takes T = pi*sqrt(a_t^3/mu) with a_t = (a_o + a_d)/2, during
    which the destination sweeps s_o*s_d*n_d*T of relative phase, so the
    departure phase must be

        psi* = pi - s_o*s_d*pi*((a_o + a_d) / (2*a_d))^1.5

    The wait is the time for psi to reach psi* moving in the direction of
    the rate. Orbits traversed in opposite directions need no special case.

    Returns:
        Seconds from now until the window, or None if the relative phase
        never changes.
    """
    a_o = origin_orbit.semi_major_axis
    a_d = destination_orbit.semi_major_axis
    sign = direction_sign(origin_orbit) * direction_sign(destination_orbit)

    optimal = clamp(PI - sign * PI * ((a_o + a_d) / (2.0 * a_d)) ** 1.5)
    current = clamp(direction_sign(origin_orbit)
                    * (absolute_phase_angle(destination_orbit, now)
                       - absolute_phase_angle(origin_orbit, now)))
    rate = sign * mean_motion(destination_orbit) - mean_motion(origin_orbit)

    if abs(rate) < 1e-15:
        return None
    if rate > 0:
        return clamp(optimal - current) / rate
    return clamp(current - optimal) / -rate


def synodic_period(origin_orbit: KeplerOrbit, destination_orbit: KeplerOrbit) -> float:
    """Time between successive transfer windows; infinite if the phase never changes."""
    sign = direction_sign(origin_orbit) * direction_sign(destination_orbit)
    rate = abs(sign * mean_motion(destination_orbit) - mean_motion(origin_orbit))
    if rate < 1e-15:
        return float('inf')
    return TAU / rate
