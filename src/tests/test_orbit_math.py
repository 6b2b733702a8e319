"""
===============================================================================
ASTROGATOR - Orbit Math Test Suite
===============================================================================
Tests for the stateless orbit math: angle wrapping, phase angles, vis-viva
helpers, escape geometry, node crossings, plane matching, the bisection
root-finder, and the transfer-window timing in both travel directions.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from astrogator.core.constants import TAU, PI, HALF_PI, DEG2RAD
from astrogator.dynamics.orbit import CelestialBody, KeplerOrbit
from astrogator.dynamics import orbit_math as om


# =============================================================================
# Fixtures
# =============================================================================

MU = 3.5316e12          # m^3/s^2
R_INNER = 12.0e6        # m
R_OUTER = 47.0e6        # m


@pytest.fixture
def planet():
    """Airless planet without a parent and with an infinite SOI."""
    return CelestialBody('Planet', MU, 600000.0, has_solid_surface=False)


def circular(planet, radius, inclination=0.0, lan=0.0, mean_anomaly=0.0):
    return KeplerOrbit(radius, 0.0, inclination, lan, 0.0,
                       mean_anomaly_at_epoch=mean_anomaly, reference_body=planet)


def two_branch_wait(origin, destination, now):
    """
    Reference wait time with separate prograde and retrograde branches,
    the textbook two-case form of the transfer window.
    """
    a_o = origin.semi_major_axis
    a_d = destination.semi_major_axis
    period_o = origin.period
    period_d = destination.period
    hohmann = om.clamp(PI * (1.0 - ((a_o + a_d) / (2.0 * a_d)) ** 1.5))
    current = om.clamp(om.absolute_phase_angle(destination, now)
                       - om.absolute_phase_angle(origin, now))
    if om.relative_inclination(origin, destination) > HALF_PI:
        optimal = TAU - hohmann
        angle = om.clamp((TAU - current) - optimal)
        rate = TAU / period_d + TAU / period_o
    else:
        angle = current - hohmann
        rate = TAU / period_d - TAU / period_o
        if angle > 0 and rate > 0:
            angle -= TAU
        elif angle < 0 and rate < 0:
            angle += TAU
    return abs(angle / rate)


# =============================================================================
# Test: Angle wrapping
# =============================================================================

class TestClamp:
    """clamp() wraps into [min, min + tau) by whole turns."""

    @pytest.mark.parametrize("angle", [
        0.0, 1.0, TAU, -TAU, -3.0 * TAU, 7.5, -7.5, 1e6, -1e6, -1e-17, TAU - 1e-12,
    ])
    def test_range_and_equivalence(self, angle):
        result = om.clamp(angle)
        assert 0.0 <= result < TAU, f"clamp({angle}) = {result} outside [0, tau)"
        assert_allclose(np.sin(result), np.sin(angle), atol=1e-9)
        assert_allclose(np.cos(result), np.cos(angle), atol=1e-9)

    def test_randomized_inputs(self):
        rng = np.random.default_rng(626)
        for angle in rng.uniform(-100.0 * TAU, 100.0 * TAU, 500):
            result = om.clamp(angle)
            assert 0.0 <= result < TAU
            assert_allclose(np.sin(result), np.sin(angle), atol=1e-9)
            assert_allclose(np.cos(result), np.cos(angle), atol=1e-9)

    @pytest.mark.parametrize("angle", [-PI, PI, 0.5, -4.0, 10.0, -1e-17])
    def test_shifted_window(self, angle):
        result = om.clamp(angle, -PI)
        assert -PI <= result < PI
        assert_allclose(np.cos(result), np.cos(angle), atol=1e-9)

    @pytest.mark.parametrize("inclination, expected", [
        (0.0, 0.0), (PI, 0.0), (HALF_PI, HALF_PI), (0.75 * PI, 0.25 * PI), (0.3, 0.3),
    ])
    def test_angle_from_equatorial(self, inclination, expected):
        assert_allclose(om.angle_from_equatorial(inclination), expected, atol=1e-12)


# =============================================================================
# Test: Phase angles
# =============================================================================

class TestPhaseAngles:

    def test_prograde_phase_adds_elements(self, planet):
        orbit = KeplerOrbit(R_INNER, 0.0, 0.0, 0.5, 0.2, reference_body=planet)
        assert_allclose(om.absolute_phase_angle(orbit, 0.0), 0.7, atol=1e-9)

    def test_retrograde_phase_subtracts_argument_and_anomaly(self, planet):
        orbit = KeplerOrbit(R_INNER, 0.0, PI, 0.5, 0.2, mean_anomaly_at_epoch=0.1,
                            reference_body=planet)
        assert_allclose(om.absolute_phase_angle(orbit, 0.0), 0.2, atol=1e-9)

    def test_retrograde_phase_matches_position(self, planet):
        """For an equatorial retrograde orbit the phase is the polar angle of r."""
        orbit = KeplerOrbit(R_INNER, 0.0, PI, 0.0, 0.0, mean_anomaly_at_epoch=1.0,
                            reference_body=planet)
        r, _ = orbit.state_vectors_at(500.0)
        assert_allclose(om.absolute_phase_angle(orbit, 500.0),
                        om.clamp(np.arctan2(r[1], r[0])), atol=1e-9)

    @pytest.mark.parametrize("inclination", [0.1, 2.8])
    def test_radius_at_phase_angle_inverts_phase(self, planet, inclination):
        orbit = KeplerOrbit(20e6, 0.3, inclination, 1.1, 0.7, reference_body=planet)
        for t in (0.0, 3000.0, 17000.0):
            phase = om.absolute_phase_angle(orbit, t)
            assert_allclose(om.radius_at_absolute_phase_angle(orbit, phase),
                            orbit.radius_at(t), rtol=1e-9)

    def test_arrival_difference_range(self, planet):
        inner = circular(planet, R_INNER)
        outer = circular(planet, R_OUTER, mean_anomaly=2.0)
        for t in np.linspace(0.0, 4e5, 25):
            diff = om.arrival_phase_angle_difference(inner, outer, t)
            assert -PI <= diff < PI


# =============================================================================
# Test: Vis-viva helpers
# =============================================================================

class TestVisViva:

    @pytest.mark.parametrize("radius", [7.0e5, 1.2e7, 4.7e7])
    def test_circular_speeds_agree(self, planet, radius):
        v_circ = np.sqrt(MU / radius)
        assert_allclose(om.speed_at_periapsis(planet, radius, radius), v_circ, rtol=1e-12)
        assert_allclose(om.speed_at_apoapsis(planet, radius, radius), v_circ, rtol=1e-12)

    def test_orbital_period_matches_kepler(self, planet):
        orbit = KeplerOrbit(0.5 * (R_INNER + R_OUTER), 0.5, reference_body=planet)
        assert_allclose(om.orbital_period(planet, R_OUTER, R_INNER), orbit.period, rtol=1e-12)

    def test_orbital_period_rejects_bad_radii(self, planet):
        with pytest.raises(ValueError):
            om.orbital_period(planet, -5.0, -5.0)

    def test_burn_to_same_apoapsis_is_zero(self, planet):
        orbit = circular(planet, R_INNER)
        assert abs(om.burn_to_new_ap(orbit, 100.0, R_INNER)) < 1e-6

    def test_burn_to_new_ap_is_hohmann_first_burn(self, planet):
        orbit = circular(planet, R_INNER)
        expected = np.sqrt(MU / R_INNER) * (np.sqrt(2.0 * R_OUTER / (R_INNER + R_OUTER)) - 1.0)
        assert_allclose(om.burn_to_new_ap(orbit, 0.0, R_OUTER), expected, rtol=1e-9)

    def test_burn_to_new_pe_is_retrograde(self, planet):
        orbit = circular(planet, R_OUTER)
        assert om.burn_to_new_pe(orbit, 0.0, R_INNER) < 0

    @pytest.mark.parametrize("depart_time", [0.0, 12345.0, 2.5e5])
    def test_transfer_travel_time_circular_coplanar(self, planet, depart_time):
        inner = circular(planet, R_INNER)
        outer = circular(planet, R_OUTER, mean_anomaly=1.0)
        expected = 0.5 * TAU * np.sqrt((0.5 * (R_INNER + R_OUTER)) ** 3 / MU)
        assert_allclose(om.transfer_travel_time(inner, outer, depart_time), expected, rtol=1e-9)


# =============================================================================
# Test: Escape geometry
# =============================================================================

class TestEscape:

    def test_exit_soi_converges_to_escape(self):
        body = CelestialBody('Moon', 6.5e10, 2e5, sphere_of_influence=1e15)
        unbounded = CelestialBody('Moon', 6.5e10, 2e5)
        assert_allclose(om.speed_to_exit_soi(body, 2.5e5, 800.0),
                        om.speed_to_escape(unbounded, 2.5e5, 800.0), rtol=1e-6)
        assert_allclose(om.speed_to_exit_soi(unbounded, 2.5e5, 800.0),
                        om.speed_to_escape(unbounded, 2.5e5, 800.0), rtol=1e-12)

    def test_finite_soi_needs_less_speed(self):
        body = CelestialBody('Moon', 6.5e10, 2e5, sphere_of_influence=2.4e6)
        assert om.speed_to_exit_soi(body, 2.5e5, 800.0) < om.speed_to_escape(body, 2.5e5, 800.0)

    def test_ejection_angle_limits(self, planet):
        # Barely escaping: parabola-like, burn a quarter turn past midnight
        assert_allclose(om.ejection_angle(planet, 7e5, 1e-3), HALF_PI, atol=1e-3)
        # Very fast: nearly straight line, burn half a turn from midnight
        assert_allclose(om.ejection_angle(planet, 7e5, 1e7), PI, atol=1e-2)

    def test_ejection_angle_needs_speed(self, planet):
        with pytest.raises(ValueError):
            om.ejection_angle(planet, 7e5, 0.0)

    def test_burn_to_escape_positive(self, planet):
        orbit = circular(planet, 7e5)
        assert om.burn_to_escape(planet, orbit, 900.0, 0.0) > 0


# =============================================================================
# Test: Anomalies and node crossings
# =============================================================================

class TestNodes:

    def test_node_anomalies_equatorial_vs_inclined(self, planet):
        lan = 1.0
        orbit = circular(planet, R_INNER)
        target = circular(planet, R_OUTER, inclination=10.0 * DEG2RAD, lan=lan)
        assert_allclose(om.ascending_node_true_anomaly(orbit, target), om.clamp(lan + PI), atol=1e-9)
        assert_allclose(om.descending_node_true_anomaly(orbit, target), lan, atol=1e-9)

    @pytest.mark.parametrize("true_anomaly", [0.3, 1.5, PI, 4.0, 6.0])
    def test_time_of_true_anomaly_reaches_anomaly(self, planet, true_anomaly):
        orbit = KeplerOrbit(20e6, 0.3, 0.2, 0.4, 0.9, mean_anomaly_at_epoch=2.0,
                            reference_body=planet)
        t = om.time_of_true_anomaly(orbit, true_anomaly, 1000.0)
        assert 1000.0 <= t < 1000.0 + orbit.period
        assert_allclose(np.cos(orbit.true_anomaly_at(t)), np.cos(true_anomaly), atol=1e-7)
        assert_allclose(np.sin(orbit.true_anomaly_at(t)), np.sin(true_anomaly), atol=1e-7)

    def test_time_of_current_anomaly_is_now(self, planet):
        orbit = circular(planet, R_INNER, mean_anomaly=1.0)
        t = om.time_of_true_anomaly(orbit, orbit.true_anomaly_at(500.0), 500.0)
        assert_allclose(t, 500.0, atol=1e-3)

    def test_hyperbolic_unreachable_anomaly(self, planet):
        orbit = KeplerOrbit(-5e6, 1.5, reference_body=planet)
        beyond = orbit.true_anomaly_limit + 0.1
        assert om.eccentric_anomaly_at_true_anomaly(orbit, beyond) is None
        assert om.time_of_true_anomaly(orbit, beyond, 0.0) is None

    def test_hyperbolic_anomaly_is_signed(self, planet):
        orbit = KeplerOrbit(-5e6, 1.5, reference_body=planet)
        assert om.eccentric_anomaly_at_true_anomaly(orbit, 0.5) > 0
        assert om.eccentric_anomaly_at_true_anomaly(orbit, -0.5) < 0

    def test_plane_change_picks_sooner_node(self, planet):
        orbit = circular(planet, R_INNER)
        target = circular(planet, R_OUTER, inclination=0.2, lan=1.0)
        node_time, ascending = om.time_of_plane_change(orbit, target, 0.0)
        other = (om.time_of_descending_node if ascending else om.time_of_ascending_node)(
            orbit, target, 0.0)
        assert 0.0 < node_time < other


# =============================================================================
# Test: Plane matching
# =============================================================================

class TestPlaneMatching:

    def test_zero_for_identical_planes(self, planet):
        orbit = KeplerOrbit(20e6, 0.1, 0.3, 1.0, 0.5, reference_body=planet)
        target = KeplerOrbit(40e6, 0.05, 0.3, 1.0, 0.5, reference_body=planet)
        for t in (0.0, 5000.0, 40000.0):
            assert om.plane_change_delta_v(orbit, target, t) < 1e-6

    def test_magnitude_at_node(self, planet):
        delta_i = 10.0 * DEG2RAD
        orbit = circular(planet, R_INNER)
        target = circular(planet, R_OUTER, inclination=delta_i, lan=0.7)
        node_time, _ = om.time_of_plane_change(orbit, target, 0.0)
        v = np.sqrt(MU / R_INNER)
        assert_allclose(om.plane_change_delta_v(orbit, target, node_time),
                        2.0 * v * np.sin(0.5 * delta_i), rtol=1e-6)
        radial, normal, prograde = om.delta_v_to_match_planes(orbit, target, node_time)
        assert abs(radial) < 1e-6
        assert prograde < 0
        assert abs(normal) > 0


# =============================================================================
# Test: Root finding and window search
# =============================================================================

class TestFindRoot:

    def test_linear_root(self):
        root = om.find_root(lambda x: x - 5.0, 0.0, 10.0)
        assert root is not None
        assert abs(root - 5.0) < 1e-4

    def test_no_real_root(self):
        calls = []

        def f(x):
            calls.append(x)
            return x * x + 1.0

        assert om.find_root(f, -1.0, 1.0) is None
        assert len(calls) == 2, "Same-sign endpoints must return without bisecting"

    def test_rejects_wraparound(self):
        """A jump from +pi to -pi changes sign but is not a zero."""
        assert om.find_root(lambda x: om.clamp(x, -PI), 2.0, 4.0) is None

    def test_burn_time_search_finds_window(self, planet):
        inner = circular(planet, R_INNER)
        outer = circular(planet, R_OUTER, mean_anomaly=2.0)
        synodic = om.synodic_period(inner, outer)
        t = om.burn_time_search(inner, outer, 0.0, 0.1 * synodic)
        assert t is not None
        assert abs(om.arrival_phase_angle_difference(inner, outer, t)) < 1e-3

    def test_burn_time_search_attempt_cap(self, planet):
        inner = circular(planet, R_INNER)
        outer = circular(planet, R_OUTER, mean_anomaly=2.0)
        t = om.burn_time_search(inner, outer, 0.0, 0.1 * om.synodic_period(inner, outer))
        assert om.burn_time_search(inner, outer, t + 100.0, t + 200.0, max_attempts=1) is None

    def test_burn_time_search_rejects_empty_window(self, planet):
        inner = circular(planet, R_INNER)
        with pytest.raises(ValueError):
            om.burn_time_search(inner, inner, 10.0, 10.0)


# =============================================================================
# Test: Transfer window timing
# =============================================================================

class TestTransferWindow:
    """The unified signed-rate formula against the two-branch formula."""

    @pytest.mark.parametrize("now", [0.0, 5.0e4, 3.3e5])
    @pytest.mark.parametrize("swap", [False, True])
    def test_matches_two_branch_prograde(self, planet, now, swap):
        origin = circular(planet, R_INNER, mean_anomaly=0.4)
        destination = circular(planet, R_OUTER, mean_anomaly=2.5)
        if swap:
            origin, destination = destination, origin
        assert_allclose(om.time_until_transfer_window(origin, destination, now),
                        two_branch_wait(origin, destination, now), rtol=1e-9)

    @pytest.mark.parametrize("now", [0.0, 5.0e4, 3.3e5])
    def test_matches_two_branch_retrograde_origin(self, planet, now):
        origin = circular(planet, R_INNER, inclination=PI, mean_anomaly=0.4)
        destination = circular(planet, R_OUTER, mean_anomaly=2.5)
        assert_allclose(om.time_until_transfer_window(origin, destination, now),
                        two_branch_wait(origin, destination, now), rtol=1e-9)

    @pytest.mark.parametrize("origin_inc, dest_inc", [
        (0.0, 0.0), (PI, 0.0), (0.0, PI), (PI, PI),
    ])
    @pytest.mark.parametrize("swap", [False, True])
    def test_window_gives_encounter(self, planet, origin_inc, dest_inc, swap):
        """Leaving at the window puts the destination at the arrival point."""
        origin = circular(planet, R_INNER, inclination=origin_inc, mean_anomaly=0.4)
        destination = circular(planet, R_OUTER, inclination=dest_inc, mean_anomaly=2.5)
        if swap:
            origin, destination = destination, origin
        now = 1000.0
        wait = om.time_until_transfer_window(origin, destination, now)
        assert wait >= 0
        assert wait < om.synodic_period(origin, destination) + 1e-6
        assert abs(om.arrival_phase_angle_difference(origin, destination, now + wait)) < 1e-6

    def test_identical_rates_have_no_window(self, planet):
        a = circular(planet, R_INNER)
        b = circular(planet, R_INNER, mean_anomaly=1.0)
        assert om.time_until_transfer_window(a, b, 0.0) is None
        assert om.synodic_period(a, b) == float('inf')
