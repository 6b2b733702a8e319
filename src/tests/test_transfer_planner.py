"""
===============================================================================
ASTROGATOR - Transfer Planner Test Suite
===============================================================================
Tests for ejection and plane-change burn generation:

    - Hohmann transfers between two moons of the same planet
    - Recursive fold-in of an outer transfer into an SOI escape
    - Return-to-parent, capture and unreachable-destination cases
    - Plane-change burns from a previewed trajectory
    - Committing a plan's burns to a maneuver host
===============================================================================
"""

import sys
import os
import logging

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from astrogator.core.config import AstrogatorConfig
from astrogator.core.constants import PI, TERRA_MU, DESTINATION_SOI_FRACTION
from astrogator.dynamics.orbit import CelestialBody, KeplerOrbit, Vessel, VesselSituation
from astrogator.dynamics.orbit_math import arrival_phase_angle_difference, synodic_period
from astrogator.guidance.burn import BurnPlan
from astrogator.guidance.transfer_planner import TransferPlan, TransferPlanner
from astrogator.simulation.host import (
    InMemoryManeuverHost, PatchedConicPreviewer, StarSystem,
)
from astrogator.simulation.sample_system import build_sample_system


# =============================================================================
# Fixtures
# =============================================================================

R_INNER = 12.0e6
R_OUTER = 47.0e6
MOON_SOI = 2.2e6


def build_twin_moon_system(universal_time=0.0, outer_inclination=0.0):
    """Gas giant with two circular moons and nothing else."""
    giant = CelestialBody('Giant', TERRA_MU, 600000.0, has_solid_surface=False)
    giant.add_satellite(CelestialBody(
        'Inner', 6.5e10, 200000.0, MOON_SOI,
        orbit=KeplerOrbit(R_INNER, 0.0, mean_anomaly_at_epoch=0.3, reference_body=giant)))
    giant.add_satellite(CelestialBody(
        'Outer', 1.8e9, 60000.0, MOON_SOI,
        orbit=KeplerOrbit(R_OUTER, 0.0, outer_inclination, mean_anomaly_at_epoch=2.1,
                          reference_body=giant)))
    return StarSystem(giant, universal_time=universal_time)


@pytest.fixture
def config():
    return AstrogatorConfig()


@pytest.fixture
def system():
    return build_sample_system()


@pytest.fixture
def planner(config, system):
    return TransferPlanner(config, system.now, PatchedConicPreviewer())


def vessel_around(body, radius, name='Probe', **elements):
    return Vessel(name, KeplerOrbit(radius, 0.0, reference_body=body, **elements))


# =============================================================================
# Test: Hohmann transfers at a shared reference body
# =============================================================================

class TestHohmann:

    @pytest.mark.parametrize("now", [0.0, 123456.0])
    def test_inner_to_outer_moon(self, config, now):
        system = build_twin_moon_system(now)
        inner, outer = system.find('Inner'), system.find('Outer')
        planner = TransferPlanner(config, system.now)
        plan = TransferPlan(inner, outer)

        burn = planner.calculate_ejection_burn(plan)

        assert burn is not None
        assert plan.transfer_parent is system.root
        assert plan.transfer_destination is outer
        assert not plan.retrograde
        synodic = synodic_period(inner.orbit, outer.orbit)
        assert now < burn.at_time < now + 1.1 * synodic
        assert abs(arrival_phase_angle_difference(inner.orbit, outer.orbit, burn.at_time)) < 1e-3

        # Raise apoapsis to the outer orbit minus the aim offset
        r2 = R_OUTER - DESTINATION_SOI_FRACTION * MOON_SOI
        expected = np.sqrt(TERRA_MU / R_INNER) * (np.sqrt(2.0 * r2 / (R_INNER + r2)) - 1.0)
        assert_allclose(burn.prograde, expected, rtol=1e-9)
        assert burn.normal == 0.0 and burn.radial == 0.0

    def test_outer_to_inner_moon(self, config):
        system = build_twin_moon_system()
        planner = TransferPlanner(config, system.now)
        plan = TransferPlan(system.find('Outer'), system.find('Inner'))
        burn = planner.calculate_ejection_burn(plan)
        assert burn is not None
        assert burn.prograde < 0

    def test_retrograde_destination_flagged(self, config):
        system = build_twin_moon_system(outer_inclination=PI)
        planner = TransferPlanner(config, system.now)
        plan = TransferPlan(system.find('Inner'), system.find('Outer'))
        assert planner.calculate_ejection_burn(plan) is not None
        assert plan.retrograde

    def test_vessel_to_moon(self, planner, system):
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        burn = planner.calculate_ejection_burn(plan)
        assert burn is not None
        assert burn.prograde > 0
        assert burn.at_time > system.now()
        assert plan.transfer_parent is system.find('Terra')


# =============================================================================
# Test: Recursive fold-in
# =============================================================================

class TestFoldIn:

    def test_vessel_to_other_planet(self, planner, system, caplog):
        plan = TransferPlan(system.find('Explorer'), system.find('Ares'))
        with caplog.at_level(logging.WARNING, logger='astrogator.guidance.transfer_planner'):
            burn = planner.calculate_ejection_burn(plan)

        assert burn is not None
        assert burn.prograde > 0
        assert burn.at_time > system.now()
        assert plan.transfer_parent is system.root
        assert plan.transfer_destination is system.find('Ares')
        assert 'did not converge' not in caplog.text

    def test_non_convergence_is_logged(self, system, caplog):
        config = AstrogatorConfig(ejection_iterations=1, ejection_time_tolerance=1e-12)
        planner = TransferPlanner(config, system.now)
        plan = TransferPlan(system.find('Explorer'), system.find('Ares'))
        with caplog.at_level(logging.WARNING, logger='astrogator.guidance.transfer_planner'):
            burn = planner.calculate_ejection_burn(plan)
        assert burn is not None
        assert 'did not converge' in caplog.text

    def test_vessel_around_moon_to_planet(self, planner, system):
        selene = system.find('Selene')
        plan = TransferPlan(vessel_around(selene, 300000.0), system.find('Terra'))
        burn = planner.calculate_ejection_burn(plan)
        assert burn is not None
        assert burn.prograde > 0, "Escaping the moon needs a prograde burn"
        assert burn.at_time >= system.now()
        assert plan.transfer_parent is None


# =============================================================================
# Test: Special cases
# =============================================================================

class TestSpecialCases:

    def test_return_to_parent(self, planner, system):
        plan = TransferPlan(system.find('Selene'), system.find('Terra'))
        burn = planner.calculate_ejection_burn(plan)
        assert burn is not None
        assert burn.prograde < 0
        assert burn.at_time >= system.now()

    def test_destination_inside_own_soi(self, planner, system):
        plan = TransferPlan(system.find('Terra'), system.find('Selene'))
        assert planner.calculate_ejection_burn(plan) is None

    def test_landed_origin(self, planner, system):
        terra = system.find('Terra')
        lander = Vessel('Lander', KeplerOrbit(700000.0, 0.0, reference_body=terra),
                        VesselSituation.LANDED)
        plan = TransferPlan(lander, system.find('Nyx'))
        assert planner.calculate_ejection_burn(plan) is None

    def test_capture_when_inbound(self, planner, system):
        terra = system.find('Terra')
        inbound = Vessel('Comet', KeplerOrbit(-5.0e6, 1.5, mean_anomaly_at_epoch=-2.0,
                                              reference_body=terra))
        plan = TransferPlan(inbound, terra)
        burn = planner.calculate_ejection_burn(plan)
        assert burn is not None
        assert burn.prograde < 0
        assert burn.at_time > system.now()
        # Burn lands exactly at periapsis
        assert abs(inbound.orbit.true_anomaly_at(burn.at_time)) < 1e-6

    def test_no_capture_when_outbound(self, planner, system):
        terra = system.find('Terra')
        outbound = Vessel('Comet', KeplerOrbit(-5.0e6, 1.5, mean_anomaly_at_epoch=2.0,
                                               reference_body=terra))
        assert planner.calculate_ejection_burn(TransferPlan(outbound, terra)) is None

    def test_hyperbolic_to_other_destination(self, planner, system):
        terra = system.find('Terra')
        inbound = Vessel('Comet', KeplerOrbit(-5.0e6, 1.5, mean_anomaly_at_epoch=-2.0,
                                              reference_body=terra))
        assert planner.calculate_ejection_burn(TransferPlan(inbound, system.find('Nyx'))) is None

    def test_destination_without_orbit(self, planner, system):
        plan = TransferPlan(system.find('Explorer'), system.root)
        assert planner.calculate_ejection_burn(plan) is None

    def test_stale_plane_change_dropped(self, planner, system):
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        plan.plane_change_burn = BurnPlan(system.now(), 0.0, normal=10.0)
        planner.calculate_ejection_burn(plan)
        assert plan.plane_change_burn is None

    def test_later_plane_change_kept(self, planner, system):
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        later = BurnPlan(1e12, 0.0, normal=10.0)
        plan.plane_change_burn = later
        planner.calculate_ejection_burn(plan)
        assert plan.plane_change_burn is later


# =============================================================================
# Test: Plane change
# =============================================================================

class TestPlaneChange:

    def test_inclined_moon(self, planner, system):
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        ejection = planner.calculate_ejection_burn(plan)
        plane = planner.calculate_plane_change_burn(plan)

        assert plane is not None
        assert plane.at_time > ejection.at_time
        assert plane.total_delta_v > planner.config.plane_change_threshold
        assert plan.total_delta_v == pytest.approx(ejection.total_delta_v + plane.total_delta_v)

    def test_coplanar_moon_needs_none(self, planner, system):
        plan = TransferPlan(system.find('Explorer'), system.find('Selene'))
        planner.calculate_ejection_burn(plan)
        assert planner.calculate_plane_change_burn(plan) is None

    def test_disabled_by_config(self, system):
        config = AstrogatorConfig(generate_plane_change_burns=False)
        planner = TransferPlanner(config, system.now, PatchedConicPreviewer())
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        planner.calculate_ejection_burn(plan)
        assert planner.calculate_plane_change_burn(plan) is None

    def test_needs_previewer(self, config, system):
        planner = TransferPlanner(config, system.now)
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        planner.calculate_ejection_burn(plan)
        assert planner.calculate_plane_change_burn(plan) is None

    def test_needs_ejection(self, planner, system):
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        assert planner.calculate_plane_change_burn(plan) is None

    def test_preview_is_revoked(self, config, system):
        previews = []

        class RecordingPreviewer(PatchedConicPreviewer):
            def preview(self, orbit, burn):
                result = super().preview(orbit, burn)
                previews.append(result)
                return result

        planner = TransferPlanner(config, system.now, RecordingPreviewer())
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        planner.calculate_ejection_burn(plan)
        planner.calculate_plane_change_burn(plan)
        assert len(previews) == 1
        assert previews[0].revoked


# =============================================================================
# Test: Committing maneuvers
# =============================================================================

class TestCreateManeuvers:

    @pytest.fixture
    def plan(self, system):
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        plan.ejection_burn = BurnPlan(100.0, 800.0)
        plan.plane_change_burn = BurnPlan(5000.0, -20.0, normal=150.0)
        return plan

    def test_commits_both_burns(self, plan, config):
        host = InMemoryManeuverHost()
        host.add_maneuver(BurnPlan(1.0, 1.0))
        assert plan.create_maneuvers(host, config) == 2
        assert host.maneuvers == [plan.ejection_burn, plan.plane_change_burn]

    def test_plane_change_disabled(self, plan):
        host = InMemoryManeuverHost()
        config = AstrogatorConfig(generate_plane_change_burns=False)
        assert plan.create_maneuvers(host, config) == 1
        assert host.maneuvers == [plan.ejection_burn]

    def test_missing_plane_change_computed_on_commit(self, planner, system):
        """Plane changes left out of the totals are still generated as maneuvers."""
        config = AstrogatorConfig(include_plane_change_delta_v=False)
        assert not config.plane_changes_enabled
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        planner.calculate_ejection_burn(plan)
        assert plan.plane_change_burn is None

        host = InMemoryManeuverHost()
        assert plan.create_maneuvers(host, config, planner) == 2
        assert plan.plane_change_burn is not None
        assert host.maneuvers == [plan.ejection_burn, plan.plane_change_burn]

    def test_no_plane_change_generated_when_disabled(self, planner, system):
        config = AstrogatorConfig(generate_plane_change_burns=False)
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        planner.calculate_ejection_burn(plan)

        host = InMemoryManeuverHost()
        assert plan.create_maneuvers(host, config, planner) == 1
        assert plan.plane_change_burn is None

    def test_delta_v_with_and_without_plane_change(self, plan):
        assert plan.delta_v(include_plane_change=False) == pytest.approx(800.0)
        assert plan.delta_v() == pytest.approx(800.0 + np.hypot(20.0, 150.0))
        assert plan.total_delta_v == plan.delta_v()

    def test_nothing_to_commit(self, system, config):
        host = InMemoryManeuverHost()
        host.add_maneuver(BurnPlan(1.0, 1.0))
        plan = TransferPlan(system.find('Explorer'), system.find('Nyx'))
        assert plan.create_maneuvers(host, config) == 0
        assert host.maneuvers == []
        assert plan.total_delta_v is None
