"""
===============================================================================
ASTROGATOR - Sample Star System
===============================================================================
A small fictional system for the command-line demo and the test suite:

    Helios (star)
    |-- Vulcan        airless inner planet, eccentric and inclined
    |-- Terra         home planet with an atmosphere
    |   |-- Selene    inner moon
    |   `-- Nyx       outer moon, slightly inclined
    |-- 2031 QX       tracked asteroid between Terra and Ares
    `-- Ares          outer planet with an atmosphere
        `-- Deimos    its only moon

Also provides a vessel in low equatorial orbit around Terra. Physical values
live in core.constants.
===============================================================================
"""

from astrogator.core.constants import (
    HELIOS_MU, HELIOS_RADIUS,
    VULCAN_MU, VULCAN_RADIUS, VULCAN_SOI, VULCAN_SMA, VULCAN_ECC, VULCAN_INC,
    VULCAN_LAN, VULCAN_AOP, VULCAN_MIN_ALTITUDE,
    TERRA_MU, TERRA_RADIUS, TERRA_SOI, TERRA_SMA, TERRA_ATMOSPHERE_DEPTH,
    SELENE_MU, SELENE_RADIUS, SELENE_SOI, SELENE_SMA, SELENE_MIN_ALTITUDE,
    NYX_MU, NYX_RADIUS, NYX_SOI, NYX_SMA, NYX_INC, NYX_LAN, NYX_AOP, NYX_MIN_ALTITUDE,
    ARES_MU, ARES_RADIUS, ARES_SOI, ARES_SMA, ARES_ECC, ARES_INC, ARES_LAN,
    ARES_ATMOSPHERE_DEPTH,
    DEIMOS_MU, DEIMOS_RADIUS, DEIMOS_SOI, DEIMOS_SMA, DEIMOS_MIN_ALTITUDE,
    ASTEROID_SMA, ASTEROID_ECC, ASTEROID_INC, ASTEROID_LAN, ASTEROID_AOP,
)
from astrogator.dynamics.orbit import CelestialBody, KeplerOrbit, Vessel, VesselSituation
from astrogator.simulation.host import StarSystem

LOW_TERRA_ORBIT_RADIUS = 700000.0      # m, parking orbit of the sample vessel


def _attach(parent: CelestialBody, body: CelestialBody) -> CelestialBody:
    return parent.add_satellite(body)


def build_sample_system(universal_time: float = 0.0) -> StarSystem:
    """Build the Helios system with one vessel orbiting Terra."""
    helios = CelestialBody('Helios', HELIOS_MU, HELIOS_RADIUS, has_solid_surface=False)

    _attach(helios, CelestialBody(
        'Vulcan', VULCAN_MU, VULCAN_RADIUS, VULCAN_SOI,
        orbit=KeplerOrbit(VULCAN_SMA, VULCAN_ECC, VULCAN_INC, VULCAN_LAN, VULCAN_AOP,
                          mean_anomaly_at_epoch=3.14, reference_body=helios),
        min_orbital_altitude=VULCAN_MIN_ALTITUDE,
    ))

    terra = _attach(helios, CelestialBody(
        'Terra', TERRA_MU, TERRA_RADIUS, TERRA_SOI,
        orbit=KeplerOrbit(TERRA_SMA, 0.0, mean_anomaly_at_epoch=3.14, reference_body=helios),
        atmosphere_depth=TERRA_ATMOSPHERE_DEPTH,
    ))
    _attach(terra, CelestialBody(
        'Selene', SELENE_MU, SELENE_RADIUS, SELENE_SOI,
        orbit=KeplerOrbit(SELENE_SMA, 0.0, mean_anomaly_at_epoch=1.7, reference_body=terra),
        min_orbital_altitude=SELENE_MIN_ALTITUDE,
    ))
    _attach(terra, CelestialBody(
        'Nyx', NYX_MU, NYX_RADIUS, NYX_SOI,
        orbit=KeplerOrbit(NYX_SMA, 0.0, NYX_INC, NYX_LAN, NYX_AOP,
                          mean_anomaly_at_epoch=0.9, reference_body=terra),
        min_orbital_altitude=NYX_MIN_ALTITUDE,
    ))

    ares = _attach(helios, CelestialBody(
        'Ares', ARES_MU, ARES_RADIUS, ARES_SOI,
        orbit=KeplerOrbit(ARES_SMA, ARES_ECC, ARES_INC, ARES_LAN, 0.0,
                          mean_anomaly_at_epoch=0.1, reference_body=helios),
        atmosphere_depth=ARES_ATMOSPHERE_DEPTH,
    ))
    _attach(ares, CelestialBody(
        'Deimos', DEIMOS_MU, DEIMOS_RADIUS, DEIMOS_SOI,
        orbit=KeplerOrbit(DEIMOS_SMA, 0.0, mean_anomaly_at_epoch=0.9, reference_body=ares),
        min_orbital_altitude=DEIMOS_MIN_ALTITUDE,
    ))

    asteroid = Vessel(
        '2031 QX',
        KeplerOrbit(ASTEROID_SMA, ASTEROID_ECC, ASTEROID_INC, ASTEROID_LAN, ASTEROID_AOP,
                    mean_anomaly_at_epoch=2.2, reference_body=helios),
        is_space_object=True,
    )

    explorer = Vessel(
        'Explorer',
        KeplerOrbit(LOW_TERRA_ORBIT_RADIUS, 0.0, reference_body=terra),
        VesselSituation.ORBITING,
    )

    return StarSystem(helios, space_objects=[asteroid], vessels=[explorer],
                      universal_time=universal_time)
