"""
===============================================================================
ASTROGATOR - Physical and Planning Constants
===============================================================================
Central repository for the constants used by the transfer planner. SI units
throughout (meters, seconds, kilograms, radians).

The sample-system block describes a small fictional star system used by the
command-line demo and the test suite. Its values are chosen to be stable for
patched-conic planning (moons well inside their planet's sphere of influence,
inner moon period much shorter than the outer moon's).
===============================================================================
"""

import numpy as np


# =============================================================================
# MATHEMATICAL CONSTANTS
# =============================================================================
PI = np.pi
TAU = 2.0 * np.pi
HALF_PI = 0.5 * np.pi
DEG2RAD = PI / 180.0

# =============================================================================
# FUNDAMENTAL PHYSICAL CONSTANTS
# =============================================================================
STANDARD_GRAVITY = 9.80665             # m/s^2, used by the rocket equation

# =============================================================================
# PLANNING THRESHOLDS
# =============================================================================
MAX_INCLINATION = TAU / 12.0           # rad from equatorial before planning is "too inaccurate"
PLANE_CHANGE_THRESHOLD = 0.05          # m/s, smaller plane changes are discarded
LOW_ORBIT_PADDING = 10000.0            # m above atmosphere / minimum safe distance
DESTINATION_SOI_FRACTION = 0.25        # aim this fraction of the target SOI off its orbit

# Bisection root-finder defaults
ROOT_EPSILON = 1e-4                    # s, final bracket width
ROOT_RANGE_EPSILON = 0.1               # rad, largest accepted |f(max) - f(min)|

# Ejection fixed-point iteration
EJECTION_ITERATIONS = 6                # upper bound on fold-in passes
EJECTION_TIME_TOLERANCE = 0.01         # s, converged when |dt| below this

# Scheduler
MIN_SECONDS_BETWEEN_LOADS = 5.0        # world seconds between same-origin reloads
BURN_POLL_INTERVAL = 1.0               # wall seconds between expiry polls

# Orbit snapshot comparison tolerances
SNAPSHOT_SMA_TOLERANCE = 1.0           # m
SNAPSHOT_ECC_TOLERANCE = 0.01
SNAPSHOT_INC_TOLERANCE = 0.1 * DEG2RAD  # rad
SNAPSHOT_LAN_TOLERANCE = 0.1 * DEG2RAD  # rad
SNAPSHOT_AOP_TOLERANCE = 0.5 * DEG2RAD  # rad

# Numerical tolerances
ECC_CIRCULAR_TOL = 1e-9                # below this an orbit is treated as circular
NODE_VECTOR_TOL = 1e-12                # below this an orbit is treated as equatorial
ANOMALY_WRAP_TOL = 1e-9               # rad, mean anomaly this close behind counts as reached

# =============================================================================
# SAMPLE SYSTEM: STAR
# =============================================================================
HELIOS_MU = 1.1723328e18               # Gravitational parameter (m^3/s^2)
HELIOS_RADIUS = 261600000.0            # Mean radius (m)

# =============================================================================
# SAMPLE SYSTEM: INNER PLANET (airless, no moons)
# =============================================================================
VULCAN_MU = 1.6860938e11               # m^3/s^2
VULCAN_RADIUS = 250000.0               # m
VULCAN_SOI = 9646663.0                 # m
VULCAN_SMA = 5263138304.0              # m
VULCAN_ECC = 0.2
VULCAN_INC = 7.0 * DEG2RAD             # rad
VULCAN_LAN = 70.0 * DEG2RAD            # rad
VULCAN_AOP = 15.0 * DEG2RAD            # rad
VULCAN_MIN_ALTITUDE = 7000.0           # m, highest terrain

# =============================================================================
# SAMPLE SYSTEM: HOME PLANET
# =============================================================================
TERRA_MU = 3.5316e12                   # m^3/s^2
TERRA_RADIUS = 600000.0                # m
TERRA_SOI = 84159286.0                 # m
TERRA_SMA = 13599840256.0              # m
TERRA_ATMOSPHERE_DEPTH = 70000.0       # m

# Inner moon
SELENE_MU = 6.5138398e10               # m^3/s^2
SELENE_RADIUS = 200000.0               # m
SELENE_SOI = 2429559.1                 # m
SELENE_SMA = 12000000.0                # m
SELENE_MIN_ALTITUDE = 7100.0           # m

# Outer moon
NYX_MU = 1.7658e9                      # m^3/s^2
NYX_RADIUS = 60000.0                   # m
NYX_SOI = 2247428.4                    # m
NYX_SMA = 47000000.0                   # m
NYX_INC = 6.0 * DEG2RAD                # rad
NYX_LAN = 78.0 * DEG2RAD               # rad
NYX_AOP = 38.0 * DEG2RAD               # rad
NYX_MIN_ALTITUDE = 5800.0              # m

# =============================================================================
# SAMPLE SYSTEM: OUTER PLANET
# =============================================================================
ARES_MU = 8.1717302e12                 # m^3/s^2
ARES_RADIUS = 700000.0                 # m
ARES_SOI = 85109365.0                  # m
ARES_SMA = 20726155264.0               # m
ARES_ECC = 0.051
ARES_INC = 0.06 * DEG2RAD              # rad
ARES_LAN = 135.5 * DEG2RAD             # rad
ARES_ATMOSPHERE_DEPTH = 90000.0        # m

# Moon of the outer planet
DEIMOS_MU = 1.8568369e10               # m^3/s^2
DEIMOS_RADIUS = 320000.0               # m
DEIMOS_SOI = 10856518.0                # m
DEIMOS_SMA = 31500000.0                # m
DEIMOS_MIN_ALTITUDE = 6500.0           # m

# =============================================================================
# SAMPLE SYSTEM: TRACKED ASTEROID
# =============================================================================
ASTEROID_SMA = 16500000000.0           # m
ASTEROID_ECC = 0.08
ASTEROID_INC = 1.5 * DEG2RAD           # rad
ASTEROID_LAN = 210.0 * DEG2RAD         # rad
ASTEROID_AOP = 40.0 * DEG2RAD          # rad
