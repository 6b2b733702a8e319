"""
===============================================================================
ASTROGATOR - Keplerian Orbits and Body Hierarchy
===============================================================================
Two-body orbit model and the tree of bodies the planner walks.

A KeplerOrbit is a read-only snapshot of classical elements about a reference
body. It propagates analytically (Kepler's equation solved with Newton's
method) and produces inertial state vectors relative to the reference body.
All orbits in a system share the same inertial axes, so the state of a moon
relative to the star is the sum of the moon's and its planet's vectors.

Conventions:
    - Elliptic orbits: a > 0, 0 <= e < 1, true anomaly in [0, 2*pi)
    - Hyperbolic orbits: a < 0, e > 1, true anomaly signed in
      (-nu_inf, nu_inf); negative means inbound (before periapsis)
    - Parabolic orbits (e == 1) are not supported

CelestialBody and Vessel form the hierarchy. A body's parent is the reference
body of its orbit; the root star has no orbit. Vessels have no sphere of
influence and never have satellites.
===============================================================================
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional, Tuple, Union

import numpy as np
from scipy.optimize import newton

from astrogator.core.constants import (
    TAU, PI, LOW_ORBIT_PADDING, ECC_CIRCULAR_TOL, NODE_VECTOR_TOL,
    SNAPSHOT_SMA_TOLERANCE, SNAPSHOT_ECC_TOLERANCE, SNAPSHOT_INC_TOLERANCE,
    SNAPSHOT_LAN_TOLERANCE, SNAPSHOT_AOP_TOLERANCE,
)

logger = logging.getLogger(__name__)


def perifocal_to_inertial(lan: float, inc: float, aop: float) -> np.ndarray:
    """
    Rotation matrix from the perifocal (PQW) frame to the inertial frame.

        R = Rz(LAN) * Rx(i) * Rz(omega)

    Columns are the periapsis direction P, the in-plane normal Q and the
    orbit normal W.
    """
    cos_O, sin_O = np.cos(lan), np.sin(lan)
    cos_i, sin_i = np.cos(inc), np.sin(inc)
    cos_w, sin_w = np.cos(aop), np.sin(aop)

    return np.array([
        [cos_O * cos_w - sin_O * sin_w * cos_i,
         -cos_O * sin_w - sin_O * cos_w * cos_i,
         sin_O * sin_i],
        [sin_O * cos_w + cos_O * sin_w * cos_i,
         -sin_O * sin_w + cos_O * cos_w * cos_i,
         -cos_O * sin_i],
        [sin_w * sin_i,
         cos_w * sin_i,
         cos_i],
    ], dtype=np.float64)


# =============================================================================
# KEPLER ORBIT
# =============================================================================

@dataclass(frozen=True)
class KeplerOrbit:
    """
    Classical orbital elements about a reference body.

    Attributes:
        semi_major_axis: a (m), negative for hyperbolic orbits
        eccentricity: e
        inclination: i (rad), in [0, pi]
        lan: Longitude of the ascending node (rad)
        argument_of_periapsis: omega (rad)
        mean_anomaly_at_epoch: M0 (rad)
        epoch: Time at which M0 holds (s)
        reference_body: Body at the focus
    """
    semi_major_axis: float
    eccentricity: float
    inclination: float = 0.0
    lan: float = 0.0
    argument_of_periapsis: float = 0.0
    mean_anomaly_at_epoch: float = 0.0
    epoch: float = 0.0
    reference_body: Optional['CelestialBody'] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        e = self.eccentricity
        a = self.semi_major_axis
        if e < 0:
            raise ValueError(f"Eccentricity must be non-negative, got {e}")
        if abs(e - 1.0) < 1e-12:
            raise ValueError("Parabolic orbits (e == 1) are not supported")
        if e < 1.0 and a <= 0:
            raise ValueError(f"Elliptic orbit needs a > 0, got a = {a:.4e} m")
        if e > 1.0 and a >= 0:
            raise ValueError(f"Hyperbolic orbit needs a < 0, got a = {a:.4e} m")

    # -----------------------------------------------------------------
    # Derived quantities
    # -----------------------------------------------------------------

    @property
    def mu(self) -> float:
        """Gravitational parameter of the reference body (m^3/s^2)."""
        if self.reference_body is None:
            raise ValueError("Orbit has no reference body")
        return self.reference_body.gravitational_parameter

    @property
    def is_hyperbolic(self) -> bool:
        return self.eccentricity > 1.0

    @property
    def mean_motion(self) -> float:
        """n = sqrt(mu / |a|^3) (rad/s)."""
        return float(np.sqrt(self.mu / abs(self.semi_major_axis) ** 3))

    @property
    def period(self) -> float:
        """Orbital period (s); infinite for hyperbolic orbits."""
        if self.is_hyperbolic:
            return float('inf')
        return TAU / self.mean_motion

    @property
    def semi_latus_rectum(self) -> float:
        return self.semi_major_axis * (1.0 - self.eccentricity ** 2)

    @property
    def periapsis(self) -> float:
        """Periapsis radius (m)."""
        return self.semi_major_axis * (1.0 - self.eccentricity)

    @property
    def apoapsis(self) -> float:
        """Apoapsis radius (m); infinite for hyperbolic orbits."""
        if self.is_hyperbolic:
            return float('inf')
        return self.semi_major_axis * (1.0 + self.eccentricity)

    @property
    def true_anomaly_limit(self) -> float:
        """Asymptotic true anomaly acos(-1/e) of a hyperbola; pi otherwise."""
        if not self.is_hyperbolic:
            return PI
        return float(np.arccos(-1.0 / self.eccentricity))

    @property
    def rotation(self) -> np.ndarray:
        return perifocal_to_inertial(self.lan, self.inclination, self.argument_of_periapsis)

    @property
    def normal(self) -> np.ndarray:
        """Unit orbit normal (direction of the angular momentum)."""
        return self.rotation[:, 2]

    # -----------------------------------------------------------------
    # Propagation
    # -----------------------------------------------------------------

    def mean_anomaly_at(self, t: float) -> float:
        """Mean anomaly at time t; wrapped into [0, 2*pi) for elliptic orbits."""
        M = self.mean_anomaly_at_epoch + self.mean_motion * (t - self.epoch)
        if self.is_hyperbolic:
            return M
        return M % TAU

    def eccentric_anomaly_from_mean(self, M: float) -> float:
        """
        Solve Kepler's equation for the eccentric (or hyperbolic) anomaly.

            Elliptic:   M = E - e*sin(E)
            Hyperbolic: M = e*sinh(H) - H
        """
        e = self.eccentricity
        if self.is_hyperbolic:
            return float(newton(
                lambda H: e * np.sinh(H) - H - M,
                x0=np.arcsinh(M / e),
                fprime=lambda H: e * np.cosh(H) - 1.0,
                tol=1e-12, maxiter=100,
            ))
        x0 = M if e < 0.8 else PI
        return float(newton(
            lambda E: E - e * np.sin(E) - M,
            x0=x0,
            fprime=lambda E: 1.0 - e * np.cos(E),
            tol=1e-12, maxiter=100,
        ))

    def true_anomaly_at(self, t: float) -> float:
        """True anomaly at time t (rad)."""
        e = self.eccentricity
        E = self.eccentric_anomaly_from_mean(self.mean_anomaly_at(t))
        if self.is_hyperbolic:
            return float(2.0 * np.arctan(np.sqrt((e + 1.0) / (e - 1.0)) * np.tanh(0.5 * E)))
        nu = 2.0 * np.arctan2(np.sqrt(1.0 + e) * np.sin(0.5 * E),
                              np.sqrt(1.0 - e) * np.cos(0.5 * E))
        return float(nu % TAU)

    def radius_at_true_anomaly(self, nu: float) -> float:
        """r = p / (1 + e*cos(nu))."""
        return float(self.semi_latus_rectum / (1.0 + self.eccentricity * np.cos(nu)))

    def radius_at(self, t: float) -> float:
        return self.radius_at_true_anomaly(self.true_anomaly_at(t))

    def state_vectors_at_true_anomaly(self, nu: float) -> Tuple[np.ndarray, np.ndarray]:
        """Inertial position (m) and velocity (m/s) at true anomaly nu."""
        p = self.semi_latus_rectum
        e = self.eccentricity
        r_mag = p / (1.0 + e * np.cos(nu))

        r_pqw = r_mag * np.array([np.cos(nu), np.sin(nu), 0.0])
        v_pqw = np.sqrt(self.mu / p) * np.array([-np.sin(nu), e + np.cos(nu), 0.0])

        R = self.rotation
        return R @ r_pqw, R @ v_pqw

    def state_vectors_at(self, t: float) -> Tuple[np.ndarray, np.ndarray]:
        """Inertial position and velocity relative to the reference body at time t."""
        return self.state_vectors_at_true_anomaly(self.true_anomaly_at(t))

    # -----------------------------------------------------------------
    # Construction from state vectors
    # -----------------------------------------------------------------

    @classmethod
    def from_state_vectors(cls, r_vec: np.ndarray, v_vec: np.ndarray, t: float,
                           reference_body: 'CelestialBody') -> 'KeplerOrbit':
        """
        Build an orbit from a Cartesian state about reference_body at time t.

        The elements follow the usual algorithm (angular momentum, node
        vector, eccentricity vector, specific energy). Undefined angles are
        fixed by convention: LAN = 0 for equatorial orbits and omega = 0 for
        circular ones; the true anomaly is then measured in the resulting
        perifocal frame.
        """
        mu = reference_body.gravitational_parameter
        r = np.asarray(r_vec, dtype=np.float64)
        v = np.asarray(v_vec, dtype=np.float64)
        r_mag = np.linalg.norm(r)
        v_mag = np.linalg.norm(v)
        if r_mag <= 0:
            raise ValueError("Position vector must be non-zero")

        # Angular momentum and node vector
        h = np.cross(r, v)
        h_mag = np.linalg.norm(h)
        if h_mag <= 0:
            raise ValueError("Rectilinear trajectories are not supported")
        n = np.cross(np.array([0.0, 0.0, 1.0]), h)
        n_mag = np.linalg.norm(n)

        # Eccentricity vector
        e_vec = np.cross(v, h) / mu - r / r_mag
        e = float(np.linalg.norm(e_vec))

        # Specific mechanical energy -> semi-major axis
        energy = 0.5 * v_mag * v_mag - mu / r_mag
        a = -mu / (2.0 * energy)

        inc = float(np.arccos(np.clip(h[2] / h_mag, -1.0, 1.0)))
        lan = float(np.arctan2(n[1], n[0]) % TAU) if n_mag > NODE_VECTOR_TOL * h_mag else 0.0

        # Argument of periapsis measured in the node frame (omega = 0)
        if e > ECC_CIRCULAR_TOL:
            node_frame = perifocal_to_inertial(lan, inc, 0.0)
            aop = float(np.arctan2(np.dot(e_vec, node_frame[:, 1]),
                                   np.dot(e_vec, node_frame[:, 0])) % TAU)
        else:
            e = 0.0
            aop = 0.0

        R = perifocal_to_inertial(lan, inc, aop)
        nu = float(np.arctan2(np.dot(r, R[:, 1]), np.dot(r, R[:, 0])))

        if e > 1.0:
            H = 2.0 * np.arctanh(np.sqrt((e - 1.0) / (e + 1.0)) * np.tan(0.5 * nu))
            M = float(e * np.sinh(H) - H)
        else:
            E = 2.0 * np.arctan2(np.sqrt(1.0 - e) * np.sin(0.5 * nu),
                                 np.sqrt(1.0 + e) * np.cos(0.5 * nu))
            M = float((E - e * np.sin(E)) % TAU)

        return cls(
            semi_major_axis=float(a),
            eccentricity=e,
            inclination=inc,
            lan=lan,
            argument_of_periapsis=aop,
            mean_anomaly_at_epoch=M,
            epoch=t,
            reference_body=reference_body,
        )


# =============================================================================
# ORBIT SNAPSHOT
# =============================================================================

@dataclass(frozen=True)
class OrbitSnapshot:
    """
    Element-level fingerprint of an orbit, used to tell whether an origin
    has meaningfully changed between two planning passes.
    """
    reference_name: Optional[str]
    semi_major_axis: float
    eccentricity: float
    inclination: float
    lan: float
    argument_of_periapsis: float

    @classmethod
    def of(cls, orbit: Optional[KeplerOrbit]) -> Optional['OrbitSnapshot']:
        if orbit is None:
            return None
        ref = orbit.reference_body
        return cls(
            reference_name=ref.name if ref is not None else None,
            semi_major_axis=orbit.semi_major_axis,
            eccentricity=orbit.eccentricity,
            inclination=orbit.inclination,
            lan=orbit.lan,
            argument_of_periapsis=orbit.argument_of_periapsis,
        )

    def matches(self, other: Optional['OrbitSnapshot']) -> bool:
        if other is None:
            return False

        def angle_close(a, b, tol):
            diff = (a - b + PI) % TAU - PI
            return abs(diff) < tol

        return (self.reference_name == other.reference_name
                and abs(self.semi_major_axis - other.semi_major_axis) < SNAPSHOT_SMA_TOLERANCE
                and abs(self.eccentricity - other.eccentricity) < SNAPSHOT_ECC_TOLERANCE
                and angle_close(self.inclination, other.inclination, SNAPSHOT_INC_TOLERANCE)
                and angle_close(self.lan, other.lan, SNAPSHOT_LAN_TOLERANCE)
                and angle_close(self.argument_of_periapsis, other.argument_of_periapsis,
                                SNAPSHOT_AOP_TOLERANCE))


# =============================================================================
# BODY HIERARCHY
# =============================================================================

class CelestialBody:
    """
    A node of the body tree: a star, planet or moon.

    Args:
        name: Display name, unique within a system
        gravitational_parameter: mu (m^3/s^2)
        radius: Mean radius (m)
        sphere_of_influence: SOI radius (m); infinite for the root star
        orbit: Orbit about the parent body, None for the root
        atmosphere_depth: Height of the atmosphere (m), 0 if airless
        min_orbital_altitude: Lowest safe altitude for an airless body (m)
        has_solid_surface: False for stars and gas giants
    """

    def __init__(self, name: str, gravitational_parameter: float, radius: float,
                 sphere_of_influence: float = float('inf'),
                 orbit: Optional[KeplerOrbit] = None,
                 atmosphere_depth: float = 0.0,
                 min_orbital_altitude: float = 0.0,
                 has_solid_surface: bool = True):
        self.name = name
        self.gravitational_parameter = gravitational_parameter
        self.radius = radius
        self.sphere_of_influence = sphere_of_influence
        self.orbit = orbit
        self.atmosphere_depth = atmosphere_depth
        self.min_orbital_altitude = min_orbital_altitude
        self.has_solid_surface = has_solid_surface
        self.satellites: List['CelestialBody'] = []

    @property
    def parent(self) -> Optional['CelestialBody']:
        return self.orbit.reference_body if self.orbit is not None else None

    @property
    def has_atmosphere(self) -> bool:
        return self.atmosphere_depth > 0

    def add_satellite(self, body: 'CelestialBody') -> 'CelestialBody':
        """Attach a body whose orbit is referenced to this one."""
        if body.orbit is None or body.orbit.reference_body is not self:
            raise ValueError(f"{body.name} does not orbit {self.name}")
        self.satellites.append(body)
        return body

    def __repr__(self):
        return f"CelestialBody({self.name!r})"


class VesselSituation(Enum):
    PRELAUNCH = auto()
    LANDED = auto()
    SPLASHED = auto()
    FLYING = auto()
    SUB_ORBITAL = auto()
    ORBITING = auto()
    ESCAPING = auto()


class Vessel:
    """A craft or tracked small object. Vessels have no sphere of influence."""

    sphere_of_influence = 0.0

    def __init__(self, name: str, orbit: Optional[KeplerOrbit],
                 situation: VesselSituation = VesselSituation.ORBITING,
                 is_space_object: bool = False):
        self.name = name
        self.orbit = orbit
        self.situation = situation
        self.is_space_object = is_space_object

    @property
    def parent(self) -> Optional[CelestialBody]:
        return self.orbit.reference_body if self.orbit is not None else None

    @property
    def landed(self) -> bool:
        return self.situation in (VesselSituation.PRELAUNCH,
                                  VesselSituation.LANDED,
                                  VesselSituation.SPLASHED)

    def __repr__(self):
        return f"Vessel({self.name!r})"


Orbitable = Union[CelestialBody, Vessel]


# -----------------------------------------------------------------------------
# Hierarchy helpers
# -----------------------------------------------------------------------------

def parent_body(obj: Optional[Orbitable]) -> Optional[CelestialBody]:
    """Body that obj orbits, or None for the root or a missing object."""
    if obj is None or obj.orbit is None:
        return None
    return obj.orbit.reference_body


def parent_orbit(orbit: Optional[KeplerOrbit]) -> Optional[KeplerOrbit]:
    """Orbit of the orbit's reference body, one level further out."""
    if orbit is None or orbit.reference_body is None:
        return None
    return orbit.reference_body.orbit


def ancestors_include(obj: Optional[Orbitable], ancestor: CelestialBody) -> bool:
    """True if ancestor is obj's parent, grandparent, and so on upward."""
    b = parent_body(obj)
    while b is not None:
        if b is ancestor:
            return True
        b = b.parent
    return False


def sphere_of_influence(obj: Orbitable) -> float:
    return obj.sphere_of_influence


def start_body(origin: Optional[Orbitable]) -> Optional[CelestialBody]:
    """
    Body whose level the destination walk starts at: the body itself, or
    the body a vessel is orbiting.
    """
    if origin is None:
        return None
    if isinstance(origin, CelestialBody):
        return origin
    return parent_body(origin)


def good_low_orbit_radius(body: CelestialBody) -> float:
    """
    Radius of a safe low parking orbit: padding above the atmosphere, or
    above the minimum safe altitude for airless bodies.
    """
    if body.has_atmosphere:
        return body.radius + body.atmosphere_depth + LOW_ORBIT_PADDING
    return body.radius + body.min_orbital_altitude + LOW_ORBIT_PADDING


def display_name(obj: Optional[Orbitable]) -> str:
    return obj.name if obj is not None else '<none>'
