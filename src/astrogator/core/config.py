"""
===============================================================================
ASTROGATOR - Planner Configuration
===============================================================================
Immutable feature toggles and tunables consumed by the planner, catalog and
load scheduler. A single AstrogatorConfig value is passed explicitly to every
entry point; nothing reads configuration from ambient state.

Configuration files are YAML. Values may sit at the top level or under an
``astrogator:`` key. Angles are written in degrees in YAML and stored in
radians on the dataclass.
===============================================================================
"""

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from astrogator.core.constants import (
    MAX_INCLINATION, MIN_SECONDS_BETWEEN_LOADS, BURN_POLL_INTERVAL,
    PLANE_CHANGE_THRESHOLD, EJECTION_ITERATIONS, EJECTION_TIME_TOLERANCE,
    DEG2RAD,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[3] / 'config' / 'astrogator.yaml'

# Keys given in degrees in YAML files
_DEGREE_KEYS = ('max_inclination',)


@dataclass(frozen=True)
class AstrogatorConfig:
    """
    Read-only settings for one planning session.

    Attributes:
        generate_plane_change_burns: Compute plane-change burns at all.
        include_plane_change_delta_v: Run the plane-change pass during loads.
        include_tracked_auxiliary_objects: Enumerate tracked small bodies.
        max_inclination: Largest angle from equatorial (rad) for a vessel
            origin before the catalog refuses to plan.
        min_seconds_between_loads: Same-origin reload throttle (world s).
        burn_poll_interval: Period of the burn-expiry poll (wall s).
        plane_change_threshold: Plane changes below this (m/s) are dropped.
        ejection_iterations: Upper bound of the ejection fold-in loop.
        ejection_time_tolerance: Convergence tolerance of that loop (s).
        burn_search_max_attempts: Window slides allowed when refining the
            transfer window with the root-finder.
        max_preview_patches: Patches a reference trajectory preview builds.
    """
    generate_plane_change_burns: bool = True
    include_plane_change_delta_v: bool = True
    include_tracked_auxiliary_objects: bool = True
    max_inclination: float = MAX_INCLINATION
    min_seconds_between_loads: float = MIN_SECONDS_BETWEEN_LOADS
    burn_poll_interval: float = BURN_POLL_INTERVAL
    plane_change_threshold: float = PLANE_CHANGE_THRESHOLD
    ejection_iterations: int = EJECTION_ITERATIONS
    ejection_time_tolerance: float = EJECTION_TIME_TOLERANCE
    burn_search_max_attempts: int = 4
    max_preview_patches: int = 4

    def __post_init__(self):
        if self.max_inclination <= 0:
            raise ValueError(f"max_inclination must be positive, got {self.max_inclination}")
        if self.min_seconds_between_loads < 0:
            raise ValueError(
                f"min_seconds_between_loads must be >= 0, got {self.min_seconds_between_loads}")
        if self.burn_poll_interval <= 0:
            raise ValueError(f"burn_poll_interval must be positive, got {self.burn_poll_interval}")
        if self.plane_change_threshold < 0:
            raise ValueError(
                f"plane_change_threshold must be >= 0, got {self.plane_change_threshold}")
        if self.ejection_iterations < 1:
            raise ValueError(f"ejection_iterations must be >= 1, got {self.ejection_iterations}")
        if self.ejection_time_tolerance <= 0:
            raise ValueError(
                f"ejection_time_tolerance must be positive, got {self.ejection_time_tolerance}")
        if self.burn_search_max_attempts < 1:
            raise ValueError(
                f"burn_search_max_attempts must be >= 1, got {self.burn_search_max_attempts}")
        if self.max_preview_patches < 1:
            raise ValueError(f"max_preview_patches must be >= 1, got {self.max_preview_patches}")

    @property
    def plane_changes_enabled(self) -> bool:
        """True when the load scheduler should run the plane-change pass."""
        return self.generate_plane_change_burns and self.include_plane_change_delta_v

    def with_overrides(self, **overrides) -> 'AstrogatorConfig':
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> 'AstrogatorConfig':
        """
        Build a config from a plain mapping such as a parsed YAML document.

        Args:
            values: Mapping of field name to value. May be None or nest the
                values under an ``astrogator`` key. Angles are in degrees.

        Returns:
            A validated AstrogatorConfig.

        Raises:
            ValueError: On unknown keys or out-of-range values.
        """
        if not values:
            return cls()
        if 'astrogator' in values and isinstance(values['astrogator'], dict):
            values = values['astrogator']

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        kwargs = dict(values)
        for key in _DEGREE_KEYS:
            if key in kwargs:
                kwargs[key] = float(kwargs[key]) * DEG2RAD
        return cls(**kwargs)


def load_config(config_path: Optional[str] = None) -> AstrogatorConfig:
    """
    Load planner configuration from a YAML file.

    Args:
        config_path: Path to YAML config. Defaults to config/astrogator.yaml
            at the project root; the built-in defaults are used if that file
            does not exist.

    Returns:
        AstrogatorConfig built from the file contents.
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.info("No configuration file at %s; using defaults", DEFAULT_CONFIG_PATH)
            return AstrogatorConfig()
        config_path = str(DEFAULT_CONFIG_PATH)

    logger.info("Loading configuration from: %s", config_path)
    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f)
    config = AstrogatorConfig.from_dict(raw)
    logger.debug("Configuration: %s", config)
    return config
