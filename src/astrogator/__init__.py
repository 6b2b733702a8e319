"""
===============================================================================
ASTROGATOR - Transfer Planning Package
===============================================================================
Plans Hohmann-style transfers inside a hierarchical system of bodies. For a
chosen origin it enumerates every reachable destination and computes the
ejection burn (time and delta-V) plus an optional plane-change burn for each.

Subpackages:
    core        -- Constants and immutable configuration
    dynamics    -- Keplerian orbits, body hierarchy, orbit math primitives
    guidance    -- Burn plans, transfer planner, transfer catalog
    simulation  -- Host capabilities, sample system, background load scheduler
===============================================================================
"""

__version__ = "1.0.0"
