"""
===============================================================================
ASTROGATOR - Dynamics Module
===============================================================================
Two-body models of the body hierarchy and the stateless math built on them.

Submodules:
    orbit       -- KeplerOrbit propagation, CelestialBody / Vessel hierarchy
    orbit_math  -- Phase angles, vis-viva speeds, escape geometry, node
                   crossings, bisection root-finder
===============================================================================
"""
