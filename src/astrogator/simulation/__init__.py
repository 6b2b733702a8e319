"""
===============================================================================
ASTROGATOR - Simulation Package
===============================================================================
Host-side capabilities and the background load scheduler.

Modules:
    host            : World clock, trajectory preview, maneuver commit/clear
    sample_system   : Small star / planet / moon system for demos and tests
    load_scheduler  : Throttled single-worker recomputation of the catalog
===============================================================================
"""
