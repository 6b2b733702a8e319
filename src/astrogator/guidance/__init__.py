"""
===============================================================================
ASTROGATOR - Guidance Package
===============================================================================
Transfer planning for every destination reachable from an origin.

Modules:
    burn              : Immutable burn plans and burn duration estimates
    transfer_planner  : Recursive ejection burns and plane-change discovery
    transfer_catalog  : Destination enumeration, sorting, tabular summary
===============================================================================
"""
