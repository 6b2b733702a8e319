#!/usr/bin/env python3
"""
===============================================================================
ASTROGATOR - MAIN ENTRY POINT
===============================================================================
Plans every transfer reachable from an origin in the sample Helios system and
prints the resulting catalog.

The load goes through the same background scheduler an interactive display
would use: the ejection burns arrive first (partial load), the plane-change
burns after (full load).

USAGE:
    python -m astrogator.main                         # From the sample vessel
    python -m astrogator.main --origin Selene         # From a moon
    python -m astrogator.main --target Nyx --sort delta_v
    python -m astrogator.main --time 86400 --log-level DEBUG

DEPENDENCIES:
    numpy, scipy, pandas, pyyaml
===============================================================================
"""

import sys
import argparse
import logging
import threading
from datetime import datetime

import pandas as pd

from astrogator.core.config import load_config
from astrogator.guidance.transfer_catalog import SortKey, TransferCatalog
from astrogator.guidance.transfer_planner import TransferPlanner
from astrogator.simulation.host import InMemoryManeuverHost, PatchedConicPreviewer
from astrogator.simulation.load_scheduler import LoadScheduler
from astrogator.simulation.sample_system import build_sample_system

logger = logging.getLogger(__name__)

LOAD_TIMEOUT = 120.0   # s


def setup_logging(level: str = 'INFO'):
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def run(origin_name: str, config_path: str = None, target_name: str = None,
        sort_key: SortKey = SortKey.POSITION, universal_time: float = 0.0) -> pd.DataFrame:
    """
    Build the sample system, load the catalog for origin_name in the
    background and return it as a DataFrame.
    """
    config = load_config(config_path)
    system = build_sample_system(universal_time)
    origin = system.find(origin_name)
    if target_name:
        system.target = system.find(target_name)

    planner = TransferPlanner(config, system.now, PatchedConicPreviewer(config.max_preview_patches))
    catalog = TransferCatalog(config, system, planner)

    partial = threading.Event()
    finished = threading.Event()
    aborted = threading.Event()

    def on_aborted():
        aborted.set()
        finished.set()

    with LoadScheduler(catalog, config, system.now, maneuver_host=InMemoryManeuverHost()) as scheduler:
        scheduler.on_display_opened()
        scheduler.try_start_load(
            origin,
            on_partial=partial.set,
            on_full=finished.set,
            on_aborted=on_aborted,
        )
        if not finished.wait(LOAD_TIMEOUT):
            raise TimeoutError(f"Loading transfers from {origin_name} took over {LOAD_TIMEOUT} s")
        if aborted.is_set():
            raise RuntimeError(f"Load for {origin_name} was aborted")
        logger.info("Ejection burns ready: %s", partial.is_set())
        if not catalog.ok:
            logger.warning("%s", catalog.error_message)
        table = catalog.to_dataframe(sort_key)
        scheduler.on_display_closed()
    return table


def main():
    """
    Main entry point. Parses command line arguments and prints the transfer
    catalog for the requested origin.
    """
    parser = argparse.ArgumentParser(
        description='Astrogator: transfer planning in the sample Helios system',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m astrogator.main                      From the sample vessel
  python -m astrogator.main --origin Terra       From the home planet
  python -m astrogator.main --sort time          Soonest burns first
        """
    )
    parser.add_argument('--origin', type=str, default='Explorer',
                        help='Body or vessel to plan from (default: Explorer)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to astrogator config YAML')
    parser.add_argument('--target', type=str, default=None,
                        help='Tracked target offered as the first transfer')
    parser.add_argument('--sort', type=str, default='position',
                        choices=[k.value for k in SortKey],
                        help='Sort column (default: position)')
    parser.add_argument('--time', type=float, default=0.0,
                        help='World time to plan at, seconds (default: 0)')
    parser.add_argument('--log-level', type=str, default='INFO',
                        help='Logging level (default: INFO)')
    args = parser.parse_args()

    setup_logging(args.log_level)

    print("=" * 70)
    print("  ASTROGATOR")
    print(f"  Origin: {args.origin}   World time: {args.time:.1f} s")
    print(f"  Run at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    try:
        table = run(args.origin, args.config, args.target, SortKey(args.sort), args.time)
    except (KeyError, ValueError, RuntimeError, TimeoutError) as exc:
        logger.error("%s", exc)
        return 1

    with pd.option_context('display.max_columns', None, 'display.width', 160,
                           'display.float_format', '{:,.2f}'.format):
        print(table.to_string(index=False))
    return 0


if __name__ == '__main__':
    sys.exit(main())
