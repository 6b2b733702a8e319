"""
===============================================================================
ASTROGATOR - Load Scheduler
===============================================================================
Background recomputation of a TransferCatalog.

The scheduler is an actor: one worker thread owns the catalog and consumes a
mailbox of load requests. Because only the worker ever touches the catalog,
loads and polls can never overlap and no lock guards the catalog itself.

    try_start_load   decides synchronously whether a load may start and
                     either queues it or calls on_aborted. Same-origin
                     reloads are throttled by object identity, so an
                     orbit changing mid-burn does not count as a new
                     origin; a different origin always starts.
    load             reset the catalog, compute ejection burns, call
                     on_partial, compute plane-change burns if enabled,
                     call on_full.
    poll             every burn_poll_interval seconds of wall time the
                     worker checks the catalog. If the origin's orbit has
                     drifted it rebuilds the whole catalog (throttled like
                     a same-origin load); otherwise it recomputes transfers
                     whose ejection burn has already passed. Either way it
                     fires the unrequested-reload callback once.

Nothing runs while no display is open. Callbacks run on the worker thread
and must be safe to call from any thread.

State machine:

    IDLE --try_start_load--> LOADING --last queued load done--> IDLE
===============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, Sequence

from astrogator.core.config import AstrogatorConfig
from astrogator.dynamics.orbit import Orbitable, display_name
from astrogator.guidance.transfer_catalog import TransferCatalog
from astrogator.guidance.transfer_planner import TransferPlan

logger = logging.getLogger(__name__)

Callback = Optional[Callable[[], None]]


class LoadState(Enum):
    IDLE = auto()
    LOADING = auto()


@dataclass
class LoadRequest:
    origin: Orbitable
    on_partial: Callback = None
    on_full: Callback = None
    on_aborted: Callback = None


# Mailbox sentinel that ends the worker
_STOP = object()


def _notify(callback: Callback, name: str):
    if callback is None:
        return
    try:
        callback()
    except Exception:
        logger.exception("%s callback raised", name)


class LoadScheduler:
    """
    Throttled single-worker loader around one TransferCatalog.

    Args:
        catalog: Catalog to fill; owned by the worker from now on
        config: Planner settings (throttle, poll interval, toggles)
        clock: Callable returning world time (s), used for throttling
            and burn expiry
        maneuver_host: Optional host whose maneuvers are cleared when a
            plane-change computation fails
        on_unrequested_reload: Called after a poll recomputed burns
    """

    def __init__(self, catalog: TransferCatalog, config: AstrogatorConfig,
                 clock: Callable[[], float], maneuver_host=None,
                 on_unrequested_reload: Callback = None):
        self.catalog = catalog
        self.config = config
        self.clock = clock
        self.maneuver_host = maneuver_host
        self.on_unrequested_reload = on_unrequested_reload

        self._mailbox: queue.Queue = queue.Queue()
        # Guards the bookkeeping below, never the catalog
        self._lock = threading.Lock()
        self._state = LoadState.IDLE
        self._pending = 0
        self._idle = threading.Event()
        self._idle.set()
        self._open_displays = 0
        self._requested_origin: Optional[Orbitable] = None
        self._last_load_time: Optional[float] = None
        self._running = True

        self._worker = threading.Thread(target=self._run, name='astrogator-loader', daemon=True)
        self._worker.start()
        logger.debug("Load scheduler started (poll every %.2f s)", config.burn_poll_interval)

    # -----------------------------------------------------------------
    # Observers
    # -----------------------------------------------------------------

    def on_display_opened(self):
        with self._lock:
            self._open_displays += 1

    def on_display_closed(self):
        with self._lock:
            self._open_displays = max(0, self._open_displays - 1)

    @property
    def open_displays(self) -> int:
        with self._lock:
            return self._open_displays

    @property
    def state(self) -> LoadState:
        with self._lock:
            return self._state

    # -----------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------

    def try_start_load(self, new_origin: Optional[Orbitable], on_partial: Callback = None,
                       on_full: Callback = None, on_aborted: Callback = None) -> bool:
        """
        Queue a recomputation for new_origin if allowed.

        Never raises. When the load is rejected on_aborted is called before
        this method returns.

        Returns:
            True if the load was queued.
        """
        try:
            accepted = self._accept(new_origin)
        except Exception:
            logger.exception("Could not schedule load for %s", display_name(new_origin))
            accepted = False

        if not accepted:
            logger.debug("Load for %s rejected", display_name(new_origin))
            _notify(on_aborted, 'on_aborted')
            return False

        self._mailbox.put(LoadRequest(new_origin, on_partial, on_full, on_aborted))
        return True

    def _accept(self, origin: Optional[Orbitable]) -> bool:
        with self._lock:
            if not self._running or origin is None or self._open_displays <= 0:
                return False

            # Identity only: a vessel mid-burn changes its orbit on every
            # request and must still be throttled
            if origin is self._requested_origin:
                if self._state is LoadState.LOADING or self._throttled():
                    return False

            self._requested_origin = origin
            self._pending += 1
            self._state = LoadState.LOADING
            self._idle.clear()
            return True

    def _throttled(self) -> bool:
        # Caller holds self._lock
        return (self._last_load_time is not None
                and self.clock() - self._last_load_time < self.config.min_seconds_between_loads)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no load is queued or running. False on timeout."""
        return self._idle.wait(timeout)

    def snapshot(self) -> Sequence[TransferPlan]:
        """Current transfer plans; safe to read from any thread."""
        catalog = self.catalog
        return catalog.snapshot() if catalog is not None else ()

    # -----------------------------------------------------------------
    # Worker
    # -----------------------------------------------------------------

    def _run(self):
        interval = self.config.burn_poll_interval
        next_poll = time.monotonic() + interval
        while True:
            timeout = max(0.0, next_poll - time.monotonic())
            try:
                message = self._mailbox.get(timeout=timeout)
            except queue.Empty:
                message = None

            if message is _STOP:
                break
            if message is not None:
                self._load(message)
            if time.monotonic() >= next_poll:
                self._poll()
                next_poll = time.monotonic() + interval
        logger.debug("Load scheduler worker stopped")

    def _load(self, request: LoadRequest):
        completed = False
        try:
            logger.info("Loading transfers for %s", display_name(request.origin))
            self.catalog.reset(request.origin)
            self.catalog.calculate_ejection_burns()
            _notify(request.on_partial, 'on_partial')
            if self.config.plane_changes_enabled:
                self.catalog.calculate_plane_change_burns(on_failure=self._clear_maneuvers)
            completed = True
            logger.info("Loaded %d transfer(s) for %s",
                        len(self.catalog.transfers), display_name(request.origin))
        except Exception:
            logger.exception("Load failed for %s", display_name(request.origin))
        finally:
            with self._lock:
                self._pending -= 1
                self._last_load_time = self.clock()
                if self._pending == 0:
                    self._state = LoadState.IDLE
            if completed:
                _notify(request.on_full, 'on_full')
            else:
                _notify(request.on_aborted, 'on_aborted')
            with self._lock:
                if self._pending == 0:
                    self._idle.set()

    def _poll(self):
        with self._lock:
            if self._open_displays <= 0 or self._pending > 0:
                return
            throttled = self._throttled()

        origin = self.catalog.origin
        if origin is not None and self.catalog.origin_changed(origin):
            if not throttled:
                self._reload_drifted(origin)
            return

        now = self.clock()
        expired = self.catalog.expired_transfers(now)
        if not expired:
            return

        logger.info("%d burn(s) expired; recomputing", len(expired))
        self.catalog.calculate_ejection_burns(expired)
        if self.config.plane_changes_enabled:
            self.catalog.calculate_plane_change_burns(expired, on_failure=self._clear_maneuvers)
        _notify(self.on_unrequested_reload, 'on_unrequested_reload')

    def _reload_drifted(self, origin: Orbitable):
        """Rebuild every transfer for an origin whose orbit has changed."""
        logger.info("Orbit of %s changed; reloading transfers", display_name(origin))
        try:
            self.catalog.reset(origin)
            self.catalog.calculate_ejection_burns()
            if self.config.plane_changes_enabled:
                self.catalog.calculate_plane_change_burns(on_failure=self._clear_maneuvers)
        except Exception:
            logger.exception("Reload failed for %s", display_name(origin))
            return
        finally:
            with self._lock:
                self._last_load_time = self.clock()
        _notify(self.on_unrequested_reload, 'on_unrequested_reload')

    def _clear_maneuvers(self):
        if self.maneuver_host is not None:
            self.maneuver_host.clear_maneuvers()

    # -----------------------------------------------------------------
    # Shutdown
    # -----------------------------------------------------------------

    def shutdown(self, timeout: Optional[float] = 5.0):
        """Stop polling and loading, then release the catalog."""
        with self._lock:
            if not self._running:
                return
            self._running = False
        self._mailbox.put(_STOP)
        self._worker.join(timeout)
        if self._worker.is_alive():
            logger.warning("Load scheduler worker did not stop within %s s", timeout)
            return
        self.catalog = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False
