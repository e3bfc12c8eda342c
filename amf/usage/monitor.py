"""Background usage monitor: one worker thread, snapshots handed over a queue.

Usage::

    monitor = UsageMonitor(config.usage)
    monitor.start()
    ...
    snapshot = monitor.latest()   # from the UI thread, never blocks
    ...
    monitor.stop()
"""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import replace
from typing import Callable

from loguru import logger

from amf.config.schema import UsageConfig
from amf.usage.claude_probe import (
    UsageProbeError,
    fetch_rate_windows,
    read_credentials,
    read_daily_activity,
)
from amf.usage.models import UsageSnapshot

# Upper bound on how long stop() waits for the worker to notice.
_TICK_S = 0.5


class UsageMonitor:
    """Polls local stats and the usage endpoint on independent intervals."""

    def __init__(
        self,
        config: UsageConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        fetch_windows: Callable[..., list] = fetch_rate_windows,
    ) -> None:
        self.config = config
        self._clock = clock
        self._fetch_windows = fetch_windows
        self._queue: "queue.Queue[UsageSnapshot]" = queue.Queue()
        self._stop_evt = threading.Event()
        self._thread: threading.Thread | None = None
        # Worker-owned state.
        self._snapshot = UsageSnapshot()
        self._stats_due = 0.0
        self._oauth_due = 0.0
        # UI-owned state.
        self._latest: UsageSnapshot | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_evt.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="usage-monitor")
        self._thread.start()
        logger.info(
            f"[usage] Monitor started, stats every {self.config.stats_interval_s}s, "
            f"limits every {self.config.interval_s}s"
        )

    def stop(self) -> None:
        self._stop_evt.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None

    def latest(self) -> UsageSnapshot | None:
        """Drain pending snapshots and return the newest one seen so far."""
        while True:
            try:
                self._latest = self._queue.get_nowait()
            except queue.Empty:
                return self._latest

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while not self._stop_evt.is_set():
            try:
                self.poll_once()
            except Exception as exc:
                logger.warning(f"[usage] Monitor loop error: {exc}")
            self._stop_evt.wait(_TICK_S)

    def poll_once(self) -> UsageSnapshot | None:
        """Refresh whichever sources are due; publish and return a new snapshot if any ran."""
        now = self._clock()
        snapshot = self._snapshot
        refreshed = False

        if now >= self._stats_due:
            self._stats_due = now + self.config.stats_interval_s
            snapshot = self._refresh_stats(snapshot)
            refreshed = True
        if now >= self._oauth_due:
            self._oauth_due = now + self.config.interval_s
            snapshot = self._refresh_limits(snapshot)
            refreshed = True

        if not refreshed:
            return None
        snapshot = replace(snapshot, updated_at=time.time())
        self._snapshot = snapshot
        self._queue.put(snapshot)
        return snapshot

    def _refresh_stats(self, snapshot: UsageSnapshot) -> UsageSnapshot:
        try:
            today = read_daily_activity(self.config.claude_home_path)
        except UsageProbeError as exc:
            logger.debug(f"[usage] {exc}")
            return replace(snapshot, error=str(exc))
        return replace(snapshot, today=today)

    def _refresh_limits(self, snapshot: UsageSnapshot) -> UsageSnapshot:
        try:
            creds = read_credentials(self.config.claude_home_path)
            if creds is None:
                return snapshot
            snapshot = replace(snapshot, subscription_type=creds.subscription_type)
            windows = self._fetch_windows(
                creds.access_token,
                endpoint=self.config.endpoint,
                timeout_s=self.config.request_timeout_s,
            )
        except UsageProbeError as exc:
            logger.debug(f"[usage] {exc}")
            return replace(snapshot, error=str(exc))
        return replace(snapshot, windows=tuple(windows), error=None)
