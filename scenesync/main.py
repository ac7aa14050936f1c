"""
SceneSync worker - Main entry point.

This module wires every component of the sync engine to one host tree:
- Change capture (host notifications -> pending change set)
- Tick loop (dedup sweep + batch scheduler -> remote push)
- Fetch loop (remote pull -> reconciler -> host writes)
- Full snapshot push on startup and on demand

Usage:
    python -m scenesync.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Configuration is an immutable snapshot; setters build a new one and
      hand it to every component
    - Neither loop ever raises; a failed tick or fetch is logged and the
      next one runs on schedule
    - Snapshot serialization and remote application run with capture
      suppressed, so neither is echoed back to the store

How to change safely:
    - Route every configuration change through _set_config()
    - Test shutdown with pushes in flight
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import json_log_formatter

from .apply import ReconcileReport, Reconciler
from .capture import CategoryFilter, ChangeCapture, DedupWindow, PendingChangeSet
from .config import SyncConfig, validate_remote_url
from .errors import ConfigurationError
from .host import HostTree, InMemoryTree
from .remote import PullStatus, PushResult, RemoteGateway, create_gateway
from .schedule import BatchScheduler, TickResult
from .serialize import Serializer

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "scenesync"

SETUP_GUIDANCE = (
    "Remote store setup:",
    "  1. Open the Firebase console and select the Realtime Database",
    "  2. Open the 'Rules' tab",
    '  3. For development, allow access: {"rules": {".read": true, ".write": true}}',
    "  4. Publish the rules and set SCENESYNC_REMOTE_URL to the database base URL",
    "  Permissive rules are for development only; use authentication in production.",
)


def setup_logging(config: SyncConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Sync configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if config.debug else logging.NOTSET)

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def log_setup_guidance() -> None:
    for line in SETUP_GUIDANCE:
        logger.info(line)


class SyncWorker:
    """SceneSync worker orchestrator.

    Manages the lifecycle of all sync components for one host tree:
    - Change capture attached to the host
    - Tick loop driving the batch scheduler
    - Fetch loop driving the reconciler

    Attributes:
        host: Host tree being synced
        config: Current configuration snapshot
        gateway: Remote gateway, None while the URL is not configured
        pending: Pending change set
        capture: Change capture
        scheduler: Batch scheduler
        reconciler: Remote change reconciler

    Example:
        >>> worker = SyncWorker(InMemoryTree())
        >>> await worker.start()
        >>> # Worker is running
        >>> await worker.stop()
    """

    def __init__(
        self,
        host: HostTree,
        config: Optional[SyncConfig] = None,
        gateway: Optional[RemoteGateway] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the worker.

        Args:
            host: Host tree to sync
            config: Optional configuration (loaded from env if not provided)
            gateway: Optional gateway (created from the remote config if not provided)
            clock: Time source for capture, scheduling and snapshots
        """
        self.host = host
        self.config = config or SyncConfig.from_env()
        self._clock = clock
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._fetch_lock = asyncio.Lock()

        self.filter = CategoryFilter(self.config.categories)
        self.serializer = Serializer(self.config.serializer, self.filter)
        self.pending = PendingChangeSet()
        self.dedup = DedupWindow(
            window=self.config.throttle.dedup_window,
            sweep_interval=self.config.throttle.dedup_sweep_interval,
        )
        self.capture = ChangeCapture(
            self.config,
            self.serializer,
            self.pending,
            self.dedup,
            self.filter,
            clock=clock,
        )

        self._owns_gateway = gateway is None
        self.gateway = gateway if gateway is not None else create_gateway(self.config.remote)
        self.scheduler = BatchScheduler(self.config, self.pending, self.gateway, clock=clock)
        self.reconciler = Reconciler(self.config, host, suppress=self.capture.suppressed)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def remote_ready(self) -> bool:
        return self.gateway is not None and self.config.remote.is_configured

    async def start(self) -> None:
        """Attach capture, push the initial snapshot and start both loops."""
        if self._running:
            logger.warning("Worker already running")
            return

        logger.info("Starting SceneSync worker")
        self.config.log_config()

        self.capture.attach(self.host)

        remote_ok = False
        if self.remote_ready:
            remote_ok = (await self.test_connection()).ok
        else:
            logger.warning("Remote store URL is not configured; push and pull are blocked")
            log_setup_guidance()

        if remote_ok and self.config.sync_enabled:
            logger.info("Sending initial datamodel")
            await self.full_sync()
        else:
            logger.info("Skipping initial datamodel sync (remote unavailable or sync disabled)")

        self._running = True
        self._tasks = [
            asyncio.create_task(self._tick_loop()),
            asyncio.create_task(self._fetch_loop()),
        ]
        self.log_status(remote_ok)

    async def run(self) -> None:
        """Start and block until shutdown is requested."""
        await self.start()
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()

    async def stop(self) -> None:
        """Stop both loops, detach capture and release the gateway."""
        if not self._running:
            return

        logger.info("Stopping SceneSync worker")
        self._running = False

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        self.capture.detach()
        if self.gateway is not None and self._owns_gateway:
            await self.gateway.close()

        logger.info("SceneSync worker stopped", extra={"pending": len(self.pending)})

    async def tick(self, now: Optional[float] = None) -> TickResult:
        """Run one scheduler tick, sweeping the dedup cache first."""
        now = self._clock() if now is None else now
        self.dedup.maybe_sweep(now)
        return await self.scheduler.tick(now)

    async def fetch_and_apply(self) -> Optional[ReconcileReport]:
        """Pull recent remote batches and reconcile them into the host.

        Returns:
            The reconcile report, or None if nothing was pulled
        """
        if not self.config.sync_enabled or not self.config.apply_remote_changes:
            logger.debug("Remote change application disabled")
            return None
        if not self.remote_ready:
            return None

        async with self._fetch_lock:
            result = await self.gateway.pull_recent(self.config.remote.fetch_limit)
            if result.status is not PullStatus.OK:
                if result.status is PullStatus.EMPTY:
                    logger.debug("No recent changes found")
                return None
            return self.reconciler.apply(result.batches)

    async def full_sync(self) -> PushResult:
        """Serialize the whole tree and replace the stored snapshot."""
        if not self.remote_ready:
            message = validate_remote_url(self.config.remote.base_url)[1]
            logger.warning(f"Cannot sync datamodel - URL not configured: {message}")
            log_setup_guidance()
            return PushResult(ok=False, error=message)

        with self.capture.suppressed():
            snapshot = self.serializer.serialize_hierarchy(
                self.host,
                project_id=self.config.remote.project_id,
                plugin_version=self.config.remote.plugin_version,
                timestamp=self._clock(),
            )
        return await self.gateway.push_snapshot(snapshot)

    async def test_connection(self) -> PushResult:
        """Probe the remote store, logging setup guidance on failure."""
        if self.gateway is None:
            message = validate_remote_url(self.config.remote.base_url)[1]
            log_setup_guidance()
            return PushResult(ok=False, error=message)

        result = await self.gateway.test_connection()
        if not result.ok:
            log_setup_guidance()
        return result

    async def _tick_loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Tick failed: {e}", exc_info=True)
            await asyncio.sleep(self.config.throttle.tick_interval)

    async def _fetch_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.throttle.fetch_interval)
            try:
                await self.fetch_and_apply()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Fetch failed: {e}", exc_info=True)

    def _set_config(self, config: SyncConfig) -> None:
        """Install a new configuration snapshot in every component."""
        if config.categories is not self.config.categories:
            self.filter = CategoryFilter(config.categories)
            self.serializer.filter = self.filter
            self.capture.filter = self.filter

        self.config = config
        self.capture.config = config
        self.scheduler.config = config
        self.reconciler.config = config

    def set_sync_enabled(self, enabled: bool) -> None:
        self._set_config(self.config.with_changes(sync_enabled=enabled))
        logger.info(f"Sync {'enabled' if enabled else 'disabled'}")

    def set_debug(self, enabled: bool) -> None:
        self._set_config(self.config.with_changes(debug=enabled))
        logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if enabled else logging.NOTSET)
        logger.info(f"Debug mode {'enabled' if enabled else 'disabled'}")

    def set_apply_remote_changes(self, enabled: bool) -> None:
        self._set_config(self.config.with_changes(apply_remote_changes=enabled))
        logger.info(f"Remote change application {'enabled' if enabled else 'disabled'}")

    def set_category_enabled(self, name: str, enabled: bool) -> None:
        """Toggle a sync category.

        Raises:
            ConfigurationError: If no category has this name
        """
        self._set_config(self.config.with_category_enabled(name, enabled))
        logger.info(f"Category {name} {'enabled' if enabled else 'disabled'}")

    async def update_remote_url(self, url: str) -> Tuple[bool, str]:
        """Validate and install a new remote base URL.

        On success the gateway is replaced by one for the new URL. An
        injected gateway is kept and only sees the new configuration.

        Returns:
            (accepted, validation message)
        """
        valid, message = validate_remote_url(url)
        if not valid:
            logger.warning(f"Rejected remote URL: {message}", extra={"url": url})
            return False, message

        self._set_config(self.config.with_remote_url(url))
        if self._owns_gateway:
            if self.gateway is not None:
                await self.gateway.close()
            self.gateway = create_gateway(self.config.remote)
            self.scheduler.gateway = self.gateway

        logger.info(f"Remote URL updated: {self.config.remote.base_url}")
        return True, message

    def log_status(self, remote_ok: Optional[bool] = None) -> None:
        """Log a one-screen status summary."""
        remote_ok = self.remote_ready if remote_ok is None else remote_ok
        throttle = self.config.throttle
        sync_state = "ACTIVE" if remote_ok and self.config.sync_enabled else "BLOCKED"
        logger.info(
            f"Sync: {'ON' if self.config.sync_enabled else 'OFF'} | "
            f"Debug: {'ON' if self.config.debug else 'OFF'} | "
            f"Apply remote: {'ON' if self.config.apply_remote_changes else 'OFF'}"
        )
        logger.info(
            f"Batch: {throttle.batch_interval}s | Settle: {throttle.settle_time}s | "
            f"Min push: {throttle.min_push_interval}s | Max batch: {throttle.max_batch_size} | "
            f"Project: {self.config.remote.project_id}"
        )
        logger.info(
            f"Remote operations: {'READY' if remote_ok else 'BLOCKED - configure URL first'} | "
            f"Real-time sync: {sync_state}",
            extra={"base_url": self.config.remote.base_url, "pending": len(self.pending)},
        )

    @property
    def stats(self) -> Dict[str, Any]:
        """Get worker statistics."""
        return {
            "running": self._running,
            "sync_enabled": self.config.sync_enabled,
            "remote_configured": self.remote_ready,
            "pending": len(self.pending),
            "capture": self.capture.stats,
            "scheduler": self.scheduler.stats,
            "reconciler": self.reconciler.stats,
        }


def load_seed(worker: SyncWorker, path: str) -> int:
    """Seed the worker's host from a snapshot JSON file.

    Returns:
        Number of services applied
    """
    data = json.loads(Path(path).read_text())
    applied = worker.reconciler.apply_snapshot(data)
    logger.info(f"Seeded host from {path}", extra={"services": applied})
    return applied


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = SyncConfig.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # Create worker over a headless host
    worker = SyncWorker(InMemoryTree(config.serializer.services), config)
    seed_file = os.getenv("SCENESYNC_SEED_FILE")
    if seed_file:
        load_seed(worker, seed_file)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        worker.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    # Run worker
    try:
        loop.run_until_complete(worker.run())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(worker.stop())
        loop.close()


if __name__ == "__main__":
    main()
