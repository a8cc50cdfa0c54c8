"""
Sync Module - Refresh Scheduler
=================================
Keeps a SyncClient's views fresh in the background: one interval job
per view plus a fast change-feed poll. Jobs never overlap with
themselves (max_instances=1) and missed runs collapse into one.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from common.exceptions import CafePreorderError
from config.settings import SYNC_POLL_INTERVAL_SECONDS
from modules.sync.client import SyncClient, VIEWS

logger = logging.getLogger("cafepreorder.scheduler")

# Full refreshes are the safety net for anything the change poll missed
FULL_REFRESH_SECONDS = {
    "canteens": 60,
    "menu": 30,
    "cart": 30,
    "orders": 20,
    "admin_orders": 10,
}


class RefreshScheduler:

    def __init__(
        self, client: SyncClient, poll_seconds: int = SYNC_POLL_INTERVAL_SECONDS,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.client = client
        self.poll_seconds = poll_seconds
        self.scheduler = scheduler or BackgroundScheduler()

    def start(self):
        job_defaults = {"max_instances": 1, "coalesce": True, "replace_existing": True}
        for view in VIEWS:
            self.scheduler.add_job(
                self._refresh_job, "interval", seconds=FULL_REFRESH_SECONDS[view],
                args=[view], id=f"refresh_{view}", **job_defaults,
            )
        self.scheduler.add_job(
            self._poll_job, "interval", seconds=self.poll_seconds,
            id="poll_changes", **job_defaults,
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"Refresh scheduler started (poll: {self.poll_seconds}s)")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Refresh scheduler stopped")

    def refresh_now(self, view: Optional[str] = None):
        """Explicit user action (pull-to-refresh). Errors are raised to the caller."""
        if view:
            return self.client.refresh(view)
        return self.client.refresh_all()

    def _refresh_job(self, view: str):
        if view not in self.client.active_views():
            return
        try:
            self.client.refresh(view)
        except CafePreorderError as e:
            logger.warning(f"Scheduled refresh of {view} failed: {e.message}")

    def _poll_job(self):
        try:
            refreshed = self.client.poll_changes()
            if refreshed:
                logger.debug(f"Change poll refreshed: {', '.join(sorted(refreshed))}")
        except CafePreorderError as e:
            logger.warning(f"Change poll failed: {e.message}")
