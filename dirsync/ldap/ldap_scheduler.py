#
#  Copyright 2024 The InfiniFlow Authors. All Rights Reserved.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
#
import logging
import threading
from datetime import datetime

from dirsync import settings
from dirsync.db.services.ldap_service import LDAPConfigService
from dirsync.ldap.ldap_sync import LDAPSyncService


class LDAPScheduler:
    """Periodic LDAP sync driver; each pass opens and releases its own connection."""

    def __init__(self, sync_service: LDAPSyncService = None, tick: int = None):
        self.running = False
        self.thread = None
        self.sync_service = sync_service or LDAPSyncService()
        self.tick = tick or settings.LDAP_SCHEDULER_TICK
        self.last_sync_time = {}  # config_id -> last_sync_time
        self._stop_event = threading.Event()
        self._sync_lock = threading.Lock()

    def start(self):
        if self.running:
            logging.warning("LDAP scheduler is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run_scheduler, name="ldap-scheduler", daemon=True)
        self.thread.start()
        logging.info("LDAP scheduler started")

    def stop(self):
        self.running = False
        self._stop_event.set()
        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=5)
        logging.info("LDAP scheduler stopped")

    def _run_scheduler(self):
        while self.running:
            try:
                self._check_and_sync()
                wait = self.tick
            except Exception as e:
                logging.exception(f"Error in LDAP scheduler: {e}")
                wait = settings.LDAP_SYNC_MIN_INTERVAL
            if self._stop_event.wait(wait):
                break

    def is_due(self, config, now: datetime = None) -> bool:
        now = now or datetime.now()
        last_sync = self.last_sync_time.get(config.id)
        sync_interval = max(config.sync_interval or 0, settings.LDAP_SYNC_MIN_INTERVAL)
        return not last_sync or (now - last_sync).total_seconds() >= sync_interval

    def _check_and_sync(self):
        config = LDAPConfigService.get_active_config()
        if not config or not config.enabled or not config.sync_enabled:
            return

        now = datetime.now()
        if not self.is_due(config, now):
            return

        logging.info(f"Starting LDAP sync for config {config.id}")
        self.last_sync_time[config.id] = now
        with self._sync_lock:
            success, stats = self.sync_service.sync_users()

        if success:
            logging.info(f"LDAP sync completed successfully: {stats}")
        else:
            logging.error(f"LDAP sync failed: {stats}")

    def force_sync(self) -> bool:
        """Run one sync now, outside the schedule."""
        try:
            with self._sync_lock:
                success, stats = self.sync_service.sync_users()
        except Exception as e:
            logging.exception(f"Error during forced LDAP sync: {e}")
            return False

        if success:
            logging.info(f"Forced LDAP sync completed: {stats}")
            config = LDAPConfigService.get_active_config()
            if config:
                self.last_sync_time[config.id] = datetime.now()
        return success


ldap_scheduler = LDAPScheduler()


def start_ldap_scheduler():
    ldap_scheduler.start()


def stop_ldap_scheduler():
    ldap_scheduler.stop()


def force_ldap_sync():
    return ldap_scheduler.force_sync()


def init_ldap_scheduler():
    """Start the scheduler at application startup when sync is enabled."""
    config = LDAPConfigService.get_active_config()
    if config and config.enabled and config.sync_enabled:
        start_ldap_scheduler()
        logging.info("LDAP scheduler initialized and started")
    else:
        logging.info("LDAP sync disabled, scheduler not started")
