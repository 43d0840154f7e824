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
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from dirsync.db.services.ldap_service import LDAPConfigService, LDAPGroupService, LDAPUserService
from dirsync.ldap.config import DirectoryConfig
from dirsync.ldap.errors import DirectoryConfigError, DirectorySearchError, LDAPError
from dirsync.ldap.ldap_auth import LDAPConnectionManager
from dirsync.ldap.ldap_filter import (
    DirectoryEntry,
    execute_group_filter,
    execute_user_filter,
    expand_group_members,
)

PHASE_USERS = 'users'
PHASE_GROUPS = 'groups'
PHASE_MEMBERS = 'members'


@dataclass
class SyncResult:
    users: List[DirectoryEntry] = field(default_factory=list)
    groups: List[DirectoryEntry] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def users_complete(self) -> bool:
        return PHASE_USERS not in self.errors and PHASE_MEMBERS not in self.errors

    @property
    def groups_complete(self) -> bool:
        return PHASE_GROUPS not in self.errors


def load_users(config: DirectoryConfig) -> List[DirectoryEntry]:
    """Run the user filter on a connection of its own."""
    with LDAPConnectionManager(config) as conn_mgr:
        return execute_user_filter(conn_mgr.connection, config)


def load_groups(config: DirectoryConfig) -> List[DirectoryEntry]:
    """Run the group filter on a connection of its own."""
    with LDAPConnectionManager(config) as conn_mgr:
        return execute_group_filter(conn_mgr.connection, config)


class LDAPSyncService:
    """Handles LDAP user and group synchronization."""

    def __init__(self, config_id: Optional[str] = None):
        self.config_id = config_id

    def get_config(self):
        """Get the pinned LDAP configuration, else the active one."""
        if self.config_id:
            _, config = LDAPConfigService.get_by_id(self.config_id)
            return config
        return LDAPConfigService.get_active_config()

    def collect(self, conn_mgr: LDAPConnectionManager, config: DirectoryConfig) -> SyncResult:
        """
        Run the user filter, the group filter and group member expansion.

        A failing phase is recorded in ``errors`` and the remaining phases
        still run. Transport failures abort the whole collection.
        """
        result = SyncResult()
        connection = conn_mgr.connection

        try:
            result.users = execute_user_filter(connection, config)
        except DirectorySearchError as e:
            logging.error(f"LDAP user filter failed: {e}")
            result.errors[PHASE_USERS] = str(e)

        try:
            result.groups = execute_group_filter(connection, config)
        except DirectorySearchError as e:
            logging.error(f"LDAP group filter failed: {e}")
            result.errors[PHASE_GROUPS] = str(e)

        if result.groups:
            try:
                members = expand_group_members(connection, config, result.groups,
                                               known=[u.remote_id for u in result.users])
                result.users.extend(members)
            except DirectorySearchError as e:
                logging.error(f"LDAP group member expansion failed: {e}")
                result.errors[PHASE_MEMBERS] = str(e)

        return result

    def sync_users(self) -> Tuple[bool, Dict[str, Any]]:
        """
        Synchronize users and groups from LDAP into the local store.

        Returns:
            Tuple[bool, Dict[str, Any]]: (success, stats)
        """
        config_model = self.get_config()
        if not config_model or not config_model.enabled or not config_model.sync_enabled:
            return False, {}

        try:
            config = DirectoryConfig.from_model(config_model)
        except DirectoryConfigError as e:
            logging.error(f"LDAP sync skipped, invalid configuration {config_model.id}: {e}")
            LDAPConfigService.update_sync_status(config_model.id, 'error')
            return False, {}

        stats = {
            'users_found': 0,
            'users_created': 0,
            'users_updated': 0,
            'users_deactivated': 0,
            'groups_found': 0,
            'groups_created': 0,
            'groups_updated': 0,
            'groups_deactivated': 0,
            'errors': 0,
            'failed_phases': [],
        }

        LDAPConfigService.update_sync_status(config_model.id, 'running')
        try:
            with LDAPConnectionManager(config) as conn_mgr:
                result = self.collect(conn_mgr, config)

            stats['failed_phases'] = sorted(result.errors)
            sync_time = datetime.now()
            self._reconcile(config_model.id, result.users, LDAPUserService, 'users',
                            result.users_complete, sync_time, stats)
            self._reconcile(config_model.id, result.groups, LDAPGroupService, 'groups',
                            result.groups_complete, sync_time, stats)
        except LDAPError as e:
            logging.error(f"LDAP sync failed during {e.phase or 'connect'}: {e}")
            stats['failed_phases'] = [e.phase or 'connect']
            LDAPConfigService.update_sync_status(config_model.id, 'error')
            return False, stats
        except Exception as e:
            logging.exception(f"LDAP sync failed: {e}")
            stats['failed_phases'] = ['sync']
            LDAPConfigService.update_sync_status(config_model.id, 'error')
            return False, stats

        status = 'completed' if not result.errors else 'partial'
        LDAPConfigService.update_sync_status(config_model.id, status, sync_time)
        logging.info(f"LDAP sync {status}: {stats}")
        return not result.errors, stats

    @staticmethod
    def _reconcile(config_id: str, entries: List[DirectoryEntry], service, label: str,
                   complete: bool, sync_time: datetime, stats: Dict[str, Any]):
        stats[f'{label}_found'] = len(entries)
        failed = []
        for entry in entries:
            record, created = service.upsert_entry(config_id, entry, sync_time)
            if not record:
                stats['errors'] += 1
                failed.append(entry.remote_id)
                continue
            stats[f'{label}_created' if created else f'{label}_updated'] += 1

        # Only a complete listing may deactivate records.
        if complete:
            stats[f'{label}_deactivated'] = service.mark_stale(config_id, sync_time, keep_remote_ids=failed)

    def preview(self, config: DirectoryConfig, sample_size: int = 20) -> Dict[str, Any]:
        """Run the filters without persisting anything, to check settings before saving them."""
        report = {
            'success': False,
            'message': '',
            'user_count': 0,
            'group_count': 0,
            'users': [],
            'groups': [],
            'errors': {},
        }
        try:
            with LDAPConnectionManager(config) as conn_mgr:
                result = self.collect(conn_mgr, config)
        except LDAPError as e:
            report['message'] = str(e)
            report['errors'] = {e.phase or 'connect': e.message}
            return report

        report.update({
            'success': not result.errors,
            'message': 'OK' if not result.errors else 'Some filters failed',
            'user_count': len(result.users),
            'group_count': len(result.groups),
            'users': [u.to_dict() for u in result.users[:sample_size]],
            'groups': [g.to_dict() for g in result.groups[:sample_size]],
            'errors': dict(result.errors),
        })
        return report

    def test_connection(self, config: DirectoryConfig) -> Tuple[bool, str]:
        try:
            with LDAPConnectionManager(config):
                pass
        except LDAPError as e:
            return False, str(e)
        return True, f"Connected to {config.server_uri} as {config.bind_dn}"
