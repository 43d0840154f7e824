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
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from dirsync.db.db_models import DB, LDAPConfig, LDAPGroup, LDAPUser
from dirsync.db.services.common_service import CommonService
from dirsync.utils import current_timestamp, datetime_format


class LDAPConfigService(CommonService):
    """Service class for managing LDAP configuration operations."""
    model = LDAPConfig

    @classmethod
    @DB.connection_context()
    def get_active_config(cls) -> Optional[LDAPConfig]:
        """Get the first active LDAP configuration."""
        try:
            return cls.model.select().where(cls.model.enabled == True).first()  # noqa: E712
        except Exception as e:
            logging.exception(f"Failed to get active LDAP config: {e}")
            return None

    @classmethod
    def create_config(cls, config_data: Dict) -> Optional[LDAPConfig]:
        """Create a new LDAP configuration."""
        try:
            return cls.save(**config_data)
        except Exception as e:
            logging.exception(f"Failed to create LDAP config: {e}")
            return None

    @classmethod
    def update_config(cls, config_id: str, config_data: Dict) -> bool:
        """Update LDAP configuration."""
        try:
            return cls.update_by_id(config_id, config_data) > 0
        except Exception as e:
            logging.exception(f"Failed to update LDAP config {config_id}: {e}")
            return False

    @classmethod
    def update_sync_status(cls, config_id: str, status: str, sync_time: Optional[datetime] = None) -> bool:
        """Update synchronization status."""
        update_data = {'sync_status': status}
        if sync_time:
            update_data['last_sync_time'] = sync_time
        try:
            return cls.update_by_id(config_id, update_data) > 0
        except Exception as e:
            logging.exception(f"Failed to update sync status for config {config_id}: {e}")
            return False


class _DirectoryObjectService(CommonService):
    """Upsert and staleness bookkeeping shared by synchronized users and groups."""

    @classmethod
    def _entry_fields(cls, entry) -> Dict:
        raise NotImplementedError

    @classmethod
    @DB.connection_context()
    def get_by_remote_id(cls, config_id: str, remote_id: str):
        try:
            return cls.model.select().where(
                (cls.model.ldap_config_id == config_id) &
                (cls.model.remote_id == remote_id)
            ).first()
        except Exception as e:
            logging.exception(f"Failed to get {cls.model.__name__} by remote id {remote_id}: {e}")
            return None

    @classmethod
    def upsert_entry(cls, config_id: str, entry, sync_time: Optional[datetime] = None) -> Tuple[Optional[object], bool]:
        """
        Create or update the record for a directory entry. Returns (record, created).

        ``sync_time`` stamps every record of one sync pass; mark_stale() compares against it.
        """
        try:
            data = cls._entry_fields(entry)
            data.update({
                'is_active': True,
                'sync_status': 'synced',
                'last_sync_time': sync_time or datetime.now(),
            })

            existing = cls.get_by_remote_id(config_id, entry.remote_id)
            if existing:
                cls.update_by_id(existing.id, data)
                _, record = cls.get_by_id(existing.id)
                return record, False

            data.update({'ldap_config_id': config_id, 'remote_id': entry.remote_id})
            return cls.save(**data), True
        except Exception as e:
            logging.exception(f"Failed to create/update {cls.model.__name__} {entry.remote_id}: {e}")
            return None, False

    @classmethod
    @DB.connection_context()
    def mark_stale(cls, config_id: str, sync_time: datetime, keep_remote_ids: Iterable[str] = ()) -> int:
        """Mark records as inactive if the sync pass stamped ``sync_time`` did not touch them."""
        try:
            condition = (
                (cls.model.ldap_config_id == config_id) &
                (cls.model.is_active == True) &  # noqa: E712
                ((cls.model.last_sync_time < sync_time) | (cls.model.last_sync_time.is_null()))
            )
            keep = list(keep_remote_ids)
            if keep:
                condition &= cls.model.remote_id.not_in(keep)
            return cls.model.update(
                is_active=False,
                sync_status='stale',
                update_time=current_timestamp(),
                update_date=datetime_format(datetime.now())
            ).where(condition).execute()
        except Exception as e:
            logging.exception(f"Failed to mark stale {cls.model.__name__} for config {config_id}: {e}")
            return 0

    @classmethod
    @DB.connection_context()
    def get_by_config(cls, config_id: str, active_only: bool = True) -> List:
        try:
            query = cls.model.select().where(cls.model.ldap_config_id == config_id)
            if active_only:
                query = query.where(cls.model.is_active == True)  # noqa: E712
            return list(query)
        except Exception as e:
            logging.exception(f"Failed to get {cls.model.__name__} for config {config_id}: {e}")
            return []

    @classmethod
    @DB.connection_context()
    def cleanup_stale(cls, config_id: str, days: int = 30) -> int:
        """Delete records that have been stale for more than specified days."""
        try:
            cutoff_date = datetime.now() - timedelta(days=days)
            return cls.model.delete().where(
                (cls.model.ldap_config_id == config_id) &
                (cls.model.sync_status == 'stale') &
                (cls.model.update_date < cutoff_date)
            ).execute()
        except Exception as e:
            logging.exception(f"Failed to cleanup stale {cls.model.__name__} for config {config_id}: {e}")
            return 0


class LDAPUserService(_DirectoryObjectService):
    """Service class for managing synchronized LDAP users."""
    model = LDAPUser

    @classmethod
    def _entry_fields(cls, entry) -> Dict:
        return {
            'login': entry.login,
            'common_name': entry.cn,
            'first_name': entry.first_name,
            'last_name': entry.last_name,
            'email': entry.email,
            'display_name': entry.display_name,
            'groups': list(entry.groups),
        }

    @classmethod
    @DB.connection_context()
    def get_by_login(cls, config_id: str, login: str) -> Optional[LDAPUser]:
        try:
            return cls.model.select().where(
                (cls.model.ldap_config_id == config_id) &
                (cls.model.login == login)
            ).first()
        except Exception as e:
            logging.exception(f"Failed to get LDAP user {login}: {e}")
            return None

    @classmethod
    def set_user_status(cls, user_id: str, is_active: bool) -> bool:
        try:
            return cls.update_by_id(user_id, {'is_active': is_active}) > 0
        except Exception as e:
            logging.exception(f"Failed to set user status {user_id}: {e}")
            return False

    @classmethod
    def update_login_time(cls, user_id: str) -> bool:
        try:
            return cls.update_by_id(user_id, {'last_login_time': datetime_format(datetime.now())}) > 0
        except Exception as e:
            logging.exception(f"Failed to update login time for user {user_id}: {e}")
            return False


class LDAPGroupService(_DirectoryObjectService):
    """Service class for managing synchronized LDAP groups."""
    model = LDAPGroup

    @classmethod
    def _entry_fields(cls, entry) -> Dict:
        return {
            'common_name': entry.cn,
            'members': list(entry.members),
        }
