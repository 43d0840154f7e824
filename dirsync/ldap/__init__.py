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

"""
Directory (LDAP) integration.

- connect to LDAP, LDAPS or StartTLS directories as a service account
- run user and group filters and map entries into DirectoryEntry records
- verify end-user credentials by DN bind
- synchronize users and groups into the local store, on demand or on a schedule
"""

from .config import AttributeMap, DirectoryConfig, EncryptionType, FilterKind, ServerType
from .errors import (
    DirectoryBindError,
    DirectoryConfigError,
    DirectoryConnectionError,
    DirectorySearchError,
    LDAPError,
)
from .ldap_filter import DirectoryEntry, execute_filter, execute_group_filter, execute_user_filter
from .ldap_auth import LDAPAuthenticator, LDAPConnectionManager, authenticate
from .ldap_sync import LDAPSyncService, SyncResult
from .ldap_scheduler import LDAPScheduler, force_ldap_sync, start_ldap_scheduler, stop_ldap_scheduler

__all__ = [
    'AttributeMap',
    'DirectoryConfig',
    'DirectoryEntry',
    'EncryptionType',
    'FilterKind',
    'ServerType',
    'LDAPError',
    'DirectoryBindError',
    'DirectoryConfigError',
    'DirectoryConnectionError',
    'DirectorySearchError',
    'LDAPConnectionManager',
    'LDAPAuthenticator',
    'LDAPSyncService',
    'LDAPScheduler',
    'SyncResult',
    'authenticate',
    'execute_filter',
    'execute_user_filter',
    'execute_group_filter',
    'start_ldap_scheduler',
    'stop_ldap_scheduler',
    'force_ldap_sync',
]
