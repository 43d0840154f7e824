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
Search filter execution and entry mapping.

Every function here issues read-only search traffic on a connection that
is already bound as the service account, and turns raw search responses
into ``DirectoryEntry`` records.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ldap3 import BASE, SUBTREE
from ldap3.core.exceptions import (
    LDAPCommunicationError,
    LDAPException,
    LDAPInvalidDnError,
    LDAPInvalidFilterError,
    LDAPResponseTimeoutError,
)
from ldap3.core.results import RESULT_NO_SUCH_OBJECT, RESULT_SIZE_LIMIT_EXCEEDED, RESULT_SUCCESS
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import parse_dn

from dirsync.ldap.config import DEFAULT_FILTERS, DirectoryConfig, FilterKind
from dirsync.ldap.errors import DirectoryConnectionError, DirectorySearchError


@dataclass(frozen=True)
class DirectoryEntry:
    remote_id: str
    cn: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    login: str = ""
    display_name: str = ""
    groups: Tuple[str, ...] = field(default_factory=tuple)
    members: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            'remote_id': self.remote_id,
            'cn': self.cn,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'login': self.login,
            'display_name': self.display_name,
            'groups': list(self.groups),
            'members': list(self.members),
        }


def _values(attributes: Dict, name: str) -> List[str]:
    if not name:
        return []
    value = attributes.get(name.lower())
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    out = []
    for v in value:
        if isinstance(v, bytes):
            v = v.decode('utf-8', errors='replace')
        v = str(v).strip()
        if v:
            out.append(v)
    return out


def _first(attributes: Dict, name: str) -> str:
    values = _values(attributes, name)
    return values[0] if values else ""


def _first_rdn_value(dn: str) -> str:
    try:
        parts = parse_dn(dn)
    except LDAPInvalidDnError:
        return ""
    return parts[0][1] if parts else ""


def extract_entry(config: DirectoryConfig, raw: Dict, kind: FilterKind = FilterKind.USER) -> DirectoryEntry:
    """Map one ``searchResEntry`` response into a ``DirectoryEntry``."""
    dn = str(raw.get('dn') or "")
    attributes = {str(k).lower(): v for k, v in (raw.get('attributes') or {}).items()}
    attrs = config.attributes

    cn = _first(attributes, 'cn') or _first_rdn_value(dn)

    if FilterKind(kind) == FilterKind.GROUP:
        return DirectoryEntry(
            remote_id=dn,
            cn=cn,
            display_name=cn,
            members=tuple(_values(attributes, attrs.group_member)),
        )

    first_name = _first(attributes, attrs.user_firstname)
    last_name = _first(attributes, attrs.user_lastname)
    display_name = _first(attributes, attrs.user_display_name)

    # Fill name gaps from the display name when the directory only carries that.
    if display_name and (not first_name or not last_name):
        parts = display_name.split(" ", 1)
        first_name = first_name or parts[0]
        if len(parts) > 1:
            last_name = last_name or parts[1]

    return DirectoryEntry(
        remote_id=dn,
        cn=cn,
        first_name=first_name,
        last_name=last_name,
        email=_first(attributes, attrs.user_email),
        login=_first(attributes, attrs.user_rdn),
        display_name=display_name or cn,
        groups=tuple(_values(attributes, attrs.user_group_name)),
    )


def _search(connection, config: DirectoryConfig, search_base: str, search_filter: str,
            attributes: List[str], kind: FilterKind, scope=SUBTREE, size_limit: int = 0,
            tolerate: Iterable[int] = ()) -> Tuple[int, List[Dict]]:
    try:
        connection.search(
            search_base=search_base,
            search_filter=search_filter,
            search_scope=scope,
            attributes=attributes,
            size_limit=size_limit,
            time_limit=int(config.receive_timeout),
        )
    except LDAPInvalidFilterError as e:
        raise DirectorySearchError(f"Invalid {kind.value} filter {search_filter!r}: {e}", kind=kind.value)
    except (LDAPCommunicationError, LDAPResponseTimeoutError) as e:
        raise DirectoryConnectionError(f"Lost connection to directory during {kind.value} search: {e}",
                                       phase="search")
    except LDAPException as e:
        raise DirectorySearchError(f"{kind.value} search failed: {e}", kind=kind.value)

    result = connection.result or {}
    code = result.get('result', RESULT_SUCCESS)
    if code != RESULT_SUCCESS and code not in tolerate:
        raise DirectorySearchError(
            f"{kind.value} search under {search_base} failed: {result.get('description')} {result.get('message') or ''}".strip(),
            kind=kind.value,
            result_code=code,
        )

    entries = [r for r in (connection.response or []) if r.get('type') == 'searchResEntry']
    return code, entries


def execute_filter(connection, config: DirectoryConfig, kind: FilterKind) -> List[DirectoryEntry]:
    """
    Run the configured user or group filter under the base DN.

    Returns an empty list when nothing matches.
    Raises DirectorySearchError if the filter is malformed or the server
    rejects the search.
    """
    kind = FilterKind(kind)
    search_filter = config.filter_for(kind)
    if kind == FilterKind.GROUP:
        attributes = config.attributes.group_attributes()
    else:
        attributes = config.attributes.user_attributes()

    logging.debug(f"LDAP {kind.value} search base={config.base_dn} filter={search_filter} attributes={attributes}")
    _, raw_entries = _search(connection, config, config.base_dn, search_filter, attributes, kind)

    entries = [extract_entry(config, raw, kind) for raw in raw_entries]
    logging.info(f"LDAP {kind.value} filter returned {len(entries)} entries")
    return entries


def execute_user_filter(connection, config: DirectoryConfig) -> List[DirectoryEntry]:
    return execute_filter(connection, config, FilterKind.USER)


def execute_group_filter(connection, config: DirectoryConfig) -> List[DirectoryEntry]:
    return execute_filter(connection, config, FilterKind.GROUP)


def login_filter(config: DirectoryConfig, login: str) -> str:
    return f"(&{config.user_filter}({config.attributes.user_rdn}={escape_filter_chars(login)}))"


def find_entries_by_login(connection, config: DirectoryConfig, login: str,
                          size_limit: int = 2) -> List[DirectoryEntry]:
    """Entries whose login attribute equals ``login``; at most ``size_limit``."""
    _, raw_entries = _search(
        connection, config, config.base_dn, login_filter(config, login),
        config.attributes.user_attributes(), FilterKind.USER,
        size_limit=size_limit, tolerate=(RESULT_SIZE_LIMIT_EXCEEDED,),
    )
    return [extract_entry(config, raw) for raw in raw_entries]


def expand_group_members(connection, config: DirectoryConfig, groups: Iterable[DirectoryEntry],
                         known: Optional[Iterable[str]] = None) -> List[DirectoryEntry]:
    """
    Resolve the member DNs of ``groups`` to user entries.

    Members are looked up with the directory type's default person filter, so
    they are added even when the configured user filter does not match them.
    Members already in ``known`` (remote ids) are not fetched again. Members
    that no longer exist or are not person entries (nested groups) are skipped.
    """
    member_filter = DEFAULT_FILTERS[config.server_type][FilterKind.USER]
    seen = {dn.lower() for dn in (known or [])}
    users = []
    for group in groups:
        for member_dn in group.members:
            key = member_dn.lower()
            if key in seen:
                continue
            seen.add(key)
            code, raw_entries = _search(
                connection, config, member_dn, member_filter,
                config.attributes.user_attributes(), FilterKind.USER,
                scope=BASE, tolerate=(RESULT_NO_SUCH_OBJECT,),
            )
            if code == RESULT_NO_SUCH_OBJECT or not raw_entries:
                logging.warning(f"Member {member_dn} of group {group.cn} is not a directory user, skipped")
                continue
            users.append(extract_entry(config, raw_entries[0]))
    return users
