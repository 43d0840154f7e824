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
Shared test fixtures.

The Planet Express directory mirrors the rroemhild/test-openldap image
(users professor/professor, fry, leela, ...; groups ship_crew and
admin_staff) and is served by ldap3's MOCK_SYNC strategy, so tests run
without a directory server.
"""
import os
import tempfile
import unittest
from unittest.mock import patch

from ldap3 import MOCK_SYNC, NONE, Connection, Server

from dirsync.db.db_models import DB, init_database
from dirsync.ldap.config import AttributeMap, DirectoryConfig, EncryptionType, ServerType

ROOT_DN = "dc=planetexpress,dc=com"
PEOPLE_DN = "ou=people,dc=planetexpress,dc=com"
ADMIN_DN = "cn=admin,dc=planetexpress,dc=com"
ADMIN_PASSWORD = "GoodNewsEveryone"


def user_dn(uid):
    return f"uid={uid},{PEOPLE_DN}"


def group_dn(cn):
    return f"cn={cn},{PEOPLE_DN}"


USERS = {
    "professor": {
        "cn": "Hubert J. Farnsworth", "givenName": "Hubert", "sn": "Farnsworth",
        "mail": "professor@planetexpress.com", "userPassword": "professor",
    },
    "fry": {
        "cn": "Philip J. Fry", "givenName": "Philip", "sn": "Fry",
        "mail": "fry@planetexpress.com", "userPassword": "fry",
    },
    "leela": {
        "cn": "Turanga Leela", "givenName": "Leela", "sn": "Turanga",
        "mail": "leela@planetexpress.com", "userPassword": "leela",
    },
    "bender": {
        # no mail attribute
        "cn": "Bender Bending Rodriguez", "givenName": "Bender", "sn": "Rodriguez",
        "userPassword": "bender",
    },
    "hermes": {
        "cn": "Hermes Conrad", "givenName": "Hermes", "sn": "Conrad",
        "mail": "hermes@planetexpress.com", "userPassword": "hermes",
    },
    "amy": {
        # display name only, no givenName/sn
        "cn": "Amy Wong", "displayName": "Amy Wong",
        "mail": "amy@planetexpress.com", "userPassword": "amy",
    },
}

GROUPS = {
    # nibbler is referenced but does not exist
    "ship_crew": ["fry", "leela", "bender", "nibbler"],
    "admin_staff": ["professor", "hermes"],
    "delivery_robots": ["bender"],
}

ALL_USER_DNS = {user_dn(uid) for uid in USERS}
CREW_FILTER = "(&(objectClass=group)(|(cn=ship_crew)(cn=admin_staff)))"


def seed_entry(server, dn, attributes):
    conn = Connection(server, user=ADMIN_DN, password=ADMIN_PASSWORD, client_strategy=MOCK_SYNC)
    conn.strategy.add_entry(dn, attributes)


def build_directory(host="planetexpress.test"):
    """Return an ldap3 Server whose mock DIT holds the Planet Express fixture."""
    server = Server(host, get_info=NONE)
    conn = Connection(server, user=ADMIN_DN, password=ADMIN_PASSWORD, client_strategy=MOCK_SYNC)
    add = conn.strategy.add_entry
    add(ROOT_DN, {"objectClass": ["dcObject", "organization"], "dc": "planetexpress", "o": "Planet Express"})
    add(ADMIN_DN, {"objectClass": ["simpleSecurityObject", "organizationalRole"], "cn": "admin",
                   "userPassword": ADMIN_PASSWORD})
    add(PEOPLE_DN, {"objectClass": ["organizationalUnit"], "ou": "people"})
    for uid, attrs in USERS.items():
        entry = {"objectClass": ["inetOrgPerson", "person"], "uid": uid}
        entry.update(attrs)
        add(user_dn(uid), entry)
    for cn, members in GROUPS.items():
        add(group_dn(cn), {"objectClass": ["group"], "cn": cn,
                           "member": [user_dn(uid) for uid in members]})
    return server


def make_config(**overrides):
    values = dict(
        server_host="planetexpress.test",
        server_port=389,
        server_type=ServerType.LDAP,
        encryption_type=EncryptionType.NONE,
        base_dn=PEOPLE_DN,
        bind_dn=ADMIN_DN,
        bind_password=ADMIN_PASSWORD,
        attributes=AttributeMap(user_rdn="uid", user_firstname="givenName", user_lastname="sn",
                                user_email="mail", user_group_name="", group_member="member"),
    )
    values.update(overrides)
    return DirectoryConfig(**values)


class MockDirectoryTestCase(unittest.TestCase):
    """Routes LDAPConnectionManager's Server/Connection to the mock directory."""

    def setUp(self):
        super().setUp()
        self.server = build_directory()
        self.connections = []

        def fake_server(*args, **kwargs):
            return self.server

        def fake_connection(server, **kwargs):
            conn = Connection(server, client_strategy=MOCK_SYNC, **kwargs)
            self.connections.append(conn)
            return conn

        for target, side_effect in (("dirsync.ldap.ldap_auth.Server", fake_server),
                                    ("dirsync.ldap.ldap_auth.Connection", fake_connection)):
            patcher = patch(target, side_effect=side_effect)
            patcher.start()
            self.addCleanup(patcher.stop)


class DatabaseTestCase(unittest.TestCase):
    """Fresh SQLite database per test."""

    def setUp(self):
        super().setUp()
        self._db_dir = tempfile.TemporaryDirectory()
        init_database(os.path.join(self._db_dir.name, "dirsync_test.db"))
        self.addCleanup(self._close_database)

    def _close_database(self):
        if not DB.is_closed():
            DB.close()
        self._db_dir.cleanup()
