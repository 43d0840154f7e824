#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
dirsync LDAP usage example

Runs against the rroemhild/test-openldap image:

    docker run --rm -p 10389:10389 -p 10636:10636 rroemhild/test-openldap
"""

import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from dirsync.db.db_models import init_database
from dirsync.db.services.ldap_service import LDAPConfigService, LDAPUserService
from dirsync.ldap import DirectoryConfig, LDAPAuthenticator, LDAPError, LDAPSyncService
from dirsync.ldap.ldap_sync import load_groups, load_users
from dirsync.utils.log_utils import init_root_logger

CONFIG = {
    'name': 'planet express',
    'server_host': os.environ.get('LDAP_HOST', 'localhost'),
    'server_port': int(os.environ.get('LDAP_PORT', 10389)),
    'encryption_type': os.environ.get('LDAP_ENCRYPTION', 'none'),
    'base_dn': 'ou=people,dc=planetexpress,dc=com',
    'bind_dn': 'cn=admin,dc=planetexpress,dc=com',
    'bind_password': 'GoodNewsEveryone',
    'group_filter': '(&(objectClass=Group)(|(cn=ship_crew)(cn=admin_staff)))',
    'attr_user_rdn': 'uid',
    'enabled': True,
    'sync_enabled': True,
    'sync_interval': 300,
}


def example_test_connection(config):
    print("=== Test connection ===")
    ok, message = LDAPSyncService().test_connection(config)
    print(f"{'OK' if ok else 'FAILED'}: {message}")
    return ok


def example_filters(config):
    print("\n=== Run filters ===")
    for user in load_users(config):
        print(f"user  {user.login:<12} {user.email:<32} {user.remote_id}")
    for group in load_groups(config):
        print(f"group {group.cn:<12} members={len(group.members)}")


def example_preview(config):
    print("\n=== Preview ===")
    report = LDAPSyncService().preview(config, sample_size=3)
    print(json.dumps(report, indent=2, ensure_ascii=False))


def example_ldap_auth(config):
    print("\n=== Authenticate ===")
    authenticator = LDAPAuthenticator(config)
    for username, password in (("professor", "professor"), ("professor", "wrong"), ("nibbler", "nibbler")):
        success, entry = authenticator.authenticate_user(username, password)
        print(f"{username}/{password}: {success} {entry.remote_id if entry else ''}")


def example_sync(db_path):
    print("\n=== Sync into local store ===")
    init_database(db_path)
    config_model = LDAPConfigService.create_config(dict(CONFIG))
    success, stats = LDAPSyncService(config_model.id).sync_users()
    print(f"success={success} stats={stats}")
    for user in LDAPUserService.get_by_config(config_model.id):
        print(f"  {user.login}: {user.display_name or user.common_name}")


def main():
    init_root_logger("ldap_example")
    config = DirectoryConfig.from_dict(CONFIG)
    try:
        if not example_test_connection(config):
            return 1
        example_filters(config)
        example_preview(config)
        example_ldap_auth(config)
        example_sync(os.environ.get('DIRSYNC_DB_PATH', os.path.join(os.path.dirname(__file__), 'example.db')))
    except LDAPError as e:
        print(f"Directory error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
