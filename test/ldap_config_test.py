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
import dataclasses
import unittest
from unittest.mock import Mock

import pytest

from dirsync.db.db_models import LDAPConfig
from dirsync.ldap.config import (
    DEFAULT_FILTERS,
    AttributeMap,
    DirectoryConfig,
    EncryptionType,
    FilterKind,
    ServerType,
    default_port,
)
from dirsync.ldap.errors import DirectoryConfigError, LDAPError


class TestDirectoryConfig(unittest.TestCase):

    def setUp(self):
        self.base = dict(
            server_host="ldap.test.com",
            base_dn="ou=users,dc=test,dc=com",
            bind_dn="cn=admin,dc=test,dc=com",
            bind_password="password",
        )

    def test_defaults(self):
        config = DirectoryConfig(**self.base)
        self.assertEqual(config.server_port, 389)
        self.assertEqual(config.server_type, ServerType.LDAP)
        self.assertEqual(config.encryption_type, EncryptionType.NONE)
        self.assertEqual(config.user_filter, DEFAULT_FILTERS[ServerType.LDAP][FilterKind.USER])
        self.assertEqual(config.group_filter, DEFAULT_FILTERS[ServerType.LDAP][FilterKind.GROUP])
        self.assertEqual(config.attributes.user_rdn, "uid")
        self.assertEqual(config.server_uri, "ldap://ldap.test.com:389")

    def test_ldaps_default_port(self):
        config = DirectoryConfig(encryption_type="ldaps", **self.base)
        self.assertEqual(config.server_port, 636)
        self.assertEqual(config.server_uri, "ldaps://ldap.test.com:636")
        self.assertEqual(default_port(EncryptionType.STARTTLS), 389)

    def test_encryption_aliases(self):
        self.assertEqual(DirectoryConfig(encryption_type="StartTLS", **self.base).encryption_type,
                         EncryptionType.STARTTLS)
        self.assertEqual(DirectoryConfig(encryption_type="ssl", **self.base).encryption_type,
                         EncryptionType.LDAPS)
        with self.assertRaises(DirectoryConfigError):
            DirectoryConfig(encryption_type="rot13", **self.base)

    def test_ad_defaults(self):
        config = DirectoryConfig(server_type="AD", **self.base)
        self.assertEqual(config.user_filter, "(&(objectCategory=person)(objectClass=user))")
        self.assertEqual(config.group_filter, "(objectClass=group)")
        self.assertEqual(config.attributes.user_rdn, "sAMAccountName")
        self.assertEqual(config.attributes.user_group_name, "memberOf")

    def test_filters_are_wrapped_and_trimmed(self):
        config = DirectoryConfig(user_filter="  objectClass=person ", group_filter="(cn=crew)", **self.base)
        self.assertEqual(config.user_filter, "(objectClass=person)")
        self.assertEqual(config.group_filter, "(cn=crew)")
        self.assertEqual(config.filter_for(FilterKind.USER), "(objectClass=person)")
        self.assertEqual(config.filter_for("group"), "(cn=crew)")

    def test_strings_are_trimmed(self):
        values = dict(self.base, server_host="  ldap.test.com ", base_dn=" ou=users,dc=test,dc=com\n")
        config = DirectoryConfig(**values)
        self.assertEqual(config.server_host, "ldap.test.com")
        self.assertEqual(config.base_dn, "ou=users,dc=test,dc=com")

    def test_missing_bind_credentials_rejected(self):
        for field in ("bind_dn", "bind_password"):
            values = dict(self.base)
            values[field] = ""
            with self.assertRaises(DirectoryConfigError):
                DirectoryConfig(**values)

    def test_required_fields(self):
        for field in ("server_host", "base_dn"):
            values = dict(self.base)
            values[field] = "   "
            with self.assertRaises(DirectoryConfigError):
                DirectoryConfig(**values)

    def test_port_range(self):
        with self.assertRaises(DirectoryConfigError):
            DirectoryConfig(server_port=70000, **self.base)
        with self.assertRaises(DirectoryConfigError):
            DirectoryConfig(server_port="abc", **self.base)

    def test_timeouts_must_be_positive(self):
        with self.assertRaises(DirectoryConfigError):
            DirectoryConfig(connect_timeout=0, **self.base)

    def test_config_error_is_value_error(self):
        with self.assertRaises(ValueError):
            DirectoryConfig(server_port=-1, **self.base)
        self.assertTrue(issubclass(DirectoryConfigError, LDAPError))

    def test_immutable(self):
        config = DirectoryConfig(**self.base)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            config.base_dn = "dc=other"
        with self.assertRaises(dataclasses.FrozenInstanceError):
            config.attributes.user_rdn = "cn"

    def test_password_not_in_repr(self):
        self.assertNotIn("'password'", repr(DirectoryConfig(**self.base)))

    def test_from_dict_with_attribute_mapping(self):
        config = DirectoryConfig.from_dict(dict(
            self.base,
            server_port="10389",
            encryption_type="starttls",
            attr_mapping={"user_rdn": "cn", "user_email": "userPrincipalName"},
        ))
        self.assertEqual(config.server_port, 10389)
        self.assertEqual(config.encryption_type, EncryptionType.STARTTLS)
        self.assertEqual(config.attributes.user_rdn, "cn")
        self.assertEqual(config.attributes.user_email, "userPrincipalName")
        self.assertEqual(config.attributes.user_firstname, "givenName")

    def test_from_dict_ignores_blank_required_attribute(self):
        config = DirectoryConfig.from_dict(dict(self.base, attr_user_rdn="", attr_user_display_name="displayName"))
        self.assertEqual(config.attributes.user_rdn, "uid")
        self.assertEqual(config.attributes.user_display_name, "displayName")

    def test_from_model(self):
        model = LDAPConfig(
            id="cfg1",
            server_host="ldap.test.com",
            server_port=636,
            server_type="ldap",
            encryption_type="ldaps",
            base_dn="ou=users,dc=test,dc=com",
            bind_dn="cn=admin,dc=test,dc=com",
            bind_password="password",
            user_filter="",
            group_filter="(objectClass=groupOfNames)",
            attr_user_rdn="uid",
            attr_group_member="uniqueMember",
            tls_validate=True,
            connect_timeout=3,
        )
        config = DirectoryConfig.from_model(model)
        self.assertEqual(config.encryption_type, EncryptionType.LDAPS)
        self.assertEqual(config.group_filter, "(objectClass=groupOfNames)")
        self.assertEqual(config.attributes.group_member, "uniqueMember")
        self.assertTrue(config.tls_validate)
        self.assertEqual(config.connect_timeout, 3.0)

    def test_from_model_mock_without_optional_fields(self):
        model = Mock(spec=["server_host", "base_dn", "bind_dn", "bind_password"])
        model.server_host = "ldap.test.com"
        model.base_dn = "dc=test,dc=com"
        model.bind_dn = "cn=admin,dc=test,dc=com"
        model.bind_password = "secret"
        config = DirectoryConfig.from_model(model)
        self.assertEqual(config.server_port, 389)
        self.assertEqual(config.attributes, AttributeMap())

    def test_to_dict_hides_password(self):
        config = DirectoryConfig(**self.base)
        self.assertNotIn("bind_password", config.to_dict())
        self.assertEqual(config.to_dict(include_secret=True)["bind_password"], "password")
        self.assertEqual(config.to_dict()["attr_user_rdn"], "uid")


class TestAttributeMap(unittest.TestCase):

    def test_requested_attributes(self):
        attrs = AttributeMap(user_display_name="displayName", user_group_name="memberOf")
        self.assertEqual(attrs.user_attributes(),
                         ["cn", "uid", "givenName", "sn", "mail", "displayName", "memberOf"])
        self.assertEqual(attrs.group_attributes(), ["cn", "member"])

    def test_duplicate_attribute_names_collapse(self):
        attrs = AttributeMap(user_rdn="CN")
        self.assertEqual(attrs.user_attributes(), ["cn", "givenName", "sn", "mail"])

    def test_required_names(self):
        with pytest.raises(DirectoryConfigError):
            AttributeMap(user_rdn=" ")
        with pytest.raises(DirectoryConfigError):
            AttributeMap(group_member="")


if __name__ == '__main__':
    unittest.main()
