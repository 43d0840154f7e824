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
import json
import logging
import os

from peewee import (
    BigIntegerField,
    BooleanField,
    CharField,
    DatabaseProxy,
    DateTimeField,
    FloatField,
    IntegerField,
    Model,
    SqliteDatabase,
    TextField,
)

from dirsync import settings

DB = DatabaseProxy()


class JSONField(TextField):
    default_value = {}

    def __init__(self, object_hook=None, object_pairs_hook=None, **kwargs):
        self._object_hook = object_hook
        self._object_pairs_hook = object_pairs_hook
        kwargs.setdefault("default", lambda: type(self.default_value)())
        super().__init__(**kwargs)

    def db_value(self, value):
        if value is None:
            value = type(self.default_value)()
        return json.dumps(value, ensure_ascii=False)

    def python_value(self, value):
        if not value:
            return type(self.default_value)()
        return json.loads(value, object_hook=self._object_hook, object_pairs_hook=self._object_pairs_hook)


class ListField(JSONField):
    default_value = []


class BaseModel(Model):
    create_time = BigIntegerField(null=True, index=True)
    create_date = DateTimeField(null=True, index=True)
    update_time = BigIntegerField(null=True, index=True)
    update_date = DateTimeField(null=True, index=True)

    def to_dict(self):
        return self.__data__.copy()

    class Meta:
        database = DB


class LDAPConfig(BaseModel):
    id = CharField(max_length=32, primary_key=True)
    name = CharField(max_length=128, null=False, default="", index=True)
    server_host = CharField(max_length=255, null=False)
    server_port = IntegerField(null=False, default=389)
    server_type = CharField(max_length=16, null=False, default="ldap")
    encryption_type = CharField(max_length=16, null=False, default="none")
    base_dn = CharField(max_length=512, null=False)
    bind_dn = CharField(max_length=512, null=False)
    bind_password = CharField(max_length=255, null=False)
    user_filter = TextField(null=False, default="")
    group_filter = TextField(null=False, default="")
    attr_user_rdn = CharField(max_length=64, null=False, default="uid")
    attr_user_firstname = CharField(max_length=64, null=False, default="givenName")
    attr_user_lastname = CharField(max_length=64, null=False, default="sn")
    attr_user_email = CharField(max_length=64, null=False, default="mail")
    attr_user_display_name = CharField(max_length=64, null=False, default="")
    attr_user_group_name = CharField(max_length=64, null=False, default="")
    attr_group_member = CharField(max_length=64, null=False, default="member")
    tls_validate = BooleanField(default=False)
    ca_certs_file = CharField(max_length=512, null=False, default="")
    connect_timeout = FloatField(null=True)
    receive_timeout = FloatField(null=True)
    enabled = BooleanField(default=True, index=True)
    sync_enabled = BooleanField(default=False)
    sync_interval = IntegerField(default=3600)
    sync_status = CharField(max_length=16, null=True, index=True)
    last_sync_time = DateTimeField(null=True)

    def to_dict(self):
        data = super().to_dict()
        data.pop("bind_password", None)
        return data

    class Meta:
        table_name = "ldap_config"


class LDAPUser(BaseModel):
    id = CharField(max_length=32, primary_key=True)
    ldap_config_id = CharField(max_length=32, null=False, index=True)
    remote_id = CharField(max_length=512, null=False, index=True)
    login = CharField(max_length=255, null=False, default="", index=True)
    common_name = CharField(max_length=255, null=False, default="")
    first_name = CharField(max_length=255, null=False, default="")
    last_name = CharField(max_length=255, null=False, default="")
    email = CharField(max_length=255, null=False, default="", index=True)
    display_name = CharField(max_length=255, null=False, default="")
    groups = ListField(null=True)
    is_active = BooleanField(default=True, index=True)
    sync_status = CharField(max_length=16, null=True, index=True)
    last_sync_time = DateTimeField(null=True)
    last_login_time = DateTimeField(null=True)

    class Meta:
        table_name = "ldap_user"
        indexes = ((("ldap_config_id", "remote_id"), True),)


class LDAPGroup(BaseModel):
    id = CharField(max_length=32, primary_key=True)
    ldap_config_id = CharField(max_length=32, null=False, index=True)
    remote_id = CharField(max_length=512, null=False, index=True)
    common_name = CharField(max_length=255, null=False, default="")
    members = ListField(null=True)
    is_active = BooleanField(default=True, index=True)
    sync_status = CharField(max_length=16, null=True, index=True)
    last_sync_time = DateTimeField(null=True)

    class Meta:
        table_name = "ldap_group"
        indexes = ((("ldap_config_id", "remote_id"), True),)


MODELS = [LDAPConfig, LDAPUser, LDAPGroup]


def init_database(path: str = None):
    """Bind the models to a SQLite file and create missing tables."""
    path = path or settings.DATABASE_PATH
    directory = os.path.dirname(path)
    if directory and path != ":memory:":
        os.makedirs(directory, exist_ok=True)
    database = SqliteDatabase(path, pragmas={"journal_mode": "wal", "foreign_keys": 1})
    DB.initialize(database)
    with DB.connection_context():
        DB.create_tables(MODELS, safe=True)
    logging.info(f"Database initialized at {path}")
    return database
