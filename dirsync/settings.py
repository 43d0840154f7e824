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
import os


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


PROJECT_BASE = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))

DATABASE_PATH = os.environ.get("DIRSYNC_DB_PATH", os.path.join(PROJECT_BASE, "data", "dirsync.db"))

LOG_DIR = os.environ.get("LOG_DIR", os.path.join(PROJECT_BASE, "logs"))
# e.g. "root=INFO,ldap3=WARNING,peewee=WARNING"
LOG_LEVELS = os.environ.get("LOG_LEVELS", "")

# Per-call deadlines; every DirectoryConfig built without explicit values inherits these.
LDAP_CONNECT_TIMEOUT = _float_env("LDAP_CONNECT_TIMEOUT", 10.0)
LDAP_RECEIVE_TIMEOUT = _float_env("LDAP_RECEIVE_TIMEOUT", 30.0)

LDAP_SYNC_MIN_INTERVAL = _int_env("LDAP_SYNC_MIN_INTERVAL", 30)
LDAP_SCHEDULER_TICK = _int_env("LDAP_SCHEDULER_TICK", 10)
