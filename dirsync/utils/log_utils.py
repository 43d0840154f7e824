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
import os
from logging.handlers import RotatingFileHandler

from dirsync import settings

_LOG_FORMAT = "%(asctime)-15s %(levelname)-8s %(process)d %(name)s: %(message)s"

initialized_root_logger = ""


def parse_log_levels(value: str) -> dict:
    """Parse ``"root=INFO,ldap3=WARNING"`` into ``{"root": 20, "ldap3": 30}``.

    Unknown level names fall back to INFO.
    """
    levels = {}
    for item in (value or "").split(","):
        item = item.strip()
        if not item or "=" not in item:
            continue
        name, level = item.split("=", 1)
        name = name.strip()
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO
        if name:
            levels[name] = level
    return levels


def init_root_logger(logfile_basename: str, log_format: str = _LOG_FORMAT, log_dir: str = None):
    global initialized_root_logger
    if initialized_root_logger:
        return
    initialized_root_logger = logfile_basename

    logger = logging.getLogger()
    logger.handlers.clear()

    log_dir = log_dir or settings.LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, f"{logfile_basename}.log")

    formatter = logging.Formatter(log_format)

    handler1 = RotatingFileHandler(log_path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
    handler1.setFormatter(formatter)
    logger.addHandler(handler1)

    handler2 = logging.StreamHandler()
    handler2.setFormatter(formatter)
    logger.addHandler(handler2)

    levels = {"peewee": logging.WARNING, "ldap3": logging.WARNING}
    levels.update(parse_log_levels(settings.LOG_LEVELS))
    logger.setLevel(levels.pop("root", logging.INFO))
    for pkg_name, level in levels.items():
        logging.getLogger(pkg_name).setLevel(level)

    logging.info(f"{logfile_basename} log path: {log_path}, log levels: {levels}")
