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
import time
import uuid
from datetime import datetime


def get_uuid():
    return uuid.uuid1().hex


def current_timestamp():
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


def datetime_format(date_time: datetime) -> datetime:
    return datetime(date_time.year, date_time.month, date_time.day,
                    date_time.hour, date_time.minute, date_time.second)
