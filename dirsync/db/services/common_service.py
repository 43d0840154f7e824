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
from datetime import datetime

from dirsync.db.db_models import DB
from dirsync.utils import current_timestamp, datetime_format, get_uuid


class CommonService:
    model = None

    @classmethod
    @DB.connection_context()
    def get_by_id(cls, pid):
        obj = cls.model.get_or_none(cls.model.id == pid)
        if obj:
            return True, obj
        return False, None

    @classmethod
    @DB.connection_context()
    def save(cls, **kwargs):
        kwargs.setdefault("id", get_uuid())
        now = datetime_format(datetime.now())
        kwargs["create_time"] = current_timestamp()
        kwargs["create_date"] = now
        kwargs["update_time"] = current_timestamp()
        kwargs["update_date"] = now
        return cls.model.create(**kwargs)

    @classmethod
    @DB.connection_context()
    def update_by_id(cls, pid, data):
        data = dict(data)
        data["update_time"] = current_timestamp()
        data["update_date"] = datetime_format(datetime.now())
        return cls.model.update(**data).where(cls.model.id == pid).execute()
