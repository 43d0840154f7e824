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
import unittest

from dirsync.utils.log_utils import parse_log_levels


class TestParseLogLevels(unittest.TestCase):

    def test_parse(self):
        self.assertEqual(parse_log_levels("root=DEBUG, ldap3=warning,peewee=ERROR"),
                         {"root": logging.DEBUG, "ldap3": logging.WARNING, "peewee": logging.ERROR})

    def test_unknown_level_is_info(self):
        self.assertEqual(parse_log_levels("dirsync=LOUD"), {"dirsync": logging.INFO})

    def test_malformed_items_ignored(self):
        self.assertEqual(parse_log_levels("garbage,,=DEBUG"), {})
        self.assertEqual(parse_log_levels(None), {})


if __name__ == '__main__':
    unittest.main()
