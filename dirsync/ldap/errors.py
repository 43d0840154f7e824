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
Typed failures of the directory layer.

A wrong password is not an error: authentication reports it as ``False``.
Everything here means the directory could not be asked the question.
"""

from typing import Optional


class LDAPError(Exception):
    """Base exception for directory operations"""

    def __init__(self, message: str, phase: str = "", result_code: Optional[int] = None):
        self.message = message
        self.phase = phase
        self.result_code = result_code
        super().__init__(self.message)

    def __str__(self):
        if self.phase:
            return f"[{self.phase}] {self.message}"
        return self.message


class DirectoryConfigError(LDAPError, ValueError):
    """Raised when a directory configuration fails validation"""

    def __init__(self, message: str):
        super().__init__(message, phase="config")


class DirectoryConnectionError(LDAPError):
    """Dial, TLS handshake, StartTLS upgrade or transport failure"""


class DirectoryBindError(LDAPError):
    """Service-account bind rejected by the server"""

    def __init__(self, bind_dn: str, result_code: Optional[int] = None, description: str = ""):
        message = f"Bind as {bind_dn} rejected"
        if description:
            message = f"{message}: {description}"
        super().__init__(message, phase="bind", result_code=result_code)
        self.bind_dn = bind_dn
        self.description = description


class DirectorySearchError(LDAPError):
    """Invalid filter or server-side search failure"""

    def __init__(self, message: str, kind: str = "", result_code: Optional[int] = None):
        super().__init__(message, phase="search", result_code=result_code)
        self.kind = kind
