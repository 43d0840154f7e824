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
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from dirsync import settings
from dirsync.ldap.errors import DirectoryConfigError


class ServerType(str, Enum):
    LDAP = "ldap"
    AD = "ad"


class EncryptionType(str, Enum):
    NONE = "none"
    STARTTLS = "starttls"
    LDAPS = "ldaps"


class FilterKind(str, Enum):
    USER = "user"
    GROUP = "group"


_ENCRYPTION_ALIASES = {
    "": EncryptionType.NONE,
    "plain": EncryptionType.NONE,
    "start_tls": EncryptionType.STARTTLS,
    "tls": EncryptionType.LDAPS,
    "ssl": EncryptionType.LDAPS,
}

DEFAULT_FILTERS = {
    ServerType.LDAP: {
        FilterKind.USER: "(|(objectClass=person)(objectClass=user)(objectClass=inetOrgPerson))",
        FilterKind.GROUP: "(|(objectClass=group)(objectClass=groupOfNames)(objectClass=groupOfUniqueNames))",
    },
    ServerType.AD: {
        FilterKind.USER: "(&(objectCategory=person)(objectClass=user))",
        FilterKind.GROUP: "(objectClass=group)",
    },
}


def default_port(encryption_type: EncryptionType) -> int:
    return 636 if encryption_type == EncryptionType.LDAPS else 389


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _wrap_filter(search_filter: str) -> str:
    search_filter = _clean(search_filter)
    if search_filter and not (search_filter.startswith("(") and search_filter.endswith(")")):
        search_filter = f"({search_filter})"
    return search_filter


def parse_server_type(value) -> ServerType:
    if isinstance(value, ServerType):
        return value
    raw = _clean(value).lower() or ServerType.LDAP.value
    try:
        return ServerType(raw)
    except ValueError:
        raise DirectoryConfigError(f"Unknown server type: {value!r}")


def parse_encryption_type(value) -> EncryptionType:
    if isinstance(value, EncryptionType):
        return value
    raw = _clean(value).lower()
    if raw in _ENCRYPTION_ALIASES:
        return _ENCRYPTION_ALIASES[raw]
    try:
        return EncryptionType(raw)
    except ValueError:
        raise DirectoryConfigError(f"Unknown encryption type: {value!r}")


@dataclass(frozen=True)
class AttributeMap:
    """Logical field -> directory attribute name."""
    user_rdn: str = "uid"
    user_firstname: str = "givenName"
    user_lastname: str = "sn"
    user_email: str = "mail"
    user_display_name: str = ""
    user_group_name: str = ""
    group_member: str = "member"

    def __post_init__(self):
        for f in fields(self):
            object.__setattr__(self, f.name, _clean(getattr(self, f.name)))
        if not self.user_rdn:
            raise DirectoryConfigError("Login attribute (user_rdn) is required")
        if not self.group_member:
            raise DirectoryConfigError("Group member attribute is required")

    @classmethod
    def defaults_for(cls, server_type: ServerType) -> "AttributeMap":
        if server_type == ServerType.AD:
            return cls(user_rdn="sAMAccountName", user_display_name="displayName",
                       user_group_name="memberOf")
        return cls()

    def user_attributes(self):
        names = [self.user_rdn, self.user_firstname, self.user_lastname, self.user_email,
                 self.user_display_name, self.user_group_name]
        return _unique(["cn"] + [n for n in names if n])

    def group_attributes(self):
        return _unique(["cn", self.group_member])


def _unique(names):
    seen = set()
    out = []
    for name in names:
        key = name.lower()
        if key not in seen:
            seen.add(key)
            out.append(name)
    return out


@dataclass(frozen=True)
class DirectoryConfig:
    """
    Immutable settings for one sync pass or authentication check.

    Validation happens once, here; nothing downstream re-checks
    attribute names or filters per entry.
    """
    server_host: str
    base_dn: str
    bind_dn: str
    bind_password: str = field(repr=False, default="")
    server_port: int = 0
    server_type: ServerType = ServerType.LDAP
    encryption_type: EncryptionType = EncryptionType.NONE
    user_filter: str = ""
    group_filter: str = ""
    attributes: Optional[AttributeMap] = None
    tls_validate: bool = False
    ca_certs_file: str = ""
    connect_timeout: float = settings.LDAP_CONNECT_TIMEOUT
    receive_timeout: float = settings.LDAP_RECEIVE_TIMEOUT

    def __post_init__(self):
        server_type = parse_server_type(self.server_type)
        encryption_type = parse_encryption_type(self.encryption_type)
        object.__setattr__(self, "server_type", server_type)
        object.__setattr__(self, "encryption_type", encryption_type)
        for name in ("server_host", "base_dn", "bind_dn", "ca_certs_file"):
            object.__setattr__(self, name, _clean(getattr(self, name)))
        # Passwords may legitimately carry surrounding spaces.
        object.__setattr__(self, "bind_password", "" if self.bind_password is None else str(self.bind_password))

        try:
            port = int(self.server_port or 0)
        except (TypeError, ValueError):
            raise DirectoryConfigError(f"Invalid server port: {self.server_port!r}")
        if port == 0:
            port = default_port(encryption_type)
        object.__setattr__(self, "server_port", port)

        user_filter = _wrap_filter(self.user_filter) or DEFAULT_FILTERS[server_type][FilterKind.USER]
        group_filter = _wrap_filter(self.group_filter) or DEFAULT_FILTERS[server_type][FilterKind.GROUP]
        object.__setattr__(self, "user_filter", user_filter)
        object.__setattr__(self, "group_filter", group_filter)

        if self.attributes is None:
            object.__setattr__(self, "attributes", AttributeMap.defaults_for(server_type))
        elif isinstance(self.attributes, Mapping):
            object.__setattr__(self, "attributes", _attribute_map(self.attributes, server_type))

        for name in ("connect_timeout", "receive_timeout"):
            try:
                value = float(getattr(self, name))
            except (TypeError, ValueError):
                raise DirectoryConfigError(f"Invalid {name}: {getattr(self, name)!r}")
            if value <= 0:
                raise DirectoryConfigError(f"{name} must be positive")
            object.__setattr__(self, name, value)

        self._validate()

    def _validate(self):
        if not self.server_host:
            raise DirectoryConfigError("Server host is required")
        if not 0 < self.server_port <= 65535:
            raise DirectoryConfigError(f"Server port out of range: {self.server_port}")
        if not self.base_dn:
            raise DirectoryConfigError("Base DN is required")
        if not self.bind_dn or not self.bind_password:
            raise DirectoryConfigError("Bind DN and bind password are required")

    def filter_for(self, kind: FilterKind) -> str:
        if FilterKind(kind) == FilterKind.GROUP:
            return self.group_filter
        return self.user_filter

    @property
    def server_uri(self) -> str:
        scheme = "ldaps" if self.encryption_type == EncryptionType.LDAPS else "ldap"
        return f"{scheme}://{self.server_host}:{self.server_port}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DirectoryConfig":
        server_type = parse_server_type(data.get("server_type"))
        attributes = data.get("attributes") or data.get("attr_mapping")
        if not attributes:
            attributes = {k: data[k] for k in _MODEL_ATTRIBUTE_FIELDS if data.get(k) is not None}
        kwargs = dict(
            server_host=data.get("server_host"),
            server_port=data.get("server_port") or 0,
            server_type=server_type,
            encryption_type=data.get("encryption_type"),
            base_dn=data.get("base_dn"),
            bind_dn=data.get("bind_dn"),
            bind_password=data.get("bind_password"),
            user_filter=data.get("user_filter") or "",
            group_filter=data.get("group_filter") or "",
            attributes=_attribute_map(attributes, server_type),
            tls_validate=bool(data.get("tls_validate", False)),
            ca_certs_file=data.get("ca_certs_file") or "",
        )
        for name in ("connect_timeout", "receive_timeout"):
            if data.get(name):
                kwargs[name] = data[name]
        return cls(**kwargs)

    @classmethod
    def from_model(cls, model) -> "DirectoryConfig":
        """Build from a persisted ``LDAPConfig`` row."""
        data = {name: getattr(model, name, None) for name in _MODEL_FIELDS}
        return cls.from_dict(data)

    def to_dict(self, include_secret: bool = False) -> Dict[str, Any]:
        data = {
            "server_host": self.server_host,
            "server_port": self.server_port,
            "server_type": self.server_type.value,
            "encryption_type": self.encryption_type.value,
            "base_dn": self.base_dn,
            "bind_dn": self.bind_dn,
            "user_filter": self.user_filter,
            "group_filter": self.group_filter,
            "tls_validate": self.tls_validate,
            "ca_certs_file": self.ca_certs_file,
            "connect_timeout": self.connect_timeout,
            "receive_timeout": self.receive_timeout,
        }
        for model_field, attr_field in _MODEL_ATTRIBUTE_FIELDS.items():
            data[model_field] = getattr(self.attributes, attr_field)
        if include_secret:
            data["bind_password"] = self.bind_password
        return data


# LDAPConfig column -> AttributeMap field
_MODEL_ATTRIBUTE_FIELDS = {
    "attr_user_rdn": "user_rdn",
    "attr_user_firstname": "user_firstname",
    "attr_user_lastname": "user_lastname",
    "attr_user_email": "user_email",
    "attr_user_display_name": "user_display_name",
    "attr_user_group_name": "user_group_name",
    "attr_group_member": "group_member",
}

_MODEL_FIELDS = (
    "server_host", "server_port", "server_type", "encryption_type", "base_dn",
    "bind_dn", "bind_password", "user_filter", "group_filter", "tls_validate",
    "ca_certs_file", "connect_timeout", "receive_timeout",
) + tuple(_MODEL_ATTRIBUTE_FIELDS)


def _attribute_map(values: Optional[Mapping[str, Any]], server_type: ServerType) -> AttributeMap:
    if isinstance(values, AttributeMap):
        return values
    base = AttributeMap.defaults_for(server_type)
    if not values:
        return base
    overrides = {}
    for key, value in values.items():
        name = _MODEL_ATTRIBUTE_FIELDS.get(key, key)
        if name in AttributeMap.__dataclass_fields__ and value is not None:
            overrides[name] = value
    merged = {f.name: getattr(base, f.name) for f in fields(base)}
    for name, value in overrides.items():
        # Optional attributes may be explicitly cleared; required ones fall back to the default.
        if _clean(value) or name not in ("user_rdn", "group_member"):
            merged[name] = value
    return AttributeMap(**merged)
