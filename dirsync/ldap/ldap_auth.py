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
import ssl
from typing import Optional, Tuple

from ldap3 import NONE, SIMPLE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPCommunicationError, LDAPException, LDAPResponseTimeoutError

from dirsync.db.services.ldap_service import LDAPConfigService
from dirsync.ldap.config import DirectoryConfig, EncryptionType
from dirsync.ldap.errors import DirectoryBindError, DirectoryConnectionError
from dirsync.ldap.ldap_filter import DirectoryEntry, find_entries_by_login

_TRANSPORT_ERRORS = (LDAPCommunicationError, LDAPResponseTimeoutError)


def _safe_unbind(connection):
    if connection is None:
        return
    try:
        connection.unbind()
    except LDAPException as e:
        logging.debug(f"Ignoring error while closing LDAP connection: {e}")


class LDAPConnectionManager:
    """Owns one directory connection bound as the service account."""

    def __init__(self, config: DirectoryConfig):
        self.config = config
        self.server = None
        self._connection = None

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise DirectoryConnectionError("LDAP connection is not open", phase="connect")
        return self._connection

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def _create_tls(self) -> Optional[Tls]:
        if self.config.encryption_type == EncryptionType.NONE:
            return None
        return Tls(
            validate=ssl.CERT_REQUIRED if self.config.tls_validate else ssl.CERT_NONE,
            ca_certs_file=self.config.ca_certs_file or None,
        )

    def _create_server(self) -> Server:
        """Create LDAP server instance."""
        self.server = Server(
            host=self.config.server_host,
            port=self.config.server_port,
            use_ssl=self.config.encryption_type == EncryptionType.LDAPS,
            tls=self._create_tls(),
            get_info=NONE,
            connect_timeout=self.config.connect_timeout,
        )
        return self.server

    def connect(self) -> Connection:
        """
        Open the transport, negotiate encryption and bind as the service account.

        Raises DirectoryConnectionError for dial/TLS/StartTLS failures and
        DirectoryBindError when the server rejects the service credentials.
        """
        if self._connection is not None:
            return self._connection
        if not self.server:
            self._create_server()

        uri = self.config.server_uri
        conn = Connection(
            self.server,
            user=self.config.bind_dn,
            password=self.config.bind_password,
            authentication=SIMPLE,
            auto_bind=False,
            raise_exceptions=False,
            read_only=True,
            receive_timeout=self.config.receive_timeout,
        )
        try:
            try:
                conn.open(read_server_info=False)
            except LDAPException as e:
                raise DirectoryConnectionError(f"Unable to connect to {uri}: {e}", phase="connect")

            if self.config.encryption_type == EncryptionType.STARTTLS:
                try:
                    upgraded = conn.start_tls(read_server_info=False)
                except LDAPException as e:
                    raise DirectoryConnectionError(f"StartTLS negotiation with {uri} failed: {e}", phase="starttls")
                if not upgraded:
                    result = conn.result or {}
                    raise DirectoryConnectionError(
                        f"{uri} rejected StartTLS: {result.get('description') or 'no result'}",
                        phase="starttls",
                        result_code=result.get('result'),
                    )

            try:
                bound = conn.bind(read_server_info=False)
            except _TRANSPORT_ERRORS as e:
                raise DirectoryConnectionError(f"Connection to {uri} lost during bind: {e}", phase="bind")
            except LDAPException as e:
                raise DirectoryBindError(self.config.bind_dn, description=str(e))
            if not bound:
                result = conn.result or {}
                raise DirectoryBindError(self.config.bind_dn, result.get('result'), result.get('description', ""))
        except (DirectoryConnectionError, DirectoryBindError) as e:
            logging.error(f"Failed to connect to LDAP server: {e}")
            _safe_unbind(conn)
            raise

        logging.debug(f"Bound to {uri} as {self.config.bind_dn}")
        self._connection = conn
        return conn

    def bind_as(self, dn: str, password: str) -> bool:
        """
        Re-bind the open connection as ``dn``.

        A rejected bind is a negative answer, not an error. Callers must
        follow up with restore_service_bind().
        """
        conn = self.connection
        try:
            ok = bool(conn.rebind(user=dn, password=password, authentication=SIMPLE, read_server_info=False))
        except _TRANSPORT_ERRORS as e:
            self._lost(f"Connection lost while binding as {dn}: {e}")
        except LDAPException as e:
            # rebind() reports a dropped socket as LDAPBindError
            if conn.closed:
                self._lost(f"Connection lost while binding as {dn}: {e}")
            logging.debug(f"Bind as {dn} rejected: {e}")
            return False
        if not ok and conn.closed:
            self._lost(f"Connection lost while binding as {dn}")
        return ok

    def restore_service_bind(self) -> bool:
        """
        Bind back as the service account.

        A rejected bind closes the connection and returns False. A lost
        transport raises DirectoryConnectionError.
        """
        conn = self._connection
        if conn is None:
            return False
        try:
            ok = bool(conn.rebind(user=self.config.bind_dn, password=self.config.bind_password,
                                  authentication=SIMPLE, read_server_info=False))
        except _TRANSPORT_ERRORS as e:
            self._lost(f"Connection lost while restoring service bind: {e}")
        except LDAPException as e:
            if conn.closed:
                self._lost(f"Connection lost while restoring service bind: {e}")
            logging.warning(f"Unable to restore service bind: {e}")
            ok = False
        if not ok:
            if conn.closed:
                self._lost("Connection lost while restoring service bind")
            logging.warning("Closing LDAP connection: service account bind could not be restored")
            self.disconnect()
        return ok

    def _lost(self, message: str):
        logging.error(message)
        self.disconnect()
        raise DirectoryConnectionError(message, phase="authenticate")

    def disconnect(self):
        """Close LDAP connection."""
        conn, self._connection = self._connection, None
        _safe_unbind(conn)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


def _verify_credential(conn_mgr: LDAPConnectionManager, config: DirectoryConfig,
                       login: str, password: str) -> Optional[DirectoryEntry]:
    login = (login or "").strip()
    if not login or not password:
        # An empty password would turn into an anonymous bind.
        logging.warning("LDAP authentication refused: empty login or password")
        return None

    entries = find_entries_by_login(conn_mgr.connection, config, login)
    if not entries:
        logging.warning(f"LDAP authentication failed: login {login} not found")
        return None
    if len(entries) > 1:
        logging.warning(f"LDAP authentication failed: login {login} is ambiguous ({len(entries)}+ entries)")
        return None

    entry = entries[0]
    ok = conn_mgr.bind_as(entry.remote_id, password)
    conn_mgr.restore_service_bind()

    if not ok:
        logging.warning(f"Invalid credentials for user {login}")
        return None
    logging.info(f"LDAP user {login} authenticated as {entry.remote_id}")
    return entry


def authenticate(conn_mgr: LDAPConnectionManager, config: DirectoryConfig, login: str, password: str) -> bool:
    """
    Prove ``login``/``password`` against the directory.

    Returns False for a wrong password or an unknown or ambiguous login.
    Raises DirectoryConnectionError, DirectoryBindError or
    DirectorySearchError when the directory cannot answer.
    """
    return _verify_credential(conn_mgr, config, login, password) is not None


class LDAPAuthenticator:
    """Handles LDAP authentication operations."""

    def __init__(self, config: Optional[DirectoryConfig] = None):
        self.config = config

    def get_config(self) -> Optional[DirectoryConfig]:
        """Use the given configuration, else the active persisted one."""
        if not self.config:
            model = LDAPConfigService.get_active_config()
            if model and model.enabled:
                self.config = DirectoryConfig.from_model(model)
        return self.config

    def authenticate_user(self, username: str, password: str) -> Tuple[bool, Optional[DirectoryEntry]]:
        """
        Authenticate user against LDAP on a dedicated connection.

        Returns:
            Tuple[bool, Optional[DirectoryEntry]]: (success, user entry)
        """
        config = self.get_config()
        if not config:
            logging.warning("LDAP authentication skipped: no active LDAP configuration")
            return False, None

        with LDAPConnectionManager(config) as conn_mgr:
            entry = _verify_credential(conn_mgr, config, username, password)
        return entry is not None, entry
