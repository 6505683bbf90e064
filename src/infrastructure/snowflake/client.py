"""
Snowflake connections for the lesson repository.

Key-pair authentication is used when a private key is configured (as a
file path or base64 PEM); otherwise the password is sent. Mock mode never
reaches this module.
"""

import base64
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator, Optional, Protocol

import snowflake.connector
from cryptography.hazmat.primitives import serialization

logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """The part of a snowflake-connector connection the repositories use."""

    def cursor(self): ...
    def commit(self) -> None: ...


@dataclass
class SnowflakeConfig:
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "COACHLEDGER"
    schema: str = "BILLING"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class SnowflakeConnectionError(Exception):
    """Raised when no connection to Snowflake could be opened."""


def _pem_to_der(pem_bytes: bytes) -> bytes:
    # the connector wants unencrypted PKCS8 DER bytes
    key = serialization.load_pem_private_key(pem_bytes, password=None)
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _load_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    if config.private_key_base64:
        return _pem_to_der(base64.b64decode(config.private_key_base64))
    if config.private_key_path:
        with open(config.private_key_path, "rb") as key_file:
            return _pem_to_der(key_file.read())
    return None


def connect_params(config: SnowflakeConfig) -> dict[str, Any]:
    """Keyword arguments for snowflake.connector.connect()."""
    params: dict[str, Any] = {
        "account": config.account,
        "user": config.user,
        "database": config.database,
        "schema": config.schema,
        "warehouse": config.warehouse,
        "role": config.role,
        "client_session_keep_alive": True,
    }

    private_key = _load_private_key(config)
    if private_key is not None:
        params["private_key"] = private_key
    elif config.password:
        params["password"] = config.password
    else:
        raise SnowflakeConnectionError("Either password or a private key must be provided")
    return params


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Open a connection for the duration of a `with` block and always close it.

        with get_snowflake_connection(config) as conn:
            repo = LessonRepository(conn)
    """
    params = connect_params(config)
    try:
        conn = snowflake.connector.connect(**params)
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account},
        )
        raise SnowflakeConnectionError(f"Failed to connect to Snowflake: {e}") from e

    logger.debug(
        "Opened Snowflake connection",
        extra={
            "account": config.account,
            "database": config.database,
            "auth": "key-pair" if "private_key" in params else "password",
        },
    )
    try:
        yield conn
    finally:
        try:
            conn.close()
        except Exception as e:
            logger.warning("Error closing Snowflake connection", extra={"error": str(e)})
