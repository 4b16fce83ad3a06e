# blebridge/sinks/database.py
from __future__ import annotations

import logging
import re
from typing import Optional

from sqlalchemy import DateTime, Float, Integer, String, bindparam, create_engine, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine

from blebridge.core.errors import ConfigError, SinkRejectedError, SinkUnavailableError
from blebridge.model.reading import Reading

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

# Connection-level failures; the same insert may succeed later.
TRANSIENT_DB_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
)


def validate_table_name(table: str) -> str:
    if not isinstance(table, str) or not _IDENTIFIER_RE.match(table):
        raise ConfigError(
            f"Invalid table name '{table}'.",
            hint="Use a plain SQL identifier, optionally schema-qualified (schema.table).",
            details={"table": table},
        )
    return table


class DatabaseSink:
    """
    Writes each reading as one row through a parameterized INSERT.

    Columns: (timestamp, address, rssi, temp_c, humidity, battery); absent
    optional fields are written as NULL.
    """

    def __init__(self, engine: Engine, *, table: str = "govee", logger: Optional[logging.Logger] = None):
        self._engine = engine
        self._table = validate_table_name(table)
        self._log = logger or logging.getLogger(__name__)

        self._stmt = text(
            f"INSERT INTO {self._table} (timestamp, address, rssi, temp_c, humidity, battery) "
            "VALUES (:timestamp, :address, :rssi, :temp_c, :humidity, :battery)"
        ).bindparams(
            bindparam("timestamp", type_=DateTime(timezone=True)),
            bindparam("address", type_=String),
            bindparam("rssi", type_=Integer),
            bindparam("temp_c", type_=Float),
            bindparam("humidity", type_=Float),
            bindparam("battery", type_=Integer),
        )

    @classmethod
    def from_url(cls, url: str, *, table: str = "govee", logger: Optional[logging.Logger] = None) -> "DatabaseSink":
        log = logger or logging.getLogger(__name__)
        validate_table_name(table)
        try:
            engine = create_engine(url, pool_pre_ping=True, future=True)
        except (sa_exc.ArgumentError, ImportError) as e:
            raise ConfigError(
                "Could not create database engine.",
                hint=str(e),
                details={"dialect": url.split(":", 1)[0]},
            ) from None

        log.info("DB_ENGINE_CREATED dialect=%s table=%s", engine.dialect.name, table)
        return cls(engine, table=table, logger=log)

    @property
    def table(self) -> str:
        return self._table

    def deliver(self, reading: Reading) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(self._stmt, reading.as_row())
        except TRANSIENT_DB_ERRORS as e:
            raise SinkUnavailableError(
                "Database unavailable.",
                hint=str(getattr(e, "orig", None) or e),
                details={"table": self._table},
            ) from e
        except sa_exc.SQLAlchemyError as e:
            raise SinkRejectedError(
                "Database rejected reading.",
                hint=str(getattr(e, "orig", None) or e),
                details={"table": self._table, "address": reading.address},
            ) from e

    def close(self) -> None:
        self._engine.dispose()
