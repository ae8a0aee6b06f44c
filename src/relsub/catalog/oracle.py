"""
Oracle schema catalog using oracledb.

Reads foreign keys and primary/unique keys from the Oracle data dictionary
views. Schemas are Oracle owners.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Sequence, Tuple

from relsub.catalog.base import SchemaCatalog
from relsub.errors import CatalogAccessError
from relsub.models import ForeignKey, KeyConstraint, KeyKind

logger = logging.getLogger(__name__)


FOREIGN_KEYS_SQL = """
    SELECT
        c.constraint_name,
        c.owner AS source_owner,
        c.table_name AS source_table,
        cc.column_name AS source_column,
        rc.owner AS target_owner,
        rc.table_name AS target_table,
        rcc.column_name AS target_column
    FROM all_constraints c
    JOIN all_cons_columns cc
        ON c.owner = cc.owner
        AND c.constraint_name = cc.constraint_name
    JOIN all_constraints rc
        ON c.r_owner = rc.owner
        AND c.r_constraint_name = rc.constraint_name
    JOIN all_cons_columns rcc
        ON rc.owner = rcc.owner
        AND rc.constraint_name = rcc.constraint_name
        AND cc.position = rcc.position
    WHERE c.constraint_type = 'R'
        AND (c.owner IN ({owners}) OR rc.owner IN ({owners}))
    ORDER BY c.owner, c.table_name, c.constraint_name, cc.position
"""

KEY_CONSTRAINTS_SQL = """
    SELECT c.constraint_name, c.constraint_type, cc.column_name
    FROM all_constraints c
    JOIN all_cons_columns cc
        ON c.owner = cc.owner
        AND c.constraint_name = cc.constraint_name
    WHERE c.owner = :owner
        AND c.table_name = :table_name
        AND c.constraint_type IN ('P', 'U')
    ORDER BY c.constraint_name, cc.position
"""


class OracleSchemaCatalog(SchemaCatalog):
    """
    Schema catalog over an Oracle database.

    Uses Oracle data dictionary views:
    - ALL_CONSTRAINTS (constraint_type 'R', 'P', 'U')
    - ALL_CONS_COLUMNS
    """

    def __init__(self, connection_string: str):
        """
        Initialize catalog with Oracle connection.

        Args:
            connection_string: Oracle connection string (user/pwd@host:port/service)
        """
        self.connection_string = connection_string
        self._conn = None

    def connect(self) -> None:
        """Establish database connection."""
        import oracledb

        # Parse connection string: user/pwd@host:port/service
        parts = self.connection_string.split("@")
        user_pwd = parts[0]
        host_service = parts[1] if len(parts) > 1 else ""

        user, password = user_pwd.split("/", 1) if "/" in user_pwd else (user_pwd, "")

        if ":" in host_service:
            host_port, service = host_service.rsplit("/", 1) if "/" in host_service else (host_service, "")
            host, port = host_port.split(":") if ":" in host_port else (host_port, "1521")
            dsn = oracledb.makedsn(host, int(port), service_name=service)
        else:
            dsn = host_service

        try:
            self._conn = oracledb.connect(user=user, password=password, dsn=dsn)
        except oracledb.Error as e:
            logger.error(f"Failed to connect to Oracle as {user}: {e}")
            raise CatalogAccessError(f"Could not connect to Oracle: {e}") from e
        logger.info(f"Connected to Oracle database as {user}")

    def disconnect(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    def normalize_identifier(self, name: str) -> str:
        return name.upper()

    def list_foreign_keys(self, schemas: Sequence[str]) -> List[ForeignKey]:
        if not schemas:
            return []
        if not self._conn:
            self.connect()

        owners = [self.normalize_identifier(s) for s in schemas]
        binds = {f"owner{i}": owner for i, owner in enumerate(owners)}
        sql = FOREIGN_KEYS_SQL.format(owners=", ".join(f":{name}" for name in binds))

        # One row per column pair; fold them back into constraints
        grouped: "OrderedDict[Tuple[str, str], Dict]" = OrderedDict()
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, binds)
            for row in cursor:
                name, src_owner, src_table, src_col, tgt_owner, tgt_table, tgt_col = row
                entry = grouped.setdefault((src_owner, name), {
                    "name": name,
                    "source_schema": src_owner,
                    "source_table": src_table,
                    "source_columns": [],
                    "target_schema": tgt_owner,
                    "target_table": tgt_table,
                    "target_columns": [],
                })
                entry["source_columns"].append(src_col)
                entry["target_columns"].append(tgt_col)
        except Exception as e:
            logger.error(f"Error reading Oracle foreign keys for {owners}: {e}")
            raise CatalogAccessError(f"Could not read foreign keys: {e}") from e
        finally:
            cursor.close()

        foreign_keys = [ForeignKey(**entry) for entry in grouped.values()]
        logger.debug(f"Read {len(foreign_keys)} foreign keys from Oracle owners {owners}")
        return foreign_keys

    def list_key_constraints(self, schema: str, table: str) -> List[KeyConstraint]:
        if not self._conn:
            self.connect()

        owner = self.normalize_identifier(schema)
        table_name = self.normalize_identifier(table)

        grouped: "OrderedDict[str, Tuple[str, List[str]]]" = OrderedDict()
        cursor = self._conn.cursor()
        try:
            cursor.execute(KEY_CONSTRAINTS_SQL, owner=owner, table_name=table_name)
            for constraint_name, constraint_type, column_name in cursor:
                grouped.setdefault(constraint_name, (constraint_type, []))[1].append(column_name)
        except Exception as e:
            logger.error(f"Error reading Oracle keys for {schema}.{table}: {e}")
            raise CatalogAccessError(f"Could not read key constraints of {schema}.{table}: {e}") from e
        finally:
            cursor.close()

        return [
            KeyConstraint(
                schema=owner,
                table=table_name,
                columns=columns,
                kind=KeyKind.PRIMARY if constraint_type == "P" else KeyKind.UNIQUE,
            )
            for constraint_type, columns in grouped.values()
        ]
