"""
PostgreSQL schema catalog using psycopg2.

Reads foreign keys and primary/unique keys from pg_catalog, keeping
multi-column constraints in key order.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from relsub.catalog.base import SchemaCatalog
from relsub.errors import CatalogAccessError
from relsub.models import ForeignKey, KeyConstraint, KeyKind

logger = logging.getLogger(__name__)


FOREIGN_KEYS_SQL = """
    SELECT
        con.conname AS constraint_name,
        sn.nspname AS source_schema,
        sc.relname AS source_table,
        array_agg(sa.attname ORDER BY k.ord) AS source_columns,
        tn.nspname AS target_schema,
        tc.relname AS target_table,
        array_agg(ta.attname ORDER BY k.ord) AS target_columns
    FROM pg_catalog.pg_constraint con
    JOIN pg_catalog.pg_class sc ON sc.oid = con.conrelid
    JOIN pg_catalog.pg_namespace sn ON sn.oid = sc.relnamespace
    JOIN pg_catalog.pg_class tc ON tc.oid = con.confrelid
    JOIN pg_catalog.pg_namespace tn ON tn.oid = tc.relnamespace
    CROSS JOIN LATERAL unnest(con.conkey, con.confkey)
        WITH ORDINALITY AS k(source_attnum, target_attnum, ord)
    JOIN pg_catalog.pg_attribute sa
        ON sa.attrelid = con.conrelid AND sa.attnum = k.source_attnum
    JOIN pg_catalog.pg_attribute ta
        ON ta.attrelid = con.confrelid AND ta.attnum = k.target_attnum
    WHERE con.contype = 'f'
      AND (sn.nspname = ANY(%(schemas)s) OR tn.nspname = ANY(%(schemas)s))
    GROUP BY con.conname, sn.nspname, sc.relname, tn.nspname, tc.relname
    ORDER BY sn.nspname, sc.relname, con.conname;
"""

KEY_CONSTRAINTS_SQL = """
    SELECT
        con.conname AS constraint_name,
        con.contype AS constraint_type,
        array_agg(a.attname ORDER BY k.ord) AS columns
    FROM pg_catalog.pg_constraint con
    JOIN pg_catalog.pg_class c ON c.oid = con.conrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    CROSS JOIN LATERAL unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
    JOIN pg_catalog.pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
    WHERE n.nspname = %(schema)s
      AND c.relname = %(table)s
      AND con.contype IN ('p', 'u')
    GROUP BY con.conname, con.contype
    ORDER BY con.conname;
"""


class PostgresSchemaCatalog(SchemaCatalog):
    """
    Schema catalog over a PostgreSQL database.

    Attributes:
        dsn: libpq connection string or URI
    """

    def __init__(self, dsn: str, statement_timeout_ms: int = 0):
        """
        Args:
            dsn: libpq connection string ("host=... dbname=...") or URI
            statement_timeout_ms: Per-statement timeout, 0 disables it
        """
        self.dsn = dsn
        self.statement_timeout_ms = statement_timeout_ms
        self._conn = None

    def connect(self) -> None:
        """Establish database connection."""
        import psycopg2

        options = None
        if self.statement_timeout_ms:
            options = f"-c statement_timeout={int(self.statement_timeout_ms)}"
        try:
            self._conn = psycopg2.connect(self.dsn, options=options)
            # Catalog reads only; each statement sees a consistent snapshot
            self._conn.set_session(readonly=True, autocommit=True)
        except psycopg2.Error as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            raise CatalogAccessError(f"Could not connect to PostgreSQL: {e}") from e
        logger.info("Connected to PostgreSQL catalog")

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
        return False

    def list_foreign_keys(self, schemas: Sequence[str]) -> List[ForeignKey]:
        if not schemas:
            return []
        if not self._conn:
            self.connect()

        try:
            with self._conn.cursor() as cursor:
                cursor.execute(FOREIGN_KEYS_SQL, {"schemas": list(schemas)})
                rows = cursor.fetchall()
        except Exception as e:
            logger.error(f"Error reading PostgreSQL foreign keys for {list(schemas)}: {e}")
            raise CatalogAccessError(f"Could not read foreign keys: {e}") from e

        foreign_keys = [
            ForeignKey(
                name=name,
                source_schema=source_schema,
                source_table=source_table,
                source_columns=list(source_columns),
                target_schema=target_schema,
                target_table=target_table,
                target_columns=list(target_columns),
            )
            for name, source_schema, source_table, source_columns,
                target_schema, target_table, target_columns in rows
        ]
        logger.debug(f"Read {len(foreign_keys)} foreign keys from PostgreSQL schemas {list(schemas)}")
        return foreign_keys

    def list_key_constraints(self, schema: str, table: str) -> List[KeyConstraint]:
        if not self._conn:
            self.connect()

        try:
            with self._conn.cursor() as cursor:
                cursor.execute(KEY_CONSTRAINTS_SQL, {"schema": schema, "table": table})
                rows = cursor.fetchall()
        except Exception as e:
            logger.error(f"Error reading PostgreSQL keys for {schema}.{table}: {e}")
            raise CatalogAccessError(f"Could not read key constraints of {schema}.{table}: {e}") from e

        return [
            KeyConstraint(
                schema=schema,
                table=table,
                columns=list(columns),
                kind=KeyKind.PRIMARY if constraint_type == "p" else KeyKind.UNIQUE,
            )
            for _name, constraint_type, columns in rows
        ]
