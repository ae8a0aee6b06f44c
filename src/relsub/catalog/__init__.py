"""
Schema catalog access for PostgreSQL, Oracle and static schema descriptions.

Provides a uniform read interface over foreign keys and primary/unique keys.
"""

from relsub.catalog.base import SchemaCatalog
from relsub.catalog.memory import StaticSchemaCatalog
from relsub.catalog.oracle import OracleSchemaCatalog
from relsub.catalog.postgres import PostgresSchemaCatalog

__all__ = [
    "SchemaCatalog",
    "StaticSchemaCatalog",
    "OracleSchemaCatalog",
    "PostgresSchemaCatalog",
]
