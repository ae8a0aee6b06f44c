"""
Abstract read interface over a live database schema.

The inference pipeline never talks to a database directly; it is handed a
SchemaCatalog and reads foreign keys and key constraints through it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence

from relsub.models import ForeignKey, KeyConstraint


class SchemaCatalog(ABC):
    """
    Read-only view of schema constraints.

    Implementations return a consistent point-in-time view and report
    failures as CatalogAccessError, never as partial results.
    """

    @abstractmethod
    def list_foreign_keys(self, schemas: Sequence[str]) -> List[ForeignKey]:
        """
        List foreign keys whose source or target lies in one of the schemas.

        Args:
            schemas: Schema names to inspect

        Returns:
            List of ForeignKey records, columns in constraint order
        """

    @abstractmethod
    def list_key_constraints(self, schema: str, table: str) -> List[KeyConstraint]:
        """
        List the primary and unique keys of a table.

        Args:
            schema: Schema name
            table: Table name

        Returns:
            List of KeyConstraint records (empty if the table has none)
        """

    def normalize_identifier(self, name: str) -> str:
        """
        Spell a schema, table or column name the way the catalog reports it.

        The default leaves names unchanged; catalogs that fold unquoted
        identifiers (Oracle stores them upper case) override this.
        """
        return name
