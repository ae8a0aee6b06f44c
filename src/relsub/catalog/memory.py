"""
Static schema catalog backed by in-memory records.

Used for offline inference from a YAML schema description and as the test
double for the database-backed catalogs. The YAML layout is::

    tables:
      - schema: public
        name: members
        primary_key: [user_id, org_id]
        unique:
          - [invite_code]
        foreign_keys:
          - name: members_user_id_fkey
            columns: [user_id]
            references:
              schema: public
              table: users
              columns: [id]
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from relsub.catalog.base import SchemaCatalog
from relsub.errors import CatalogAccessError
from relsub.models import ForeignKey, KeyConstraint, KeyKind

logger = logging.getLogger(__name__)


class StaticSchemaCatalog(SchemaCatalog):
    """Catalog over a fixed set of foreign keys and key constraints."""

    def __init__(
        self,
        foreign_keys: Optional[Iterable[ForeignKey]] = None,
        key_constraints: Optional[Iterable[KeyConstraint]] = None,
    ):
        self._foreign_keys: List[ForeignKey] = list(foreign_keys or [])
        self._keys: Dict[Tuple[str, str], List[KeyConstraint]] = defaultdict(list)
        for key in key_constraints or []:
            self._keys[(key.schema, key.table)].append(key)

    def list_foreign_keys(self, schemas: Sequence[str]) -> List[ForeignKey]:
        wanted = set(schemas)
        return [
            fk for fk in self._foreign_keys
            if fk.source_schema in wanted or fk.target_schema in wanted
        ]

    def list_key_constraints(self, schema: str, table: str) -> List[KeyConstraint]:
        return list(self._keys.get((schema, table), []))

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_schema: str = "public") -> StaticSchemaCatalog:
        """
        Build a catalog from a parsed schema description.

        Args:
            data: Mapping with a "tables" list (see module docstring)
            default_schema: Schema assumed when a table or reference omits it

        Raises:
            CatalogAccessError: if a table entry is malformed
        """
        foreign_keys: List[ForeignKey] = []
        key_constraints: List[KeyConstraint] = []

        for i, table_def in enumerate(data.get("tables") or []):
            try:
                schema = table_def.get("schema", default_schema)
                table = table_def["name"]

                if table_def.get("primary_key"):
                    key_constraints.append(KeyConstraint(
                        schema=schema,
                        table=table,
                        columns=list(table_def["primary_key"]),
                        kind=KeyKind.PRIMARY,
                    ))
                for unique_cols in table_def.get("unique") or []:
                    key_constraints.append(KeyConstraint(
                        schema=schema,
                        table=table,
                        columns=list(unique_cols),
                        kind=KeyKind.UNIQUE,
                    ))

                for fk_def in table_def.get("foreign_keys") or []:
                    ref = fk_def["references"]
                    foreign_keys.append(ForeignKey(
                        name=fk_def.get("name", f"{table}_{'_'.join(fk_def['columns'])}_fkey"),
                        source_schema=schema,
                        source_table=table,
                        source_columns=list(fk_def["columns"]),
                        target_schema=ref.get("schema", default_schema),
                        target_table=ref["table"],
                        target_columns=list(ref["columns"]),
                    ))
            except (KeyError, TypeError, AttributeError) as e:
                raise CatalogAccessError(f"Malformed table entry #{i} in schema description: {e}") from e

        return cls(foreign_keys, key_constraints)

    @classmethod
    def from_yaml(cls, path: Path, default_schema: str = "public") -> StaticSchemaCatalog:
        """Load a catalog from a YAML schema description."""
        path = Path(path)
        if not path.exists():
            raise CatalogAccessError(f"Schema description not found: {path}")

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CatalogAccessError(f"Invalid YAML in {path}: {e}") from e

        catalog = cls.from_dict(data, default_schema=default_schema)
        logger.info(f"Loaded {len(catalog._foreign_keys)} foreign keys from {path}")
        return catalog
