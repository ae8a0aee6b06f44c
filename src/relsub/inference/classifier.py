"""
Foreign key classification.

Turns raw foreign keys into directed ManyToOne / OneToOne relationships.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from relsub.models import (
    Cardinality,
    ForeignKey,
    KeyConstraint,
    Relationship,
    same_columns,
)

logger = logging.getLogger(__name__)

KeyLookup = Callable[[str, str], List[KeyConstraint]]


class RelationshipClassifier:
    """
    Classifies foreign keys by cardinality.

    A foreign key whose source columns are, as a set, exactly a primary or
    unique key of the source table is OneToOne; any other is ManyToOne.
    """

    def __init__(self, key_lookup: KeyLookup):
        """
        Args:
            key_lookup: Callable returning the key constraints of (schema, table)
        """
        self.key_lookup = key_lookup

    def classify(
        self,
        foreign_keys: Iterable[ForeignKey],
        schemas: Sequence[str],
    ) -> List[Relationship]:
        """
        Classify the foreign keys touching the requested schemas.

        A foreign key is kept when either endpoint lies in one of the schemas,
        so cross-schema relationships are visible from both sides.

        Returns:
            Relationships sorted by source schema, source table, constraint name
        """
        wanted = set(schemas)
        keys_by_table: Dict[Tuple[str, str], List[KeyConstraint]] = {}
        relationships = []

        for fk in foreign_keys:
            if fk.source_schema not in wanted and fk.target_schema not in wanted:
                continue

            if fk.source not in keys_by_table:
                keys_by_table[fk.source] = self.key_lookup(fk.source_schema, fk.source_table)
            keys = keys_by_table[fk.source]

            is_unique = any(same_columns(key.columns, fk.source_columns) for key in keys)
            cardinality = Cardinality.ONE_TO_ONE if is_unique else Cardinality.MANY_TO_ONE
            logger.debug(f"{fk.name}: {fk.source_schema}.{fk.source_table} -> "
                         f"{fk.target_schema}.{fk.target_table} classified {cardinality.value}")

            relationships.append(Relationship(
                constraint_name=fk.name,
                source_schema=fk.source_schema,
                source_table=fk.source_table,
                source_columns=list(fk.source_columns),
                target_schema=fk.target_schema,
                target_table=fk.target_table,
                target_columns=list(fk.target_columns),
                cardinality=cardinality,
                is_self_relation=fk.is_self_relation,
            ))

        relationships.sort(key=lambda r: (r.source_schema, r.source_table, r.constraint_name))
        return relationships
