"""
Junction table detection.

A table is a junction between A and B when two of its many-to-one foreign
keys, one to A and one to B, both lie within its primary key. Each such pair
yields a ManyToMany relationship in both directions.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from itertools import combinations
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from relsub.models import (
    Cardinality,
    KeyConstraint,
    Relationship,
    covers_columns,
)

logger = logging.getLogger(__name__)

KeyLookup = Callable[[str, str], List[KeyConstraint]]


def junction_constraint_name(first: str, second: str) -> str:
    """Shared name of the two ManyToMany records built from one leg pair."""
    return f"{first}_{second}"


class JunctionDetector:
    """Finds junction tables among ManyToOne relationships."""

    def __init__(self, key_lookup: KeyLookup):
        """
        Args:
            key_lookup: Callable returning the key constraints of (schema, table)
        """
        self.key_lookup = key_lookup

    def _primary_key(self, schema: str, table: str) -> Optional[List[str]]:
        for key in self.key_lookup(schema, table):
            if key.is_primary:
                return list(key.columns)
        return None

    def detect(self, relationships: Iterable[Relationship]) -> List[Relationship]:
        """
        Emit ManyToMany relationships for every qualifying foreign key pair.

        Args:
            relationships: Classified relationships; only ManyToOne ones are
                considered as junction legs

        Returns:
            Two directed ManyToMany records per qualifying pair
        """
        groups: Dict[Tuple[str, str], List[Relationship]] = defaultdict(list)
        for rel in relationships:
            if rel.cardinality == Cardinality.MANY_TO_ONE:
                groups[rel.source].append(rel)

        many_to_many: List[Relationship] = []
        for (schema, table), legs in sorted(groups.items()):
            if len(legs) < 2:
                continue

            pk = self._primary_key(schema, table)
            if not pk:
                continue

            legs = sorted(legs, key=lambda r: r.constraint_name)
            for first, second in combinations(legs, 2):
                if first.constraint_name >= second.constraint_name:
                    continue
                if not (covers_columns(pk, first.source_columns) and covers_columns(pk, second.source_columns)):
                    continue

                logger.debug(f"{schema}.{table} links {first.target_table} and {second.target_table} "
                             f"via {first.constraint_name}, {second.constraint_name}")
                many_to_many.append(self._edge(first, second, first, second))
                many_to_many.append(self._edge(second, first, first, second))

        logger.info(f"Detected {len(many_to_many) // 2} junction pairs")
        return many_to_many

    @staticmethod
    def _edge(
        from_leg: Relationship,
        to_leg: Relationship,
        first: Relationship,
        second: Relationship,
    ) -> Relationship:
        return Relationship(
            constraint_name=junction_constraint_name(first.constraint_name, second.constraint_name),
            source_schema=from_leg.target_schema,
            source_table=from_leg.target_table,
            source_columns=list(from_leg.target_columns),
            target_schema=to_leg.target_schema,
            target_table=to_leg.target_table,
            target_columns=list(to_leg.target_columns),
            cardinality=Cardinality.MANY_TO_MANY,
            is_self_relation=from_leg.target == to_leg.target,
            junction_schema=from_leg.source_schema,
            junction_table=from_leg.source_table,
            junction_source_constraint=from_leg.constraint_name,
            junction_target_constraint=to_leg.constraint_name,
            junction_source_columns=list(from_leg.source_columns),
            junction_target_columns=list(to_leg.source_columns),
        )
