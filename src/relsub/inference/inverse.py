"""Derives OneToMany relationships from ManyToOne ones."""

from __future__ import annotations

from typing import Iterable, List

from relsub.models import Cardinality, Relationship


def expand_inverses(relationships: Iterable[Relationship]) -> List[Relationship]:
    """
    Reverse every ManyToOne relationship into a OneToMany one.

    OneToOne relationships are left alone; the graph answers target-side
    lookups for them instead.
    """
    return [
        Relationship(
            constraint_name=rel.constraint_name,
            source_schema=rel.target_schema,
            source_table=rel.target_table,
            source_columns=list(rel.target_columns),
            target_schema=rel.source_schema,
            target_table=rel.source_table,
            target_columns=list(rel.source_columns),
            cardinality=Cardinality.ONE_TO_MANY,
            is_self_relation=rel.is_self_relation,
        )
        for rel in relationships
        if rel.cardinality == Cardinality.MANY_TO_ONE
    ]
