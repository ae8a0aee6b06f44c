"""
Subscription filter planning.

Walks a nested query against the relationship graph and emits the row-level
filters a subscriber must watch so that any change affecting the query's
result is noticed, including filters on junction tables the query never
names.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Union

from relsub.errors import (
    AmbiguousRelationshipError,
    RelationCycleError,
    UnresolvedRelationError,
)
from relsub.models import (
    PlannerConfig,
    QueryFilter,
    QueryNode,
    Relationship,
    RelationshipGraph,
    SubscriptionFilter,
    TableKey,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedRelation:
    """How a nested query node connects to its parent table."""
    relationship: Relationship
    table: TableKey  # the nested node's table
    watch_table: TableKey  # where parent filters are re-applied
    watch_column: str


class SubscriptionPlanner:
    """
    Plans subscription filters for nested queries.

    Resolution of a nested relation tries relationships leaving the parent
    table first, then relationships arriving at it. When several
    relationships match, the first in graph order (constraint name, then
    cardinality) wins under the "first" ambiguity policy; the "error" policy
    raises instead. Unresolved relations are skipped together with their
    subtree unless the planner is strict.

    Query identifiers are passed through normalize_identifier before they
    are compared with the graph, so a graph read from a catalog that folds
    names (see SchemaCatalog.normalize_identifier) matches lower case queries.
    """

    def __init__(
        self,
        graph: RelationshipGraph,
        config: Optional[PlannerConfig] = None,
        normalize_identifier: Optional[Callable[[str], str]] = None,
    ):
        self.graph = graph
        self.config = config or PlannerConfig()
        self.normalize_identifier = normalize_identifier or (lambda name: name)

    def plan(self, query: Union[QueryNode, Dict[str, Any]]) -> List[SubscriptionFilter]:
        """
        Plan the subscription filters for a query.

        Args:
            query: Root QueryNode, or its {schema, table, filters, nested} mapping

        Returns:
            Filters in depth-first pre-order; duplicates are kept

        Raises:
            QueryValidationError: if a query mapping is malformed
            UnresolvedRelationError: strict mode, nested relation not found
            AmbiguousRelationshipError: "error" policy, nested relation ambiguous
            RelationCycleError: strict mode, nested relation revisits a table
        """
        if not isinstance(query, QueryNode):
            query = QueryNode.from_dict(query)

        root = (
            self.normalize_identifier(query.schema_name or self.config.default_schema),
            self.normalize_identifier(query.table_name),
        )
        filters: List[SubscriptionFilter] = []
        self._visit(root, query.filters, query.nested, frozenset([root]), filters)

        logger.debug(f"Planned {len(filters)} subscription filters for {root[0]}.{root[1]}")
        return filters

    def _visit(
        self,
        table: TableKey,
        node_filters: List[QueryFilter],
        children: List[QueryNode],
        path: FrozenSet[TableKey],
        out: List[SubscriptionFilter],
    ) -> None:
        schema, name = table
        self._emit_own(table, node_filters, out)

        for child in children:
            resolved = self.resolve(table, child)
            if resolved is None:
                if self.config.strict:
                    raise UnresolvedRelationError(
                        f"No relationship from {schema}.{name} to {child.relation!r}"
                    )
                logger.debug(f"Skipping unresolved relation {child.relation!r} under {schema}.{name}")
                continue

            watch_schema, watch_name = resolved.watch_table
            for f in node_filters:
                out.append(SubscriptionFilter(
                    watch_schema, watch_name, resolved.watch_column, f.operator, f.value,
                ))

            if resolved.table in path:
                # The child's own filters still apply; only its subtree is cut
                self._emit_own(resolved.table, child.filters, out)
                message = (
                    f"Relation {child.relation!r} under {schema}.{name} leads back to "
                    f"{resolved.table[0]}.{resolved.table[1]}, already on the query path"
                )
                if self.config.strict:
                    raise RelationCycleError(message)
                logger.warning(f"{message}; not descending further")
                continue

            self._visit(resolved.table, child.filters, child.nested, path | {resolved.table}, out)

    def _emit_own(
        self,
        table: TableKey,
        node_filters: List[QueryFilter],
        out: List[SubscriptionFilter],
    ) -> None:
        schema, name = table
        for f in node_filters:
            out.append(SubscriptionFilter(
                schema, name, self.normalize_identifier(f.column), f.operator, f.value,
            ))

    def resolve(self, table: TableKey, child: QueryNode) -> Optional[ResolvedRelation]:
        """
        Find the relationship connecting a parent table to a nested node.

        Returns:
            ResolvedRelation, or None if nothing in the graph matches
        """
        outgoing = [
            r for r in self.graph.outgoing(*table)
            if self._matches(r.target, child)
        ]
        outgoing = self._narrow(outgoing, child)
        if outgoing:
            rel = self._choose(outgoing, table, child)
            if rel.is_many_to_many:
                return ResolvedRelation(rel, rel.target, rel.junction, rel.junction_source_columns[0])
            return ResolvedRelation(rel, rel.target, rel.target, rel.target_columns[0])

        incoming = [
            r for r in self.graph.incoming(*table)
            if self._matches(r.source, child)
        ]
        incoming = self._narrow(incoming, child)
        if incoming:
            rel = self._choose(incoming, table, child)
            if rel.is_many_to_many:
                return ResolvedRelation(rel, rel.source, rel.junction, rel.junction_target_columns[0])
            return ResolvedRelation(rel, rel.source, rel.source, rel.source_columns[0])

        return None

    def _matches(self, key: TableKey, child: QueryNode) -> bool:
        table_name = self.normalize_identifier(child.table_name)
        if child.schema_name is None:
            return key[1] == table_name
        return key == (self.normalize_identifier(child.schema_name), table_name)

    def _narrow(self, candidates: List[Relationship], child: QueryNode) -> List[Relationship]:
        if child.constraint is None:
            return candidates
        constraint = self.normalize_identifier(child.constraint)
        return [r for r in candidates if r.constraint_name == constraint]

    def _choose(self, candidates: List[Relationship], table: TableKey, child: QueryNode) -> Relationship:
        if len(candidates) == 1:
            return candidates[0]

        names = [f"{r.constraint_name} ({r.cardinality.value})" for r in candidates]
        message = (
            f"Relation {child.relation!r} under {table[0]}.{table[1]} matches "
            f"{len(candidates)} relationships: {', '.join(names)}"
        )
        if self.config.ambiguity == "error":
            raise AmbiguousRelationshipError(message, [r.constraint_name for r in candidates])
        logger.warning(f"{message}; using {names[0]}")
        return candidates[0]


def plan_subscription(
    graph: RelationshipGraph,
    query: Union[QueryNode, Dict[str, Any]],
    config: Optional[PlannerConfig] = None,
    normalize_identifier: Optional[Callable[[str], str]] = None,
) -> List[SubscriptionFilter]:
    """Convenience function to plan subscription filters for one query."""
    return SubscriptionPlanner(graph, config, normalize_identifier).plan(query)


def collapse_filters(filters: Sequence[SubscriptionFilter]) -> List[SubscriptionFilter]:
    """Drop repeated filters, keeping the first occurrence of each."""
    # Values may be lists (the "in" operator), so compare instead of hashing
    unique: List[SubscriptionFilter] = []
    for f in filters:
        if f not in unique:
            unique.append(f)
    return unique
