"""
Core data models for the relsub package.

Defines the catalog records read from a database (foreign keys, key
constraints), the inferred relationship graph, and the query/filter
structures consumed and produced by the subscription planner.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from relsub.errors import QueryValidationError

TableKey = Tuple[str, str]  # (schema, table)


def same_columns(left: Sequence[str], right: Sequence[str]) -> bool:
    """Compare two column sets ignoring order."""
    return set(left) == set(right)


def covers_columns(key_columns: Sequence[str], columns: Sequence[str]) -> bool:
    """Return True if every column is part of the key."""
    return set(columns) <= set(key_columns)


class Cardinality(str, Enum):
    """Shape of a relationship between two tables."""
    MANY_TO_ONE = "ManyToOne"
    ONE_TO_MANY = "OneToMany"
    ONE_TO_ONE = "OneToOne"
    MANY_TO_MANY = "ManyToMany"


class KeyKind(str, Enum):
    """Kind of a key constraint."""
    PRIMARY = "primary"
    UNIQUE = "unique"


class FilterOperator(str, Enum):
    """Comparison operators accepted in query and subscription filters."""
    EQ = "eq"
    NEQ = "neq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    IN = "in"


@dataclass(frozen=True)
class ForeignKey:
    """A foreign key constraint as read from the catalog."""
    name: str
    source_schema: str
    source_table: str
    source_columns: List[str]
    target_schema: str
    target_table: str
    target_columns: List[str]

    @property
    def source(self) -> TableKey:
        return (self.source_schema, self.source_table)

    @property
    def target(self) -> TableKey:
        return (self.target_schema, self.target_table)

    @property
    def is_self_relation(self) -> bool:
        """True when the constraint references its own table."""
        return self.source == self.target

    def validate(self) -> None:
        """
        Check the constraint is well formed.

        Raises:
            ValueError: if a column set is empty or the two sides differ in length
        """
        if not self.source_columns or not self.target_columns:
            raise ValueError(f"Foreign key {self.name} has no columns")
        if len(self.source_columns) != len(self.target_columns):
            raise ValueError(
                f"Foreign key {self.name} pairs {len(self.source_columns)} source columns "
                f"with {len(self.target_columns)} target columns"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "source_schema": self.source_schema,
            "source_table": self.source_table,
            "source_columns": list(self.source_columns),
            "target_schema": self.target_schema,
            "target_table": self.target_table,
            "target_columns": list(self.target_columns),
        }


@dataclass(frozen=True)
class KeyConstraint:
    """A primary or unique key of a table."""
    schema: str
    table: str
    columns: List[str]
    kind: KeyKind = KeyKind.PRIMARY

    @property
    def is_primary(self) -> bool:
        return self.kind == KeyKind.PRIMARY


@dataclass(frozen=True)
class Relationship:
    """
    A directed relationship between two tables.

    ManyToOne and OneToOne records mirror one foreign key; OneToMany records
    mirror a ManyToOne with the endpoints swapped. ManyToMany records connect
    the two tables a junction table links, and carry the junction table plus
    the two constraints pointing from it to the source and target.
    """
    constraint_name: str
    source_schema: str
    source_table: str
    source_columns: List[str]
    target_schema: str
    target_table: str
    target_columns: List[str]
    cardinality: Cardinality
    is_self_relation: bool = False

    # ManyToMany only
    junction_schema: Optional[str] = None
    junction_table: Optional[str] = None
    junction_source_constraint: Optional[str] = None
    junction_target_constraint: Optional[str] = None
    junction_source_columns: Optional[List[str]] = None  # junction columns -> source
    junction_target_columns: Optional[List[str]] = None  # junction columns -> target

    @property
    def source(self) -> TableKey:
        return (self.source_schema, self.source_table)

    @property
    def target(self) -> TableKey:
        return (self.target_schema, self.target_table)

    @property
    def junction(self) -> Optional[TableKey]:
        if self.junction_table is None:
            return None
        return (self.junction_schema, self.junction_table)

    @property
    def is_many_to_many(self) -> bool:
        return self.cardinality == Cardinality.MANY_TO_MANY

    def sort_key(self) -> Tuple[str, str, str, str, str, str]:
        """Ordering used for presentation and deterministic lookups."""
        return (
            self.source_schema,
            self.source_table,
            self.constraint_name,
            self.cardinality.value,
            self.target_schema,
            self.target_table,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "constraint_name": self.constraint_name,
            "source_schema": self.source_schema,
            "source_table": self.source_table,
            "source_columns": list(self.source_columns),
            "target_schema": self.target_schema,
            "target_table": self.target_table,
            "target_columns": list(self.target_columns),
            "cardinality": self.cardinality.value,
            "is_self_relation": self.is_self_relation,
        }
        if self.is_many_to_many:
            data.update({
                "junction_schema": self.junction_schema,
                "junction_table": self.junction_table,
                "junction_source_constraint": self.junction_source_constraint,
                "junction_target_constraint": self.junction_target_constraint,
                "junction_source_columns": list(self.junction_source_columns or []),
                "junction_target_columns": list(self.junction_target_columns or []),
            })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Relationship:
        """Create from dictionary."""
        return cls(
            constraint_name=data["constraint_name"],
            source_schema=data["source_schema"],
            source_table=data["source_table"],
            source_columns=list(data["source_columns"]),
            target_schema=data["target_schema"],
            target_table=data["target_table"],
            target_columns=list(data["target_columns"]),
            cardinality=Cardinality(data["cardinality"]),
            is_self_relation=data.get("is_self_relation", False),
            junction_schema=data.get("junction_schema"),
            junction_table=data.get("junction_table"),
            junction_source_constraint=data.get("junction_source_constraint"),
            junction_target_constraint=data.get("junction_target_constraint"),
            junction_source_columns=data.get("junction_source_columns"),
            junction_target_columns=data.get("junction_target_columns"),
        )


@dataclass
class RelationshipGraph:
    """Inferred relationships, indexed by source and target table."""
    relationships: List[Relationship] = field(default_factory=list)

    def __post_init__(self):
        self._by_source: Dict[TableKey, List[Relationship]] = defaultdict(list)
        self._by_target: Dict[TableKey, List[Relationship]] = defaultdict(list)
        self.relationships = sorted(self.relationships, key=Relationship.sort_key)
        for rel in self.relationships:
            self._by_source[rel.source].append(rel)
            self._by_target[rel.target].append(rel)
        for bucket in list(self._by_source.values()) + list(self._by_target.values()):
            bucket.sort(key=self._bucket_key)

    def __len__(self) -> int:
        return len(self.relationships)

    def __iter__(self) -> Iterator[Relationship]:
        return iter(self.relationships)

    def add_relationship(self, rel: Relationship) -> None:
        """Add a relationship, keeping every index sorted."""
        # Lists are already sorted, so each sort is a single linear merge
        self.relationships.append(rel)
        self.relationships.sort(key=Relationship.sort_key)
        for bucket in (self._by_source[rel.source], self._by_target[rel.target]):
            bucket.append(rel)
            bucket.sort(key=self._bucket_key)

    @staticmethod
    def _bucket_key(rel: Relationship) -> Tuple:
        return (rel.constraint_name, rel.cardinality.value, rel.target, rel.source)

    def outgoing(self, schema: str, table: str) -> List[Relationship]:
        """All relationships whose source is the given table."""
        return list(self._by_source.get((schema, table), []))

    def incoming(self, schema: str, table: str) -> List[Relationship]:
        """All relationships whose target is the given table."""
        return list(self._by_target.get((schema, table), []))

    def filter(self, cardinality: Optional[Cardinality] = None) -> List[Relationship]:
        """Relationships, optionally restricted to one cardinality."""
        if cardinality is None:
            return list(self.relationships)
        return [r for r in self.relationships if r.cardinality == Cardinality(cardinality)]

    def tables(self) -> List[TableKey]:
        """Every table appearing as an endpoint or junction."""
        keys = set(self._by_source) | set(self._by_target)
        keys.update(r.junction for r in self.relationships if r.junction)
        return sorted(keys)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"relationships": [r.to_dict() for r in self.relationships]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RelationshipGraph:
        """Create from dictionary."""
        return cls([Relationship.from_dict(r) for r in data.get("relationships", [])])


@dataclass(frozen=True)
class QueryFilter:
    """A (column, operator, value) condition on a query node."""
    column: str
    operator: FilterOperator
    value: Any

    @classmethod
    def from_dict(cls, data: Any, path: str = "filters") -> QueryFilter:
        """Create from a {column, op, value} mapping."""
        if not isinstance(data, dict):
            raise QueryValidationError(f"{path}: expected a mapping, got {type(data).__name__}")
        column = data.get("column")
        if not isinstance(column, str) or not column:
            raise QueryValidationError(f"{path}: 'column' is required")
        op = data.get("op", data.get("operator"))
        try:
            operator = FilterOperator(op)
        except ValueError:
            allowed = ", ".join(o.value for o in FilterOperator)
            raise QueryValidationError(
                f"{path}: unknown operator {op!r} (expected one of {allowed})"
            ) from None
        if "value" not in data:
            raise QueryValidationError(f"{path}: 'value' is required")
        if operator == FilterOperator.IN and not isinstance(data["value"], list):
            raise QueryValidationError(f"{path}: 'in' expects a list value")
        return cls(column=column, operator=operator, value=data["value"])

    def to_dict(self) -> Dict[str, Any]:
        return {"column": self.column, "op": self.operator.value, "value": self.value}


@dataclass
class QueryNode:
    """
    A node of a nested query.

    The root node names the queried table; each nested node names a relation
    reachable from its parent, by bare or schema-qualified table name, and
    may pin the relationship with a constraint name.
    """
    relation: str
    filters: List[QueryFilter] = field(default_factory=list)
    nested: List[QueryNode] = field(default_factory=list)
    constraint: Optional[str] = None

    @property
    def schema_name(self) -> Optional[str]:
        """Schema part of a qualified relation, None for a bare name."""
        if "." in self.relation:
            return self.relation.split(".", 1)[0]
        return None

    @property
    def table_name(self) -> str:
        return self.relation.split(".", 1)[-1]

    @classmethod
    def from_dict(cls, data: Any, path: str = "query", root: bool = True) -> QueryNode:
        """
        Build and validate a query tree.

        The root mapping uses {schema, table, filters, nested}; nested
        mappings use {relation, filters, nested, constraint}.

        Raises:
            QueryValidationError: if a required field is missing or ill-typed
        """
        if not isinstance(data, dict):
            raise QueryValidationError(f"{path}: expected a mapping, got {type(data).__name__}")

        if root:
            table = data.get("table")
            if not isinstance(table, str) or not table:
                raise QueryValidationError(f"{path}: 'table' is required")
            schema = data.get("schema")
            if schema is not None and not isinstance(schema, str):
                raise QueryValidationError(f"{path}: 'schema' must be a string")
            relation = f"{schema}.{table}" if schema else table
        else:
            relation = data.get("relation")
            if not isinstance(relation, str) or not relation:
                raise QueryValidationError(f"{path}: 'relation' is required")

        raw_filters = data.get("filters")
        raw_nested = data.get("nested")
        if raw_filters is None:
            raw_filters = []
        elif not isinstance(raw_filters, list):
            raise QueryValidationError(f"{path}.filters: expected a list")
        if raw_nested is None:
            raw_nested = []
        elif not isinstance(raw_nested, list):
            raise QueryValidationError(f"{path}.nested: expected a list")

        constraint = data.get("constraint")
        if constraint is not None and not isinstance(constraint, str):
            raise QueryValidationError(f"{path}.constraint: expected a string")

        return cls(
            relation=relation,
            filters=[
                QueryFilter.from_dict(f, f"{path}.filters[{i}]")
                for i, f in enumerate(raw_filters)
            ],
            nested=[
                cls.from_dict(n, f"{path}.nested[{i}]", root=False)
                for i, n in enumerate(raw_nested)
            ],
            constraint=constraint,
        )


@dataclass(frozen=True)
class SubscriptionFilter:
    """A row-change condition that must be watched to keep a query current."""
    schema: str
    table: str
    column: str
    operator: FilterOperator
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "schema": self.schema,
            "table": self.table,
            "column": self.column,
            "operator": self.operator.value,
            "value": self.value,
        }


@dataclass
class PlannerConfig:
    """Policy knobs for subscription planning."""
    strict: bool = False  # raise on unresolved relations and cycles
    ambiguity: str = "first"  # "first" or "error"
    default_schema: str = "public"

    def __post_init__(self):
        if self.ambiguity not in ("first", "error"):
            raise ValueError(f"ambiguity must be 'first' or 'error', got {self.ambiguity!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strict": self.strict,
            "ambiguity": self.ambiguity,
            "default_schema": self.default_schema,
        }
