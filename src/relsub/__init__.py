"""
relsub - Relationship inference and subscription planning

Infers the relational structure of a database schema from its catalog and
uses it to plan the row-level change filters that keep a nested query
reactive.

Features:
- Foreign key classification (ManyToOne / OneToOne) and OneToMany inverses
- Junction table detection producing ManyToMany relationships
- Catalog readers for PostgreSQL, Oracle and YAML schema descriptions
- Subscription filter planning across nested, relationship-spanning queries
"""

__version__ = "0.1.0"

from relsub.errors import (
    AmbiguousRelationshipError,
    CatalogAccessError,
    ConfigError,
    QueryValidationError,
    RelationCycleError,
    RelsubError,
    UnresolvedRelationError,
)
from relsub.models import (
    Cardinality,
    FilterOperator,
    ForeignKey,
    KeyConstraint,
    KeyKind,
    PlannerConfig,
    QueryFilter,
    QueryNode,
    Relationship,
    RelationshipGraph,
    SubscriptionFilter,
)
from relsub.catalog import SchemaCatalog, StaticSchemaCatalog
from relsub.inference import RelationshipInferrer, infer_relationships
from relsub.planner import SubscriptionPlanner, collapse_filters, plan_subscription

__all__ = [
    # Errors
    "RelsubError",
    "CatalogAccessError",
    "AmbiguousRelationshipError",
    "UnresolvedRelationError",
    "RelationCycleError",
    "QueryValidationError",
    "ConfigError",
    # Core models
    "Cardinality",
    "FilterOperator",
    "ForeignKey",
    "KeyConstraint",
    "KeyKind",
    "PlannerConfig",
    "QueryFilter",
    "QueryNode",
    "Relationship",
    "RelationshipGraph",
    "SubscriptionFilter",
    # Inference
    "SchemaCatalog",
    "StaticSchemaCatalog",
    "RelationshipInferrer",
    "infer_relationships",
    # Planning
    "SubscriptionPlanner",
    "plan_subscription",
    "collapse_filters",
]
