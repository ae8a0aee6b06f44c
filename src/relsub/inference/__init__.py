"""
Relationship inference from schema catalog constraints.

Classifies foreign keys, derives their inverses, detects junction tables and
assembles the resulting relationship graph:

    from relsub.catalog import StaticSchemaCatalog
    from relsub.inference import infer_relationships

    graph = infer_relationships(
        StaticSchemaCatalog.from_yaml("schema.yaml"),
        schemas=["public"],
    )
"""

from relsub.inference.classifier import RelationshipClassifier
from relsub.inference.inverse import expand_inverses
from relsub.inference.junction import JunctionDetector, junction_constraint_name
from relsub.inference.inferrer import RelationshipInferrer, infer_relationships

__all__ = [
    "RelationshipClassifier",
    "expand_inverses",
    "JunctionDetector",
    "junction_constraint_name",
    "RelationshipInferrer",
    "infer_relationships",
]
