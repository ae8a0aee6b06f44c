"""
Relationship Inferrer - Builds the relationship graph from a schema catalog.

Runs the inference pipeline in three stages:
1. Classify catalog foreign keys as ManyToOne or OneToOne
2. Expand ManyToOne relationships into their OneToMany inverses and detect
   ManyToMany relationships through junction tables
3. Assemble everything into a RelationshipGraph
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from relsub.catalog.base import SchemaCatalog
from relsub.errors import CatalogAccessError
from relsub.inference.classifier import RelationshipClassifier
from relsub.inference.inverse import expand_inverses
from relsub.inference.junction import JunctionDetector
from relsub.models import (
    Cardinality,
    ForeignKey,
    KeyConstraint,
    Relationship,
    RelationshipGraph,
)

logger = logging.getLogger(__name__)


class RelationshipInferrer:
    """
    Infers table relationships from catalog constraints.

    The inferrer keeps no state between calls; every call reads the catalog
    afresh and either returns a complete graph or raises CatalogAccessError.
    """

    def __init__(self, catalog: SchemaCatalog):
        """
        Args:
            catalog: Schema catalog to read constraints from
        """
        self.catalog = catalog

    def build_relationship_graph(self, schemas: Sequence[str]) -> RelationshipGraph:
        """
        Build the complete RelationshipGraph for the requested schemas.

        Args:
            schemas: Schema names whose relationships should be inferred

        Returns:
            RelationshipGraph with ManyToOne, OneToOne, OneToMany and
            ManyToMany relationships

        Raises:
            CatalogAccessError: if the catalog fails or returns inconsistent data
        """
        schemas = [self.catalog.normalize_identifier(s) for s in schemas]
        logger.info(f"Inferring relationships for schemas: {', '.join(schemas)}")

        foreign_keys = self._read_foreign_keys(schemas)
        key_lookup = self._key_lookup()

        classified = RelationshipClassifier(key_lookup).classify(foreign_keys, schemas)
        inverses = expand_inverses(classified)
        junctions = JunctionDetector(key_lookup).detect(classified)

        graph = RelationshipGraph(classified + inverses + junctions)

        logger.info(
            f"Inferred {len(graph)} relationships from {len(foreign_keys)} foreign keys "
            f"({len(classified)} direct, {len(inverses)} inverse, {len(junctions)} many-to-many)"
        )
        return graph

    def relationships(
        self,
        schemas: Sequence[str],
        cardinality: Optional[Cardinality] = None,
    ) -> List[Relationship]:
        """
        Return the inferred relationships, grouped by source table then constraint name.

        Args:
            schemas: Schema names to inspect
            cardinality: Optional cardinality to restrict the result to
        """
        return self.build_relationship_graph(schemas).filter(cardinality)

    def _read_foreign_keys(self, schemas: List[str]) -> List[ForeignKey]:
        try:
            foreign_keys = self.catalog.list_foreign_keys(schemas)
        except CatalogAccessError:
            raise
        except Exception as e:
            raise CatalogAccessError(f"Catalog failed listing foreign keys: {e}") from e

        for fk in foreign_keys:
            try:
                fk.validate()
            except ValueError as e:
                raise CatalogAccessError(f"Inconsistent catalog data: {e}") from e
        return foreign_keys

    def _key_lookup(self):
        """Key constraint reader memoised for one inference pass."""
        cache: Dict[Tuple[str, str], List[KeyConstraint]] = {}

        def lookup(schema: str, table: str) -> List[KeyConstraint]:
            if (schema, table) not in cache:
                try:
                    cache[(schema, table)] = self.catalog.list_key_constraints(schema, table)
                except CatalogAccessError:
                    raise
                except Exception as e:
                    raise CatalogAccessError(
                        f"Catalog failed listing keys of {schema}.{table}: {e}"
                    ) from e
            return cache[(schema, table)]

        return lookup


def infer_relationships(catalog: SchemaCatalog, schemas: Sequence[str]) -> RelationshipGraph:
    """
    Convenience function to infer relationships and build a graph.

    Args:
        catalog: Schema catalog to read constraints from
        schemas: Schema names to inspect

    Returns:
        RelationshipGraph with inferred relationships
    """
    return RelationshipInferrer(catalog).build_relationship_graph(schemas)
