"""
Exception hierarchy for relsub.

Catalog failures abort a whole inference call; planning errors are raised
only under the strict or "error" policies of the planner.
"""

from __future__ import annotations

from typing import List, Optional


class RelsubError(Exception):
    """Base class for all relsub errors."""


class CatalogAccessError(RelsubError):
    """The schema catalog failed or returned inconsistent data."""


class AmbiguousRelationshipError(RelsubError):
    """A nested relation matched more than one relationship."""

    def __init__(self, message: str, candidates: Optional[List[str]] = None):
        super().__init__(message)
        self.candidates = candidates or []


class UnresolvedRelationError(RelsubError):
    """A nested relation matched no relationship in the graph."""


class RelationCycleError(RelsubError):
    """A nested relation led back to a table already on the query path."""


class QueryValidationError(RelsubError, ValueError):
    """A query tree is missing required fields or has ill-typed ones."""


class ConfigError(RelsubError, ValueError):
    """A configuration file could not be loaded."""
