"""Shared fixtures: the users / organizations / members / projects schema."""

import pytest

from relsub.catalog import StaticSchemaCatalog
from relsub.inference import infer_relationships
from relsub.models import ForeignKey, KeyConstraint, KeyKind


ORG_SCHEMA = {
    "tables": [
        {"name": "users", "primary_key": ["id"]},
        {"name": "organizations", "primary_key": ["id"]},
        {
            "name": "members",
            "primary_key": ["user_id", "org_id"],
            "foreign_keys": [
                {
                    "name": "members_user_id_fkey",
                    "columns": ["user_id"],
                    "references": {"table": "users", "columns": ["id"]},
                },
                {
                    "name": "members_org_id_fkey",
                    "columns": ["org_id"],
                    "references": {"table": "organizations", "columns": ["id"]},
                },
            ],
        },
        {
            "name": "projects",
            "primary_key": ["id"],
            "foreign_keys": [
                {
                    "name": "projects_organization_id_fkey",
                    "columns": ["organization_id"],
                    "references": {"table": "organizations", "columns": ["id"]},
                },
            ],
        },
    ],
}


def make_fk(name, source, source_columns, target, target_columns, schema="public", target_schema=None):
    """Build a ForeignKey in the public schema unless told otherwise."""
    return ForeignKey(
        name=name,
        source_schema=schema,
        source_table=source,
        source_columns=list(source_columns),
        target_schema=target_schema or schema,
        target_table=target,
        target_columns=list(target_columns),
    )


def make_key(table, columns, kind=KeyKind.PRIMARY, schema="public"):
    """Build a KeyConstraint in the public schema unless told otherwise."""
    return KeyConstraint(schema=schema, table=table, columns=list(columns), kind=kind)


@pytest.fixture
def org_schema():
    """The raw schema description of the organizations example."""
    return ORG_SCHEMA


@pytest.fixture
def org_catalog():
    """Static catalog for the organizations example."""
    return StaticSchemaCatalog.from_dict(ORG_SCHEMA)


@pytest.fixture
def org_graph(org_catalog):
    """Relationship graph inferred from the organizations example."""
    return infer_relationships(org_catalog, ["public"])
