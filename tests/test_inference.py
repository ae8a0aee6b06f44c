"""
Tests for the relationship inference pipeline.

Covers foreign key classification, inverse expansion, junction detection and
graph assembly against static catalogs.
"""

from unittest.mock import MagicMock

import pytest

from relsub.catalog import StaticSchemaCatalog
from relsub.errors import CatalogAccessError
from relsub.inference import (
    JunctionDetector,
    RelationshipClassifier,
    RelationshipInferrer,
    expand_inverses,
    infer_relationships,
    junction_constraint_name,
)
from relsub.models import Cardinality, KeyKind

from conftest import make_fk, make_key


def _summary(graph):
    return {
        (r.source_table, r.target_table, r.cardinality, r.junction_table)
        for r in graph
    }


class TestRelationshipClassifier:
    """Tests for foreign key classification."""

    def test_many_to_one_by_default(self):
        catalog = StaticSchemaCatalog(key_constraints=[make_key("projects", ["id"])])
        fk = make_fk("projects_org_fkey", "projects", ["organization_id"], "organizations", ["id"])

        rels = RelationshipClassifier(catalog.list_key_constraints).classify([fk], ["public"])

        assert len(rels) == 1
        assert rels[0].cardinality == Cardinality.MANY_TO_ONE
        assert rels[0].source_columns == ["organization_id"]
        assert rels[0].target_columns == ["id"]

    def test_unique_key_makes_one_to_one(self):
        catalog = StaticSchemaCatalog(key_constraints=[
            make_key("profiles", ["id"]),
            make_key("profiles", ["user_id"], KeyKind.UNIQUE),
        ])
        fk = make_fk("profiles_user_id_fkey", "profiles", ["user_id"], "users", ["id"])

        rels = RelationshipClassifier(catalog.list_key_constraints).classify([fk], ["public"])

        assert rels[0].cardinality == Cardinality.ONE_TO_ONE

    def test_primary_key_compared_as_set(self):
        catalog = StaticSchemaCatalog(key_constraints=[make_key("order_details", ["order_id", "line_no"])])
        fk = make_fk(
            "order_details_line_fkey", "order_details", ["line_no", "order_id"],
            "order_lines", ["line_no", "order_id"],
        )

        rels = RelationshipClassifier(catalog.list_key_constraints).classify([fk], ["public"])

        assert rels[0].cardinality == Cardinality.ONE_TO_ONE
        # Column order is carried through untouched
        assert rels[0].source_columns == ["line_no", "order_id"]

    def test_partial_key_is_many_to_one(self):
        catalog = StaticSchemaCatalog(key_constraints=[make_key("members", ["user_id", "org_id"])])
        fk = make_fk("members_user_id_fkey", "members", ["user_id"], "users", ["id"])

        rels = RelationshipClassifier(catalog.list_key_constraints).classify([fk], ["public"])

        assert rels[0].cardinality == Cardinality.MANY_TO_ONE

    def test_cross_schema_visible_from_either_side(self):
        catalog = StaticSchemaCatalog()
        fks = [
            make_fk("logs_user_fkey", "logs", ["user_id"], "users", ["id"], schema="audit", target_schema="public"),
            make_fk("logs_event_fkey", "logs", ["event_id"], "events", ["id"], schema="audit"),
        ]

        rels = RelationshipClassifier(catalog.list_key_constraints).classify(fks, ["public"])

        assert [r.constraint_name for r in rels] == ["logs_user_fkey"]

    def test_sorted_for_presentation(self):
        catalog = StaticSchemaCatalog()
        fks = [
            make_fk("z_fkey", "b", ["x"], "a", ["id"]),
            make_fk("y_fkey", "a", ["x"], "b", ["id"]),
            make_fk("m_fkey", "b", ["y"], "a", ["id"]),
        ]

        rels = RelationshipClassifier(catalog.list_key_constraints).classify(fks, ["public"])

        assert [(r.source_table, r.constraint_name) for r in rels] == [
            ("a", "y_fkey"), ("b", "m_fkey"), ("b", "z_fkey"),
        ]

    def test_self_relation_flag(self):
        catalog = StaticSchemaCatalog(key_constraints=[make_key("employees", ["id"])])
        fk = make_fk("employees_manager_id_fkey", "employees", ["manager_id"], "employees", ["id"])

        rels = RelationshipClassifier(catalog.list_key_constraints).classify([fk], ["public"])

        assert rels[0].is_self_relation is True


class TestInverseExpansion:
    """Tests for OneToMany derivation."""

    def test_inverse_swaps_endpoints(self, org_catalog):
        classified = RelationshipClassifier(org_catalog.list_key_constraints).classify(
            org_catalog.list_foreign_keys(["public"]), ["public"],
        )
        inverses = expand_inverses(classified)

        assert len(inverses) == len(classified)
        for rel in classified:
            matches = [
                inv for inv in inverses
                if inv.constraint_name == rel.constraint_name
                and inv.source == rel.target
                and inv.target == rel.source
                and inv.source_columns == rel.target_columns
                and inv.target_columns == rel.source_columns
            ]
            assert len(matches) == 1
            assert matches[0].cardinality == Cardinality.ONE_TO_MANY
            assert matches[0].junction_table is None

    def test_one_to_one_not_inverted(self):
        catalog = StaticSchemaCatalog(key_constraints=[make_key("profiles", ["user_id"])])
        fk = make_fk("profiles_user_id_fkey", "profiles", ["user_id"], "users", ["id"])
        classified = RelationshipClassifier(catalog.list_key_constraints).classify([fk], ["public"])

        assert expand_inverses(classified) == []


class TestJunctionDetector:
    """Tests for junction table detection."""

    def _classified(self, catalog):
        return RelationshipClassifier(catalog.list_key_constraints).classify(
            catalog.list_foreign_keys(["public"]), ["public"],
        )

    def test_symmetric_pair(self, org_catalog):
        m2m = JunctionDetector(org_catalog.list_key_constraints).detect(self._classified(org_catalog))

        assert len(m2m) == 2
        by_source = {r.source_table: r for r in m2m}

        users_to_orgs = by_source["users"]
        assert users_to_orgs.target_table == "organizations"
        assert users_to_orgs.source_columns == ["id"]
        assert users_to_orgs.target_columns == ["id"]
        assert users_to_orgs.junction == ("public", "members")
        assert users_to_orgs.junction_source_constraint == "members_user_id_fkey"
        assert users_to_orgs.junction_target_constraint == "members_org_id_fkey"
        assert users_to_orgs.junction_source_columns == ["user_id"]
        assert users_to_orgs.junction_target_columns == ["org_id"]

        orgs_to_users = by_source["organizations"]
        assert orgs_to_users.target_table == "users"
        assert orgs_to_users.junction_source_constraint == "members_org_id_fkey"
        assert orgs_to_users.junction_target_constraint == "members_user_id_fkey"
        assert orgs_to_users.junction_source_columns == ["org_id"]

        # Both directions share one synthetic name, lexically first leg first
        expected = junction_constraint_name("members_org_id_fkey", "members_user_id_fkey")
        assert users_to_orgs.constraint_name == orgs_to_users.constraint_name == expected
        assert not users_to_orgs.is_self_relation

    def test_fk_outside_primary_key_does_not_qualify(self):
        catalog = StaticSchemaCatalog(
            foreign_keys=[
                make_fk("tasks_project_fkey", "tasks", ["project_id"], "projects", ["id"]),
                make_fk("tasks_owner_fkey", "tasks", ["owner_id"], "users", ["id"]),
            ],
            key_constraints=[make_key("tasks", ["id"])],
        )
        assert JunctionDetector(catalog.list_key_constraints).detect(self._classified(catalog)) == []

    def test_no_primary_key_does_not_qualify(self):
        catalog = StaticSchemaCatalog(foreign_keys=[
            make_fk("tags_post_fkey", "post_tags", ["post_id"], "posts", ["id"]),
            make_fk("tags_tag_fkey", "post_tags", ["tag_id"], "tags", ["id"]),
        ])
        assert JunctionDetector(catalog.list_key_constraints).detect(self._classified(catalog)) == []

    def test_primary_key_wider_than_legs(self):
        catalog = StaticSchemaCatalog(
            foreign_keys=[
                make_fk("roles_user_fkey", "roles", ["user_id"], "users", ["id"]),
                make_fk("roles_org_fkey", "roles", ["org_id"], "organizations", ["id"]),
            ],
            key_constraints=[make_key("roles", ["user_id", "org_id", "role"])],
        )
        m2m = JunctionDetector(catalog.list_key_constraints).detect(self._classified(catalog))
        assert len(m2m) == 2

    def test_self_linking_junction(self):
        catalog = StaticSchemaCatalog(
            foreign_keys=[
                make_fk("friendships_user_fkey", "friendships", ["user_id"], "users", ["id"]),
                make_fk("friendships_friend_fkey", "friendships", ["friend_id"], "users", ["id"]),
            ],
            key_constraints=[make_key("friendships", ["user_id", "friend_id"])],
        )
        m2m = JunctionDetector(catalog.list_key_constraints).detect(self._classified(catalog))

        assert len(m2m) == 2
        assert all(r.is_self_relation for r in m2m)
        assert all(r.source_table == r.target_table == "users" for r in m2m)
        assert {tuple(r.junction_source_columns) for r in m2m} == {("user_id",), ("friend_id",)}

    def test_three_legs_yield_pairwise_relationships(self):
        catalog = StaticSchemaCatalog(
            foreign_keys=[
                make_fk("a_fkey", "assignments", ["user_id"], "users", ["id"]),
                make_fk("b_fkey", "assignments", ["project_id"], "projects", ["id"]),
                make_fk("c_fkey", "assignments", ["role_id"], "roles", ["id"]),
            ],
            key_constraints=[make_key("assignments", ["user_id", "project_id", "role_id"])],
        )
        m2m = JunctionDetector(catalog.list_key_constraints).detect(self._classified(catalog))

        assert len(m2m) == 6
        assert {r.constraint_name for r in m2m} == {"a_fkey_b_fkey", "a_fkey_c_fkey", "b_fkey_c_fkey"}

    def test_one_to_one_leg_excluded(self):
        catalog = StaticSchemaCatalog(
            foreign_keys=[
                make_fk("pairs_left_fkey", "pairs", ["left_id"], "lefts", ["id"]),
                make_fk("pairs_both_fkey", "pairs", ["right_id", "left_id"], "links", ["right_id", "left_id"]),
            ],
            key_constraints=[make_key("pairs", ["left_id", "right_id"])],
        )
        classified = self._classified(catalog)

        assert {r.constraint_name: r.cardinality for r in classified}["pairs_both_fkey"] == Cardinality.ONE_TO_ONE
        assert JunctionDetector(catalog.list_key_constraints).detect(classified) == []


class TestRelationshipInferrer:
    """Tests for graph assembly."""

    def test_end_to_end_scenario(self, org_graph):
        expected = {
            ("members", "users", Cardinality.MANY_TO_ONE, None),
            ("members", "organizations", Cardinality.MANY_TO_ONE, None),
            ("users", "members", Cardinality.ONE_TO_MANY, None),
            ("organizations", "members", Cardinality.ONE_TO_MANY, None),
            ("projects", "organizations", Cardinality.MANY_TO_ONE, None),
            ("organizations", "projects", Cardinality.ONE_TO_MANY, None),
            ("users", "organizations", Cardinality.MANY_TO_MANY, "members"),
            ("organizations", "users", Cardinality.MANY_TO_MANY, "members"),
        }
        assert _summary(org_graph) == expected
        assert len(org_graph) == 8

    def test_graph_ordering(self, org_graph):
        assert [(r.source_table, r.constraint_name) for r in org_graph] == [
            ("members", "members_org_id_fkey"),
            ("members", "members_user_id_fkey"),
            ("organizations", "members_org_id_fkey"),
            ("organizations", "members_org_id_fkey_members_user_id_fkey"),
            ("organizations", "projects_organization_id_fkey"),
            ("projects", "projects_organization_id_fkey"),
            ("users", "members_org_id_fkey_members_user_id_fkey"),
            ("users", "members_user_id_fkey"),
        ]

    def test_lookup_from_either_endpoint(self):
        catalog = StaticSchemaCatalog(
            foreign_keys=[make_fk("profiles_user_id_fkey", "profiles", ["user_id"], "users", ["id"])],
            key_constraints=[make_key("profiles", ["user_id"], KeyKind.UNIQUE)],
        )
        graph = infer_relationships(catalog, ["public"])

        assert len(graph) == 1
        assert graph.outgoing("public", "profiles")[0].cardinality == Cardinality.ONE_TO_ONE
        assert graph.incoming("public", "users")[0].source_table == "profiles"

    def test_relationships_filtered_by_cardinality(self, org_catalog):
        rels = RelationshipInferrer(org_catalog).relationships(["public"], Cardinality.MANY_TO_MANY)
        assert [(r.source_table, r.target_table) for r in rels] == [
            ("organizations", "users"),
            ("users", "organizations"),
        ]

    def test_idempotent(self, org_catalog):
        inferrer = RelationshipInferrer(org_catalog)
        first = inferrer.build_relationship_graph(["public"]).to_dict()
        second = inferrer.build_relationship_graph(["public"]).to_dict()
        assert first == second

    def test_key_constraints_read_once_per_table(self, org_catalog):
        catalog = MagicMock(wraps=org_catalog)
        infer_relationships(catalog, ["public"])

        tables = [c.args for c in catalog.list_key_constraints.call_args_list]
        assert sorted(tables) == [("public", "members"), ("public", "projects")]

    def test_unrequested_schema_is_empty(self, org_catalog):
        assert len(infer_relationships(org_catalog, ["billing"])) == 0

    def test_catalog_failure(self):
        catalog = MagicMock()
        catalog.list_foreign_keys.side_effect = RuntimeError("connection reset")
        catalog.normalize_identifier.side_effect = lambda name: name

        with pytest.raises(CatalogAccessError, match="connection reset"):
            infer_relationships(catalog, ["public"])

    def test_catalog_access_error_passes_through(self):
        catalog = MagicMock()
        catalog.list_foreign_keys.side_effect = CatalogAccessError("down")
        catalog.normalize_identifier.side_effect = lambda name: name

        with pytest.raises(CatalogAccessError, match="down"):
            infer_relationships(catalog, ["public"])

    def test_key_lookup_failure(self, org_catalog):
        catalog = MagicMock(wraps=org_catalog)
        catalog.list_key_constraints.side_effect = RuntimeError("timeout")

        with pytest.raises(CatalogAccessError, match="members"):
            infer_relationships(catalog, ["public"])

    def test_inconsistent_foreign_key(self):
        catalog = StaticSchemaCatalog(foreign_keys=[
            make_fk("broken_fkey", "members", ["user_id", "org_id"], "users", ["id"]),
        ])

        with pytest.raises(CatalogAccessError, match="Inconsistent"):
            infer_relationships(catalog, ["public"])
