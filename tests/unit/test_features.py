"""Unit tests for feature snapshots and feature stores."""

import pytest

from featuregraph.errors import FeatureNotFoundError
from featuregraph.features import FeatureSnapshot, InMemoryFeatureStore, SqlFeatureStore
from featuregraph.services.connections import ConnectionService
from featuregraph.services.correlation import CorrelationDetector


class TestFeatureSnapshot:
    """Test building snapshots from host payloads."""

    def test_from_camel_case_mapping(self):
        snapshot = FeatureSnapshot.from_mapping(
            {
                "id": "checkout",
                "workspaceId": "ws-1",
                "name": "Checkout",
                "businessValue": "high",
                "workflowStage": "development",
                "categories": ["payments"],
            }
        )

        assert snapshot.workspace_id == "ws-1"
        assert snapshot.business_value == "high"
        assert snapshot.workflow_stage == "development"
        assert snapshot.categories == ("payments",)

    def test_snake_case_wins_over_camel_case(self):
        snapshot = FeatureSnapshot.from_mapping(
            {"id": "f", "workspace_id": "ws-1", "workspaceId": "ws-2", "business_value": "low"}
        )

        assert snapshot.workspace_id == "ws-1"
        assert snapshot.business_value == "low"

    def test_missing_optional_fields(self):
        snapshot = FeatureSnapshot.from_mapping({"id": 7, "workspace_id": "ws-1", "name": None})

        assert snapshot.id == "7"
        assert snapshot.name == ""
        assert snapshot.categories == ()
        assert snapshot.text.strip() == ""

    def test_text_joins_name_and_purpose(self):
        snapshot = FeatureSnapshot(id="f", workspace_id="ws-1", name="Refunds", purpose="Return money")

        assert snapshot.text == "Refunds Return money"


class TestInMemoryFeatureStore:
    """Test the in-memory store used by host applications without a features table."""

    def test_list_is_scoped_and_sorted(self, memory_store):
        assert [f.id for f in memory_store.list_features("ws-1")] == ["dashboard", "gateway", "setup"]
        assert [f.id for f in memory_store.list_features("ws-2")] == ["other"]

    def test_put_replaces_and_remove(self, memory_store):
        memory_store.put(FeatureSnapshot(id="setup", workspace_id="ws-1", name="Gateway Setup"))
        memory_store.remove("dashboard")
        memory_store.remove("never-existed")

        assert memory_store.get_feature("setup").name == "Gateway Setup"
        assert memory_store.get_feature("dashboard") is None

    def test_drives_correlation_detection(self, session, memory_store):
        candidates = CorrelationDetector(session, memory_store).find_candidates("gateway")

        assert [c.correlated_feature_id for c in candidates] == ["setup"]

    def test_drives_connection_validation(self, session, memory_store):
        service = ConnectionService(session, memory_store)

        service.create_connection("ws-1", "gateway", "setup", "dependency")

        with pytest.raises(FeatureNotFoundError):
            service.create_connection("ws-1", "gateway", "missing", "dependency")


class TestSqlFeatureStore:
    """Test the store backed by the features table."""

    def test_reads_rows(self, session, add_features, feature_factory):
        add_features(feature_factory("b", categories=["x"]), "a", feature_factory("z", workspace_id="ws-2"))
        store = SqlFeatureStore(session)

        assert [f.id for f in store.list_features("ws-1")] == ["a", "b"]
        assert store.get_feature("b").categories == ("x",)
        assert store.get_feature("missing") is None
