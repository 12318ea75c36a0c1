"""Tests for model module.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pytest
from unittest.mock import Mock

from mlstudio_core.errors import ModelNotFoundError, PersistenceError
from mlstudio_core.metrics.records import EpochRecord, ModelMetrics
from mlstudio_core.model.registry import (
    ModelStatus,
    ModelVersion,
    ModelVersionStore,
    TrainingConfig,
)
from mlstudio_core.stores.memory import InMemoryModelStore


MODEL_DATA = {
    "modelType": "neural_network",
    "architecture": {
        "class_name": "Sequential",
        "config": {"layers": [{"class_name": "Dense", "config": {"units": 1, "batch_input_shape": [None, 3]}}]},
    },
    "weights": [],
    "trainingMetadata": {"featureNames": ["a", "b", "c"], "labelName": "y"},
}


def finished(versions, name, loss, accuracy=None, training_time=1.0, model_data=MODEL_DATA):
    return versions.create(
        model_data=model_data,
        metrics=ModelMetrics(loss=loss, accuracy=accuracy, training_time=training_time),
        parameters={"epochs": 10},
        preprocessing_steps=[{"type": "normalize", "parameters": {}}],
        dataset_id="ds_1",
        name=name,
        training_history=[EpochRecord(epoch=1, loss=loss)],
    )


class TestModelVersion:
    """Test ModelVersion records."""

    def test_record_roundtrip(self):
        """Test the camelCase document restores every field."""
        model = ModelVersion(
            id="m1",
            name="houses",
            version="v4",
            model_type="linear_regression",
            dataset_id="ds_1",
            status=ModelStatus.COMPLETED,
            metrics=ModelMetrics(loss=0.2, epochs=3),
            training_config=TrainingConfig(test_size=0.1, validation_size=0.3, random_state=7),
            parent_model_id="m0",
            training_history=[EpochRecord(epoch=1, loss=0.4)],
        )

        record = model.to_record()
        restored = ModelVersion.from_record(record)

        assert record["_id"] == "m1"
        assert record["modelType"] == "linear_regression"
        assert record["trainingConfig"] == {"testSize": 0.1, "validationSize": 0.3, "randomState": 7}
        assert restored.status == ModelStatus.COMPLETED
        assert restored.parent_model_id == "m0"
        assert restored.training_config.random_state == 7
        assert restored.training_history[0].loss == 0.4
        assert restored.version_number == 4

    def test_terminal_statuses(self):
        """Test only training is non-terminal."""
        assert not ModelStatus.TRAINING.terminal
        assert ModelStatus.FAILED.terminal


class TestLifecycle:
    """Test two-phase persistence."""

    def test_begin_creates_store_record(self):
        """Test the shell record is created in training status."""
        backend = InMemoryModelStore()
        versions = ModelVersionStore(backend)

        model = versions.begin("m", "linear_regression", "ds_1")

        assert model.id in backend.documents
        assert backend.documents[model.id]["status"] == "training"
        assert model.status == ModelStatus.TRAINING
        assert model.version == "v1"

    def test_versions_increase(self):
        """Test version tags are strictly increasing."""
        versions = ModelVersionStore()
        tags = [versions.begin(f"m{i}", "linear_regression", "ds").version_number for i in range(4)]

        assert tags == [1, 2, 3, 4]

    def test_complete_updates_store(self):
        """Test completion reaches the store."""
        backend = InMemoryModelStore()
        versions = ModelVersionStore(backend)

        model = finished(versions, "a", loss=0.3, accuracy=0.9)

        document = backend.documents[model.id]
        assert document["status"] == "completed"
        assert document["metrics"]["accuracy"] == 0.9
        assert document["modelData"]["modelType"] == "neural_network"
        assert model.status == ModelStatus.COMPLETED

    def test_complete_store_failure_keeps_cache(self):
        """Test a rejected save raises and leaves the cached run in training."""
        backend = Mock()
        backend.create_model.return_value = "m1"
        backend.update_model.side_effect = RuntimeError("db down")
        versions = ModelVersionStore(backend)

        model = versions.begin("m", "linear_regression", "ds_1")
        with pytest.raises(PersistenceError):
            versions.complete(model.id, ModelMetrics(loss=0.1), [], MODEL_DATA)

        assert versions.get("m1").status == ModelStatus.TRAINING
        assert versions.get("m1").model_data is None

    def test_fail_is_best_effort(self):
        """Test failure is recorded locally even when the store is down."""
        backend = Mock()
        backend.create_model.return_value = "m1"
        backend.update_model.side_effect = RuntimeError("db down")
        versions = ModelVersionStore(backend)
        versions.begin("m", "linear_regression", "ds_1")

        model = versions.fail("m1", "Training failed", {"type": "RuntimeError"})

        assert model.status == ModelStatus.FAILED
        assert model.error_message == "Training failed"

    def test_cancel_keeps_history(self):
        """Test cancellation keeps partial history."""
        versions = ModelVersionStore()
        model = versions.begin("m", "linear_regression", "ds_1")

        versions.cancel(model.id, ModelMetrics(loss=1.0), [EpochRecord(epoch=1, loss=1.0)])

        assert model.status == ModelStatus.CANCELLED
        assert len(model.training_history) == 1

    def test_unknown_model(self):
        """Test unknown ids raise ModelNotFoundError, a KeyError."""
        versions = ModelVersionStore()

        with pytest.raises(ModelNotFoundError):
            versions.complete("nope", ModelMetrics(), [], {})
        with pytest.raises(KeyError):
            versions.require("nope")


class TestClone:
    """Test clone."""

    def test_clone_of_third_version(self):
        """Test a clone links to its parent with a greater version."""
        versions = ModelVersionStore(InMemoryModelStore())
        finished(versions, "a", loss=0.5)
        finished(versions, "b", loss=0.4)
        source = finished(versions, "c", loss=0.3, accuracy=0.8)
        assert source.version == "v3"

        clone = versions.clone(source.id, "c-retrain", {"epochs": 50})

        assert clone.parent_model_id == source.id
        assert clone.status == ModelStatus.TRAINING
        assert clone.version_number > 3
        assert clone.parameters == {"epochs": 50}
        assert clone.metrics.accuracy is None
        assert clone.training_history == []
        assert clone.model_data == source.model_data
        assert clone.model_data is not source.model_data
        assert clone.preprocessing_steps == source.preprocessing_steps

    def test_clone_keeps_parameters(self):
        """Test omitted parameters are copied from the source."""
        versions = ModelVersionStore()
        source = finished(versions, "a", loss=0.5)

        assert versions.clone(source.id, "b").parameters == {"epochs": 10}

    def test_clone_unknown(self):
        """Test cloning a missing model raises."""
        with pytest.raises(ModelNotFoundError):
            ModelVersionStore().clone("missing", "x")

    def test_latest_flag_moves(self):
        """Test the clone becomes the latest and the source is demoted in the store."""
        backend = InMemoryModelStore()
        versions = ModelVersionStore(backend)
        source = finished(versions, "a", loss=0.5)
        other = finished(versions, "unrelated", loss=0.5)

        clone = versions.clone(source.id, "b")

        assert clone.is_latest_version
        assert not source.is_latest_version
        assert backend.documents[source.id]["isLatestVersion"] is False
        assert other.is_latest_version

    def test_lineage(self):
        """Test lineage walks parents oldest first."""
        versions = ModelVersionStore()
        a = finished(versions, "a", loss=0.5)
        b = versions.clone(a.id, "b")
        c = versions.clone(b.id, "c")

        assert [m.id for m in versions.lineage(c.id)] == [a.id, b.id, c.id]
        assert versions.latest_in_lineage(a.id).id == c.id


class TestDelete:
    """Test delete."""

    def test_store_first(self):
        """Test a refused delete leaves the cache untouched."""
        backend = Mock()
        backend.create_model.return_value = "m1"
        backend.delete_model.side_effect = RuntimeError("forbidden")
        versions = ModelVersionStore(backend)
        versions.begin("m", "linear_regression", "ds_1")

        with pytest.raises(PersistenceError):
            versions.delete("m1")

        assert versions.get("m1") is not None

    def test_delete(self):
        """Test a successful delete removes both copies."""
        backend = InMemoryModelStore()
        versions = ModelVersionStore(backend)
        model = finished(versions, "a", loss=0.5)

        versions.delete(model.id)

        assert versions.get(model.id) is None
        assert model.id not in backend.documents
        assert len(versions) == 0

    def test_latest_passes_back(self):
        """Test deleting the latest clone restores the flag on the source."""
        backend = InMemoryModelStore()
        versions = ModelVersionStore(backend)
        source = finished(versions, "a", loss=0.5)
        clone = versions.clone(source.id, "b")

        versions.delete(clone.id)

        assert source.is_latest_version
        assert backend.documents[source.id]["isLatestVersion"] is True


class TestCompare:
    """Test compare."""

    def test_empty(self):
        """Test an empty comparison has no winners."""
        result = ModelVersionStore().compare([])

        assert result.best_accuracy is None
        assert result.best_loss is None
        assert result.fastest_training is None
        assert result.to_dict()["models"] == []

    def test_winners(self):
        """Test winners are picked across every provided model."""
        versions = ModelVersionStore()
        a = finished(versions, "a", loss=0.5, accuracy=0.8, training_time=2.0)
        b = finished(versions, "b", loss=0.3, training_time=4.0)
        c = versions.begin("c", "linear_regression", "ds_1")
        versions.fail(c.id, "boom", metrics=ModelMetrics(loss=0.9, accuracy=0.9, training_time=1.0))

        result = versions.compare([a.id, b.id, c.id, "unknown"])

        assert [m.id for m in result.models] == [a.id, b.id, c.id]
        assert result.best_accuracy is c
        assert result.best_loss is b
        assert result.fastest_training is c

    def test_unfinished_runs_compete(self):
        """Test cancelled and failed runs are compared by their metrics."""
        versions = ModelVersionStore()
        a = versions.begin("a", "linear_regression", "ds_1")
        versions.cancel(a.id, ModelMetrics(loss=0.5, training_time=3.0), [EpochRecord(epoch=1, loss=0.5)])
        b = versions.begin("b", "linear_regression", "ds_1")
        versions.fail(b.id, "diverged", metrics=ModelMetrics(loss=0.7, training_time=2.0))

        result = versions.compare([a.id, b.id]).to_dict()

        assert result["bestLoss"] == a.id
        assert result["fastestTraining"] == b.id
        assert result["bestAccuracy"] is None

    def test_no_accuracy(self):
        """Test regression-only sets have no accuracy winner."""
        versions = ModelVersionStore()
        a = finished(versions, "a", loss=0.5)

        assert versions.compare([a.id]).best_accuracy is None


class TestStatistics:
    """Test statistics."""

    def test_empty(self):
        """Test an empty store reports zeros."""
        stats = ModelVersionStore().statistics()

        assert stats.total_models == 0
        assert stats.average_accuracy == 0.0
        assert stats.average_loss == 0.0
        assert stats.average_training_time == 0.0
        assert stats.best_model is None

    def test_averages_completed_only(self):
        """Test averages ignore failed models."""
        versions = ModelVersionStore()
        finished(versions, "a", loss=0.5, accuracy=0.8, training_time=2.0)
        b = finished(versions, "b", loss=0.3, training_time=4.0)
        c = versions.begin("c", "linear_regression", "ds_1")
        versions.fail(c.id, "boom")

        stats = versions.statistics()

        assert stats.total_models == 3
        assert stats.models_by_status == {"completed": 2, "failed": 1}
        assert stats.models_by_type == {"neural_network": 2, "linear_regression": 1}
        assert stats.average_accuracy == pytest.approx(0.8)
        assert stats.average_loss == pytest.approx(0.4)
        assert stats.average_training_time == pytest.approx(3.0)
        assert stats.best_model is b


class TestSync:
    """Test sync."""

    def test_replaces_cache(self):
        """Test sync replaces the cache and moves the version counter."""
        backend = InMemoryModelStore()
        versions = ModelVersionStore(backend)
        stale = versions.begin("stale", "linear_regression", "ds")
        backend.documents.clear()
        backend.create_model(
            ModelVersion(id="", name="old", version="v7", model_type="cnn", dataset_id="ds")
            .to_record(include_id=False)
        )

        assert versions.sync() == 1
        assert versions.get(stale.id) is None
        assert versions.get_by_name("old").model_type == "cnn"
        assert versions.begin("next", "cnn", "ds").version == "v8"

    def test_failure_keeps_cache(self):
        """Test a failed read leaves the cache alone."""
        backend = Mock()
        backend.create_model.return_value = "m1"
        backend.get_my_models.side_effect = RuntimeError("offline")
        versions = ModelVersionStore(backend)
        versions.begin("m", "linear_regression", "ds")

        with pytest.raises(PersistenceError):
            versions.sync()

        assert len(versions) == 1

    def test_without_store(self):
        """Test sync without a store is a no-op."""
        versions = ModelVersionStore()
        versions.begin("m", "linear_regression", "ds")
        assert versions.sync() == 1


class TestQueries:
    """Test reads and metadata updates."""

    def test_filters(self):
        """Test filtering by type, dataset and status."""
        versions = ModelVersionStore()
        a = finished(versions, "a", loss=0.5)
        b = versions.begin("b", "cnn", "ds_2")

        assert versions.by_type("cnn") == [b]
        assert versions.by_dataset("ds_1") == [a]
        assert versions.by_status("training") == [b]
        assert versions.list_models()[0] is b

    def test_get_by_name_newest(self):
        """Test the newest version of a name wins."""
        versions = ModelVersionStore()
        versions.begin("same", "cnn", "ds")
        newer = versions.begin("same", "cnn", "ds")

        assert versions.get_by_name("same") is newer

    def test_update_metadata(self):
        """Test name and description updates reach the store."""
        backend = InMemoryModelStore()
        versions = ModelVersionStore(backend)
        model = versions.begin("m", "cnn", "ds")

        versions.update_metadata(model.id, name="renamed", description="notes")
        versions.update_parameters(model.id, {"epochs": 3})

        assert backend.documents[model.id]["name"] == "renamed"
        assert backend.documents[model.id]["parameters"] == {"epochs": 3}
        assert model.description == "notes"

    def test_resolve_feature_names(self):
        """Test names come from training metadata, else placeholders."""
        versions = ModelVersionStore()
        model = finished(versions, "a", loss=0.5)
        bare = finished(versions, "b", loss=0.5, model_data={
            "modelType": "neural_network",
            "architecture": MODEL_DATA["architecture"],
        })

        assert versions.resolve_feature_names(model.id) == (["a", "b", "c"], "y", False)
        assert versions.resolve_feature_names(bare.id) == (
            ["feature_0", "feature_1", "feature_2"], "target", True,
        )


class TestExport:
    """Test export."""

    def test_json(self):
        """Test JSON export carries the record and export stamps."""
        versions = ModelVersionStore()
        model = finished(versions, "a", loss=0.5)

        exported = versions.export(model.id)

        assert exported["_id"] == model.id
        assert exported["exportVersion"] == "1.0"
        assert "exportedAt" in exported
        assert exported["modelData"] == MODEL_DATA

    def test_native_needs_artifact(self):
        """Test native export of an untrained model raises."""
        versions = ModelVersionStore()
        model = versions.begin("m", "cnn", "ds")

        with pytest.raises(ValueError):
            versions.export(model.id, "native")
