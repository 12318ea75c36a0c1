"""Tests for store implementations.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pytest
from unittest.mock import Mock, patch

from mlstudio_core.pipeline.step import Step
from mlstudio_core.stores.local import FileModelStore, LocalDatasetStore
from mlstudio_core.stores.memory import (
    InMemoryDatasetStore,
    InMemoryJobStore,
    InMemoryModelStore,
    InMemoryPipelineStore,
)


class TestInMemoryStores:
    """Test in-process stores."""

    def test_dataset_bytes(self):
        """Test datasets resolve through memory URLs."""
        store = InMemoryDatasetStore()
        dataset_id = store.add_dataset("a.csv", "a,b\n1,2\n", {"rows": 1})

        record = store.get_dataset_by_id(dataset_id)
        url = store.get_download_url(record.file_storage_id)

        assert record.metadata == {"rows": 1}
        assert url.startswith("memory://")
        assert store.fetch_bytes(url) == b"a,b\n1,2\n"
        assert store.get_download_url("blob_missing") is None
        assert store.get_dataset_by_id("ds_missing") is None

    def test_http_fetch(self):
        """Test other URLs are downloaded with requests."""
        store = InMemoryDatasetStore()
        response = Mock(content=b"payload")

        with patch("mlstudio_core.stores.base.requests.get", return_value=response) as get:
            assert store.fetch_bytes("https://files.example/a.csv") == b"payload"

        get.assert_called_once_with("https://files.example/a.csv", timeout=store.timeout)
        response.raise_for_status.assert_called_once()

    def test_http_fetch_timeout(self):
        """Test an explicit timeout overrides the store default."""
        store = InMemoryDatasetStore()

        with patch("mlstudio_core.stores.base.requests.get", return_value=Mock(content=b"x")) as get:
            store.fetch_bytes("https://files.example/a.csv", timeout=2.5)

        get.assert_called_once_with("https://files.example/a.csv", timeout=2.5)

    def test_pipeline_steps_ordered(self):
        """Test pipelines return copies sorted by order."""
        store = InMemoryPipelineStore()
        pipeline_id = store.add_pipeline("p", [
            Step(type="split", order=2),
            Step(type="normalize", order=1),
        ])

        record = store.get_pipeline_by_id(pipeline_id)
        record.steps[0].parameters["method"] = "zscore"

        assert [s.type for s in record.steps] == ["normalize", "split"]
        assert store.get_pipeline_by_id(pipeline_id).steps[0].parameters == {}
        assert store.get_pipeline_by_id("pl_missing") is None

    def test_job_updates(self):
        """Test job updates skip unset fields and are retained."""
        store = InMemoryJobStore()
        job_id = store.create_training_job({"datasetId": "ds"})

        store.update_training_job(job_id, status="running")
        store.update_training_job(job_id, progress=40)

        assert store.jobs[job_id]["status"] == "running"
        assert store.jobs[job_id]["progress"] == 40
        assert store.updates[job_id] == [{"status": "running"}, {"progress": 40}]
        with pytest.raises(KeyError):
            store.update_training_job("job_missing", progress=1)

    def test_model_documents(self):
        """Test model documents are created, updated and deleted."""
        store = InMemoryModelStore()
        model_id = store.create_model({"name": "m", "status": "training"})

        store.update_model(model_id, {"status": "completed"})

        assert store.get_my_models() == [{"name": "m", "status": "completed", "_id": model_id}]
        store.delete_model(model_id)
        assert store.get_my_models() == []
        with pytest.raises(KeyError):
            store.delete_model(model_id)


class TestLocalStores:
    """Test filesystem stores."""

    def test_local_dataset(self, tmp_path):
        """Test local files are read through file URIs."""
        path = tmp_path / "data.csv"
        path.write_text("a,b\n1,2\n")
        store = LocalDatasetStore()

        dataset_id = store.add_file(path)
        record = store.get_dataset_by_id(dataset_id)
        url = store.get_download_url(record.file_storage_id)

        assert record.name == "data.csv"
        assert url.startswith("file://")
        assert store.fetch_bytes(url) == b"a,b\n1,2\n"

    def test_missing_file(self, tmp_path):
        """Test a deleted file has no download URL."""
        path = tmp_path / "gone.csv"
        path.write_text("a\n")
        store = LocalDatasetStore()
        record = store.get_dataset_by_id(store.add_file(path))
        path.unlink()

        assert store.get_download_url(record.file_storage_id) is None

    def test_file_model_store_persists(self, tmp_path):
        """Test documents survive a new store instance."""
        store = FileModelStore(tmp_path / "models")
        model_id = store.create_model({"name": "m", "metrics": {"loss": 0.5}})
        store.update_model(model_id, {"status": "completed"})

        reopened = FileModelStore(tmp_path / "models")
        documents = reopened.get_my_models()

        assert documents[0]["_id"] == model_id
        assert documents[0]["status"] == "completed"
        assert documents[0]["metrics"] == {"loss": 0.5}

    def test_file_model_store_unknown(self, tmp_path):
        """Test unknown ids raise KeyError."""
        store = FileModelStore(tmp_path)

        assert store.get_my_models() == []
        with pytest.raises(KeyError):
            store.update_model("model_missing", {})
        with pytest.raises(KeyError):
            store.delete_model("model_missing")
