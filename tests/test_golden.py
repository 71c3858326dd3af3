"""
Tests for Golden Module.
========================

Tests for:
- Loading (missing, corrupt, schema-invalid files)
- Saving and round-tripping
- Adding, removing and listing entries
- Tag filtering and configured-location helpers
"""

import json
import threading
from pathlib import Path

import pytest


class TestGoldenLoad:
    """Tests for GoldenDatasetStore.load."""

    def test_path_layout(self, golden_store, temp_dir: Path):
        """Test the per-project file location."""
        assert golden_store.get_path("my-app") == temp_dir / "golden" / "my-app" / "golden.json"

    def test_missing_file_is_empty(self, golden_store):
        """Test a missing dataset loads as empty, not an error."""
        dataset = golden_store.load("missing")

        assert dataset.project_name == "missing"
        assert dataset.version == "1.0"
        assert dataset.entries == []

    def test_invalid_json(self, golden_store):
        """Test a corrupt file raises DATASET_INVALID."""
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        path = golden_store.get_path("broken")
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        with pytest.raises(EvalError) as exc_info:
            golden_store.load("broken")

        assert exc_info.value.code == EvalErrorCode.DATASET_INVALID
        assert "invalid JSON" in exc_info.value.message

    def test_invalid_utf8(self, golden_store):
        """Test undecodable bytes raise DATASET_INVALID, not a decode error."""
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        path = golden_store.get_path("binary")
        path.parent.mkdir(parents=True)
        path.write_bytes(b'{"version": "1.0", "projectName": "binary", "entries": [\xff\xfe]}')

        with pytest.raises(EvalError) as exc_info:
            golden_store.load("binary")

        assert exc_info.value.code == EvalErrorCode.DATASET_INVALID

        with pytest.raises(EvalError):
            golden_store.add("binary", "query", expected_answer="a")

    def test_schema_violation_names_field(self, golden_store):
        """Test schema failures name the offending field."""
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        path = golden_store.get_path("bad-schema")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({
            "version": "1.0",
            "projectName": "bad-schema",
            "entries": [{"id": "e1", "query": "", "source": "manual"}],
        }))

        with pytest.raises(EvalError) as exc_info:
            golden_store.load("bad-schema")

        assert exc_info.value.code == EvalErrorCode.DATASET_INVALID
        assert "entries.0.query" in exc_info.value.message

    def test_wrong_version_rejected(self, golden_store):
        """Test an unknown schema version fails validation."""
        from ctx_eval.shared.errors import EvalError

        path = golden_store.get_path("v2")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"version": "2.0", "projectName": "v2", "entries": []}))

        with pytest.raises(EvalError):
            golden_store.load("v2")


class TestGoldenSave:
    """Tests for saving and round-tripping."""

    def test_save_creates_directory_and_pretty_json(self, golden_store, sample_golden_dataset):
        """Test save writes indented camelCase JSON."""
        path = golden_store.save(sample_golden_dataset)

        text = path.read_text(encoding="utf-8")
        data = json.loads(text)

        assert text.startswith("{\n  ")
        assert data["projectName"] == "test-project"
        assert data["entries"][0]["expectedFilePaths"] == ["src/auth/login.ts"]
        assert "expectedAnswer" not in data["entries"][0]

    def test_round_trip_preserves_order(self, golden_store, sample_golden_dataset):
        """Test load(save(dataset)) keeps entries and their order."""
        golden_store.save(sample_golden_dataset)

        loaded = golden_store.load("test-project")

        assert [e.id for e in loaded.entries] == ["e1", "e2", "e3"]
        assert loaded == sample_golden_dataset

    def test_no_temp_files_left(self, golden_store, sample_golden_dataset):
        """Test the atomic write leaves only the dataset file."""
        path = golden_store.save(sample_golden_dataset)

        assert [p.name for p in path.parent.iterdir()] == ["golden.json"]


class TestGoldenEntries:
    """Tests for add, remove and list."""

    def test_add_generates_id(self, golden_store):
        """Test add assigns a UUID and persists the entry."""
        entry = golden_store.add(
            "my-app",
            "How does login work?",
            expected_file_paths=["src/auth/login.ts"],
            tags=["auth"],
        )

        entries = golden_store.list("my-app")

        assert len(entry.id) == 36
        assert [e.id for e in entries] == [entry.id]
        assert entries[0].tags == ["auth"]
        assert entries[0].source.value == "manual"

    def test_add_answer_only(self, golden_store):
        """Test an entry with only an expected answer is valid."""
        entry = golden_store.add("my-app", "What is X?", expected_answer="X is Y.", source="generated")

        assert entry.expected_file_paths is None
        assert entry.source.value == "generated"

    @pytest.mark.parametrize("query", ["", "   "])
    def test_add_rejects_empty_query(self, golden_store, query):
        """Test empty queries are rejected."""
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        with pytest.raises(EvalError) as exc_info:
            golden_store.add("my-app", query, expected_file_paths=["a.ts"])

        assert exc_info.value.code == EvalErrorCode.DATASET_INVALID

    def test_add_rejects_missing_expectations(self, golden_store):
        """Test entries need expected files or an expected answer."""
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        with pytest.raises(EvalError) as exc_info:
            golden_store.add("my-app", "query", expected_file_paths=[])

        assert exc_info.value.code == EvalErrorCode.DATASET_INVALID
        assert not golden_store.get_path("my-app").exists()

    def test_add_rejects_unknown_source(self, golden_store):
        """Test an invalid provenance is a dataset error."""
        from ctx_eval.shared.errors import EvalError

        with pytest.raises(EvalError):
            golden_store.add("my-app", "query", expected_answer="a", source="scraped")

    def test_remove(self, golden_store):
        """Test remove deletes the entry and is idempotent."""
        keep = golden_store.add("my-app", "keep", expected_answer="a")
        drop = golden_store.add("my-app", "drop", expected_answer="b")

        assert golden_store.remove("my-app", drop.id) is True
        assert golden_store.remove("my-app", drop.id) is False
        assert [e.id for e in golden_store.list("my-app")] == [keep.id]

    def test_remove_from_missing_project(self, golden_store):
        """Test removing from a missing dataset returns False."""
        assert golden_store.remove("nothing", "id") is False

    def test_concurrent_adds_are_not_lost(self, golden_store):
        """Test in-process writers to one project are serialized."""
        def add_entries(worker: int):
            for i in range(5):
                golden_store.add("busy", f"query {worker}-{i}", expected_answer="a")

        threads = [threading.Thread(target=add_entries, args=(w,)) for w in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(golden_store.list("busy")) == 20


class TestGoldenHelpers:
    """Tests for tag filtering and configured-location functions."""

    def test_filter_by_tags(self, sample_golden_dataset):
        """Test entries match when they carry any requested tag."""
        from ctx_eval.evaluation.golden import filter_by_tags

        entries = sample_golden_dataset.entries

        assert [e.id for e in filter_by_tags(entries, ["auth", "other"])] == ["e1"]
        assert len(filter_by_tags(entries, None)) == 3
        assert len(filter_by_tags(entries, [])) == 3

    def test_convenience_functions_use_configured_path(self, temp_dir: Path):
        """Test module functions read CTX_EVAL_GOLDEN_PATH."""
        from ctx_eval.evaluation.golden import (
            add_golden_entry,
            get_golden_dataset_path,
            list_golden_entries,
            remove_golden_entry,
        )

        entry = add_golden_entry("cfg-app", "query", expected_file_paths=["a.ts"])

        assert get_golden_dataset_path("cfg-app") == temp_dir / "golden" / "cfg-app" / "golden.json"
        assert [e.id for e in list_golden_entries("cfg-app")] == [entry.id]
        assert remove_golden_entry("cfg-app", entry.id) is True


class TestProjectNames:
    """Tests for project name validation."""

    @pytest.mark.parametrize("name", ["", "   ", "../outside", "a/b", "a\\b", ".", ".."])
    def test_rejects_unsafe_names(self, golden_store, temp_dir: Path, name):
        """Test empty names and names that leave the store root are rejected."""
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        with pytest.raises(EvalError) as exc_info:
            golden_store.add(name, "query", expected_answer="a")

        assert exc_info.value.code == EvalErrorCode.DATASET_INVALID
        assert not (temp_dir / "outside").exists()

    def test_load_rejects_empty_name(self, golden_store):
        """Test loading with an empty name is a dataset error, not a schema crash."""
        from ctx_eval.shared.errors import EvalError

        with pytest.raises(EvalError):
            golden_store.load("")

    def test_accepts_ordinary_names(self, golden_store):
        """Test dotted and dashed names stay valid."""
        assert golden_store.get_path("my-app.v2").parent.name == "my-app.v2"
