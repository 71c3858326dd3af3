"""
Golden Module - Golden dataset management.
==========================================

CRUD over per-project golden datasets stored at
<golden_path>/<project>/golden.json:
- Loading with schema validation (corrupt files fail loudly)
- Atomic, pretty-printed saves
- Adding, removing and listing entries

The file is the single source of truth; nothing is cached between calls.
Writes to one project are serialized within this process; writers in other
processes must coordinate themselves.
"""

import json
import threading
from collections import defaultdict
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from ctx_eval.shared.config import get_settings
from ctx_eval.shared.errors import EvalError
from ctx_eval.shared.logging import get_logger
from ctx_eval.shared.schemas import (
    GoldenDataset,
    GoldenEntry,
    GoldenEntrySource,
)
from ctx_eval.shared.utils import generate_id, load_json, save_json

logger = get_logger(__name__)

GOLDEN_FILE_NAME = "golden.json"

# One lock per project file, shared by every store instance in the process
_project_locks: defaultdict[Path, threading.Lock] = defaultdict(threading.Lock)
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _locks_guard:
        return _project_locks[path.resolve()]


def _format_validation_error(error: ValidationError) -> str:
    """Join field-level violations into one diagnostic."""
    return "; ".join(
        f"{'.'.join(str(p) for p in issue['loc']) or '<root>'}: {issue['msg']}"
        for issue in error.errors()
    )


def _validate_project_name(project_name: str) -> None:
    """Project names become a single directory under the store root."""
    if not project_name or not project_name.strip():
        raise EvalError.dataset_invalid("project name must be a non-empty string")
    if "/" in project_name or "\\" in project_name or project_name in (".", ".."):
        raise EvalError.dataset_invalid(
            f"project name {project_name!r} must not contain path separators"
        )


def filter_by_tags(entries: Iterable[GoldenEntry], tags: Optional[list[str]]) -> list[GoldenEntry]:
    """
    Keep entries carrying at least one of the given tags.

    An empty or missing tag list keeps everything.
    """
    entries = list(entries)
    if not tags:
        return entries
    wanted = set(tags)
    return [e for e in entries if e.tags and wanted.intersection(e.tags)]


class GoldenDatasetStore:
    """
    File-backed store of golden datasets.

    Example:
        >>> store = GoldenDatasetStore("~/.ctx/eval")
        >>> entry = store.add("my-app", "where is auth handled?",
        ...                   expected_file_paths=["src/auth/login.ts"])
        >>> [e.id for e in store.list("my-app")]
        ['...']
    """

    def __init__(self, root: str | Path):
        """
        Initialize the store.

        Args:
            root: Directory holding one sub-directory per project
        """
        self.root = Path(root).expanduser()

    def get_path(self, project_name: str) -> Path:
        """
        Get the golden dataset file path for a project.

        Raises:
            EvalError: DATASET_INVALID if the name is empty or would leave
                the store root
        """
        _validate_project_name(project_name)
        return self.root / project_name / GOLDEN_FILE_NAME

    def load(self, project_name: str) -> GoldenDataset:
        """
        Load a project's golden dataset.

        Returns:
            The dataset, or an empty one if no file exists

        Raises:
            EvalError: DATASET_INVALID if the file is not valid JSON or
                fails schema validation
        """
        path = self.get_path(project_name)
        if not path.exists():
            return GoldenDataset(project_name=project_name)

        try:
            data = load_json(path)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EvalError.dataset_invalid(
                f"{path} contains invalid JSON: {e}", cause=e
            ) from e

        try:
            dataset = GoldenDataset.model_validate(data)
        except ValidationError as e:
            raise EvalError.dataset_invalid(
                f"{path} failed schema validation: {_format_validation_error(e)}",
                cause=e,
            ) from e

        logger.debug(f"Loaded {len(dataset.entries)} golden entries from {path}")
        return dataset

    def save(self, dataset: GoldenDataset) -> Path:
        """
        Save a golden dataset, creating its directory if needed.

        The file is replaced atomically so readers never see partial JSON.

        Returns:
            Path written
        """
        path = self.get_path(dataset.project_name)
        save_json(path, dataset.to_file_dict())
        logger.debug(f"Saved {len(dataset.entries)} golden entries to {path}")
        return path

    def add(
        self,
        project_name: str,
        query: str,
        expected_file_paths: Optional[list[str]] = None,
        expected_answer: Optional[str] = None,
        tags: Optional[list[str]] = None,
        source: GoldenEntrySource | str = GoldenEntrySource.MANUAL,
    ) -> GoldenEntry:
        """
        Add a new entry to a project's golden dataset.

        Args:
            project_name: Project name
            query: Query text (must be non-empty)
            expected_file_paths: Files that should be retrieved
            expected_answer: Reference answer text
            tags: Labels for filtering subsets
            source: Provenance of the entry

        Returns:
            The created entry with its generated ID

        Raises:
            EvalError: DATASET_INVALID if the query is empty or neither
                expected_file_paths nor expected_answer is given
        """
        if not query or not query.strip():
            raise EvalError.dataset_invalid("entry query must be a non-empty string")

        if not expected_file_paths and not expected_answer:
            raise EvalError.dataset_invalid(
                "entry must have at least one of expectedFilePaths or expectedAnswer"
            )

        try:
            entry = GoldenEntry(
                id=generate_id(),
                query=query,
                expected_file_paths=expected_file_paths or None,
                expected_answer=expected_answer or None,
                tags=tags or None,
                source=source,
            )
        except ValidationError as e:
            raise EvalError.dataset_invalid(_format_validation_error(e), cause=e) from e

        with _lock_for(self.get_path(project_name)):
            dataset = self.load(project_name)
            dataset.entries.append(entry)
            self.save(dataset)

        logger.info(f"Added golden entry {entry.id} to {project_name}")
        return entry

    def remove(self, project_name: str, entry_id: str) -> bool:
        """
        Remove an entry by ID.

        Returns:
            True if the entry was found and removed, False otherwise
        """
        with _lock_for(self.get_path(project_name)):
            dataset = self.load(project_name)
            remaining = [e for e in dataset.entries if e.id != entry_id]
            if len(remaining) == len(dataset.entries):
                return False

            dataset.entries = remaining
            self.save(dataset)

        logger.info(f"Removed golden entry {entry_id} from {project_name}")
        return True

    def list(self, project_name: str) -> list[GoldenEntry]:
        """List all entries (empty if the project has no dataset)."""
        return self.load(project_name).entries


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────


def get_golden_store() -> GoldenDatasetStore:
    """Get a store rooted at the configured golden_path."""
    settings = get_settings()
    return GoldenDatasetStore(settings.get_effective_eval_config().golden_dir)


def get_golden_dataset_path(project_name: str) -> Path:
    """Get the configured golden dataset path for a project."""
    return get_golden_store().get_path(project_name)


def load_golden_dataset(project_name: str) -> GoldenDataset:
    """Load a project's golden dataset from the configured location."""
    return get_golden_store().load(project_name)


def save_golden_dataset(dataset: GoldenDataset) -> Path:
    """Save a golden dataset to the configured location."""
    return get_golden_store().save(dataset)


def add_golden_entry(project_name: str, query: str, **kwargs) -> GoldenEntry:
    """Add an entry to a project's golden dataset. See GoldenDatasetStore.add."""
    return get_golden_store().add(project_name, query, **kwargs)


def remove_golden_entry(project_name: str, entry_id: str) -> bool:
    """Remove an entry from a project's golden dataset."""
    return get_golden_store().remove(project_name, entry_id)


def list_golden_entries(project_name: str) -> list[GoldenEntry]:
    """List a project's golden entries."""
    return get_golden_store().list(project_name)
