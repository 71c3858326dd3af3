"""
Utilities Module - Common helper functions.
==========================================

Provides utility functions for:
- Path normalization and file-level deduplication (for metric matching)
- ID and timestamp generation
- File I/O (JSON, JSONL) with atomic replacement
- Directory management
"""

import json
import os
import re
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from ctx_eval.shared.logging import get_logger

logger = get_logger(__name__)

_REPEATED_SLASHES = re.compile(r"/+")


# ─────────────────────────────────────────────────────────────────────────────
# Path Normalization
# ─────────────────────────────────────────────────────────────────────────────


def normalize_path(file_path: str) -> str:
    """
    Canonicalize a file path for cross-platform comparison.

    Trims whitespace, converts backslashes, collapses repeated slashes,
    strips a leading "./" or "/" and a trailing "/", then lowercases.

    Example:
        >>> normalize_path("./src/Auth.ts")
        'src/auth.ts'
        >>> normalize_path("src\\\\utils\\\\")
        'src/utils'
    """
    normalized = file_path.strip().replace("\\", "/")
    normalized = _REPEATED_SLASHES.sub("/", normalized)
    if normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized.startswith("/"):
        normalized = normalized[1:]
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized.lower()


def deduplicate_by_file(retrieved_paths: Iterable[str]) -> list[str]:
    """
    Normalize paths and keep only the first occurrence of each file.

    Several chunks from one file count once, at their best (earliest) rank.

    Example:
        >>> deduplicate_by_file(["a.ts", "b.ts", "A.ts"])
        ['a.ts', 'b.ts']
    """
    seen: set[str] = set()
    result: list[str] = []

    for path in retrieved_paths:
        normalized = normalize_path(path)
        if normalized not in seen:
            seen.add(normalized)
            result.append(normalized)

    return result


def normalize_expected(expected_paths: Iterable[str]) -> set[str]:
    """Normalize a collection of expected paths into a lookup set."""
    return {normalize_path(p) for p in expected_paths}


# ─────────────────────────────────────────────────────────────────────────────
# ID / Time Generation
# ─────────────────────────────────────────────────────────────────────────────


def generate_id() -> str:
    """Generate a random UUID4 string."""
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


# ─────────────────────────────────────────────────────────────────────────────
# Directory Management
# ─────────────────────────────────────────────────────────────────────────────


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Returns:
        The path (for chaining)
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_parent_directory(file_path: Path) -> Path:
    """Ensure the parent directory of a file exists."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    return file_path


# ─────────────────────────────────────────────────────────────────────────────
# File I/O
# ─────────────────────────────────────────────────────────────────────────────


def write_text_atomic(file_path: Path, content: str) -> None:
    """
    Write text so readers never observe a partially written file.

    Content goes to a temporary sibling which then replaces the target.
    """
    file_path = Path(file_path)
    ensure_parent_directory(file_path)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{file_path.name}.", suffix=".tmp", dir=file_path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, file_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def load_json(file_path: Path) -> Any:
    """
    Load data from a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_json(file_path: Path, data: Any, indent: int = 2) -> None:
    """
    Save data to a JSON file (pretty-printed, atomic replace).

    Args:
        file_path: Path to JSON file
        data: Data to save (must be JSON serializable)
        indent: Indentation level (default: 2)
    """
    content = json.dumps(data, indent=indent, ensure_ascii=False, default=str)
    write_text_atomic(Path(file_path), content + "\n")
    logger.debug(f"Saved JSON to {file_path}")


def load_jsonl(file_path: Path) -> Iterator[dict[str, Any]]:
    """
    Load records from a JSONL (JSON Lines) file.

    Yields one record at a time. Unparseable lines (including undecodable
    bytes) are logged and skipped.
    """
    file_path = Path(file_path)

    with open(file_path, "r", encoding="utf-8", errors="replace") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON at line {line_num} in {file_path}: {e}")
                continue


def save_jsonl(file_path: Path, items: Iterable[dict[str, Any]]) -> int:
    """
    Save records to a JSONL file, replacing it atomically.

    Returns:
        Number of items saved
    """
    lines = [json.dumps(item, ensure_ascii=False, default=str) for item in items]
    write_text_atomic(Path(file_path), "".join(line + "\n" for line in lines))
    logger.debug(f"Saved {len(lines)} items to {file_path}")
    return len(lines)


def append_jsonl(file_path: Path, item: dict[str, Any]) -> None:
    """Append a single record to a JSONL file."""
    file_path = ensure_parent_directory(Path(file_path))

    with open(file_path, "a", encoding="utf-8") as f:
        f.write(json.dumps(item, ensure_ascii=False, default=str) + "\n")


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate text to a maximum length.

    Example:
        >>> truncate_text("a" * 10, max_length=5)
        'aa...'
    """
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix
