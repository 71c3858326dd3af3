"""
Exporter Module - Judge-model input files.
==========================================

Converts golden entries (optionally paired with eval results) into the row
formats read by the judge runners:
- RAGAS: {question, answer, contexts, ground_truths}
- DeepEval: {input, actual_output, retrieval_context, expected_output}

Retrieved file paths stand in for retrieved text contexts.
"""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ctx_eval.shared.errors import EvalError
from ctx_eval.shared.logging import get_logger
from ctx_eval.shared.schemas import EvalResult, GoldenEntry
from ctx_eval.shared.utils import save_json

logger = get_logger(__name__)

EXPORT_FORMATS = ("ragas", "deepeval")


@dataclass
class ExportSourceEntry:
    """A golden entry with its latest eval result and generated answer, if any."""

    golden: GoldenEntry
    eval_result: Optional[EvalResult] = None
    answer: str = ""

    @property
    def retrieved_files(self) -> list[str]:
        return list(self.eval_result.retrieved_files) if self.eval_result else []


@dataclass
class RagasRow:
    question: str
    answer: str
    contexts: list[str]
    ground_truths: list[str]


@dataclass
class DeepEvalRow:
    input: str
    actual_output: str
    retrieval_context: list[str]
    expected_output: str


def pair_with_results(
    entries: Iterable[GoldenEntry],
    results: Sequence[EvalResult] = (),
) -> list[ExportSourceEntry]:
    """
    Pair golden entries with eval results by query text.

    Entries without a matching result are exported with empty contexts.
    """
    by_query = {r.query: r for r in results}
    return [ExportSourceEntry(golden=e, eval_result=by_query.get(e.query)) for e in entries]


def export_to_ragas(entries: Iterable[ExportSourceEntry]) -> list[dict]:
    """
    Convert entries to RAGAS rows.

    ground_truths holds the expected answer (if any) followed by the
    expected file paths.
    """
    rows = []
    for entry in entries:
        golden = entry.golden
        if not golden.query:
            continue

        ground_truths: list[str] = []
        if golden.expected_answer:
            ground_truths.append(golden.expected_answer)
        if golden.expected_file_paths:
            ground_truths.extend(golden.expected_file_paths)

        rows.append(
            asdict(
                RagasRow(
                    question=golden.query,
                    answer=entry.answer,
                    contexts=entry.retrieved_files,
                    ground_truths=ground_truths,
                )
            )
        )
    return rows


def export_to_deepeval(entries: Iterable[ExportSourceEntry]) -> list[dict]:
    """
    Convert entries to DeepEval rows.

    expected_output is the expected answer, else the expected paths joined
    with ", ", else empty.
    """
    rows = []
    for entry in entries:
        golden = entry.golden
        if not golden.query:
            continue

        if golden.expected_answer:
            expected_output = golden.expected_answer
        elif golden.expected_file_paths:
            expected_output = ", ".join(golden.expected_file_paths)
        else:
            expected_output = ""

        rows.append(
            asdict(
                DeepEvalRow(
                    input=golden.query,
                    actual_output=entry.answer,
                    retrieval_context=entry.retrieved_files,
                    expected_output=expected_output,
                )
            )
        )
    return rows


def write_export(rows: list[dict], output_path: str | Path) -> Path:
    """
    Write exported rows as pretty-printed JSON, creating parent directories.

    Raises:
        EvalError: EVAL_RUN_FAILED if the file cannot be written
    """
    output_path = Path(output_path)
    try:
        save_json(output_path, rows)
    except OSError as e:
        raise EvalError.eval_run_failed(
            f"Failed to write export to {output_path}: {e}", cause=e
        ) from e

    logger.info(f"Exported {len(rows)} rows to {output_path}")
    return output_path
