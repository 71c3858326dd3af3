"""
Judge Module - Bridge to the external judge-model toolchain.
============================================================

Runs RAGAS and DeepEval in a separate interpreter so their heavy
dependencies never load into this process:
- check_availability: probe the interpreter and installed packages
- run_ragas / run_deepeval: grade exported rows and return validated scores

Each run spawns exactly one subprocess with an argument vector (no shell),
exchanges data through a temporary JSON file, and always removes that file.
Every failure is raised as EvalError with code RAGAS_ERROR.
"""

import json
import os
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from ctx_eval.evaluation.judge_scripts import (
    AVAILABILITY_CHECK_SCRIPT,
    DEEPEVAL_RUNNER_SCRIPT,
    RAGAS_RUNNER_SCRIPT,
)
from ctx_eval.shared.config import get_settings
from ctx_eval.shared.errors import EvalError
from ctx_eval.shared.logging import get_logger
from ctx_eval.shared.schemas import DeepEvalResults, PythonAvailability, RagasResults
from ctx_eval.shared.utils import generate_id, truncate_text

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
AVAILABILITY_TIMEOUT_SECONDS = 30.0
RAW_SNIPPET_LENGTH = 200

# Credentials forwarded to the judge subprocess
JUDGE_ENV_ALLOW_LIST = ("OPENAI_API_KEY", "OPENAI_BASE_URL")

ResultT = TypeVar("ResultT", bound=BaseModel)

READ_CHUNK_BYTES = 64 * 1024

# exec_fn(cmd, timeout, env, max_output_bytes) -> CompletedProcess with text stdout/stderr
ExecFn = Callable[[list[str], float, dict[str, str], int], subprocess.CompletedProcess]


class OutputLimitExceeded(Exception):
    """Raised when a child writes more than the allowed stdout + stderr."""

    def __init__(self, limit: int, captured: int):
        super().__init__(f"output exceeded {limit} bytes ({captured} bytes captured)")
        self.limit = limit
        self.captured = captured


def run_subprocess(
    cmd: list[str],
    timeout: float,
    env: dict[str, str],
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
) -> subprocess.CompletedProcess:
    """
    Run a command, capturing at most max_output_bytes of stdout + stderr.

    The child is killed as soon as the limit is crossed or the timeout
    expires. Output is decoded as UTF-8 with undecodable bytes replaced.

    Raises:
        OutputLimitExceeded: If the child wrote more than the limit
        subprocess.TimeoutExpired: If the child outlived the timeout
        OSError: If the executable cannot be started
    """
    process = subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
    )
    buffers = {"stdout": bytearray(), "stderr": bytearray()}
    captured = 0
    exceeded = threading.Event()
    size_lock = threading.Lock()

    def drain(stream, buffer: bytearray) -> None:
        nonlocal captured
        with stream:
            while True:
                chunk = stream.read1(READ_CHUNK_BYTES)
                if not chunk:
                    return
                with size_lock:
                    captured += len(chunk)
                    over = captured > max_output_bytes
                if over:
                    exceeded.set()
                    process.kill()
                    return
                buffer.extend(chunk)

    readers = [
        threading.Thread(target=drain, args=(process.stdout, buffers["stdout"]), daemon=True),
        threading.Thread(target=drain, args=(process.stderr, buffers["stderr"]), daemon=True),
    ]
    for reader in readers:
        reader.start()

    try:
        process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()
        for reader in readers:
            reader.join()
        raise subprocess.TimeoutExpired(cmd, timeout) from None

    for reader in readers:
        reader.join()

    if exceeded.is_set():
        raise OutputLimitExceeded(max_output_bytes, captured)

    return subprocess.CompletedProcess(
        cmd,
        process.returncode,
        buffers["stdout"].decode("utf-8", errors="replace"),
        buffers["stderr"].decode("utf-8", errors="replace"),
    )


def _format_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in issue['loc']) or '<root>'}: {issue['msg']}"
        for issue in error.errors()
    )


class JudgeBridge:
    """
    Subprocess bridge to RAGAS / DeepEval.

    Example:
        >>> bridge = JudgeBridge(python_path="python3", model="gpt-4o-mini")
        >>> bridge.check_availability().ragas_available
        False
        >>> results = bridge.run_ragas("ragas_export.json", ["faithfulness"])
        >>> results.scores["faithfulness"]
        0.91
    """

    def __init__(
        self,
        python_path: str = "python3",
        model: str = "gpt-4o-mini",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        extra_env: Optional[dict[str, str]] = None,
        exec_fn: Optional[ExecFn] = None,
    ):
        """
        Initialize the bridge.

        Args:
            python_path: Interpreter executable for the judge scripts
            model: Judge model name passed to the runners
            timeout_seconds: Wall-clock limit per subprocess
            max_output_bytes: Limit on captured stdout + stderr
            extra_env: Credentials to forward (filtered by the allow-list)
            exec_fn: Process runner, replaceable in tests
        """
        self.python_path = python_path
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_output_bytes = max_output_bytes
        self.extra_env = {
            key: value
            for key, value in (extra_env or {}).items()
            if key in JUDGE_ENV_ALLOW_LIST and value
        }
        self.exec_fn = exec_fn or run_subprocess

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    def check_availability(self) -> PythonAvailability:
        """
        Check whether the interpreter, RAGAS and DeepEval are installed.

        Never raises: any failure yields an all-unavailable result.
        """
        try:
            completed = self.exec_fn(
                [self.python_path, "-c", AVAILABILITY_CHECK_SCRIPT],
                min(self.timeout_seconds, AVAILABILITY_TIMEOUT_SECONDS),
                self._build_env(),
                self.max_output_bytes,
            )
            if completed.returncode != 0:
                logger.debug(
                    f"Availability probe exited with {completed.returncode}: "
                    f"{truncate_text((completed.stderr or '').strip(), 200)}"
                )
                return PythonAvailability()
            return PythonAvailability.model_validate_json((completed.stdout or "").strip())
        except Exception as e:
            logger.debug(f"Judge interpreter unavailable ({self.python_path}): {e}")
            return PythonAvailability()

    def run_ragas(self, data_path: str | Path, metrics: Sequence[str]) -> RagasResults:
        """
        Grade RAGAS-format rows with the judge model.

        Args:
            data_path: JSON file of {question, answer, contexts, ground_truths} rows
            metrics: RAGAS metric names (faithfulness, answer_relevancy, ...)

        Returns:
            Validated RagasResults

        Raises:
            EvalError: RAGAS_ERROR on invalid arguments or any subprocess failure
        """
        return self._run(RAGAS_RUNNER_SCRIPT, data_path, metrics, RagasResults, "RAGAS")

    def run_deepeval(self, data_path: str | Path, metrics: Sequence[str]) -> DeepEvalResults:
        """
        Grade DeepEval-format rows with the judge model.

        Args:
            data_path: JSON file of {input, actual_output, retrieval_context,
                expected_output} rows
            metrics: DeepEval metric names (faithfulness, contextual_recall, ...)

        Returns:
            Validated DeepEvalResults

        Raises:
            EvalError: RAGAS_ERROR on invalid arguments or any subprocess failure
        """
        return self._run(
            DEEPEVAL_RUNNER_SCRIPT, data_path, metrics, DeepEvalResults, "DeepEval"
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _run(
        self,
        script: str,
        data_path: str | Path,
        metrics: Sequence[str],
        result_model: type[ResultT],
        context: str,
    ) -> ResultT:
        data_path = Path(data_path)
        self._validate_run_args(data_path, metrics, context)

        output_path = self._create_temp_output_path()
        try:
            logger.info(
                f"Running {context} judge on {data_path} "
                f"(metrics: {', '.join(metrics)}, model: {self.model})"
            )
            self._exec_python(
                script,
                [str(data_path), str(output_path), ",".join(metrics), self.model],
                context,
            )
            result = self._read_and_validate_output(output_path, result_model, context)
            logger.info(f"{context} judge finished: {result.scores}")
            return result
        finally:
            self._cleanup_temp_file(output_path)

    def _validate_run_args(self, data_path: Path, metrics: Sequence[str], context: str) -> None:
        if not data_path.is_file():
            raise EvalError.ragas_error(f"{context} input file not found: {data_path}")
        if not metrics or not any(m.strip() for m in metrics):
            raise EvalError.ragas_error(f"{context} requires at least one metric")

    def _build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.extra_env)
        return env

    def _exec_python(self, script: str, args: list[str], context: str) -> subprocess.CompletedProcess:
        """Run a script in the judge interpreter and translate failures."""
        cmd = [self.python_path, "-c", script, *args]
        try:
            completed = self.exec_fn(
                cmd, self.timeout_seconds, self._build_env(), self.max_output_bytes
            )
        except FileNotFoundError as e:
            raise EvalError.ragas_error(
                f"Python not found at '{self.python_path}'. "
                "Install Python 3 or set eval.python_path in config/settings.yaml",
                cause=e,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise EvalError.ragas_error(
                f"{context} script timed out after {self.timeout_seconds:g}s", cause=e
            ) from e
        except OutputLimitExceeded as e:
            raise EvalError.ragas_error(
                f"{context} script output exceeded {e.limit} bytes "
                f"(killed after {e.captured} bytes captured)",
                cause=e,
            ) from e
        except OSError as e:
            raise EvalError.ragas_error(
                f"failed to start {context} script with '{self.python_path}': {e}", cause=e
            ) from e

        stdout = completed.stdout or ""
        stderr = completed.stderr or ""
        output_size = len(stdout.encode("utf-8")) + len(stderr.encode("utf-8"))
        if output_size > self.max_output_bytes:
            raise EvalError.ragas_error(
                f"{context} script output exceeded {self.max_output_bytes} bytes "
                f"({output_size} bytes captured)"
            )

        if completed.returncode != 0:
            detail = stderr.strip() or f"exited with code {completed.returncode}"
            logger.error(f"{context} script failed: {truncate_text(detail, 500)}")
            raise EvalError.ragas_error(f"{context} script failed: {detail}")

        return completed

    def _create_temp_output_path(self) -> Path:
        return Path(tempfile.gettempdir()) / f"ctx-eval-{generate_id()}.json"

    def _read_and_validate_output(
        self,
        output_path: Path,
        result_model: type[ResultT],
        context: str,
    ) -> ResultT:
        if not output_path.exists():
            raise EvalError.ragas_error(
                f"{context} script completed but produced no output file"
            )

        if output_path.stat().st_size > self.max_output_bytes:
            raise EvalError.ragas_error(
                f"{context} output file exceeded {self.max_output_bytes} bytes"
            )

        raw_bytes = output_path.read_bytes()
        raw = raw_bytes.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EvalError.ragas_error(
                f"{context} output is not valid JSON: {raw[:RAW_SNIPPET_LENGTH]}", cause=e
            ) from e

        try:
            return result_model.model_validate(data)
        except ValidationError as e:
            raise EvalError.ragas_error(
                f"Invalid {context} output: {_format_validation_error(e)}", cause=e
            ) from e

    def _cleanup_temp_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove temp file {path}: {e}")


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────


def get_judge_bridge(exec_fn: Optional[ExecFn] = None) -> JudgeBridge:
    """Create a JudgeBridge from the current settings."""
    settings = get_settings()
    eval_config = settings.get_effective_eval_config()
    return JudgeBridge(
        python_path=eval_config.python_path,
        model=eval_config.ragas_model,
        timeout_seconds=eval_config.judge_timeout_seconds,
        max_output_bytes=eval_config.max_output_bytes,
        extra_env=settings.get_judge_env(),
        exec_fn=exec_fn,
    )


def check_availability() -> PythonAvailability:
    """Probe the configured judge interpreter."""
    return get_judge_bridge().check_availability()
