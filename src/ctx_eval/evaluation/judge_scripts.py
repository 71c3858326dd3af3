"""
Judge Scripts - Interpreter programs run by the judge-model bridge.
===================================================================

Each script is passed to the interpreter with `-c`, so nothing has to be
installed next to the package. Runners take the positional arguments
<input_json_path> <output_json_path> <metrics_csv> <model_name> and write
their result JSON to the output path; the availability probe prints a
single JSON object to stdout.
"""

AVAILABILITY_CHECK_SCRIPT = """
import json, sys
result = {
    "python_found": True,
    "python_version": "%d.%d.%d" % (sys.version_info.major, sys.version_info.minor, sys.version_info.micro),
    "ragas_available": False,
    "ragas_version": None,
    "deepeval_available": False,
    "deepeval_version": None,
}
try:
    import ragas
    result["ragas_available"] = True
    result["ragas_version"] = getattr(ragas, "__version__", "unknown")
except ImportError:
    pass
try:
    import deepeval
    result["deepeval_available"] = True
    result["deepeval_version"] = getattr(deepeval, "__version__", "unknown")
except ImportError:
    pass
print(json.dumps(result))
""".strip()


RAGAS_RUNNER_SCRIPT = """
import json, sys, time, os

input_path, output_path, metrics_csv, model_name = sys.argv[1:5]

try:
    from ragas import evaluate
    from ragas.metrics import (
        faithfulness,
        answer_relevancy,
        context_precision,
        context_recall,
    )
    from datasets import Dataset
except ImportError as e:
    print(f"Missing dependency: {e}", file=sys.stderr)
    sys.exit(1)

METRIC_MAP = {
    "faithfulness": faithfulness,
    "answer_relevancy": answer_relevancy,
    "context_precision": context_precision,
    "context_recall": context_recall,
}

requested = [m.strip() for m in metrics_csv.split(",") if m.strip()]
selected = []
for name in requested:
    if name in METRIC_MAP:
        selected.append(METRIC_MAP[name])
    else:
        print(f"Warning: unknown metric '{name}', skipping", file=sys.stderr)

if not selected:
    print("Error: no valid metrics selected", file=sys.stderr)
    sys.exit(1)

with open(input_path, "r", encoding="utf-8") as f:
    data = json.load(f)

if os.environ.get("OPENAI_BASE_URL"):
    os.environ.setdefault("OPENAI_API_BASE", os.environ["OPENAI_BASE_URL"])

start = time.time()
result = evaluate(Dataset.from_list(data), metrics=selected)
duration = time.time() - start

frame = result.to_pandas()
details = []
for i, row in enumerate(data):
    row_scores = {}
    for name in requested:
        if name in METRIC_MAP and name in frame.columns and i < len(frame):
            row_scores[name] = float(frame[name].iloc[i])
    details.append({"question": row.get("question", ""), "scores": row_scores})

scores = {}
for name in requested:
    if name in METRIC_MAP and name in frame.columns:
        scores[name] = round(float(frame[name].mean()), 4)

output = {
    "scores": scores,
    "details": details,
    "metadata": {
        "duration_seconds": round(duration, 2),
        "model_used": model_name,
        "metrics_evaluated": list(scores.keys()),
    },
}

with open(output_path, "w", encoding="utf-8") as f:
    json.dump(output, f, indent=2)
""".strip()


DEEPEVAL_RUNNER_SCRIPT = """
import json, sys, time

input_path, output_path, metrics_csv, model_name = sys.argv[1:5]

try:
    from deepeval import evaluate
    from deepeval.test_case import LLMTestCase
    from deepeval.metrics import (
        FaithfulnessMetric,
        AnswerRelevancyMetric,
        ContextualPrecisionMetric,
        ContextualRecallMetric,
    )
except ImportError as e:
    print(f"Missing dependency: {e}", file=sys.stderr)
    sys.exit(1)

METRIC_MAP = {
    "faithfulness": FaithfulnessMetric,
    "answer_relevancy": AnswerRelevancyMetric,
    "contextual_precision": ContextualPrecisionMetric,
    "contextual_recall": ContextualRecallMetric,
}

requested = [m.strip() for m in metrics_csv.split(",") if m.strip()]
selected = []
selected_names = []
for name in requested:
    if name in METRIC_MAP:
        selected.append(METRIC_MAP[name](model=model_name, threshold=0.5))
        selected_names.append(name)
    else:
        print(f"Warning: unknown metric '{name}', skipping", file=sys.stderr)

if not selected:
    print("Error: no valid metrics selected", file=sys.stderr)
    sys.exit(1)

with open(input_path, "r", encoding="utf-8") as f:
    data = json.load(f)

test_cases = [
    LLMTestCase(
        input=row.get("input", ""),
        actual_output=row.get("actual_output", ""),
        retrieval_context=row.get("retrieval_context", []),
        expected_output=row.get("expected_output", ""),
    )
    for row in data
]

start = time.time()
results = evaluate(test_cases=test_cases, metrics=selected)
duration = time.time() - start

details = []
for i, tc_result in enumerate(results.test_results):
    row_scores = {}
    row_reasons = {}
    # metrics_data follows the order of the metrics passed in
    for name, metric_result in zip(selected_names, tc_result.metrics_data):
        row_scores[name] = float(metric_result.score) if metric_result.score is not None else 0.0
        row_reasons[name] = metric_result.reason or ""
    details.append({
        "input": data[i].get("input", ""),
        "scores": row_scores,
        "reasons": row_reasons,
    })

agg_scores = {}
for name in requested:
    if name in METRIC_MAP:
        values = [d["scores"][name] for d in details if name in d["scores"]]
        if values:
            agg_scores[name] = round(sum(values) / len(values), 4)

output = {
    "scores": agg_scores,
    "details": details,
    "metadata": {
        "duration_seconds": round(duration, 2),
        "model_used": model_name,
        "metrics_evaluated": list(agg_scores.keys()),
    },
}

with open(output_path, "w", encoding="utf-8") as f:
    json.dump(output, f, indent=2)
""".strip()
