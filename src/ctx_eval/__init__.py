"""
ctx-eval - Retrieval Quality Evaluation for RAG Search
======================================================

Answers "did this change make search better or worse?" by scoring ranked
search output against a curated golden dataset:

- Retrieval metrics (MRR, Precision@K, Recall@K, Hit Rate, NDCG, MAP)
- Run-over-run trends with regression detection
- Versioned golden datasets, one per project
- Optional answer-quality grading by an external judge model (RAGAS / DeepEval)
"""

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Main modules (imported on demand)
    "shared",
    "evaluation",
    "cli",
]
