"""Form evaluation and export."""

from kyudo.evaluation.export import export_records, load_export
from kyudo.evaluation.scorer import (
    CommentTier,
    EvaluationItem,
    EvaluationReport,
    evaluate,
)

__all__ = [
    "CommentTier",
    "EvaluationItem",
    "EvaluationReport",
    "evaluate",
    "export_records",
    "load_export",
]
