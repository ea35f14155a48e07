"""Per-document analysis: sidecar store, the orchestrator and first-record determination."""

from .determination import (
    AnalysisSummary,
    CandidateRecord,
    ConfidenceLevel,
    FirstRecord,
    FirstRecordEvaluator,
    FirstRecordResult,
)
from .orchestrator import AnalysisOrchestrator, BatchItemOutcome, BatchReport
from .store import AnalysisStore

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisStore",
    "AnalysisSummary",
    "BatchItemOutcome",
    "BatchReport",
    "CandidateRecord",
    "ConfidenceLevel",
    "FirstRecord",
    "FirstRecordEvaluator",
    "FirstRecordResult",
]
