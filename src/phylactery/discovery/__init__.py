"""Connection discovery: lexical and temporal scoring, fusion, and scheduling."""

from .scoring import ConnectionScorer, calculate_final_score, is_strong_connection
from .semantic import SemanticAnalyzer
from .system import ConnectionDiscoverySystem
from .temporal import TemporalAnalyzer
from .worker import AnalysisJob, DiscoveryWorker

__all__ = [
    "AnalysisJob",
    "ConnectionDiscoverySystem",
    "ConnectionScorer",
    "DiscoveryWorker",
    "SemanticAnalyzer",
    "TemporalAnalyzer",
    "calculate_final_score",
    "is_strong_connection",
]
