"""
Pattern Services Module
"""
from .catalog import ImportSummary, PatternCatalogService
from .evaluation import LocalEvaluation, PatternEvaluationService

__all__ = [
    "ImportSummary",
    "PatternCatalogService",
    "LocalEvaluation",
    "PatternEvaluationService",
]
