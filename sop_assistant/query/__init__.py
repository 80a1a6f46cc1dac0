"""
Query understanding for the SOP assistant.

Public API:
    QueryAnalyzer: Extracts state, order type, topics and intent from a query
    QueryAnalysis: Result of analyzing one query
    QuestionType: Kind of question (procedural, policy, ...)
    load_query_patterns: Load the YAML pattern tables
"""

from sop_assistant.query.analyzer import QueryAnalysis, QueryAnalyzer, QuestionType
from sop_assistant.query.patterns import QueryPatterns, load_query_patterns

__all__ = [
    "QueryAnalyzer",
    "QueryAnalysis",
    "QuestionType",
    "QueryPatterns",
    "load_query_patterns",
]
