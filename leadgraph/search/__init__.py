"""Search module"""
from .client import RecordSearchClient, RecordSearchError
from .responses import ResponseShape, ParsedResponse, parse_search_response
from .results import SearchResult, build_search_result, calculate_score

__all__ = [
    "RecordSearchClient",
    "RecordSearchError",
    "ResponseShape",
    "ParsedResponse",
    "parse_search_response",
    "SearchResult",
    "build_search_result",
    "calculate_score",
]
