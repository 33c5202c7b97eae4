from .classification import ClassificationResult, EnhancedClassificationResult
from .query_types import ComplexityLevel, PatternTag, QueryCategory
from .schemas import ChatResponse, SearchFilters, SearchResult

__all__ = [
    "QueryCategory",
    "PatternTag",
    "ComplexityLevel",
    "ClassificationResult",
    "EnhancedClassificationResult",
    "SearchFilters",
    "SearchResult",
    "ChatResponse",
]
