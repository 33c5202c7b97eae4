from .classifier import QueryIntentClassifier
from .query_processor import GenerationError, QueryProcessor

__all__ = ["QueryIntentClassifier", "QueryProcessor", "GenerationError"]
