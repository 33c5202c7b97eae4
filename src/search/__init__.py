from .semantic_search_client import SemanticSearchClient

__all__ = ["SemanticSearchClient"]
