from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from src.config import settings
from src.models.schemas import SearchFilters, SearchResult
from src.utils.logging import get_logger
from src.utils.observability import metrics, track_latency

logger = get_logger(__name__)


class SemanticSearchClient:
    """Client for the notes semantic search service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.base_url = (base_url or settings.semantic_search_url).rstrip("/")
        self.user_id = user_id or settings.semantic_search_user_id
        self.timeout = timeout or settings.semantic_search_timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def search(
        self,
        query: str,
        max_results: int = 3,
        threshold: float = 0.7,
        filters: Optional[SearchFilters] = None,
    ) -> List[SearchResult]:
        """Search the user's notes; an empty list on any failure."""
        payload: Dict[str, Any] = {
            "query": query,
            "userId": self.user_id,
            "maxResults": max_results,
            "threshold": threshold,
        }
        if filters is not None:
            if filters.file_types:
                payload["fileTypes"] = filters.file_types
            if filters.notebooks:
                payload["notebooks"] = filters.notebooks

        try:
            client = await self._get_client()
            with track_latency("semantic_search", {"max_results": max_results}):
                response = await client.post(f"{self.base_url}/semantic/search", json=payload)

            if response.status_code < 200 or response.status_code >= 300:
                logger.warning(f"Semantic search request failed: {response.status_code}")
                metrics.record_error("semantic_search_status", str(response.status_code))
                return []

            results = self._parse_results(response.json())
        except (httpx.HTTPError, KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning(f"Semantic search failed: {e}")
            metrics.record_error("semantic_search_failed", str(e))
            return []

        logger.info(
            "Semantic search completed",
            extra_fields={"results": len(results), "threshold": threshold},
        )
        return results

    def _parse_results(self, data: Any) -> List[SearchResult]:
        """Read results from a `{success, data: {results}}` body."""
        if not isinstance(data, dict) or not data.get("success"):
            return []

        body = data.get("data")
        raw_results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(raw_results, list):
            return []

        return [
            SearchResult(
                file_id=str(item["fileId"]),
                file_path=item["filePath"],
                notebook=item.get("notebook") or "",
                file_type=item.get("fileType") or "",
                preview=item.get("preview") or "",
                similarity=item["similarity"],
                content=item.get("content"),
            )
            for item in raw_results
        ]
