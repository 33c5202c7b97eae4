from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .classification import EnhancedClassificationResult


class SearchFilters(BaseModel):
    """Optional scoping for a semantic search over indexed notes."""

    file_types: List[str] = Field(default_factory=list, description="File type allow-list")
    notebooks: List[str] = Field(default_factory=list, description="Notebook names to search")

    @field_validator("file_types", "notebooks")
    def strip_blank(cls, v):
        """Drop empty entries."""
        return [item.strip() for item in v if item and item.strip()]


class SearchResult(BaseModel):
    """A ranked snippet returned by the retrieval service."""

    file_id: str = Field(..., description="Indexed file ID")
    file_path: str = Field(..., description="Notebook-relative file path")
    notebook: str = Field(default="", description="Owning notebook name")
    file_type: str = Field(default="", description="File type or language")
    preview: str = Field(default="", description="Short content preview")
    similarity: float = Field(..., ge=0, le=1, description="Similarity score")
    content: Optional[str] = Field(None, description="Full file content when available")


class ChatResponse(BaseModel):
    """Outcome of one assistant turn."""

    success: bool = Field(..., description="Whether generation succeeded")
    content: Optional[str] = Field(None, description="Generated answer text")
    error: Optional[str] = Field(None, description="User-facing error message")
    context_files: List[SearchResult] = Field(default_factory=list)
    search_performed: bool = Field(default=False)
    query_analysis: Optional[EnhancedClassificationResult] = Field(None)
    response_time_ms: float = Field(default=0.0, ge=0)
