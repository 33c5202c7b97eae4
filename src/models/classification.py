from typing import List, Optional

from pydantic import BaseModel, Field

from .query_types import ComplexityLevel, PatternTag, QueryCategory


class ClassificationResult(BaseModel):
    """Verdict on whether a query needs retrieved note context."""

    category: QueryCategory = Field(..., description="Highest priority category")
    confidence: float = Field(..., ge=0, le=1, description="Classification confidence")
    requires_context: bool = Field(..., description="Whether to run retrieval")
    reasoning: str = Field(..., description="Human-readable justification")
    tags: List[PatternTag] = Field(default_factory=list, description="Signals that fired")
    method: str = Field(default="rules", description="Classification method used")

    class Config:
        json_schema_extra = {
            "example": {
                "category": "file_reference",
                "confidence": 0.8,
                "requires_context": True,
                "reasoning": "Using context retrieval: detected file or path references (80% confidence)",
                "tags": ["file_reference"],
                "method": "rules",
            }
        }


class EnhancedClassificationResult(ClassificationResult):
    """Classification result enriched by the advanced pattern pass."""

    advanced_tags: List[PatternTag] = Field(
        default_factory=list, description="Signals from the advanced battery"
    )
    complexity: Optional[ComplexityLevel] = Field(None, description="Query complexity")
    specificity: Optional[float] = Field(
        None, ge=0, le=1, description="How specific the query is"
    )
    technical_terms: int = Field(default=0, ge=0, description="Technical vocabulary hits")
