from enum import Enum


class QueryCategory(Enum):
    """Categories a chat query can be assigned to, highest priority first."""

    FILE_REFERENCE = "file_reference"
    CODE_EXPLANATION = "code_explanation"
    DOCUMENTATION_QUERY = "documentation_query"
    PROJECT_SPECIFIC = "project_specific"
    GENERAL_PROGRAMMING = "general_programming"
    UNCLASSIFIED = "unclassified"

    @classmethod
    def from_string(cls, value: str) -> "QueryCategory":
        """Convert string to QueryCategory enum."""
        for category in cls:
            if category.value == value.lower():
                return category
        raise ValueError(f"Unknown query category: {value}")


class PatternTag(Enum):
    """Labels for the lexical signals detected in a query."""

    # Primary battery
    FILE_REFERENCE = "file_reference"
    CODE_REFERENCE = "code_reference"
    PROJECT_SPECIFIC = "project_specific"
    DOCUMENTATION_QUERY = "documentation_query"
    GENERAL_PROGRAMMING = "general_programming"

    # Advanced battery
    CONTEXTUAL_REFERENCE = "contextual_reference"
    COMPARISON_REQUEST = "comparison_request"
    LEARNING_REQUEST = "learning_request"
    DEBUGGING_REQUEST = "debugging_request"


class ComplexityLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
