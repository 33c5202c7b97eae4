"""
Configuration validation for the code notes assistant.

Validates settings consistency before the query analysis pipeline starts.
Implements a warning/error API: warnings are returned, errors are collected
on the validator.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .query_analysis import get_preset
from .settings import Settings

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class ValidationWarning:
    component: str
    message: str
    severity: str = "LOW"
    recommendation: Optional[str] = None


@dataclass
class ValidationError:
    component: str
    message: str
    severity: str = "CRITICAL"
    recommendation: Optional[str] = None


class ConfigurationValidator:
    """Validate configuration consistency and safety"""

    def __init__(self, settings: Settings):
        if settings is None:
            raise ValueError("settings must not be None")
        self.settings = settings
        self.warnings: List[ValidationWarning] = []
        self.errors: List[ValidationError] = []

    def validate_all(self) -> List[ValidationWarning]:
        """Run all configuration validations and return warnings list.
        Errors are also stored on self.errors.
        """
        self._clear_results()
        try:
            self._validate_logging()
            self._validate_query_analysis()
            self._validate_cache()
            self._validate_retrieval()
        except Exception as e:
            self._add_warning("validator", f"Validation error: {e}", "LOW")
            logger.error(f"Configuration validation failed: {e}")
        return self.warnings

    def has_errors(self) -> bool:
        return bool(self.errors)

    def _validate_logging(self):
        level = str(getattr(self.settings, "log_level", "")).upper()
        if level not in VALID_LOG_LEVELS:
            self._add_error(
                "logging",
                f"Invalid log level: {level or '<empty>'}",
                recommendation="Use one of DEBUG, INFO, WARNING, ERROR, CRITICAL",
            )

        if getattr(self.settings, "is_production", False) and not getattr(
            self.settings, "log_scrub_sensitive", True
        ):
            self._add_warning(
                "logging",
                "Sensitive data scrubbing disabled in production",
                "HIGH",
                "Set LOG_SCRUB_SENSITIVE=true",
            )

        if getattr(self.settings, "log_query_max_chars", 0) < 0:
            self._add_error(
                "logging",
                "Query log length cannot be negative",
                recommendation="Set LOG_QUERY_MAX_CHARS to 0 to log queries whole",
            )

    def _validate_query_analysis(self):
        preset_name = getattr(self.settings, "query_analysis_preset", "")
        if get_preset(preset_name) is None:
            self._add_warning(
                "query_analysis",
                f"Unknown preset '{preset_name}', balanced will be used",
                "MEDIUM",
            )

        threshold = getattr(self.settings, "query_analysis_context_threshold", None)
        if threshold is not None and not 0 <= threshold <= 1:
            self._add_error(
                "query_analysis",
                f"Context threshold {threshold} outside [0, 1]",
                recommendation="Use a value between 0 and 1",
            )
            return

        strict = getattr(self.settings, "query_analysis_strict_mode", None)
        if strict and threshold is not None and threshold >= 1.0:
            self._add_warning(
                "query_analysis",
                "Strict mode has no effect with a context threshold of 1.0",
                "LOW",
                "Lower the threshold or disable strict mode",
            )
        if threshold == 0.0 and not strict:
            self._add_warning(
                "query_analysis",
                "Context threshold of 0 retrieves context for every unclassified query",
                "LOW",
            )

    def _validate_cache(self):
        if not getattr(self.settings, "enable_classification_cache", False):
            return
        if getattr(self.settings, "classification_cache_max_entries", 0) <= 0:
            self._add_error(
                "cache",
                "Classification cache enabled with no capacity",
                recommendation="Set CLASSIFICATION_CACHE_MAX_ENTRIES above 0",
            )
        if getattr(self.settings, "classification_cache_ttl", 0) <= 0:
            self._add_error(
                "cache",
                "Classification cache TTL must be positive",
                recommendation="Set CLASSIFICATION_CACHE_TTL in seconds",
            )

    def _validate_retrieval(self):
        url = getattr(self.settings, "semantic_search_url", "")
        if not url.startswith(("http://", "https://")):
            self._add_error("retrieval", f"Invalid semantic search URL: {url}")

        max_results = getattr(self.settings, "semantic_search_max_results", 0)
        if not 1 <= max_results <= 20:
            self._add_warning(
                "retrieval",
                f"Max results {max_results} outside the service range 1-20",
                "MEDIUM",
            )

        threshold = getattr(self.settings, "semantic_search_threshold", 0.0)
        if not 0 <= threshold <= 1:
            self._add_error("retrieval", f"Similarity threshold {threshold} outside [0, 1]")

        if getattr(self.settings, "context_token_budget", 0) < 500:
            self._add_warning(
                "retrieval",
                "Context token budget below 500 leaves little room for note content",
                "LOW",
            )

    def _add_warning(self, component: str, message: str, severity: str = "LOW", recommendation: Optional[str] = None):
        self.warnings.append(ValidationWarning(component, message, severity, recommendation))

    def _add_error(self, component: str, message: str, severity: str = "CRITICAL", recommendation: Optional[str] = None):
        self.errors.append(ValidationError(component, message, severity, recommendation))

    def _clear_results(self):
        self.warnings.clear()
        self.errors.clear()
