"""
Query analysis configuration for the chat assistant.

Holds the immutable ClassifierConfig consumed per classification call, the
named presets operators switch between, and a runtime configuration service
that validates updates and optionally persists them to Redis.
"""

import json
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from redis import Redis

from src.utils.logging import get_logger, set_analysis_debug
from src.utils.observability import metrics

from .settings import Settings, get_settings

logger = get_logger(__name__)


class ClassifierConfig(BaseModel):
    """Tunable settings for query intent classification."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    context_threshold: float = Field(
        default=0.6, ge=0, le=1,
        description="Minimum confidence to retrieve context for unforced categories"
    )
    strict_mode: bool = Field(
        default=False,
        description="Apply the threshold rule to general programming queries too"
    )
    max_analysis_budget_ms: int = Field(
        default=100, ge=0, le=1000,
        description="Soft time budget for a single analysis"
    )

    # Consumed by callers, not by the classifier
    enabled: bool = Field(default=True, description="Run query analysis at all")
    fallback_to_context: bool = Field(
        default=False,
        description="Retrieve context when the query could not be classified"
    )
    enable_performance_logging: bool = True
    enable_debug_mode: bool = False


@dataclass(frozen=True)
class QueryAnalysisPreset:
    name: str
    description: str
    config: ClassifierConfig


QUERY_ANALYSIS_PRESETS: List[QueryAnalysisPreset] = [
    QueryAnalysisPreset(
        name="balanced",
        description="Balanced performance and accuracy (recommended)",
        config=ClassifierConfig(
            context_threshold=0.6,
            strict_mode=False,
            max_analysis_budget_ms=100,
        ),
    ),
    QueryAnalysisPreset(
        name="performance",
        description="Optimized for speed, minimal context usage",
        config=ClassifierConfig(
            context_threshold=0.8,
            strict_mode=False,
            max_analysis_budget_ms=50,
        ),
    ),
    QueryAnalysisPreset(
        name="accuracy",
        description="Optimized for accuracy, more context usage",
        config=ClassifierConfig(
            context_threshold=0.4,
            strict_mode=True,
            max_analysis_budget_ms=200,
            fallback_to_context=True,
        ),
    ),
    QueryAnalysisPreset(
        name="debug",
        description="Debug mode with detailed logging",
        config=ClassifierConfig(
            context_threshold=0.6,
            strict_mode=False,
            max_analysis_budget_ms=200,
            enable_debug_mode=True,
        ),
    ),
    QueryAnalysisPreset(
        name="disabled",
        description="Query analysis disabled, always use context",
        config=ClassifierConfig(
            enabled=False,
            context_threshold=0.0,
            strict_mode=True,
            max_analysis_budget_ms=0,
            fallback_to_context=True,
            enable_performance_logging=False,
        ),
    ),
]

DEFAULT_PRESET = QUERY_ANALYSIS_PRESETS[0]


def get_preset(name: str) -> Optional[QueryAnalysisPreset]:
    """Look up a preset by name."""
    for preset in QUERY_ANALYSIS_PRESETS:
        if preset.name == name:
            return preset
    return None


def default_classifier_config(app_settings: Optional[Settings] = None) -> ClassifierConfig:
    """Build the startup config from the configured preset plus overrides."""
    if app_settings is None:
        return DEFAULT_PRESET.config

    preset = get_preset(app_settings.query_analysis_preset)
    if preset is None:
        logger.warning(
            "Unknown query analysis preset, using balanced",
            extra_fields={"preset": app_settings.query_analysis_preset},
        )
        preset = DEFAULT_PRESET

    overrides: Dict[str, Any] = {}
    if app_settings.query_analysis_context_threshold is not None:
        overrides["context_threshold"] = app_settings.query_analysis_context_threshold
    if app_settings.query_analysis_strict_mode is not None:
        overrides["strict_mode"] = app_settings.query_analysis_strict_mode

    if not overrides:
        return preset.config
    return ClassifierConfig(**{**preset.config.model_dump(), **overrides})


class InMemorySettingsStore:
    """Keeps persisted settings for the lifetime of the process."""

    def __init__(self):
        self._data: Optional[Dict[str, Any]] = None

    def load(self) -> Optional[Dict[str, Any]]:
        return dict(self._data) if self._data is not None else None

    def save(self, data: Dict[str, Any]) -> None:
        self._data = dict(data)


class RedisSettingsStore:
    """Persists settings as a JSON document under a single Redis key."""

    def __init__(self, redis_client, key: str = "query_analysis:settings"):
        self.redis_client = redis_client
        self.key = key

    def load(self) -> Optional[Dict[str, Any]]:
        raw = self.redis_client.get(self.key)
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode()
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Stored query analysis settings must be a JSON object")
        return data

    def save(self, data: Dict[str, Any]) -> None:
        self.redis_client.set(self.key, json.dumps(data))


class QueryAnalysisConfigService:
    """Runtime configuration store for query analysis."""

    def __init__(self, store=None, initial: Optional[ClassifierConfig] = None):
        self.store = store or InMemorySettingsStore()
        self._default = initial or DEFAULT_PRESET.config
        self._lock = threading.Lock()
        self._current = self._load_settings()
        set_analysis_debug(self._current.enable_debug_mode)

    def _load_settings(self) -> ClassifierConfig:
        """Load persisted settings on top of the defaults."""
        try:
            stored = self.store.load()
            if stored:
                return ClassifierConfig(**{**self._default.model_dump(), **stored})
        except Exception as e:
            logger.warning(f"Failed to load query analysis settings: {e}")
        return self._default

    def _commit(self, config: ClassifierConfig) -> None:
        """Make config current and persist it; caller holds the lock."""
        self._current = config
        try:
            self.store.save(config.model_dump())
        except Exception as e:
            logger.warning(f"Failed to save query analysis settings: {e}")
        set_analysis_debug(config.enable_debug_mode)

    def get_settings(self) -> ClassifierConfig:
        """Get current settings."""
        with self._lock:
            return self._current

    def update_settings(self, **changes: Any) -> ClassifierConfig:
        """Apply a partial update after validating it."""
        errors = self.validate_settings(changes)
        if errors:
            raise ValueError("; ".join(errors))

        with self._lock:
            self._commit(ClassifierConfig(**{**self._current.model_dump(), **changes}))
            updated = self._current

        logger.info("Query analysis settings updated", extra_fields={"changes": changes})
        return updated

    def apply_preset(self, preset_name: str) -> bool:
        """Replace all settings with a named preset."""
        preset = get_preset(preset_name)
        if preset is None:
            return False

        with self._lock:
            self._commit(preset.config)

        logger.info("Query analysis preset applied", extra_fields={"preset": preset_name})
        return True

    def get_presets(self) -> List[QueryAnalysisPreset]:
        return list(QUERY_ANALYSIS_PRESETS)

    def get_current_preset_name(self) -> Optional[str]:
        """Name of the preset matching the current settings, None if custom."""
        current = self.get_settings()
        for preset in QUERY_ANALYSIS_PRESETS:
            if preset.config == current:
                return preset.name
        return None

    def reset_to_default(self) -> None:
        with self._lock:
            self._commit(self._default)

    def validate_settings(self, changes: Dict[str, Any]) -> List[str]:
        """Return human-readable problems with a partial settings update."""
        errors: List[str] = []

        unknown = sorted(set(changes) - set(ClassifierConfig.model_fields))
        if unknown:
            errors.append(f"Unknown settings: {', '.join(unknown)}")

        threshold = changes.get("context_threshold")
        if threshold is not None:
            if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1:
                errors.append("Context threshold must be between 0 and 1")

        budget = changes.get("max_analysis_budget_ms")
        if budget is not None:
            if not isinstance(budget, int) or not 0 <= budget <= 1000:
                errors.append("Max analysis time must be between 0 and 1000ms")

        if errors:
            return errors

        try:
            ClassifierConfig(**{**self.get_settings().model_dump(), **changes})
        except ValidationError as e:
            errors.extend(err["msg"] for err in e.errors())

        return errors

    def get_performance_metrics(self) -> Dict[str, Any]:
        """Analysis timing and context usage observed so far."""
        return metrics.get_analysis_summary()


def build_config_service(
    app_settings: Optional[Settings] = None, redis_client=None
) -> QueryAnalysisConfigService:
    """Validate application settings and build the runtime config service.

    Errors from ``ConfigurationValidator`` abort startup with ``ValueError``;
    warnings are logged. With the redis settings store, overrides persist under
    ``query_analysis_settings_key``; an unreachable Redis only degrades the
    service to its startup defaults.
    """
    from .validators import ConfigurationValidator

    app_settings = app_settings or get_settings()

    validator = ConfigurationValidator(app_settings)
    for warning in validator.validate_all():
        logger.warning(
            f"Configuration warning: {warning.message}",
            extra_fields={"component": warning.component, "severity": warning.severity},
        )
    if validator.has_errors():
        raise ValueError(
            "Invalid configuration: " + "; ".join(error.message for error in validator.errors)
        )

    store = None
    if app_settings.query_analysis_settings_store == "redis":
        client = redis_client if redis_client is not None else Redis.from_url(app_settings.redis_url)
        store = RedisSettingsStore(client, app_settings.query_analysis_settings_key)

    service = QueryAnalysisConfigService(store=store, initial=default_classifier_config(app_settings))
    logger.info(
        "Query analysis config service ready",
        extra_fields={
            "store": app_settings.query_analysis_settings_store,
            "preset": service.get_current_preset_name() or "custom",
        },
    )
    return service
