import time
from typing import List, Optional, Tuple

from src.ai.prompts import PROMPTS
from src.config import settings
from src.config.query_analysis import ClassifierConfig, QueryAnalysisConfigService
from src.models.classification import EnhancedClassificationResult
from src.models.query_types import QueryCategory
from src.models.schemas import ChatResponse, SearchFilters, SearchResult
from src.utils.logging import get_logger
from src.utils.observability import metrics, track_latency

from .classifier import QueryIntentClassifier

logger = get_logger(__name__)

# Optimized mode only retrieves when the classifier is this sure
OPTIMIZED_CONFIDENCE = 0.8

DEFAULT_ERROR_MESSAGE = "Failed to get response from AI assistant"

# Substring of the upstream error -> message shown to the user
ERROR_MESSAGES = [
    ("API_KEY_INVALID", "Invalid API key configuration"),
    ("QUOTA_EXCEEDED", "API quota exceeded. Please try again later."),
    ("SAFETY", "Content was blocked by safety filters. Please rephrase your question."),
]


class GenerationError(Exception):
    """Raised when the language model gives no usable answer."""


class QueryProcessor:
    """Main orchestrator for a chat turn: analyze, retrieve, prompt, generate."""

    def __init__(
        self,
        classifier: QueryIntentClassifier,
        generator,
        retriever=None,
        config_service: Optional[QueryAnalysisConfigService] = None,
        max_context_files: Optional[int] = None,
        search_threshold: Optional[float] = None,
        context_token_budget: Optional[int] = None,
    ):
        self.classifier = classifier
        self.generator = generator
        self.retriever = retriever
        self.config_service = config_service

        self.max_context_files = max_context_files or settings.semantic_search_max_results
        self.search_threshold = (
            search_threshold if search_threshold is not None else settings.semantic_search_threshold
        )
        self.context_token_budget = context_token_budget or settings.context_token_budget
        self.prompts = PROMPTS

    def _current_config(self) -> ClassifierConfig:
        """Live analysis settings, re-read on every turn."""
        if self.config_service is not None:
            return self.config_service.get_settings()
        return self.classifier.config

    async def process_query(
        self,
        message: str,
        use_semantic_search: bool = True,
        filters: Optional[SearchFilters] = None,
        optimized: bool = False,
    ) -> ChatResponse:
        """Answer one user message, retrieving note context only when needed."""
        start_time = time.perf_counter()
        config = self._current_config()

        analysis: Optional[EnhancedClassificationResult] = None
        context_files: List[SearchResult] = []
        search_performed = False

        try:
            if config.enabled:
                analysis = self.classifier.analyze_enhanced(message, config)
                logger.info(f"Query analysis: {analysis.reasoning}")

                if config.enable_debug_mode:
                    logger.debug(
                        "Query analysis explanation",
                        extra_fields=self.classifier.get_classification_explanation(message, analysis),
                    )

            if use_semantic_search and self._should_retrieve(analysis, config, optimized):
                context_files, search_performed = await self._retrieve(message, filters)
            else:
                logger.info("Using general knowledge, no context retrieval needed")

            if context_files:
                prompt = self.prompts.construct_semantic_prompt(
                    message, context_files, self.context_token_budget
                )
            else:
                prompt = message

            with_context = analysis is None or analysis.requires_context
            text = await self._generate(self.prompts.get_system_prompt(prompt, with_context))

        except Exception as e:
            response_time_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"Chat generation failed: {e}")
            metrics.record_error("generation_failed", str(e))
            return ChatResponse(
                success=False,
                error=self._map_error(e),
                response_time_ms=response_time_ms,
            )

        response_time_ms = (time.perf_counter() - start_time) * 1000

        if config.enable_performance_logging:
            logger.info(
                "Chat response generated",
                extra_fields={
                    "response_time_ms": response_time_ms,
                    "search_performed": search_performed,
                    "context_files": len(context_files),
                    "category": analysis.category.value if analysis else None,
                },
            )

        return ChatResponse(
            success=True,
            content=text,
            context_files=context_files,
            search_performed=search_performed,
            query_analysis=analysis,
            response_time_ms=response_time_ms,
        )

    def _should_retrieve(
        self,
        analysis: Optional[EnhancedClassificationResult],
        config: ClassifierConfig,
        optimized: bool,
    ) -> bool:
        if self.retriever is None:
            return False

        # Analysis disabled
        if analysis is None:
            return True

        if analysis.requires_context:
            return not optimized or analysis.confidence > OPTIMIZED_CONFIDENCE

        return config.fallback_to_context and analysis.category is QueryCategory.UNCLASSIFIED

    async def _retrieve(
        self, message: str, filters: Optional[SearchFilters]
    ) -> Tuple[List[SearchResult], bool]:
        """Fetch note context; a failed search leaves the turn without context."""
        try:
            results = await self.retriever.search(
                message,
                max_results=self.max_context_files,
                threshold=self.search_threshold,
                filters=filters,
            )
        except Exception as e:
            logger.warning(f"Semantic search failed, continuing without context: {e}")
            metrics.record_error("retrieval_failed", str(e))
            return [], False

        logger.info(f"Semantic search found {len(results)} relevant files")
        return list(results), True

    async def _generate(self, prompt: str) -> str:
        with track_latency("generation", {"prompt_length": len(prompt)}):
            text = await self.generator.generate(prompt)

        if not text:
            raise GenerationError("Empty response from language model")
        return text

    def _map_error(self, error: Exception) -> str:
        """User-facing message for a generation failure."""
        message = str(error)
        for marker, user_message in ERROR_MESSAGES:
            if marker in message:
                return user_message

        if isinstance(error, GenerationError):
            return message
        return DEFAULT_ERROR_MESSAGE
