import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.cache.classification_cache import ClassificationCache
from src.config.query_analysis import DEFAULT_PRESET, ClassifierConfig
from src.models.classification import ClassificationResult, EnhancedClassificationResult
from src.models.query_types import ComplexityLevel, PatternTag, QueryCategory
from src.utils.logging import get_logger
from src.utils.observability import metrics, track_latency

logger = get_logger(__name__)

BASE_CONFIDENCE = 0.5

# Signed evidence weights; general programming is the only primary signal
# that argues against retrieval.
TAG_WEIGHTS: Dict[PatternTag, float] = {
    PatternTag.FILE_REFERENCE: 0.30,
    PatternTag.CODE_REFERENCE: 0.25,
    PatternTag.PROJECT_SPECIFIC: 0.20,
    PatternTag.DOCUMENTATION_QUERY: 0.25,
    PatternTag.GENERAL_PROGRAMMING: -0.30,
}

ADVANCED_TAG_WEIGHTS: Dict[PatternTag, float] = {
    PatternTag.CONTEXTUAL_REFERENCE: 0.20,
    PatternTag.DEBUGGING_REQUEST: 0.20,
    PatternTag.COMPARISON_REQUEST: 0.15,
    PatternTag.LEARNING_REQUEST: -0.30,
}

SHORT_QUERY_WORDS = 3
SHORT_QUERY_ADJUSTMENT = -0.10
LONG_QUERY_WORDS = 10
LONG_QUERY_ADJUSTMENT = 0.10

# First tag present decides the category
CATEGORY_PRIORITY: List[Tuple[PatternTag, QueryCategory]] = [
    (PatternTag.FILE_REFERENCE, QueryCategory.FILE_REFERENCE),
    (PatternTag.CODE_REFERENCE, QueryCategory.CODE_EXPLANATION),
    (PatternTag.DOCUMENTATION_QUERY, QueryCategory.DOCUMENTATION_QUERY),
    (PatternTag.PROJECT_SPECIFIC, QueryCategory.PROJECT_SPECIFIC),
    (PatternTag.GENERAL_PROGRAMMING, QueryCategory.GENERAL_PROGRAMMING),
]

ALWAYS_USE_CONTEXT = frozenset(
    {
        QueryCategory.FILE_REFERENCE,
        QueryCategory.CODE_EXPLANATION,
        QueryCategory.DOCUMENTATION_QUERY,
        QueryCategory.PROJECT_SPECIFIC,
    }
)

REASON_CLAUSES: Dict[PatternTag, str] = {
    PatternTag.FILE_REFERENCE: "detected file or path references",
    PatternTag.CODE_REFERENCE: "detected code-specific references",
    PatternTag.PROJECT_SPECIFIC: "detected project-specific language",
    PatternTag.DOCUMENTATION_QUERY: "detected documentation query",
    PatternTag.GENERAL_PROGRAMMING: "detected general programming concepts",
    PatternTag.CONTEXTUAL_REFERENCE: "detected references to existing code",
    PatternTag.COMPARISON_REQUEST: "detected comparison request",
    PatternTag.LEARNING_REQUEST: "detected learning request",
    PatternTag.DEBUGGING_REQUEST: "detected debugging request",
}

TECHNICAL_TERMS = (
    "function", "class", "method", "variable", "component", "module", "library",
    "framework", "api", "database", "query", "algorithm", "async", "await",
    "promise", "callback", "closure", "prototype", "inheritance", "polymorphism",
    "encapsulation", "abstraction", "interface", "implementation",
)

SPECIFICITY_MARKERS = re.compile(r"\b(?:specific|exactly|precisely|particular)\b")

FAILSAFE_REASONING = "analysis failed, defaulting to context for safety"


@dataclass(frozen=True)
class PatternAnalysis:
    """Configuration-independent part of a classification."""

    tags: Tuple[PatternTag, ...]
    category: QueryCategory
    confidence: float
    word_count: int


@dataclass(frozen=True)
class ComplexityAnalysis:
    level: ComplexityLevel
    specificity: float
    technical_terms: int


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class QueryIntentClassifier:
    """Decide whether a chat query needs context retrieved from the user's notes."""

    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        cache: Optional[ClassificationCache] = None,
    ):
        self.config = config or DEFAULT_PRESET.config
        self.cache = cache

        # Pre-compiled regex patterns, evaluated in order
        self._patterns = self._compile_classification_patterns()
        self._advanced_patterns = self._compile_advanced_patterns()

        logger.info(
            "QueryIntentClassifier initialized",
            extra_fields={
                "context_threshold": self.config.context_threshold,
                "strict_mode": self.config.strict_mode,
                "has_cache": self.cache is not None,
            },
        )

    def _compile_classification_patterns(self) -> List[Tuple[PatternTag, List[re.Pattern]]]:
        """Compile the primary pattern battery."""
        patterns = [
            (PatternTag.FILE_REFERENCE, [
                r"\b[\w-]+\.(?:js|ts|py|cpp|java|html|css|json|md|txt|csv)\b",
                r"\bfile\s+(?:named|called)\s+[\w.-]+",
                r"\bthis\s+file\b",
                r"\bmy\s+(?:code|file|project|notebook)\b",
                r"\bin\s+(?:my|this|the)\s+(?:project|codebase|repository)\b",
            ]),
            (PatternTag.CODE_REFERENCE, [
                r"\bthis\s+(?:function|class|method|variable|component)\b",
                r"\bexplain\s+(?:this|the)\s+(?:code|function|class|method)\b",
                r"\bwhat\s+does\s+(?:this|the)\s+(?:code|function|class)\b",
                r"\bhow\s+does\s+(?:this|my)\s+(?:code|function|implementation)\b",
                r"\bfind\s+(?:similar|related)\s+(?:functions|code|examples)\b",
            ]),
            (PatternTag.PROJECT_SPECIFIC, [
                r"\bin\s+(?:my|this|our)\s+(?:project|application|app|system)\b",
                r"\bfrom\s+(?:my|our)\s+(?:codebase|files|notes)\b",
                r"\bshow\s+me\s+(?:examples|code)\s+from\b",
                r"\bsearch\s+(?:for|my|our)\b",
                r"\bfind\s+(?:in|from)\s+(?:my|our|the)\b",
            ]),
            (PatternTag.DOCUMENTATION_QUERY, [
                r"\bwhat\s+does\s+(?:the|my)\s+documentation\s+say\b",
                r"\baccording\s+to\s+(?:the|my)\s+(?:docs|documentation|readme)\b",
                r"\bin\s+(?:the|my)\s+(?:readme|documentation|notes)\b",
            ]),
            (PatternTag.GENERAL_PROGRAMMING, [
                r"\bwhat\s+is\s+(?:a|an)\s+(?:for\s+loop|while\s+loop|function|class|variable)\b",
                r"\bhow\s+to\s+(?:create|make|write|implement)\s+(?:(?:a|an)\s+)?\w+",
                r"\bexplain\s+(?:the\s+concept\s+of|what\s+is)\b",
                r"\b(?:javascript|python|java|c\+\+|html|css|sql)\s+(?:syntax|tutorial|basics)\b",
                r"\bhow\s+do\s+(?:i|you)\s+(?:center\s+a\s+div|create\s+a\s+loop|define\s+a\s+function)\b",
                r"\bwhat\s+(?:are|is)\s+(?:rest\s+apis|promises|async[\s/-]+await|closures)\b",
            ]),
        ]
        return [(tag, [re.compile(p, re.IGNORECASE) for p in group]) for tag, group in patterns]

    def _compile_advanced_patterns(self) -> List[Tuple[PatternTag, List[re.Pattern]]]:
        """Compile the second battery used by analyze_enhanced."""
        patterns = [
            (PatternTag.CONTEXTUAL_REFERENCE, [
                r"\b(?:this|that|these|those)\s+(?:code|function|file|class|method|variable|component|implementation)\b",
                r"\b(?:my|our|the)\s+(?:current|existing|previous)\s+(?:code|implementation|solution)\b",
                r"\b(?:above|below|earlier|previous)\s+(?:code|example|function)\b",
            ]),
            (PatternTag.COMPARISON_REQUEST, [
                r"\bcompare\s+(?:this|my|our)\s+(?:with|to|against)\b",
                r"\b(?:similar|different)\s+(?:to|from)\s+(?:my|our|this)\b",
                r"\bshow\s+me\s+(?:other|similar|different)\s+(?:examples|implementations)\b",
            ]),
            (PatternTag.LEARNING_REQUEST, [
                r"\b(?:learn|tutorial|guide|introduction)\s+(?:to|about|for)\b",
                r"\b(?:beginner|basic|fundamentals|concepts)\s+(?:of|in|for)\b",
                r"\b(?:best\s+practices|common\s+patterns|design\s+patterns)\b",
                r"\bhow\s+(?:to\s+get\s+started|does\s+.+\s+work|do\s+i\s+learn)\b",
            ]),
            (PatternTag.DEBUGGING_REQUEST, [
                r"\b(?:debug|fix|error|bug|issue|problem)\s+(?:in|with|this|my)\b",
                r"\bwhy\s+(?:is|does|doesn't|isn't)\s+(?:this|my|our)\b",
                r"\b(?:not\s+working|broken|failing|crashing)\b",
                r"\bget\s+(?:error|exception)\s+(?:in|when|while)\b",
            ]),
        ]
        return [(tag, [re.compile(p, re.IGNORECASE) for p in group]) for tag, group in patterns]

    def analyze(self, query: str, config: Optional[ClassifierConfig] = None) -> ClassificationResult:
        """Classify a query; never raises."""
        config = config if config is not None else self.config
        start_time = time.perf_counter()

        try:
            with track_latency("query_analysis"):
                result = self._analyze(query, config)
            self._check_budget(start_time, config)
        except Exception as e:
            return self._fail_safe(e, ClassificationResult)

        self._record(query, result)
        return result

    def analyze_enhanced(
        self, query: str, config: Optional[ClassifierConfig] = None
    ) -> EnhancedClassificationResult:
        """Classify with the advanced pattern pass and complexity descriptors; never raises."""
        config = config if config is not None else self.config
        start_time = time.perf_counter()

        try:
            with track_latency("query_analysis"):
                result = self._analyze_enhanced(query, config)
            self._check_budget(start_time, config)
        except Exception as e:
            return self._fail_safe(e, EnhancedClassificationResult)

        self._record(query, result)
        return result

    def _analyze(self, query: str, config: ClassifierConfig) -> ClassificationResult:
        normalized = self._normalize(query)
        analysis = self._get_pattern_analysis(normalized)

        requires_context = self._should_use_context(analysis.category, analysis.confidence, config)
        reasoning = self._generate_reasoning(
            analysis.category, analysis.tags, analysis.confidence, requires_context
        )

        return ClassificationResult(
            category=analysis.category,
            confidence=analysis.confidence,
            requires_context=requires_context,
            reasoning=reasoning,
            tags=list(analysis.tags),
            method="rules",
        )

    def _analyze_enhanced(self, query: str, config: ClassifierConfig) -> EnhancedClassificationResult:
        normalized = self._normalize(query)
        analysis = self._get_pattern_analysis(normalized)
        advanced_tags = self._detect_tags(normalized, self._advanced_patterns)
        complexity = self._analyze_complexity(normalized)

        confidence = _clamp(
            analysis.confidence + sum(ADVANCED_TAG_WEIGHTS[tag] for tag in advanced_tags)
        )
        tags = list(analysis.tags) + advanced_tags

        requires_context = self._should_use_context(analysis.category, confidence, config)
        reasoning = self._generate_enhanced_reasoning(
            analysis.category, tags, confidence, requires_context, complexity
        )

        return EnhancedClassificationResult(
            category=analysis.category,
            confidence=confidence,
            requires_context=requires_context,
            reasoning=reasoning,
            tags=tags,
            method="enhanced",
            advanced_tags=advanced_tags,
            complexity=complexity.level,
            specificity=complexity.specificity,
            technical_terms=complexity.technical_terms,
        )

    def _normalize(self, query: str) -> str:
        return query.lower().strip()

    def _get_pattern_analysis(self, normalized: str) -> PatternAnalysis:
        """Tags, category and confidence for a normalized query, via the cache when present."""
        if self.cache is not None:
            cached = self.cache.get(normalized)
            if cached is not None:
                return cached

        tags = self._detect_tags(normalized, self._patterns)
        word_count = len(normalized.split())
        analysis = PatternAnalysis(
            tags=tuple(tags),
            category=self._assign_category(tags),
            confidence=self._calculate_confidence(tags, word_count),
            word_count=word_count,
        )

        if self.cache is not None:
            self.cache.set(normalized, analysis)
        return analysis

    def _detect_tags(
        self, normalized: str, battery: Sequence[Tuple[PatternTag, List[re.Pattern]]]
    ) -> List[PatternTag]:
        """Each group with at least one match contributes its tag once."""
        return [
            tag
            for tag, patterns in battery
            if any(pattern.search(normalized) for pattern in patterns)
        ]

    def _assign_category(self, tags: Sequence[PatternTag]) -> QueryCategory:
        for tag, category in CATEGORY_PRIORITY:
            if tag in tags:
                return category
        return QueryCategory.UNCLASSIFIED

    def _calculate_confidence(self, tags: Sequence[PatternTag], word_count: int) -> float:
        confidence = BASE_CONFIDENCE + sum(TAG_WEIGHTS[tag] for tag in tags)

        if word_count < SHORT_QUERY_WORDS:
            confidence += SHORT_QUERY_ADJUSTMENT
        elif word_count > LONG_QUERY_WORDS:
            confidence += LONG_QUERY_ADJUSTMENT

        return _clamp(confidence)

    def _should_use_context(
        self, category: QueryCategory, confidence: float, config: ClassifierConfig
    ) -> bool:
        if category in ALWAYS_USE_CONTEXT:
            return True

        if category is QueryCategory.GENERAL_PROGRAMMING and not config.strict_mode:
            return False

        return confidence >= config.context_threshold

    def _generate_reasoning(
        self,
        category: QueryCategory,
        tags: Sequence[PatternTag],
        confidence: float,
        requires_context: bool,
    ) -> str:
        reasons = [REASON_CLAUSES[tag] for tag in tags]
        action = "Using" if requires_context else "Skipping"
        detail = ", ".join(reasons) if reasons else f"query type is {category.value}"
        return f"{action} context retrieval: {detail} ({confidence * 100:.0f}% confidence)"

    def _analyze_complexity(self, normalized: str) -> ComplexityAnalysis:
        words = normalized.split()
        word_count = len(words)
        technical_terms = sum(
            1 for word in words if any(term in word for term in TECHNICAL_TERMS)
        )

        if word_count > 15 or technical_terms > 3:
            level = ComplexityLevel.HIGH
        elif word_count < 8 and technical_terms <= 1:
            level = ComplexityLevel.LOW
        else:
            level = ComplexityLevel.MEDIUM

        factors = [
            technical_terms / word_count if word_count else 0.0,
            min(word_count / 20, 1.0),
            0.1 if normalized.endswith("?") else 0.0,
            0.2 if SPECIFICITY_MARKERS.search(normalized) else 0.0,
        ]
        specificity = _clamp(sum(factors) / len(factors))

        return ComplexityAnalysis(
            level=level, specificity=specificity, technical_terms=technical_terms
        )

    def _generate_enhanced_reasoning(
        self,
        category: QueryCategory,
        tags: Sequence[PatternTag],
        confidence: float,
        requires_context: bool,
        complexity: ComplexityAnalysis,
    ) -> str:
        reasoning = self._generate_reasoning(category, tags, confidence, requires_context)

        if complexity.level is ComplexityLevel.HIGH:
            reasoning += f" (high complexity, {complexity.technical_terms} technical terms)"
        elif complexity.level is ComplexityLevel.MEDIUM:
            reasoning += " (medium complexity)"

        if complexity.specificity > 0.8:
            reasoning += ", highly specific query"
        elif complexity.specificity < 0.3:
            reasoning += ", general query"

        return reasoning

    def _fail_safe(self, error: Exception, result_cls):
        """Bias toward retrieval when analysis itself breaks."""
        logger.error(f"Query analysis failed, defaulting to context: {error}")
        metrics.record_error("query_analysis", str(error))
        return result_cls(
            category=QueryCategory.PROJECT_SPECIFIC,
            confidence=0.5,
            requires_context=True,
            reasoning=FAILSAFE_REASONING,
            tags=[],
            method="fallback",
        )

    def _check_budget(self, start_time: float, config: Any) -> None:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        budget = getattr(config, "max_analysis_budget_ms", None)
        # A zero budget disables the check
        if isinstance(budget, (int, float)) and budget > 0 and elapsed_ms > budget:
            logger.warning(
                f"Query analysis took {elapsed_ms:.1f}ms, consider optimization",
                extra_fields={"elapsed_ms": elapsed_ms, "budget_ms": budget},
            )

    def _record(self, query: str, result: ClassificationResult) -> None:
        metrics.record_category(result.category.value)
        metrics.record_context_decision(result.requires_context)
        logger.debug(
            "Query analyzed",
            extra_fields={
                "query": query,
                "category": result.category.value,
                "confidence": result.confidence,
                "requires_context": result.requires_context,
                "method": result.method,
            },
        )

    def get_classification_explanation(
        self, query: str, result: ClassificationResult
    ) -> Dict[str, Any]:
        """Get explanation of classification decision for debugging."""
        normalized = self._normalize(query)

        matched_patterns: Dict[str, List[str]] = {}
        for tag, patterns in self._patterns + self._advanced_patterns:
            hits = [pattern.pattern for pattern in patterns if pattern.search(normalized)]
            if hits:
                matched_patterns[tag.value] = hits

        return {
            "query": query,
            "classified_as": result.category.value,
            "confidence": result.confidence,
            "requires_context": result.requires_context,
            "method": result.method,
            "matched_patterns": matched_patterns,
            "query_length": len(query),
            "word_count": len(normalized.split()),
        }
