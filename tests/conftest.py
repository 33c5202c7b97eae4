"""
Pytest configuration and fixtures for Code Notes Assistant tests.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from src.config.query_analysis import ClassifierConfig, QueryAnalysisConfigService
from src.models.schemas import SearchResult
from src.pipeline.classifier import QueryIntentClassifier
from src.utils.logging import set_analysis_debug
from src.utils.observability import metrics


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty global metrics collector and default log levels."""
    metrics.reset()
    yield
    metrics.reset()
    set_analysis_debug(False)


@pytest.fixture
def classifier_config():
    """Balanced classifier settings."""
    return ClassifierConfig()


@pytest.fixture
def classifier(classifier_config):
    """QueryIntentClassifier without a cache."""
    return QueryIntentClassifier(config=classifier_config)


@pytest.fixture
def config_service():
    """Config service backed by the in-memory store."""
    return QueryAnalysisConfigService()


@pytest.fixture
def mock_redis_client():
    """Mock Redis client for testing."""
    redis = Mock()
    redis.ping = Mock(return_value=True)
    redis.get = Mock(return_value=None)
    redis.set = Mock(return_value=True)
    redis.delete = Mock(return_value=1)
    return redis


@pytest.fixture
def mock_generator():
    """Language model stand-in with an async generate()."""
    generator = Mock()
    generator.generate = AsyncMock(return_value="## Answer\nHere is the explanation.")
    return generator


@pytest.fixture
def sample_search_results():
    """Ranked snippets as returned by the semantic search service."""
    return [
        SearchResult(
            file_id="file_1",
            file_path="web/app.js",
            notebook="web",
            file_type="javascript",
            preview="const app = express();",
            similarity=0.82,
            content="const app = express();\napp.listen(3000);",
        ),
        SearchResult(
            file_id="file_2",
            file_path="web/auth.js",
            notebook="web",
            file_type="javascript",
            preview="function login(user) {",
            similarity=0.91,
            content="function login(user) {\n  return token(user);\n}",
        ),
    ]


@pytest.fixture
def mock_retriever(sample_search_results):
    """Retriever stand-in with an async search()."""
    retriever = Mock()
    retriever.search = AsyncMock(return_value=sample_search_results)
    return retriever


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
