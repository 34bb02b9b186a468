import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.discovery import DiscoveryConfig, DiscoveryStrategy


@pytest.fixture
def client():
    """Create a FastAPI test client."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def thesis_config():
    """Single-strategy config used by the end-to-end scenarios."""
    return DiscoveryConfig(
        strategies={DiscoveryStrategy.THESIS},
        max_results=5,
        min_fit_score=50,
    )
