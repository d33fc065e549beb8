"""
Integration test fixtures
"""

import pytest
from fastapi.testclient import TestClient

from souq.api.main import create_app
from souq.marketplace import build_demo_marketplace


@pytest.fixture
def test_api_client(settings):
    """API client running the demo marketplace without persistence."""
    app = create_app(marketplace_factory=lambda: build_demo_marketplace(settings))
    with TestClient(app) as client:
        yield client
