"""
Shared test fixtures: test client, estimators with Gemini on or off.
"""

import os
import pytest
from fastapi.testclient import TestClient

# No real Gemini calls from tests; clear the key before importing app modules
os.environ["GEMINI_API_KEY"] = ""

from carbonlog.main import app
from carbonlog.estimator import CarbonImpactEstimator, get_estimator
from carbonlog.estimator.gemini_client import GeminiEstimator


@pytest.fixture
def offline_estimator():
    """Estimator with no Gemini key, rules only."""
    return CarbonImpactEstimator(gemini=GeminiEstimator(api_key=""))


@pytest.fixture
def gemini():
    """Gemini client with a fake key. Patch _call_gemini or urlopen before use."""
    return GeminiEstimator(api_key="test-key", model="gemini-test", timeout=2.0)


@pytest.fixture
def online_estimator(gemini):
    return CarbonImpactEstimator(gemini=gemini)


@pytest.fixture
def client(offline_estimator):
    """FastAPI test client, rules-only estimator."""
    app.dependency_overrides[get_estimator] = lambda: offline_estimator
    yield TestClient(app)
    app.dependency_overrides.clear()
