"""
Shared fixtures for the keyword categorization tests.
"""

import os
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.categorization.ai_service import GeminiCategorizer
from src.categorization.keyword_db import CategorizationStore
from src.categorization.types import AIOutcome, CategorizationFailure


class FakeAI:
    """Stands in for GeminiCategorizer and counts calls."""

    model_name = 'fake-model'

    def __init__(self, categories=None, failure=None, attempted=True):
        self.categories = categories
        self.failure = failure
        self.attempted = attempted
        self.calls = 0
        self.last_records = None
        self.last_topic = None

    async def categorize(self, records, topic_hint=''):
        self.calls += 1
        self.last_records = list(records)
        self.last_topic = topic_hint

        if self.failure is not None:
            return AIOutcome(
                failure=CategorizationFailure(self.failure),
                attempted=self.attempted,
                elapsed_ms=5,
                tokens_input=50
            )

        if callable(self.categories):
            categories = self.categories(self.last_records)
        else:
            categories = self.categories
        return AIOutcome(
            categories=categories,
            attempted=True,
            elapsed_ms=12,
            tokens_input=100,
            tokens_output=40
        )


def single_category(records):
    """Put every keyword into one AI-style category."""
    return [{
        'id': 'products',
        'name': 'Ürünler',
        'icon': 'package',
        'description': 'Ürün aramaları',
        'keywords': [r['keyword'] for r in records]
    }]


class FakeResponse:
    """Minimal requests.Response replacement."""

    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json
        self.text = '' if payload is None else str(payload)

    def json(self):
        if self._invalid_json:
            raise ValueError("Expecting value")
        return self._payload


def gemini_envelope(text):
    return {'candidates': [{'content': {'parts': [{'text': text}]}}]}


@pytest.fixture(autouse=True)
def reset_circuit():
    GeminiCategorizer.reset_circuit()
    yield
    GeminiCategorizer.reset_circuit()


@pytest.fixture
def store(tmp_path):
    db = CategorizationStore(tmp_path / 'keywords_test.db')
    db.init_tables()
    return db


@pytest.fixture
def project_id(store):
    return store.create_project('bilgisayar', client_id=7, uuid='proj-uuid-1')


@pytest.fixture
def fake_ai():
    return FakeAI


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def envelope():
    return gemini_envelope


@pytest.fixture
def one_bucket():
    return single_category
