"""
Tests for the Gemini categorizer: prompt building, response parsing and
failure handling. The REST call is replaced with a fake requests.post.
"""

import asyncio
import json

import pytest
import requests

from src.categorization import ai_service
from src.categorization.ai_service import (
    GeminiCategorizer, extract_json_object, approx_tokens, slugify
)
from src.categorization.config import config

SAMPLE = [
    {'keyword': 'laptop fiyatı'},
    {'keyword': 'masaüstü bilgisayar'},
    {'keyword': 'Apple laptop'},
    {'keyword': 'laptop nasıl seçilir'},
]
TEXTS = [r['keyword'] for r in SAMPLE]


def _install_post(monkeypatch, response=None, exc=None):
    """Replace requests.post; returns the list of captured calls."""
    calls = []

    def fake_post(url, **kwargs):
        calls.append({'url': url, **kwargs})
        if exc is not None:
            raise exc
        return response

    monkeypatch.setattr(ai_service.requests, 'post', fake_post)
    return calls


def _categorize(categorizer, records=SAMPLE, topic='bilgisayar'):
    return asyncio.run(categorizer.categorize(records, topic))


def _flatten(categories):
    return [kw for c in categories for kw in c['keywords']]


class TestExtractJson:
    """Balanced JSON extraction from free text."""

    def test_plain_object(self):
        assert extract_json_object('{"a": 1}') == '{"a": 1}'

    def test_surrounding_text_and_fences(self):
        text = 'Here you go:\n```json\n{"a": {"b": [1, 2]}}\n```\nAnything else? {"x": 1}'
        assert extract_json_object(text) == '{"a": {"b": [1, 2]}}'

    def test_braces_inside_strings(self):
        text = '{"name": "a } b", "q": "say \\"{hi}\\""} trailing'
        assert json.loads(extract_json_object(text)) == {"name": "a } b", "q": 'say "{hi}"'}

    def test_no_object(self):
        assert extract_json_object('no json here') is None
        assert extract_json_object('{"unterminated": 1') is None
        assert extract_json_object('') is None


class TestHelpers:

    def test_approx_tokens_uses_bytes(self):
        assert approx_tokens('abcd') == 1
        assert approx_tokens('ü' * 4) == 2  # 8 bytes
        assert approx_tokens(None) == 0

    def test_slugify(self):
        assert slugify('Fiyat Aramaları') == 'fiyat-aramalari'
        assert slugify('  --Ürün  Tipi!! ') == 'urun-tipi'
        assert slugify('***') == ''


class TestPrompt:

    def test_numbered_list_and_topic(self):
        prompt = GeminiCategorizer(api_key='k').build_prompt(SAMPLE, 'bilgisayar')
        assert '"bilgisayar"' in prompt
        assert '1. laptop fiyatı' in prompt
        assert '4. laptop nasıl seçilir' in prompt
        assert 'dollar-sign' in prompt
        assert 'JSON' in prompt

    def test_sample_is_limited(self, monkeypatch, fake_response, envelope):
        monkeypatch.setattr(config, 'SAMPLE_LIMIT', 3)
        body = json.dumps({'categories': [{'id': 'all', 'name': 'All', 'icon': 'tag', 'keywords': [1, 2, 3]}]})
        calls = _install_post(monkeypatch, fake_response(200, envelope(body)))

        outcome = _categorize(GeminiCategorizer(api_key='k'))

        prompt = calls[0]['json']['contents'][0]['parts'][0]['text']
        assert '3. Apple laptop' in prompt
        assert '4. laptop nasıl seçilir' not in prompt
        assert _flatten(outcome.categories) == TEXTS[:3]


class TestCategorizeSuccess:

    def test_maps_indices_to_keywords(self, monkeypatch, fake_response, envelope):
        body = json.dumps({'categories': [
            {'id': 'price', 'name': 'Fiyat', 'icon': 'dollar-sign', 'description': 'Fiyatlar', 'keywords': [1]},
            {'id': 'products', 'name': 'Ürünler', 'icon': 'package', 'keywords': [2, 3, 4]},
        ]})
        calls = _install_post(monkeypatch, fake_response(200, envelope(body)))

        outcome = _categorize(GeminiCategorizer(api_key='secret', model_name='gemini-test', timeout=7))

        assert outcome.ok
        assert outcome.attempted
        assert outcome.categories == [
            {'id': 'price', 'name': 'Fiyat', 'icon': 'dollar-sign', 'description': 'Fiyatlar',
             'keywords': ['laptop fiyatı']},
            {'id': 'products', 'name': 'Ürünler', 'icon': 'package',
             'keywords': ['masaüstü bilgisayar', 'Apple laptop', 'laptop nasıl seçilir']},
        ]

        call = calls[0]
        assert 'gemini-test:generateContent' in call['url']
        assert call['params'] == {'key': 'secret'}
        assert call['timeout'] == 7
        assert call['json']['generationConfig'] == config.get_generation_config()

    def test_usage_accounting(self, monkeypatch, fake_response, envelope):
        body = json.dumps({'categories': [{'id': 'a', 'name': 'A', 'icon': 'tag', 'keywords': [1, 2, 3, 4]}]})
        calls = _install_post(monkeypatch, fake_response(200, envelope(body)))

        outcome = _categorize(GeminiCategorizer(api_key='k'))

        prompt = calls[0]['json']['contents'][0]['parts'][0]['text']
        assert outcome.tokens_input == approx_tokens(prompt)
        assert outcome.tokens_output == approx_tokens(body)
        assert outcome.elapsed_ms >= 0

    def test_out_of_range_indices_dropped(self, monkeypatch, fake_response, envelope):
        body = json.dumps({'categories': [
            {'id': 'a', 'name': 'A', 'icon': 'tag', 'keywords': [0, 1, 5, 99, -1, "2", True, 2.0]},
            {'id': 'b', 'name': 'B', 'icon': 'star', 'keywords': [2, 3, 4]},
        ]})
        _install_post(monkeypatch, fake_response(200, envelope(body)))

        outcome = _categorize(GeminiCategorizer(api_key='k'))

        assert outcome.ok
        assert outcome.categories[0]['keywords'] == ['laptop fiyatı']
        assert sorted(_flatten(outcome.categories)) == sorted(TEXTS)

    def test_partition_enforced(self, monkeypatch, fake_response, envelope):
        """Duplicates stay in the first category, leftovers go to general."""
        body = json.dumps({'categories': [
            {'id': 'a', 'name': 'A', 'icon': 'tag', 'keywords': [1, 2]},
            {'id': 'b', 'name': 'B', 'icon': 'tag', 'keywords': [2]},
        ]})
        _install_post(monkeypatch, fake_response(200, envelope(body)))

        outcome = _categorize(GeminiCategorizer(api_key='k'))

        ids = [c['id'] for c in outcome.categories]
        assert ids == ['a', 'general']
        assert outcome.categories[1]['keywords'] == ['Apple laptop', 'laptop nasıl seçilir']
        flat = _flatten(outcome.categories)
        assert sorted(flat) == sorted(TEXTS) and len(flat) == len(set(flat))

    def test_fields_defaulted(self, monkeypatch, fake_response, envelope):
        body = json.dumps({'categories': [
            {'name': 'Fiyat Aramaları', 'icon': 'not-an-icon', 'keywords': [1, 2]},
            {'id': 'fiyat-aramalari', 'keywords': [3, 4]},
            'garbage',
        ]})
        _install_post(monkeypatch, fake_response(200, envelope(body)))

        outcome = _categorize(GeminiCategorizer(api_key='k'))

        first, second = outcome.categories
        assert first['id'] == 'fiyat-aramalari'
        assert first['icon'] == 'package'
        assert 'description' not in first
        assert second['id'] == 'fiyat-aramalari-2'
        assert second['name'] == 'fiyat-aramalari-2'


class TestCategorizeFailures:
    """Every provider problem is a failure value, never an exception."""

    def _failure(self, monkeypatch, **kwargs):
        _install_post(monkeypatch, **kwargs)
        outcome = _categorize(GeminiCategorizer(api_key='k'))
        assert not outcome.ok
        assert outcome.categories is None
        return outcome

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(config, 'GEMINI_API_KEY', '')
        calls = _install_post(monkeypatch)
        outcome = _categorize(GeminiCategorizer())
        assert outcome.failure.reason == 'not_configured'
        assert not outcome.attempted
        assert calls == []

    def test_timeout(self, monkeypatch):
        outcome = self._failure(monkeypatch, exc=requests.Timeout("slow"))
        assert outcome.failure.reason == 'timeout'
        assert outcome.attempted

    def test_request_error(self, monkeypatch):
        outcome = self._failure(monkeypatch, exc=requests.ConnectionError("refused"))
        assert outcome.failure.reason == 'request_error'

    def test_http_status(self, monkeypatch, fake_response):
        outcome = self._failure(monkeypatch, response=fake_response(500, {'error': 'boom'}))
        assert outcome.failure.reason == 'http_status'

    def test_body_not_json(self, monkeypatch, fake_response):
        outcome = self._failure(monkeypatch, response=fake_response(200, invalid_json=True))
        assert outcome.failure.reason == 'malformed_envelope'

    @pytest.mark.parametrize('payload', [
        {},
        {'candidates': []},
        {'candidates': [{'content': None}]},
        {'candidates': [{'content': {'parts': [{}]}}]},
        {'candidates': [{'content': {'parts': [{'text': 42}]}}]},
        ['not', 'a', 'dict'],
    ])
    def test_malformed_envelope(self, monkeypatch, fake_response, payload):
        outcome = self._failure(monkeypatch, response=fake_response(200, payload))
        assert outcome.failure.reason == 'malformed_envelope'

    def test_no_json(self, monkeypatch, fake_response, envelope):
        outcome = self._failure(monkeypatch, response=fake_response(200, envelope('I cannot help with that.')))
        assert outcome.failure.reason == 'no_json'
        assert outcome.tokens_output > 0

    def test_invalid_json(self, monkeypatch, fake_response, envelope):
        outcome = self._failure(monkeypatch, response=fake_response(200, envelope('{"categories": [1, 2,]}')))
        assert outcome.failure.reason == 'invalid_json'

    @pytest.mark.parametrize('body', [
        '{"groups": []}',
        '{"categories": []}',
        '{"categories": "price"}',
        '{"categories": ["a", 1]}',
    ])
    def test_invalid_payload(self, monkeypatch, fake_response, envelope, body):
        outcome = self._failure(monkeypatch, response=fake_response(200, envelope(body)))
        assert outcome.failure.reason == 'invalid_payload'

    def test_circuit_breaker(self, monkeypatch, fake_response):
        calls = _install_post(monkeypatch, response=fake_response(429, {'error': 'quota'}))
        categorizer = GeminiCategorizer(api_key='k')

        for _ in range(3):
            assert _categorize(categorizer).failure.reason == 'http_status'
        assert not categorizer.is_available()

        outcome = _categorize(categorizer)
        assert outcome.failure.reason == 'circuit_open'
        assert len(calls) == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
