"""
Google Gemini AI Service for Keyword Categorization
Sends a numbered keyword sample to Gemini and turns the returned index-based
category assignment back into keyword texts.

Every provider problem comes back as a CategorizationFailure inside an
AIOutcome; nothing here raises into the orchestrator.
"""

import asyncio
import functools
import json
import logging
import re
import time
from typing import Any, List, Optional, Tuple

import requests

from .config import config
from .fallback import FALLBACK_CATEGORIES
from .normalizer import fold_locale_chars
from .types import AIOutcome, CategorizationFailure, Category, KeywordRecord

logger = logging.getLogger(__name__)

ALLOWED_ICONS = [
    'tag', 'ruler', 'dollar-sign', 'help-circle', 'git-compare', 'package',
    'building-2', 'car', 'star', 'zap', 'heart', 'shield', 'clock', 'map-pin',
    'users', 'shopping-cart', 'trending-up', 'search', 'settings'
]
DEFAULT_ICON = 'package'

GENERAL_CATEGORY = next(c for c in FALLBACK_CATEGORIES if c['id'] == 'general')


def approx_tokens(text: Optional[str]) -> int:
    """Rough token estimate: UTF-8 byte length divided by 4."""
    if not text:
        return 0
    return round(len(text.encode('utf-8')) / 4)


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} substring of text, or None.

    Braces inside JSON string literals are ignored. Markdown code fences
    around the object are tolerated.
    """
    if not text:
        return None

    start = text.find('{')
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]

    return None


def slugify(value: str) -> str:
    slug = fold_locale_chars(value).lower()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    return slug.strip('-')


class GeminiCategorizer:
    """
    AI-powered keyword categorization using Google Gemini.

    Uses the REST endpoint directly through requests, run in the default
    executor so the event loop is never blocked.
    """

    # Global circuit breaker state, shared by all instances
    _circuit_open_until = 0
    _consecutive_errors = 0

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None,
                 timeout: Optional[float] = None):
        """
        Initialize Gemini categorizer.
        Args:
            api_key: Google Gemini API key (defaults to GEMINI_API_KEY).
            model_name: Model id (defaults to GEMINI_MODEL).
            timeout: Request timeout in seconds.
        """
        self.api_key = api_key or config.GEMINI_API_KEY
        self.model_name = model_name or config.GEMINI_MODEL
        self.timeout = timeout or config.GEMINI_TIMEOUT
        self.available = bool(self.api_key)

        if not self.api_key:
            logger.warning("Gemini AI not available - GEMINI_API_KEY not set")

    @classmethod
    def reset_circuit(cls):
        """Close the circuit breaker and clear the error counter."""
        cls._circuit_open_until = 0
        cls._consecutive_errors = 0

    def is_available(self) -> bool:
        """Check if Gemini AI is configured and not circuit-broken."""
        if not self.available:
            return False
        return time.time() >= GeminiCategorizer._circuit_open_until

    def build_prompt(self, sample: List[KeywordRecord], topic_hint: str) -> str:
        """Build the classification prompt for a keyword sample."""
        keyword_list = '\n'.join(
            f"{i}. {record.get('keyword', '')}" for i, record in enumerate(sample, start=1)
        )

        return f"""Analyze the following {len(sample)} search keywords and group them into categories.

Main Topic: "{topic_hint or ''}"

Keywords:
{keyword_list}

RULES:
1. Create meaningful categories from the keywords themselves (brands, sizes, price searches, questions, comparisons, etc.)
2. For each category give a unique id (lowercase, hyphenated), a descriptive name in the language of the keywords and an icon
3. Assign every keyword to exactly ONE category, using its number from the list
4. Create at least 3 and at most 8 categories
5. Do not create an "Other" category; every keyword must fit a meaningful category

OUTPUT FORMAT (JSON only, nothing else):
{{
  "categories": [
    {{
      "id": "category-id",
      "name": "Category Name",
      "icon": "icon-name",
      "description": "Short description of this category",
      "keywords": [1, 5, 12, 23]
    }}
  ]
}}

icon must be one of: {', '.join(ALLOWED_ICONS)}

JSON:"""

    async def _generate_content(self, prompt: str) -> Tuple[Optional[str], Optional[CategorizationFailure]]:
        """Call the REST API once. Returns (text, None) or (None, failure)."""
        url = config.GEMINI_API_URL.format(model=self.model_name)
        headers = {'Content-Type': 'application/json'}
        data = {
            'contents': [{'parts': [{'text': prompt}]}],
            'generationConfig': config.get_generation_config()
        }

        loop = asyncio.get_running_loop()
        func = functools.partial(
            requests.post, url, params={'key': self.api_key},
            headers=headers, json=data, timeout=self.timeout
        )

        try:
            response = await loop.run_in_executor(None, func)
        except requests.Timeout:
            return None, CategorizationFailure('timeout', f"no response within {self.timeout}s")
        except requests.RequestException as e:
            return None, CategorizationFailure('request_error', str(e))

        if response.status_code == 429:
            GeminiCategorizer._consecutive_errors += 1
            logger.warning(f"Rate limit hit ({GeminiCategorizer._consecutive_errors}/{config.CIRCUIT_BREAKER_THRESHOLD})")
            if GeminiCategorizer._consecutive_errors >= config.CIRCUIT_BREAKER_THRESHOLD:
                logger.error(f"Circuit breaker ACTIVATED: Pausing AI for {config.CIRCUIT_BREAKER_COOLDOWN}s")
                GeminiCategorizer._circuit_open_until = time.time() + config.CIRCUIT_BREAKER_COOLDOWN
                GeminiCategorizer._consecutive_errors = 0

        if not 200 <= response.status_code < 300:
            return None, CategorizationFailure('http_status', f"status {response.status_code}")

        GeminiCategorizer._consecutive_errors = 0

        try:
            envelope = response.json()
        except ValueError:
            return None, CategorizationFailure('malformed_envelope', 'response body is not JSON')

        text = self._extract_text(envelope)
        if text is None:
            return None, CategorizationFailure('malformed_envelope', 'no candidates[0].content.parts[0].text')

        return text, None

    @staticmethod
    def _extract_text(envelope: Any) -> Optional[str]:
        """Walk candidates[0].content.parts[0].text, checking every step."""
        if not isinstance(envelope, dict):
            return None
        candidates = envelope.get('candidates')
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return None
        content = candidates[0].get('content')
        if not isinstance(content, dict):
            return None
        parts = content.get('parts')
        if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
            return None
        text = parts[0].get('text')
        if not isinstance(text, str) or not text:
            return None
        return text

    def _parse_response(self, text: str) -> Tuple[Optional[dict], Optional[CategorizationFailure]]:
        raw = extract_json_object(text)
        if raw is None:
            return None, CategorizationFailure('no_json', 'no JSON object in model output')
        try:
            return json.loads(raw), None
        except json.JSONDecodeError as e:
            return None, CategorizationFailure('invalid_json', str(e))

    def map_categories(self, payload: Any, sample: List[KeywordRecord]) -> Tuple[Optional[List[Category]], Optional[CategorizationFailure]]:
        """
        Validate model output and translate keyword indices to keyword texts.

        Indices outside [1, len(sample)] are dropped. A keyword claimed by
        several categories stays in the first one; keywords nobody claimed
        are put in the general category.
        """
        if not isinstance(payload, dict):
            return None, CategorizationFailure('invalid_payload', 'top level is not an object')
        raw_categories = payload.get('categories')
        if not isinstance(raw_categories, list) or not raw_categories:
            return None, CategorizationFailure('invalid_payload', 'missing or empty "categories" list')

        sample_size = len(sample)
        assigned = set()
        seen_ids = set()
        categories: List[Category] = []

        for n, raw in enumerate(raw_categories, start=1):
            if not isinstance(raw, dict):
                continue

            name = raw.get('name') if isinstance(raw.get('name'), str) else ''
            cat_id = raw.get('id') if isinstance(raw.get('id'), str) else ''
            cat_id = slugify(cat_id) or slugify(name) or f"category-{n}"
            base_id, suffix = cat_id, 2
            while cat_id in seen_ids:
                cat_id = f"{base_id}-{suffix}"
                suffix += 1
            seen_ids.add(cat_id)

            icon = raw.get('icon')
            if icon not in ALLOWED_ICONS:
                icon = DEFAULT_ICON

            indices = raw.get('keywords')
            keywords = []
            if isinstance(indices, list):
                for idx in indices:
                    if isinstance(idx, bool) or not isinstance(idx, int):
                        continue
                    if idx < 1 or idx > sample_size or idx in assigned:
                        continue
                    assigned.add(idx)
                    keywords.append(sample[idx - 1].get('keyword', ''))

            category: Category = {
                'id': cat_id,
                'name': name or cat_id,
                'icon': icon,
                'keywords': keywords
            }
            if isinstance(raw.get('description'), str):
                category['description'] = raw['description']
            categories.append(category)

        if not categories:
            return None, CategorizationFailure('invalid_payload', 'no category objects in "categories"')

        unassigned = [sample[i - 1].get('keyword', '') for i in range(1, sample_size + 1) if i not in assigned]
        if unassigned:
            general = next((c for c in categories if c['id'] == GENERAL_CATEGORY['id']), None)
            if general is None:
                general = {**GENERAL_CATEGORY, 'keywords': []}
                categories.append(general)
            general['keywords'].extend(unassigned)
            logger.info(f"{len(unassigned)} keywords left unassigned by AI, moved to '{general['id']}'")

        return [c for c in categories if c['keywords']], None

    async def categorize(self, records: List[KeywordRecord], topic_hint: str = '') -> AIOutcome:
        """
        Categorize up to SAMPLE_LIMIT keywords with Gemini.

        Args:
            records: Deduplicated keyword records
            topic_hint: Main topic of the project

        Returns:
            AIOutcome with categories on success, a failure otherwise
        """
        if not self.available:
            return AIOutcome(failure=CategorizationFailure('not_configured', 'GEMINI_API_KEY not set'))
        if not self.is_available():
            return AIOutcome(failure=CategorizationFailure('circuit_open', 'AI paused after repeated rate limits'))

        sample = list(records[:config.SAMPLE_LIMIT])
        prompt = self.build_prompt(sample, topic_hint)

        start = time.monotonic()
        text, failure = await self._generate_content(prompt)
        elapsed_ms = int((time.monotonic() - start) * 1000)

        outcome = AIOutcome(
            elapsed_ms=elapsed_ms,
            tokens_input=approx_tokens(prompt),
            tokens_output=approx_tokens(text),
            attempted=True
        )

        if failure is None:
            payload, failure = self._parse_response(text)
        if failure is None:
            outcome.categories, failure = self.map_categories(payload, sample)

        if failure is not None:
            outcome.categories = None
            outcome.failure = failure
            logger.warning(f"AI categorization failed ({failure}) after {elapsed_ms}ms")
        else:
            logger.info(f"AI returned {len(outcome.categories)} categories in {elapsed_ms}ms")

        return outcome
