"""
Rule-based keyword categorization (No AI cost).
Used whenever the AI provider is unavailable or returns unusable output.
"""

import re
from typing import Iterable, List

from .types import Category, KeywordRecord

PRICE_WORDS = ['fiyat', 'fiyatı', 'fiyatları', 'ucuz', 'indirim', 'kampanya', 'kaç para', 'ne kadar']
QUESTION_WORDS = ['nasıl', 'nedir', 'ne zaman', 'hangisi', 'kaç', 'neden', 'hangi', 'nerede']
COMPARISON_WORDS = ['vs', 'karşılaştırma', 'fark', 'mı yoksa', 'arasındaki', 'hangisi daha', 'en iyi']

# A capitalized word token usually means a brand name
BRAND_PATTERN = re.compile(r'\b[A-ZÇĞİÖŞÜ][a-zçğıöşü]+\b')

# Buckets in priority order; the first matching rule wins
FALLBACK_CATEGORIES = [
    {
        'id': 'price',
        'name': 'Fiyat Aramaları',
        'icon': 'dollar-sign',
        'description': 'Fiyat ve maliyet ile ilgili aramalar'
    },
    {
        'id': 'questions',
        'name': 'Sorular',
        'icon': 'help-circle',
        'description': 'Soru formatındaki aramalar'
    },
    {
        'id': 'comparison',
        'name': 'Karşılaştırmalar',
        'icon': 'git-compare',
        'description': 'Ürün veya hizmet karşılaştırmaları'
    },
    {
        'id': 'brands',
        'name': 'Markalar',
        'icon': 'tag',
        'description': 'Marka ile ilgili aramalar'
    },
    {
        'id': 'general',
        'name': 'Genel',
        'icon': 'package',
        'description': 'Diğer genel aramalar'
    }
]


def classify_keyword(keyword: str) -> str:
    """Return the fallback category id for a single keyword text."""
    lower = keyword.lower()

    if any(w in lower for w in PRICE_WORDS):
        return 'price'
    if any(w in lower for w in QUESTION_WORDS):
        return 'questions'
    if any(w in lower for w in COMPARISON_WORDS):
        return 'comparison'
    if BRAND_PATTERN.search(keyword):
        return 'brands'
    return 'general'


def categorize_fallback(records: Iterable[KeywordRecord]) -> List[Category]:
    """
    Classify keywords into fixed buckets.

    Args:
        records: Deduplicated keyword records

    Returns:
        One category per non-empty bucket, in priority order. Every keyword
        appears in exactly one category.
    """
    buckets = {cat['id']: [] for cat in FALLBACK_CATEGORIES}

    for record in records:
        keyword = record.get('keyword') or ''
        buckets[classify_keyword(keyword)].append(keyword)

    result = []
    for cat in FALLBACK_CATEGORIES:
        if buckets[cat['id']]:
            result.append({**cat, 'keywords': buckets[cat['id']]})

    return result
