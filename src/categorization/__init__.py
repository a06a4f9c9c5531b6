"""
Keyword Categorization Module
Deduplicates research keywords and sorts them into categories with Gemini,
falling back to rule-based buckets when the AI is unavailable.
"""

from .config import config
from .logger import setup_logger
from .normalizer import normalize, has_locale_chars, FOLDING_TABLE_VERSION
from .deduplicator import deduplicate, deduplicate_with_stats
from .fallback import categorize_fallback
from .ai_service import GeminiCategorizer
from .keyword_db import CategorizationStore
from .synchronizer import CategorySynchronizer
from .orchestrator import KeywordCategorizer
from .routes import categorize_bp, usage_bp

__all__ = [
    'config',
    'setup_logger',
    'normalize',
    'has_locale_chars',
    'FOLDING_TABLE_VERSION',
    'deduplicate',
    'deduplicate_with_stats',
    'categorize_fallback',
    'GeminiCategorizer',
    'CategorizationStore',
    'CategorySynchronizer',
    'KeywordCategorizer',
    'categorize_bp',
    'usage_bp'
]
__version__ = '0.1.0'
