"""
Keyword Normalizer Module
Builds comparison keys for keywords so that spellings which differ only in
Turkish characters, casing or spacing collapse together.
"""

import re
from typing import Optional

# Bump when the folding table changes; stored groupings depend on it.
FOLDING_TABLE_VERSION = 1

# Turkish letter -> closest ASCII base letter
TURKISH_CHAR_MAP = {
    'ı': 'i', 'İ': 'I',
    'ğ': 'g', 'Ğ': 'G',
    'ü': 'u', 'Ü': 'U',
    'ş': 's', 'Ş': 'S',
    'ö': 'o', 'Ö': 'O',
    'ç': 'c', 'Ç': 'C'
}

_FOLD_TABLE = str.maketrans(TURKISH_CHAR_MAP)
_LOCALE_CHARS_RE = re.compile('[' + ''.join(TURKISH_CHAR_MAP) + ']')
_WHITESPACE_RE = re.compile(r'\s+')


def fold_locale_chars(text: str) -> str:
    """Replace Turkish letters with their ASCII base letters."""
    return text.translate(_FOLD_TABLE)


def has_locale_chars(text: Optional[str]) -> bool:
    """Check if the raw text contains any Turkish-specific letter."""
    if not text:
        return False
    return _LOCALE_CHARS_RE.search(text) is not None


def normalize(keyword: Optional[str]) -> str:
    """
    Build the comparison key for a keyword.

    Operations:
    - Fold Turkish letters to ASCII (before lowercasing, so 'İ' becomes 'i'
      rather than 'i' plus a combining dot)
    - Lowercase
    - Strip whitespace
    - Collapse multiple spaces

    Args:
        keyword: Raw keyword string

    Returns:
        Comparison key; empty string for empty input
    """
    if not keyword:
        return ""

    kw = fold_locale_chars(keyword)
    kw = kw.lower().strip()
    kw = _WHITESPACE_RE.sub(' ', kw)

    return kw
