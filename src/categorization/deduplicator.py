"""
Keyword Deduplicator
Merges keyword records whose texts share a comparison key, e.g.
"masaustu bilgisayar" and "masaüstü bilgisayar".
"""

from typing import Dict, Iterable, List, Tuple

from .normalizer import normalize, has_locale_chars
from .types import KeywordRecord


def _volume(record: KeywordRecord):
    return record.get('search_volume') or 0


def _merge(incoming: KeywordRecord, retained: KeywordRecord) -> KeywordRecord:
    """
    Decide which of two colliding records survives.

    The spelling with Turkish characters is the authoritative one, but the
    higher search volume is carried over so it is not silently lost.
    """
    incoming_local = has_locale_chars(incoming.get('keyword'))
    retained_local = has_locale_chars(retained.get('keyword'))
    best_volume = max(_volume(incoming), _volume(retained))

    if incoming_local and not retained_local:
        merged = dict(incoming)
        merged['search_volume'] = best_volume or incoming.get('search_volume')
        merged['cpc'] = incoming.get('cpc') or retained.get('cpc')
        return merged

    if retained_local and not incoming_local:
        merged = dict(retained)
        merged['search_volume'] = best_volume or retained.get('search_volume')
        merged['cpc'] = retained.get('cpc') or incoming.get('cpc')
        return merged

    # Both or neither carry Turkish characters: higher volume wins, ties keep retained
    if _volume(incoming) > _volume(retained):
        return incoming
    return retained


def deduplicate(records: Iterable[KeywordRecord]) -> List[KeywordRecord]:
    """
    Collapse near-duplicate keyword records.

    Args:
        records: Keyword records in caller order

    Returns:
        One record per comparison key, in order of first appearance.
        Input records are never mutated.
    """
    retained: Dict[str, KeywordRecord] = {}

    for record in records:
        key = normalize(record.get('keyword'))
        existing = retained.get(key)
        if existing is None:
            retained[key] = record
        else:
            # Reassigning an existing key keeps its original position
            retained[key] = _merge(record, existing)

    return list(retained.values())


def deduplicate_with_stats(records: List[KeywordRecord]) -> Tuple[List[KeywordRecord], int]:
    """Deduplicate and report how many records were removed."""
    unique = deduplicate(records)
    return unique, len(records) - len(unique)
