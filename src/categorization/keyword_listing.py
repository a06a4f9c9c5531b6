"""
Stored keyword listing with categories, merged across Turkish-character variants.
"""

from typing import Dict

from .deduplicator import deduplicate_with_stats


def list_keywords(store, project_id: int, raw: bool = False) -> Dict:
    """
    List a project's stored keywords with their ai_category.

    Rows are deduplicated the same way categorization input is, then sorted
    by search volume, highest first.
    """
    rows = store.get_keyword_rows(project_id, raw=raw)
    unique, merged = deduplicate_with_stats(rows)
    unique.sort(key=lambda r: r.get('search_volume') or 0, reverse=True)

    volumes = [r.get('search_volume') or 0 for r in unique]
    total_volume = sum(volumes)

    return {
        'data': unique,
        'stats': {
            'total': len(unique),
            'avg_volume': round(total_volume / len(unique)) if unique else 0,
            'total_volume': total_volume,
            'max_volume': max(volumes) if volumes else 0,
            'min_volume': min(volumes) if volumes else 0
        },
        'original_count': len(rows),
        'duplicates_merged': merged
    }
