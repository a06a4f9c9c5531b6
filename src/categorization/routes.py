"""
Keyword Categorization API Routes
Endpoints for AI keyword categorization, stored keyword listings and AI usage stats.
"""

from flask import Blueprint, request, jsonify
import asyncio
import logging

from .config import config
from .keyword_db import CategorizationStore, normalize_flag
from .keyword_listing import list_keywords
from .orchestrator import KeywordCategorizer
from .types import CategorizationError, EmptyKeywordListError, ProjectNotFoundError
from .usage_stats import get_usage_stats

logger = logging.getLogger(__name__)

categorize_bp = Blueprint('categorize', __name__, url_prefix='/api/projects')
usage_bp = Blueprint('usage', __name__, url_prefix='/api/token-stats')


def run_async(coro):
    """Helper to run async coroutines in Flask - creates fresh loop each time."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(loop.shutdown_default_executor())
        loop.close()


# Shared instances, created on first use
_store = None
_categorizer = None


def configure(store=None, categorizer=None):
    """Replace the shared store / categorizer (used by the app factory and tests)."""
    global _store, _categorizer
    _store = store
    _categorizer = categorizer


def get_store() -> CategorizationStore:
    """Get or create the database store."""
    global _store
    if _store is None:
        _store = CategorizationStore(config.DATABASE_FILE)
    return _store


def get_categorizer() -> KeywordCategorizer:
    """Get or create the categorization orchestrator."""
    global _categorizer
    if _categorizer is None:
        _categorizer = KeywordCategorizer(get_store())
    return _categorizer


METRIC_FIELDS = ('search_volume', 'cpc')


def _is_metric(value) -> bool:
    # bool is an int subclass but never a valid metric
    return value is None or (isinstance(value, (int, float)) and not isinstance(value, bool))


def _coerce_keywords(raw):
    """
    Accept a list of keyword objects or bare strings.
    Returns the list of records, or None if any entry is unusable.
    """
    if not isinstance(raw, list):
        return None

    records = []
    for item in raw:
        if isinstance(item, str):
            records.append({'keyword': item})
        elif (isinstance(item, dict) and isinstance(item.get('keyword'), str)
              and all(_is_metric(item.get(f)) for f in METRIC_FIELDS)):
            records.append(item)
        else:
            return None
    return records


@categorize_bp.route('/<project_ref>/keywords-categorize', methods=['GET'])
def categorization_status(project_ref):
    """Return the stored categories of a project."""
    try:
        project = get_store().get_project(project_ref)
        if project is None:
            return jsonify({'success': False, 'error': 'Project not found'}), 404

        return jsonify({
            'success': True,
            'categorization_done': project['is_done'],
            'categories': project['categories']
        })
    except Exception as e:
        logger.error(f"Error getting categorization status: {e}")
        return jsonify({'success': False, 'error': 'Could not load categorization status'}), 500


@categorize_bp.route('/<project_ref>/keywords-categorize', methods=['POST'])
def categorize_keywords(project_ref):
    """
    Categorize a project's keywords.

    Request body:
    {
        "keywords": [{"keyword": "laptop fiyatı", "search_volume": 1200}, ...],
        "force": false   // Optional, recompute even if cached
    }
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'success': False, 'error': 'No keywords to categorize'}), 400

        keywords = data.get('keywords')
        if not keywords:
            return jsonify({'success': False, 'error': 'No keywords to categorize'}), 400

        records = _coerce_keywords(keywords)
        if records is None:
            return jsonify({
                'success': False,
                'error': "Each keyword must be a string or an object with a 'keyword' field "
                         "and numeric search_volume/cpc"
            }), 400

        force = normalize_flag(data.get('force', False))

        result = run_async(get_categorizer().run(project_ref, records, force=force))

        if result.cached:
            return jsonify({
                'success': True,
                'categories': result.categories,
                'cached': True,
                'ai_source': result.source,
                'keyword_count': result.keywords_considered,
                'original_count': result.original_count,
                'duplicates_removed': 0,
                'response_time_ms': 0,
                'saved_to_db': True
            })

        return jsonify({
            'success': True,
            'categories': result.categories,
            'keywords': result.keywords,
            'ai_source': result.source,
            'keyword_count': result.keywords_considered,
            'original_count': result.original_count,
            'duplicates_removed': result.duplicates_removed,
            'response_time_ms': result.elapsed_ms,
            'saved_to_db': result.saved_to_db
        })

    except ProjectNotFoundError:
        return jsonify({'success': False, 'error': 'Project not found'}), 404
    except EmptyKeywordListError:
        return jsonify({'success': False, 'error': 'No keywords to categorize'}), 400
    except CategorizationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except Exception:
        logger.exception("Error categorizing keywords")
        return jsonify({'success': False, 'error': 'Keyword categorization failed'}), 500


def _keyword_listing(project_ref, raw):
    try:
        store = get_store()
        project = store.get_project(project_ref)
        if project is None:
            return jsonify({'success': False, 'error': 'Project not found'}), 404

        listing = list_keywords(store, project['id'], raw=raw)
        logger.info(f"Listed {listing['stats']['total']} keywords for project {project['id']} "
                    f"({listing['duplicates_merged']} duplicates merged)")
        return jsonify({'success': True, **listing})
    except Exception as e:
        logger.error(f"Error fetching keywords: {e}")
        return jsonify({'success': False, 'error': 'Database error'}), 500


@categorize_bp.route('/<project_ref>/keywords', methods=['GET'])
def project_keywords(project_ref):
    """Curated keyword results with their categories."""
    return _keyword_listing(project_ref, raw=False)


@categorize_bp.route('/<project_ref>/keywords-raw', methods=['GET'])
def project_keywords_raw(project_ref):
    """Unfiltered keyword results with their categories."""
    return _keyword_listing(project_ref, raw=True)


@usage_bp.route('', methods=['GET'])
def token_stats():
    """
    AI usage statistics.

    Query params: project_id, tool, start_date, end_date (YYYY-MM-DD)
    """
    project_id = request.args.get('project_id')
    if project_id is not None:
        try:
            project_id = int(project_id)
        except ValueError:
            return jsonify({'success': False, 'error': 'project_id must be an integer'}), 400

    try:
        stats = get_usage_stats(
            get_store(),
            project_id=project_id,
            tool=request.args.get('tool'),
            start_date=request.args.get('start_date'),
            end_date=request.args.get('end_date')
        )
        return jsonify({'success': True, 'data': stats})
    except Exception as e:
        logger.error(f"Error getting token stats: {e}")
        return jsonify({'success': False, 'error': 'Could not load token statistics'}), 500
