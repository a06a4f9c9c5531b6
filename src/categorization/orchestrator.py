"""
Keyword Categorization Orchestrator
Runs the cache check → deduplicate → categorize → persist sequence for a project.
"""

import asyncio
import functools
import logging
from typing import Dict, List, Optional

from .ai_service import GeminiCategorizer
from .config import config
from .deduplicator import deduplicate_with_stats
from .fallback import categorize_fallback
from .synchronizer import CategorySynchronizer
from .types import (
    AIOutcome, CategorizationResult, EmptyKeywordListError, KeywordRecord,
    PersistenceFailure, PersistenceReport, ProjectNotFoundError
)
from .usage_stats import estimate_cost

logger = logging.getLogger(__name__)

API_PROVIDER = 'google'


class KeywordCategorizer:
    """
    Orchestrates one categorization request.

    Process:
    1. Return the project's cached categories unless forced
    2. Deduplicate the raw keywords
    3. Categorize with Gemini, falling back to rules on any failure
    4. Record the AI call in the usage ledger
    5. Persist categories to the project and both result tables
    """

    def __init__(self, store, ai_service: Optional[GeminiCategorizer] = None,
                 synchronizer: Optional[CategorySynchronizer] = None):
        """
        Initialize the orchestrator.

        Args:
            store: CategorizationStore
            ai_service: AI categorizer (defaults to GeminiCategorizer from env)
            synchronizer: Persistence step (defaults to one over store)
        """
        self.store = store
        self.ai_service = ai_service or GeminiCategorizer()
        self.synchronizer = synchronizer or CategorySynchronizer(store)

    async def _run_blocking(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    async def _load_project(self, project_ref) -> Dict:
        project = await self._run_blocking(self.store.get_project, project_ref)
        if project is None:
            raise ProjectNotFoundError(project_ref)
        return project

    async def get_status(self, project_ref) -> Dict:
        """Current categorization state of a project."""
        project = await self._load_project(project_ref)
        return {
            'categorization_done': project['is_done'],
            'categories': project['categories']
        }

    async def _log_usage(self, project: Dict, outcome: AIOutcome):
        model_name = getattr(self.ai_service, 'model_name', config.GEMINI_MODEL)
        try:
            await self._run_blocking(
                self.store.log_api_usage,
                project_id=project['id'],
                client_id=project.get('client_id'),
                api_provider=API_PROVIDER,
                model_name=model_name,
                tokens_input=outcome.tokens_input,
                tokens_output=outcome.tokens_output,
                response_time_ms=outcome.elapsed_ms,
                was_successful=outcome.ok,
                cost_usd=estimate_cost(API_PROVIDER, outcome.tokens_input, outcome.tokens_output)
            )
        except Exception as e:
            logger.error(f"Failed to log API usage: {e}")

    async def run(self, project_ref, raw_keywords: List[KeywordRecord], force: bool = False) -> CategorizationResult:
        """
        Categorize a project's keywords.

        Args:
            project_ref: Project uuid or numeric id
            raw_keywords: Keyword records as supplied by the caller
            force: Recompute even if cached categories exist

        Returns:
            CategorizationResult

        Raises:
            EmptyKeywordListError: raw_keywords is empty
            ProjectNotFoundError: no project matches project_ref
        """
        if not raw_keywords:
            raise EmptyKeywordListError("No keywords to categorize")

        project = await self._load_project(project_ref)
        project_id = project['id']

        if project['is_done'] and not force and project['categories'] is not None:
            logger.info(f"Project {project_id} already categorized, returning cached")
            categories = project['categories']
            return CategorizationResult(
                categories=categories,
                source='database',
                keywords_considered=sum(len(c.get('keywords') or []) for c in categories),
                original_count=len(raw_keywords),
                cached=True
            )

        unique, removed = deduplicate_with_stats(raw_keywords)
        logger.info(f"Deduplicated: {len(raw_keywords)} -> {len(unique)} ({removed} duplicates removed)")

        sample = unique[:config.SAMPLE_LIMIT]

        outcome = await self.ai_service.categorize(sample, project.get('main_keyword') or '')
        if outcome.ok:
            categories, source = outcome.categories, 'ai'
        else:
            logger.warning(f"Falling back to rule-based categories for project {project_id}: {outcome.failure}")
            categories, source = categorize_fallback(sample), 'fallback'

        if outcome.attempted:
            await self._log_usage(project, outcome)

        try:
            report = await self.synchronizer.persist(project_id, categories)
        except Exception as e:
            logger.exception(f"Persistence aborted for project {project_id}")
            report = PersistenceReport(failures=[PersistenceFailure('propagation', str(e))])

        for failure in report.failures:
            logger.error(f"Persistence failure ({failure.step}) table={failure.table} "
                         f"keyword={failure.keyword}: {failure.detail}")

        return CategorizationResult(
            categories=categories,
            source=source,
            keywords=sample,
            keywords_considered=len(sample),
            original_count=len(raw_keywords),
            duplicates_removed=removed,
            elapsed_ms=outcome.elapsed_ms,
            persistence=report,
            saved_to_db=report.ok if config.STRICT_SAVE_STATUS else True
        )
