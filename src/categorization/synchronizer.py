"""
Category Persistence
Writes a categorization run to the project's cache field and propagates the
per-keyword labels to both keyword result tables.
"""

import asyncio
import functools
import logging
from typing import Dict, List, Optional

from .config import config
from .keyword_db import RESULT_TABLES
from .types import Category, PersistenceFailure, PersistenceReport

logger = logging.getLogger(__name__)


def build_assignment(categories: List[Category]) -> Dict[str, str]:
    """Map lowercased keyword text -> category id (last writer wins)."""
    assignment = {}
    for cat in categories:
        for keyword in cat.get('keywords', []):
            assignment[keyword.lower()] = cat['id']
    return assignment


class CategorySynchronizer:
    """
    Persists categories with partial-failure tolerance.

    Every step is attempted even when an earlier one fails; failures are
    collected in the returned PersistenceReport instead of being raised.
    """

    def __init__(self, store, batch_size: Optional[int] = None):
        self.store = store
        self.batch_size = batch_size or config.UPDATE_BATCH_SIZE

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def _write_cache(self, project_id: int, categories: List[Category], report: PersistenceReport):
        try:
            updated = await self._run_blocking(self.store.save_categories, project_id, categories)
        except Exception as e:
            logger.error(f"Failed to save categories for project {project_id}: {e}")
            report.failures.append(PersistenceFailure('cache_write', str(e)))
            return

        if not updated:
            logger.error(f"Cache write for project {project_id} matched no rows")
            report.failures.append(PersistenceFailure('cache_write', 'project row not found'))
        else:
            logger.info(f"Saved {len(categories)} categories to project {project_id}")

    async def _propagate_one(self, project_id: int, keyword: str, category_id: str) -> List[PersistenceFailure]:
        """Update one keyword in both result tables, in parallel."""
        results = await asyncio.gather(
            *[self._run_blocking(self.store.update_keyword_category, table, project_id, keyword, category_id)
              for table in RESULT_TABLES],
            return_exceptions=True
        )

        failures = []
        for table, result in zip(RESULT_TABLES, results):
            if isinstance(result, Exception):
                failures.append(PersistenceFailure('propagation', str(result), table=table, keyword=keyword))
        return failures

    async def propagate(self, project_id: int, assignment: Dict[str, str], report: PersistenceReport):
        """
        Apply the assignment in batches of batch_size keywords.

        Every keyword writes to each of RESULT_TABLES, so one batch issues up
        to batch_size * len(RESULT_TABLES) writes (100 at the default size).
        A batch runs fully in parallel and must settle before the next one
        starts; the default executor's thread pool bounds how many of those
        writes actually run at once.
        """
        entries = list(assignment.items())

        for i in range(0, len(entries), self.batch_size):
            batch = entries[i:i + self.batch_size]
            report.batches.append(len(batch))
            report.updates_attempted += len(batch) * len(RESULT_TABLES)

            outcomes = await asyncio.gather(
                *[self._propagate_one(project_id, keyword, category_id) for keyword, category_id in batch]
            )
            for failures in outcomes:
                report.failures.extend(failures)

        logger.info(f"Updated {len(entries)} keywords with categories in both tables "
                    f"({len(report.batches)} batches)")

    async def persist(self, project_id: int, categories: List[Category]) -> PersistenceReport:
        """
        Persist a categorization run.

        Args:
            project_id: Internal project id
            categories: Categories of the run

        Returns:
            PersistenceReport listing batch sizes and every failed write
        """
        report = PersistenceReport()

        await self._write_cache(project_id, categories, report)
        await self.propagate(project_id, build_assignment(categories), report)

        if not report.ok:
            logger.error(f"Persistence for project {project_id} finished with {len(report.failures)} failures")

        return report
