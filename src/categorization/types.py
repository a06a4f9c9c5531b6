"""
Keyword Categorization - Type Definitions

TypedDicts for the JSON-shaped records that travel between the HTTP layer,
the categorizers and the database, plus dataclasses for per-run outcomes.
"""

from typing import TypedDict, List, Optional, Union
from dataclasses import dataclass, field


# ==================== Records ====================

class KeywordRecord(TypedDict, total=False):
    """A keyword row as supplied by the caller or read from a result table."""
    id: int
    keyword: str                    # Keyword text
    search_volume: Optional[Union[int, float]]
    cpc: Optional[Union[int, float]]
    competition: Optional[str]
    ai_category: Optional[str]      # Only present on rows read back from storage


class Category(TypedDict, total=False):
    """One semantic bucket of keywords."""
    id: str                         # Slug, e.g. 'price'
    name: str                       # Display name
    icon: str                       # lucide icon name
    description: str
    keywords: List[str]             # Keyword texts, each in exactly one category


# ==================== Outcomes ====================

@dataclass
class CategorizationFailure:
    """Why an AI categorization attempt produced no usable categories."""
    reason: str                     # 'timeout', 'http_status', 'no_json', ...
    detail: str = ''

    def __str__(self):
        return f"{self.reason}: {self.detail}" if self.detail else self.reason


@dataclass
class AIOutcome:
    """Result of one AI categorization attempt, successful or not."""
    categories: Optional[List[Category]] = None
    failure: Optional[CategorizationFailure] = None
    elapsed_ms: int = 0
    tokens_input: int = 0
    tokens_output: int = 0
    attempted: bool = False         # True when the provider was actually called

    @property
    def ok(self) -> bool:
        return self.failure is None and self.categories is not None


@dataclass
class PersistenceFailure:
    """A single failed write during persistence."""
    step: str                       # 'cache_write' or 'propagation'
    detail: str
    table: Optional[str] = None
    keyword: Optional[str] = None


@dataclass
class PersistenceReport:
    """Outcome of persisting one categorization run."""
    failures: List[PersistenceFailure] = field(default_factory=list)
    batches: List[int] = field(default_factory=list)  # assignments per batch
    updates_attempted: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class CategorizationResult:
    """What the orchestrator hands back to the caller."""
    categories: List[Category]
    source: str                     # 'database', 'ai' or 'fallback'
    keywords: List[KeywordRecord] = field(default_factory=list)
    keywords_considered: int = 0
    original_count: int = 0
    duplicates_removed: int = 0
    elapsed_ms: int = 0
    cached: bool = False
    persistence: Optional[PersistenceReport] = None
    saved_to_db: bool = True


# ==================== Errors ====================

class CategorizationError(Exception):
    """Base error for caller-facing categorization problems."""


class EmptyKeywordListError(CategorizationError):
    """Raised when there is nothing to categorize."""


class ProjectNotFoundError(CategorizationError):
    """Raised when a project reference matches neither a uuid nor an id."""

    def __init__(self, project_ref):
        self.project_ref = project_ref
        super().__init__(f"Project not found: {project_ref}")
