"""
Keyword Categorization Database Module
SQLite storage for projects, their keyword result tables and the API usage ledger.
"""
import json
import logging
import sqlite3
import uuid as uuid_lib
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .config import config

logger = logging.getLogger(__name__)

RESULTS_TABLE = 'keyword_results'
RAW_RESULTS_TABLE = 'keyword_results_raw'
RESULT_TABLES = (RESULTS_TABLE, RAW_RESULTS_TABLE)


def normalize_flag(value: Any) -> bool:
    """
    Turn a stored boolean-ish flag into a real bool.
    Drivers hand back 0/1, '0'/'1', 'true'/'false', bytes or None.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (bytes, bytearray)):
        return any(value)
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return False


def _py_lower(value):
    # SQLite's LOWER() only folds ASCII; keyword matching needs 'Ü' -> 'ü'
    return value.lower() if isinstance(value, str) else value


class CategorizationStore:
    """Database handler for categorization state"""

    def __init__(self, db_path=None):
        self.db_path = str(db_path or config.DATABASE_FILE)

    @contextmanager
    def get_db(self):
        """Context manager for database connections"""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.create_function('PY_LOWER', 1, _py_lower, deterministic=True)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_tables(self):
        """Initialize categorization tables"""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS keyword_projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    uuid TEXT UNIQUE,
                    client_id INTEGER,
                    main_keyword TEXT,
                    ai_categories TEXT,
                    ai_categorization_done INTEGER DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # Curated result set
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS keyword_results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL,
                    keyword TEXT NOT NULL,
                    search_volume INTEGER,
                    cpc REAL,
                    competition TEXT,
                    ai_category TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (project_id) REFERENCES keyword_projects(id)
                )
            ''')

            # Unfiltered result set
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS keyword_results_raw (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL,
                    keyword TEXT NOT NULL,
                    search_volume INTEGER,
                    cpc REAL,
                    competition TEXT,
                    source TEXT,
                    ai_category TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (project_id) REFERENCES keyword_projects(id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS api_usage_tracking (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    client_id INTEGER,
                    tool_name TEXT,
                    project_id INTEGER,
                    workflow_name TEXT,
                    api_provider TEXT NOT NULL,
                    model_name TEXT,
                    tokens_input INTEGER DEFAULT 0,
                    tokens_output INTEGER DEFAULT 0,
                    requests_count INTEGER DEFAULT 1,
                    response_time_ms INTEGER,
                    was_successful INTEGER DEFAULT 1,
                    cost_usd REAL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_keyword_results_project ON keyword_results(project_id, keyword)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_keyword_results_raw_project ON keyword_results_raw(project_id, keyword)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_api_usage_project ON api_usage_tracking(project_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_api_usage_created ON api_usage_tracking(created_at DESC)')

        logger.info("Categorization tables initialized")

    # =========================================================================
    # PROJECTS
    # =========================================================================

    def create_project(self, main_keyword: str, client_id: Optional[int] = None,
                       uuid: Optional[str] = None) -> int:
        """Create a keyword project and return its id"""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO keyword_projects (uuid, client_id, main_keyword)
                VALUES (?, ?, ?)
            ''', (uuid or str(uuid_lib.uuid4()), client_id, main_keyword))
            return cursor.lastrowid

    def get_project(self, project_ref) -> Optional[Dict]:
        """
        Look a project up by uuid or numeric id.

        Returns a dict with 'is_done' as a real bool and 'categories' parsed
        from JSON (None when absent or unreadable), or None if not found.
        """
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT id, uuid, client_id, main_keyword, ai_categories, ai_categorization_done
                FROM keyword_projects
                WHERE uuid = ? OR id = ?
                LIMIT 1
            ''', (str(project_ref), project_ref))
            row = cursor.fetchone()

        if row is None:
            return None

        project = dict(row)
        project['is_done'] = normalize_flag(project.pop('ai_categorization_done'))
        project['categories'] = self._parse_categories(project.pop('ai_categories'), project['id'])
        return project

    @staticmethod
    def _parse_categories(value, project_id) -> Optional[List[Dict]]:
        if value is None or value == '':
            return None
        if isinstance(value, (bytes, bytearray)):
            value = value.decode('utf-8', errors='replace')
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError as e:
                logger.error(f"Failed to parse ai_categories for project {project_id}: {e}")
                return None
        if not isinstance(value, list):
            logger.error(f"ai_categories for project {project_id} is not a list")
            return None
        return value

    def save_categories(self, project_id: int, categories: List[Dict]) -> int:
        """Overwrite the project's cached categories and mark it done. Returns rows updated."""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                UPDATE keyword_projects
                SET ai_categories = ?, ai_categorization_done = 1, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            ''', (json.dumps(categories, ensure_ascii=False), project_id))
            return cursor.rowcount

    # =========================================================================
    # KEYWORD RESULTS
    # =========================================================================

    def add_keyword_results(self, project_id: int, rows: List[Dict], raw: bool = False) -> int:
        """Insert keyword rows into one of the result tables"""
        with self.get_db() as conn:
            cursor = conn.cursor()
            if raw:
                cursor.executemany('''
                    INSERT INTO keyword_results_raw
                    (project_id, keyword, search_volume, cpc, competition, source, ai_category)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                ''', [
                    (project_id, r['keyword'], r.get('search_volume'), r.get('cpc'),
                     r.get('competition'), r.get('source'), r.get('ai_category'))
                    for r in rows
                ])
            else:
                cursor.executemany('''
                    INSERT INTO keyword_results
                    (project_id, keyword, search_volume, cpc, competition, ai_category)
                    VALUES (?, ?, ?, ?, ?, ?)
                ''', [
                    (project_id, r['keyword'], r.get('search_volume'), r.get('cpc'),
                     r.get('competition'), r.get('ai_category'))
                    for r in rows
                ])
            return cursor.rowcount

    def get_keyword_rows(self, project_id: int, raw: bool = False) -> List[Dict]:
        """Get all keyword rows of a project from one result table"""
        if raw:
            query = '''
                SELECT id, keyword, search_volume, cpc, competition, source, ai_category, created_at
                FROM keyword_results_raw WHERE project_id = ? ORDER BY id
            '''
        else:
            query = '''
                SELECT id, keyword, search_volume, cpc, competition, ai_category, created_at
                FROM keyword_results WHERE project_id = ? ORDER BY id
            '''
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(query, (project_id,))
            return [dict(row) for row in cursor.fetchall()]

    def update_keyword_category(self, table: str, project_id: int, keyword: str, category_id: str) -> int:
        """Set ai_category on every row of a project matching the lowercased keyword"""
        if table not in RESULT_TABLES:
            raise ValueError(f"Unknown result table: {table}")

        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(f'''
                UPDATE {table}
                SET ai_category = ?
                WHERE project_id = ? AND PY_LOWER(keyword) = ?
            ''', (category_id, project_id, keyword))
            return cursor.rowcount

    # =========================================================================
    # API USAGE LEDGER
    # =========================================================================

    def log_api_usage(self, project_id: int, client_id: Optional[int], api_provider: str,
                      model_name: str, tokens_input: int, tokens_output: int,
                      response_time_ms: int, was_successful: bool, cost_usd: float = 0.0,
                      tool_name: str = 'tool1', workflow_name: str = 'keywords-categorize') -> int:
        """Record one AI call in the usage ledger"""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO api_usage_tracking
                (client_id, tool_name, project_id, workflow_name, api_provider, model_name,
                 tokens_input, tokens_output, requests_count, response_time_ms, was_successful, cost_usd)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?)
            ''', (client_id, tool_name, project_id, workflow_name, api_provider, model_name,
                  tokens_input, tokens_output, response_time_ms, 1 if was_successful else 0, cost_usd))
            return cursor.lastrowid
