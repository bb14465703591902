import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import psycopg2
from psycopg2 import errors

from package_search_api.services.search.config import Settings
from package_search_api.services.search.exceptions import StoreWriteLocked
from package_search_api.services.search.models.package import Package

logger = logging.getLogger(__name__)

# Lock conflicts worth retrying rather than failing the run
TRANSIENT_WRITE_ERRORS = (
    errors.LockNotAvailable,
    errors.DeadlockDetected,
    errors.SerializationFailure,
    psycopg2.OperationalError,
)

PACKAGE_COLUMNS = """
    id,
    name,
    description,
    type,
    repository,
    language,
    abandoned,
    replacement_package,
    github_stars,
    indexed_at,
    crawled_at
"""

def get_connection_params(settings: Settings) -> Dict[str, Any]:
    if settings.DATABASE_URL:
        parsed_url = urlparse(settings.DATABASE_URL)
        return {'host': parsed_url.hostname, 'port': parsed_url.port, 'dbname': parsed_url.path[1:],
                'user': parsed_url.username, 'password': parsed_url.password}
    return {'host': settings.POSTGRES_HOST, 'port': settings.POSTGRES_PORT,
            'dbname': settings.POSTGRES_DB, 'user': settings.POSTGRES_USER,
            'password': settings.POSTGRES_PASSWORD}

def get_db_connection(settings: Settings):
    params = get_connection_params(settings)
    try:
        conn = psycopg2.connect(**params)
        logger.info(f"Successfully connected to database: {params['dbname']} at {params['host']}")
        return conn
    except psycopg2.OperationalError as e:
        logger.error(f"Error connecting to the database: {e}")
        raise

def row_to_package(row: Tuple[Any, ...]) -> Package:
    """Validate one package row; raises pydantic.ValidationError on malformed data."""
    return Package(
        id=row[0],
        name=row[1],
        description=row[2],
        type=row[3],
        repository=row[4],
        language=row[5],
        abandoned=bool(row[6]),
        replacement_package=row[7],
        github_stars=row[8] or 0,
        indexed_at=row[9],
        crawled_at=row[10],
    )

class PackageRepository:
    """Read access to packages and the indexed_at bookkeeping column."""

    def __init__(self, conn):
        self.conn = conn

    def execute(self, query: str, params: Optional[tuple] = None) -> List[Tuple[Any, ...]]:
        """Execute a query and return results if any."""
        cur = self.conn.cursor()
        try:
            cur.execute(query, params)
            rows = cur.fetchall() if cur.description else []
            self.conn.commit()
            return rows
        except Exception as e:
            self.conn.rollback()
            logger.error(f"Query execution failed: {str(e)}\nQuery: {query}\nParams: {params}")
            raise
        finally:
            cur.close()

    def find_id_by_name(self, name: str) -> Optional[int]:
        rows = self.execute("SELECT id FROM package WHERE name = %s", (name,))
        return rows[0][0] if rows else None

    def get_all_ids(self) -> List[int]:
        return [row[0] for row in self.execute("SELECT id FROM package ORDER BY id ASC")]

    def get_stale_ids(self) -> List[int]:
        """Packages never indexed, or crawled again since their last indexing."""
        rows = self.execute("""
            SELECT id FROM package
            WHERE indexed_at IS NULL OR indexed_at <= crawled_at
            ORDER BY id ASC
        """)
        return [row[0] for row in rows]

    def reset_indexed_at(self) -> None:
        self.execute("UPDATE package SET indexed_at = NULL")

    def find_rows_by_ids(self, ids: List[int]) -> List[Tuple[Any, ...]]:
        """Raw package rows; validate each one with row_to_package."""
        if not ids:
            return []
        return self.execute(
            f"SELECT {PACKAGE_COLUMNS} FROM package WHERE id = ANY(%s) ORDER BY id ASC",
            (list(ids),)
        )

    def get_tags(self, package_id: int) -> List[str]:
        """Raw tag names declared by any version of the package."""
        rows = self.execute("""
            SELECT t.name FROM package p
            JOIN package_version pv ON p.id = pv.package_id
            JOIN version_tag vt ON vt.version_id = pv.id
            JOIN tag t ON t.id = vt.tag_id
            WHERE p.id = %s
            GROUP BY t.id, t.name
        """, (package_id,))
        return [row[0] for row in rows]

    def get_providers(self, package_id: int) -> List[str]:
        """Names provided by the development versions of the package."""
        rows = self.execute("""
            SELECT lp.package_name
            FROM package p
            JOIN package_version pv ON p.id = pv.package_id
            JOIN link_provide lp ON lp.version_id = pv.id
            WHERE p.id = %s
            AND pv.development = true
            GROUP BY lp.package_name
        """, (package_id,))
        return [row[0] for row in rows]

    def update_indexed_at(self, ids: List[int], indexed_at: datetime) -> None:
        try:
            self.execute(
                "UPDATE package SET indexed_at = %s WHERE id = ANY(%s)",
                (indexed_at, list(ids))
            )
        except TRANSIENT_WRITE_ERRORS as e:
            raise StoreWriteLocked(str(e)) from e

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
