"""
Database Module
===============
PostgreSQL persistence for submitted task requests.

This module provides:
- AsyncPG connection pool for PostgreSQL
- Idempotent migrations for the task_requests table
- Task request CRUD operations

Rows are returned as plain dicts; storage.task_store turns them into
TaskRequest records.

pip install asyncpg
"""

import os
import json
import asyncio
from typing import Dict, Any, Optional, List, Tuple
from contextlib import asynccontextmanager

import structlog
import asyncpg

# Configure logger
logger = structlog.get_logger().bind(component="database")


# =============================================================================
# CONFIGURATION
# =============================================================================

class DatabaseConfig:
    """Database configuration from environment"""

    DATABASE_URL = os.getenv("DATABASE_URL", "")
    MIN_POOL_SIZE = int(os.getenv("DB_MIN_POOL_SIZE", "1"))
    MAX_POOL_SIZE = int(os.getenv("DB_MAX_POOL_SIZE", "10"))
    CONNECT_TIMEOUT = float(os.getenv("DB_CONNECT_TIMEOUT", "5"))


config = DatabaseConfig()

TASK_COLUMNS = [
    "id", "name", "email", "company", "task_category", "task_subtype", "description",
    "deadline", "budget", "communication_method", "additional_details", "task_type",
    "priority", "status", "conversation_data", "ip_address", "user_agent",
    "created_at", "updated_at",
]


# =============================================================================
# CONNECTION POOL
# =============================================================================

class Database:
    """Async database connection pool manager"""

    _pool: Optional[asyncpg.Pool] = None
    _initialized: bool = False

    @classmethod
    async def initialize(cls, dsn: Optional[str] = None):
        """Initialize the connection pool"""
        if cls._initialized:
            return

        dsn = dsn or config.DATABASE_URL
        if not dsn:
            raise RuntimeError("DATABASE_URL is not set")

        try:
            cls._pool = await asyncpg.create_pool(
                dsn,
                min_size=config.MIN_POOL_SIZE,
                max_size=config.MAX_POOL_SIZE,
                timeout=config.CONNECT_TIMEOUT,
            )
            cls._initialized = True
            logger.info("Database connection pool initialized")

            # Run migrations on startup
            await cls._run_migrations()

        except Exception as e:
            logger.error("database_init_failed", error=str(e))
            if cls._pool:
                await cls._pool.close()
            cls._pool = None
            cls._initialized = False
            raise

    @classmethod
    async def close(cls):
        """Close the connection pool"""
        if cls._pool:
            await cls._pool.close()
            cls._pool = None
            cls._initialized = False
            logger.info("Database connection pool closed")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._initialized and cls._pool is not None

    @classmethod
    @asynccontextmanager
    async def acquire(cls):
        """Acquire a connection from the pool"""
        if not cls._pool:
            await cls.initialize()

        async with cls._pool.acquire() as conn:
            yield conn

    @classmethod
    async def execute(cls, query: str, *args) -> str:
        """Execute a query"""
        async with cls.acquire() as conn:
            return await conn.execute(query, *args)

    @classmethod
    async def fetch_one(cls, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch a single row"""
        async with cls.acquire() as conn:
            return await conn.fetchrow(query, *args)

    @classmethod
    async def fetch_all(cls, query: str, *args) -> List[asyncpg.Record]:
        """Fetch all rows"""
        async with cls.acquire() as conn:
            return await conn.fetch(query, *args)

    @classmethod
    async def fetch_value(cls, query: str, *args) -> Any:
        """Fetch the first column of the first row"""
        async with cls.acquire() as conn:
            return await conn.fetchval(query, *args)

    @classmethod
    async def _run_migrations(cls):
        """Run database migrations"""
        migrations = [
            """
            CREATE TABLE IF NOT EXISTS task_requests (
                id UUID PRIMARY KEY,
                name VARCHAR(100) NOT NULL,
                email VARCHAR(320) NOT NULL,
                company VARCHAR(200),
                task_category VARCHAR(50) NOT NULL DEFAULT 'general_support',
                task_subtype VARCHAR(100),
                description VARCHAR(2000) NOT NULL,
                deadline VARCHAR(200),
                budget VARCHAR(100),
                communication_method VARCHAR(20) NOT NULL DEFAULT 'email',
                additional_details VARCHAR(1000),
                task_type VARCHAR(20) NOT NULL DEFAULT 'other',
                priority VARCHAR(10) NOT NULL DEFAULT 'medium',
                status VARCHAR(20) NOT NULL DEFAULT 'pending',
                conversation_data JSONB NOT NULL DEFAULT '{}',
                ip_address VARCHAR(64),
                user_agent TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,

            # Create indexes
            "CREATE INDEX IF NOT EXISTS idx_tasks_created ON task_requests(created_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_tasks_status ON task_requests(status)",
            "CREATE INDEX IF NOT EXISTS idx_tasks_category ON task_requests(task_category)",
            "CREATE INDEX IF NOT EXISTS idx_tasks_email ON task_requests(email)",
        ]

        async with cls.acquire() as conn:
            for migration in migrations:
                try:
                    await conn.execute(migration)
                except Exception as e:
                    # Index might already exist, that's fine
                    if "already exists" not in str(e):
                        logger.warning("migration_warning", error=str(e))

        logger.info("Database migrations complete")


# =============================================================================
# ROW CONVERSION
# =============================================================================

def _row_to_dict(row: asyncpg.Record) -> Dict[str, Any]:
    result = dict(row)
    result["id"] = str(result["id"])
    if isinstance(result.get("conversation_data"), str):
        result["conversation_data"] = json.loads(result["conversation_data"])
    return result


def _filter_clause(status: Optional[str], categories: Optional[List[str]], task_type: Optional[str]) -> Tuple[str, List[Any]]:
    """WHERE clause for the listing filters; taskType matches legacy type or category."""
    conditions = []
    params: List[Any] = []

    if status:
        params.append(status)
        conditions.append(f"status = ${len(params)}")

    if task_type or categories:
        alternatives = []
        if task_type:
            params.append(task_type)
            alternatives.append(f"task_type = ${len(params)}")
        if categories:
            params.append(categories)
            alternatives.append(f"task_category = ANY(${len(params)})")
        conditions.append(f"({' OR '.join(alternatives)})")

    where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where_clause, params


# =============================================================================
# TASK REQUEST CRUD
# =============================================================================

async def insert_task(task: Dict[str, Any]) -> None:
    """Insert one task request row (all TASK_COLUMNS required)"""
    values = [task[column] for column in TASK_COLUMNS]
    values[TASK_COLUMNS.index("conversation_data")] = json.dumps(task.get("conversation_data") or {})
    placeholders = ", ".join(f"${i}" for i in range(1, len(TASK_COLUMNS) + 1))

    await Database.execute(
        f"INSERT INTO task_requests ({', '.join(TASK_COLUMNS)}) VALUES ({placeholders})",
        *values
    )

    logger.info("task_inserted", task_id=task["id"][:8], category=task["task_category"])


async def fetch_task(task_id: str) -> Optional[Dict[str, Any]]:
    """Get task request by ID"""
    row = await Database.fetch_one(
        "SELECT * FROM task_requests WHERE id = $1",
        task_id
    )

    if row:
        return _row_to_dict(row)

    return None


async def fetch_tasks(
    offset: int,
    limit: int,
    status: Optional[str] = None,
    task_type: Optional[str] = None,
    categories: Optional[List[str]] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    """One page of task requests, newest first, plus the filtered total"""
    where_clause, params = _filter_clause(status, categories, task_type)

    total = await Database.fetch_value(
        f"SELECT COUNT(*) FROM task_requests {where_clause}",
        *params
    )

    query = f"""
        SELECT * FROM task_requests
        {where_clause}
        ORDER BY created_at DESC
        LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
    """
    rows = await Database.fetch_all(query, *params, limit, offset)

    return [_row_to_dict(row) for row in rows], int(total or 0)


async def update_task_status(task_id: str, status: str) -> Optional[Dict[str, Any]]:
    """Set the status and return the updated row, or None if absent"""
    row = await Database.fetch_one(
        """
        UPDATE task_requests
        SET status = $1, updated_at = NOW()
        WHERE id = $2
        RETURNING *
        """,
        status,
        task_id
    )

    if row:
        logger.info("task_status_updated", task_id=task_id[:8], status=status)
        return _row_to_dict(row)

    return None


async def count_tasks_by_status() -> Dict[str, int]:
    """Get task counts by status"""
    rows = await Database.fetch_all(
        """
        SELECT status, COUNT(*) as count
        FROM task_requests
        GROUP BY status
        """
    )

    return {row["status"]: row["count"] for row in rows}


# =============================================================================
# INITIALIZATION
# =============================================================================

async def init_database(dsn: Optional[str] = None):
    """Initialize database on app startup"""
    await Database.initialize(dsn)


async def close_database():
    """Close database on app shutdown"""
    await Database.close()


if __name__ == "__main__":
    # Smoke test against DATABASE_URL
    async def test():
        await init_database()
        rows, total = await fetch_tasks(offset=0, limit=5)
        print(f"Task requests: {total}")
        for row in rows:
            print(f"  {row['id']} {row['status']} {row['task_category']}")
        print(f"By status: {await count_tasks_by_status()}")
        await close_database()

    asyncio.run(test())
