"""Document store schema management (code-first approach)."""

import logging

from orgflow.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "users",
    "tasks",
    "ratings",
    "user_skills",
    "activity_logs",
]

# JSON fields that are queried often enough to deserve an expression index
INDEXED_FIELDS: dict[str, list[str]] = {
    "users": ["role", "email"],
    "tasks": ["creator_id", "status"],
    "ratings": ["rated_id", "rater_id"],
    "user_skills": ["user_id", "validated_by"],
    "activity_logs": ["task_id", "user_id"],
}


def _table_ddl(collection: str) -> list[str]:
    """Build the CREATE statements for a collection table and its indexes."""
    statements = [
        f"CREATE TABLE IF NOT EXISTS {collection} ("
        "id TEXT PRIMARY KEY, "
        "data TEXT NOT NULL, "
        "version INTEGER NOT NULL DEFAULT 1, "
        "created TEXT NOT NULL, "
        "updated TEXT NOT NULL)"
    ]
    statements.extend(
        f"CREATE INDEX IF NOT EXISTS idx_{collection}_{field} ON {collection} (json_extract(data, '$.{field}'))"
        for field in INDEXED_FIELDS.get(collection, [])
    )
    return statements


async def init_db(*, db_path: str | None = None) -> None:
    """Create every collection table and index if missing."""
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        for statement in _table_ddl(collection):
            await conn.execute(statement)

    await conn.commit()
    logger.info("Document store schema initialized", extra={"collections": COLLECTIONS})
