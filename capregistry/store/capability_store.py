"""
Capability Store - DAO layer for the capabilities table

Rows keep the uploaded document verbatim (``content``) next to a few
indexed scalars used for listing and statistics. Documents are replaced
whole on update; there is no field patching.

Design principles:
1. One connection per operation (``with sqlite3.connect(...)``)
2. Writes are INSERT OR REPLACE keyed on ``id``; ``created_at`` survives replacement
3. ISO 8601 timestamps (YYYY-MM-DDTHH:MM:SSZ)
4. sqlite errors surface as StoreError
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from capregistry.core.exceptions import StoreError
from capregistry.core.versioning import DEFAULT_PROTOCOL_VERSION
from capregistry.providers.embeddings import cosine_similarity

logger = logging.getLogger(__name__)

CAPABILITIES_TABLE = "capabilities"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {CAPABILITIES_TABLE} (
    id TEXT PRIMARY KEY,
    description TEXT NOT NULL DEFAULT '',
    version TEXT NOT NULL DEFAULT '{DEFAULT_PROTOCOL_VERSION}',
    type TEXT NOT NULL DEFAULT 'atomic',
    content TEXT NOT NULL,
    embedding TEXT NOT NULL DEFAULT '[]',
    format_version TEXT NOT NULL DEFAULT '{DEFAULT_PROTOCOL_VERSION}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_capabilities_type ON {CAPABILITIES_TABLE}(type);
CREATE INDEX IF NOT EXISTS idx_capabilities_version ON {CAPABILITIES_TABLE}(version);
"""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class StoredCapability:
    """One row of the capabilities table"""
    id: str
    description: str
    version: str
    type: str  # atomic, composite
    content: str  # original YAML/JSON text
    format_version: str
    embedding: List[float] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class SimilarCapability:
    """Search hit: indexed columns plus similarity score"""
    id: str
    description: str
    version: str
    type: str
    format_version: str
    similarity: float


def _decode_embedding(raw: Optional[str], capability_id: str) -> List[float]:
    if not raw:
        return []
    try:
        vector = json.loads(raw)
    except json.JSONDecodeError:
        logger.error(f"Error parsing embedding for capability {capability_id}")
        return []
    return vector if isinstance(vector, list) else []


class CapabilityStore:
    """Repository for the capabilities table"""

    def __init__(self, db_path: str | Path):
        """Initialize repository and create the table if needed

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialize database {self.db_path}: {e}") from e

    def store(
        self,
        capability_id: str,
        content: str,
        description: str = "",
        version: str = DEFAULT_PROTOCOL_VERSION,
        type_: str = "atomic",
        embedding: Optional[List[float]] = None,
        format_version: str = DEFAULT_PROTOCOL_VERSION,
    ) -> StoredCapability:
        """Insert or replace a capability

        Args:
            capability_id: Primary key
            content: Document text as uploaded (or converted)
            description: Indexed description
            version: Document revision
            type_: atomic or composite
            embedding: Description embedding, empty when unavailable
            format_version: Protocol version the content is expressed in

        Returns:
            The stored row

        Raises:
            StoreError: id is empty or the write failed
        """
        if not capability_id:
            raise StoreError("Missing required ID field for capability")

        now = utc_now_iso()
        embedding_json = json.dumps(list(embedding or []))

        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT created_at FROM {CAPABILITIES_TABLE} WHERE id = ?",
                    [capability_id],
                ).fetchone()
                created_at = row["created_at"] if row else now

                conn.execute(
                    f"""
                    INSERT OR REPLACE INTO {CAPABILITIES_TABLE} (
                        id, description, version, type, content,
                        embedding, format_version, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        capability_id,
                        description or "",
                        version or DEFAULT_PROTOCOL_VERSION,
                        type_ or "atomic",
                        content,
                        embedding_json,
                        format_version or DEFAULT_PROTOCOL_VERSION,
                        created_at,
                        now,
                    ],
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to store capability {capability_id}: {e}") from e

        logger.info(f"Stored capability {capability_id} with format version {format_version}")
        return self.get(capability_id)

    def get(self, capability_id: str) -> Optional[StoredCapability]:
        """Get capability row by ID

        Returns:
            StoredCapability or None if not found
        """
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT * FROM {CAPABILITIES_TABLE} WHERE id = ?",
                    [capability_id],
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to retrieve capability {capability_id}: {e}") from e

        if row:
            return self._row_to_capability(dict(row))
        return None

    def exists(self, capability_id: str) -> bool:
        return self.get(capability_id) is not None

    def list_all(self) -> List[StoredCapability]:
        """All rows, oldest first"""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT * FROM {CAPABILITIES_TABLE} ORDER BY created_at, id"
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list capabilities: {e}") from e

        return [self._row_to_capability(dict(row)) for row in rows]

    def find_similar(self, query_embedding: List[float], limit: int = 5) -> List[SimilarCapability]:
        """Rank every capability by cosine similarity to ``query_embedding``

        Rows without an embedding, or with one of a different dimension,
        score 0.0 rather than being dropped.
        """
        scored: List[Tuple[float, StoredCapability]] = []
        for capability in self.list_all():
            similarity = 0.0
            if capability.embedding:
                try:
                    similarity = cosine_similarity(query_embedding, capability.embedding)
                except ValueError as e:
                    logger.warning(f"Cannot score capability {capability.id}: {e}")
            scored.append((similarity, capability))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            SimilarCapability(
                id=capability.id,
                description=capability.description,
                version=capability.version,
                type=capability.type,
                format_version=capability.format_version,
                similarity=similarity,
            )
            for similarity, capability in scored[:limit]
        ]

    def delete(self, capability_id: str) -> bool:
        """Delete a capability

        Returns:
            True if a row was deleted, False if the id was unknown
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"DELETE FROM {CAPABILITIES_TABLE} WHERE id = ?",
                    [capability_id],
                )
                conn.commit()
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete capability {capability_id}: {e}") from e

        if deleted:
            logger.info(f"Deleted capability {capability_id}")
        else:
            logger.warning(f"No capability found with ID: {capability_id}")
        return deleted

    def distinct_format_versions(self) -> List[str]:
        """Format versions present in the table; the default when empty"""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"""
                    SELECT DISTINCT format_version
                    FROM {CAPABILITIES_TABLE}
                    WHERE format_version IS NOT NULL
                    ORDER BY format_version
                    """
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read format versions: {e}") from e

        versions = [row["format_version"] for row in rows]
        return versions or [DEFAULT_PROTOCOL_VERSION]

    def count(self) -> int:
        try:
            with self._connect() as conn:
                row = conn.execute(f"SELECT COUNT(*) AS total FROM {CAPABILITIES_TABLE}").fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to count capabilities: {e}") from e
        return row["total"]

    def check_health(self) -> Dict[str, Any]:
        """Connection and table check; never raises"""
        try:
            with self._connect() as conn:
                conn.execute("SELECT 1 AS health_check").fetchone()
                table = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                    [CAPABILITIES_TABLE],
                ).fetchone()
                if not table:
                    return {
                        "status": "warning",
                        "details": "Database connected but capabilities table not found",
                    }
                total = conn.execute(
                    f"SELECT COUNT(*) AS total FROM {CAPABILITIES_TABLE}"
                ).fetchone()["total"]
        except sqlite3.Error as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "error", "details": str(e)}

        return {
            "status": "ok",
            "details": {
                "connection": "active",
                "capabilities_count": total,
                "last_checked": utc_now_iso(),
            },
        }

    def _row_to_capability(self, row: dict) -> StoredCapability:
        """Convert database row to StoredCapability"""
        return StoredCapability(
            id=row["id"],
            description=row.get("description") or "",
            version=row.get("version") or DEFAULT_PROTOCOL_VERSION,
            type=row.get("type") or "atomic",
            content=row["content"],
            format_version=row.get("format_version") or DEFAULT_PROTOCOL_VERSION,
            embedding=_decode_embedding(row.get("embedding"), row["id"]),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
