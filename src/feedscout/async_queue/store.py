"""SQLite persistence for agents, the durable search queue and feed items."""

import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..errors import StoreError
from ..search.models import SearchResult
from ..utils.logging import get_logger
from .job_models import JobStatus, SearchJob

logger = get_logger(__name__)


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@dataclass
class AgentRecord:
    """A user+topic search agent, the owner of queued work."""

    agent_id: str
    user_id: str
    topic_id: str
    name: str = ""
    master_prompt: Optional[str] = None
    topic_title: str = ""
    keywords: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    status: str = "active"

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AgentRecord":
        return cls(
            agent_id=row["agent_id"],
            user_id=row["user_id"],
            topic_id=row["topic_id"],
            name=row["name"],
            master_prompt=row["master_prompt"],
            topic_title=row["topic_title"],
            keywords=json.loads(row["keywords"] or "[]"),
            sources=json.loads(row["sources"] or "[]"),
            status=row["status"],
        )


class SearchStore:
    """
    SQLite-backed store for the search pipeline.

    Each queue state transition is a single-record statement, so no
    multi-statement transaction is needed for queue correctness. The claim
    is a conditional update, which keeps a record from being processed by
    two drainers at once.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(
            str(self.db_path), isolation_level="DEFERRED", check_same_thread=False
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode = WAL")
        self.conn.execute("PRAGMA synchronous = NORMAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS agents (
                agent_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                topic_id TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                master_prompt TEXT,
                topic_title TEXT NOT NULL DEFAULT '',
                keywords TEXT NOT NULL DEFAULT '[]',
                sources TEXT NOT NULL DEFAULT '[]',
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_agents_status ON agents(status);

            CREATE TABLE IF NOT EXISTS search_queue (
                id TEXT PRIMARY KEY,
                agent_id TEXT NOT NULL,
                topic_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                retry_count INTEGER NOT NULL DEFAULT 0,
                max_retries INTEGER NOT NULL DEFAULT 3,
                error_message TEXT,
                results_count INTEGER,
                started_at TEXT,
                completed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_queue_status ON search_queue(status, created_at);
            CREATE INDEX IF NOT EXISTS idx_queue_user ON search_queue(user_id, created_at);

            CREATE TABLE IF NOT EXISTS feed_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                topic_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                agent_id TEXT NOT NULL,
                title TEXT NOT NULL,
                url TEXT NOT NULL,
                source TEXT NOT NULL,
                summary TEXT,
                published_at TEXT,
                relevance_score REAL,
                created_at TEXT NOT NULL,
                UNIQUE(topic_id, url)
            );
            """
        )
        self.conn.commit()

    def _write(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            cur = self.conn.execute(sql, tuple(params))
            self.conn.commit()
            return cur
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(str(e)) from e

    def _read(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        try:
            return self.conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    # ------------------------------------------------------------------
    # Agents
    def upsert_agent(self, agent: AgentRecord) -> None:
        now = utcnow()
        self._write(
            """INSERT INTO agents
            (agent_id, user_id, topic_id, name, master_prompt, topic_title,
             keywords, sources, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(agent_id) DO UPDATE SET
                name = excluded.name,
                master_prompt = excluded.master_prompt,
                topic_title = excluded.topic_title,
                keywords = excluded.keywords,
                sources = excluded.sources,
                status = excluded.status,
                updated_at = excluded.updated_at""",
            (
                agent.agent_id,
                agent.user_id,
                agent.topic_id,
                agent.name,
                agent.master_prompt,
                agent.topic_title,
                json.dumps(agent.keywords),
                json.dumps(agent.sources),
                agent.status,
                now,
                now,
            ),
        )

    def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        rows = self._read("SELECT * FROM agents WHERE agent_id = ?", (agent_id,))
        return AgentRecord.from_row(rows[0]) if rows else None

    def list_active_agents(self, agent_ids: List[str]) -> List[AgentRecord]:
        if not agent_ids:
            return []
        placeholders = ",".join("?" for _ in agent_ids)
        rows = self._read(
            f"""SELECT * FROM agents
            WHERE status = 'active' AND agent_id IN ({placeholders})
            ORDER BY created_at, rowid""",
            agent_ids,
        )
        return [AgentRecord.from_row(r) for r in rows]

    def list_active_agent_ids(self) -> List[str]:
        rows = self._read(
            "SELECT agent_id FROM agents WHERE status = 'active' ORDER BY created_at, rowid"
        )
        return [r["agent_id"] for r in rows]

    # ------------------------------------------------------------------
    # Search queue
    def insert_jobs(self, agents: List[AgentRecord], max_retries: int = 3) -> List[str]:
        now = utcnow()
        rows = [
            (str(uuid.uuid4()), a.agent_id, a.topic_id, a.user_id, max_retries, now, now)
            for a in agents
        ]
        try:
            self.conn.executemany(
                """INSERT INTO search_queue
                (id, agent_id, topic_id, user_id, status, retry_count, max_retries,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, 'pending', 0, ?, ?, ?)""",
                rows,
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"Failed to enqueue agents: {e}") from e
        return [r[0] for r in rows]

    def get_job(self, job_id: str) -> Optional[SearchJob]:
        rows = self._read("SELECT * FROM search_queue WHERE id = ?", (job_id,))
        return SearchJob.from_row(rows[0]) if rows else None

    def get_oldest_pending(self) -> Optional[SearchJob]:
        rows = self._read(
            """SELECT * FROM search_queue WHERE status = 'pending'
            ORDER BY created_at ASC, rowid ASC LIMIT 1"""
        )
        return SearchJob.from_row(rows[0]) if rows else None

    def claim_job(self, job_id: str) -> Optional[SearchJob]:
        """Move a pending record to processing; ``None`` if it is no longer pending."""
        now = utcnow()
        cur = self._write(
            """UPDATE search_queue
            SET status = 'processing', started_at = ?, completed_at = NULL, updated_at = ?
            WHERE id = ? AND status = 'pending'""",
            (now, now, job_id),
        )
        if cur.rowcount != 1:
            return None
        return self.get_job(job_id)

    def complete_job(self, job_id: str, results_count: int) -> Optional[SearchJob]:
        now = utcnow()
        self._write(
            """UPDATE search_queue
            SET status = 'completed', completed_at = ?, results_count = ?, updated_at = ?
            WHERE id = ?""",
            (now, results_count, now, job_id),
        )
        return self.get_job(job_id)

    def fail_job(self, job_id: str, error_message: str) -> Optional[SearchJob]:
        """Record a failed attempt: back to pending while retries remain, else failed.

        Records already completed or failed are left as they are.
        """
        now = utcnow()
        self._write(
            """UPDATE search_queue
            SET retry_count = retry_count + 1,
                status = CASE WHEN retry_count + 1 < max_retries THEN 'pending' ELSE 'failed' END,
                completed_at = CASE WHEN retry_count + 1 < max_retries THEN NULL ELSE ? END,
                error_message = ?,
                updated_at = ?
            WHERE id = ? AND status IN ('pending', 'processing')""",
            (now, error_message, now, job_id),
        )
        return self.get_job(job_id)

    def count_by_status(self) -> Dict[str, int]:
        rows = self._read("SELECT status, COUNT(*) AS n FROM search_queue GROUP BY status")
        return {r["status"]: r["n"] for r in rows}

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        user_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[SearchJob]:
        clauses: List[str] = []
        params: List[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        rows = self._read(
            f"SELECT * FROM search_queue {where} ORDER BY created_at DESC, rowid DESC LIMIT ?",
            params,
        )
        return [SearchJob.from_row(r) for r in rows]

    def delete_completed_before(self, cutoff: datetime) -> int:
        cur = self._write(
            "DELETE FROM search_queue WHERE status = 'completed' AND completed_at < ?",
            (cutoff.astimezone(timezone.utc).isoformat(timespec="microseconds"),),
        )
        return cur.rowcount

    # ------------------------------------------------------------------
    # Feed items
    def save_feed_items(self, agent: AgentRecord, results: List[SearchResult]) -> int:
        now = utcnow()
        rows = [
            (
                agent.topic_id,
                agent.user_id,
                agent.agent_id,
                r.title,
                r.url,
                r.source,
                r.summary,
                r.published_at,
                r.relevance_score,
                now,
            )
            for r in results
        ]
        try:
            before = self.conn.total_changes
            self.conn.executemany(
                """INSERT OR IGNORE INTO feed_items
                (topic_id, user_id, agent_id, title, url, source, summary,
                 published_at, relevance_score, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"Failed to save feed items: {e}") from e
        inserted = self.conn.total_changes - before
        logger.info(f"Saved {inserted} feed items for agent {agent.agent_id}")
        return inserted

    def list_feed_items(self, topic_id: str) -> List[Dict[str, Any]]:
        rows = self._read(
            "SELECT * FROM feed_items WHERE topic_id = ? ORDER BY id", (topic_id,)
        )
        return [dict(r) for r in rows]

    def close(self) -> None:
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
