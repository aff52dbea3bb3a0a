"""SQLite-backed storage for lesson projects."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from tubelingo.logging import logger
from tubelingo.models import GrammarItem, PracticeSentence, Project, ProjectStatus, VocabularyItem

DEFAULT_OWNER = "local"

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL DEFAULT 'local',
    youtube_url TEXT NOT NULL,
    title TEXT NOT NULL,
    script TEXT DEFAULT '',
    vocabulary TEXT DEFAULT '[]',
    grammar TEXT DEFAULT '[]',
    practice_sentences TEXT DEFAULT '[]',
    detected_language TEXT DEFAULT 'Unknown',
    vocabulary_count INTEGER DEFAULT 0,
    grammar_count INTEGER DEFAULT 0,
    is_favorite INTEGER DEFAULT 0,
    status TEXT DEFAULT 'completed',
    job_id TEXT,
    error_message TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_accessed TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_projects_owner_url ON projects(owner, youtube_url);
CREATE INDEX IF NOT EXISTS idx_projects_job ON projects(job_id);
"""


class ProjectNotFoundError(LookupError):
    """Raised when a project id does not exist."""

    def __init__(self, project_id: int | str) -> None:
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


def _now() -> str:
    """Get current timestamp as ISO string."""
    return datetime.now().isoformat()


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        title=row["title"],
        source_url=row["youtube_url"],
        script=row["script"] or "",
        vocabulary=[VocabularyItem.from_dict(v) for v in json.loads(row["vocabulary"] or "[]")],
        grammar=[GrammarItem.from_dict(g) for g in json.loads(row["grammar"] or "[]")],
        practice_sentences=[PracticeSentence.from_dict(s) for s in json.loads(row["practice_sentences"] or "[]")],
        detected_language=row["detected_language"] or "Unknown",
        is_favorite=bool(row["is_favorite"]),
        status=ProjectStatus(row["status"] or "completed"),
        job_id=row["job_id"],
        error_message=row["error_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        last_accessed=row["last_accessed"],
    )


def _project_columns(project: Project) -> dict[str, Any]:
    return {
        "youtube_url": project.source_url,
        "title": project.title,
        "script": project.script,
        "vocabulary": json.dumps([v.to_dict() for v in project.vocabulary], ensure_ascii=False),
        "grammar": json.dumps([g.to_dict() for g in project.grammar], ensure_ascii=False),
        "practice_sentences": json.dumps([s.to_dict() for s in project.practice_sentences], ensure_ascii=False),
        "detected_language": project.detected_language,
        "vocabulary_count": project.vocabulary_count,
        "grammar_count": project.grammar_count,
        "is_favorite": int(project.is_favorite),
        "status": project.status.value,
        "job_id": project.job_id,
        "error_message": project.error_message,
    }


class ProjectStore:
    """Projects table in a local SQLite database.

    Args:
        path: Database file; parent directories are created
        owner: Owner recorded on every row (one local user by default)
    """

    def __init__(self, path: Path, owner: str = DEFAULT_OWNER) -> None:
        self.path = Path(path)
        self.owner = owner

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get database connection with auto-commit."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_db(self) -> None:
        """Initialize database schema."""
        with self.get_connection() as conn:
            conn.executescript(SCHEMA)
        logger.debug("Project database initialized at {}", self.path)

    def save(self, project: Project) -> Project:
        """Insert or update a project, matched by source URL.

        Saving the same video twice updates the existing row (keeping its
        favorite flag and creation time) instead of creating a duplicate.

        Returns:
            The stored project with id and timestamps filled in
        """
        now = _now()
        columns = _project_columns(project)
        with self.get_connection() as conn:
            existing = conn.execute(
                "SELECT id, is_favorite FROM projects WHERE owner = ? AND youtube_url = ?",
                (self.owner, project.source_url),
            ).fetchone()

            if existing:
                columns["is_favorite"] = int(project.is_favorite or bool(existing["is_favorite"]))
                assignments = ", ".join(f"{name} = ?" for name in columns)
                conn.execute(
                    f"UPDATE projects SET {assignments}, updated_at = ?, last_accessed = ? WHERE id = ?",  # noqa: S608
                    (*columns.values(), now, now, existing["id"]),
                )
                project_id = existing["id"]
                logger.debug("Updated project {} ({})", project_id, project.title)
            else:
                names = ", ".join(columns)
                placeholders = ", ".join("?" for _ in columns)
                cursor = conn.execute(
                    f"INSERT INTO projects (owner, {names}, created_at, updated_at, last_accessed) "  # noqa: S608
                    f"VALUES (?, {placeholders}, ?, ?, ?)",
                    (self.owner, *columns.values(), now, now, now),
                )
                project_id = cursor.lastrowid
                logger.debug("Created project {} ({})", project_id, project.title)

        return self.get(project_id)

    def _fetch_one(self, where: str, params: tuple[Any, ...]) -> Project | None:
        with self.get_connection() as conn:
            row = conn.execute(
                f"SELECT * FROM projects WHERE owner = ? AND {where}",  # noqa: S608
                (self.owner, *params),
            ).fetchone()
        return _row_to_project(row) if row else None

    def get(self, project_id: int) -> Project:
        """Get a project by id.

        Raises:
            ProjectNotFoundError: If no such project exists
        """
        project = self._fetch_one("id = ?", (project_id,))
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def get_by_url(self, source_url: str) -> Project | None:
        return self._fetch_one("youtube_url = ?", (source_url,))

    def get_by_job_id(self, job_id: str) -> Project | None:
        return self._fetch_one("job_id = ?", (job_id,))

    def list(self, favorites_only: bool = False, status: ProjectStatus | None = None) -> list[Project]:
        """List projects, newest first."""
        query = "SELECT * FROM projects WHERE owner = ?"
        params: list[Any] = [self.owner]
        if favorites_only:
            query += " AND is_favorite = 1"
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC, id DESC"
        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_project(row) for row in rows]

    def _update(self, project_id: int, **values: Any) -> None:
        assignments = ", ".join(f"{name} = ?" for name in values)
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE projects SET {assignments} WHERE owner = ? AND id = ?",  # noqa: S608
                (*values.values(), self.owner, project_id),
            )
            if cursor.rowcount == 0:
                raise ProjectNotFoundError(project_id)

    def toggle_favorite(self, project_id: int) -> bool:
        """Flip the favorite flag. Returns the new value."""
        project = self.get(project_id)
        new_value = not project.is_favorite
        self._update(project_id, is_favorite=int(new_value), updated_at=_now())
        logger.debug("Project {} favorite: {}", project_id, new_value)
        return new_value

    def touch(self, project_id: int) -> None:
        """Record that a project was opened."""
        self._update(project_id, last_accessed=_now())

    def update_language(self, project_id: int, language: str) -> None:
        self._update(project_id, detected_language=language, updated_at=_now())

    def delete(self, project_id: int) -> None:
        """Delete a project.

        Raises:
            ProjectNotFoundError: If no such project exists
        """
        with self.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM projects WHERE owner = ? AND id = ?", (self.owner, project_id)
            )
            if cursor.rowcount == 0:
                raise ProjectNotFoundError(project_id)
        logger.info("Deleted project {}", project_id)

    def stats(self) -> dict[str, int]:
        """Count projects by status plus favorites."""
        stats = {"total": 0, "favorites": 0, **{s.value: 0 for s in ProjectStatus}}
        with self.get_connection() as conn:
            for row in conn.execute(
                "SELECT status, COUNT(*) AS n FROM projects WHERE owner = ? GROUP BY status", (self.owner,)
            ):
                stats[row["status"]] = row["n"]
                stats["total"] += row["n"]
            stats["favorites"] = conn.execute(
                "SELECT COUNT(*) FROM projects WHERE owner = ? AND is_favorite = 1", (self.owner,)
            ).fetchone()[0]
        return stats
