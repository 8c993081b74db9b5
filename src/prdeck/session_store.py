from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
import json
import logging
import sqlite3
import threading
from typing import cast

from prdeck.models import PR_FILTER_ORDER, PrFilter, Repo, SessionSnapshot
from prdeck.observability import log_event


LOGGER = logging.getLogger("prdeck.session_store")
SESSION_DB_NAME = "session.db"


class SessionStoreError(RuntimeError):
    """Persisted session data could not be decoded."""


class SessionStore:
    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._lock = threading.Lock()
        self._init_schema()

    @classmethod
    def in_state_dir(cls, state_dir: Path) -> SessionStore:
        return cls(state_dir / SESSION_DB_NAME)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS repositories (
                    position INTEGER NOT NULL,
                    org TEXT NOT NULL,
                    repo TEXT NOT NULL,
                    branch TEXT NOT NULL,
                    PRIMARY KEY (org, repo)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ui_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def load(self) -> SessionSnapshot:
        with self._lock, self._connect() as conn:
            repos = _read_repositories(conn)
            rows = conn.execute("SELECT key, value FROM ui_state").fetchall()
        values: dict[str, object] = {}
        for key, raw in rows:
            try:
                values[str(key)] = json.loads(raw)
            except ValueError as exc:
                raise SessionStoreError(f"ui_state.{key} is not valid JSON") from exc

        snapshot = SessionSnapshot(
            repos=repos,
            selected_repo=_as_int(values.get("selected_repo"), default=0),
            pr_filter=_as_filter(values.get("pr_filter")),
            pr_cursors=_as_cursors(values.get("pr_cursors")),
            selected_prs=_as_selections(values.get("selected_prs")),
            show_timestamps=values.get("show_timestamps") is True,
        )
        log_event(LOGGER, "session_loaded", repo_count=len(repos))
        return snapshot

    def save(self, snapshot: SessionSnapshot) -> None:
        values: dict[str, object] = {
            "selected_repo": snapshot.selected_repo,
            "pr_filter": snapshot.pr_filter,
            "pr_cursors": {name: cursor for name, cursor in snapshot.pr_cursors},
            "selected_prs": {name: list(numbers) for name, numbers in snapshot.selected_prs},
            "show_timestamps": snapshot.show_timestamps,
        }
        with self._lock, self._connect() as conn:
            conn.execute("DELETE FROM repositories")
            conn.executemany(
                "INSERT INTO repositories(position, org, repo, branch) VALUES(?, ?, ?, ?)",
                [
                    (position, repo.org, repo.repo, repo.branch)
                    for position, repo in enumerate(_unique(snapshot.repos))
                ],
            )
            conn.executemany(
                """
                INSERT INTO ui_state(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                [(key, json.dumps(value, sort_keys=True)) for key, value in values.items()],
            )
        log_event(LOGGER, "session_saved", repo_count=len(snapshot.repos))

    def list_repositories(self) -> tuple[Repo, ...]:
        with self._lock, self._connect() as conn:
            return _read_repositories(conn)

    def add_repository(self, repo: Repo) -> bool:
        with self._lock, self._connect() as conn:
            existing = conn.execute(
                "SELECT 1 FROM repositories WHERE org = ? AND repo = ?",
                (repo.org, repo.repo),
            ).fetchone()
            if existing is not None:
                return False
            row = conn.execute("SELECT COALESCE(MAX(position) + 1, 0) FROM repositories").fetchone()
            conn.execute(
                "INSERT INTO repositories(position, org, repo, branch) VALUES(?, ?, ?, ?)",
                (int(row[0]), repo.org, repo.repo, repo.branch),
            )
        log_event(LOGGER, "repository_added", repo_full_name=repo.full_name, branch=repo.branch)
        return True

    def remove_repository(self, org: str, repo: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM repositories WHERE org = ? AND repo = ?",
                (org, repo),
            )
            removed = cursor.rowcount > 0
        if removed:
            log_event(LOGGER, "repository_removed", repo_full_name=f"{org}/{repo}")
        return removed


def _read_repositories(conn: sqlite3.Connection) -> tuple[Repo, ...]:
    rows = conn.execute(
        "SELECT org, repo, branch FROM repositories ORDER BY position ASC"
    ).fetchall()
    return tuple(
        Repo(org=str(org), repo=str(repo), branch=str(branch)) for org, repo, branch in rows
    )


def _unique(repos: tuple[Repo, ...]) -> list[Repo]:
    seen: set[tuple[str, str]] = set()
    out: list[Repo] = []
    for repo in repos:
        identity = (repo.org, repo.repo)
        if identity in seen:
            continue
        seen.add(identity)
        out.append(repo)
    return out


def _as_int(value: object, *, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def _as_filter(value: object) -> PrFilter:
    if isinstance(value, str) and value in PR_FILTER_ORDER:
        return cast(PrFilter, value)
    return "all"


def _as_cursors(value: object) -> tuple[tuple[str, int], ...]:
    if not isinstance(value, dict):
        return ()
    return tuple(
        (str(name), cursor)
        for name, cursor in sorted(value.items())
        if isinstance(cursor, int) and not isinstance(cursor, bool) and cursor >= 0
    )


def _as_selections(value: object) -> tuple[tuple[str, tuple[int, ...]], ...]:
    if not isinstance(value, dict):
        return ()
    out: list[tuple[str, tuple[int, ...]]] = []
    for name, numbers in sorted(value.items()):
        if not isinstance(numbers, list):
            continue
        cleaned = tuple(
            sorted(n for n in numbers if isinstance(n, int) and not isinstance(n, bool))
        )
        if cleaned:
            out.append((str(name), cleaned))
    return tuple(out)
