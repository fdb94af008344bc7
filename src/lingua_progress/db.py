"""Database connection, DDL, and low-level helpers for lingua-progress."""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3
from pathlib import Path

from lingua_progress.exceptions import DatabaseError
from lingua_progress.normalizer import normalize

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"

LIST_COLORS = (
    "#ef4444", "#f97316", "#eab308", "#22c55e", "#10b981",
    "#14b8a6", "#06b6d4", "#0ea5e9", "#3b82f6", "#6366f1",
    "#8b5cf6", "#a855f7", "#d946ef", "#ec4899", "#f43f5e",
)

DEFAULT_SETTINGS = (
    ("target_language", "en"),
    ("theme", "dark"),
)

# ---------------------------------------------------------------------------
# DDL statements
# ---------------------------------------------------------------------------

_DDL = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT NOT NULL,
    value TEXT,
    UNIQUE (key)
);

CREATE TABLE IF NOT EXISTS word_lists (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    color TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS word_list_name_index ON word_lists (name);

CREATE TABLE IF NOT EXISTS words (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word TEXT NOT NULL,
    translation TEXT NOT NULL,
    source_language TEXT NOT NULL,
    target_language TEXT NOT NULL,
    sentence_context TEXT,
    pdf_name TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    mastery_level INTEGER DEFAULT 0
);
CREATE INDEX IF NOT EXISTS word_identity_index ON words (word, translation);

CREATE TABLE IF NOT EXISTS word_list_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word_list_id INTEGER NOT NULL REFERENCES word_lists (id) ON DELETE CASCADE,
    word_id INTEGER NOT NULL REFERENCES words (id) ON DELETE CASCADE,
    added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (word_list_id, word_id)
);
CREATE INDEX IF NOT EXISTS word_list_item_word_index ON word_list_items (word_id);

CREATE TABLE IF NOT EXISTS quiz_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word_list_id INTEGER NOT NULL REFERENCES word_lists (id) ON DELETE CASCADE,
    score INTEGER NOT NULL,
    total_questions INTEGER NOT NULL,
    quiz_type TEXT NOT NULL,
    completed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS user_settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS word_familiarity (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word_lower TEXT NOT NULL UNIQUE,
    familiarity_level INTEGER DEFAULT 1,
    translation TEXT,
    easiness_factor REAL DEFAULT 2.5,
    interval INTEGER DEFAULT 0,
    repetitions INTEGER DEFAULT 0,
    next_review_date TEXT,
    last_review_date TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

# Columns added after the first release; legacy stores are migrated in place.
_FAMILIARITY_MIGRATIONS = (
    ("easiness_factor", "REAL DEFAULT 2.5"),
    ("interval", "INTEGER DEFAULT 0"),
    ("repetitions", "INTEGER DEFAULT 0"),
    ("next_review_date", "TEXT"),
    ("last_review_date", "TEXT"),
)


def connect(db_path: str | Path = ":memory:") -> sqlite3.Connection:
    """Open a database connection with store PRAGMA settings.

    The connection may be used from the sync server thread; callers
    serialize access themselves.
    """
    db_path_str = str(db_path)
    if db_path_str != ":memory:":
        Path(db_path_str).expanduser().parent.mkdir(parents=True, exist_ok=True)
        db_path_str = str(Path(db_path_str).expanduser())
    try:
        conn = sqlite3.connect(db_path_str, check_same_thread=False)
    except sqlite3.Error as e:
        raise DatabaseError(f"Cannot open database {db_path_str!r}: {e}") from e
    conn.create_function("normalize", 1, normalize, deterministic=True)
    conn.execute("PRAGMA foreign_keys = ON")
    if db_path_str != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection, today: dt.date | None = None) -> None:
    """Create tables, migrate legacy columns, and repair invariants."""
    conn.executescript(_DDL)
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
        (SCHEMA_VERSION,),
    )
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) "
        "VALUES ('created_at', strftime('%Y-%m-%dT%H:%M:%f', 'now'))",
    )
    _migrate_columns(conn)
    for key, value in DEFAULT_SETTINGS:
        conn.execute(
            "INSERT OR IGNORE INTO user_settings (key, value) VALUES (?, ?)",
            (key, value),
        )
    repaired = repair_missing_review_dates(conn, today or dt.date.today())
    if repaired:
        logger.info("Set next_review_date to today for %d records", repaired)
    removed = delete_orphaned_familiarity(conn)
    if removed:
        logger.info("Removed %d orphaned familiarity records", removed)
    conn.commit()


def check_schema_version(conn: sqlite3.Connection) -> None:
    """Verify the database schema version is compatible."""
    try:
        row = conn.execute(
            "SELECT value FROM meta WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        # meta table doesn't exist - uninitialized or legacy DB
        return
    if row is None:
        return
    version = row[0]
    if version != SCHEMA_VERSION:
        raise DatabaseError(
            f"Incompatible schema version: {version} "
            f"(expected {SCHEMA_VERSION})"
        )


def _column_names(conn: sqlite3.Connection, table: str) -> set[str]:
    return {r["name"] for r in conn.execute(f"PRAGMA table_info({table})")}


def _migrate_columns(conn: sqlite3.Connection) -> None:
    columns = _column_names(conn, "word_familiarity")
    for name, decl in _FAMILIARITY_MIGRATIONS:
        if name not in columns:
            conn.execute(f"ALTER TABLE word_familiarity ADD COLUMN {name} {decl}")

    if "color" not in _column_names(conn, "word_lists"):
        conn.execute("ALTER TABLE word_lists ADD COLUMN color TEXT")
        rows = conn.execute("SELECT id FROM word_lists ORDER BY id").fetchall()
        for index, row in enumerate(rows):
            conn.execute(
                "UPDATE word_lists SET color = ? WHERE id = ?",
                (LIST_COLORS[index % len(LIST_COLORS)], row["id"]),
            )
        logger.info("Assigned colors to %d existing lists", len(rows))


# ---------------------------------------------------------------------------
# Invariant helpers
# ---------------------------------------------------------------------------

def palette_color(conn: sqlite3.Connection) -> str:
    """Next palette color, cycling by the number of existing lists."""
    count = conn.execute("SELECT COUNT(*) FROM word_lists").fetchone()[0]
    return LIST_COLORS[count % len(LIST_COLORS)]


def repair_missing_review_dates(conn: sqlite3.Connection, today: dt.date) -> int:
    """Set null next_review_date values to *today* so they show as due."""
    cur = conn.execute(
        "UPDATE word_familiarity SET next_review_date = ? "
        "WHERE next_review_date IS NULL OR next_review_date = ''",
        (today.isoformat(),),
    )
    return cur.rowcount


def listed_keys(conn: sqlite3.Connection) -> set[str]:
    """Normalized keys of every word that belongs to at least one list."""
    rows = conn.execute(
        "SELECT DISTINCT normalize(w.word) AS word_lower FROM words w "
        "JOIN word_list_items wli ON w.id = wli.word_id"
    ).fetchall()
    return {r["word_lower"] for r in rows}


def delete_orphaned_familiarity(conn: sqlite3.Connection) -> int:
    """Delete familiarity records whose key no longer has a listed word."""
    cur = conn.execute(
        "DELETE FROM word_familiarity WHERE word_lower NOT IN ("
        "SELECT normalize(w.word) FROM words w "
        "JOIN word_list_items wli ON w.id = wli.word_id)"
    )
    return cur.rowcount


def delete_unlisted_words(conn: sqlite3.Connection) -> int:
    """Delete words that no longer belong to any list."""
    cur = conn.execute(
        "DELETE FROM words WHERE id NOT IN "
        "(SELECT DISTINCT word_id FROM word_list_items)"
    )
    return cur.rowcount


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------

def get_word_list_row(conn: sqlite3.Connection, list_id: int) -> sqlite3.Row | None:
    """Get a full word list row by ID."""
    return conn.execute(
        "SELECT * FROM word_lists WHERE id = ?", (list_id,)
    ).fetchone()


def find_word_list_id(conn: sqlite3.Connection, name: str) -> int | None:
    """ID of the oldest list called *name*, or None."""
    row = conn.execute(
        "SELECT id FROM word_lists WHERE name = ? ORDER BY id LIMIT 1",
        (name,),
    ).fetchone()
    return row[0] if row else None


def get_word_row(conn: sqlite3.Connection, word_id: int) -> sqlite3.Row | None:
    """Get a full word row by ID."""
    return conn.execute("SELECT * FROM words WHERE id = ?", (word_id,)).fetchone()


def find_word_id(
    conn: sqlite3.Connection, text: str, translation: str
) -> int | None:
    """ID of the word with exactly this text and translation, or None."""
    row = conn.execute(
        "SELECT id FROM words WHERE word = ? AND translation = ? "
        "ORDER BY id LIMIT 1",
        (text, translation),
    ).fetchone()
    return row[0] if row else None


def get_familiarity_row(conn: sqlite3.Connection, key: str) -> sqlite3.Row | None:
    """Get a familiarity row by normalized key."""
    return conn.execute(
        "SELECT * FROM word_familiarity WHERE word_lower = ?", (key,)
    ).fetchone()


def familiarity_exists(conn: sqlite3.Connection, key: str) -> bool:
    return conn.execute(
        "SELECT 1 FROM word_familiarity WHERE word_lower = ?", (key,)
    ).fetchone() is not None


def insert_membership(conn: sqlite3.Connection, list_id: int, word_id: int) -> bool:
    """Add *word_id* to *list_id*; False if the pair already exists."""
    cur = conn.execute(
        "INSERT OR IGNORE INTO word_list_items (word_list_id, word_id) "
        "VALUES (?, ?)",
        (list_id, word_id),
    )
    return cur.rowcount == 1
