"""VocabularyStore: the persistent collection of lists, words and progress."""

from __future__ import annotations

import datetime as dt
import functools
import logging
import sqlite3
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from lingua_progress import db as _db
from lingua_progress.exceptions import (
    EntityNotFoundError,
    StoreTransactionFailure,
    ValidationError,
)
from lingua_progress.models import (
    FamiliarityLevel,
    FamiliarityRecord,
    ListMembership,
    QuizResultModel,
    ReviewQuality,
    ReviewSchedule,
    SrsState,
    WordListModel,
    WordModel,
)
from lingua_progress.normalizer import normalize
from lingua_progress.scheduler import (
    DEFAULT_CURVE,
    ReviewCurve,
    apply_review,
    initialize_from_level,
)

logger = logging.getLogger(__name__)

_F = TypeVar("_F", bound=Callable[..., Any])

# Sentinel for "no change" in update methods
_UNSET: Any = type("_UNSET", (), {"__repr__": lambda self: "..."})()

UPCOMING_WINDOW_DAYS = 14


def _modifies_db(method: _F) -> _F:
    """Decorator: wraps mutation methods in a transaction (unless in batch)."""

    @functools.wraps(method)
    def wrapper(self: VocabularyStore, *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            if self._in_batch:
                return method(self, *args, **kwargs)
            with self.batch():
                return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _locked(method: _F) -> _F:
    """Decorator: serializes read access to the shared connection."""

    @functools.wraps(method)
    def wrapper(self: VocabularyStore, *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def parse_date(value: Any) -> dt.date | None:
    """Date part of an ISO date or timestamp string; None if unparseable."""
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value).strip()
    if len(text) < 10:
        return None
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        return None


class VocabularyStore:
    """Lists, words, memberships, familiarity records and settings."""

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        curve: ReviewCurve = DEFAULT_CURVE,
    ) -> None:
        self._db_path = str(db_path)
        self._conn = _db.connect(db_path)
        _db.check_schema_version(self._conn)
        _db.init_db(self._conn)
        self._lock = threading.RLock()
        self._in_batch = False
        self._batch_depth = 0
        self.curve = curve

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> VocabularyStore:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Group multiple mutations into a single all-or-nothing transaction."""
        with self._lock:
            self._batch_depth += 1
            if self._batch_depth == 1:
                self._in_batch = True
                if not self._conn.in_transaction:
                    self._conn.execute("BEGIN")
            try:
                yield
            except sqlite3.Error as e:
                self._end_batch(commit=False)
                raise StoreTransactionFailure(
                    f"Transaction rolled back: {e}"
                ) from e
            except BaseException:
                self._end_batch(commit=False)
                raise
            else:
                self._end_batch(commit=True)

    def _end_batch(self, *, commit: bool) -> None:
        self._batch_depth -= 1
        if self._batch_depth > 0:
            return
        self._in_batch = False
        if not commit:
            self._conn.rollback()
            return
        try:
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StoreTransactionFailure(f"Commit failed: {e}") from e

    # ------------------------------------------------------------------
    # Word lists
    # ------------------------------------------------------------------

    @_modifies_db
    def create_word_list(
        self,
        name: str,
        description: str = "",
        color: str | None = None,
        *,
        created_at: str | None = None,
    ) -> WordListModel:
        if not name or not name.strip():
            raise ValidationError("Word list name must not be empty")
        color = color or _db.palette_color(self._conn)
        if created_at:
            cur = self._conn.execute(
                "INSERT INTO word_lists (name, description, color, created_at) "
                "VALUES (?, ?, ?, ?)",
                (name, description, color, created_at),
            )
        else:
            cur = self._conn.execute(
                "INSERT INTO word_lists (name, description, color) VALUES (?, ?, ?)",
                (name, description, color),
            )
        return self.get_word_list(cur.lastrowid)

    @_locked
    def get_word_list(self, list_id: int) -> WordListModel:
        row = _db.get_word_list_row(self._conn, list_id)
        if row is None:
            raise EntityNotFoundError(f"Word list not found: {list_id!r}")
        return self._row_to_word_list(row)

    @_locked
    def find_word_list(self, name: str) -> WordListModel | None:
        """The oldest list called *name*, if any."""
        list_id = _db.find_word_list_id(self._conn, name)
        return None if list_id is None else self.get_word_list(list_id)

    @_locked
    def list_word_lists(self) -> list[WordListModel]:
        rows = self._conn.execute(
            "SELECT * FROM word_lists ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [self._row_to_word_list(r) for r in rows]

    @_modifies_db
    def update_word_list(
        self,
        list_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        color: Any = _UNSET,
    ) -> WordListModel:
        if _db.get_word_list_row(self._conn, list_id) is None:
            raise EntityNotFoundError(f"Word list not found: {list_id!r}")
        updates: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Word list name must not be empty")
            updates["name"] = name
        if description is not None:
            updates["description"] = description
        if color is not _UNSET:
            updates["color"] = color
        for field, val in updates.items():
            self._conn.execute(
                f"UPDATE word_lists SET {field} = ? WHERE id = ?",
                (val, list_id),
            )
        return self.get_word_list(list_id)

    @_modifies_db
    def delete_word_list(self, list_id: int) -> None:
        """Delete a list, words only it owned, and their orphaned progress."""
        if _db.get_word_list_row(self._conn, list_id) is None:
            raise EntityNotFoundError(f"Word list not found: {list_id!r}")
        word_ids = [
            r["word_id"]
            for r in self._conn.execute(
                "SELECT word_id FROM word_list_items WHERE word_list_id = ?",
                (list_id,),
            ).fetchall()
        ]
        self._conn.execute(
            "DELETE FROM word_list_items WHERE word_list_id = ?", (list_id,)
        )
        self._conn.execute("DELETE FROM word_lists WHERE id = ?", (list_id,))
        removed_words = 0
        for word_id in word_ids:
            removed_words += self._delete_word_if_unlisted(word_id)
        removed = _db.delete_orphaned_familiarity(self._conn)
        logger.debug(
            "Deleted list %s (%d words, %d familiarity records)",
            list_id, removed_words, removed,
        )

    def _row_to_word_list(self, row: sqlite3.Row) -> WordListModel:
        return WordListModel(
            id=row["id"],
            name=row["name"],
            description=row["description"] or "",
            color=row["color"],
            created_at=str(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Words
    # ------------------------------------------------------------------

    @_modifies_db
    def add_word(
        self,
        text: str,
        translation: str,
        source_language: str = "auto",
        target_language: str = "en",
        sentence_context: str | None = "",
        pdf_name: str | None = "",
        *,
        mastery_level: int = 0,
        created_at: str | None = None,
    ) -> WordModel:
        if not text or not text.strip():
            raise ValidationError("Word text must not be empty")
        if translation is None:
            raise ValidationError(f"Word {text!r} has no translation")
        cur = self._conn.execute(
            "INSERT INTO words (word, translation, source_language, "
            "target_language, sentence_context, pdf_name, mastery_level, "
            "created_at) VALUES (?, ?, ?, ?, ?, ?, ?, "
            "COALESCE(?, CURRENT_TIMESTAMP))",
            (text, translation, source_language or "auto",
             target_language or "en", sentence_context, pdf_name,
             int(mastery_level or 0), created_at),
        )
        return self.get_word(cur.lastrowid)

    @_locked
    def get_word(self, word_id: int) -> WordModel:
        row = _db.get_word_row(self._conn, word_id)
        if row is None:
            raise EntityNotFoundError(f"Word not found: {word_id!r}")
        return self._row_to_word(row)

    @_locked
    def find_word(self, text: str, translation: str) -> WordModel | None:
        """The word with exactly this text and translation, if any."""
        word_id = _db.find_word_id(self._conn, text, translation)
        return None if word_id is None else self.get_word(word_id)

    @_locked
    def list_words(self, list_id: int | None = None) -> list[WordModel]:
        """All words, or the words of one list in the order they were added."""
        if list_id is None:
            rows = self._conn.execute(
                "SELECT * FROM words ORDER BY created_at DESC, id DESC"
            ).fetchall()
        else:
            if _db.get_word_list_row(self._conn, list_id) is None:
                raise EntityNotFoundError(f"Word list not found: {list_id!r}")
            rows = self._conn.execute(
                "SELECT w.* FROM words w "
                "JOIN word_list_items wli ON w.id = wli.word_id "
                "WHERE wli.word_list_id = ? ORDER BY wli.id",
                (list_id,),
            ).fetchall()
        return [self._row_to_word(r) for r in rows]

    @_modifies_db
    def update_word_mastery(self, word_id: int, mastery_level: int) -> WordModel:
        if _db.get_word_row(self._conn, word_id) is None:
            raise EntityNotFoundError(f"Word not found: {word_id!r}")
        self._conn.execute(
            "UPDATE words SET mastery_level = ? WHERE id = ?",
            (int(mastery_level), word_id),
        )
        return self.get_word(word_id)

    @_modifies_db
    def delete_word(self, word_id: int) -> None:
        """Delete a word from every list, dropping its progress if unshared."""
        if _db.get_word_row(self._conn, word_id) is None:
            raise EntityNotFoundError(f"Word not found: {word_id!r}")
        self._conn.execute("DELETE FROM words WHERE id = ?", (word_id,))
        _db.delete_orphaned_familiarity(self._conn)

    def _delete_word_if_unlisted(self, word_id: int) -> int:
        cur = self._conn.execute(
            "DELETE FROM words WHERE id = ? AND NOT EXISTS "
            "(SELECT 1 FROM word_list_items WHERE word_id = ?)",
            (word_id, word_id),
        )
        return cur.rowcount

    def _row_to_word(self, row: sqlite3.Row) -> WordModel:
        return WordModel(
            id=row["id"],
            text=row["word"],
            translation=row["translation"],
            source_language=row["source_language"],
            target_language=row["target_language"],
            sentence_context=row["sentence_context"],
            source_document_name=row["pdf_name"],
            created_at=str(row["created_at"]),
            mastery_level=row["mastery_level"] or 0,
        )

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    @_modifies_db
    def add_word_to_list(self, word_id: int, list_id: int) -> bool:
        """Add a word to a list; False if it was already a member."""
        if _db.get_word_row(self._conn, word_id) is None:
            raise EntityNotFoundError(f"Word not found: {word_id!r}")
        if _db.get_word_list_row(self._conn, list_id) is None:
            raise EntityNotFoundError(f"Word list not found: {list_id!r}")
        return _db.insert_membership(self._conn, list_id, word_id)

    @_modifies_db
    def remove_word_from_list(self, word_id: int, list_id: int) -> None:
        """Remove a membership; a word left in no list is deleted."""
        cur = self._conn.execute(
            "DELETE FROM word_list_items WHERE word_id = ? AND word_list_id = ?",
            (word_id, list_id),
        )
        if cur.rowcount == 0:
            raise EntityNotFoundError(
                f"Word {word_id!r} is not in list {list_id!r}"
            )
        self._delete_word_if_unlisted(word_id)
        _db.delete_orphaned_familiarity(self._conn)

    @_locked
    def list_memberships(self) -> list[ListMembership]:
        rows = self._conn.execute(
            "SELECT word_list_id, word_id FROM word_list_items ORDER BY id"
        ).fetchall()
        return [ListMembership(r["word_list_id"], r["word_id"]) for r in rows]

    @_modifies_db
    def add_word_with_familiarity(
        self,
        list_id: int,
        text: str,
        translation: str,
        level: int = FamiliarityLevel.UNKNOWN,
        *,
        source_language: str = "auto",
        target_language: str = "en",
        sentence_context: str | None = "",
        pdf_name: str | None = "",
        today: dt.date | None = None,
    ) -> WordModel:
        """Add (or reuse) a word, put it in a list and rate its familiarity."""
        level = FamiliarityLevel.coerce(level)
        if _db.get_word_list_row(self._conn, list_id) is None:
            raise EntityNotFoundError(f"Word list not found: {list_id!r}")
        word = self.find_word(text, translation)
        if word is None:
            word = self.add_word(
                text, translation, source_language, target_language,
                sentence_context, pdf_name,
            )
        _db.insert_membership(self._conn, list_id, word.id)
        if not normalize(text):
            logger.info("No familiarity key for %r; stored without progress", text)
            return word
        self.set_familiarity(text, level, translation, today=today)
        return word

    # ------------------------------------------------------------------
    # Familiarity / SRS
    # ------------------------------------------------------------------

    @_modifies_db
    def set_familiarity(
        self,
        text: str,
        level: int,
        translation: str | None = None,
        *,
        today: dt.date | None = None,
    ) -> FamiliarityRecord:
        """Upsert the record for *text* with the initial state for *level*."""
        level = FamiliarityLevel.coerce(level)
        key = self._require_listed_key(text)
        state = initialize_from_level(level, today)
        self._conn.execute(
            "INSERT INTO word_familiarity (word_lower, familiarity_level, "
            "translation, easiness_factor, interval, repetitions, "
            "next_review_date, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP) "
            "ON CONFLICT(word_lower) DO UPDATE SET "
            "familiarity_level = excluded.familiarity_level, "
            "translation = excluded.translation, "
            "easiness_factor = excluded.easiness_factor, "
            "interval = excluded.interval, "
            "repetitions = excluded.repetitions, "
            "next_review_date = excluded.next_review_date, "
            "updated_at = CURRENT_TIMESTAMP",
            (key, int(level), translation, state.easiness_factor,
             state.interval, state.repetitions,
             state.next_review_date.isoformat()),
        )
        return self._get_familiarity(key)

    @_modifies_db
    def insert_familiarity(
        self,
        record: FamiliarityRecord,
        *,
        today: dt.date | None = None,
    ) -> bool:
        """Insert *record* unless its key already has progress.

        Existing progress is never overwritten. A missing review date is
        stored as *today*.
        """
        next_review = record.next_review_date or today or dt.date.today()
        cur = self._conn.execute(
            "INSERT OR IGNORE INTO word_familiarity (word_lower, "
            "familiarity_level, translation, easiness_factor, interval, "
            "repetitions, next_review_date, last_review_date, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)",
            (record.word_lower, record.familiarity_level, record.translation,
             record.easiness_factor, record.interval, record.repetitions,
             next_review.isoformat(),
             record.last_review_date.isoformat()
             if record.last_review_date else None),
        )
        return cur.rowcount == 1

    @_locked
    def has_familiarity(self, text: str) -> bool:
        return _db.familiarity_exists(self._conn, normalize(text))

    @_locked
    def listed_keys(self) -> set[str]:
        """Normalized keys of all words that belong to a list."""
        return _db.listed_keys(self._conn)

    def get_familiarity(
        self, text: str, *, today: dt.date | None = None
    ) -> FamiliarityRecord | None:
        """Record for *text* (raw or normalized); a null date is repaired."""
        key = normalize(text)
        with self._lock:
            row = _db.get_familiarity_row(self._conn, key)
            if row is None:
                return None
            if not row["next_review_date"]:
                self._repair_review_dates(today)
            return self._get_familiarity(key)

    @_locked
    def list_familiarity(self) -> list[FamiliarityRecord]:
        rows = self._conn.execute(
            "SELECT * FROM word_familiarity ORDER BY word_lower"
        ).fetchall()
        return [self._row_to_familiarity(r) for r in rows]

    @_modifies_db
    def record_review(
        self,
        text: str,
        quality: int,
        *,
        today: dt.date | None = None,
    ) -> FamiliarityRecord:
        """Apply a review answer to the record for *text* and persist it."""
        quality = ReviewQuality.coerce(quality)
        today = today or dt.date.today()
        key = normalize(text)
        row = _db.get_familiarity_row(self._conn, key)
        if row is None:
            raise EntityNotFoundError(f"No familiarity record for {text!r}")
        current = self._row_to_familiarity(row).srs_state(today)
        updated = apply_review(current, quality, today, self.curve)
        self._write_srs_state(key, updated)
        logger.debug(
            "Reviewed %r quality=%s interval %d -> %d",
            key, quality.name, current.interval, updated.interval,
        )
        return self._get_familiarity(key)

    @_modifies_db
    def cleanup_orphaned_familiarity(self) -> int:
        """Delete records whose key no longer has a listed word."""
        return _db.delete_orphaned_familiarity(self._conn)

    def _require_listed_key(self, text: str) -> str:
        key = normalize(text)
        if not key:
            raise ValidationError(f"{text!r} has no letters to key progress by")
        if key not in _db.listed_keys(self._conn):
            raise EntityNotFoundError(
                f"No word in any list normalizes to {key!r}"
            )
        return key

    def _write_srs_state(self, key: str, state: SrsState) -> None:
        self._conn.execute(
            "UPDATE word_familiarity SET familiarity_level = ?, "
            "easiness_factor = ?, interval = ?, repetitions = ?, "
            "next_review_date = ?, last_review_date = ?, "
            "updated_at = CURRENT_TIMESTAMP WHERE word_lower = ?",
            (state.familiarity_level, state.easiness_factor, state.interval,
             state.repetitions, state.next_review_date.isoformat(),
             state.last_review_date.isoformat()
             if state.last_review_date else None,
             key),
        )

    def _repair_review_dates(self, today: dt.date | None) -> None:
        with self.batch():
            _db.repair_missing_review_dates(self._conn, today or dt.date.today())

    def _get_familiarity(self, key: str) -> FamiliarityRecord:
        row = _db.get_familiarity_row(self._conn, key)
        if row is None:
            raise EntityNotFoundError(f"No familiarity record for {key!r}")
        return self._row_to_familiarity(row)

    def _row_to_familiarity(self, row: sqlite3.Row) -> FamiliarityRecord:
        return FamiliarityRecord(
            word_lower=row["word_lower"],
            familiarity_level=row["familiarity_level"],
            translation=row["translation"],
            easiness_factor=row["easiness_factor"],
            interval=row["interval"],
            repetitions=row["repetitions"],
            next_review_date=parse_date(row["next_review_date"]),
            last_review_date=parse_date(row["last_review_date"]),
        )

    # ------------------------------------------------------------------
    # Review queries
    # ------------------------------------------------------------------

    def words_due_for_review(
        self, as_of: dt.date | None = None
    ) -> list[FamiliarityRecord]:
        """Records due on or before *as_of*, missing dates counting as due."""
        as_of = as_of or dt.date.today()
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM word_familiarity "
                "WHERE next_review_date IS NULL OR next_review_date = '' "
                "OR DATE(next_review_date) <= DATE(?) "
                "ORDER BY next_review_date ASC, word_lower ASC",
                (as_of.isoformat(),),
            ).fetchall()
            if any(not r["next_review_date"] for r in rows):
                self._repair_review_dates(as_of)
                return [self._get_familiarity(r["word_lower"]) for r in rows]
            return [self._row_to_familiarity(r) for r in rows]

    @_locked
    def review_schedule_summary(
        self, as_of: dt.date | None = None
    ) -> ReviewSchedule:
        """Bucket every record by days between *as_of* and its next review."""
        as_of = as_of or dt.date.today()
        overdue = due_today = due_soon = good = mastered = 0
        upcoming: dict[dt.date, int] = {}
        rows = self._conn.execute(
            "SELECT next_review_date FROM word_familiarity"
        ).fetchall()
        missing = False
        for row in rows:
            review_date = parse_date(row["next_review_date"])
            if review_date is None:
                review_date = as_of
                missing = True
            days = (review_date - as_of).days
            if days < 0:
                overdue += 1
            elif days == 0:
                due_today += 1
            elif days <= 3:
                due_soon += 1
            elif days <= 7:
                good += 1
            else:
                mastered += 1
            if 0 <= days <= UPCOMING_WINDOW_DAYS:
                upcoming[review_date] = upcoming.get(review_date, 0) + 1
        if missing:
            self._repair_review_dates(as_of)
        return ReviewSchedule(
            overdue=overdue,
            due_today=due_today,
            due_soon=due_soon,
            good=good,
            mastered=mastered,
            total_words=len(rows),
            upcoming_days=dict(sorted(upcoming.items())),
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @_locked
    def get_setting(self, key: str, default: str | None = None) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM user_settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else default

    @_modifies_db
    def set_setting(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT INTO user_settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, str(value)),
        )

    @_modifies_db
    def insert_setting(self, key: str, value: str) -> bool:
        """Insert a setting only if *key* is not set locally."""
        cur = self._conn.execute(
            "INSERT OR IGNORE INTO user_settings (key, value) VALUES (?, ?)",
            (key, str(value)),
        )
        return cur.rowcount == 1

    @_locked
    def list_settings(self) -> dict[str, str]:
        rows = self._conn.execute(
            "SELECT key, value FROM user_settings ORDER BY key"
        ).fetchall()
        return {r["key"]: r["value"] for r in rows}

    # ------------------------------------------------------------------
    # Quiz results and statistics
    # ------------------------------------------------------------------

    @_modifies_db
    def save_quiz_result(
        self,
        list_id: int,
        score: int,
        total_questions: int,
        quiz_type: str,
        *,
        completed_at: str | None = None,
    ) -> QuizResultModel:
        if _db.get_word_list_row(self._conn, list_id) is None:
            raise EntityNotFoundError(f"Word list not found: {list_id!r}")
        if total_questions <= 0 or not 0 <= score <= total_questions:
            raise ValidationError(
                f"Invalid quiz score {score}/{total_questions}"
            )
        cur = self._conn.execute(
            "INSERT INTO quiz_results (word_list_id, score, total_questions, "
            "quiz_type, completed_at) "
            "VALUES (?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))",
            (list_id, score, total_questions, quiz_type, completed_at),
        )
        row = self._conn.execute(
            "SELECT * FROM quiz_results WHERE id = ?", (cur.lastrowid,)
        ).fetchone()
        return self._row_to_quiz_result(row)

    @_locked
    def list_quiz_results(self, list_id: int | None = None) -> list[QuizResultModel]:
        if list_id is None:
            rows = self._conn.execute(
                "SELECT * FROM quiz_results ORDER BY completed_at DESC, id DESC"
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM quiz_results WHERE word_list_id = ? "
                "ORDER BY completed_at DESC, id DESC",
                (list_id,),
            ).fetchall()
        return [self._row_to_quiz_result(r) for r in rows]

    @_locked
    def get_stats(self) -> dict[str, Any]:
        """Totals, average quiz score and mastery distribution."""
        def count(table: str) -> int:
            return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

        avg = self._conn.execute(
            "SELECT AVG(CAST(score AS FLOAT) / total_questions * 100) "
            "FROM quiz_results"
        ).fetchone()[0]
        distribution = {
            r["mastery_level"]: r["n"]
            for r in self._conn.execute(
                "SELECT mastery_level, COUNT(*) AS n FROM words "
                "GROUP BY mastery_level ORDER BY mastery_level"
            ).fetchall()
        }
        return {
            "total_words": count("words"),
            "total_lists": count("word_lists"),
            "total_quizzes": count("quiz_results"),
            "tracked_words": count("word_familiarity"),
            "average_score": avg or 0.0,
            "mastery_distribution": distribution,
        }

    def _row_to_quiz_result(self, row: sqlite3.Row) -> QuizResultModel:
        return QuizResultModel(
            id=row["id"],
            word_list_id=row["word_list_id"],
            score=row["score"],
            total_questions=row["total_questions"],
            quiz_type=row["quiz_type"],
            completed_at=str(row["completed_at"]),
        )
