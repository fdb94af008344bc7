"""Tests for VocabularyStore: lists, words, familiarity, settings, queries."""

import datetime as dt
import sqlite3

import pytest

from lingua_progress import (
    EntityNotFoundError,
    FamiliarityLevel,
    ReviewQuality,
    ValidationError,
    VocabularyStore,
)
from lingua_progress.db import LIST_COLORS

TODAY = dt.date(2024, 3, 15)


def _days(n):
    return TODAY + dt.timedelta(days=n)


class TestWordLists:
    def test_create_and_get(self, store):
        wl = store.create_word_list("Spanish", "Basic words")
        assert wl.id > 0
        assert wl.name == "Spanish"
        assert wl.description == "Basic words"
        assert store.get_word_list(wl.id) == wl

    def test_palette_colors_cycle(self, store):
        colors = [store.create_word_list(f"L{i}").color for i in range(len(LIST_COLORS) + 1)]
        assert colors[: len(LIST_COLORS)] == list(LIST_COLORS)
        assert colors[-1] == LIST_COLORS[0]

    def test_explicit_color_kept(self, store):
        assert store.create_word_list("Red", color="#ff0000").color == "#ff0000"

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name_rejected(self, store, name):
        with pytest.raises(ValidationError):
            store.create_word_list(name)

    def test_find_by_name(self, store):
        wl = store.create_word_list("French")
        assert store.find_word_list("French") == wl
        assert store.find_word_list("German") is None

    def test_update(self, store):
        wl = store.create_word_list("Old")
        updated = store.update_word_list(wl.id, name="New", color=None)
        assert updated.name == "New"
        assert updated.color is None
        assert updated.description == ""

    def test_get_missing(self, store):
        with pytest.raises(EntityNotFoundError):
            store.get_word_list(999)


class TestWords:
    def test_add_and_find(self, store):
        word = store.add_word("hola", "hello", "es", "en", "Hola, amigo.", "book.pdf")
        assert word.text == "hola"
        assert word.source_document_name == "book.pdf"
        assert store.find_word("hola", "hello") == word
        assert store.find_word("hola", "hi") is None

    def test_empty_text_rejected(self, store):
        with pytest.raises(ValidationError):
            store.add_word(" ", "nothing")

    def test_list_words_in_insertion_order(self, store_with_list):
        store, wl = store_with_list
        for text in ("uno", "dos", "tres"):
            word = store.add_word(text, text.upper())
            store.add_word_to_list(word.id, wl.id)
        assert [w.text for w in store.list_words(wl.id)] == ["uno", "dos", "tres"]

    def test_membership_is_unique(self, store_with_list):
        store, wl = store_with_list
        word = store.add_word("hola", "hello")
        assert store.add_word_to_list(word.id, wl.id) is True
        assert store.add_word_to_list(word.id, wl.id) is False
        assert len(store.list_memberships()) == 1

    def test_update_mastery(self, store):
        word = store.add_word("hola", "hello")
        assert store.update_word_mastery(word.id, 3).mastery_level == 3


class TestFamiliarity:
    def test_add_word_with_familiarity_level_two(self, store_with_list):
        store, wl = store_with_list
        store.add_word_with_familiarity(wl.id, "hola", "hello", 2, today=TODAY)
        record = store.get_familiarity("hola", today=TODAY)
        assert record.familiarity_level == 2
        assert record.interval == 1
        assert record.repetitions == 1
        assert record.easiness_factor == 2.5
        assert record.next_review_date == _days(1)
        assert record.translation == "hello"

    def test_lookup_by_raw_text(self, store_with_data):
        store = store_with_data[0]
        assert store.get_familiarity("¡HOLA!", today=TODAY).word_lower == "hola"
        assert store.has_familiarity("Hola")

    def test_set_requires_listed_word(self, store):
        store.add_word("suelto", "loose")
        with pytest.raises(EntityNotFoundError):
            store.set_familiarity("suelto", 3)

    def test_set_rejects_keyless_text(self, store_with_list):
        store, wl = store_with_list
        word = store.add_word("日本", "Japan")
        store.add_word_to_list(word.id, wl.id)
        with pytest.raises(ValidationError):
            store.set_familiarity("日本", 2)

    def test_add_keyless_word_keeps_word_without_progress(self, store_with_list):
        store, wl = store_with_list
        word = store.add_word_with_familiarity(wl.id, "猫", "cat", 2, today=TODAY)
        assert [w.text for w in store.list_words(wl.id)] == ["猫"]
        assert word.translation == "cat"
        assert store.list_familiarity() == []

    def test_set_rejects_bad_level(self, store_with_data):
        store = store_with_data[0]
        with pytest.raises(ValidationError):
            store.set_familiarity("hola", 6)

    def test_user_rating_overwrites(self, store_with_data):
        store = store_with_data[0]
        record = store.set_familiarity("hola", FamiliarityLevel.MASTERED, "hello", today=TODAY)
        assert record.familiarity_level == 5
        assert record.interval == 14
        assert record.next_review_date == _days(14)

    def test_one_record_per_key(self, store_with_list):
        store, wl = store_with_list
        store.add_word_with_familiarity(wl.id, "Hola", "hello", 2, today=TODAY)
        store.add_word_with_familiarity(wl.id, "hola", "hi", 3, today=TODAY)
        records = store.list_familiarity()
        assert len(records) == 1
        assert records[0].familiarity_level == 3

    def test_record_review_persists(self, store_with_data):
        store = store_with_data[0]
        record = store.record_review("hola", ReviewQuality.GOOD, today=TODAY)
        assert record.repetitions == 2
        assert record.interval == 2
        assert record.next_review_date == _days(2)
        assert record.last_review_date == TODAY
        assert store.get_familiarity("hola", today=TODAY) == record

    def test_record_review_again_resets(self, store_with_data):
        store = store_with_data[0]
        record = store.record_review("gato", "again", today=TODAY)
        assert record.repetitions == 0
        assert record.interval == 0
        assert record.next_review_date == TODAY
        assert record.easiness_factor == pytest.approx(2.4)

    def test_record_review_unknown_word(self, store):
        with pytest.raises(EntityNotFoundError):
            store.record_review("nada", 3)


class TestDueForReview:
    def test_null_date_is_due_and_repaired(self, store_with_data):
        store = store_with_data[0]
        store._conn.execute(
            "UPDATE word_familiarity SET next_review_date = NULL WHERE word_lower = 'gato'"
        )
        store._conn.commit()
        due = store.words_due_for_review(TODAY)
        assert [r.word_lower for r in due] == ["gato"]
        assert due[0].next_review_date == TODAY
        assert store.get_familiarity("gato").next_review_date == TODAY

    def test_tomorrow_is_not_due(self, store_with_data):
        store = store_with_data[0]
        assert store.words_due_for_review(TODAY) == []
        assert [r.word_lower for r in store.words_due_for_review(_days(1))] == ["hola"]

    def test_overdue_included(self, store_with_data):
        store = store_with_data[0]
        due = store.words_due_for_review(_days(30))
        assert {r.word_lower for r in due} == {"hola", "gato"}


class TestScheduleSummary:
    def test_buckets(self, store_with_list):
        store, wl = store_with_list
        for level, text in enumerate(("uno", "dos", "tres", "cuatro", "cinco"), start=1):
            store.add_word_with_familiarity(wl.id, text, text, level, today=TODAY)

        summary = store.review_schedule_summary(TODAY)
        assert summary.total_words == 5
        assert summary.overdue == 0
        assert summary.due_today == 1
        assert summary.due_soon == 2
        assert summary.good == 1
        assert summary.mastered == 1
        assert list(summary.upcoming_days) == [
            TODAY, _days(1), _days(3), _days(7), _days(14),
        ]

        later = store.review_schedule_summary(_days(2))
        assert later.overdue == 2
        assert later.due_soon == 1
        assert later.good == 1
        assert later.mastered == 1

    def test_null_date_counted_today_and_repaired(self, store_with_data):
        store = store_with_data[0]
        store._conn.execute(
            "UPDATE word_familiarity SET next_review_date = NULL WHERE word_lower = 'gato'"
        )
        store._conn.commit()
        summary = store.review_schedule_summary(TODAY)
        assert summary.due_today == 1
        assert summary.due_soon == 1
        assert summary.upcoming_days[TODAY] == 1
        row = store._conn.execute(
            "SELECT next_review_date FROM word_familiarity WHERE word_lower = 'gato'"
        ).fetchone()
        assert row["next_review_date"] == TODAY.isoformat()


class TestCascadeDelete:
    def test_delete_list_removes_owned_words_and_progress(self, store, today):
        a = store.create_word_list("A")
        b = store.create_word_list("B")
        store.add_word_with_familiarity(a.id, "hola", "hello", 2, today=today)
        gato = store.add_word_with_familiarity(a.id, "gato", "cat", 3, today=today)
        store.add_word_to_list(gato.id, b.id)
        store.add_word_with_familiarity(b.id, "perro", "dog", 1, today=today)

        store.delete_word_list(a.id)

        assert store.find_word("hola", "hello") is None
        assert store.find_word("gato", "cat") is not None
        assert not store.has_familiarity("hola")
        assert store.has_familiarity("gato")
        assert store.has_familiarity("perro")
        assert [w.text for w in store.list_words(b.id)] == ["gato", "perro"]

    def test_shared_key_keeps_progress(self, store, today):
        a = store.create_word_list("A")
        b = store.create_word_list("B")
        store.add_word_with_familiarity(a.id, "Hola", "hello", 2, today=today)
        store.add_word_with_familiarity(b.id, "hola", "hi", 2, today=today)
        store.delete_word_list(a.id)
        assert store.has_familiarity("hola")

    def test_delete_missing_list(self, store):
        with pytest.raises(EntityNotFoundError):
            store.delete_word_list(42)

    def test_remove_last_membership_deletes_word(self, store_with_data):
        store, wl, hola, _ = store_with_data
        store.remove_word_from_list(hola.id, wl.id)
        assert store.find_word("hola", "hello") is None
        assert not store.has_familiarity("hola")
        with pytest.raises(EntityNotFoundError):
            store.remove_word_from_list(hola.id, wl.id)

    def test_delete_word(self, store_with_data):
        store, wl, _, gato = store_with_data
        store.delete_word(gato.id)
        assert not store.has_familiarity("gato")
        assert [w.text for w in store.list_words(wl.id)] == ["hola"]

    def test_quiz_results_follow_list(self, store_with_list):
        store, wl = store_with_list
        store.save_quiz_result(wl.id, 3, 4, "multiple_choice")
        store.delete_word_list(wl.id)
        assert store.list_quiz_results() == []


class TestSettings:
    def test_defaults(self, store):
        assert store.get_setting("target_language") == "en"
        assert store.get_setting("theme") == "dark"
        assert store.get_setting("missing", "x") == "x"

    def test_set_overwrites(self, store):
        store.set_setting("theme", "light")
        assert store.get_setting("theme") == "light"

    def test_insert_keeps_local(self, store):
        assert store.insert_setting("theme", "light") is False
        assert store.get_setting("theme") == "dark"
        assert store.insert_setting("font_size", "14") is True
        assert store.list_settings()["font_size"] == "14"


class TestQuizResultsAndStats:
    def test_save_and_stats(self, store_with_data):
        store, wl, _, _ = store_with_data
        store.save_quiz_result(wl.id, 8, 10, "multiple_choice")
        store.save_quiz_result(wl.id, 6, 10, "typing")
        stats = store.get_stats()
        assert stats["total_words"] == 2
        assert stats["total_lists"] == 1
        assert stats["total_quizzes"] == 2
        assert stats["tracked_words"] == 2
        assert stats["average_score"] == pytest.approx(70.0)
        assert stats["mastery_distribution"] == {0: 2}

    @pytest.mark.parametrize("score, total", [(11, 10), (-1, 10), (0, 0)])
    def test_invalid_score(self, store_with_list, score, total):
        store, wl = store_with_list
        with pytest.raises(ValidationError):
            store.save_quiz_result(wl.id, score, total, "typing")


class TestTransactions:
    def test_batch_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            with store.batch():
                store.create_word_list("Doomed")
                raise RuntimeError("boom")
        assert store.find_word_list("Doomed") is None

    def test_nested_batch_commits_once(self, store):
        with store.batch():
            wl = store.create_word_list("Outer")
            with store.batch():
                store.add_word_with_familiarity(wl.id, "hola", "hello", 2)
        assert store.has_familiarity("hola")


class TestPersistence:
    def test_reopen_file_store(self, tmp_path):
        db_file = tmp_path / "nested" / "vocab.db"
        with VocabularyStore(db_file) as store:
            wl = store.create_word_list("Spanish")
            store.add_word_with_familiarity(wl.id, "hola", "hello", 2, today=TODAY)
        with VocabularyStore(db_file) as store:
            assert store.find_word_list("Spanish") is not None
            assert store.get_familiarity("hola", today=TODAY).interval == 1

    def test_legacy_database_is_migrated(self, tmp_path):
        db_file = tmp_path / "legacy.db"
        conn = sqlite3.connect(db_file)
        conn.executescript(
            """
            CREATE TABLE word_lists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE TABLE words (
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
            CREATE TABLE word_list_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                word_list_id INTEGER NOT NULL,
                word_id INTEGER NOT NULL,
                added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (word_list_id, word_id)
            );
            CREATE TABLE word_familiarity (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                word_lower TEXT NOT NULL UNIQUE,
                familiarity_level INTEGER DEFAULT 1,
                translation TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            INSERT INTO word_lists (name) VALUES ('First'), ('Second');
            INSERT INTO words (word, translation, source_language, target_language)
                VALUES ('hola', 'hello', 'es', 'en');
            INSERT INTO word_list_items (word_list_id, word_id) VALUES (1, 1);
            INSERT INTO word_familiarity (word_lower, familiarity_level, translation)
                VALUES ('hola', 3, 'hello'), ('orphan', 2, 'none');
            """
        )
        conn.commit()
        conn.close()

        with VocabularyStore(db_file) as store:
            lists = sorted(store.list_word_lists(), key=lambda wl: wl.id)
            assert [wl.color for wl in lists] == list(LIST_COLORS[:2])
            records = store.list_familiarity()
            assert [r.word_lower for r in records] == ["hola"]
            assert records[0].familiarity_level == 3
            assert records[0].easiness_factor == 2.5
            assert records[0].next_review_date is not None
