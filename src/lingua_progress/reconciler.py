"""Merge incoming interchange payloads into a local store.

Merging never duplicates entities and never overwrites local progress:

* lists are matched by ``name`` and words by ``(word, translation)``;
* incoming ids are translated through per-call id maps and never stored;
* an existing familiarity record or setting always wins over the incoming one.

The whole merge runs in one store transaction, so a failure leaves the store
untouched. Malformed entries are skipped and recorded in the report.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from lingua_progress.exceptions import ValidationError
from lingua_progress.interchange import (
    FullBackup,
    ImportPayload,
    SingleListExport,
    WordsOnlyImport,
)
from lingua_progress.models import (
    FamiliarityLevel,
    FamiliarityRecord,
    ImportReport,
    WordListModel,
)
from lingua_progress.normalizer import normalize
from lingua_progress.scheduler import (
    MINIMUM_EASE,
    ReviewCurve,
    initialize_from_level,
)
from lingua_progress.store import VocabularyStore, parse_date

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_LIST_NAME = "Imported Words"
IMPORTED_DOCUMENT_NAME = "imported"

# Largest value sqlite can bind as INTEGER.
SQLITE_MAX_INT = 2**63 - 1


def reconcile(
    store: VocabularyStore,
    payload: ImportPayload,
    *,
    target_list_id: int | None = None,
    list_name: str | None = None,
    today: dt.date | None = None,
) -> ImportReport:
    """Merge *payload* into *store* and report what was added.

    For word imports the destination is *target_list_id* when given,
    otherwise a list called *list_name* (or the payload's own list name)
    that is reused if it exists and created if not.
    """
    today = today or dt.date.today()
    report = ImportReport()
    with store.batch():
        if isinstance(payload, FullBackup):
            _BackupMerger(store, payload, report, today).run()
        elif isinstance(payload, (SingleListExport, WordsOnlyImport)):
            _ListMerger(store, payload, report, today).run(
                target_list_id=target_list_id, list_name=list_name
            )
        else:
            raise ValidationError(f"Unsupported payload type: {type(payload)!r}")
    logger.info(
        "Imported %s: %d lists, %d words, %d familiarity records (%d skipped)",
        payload.kind.value, report.lists_added, report.words_added,
        report.familiarity_added, len(report.skipped),
    )
    return report


# ---------------------------------------------------------------------------
# Entry coercion
# ---------------------------------------------------------------------------

def _ref(value: Any) -> int | str | None:
    """Normalize an incoming id so ``1`` and ``"1"`` resolve alike."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        return int(value) if value.strip().isdigit() else value.strip()
    return None


def _text(entry: dict[str, Any], key: str) -> str | None:
    value = entry.get(key)
    return value if isinstance(value, str) and value.strip() else None


def _count(entry: dict[str, Any], key: str) -> int:
    """Non-negative integer field; missing means 0."""
    try:
        value = int(entry.get(key) or 0)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValidationError(f"{key} must be an integer") from e
    if value > SQLITE_MAX_INT:
        raise ValidationError(f"{key} is out of range")
    return max(0, value)


def _familiarity_from_entry(
    entry: dict[str, Any],
    key: str,
    translation: str | None,
    curve: ReviewCurve,
) -> FamiliarityRecord:
    """Build a record from incoming SRS fields, filling gaps with defaults.

    Ease and interval are clamped to *curve*; counts sqlite cannot store
    raise :class:`ValidationError`.
    """
    level = entry.get("familiarity_level")
    level = FamiliarityLevel.coerce(1 if level is None else level)
    try:
        ease = float(entry.get("easiness_factor") or 2.5)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid SRS fields for {key!r}") from e
    interval = _count(entry, "interval")
    repetitions = _count(entry, "repetitions")
    return FamiliarityRecord(
        word_lower=key,
        familiarity_level=int(level),
        translation=translation,
        easiness_factor=min(curve.max_ease, max(MINIMUM_EASE, ease)),
        interval=min(interval, curve.max_interval),
        repetitions=repetitions,
        next_review_date=parse_date(entry.get("next_review_date")),
        last_review_date=parse_date(entry.get("last_review_date")),
    )


class _Merger:
    """Shared state for one reconciliation call."""

    def __init__(
        self,
        store: VocabularyStore,
        payload: ImportPayload,
        report: ImportReport,
        today: dt.date,
    ) -> None:
        self.store = store
        self.payload = payload
        self.report = report
        self.today = today

    def _malformed(self, entity_type: str, entry: Any, reason: str) -> None:
        key = entry.get("id", "?") if isinstance(entry, dict) else repr(entry)[:40]
        logger.warning("Skipping malformed %s %s: %s", entity_type, key, reason)
        self.report.skip(entity_type, key, reason)

    def _conflict(self, entity_type: str, key: Any, reason: str) -> None:
        logger.debug("Keeping local %s %r: %s", entity_type, key, reason)
        self.report.skip(entity_type, key, reason)

    def _insert_familiarity(self, record: FamiliarityRecord) -> None:
        if self.store.insert_familiarity(record, today=self.today):
            self.report.familiarity_added += 1
        else:
            self._conflict("familiarity", record.word_lower, "local progress kept")


# ---------------------------------------------------------------------------
# Full backup
# ---------------------------------------------------------------------------

class _BackupMerger(_Merger):
    """Merges a full backup table by table, translating ids as it goes."""

    payload: FullBackup

    def __init__(self, *args: Any) -> None:
        super().__init__(*args)
        self.list_id_map: dict[int | str, int] = {}
        self.word_id_map: dict[int | str, int] = {}
        self.new_list_ids: set[int] = set()

    def run(self) -> None:
        if self.payload.is_empty():
            return
        self._merge_lists()
        self._merge_words()
        self._merge_memberships()
        self._merge_familiarity()
        self._merge_settings()
        self._merge_quiz_results()

    def _merge_lists(self) -> None:
        for entry in self.payload.word_lists:
            if not isinstance(entry, dict):
                self._malformed("word_list", entry, "not an object")
                continue
            old_id = _ref(entry.get("id"))
            name = _text(entry, "name")
            if old_id is None or name is None:
                self._malformed("word_list", entry, "missing id or name")
                continue
            existing = self.store.find_word_list(name)
            if existing is not None:
                self.list_id_map[old_id] = existing.id
                self._conflict("word_list", name, "name exists")
                continue
            created = self.store.create_word_list(
                name,
                entry.get("description") or "",
                _text(entry, "color"),
                created_at=_text(entry, "created_at"),
            )
            self.list_id_map[old_id] = created.id
            self.new_list_ids.add(created.id)
            self.report.lists_added += 1

    def _merge_words(self) -> None:
        for entry in self.payload.words:
            if not isinstance(entry, dict):
                self._malformed("word", entry, "not an object")
                continue
            old_id = _ref(entry.get("id"))
            text = _text(entry, "word")
            translation = entry.get("translation")
            if old_id is None or text is None or not isinstance(translation, str):
                self._malformed("word", entry, "missing id, word or translation")
                continue
            existing = self.store.find_word(text, translation)
            if existing is not None:
                self.word_id_map[old_id] = existing.id
                self._conflict("word", f"{text}|{translation}", "word exists")
                continue
            try:
                mastery = _count(entry, "mastery_level")
            except ValidationError as e:
                self._malformed("word", entry, str(e))
                continue
            created = self.store.add_word(
                text,
                translation,
                entry.get("source_language") or "auto",
                entry.get("target_language") or "en",
                entry.get("sentence_context"),
                entry.get("pdf_name"),
                mastery_level=mastery,
                created_at=_text(entry, "created_at"),
            )
            self.word_id_map[old_id] = created.id
            self.report.words_added += 1

    def _merge_memberships(self) -> None:
        for entry in self.payload.word_list_items:
            if not isinstance(entry, dict):
                self._malformed("membership", entry, "not an object")
                continue
            list_id = self.list_id_map.get(_ref(entry.get("word_list_id")))
            word_id = self.word_id_map.get(_ref(entry.get("word_id")))
            if list_id is None or word_id is None:
                self._malformed("membership", entry, "unresolved list or word id")
                continue
            if self.store.add_word_to_list(word_id, list_id):
                self.report.memberships_added += 1
            else:
                self._conflict("membership", f"{list_id}:{word_id}", "already a member")

    def _merge_familiarity(self) -> None:
        listed = self.store.listed_keys()
        for entry in self.payload.word_familiarity:
            if not isinstance(entry, dict):
                self._malformed("familiarity", entry, "not an object")
                continue
            key = normalize(_text(entry, "word_lower"))
            if not key:
                self._malformed("familiarity", entry, "missing word_lower")
                continue
            if key not in listed:
                self._conflict("familiarity", key, "no listed word with this key")
                continue
            translation = entry.get("translation")
            try:
                record = _familiarity_from_entry(
                    entry, key,
                    translation if isinstance(translation, str) else None,
                    self.store.curve,
                )
            except ValidationError as e:
                self._malformed("familiarity", entry, str(e))
                continue
            self._insert_familiarity(record)

    def _merge_settings(self) -> None:
        for entry in self.payload.user_settings:
            if not isinstance(entry, dict) or not _text(entry, "key"):
                self._malformed("setting", entry, "missing key")
                continue
            if entry.get("value") is None:
                self._malformed("setting", entry, "missing value")
                continue
            if self.store.insert_setting(entry["key"], entry["value"]):
                self.report.settings_added += 1
            else:
                self._conflict("setting", entry["key"], "local setting kept")

    def _merge_quiz_results(self) -> None:
        for entry in self.payload.quiz_results:
            if not isinstance(entry, dict):
                self._malformed("quiz_result", entry, "not an object")
                continue
            list_id = self.list_id_map.get(_ref(entry.get("word_list_id")))
            if list_id is None:
                self._malformed("quiz_result", entry, "unresolved list id")
                continue
            if list_id not in self.new_list_ids:
                self._conflict("quiz_result", entry.get("id", "?"), "list already existed")
                continue
            score, total = entry.get("score"), entry.get("total_questions")
            if (
                not isinstance(score, int) or not isinstance(total, int)
                or not 0 < total <= SQLITE_MAX_INT or not 0 <= score <= total
            ):
                self._malformed("quiz_result", entry, "invalid score")
                continue
            self.store.save_quiz_result(
                list_id, score, total,
                entry.get("quiz_type") or "unknown",
                completed_at=_text(entry, "completed_at"),
            )
            self.report.quiz_results_added += 1


# ---------------------------------------------------------------------------
# Word imports and single-list exports
# ---------------------------------------------------------------------------

class _ListMerger(_Merger):
    """Adds the words of a word import or list export to one list."""

    payload: SingleListExport | WordsOnlyImport

    def run(
        self,
        *,
        target_list_id: int | None = None,
        list_name: str | None = None,
    ) -> None:
        if not self.payload.words and target_list_id is None:
            return
        target = self._resolve_target(target_list_id, list_name)
        self.report.target_list_id = target.id
        with_progress = isinstance(self.payload, SingleListExport)
        for entry in self.payload.words:
            if not isinstance(entry, dict):
                self._malformed("word", entry, "not an object")
                continue
            text = _text(entry, "word")
            translation = entry.get("translation")
            if text is None or not isinstance(translation, str):
                self._malformed("word", entry, "missing word or translation")
                continue
            self._merge_word(target, entry, text, translation, with_progress)

    def _resolve_target(
        self, target_list_id: int | None, list_name: str | None
    ) -> WordListModel:
        if target_list_id is not None:
            return self.store.get_word_list(target_list_id)
        name = list_name or self.payload.list_name or DEFAULT_IMPORT_LIST_NAME
        existing = self.store.find_word_list(name)
        if existing is not None:
            return existing
        self.report.lists_added += 1
        return self.store.create_word_list(name, self.payload.list_description)

    def _merge_word(
        self,
        target: WordListModel,
        entry: dict[str, Any],
        text: str,
        translation: str,
        with_progress: bool,
    ) -> None:
        word = self.store.find_word(text, translation)
        if word is None:
            word = self.store.add_word(
                text,
                translation,
                entry.get("source_language") or "auto",
                entry.get("target_language") or "en",
                "",
                IMPORTED_DOCUMENT_NAME,
            )
            self.report.words_added += 1
        else:
            self._conflict("word", f"{text}|{translation}", "word exists")

        if self.store.add_word_to_list(word.id, target.id):
            self.report.memberships_added += 1
        else:
            self._conflict("membership", f"{target.id}:{word.id}", "already a member")

        key = normalize(text)
        if not key:
            self._conflict("familiarity", text, "no letters to key progress by")
            return
        if with_progress:
            try:
                record = _familiarity_from_entry(
                    entry, key, translation, self.store.curve
                )
            except ValidationError as e:
                self._malformed("familiarity", entry, str(e))
                return
        else:
            state = initialize_from_level(FamiliarityLevel.UNKNOWN, self.today)
            record = FamiliarityRecord(
                word_lower=key,
                familiarity_level=state.familiarity_level,
                translation=translation,
                easiness_factor=state.easiness_factor,
                interval=state.interval,
                repetitions=state.repetitions,
                next_review_date=state.next_review_date,
                last_review_date=None,
            )
        self._insert_familiarity(record)
