"""Export pipeline for lingua-progress: store -> interchange documents."""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from lingua_progress.interchange import BACKUP_VERSION, FullBackup, SingleListExport
from lingua_progress.models import FamiliarityRecord, WordModel
from lingua_progress.normalizer import normalize
from lingua_progress.store import VocabularyStore

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds")


def _iso(value: dt.date | None) -> str | None:
    return value.isoformat() if value else None


def build_full_backup(store: VocabularyStore) -> FullBackup:
    """Snapshot every table of *store* with its local ids."""
    word_lists = [
        {
            "id": wl.id,
            "name": wl.name,
            "description": wl.description,
            "color": wl.color,
            "created_at": wl.created_at,
        }
        for wl in sorted(store.list_word_lists(), key=lambda wl: wl.id)
    ]
    words = [
        _word_entry(w)
        for w in sorted(store.list_words(), key=lambda w: w.id)
    ]
    items = [
        {"word_list_id": m.word_list_id, "word_id": m.word_id}
        for m in store.list_memberships()
    ]
    quiz_results = [
        {
            "id": q.id,
            "word_list_id": q.word_list_id,
            "score": q.score,
            "total_questions": q.total_questions,
            "quiz_type": q.quiz_type,
            "completed_at": q.completed_at,
        }
        for q in sorted(store.list_quiz_results(), key=lambda q: q.id)
    ]
    settings = [
        {"key": key, "value": value}
        for key, value in store.list_settings().items()
    ]
    familiarity = [_familiarity_entry(r) for r in store.list_familiarity()]
    return FullBackup(
        version=BACKUP_VERSION,
        exported_at=_timestamp(),
        word_lists=word_lists,
        words=words,
        word_list_items=items,
        quiz_results=quiz_results,
        user_settings=settings,
        word_familiarity=familiarity,
    )


def _word_entry(word: WordModel) -> dict[str, Any]:
    return {
        "id": word.id,
        "word": word.text,
        "translation": word.translation,
        "source_language": word.source_language,
        "target_language": word.target_language,
        "sentence_context": word.sentence_context,
        "pdf_name": word.source_document_name,
        "created_at": word.created_at,
        "mastery_level": word.mastery_level,
    }


def _familiarity_entry(record: FamiliarityRecord) -> dict[str, Any]:
    return {
        "word_lower": record.word_lower,
        "familiarity_level": record.familiarity_level,
        "translation": record.translation,
        "easiness_factor": record.easiness_factor,
        "interval": record.interval,
        "repetitions": record.repetitions,
        "next_review_date": _iso(record.next_review_date),
        "last_review_date": _iso(record.last_review_date),
    }


def build_list_export(
    store: VocabularyStore,
    list_id: int,
    include_progress: bool = True,
) -> SingleListExport:
    """Export one list's words, optionally with each word's SRS fields.

    Raises:
        EntityNotFoundError: If *list_id* does not exist.
    """
    word_list = store.get_word_list(list_id)
    progress = {r.word_lower: r for r in store.list_familiarity()} if include_progress else {}
    entries: list[dict[str, Any]] = []
    for word in store.list_words(list_id):
        entry: dict[str, Any] = {"word": word.text, "translation": word.translation}
        if include_progress:
            entry["source_language"] = word.source_language
            entry["target_language"] = word.target_language
            record = progress.get(normalize(word.text))
            if record is not None:
                entry.update(
                    familiarity_level=record.familiarity_level,
                    easiness_factor=record.easiness_factor,
                    interval=record.interval,
                    repetitions=record.repetitions,
                    next_review_date=_iso(record.next_review_date),
                )
        entries.append(entry)
    return SingleListExport(
        list_name=word_list.name,
        words=entries,
        list_description=word_list.description if include_progress else "",
        exported_at=_timestamp() if include_progress else None,
    )


def list_export_document(export: SingleListExport, include_progress: bool) -> dict[str, Any]:
    """Serializable form of *export*; the raw form carries only name and words."""
    if include_progress:
        return export.to_document()
    return {"listName": export.list_name, "words": list(export.words)}


def write_document(doc: dict[str, Any], destination: str | Path) -> Path:
    """Write *doc* as indented JSON, replacing *destination* atomically."""
    destination = Path(destination).expanduser()
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=".export-", suffix=".json", dir=destination.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(doc, fh, ensure_ascii=False, indent=2)
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("Wrote %s", destination)
    return destination


_UNSAFE_FILENAME = re.compile(r"[^\w-]+")


def suggested_filename(
    list_name: str | None = None,
    *,
    include_progress: bool = False,
    today: dt.date | None = None,
) -> str:
    """Default file name for a backup (no list) or a list export."""
    stamp = (today or dt.date.today()).isoformat()
    if list_name is None:
        return f"lingua-progress-backup-{stamp}.json"
    slug = _UNSAFE_FILENAME.sub("_", list_name.strip()).strip("_") or "list"
    suffix = "_with_progress" if include_progress else ""
    return f"{slug}{suffix}_{stamp}.json"
