"""Interchange documents: full backups, single-list exports, word imports.

An :data:`ImportPayload` is one of three document shapes, discriminated by
:func:`parse_payload` from the keys present at the top level:

* ``version`` + ``wordLists`` + ``words``: :class:`FullBackup`
* ``words`` whose entries carry SRS fields: :class:`SingleListExport`
* a bare ``words`` array: :class:`WordsOnlyImport`

Individual entries stay plain dicts; the reconciler skips malformed ones.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Union

from lingua_progress.exceptions import ValidationError
from lingua_progress.models import PayloadKind

BACKUP_VERSION = 1

# Fields that mark a word entry as carrying review progress.
PROGRESS_FIELDS = frozenset({
    "familiarity_level",
    "easiness_factor",
    "interval",
    "repetitions",
    "next_review_date",
})

_BACKUP_COLLECTIONS = {
    "wordLists": "word_lists",
    "words": "words",
    "wordListItems": "word_list_items",
    "quizResults": "quiz_results",
    "userSettings": "user_settings",
    "wordFamiliarity": "word_familiarity",
}


@dataclass(frozen=True)
class FullBackup:
    """Every table of a store, with store-local ids."""

    kind: ClassVar[PayloadKind] = PayloadKind.FULL_BACKUP

    version: int = BACKUP_VERSION
    exported_at: str | None = None
    word_lists: list[dict[str, Any]] = field(default_factory=list)
    words: list[dict[str, Any]] = field(default_factory=list)
    word_list_items: list[dict[str, Any]] = field(default_factory=list)
    quiz_results: list[dict[str, Any]] = field(default_factory=list)
    user_settings: list[dict[str, Any]] = field(default_factory=list)
    word_familiarity: list[dict[str, Any]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            getattr(self, attr) for attr in _BACKUP_COLLECTIONS.values()
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "version": self.version,
            "exportedAt": self.exported_at,
        }
        for key, attr in _BACKUP_COLLECTIONS.items():
            doc[key] = list(getattr(self, attr))
        return doc


@dataclass(frozen=True)
class SingleListExport:
    """One list's words together with their review progress."""

    kind: ClassVar[PayloadKind] = PayloadKind.LIST_EXPORT

    list_name: str | None
    words: list[dict[str, Any]]
    list_description: str = ""
    exported_at: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "listName": self.list_name,
            "listDescription": self.list_description,
            "exportedAt": self.exported_at,
            "words": list(self.words),
        }


@dataclass(frozen=True)
class WordsOnlyImport:
    """Bare word/translation pairs, optionally naming a list."""

    kind: ClassVar[PayloadKind] = PayloadKind.WORDS_ONLY

    words: list[dict[str, Any]]
    list_name: str | None = None
    list_description: str = ""

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"listName": self.list_name, "words": list(self.words)}
        if self.list_description:
            doc["listDescription"] = self.list_description
        return doc


ImportPayload = Union[FullBackup, SingleListExport, WordsOnlyImport]


def parse_payload(data: Any) -> ImportPayload:
    """Validate the shape of a decoded document and wrap it in its type.

    Raises:
        ValidationError: If the document matches none of the known shapes
            or a required collection is not a list.
    """
    if not isinstance(data, dict):
        raise ValidationError("Interchange document must be a JSON object")

    if "version" in data and "wordLists" in data and "words" in data:
        return _parse_full_backup(data)

    if "words" in data:
        words = _require_list(data, "words")
        list_name = data.get("listName")
        if list_name is not None and not isinstance(list_name, str):
            raise ValidationError("Field 'listName' must be a string")
        description = data.get("listDescription") or ""
        if any(isinstance(w, dict) and PROGRESS_FIELDS & w.keys() for w in words):
            return SingleListExport(
                list_name=list_name,
                words=words,
                list_description=str(description),
                exported_at=data.get("exportedAt"),
            )
        return WordsOnlyImport(
            words=words,
            list_name=list_name,
            list_description=str(description),
        )

    raise ValidationError(
        "Unknown file format: expected a backup (version, wordLists, words) "
        "or a words array"
    )


def _parse_full_backup(data: dict[str, Any]) -> FullBackup:
    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValidationError(f"Invalid backup version: {version!r}")
    if version > BACKUP_VERSION:
        raise ValidationError(
            f"Backup version {version} is newer than supported "
            f"({BACKUP_VERSION})"
        )
    collections = {
        attr: _require_list(data, key, required=key in ("wordLists", "words"))
        for key, attr in _BACKUP_COLLECTIONS.items()
    }
    return FullBackup(
        version=version,
        exported_at=data.get("exportedAt"),
        **collections,
    )


def _require_list(
    data: dict[str, Any], key: str, *, required: bool = True
) -> list[Any]:
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"Missing required field: {key!r}")
        return []
    if not isinstance(value, list):
        raise ValidationError(f"Field {key!r} must be a list")
    return value


def load_payload(source: str | Path | bytes | dict[str, Any]) -> ImportPayload:
    """Load an interchange document from a file, JSON text, bytes or dict.

    Raises:
        ValidationError: If the content is not valid JSON or has an
            unknown shape. The decoding error is chained as the cause.
        FileNotFoundError: If a path is given and does not exist.
    """
    if isinstance(source, dict):
        return parse_payload(source)
    if isinstance(source, bytes):
        text = source.decode("utf-8", errors="replace")
    elif isinstance(source, str) and source.lstrip().startswith(("{", "[")):
        text = source
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Invalid JSON at line {e.lineno} column {e.colno}: {e.msg}"
        ) from e
    return parse_payload(data)
