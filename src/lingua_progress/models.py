"""Domain model dataclasses and enums for lingua-progress."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from lingua_progress.exceptions import ValidationError

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FamiliarityLevel(IntEnum):
    """Coarse self-assessed familiarity with a word."""

    UNKNOWN = 1
    SEEN = 2
    LEARNING = 3
    FAMILIAR = 4
    MASTERED = 5

    @classmethod
    def coerce(cls, value: Any) -> FamiliarityLevel:
        """Convert *value* to a level, raising ValidationError if out of range."""
        try:
            return cls(int(value))
        except (TypeError, ValueError, OverflowError) as e:
            raise ValidationError(
                f"Familiarity level must be 1..5, got {value!r}"
            ) from e


class ReviewQuality(IntEnum):
    """Answer quality for a single review."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def coerce(cls, value: Any) -> ReviewQuality:
        """Convert *value* to a quality, raising ValidationError if out of range."""
        if isinstance(value, str) and value.upper() in cls.__members__:
            return cls[value.upper()]
        try:
            return cls(int(value))
        except (TypeError, ValueError, OverflowError) as e:
            raise ValidationError(
                f"Review quality must be 1..4, got {value!r}"
            ) from e


class SyncState(str, Enum):
    """States of a network pairing session."""

    IDLE = "idle"
    LISTENING = "listening"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class PayloadKind(str, Enum):
    """Discriminator for interchange documents."""

    FULL_BACKUP = "full-backup"
    LIST_EXPORT = "list-export"
    WORDS_ONLY = "words-only"


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class WordListModel:
    """A named, colored collection of words."""

    id: int
    name: str
    description: str
    color: str | None
    created_at: str


@dataclass(frozen=True, slots=True)
class WordModel:
    """A word or phrase with its translation and capture context."""

    id: int
    text: str
    translation: str
    source_language: str
    target_language: str
    sentence_context: str | None
    source_document_name: str | None
    created_at: str
    mastery_level: int


@dataclass(frozen=True, slots=True)
class ListMembership:
    word_list_id: int
    word_id: int


@dataclass(frozen=True, slots=True)
class SrsState:
    """Spaced-repetition parameters for one normalized key."""

    familiarity_level: int
    easiness_factor: float
    interval: int
    repetitions: int
    next_review_date: dt.date
    last_review_date: dt.date | None = None


@dataclass(frozen=True, slots=True)
class FamiliarityRecord:
    """Review progress shared by every word with the same normalized key."""

    word_lower: str
    familiarity_level: int
    translation: str | None
    easiness_factor: float
    interval: int
    repetitions: int
    next_review_date: dt.date | None
    last_review_date: dt.date | None

    def srs_state(self, today: dt.date | None = None) -> SrsState:
        """Scheduler view of this record; a missing review date means due now."""
        return SrsState(
            familiarity_level=self.familiarity_level,
            easiness_factor=self.easiness_factor,
            interval=self.interval,
            repetitions=self.repetitions,
            next_review_date=self.next_review_date or today or dt.date.today(),
            last_review_date=self.last_review_date,
        )


@dataclass(frozen=True, slots=True)
class QuizResultModel:
    id: int
    word_list_id: int
    score: int
    total_questions: int
    quiz_type: str
    completed_at: str


@dataclass(frozen=True, slots=True)
class ReviewSchedule:
    """Familiarity records bucketed by days until the next review."""

    overdue: int
    due_today: int
    due_soon: int
    good: int
    mastered: int
    total_words: int
    upcoming_days: dict[dt.date, int]


@dataclass(frozen=True, slots=True)
class ConflictSkipped:
    """An incoming entity that was intentionally not inserted."""

    entity_type: str
    key: str
    reason: str


@dataclass(slots=True)
class ImportReport:
    """Counts produced by a single reconciliation."""

    lists_added: int = 0
    words_added: int = 0
    familiarity_added: int = 0
    memberships_added: int = 0
    settings_added: int = 0
    quiz_results_added: int = 0
    target_list_id: int | None = None
    skipped: list[ConflictSkipped] = field(default_factory=list)

    def skip(self, entity_type: str, key: Any, reason: str) -> None:
        self.skipped.append(ConflictSkipped(entity_type, str(key), reason))

    def as_dict(self) -> dict[str, Any]:
        return {
            "listsAdded": self.lists_added,
            "wordsAdded": self.words_added,
            "familiarityAdded": self.familiarity_added,
            "membershipsAdded": self.memberships_added,
            "settingsAdded": self.settings_added,
            "quizResultsAdded": self.quiz_results_added,
            "skipped": len(self.skipped),
        }


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Structured outcome handed to UI or CLI callers."""

    success: bool
    error: str | None = None
    report: ImportReport | None = None
    path: str | None = None
    word_count: int | None = None

    @classmethod
    def failed(cls, error: BaseException | str) -> OperationResult:
        return cls(success=False, error=str(error))
