"""File-based exchange: backups, list exports and imports.

Every entry point returns an :class:`OperationResult`. Recoverable problems
(bad JSON, unknown shape, missing file, unknown list) are reported through
``success=False`` and ``error`` instead of raising.
"""

from __future__ import annotations

import datetime as dt
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

from lingua_progress.exceptions import LinguaProgressError
from lingua_progress.exporter import (
    build_full_backup,
    build_list_export,
    list_export_document,
    write_document,
)
from lingua_progress.interchange import load_payload
from lingua_progress.models import OperationResult
from lingua_progress.reconciler import reconcile
from lingua_progress.store import VocabularyStore

logger = logging.getLogger(__name__)


class ExchangeGateway:
    """Reads and writes interchange documents for one store."""

    def __init__(self, store: VocabularyStore) -> None:
        self.store = store
        self._executor: ThreadPoolExecutor | None = None

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> ExchangeGateway:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_backup(self, destination: str | Path) -> OperationResult:
        """Write a full backup of the store to *destination*."""
        try:
            backup = build_full_backup(self.store)
            path = write_document(backup.to_document(), destination)
        except (LinguaProgressError, OSError) as e:
            logger.error("Backup export failed: %s", e)
            return OperationResult.failed(e)
        logger.info(
            "Exported backup: %d lists, %d words, %d familiarity records",
            len(backup.word_lists), len(backup.words),
            len(backup.word_familiarity),
        )
        return OperationResult(
            success=True, path=str(path), word_count=len(backup.words)
        )

    def export_list(
        self,
        list_id: int,
        destination: str | Path,
        include_progress: bool = True,
    ) -> OperationResult:
        """Write one list to *destination*, with or without review progress."""
        try:
            export = build_list_export(self.store, list_id, include_progress)
            path = write_document(
                list_export_document(export, include_progress), destination
            )
        except (LinguaProgressError, OSError) as e:
            logger.error("List export failed: %s", e)
            return OperationResult.failed(e)
        logger.info("Exported list %r (%d words)", export.list_name, len(export.words))
        return OperationResult(
            success=True, path=str(path), word_count=len(export.words)
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_document(
        self,
        data: Any,
        *,
        target_list_id: int | None = None,
        list_name: str | None = None,
        today: dt.date | None = None,
    ) -> OperationResult:
        """Parse and reconcile a document given as dict, JSON text or bytes.

        Nothing is written unless the whole document parses. A string that
        is not JSON is read as a file path.
        """
        try:
            payload = load_payload(data)
            report = reconcile(
                self.store,
                payload,
                target_list_id=target_list_id,
                list_name=list_name,
                today=today,
            )
        except (LinguaProgressError, OSError, UnicodeDecodeError) as e:
            logger.error("Import failed: %s", e)
            return OperationResult.failed(e)
        return OperationResult(
            success=True, report=report, word_count=len(payload.words)
        )

    def import_file(
        self,
        source: str | Path,
        *,
        target_list_id: int | None = None,
        list_name: str | None = None,
        today: dt.date | None = None,
    ) -> OperationResult:
        """Import the interchange document stored at *source*."""
        path = Path(source).expanduser()
        try:
            content = path.read_bytes()
        except OSError as e:
            logger.error("Cannot read %s: %s", path, e)
            return OperationResult.failed(f"Cannot read {path}: {e.strerror or e}")
        result = self.import_document(
            content,
            target_list_id=target_list_id,
            list_name=list_name,
            today=today,
        )
        if not result.success:
            return result
        return OperationResult(
            success=True,
            report=result.report,
            path=str(path),
            word_count=result.word_count,
        )

    def import_file_async(
        self,
        source: str | Path,
        **kwargs: Any,
    ) -> Future[OperationResult]:
        """Run :meth:`import_file` on a worker thread."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="lingua-import"
            )
        return self._executor.submit(self.import_file, source, **kwargs)
