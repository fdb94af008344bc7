__version__ = "0.1.0"

from .exceptions import (
    LinguaProgressError as LinguaProgressError,
    ValidationError as ValidationError,
    EntityNotFoundError as EntityNotFoundError,
    StoreTransactionFailure as StoreTransactionFailure,
    DatabaseError as DatabaseError,
    SyncSessionError as SyncSessionError,
    ConfigError as ConfigError,
)

from .models import (
    FamiliarityLevel as FamiliarityLevel,
    ReviewQuality as ReviewQuality,
    SyncState as SyncState,
    PayloadKind as PayloadKind,
    WordListModel as WordListModel,
    WordModel as WordModel,
    ListMembership as ListMembership,
    SrsState as SrsState,
    FamiliarityRecord as FamiliarityRecord,
    QuizResultModel as QuizResultModel,
    ReviewSchedule as ReviewSchedule,
    ConflictSkipped as ConflictSkipped,
    ImportReport as ImportReport,
    OperationResult as OperationResult,
)

from .normalizer import normalize as normalize

from .scheduler import (
    ReviewCurve as ReviewCurve,
    DEFAULT_CURVE as DEFAULT_CURVE,
    LEVEL_TABLE as LEVEL_TABLE,
    initialize_from_level as initialize_from_level,
    apply_review as apply_review,
)

from .store import VocabularyStore as VocabularyStore

from .interchange import (
    FullBackup as FullBackup,
    SingleListExport as SingleListExport,
    WordsOnlyImport as WordsOnlyImport,
    ImportPayload as ImportPayload,
    parse_payload as parse_payload,
    load_payload as load_payload,
)

from .reconciler import reconcile as reconcile

from .exporter import (
    build_full_backup as build_full_backup,
    build_list_export as build_list_export,
    write_document as write_document,
    suggested_filename as suggested_filename,
)

from .gateway import ExchangeGateway as ExchangeGateway

from .sync import (
    PairingInfo as PairingInfo,
    SyncEvent as SyncEvent,
    SyncServer as SyncServer,
    SyncClient as SyncClient,
)

from .config import (
    AppConfig as AppConfig,
    SyncConfig as SyncConfig,
    load_config as load_config,
)

__all__ = [
    # Exceptions
    "LinguaProgressError",
    "ValidationError",
    "EntityNotFoundError",
    "StoreTransactionFailure",
    "DatabaseError",
    "SyncSessionError",
    "ConfigError",
    # Enums
    "FamiliarityLevel",
    "ReviewQuality",
    "SyncState",
    "PayloadKind",
    # Models
    "WordListModel",
    "WordModel",
    "ListMembership",
    "SrsState",
    "FamiliarityRecord",
    "QuizResultModel",
    "ReviewSchedule",
    "ConflictSkipped",
    "ImportReport",
    "OperationResult",
    # Normalizer and scheduler
    "normalize",
    "ReviewCurve",
    "DEFAULT_CURVE",
    "LEVEL_TABLE",
    "initialize_from_level",
    "apply_review",
    # Store
    "VocabularyStore",
    # Interchange
    "FullBackup",
    "SingleListExport",
    "WordsOnlyImport",
    "ImportPayload",
    "parse_payload",
    "load_payload",
    "reconcile",
    "build_full_backup",
    "build_list_export",
    "write_document",
    "suggested_filename",
    "ExchangeGateway",
    # Network sync
    "PairingInfo",
    "SyncEvent",
    "SyncServer",
    "SyncClient",
    # Configuration
    "AppConfig",
    "SyncConfig",
    "load_config",
]
