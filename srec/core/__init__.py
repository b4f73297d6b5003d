# コアモジュール
# ロケーター合成、ステップ定義、台帳、xlsx 永続化、イベント分類、再生、レポート生成を提供

from .classifier import EventClassifier, RawEvent
from .ledger import StepLedger
from .locator import ElementInfo, build_locator, synthesize_locator
from .persister import (
    ArtifactNotFoundError,
    ArtifactRow,
    ArtifactUnreadableError,
    ReplayAbortedError,
    StepPersister,
    WorksheetNotFoundError,
    artifact_filename,
)
from .replay import (
    ExecutionReport,
    ExecutionResult,
    ReplayConfig,
    ReplayEngine,
    SessionUnavailableError,
)
from .reporting import Reporter
from .session import BrowserSession, SessionState
from .steps import (
    Click,
    Fill,
    Launch,
    Navigate,
    NewTab,
    Note,
    RecordedStep,
    StepAction,
    parse_description,
)

__all__ = [
    "ArtifactNotFoundError",
    "ArtifactRow",
    "ArtifactUnreadableError",
    "BrowserSession",
    "Click",
    "ElementInfo",
    "EventClassifier",
    "ExecutionReport",
    "ExecutionResult",
    "Fill",
    "Launch",
    "Navigate",
    "NewTab",
    "Note",
    "RawEvent",
    "RecordedStep",
    "ReplayAbortedError",
    "ReplayConfig",
    "ReplayEngine",
    "Reporter",
    "SessionState",
    "SessionUnavailableError",
    "StepAction",
    "StepLedger",
    "StepPersister",
    "WorksheetNotFoundError",
    "artifact_filename",
    "build_locator",
    "parse_description",
    "synthesize_locator",
]
