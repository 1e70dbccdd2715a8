"""Pydantic schemas package."""

from collecthub.schemas.collect_source import (
    CollectSourceBase,
    CollectSourceCreate,
    CollectSourceSave,
    CollectSourceRead,
    CollectSourceSummary,
)
from collecthub.schemas.collect_job import (
    CollectJobBase,
    CollectJobCreate,
    CollectJobSave,
    CollectJobRead,
    RunJobRequest,
)
from collecthub.schemas.collect_run import (
    CollectRunRead,
    CollectTaskRead,
    CollectRunPage,
    CollectTaskPage,
    IdRequest,
    CreatedResponse,
)
from collecthub.schemas.collector_queue import (
    PullRequest,
    PullResponse,
    PulledJob,
    PulledRun,
    ReportRequest,
    OkResponse,
)
from collecthub.schemas.collect_settings import (
    CollectSettings,
    CollectSettingsUpdate,
    SystemSettings,
)
from collecthub.schemas.receive import ReceiveCode, ReceiveResult

__all__ = [
    # CollectSource
    "CollectSourceBase",
    "CollectSourceCreate",
    "CollectSourceSave",
    "CollectSourceRead",
    "CollectSourceSummary",
    # CollectJob
    "CollectJobBase",
    "CollectJobCreate",
    "CollectJobSave",
    "CollectJobRead",
    "RunJobRequest",
    # CollectRun / CollectTask
    "CollectRunRead",
    "CollectTaskRead",
    "CollectRunPage",
    "CollectTaskPage",
    "IdRequest",
    "CreatedResponse",
    # Worker protocol
    "PullRequest",
    "PullResponse",
    "PulledJob",
    "PulledRun",
    "ReportRequest",
    "OkResponse",
    # Settings
    "CollectSettings",
    "CollectSettingsUpdate",
    "SystemSettings",
    # Receive
    "ReceiveCode",
    "ReceiveResult",
]
