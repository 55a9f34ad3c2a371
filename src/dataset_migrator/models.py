"""Data models for dataset migration between platforms.

These models represent the records persisted by a Storage implementation and
the normalized data exchanged between platform adapters, the analysis
provider and the MigrationOrchestrator. They are intentionally simple and
storage-agnostic.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Final, Literal, get_args

from .exceptions import InvalidTransitionError

Platform = Literal["github", "kaggle", "huggingface"]
Status = Literal["pending", "in_progress", "completed", "failed"]

PLATFORMS: Final[tuple[str, ...]] = get_args(Platform)
TERMINAL_STATUSES: Final[frozenset[str]] = frozenset({"completed", "failed"})

# Allowed job status moves; anything else would move a job backwards
_JOB_TRANSITIONS: Final[dict[str, frozenset[str]]] = {
    "pending": frozenset({"in_progress", "failed"}),
    "in_progress": frozenset({"completed", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
}


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def check_job_transition(current: str, new: str) -> None:
    """Raise InvalidTransitionError unless a job may move from `current` to `new`."""
    if new not in _JOB_TRANSITIONS.get(current, frozenset()):
        msg = f"Cannot move migration job from {current} to {new}"
        raise InvalidTransitionError(msg)


def clamp_progress(progress: int) -> int:
    return max(0, min(100, int(progress)))


def _iso(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class MigrationOptions:
    """Options fixed when a migration is started."""

    repository_name: str | None = None
    is_private: bool = False
    generate_card: bool = False
    validate_schema: bool = False
    run_analysis: bool = False
    selected_files: tuple[str, ...] = ()


@dataclass
class Dataset:
    """A piece of data tracked across platforms.

    At most one Dataset exists per original URL; the orchestrator only ever
    changes the current platform and URL once a migration finalizes.
    """

    id: int
    name: str
    original_platform: str
    current_platform: str
    description: str | None = None
    original_url: str | None = None
    current_url: str | None = None
    files_count: int | None = None
    total_size: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: dt.datetime = field(default_factory=utcnow)
    updated_at: dt.datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "originalPlatform": self.original_platform,
            "currentPlatform": self.current_platform,
            "originalUrl": self.original_url,
            "currentUrl": self.current_url,
            "filesCount": self.files_count,
            "totalSize": self.total_size,
            "metadata": self.metadata,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class MigrationJob:
    """One migration attempt of a dataset to a destination platform."""

    id: int
    dataset_id: int
    source_platform: str
    destination_platform: str
    source_url: str
    destination_url: str | None = None
    status: Status = "pending"
    progress: int = 0
    error: str | None = None
    generate_card: bool = False
    validate_schema: bool = False
    run_analysis: bool = False
    started_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None
    created_at: dt.datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "datasetId": self.dataset_id,
            "sourcePlatform": self.source_platform,
            "destinationPlatform": self.destination_platform,
            "sourceUrl": self.source_url,
            "destinationUrl": self.destination_url,
            "status": self.status,
            "progress": self.progress,
            "error": self.error,
            "generateCard": self.generate_card,
            "validateSchema": self.validate_schema,
            "runAnalysis": self.run_analysis,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "createdAt": _iso(self.created_at),
        }


@dataclass
class MigrationStep:
    """A named unit of work within a migration job."""

    id: int
    migration_job_id: int
    name: str
    status: Status = "pending"
    progress: int = 0
    message: str | None = None
    started_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None
    created_at: dt.datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "migrationJobId": self.migration_job_id,
            "name": self.name,
            "status": self.status,
            "progress": self.progress,
            "message": self.message,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "createdAt": _iso(self.created_at),
        }


@dataclass
class DatasetFile:
    """A file belonging to a dataset; `selected` files are migrated."""

    id: int
    dataset_id: int
    name: str
    path: str
    size: int | None = None
    type: str | None = None
    selected: bool = True
    created_at: dt.datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "datasetId": self.dataset_id,
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "type": self.type,
            "selected": self.selected,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class AnalysisReport:
    """Stored output of a quality analysis. The newest report per dataset wins."""

    id: int
    dataset_id: int
    quality: int | None = None
    completeness: int | None = None
    usability: int | None = None
    report: dict[str, Any] = field(default_factory=dict)
    ai_generated: bool = False
    created_at: dt.datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "datasetId": self.dataset_id,
            "quality": self.quality,
            "completeness": self.completeness,
            "usability": self.usability,
            "report": self.report,
            "aiGenerated": self.ai_generated,
            "createdAt": _iso(self.created_at),
        }


@dataclass(frozen=True)
class NewDataset:
    """Field values for a dataset that has not been stored yet."""

    name: str
    original_platform: str
    current_platform: str
    description: str | None = None
    original_url: str | None = None
    current_url: str | None = None
    files_count: int | None = None
    total_size: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NewDatasetFile:
    """Field values for a dataset file that has not been stored yet."""

    dataset_id: int
    name: str
    path: str
    size: int | None = None
    type: str | None = None
    selected: bool = True


@dataclass(frozen=True)
class SourceInfo:
    """Platform metadata mapped into the generic dataset shape.

    `title` is what a user recognizes the source by (repository name, Kaggle
    title or Hub id) and is used in validation messages.
    """

    name: str
    title: str
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SourceFile:
    """A file listed by a source platform. Directories are never listed."""

    name: str
    path: str
    size: int = 0
    type: str = ""


@dataclass
class AnalysisResult:
    """Quality analysis produced by an AnalysisProvider."""

    summary: str
    quality: int
    completeness: int
    usability: int
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "quality": self.quality,
            "completeness": self.completeness,
            "usability": self.usability,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "metrics": dict(self.metrics),
        }


@dataclass(frozen=True)
class SchemaValidationResult:
    valid: bool
    message: str
