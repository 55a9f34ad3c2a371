"""Protocols defining the contracts the migration orchestrator depends on.

The migration architecture separates concerns into four collaborators:

1. SourcePlatform: Reads metadata, file listings and file content (GitHub, Kaggle, Hugging Face)
2. DestinationPlatform: Creates the repository a dataset is migrated into (Hugging Face)
3. AnalysisProvider: Scores dataset quality and writes dataset cards
4. Storage: Persists datasets, jobs, steps, files and analysis reports

The MigrationOrchestrator only talks to these protocols. This allows:
- Swapping the in-memory store for the relational one without touching orchestration
- Testing the job lifecycle with in-process fakes instead of network clients
- Adding platforms by registering another adapter
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import (
        AnalysisReport,
        AnalysisResult,
        Dataset,
        DatasetFile,
        MigrationJob,
        MigrationOptions,
        MigrationStep,
        NewDataset,
        NewDatasetFile,
        SchemaValidationResult,
        SourceFile,
        SourceInfo,
    )


class SourcePlatform(Protocol):
    """Protocol for reading a dataset from a source platform.

    Implementations parse the platform's dataset URL themselves and raise
    InvalidUrlError when it does not match. API failures raise PlatformError.
    """

    label: str  # Human-readable kind, e.g. "GitHub repository"

    async def get_info(self, url: str) -> SourceInfo:
        """Fetch metadata for the dataset at `url`."""
        ...

    async def list_files(self, url: str) -> list[SourceFile]:
        """List the files of the dataset at `url`, excluding directories."""
        ...

    async def download_file(self, url: str, path: str, max_bytes: int | None = None) -> bytes:
        """Download a file of the dataset at `url`.

        Args:
            url: Dataset URL as given by the user
            path: File path within the dataset
            max_bytes: Stop reading after this many bytes (None reads everything)
        """
        ...


class DestinationPlatform(Protocol):
    """Protocol for creating the destination repository of a migration."""

    async def create_repository(self, name: str, private: bool = False) -> str:
        """Create a dataset repository and return its URL.

        Raises:
            PlatformError: If the repository cannot be created or already exists
        """
        ...


class AnalysisProvider(Protocol):
    """Protocol for dataset quality analysis and dataset card generation."""

    ai_generated: bool  # Whether results come from a language model

    async def analyze(
        self,
        name: str,
        description: str,
        metadata: Mapping[str, Any],
        sample: str,
    ) -> AnalysisResult:
        """Score a dataset from its metadata and a text sample of its files."""
        ...

    async def generate_card(
        self,
        name: str,
        description: str,
        metadata: Mapping[str, Any],
        analysis: Mapping[str, Any] | None = None,
    ) -> str:
        """Return a dataset card (README.md markdown) for the dataset."""
        ...


class SchemaValidator(Protocol):
    """Protocol for the schema validation gate of a migration."""

    def validate(self, files: Sequence[DatasetFile], samples: Mapping[str, bytes]) -> SchemaValidationResult:
        """Check the selected files; `samples` maps file paths to downloaded leading bytes."""
        ...


class Storage(Protocol):
    """Protocol for persisting migration state.

    Every method touches a single row (or a single collection read), so a
    poller can observe job and step progress at any time. Update methods
    only change the fields they name and return None for unknown ids.

    Job status changes are validated with models.check_job_transition and
    raise InvalidTransitionError when they would move a job backwards.
    """

    # Datasets
    async def list_datasets(self) -> list[Dataset]: ...

    async def get_dataset(self, dataset_id: int) -> Dataset | None: ...

    async def find_dataset_by_original_url(self, url: str) -> Dataset | None: ...

    async def create_dataset(self, dataset: NewDataset) -> Dataset: ...

    async def update_dataset_location(self, dataset_id: int, platform: str, url: str | None) -> Dataset | None: ...

    async def delete_dataset(self, dataset_id: int) -> bool: ...

    # Migration jobs
    async def list_migration_jobs(self) -> list[MigrationJob]: ...

    async def get_migration_job(self, job_id: int) -> MigrationJob | None: ...

    async def list_migration_jobs_for_dataset(self, dataset_id: int) -> list[MigrationJob]: ...

    async def get_recent_migration_jobs(self, limit: int) -> list[MigrationJob]: ...

    async def create_migration_job(
        self,
        dataset_id: int,
        source_platform: str,
        source_url: str,
        destination_platform: str,
        options: MigrationOptions,
    ) -> MigrationJob: ...

    async def set_migration_job_destination_url(self, job_id: int, url: str) -> MigrationJob | None: ...

    async def update_migration_job_progress(self, job_id: int, progress: int) -> MigrationJob | None: ...

    async def update_migration_job_status(
        self, job_id: int, status: str, error: str | None = None
    ) -> MigrationJob | None: ...

    async def delete_migration_job(self, job_id: int) -> bool: ...

    # Migration steps
    async def list_migration_steps(self, job_id: int) -> list[MigrationStep]: ...

    async def get_migration_step(self, step_id: int) -> MigrationStep | None: ...

    async def create_migration_step(self, job_id: int, name: str) -> MigrationStep: ...

    async def update_migration_step_progress(
        self, step_id: int, progress: int, message: str | None = None
    ) -> MigrationStep | None: ...

    async def update_migration_step_status(
        self, step_id: int, status: str, message: str | None = None
    ) -> MigrationStep | None: ...

    # Dataset files
    async def list_dataset_files(self, dataset_id: int) -> list[DatasetFile]: ...

    async def get_dataset_file(self, file_id: int) -> DatasetFile | None: ...

    async def create_dataset_file(self, file: NewDatasetFile) -> DatasetFile: ...

    async def set_dataset_file_selected(self, file_id: int, selected: bool) -> DatasetFile | None: ...

    async def delete_dataset_file(self, file_id: int) -> bool: ...

    # Analysis reports
    async def list_analysis_reports(self, dataset_id: int) -> list[AnalysisReport]: ...

    async def get_analysis_report(self, report_id: int) -> AnalysisReport | None: ...

    async def create_analysis_report(
        self,
        dataset_id: int,
        result: AnalysisResult,
        *,
        ai_generated: bool,
    ) -> AnalysisReport: ...
