"""Boundary operations for an HTTP layer or the CLI.

MigrationService validates request bodies and turns record lookups into
NotFoundError, so callers never see half-formed records or None.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Final

from .analysis import build_sample, create_analysis_provider
from .exceptions import NotFoundError, RequestValidationError
from .memory_storage import MemoryStorage
from .models import PLATFORMS, MigrationOptions
from .orchestrator import MigrationOrchestrator
from .platforms import build_registry
from .schema_validation import ColumnConsistencyValidator
from .sql_storage import SqlStorage

if TYPE_CHECKING:
    from .config import Settings
    from .models import AnalysisReport, Dataset, DatasetFile, MigrationJob, MigrationStep
    from .protocols import AnalysisProvider, Storage

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT: Final[int] = 3
_FLAGS: Final[dict[str, str]] = {
    "isPrivate": "is_private",
    "generateCard": "generate_card",
    "validateSchema": "validate_schema",
    "runAnalysis": "run_analysis",
}


def parse_migration_request(body: Mapping[str, Any]) -> tuple[str, str, str, MigrationOptions]:
    """Validate a migration request body.

    Returns:
        Source platform, source URL, destination platform and the options

    Raises:
        RequestValidationError: With one message per invalid field
    """
    errors: dict[str, str] = {}

    for key in ("sourcePlatform", "destinationPlatform"):
        value = body.get(key)
        if value not in PLATFORMS:
            errors[key] = f"Must be one of {', '.join(PLATFORMS)}"

    source_url = body.get("sourceUrl")
    if not isinstance(source_url, str) or not source_url.strip():
        errors["sourceUrl"] = "Required"
    elif not source_url.startswith(("http://", "https://")):
        errors["sourceUrl"] = "Must be a URL"

    repository_name = body.get("repositoryName")
    if repository_name is not None and not isinstance(repository_name, str):
        errors["repositoryName"] = "Must be a string"

    for key in _FLAGS:
        if key in body and body[key] is not None and not isinstance(body[key], bool):
            errors[key] = "Must be a boolean"

    selected_files = body.get("selectedFiles")
    if selected_files is not None and (
        not isinstance(selected_files, list) or not all(isinstance(f, str) for f in selected_files)
    ):
        errors["selectedFiles"] = "Must be a list of file names"

    if errors:
        msg = "Invalid migration request: " + ", ".join(f"{k}: {v}" for k, v in errors.items())
        raise RequestValidationError(msg, errors)

    options = MigrationOptions(
        repository_name=repository_name or None,
        selected_files=tuple(selected_files or ()),
        **{attr: bool(body.get(key)) for key, attr in _FLAGS.items()},
    )
    return body["sourcePlatform"], source_url.strip(), body["destinationPlatform"], options


async def create_storage(settings: Settings) -> Storage:
    """Relational storage when a database URL is configured, memory storage otherwise."""
    if not settings.database_url:
        logger.debug("No database URL configured; using in-memory storage")
        return MemoryStorage()
    storage = SqlStorage(settings.database_url)
    await storage.init()
    return storage


class MigrationService:
    """Migration and dataset operations over one storage backend."""

    def __init__(
        self,
        storage: Storage,
        orchestrator: MigrationOrchestrator,
        analysis: AnalysisProvider,
    ) -> None:
        self.storage = storage
        self.orchestrator = orchestrator
        self._analysis = analysis

    @classmethod
    async def from_settings(cls, settings: Settings) -> MigrationService:
        storage = await create_storage(settings)
        analysis = create_analysis_provider(settings)
        orchestrator = MigrationOrchestrator(
            storage,
            build_registry(settings),
            analysis,
            ColumnConsistencyValidator(),
            step_timeout=settings.step_timeout,
            sample_bytes=settings.sample_bytes,
        )
        return cls(storage, orchestrator, analysis)

    # Migrations

    async def start_migration(self, request: Mapping[str, Any]) -> MigrationJob:
        source_platform, source_url, destination_platform, options = parse_migration_request(request)
        return await self.orchestrator.start_migration(source_platform, source_url, destination_platform, options)

    async def get_migration(self, job_id: int) -> MigrationJob:
        job = await self.storage.get_migration_job(job_id)
        if job is None:
            msg = f"Migration {job_id} not found"
            raise NotFoundError(msg)
        return job

    async def get_migration_steps(self, job_id: int) -> list[MigrationStep]:
        await self.get_migration(job_id)
        return await self.storage.list_migration_steps(job_id)

    async def list_migrations(self) -> list[MigrationJob]:
        return await self.storage.list_migration_jobs()

    async def recent_migrations(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[MigrationJob]:
        if limit < 1:
            msg = f"Limit must be positive, got {limit}"
            raise RequestValidationError(msg, {"limit": "Must be positive"})
        return await self.storage.get_recent_migration_jobs(limit)

    async def cancel_migration(self, job_id: int) -> MigrationJob:
        return await self.orchestrator.cancel(job_id)

    # Datasets

    async def list_datasets(self) -> list[Dataset]:
        return await self.storage.list_datasets()

    async def get_dataset(self, dataset_id: int) -> Dataset:
        dataset = await self.storage.get_dataset(dataset_id)
        if dataset is None:
            msg = f"Dataset {dataset_id} not found"
            raise NotFoundError(msg)
        return dataset

    async def get_dataset_files(self, dataset_id: int) -> list[DatasetFile]:
        await self.get_dataset(dataset_id)
        return await self.storage.list_dataset_files(dataset_id)

    async def get_analysis_reports(self, dataset_id: int) -> list[AnalysisReport]:
        await self.get_dataset(dataset_id)
        return await self.storage.list_analysis_reports(dataset_id)

    async def analyze_dataset(self, dataset_id: int) -> AnalysisReport:
        """Analyze a dataset from its file listing and store the report."""
        dataset = await self.get_dataset(dataset_id)
        files = [f for f in await self.storage.list_dataset_files(dataset_id) if f.selected]
        result = await self._analysis.analyze(
            dataset.name, dataset.description or "", dataset.metadata, build_sample(files)
        )
        report = await self.storage.create_analysis_report(
            dataset_id, result, ai_generated=self._analysis.ai_generated
        )
        logger.info(f"Stored analysis report {report.id} for dataset {dataset_id}")
        return report

    async def generate_card(self, dataset_id: int) -> str:
        """Generate a dataset card, using the newest analysis report when there is one."""
        dataset = await self.get_dataset(dataset_id)
        reports = await self.storage.list_analysis_reports(dataset_id)
        analysis: dict[str, Any] | None = None
        if reports:
            newest = reports[0]
            analysis = {
                **newest.report,
                "quality": newest.quality,
                "completeness": newest.completeness,
                "usability": newest.usability,
            }
        return await self._analysis.generate_card(dataset.name, dataset.description or "", dataset.metadata, analysis)

    async def close(self) -> None:
        """Wait for running migrations and release the storage backend."""
        await self.orchestrator.shutdown()
        if isinstance(self.storage, SqlStorage):
            await self.storage.close()
